# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/deploy/state.py
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

log = logging.getLogger("qlinstall")


class ExecutionState:
    """
    Ordered names of steps that completed successfully.

    A name appears at most once. Appending an already recorded name is a
    no-op so that re-running a non-idempotent step keeps its position.
    """

    def __init__(self, completed: Optional[Iterable[str]] = None):
        self._completed: List[str] = []
        for name in completed or []:
            self.append(name)

    @property
    def completed(self) -> List[str]:
        return list(self._completed)

    def append(self, name: str) -> bool:
        if name in self._completed:
            return False
        self._completed.append(name)
        return True

    def discard(self, name: str) -> None:
        if name in self._completed:
            self._completed.remove(name)

    def __contains__(self, name: object) -> bool:
        return name in self._completed

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._completed))

    def __len__(self) -> int:
        return len(self._completed)

    def __repr__(self) -> str:
        return f"ExecutionState({self._completed!r})"


class StateStore:
    """
    Append-only log of completed and reversed steps.

    Each line is a JSON record: {"op": "done"|"undone", "step": ..., "ts": ...}.
    Replaying the log yields the ExecutionState, which is how an interrupted
    run resumes instead of restarting.
    """

    FILENAME = "state.log"

    def __init__(self, state_dir: Path, sequence: str = "provision"):
        self.state_dir = Path(state_dir)
        name = self.FILENAME if sequence == "provision" else f"{sequence}-{self.FILENAME}"
        self.path = self.state_dir / name

    def _append(self, op: str, step: str) -> None:
        self.state_dir.mkdir(parents=True, exist_ok=True)
        record = {
            "op": op,
            "step": step,
            "ts": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")

    def record_done(self, step: str) -> None:
        self._append("done", step)

    def record_undone(self, step: str) -> None:
        self._append("undone", step)

    def load(self) -> ExecutionState:
        state = ExecutionState()
        if not self.path.exists():
            return state
        for lineno, raw in enumerate(self.path.read_text(encoding="utf-8").splitlines(), 1):
            line = raw.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                # a crash mid-write leaves at most one torn line at the end
                log.warning("Ignoring unreadable state record %s:%d", self.path, lineno)
                continue
            if record.get("op") == "done":
                state.append(record["step"])
            elif record.get("op") == "undone":
                state.discard(record["step"])
        return state

    def history(self) -> List[dict]:
        if not self.path.exists():
            return []
        out = []
        for raw in self.path.read_text(encoding="utf-8").splitlines():
            try:
                out.append(json.loads(raw))
            except json.JSONDecodeError:
                continue
        return out
