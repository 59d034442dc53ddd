# src/qlinstall/observers/jsonfile.py
from __future__ import annotations

import json
import os
from pathlib import Path

from .events import BaseEvent


class JsonFileObserver:
    """
    Event trail for one run, one JSON object per line.

    The file sits next to the run log and gets the same treatment: created
    up front, mode 0600. Records are numbered so a reader can tell a
    truncated trail from a short run.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        self.path.touch(mode=0o600)
        os.chmod(self.path, 0o600)
        self.seq = 0

    def notify(self, event: BaseEvent) -> None:
        self.seq += 1
        record = {"seq": self.seq, "type": type(event).__name__, **event.dict()}
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, default=str) + "\n")
