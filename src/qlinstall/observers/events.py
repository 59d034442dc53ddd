# src/qlinstall/observers/events.py

from __future__ import annotations

import socket
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single invocation
    env: str          # run | rollback | supervisor | cleanup
    host: Optional[str]

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(env: str, host: Optional[str] = None, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "env": env,
        "host": host if host is not None else socket.gethostname(),
    }


# ---------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunStarted(BaseEvent):
    steps: List[str]

@dataclass(frozen=True)
class RunSummary(BaseEvent):
    completed: int
    skipped: int
    failed: Optional[str] = None


# ---------------------------------------------------------------------
# Step lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class StepStarted(BaseEvent):
    name: str

@dataclass(frozen=True)
class StepSkipped(BaseEvent):
    name: str
    reason: str

@dataclass(frozen=True)
class AlternativeFailed(BaseEvent):
    name: str
    alternative: str
    error: str

@dataclass(frozen=True)
class StepSucceeded(BaseEvent):
    name: str
    duration_ms: int
    via: Optional[str] = None     # alternative that succeeded, if any

@dataclass(frozen=True)
class StepFailed(BaseEvent):
    name: str
    error: str


# ---------------------------------------------------------------------
# Rollback
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RollbackStarted(BaseEvent):
    order: List[str]

@dataclass(frozen=True)
class RollbackResult(BaseEvent):
    name: str
    status: str       # "ROLLED_BACK" | "FAILED"
    error: Optional[str] = None
