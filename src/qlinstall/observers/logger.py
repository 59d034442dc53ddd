# src/qlinstall/observers/logger.py
from __future__ import annotations

import logging

from .events import BaseEvent

# carried by every event; the run log header already names them
_CONTEXT = ("ts", "run_id", "host", "env")


class LoggerObserver:
    """Mirrors every event into the run log. DEBUG by default: the console observer already shows them."""

    def __init__(self, logger: logging.Logger, level: int = logging.DEBUG):
        self.logger = logger
        self.level = level

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        fields = " ".join(f"{k}={v!r}" for k, v in d.items() if k not in _CONTEXT)
        self.logger.log(self.level, "[event] %s %s %s", d["env"], type(event).__name__, fields)
