# src/qlinstall/observers/dispatcher.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .events import BaseEvent
from .interface import Observer

log = logging.getLogger("qlinstall")


class EventBus:
    def __init__(self, observers: Optional[Iterable[Observer]] = None):
        self._observers: List[Observer] = list(observers or [])

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception as e:
                # a broken console or full disk must not fail the step that emitted
                log.debug("observer %s dropped %s: %s", type(ob).__name__, type(event).__name__, e)
