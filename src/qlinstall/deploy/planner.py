# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from ..errors import RollbackPartialFailure
from ..observers.dispatcher import EventBus
from ..observers.events import RollbackResult, RollbackStarted, new_ctx
from .registry import StepRegistry
from .state import ExecutionState, StateStore
from .steps import Action

log = logging.getLogger("qlinstall")

RollbackPlan = List[Tuple[str, Action]]


@dataclass
class RollbackReport:
    rolled_back: List[str] = field(default_factory=list)
    warnings: List[RollbackPartialFailure] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.warnings

    def summary(self) -> str:
        return f"ROLLED_BACK={len(self.rolled_back)} WARNINGS={len(self.warnings)}"


def plan(registry: StepRegistry, state: ExecutionState) -> RollbackPlan:
    """
    Reverse of the completed steps, most recent first. Names the registry
    does not know (a state log written by an older step list) are left out;
    the planner reports them separately.
    """
    return [(name, registry.get(name).reverse) for name in reversed(state.completed) if name in registry]


class RollbackPlanner:
    """
    Best-effort teardown of a (possibly partial) run.

    Reverse actions are written as "remove if present", so calling this
    after a failure at any point, or twice in a row, is safe. A failing
    reverse action is logged and collected as a warning; it never stops the
    remaining reverse actions and never raises.

    Under a dry run the reverse actions still run (their commands are only
    logged) but nothing is forgotten, in memory or on disk.
    """

    def __init__(
        self,
        registry: StepRegistry,
        ctx: Any,
        store: Optional[StateStore] = None,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.registry = registry
        self.ctx = ctx
        self.store = store
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="rollback")

    def _forget(self, state: ExecutionState, name: str) -> None:
        # a dry run reversed nothing, so the recorded state must stay as it was
        if getattr(self.ctx, "dry_run", False):
            return
        state.discard(name)
        if self.store is not None:
            self.store.record_undone(name)

    def rollback(self, state: ExecutionState) -> RollbackReport:
        report = RollbackReport()
        steps = plan(self.registry, state)

        for name in state.completed:
            if name not in self.registry:
                log.warning("[rollback] unknown step '%s' in state, dropping it", name)
                report.warnings.append(RollbackPartialFailure(name, KeyError(f"unknown step '{name}'")))
                self._forget(state, name)

        self.bus.emit(RollbackStarted(order=[n for n, _ in steps], **self.run_ctx))

        for name, reverse in steps:
            log.info("[rollback] reversing %s", name)
            try:
                reverse(self.ctx)
            except Exception as e:
                log.warning("[rollback] %s: reverse action failed, continuing: %s", name, e)
                report.warnings.append(RollbackPartialFailure(name, e))
                self.bus.emit(RollbackResult(name=name, status="FAILED", error=str(e), **self.run_ctx))
            else:
                report.rolled_back.append(name)
                self.bus.emit(RollbackResult(name=name, status="ROLLED_BACK", **self.run_ctx))
            # forgotten either way: a retry must start from a clean slate
            self._forget(state, name)

        log.info("[rollback] %s", report.summary())
        return report
