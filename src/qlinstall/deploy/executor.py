# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional

from ..errors import PreconditionFailure, StepFailure, UserAborted
from ..observers.dispatcher import EventBus
from ..observers.events import (
    new_ctx,
    AlternativeFailed,
    RunStarted,
    RunSummary,
    StepFailed,
    StepSkipped,
    StepStarted,
    StepSucceeded,
)
from .registry import StepRegistry
from .state import ExecutionState, StateStore
from .steps import Condition, ProvisioningStep

log = logging.getLogger("qlinstall")


@dataclass
class StepOutcome:
    name: str
    status: str                 # "OK" | "SKIPPED" | "FAILED"
    via: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunReport:
    outcomes: List[StepOutcome] = field(default_factory=list)

    def add(self, outcome: StepOutcome) -> None:
        self.outcomes.append(outcome)

    def count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    def summary(self) -> str:
        return f"OK={self.count('OK')} SKIPPED={self.count('SKIPPED')} FAILED={self.count('FAILED')}"


class Executor:
    """
    Runs a registry's steps in declared order against an ExecutionState.

    - recorded + idempotent steps are skipped
    - preconditions are checked before a step, postconditions after
    - each success is appended to the state and persisted immediately;
      a dry run (ctx.dry_run) keeps the state in memory only
    - the first failure raises StepFailure and nothing after it runs
    - UserAborted propagates untouched; it is only ever raised from inside
      a step, so cancellation lands on a step boundary
    """

    def __init__(
        self,
        ctx: Any,
        store: Optional[StateStore] = None,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.ctx = ctx
        self.store = store
        self.persist = store is not None and not getattr(ctx, "dry_run", False)
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(env="run")
        self.report = RunReport()

    # ------------------------- internal helpers -------------------------

    def _check(self, step: ProvisioningStep, conditions: tuple[Condition, ...], when: str) -> Optional[str]:
        for cond in conditions:
            try:
                ok = cond.check(self.ctx)
            except Exception as e:
                return f"{cond.description} ({when} check raised {type(e).__name__}: {e})"
            if not ok:
                return cond.description
        return None

    def _apply(self, step: ProvisioningStep) -> Optional[str]:
        """Run the step's action or its alternatives. Returns the winning alternative name."""
        if not step.alternatives:
            step.apply(self.ctx)
            return None

        errors: List[str] = []
        for alt in step.alternatives:
            try:
                alt.action(self.ctx)
                return alt.name
            except UserAborted:
                raise
            except Exception as e:
                errors.append(f"{alt.name}: {e}")
                log.warning("[%s] alternative '%s' failed: %s", step.name, alt.name, e)
                self.bus.emit(AlternativeFailed(name=step.name, alternative=alt.name, error=str(e), **self.run_ctx))
                if alt.cleanup is not None:
                    try:
                        alt.cleanup(self.ctx)
                    except Exception as ce:
                        log.warning("[%s] cleanup after '%s' failed: %s", step.name, alt.name, ce)
        raise RuntimeError("all alternatives failed: " + "; ".join(errors))

    def _record(self, state: ExecutionState, name: str) -> None:
        if state.append(name) and self.persist:
            self.store.record_done(name)

    # ------------------------- public API -------------------------

    def run(self, registry: StepRegistry, state: ExecutionState) -> RunReport:
        self.report = report = RunReport()
        self.bus.emit(RunStarted(steps=registry.names(), **self.run_ctx))

        for step in registry.ordered():
            if step.name in state and step.idempotent:
                log.info("[%s] already completed, skipping", step.name)
                report.add(StepOutcome(name=step.name, status="SKIPPED"))
                self.bus.emit(StepSkipped(name=step.name, reason="already completed", **self.run_ctx))
                continue

            missing = [d for d in step.requires if d not in state]
            if missing:
                self._fail(report, step.name, f"requires {', '.join(missing)}")
                raise PreconditionFailure(step.name, f"required steps not completed: {', '.join(missing)}")

            reason = self._check(step, step.preconditions, "pre")
            if reason:
                self._fail(report, step.name, reason)
                raise PreconditionFailure(step.name, reason)

            log.info("[%s] starting%s", step.name, f": {step.description}" if step.description else "")
            self.bus.emit(StepStarted(name=step.name, **self.run_ctx))
            t0 = time.time()
            try:
                via = self._apply(step)
            except UserAborted:
                self._fail(report, step.name, "aborted by operator")
                raise
            except Exception as e:
                self._fail(report, step.name, str(e))
                raise StepFailure(step.name, e) from e

            reason = self._check(step, step.postconditions, "post")
            if reason:
                cause = RuntimeError(f"postcondition not met: {reason}")
                self._fail(report, step.name, str(cause))
                raise StepFailure(step.name, cause)

            self._record(state, step.name)
            duration_ms = int((time.time() - t0) * 1000)
            report.add(StepOutcome(name=step.name, status="OK", via=via))
            log.info("[%s] completed%s", step.name, f" via {via}" if via else "")
            self.bus.emit(StepSucceeded(name=step.name, duration_ms=duration_ms, via=via, **self.run_ctx))

        self.bus.emit(RunSummary(completed=report.count("OK"), skipped=report.count("SKIPPED"), **self.run_ctx))
        return report

    def _fail(self, report: RunReport, name: str, error: str) -> None:
        log.error("[%s] failed: %s", name, error)
        report.add(StepOutcome(name=name, status="FAILED", error=error))
        self.bus.emit(StepFailed(name=name, error=error, **self.run_ctx))
        self.bus.emit(
            RunSummary(completed=report.count("OK"), skipped=report.count("SKIPPED"), failed=name, **self.run_ctx)
        )
