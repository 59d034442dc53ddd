# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/deploy/steps.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Tuple

Action = Callable[[Any], None]
Predicate = Callable[[Any], bool]


def noop(ctx: Any) -> None:
    """Reverse action for steps that are irreversible or leave nothing behind."""
    return None


@dataclass(frozen=True)
class Condition:
    """
    A named predicate over the run context. The description is what the
    operator sees when it does not hold.
    """
    description: str
    check: Predicate


@dataclass(frozen=True)
class Alternative:
    """
    One way of achieving a step. Alternatives are tried in declaration
    order; the first one that returns without raising wins.

    An alternative must be all-or-nothing. If it can leave partial state
    behind when it fails, give it a cleanup callable; the executor runs it
    before moving on to the next alternative.
    """
    name: str
    action: Action
    cleanup: Optional[Action] = None


@dataclass(frozen=True)
class ProvisioningStep:
    """
    Declarative unit of provisioning work.

    name            unique identifier, also the key in the state log
    apply           forward action; ignored when alternatives are given
    reverse         "remove if present" action used by rollback
    idempotent      safe to skip when already recorded as completed
    requires        names of steps that must have completed first
    preconditions   checked before apply
    postconditions  checked after apply; a false result fails the step
    alternatives    ordered fallbacks; the step fails only if all fail
    """
    name: str
    apply: Action = noop
    reverse: Action = noop
    idempotent: bool = True
    description: str = ""
    requires: Tuple[str, ...] = ()
    preconditions: Tuple[Condition, ...] = ()
    postconditions: Tuple[Condition, ...] = ()
    alternatives: Tuple[Alternative, ...] = field(default_factory=tuple)

    @property
    def reversible(self) -> bool:
        return self.reverse is not noop
