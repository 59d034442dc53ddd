# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/errors.py
from __future__ import annotations

from typing import Optional, Sequence


class QlInstallError(RuntimeError):
    """Base class for installer failures."""


class ConfigError(QlInstallError):
    """Raised when a config or data file cannot be loaded or validated."""


class DuplicateStepError(ValueError):
    """Raised when a step name is registered twice."""


class PreconditionFailure(QlInstallError):
    """A step's required prior state is absent. Fatal, never retried."""

    def __init__(self, step: str, reason: str):
        self.step = step
        self.reason = reason
        super().__init__(f"[{step}] precondition failed: {reason}")


class StepFailure(QlInstallError):
    """The step's action (and every declared alternative) failed."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(f"[{step}] failed: {cause}")


class PromptAbandoned(QlInstallError):
    """Interactive input exhausted its retry budget."""

    def __init__(self, prompt: str, attempts: int):
        self.prompt = prompt
        self.attempts = attempts
        super().__init__(f"no usable answer for {prompt!r} after {attempts} attempts")


class UserAborted(QlInstallError):
    """
    The operator cancelled. Honoured at step boundaries only.

    rollback=True means the operator already confirmed tearing down what
    was installed so far.
    """

    def __init__(self, message: str = "aborted by operator", *, rollback: bool = False):
        self.rollback = rollback
        super().__init__(message)


class ExternalToolError(QlInstallError):
    """
    Non-zero exit from an adapter-wrapped command.

    classification is one of:
      auth_rejected | network_unreachable | not_found | opaque
    """

    def __init__(
        self,
        tool: str,
        argv: Sequence[str],
        returncode: int,
        stderr: str = "",
        classification: str = "opaque",
    ):
        self.tool = tool
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        self.classification = classification
        msg = f"{tool} failed (rc={returncode}, {classification}) for {self.argv!r}"
        if stderr.strip():
            msg += f"\n{stderr.rstrip()}"
        super().__init__(msg)


class RollbackPartialFailure(QlInstallError):
    """One reverse action failed during rollback. Reported, never raised."""

    def __init__(self, step: str, cause: Optional[BaseException]):
        self.step = step
        self.cause = cause
        super().__init__(f"[{step}] reverse action failed: {cause}")
