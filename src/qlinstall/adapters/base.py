# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/base.py
from __future__ import annotations

import re
import subprocess
from typing import Optional, Sequence

from ..errors import ExternalToolError
from ..utils.execution import CommandRunner, redact

_PATTERNS = [
    (
        "auth_rejected",
        re.compile(
            r"invalid password|login failure|account logon denied|two-factor|rate limit exceeded"
            r"|no subscription|authentication failed|permission denied \(publickey",
            re.I,
        ),
    ),
    (
        "network_unreachable",
        re.compile(
            r"could not resolve|temporary failure in name resolution|network is unreachable"
            r"|connection timed out|connection refused|no connection|unable to connect",
            re.I,
        ),
    ),
    (
        "not_found",
        re.compile(r"unable to locate package|no such file|not found|404", re.I),
    ),
]


def classify(output: str) -> str:
    """Best-effort reading of a tool's output. Falls back to 'opaque'."""
    for label, rx in _PATTERNS:
        if rx.search(output or ""):
            return label
    return "opaque"


class ToolAdapter:
    """
    Base for every adapter. The orchestrator never looks at raw output;
    adapters turn non-zero exits into ExternalToolError here.
    """

    tool = "tool"

    def __init__(self, runner: Optional[CommandRunner] = None):
        self.runner = runner or CommandRunner(label=self.tool)

    @property
    def dry_run(self) -> bool:
        return self.runner.ctx.dry_run

    def _run(
        self,
        argv: Sequence[str],
        *,
        allow_rc: Optional[set[int]] = None,
        secrets: Sequence[Optional[str]] = (),
        **kwargs,
    ) -> subprocess.CompletedProcess:
        allow_rc = allow_rc or {0}
        cp = self.runner.run(argv, secrets=secrets, **kwargs)
        if cp.returncode not in allow_rc:
            output = f"{cp.stdout or ''}\n{cp.stderr or ''}"
            raise ExternalToolError(
                tool=self.tool,
                argv=redact([str(a) for a in argv], secrets),
                returncode=cp.returncode,
                stderr=redact([(cp.stderr or cp.stdout or "")[-2000:]], secrets)[0],
                classification=classify(output),
            )
        return cp

    def _try(self, argv: Sequence[str], **kwargs) -> bool:
        """Run a best-effort command; True when it exited 0."""
        return self.runner.run(argv, **kwargs).returncode == 0
