# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/utils/execution.py
from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from typing import Optional, Sequence, Union

log = logging.getLogger("qlinstall")

Cmd = Sequence[Union[str, "os.PathLike[str]"]]

MASK = "******"


def redact(argv: Sequence[str], secrets: Sequence[Optional[str]] = ()) -> list[str]:
    """Copy of argv safe to log: every occurrence of a secret is masked."""
    out = []
    for arg in argv:
        for s in secrets:
            if s:
                arg = arg.replace(s, MASK)
        out.append(arg)
    return out


@dataclass(frozen=True)
class ExecutionContext:
    """
    controls how commands are executed
    """

    dry_run: bool = False


@dataclass
class CommandRunner:
    """
    Thin wrapper over subprocess.run used by every adapter.

    Never raises on a non-zero exit; adapters inspect returncode and
    translate failures into ExternalToolError themselves.
    """

    ctx: ExecutionContext = field(default_factory=ExecutionContext)
    label: Optional[str] = None

    def run(
        self,
        cmd: Cmd,
        *,
        input: str | None = None,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        mutating: bool = True,
        secrets: Sequence[Optional[str]] = (),
    ) -> subprocess.CompletedProcess:
        label = self.label or "cmd"
        argv = [str(c) for c in cmd]
        shown = " ".join(redact(argv, secrets))
        log.debug("[%s] $ %s", label, shown)

        # read-only queries still run in dry-run mode so branching stays realistic
        if self.ctx.dry_run and mutating:
            log.info("[%s] dry-run: skipped %s", label, shown)
            return subprocess.CompletedProcess(args=argv, returncode=0, stdout="", stderr="")

        full_env = None
        if env:
            full_env = dict(os.environ)
            full_env.update(env)

        start = time.time()
        try:
            result = subprocess.run(
                argv,
                input=input,
                capture_output=True,
                check=False,
                text=True,
                cwd=cwd,
                env=full_env,
            )
        except FileNotFoundError as e:
            # binary missing; report like a shell would
            return subprocess.CompletedProcess(args=argv, returncode=127, stdout="", stderr=str(e))

        duration = time.time() - start
        if result.stdout:
            log.debug("[%s][stdout]\n%s", label, result.stdout.rstrip())
        if result.stderr:
            log.debug("[%s][stderr]\n%s", label, result.stderr.rstrip())
        log.debug("[%s][exit %s] (%.2fs)", label, result.returncode, duration)
        return result
