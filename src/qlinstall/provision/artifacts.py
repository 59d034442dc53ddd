# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/provision/artifacts.py
"""
Helper launchers written into the scripts directory.

A launcher is a few lines of shell that re-enters qlinstall with the same
config and state dir; the behaviour lives in the nested step registries.
"""
from __future__ import annotations

import logging
import os
import shutil
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, NamedTuple

from .. import __version__
from ..deploy.registry import StepRegistry
from ..utils.templates import TemplateRenderer
from .context import ProvisionContext

log = logging.getLogger("qlinstall")


class HelperSpec(NamedTuple):
    filename: str
    command: str
    title: str


HELPERS: Dict[str, HelperSpec] = {
    "supervisor": HelperSpec("install-supervisor.sh", "supervisor", "Supervisor installation for the Quake Live server"),
    "cleanup": HelperSpec("cleanup-quake-install.sh", "cleanup", "Quake Live server cleanup / uninstall"),
}


def sequences() -> Dict[str, Callable[[], StepRegistry]]:
    # imported here: the step modules import this one
    from .cleanup import build_cleanup_registry
    from .supervisor import build_supervisor_registry

    return {"supervisor": build_supervisor_registry, "cleanup": build_cleanup_registry}


def helper_path(ctx: ProvisionContext, sequence: str) -> Path:
    return ctx.config.paths.scripts_dir / HELPERS[sequence].filename


def qlinstall_executable() -> list[str]:
    found = shutil.which("qlinstall")
    return [found] if found else [sys.executable, "-m", "qlinstall"]


def render_helper(ctx: ProvisionContext, sequence: str, renderer: TemplateRenderer | None = None) -> str:
    builders = sequences()
    if sequence not in builders or sequence not in HELPERS:
        raise ValueError(f"unknown step sequence: {sequence!r}")
    registry = builders[sequence]()
    if not len(registry):
        raise ValueError(f"step sequence {sequence!r} is empty")

    spec = HELPERS[sequence]
    renderer = renderer or TemplateRenderer()
    return renderer.render(
        "helper_launcher.sh.j2",
        {
            "title": spec.title,
            "version": __version__,
            "generated_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "sequence": registry.name,
            "steps": registry.names(),
            "executable": qlinstall_executable(),
            "command": spec.command,
            "config_path": str(ctx.config_path) if ctx.config_path else "",
            "state_dir": str(ctx.state_dir),
        },
    )


def write_helper(ctx: ProvisionContext, sequence: str) -> Path:
    text = render_helper(ctx, sequence)
    path = helper_path(ctx, sequence)
    if ctx.dry_run:
        log.info("dry-run: would write %s", path)
        return path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    os.chmod(path, 0o755)
    return path


def remove_helper(ctx: ProvisionContext, sequence: str) -> None:
    path = helper_path(ctx, sequence)
    if path.exists() and not ctx.dry_run:
        path.unlink()
        log.info("Removed %s", path)
