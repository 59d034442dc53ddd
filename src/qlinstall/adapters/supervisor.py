# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/supervisor.py
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from ..utils.templates import TemplateRenderer
from .base import ToolAdapter

log = logging.getLogger("qlinstall")


@dataclass(frozen=True)
class ServiceSpec:
    name: str
    command: str
    user: str
    process_name: str
    stdout_log: str
    stderr_log: str
    autostart: bool = True
    autorestart: bool = True


class SupervisorAdapter(ToolAdapter):
    """supervisord program registration via conf.d files and supervisorctl."""

    tool = "supervisorctl"

    def __init__(self, runner=None, *, conf_dir: Path = Path("/etc/supervisor/conf.d"), renderer=None):
        super().__init__(runner)
        self.conf_dir = Path(conf_dir)
        self.renderer = renderer or TemplateRenderer()

    def conf_path(self, name: str) -> Path:
        return self.conf_dir / f"{name}.conf"

    def render(self, spec: ServiceSpec) -> str:
        return self.renderer.render("supervisor_program.conf.j2", asdict(spec))

    def register_service(self, spec: ServiceSpec) -> Path:
        path = self.conf_path(spec.name)
        if self.dry_run:
            log.info("dry-run: would write %s", path)
        else:
            self.conf_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(self.render(spec))
        self.reload()
        return path

    def restart_daemon(self) -> None:
        self._run(["service", "supervisor", "restart"])

    def reload(self) -> None:
        self._run(["supervisorctl", "reread"])
        self._run(["supervisorctl", "update"])

    def is_available(self) -> bool:
        return self.runner.run(["which", "supervisorctl"], mutating=False).returncode == 0

    def stop_program(self, name: str) -> bool:
        if not self.is_available():
            return False
        return self._try(["supervisorctl", "stop", name])

    def deregister_service(self, name: str) -> bool:
        path = self.conf_path(name)
        if not path.exists():
            return False
        if not self.dry_run:
            path.unlink()
        if self.is_available():
            # best-effort: the daemon may already be gone
            self._try(["supervisorctl", "reread"])
            self._try(["supervisorctl", "update"])
        return True
