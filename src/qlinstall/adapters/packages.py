# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/packages.py
from __future__ import annotations

import logging
import shutil
from typing import Iterable, List, Optional, Union

from ..errors import ExternalToolError
from ..utils.retry import retry
from .base import ToolAdapter

log = logging.getLogger("qlinstall")

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class AptPackageManager(ToolAdapter):
    """
    apt-get/dpkg wrapper.
    - ensure_installed() is idempotent: already installed packages are not reinstalled.
    - install_optional() never raises; the caller decides what a miss means.
    """

    tool = "apt-get"

    @retry(attempts=3, delay=10)
    def update(self) -> None:
        # retried: the apt lock is often held right after boot by unattended-upgrades
        self._run(["apt-get", "update"], env=APT_ENV)

    def is_installed(self, name: str) -> bool:
        cp = self.runner.run(
            ["dpkg-query", "-W", "-f=${Status}", name],
            mutating=False,
        )
        return cp.returncode == 0 and "install ok installed" in (cp.stdout or "")

    def ensure_installed(self, names: Union[str, Iterable[str]]) -> List[str]:
        """Install what is missing. Returns the names that were actually installed."""
        wanted = [names] if isinstance(names, str) else list(names)
        missing = [n for n in wanted if not self.is_installed(n)]
        if not missing:
            log.debug("apt: all of %s already installed", ", ".join(wanted))
            return []
        self._run(["apt-get", "-y", "install", *missing], env=APT_ENV)
        return missing

    def install_optional(self, name: str) -> bool:
        if self.has_command(name) or self.is_installed(name):
            return True
        try:
            self.ensure_installed(name)
            return True
        except ExternalToolError as e:
            log.warning("optional package %s not installed (%s)", name, e.classification)
            return False

    @staticmethod
    def has_command(name: str) -> bool:
        return shutil.which(name) is not None


class PipInstaller(ToolAdapter):
    """python3 -m pip, with optional --break-system-packages (PEP 668 distros)."""

    tool = "pip"

    def __init__(self, runner=None, python: str = "python3"):
        super().__init__(runner)
        self.python = python

    def supports_break_system_packages(self) -> bool:
        cp = self.runner.run([self.python, "-m", "pip", "install", "--help"], mutating=False)
        return "break-system-packages" in (cp.stdout or "")

    def install(
        self,
        packages: Iterable[str] = (),
        *,
        requirements: Optional[str] = None,
        break_system_packages: bool = False,
        upgrade: bool = False,
    ) -> None:
        argv = [self.python, "-m", "pip", "install"]
        if break_system_packages:
            argv.append("--break-system-packages")
        if upgrade:
            argv.append("--upgrade")
        if requirements:
            argv += ["-r", requirements]
        argv += list(packages)
        self._run(argv)
