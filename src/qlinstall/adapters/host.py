# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/host.py
from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from ..errors import ExternalToolError
from .base import ToolAdapter


@dataclass(frozen=True)
class OsRelease:
    id: str
    version_id: str
    pretty_name: str = ""

    @property
    def is_ubuntu(self) -> bool:
        return self.id == "ubuntu"


def parse_os_release(text: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, _, value = line.partition("=")
        try:
            parts = shlex.split(value)
        except ValueError:
            parts = [value.strip("\"'")]
        values[key.strip()] = parts[0] if parts else ""
    return values


class HostFacts(ToolAdapter):
    """OS identity, privilege and timezone. Read-only except set_timezone()."""

    tool = "timedatectl"

    def read_os_release(self, path: Path = Path("/etc/os-release")) -> OsRelease:
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"Cannot detect OS version: {path} not found")
        values = parse_os_release(path.read_text())
        version = values.get("VERSION_ID")
        if not version:
            raise ValueError(f"{path} has no VERSION_ID")
        return OsRelease(
            id=values.get("ID", "").lower(),
            version_id=version,
            pretty_name=values.get("PRETTY_NAME", ""),
        )

    @staticmethod
    def is_root() -> bool:
        return os.geteuid() == 0

    def current_timezone(self) -> Optional[str]:
        cp = self.runner.run(["timedatectl", "show", "-p", "Timezone", "--value"], mutating=False)
        if cp.returncode == 0 and (cp.stdout or "").strip():
            return cp.stdout.strip()
        # older systemd has no "show"; fall back to the status text
        cp = self.runner.run(["timedatectl"], mutating=False)
        for line in (cp.stdout or "").splitlines():
            if "Time zone" in line:
                return line.split(":", 1)[1].split()[0]
        return None

    def set_timezone(self, tz: str) -> None:
        try:
            self._run(["timedatectl", "set-timezone", tz])
        except ExternalToolError as e:
            e.classification = "not_found" if e.classification == "opaque" else e.classification
            raise

    def reboot(self) -> None:
        self._run(["shutdown", "-r", "+1", "qlinstall: reboot requested by operator"])
