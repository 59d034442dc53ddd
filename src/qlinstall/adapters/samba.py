# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/samba.py
from __future__ import annotations

import logging
import re
import shutil
from datetime import datetime
from pathlib import Path
from typing import List, Mapping, Optional

from .base import ToolAdapter

log = logging.getLogger("qlinstall")

BEGIN = "# BEGIN qlinstall share [{name}]"
END = "# END qlinstall share [{name}]"


def _header_rx(name: str) -> re.Pattern:
    # live section headers only; Ubuntu's stock smb.conf ships ";[homes]" commented out
    return re.compile(rf"^\s*\[{re.escape(name)}\]\s*$", re.M)


def render_section(name: str, options: Mapping[str, str]) -> str:
    lines = [BEGIN.format(name=name), f"[{name}]"]
    lines += [f"    {k} = {v}" for k, v in options.items()]
    lines.append(END.format(name=name))
    return "\n".join(lines) + "\n"


class SambaShareConfigurator(ToolAdapter):
    """
    Adds and removes shares in smb.conf.

    Sections written here are wrapped in BEGIN/END marker comments; removal
    only ever deletes a marked block, so hand-written sections with the same
    name are never touched.
    """

    tool = "smbpasswd"

    def __init__(self, runner=None, *, conf_path: Path = Path("/etc/samba/smb.conf"), service: str = "smbd"):
        super().__init__(runner)
        self.conf_path = Path(conf_path)
        self.service = service

    # ------------------------- smb.conf -------------------------

    def _read(self) -> str:
        return self.conf_path.read_text() if self.conf_path.exists() else ""

    def has_share(self, name: str) -> bool:
        return bool(_header_rx(name).search(self._read()))

    def is_managed(self, name: str) -> bool:
        return BEGIN.format(name=name) in self._read()

    def add_share(self, path: Optional[str], options: Mapping[str, str], *, name: Optional[str] = None) -> bool:
        """
        Append a share section unless one with that name already exists.
        `name` defaults to the last path component. Returns True when written.
        """
        if name is None:
            if not path:
                raise ValueError("a share needs a name or a path")
            name = Path(path).name
        opts = dict(options)
        if path and "path" not in opts:
            opts["path"] = path
        if self.has_share(name):
            log.info("samba: share [%s] already present, leaving it", name)
            return False
        if self.dry_run:
            log.info("dry-run: would add share [%s] to %s", name, self.conf_path)
            return True
        text = self._read()
        if text and not text.endswith("\n"):
            text += "\n"
        self.conf_path.parent.mkdir(parents=True, exist_ok=True)
        self.conf_path.write_text(text + "\n" + render_section(name, opts))
        return True

    def backup(self) -> Optional[Path]:
        if not self.conf_path.exists():
            return None
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        target = self.conf_path.with_name(f"{self.conf_path.name}.backup.{ts}")
        if not self.dry_run:
            shutil.copy2(self.conf_path, target)
        return target

    def remove_share(self, name: str) -> bool:
        """Delete the marked block for `name` if present. Backs up smb.conf first."""
        if not self.is_managed(name):
            return False
        begin, end = BEGIN.format(name=name), END.format(name=name)
        out: List[str] = []
        skipping = False
        for line in self._read().splitlines(keepends=True):
            stripped = line.strip()
            if stripped == begin:
                skipping = True
                # drop the blank separator written in front of the block
                if out and not out[-1].strip():
                    out.pop()
                continue
            if skipping:
                if stripped == end:
                    skipping = False
                continue
            out.append(line)
        self.backup()
        if not self.dry_run:
            self.conf_path.write_text("".join(out))
        return True

    # ------------------------- users -------------------------

    def set_password(self, user: str, secret: str) -> None:
        self._run(["smbpasswd", "-a", user, "-s"], input=f"{secret}\n{secret}\n", secrets=[secret])

    def remove_user(self, user: str) -> bool:
        # fails when the user was never added; that is the "if present" case
        return self._try(["smbpasswd", "-x", user])

    # ------------------------- service -------------------------

    def _service(self, action: str, legacy_init: bool = False) -> bool:
        attempts = []
        if legacy_init:
            attempts.append(["/etc/init.d/samba", action])
        attempts.append(["systemctl", action, self.service])
        for argv in attempts:
            if self._try(argv):
                return True
        log.warning("samba: could not %s %s", action, self.service)
        return False

    def stop(self, legacy_init: bool = False) -> bool:
        return self._service("stop", legacy_init)

    def start(self, legacy_init: bool = False) -> bool:
        return self._service("start", legacy_init)

    def restart(self, legacy_init: bool = False) -> bool:
        return self._service("restart", legacy_init)
