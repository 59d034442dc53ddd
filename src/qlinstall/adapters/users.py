# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/users.py
from __future__ import annotations

import logging
import os
import pwd
import shutil
from pathlib import Path
from typing import Iterable, Optional

from .base import ToolAdapter

log = logging.getLogger("qlinstall")


class UserAccounts(ToolAdapter):
    """
    Local account management for the service user.

    Every removal is "if present" so rollback can call it at any point.
    """

    tool = "useradd"

    def __init__(self, runner=None, *, sudoers: Path = Path("/etc/sudoers"), sudoers_dir: Path = Path("/etc/sudoers.d")):
        super().__init__(runner)
        self.sudoers = Path(sudoers)
        self.sudoers_dir = Path(sudoers_dir)

    # ------------------------- queries -------------------------

    def exists(self, name: str) -> bool:
        try:
            pwd.getpwnam(name)
            return True
        except KeyError:
            return False

    def home_of(self, name: str) -> Optional[Path]:
        try:
            return Path(pwd.getpwnam(name).pw_dir)
        except KeyError:
            return None

    def sudoers_line(self, name: str) -> str:
        return f"{name} ALL=(ALL) NOPASSWD:ALL"

    def sudoers_dropin(self, name: str) -> Path:
        return self.sudoers_dir / name

    # ------------------------- create -------------------------

    def create(self, name: str, password: str, *, shell: str = "/bin/bash", groups: Iterable[str] = ()) -> None:
        if self.exists(name):
            log.info("user %s already exists, updating shell/groups/password", name)
        else:
            self._run(["useradd", "-m", "-s", shell, name])
        groups = list(groups)
        if groups:
            self._run(["usermod", "-a", "-G", ",".join(groups), name])
        self._run(["chsh", "-s", shell, name])
        self._run(["chpasswd"], input=f"{name}:{password}\n", secrets=[password])

    def grant_sudo(self, name: str) -> None:
        """Passwordless sudo through a validated drop-in, never by editing /etc/sudoers."""
        target = self.sudoers_dropin(name)
        if self.dry_run:
            log.info("dry-run: would write %s", target)
            return
        self.sudoers_dir.mkdir(parents=True, exist_ok=True)
        tmp = target.with_name(f".{name}.tmp")
        tmp.write_text(self.sudoers_line(name) + "\n")
        os.chmod(tmp, 0o440)
        try:
            self._run(["visudo", "-cf", str(tmp)])
        except Exception:
            tmp.unlink(missing_ok=True)
            raise
        tmp.replace(target)

    def install_authorized_key(self, name: str, key: str, home: Optional[Path] = None) -> Path:
        home = home or self.home_of(name) or Path("/home") / name
        ssh_dir = home / ".ssh"
        keys = ssh_dir / "authorized_keys"
        if self.dry_run:
            log.info("dry-run: would write %s", keys)
            return keys
        ssh_dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        os.chmod(ssh_dir, 0o700)
        existing = keys.read_text() if keys.exists() else ""
        if key and key.strip() not in existing.splitlines():
            keys.write_text(existing + key.strip() + "\n")
        elif not keys.exists():
            keys.touch()
        os.chmod(keys, 0o600)
        if name != "root":
            self._run(["chown", "-R", f"{name}:{name}", str(ssh_dir)])
        return keys

    # ------------------------- remove -------------------------

    def revoke_sudo(self, name: str) -> bool:
        """Remove the drop-in and any legacy line appended to /etc/sudoers."""
        changed = False
        dropin = self.sudoers_dropin(name)
        if dropin.exists():
            if not self.dry_run:
                dropin.unlink()
            changed = True
        if self.sudoers.exists():
            legacy = {f"{name} ALL = NOPASSWD: ALL", self.sudoers_line(name)}
            lines = self.sudoers.read_text().splitlines(keepends=True)
            kept = [ln for ln in lines if ln.strip() not in legacy]
            if len(kept) != len(lines):
                if not self.dry_run:
                    self.sudoers.write_text("".join(kept))
                changed = True
        return changed

    def remove(self, name: str, home: Optional[Path] = None) -> bool:
        """Kill the user's processes, delete the account and its home. False if nothing to do."""
        home = home or self.home_of(name)
        present = self.exists(name)
        if present:
            # rc 1 just means no processes matched
            self._run(["pkill", "-u", name], allow_rc={0, 1})
            cp = self.runner.run(["userdel", "-r", name])
            if cp.returncode not in (0, 12):
                # 12: home could not be removed; handled below
                self._run(["userdel", "-f", "-r", name], allow_rc={0, 6, 12})
        if home is not None and home.exists() and not self.dry_run:
            shutil.rmtree(home)
            present = True
        return present
