# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/adapters/steam.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..errors import ExternalToolError
from ..prompt.credentials import Credentials
from .base import ToolAdapter

log = logging.getLogger("qlinstall")


@dataclass(frozen=True)
class SteamTarget:
    app_id: int
    install_dir: Path
    steamcmd_dir: Path
    run_as: str
    bootstrap_url: str
    # file whose presence proves the download really happened
    verify_file: str = "run_server_x64.sh"


class SteamCmdClient(ToolAdapter):
    """
    SteamCMD, run as the service user.

    Failures are classified from SteamCMD's output: a rejected login or
    missing ownership becomes auth_rejected, DNS/connect errors become
    network_unreachable.
    """

    tool = "steamcmd"

    def _as_user(self, user: str, argv: List[str]) -> List[str]:
        return ["runuser", "-u", user, "--", *argv]

    def ensure_steamcmd(self, target: SteamTarget) -> Path:
        script = target.steamcmd_dir / "steamcmd.sh"
        self._run(self._as_user(target.run_as, ["mkdir", "-p", str(target.steamcmd_dir)]))
        if script.exists():
            return script
        tarball = target.steamcmd_dir / "steamcmd_linux.tar.gz"
        self._run(self._as_user(target.run_as, ["wget", "-q", "-O", str(tarball), target.bootstrap_url]))
        self._run(self._as_user(target.run_as, ["tar", "-xzf", str(tarball), "-C", str(target.steamcmd_dir)]))
        self._run(self._as_user(target.run_as, ["rm", "-f", str(tarball)]))
        return script

    def self_update(self, target: SteamTarget) -> None:
        script = target.steamcmd_dir / "steamcmd.sh"
        cp = self.runner.run(self._as_user(target.run_as, [str(script), "+quit"]), cwd=str(target.steamcmd_dir))
        if cp.returncode != 0:
            # steamcmd exits non-zero after updating itself; the next call works
            log.debug("steamcmd self-update exited %s", cp.returncode)

    def authenticate_and_fetch(self, credentials: Credentials, target: SteamTarget) -> Path:
        """
        Log in and download/validate the app into target.install_dir.
        force_install_dir must precede +login or SteamCMD ignores it.
        """
        if not credentials.steam_username or not credentials.steam_password:
            raise ValueError("Steam username and password are required")

        script = self.ensure_steamcmd(target)
        self.self_update(target)

        install_dir = f"{target.install_dir}/"
        argv = self._as_user(
            target.run_as,
            [
                str(script),
                "+force_install_dir", install_dir,
                "+login", credentials.steam_username, credentials.steam_password,
                "+app_update", str(target.app_id), "validate",
                "+quit",
            ],
        )
        self._run(argv, cwd=str(target.steamcmd_dir), secrets=[credentials.steam_password])

        marker = target.install_dir / target.verify_file
        if not self.dry_run and not marker.exists():
            raise ExternalToolError(
                tool=self.tool,
                argv=["app_update", str(target.app_id)],
                returncode=0,
                stderr=f"{marker} missing after download; the account probably does not own the app",
                classification="auth_rejected",
            )
        return target.install_dir
