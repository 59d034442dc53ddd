# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/provision/context.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..adapters.build import SourceBuilder
from ..adapters.cron import CronAdapter
from ..adapters.host import HostFacts, OsRelease
from ..adapters.packages import AptPackageManager, PipInstaller
from ..adapters.samba import SambaShareConfigurator
from ..adapters.steam import SteamCmdClient
from ..adapters.supervisor import SupervisorAdapter
from ..adapters.users import UserAccounts
from ..config.loader import load_profiles, resolve_profile, version_key
from ..config.models import InstallerConfig, PackageProfile
from ..errors import UserAborted
from ..prompt.credentials import Credentials
from ..prompt.gateway import PromptGateway, PromptKind
from ..utils.execution import CommandRunner, ExecutionContext

log = logging.getLogger("qlinstall")


@dataclass
class Adapters:
    apt: AptPackageManager
    pip: PipInstaller
    users: UserAccounts
    samba: SambaShareConfigurator
    steam: SteamCmdClient
    supervisor: SupervisorAdapter
    host: HostFacts
    cron: CronAdapter
    build: SourceBuilder

    @classmethod
    def for_config(cls, cfg: InstallerConfig, exec_ctx: ExecutionContext) -> "Adapters":
        def runner(label: str) -> CommandRunner:
            return CommandRunner(ctx=exec_ctx, label=label)

        return cls(
            apt=AptPackageManager(runner("apt")),
            pip=PipInstaller(runner("pip")),
            users=UserAccounts(runner("users"), sudoers=cfg.paths.sudoers, sudoers_dir=cfg.paths.sudoers_dir),
            samba=SambaShareConfigurator(runner("samba"), conf_path=cfg.samba.conf_path, service=cfg.samba.service),
            steam=SteamCmdClient(runner("steamcmd")),
            supervisor=SupervisorAdapter(runner("supervisor"), conf_dir=cfg.supervisor.conf_dir),
            host=HostFacts(runner("host")),
            cron=CronAdapter(runner("cron")),
            build=SourceBuilder(runner("build")),
        )


@dataclass
class ProvisionContext:
    """
    Everything a step may read or write, passed explicitly to every apply,
    reverse and condition callable.

    Facts that are not persisted (detected OS, credentials) are derived on
    first use, so a resumed run that skips the step which originally
    gathered them still gets them.
    """

    config: InstallerConfig
    prompts: PromptGateway
    adapters: Adapters
    exec_ctx: ExecutionContext = field(default_factory=ExecutionContext)
    credentials: Credentials = field(default_factory=Credentials)
    state_dir: Path = Path("/var/lib/qlinstall")
    config_path: Optional[Path] = None
    profiles: Optional[Dict[str, PackageProfile]] = None
    os_release: Optional[OsRelease] = None
    profile: Optional[PackageProfile] = None
    notes: List[str] = field(default_factory=list)

    @classmethod
    def build(
        cls,
        config: InstallerConfig,
        prompts: PromptGateway,
        *,
        dry_run: bool = False,
        state_dir: Optional[Path] = None,
        config_path: Optional[Path] = None,
    ) -> "ProvisionContext":
        exec_ctx = ExecutionContext(dry_run=dry_run)
        return cls(
            config=config,
            prompts=prompts,
            adapters=Adapters.for_config(config, exec_ctx),
            exec_ctx=exec_ctx,
            state_dir=state_dir or config.paths.state_dir,
            config_path=config_path,
        )

    @property
    def dry_run(self) -> bool:
        return self.exec_ctx.dry_run

    def note(self, message: str) -> None:
        log.info(message)
        self.notes.append(message)

    # ------------------------- derived facts -------------------------

    def require_os(self) -> OsRelease:
        if self.os_release is None:
            self.os_release = self.adapters.host.read_os_release(self.config.paths.os_release)
            log.info("Detected %s (VERSION_ID=%s)", self.os_release.pretty_name or self.os_release.id, self.os_release.version_id)
        return self.os_release

    def require_profile(self) -> PackageProfile:
        if self.profile is not None:
            return self.profile
        release = self.require_os()
        if not release.is_ubuntu:
            log.warning("%s is not Ubuntu; package names may not match", release.id or "unknown OS")
        profile, exact = resolve_profile(release.version_id, self.profiles or load_profiles())
        if not exact:
            newer = version_key(release.version_id) > version_key(profile.version)
            self.prompts.say(
                f"Ubuntu {release.version_id} is {'newer' if newer else 'older'} than the tested versions."
            )
            if not self.prompts.confirm(
                f"Attempt installation using Ubuntu {profile.version} steps?", key="use_fallback_profile"
            ):
                raise UserAborted(f"no package profile accepted for {release.version_id}")
        self.profile = profile
        return profile

    def require_service_password(self) -> str:
        creds = self.credentials
        if creds.service_password is None:
            creds.service_password = self.config.service_user.password or self.prompts.ask(
                f"Enter password for '{self.config.service_user.name}' user:",
                PromptKind.SECRET,
                key="service_password",
            )
        return creds.service_password
