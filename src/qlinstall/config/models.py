# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/config/models.py

from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ServiceUserConfig(BaseModel):
    """The unprivileged account that owns and runs the server."""
    name: str = "qlserver"
    shell: str = "/bin/bash"
    groups: List[str] = Field(default_factory=lambda: ["sudo"])
    passwordless_sudo: bool = True
    # normally prompted for; may be supplied through secrets.yaml
    password: Optional[str] = Field(default=None, repr=False)


class ShareSpec(BaseModel):
    name: str
    comment: str = ""
    path: Optional[str] = None
    browseable: bool = True
    read_only: bool = False
    writeable: bool = True
    create_mask: str = "0755"
    directory_mask: str = "0755"

    def options(self) -> Dict[str, str]:
        def yn(v: bool) -> str:
            return "yes" if v else "no"

        opts: Dict[str, str] = {"comment": self.comment}
        if self.path:
            opts["path"] = self.path
        opts.update(
            {
                "browseable": yn(self.browseable),
                "read only": yn(self.read_only),
                "writeable": yn(self.writeable),
                "create mask": self.create_mask,
                "directory mask": self.directory_mask,
            }
        )
        return opts


def _default_shares() -> List[ShareSpec]:
    return [
        ShareSpec(name="homes", comment="Home Directories"),
        ShareSpec(name="www", comment="WWW Directory", path="/var/www"),
    ]


class SambaConfig(BaseModel):
    conf_path: Path = Path("/etc/samba/smb.conf")
    service: str = "smbd"
    shares: List[ShareSpec] = Field(default_factory=_default_shares)


class SteamConfig(BaseModel):
    app_id: int = 349090
    steamcmd_url: str = "https://steamcdn-a.akamaihd.net/client/installer/steamcmd_linux.tar.gz"
    max_auth_attempts: int = 3
    # anonymous login no longer works for this app; an owning account is required
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)


class ZeroMQConfig(BaseModel):
    url_template: str = (
        "https://github.com/zeromq/libzmq/releases/download/v{version}/zeromq-{version}.tar.gz"
    )
    build_dir: Path = Path("/tmp")


class MinqlxConfig(BaseModel):
    repo: str = "https://github.com/MinoMino/minqlx.git"
    plugins_repo: str = "https://github.com/MinoMino/minqlx-plugins.git"
    fallback_packages: List[str] = Field(default_factory=lambda: ["python3-redis", "python3-requests"])


class SupervisorConfig(BaseModel):
    program: str = "quakelive"
    process_name: str = "qzeroded"
    launcher: str = "run_server_x64_minqlx.sh"
    conf_dir: Path = Path("/etc/supervisor/conf.d")
    stdout_log: Path = Path("/var/log/quake.out.log")
    stderr_log: Path = Path("/var/log/quake.err.log")
    autostart: bool = True
    autorestart: bool = True


class CronConfig(BaseModel):
    recommended: str = "06:40"
    # "HH:MM" to skip the question, "off" to never schedule
    daily_reboot: Optional[str] = None
    command: str = "/sbin/shutdown -r now"

    @field_validator("recommended")
    @classmethod
    def _hhmm(cls, v: str) -> str:
        from ..adapters.cron import parse_hhmm

        parse_hhmm(v)
        return v


class TimezoneConfig(BaseModel):
    recommended: str = "Europe/Bucharest"
    # when set, applied without asking
    timezone: Optional[str] = None


class PathsConfig(BaseModel):
    state_dir: Path = Path("/var/lib/qlinstall")
    scripts_dir: Path = Path("/root")
    os_release: Path = Path("/etc/os-release")
    root_authorized_keys: Path = Path("/root/.ssh/authorized_keys")
    sudoers: Path = Path("/etc/sudoers")
    sudoers_dir: Path = Path("/etc/sudoers.d")
    home_root: Path = Path("/home")
    # left behind by earlier shell-based installs; removed by cleanup
    legacy_install_log: Path = Path("/var/log/quake_live_install.log")
    legacy_venv: Path = Path("/opt/qlserver-venv")


class InstallerConfig(BaseModel):
    service_user: ServiceUserConfig = Field(default_factory=ServiceUserConfig)
    samba: SambaConfig = Field(default_factory=SambaConfig)
    steam: SteamConfig = Field(default_factory=SteamConfig)
    zeromq: ZeroMQConfig = Field(default_factory=ZeroMQConfig)
    minqlx: MinqlxConfig = Field(default_factory=MinqlxConfig)
    supervisor: SupervisorConfig = Field(default_factory=SupervisorConfig)
    cron: CronConfig = Field(default_factory=CronConfig)
    timezone: TimezoneConfig = Field(default_factory=TimezoneConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    optional_packages: List[str] = Field(default_factory=lambda: ["screen"])
    prompt_attempts: int = 3

    # Helper properties
    @property
    def home(self) -> Path:
        return self.paths.home_root / self.service_user.name

    @property
    def steamcmd_dir(self) -> Path:
        return self.home / "steamcmd"

    @property
    def server_dir(self) -> Path:
        """Where SteamCMD installs the dedicated server and minqlx is copied."""
        return self.steamcmd_dir / "steamapps" / "common" / "qlds"


class PackageProfile(BaseModel):
    """Per-release operational facts, loaded from data/packages.yml."""
    version: str
    packages: List[str]
    zeromq_version: str
    cxx: Optional[str] = None
    strip_werror: bool = False
    pip_break_system_packages: bool = False
    legacy_samba_init: bool = False
