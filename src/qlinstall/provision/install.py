# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/provision/install.py
"""
The Quake Live dedicated server provisioning sequence.

Each function below is the apply or reverse action of one step; the
registry at the bottom fixes their order. Reverse actions are all
"remove if present".
"""
from __future__ import annotations

import logging
from pathlib import Path

from ..adapters.steam import SteamTarget
from ..deploy.registry import StepRegistry
from ..deploy.steps import Alternative, Condition, ProvisioningStep, noop
from ..errors import ExternalToolError, PromptAbandoned, UserAborted
from ..prompt.gateway import PromptKind
from .artifacts import remove_helper, write_helper
from .context import ProvisionContext

log = logging.getLogger("qlinstall")

IS_ROOT = Condition("running as root (use sudo or log in as root)", lambda ctx: ctx.adapters.host.is_root())


# ---------------------------------------------------------------------
# Host checks and operator input
# ---------------------------------------------------------------------

def check_privileges(ctx: ProvisionContext) -> None:
    log.info("Running as root user.")


def detect_os(ctx: ProvisionContext) -> None:
    profile = ctx.require_profile()
    log.info("Using package profile for Ubuntu %s", profile.version)


def configure_timezone(ctx: ProvisionContext) -> None:
    """Optional and never fatal: a bad zone only produces a warning."""
    tz_cfg = ctx.config.timezone
    host, prompts = ctx.adapters.host, ctx.prompts

    if tz_cfg.timezone:
        try:
            host.set_timezone(tz_cfg.timezone)
            log.info("Timezone set to %s", tz_cfg.timezone)
        except ExternalToolError as e:
            log.warning("Could not set configured timezone %s (%s). Keeping the current one.",
                        tz_cfg.timezone, e.classification)
            ctx.note(f"Configured timezone {tz_cfg.timezone!r} was rejected; set it manually with timedatectl.")
        return

    current = host.current_timezone()
    prompts.say(f"Current system timezone is: {current or 'unknown'}")
    if not prompts.confirm("Do you want to change the timezone?", key="change_timezone"):
        log.info("Keeping current timezone: %s", current)
        return

    if prompts.confirm(
        f"This installer is tuned for '{tz_cfg.recommended}'. Set to {tz_cfg.recommended}?",
        key="use_recommended_timezone",
    ):
        try:
            host.set_timezone(tz_cfg.recommended)
            log.info("Timezone set to %s", tz_cfg.recommended)
        except ExternalToolError as e:
            log.warning("Failed to set timezone (%s). You can set it manually later.", e.classification)
        return

    prompts.say("Available timezones can be listed with: timedatectl list-timezones")
    for _ in range(ctx.config.prompt_attempts):
        tz = prompts.ask("Enter your desired timezone (e.g., America/New_York):", key="timezone")
        try:
            host.set_timezone(tz)
            log.info("Timezone set to %s", tz)
            return
        except ExternalToolError:
            log.error("Invalid timezone: %s", tz)
            if not prompts.confirm("Do you want to try again?", key="retry_timezone"):
                break
    log.warning("Skipping timezone configuration. You can set it later manually.")


def capture_service_password(ctx: ProvisionContext) -> None:
    ctx.require_service_password()
    log.info("Password captured. Will use for both %s and Samba.", ctx.config.service_user.name)


def collect_ssh_key(ctx: ProvisionContext) -> None:
    """Reuse root's key, or take a pasted one and install it for root too."""
    keys = ctx.config.paths.root_authorized_keys
    if keys.is_file() and keys.read_text().strip():
        ctx.credentials.ssh_public_key = keys.read_text().strip()
        log.info("Found existing SSH key in root account.")
        return

    log.warning("No SSH key found in root's authorized_keys file.")
    user = ctx.config.service_user.name
    if not ctx.prompts.confirm(f"Do you want to add an SSH key now for both root and {user}?", key="add_ssh_key"):
        log.info("Skipping SSH key setup. You can add keys manually later.")
        return

    key = ctx.prompts.ask("Paste your SSH public key and press Enter:", key="ssh_public_key", required=False)
    if not key:
        log.warning("No key provided. Skipping SSH key setup.")
        return
    ctx.adapters.users.install_authorized_key("root", key, home=keys.parent.parent)
    ctx.credentials.ssh_public_key = key
    log.info("SSH key added to root account.")


# ---------------------------------------------------------------------
# Packages and libraries
# ---------------------------------------------------------------------

def install_packages(ctx: ProvisionContext) -> None:
    profile = ctx.require_profile()
    apt = ctx.adapters.apt
    log.info("Installing packages for Ubuntu %s...", profile.version)
    apt.update()
    apt.ensure_installed(profile.packages)
    for name in ctx.config.optional_packages:
        # optional, non-critical: a miss is reported, never fatal
        if apt.install_optional(name):
            log.info("%s is installed.", name)
        else:
            ctx.note(f"Could not install {name}. It is optional and does not affect server operation.")


def _zmq_paths(ctx: ProvisionContext):
    version = ctx.require_profile().zeromq_version
    build_dir = ctx.config.zeromq.build_dir
    tarball = build_dir / f"zeromq-{version}.tar.gz"
    return version, tarball, build_dir / f"zeromq-{version}"


def build_zeromq(ctx: ProvisionContext) -> None:
    profile = ctx.require_profile()
    build = ctx.adapters.build
    version, tarball, src = _zmq_paths(ctx)
    url = ctx.config.zeromq.url_template.format(version=version)

    log.info("Downloading ZeroMQ %s...", version)
    build.download(url, tarball)
    build.extract(tarball, tarball.parent)
    if profile.strip_werror:
        build.strip_werror(src)
    env = {"CXX": profile.cxx} if profile.cxx else None
    build.autotools(src, ["--without-libsodium"], env=env)
    build.remove(tarball, src)


def cleanup_zeromq_build(ctx: ProvisionContext) -> None:
    _, tarball, src = _zmq_paths(ctx)
    ctx.adapters.build.remove(tarball, src)


def _apt_alternative(package: str):
    def action(ctx: ProvisionContext) -> None:
        ctx.adapters.apt.ensure_installed(package)
    return action


def pip_install_pyzmq(ctx: ProvisionContext) -> None:
    pip = ctx.adapters.pip
    bsp = ctx.require_profile().pip_break_system_packages and pip.supports_break_system_packages()
    ctx.adapters.apt.ensure_installed("python3-pip")
    pip.install(["pyzmq"], break_system_packages=bsp)


# ---------------------------------------------------------------------
# Service user, file sharing, SSH
# ---------------------------------------------------------------------

def create_service_user(ctx: ProvisionContext) -> None:
    su = ctx.config.service_user
    users = ctx.adapters.users
    log.info("Creating '%s' user...", su.name)
    users.create(su.name, ctx.require_service_password(), shell=su.shell, groups=su.groups)
    if su.passwordless_sudo:
        users.grant_sudo(su.name)
    log.info("User '%s' created successfully.", su.name)


def remove_service_user(ctx: ProvisionContext) -> None:
    name = ctx.config.service_user.name
    users = ctx.adapters.users
    users.revoke_sudo(name)
    if users.remove(name, home=ctx.config.home):
        log.info("User '%s' removed.", name)
    else:
        log.info("User '%s' not found. Skipping.", name)


def configure_samba(ctx: ProvisionContext) -> None:
    samba = ctx.adapters.samba
    legacy = ctx.require_profile().legacy_samba_init
    log.info("Configuring Samba...")
    samba.stop(legacy)
    for share in ctx.config.samba.shares:
        samba.add_share(share.path, share.options(), name=share.name)
    samba.set_password(ctx.config.service_user.name, ctx.require_service_password())
    if not samba.start(legacy):
        ctx.note(f"Samba was configured but {ctx.config.samba.service} did not start; check 'systemctl status smbd'.")


def unconfigure_samba(ctx: ProvisionContext) -> None:
    samba = ctx.adapters.samba
    removed = [s.name for s in ctx.config.samba.shares if samba.remove_share(s.name)]
    samba.remove_user(ctx.config.service_user.name)
    if removed:
        samba.restart()
        log.info("Removed Samba shares: %s (backup kept next to smb.conf)", ", ".join(removed))


def setup_user_ssh(ctx: ProvisionContext) -> None:
    name = ctx.config.service_user.name
    key = ctx.credentials.ssh_public_key or ""
    ctx.adapters.users.install_authorized_key(name, key, home=ctx.config.home)
    if key:
        log.info("SSH key copied to %s account.", name)
    else:
        ctx.note(f"Created empty authorized_keys for {name}; add keys there later.")


# ---------------------------------------------------------------------
# Steam download
# ---------------------------------------------------------------------

AUTH_OPTIONS = {
    "1": "Enter Steam password (visible on screen)",
    "2": "Enter Steam password (hidden with asterisks)",
    "3": "Cancel installation and cleanup",
}


def steam_target(ctx: ProvisionContext) -> SteamTarget:
    cfg = ctx.config
    return SteamTarget(
        app_id=cfg.steam.app_id,
        install_dir=cfg.server_dir,
        steamcmd_dir=cfg.steamcmd_dir,
        run_as=cfg.service_user.name,
        bootstrap_url=cfg.steam.steamcmd_url,
    )


def _explain_steam_failure(ctx: ProvisionContext, err: ExternalToolError) -> None:
    log.error("SteamCMD authentication or download failed (%s).", err.classification)
    prompts = ctx.prompts
    if err.classification == "network_unreachable":
        prompts.say("  - Network connection issues reaching Steam")
        return
    prompts.say("Common reasons:")
    prompts.say("  - Incorrect username or password")
    prompts.say("  - You don't own Quake Live on this Steam account")
    prompts.say("  - Steam Guard approval was not completed (if using Mobile Auth)")
    prompts.say("  - Network connection issues")


def fetch_server(ctx: ProvisionContext) -> None:
    """
    Authenticate against Steam and download the dedicated server.

    The one step that re-prompts on failure, bounded by
    steam.max_auth_attempts. Choosing cancel (and confirming with 'yes')
    raises UserAborted with rollback requested.
    """
    steam_cfg = ctx.config.steam
    creds, prompts = ctx.credentials, ctx.prompts
    target = steam_target(ctx)
    last_error = None

    if steam_cfg.username and steam_cfg.password:
        creds.steam_username, creds.steam_password = steam_cfg.username, steam_cfg.password
        try:
            ctx.adapters.steam.authenticate_and_fetch(creds, target)
            log.info("Quake Live Dedicated Server installed successfully!")
            return
        except ExternalToolError as e:
            _explain_steam_failure(ctx, e)
            creds.clear_steam()
            last_error = e
        finally:
            creds.steam_password = None

    for attempt in range(1, steam_cfg.max_auth_attempts + 1):
        log.warning("You must own Quake Live on your Steam account to download the server files.")
        option = prompts.choose("Choose option", AUTH_OPTIONS, key="steam_auth_option")
        if option == "3":
            if prompts.confirm_destructive(
                "This will remove all files installed so far and exit the installer. Are you sure?",
                key="confirm_abort",
            ):
                raise UserAborted("installation cancelled at Steam login", rollback=True)
            log.info("Continuing with installation...")
            continue

        creds.steam_username = prompts.ask("Enter your Steam username:", key="steam_username")
        kind = PromptKind.TEXT if option == "1" else PromptKind.SECRET
        creds.steam_password = prompts.ask("Enter your Steam password:", kind, key="steam_password")

        log.info("Authenticating with Steam (attempt %d/%d)...", attempt, steam_cfg.max_auth_attempts)
        log.info("If you have Steam Guard Mobile Auth, approve the login on your phone.")
        try:
            ctx.adapters.steam.authenticate_and_fetch(creds, target)
            log.info("Quake Live Dedicated Server installed successfully!")
            return
        except ExternalToolError as e:
            _explain_steam_failure(ctx, e)
            last_error = e
        finally:
            # the password is only needed for the one SteamCMD call
            creds.steam_password = None

        if attempt < steam_cfg.max_auth_attempts and not prompts.confirm(
            "Do you want to try again with different credentials?", key="steam_retry"
        ):
            if prompts.confirm_destructive("Are you sure you want to cancel?", key="confirm_cancel"):
                raise UserAborted("installation cancelled after failed Steam login", rollback=True)
            log.info("Returning to authentication options...")

    if last_error is not None:
        raise last_error
    raise PromptAbandoned("Steam authentication", steam_cfg.max_auth_attempts)


def remove_server_files(ctx: ProvisionContext) -> None:
    ctx.adapters.build.remove(ctx.config.steamcmd_dir)


# ---------------------------------------------------------------------
# minqlx
# ---------------------------------------------------------------------

def _minqlx_dirs(ctx: ProvisionContext):
    server = ctx.config.server_dir
    return server / "minqlx", server / "minqlx-plugins"


def install_minqlx(ctx: ProvisionContext) -> None:
    build = ctx.adapters.build
    src, plugins = _minqlx_dirs(ctx)
    log.info("Installing minqlx...")
    build.clone(ctx.config.minqlx.repo, src)
    build.make(src)
    build.copy_tree(src / "bin", ctx.config.server_dir)
    build.clone(ctx.config.minqlx.plugins_repo, plugins)


def remove_minqlx(ctx: ProvisionContext) -> None:
    ctx.adapters.build.remove(*_minqlx_dirs(ctx))


def _plugin_requirements(ctx: ProvisionContext) -> str:
    return str(_minqlx_dirs(ctx)[1] / "requirements.txt")


def pip_plugin_requirements(ctx: ProvisionContext) -> None:
    pip = ctx.adapters.pip
    ctx.adapters.apt.ensure_installed("python3-pip")
    bsp = ctx.require_profile().pip_break_system_packages and pip.supports_break_system_packages()
    pip.install(requirements=_plugin_requirements(ctx), break_system_packages=bsp)


def apt_plugin_requirements(ctx: ProvisionContext) -> None:
    ctx.adapters.apt.ensure_installed(ctx.config.minqlx.fallback_packages)


def fix_ownership(ctx: ProvisionContext) -> None:
    user = ctx.config.service_user.name
    ctx.adapters.build.chown_tree(ctx.config.steamcmd_dir, user)


# ---------------------------------------------------------------------
# Generated helpers
# ---------------------------------------------------------------------

def write_cleanup_helper(ctx: ProvisionContext) -> None:
    path = write_helper(ctx, "cleanup")
    log.info("Cleanup script created at: %s", path)


def write_supervisor_helper(ctx: ProvisionContext) -> None:
    path = write_helper(ctx, "supervisor")
    log.info("Supervisor installation script created at: %s", path)


def remove_supervisor_helper(ctx: ProvisionContext) -> None:
    remove_helper(ctx, "supervisor")


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

def build_install_registry() -> StepRegistry:
    reg = StepRegistry("provision")

    reg.register(ProvisioningStep(
        name="check-privileges",
        apply=check_privileges,
        idempotent=False,
        preconditions=(IS_ROOT,),
        description="verify the installer runs as root",
    ))
    reg.register(ProvisioningStep(
        name="detect-os",
        apply=detect_os,
        description="read /etc/os-release and pick the package profile",
    ))
    reg.register(ProvisioningStep(
        name="configure-timezone",
        apply=configure_timezone,
        description="optionally change the system timezone",
    ))
    reg.register(ProvisioningStep(
        name="capture-service-password",
        apply=capture_service_password,
        description="ask once for the service user / Samba password",
    ))
    reg.register(ProvisioningStep(
        name="collect-ssh-key",
        apply=collect_ssh_key,
        description="reuse or add root's SSH public key",
    ))
    reg.register(ProvisioningStep(
        name="write-cleanup-helper",
        apply=write_cleanup_helper,
        description="write the cleanup launcher before anything can fail",
    ))
    reg.register(ProvisioningStep(
        name="install-packages",
        apply=install_packages,
        requires=("detect-os",),
        description="install the release's system packages",
    ))
    reg.register(ProvisioningStep(
        name="install-zeromq",
        requires=("install-packages",),
        alternatives=(
            Alternative("build-from-source", build_zeromq, cleanup=cleanup_zeromq_build),
            Alternative("apt-libzmq3-dev", _apt_alternative("libzmq3-dev")),
            Alternative("apt-libzmq5-dev", _apt_alternative("libzmq5-dev")),
        ),
        description="build libzmq, or fall back to the distro package",
    ))
    reg.register(ProvisioningStep(
        name="install-pyzmq",
        requires=("install-zeromq",),
        alternatives=(
            Alternative("pip", pip_install_pyzmq),
            Alternative("apt-python3-zmq", _apt_alternative("python3-zmq")),
        ),
        description="python bindings for ZeroMQ",
    ))
    reg.register(ProvisioningStep(
        name="create-service-user",
        apply=create_service_user,
        reverse=remove_service_user,
        preconditions=(IS_ROOT,),
        description="create the service account with sudo rights",
    ))
    reg.register(ProvisioningStep(
        name="configure-samba",
        apply=configure_samba,
        reverse=unconfigure_samba,
        requires=("create-service-user", "install-packages"),
        description="share home and www directories over SMB",
    ))
    reg.register(ProvisioningStep(
        name="setup-user-ssh",
        apply=setup_user_ssh,
        requires=("create-service-user",),
        description="authorized_keys for the service user",
    ))
    reg.register(ProvisioningStep(
        name="fetch-server",
        apply=fetch_server,
        reverse=remove_server_files,
        requires=("create-service-user",),
        postconditions=(
            Condition(
                "server launcher present",
                lambda ctx: ctx.dry_run or (ctx.config.server_dir / "run_server_x64.sh").exists(),
            ),
        ),
        description="SteamCMD login and dedicated server download",
    ))
    reg.register(ProvisioningStep(
        name="install-minqlx",
        apply=install_minqlx,
        reverse=remove_minqlx,
        requires=("fetch-server",),
        description="build minqlx and fetch its plugins",
    ))
    reg.register(ProvisioningStep(
        name="install-plugin-requirements",
        requires=("install-minqlx",),
        alternatives=(
            Alternative("pip", pip_plugin_requirements),
            Alternative("apt", apt_plugin_requirements),
        ),
        description="python packages the plugins need",
    ))
    reg.register(ProvisioningStep(
        name="fix-ownership",
        apply=fix_ownership,
        idempotent=False,
        requires=("install-minqlx",),
        description="hand the server tree to the service user",
    ))
    reg.register(ProvisioningStep(
        name="write-supervisor-helper",
        apply=write_supervisor_helper,
        reverse=remove_supervisor_helper,
        description="write the supervisor launcher",
    ))
    return reg


def next_steps(ctx: ProvisionContext) -> list[str]:
    """Operator checklist printed after a successful run."""
    server: Path = ctx.config.server_dir
    user = ctx.config.service_user.name
    scripts = ctx.config.paths.scripts_dir
    return [
        "Upload your server configuration files using WinSCP/SFTP:",
        f"  {server / 'baseq3'}/  (server.cfg, access.txt, mappool.txt, workshop.txt)",
        "Upload your minqlx plugins:",
        f"  {server / 'minqlx-plugins'}/",
        "Test your server manually:",
        f"  su - {user}; cd {server}; ./{ctx.config.supervisor.launcher}",
        "After successful testing, install Supervisor (as root):",
        f"  {scripts / 'install-supervisor.sh'}",
        "Use this if you need to start over:",
        f"  {scripts / 'cleanup-quake-install.sh'}",
        "Configure your firewall separately (UDP/TCP 27960).",
    ]
