# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/provision/cleanup.py
"""
Full uninstall behind `qlinstall cleanup` (and cleanup-quake-install.sh).

Unlike rollback, these steps do not depend on recorded state: every one
removes its target if present, so the sequence also cleans hosts set up by
an interrupted run or by the old shell installer.
"""
from __future__ import annotations

import logging

from ..deploy.registry import StepRegistry
from ..deploy.steps import Condition, ProvisioningStep
from .context import ProvisionContext
from .install import remove_service_user
from .supervisor import clear_daily_reboot, deregister_program

log = logging.getLogger("qlinstall")

KEPT = (
    "System packages (apache2, python3, redis, samba, etc.)",
    "ZeroMQ library (may be used by other applications; see 'ldconfig -p | grep zmq')",
    "Installation scripts and qlinstall's own logs",
)


def stop_server(ctx: ProvisionContext) -> None:
    name = ctx.config.supervisor.program
    if ctx.adapters.supervisor.stop_program(name):
        log.info("Server stopped.")
    else:
        log.info("Supervisor not available or %s not running.", name)


def remove_samba_user(ctx: ProvisionContext) -> None:
    name = ctx.config.service_user.name
    if ctx.adapters.samba.remove_user(name):
        log.info("Samba user '%s' removed.", name)


def revoke_sudo(ctx: ProvisionContext) -> None:
    if ctx.adapters.users.revoke_sudo(ctx.config.service_user.name):
        log.info("Sudoers entry removed.")
    else:
        log.info("No sudoers entry found. Skipping.")


def remove_samba_shares(ctx: ProvisionContext) -> None:
    samba = ctx.adapters.samba
    removed = [s.name for s in ctx.config.samba.shares if samba.remove_share(s.name)]
    if not removed:
        log.info("No qlinstall-managed Samba shares found. Skipping.")
        return
    samba.restart()
    log.info("Samba shares removed: %s (backup created)", ", ".join(removed))


def remove_legacy_venv(ctx: ProvisionContext) -> None:
    venv = ctx.config.paths.legacy_venv
    if venv.exists():
        ctx.adapters.build.remove(venv)
        log.info("Python virtual environment %s removed.", venv)


def remove_logs(ctx: ProvisionContext) -> None:
    paths = ctx.config.paths
    sup = ctx.config.supervisor
    present = [p for p in (paths.legacy_install_log, sup.stderr_log, sup.stdout_log) if p.exists()]
    if present:
        ctx.adapters.build.remove(*present)
        log.info("Removed logs: %s", ", ".join(str(p) for p in present))


def report_kept(ctx: ProvisionContext) -> None:
    ctx.prompts.say("What was NOT removed:")
    for item in KEPT:
        ctx.prompts.say(f"  - {item}")
    ctx.prompts.say("To remove unused system packages, run: apt-get autoremove")


def build_cleanup_registry() -> StepRegistry:
    reg = StepRegistry("cleanup")
    is_root = Condition("running as root", lambda ctx: ctx.adapters.host.is_root())

    # nothing here is recorded as a reversible change; re-running is the retry
    for name, action in (
        ("stop-server", stop_server),
        ("remove-service-user", remove_service_user),
        ("remove-samba-user", remove_samba_user),
        ("revoke-sudo", revoke_sudo),
        ("remove-samba-shares", remove_samba_shares),
        ("clear-daily-reboot", clear_daily_reboot),
        ("remove-supervisor-program", deregister_program),
        ("remove-legacy-venv", remove_legacy_venv),
        ("remove-logs", remove_logs),
        ("report-kept", report_kept),
    ):
        reg.register(ProvisioningStep(name=name, apply=action, idempotent=False, preconditions=(is_root,)))
    return reg
