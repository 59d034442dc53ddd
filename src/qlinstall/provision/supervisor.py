# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/provision/supervisor.py
"""
Steps behind `qlinstall supervisor` (and the install-supervisor.sh launcher):
run the server under supervisord, optionally schedule a daily reboot.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from ..adapters.cron import parse_hhmm
from ..adapters.supervisor import ServiceSpec
from ..deploy.registry import StepRegistry
from ..deploy.steps import Condition, ProvisioningStep
from .context import ProvisionContext

log = logging.getLogger("qlinstall")


def service_spec(ctx: ProvisionContext) -> ServiceSpec:
    sup = ctx.config.supervisor
    return ServiceSpec(
        name=sup.program,
        command=str(ctx.config.server_dir / sup.launcher),
        user=ctx.config.service_user.name,
        process_name=sup.process_name,
        stdout_log=str(sup.stdout_log),
        stderr_log=str(sup.stderr_log),
        autostart=sup.autostart,
        autorestart=sup.autorestart,
    )


def install_supervisor(ctx: ProvisionContext) -> None:
    log.info("Installing Supervisor...")
    ctx.adapters.apt.update()
    ctx.adapters.apt.ensure_installed("supervisor")


def register_program(ctx: ProvisionContext) -> None:
    sup = ctx.adapters.supervisor
    path = sup.register_service(service_spec(ctx))
    log.info("Supervisor configuration created at %s", path)
    sup.restart_daemon()
    sup.reload()
    log.info("Your Quake Live server will now start automatically on boot.")


def deregister_program(ctx: ProvisionContext) -> None:
    sup = ctx.adapters.supervisor
    name = ctx.config.supervisor.program
    sup.stop_program(name)
    if sup.deregister_service(name):
        log.info("Supervisor configuration for %s removed.", name)


def _ask_reboot_time(ctx: ProvisionContext) -> Optional[Tuple[int, int]]:
    prompts = ctx.prompts
    recommended = ctx.config.cron.recommended
    prompts.say("Daily server reboots help maintain server stability and apply updates.")
    if prompts.confirm(f"Use recommended time ({recommended})?", key="use_recommended_reboot"):
        return parse_hhmm(recommended)

    while True:
        prompts.say("Format: HH MM (24-hour), e.g. 03 30 for 3:30 AM or 14 15 for 2:15 PM")
        value = prompts.ask("Enter reboot time:", key="reboot_time")
        try:
            return parse_hhmm(value)
        except ValueError:
            log.error("Invalid time format: %s", value)
        if not prompts.confirm("Try again? ('n' skips crontab setup)", key="retry_reboot_time"):
            return None


def schedule_daily_reboot(ctx: ProvisionContext) -> None:
    cron_cfg = ctx.config.cron
    if cron_cfg.daily_reboot == "off":
        log.info("Daily reboot disabled in configuration.")
        return

    if cron_cfg.daily_reboot:
        when: Optional[Tuple[int, int]] = parse_hhmm(cron_cfg.daily_reboot)
    elif ctx.prompts.confirm("Do you want to set up a daily automatic reboot?", key="setup_daily_reboot"):
        when = _ask_reboot_time(ctx)
    else:
        when = None

    if when is None:
        hour, minute = parse_hhmm(cron_cfg.recommended)
        ctx.note(f"Daily reboot not configured. Add later with 'sudo crontab -e': {minute} {hour} * * * {cron_cfg.command}")
        return

    hour, minute = when
    entry = ctx.adapters.cron.set_daily_reboot(hour, minute, cron_cfg.command)
    log.info("Daily automatic reboot configured at %02d:%02d (%s)", hour, minute, entry)


def clear_daily_reboot(ctx: ProvisionContext) -> None:
    if ctx.adapters.cron.clear_daily_reboot():
        log.info("Daily reboot cron job removed.")


def offer_reboot(ctx: ProvisionContext) -> None:
    if ctx.prompts.confirm(
        "System restart is recommended to ensure everything starts correctly. Reboot now?",
        key="reboot_now",
        default=False,
    ):
        log.warning("Rebooting system in one minute ('shutdown -c' cancels).")
        ctx.adapters.host.reboot()
    else:
        ctx.note("Remember to reboot later so the server starts under Supervisor.")


def build_supervisor_registry() -> StepRegistry:
    reg = StepRegistry("supervisor")
    is_root = Condition("running as root", lambda ctx: ctx.adapters.host.is_root())
    server_present = Condition(
        "game server installed (run 'qlinstall run' first)",
        lambda ctx: ctx.dry_run or (ctx.config.server_dir / ctx.config.supervisor.launcher).exists(),
    )

    reg.register(ProvisioningStep(
        name="install-supervisor",
        apply=install_supervisor,
        preconditions=(is_root,),
        description="apt install supervisor",
    ))
    reg.register(ProvisioningStep(
        name="register-program",
        apply=register_program,
        reverse=deregister_program,
        requires=("install-supervisor",),
        preconditions=(server_present,),
        description="write the program config and reload supervisord",
    ))
    reg.register(ProvisioningStep(
        name="schedule-daily-reboot",
        apply=schedule_daily_reboot,
        reverse=clear_daily_reboot,
        description="optional daily reboot via root's crontab",
    ))
    reg.register(ProvisioningStep(
        name="offer-reboot",
        apply=offer_reboot,
        idempotent=False,
    ))
    return reg
