# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/qlinstall/cli/app.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional

import typer

from qlinstall.config.loader import load_answers, load_config
from qlinstall.deploy.executor import Executor
from qlinstall.deploy.planner import RollbackPlanner, RollbackReport
from qlinstall.deploy.registry import StepRegistry
from qlinstall.deploy.state import ExecutionState, StateStore
from qlinstall.errors import (
    ConfigError,
    PreconditionFailure,
    StepFailure,
    UserAborted,
)
from qlinstall.logging.log import init_logging
from qlinstall.observers.console import ConsoleObserver
from qlinstall.observers.dispatcher import EventBus
from qlinstall.observers.events import new_ctx
from qlinstall.observers.jsonfile import JsonFileObserver
from qlinstall.observers.logger import LoggerObserver
from qlinstall.prompt.gateway import PromptGateway
from qlinstall.provision.cleanup import build_cleanup_registry
from qlinstall.provision.context import ProvisionContext
from qlinstall.provision.install import build_install_registry, next_steps
from qlinstall.provision.supervisor import build_supervisor_registry

# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Quake Live dedicated server installer", no_args_is_help=True)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ABORTED = 2

SEQUENCES: Dict[str, Callable[[], StepRegistry]] = {
    "provision": build_install_registry,
    "supervisor": build_supervisor_registry,
    "cleanup": build_cleanup_registry,
}

ConfigOpt = typer.Option(None, "--config", "-c", help="YAML config file")
StateDirOpt = typer.Option(None, "--state-dir", help="Where state.log and run logs are kept")
AnswersOpt = typer.Option(None, "--answers", help="YAML file of scripted prompt answers")
DryRunOpt = typer.Option(False, "--dry-run", help="Log mutating commands instead of running them")
DebugOpt = typer.Option(False, "--debug", help="DEBUG output on the console")
YesOpt = typer.Option(False, "--yes", "-y", help="Skip the destructive confirmation")


@dataclass
class Session:
    ctx: ProvisionContext
    bus: EventBus
    run_id: str
    logger: logging.Logger
    log_path: Path

    def run_ctx(self, env: str) -> dict:
        return new_ctx(env=env, run_id=self.run_id)

    def store(self, sequence: str) -> StateStore:
        return StateStore(self.ctx.state_dir, sequence=sequence)


def open_session(
    *,
    env: str,
    config: Optional[Path],
    state_dir: Optional[Path],
    answers: Optional[Path],
    dry_run: bool,
    debug: bool,
) -> Session:
    try:
        cfg = load_config(config)
        scripted = load_answers(answers) if answers else None
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(EXIT_FAILED)

    state_dir = state_dir or cfg.paths.state_dir
    logger, run_id, log_path = init_logging(base_dir=state_dir / "logs", verbose=debug)

    bus = EventBus(
        observers=[
            ConsoleObserver(),
            LoggerObserver(logger),
            JsonFileObserver(state_dir / "logs" / f"{run_id}.jsonl"),
        ]
    )
    prompts = PromptGateway(max_attempts=cfg.prompt_attempts, answers=scripted)
    ctx = ProvisionContext.build(
        cfg,
        prompts,
        dry_run=dry_run,
        state_dir=state_dir,
        config_path=config.resolve() if config else None,
    )

    typer.echo("")
    typer.echo(f"  Command  : {env}{' (dry-run)' if dry_run else ''}")
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")
    typer.echo(f"  State    : {state_dir}")
    typer.echo("")
    return Session(ctx=ctx, bus=bus, run_id=run_id, logger=logger, log_path=log_path)


# ------------------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------------------

def _print_report(report: RollbackReport) -> None:
    typer.echo(f"[rollback] {report.summary()}")
    for warning in report.warnings:
        typer.secho(f"  warning: {warning}", fg=typer.colors.YELLOW)


def rollback_recorded(
    session: Session,
    sequences: List[str],
    states: Optional[Dict[str, ExecutionState]] = None,
) -> RollbackReport:
    """
    Reverse every recorded step, most recently run sequence first.

    states overrides what is loaded from disk; a dry run passes the
    in-memory state of the run it just made, since it never wrote one.
    """
    combined = RollbackReport()
    for sequence in sequences:
        store = session.store(sequence)
        state = (states or {}).get(sequence) or store.load()
        if not len(state):
            session.logger.info("[rollback] nothing recorded for %s", sequence)
            continue
        planner = RollbackPlanner(
            SEQUENCES[sequence](),
            session.ctx,
            store=store,
            bus=session.bus,
            run_ctx=session.run_ctx("rollback"),
        )
        report = planner.rollback(state)
        combined.rolled_back += report.rolled_back
        combined.warnings += report.warnings
    _print_report(combined)
    return combined


def _confirm_destructive(session: Session, prompt: str, key: str) -> bool:
    try:
        return session.ctx.prompts.confirm_destructive(prompt, key=key)
    except UserAborted:
        return False


def run_sequence(session: Session, sequence: str) -> int:
    """
    Run one registry to completion against its recorded state.

    Returns the exit code. On StepFailure the operator is offered a
    rollback of what this sequence recorded; a cancel that asks for
    cleanup rolls back without asking again.
    """
    registry = SEQUENCES[sequence]()
    store = session.store(sequence)
    state = store.load()
    executor = Executor(session.ctx, store=store, bus=session.bus, run_ctx=session.run_ctx(sequence))

    try:
        report = executor.run(registry, state)
    except PreconditionFailure as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        return EXIT_FAILED
    except StepFailure as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        typer.echo(f"See {session.log_path} for details. Re-running resumes after the last completed step.")
        if _confirm_destructive(session, "Roll back the steps completed so far?", "rollback_on_failure"):
            rollback_recorded(session, [sequence], {sequence: state})
        return EXIT_FAILED
    except UserAborted as e:
        typer.secho(f"Aborted: {e}", fg=typer.colors.YELLOW, err=True)
        if e.rollback:
            rollback_recorded(session, [sequence], {sequence: state})
        return EXIT_ABORTED

    session.logger.info("[%s] %s", sequence, executor.report.summary())
    typer.echo(f"[{sequence}] {report.summary()}")
    for note in session.ctx.notes:
        typer.echo(f"  note: {note}")
    return EXIT_OK


def _confirm_teardown(session: Session, what: str, yes: bool) -> bool:
    if yes:
        return True
    return _confirm_destructive(session, f"This will remove {what}. Are you absolutely sure?", "confirm_teardown")


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def run(
    config: Optional[Path] = ConfigOpt,
    state_dir: Optional[Path] = StateDirOpt,
    answers: Optional[Path] = AnswersOpt,
    dry_run: bool = DryRunOpt,
    debug: bool = DebugOpt,
):
    """Provision the host: packages, service user, Samba, Steam download, minqlx."""
    session = open_session(env="run", config=config, state_dir=state_dir, answers=answers, dry_run=dry_run, debug=debug)
    code = run_sequence(session, "provision")
    if code == EXIT_OK:
        typer.secho("Installation completed.", fg=typer.colors.GREEN)
        typer.echo("")
        typer.echo("Next steps:")
        for line in next_steps(session.ctx):
            typer.echo(f"  {line}")
    raise typer.Exit(code)


@app.command()
def supervisor(
    config: Optional[Path] = ConfigOpt,
    state_dir: Optional[Path] = StateDirOpt,
    answers: Optional[Path] = AnswersOpt,
    dry_run: bool = DryRunOpt,
    debug: bool = DebugOpt,
):
    """Run the server under supervisord and optionally schedule a daily reboot."""
    session = open_session(env="supervisor", config=config, state_dir=state_dir, answers=answers, dry_run=dry_run, debug=debug)
    raise typer.Exit(run_sequence(session, "supervisor"))


@app.command()
def rollback(
    config: Optional[Path] = ConfigOpt,
    state_dir: Optional[Path] = StateDirOpt,
    answers: Optional[Path] = AnswersOpt,
    dry_run: bool = DryRunOpt,
    debug: bool = DebugOpt,
    yes: bool = YesOpt,
):
    """Reverse the recorded steps, most recent first."""
    session = open_session(env="rollback", config=config, state_dir=state_dir, answers=answers, dry_run=dry_run, debug=debug)
    if not _confirm_teardown(session, "everything qlinstall recorded as installed", yes):
        typer.echo("Rollback cancelled. Nothing was changed.")
        raise typer.Exit(EXIT_ABORTED)
    rollback_recorded(session, ["supervisor", "provision"])
    raise typer.Exit(EXIT_OK)


@app.command()
def cleanup(
    config: Optional[Path] = ConfigOpt,
    state_dir: Optional[Path] = StateDirOpt,
    answers: Optional[Path] = AnswersOpt,
    dry_run: bool = DryRunOpt,
    debug: bool = DebugOpt,
    yes: bool = YesOpt,
):
    """Full uninstall: rollback, then remove anything left by earlier installs."""
    session = open_session(env="cleanup", config=config, state_dir=state_dir, answers=answers, dry_run=dry_run, debug=debug)
    user = session.ctx.config.service_user.name
    if not _confirm_teardown(session, f"the '{user}' user, all server files, Samba shares and Supervisor config", yes):
        typer.echo("Cleanup cancelled. Nothing was changed.")
        raise typer.Exit(EXIT_ABORTED)
    rollback_recorded(session, ["supervisor", "provision"])
    code = run_sequence(session, "cleanup")
    if code == EXIT_OK:
        typer.secho("Cleanup completed. The system is ready for a fresh installation.", fg=typer.colors.GREEN)
    raise typer.Exit(code)


@app.command()
def status(
    config: Optional[Path] = ConfigOpt,
    state_dir: Optional[Path] = StateDirOpt,
    sequence: str = typer.Option("provision", "--sequence", help="provision | supervisor | cleanup"),
):
    """Show completed and remaining steps."""
    if sequence not in SEQUENCES:
        raise typer.BadParameter(f"unknown sequence {sequence!r}; valid: {', '.join(SEQUENCES)}")
    try:
        cfg = load_config(config)
    except ConfigError as e:
        typer.echo(f"Configuration error: {e}", err=True)
        raise typer.Exit(EXIT_FAILED)

    registry = SEQUENCES[sequence]()
    state = StateStore(state_dir or cfg.paths.state_dir, sequence=sequence).load()
    typer.echo(f"{sequence}: {len(state)}/{len(registry)} steps completed")
    for step in registry.ordered():
        mark = "x" if step.name in state else " "
        typer.echo(f"  [{mark}] {step.name}")
    unknown = [n for n in state if n not in registry]
    for name in unknown:
        typer.secho(f"  [?] {name} (not in this version's step list)", fg=typer.colors.YELLOW)


@app.command()
def steps(
    sequence: str = typer.Argument("provision", help="provision | supervisor | cleanup"),
):
    """List a sequence's steps with idempotency and reversibility."""
    if sequence not in SEQUENCES:
        raise typer.BadParameter(f"unknown sequence {sequence!r}; valid: {', '.join(SEQUENCES)}")
    for step in SEQUENCES[sequence]().ordered():
        flags = []
        if step.idempotent:
            flags.append("idempotent")
        if step.reversible:
            flags.append("reversible")
        if step.alternatives:
            flags.append("alternatives=" + "|".join(a.name for a in step.alternatives))
        typer.echo(f"{step.name:<30} {', '.join(flags)}")
        if step.description:
            typer.echo(f"    {step.description}")


def main():
    app()


if __name__ == "__main__":
    main()
