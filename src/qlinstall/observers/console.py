# src/qlinstall/observers/console.py
import typer

from .events import BaseEvent, StepFailed, StepSucceeded, StepSkipped, RollbackResult

_COLORS = {
    StepSucceeded: typer.colors.GREEN,
    StepSkipped: typer.colors.BLUE,
    StepFailed: typer.colors.RED,
}


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        color = _COLORS.get(type(event))
        if isinstance(event, RollbackResult):
            color = typer.colors.GREEN if event.status == "ROLLED_BACK" else typer.colors.YELLOW
        data = ", ".join(f"{x}={y}" for x, y in d.items() if x not in ("ts", "run_id", "env", "host"))
        typer.secho(f"[{d['ts']}] {k} {data}", fg=color)
