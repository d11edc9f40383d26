"""CLI entry point for napcoach."""

import json
from pathlib import Path

import typer
import uvicorn

from napcoach import __version__
from napcoach.core.config import settings
from napcoach.core.logging import configure_logging
from napcoach.core.timeutil import Clock, FixedClock
from napcoach.schemas.domain import BabyProfile, SleepSession
from napcoach.services.coach import CoachEngine
from napcoach.services.learner import PatternLearner
from napcoach.services.schedule import ScheduleGenerator, ScheduleOptions

app = typer.Typer(
    name="napcoach",
    help="Infant sleep-pattern learning, schedules and coaching",
    no_args_is_help=True,
)


@app.command()
def serve(
    host: str = typer.Option(None, help="Host to bind to (overrides config)"),
    port: int = typer.Option(None, help="Port to bind to (overrides config)"),
    reload: bool = typer.Option(False, help="Enable auto-reload for development"),
) -> None:
    """Start the API server.

    Example:
        napcoach serve
        napcoach serve --host 0.0.0.0 --port 8080 --reload
    """
    uvicorn.run(
        "napcoach.app:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def version() -> None:
    """Show version information."""
    typer.echo(f"napcoach v{__version__}")


def _load_sessions(path: Path) -> list[SleepSession]:
    """Read sessions from a JSON list; ``id`` and ``updated_at`` are optional."""
    raw = json.loads(path.read_text())
    if not isinstance(raw, list):
        raise ValueError("Sessions file must contain a JSON list")
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise ValueError(f"Session {i} must be a JSON object")
    return [
        SleepSession.model_validate({"id": f"session_{i}", "updated_at": item.get("end"), **item})
        for i, item in enumerate(raw)
    ]


@app.command()
def plan(
    sessions_file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, help="JSON list of sleep sessions"
    ),
    birth_date: str = typer.Option(..., "--birth-date", help="Date of birth (YYYY-MM-DD)"),
    name: str = typer.Option("Baby", help="Baby's name"),
    tz: str = typer.Option(None, "--tz", help="IANA timezone (overrides config)"),
    at: str = typer.Option(None, "--at", help="Reference time (ISO-8601), defaults to now"),
    what_if: int = typer.Option(
        None, "--what-if", help="Shift the wake window by N minutes (clamped to +/-30)"
    ),
) -> None:
    """Learn from a session file and print learner state, schedule and tips as JSON.

    Example:
        napcoach plan sessions.json --birth-date 2024-01-15 --tz Europe/London
    """
    configure_logging("WARNING")
    try:
        clock = FixedClock(at, tz) if at else Clock(tz)
        profile = BabyProfile(id="cli", name=name, birth_date=birth_date)
        sessions = _load_sessions(sessions_file)

        learner = PatternLearner(clock)
        state = learner.update(sessions, profile)
        generator = ScheduleGenerator(clock, learner)
        if what_if is not None:
            schedule = generator.what_if(sessions, state, profile, what_if)
        else:
            schedule = generator.generate(sessions, state, profile, ScheduleOptions())
        tips = CoachEngine(clock, learner).generate_tips(sessions, state, profile)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1) from e

    result = {
        "learner_state": state.model_dump(mode="json"),
        "schedule": schedule.model_dump(mode="json"),
        "tips": [t.model_dump(mode="json") for t in tips],
    }
    typer.echo(json.dumps(result, indent=2))


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
