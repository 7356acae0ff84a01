"""
Daily Brief CLI - Command line interface for running jobs.

Usage:
    dailybrief --help                   Show all commands
    dailybrief send                     Run the hourly dispatch now
    dailybrief send --dry-run           Assemble without sending
    dailybrief test-send EMAIL          Send one brief, ignoring the local hour
    dailybrief resend USER_ID           Re-send today's brief after a preference change
    dailybrief weather LAT LNG          Show the weather story for a location
    dailybrief scheduler                Run the hourly scheduler in the foreground
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import typer

app = typer.Typer(
    name="dailybrief",
    help="Daily Brief CLI - Job runner for the neighborhood Daily Brief",
    no_args_is_help=True,
)


# --- Step printer helpers ---


def _print_success(message: str) -> None:
    """Print a success message."""
    typer.echo(f"  ✅ {message}")


def _print_warning(message: str) -> None:
    """Print a warning message."""
    typer.echo(f"  ⚠️ {message}")


def _print_skipped(message: str) -> None:
    """Print a skipped step message."""
    typer.echo(f"  ⏭️ {message}")


def _print_error(message: str) -> None:
    """Print an error message to stderr."""
    typer.echo(f"❌ {message}", err=True)


def _print_summary(summary: dict[str, Any]) -> None:
    prefix = "[dry run] " if summary.get("dry_run") else ""
    if summary.get("skipped_reason"):
        _print_skipped(f"{prefix}Skipped: {summary['skipped_reason']}")
        return
    typer.echo(f"\n{prefix}Recipients found: {summary['recipients_found']}")
    _print_success(f"Sent: {summary['emails_sent']}")
    if summary["emails_failed"]:
        _print_warning(f"Failed: {summary['emails_failed']}")
    if summary["emails_skipped"]:
        _print_skipped(f"Deferred to next run: {summary['emails_skipped']}")
    for error in summary["errors"]:
        _print_error(error)


@asynccontextmanager
async def _pipeline() -> AsyncGenerator[Any, None]:
    """Pipeline bound to a fresh engine, session and HTTP client."""
    import httpx

    from dailybrief.config import get_config, get_settings
    from dailybrief.core.database import create_engine, create_session_factory
    from dailybrief.services.digest_pipeline import build_pipeline

    settings = get_settings()
    engine = create_engine(settings)
    try:
        async with httpx.AsyncClient(timeout=settings.forecast_timeout_seconds) as http_client:
            async with create_session_factory(engine)() as db:
                yield build_pipeline(db, settings, get_config(), http_client=http_client)
    finally:
        await engine.dispose()


@app.command()
def send(
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Assemble without sending"),
    hour: int | None = typer.Option(None, "--hour", help="Local target hour (default from config)"),
):
    """Run the hourly Daily Brief dispatch once."""
    from dailybrief.jobs.hourly import main

    summary = asyncio.run(main(target_hour=hour, dry_run=dry_run))
    _print_summary(summary)


@app.command("test-send")
def test_send(
    email: str = typer.Argument(..., help="Address of an existing account or subscriber"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Print a preview instead"),
):
    """Send the Daily Brief to one address, bypassing the timezone check."""
    from dailybrief.core.logging import setup_logging
    from dailybrief.services.digest_dispatch import send_test_brief

    setup_logging()

    async def run() -> dict[str, Any]:
        async with _pipeline() as pipeline:
            return await send_test_brief(pipeline, email, dry_run=dry_run)

    summary = asyncio.run(run())
    if preview := summary.get("preview"):
        typer.echo(f"\n📧 Preview for {preview['email']} ({preview['timezone']})")
        typer.echo(f"   Primary: {preview['primary_neighborhood']}")
        typer.echo(f"   Satellites: {preview['satellite_count']}")
        typer.echo(
            f"   Weather: {preview['has_weather']}  "
            f"Header ad: {preview['has_header_ad']}  Native ad: {preview['has_native_ad']}"
        )
        for headline in preview["stories"]:
            typer.echo(f"   - {headline}")
        return

    _print_summary(summary)
    if summary["emails_sent"] == 0:
        raise typer.Exit(1)


@app.command()
def resend(
    user_id: str = typer.Argument(..., help="Profile or subscriber id"),
    source: str = typer.Option("profile", "--source", "-s", help="profile or newsletter"),
    trigger: str = typer.Option(
        "neighborhood_change",
        "--trigger",
        "-t",
        help="city_change, neighborhood_change or topic_change",
    ),
):
    """Re-send today's brief with current preferences."""
    from dailybrief.core.logging import setup_logging
    from dailybrief.models.recipient import RecipientSource
    from dailybrief.models.send_log import ResendTrigger
    from dailybrief.services.instant_resend import perform_instant_resend

    setup_logging()

    try:
        recipient_source = RecipientSource(source)
        resend_trigger = ResendTrigger(trigger)
    except ValueError as e:
        _print_error(str(e))
        raise typer.Exit(1)

    async def run():
        async with _pipeline() as pipeline:
            result = await perform_instant_resend(
                pipeline, user_id, recipient_source, resend_trigger
            )
            await pipeline.db.commit()
            return result

    result = asyncio.run(run())
    if result.success:
        _print_success("Brief re-sent")
        return
    _print_warning(f"Not sent: {result.reason.value}")
    if result.error:
        _print_error(result.error)
    raise typer.Exit(1)


@app.command()
def weather(
    latitude: float = typer.Argument(..., help="Latitude"),
    longitude: float = typer.Argument(..., help="Longitude"),
    timezone: str = typer.Option("America/New_York", "--timezone", help="IANA timezone"),
    city: str = typer.Option("New York", "--city", help="City name used in headlines"),
    country: str = typer.Option("USA", "--country", help="Country, picks °F or °C"),
):
    """Print the weather story a brief would carry for a location."""
    import httpx

    from dailybrief.config import get_config, get_settings
    from dailybrief.core.logging import setup_logging
    from dailybrief.services.digest_pipeline import build_weather_engine

    setup_logging()
    settings = get_settings()

    async def run():
        async with httpx.AsyncClient(timeout=settings.forecast_timeout_seconds) as http_client:
            engine = build_weather_engine(http_client, settings, get_config())
            if engine is None:
                return None
            return await engine.generate(latitude, longitude, timezone, city, country)

    story = asyncio.run(run())
    if story is None:
        _print_skipped("No weather story today")
        return
    typer.echo(f"\n{story.icon} [{story.priority.name}] {story.headline}")
    temperature = (
        f"{story.temperature_f}°F" if story.use_fahrenheit else f"{story.temperature_c}°C"
    )
    typer.echo(f"   {story.forecast_day}, {temperature}")


@app.command()
def scheduler():
    """Run the hourly scheduler until interrupted."""
    from dailybrief.core.logging import setup_logging
    from dailybrief.config import get_config, get_settings
    from dailybrief.core.scheduler import get_job_schedules, running_scheduler

    setup_logging()

    async def run():
        async with running_scheduler(get_settings(), get_config()) as running:
            if running is None:
                _print_skipped("Scheduler disabled (SCHEDULER_ENABLED=false)")
                return
            for schedule in await get_job_schedules(running):
                typer.echo(f"  {schedule['id']}: next run {schedule['next_fire_time']}")
            await asyncio.Event().wait()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        typer.echo("\nScheduler stopped")


@app.command()
def migrate():
    """Run database migrations (alembic upgrade head)."""
    import subprocess

    result = subprocess.run(["alembic", "upgrade", "head"], check=False)
    raise typer.Exit(result.returncode)


if __name__ == "__main__":
    app()
