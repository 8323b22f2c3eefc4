#!/usr/bin/env python3
"""
Application Entry Script.

Main entry point for the sticky wall service. All functionality is
accessible through command-line options.

Usage:
    python run.py --help
    python run.py --action server --verbose
    python run.py --action worker
    python run.py --action scheduler
    python run.py --action cleanup
    python run.py --action stats
    python run.py --action config
"""

import asyncio
import subprocess
import sys
from pathlib import Path

import click

# Ensure project root is in path for absolute imports
PROJECT_ROOT = Path(__file__).parent
sys.path.insert(0, str(PROJECT_ROOT))

from stickywall.backend.core.logging import get_logger, setup_logging


def validate_project_root() -> Path:
    """Validate that we're running from the project root."""
    if not (PROJECT_ROOT / ".project_root").exists():
        click.echo(
            click.style("Error: .project_root not found. Run from project root.", fg="red"),
            err=True,
        )
        sys.exit(1)
    return PROJECT_ROOT


@click.command()
@click.option(
    "--action",
    type=click.Choice(["server", "worker", "scheduler", "cleanup", "stats", "health", "config", "info"]),
    default="info",
    help="Action to perform.",
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose output (INFO level logging).",
)
@click.option(
    "--debug", "-d",
    is_flag=True,
    help="Enable debug output (DEBUG level logging).",
)
@click.option(
    "--host",
    default=None,
    help="Server host (for server action).",
)
@click.option(
    "--port",
    default=None,
    type=int,
    help="Server port (for server action).",
)
@click.option(
    "--reload",
    is_flag=True,
    help="Enable auto-reload (for server action).",
)
def main(
    action: str,
    verbose: bool,
    debug: bool,
    host: str | None,
    port: int | None,
    reload: bool,
) -> None:
    """
    Sticky Wall Entry Point.

    Run the API server, the background worker or scheduler, maintenance
    jobs, or inspect configuration.

    Examples:

        # Start development server
        python run.py --action server --reload --verbose

        # Purge expired rate limit records now
        python run.py --action cleanup --verbose

        # Moderation status counts
        python run.py --action stats
    """
    validate_project_root()

    if debug:
        log_level = "DEBUG"
    elif verbose:
        log_level = "INFO"
    else:
        log_level = "WARNING"

    setup_logging(level=log_level, format_type="console")
    logger = get_logger(__name__)

    logger.debug("Starting application", extra={"action": action, "log_level": log_level})

    if action == "server":
        run_server(logger, host, port, reload)
    elif action == "worker":
        run_taskiq(logger, ["worker", "stickywall.backend.tasks.worker:broker"])
    elif action == "scheduler":
        run_taskiq(logger, ["scheduler", "stickywall.backend.tasks.scheduler:scheduler"])
    elif action == "cleanup":
        run_cleanup(logger)
    elif action == "stats":
        show_stats(logger)
    elif action == "health":
        check_health(logger)
    elif action == "config":
        show_config(logger)
    elif action == "info":
        show_info(logger)


def run_server(logger, host: str | None, port: int | None, reload: bool) -> None:
    """Start the FastAPI server with uvicorn."""
    from stickywall.backend.core.config import get_app_config

    server = get_app_config().application.server
    server_host = host or server.host
    server_port = port or server.port

    logger.info(
        "Starting server",
        extra={"host": server_host, "port": server_port, "reload": reload},
    )

    cmd = [
        sys.executable, "-m", "uvicorn",
        "stickywall.backend.main:app",
        "--host", server_host,
        "--port", str(server_port),
    ]
    if reload:
        cmd.append("--reload")

    click.echo(f"Starting server at http://{server_host}:{server_port}")
    click.echo("Press Ctrl+C to stop\n")

    _run_subprocess(logger, cmd, "Server")


def run_taskiq(logger, args: list[str]) -> None:
    """Start a Taskiq worker or scheduler process."""
    cmd = [sys.executable, "-m", "taskiq", *args]
    logger.info("Starting taskiq", extra={"args": args})
    click.echo(f"Running: {' '.join(cmd)}\n")
    _run_subprocess(logger, cmd, f"Taskiq {args[0]}")


def _run_subprocess(logger, cmd: list[str], label: str) -> None:
    try:
        subprocess.run(cmd, check=True)
    except KeyboardInterrupt:
        logger.info(f"{label} stopped")
    except subprocess.CalledProcessError as e:
        logger.error(f"{label} failed", extra={"exit_code": e.returncode})
        sys.exit(e.returncode)


def run_cleanup(logger) -> None:
    """Delete expired rate limit records once, outside the scheduler."""
    from stickywall.backend.core.database import dispose_engine
    from stickywall.backend.tasks.scheduled import cleanup_rate_limit_records

    async def _cleanup() -> dict:
        try:
            return await cleanup_rate_limit_records()
        finally:
            await dispose_engine()

    try:
        result = asyncio.run(_cleanup())
    except Exception as e:
        logger.error("Cleanup failed", extra={"error": str(e)})
        click.echo(click.style(f"Cleanup failed: {e}", fg="red"))
        sys.exit(1)

    click.echo(f"Deleted {result['deleted']} expired rate limit record(s).")


def show_stats(logger) -> None:
    """Print note counts per moderation status."""
    from stickywall.backend.core.database import dispose_engine, get_session_factory
    from stickywall.backend.repositories.note import NoteRepository

    async def _stats():
        try:
            async with get_session_factory()() as session:
                return await NoteRepository(session).stats()
        finally:
            await dispose_engine()

    try:
        stats = asyncio.run(_stats())
    except Exception as e:
        logger.error("Failed to load stats", extra={"error": str(e)})
        click.echo(click.style(f"Error loading stats: {e}", fg="red"))
        sys.exit(1)

    click.echo("Note Statistics:")
    click.echo("-" * 40)
    click.echo(f"  pending:  {stats.pending}")
    click.echo(f"  approved: {stats.approved}")
    click.echo(f"  rejected: {stats.rejected}")
    click.echo(f"  flagged:  {stats.flagged}")
    click.echo("-" * 40)
    click.echo(f"  total:    {stats.total}")


def check_health(logger) -> None:
    """Check that configuration loads and the application can be built."""
    click.echo("Checking application health...\n")

    checks = []

    try:
        from stickywall.backend.core.config import get_app_config
        app_config = get_app_config()
        checks.append(("YAML configuration", True, f"App: {app_config.application.name}"))
    except Exception as e:
        checks.append(("YAML configuration", False, str(e)))
        logger.error("Configuration failed", extra={"error": str(e)})

    try:
        from stickywall.backend.core.config import get_settings
        get_settings()
        checks.append(("Environment settings", True, None))
    except Exception as e:
        checks.append(("Environment settings", False, str(e)))
        logger.warning("Environment settings not configured")

    try:
        from stickywall.backend.main import get_app
        app = get_app()
        checks.append(("FastAPI application", True, f"Title: {app.title}"))
    except Exception as e:
        checks.append(("FastAPI application", False, str(e)))
        logger.error("FastAPI app failed", extra={"error": str(e)})

    click.echo("Health Check Results:")
    click.echo("-" * 50)

    all_passed = True
    for name, passed, detail in checks:
        status = click.style("✓ PASS", fg="green") if passed else click.style("✗ FAIL", fg="red")
        detail_str = f" ({detail})" if detail else ""
        click.echo(f"  {status}  {name}{detail_str}")
        if not passed:
            all_passed = False

    click.echo("-" * 50)

    if all_passed:
        click.echo(click.style("\nAll checks passed!", fg="green"))
    else:
        click.echo(click.style("\nSome checks failed. See details above.", fg="yellow"))
        sys.exit(1)


def show_config(logger) -> None:
    """Display loaded configuration."""
    click.echo("Application Configuration:\n")

    try:
        from stickywall.backend.core.config import get_app_config

        app_config = get_app_config()
        sections = {
            "Application": app_config.application,
            "Features": app_config.features,
            "Wall": app_config.wall,
            "Moderation": app_config.moderation,
            "Rate Limiting": app_config.security.rate_limiting,
            "Image Storage": app_config.storage.images,
        }

        for title, section in sections.items():
            click.echo(f"{title} (from YAML):")
            click.echo("-" * 40)
            for key, value in section.model_dump().items():
                click.echo(f"  {key}: {value}")
            click.echo()

        logger.info("Configuration displayed successfully")

    except Exception as e:
        logger.error("Failed to load configuration", extra={"error": str(e)})
        click.echo(click.style(f"Error loading configuration: {e}", fg="red"))
        sys.exit(1)


def show_info(logger) -> None:
    """Display application information."""
    try:
        from stickywall.backend.core.config import get_app_config
        app_settings = get_app_config().application
        click.echo(app_settings.name)
        click.echo("=" * 40)
        click.echo(f"Version: {app_settings.version}")
        click.echo(f"Description: {app_settings.description}")
        click.echo(f"Environment: {app_settings.environment}")
    except Exception:
        click.echo("Sticky Wall")
        click.echo("=" * 40)

    click.echo()
    click.echo("Available Actions:")
    click.echo("  --action server     Start the API server")
    click.echo("  --action worker     Start the background task worker")
    click.echo("  --action scheduler  Start the task scheduler (run one only)")
    click.echo("  --action cleanup    Delete expired rate limit records")
    click.echo("  --action stats      Show note counts per moderation status")
    click.echo("  --action health     Check configuration and app wiring")
    click.echo("  --action config     Display configuration")
    click.echo("  --action info       Show this information")
    click.echo()
    click.echo("Logging Options:")
    click.echo("  --verbose, -v       Enable INFO level logging")
    click.echo("  --debug, -d         Enable DEBUG level logging")

    logger.debug("Info displayed")


if __name__ == "__main__":
    main()
