"""Fly Pattern DB CLI using Typer."""

import logging
from pathlib import Path

import typer
from dotenv import load_dotenv
from rich.logging import RichHandler

from fly_pattern_db.cli.pipeline import pipeline_app

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

app = typer.Typer(
    name="fly-pattern-db",
    help="Fly Pattern DB - Build a curated fly tying pattern catalog from videos and blogs",
    add_completion=False,
)
app.add_typer(pipeline_app, name="pipeline")


def configure_logging(verbose: bool = False) -> None:
    """Route log records through rich, INFO by default and DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Fly Pattern DB command line."""
    configure_logging(verbose)


def _key_status(value: str) -> str:
    return "configured" if value and not value.startswith("your-") else "not configured"


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", "-h", help="Host to bind to"),
    port: int = typer.Option(8000, "--port", "-p", help="Port to bind to"),
    reload: bool = typer.Option(
        False, "--reload", "-r", help="Enable auto-reload for development"
    ),
) -> None:
    """Start the review API server."""
    import uvicorn

    typer.echo(f"Starting Fly Pattern DB review API on http://{host}:{port}")
    typer.echo("Press Ctrl+C to stop the server")
    typer.echo("")

    uvicorn.run(
        "fly_pattern_db.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from fly_pattern_db.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def migrate(
    revision: str = typer.Option("head", "--revision", help="Target schema revision"),
) -> None:
    """Upgrade the database schema with Alembic migrations."""
    from fly_pattern_db.db.engine import run_migrations

    typer.echo(f"Migrating database to {revision}...")
    run_migrations(revision=revision)
    typer.echo("Database migrated successfully!")


@app.command()
def version() -> None:
    """Show the Fly Pattern DB version."""
    typer.echo("Fly Pattern DB v0.1.0")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from fly_pattern_db.db.engine import get_database_url
    from fly_pattern_db.ingestion.config import get_default_config

    typer.echo("Fly Pattern DB Configuration")
    typer.echo("=" * 40)

    # Check .env file
    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    config = get_default_config()
    typer.echo(f"  Pipeline config: {config.config_path or 'defaults (no file found)'}")
    typer.echo(f"  YouTube API key: {_key_status(config.youtube.api_key)}")
    typer.echo(f"  Anthropic API key: {_key_status(config.extraction.api_key)}")
    typer.echo(f"  Discovery backends: {', '.join(config.discovery.backends)}")
    typer.echo(f"  Blog sites: {len(config.enabled_blog_sites())} enabled")
    typer.echo(f"  Auto-approve threshold: {config.normalization.confidence_threshold}")
    typer.echo(f"  Database: {get_database_url()}")

    errors = config.validate()
    if errors:
        typer.echo("")
        typer.echo("Problems:")
        for error in errors:
            typer.echo(f"  - {error}")


if __name__ == "__main__":
    app()
