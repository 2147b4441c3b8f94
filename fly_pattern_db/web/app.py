"""FastAPI application factory for the fly pattern review API."""

from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from fly_pattern_db.db.engine import init_db

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Fly Pattern DB",
        description="Review staged fly pattern extractions before they reach the catalog",
        version="0.1.0",
    )

    # Initialize database tables
    init_db()

    # Include routers (import here to avoid circular imports)
    from fly_pattern_db.web.routes import staged

    app.include_router(staged.router)

    return app
