"""Shared fixtures: temporary SQLite databases and extracted-pattern builders."""

import tempfile
from pathlib import Path

import pytest
from sqlalchemy.orm import sessionmaker

from fly_pattern_db.core.enums import MaterialType
from fly_pattern_db.core.schema import ExtractedMaterial, ExtractedPattern
from fly_pattern_db.db import models_catalog  # noqa: F401
from fly_pattern_db.db.engine import create_db_engine, reset_engine
from fly_pattern_db.db.models import Base
from fly_pattern_db.ingestion.config import reset_default_config

WOOLLY_BUGGER_MATERIALS = [
    ("Mustad 9672", MaterialType.HOOK),
    ("Uni Thread 6/0", MaterialType.THREAD),
    ("Black Marabou", MaterialType.TAIL),
    ("Olive Chenille", MaterialType.BODY),
    ("Grizzly Saddle Hackle", MaterialType.HACKLE),
]


@pytest.fixture
def temp_db_path():
    """Create a temporary database file."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture
def engine(temp_db_path):
    """Create a test database engine with every table."""
    engine = create_db_engine(temp_db_path)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory configured like the application's."""
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    """Create a database session for testing."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def app_db(temp_db_path, monkeypatch):
    """Point the global engine at a temporary database."""
    monkeypatch.setenv("DATABASE_URL", str(temp_db_path))
    reset_engine()
    yield temp_db_path
    reset_engine()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep real credentials and config files out of tests."""
    for name in (
        "YOUTUBE_API_KEY",
        "ANTHROPIC_API_KEY",
        "PIPELINE_CONCURRENCY",
        "PIPELINE_CONFIDENCE_THRESHOLD",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PIPELINE_CONFIG_PATH", "/nonexistent/pipeline.yaml")
    reset_default_config()
    yield
    reset_default_config()


@pytest.fixture
def make_pattern():
    """Factory for ExtractedPattern records."""

    def _make(
        name: str = "Woolly Bugger",
        materials: list[tuple[str, MaterialType]] | None = None,
        **fields,
    ) -> ExtractedPattern:
        if materials is None:
            materials = WOOLLY_BUGGER_MATERIALS
        fields.setdefault("category", "streamer")
        fields.setdefault("difficulty", "beginner")
        fields.setdefault("water_type", "freshwater")
        return ExtractedPattern(
            pattern_name=name,
            materials=[
                ExtractedMaterial(name=material_name, type=material_type, position=i)
                for i, (material_name, material_type) in enumerate(materials, start=1)
            ],
            **fields,
        )

    return _make
