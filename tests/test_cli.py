"""Tests for the command line interface."""

import pytest
from typer.testing import CliRunner

from fly_pattern_db.cli import pipeline as pipeline_cli
from fly_pattern_db.cli.main import app
from fly_pattern_db.core.enums import ExtractionStatus, SourceType
from fly_pattern_db.core.schema import StagedExtraction, StagedSource
from fly_pattern_db.db.engine import get_session, init_db
from fly_pattern_db.db.repositories import StagedExtractionRepository, StagedSourceRepository
from fly_pattern_db.ingestion.adapters import Candidate, DiscoveryBackend
from fly_pattern_db.ingestion.config import PipelineConfig
from fly_pattern_db.ingestion.orchestrator import PipelineOrchestrator

runner = CliRunner()


class StaticDiscovery(DiscoveryBackend):
    ADAPTER_NAME = "static"

    async def discover(self, query: str) -> list[Candidate]:
        return [
            Candidate(
                url=f"https://blog.example.com/{query.lower().replace(' ', '-')}",
                title=f"How to tie the {query}",
                source_type=SourceType.BLOG,
            )
        ]


@pytest.fixture
def fake_orchestrator(app_db, monkeypatch):
    """Route CLI stages through an orchestrator with static discovery."""

    def build(session):
        return PipelineOrchestrator(
            session, config=PipelineConfig(), discovery_backends=[StaticDiscovery()]
        )

    monkeypatch.setattr(pipeline_cli, "build_orchestrator", build)


@pytest.fixture
def extraction_id(app_db, make_pattern) -> str:
    init_db()
    with get_session() as session:
        source = StagedSourceRepository(session).upsert(
            StagedSource(source_type=SourceType.BLOG, url="https://blog.example.com/wb", pattern_query="Woolly Bugger")
        )
        extraction = StagedExtractionRepository(session).create(
            StagedExtraction(
                source_id=source.id,
                pattern_name="Woolly Bugger",
                normalized_slug="woolly-bugger",
                extracted_data=make_pattern(),
                confidence=0.5,
            )
        )
        session.commit()
    return str(extraction.id)


class TestBasicCommands:
    """Tests for top-level commands."""

    def test_version(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "v0.1.0" in result.output

    def test_init_db(self, app_db) -> None:
        result = runner.invoke(app, ["init-db"])

        assert result.exit_code == 0
        assert app_db.exists()

    def test_check_config_reports_missing_keys(self, app_db) -> None:
        result = runner.invoke(app, ["check-config"])

        assert result.exit_code == 0
        assert "YouTube API key: not configured" in result.output
        assert "ANTHROPIC_API_KEY environment variable is required" in result.output


class TestPipelineCommands:
    """Tests for pipeline stage commands."""

    def test_status_on_empty_database(self, app_db) -> None:
        result = runner.invoke(app, ["pipeline", "status"])

        assert result.exit_code == 0
        assert "Production patterns:" in result.output

    def test_discover_stages_sources(self, fake_orchestrator) -> None:
        result = runner.invoke(app, ["pipeline", "discover", "Woolly Bugger", "Adams"])

        assert result.exit_code == 0
        with get_session() as session:
            counts = StagedSourceRepository(session).count_by_status()
        assert counts == {"discovered": 2}

    def test_extract_without_key_exits_nonzero(self, app_db) -> None:
        init_db()
        with get_session() as session:
            repo = StagedSourceRepository(session)
            source = repo.upsert(
                StagedSource(source_type=SourceType.BLOG, url="https://blog.example.com/a", pattern_query="Adams")
            )
            repo.mark_scraped(source.id, "Hook: Dry fly hook")
            session.commit()

        result = runner.invoke(app, ["pipeline", "extract"])

        assert result.exit_code == 1

    def test_auto_approve_rejects_bad_threshold(self, app_db) -> None:
        result = runner.invoke(app, ["pipeline", "auto-approve", "--threshold", "1.5"])
        assert result.exit_code != 0


class TestReviewCommands:
    """Tests for pipeline review approve/reject."""

    def test_approve(self, extraction_id) -> None:
        result = runner.invoke(
            app, ["pipeline", "review", "approve", extraction_id, "--notes", "checked"]
        )

        assert result.exit_code == 0
        assert "Approved" in result.output
        with get_session() as session:
            stored = StagedExtractionRepository(session).get_by_id(extraction_id)
        assert stored.status == ExtractionStatus.APPROVED
        assert stored.review_notes == "checked"

    def test_reject_twice_fails(self, extraction_id) -> None:
        assert runner.invoke(app, ["pipeline", "review", "reject", extraction_id]).exit_code == 0

        result = runner.invoke(app, ["pipeline", "review", "reject", extraction_id])
        assert result.exit_code == 1

    def test_unknown_extraction(self, app_db) -> None:
        result = runner.invoke(
            app, ["pipeline", "review", "approve", "00000000-0000-0000-0000-000000000000"]
        )
        assert result.exit_code == 1
