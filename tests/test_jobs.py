"""Tests for the background pipeline job."""

import pytest

from fly_pattern_db.ingestion.jobs import get_redis_settings, run_pipeline


class TestRunPipeline:
    """Tests for the arq job function, called directly."""

    @pytest.mark.asyncio
    async def test_summary_reports_failed_stage(self, app_db) -> None:
        summary = await run_pipeline({"job_id": "job-1"}, ["Adams"])

        assert summary["job_id"] == "job-1"
        assert summary["queries"] == ["Adams"]
        assert summary["status"] == "failed"
        assert [s["stage"] for s in summary["stages"]] == ["discover"]
        assert "YOUTUBE_API_KEY" in summary["stages"][0]["errors"][0]
        assert summary["duration_seconds"] >= 0

    @pytest.mark.asyncio
    async def test_nothing_to_do_completes(self, app_db) -> None:
        summary = await run_pipeline({})

        assert summary["status"] == "completed"
        assert len(summary["stages"]) == 6
        assert summary["errors"] == []


class TestRedisSettings:
    """Tests for get_redis_settings."""

    def test_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("REDIS_HOST", "redis.internal")
        monkeypatch.setenv("REDIS_PORT", "6380")
        monkeypatch.setenv("REDIS_DB", "2")

        settings = get_redis_settings()

        assert settings.host == "redis.internal"
        assert settings.port == 6380
        assert settings.database == 2
