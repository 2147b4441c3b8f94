"""Tests for the review API routes."""

import pytest
from fastapi.testclient import TestClient

from fly_pattern_db.core.enums import ExtractionStatus, SourceType
from fly_pattern_db.core.schema import StagedExtraction, StagedSource
from fly_pattern_db.db.engine import get_session
from fly_pattern_db.db.repositories import StagedExtractionRepository, StagedSourceRepository
from fly_pattern_db.web.app import create_app


@pytest.fixture
def client(app_db):
    """Test client bound to a temporary database."""
    return TestClient(create_app())


@pytest.fixture
def staged_ids(client, make_pattern) -> list[str]:
    """Two extractions of one source with confidences 0.9 and 0.4."""
    with get_session() as session:
        source = StagedSourceRepository(session).upsert(
            StagedSource(
                source_type=SourceType.BLOG,
                url="https://blog.example.com/woolly",
                pattern_query="Woolly Bugger",
                raw_content="long article text",
            )
        )
        repo = StagedExtractionRepository(session)
        ids = [
            str(
                repo.create(
                    StagedExtraction(
                        source_id=source.id,
                        pattern_name=name,
                        normalized_slug=slug,
                        extracted_data=make_pattern(name),
                        confidence=confidence,
                    )
                ).id
            )
            for name, slug, confidence in [
                ("Woolly Bugger", "woolly-bugger", 0.9),
                ("Adams", "adams", 0.4),
            ]
        ]
        session.commit()
    return ids


class TestListStaged:
    """Tests for GET /api/staged."""

    def test_empty(self, client) -> None:
        response = client.get("/api/staged")

        assert response.status_code == 200
        assert response.json() == {"results": [], "total_count": 0, "page": 1, "page_size": 20}

    def test_ordered_by_confidence(self, client, staged_ids) -> None:
        data = client.get("/api/staged").json()

        assert data["total_count"] == 2
        assert [r["pattern_name"] for r in data["results"]] == ["Woolly Bugger", "Adams"]
        assert "extracted_data" not in data["results"][0]

    def test_filters(self, client, staged_ids) -> None:
        assert client.get("/api/staged", params={"min_confidence": 0.5}).json()["total_count"] == 1
        assert client.get("/api/staged", params={"slug": "adams"}).json()["total_count"] == 1
        assert client.get("/api/staged", params={"status": "approved"}).json()["total_count"] == 0

    def test_paging(self, client, staged_ids) -> None:
        data = client.get("/api/staged", params={"page": 2, "page_size": 1}).json()

        assert [r["pattern_name"] for r in data["results"]] == ["Adams"]
        assert data["total_count"] == 2

    def test_unknown_status(self, client) -> None:
        response = client.get("/api/staged", params={"status": "pending"})

        assert response.status_code == 422
        assert "pending" in response.json()["detail"]


class TestGetStaged:
    """Tests for GET /api/staged/{id}."""

    def test_detail_includes_record_and_source(self, client, staged_ids) -> None:
        data = client.get(f"/api/staged/{staged_ids[0]}").json()

        assert data["extraction"]["extracted_data"]["pattern_name"] == "Woolly Bugger"
        assert data["source"]["url"] == "https://blog.example.com/woolly"
        assert "raw_content" not in data["source"]

    def test_not_found(self, client) -> None:
        response = client.get("/api/staged/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


class TestReviewDecisions:
    """Tests for approve and reject."""

    def test_approve_with_notes(self, client, staged_ids) -> None:
        response = client.post(
            f"/api/staged/{staged_ids[0]}/approve", json={"notes": "matches the book"}
        )

        assert response.status_code == 200
        extraction = response.json()["extraction"]
        assert extraction["status"] == "approved"
        assert extraction["review_notes"] == "matches the book"

        with get_session() as session:
            stored = StagedExtractionRepository(session).get_by_id(staged_ids[0])
        assert stored.status == ExtractionStatus.APPROVED

    def test_reject_without_body(self, client, staged_ids) -> None:
        response = client.post(f"/api/staged/{staged_ids[1]}/reject")

        assert response.status_code == 200
        assert response.json()["extraction"]["status"] == "rejected"

    def test_invalid_transition(self, client, staged_ids) -> None:
        client.post(f"/api/staged/{staged_ids[0]}/approve")

        response = client.post(f"/api/staged/{staged_ids[0]}/approve")
        assert response.status_code == 409

    def test_unknown_extraction(self, client) -> None:
        response = client.post("/api/staged/00000000-0000-0000-0000-000000000000/reject")
        assert response.status_code == 404


class TestStats:
    """Tests for GET /api/stats."""

    def test_stats(self, client, staged_ids) -> None:
        data = client.get("/api/stats").json()

        assert data["confidence_threshold"] == 0.7
        assert data["stats"]["extractions_total"] == 2
        assert data["stats"]["extractions_high_confidence"] == 1
        assert data["stats"]["sources_discovered"] == 1
