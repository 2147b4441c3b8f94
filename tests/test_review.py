"""Tests for manual review decisions."""

import pytest

from fly_pattern_db.core.enums import ExtractionStatus, SourceType
from fly_pattern_db.core.schema import StagedExtraction, StagedSource
from fly_pattern_db.db.repositories import StagedExtractionRepository, StagedSourceRepository
from fly_pattern_db.ingestion.review import (
    ExtractionNotFoundError,
    InvalidTransitionError,
    approve_extraction,
    reject_extraction,
)


@pytest.fixture
def extraction(session, make_pattern) -> StagedExtraction:
    source = StagedSourceRepository(session).upsert(
        StagedSource(source_type=SourceType.BLOG, url="https://blog.example.com/wb", pattern_query="Woolly Bugger")
    )
    return StagedExtractionRepository(session).create(
        StagedExtraction(
            source_id=source.id,
            pattern_name="Woolly Bugger",
            normalized_slug="woolly-bugger",
            extracted_data=make_pattern(),
            confidence=0.5,
        )
    )


class TestReview:
    """Tests for approve_extraction and reject_extraction."""

    def test_approve(self, session, extraction) -> None:
        approved = approve_extraction(session, extraction.id, notes="checked against the book")

        assert approved.status == ExtractionStatus.APPROVED
        assert approved.review_notes == "checked against the book"
        assert approved.reviewed_at is not None

    def test_reject_then_approve(self, session, extraction) -> None:
        reject_extraction(session, extraction.id)
        approved = approve_extraction(session, str(extraction.id))
        assert approved.status == ExtractionStatus.APPROVED

    def test_double_approve_rejected(self, session, extraction) -> None:
        approve_extraction(session, extraction.id)
        with pytest.raises(InvalidTransitionError):
            approve_extraction(session, extraction.id)

    def test_ingested_is_final(self, session, extraction) -> None:
        StagedExtractionRepository(session).mark_ingested([extraction.id])

        with pytest.raises(InvalidTransitionError):
            approve_extraction(session, extraction.id)
        with pytest.raises(InvalidTransitionError):
            reject_extraction(session, extraction.id)

    def test_unknown_id(self, session) -> None:
        with pytest.raises(ExtractionNotFoundError):
            reject_extraction(session, "00000000-0000-0000-0000-000000000000")
