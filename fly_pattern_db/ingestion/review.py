"""
Manual Review
=============

Approve or reject staged extractions by hand. Used by the CLI review
commands and the review API for extractions that auto-approval left behind.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from fly_pattern_db.core.enums import ExtractionStatus
from fly_pattern_db.core.schema import StagedExtraction
from fly_pattern_db.db.repositories import StagedExtractionRepository

logger = logging.getLogger(__name__)

# Statuses a review decision may move an extraction out of
APPROVABLE = frozenset(
    {ExtractionStatus.EXTRACTED, ExtractionStatus.NORMALIZED, ExtractionStatus.REJECTED}
)
REJECTABLE = frozenset(
    {ExtractionStatus.EXTRACTED, ExtractionStatus.NORMALIZED, ExtractionStatus.APPROVED}
)


class ExtractionNotFoundError(LookupError):
    """No staged extraction with the requested id."""


class InvalidTransitionError(ValueError):
    """The extraction's current status does not allow the review decision."""


def _review(
    session: Session,
    extraction_id: UUID | str,
    target: ExtractionStatus,
    allowed: frozenset[ExtractionStatus],
    notes: str | None,
) -> StagedExtraction:
    repo = StagedExtractionRepository(session)
    extraction = repo.get_by_id(extraction_id)
    if extraction is None:
        raise ExtractionNotFoundError(f"Extraction {extraction_id} not found")
    if extraction.status not in allowed:
        raise InvalidTransitionError(
            f"Cannot mark extraction {extraction_id} {target.value}: "
            f"it is {extraction.status.value}"
        )

    updated = repo.update_status(extraction_id, target, review_notes=notes)
    logger.info("Extraction %s (%r) %s", extraction_id, updated.pattern_name, target.value)
    return updated


def approve_extraction(
    session: Session, extraction_id: UUID | str, notes: str | None = None
) -> StagedExtraction:
    """
    Approve an extraction for ingestion.

    Raises:
        ExtractionNotFoundError: unknown id
        InvalidTransitionError: already approved or ingested
    """
    return _review(session, extraction_id, ExtractionStatus.APPROVED, APPROVABLE, notes)


def reject_extraction(
    session: Session, extraction_id: UUID | str, notes: str | None = None
) -> StagedExtraction:
    """
    Reject an extraction so ingestion skips it.

    Raises:
        ExtractionNotFoundError: unknown id
        InvalidTransitionError: already rejected or ingested
    """
    return _review(session, extraction_id, ExtractionStatus.REJECTED, REJECTABLE, notes)
