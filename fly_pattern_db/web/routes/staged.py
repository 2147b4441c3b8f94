"""Review routes for staged extractions and pipeline statistics."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from fly_pattern_db.core.enums import ExtractionStatus
from fly_pattern_db.db.engine import get_session
from fly_pattern_db.db.repositories import (
    StagedExtractionRepository,
    StagedSourceRepository,
    get_pipeline_stats,
)
from fly_pattern_db.ingestion.config import get_default_config
from fly_pattern_db.ingestion.review import (
    ExtractionNotFoundError,
    InvalidTransitionError,
    approve_extraction,
    reject_extraction,
)

router = APIRouter(prefix="/api", tags=["review"])

MAX_PAGE_SIZE = 100


class ReviewRequest(BaseModel):
    """Optional body for review decisions."""

    notes: str | None = None


def _parse_status(value: str | None) -> ExtractionStatus | None:
    if not value:
        return None
    try:
        return ExtractionStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in ExtractionStatus)
        raise HTTPException(status_code=422, detail=f"Unknown status {value!r}; use one of {allowed}") from None


@router.get("/staged")
async def list_staged(
    status: str | None = None,
    slug: str | None = None,
    min_confidence: float | None = None,
    page: int = 1,
    page_size: int = 20,
) -> JSONResponse:
    """
    List staged extractions, highest confidence first.

    Filter by status, pattern slug or a minimum per-extraction confidence.
    """
    status_filter = _parse_status(status)
    page = max(page, 1)
    page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

    with get_session() as session:
        repo = StagedExtractionRepository(session)
        items = repo.list(
            status=status_filter,
            slug=slug,
            min_confidence=min_confidence,
            limit=page_size,
            offset=(page - 1) * page_size,
        )
        total_count = repo.count(status=status_filter, slug=slug, min_confidence=min_confidence)

    return JSONResponse({
        "results": [item.model_dump(mode="json", exclude={"extracted_data", "normalized_data"}) for item in items],
        "total_count": total_count,
        "page": page,
        "page_size": page_size,
    })


@router.get("/staged/{extraction_id}")
async def get_staged(extraction_id: str) -> JSONResponse:
    """Get one staged extraction with its record and source."""
    with get_session() as session:
        extraction = StagedExtractionRepository(session).get_by_id(extraction_id)
        if extraction is None:
            raise HTTPException(status_code=404, detail="Extraction not found")
        source = StagedSourceRepository(session).get_by_id(extraction.source_id)

    return JSONResponse({
        "extraction": extraction.model_dump(mode="json"),
        "source": source.model_dump(mode="json", exclude={"raw_content"}) if source else None,
    })


def _decide(extraction_id: str, approve: bool, body: ReviewRequest | None) -> JSONResponse:
    notes = body.notes if body else None
    decide = approve_extraction if approve else reject_extraction
    with get_session() as session:
        try:
            extraction = decide(session, extraction_id, notes=notes)
        except ExtractionNotFoundError:
            raise HTTPException(status_code=404, detail="Extraction not found")
        except InvalidTransitionError as e:
            raise HTTPException(status_code=409, detail=str(e))
        session.commit()

    return JSONResponse({"extraction": extraction.model_dump(mode="json")})


@router.post("/staged/{extraction_id}/approve")
async def approve_staged(extraction_id: str, body: ReviewRequest | None = None) -> JSONResponse:
    """Approve an extraction for ingestion."""
    return _decide(extraction_id, True, body)


@router.post("/staged/{extraction_id}/reject")
async def reject_staged(extraction_id: str, body: ReviewRequest | None = None) -> JSONResponse:
    """Reject an extraction."""
    return _decide(extraction_id, False, body)


@router.get("/stats")
async def pipeline_stats() -> JSONResponse:
    """Counts of staged rows, canonical materials and catalog patterns."""
    threshold = get_default_config().normalization.confidence_threshold
    with get_session() as session:
        stats = get_pipeline_stats(session, confidence_threshold=threshold)

    return JSONResponse({"stats": stats.model_dump(mode="json"), "confidence_threshold": threshold})
