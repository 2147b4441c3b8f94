"""
Pipeline Orchestrator
=====================

Drives staged records through the pipeline state machine:

    sources:      discovered -> scraped -> extracted        (or failed)
    extractions:  extracted -> normalized -> approved | rejected -> ingested

Each stage is one method that processes every eligible record and returns a
StageResult. A failing item is counted and logged and the stage moves on;
only structural problems (missing credentials, bad configuration) fail a
whole stage.

Concurrency model:
- discover and scrape run on a bounded worker pool
- extract is strictly sequential, one LLM call at a time; run() moves it
  off the event loop onto a worker thread
- normalize resolves one record's materials at a time
- ingest writes one pattern per transaction
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import httpx
from sqlalchemy.orm import Session

from fly_pattern_db.core.enums import ExtractionStatus, SourceStatus, SourceType
from fly_pattern_db.core.schema import PipelineStats, StagedExtraction, StagedSource
from fly_pattern_db.core.text import slugify
from fly_pattern_db.db.repositories import (
    StagedExtractionRepository,
    StagedSourceRepository,
    get_pipeline_stats,
)
from fly_pattern_db.ingestion.adapters import (
    BlogAdapter,
    DiscoveryBackend,
    Scraper,
    YouTubeAdapter,
    build_adapters,
    is_youtube_url,
    select_top_candidates,
)
from fly_pattern_db.ingestion.canonical import CanonicalRegistry
from fly_pattern_db.ingestion.config import ConfigurationError, PipelineConfig, get_default_config
from fly_pattern_db.ingestion.consensus import build_consensus
from fly_pattern_db.ingestion.crawler import run_worker_pool
from fly_pattern_db.ingestion.extractor import (
    AnthropicExtractor,
    Extractor,
    MalformedExtraction,
    calculate_confidence,
    validate_extraction,
)
from fly_pattern_db.ingestion.ingest import ingest_consensus_pattern
from fly_pattern_db.ingestion.normalizer import group_extracted_patterns, normalize_pattern_materials

logger = logging.getLogger(__name__)


class StageStatus(str, Enum):
    """Status of a pipeline stage run."""

    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class StageResult:
    """Outcome of one stage run."""

    stage: str
    status: StageStatus = StageStatus.RUNNING
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    completed_at: datetime | None = None
    duration_seconds: float | None = None

    def finish(self, status: StageStatus = StageStatus.COMPLETED) -> StageResult:
        """Stamp completion time and final status."""
        self.status = status
        self.completed_at = datetime.now(UTC)
        self.duration_seconds = (self.completed_at - self.started_at).total_seconds()
        return self

    def abort(self, error: str) -> StageResult:
        """Fail the whole stage."""
        self.errors.append(error)
        logger.error("Stage %s failed: %s", self.stage, error)
        return self.finish(StageStatus.FAILED)

    def record_failure(self, item: str, error: str) -> None:
        self.failed += 1
        self.errors.append(f"{item}: {error}")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "stage": self.stage,
            "status": self.status.value,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": self.errors,
            "details": self.details,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


class PipelineOrchestrator:
    """
    Runs pipeline stages against one database session.

    Collaborators default to the configured adapters and the Anthropic
    extractor; tests inject fakes instead.
    """

    def __init__(
        self,
        session: Session,
        config: PipelineConfig | None = None,
        discovery_backends: Sequence[DiscoveryBackend] | None = None,
        scrapers: Sequence[Scraper] | None = None,
        extractor: Extractor | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.session = session
        self.config = config or get_default_config()
        self.sources = StagedSourceRepository(session)
        self.extractions = StagedExtractionRepository(session)
        self.transport = transport
        self._discovery_backends = list(discovery_backends) if discovery_backends is not None else None
        self._scrapers = list(scrapers) if scrapers is not None else None
        self._extractor = extractor

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def get_discovery_backends(self) -> list[DiscoveryBackend]:
        """
        Configured discovery backends.

        Raises:
            ConfigurationError: credentials missing or a backend is unknown
        """
        if self._discovery_backends is None:
            errors = self.config.validate(["discover"])
            if errors:
                raise ConfigurationError("; ".join(errors))
            try:
                self._discovery_backends = build_adapters(self.config, self.transport)
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
        return self._discovery_backends

    def get_scrapers(self) -> list[Scraper]:
        """Scrapers in lookup order; the first one that handles a source wins."""
        if self._scrapers is None:
            self._scrapers = [
                YouTubeAdapter(self.config.youtube, self.config.global_config, self.transport),
                BlogAdapter(
                    self.config.enabled_blog_sites(), self.config.global_config, self.transport
                ),
            ]
        return self._scrapers

    def get_extractor(self) -> Extractor:
        """
        The extractor, built from configuration on first use.

        Raises:
            ConfigurationError: no API key configured
        """
        if self._extractor is None:
            self._extractor = AnthropicExtractor.from_config(self.config)
        return self._extractor

    def _scraper_for(self, source: StagedSource) -> Scraper | None:
        return next((s for s in self.get_scrapers() if s.handles(source)), None)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def discover(self, queries: Sequence[str] | None = None) -> StageResult:
        """
        Find candidate sources for each query term and stage the best ones.

        Without explicit queries the configured seed patterns are used, and
        seeds that already have staged sources are skipped.
        """
        result = StageResult(stage="discover")
        explicit = bool(queries)
        terms = list(dict.fromkeys(q.strip() for q in queries or [] if q.strip()))
        if not explicit:
            seeds = list(self.config.discovery.seed_patterns)
            terms = [t for t in seeds if not self.sources.has_query(t)]
            result.skipped = len(seeds) - len(terms)
            if result.skipped:
                logger.info("Skipping %d already-discovered patterns", result.skipped)

        if not terms:
            logger.info("Nothing to discover")
            return result.finish()

        try:
            backends = self.get_discovery_backends()
        except ConfigurationError as e:
            return result.abort(str(e))

        top_k = self.config.discovery.top_k
        staged_total = 0

        async def discover_term(term: str) -> int:
            nonlocal staged_total
            staged = 0
            backend_errors = []
            for backend in backends:
                try:
                    candidates = await backend.discover(term)
                except Exception as e:
                    logger.exception("%s discovery failed for %r", backend.ADAPTER_NAME, term)
                    backend_errors.append(f"{backend.ADAPTER_NAME}: {e}")
                    continue

                for candidate in select_top_candidates(candidates, top_k):
                    self.sources.upsert(candidate.to_staged_source(term))
                    staged += 1
                self.session.commit()

            if backend_errors and len(backend_errors) == len(backends):
                raise RuntimeError("; ".join(backend_errors))
            staged_total += staged
            logger.info("Discovered %d sources for %r", staged, term)
            return staged

        outcomes = await run_worker_pool(
            terms, discover_term, self.config.global_config.concurrency
        )
        for outcome in outcomes:
            result.processed += 1
            if outcome.success:
                result.succeeded += 1
            else:
                result.record_failure(outcome.item, outcome.error or "unknown error")

        result.details["sources_staged"] = staged_total
        logger.info(
            "Discovery complete: %d sources from %d patterns (%d failed)",
            staged_total,
            result.succeeded,
            result.failed,
        )
        return result.finish()

    async def scrape(self) -> StageResult:
        """Fetch full content for every discovered source."""
        result = StageResult(stage="scrape")
        discovered = self.sources.list_by_status(SourceStatus.DISCOVERED)
        if not discovered:
            logger.info("No discovered sources to scrape")
            return result.finish()

        logger.info("Scraping %d discovered sources", len(discovered))

        async def scrape_source(source: StagedSource) -> bool:
            scraper = self._scraper_for(source)
            if scraper is None:
                raise ValueError(f"No scraper for {source.source_type.value} sources")
            try:
                content = await scraper.fetch_content(source)
            except Exception as e:
                self.sources.mark_failed(source.id, str(e) or type(e).__name__)
                self.session.commit()
                raise

            if not content:
                logger.warning("No content retrieved for %s", source.url)
                self.sources.mark_failed(source.id, "no content retrieved")
                self.session.commit()
                return False

            self.sources.mark_scraped(source.id, content)
            self.session.commit()
            logger.info("Scraped %s (%d chars)", source.url, len(content))
            return True

        outcomes = await run_worker_pool(
            discovered, scrape_source, self.config.global_config.concurrency
        )
        for outcome in outcomes:
            result.processed += 1
            if not outcome.success:
                result.record_failure(outcome.item.url, outcome.error or "unknown error")
            elif outcome.value:
                result.succeeded += 1
            else:
                result.record_failure(outcome.item.url, "no content retrieved")

        logger.info("Scrape complete: %d scraped, %d failed", result.succeeded, result.failed)
        return result.finish()

    def extract(self) -> StageResult:
        """
        Run the extractor over every scraped source, one at a time.

        Malformed results are skipped and the source stays scraped; an
        extractor error after retries marks the source failed.
        """
        result = StageResult(stage="extract")
        scraped = self.sources.list_by_status(SourceStatus.SCRAPED)
        if not scraped:
            logger.info("No scraped sources to extract")
            return result.finish()

        try:
            extractor = self.get_extractor()
        except ConfigurationError as e:
            return result.abort(str(e))

        logger.info("Extracting from %d scraped sources", len(scraped))

        for source in scraped:
            result.processed += 1
            if not source.raw_content:
                logger.warning("No content for source %s", source.id)
                result.skipped += 1
                continue

            try:
                raw = extractor.extract(source.raw_content, source.pattern_query, source.source_type)
                pattern = validate_extraction(raw)
            except MalformedExtraction as e:
                logger.warning("Skipping %s: %s", source.url, e)
                result.skipped += 1
                continue
            except Exception as e:
                logger.exception("Extraction failed for %s", source.url)
                self.session.rollback()
                self.sources.mark_failed(source.id, str(e) or type(e).__name__)
                self.session.commit()
                result.record_failure(source.url, str(e))
                continue

            confidence = calculate_confidence(
                pattern, source.source_type, len(source.raw_content)
            )
            self.extractions.create(
                StagedExtraction(
                    source_id=source.id,
                    pattern_name=pattern.pattern_name,
                    normalized_slug=slugify(pattern.pattern_name),
                    extracted_data=pattern,
                    confidence=confidence,
                )
            )
            self.sources.mark_extracted(source.id)
            self.session.commit()
            result.succeeded += 1
            logger.info(
                "Extracted %r from %s (%d materials, confidence %.2f)",
                pattern.pattern_name,
                source.url,
                len(pattern.materials),
                confidence,
            )

        logger.info(
            "Extraction complete: %d extracted, %d skipped, %d failed",
            result.succeeded,
            result.skipped,
            result.failed,
        )
        return result.finish()

    def normalize(self) -> StageResult:
        """
        Group extracted records by pattern, canonicalize materials and
        record each group's consensus confidence.
        """
        result = StageResult(stage="normalize")
        pending = self.extractions.list_by_status(ExtractionStatus.EXTRACTED)

        usable = []
        for extraction in pending:
            record = extraction.extracted_data
            if not record.materials or not record.pattern_name.strip():
                logger.warning("Extraction %s has no name or materials, leaving it", extraction.id)
                result.skipped += 1
                continue
            usable.append(extraction)

        if not usable:
            logger.info("No extractions to normalize")
            return result.finish()

        settings = self.config.normalization
        groups = group_extracted_patterns(
            [e.extracted_data for e in usable], threshold=settings.pattern_cluster_threshold
        )
        logger.info(
            "Found %d unique patterns from %d extractions", len(groups), len(usable)
        )
        registry = CanonicalRegistry.from_config(self.session, settings)

        for group in groups:
            members = [usable[i] for i in group]
            result.processed += len(members)
            try:
                normalized = []
                for member in members:
                    pattern, _ = normalize_pattern_materials(member.extracted_data, registry)
                    normalized.append(pattern)

                consensus = build_consensus(
                    normalized,
                    cluster_threshold=settings.material_cluster_threshold,
                    ambiguous_slot_default=settings.ambiguous_slot_default,
                )
                for member, pattern in zip(members, normalized):
                    self.extractions.save_normalization(
                        member.id, pattern, consensus.slug, consensus.overall_confidence
                    )
                self.session.commit()
            except Exception as e:
                logger.exception("Normalization failed for %r", members[0].pattern_name)
                self.session.rollback()
                for member in members:
                    result.record_failure(str(member.id), str(e))
                continue

            result.succeeded += len(members)
            logger.info(
                "Consensus for %r: confidence %.2f from %d sources, %d materials",
                consensus.pattern_name,
                consensus.overall_confidence,
                consensus.source_count,
                len(consensus.materials),
            )

        result.details["groups"] = len(groups)
        logger.info("Normalization complete")
        return result.finish()

    def auto_approve(self, threshold: float | None = None) -> StageResult:
        """Approve normalized extractions whose consensus confidence meets the threshold."""
        result = StageResult(stage="auto-approve")
        if threshold is None:
            threshold = self.config.normalization.confidence_threshold
        result.details["threshold"] = threshold

        for extraction in self.extractions.list_by_status(ExtractionStatus.NORMALIZED):
            result.processed += 1
            score = extraction.consensus_confidence
            if score is None:
                score = extraction.confidence
            if score >= threshold:
                self.extractions.update_status(
                    extraction.id,
                    ExtractionStatus.APPROVED,
                    review_notes=f"auto-approved at confidence {score:.2f}",
                )
                result.succeeded += 1
            else:
                result.skipped += 1

        self.session.commit()
        logger.info(
            "Auto-approved %d extractions at >= %.2f (%d left for review)",
            result.succeeded,
            threshold,
            result.skipped,
        )
        return result.finish()

    def ingest(self) -> StageResult:
        """
        Write approved extractions to the production catalog.

        Extractions are grouped by slug and each group's consensus is rebuilt
        from just its current members. One transaction per pattern.
        """
        result = StageResult(stage="ingest")
        approved = self.extractions.list_by_status(ExtractionStatus.APPROVED)
        if not approved:
            logger.info("No approved extractions to ingest")
            return result.finish()

        by_slug: dict[str, list[StagedExtraction]] = {}
        for extraction in approved:
            by_slug.setdefault(extraction.normalized_slug, []).append(extraction)

        logger.info("Ingesting %d patterns", len(by_slug))
        settings = self.config.normalization

        for slug, group in by_slug.items():
            result.processed += 1
            try:
                consensus = build_consensus(
                    [e.record for e in group],
                    cluster_threshold=settings.material_cluster_threshold,
                    ambiguous_slot_default=settings.ambiguous_slot_default,
                )
                consensus.slug = slug
                ingest_consensus_pattern(self.session, consensus, group)
                self.extractions.mark_ingested([e.id for e in group])
                self.session.commit()
            except Exception as e:
                logger.exception("Ingest failed for %s", slug)
                self.session.rollback()
                result.record_failure(slug, str(e))
                continue
            result.succeeded += 1

        logger.info("Ingest complete: %d patterns, %d failed", result.succeeded, result.failed)
        return result.finish()

    async def run(self, queries: Sequence[str] | None = None) -> list[StageResult]:
        """Run every stage in order, stopping after a stage that fails outright."""
        results: list[StageResult] = []
        steps = [
            ("discover", lambda: self.discover(queries)),
            ("scrape", self.scrape),
            ("extract", lambda: asyncio.to_thread(self.extract)),
            ("normalize", self.normalize),
            ("auto-approve", self.auto_approve),
            ("ingest", self.ingest),
        ]
        for name, step in steps:
            logger.info("Running stage %s", name)
            outcome = step()
            if hasattr(outcome, "__await__"):
                outcome = await outcome
            results.append(outcome)
            if outcome.status == StageStatus.FAILED:
                logger.error("Pipeline stopped: stage %s failed", name)
                break
        return results

    async def import_url(self, url: str, query: str | None = None) -> StageResult:
        """
        Stage one URL by hand and fetch its content immediately.

        The source is left scraped, ready for the extract stage.
        """
        result = StageResult(stage="import-url")
        result.processed = 1
        url = url.strip()
        source_type = SourceType.YOUTUBE if is_youtube_url(url) else SourceType.BLOG
        draft = StagedSource(source_type=source_type, url=url, pattern_query=query or url)
        scraper = self._scraper_for(draft)
        if scraper is None:
            return result.abort(f"No scraper for {source_type.value} URLs")

        try:
            candidate = await scraper.describe_url(url)
        except Exception as e:
            logger.exception("Import failed for %s", url)
            result.record_failure(url, str(e))
            return result.finish(StageStatus.FAILED)
        if candidate is None:
            result.record_failure(url, "could not fetch page")
            return result.finish(StageStatus.FAILED)

        source = self.sources.upsert(candidate.to_staged_source(query or candidate.title))
        content = candidate.content if source.source_type != SourceType.YOUTUBE else None
        if not content:
            content = await scraper.fetch_content(source)

        if not content:
            self.sources.mark_failed(source.id, "no content retrieved")
            self.session.commit()
            result.record_failure(url, "no content retrieved")
            return result.finish(StageStatus.FAILED)

        self.sources.mark_scraped(source.id, content)
        self.session.commit()
        result.succeeded = 1
        result.details.update({"source_id": str(source.id), "title": source.title})
        logger.info("Imported %s as %r", url, source.title)
        return result.finish()

    def status(self) -> PipelineStats:
        """Current counts of staged rows, canonical materials and patterns."""
        return get_pipeline_stats(
            self.session, confidence_threshold=self.config.normalization.confidence_threshold
        )
