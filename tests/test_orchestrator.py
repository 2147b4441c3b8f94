"""Tests for the pipeline orchestrator using in-process fakes."""

import threading

import pytest

from fly_pattern_db.core.enums import ExtractionStatus, MaterialType, SourceStatus, SourceType
from fly_pattern_db.core.schema import ExtractedPattern, StagedExtraction, StagedSource
from fly_pattern_db.db.repositories import (
    CanonicalMaterialRepository,
    StagedExtractionRepository,
    StagedSourceRepository,
)
from fly_pattern_db.db.repositories_catalog import FlyPatternRepository
from fly_pattern_db.ingestion.adapters import Candidate, DiscoveryBackend, Scraper
from fly_pattern_db.ingestion.config import PipelineConfig
from fly_pattern_db.ingestion.extractor import Extractor
from fly_pattern_db.ingestion.orchestrator import PipelineOrchestrator, StageStatus
from fly_pattern_db.ingestion.review import reject_extraction


class FakeDiscovery(DiscoveryBackend):
    ADAPTER_NAME = "fake"

    def __init__(self, results: dict[str, list[Candidate]], fail: bool = False):
        self.results = results
        self.fail = fail
        self.queries: list[str] = []

    async def discover(self, query: str) -> list[Candidate]:
        self.queries.append(query)
        if self.fail:
            raise RuntimeError("search quota exceeded")
        return list(self.results.get(query, []))


class FakeScraper(Scraper):
    ADAPTER_NAME = "fake"

    def __init__(self, empty_urls: set[str] | None = None, page: Candidate | None = None):
        self.empty_urls = empty_urls or set()
        self.page = page

    async def fetch_content(self, source: StagedSource) -> str | None:
        if source.url in self.empty_urls:
            return None
        return f"content of {source.url}"

    async def describe_url(self, url: str) -> Candidate | None:
        return self.page


class FakeExtractor(Extractor):
    """Returns a prepared record for each source URL."""

    def __init__(self, by_url: dict[str, ExtractedPattern | dict | None]):
        self.by_url = by_url
        self.calls: list[str] = []
        self.threads: set[int] = set()

    def extract(self, content, pattern_query, source_type=SourceType.BLOG):
        url = content.removeprefix("content of ")
        self.calls.append(url)
        self.threads.add(threading.get_ident())
        return self.by_url.get(url)


def blog(url: str, title: str = "Woolly Bugger fly pattern recipe") -> Candidate:
    return Candidate(url=url, title=title, source_type=SourceType.BLOG, platform="Blog")


THREAD_VARIANT = "UNI-Thread 6/0"


@pytest.fixture
def woolly_records(make_pattern):
    """Three sources describing the same fly under two spellings."""
    variant = [
        ("Mustad 9672", MaterialType.HOOK),
        (THREAD_VARIANT, MaterialType.THREAD),
        ("Black Marabou", MaterialType.TAIL),
        ("Olive Chenille", MaterialType.BODY),
        ("Grizzly Saddle Hackle", MaterialType.HACKLE),
    ]
    return {
        "https://a.example.com/woolly": make_pattern("Woolly Bugger"),
        "https://b.example.com/woolly": make_pattern("Woolly Bugger"),
        "https://c.example.com/wooly": make_pattern("Wooly Bugger", variant),
    }


@pytest.fixture
def orchestrator_for(session):
    def _build(records=None, discovery=None, scraper=None, config=None) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            session,
            config=config or PipelineConfig(),
            discovery_backends=[discovery] if discovery else [],
            scrapers=[scraper or FakeScraper()],
            extractor=FakeExtractor(records or {}),
        )

    return _build


class TestFullRun:
    """End-to-end runs from discovery to the production catalog."""

    @pytest.mark.asyncio
    async def test_woolly_bugger_end_to_end(self, session, orchestrator_for, woolly_records) -> None:
        discovery = FakeDiscovery({"Woolly Bugger": [blog(url) for url in woolly_records]})
        orchestrator = orchestrator_for(woolly_records, discovery)

        results = await orchestrator.run(["Woolly Bugger"])

        assert [r.stage for r in results] == [
            "discover",
            "scrape",
            "extract",
            "normalize",
            "auto-approve",
            "ingest",
        ]
        assert all(r.status == StageStatus.COMPLETED for r in results)
        assert results[0].details["sources_staged"] == 3
        assert results[3].details["groups"] == 1

        assert CanonicalMaterialRepository(session).count() == 5
        pattern = FlyPatternRepository(session).get_by_slug("woolly-bugger")
        assert pattern is not None
        assert pattern.name == "Woolly Bugger"
        assert pattern.source_count == 3
        assert len(pattern.materials) == 5
        assert pattern.confidence > 0.8

        extractions = StagedExtractionRepository(session)
        assert extractions.count(status=ExtractionStatus.INGESTED) == 3

        stats = orchestrator.status()
        assert stats.patterns == 1
        assert stats.sources_extracted == 3

    @pytest.mark.asyncio
    async def test_extract_runs_off_the_event_loop(self, session, woolly_records) -> None:
        discovery = FakeDiscovery({"Woolly Bugger": [blog(url) for url in woolly_records]})
        extractor = FakeExtractor(woolly_records)
        orchestrator = PipelineOrchestrator(
            session,
            config=PipelineConfig(),
            discovery_backends=[discovery],
            scrapers=[FakeScraper()],
            extractor=extractor,
        )

        results = await orchestrator.run(["Woolly Bugger"])

        assert results[2].succeeded == 3
        assert sorted(extractor.calls) == sorted(woolly_records)
        assert extractor.threads
        assert threading.get_ident() not in extractor.threads

    @pytest.mark.asyncio
    async def test_run_stops_after_failed_stage(self, session, woolly_records) -> None:
        discovery = FakeDiscovery({"Woolly Bugger": [blog(url) for url in woolly_records]})
        orchestrator = PipelineOrchestrator(
            session,
            config=PipelineConfig(),
            discovery_backends=[discovery],
            scrapers=[FakeScraper()],
        )

        results = await orchestrator.run(["Woolly Bugger"])

        assert [r.stage for r in results] == ["discover", "scrape", "extract"]
        assert results[-1].status == StageStatus.FAILED
        assert "ANTHROPIC_API_KEY" in results[-1].errors[0]
        assert StagedSourceRepository(session).count_by_status() == {"scraped": 3}


class TestDiscover:
    """Tests for the discover stage."""

    @pytest.mark.asyncio
    async def test_top_k_and_dedupe(self, session, orchestrator_for) -> None:
        config = PipelineConfig()
        config.discovery.top_k = 2
        discovery = FakeDiscovery(
            {
                "Adams": [
                    blog("https://x.example.com/1", "Adams"),
                    blog("https://x.example.com/2", "How to tie the Adams"),
                    blog("https://x.example.com/2", "How to tie the Adams"),
                    blog("https://x.example.com/3", "Adams fly tying tutorial"),
                ]
            }
        )

        result = await orchestrator_for(discovery=discovery, config=config).discover(["Adams", "Adams "])

        assert result.processed == 1
        assert result.details["sources_staged"] == 2
        urls = {s.url for s in StagedSourceRepository(session).list_by_status(SourceStatus.DISCOVERED)}
        assert urls == {"https://x.example.com/2", "https://x.example.com/3"}

    @pytest.mark.asyncio
    async def test_seeds_already_discovered_are_skipped(self, session, orchestrator_for) -> None:
        StagedSourceRepository(session).upsert(
            StagedSource(source_type=SourceType.BLOG, url="https://old.example.com", pattern_query="Adams")
        )
        config = PipelineConfig()
        config.discovery.seed_patterns = ["Adams", "Zebra Midge"]
        discovery = FakeDiscovery({})

        result = await orchestrator_for(discovery=discovery, config=config).discover()

        assert result.skipped == 1
        assert discovery.queries == ["Zebra Midge"]

    @pytest.mark.asyncio
    async def test_failing_backend_counted(self, orchestrator_for) -> None:
        result = await orchestrator_for(discovery=FakeDiscovery({}, fail=True)).discover(["Adams"])

        assert result.status == StageStatus.COMPLETED
        assert result.failed == 1
        assert "search quota exceeded" in result.errors[0]

    @pytest.mark.asyncio
    async def test_missing_youtube_key_fails_stage(self, session) -> None:
        orchestrator = PipelineOrchestrator(session, config=PipelineConfig())

        result = await orchestrator.discover(["Adams"])

        assert result.status == StageStatus.FAILED
        assert "YOUTUBE_API_KEY" in result.errors[0]


class TestScrapeAndExtract:
    """Tests for scrape and extract."""

    @pytest.mark.asyncio
    async def test_empty_scrape_never_extracted(self, session, orchestrator_for, woolly_records) -> None:
        empty = "https://c.example.com/wooly"
        discovery = FakeDiscovery({"Woolly Bugger": [blog(url) for url in woolly_records]})
        orchestrator = orchestrator_for(
            woolly_records, discovery, scraper=FakeScraper(empty_urls={empty})
        )

        await orchestrator.discover(["Woolly Bugger"])
        scraped = await orchestrator.scrape()
        extracted = orchestrator.extract()

        assert scraped.succeeded == 2
        assert scraped.failed == 1
        assert extracted.succeeded == 2
        assert empty not in orchestrator.get_extractor().calls
        failed = StagedSourceRepository(session).get_by_url(empty)
        assert failed.status == SourceStatus.FAILED
        assert failed.error == "no content retrieved"

    @pytest.mark.asyncio
    async def test_malformed_extraction_skipped(self, session, orchestrator_for) -> None:
        url = "https://a.example.com/nothing"
        records = {url: {"pattern_name": "Mystery", "materials": []}}
        orchestrator = orchestrator_for(records, FakeDiscovery({"Mystery": [blog(url)]}))

        await orchestrator.discover(["Mystery"])
        await orchestrator.scrape()
        result = orchestrator.extract()

        assert result.skipped == 1
        assert result.succeeded == 0
        assert StagedSourceRepository(session).get_by_url(url).status == SourceStatus.SCRAPED
        assert StagedExtractionRepository(session).count() == 0


class TestNormalizeAndApprove:
    """Tests for normalize and auto-approve."""

    def _stage(self, session, pattern, url: str, confidence: float = 0.6) -> StagedExtraction:
        source = StagedSourceRepository(session).upsert(
            StagedSource(source_type=SourceType.BLOG, url=url, pattern_query=pattern.pattern_name)
        )
        return StagedExtractionRepository(session).create(
            StagedExtraction(
                source_id=source.id,
                pattern_name=pattern.pattern_name,
                normalized_slug="x",
                extracted_data=pattern,
                confidence=confidence,
            )
        )

    def test_records_without_materials_never_normalized(self, session, orchestrator_for) -> None:
        empty = self._stage(
            session, ExtractedPattern(pattern_name="Ghost"), "https://a.example.com/ghost"
        )

        result = orchestrator_for().normalize()

        assert result.skipped == 1
        fetched = StagedExtractionRepository(session).get_by_id(empty.id)
        assert fetched.status == ExtractionStatus.EXTRACTED

    def test_normalize_groups_and_scores(self, session, orchestrator_for, woolly_records) -> None:
        for url, pattern in woolly_records.items():
            self._stage(session, pattern, url)

        result = orchestrator_for().normalize()

        assert result.succeeded == 3
        assert result.details["groups"] == 1
        normalized = StagedExtractionRepository(session).list_by_status(ExtractionStatus.NORMALIZED)
        assert {e.normalized_slug for e in normalized} == {"woolly-bugger"}
        assert len(normalized) == 3
        assert all(e.consensus_confidence == pytest.approx(0.92) for e in normalized)
        assert all(THREAD_VARIANT not in [m.name for m in e.record.materials] for e in normalized)

    def test_auto_approve_threshold(self, session, orchestrator_for, make_pattern) -> None:
        self._stage(session, make_pattern("Woolly Bugger"), "https://a.example.com/w")
        self._stage(
            session,
            make_pattern("Adams", [("Mustad 94840", MaterialType.HOOK)], category="dry"),
            "https://a.example.com/adams",
        )
        orchestrator = orchestrator_for()
        orchestrator.normalize()

        result = orchestrator.auto_approve(threshold=0.8)

        assert result.succeeded == 1
        assert result.skipped == 1
        approved = StagedExtractionRepository(session).list_by_status(ExtractionStatus.APPROVED)
        assert [e.pattern_name for e in approved] == ["Woolly Bugger"]
        assert approved[0].review_notes.startswith("auto-approved")

    def test_ingest_skips_rejected_members(self, session, orchestrator_for, woolly_records) -> None:
        staged = {url: self._stage(session, pattern, url) for url, pattern in woolly_records.items()}
        orchestrator = orchestrator_for()
        orchestrator.normalize()
        assert orchestrator.auto_approve().succeeded == 3

        rejected = staged["https://c.example.com/wooly"]
        reject_extraction(session, rejected.id, notes="duplicate of the Woolly Bugger")
        session.commit()

        result = orchestrator.ingest()

        assert result.succeeded == 1
        pattern = FlyPatternRepository(session).get_by_slug("woolly-bugger")
        assert pattern.source_count == 2
        assert pattern.confidence == pytest.approx(0.88)
        extractions = StagedExtractionRepository(session)
        assert extractions.get_by_id(rejected.id).status == ExtractionStatus.REJECTED
        assert extractions.count(status=ExtractionStatus.INGESTED) == 2

    def test_ingest_with_nothing_approved(self, orchestrator_for) -> None:
        result = orchestrator_for().ingest()
        assert result.status == StageStatus.COMPLETED
        assert result.processed == 0


class TestImportUrl:
    """Tests for importing a single URL."""

    @pytest.mark.asyncio
    async def test_import_uses_page_content(self, session, orchestrator_for) -> None:
        page = Candidate(
            url="https://blog.example.com/adams",
            title="The Parachute Adams",
            source_type=SourceType.BLOG,
            content="Hook: Dry fly hook size 14",
        )
        orchestrator = orchestrator_for(scraper=FakeScraper(page=page))

        result = await orchestrator.import_url(" https://blog.example.com/adams ")

        assert result.status == StageStatus.COMPLETED
        assert result.details["title"] == "The Parachute Adams"
        source = StagedSourceRepository(session).get_by_url("https://blog.example.com/adams")
        assert source.status == SourceStatus.SCRAPED
        assert source.raw_content == "Hook: Dry fly hook size 14"
        assert source.pattern_query == "The Parachute Adams"

    @pytest.mark.asyncio
    async def test_import_unreachable(self, orchestrator_for) -> None:
        result = await orchestrator_for(scraper=FakeScraper(page=None)).import_url(
            "https://blog.example.com/gone"
        )

        assert result.status == StageStatus.FAILED
        assert result.errors == ["https://blog.example.com/gone: could not fetch page"]
