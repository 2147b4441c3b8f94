"""
Fly Pattern Ingestion Pipeline
==============================

This package turns instructional sources (videos, blog articles) into
curated fly patterns in the production catalog.

Pipeline Stages:
1. Discover - Backends find candidate sources per pattern name
2. Scrape - Fetch transcripts and article text
3. Extract - An LLM turns each text into a structured pattern record
4. Normalize - Canonicalize material names and build a consensus per pattern
5. Approve - Auto-approve on consensus confidence, or review by hand
6. Ingest - Write approved consensus patterns to the catalog
"""

from fly_pattern_db.ingestion.canonical import CanonicalRegistry, NormalizedMaterial
from fly_pattern_db.ingestion.config import (
    ConfigurationError,
    PipelineConfig,
    get_default_config,
    reset_default_config,
    validate_config,
)
from fly_pattern_db.ingestion.consensus import ConsensusPattern, build_consensus
from fly_pattern_db.ingestion.crawler import (
    Crawler,
    FetchResult,
    RateLimiter,
    TransientNetworkError,
    run_worker_pool,
    with_retries,
)
from fly_pattern_db.ingestion.extractor import (
    AnthropicExtractor,
    Extractor,
    MalformedExtraction,
    calculate_confidence,
    validate_extraction,
)
from fly_pattern_db.ingestion.ingest import ingest_consensus_pattern
from fly_pattern_db.ingestion.matcher import cluster_indices, combined_similarity
from fly_pattern_db.ingestion.orchestrator import PipelineOrchestrator, StageResult, StageStatus

__all__ = [
    # Config
    "ConfigurationError",
    "PipelineConfig",
    "get_default_config",
    "reset_default_config",
    "validate_config",
    # Crawler
    "Crawler",
    "FetchResult",
    "RateLimiter",
    "TransientNetworkError",
    "run_worker_pool",
    "with_retries",
    # Matching and consensus
    "combined_similarity",
    "cluster_indices",
    "CanonicalRegistry",
    "NormalizedMaterial",
    "ConsensusPattern",
    "build_consensus",
    # Extraction
    "Extractor",
    "AnthropicExtractor",
    "MalformedExtraction",
    "validate_extraction",
    "calculate_confidence",
    # Orchestration
    "PipelineOrchestrator",
    "StageResult",
    "StageStatus",
    "ingest_consensus_pattern",
]
