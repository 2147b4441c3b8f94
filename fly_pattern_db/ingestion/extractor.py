"""
Pattern Extraction Module
=========================

Turns scraped source text into an ExtractedPattern with an LLM tool call,
validates the result's shape, and scores how complete it is.

The LLM is an opaque collaborator: an Extractor returns the raw tool input
(or None) and validate_extraction() decides whether it is usable.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

import anthropic
from pydantic import ValidationError

from fly_pattern_db.core.enums import FlyCategory, MaterialType, SourceType
from fly_pattern_db.core.schema import ExtractedPattern
from fly_pattern_db.ingestion.config import ConfigurationError, PipelineConfig
from fly_pattern_db.ingestion.consensus import round_confidence
from fly_pattern_db.ingestion.crawler import RateLimiter, TransientNetworkError, with_retries_sync
from fly_pattern_db.ingestion.prompts import (
    EXTRACTION_TOOL,
    EXTRACTION_TOOL_NAME,
    SYSTEM_PROMPT,
    build_extraction_prompt,
)

logger = logging.getLogger(__name__)

MAX_PATTERN_NAME_LENGTH = 100
MAX_MATERIAL_NAME_LENGTH = 150

ALWAYS_REQUIRED_TYPES = (MaterialType.HOOK, MaterialType.THREAD)


class MalformedExtraction(ValueError):
    """An extraction result that cannot be staged."""


class Extractor(ABC):
    """Produces a raw structured record from source text."""

    @abstractmethod
    def extract(
        self,
        content: str,
        pattern_query: str,
        source_type: SourceType = SourceType.BLOG,
    ) -> dict[str, Any] | ExtractedPattern | None:
        """
        Extract one pattern from content.

        Returns:
            The raw record, or None when the content holds no pattern

        Raises:
            TransientNetworkError: retries exhausted talking to the backend
        """


class AnthropicExtractor(Extractor):
    """Extractor backed by a Claude tool_use call."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 4096,
        max_content_chars: int = 12000,
        max_retries: int = 3,
        backoff_seconds: float = 1.0,
        request_delay: float = 1.0,
        client: anthropic.Anthropic | None = None,
    ):
        """
        Initialize the Anthropic extractor.

        Args:
            api_key: Anthropic API key.
            model: Model name.
            client: Pre-built client, mainly for tests.
        """
        self.client = client or anthropic.Anthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.max_content_chars = max_content_chars
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.rate_limiter = RateLimiter(request_delay)

    @classmethod
    def from_config(cls, config: PipelineConfig) -> AnthropicExtractor:
        """Create extractor from configuration."""
        if not config.extraction.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY environment variable is required")
        return cls(
            api_key=config.extraction.api_key,
            model=config.extraction.model,
            max_tokens=config.extraction.max_tokens,
            max_content_chars=config.extraction.max_content_chars,
            max_retries=config.global_config.max_retries,
            backoff_seconds=config.global_config.backoff_seconds,
            request_delay=config.extraction.request_delay,
        )

    def extract(
        self,
        content: str,
        pattern_query: str,
        source_type: SourceType = SourceType.BLOG,
    ) -> dict[str, Any] | None:
        prompt = build_extraction_prompt(
            pattern_query, content, source_type, max_content_chars=self.max_content_chars
        )
        logger.info(
            "Extracting %r from %s content (%d chars)",
            pattern_query,
            SourceType(source_type).value,
            len(content),
        )

        response = with_retries_sync(
            lambda: self._create_message(prompt),
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            label=f"extract:{pattern_query}",
        )

        for block in response.content:
            if block.type == "tool_use" and block.name == EXTRACTION_TOOL_NAME:
                return dict(block.input)

        logger.error("No tool_use block in response for %r", pattern_query)
        return None

    def _create_message(self, prompt: str) -> Any:
        self.rate_limiter.acquire_sync()
        try:
            return self.client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=SYSTEM_PROMPT,
                tools=[EXTRACTION_TOOL],
                tool_choice={"type": "tool", "name": EXTRACTION_TOOL_NAME},
                messages=[{"role": "user", "content": prompt}],
            )
        except (anthropic.APIConnectionError, anthropic.RateLimitError) as e:
            raise TransientNetworkError(f"Anthropic API unavailable: {e}") from e
        except anthropic.APIStatusError as e:
            if e.status_code >= 500:
                raise TransientNetworkError(
                    f"Anthropic API error {e.status_code}", status_code=e.status_code
                ) from e
            raise


def validate_extraction(raw: dict[str, Any] | ExtractedPattern | None) -> ExtractedPattern:
    """
    Check an extractor result and bring it into canonical shape.

    Accepts only a record with a non-empty name and at least one hook-type
    material. The accepted record has hook and thread marked required, one
    material per type (first occurrence kept) and positions renumbered 1..N.

    Raises:
        MalformedExtraction: the result is missing, unparseable or incomplete
    """
    if raw is None:
        raise MalformedExtraction("extractor returned no result")

    if isinstance(raw, ExtractedPattern):
        pattern = raw
    else:
        try:
            pattern = ExtractedPattern.model_validate(raw)
        except ValidationError as e:
            raise MalformedExtraction(f"invalid record shape: {e.error_count()} errors") from e

    name = pattern.pattern_name.strip()[:MAX_PATTERN_NAME_LENGTH]
    if not name:
        raise MalformedExtraction("no pattern name")

    materials = [m for m in pattern.materials if m.name]
    if not materials:
        raise MalformedExtraction(f"no materials extracted for {name!r}")
    if not any(m.type == MaterialType.HOOK for m in materials):
        raise MalformedExtraction(f"no hook in extracted materials for {name!r}")

    seen_types: set[MaterialType] = set()
    cleaned = []
    for material in materials:
        if material.type in seen_types:
            logger.debug("Dropping duplicate %s material %r", material.type.value, material.name)
            continue
        seen_types.add(material.type)
        cleaned.append(
            material.model_copy(
                update={
                    "name": material.name[:MAX_MATERIAL_NAME_LENGTH],
                    "required": material.required or material.type in ALWAYS_REQUIRED_TYPES,
                    "position": len(cleaned) + 1,
                }
            )
        )

    return pattern.model_copy(update={"pattern_name": name, "materials": cleaned})


def calculate_confidence(
    pattern: ExtractedPattern,
    source_type: SourceType | str,
    content_length: int,
) -> float:
    """
    Score how complete and trustworthy one extraction looks.

    Higher score means more likely to be accurate and complete.

    Returns:
        Score between 0.0 and 1.0, rounded to 2 decimals
    """
    source_type = SourceType(source_type)
    materials = pattern.materials
    score = 0
    max_score = 0

    # Pattern name present and reasonable length
    max_score += 10
    if 2 < len(pattern.pattern_name) < 100:
        score += 10

    # Meaningful description
    max_score += 10
    if len(pattern.description) > 50:
        score += 10
    elif len(pattern.description) > 20:
        score += 5

    # Material count
    max_score += 20
    if len(materials) >= 4:
        score += 20
    elif len(materials) >= 2:
        score += 10
    elif len(materials) >= 1:
        score += 5

    types = [m.type for m in materials]

    max_score += 10
    if MaterialType.HOOK in types:
        score += 10

    max_score += 5
    if MaterialType.THREAD in types:
        score += 5

    # Positions in tying order
    max_score += 5
    positions = [m.position for m in materials]
    if all(a <= b for a, b in zip(positions, positions[1:])):
        score += 5

    max_score += 5
    if all(m.name for m in materials):
        score += 5

    # Category is specific
    max_score += 5
    if pattern.category != FlyCategory.OTHER.value:
        score += 5

    # Content source quality
    max_score += 10
    if source_type == SourceType.BLOG and content_length > 1000:
        score += 10
    elif source_type == SourceType.YOUTUBE and content_length > 500:
        score += 10
    elif content_length > 200:
        score += 5

    max_score += 5
    if pattern.origin:
        score += 5

    # Substitutions and variations are signs of a detailed source
    max_score += 5
    if pattern.substitutions:
        score += 5

    max_score += 5
    if pattern.variations:
        score += 5

    # Material type coverage
    max_score += 5
    distinct_types = len(set(types))
    if distinct_types >= 4:
        score += 5
    elif distinct_types >= 3:
        score += 3

    return round_confidence(score / max_score)
