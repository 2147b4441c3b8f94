"""
Adapter Base Module
===================

Defines the abstract interfaces for source-specific adapters.
Adapters are responsible for:
1. Discovering candidate sources for a pattern query
2. Fetching the full text of a staged source

Which candidates proceed is decided here, not by the adapters:
score_candidate() and select_top_candidates() rank what a backend found.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from fly_pattern_db.core.enums import SourceType
from fly_pattern_db.core.schema import StagedSource

# Title phrases that mark instructional content, with their score.
TITLE_KEYWORDS: dict[str, int] = {
    "how to tie": 10,
    "fly tying": 8,
    "recipe": 5,
    "tutorial": 5,
    "step by step": 5,
    "fly pattern": 5,
    "materials": 3,
}

MATERIAL_KEYWORDS = [
    "hook",
    "thread",
    "tail",
    "body",
    "hackle",
    "wing",
    "dubbing",
    "bead",
    "rib",
    "thorax",
    "chenille",
]

# Channels and authors known for accurate, detailed tying instructions.
# Boosts ranking only; discovery is never limited to them.
KNOWN_CREATORS = [
    "tim flagler",
    "tightline",
    "davie mcphail",
    "intherifle",
    "fly fish food",
    "lance egan",
    "mcfly angler",
    "hans weilenmann",
    "barry ord clarke",
    "cheech",
    "curtis fry",
    "charlie craven",
    "troutbitten",
    "mad river outfitters",
    "orvis",
    "flylords",
    "dressed irons",
    "piscator flies",
    "gunnar brammer",
    "andrew grillos",
    "ants fly fishing",
    "cotter's fly shop",
    "rio products",
    "loon outdoors",
    "trident fly fishing",
    "the new fly fisher",
    "postfly",
    "fatties on the fly",
    "fly tying 123",
    "steve parrott",
    "hans stephenson",
    "matt grobert",
    "al & gretchen beatty",
]


@dataclass
class Candidate:
    """
    A source found by a discovery backend.

    content carries whatever text the backend already has (a video
    description and transcript, an article body); it is staged with the
    source so the scrape stage can fall back to it.
    """

    url: str
    title: str
    source_type: SourceType
    snippet: str = ""
    engagement: int = 0
    creator_name: str | None = None
    platform: str | None = None
    content: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_staged_source(self, pattern_query: str) -> StagedSource:
        """Build the staged source row for this candidate."""
        return StagedSource(
            source_type=self.source_type,
            url=self.url,
            title=self.title,
            creator_name=self.creator_name,
            platform=self.platform,
            pattern_query=pattern_query,
            engagement=self.engagement,
            metadata=self.metadata,
            raw_content=self.content,
        )


def score_candidate(candidate: Candidate) -> int:
    """
    Score a candidate for relevance to fly tying instruction.

    Higher score = more relevant. Signals: engagement tiers, transcript or
    structured-materials availability, title phrases, body length, material
    keywords in the snippet, and a known or at least named creator.
    """
    score = 0

    if candidate.metadata.get("has_transcript"):
        score += 30
    if candidate.metadata.get("has_materials_section"):
        score += 15

    if candidate.engagement > 100_000:
        score += 10
    elif candidate.engagement > 10_000:
        score += 7
    elif candidate.engagement > 1_000:
        score += 4
    if int(candidate.metadata.get("like_count") or 0) > 1_000:
        score += 5

    title = candidate.title.lower()
    for phrase, points in TITLE_KEYWORDS.items():
        if phrase in title:
            score += points

    body = candidate.snippet or candidate.content or ""
    if len(body) > 2000:
        score += 10
    elif len(body) > 500:
        score += 5

    body_lower = body.lower()
    score += 2 * sum(1 for kw in MATERIAL_KEYWORDS if kw in body_lower)

    if candidate.creator_name:
        creator = candidate.creator_name.lower()
        if any(known in creator for known in KNOWN_CREATORS):
            score += 15
        else:
            score += 3

    return score


def select_top_candidates(candidates: list[Candidate], top_k: int) -> list[Candidate]:
    """
    Keep the top_k highest-scoring candidates, one per URL.

    Equal scores keep discovery order.
    """
    seen: set[str] = set()
    unique: list[Candidate] = []
    for candidate in candidates:
        if candidate.url in seen:
            continue
        seen.add(candidate.url)
        unique.append(candidate)

    ranked = sorted(unique, key=score_candidate, reverse=True)
    return ranked[: max(0, top_k)]


class DiscoveryBackend(ABC):
    """Finds candidate sources for a pattern query."""

    ADAPTER_NAME: str = "base"
    SOURCE_TYPE: SourceType = SourceType.BLOG

    @abstractmethod
    async def discover(self, query: str) -> list[Candidate]:
        """
        Find candidate sources for a pattern name.

        Raises:
            ConfigurationError: the backend cannot run at all
            TransientNetworkError: retries exhausted talking to the backend
        """


class Scraper(ABC):
    """Fetches the full text of a staged source."""

    ADAPTER_NAME: str = "base"

    @abstractmethod
    async def fetch_content(self, source: StagedSource) -> str | None:
        """
        Fetch the best available full text for a source.

        Returns:
            The text, or None when nothing usable could be retrieved
        """

    def handles(self, source: StagedSource) -> bool:
        """Whether this scraper should be used for a source."""
        return True

    async def describe_url(self, url: str) -> Candidate | None:
        """Build a candidate for a manually imported URL, if supported."""
        return None
