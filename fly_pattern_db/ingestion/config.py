"""
Pipeline Configuration Module
=============================

Loads pipeline settings from a YAML file into dataclasses. Every key has a
default, so a missing or partial file still yields a usable configuration.
Credentials and a few tuning knobs can be overridden from the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_USER_AGENT = "FlyPatternDB/1.0 (fly pattern database; educational use)"

DEFAULT_SEARCH_QUERIES = [
    "how to tie {pattern} fly",
    "{pattern} fly tying tutorial",
    "{pattern} fly pattern recipe",
]


class ConfigurationError(Exception):
    """Raised when configuration is missing or unusable for a stage."""


@dataclass
class GlobalConfig:
    """Network and worker-pool settings shared by every stage."""

    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = 15.0
    max_retries: int = 3
    backoff_seconds: float = 1.0
    concurrency: int = 5
    request_delay: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> GlobalConfig:
        """Create from dictionary, using defaults for missing values."""
        if data is None:
            data = {}
        return cls(
            user_agent=data.get("user_agent", DEFAULT_USER_AGENT),
            request_timeout=float(data.get("request_timeout", 15.0)),
            max_retries=int(data.get("max_retries", 3)),
            backoff_seconds=float(data.get("backoff_seconds", 1.0)),
            concurrency=int(data.get("concurrency", 5)),
            request_delay=float(data.get("request_delay", 1.0)),
        )


@dataclass
class NormalizationConfig:
    """Thresholds for canonical matching, material clustering and approval."""

    fuzzy_match_threshold: float = 0.85
    material_cluster_threshold: float = 0.8
    pattern_cluster_threshold: float = 0.85
    confidence_threshold: float = 0.7
    ambiguous_slot_default: int = 1

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> NormalizationConfig:
        """Create from dictionary."""
        if data is None:
            data = {}
        return cls(
            fuzzy_match_threshold=float(data.get("fuzzy_match_threshold", 0.85)),
            material_cluster_threshold=float(data.get("material_cluster_threshold", 0.8)),
            pattern_cluster_threshold=float(data.get("pattern_cluster_threshold", 0.85)),
            confidence_threshold=float(data.get("confidence_threshold", 0.7)),
            ambiguous_slot_default=int(data.get("ambiguous_slot_default", 1)),
        )


@dataclass
class YouTubeConfig:
    """YouTube Data API settings."""

    api_key: str = ""
    max_results_per_query: int = 10
    search_queries: list[str] = field(default_factory=lambda: list(DEFAULT_SEARCH_QUERIES))
    request_delay: float = 0.2

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> YouTubeConfig:
        """Create from dictionary."""
        if data is None:
            data = {}
        return cls(
            api_key=data.get("api_key", "") or "",
            max_results_per_query=int(data.get("max_results_per_query", 10)),
            search_queries=list(data.get("search_queries") or DEFAULT_SEARCH_QUERIES),
            request_delay=float(data.get("request_delay", 0.2)),
        )


@dataclass
class ExtractionConfig:
    """LLM extraction settings."""

    api_key: str = ""
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    max_content_chars: int = 12000
    request_delay: float = 1.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> ExtractionConfig:
        """Create from dictionary."""
        if data is None:
            data = {}
        return cls(
            api_key=data.get("api_key", "") or "",
            model=data.get("model", "claude-sonnet-4-20250514"),
            max_tokens=int(data.get("max_tokens", 4096)),
            max_content_chars=int(data.get("max_content_chars", 12000)),
            request_delay=float(data.get("request_delay", 1.0)),
        )


@dataclass
class DiscoveryConfig:
    """Which discovery backends run and how many candidates each keeps."""

    top_k: int = 5
    backends: list[str] = field(default_factory=lambda: ["youtube", "blog"])
    seed_patterns: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DiscoveryConfig:
        """Create from dictionary."""
        if data is None:
            data = {}
        return cls(
            top_k=int(data.get("top_k", 5)),
            backends=list(data.get("backends") or ["youtube", "blog"]),
            seed_patterns=list(data.get("seed_patterns") or []),
        )


@dataclass
class BlogSelectors:
    """CSS selectors for one blog site."""

    result_links: str = "article a"
    title: str = "h1"
    content: str = ".entry-content, article"
    materials: str = "table"
    author: str = ".author, .byline"

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> BlogSelectors:
        """Create from dictionary."""
        if data is None:
            return cls()
        defaults = cls()
        return cls(
            result_links=data.get("result_links", defaults.result_links),
            title=data.get("title", defaults.title),
            content=data.get("content", defaults.content),
            materials=data.get("materials", defaults.materials),
            author=data.get("author", defaults.author),
        )


@dataclass
class BlogSiteConfig:
    """Configuration for a single searchable blog site."""

    name: str
    base_url: str
    search_url_template: str
    selectors: BlogSelectors = field(default_factory=BlogSelectors)
    max_pages: int = 2
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BlogSiteConfig:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            base_url=data["base_url"],
            search_url_template=data["search_url_template"],
            selectors=BlogSelectors.from_dict(data.get("selectors")),
            max_pages=int(data.get("max_pages", 2)),
            enabled=data.get("enabled", True),
        )

    def owns(self, url: str) -> bool:
        """Whether a URL belongs to this site."""
        return url.startswith(self.base_url.rstrip("/"))


@dataclass
class PipelineConfig:
    """Complete pipeline configuration."""

    global_config: GlobalConfig = field(default_factory=GlobalConfig)
    normalization: NormalizationConfig = field(default_factory=NormalizationConfig)
    youtube: YouTubeConfig = field(default_factory=YouTubeConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    blog_sites: list[BlogSiteConfig] = field(default_factory=list)
    config_path: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PipelineConfig:
        """Create from a parsed YAML document."""
        if data is None:
            data = {}
        return cls(
            global_config=GlobalConfig.from_dict(data.get("global")),
            normalization=NormalizationConfig.from_dict(data.get("normalization")),
            youtube=YouTubeConfig.from_dict(data.get("youtube")),
            extraction=ExtractionConfig.from_dict(data.get("extraction")),
            discovery=DiscoveryConfig.from_dict(data.get("discovery")),
            blog_sites=[BlogSiteConfig.from_dict(s) for s in data.get("blog_sites") or []],
        )

    @classmethod
    def load(cls, config_path: Path | str | None = None) -> PipelineConfig:
        """
        Load configuration from a YAML file and apply environment overrides.

        Args:
            config_path: Path to the YAML file. A missing file yields defaults.
        """
        data: dict[str, Any] = {}
        resolved: Path | None = None
        if config_path is not None:
            resolved = Path(config_path).expanduser().resolve()
            if resolved.exists():
                with open(resolved) as f:
                    data = yaml.safe_load(f) or {}
            else:
                resolved = None

        config = cls.from_dict(data)
        config.config_path = resolved
        config.apply_env()
        return config

    def apply_env(self) -> None:
        """Overlay credentials and tuning values from environment variables."""
        if os.environ.get("YOUTUBE_API_KEY"):
            self.youtube.api_key = os.environ["YOUTUBE_API_KEY"]
        if os.environ.get("ANTHROPIC_API_KEY"):
            self.extraction.api_key = os.environ["ANTHROPIC_API_KEY"]
        if os.environ.get("PIPELINE_CONCURRENCY"):
            self.global_config.concurrency = int(os.environ["PIPELINE_CONCURRENCY"])
        if os.environ.get("PIPELINE_CONFIDENCE_THRESHOLD"):
            self.normalization.confidence_threshold = float(
                os.environ["PIPELINE_CONFIDENCE_THRESHOLD"]
            )

    def enabled_blog_sites(self) -> list[BlogSiteConfig]:
        """Blog sites that discovery and scraping should use."""
        return [s for s in self.blog_sites if s.enabled]

    def blog_site_for_url(self, url: str) -> BlogSiteConfig | None:
        """Find the configured blog site a URL belongs to."""
        for site in self.blog_sites:
            if site.owns(url):
                return site
        return None

    def validate(self, stages: list[str] | None = None) -> list[str]:
        """
        Check that the credentials needed by the given stages are present.

        Args:
            stages: Stage names to check; None checks every stage.

        Returns:
            Human-readable error messages; empty when the config is usable.
        """
        errors: list[str] = []
        check_all = stages is None
        stages = stages or []

        needs_youtube = "youtube" in self.discovery.backends and (
            check_all or "discover" in stages
        )
        if needs_youtube and not self.youtube.api_key:
            errors.append("YOUTUBE_API_KEY environment variable is required")
        if (check_all or "extract" in stages) and not self.extraction.api_key:
            errors.append("ANTHROPIC_API_KEY environment variable is required")
        if self.global_config.concurrency < 1:
            errors.append("global.concurrency must be at least 1")
        if not 0.0 <= self.normalization.confidence_threshold <= 1.0:
            errors.append("normalization.confidence_threshold must be between 0 and 1")
        return errors


def default_config_path() -> Path:
    """
    Resolve the configuration file path.

    Uses PIPELINE_CONFIG_PATH if set, otherwise config/pipeline.yaml at the
    project root.
    """
    env_path = os.environ.get("PIPELINE_CONFIG_PATH")
    if env_path:
        return Path(env_path)
    project_root = Path(__file__).parent.parent.parent
    return project_root / "config" / "pipeline.yaml"


# Global config instance
_default_config: PipelineConfig | None = None


def get_default_config() -> PipelineConfig:
    """Get the process-wide pipeline configuration, loading it on first use."""
    global _default_config
    if _default_config is None:
        _default_config = PipelineConfig.load(default_config_path())
    return _default_config


def reset_default_config() -> None:
    """Reset the default config (useful for testing)."""
    global _default_config
    _default_config = None


def validate_config(stages: list[str] | None = None) -> list[str]:
    """Validate the default configuration for the given stages."""
    return get_default_config().validate(stages)
