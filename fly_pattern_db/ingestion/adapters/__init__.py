"""
Adapter Registry Module
=======================

Central registry for source-specific adapters.
Provides factory functions for creating adapters by name.
"""

from __future__ import annotations

from collections.abc import Callable

import httpx

from fly_pattern_db.ingestion.adapters.base import (
    Candidate,
    DiscoveryBackend,
    Scraper,
    score_candidate,
    select_top_candidates,
)
from fly_pattern_db.ingestion.adapters.blogs import BlogAdapter
from fly_pattern_db.ingestion.adapters.youtube import YouTubeAdapter, is_youtube_url
from fly_pattern_db.ingestion.config import PipelineConfig

AdapterFactory = Callable[[PipelineConfig, httpx.AsyncBaseTransport | None], DiscoveryBackend]

# Registry mapping adapter names to factories
ADAPTER_REGISTRY: dict[str, AdapterFactory] = {
    "youtube": lambda config, transport: YouTubeAdapter(
        config.youtube, config.global_config, transport=transport
    ),
    "blog": lambda config, transport: BlogAdapter(
        config.enabled_blog_sites(), config.global_config, transport=transport
    ),
}


def get_adapter(
    adapter_type: str,
    config: PipelineConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DiscoveryBackend | None:
    """
    Get an adapter instance by type name.

    Args:
        adapter_type: Name of the adapter (e.g., "youtube")
        config: Pipeline configuration
        transport: Optional httpx transport shared by the adapter's crawlers

    Returns:
        Adapter instance, or None if type not found
    """
    factory = ADAPTER_REGISTRY.get(adapter_type)
    if factory is None:
        return None
    return factory(config, transport)


def register_adapter(name: str, factory: AdapterFactory) -> None:
    """Register a new adapter factory."""
    ADAPTER_REGISTRY[name] = factory


def list_adapters() -> list[str]:
    """List all registered adapter names."""
    return list(ADAPTER_REGISTRY.keys())


def build_adapters(
    config: PipelineConfig,
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[DiscoveryBackend]:
    """
    Instantiate the configured discovery backends.

    Raises:
        ValueError: a configured backend name is not registered
    """
    adapters = []
    for name in config.discovery.backends:
        adapter = get_adapter(name, config, transport)
        if adapter is None:
            raise ValueError(f"Unknown discovery backend: {name}. Available: {list_adapters()}")
        adapters.append(adapter)
    return adapters


__all__ = [
    # Registry functions
    "get_adapter",
    "register_adapter",
    "list_adapters",
    "build_adapters",
    "ADAPTER_REGISTRY",
    # Base classes
    "Candidate",
    "DiscoveryBackend",
    "Scraper",
    "score_candidate",
    "select_top_candidates",
    # Concrete adapters
    "BlogAdapter",
    "YouTubeAdapter",
    "is_youtube_url",
]
