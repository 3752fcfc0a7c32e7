"""
Shared pass search service for the API.

Holds the process-wide PassSearch built from configuration. Pass
computations go through a PassWorkerClient so request handlers never
propagate on their own thread. The cache sweep is started and stopped by
the application lifecycle hooks.
"""

import logging
import os
from typing import Optional

from orbit_search.config import SearchConfig, load_config
from orbit_search.orbit import OrbitalMechanics
from orbit_search.search import PassSearch

logger = logging.getLogger(__name__)

# Global search instance
_search: Optional[PassSearch] = None


def create_search(
    config: Optional[SearchConfig] = None, mechanics: Optional[OrbitalMechanics] = None
) -> PassSearch:
    """Build a PassSearch from configuration (ORBIT_SEARCH_CONFIG by default)."""
    if config is None:
        config = load_config(os.environ.get("ORBIT_SEARCH_CONFIG"))
    return PassSearch(
        cache=config.create_cache(),
        provider=config.create_provider(),
        prefilter=config.create_prefilter(),
        step_seconds=config.step_seconds,
        horizon_deg=config.horizon_deg,
        result_ttl=config.result_ttl,
        worker=config.create_worker(mechanics),
        mechanics=mechanics,
    )


def shutdown_search(search: PassSearch) -> None:
    """Stop the cache sweep and the worker of a PassSearch."""
    search.cache.dispose()
    if search.worker is not None:
        search.worker.shutdown(wait=False)


def get_search() -> PassSearch:
    """Get the global pass search instance."""
    global _search
    if _search is None:
        _search = create_search()
    return _search


def reset_search(
    config: Optional[SearchConfig] = None, mechanics: Optional[OrbitalMechanics] = None
) -> PassSearch:
    """Reset the global pass search instance.

    The previous instance's cache sweep and worker are stopped.

    Args:
        config: Optional configuration (loaded from file/environment if omitted)
        mechanics: Optional orbital-mechanics capability

    Returns:
        New PassSearch instance
    """
    global _search
    if _search is not None:
        shutdown_search(_search)
    _search = create_search(config, mechanics)
    return _search
