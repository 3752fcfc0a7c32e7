"""
Configuration for the pass search pipeline.

Settings come from dataclass defaults, optionally overridden by a YAML
file and then by ORBIT_SEARCH_* environment variables.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union
import logging
import os

import yaml

from .cache import (
    DEFAULT_RATE_LIMIT,
    DEFAULT_RATE_WINDOW,
    DEFAULT_SWEEP_INTERVAL,
    GENERIC_MINIMUM_TTL,
    MAX_CACHE_AGE,
    TLE_MINIMUM_TTL,
    ElementCache,
    MemoryCacheStorage,
    RateLimiter,
    SQLiteCacheStorage,
)
from .orbit import OrbitalMechanics
from .prefilter import DEFAULT_REFRACTION_DEG, VisibilityPreFilter
from .provider import DEFAULT_BASE_URL, DEFAULT_TIMEOUT, ElementSetProvider
from .worker import PassWorkerClient

logger = logging.getLogger(__name__)

ENV_PREFIX = "ORBIT_SEARCH_"
CACHE_BACKENDS = ("memory", "sqlite")
WORKER_BACKENDS = ("process", "thread")

# YAML (section, key) -> SearchConfig field
_YAML_FIELDS: Dict[Tuple[str, str], str] = {
    ("propagation", "step_seconds"): "step_seconds",
    ("propagation", "horizon_deg"): "horizon_deg",
    ("propagation", "min_elevation_deg"): "min_elevation_deg",
    ("prefilter", "min_elevation_deg"): "prefilter_min_elevation_deg",
    ("prefilter", "refraction_deg"): "prefilter_refraction_deg",
    ("cache", "backend"): "cache_backend",
    ("cache", "path"): "cache_path",
    ("cache", "tle_min_ttl"): "tle_min_ttl",
    ("cache", "generic_min_ttl"): "generic_min_ttl",
    ("cache", "max_age"): "cache_max_age",
    ("cache", "sweep_interval"): "sweep_interval",
    ("cache", "result_ttl"): "result_ttl",
    ("rate_limit", "max_requests"): "rate_limit_requests",
    ("rate_limit", "window_seconds"): "rate_limit_window",
    ("provider", "base_url"): "provider_base_url",
    ("provider", "timeout"): "provider_timeout",
    ("worker", "max_workers"): "worker_count",
    ("worker", "backend"): "worker_backend",
}


@dataclass
class SearchConfig:
    """Pass search settings. Durations are in seconds."""

    step_seconds: float = 30.0
    horizon_deg: float = 0.0
    min_elevation_deg: float = 10.0

    prefilter_min_elevation_deg: float = 10.0
    prefilter_refraction_deg: float = DEFAULT_REFRACTION_DEG

    cache_backend: str = "memory"
    cache_path: str = "data/cache.db"
    tle_min_ttl: float = TLE_MINIMUM_TTL
    generic_min_ttl: float = GENERIC_MINIMUM_TTL
    cache_max_age: float = MAX_CACHE_AGE
    sweep_interval: float = DEFAULT_SWEEP_INTERVAL
    result_ttl: float = 3600.0

    rate_limit_requests: int = DEFAULT_RATE_LIMIT
    rate_limit_window: float = DEFAULT_RATE_WINDOW

    provider_base_url: str = DEFAULT_BASE_URL
    provider_timeout: float = DEFAULT_TIMEOUT

    worker_count: int = 1
    worker_backend: str = "process"

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.step_seconds <= 0:
            raise ValueError(f"step_seconds must be > 0, got {self.step_seconds}")
        if not -90 <= self.min_elevation_deg <= 90:
            raise ValueError(f"min_elevation_deg must be in [-90, 90], got {self.min_elevation_deg}")
        if self.cache_backend not in CACHE_BACKENDS:
            raise ValueError(
                f"cache_backend must be one of {CACHE_BACKENDS}, got {self.cache_backend!r}"
            )
        if self.rate_limit_requests < 1:
            raise ValueError(f"rate_limit_requests must be >= 1, got {self.rate_limit_requests}")
        for name in ("rate_limit_window", "sweep_interval", "cache_max_age", "provider_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0, got {getattr(self, name)}")
        if self.worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {self.worker_count}")
        if self.worker_backend not in WORKER_BACKENDS:
            raise ValueError(
                f"worker_backend must be one of {WORKER_BACKENDS}, got {self.worker_backend!r}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def create_cache(self) -> ElementCache:
        """Build an ElementCache (not started) from these settings."""
        if self.cache_backend == "sqlite":
            storage = SQLiteCacheStorage(self.cache_path)
        else:
            storage = MemoryCacheStorage()
        return ElementCache(
            storage=storage,
            rate_limiter=RateLimiter(self.rate_limit_requests, self.rate_limit_window),
            tle_min_ttl=self.tle_min_ttl,
            generic_min_ttl=self.generic_min_ttl,
            max_age=self.cache_max_age,
            sweep_interval=self.sweep_interval,
        )

    def create_provider(self) -> ElementSetProvider:
        return ElementSetProvider(base_url=self.provider_base_url, timeout=self.provider_timeout)

    def create_prefilter(self) -> VisibilityPreFilter:
        return VisibilityPreFilter(
            min_elevation_deg=self.prefilter_min_elevation_deg,
            refraction_deg=self.prefilter_refraction_deg,
        )

    def create_worker(self, mechanics: Optional[OrbitalMechanics] = None) -> PassWorkerClient:
        """
        Build a PassWorkerClient from these settings.

        The "process" backend runs computations in a process pool, so a
        custom ``mechanics`` must be picklable; "thread" keeps them in this
        process on a thread pool.
        """
        if self.worker_backend == "thread":
            executor = ThreadPoolExecutor(max_workers=self.worker_count, thread_name_prefix="pass-worker")
            return PassWorkerClient(executor=executor, mechanics=mechanics, owns_executor=True)
        return PassWorkerClient(max_workers=self.worker_count, mechanics=mechanics)


def _coerce(field_name: str, value: Any) -> Any:
    field_type = {f.name: f.type for f in fields(SearchConfig)}[field_name]
    type_name = field_type if isinstance(field_type, str) else field_type.__name__
    try:
        if type_name == "int":
            return int(value)
        if type_name == "float":
            return float(value)
        return str(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid value for {field_name}: {value!r}") from e


def _from_yaml(raw: Dict[str, Any]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for section, entries in raw.items():
        if not isinstance(entries, dict):
            logger.warning(f"Ignoring configuration section '{section}': expected a mapping")
            continue
        for key, value in entries.items():
            field_name = _YAML_FIELDS.get((section, key))
            if field_name is None:
                logger.warning(f"Unknown configuration key: {section}.{key}")
                continue
            values[field_name] = _coerce(field_name, value)
    return values


def _from_environment() -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for f in fields(SearchConfig):
        env_value = os.environ.get(ENV_PREFIX + f.name.upper())
        if env_value is not None:
            values[f.name] = _coerce(f.name, env_value)
            logger.debug(f"Configuration {f.name} overridden from environment")
    return values


def load_config(config_path: Optional[Union[str, Path]] = None) -> SearchConfig:
    """
    Load configuration.

    Args:
        config_path: YAML file; defaults only when None or missing

    Returns:
        SearchConfig instance

    Raises:
        ValueError: If the file is malformed or a value is invalid

    Environment Variables:
        ORBIT_SEARCH_<FIELD>: Override any field, e.g. ORBIT_SEARCH_STEP_SECONDS
            or ORBIT_SEARCH_CACHE_PATH
    """
    values: Dict[str, Any] = {}

    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            logger.warning(f"Config file not found: {path}, using defaults")
        else:
            with open(path, "r") as f:
                try:
                    raw = yaml.safe_load(f) or {}
                except yaml.YAMLError as e:
                    raise ValueError(f"Invalid YAML in {path}: {e}") from e
            if not isinstance(raw, dict):
                raise ValueError(f"Configuration root in {path} must be a mapping")
            values.update(_from_yaml(raw))
            logger.info(f"Loaded configuration from {path}")

    values.update(_from_environment())
    return SearchConfig(**values)
