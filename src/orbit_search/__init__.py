"""
Satellite Pass Search

Finds when satellites pass over a ground observer: TLE validation,
time-stepped propagation, pass segmentation, day/night classification,
a coarse visibility pre-filter and a rate-limited element-set cache.
"""

from .cache import ElementCache
from .observer import ObserverLocation, SearchFilters
from .search import PassSearch, calculate_passes
from .segmenter import Pass
from .tle import InvalidTLEError, TleRecord

__version__ = "0.1.0"
__author__ = "Orbit Search Team"

__all__ = [
    "ElementCache",
    "InvalidTLEError",
    "ObserverLocation",
    "Pass",
    "PassSearch",
    "SearchFilters",
    "TleRecord",
    "calculate_passes",
]
