"""
Element-set provider client.

Fetches TLE text or GP JSON from a CelesTrak-style endpoint and turns the
response into validated TleRecord objects. Fallback on failure is left to
the caller.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union
import logging

import requests

from .tle import TleRecord, parse_batch, parse_gp_json

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://celestrak.org/NORAD/elements/gp.php"
DEFAULT_TIMEOUT = 30.0


class ProviderError(Exception):
    """Raised when the element-set provider cannot deliver data."""


def get_common_tle_sources() -> Dict[str, str]:
    """
    Get dictionary of common TLE data sources.

    Returns:
        Dictionary mapping source names to URLs
    """
    groups = ["active", "stations", "visual", "weather", "noaa", "goes", "resource", "cubesat"]
    sources = {f"celestrak_{group}": f"{DEFAULT_BASE_URL}?GROUP={group}&FORMAT=tle" for group in groups}
    sources["celestrak_other"] = f"{DEFAULT_BASE_URL}?GROUP=other-comm&FORMAT=tle"
    return sources


class ElementSetProvider:
    """HTTP client for an element-set provider."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, params: Optional[Dict[str, Any]] = None, url: Optional[str] = None) -> requests.Response:
        target = url or self.base_url
        try:
            logger.info(f"Fetching element sets from {target} {params or ''}")
            response = self.session.get(target, params=params, timeout=self.timeout)
            response.raise_for_status()
            return response
        except requests.RequestException as e:
            logger.error(f"Element-set request failed: {e}")
            raise ProviderError(f"Request to {target} failed: {e}") from e

    def fetch_tle(self, norad_id: Union[int, str]) -> TleRecord:
        """
        Fetch the current element set for one catalog number.

        Raises:
            ProviderError: On HTTP failure or when no valid TLE is returned
        """
        response = self._get({"CATNR": str(norad_id), "FORMAT": "tle"})
        records = parse_batch(response.text)
        if not records:
            raise ProviderError(f"No valid TLE returned for NORAD {norad_id}")
        return records[0]

    def fetch_group(self, group: str, format: str = "tle") -> List[TleRecord]:
        """
        Fetch all element sets of a CelesTrak group.

        Args:
            group: Group name (e.g. "stations", "visual")
            format: "tle" for text or "json" for GP JSON records

        Returns:
            List of valid TleRecord objects

        Raises:
            ValueError: If the format is not supported
            ProviderError: On HTTP failure or an undecodable response
        """
        if format not in ("tle", "json"):
            raise ValueError(f"Unsupported format: {format}")

        response = self._get({"GROUP": group, "FORMAT": format})
        if format == "tle":
            return parse_batch(response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError(f"Invalid JSON from provider: {e}") from e
        if not isinstance(payload, list):
            raise ProviderError("Expected a JSON array of GP records")
        return parse_gp_json(payload)

    def download(self, url: str, output_file: Union[str, Path]) -> Path:
        """
        Download a TLE file from a URL.

        Args:
            url: URL to download TLE data from
            output_file: Local file path to save TLE data

        Returns:
            Path of the written file
        """
        response = self._get(url=url)

        output_path = Path(output_file)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w") as f:
            f.write(response.text)

        logger.info(f"TLE data saved to {output_path}")
        return output_path
