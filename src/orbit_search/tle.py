"""
Two-line element set (TLE) records, validation and parsing.

This module validates the fixed-width TLE format, parses the newline
delimited name/line1/line2 groups served by element-set providers and
generates TLE lines from CelesTrak GP JSON records.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
import logging
import math
import re

logger = logging.getLogger(__name__)

TLE_LINE_LENGTH = 69

_CATALOG_NUMBER_RE = re.compile(r"^\d+\s+(\d+)")
_OBJECT_ID_RE = re.compile(r"^(\d{4})-(\d{3})(\w*)$")


class InvalidTLEError(ValueError):
    """Raised when a two-line element set is structurally invalid."""


def compute_checksum(line: str) -> int:
    """
    Compute the modulo-10 checksum of a TLE line.

    Digits count their value, '-' counts 1, every other character 0.
    Only the first 68 columns take part; column 69 holds the checksum.

    Args:
        line: TLE line (with or without its trailing checksum digit)

    Returns:
        Checksum digit (0-9)
    """
    total = 0
    for char in line[:TLE_LINE_LENGTH - 1]:
        if char.isdigit():
            total += int(char)
        elif char == "-":
            total += 1
    return total % 10


def extract_catalog_number(line: str) -> Optional[str]:
    """Catalog number following the line number, or None if absent."""
    match = _CATALOG_NUMBER_RE.match(line)
    return match.group(1) if match else None


def _has_valid_checksum(line: str) -> bool:
    if len(line) < TLE_LINE_LENGTH:
        return False
    last = line[TLE_LINE_LENGTH - 1]
    return last.isdigit() and int(last) == compute_checksum(line)


def validation_error(line1: str, line2: str, verify_checksum: bool = True) -> Optional[str]:
    """Reason the pair is invalid, or None when it validates."""
    if not line1 or not line2:
        return "missing line1 or line2"

    if line1[0] != "1" or line2[0] != "2":
        return "invalid line numbers"

    catalog1 = extract_catalog_number(line1)
    catalog2 = extract_catalog_number(line2)
    if catalog1 is None or catalog2 is None:
        return "missing NORAD catalog number"
    if catalog1 != catalog2:
        return f"catalog number mismatch ({catalog1} != {catalog2})"

    if verify_checksum:
        if not _has_valid_checksum(line1):
            return "line1 checksum mismatch"
        if not _has_valid_checksum(line2):
            return "line2 checksum mismatch"

    return None


def validate(line1: str, line2: str, verify_checksum: bool = True) -> bool:
    """
    Validate a pair of TLE lines.

    Args:
        line1: First TLE line
        line2: Second TLE line
        verify_checksum: Also require the fixed-width length and a matching
            modulo-10 checksum on both lines

    Returns:
        True if the pair is a structurally valid element set
    """
    reason = validation_error(line1, line2, verify_checksum)
    if reason is not None:
        logger.debug(f"TLE validation failed: {reason}")
        return False
    return True


def parse_epoch(line1: str) -> datetime:
    """
    Parse the epoch field (columns 19-32, YYDDD.DDDDDDDD) of TLE line 1.

    Two-digit years below 57 belong to the 2000s.

    Raises:
        InvalidTLEError: If the field is not a valid epoch
    """
    field = line1[18:32].strip()
    try:
        year = int(field[:2])
        day_of_year = float(field[2:])
    except ValueError as e:
        raise InvalidTLEError(f"Invalid epoch field '{field}'") from e

    year += 2000 if year < 57 else 1900
    if not 1.0 <= day_of_year < 367.0:
        raise InvalidTLEError(f"Invalid epoch day of year: {day_of_year}")

    return datetime(year, 1, 1) + timedelta(days=day_of_year - 1.0)


@dataclass(frozen=True)
class TleRecord:
    """
    Validated, immutable two-line element set.

    Records are created through :meth:`from_lines`, which rejects
    structurally invalid input before anything is propagated.
    """

    line1: str
    line2: str
    epoch: datetime
    name: Optional[str] = None

    @classmethod
    def from_lines(
        cls,
        line1: str,
        line2: str,
        name: Optional[str] = None,
        verify_checksum: bool = True,
    ) -> "TleRecord":
        """
        Build a record from raw TLE lines.

        Args:
            line1: First TLE line
            line2: Second TLE line
            name: Optional object name (line 0)
            verify_checksum: Require matching checksums

        Returns:
            TleRecord instance

        Raises:
            InvalidTLEError: If the lines do not form a valid element set
        """
        line1 = (line1 or "").strip()
        line2 = (line2 or "").strip()

        reason = validation_error(line1, line2, verify_checksum)
        if reason is not None:
            raise InvalidTLEError(f"Invalid TLE: {reason}")

        return cls(
            line1=line1,
            line2=line2,
            epoch=parse_epoch(line1),
            name=name.strip() if name else None,
        )

    @property
    def norad_id(self) -> str:
        """NORAD catalog number as it appears in the element set."""
        catalog = extract_catalog_number(self.line1)
        if catalog is None:
            raise InvalidTLEError(f"No NORAD catalog number in line1: {self.line1!r}")
        return catalog

    @property
    def lines(self) -> List[str]:
        return [self.line1, self.line2]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "line1": self.line1,
            "line2": self.line2,
            "epoch": self.epoch.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TleRecord":
        """Rebuild a record from :meth:`to_dict` output (revalidates the lines)."""
        return cls.from_lines(data["line1"], data["line2"], name=data.get("name"))

    def __str__(self) -> str:
        label = self.name or self.norad_id
        return f"TLE({label}, epoch={self.epoch.isoformat()})"


def parse_batch(text: str, verify_checksum: bool = True) -> List[TleRecord]:
    """
    Parse newline-delimited TLE text into records.

    Accepts name/line1/line2 triplets as well as bare line1/line2 pairs.
    Malformed groups are logged and skipped; they never fail the batch.

    Args:
        text: Raw provider response
        verify_checksum: Require matching checksums

    Returns:
        List of valid TleRecord objects in input order
    """
    lines = [line.strip() for line in text.splitlines() if line.strip()]
    records: List[TleRecord] = []
    skipped = 0

    i = 0
    while i < len(lines):
        if lines[i].startswith("1 ") and i + 1 < len(lines) and lines[i + 1].startswith("2 "):
            name, line1, line2, consumed = None, lines[i], lines[i + 1], 2
        elif (
            i + 2 < len(lines)
            and lines[i + 1].startswith("1 ")
            and lines[i + 2].startswith("2 ")
        ):
            name, line1, line2, consumed = lines[i], lines[i + 1], lines[i + 2], 3
        else:
            logger.warning(f"Skipping malformed TLE line {i}: {lines[i][:40]!r}")
            skipped += 1
            i += 1
            continue

        try:
            records.append(
                TleRecord.from_lines(line1, line2, name=name, verify_checksum=verify_checksum)
            )
        except InvalidTLEError as e:
            logger.warning(f"Skipping invalid TLE group at line {i} ({name or 'unnamed'}): {e}")
            skipped += 1
        i += consumed

    logger.info(f"Parsed {len(records)} TLE records ({skipped} skipped)")
    return records


def _format_assumed_decimal(value: float) -> str:
    """Format a value as the TLE 8-column assumed-decimal exponent field."""
    if value == 0 or not math.isfinite(value):
        return " 00000-0"

    sign = "-" if value < 0 else " "
    magnitude = abs(value)
    exponent = int(math.floor(math.log10(magnitude))) + 1
    digits = int(round(magnitude / 10 ** exponent * 1e5))
    if digits >= 100000:
        digits //= 10
        exponent += 1
    if abs(exponent) > 9:
        return " 00000-0"

    exp_sign = "-" if exponent < 0 else "+"
    return f"{sign}{digits:05d}{exp_sign}{abs(exponent)}"


def _format_mean_motion_dot(value: float) -> str:
    sign = "-" if value < 0 else " "
    return sign + f"{abs(value):.8f}"[1:]


def _format_designator(object_id: str) -> str:
    match = _OBJECT_ID_RE.match(object_id.strip())
    if match:
        year, launch, piece = match.groups()
        return f"{year[2:]}{launch}{piece}"
    return object_id.strip()[:8]


def _with_checksum(line: str) -> str:
    return f"{line}{compute_checksum(line)}"


def tle_from_gp_json(record: Dict[str, Any]) -> TleRecord:
    """
    Generate a TLE record from a CelesTrak GP (OMM) JSON record.

    Lines are laid out in the fixed-width format and get recomputed
    checksums, so the result always passes checksum validation.

    Args:
        record: GP JSON record with the standard OMM keys

    Returns:
        TleRecord instance

    Raises:
        InvalidTLEError: If required keys are missing or malformed
    """
    try:
        catalog = int(record["NORAD_CAT_ID"])
        epoch = datetime.fromisoformat(str(record["EPOCH"]).rstrip("Z"))
        day_of_year = (
            (epoch - datetime(epoch.year, 1, 1)).total_seconds() / 86400.0 + 1.0
        )

        line1 = (
            f"1 {catalog:05d}{record.get('CLASSIFICATION_TYPE', 'U')} "
            f"{_format_designator(str(record.get('OBJECT_ID', ''))):<8} "
            f"{epoch.year % 100:02d}{day_of_year:012.8f} "
            f"{_format_mean_motion_dot(float(record.get('MEAN_MOTION_DOT', 0.0)))} "
            f"{_format_assumed_decimal(float(record.get('MEAN_MOTION_DDOT', 0.0)))} "
            f"{_format_assumed_decimal(float(record.get('BSTAR', 0.0)))} "
            f"0 {int(record.get('ELEMENT_SET_NO', 999)) % 10000:>4}"
        )
        eccentricity = f"{float(record['ECCENTRICITY']):.7f}"[2:]
        line2 = (
            f"2 {catalog:05d} "
            f"{float(record['INCLINATION']):8.4f} "
            f"{float(record['RA_OF_ASC_NODE']):8.4f} "
            f"{eccentricity} "
            f"{float(record['ARG_OF_PERICENTER']):8.4f} "
            f"{float(record['MEAN_ANOMALY']):8.4f} "
            f"{float(record['MEAN_MOTION']):11.8f}"
            f"{int(record.get('REV_AT_EPOCH', 0)) % 100000:5d}"
        )
    except (KeyError, TypeError, ValueError) as e:
        raise InvalidTLEError(f"Invalid GP record: {e}") from e

    return TleRecord.from_lines(
        _with_checksum(line1),
        _with_checksum(line2),
        name=record.get("OBJECT_NAME"),
    )


def parse_gp_json(records: Iterable[Dict[str, Any]]) -> List[TleRecord]:
    """
    Convert GP JSON records into TLE records, skipping malformed ones.

    Args:
        records: Iterable of GP JSON dictionaries

    Returns:
        List of TleRecord objects
    """
    result: List[TleRecord] = []
    for index, record in enumerate(records):
        try:
            result.append(tle_from_gp_json(record))
        except InvalidTLEError as e:
            logger.warning(f"Skipping GP record {index}: {e}")
    return result
