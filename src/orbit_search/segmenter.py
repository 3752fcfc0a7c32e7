"""
Pass segmentation and aggregation.

This module groups raw track points into passes, splits each pass into
map-drawable segments at antimeridian crossings and derives pass
statistics.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

import numpy as np

from .propagator import TrackPoint
from .utils import calculate_ground_distance

logger = logging.getLogger(__name__)

# Longitude jump that marks a ground track wrapping around the antimeridian
MAX_LONGITUDE_JUMP_DEG = 180.0

HIGH_EFFECTIVE_ANGLE_DEG = 60.0
MEDIUM_EFFECTIVE_ANGLE_DEG = 30.0


@dataclass
class OrbitSegment:
    """Continuous stretch of ground track without a longitude wraparound."""

    points: List[TrackPoint] = field(default_factory=list)
    effective_angles: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "points": [p.to_dict() for p in self.points],
            "effective_angles": [round(a, 3) for a in self.effective_angles],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrbitSegment":
        points = [TrackPoint.from_dict(p) for p in data.get("points", [])]
        angles = data.get("effective_angles")
        if angles is None:
            angles = [p.effective_angle_deg for p in points]
        return cls(points=points, effective_angles=[float(a) for a in angles])


@dataclass
class Pass:
    """A satellite pass over an observer."""

    start_time: datetime
    end_time: datetime
    max_elevation_deg: float
    is_daylight: bool
    segments: List[OrbitSegment] = field(default_factory=list)

    @property
    def points(self) -> List[TrackPoint]:
        """All track points across segments, in time order."""
        return [p for segment in self.segments for p in segment.points]

    @property
    def max_elevation_time(self) -> Optional[datetime]:
        points = self.points
        if not points:
            return None
        return max(points, key=lambda p: p.elevation_deg).time

    @property
    def duration_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        max_time = self.max_elevation_time
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "max_elevation_deg": round(self.max_elevation_deg, 3),
            "max_elevation_time": max_time.isoformat() if max_time else None,
            "duration_seconds": self.duration_seconds,
            "is_daylight": self.is_daylight,
            "segments": [s.to_dict() for s in self.segments],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pass":
        return cls(
            start_time=datetime.fromisoformat(data["start_time"]),
            end_time=datetime.fromisoformat(data["end_time"]),
            max_elevation_deg=float(data["max_elevation_deg"]),
            is_daylight=bool(data["is_daylight"]),
            segments=[OrbitSegment.from_dict(s) for s in data.get("segments", [])],
        )

    def __str__(self) -> str:
        return (
            f"Pass {self.start_time.strftime('%Y-%m-%d %H:%M:%S')} - "
            f"{self.end_time.strftime('%H:%M:%S')} UTC, "
            f"Max Elev: {self.max_elevation_deg:.1f}°"
        )


class PassSegmenter:
    """Turns an ordered track point stream into a Pass."""

    def __init__(self, max_longitude_jump_deg: float = MAX_LONGITUDE_JUMP_DEG) -> None:
        self.max_longitude_jump_deg = max_longitude_jump_deg

    def segment(self, points: List[TrackPoint]) -> Pass:
        """
        Aggregate points into a Pass, splitting segments at longitude jumps.

        The input points are not modified; the first point of every segment
        after the first is a copy with ``is_segment_break`` set.

        Args:
            points: Time-ordered track points

        Returns:
            Pass covering all points

        Raises:
            ValueError: If ``points`` is empty
        """
        if not points:
            raise ValueError("Cannot segment an empty point list")

        segments: List[OrbitSegment] = []
        current = OrbitSegment()
        max_elevation = float("-inf")
        daylight = False
        previous: Optional[TrackPoint] = None

        for point in points:
            if previous is not None and abs(point.lng - previous.lng) > self.max_longitude_jump_deg:
                segments.append(current)
                current = OrbitSegment()
                point = replace(point, is_segment_break=True)
            elif point.is_segment_break:
                point = replace(point, is_segment_break=False)

            current.points.append(point)
            current.effective_angles.append(point.effective_angle_deg)
            max_elevation = max(max_elevation, point.elevation_deg)
            daylight = daylight or point.is_daylight
            previous = point

        segments.append(current)

        if len(segments) > 1:
            logger.debug(f"Pass split into {len(segments)} segments at antimeridian")

        return Pass(
            start_time=points[0].time,
            end_time=points[-1].time,
            max_elevation_deg=max_elevation,
            is_daylight=daylight,
            segments=segments,
        )


def split_visibility_windows(
    points: List[TrackPoint],
    horizon_deg: float = 0.0,
    step_seconds: Optional[float] = None,
) -> List[List[TrackPoint]]:
    """
    Split a raw point stream into contiguous above-horizon runs.

    A run also ends where skipped steps leave a gap longer than twice the
    sampling cadence.

    Args:
        points: Time-ordered track points
        horizon_deg: Elevation a point must exceed to belong to a run
        step_seconds: Sampling cadence; inferred from the median spacing
            when omitted

    Returns:
        List of point runs, each suitable for PassSegmenter.segment
    """
    if step_seconds is None:
        if len(points) > 1:
            spacing = np.diff([p.time.timestamp() for p in points])
            step_seconds = float(np.median(spacing))
        else:
            step_seconds = 0.0
    max_gap = 2.0 * step_seconds

    windows: List[List[TrackPoint]] = []
    current: List[TrackPoint] = []

    for point in points:
        if point.elevation_deg <= horizon_deg:
            if current:
                windows.append(current)
                current = []
            continue

        if current and max_gap > 0:
            gap = (point.time - current[-1].time).total_seconds()
            if gap > max_gap:
                windows.append(current)
                current = []
        current.append(point)

    if current:
        windows.append(current)

    logger.debug(f"Found {len(windows)} windows above {horizon_deg}° in {len(points)} points")
    return windows


def classify_effective_angle(angle_deg: float) -> str:
    """Quality class for an effective angle: 'high', 'medium' or 'low'."""
    if angle_deg >= HIGH_EFFECTIVE_ANGLE_DEG:
        return "high"
    if angle_deg >= MEDIUM_EFFECTIVE_ANGLE_DEG:
        return "medium"
    return "low"


def pass_statistics(satellite_pass: Pass) -> Dict[str, Any]:
    """
    Summary statistics for a pass.

    Returns:
        Dictionary with total_points, total_segments, distance_km (ground
        track length, summed per segment) and min/max/avg effective angle
    """
    angles = [a for segment in satellite_pass.segments for a in segment.effective_angles]

    distance_km = 0.0
    for segment in satellite_pass.segments:
        for a, b in zip(segment.points, segment.points[1:]):
            distance_km += calculate_ground_distance(a.lat, a.lng, b.lat, b.lng)

    stats: Dict[str, Any] = {
        "total_points": len(satellite_pass.points),
        "total_segments": len(satellite_pass.segments),
        "distance_km": distance_km,
        "min_effective_angle_deg": None,
        "max_effective_angle_deg": None,
        "avg_effective_angle_deg": None,
    }
    if angles:
        values = np.asarray(angles, dtype=float)
        stats["min_effective_angle_deg"] = float(values.min())
        stats["max_effective_angle_deg"] = float(values.max())
        stats["avg_effective_angle_deg"] = float(values.mean())
    return stats
