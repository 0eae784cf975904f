from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from .catalog import Catalog, normalize_environment
from .errors import ValidationError

logger = logging.getLogger(__name__)

FEET_TO_METERS = 0.3048
OPEN_ENDED_METERS = 999.0
PITCH_TOLERANCE = 0.1
MIN_PRACTICAL_PITCH = 0.9
MAX_PRACTICAL_PITCH = 20.0
WINDOW_LOW = 0.7
WINDOW_HIGH = 1.3

_UNITS = {
    "meters": "meters",
    "meter": "meters",
    "metres": "meters",
    "m": "meters",
    "feet": "feet",
    "foot": "feet",
    "ft": "feet",
}

_RANGE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(?:-\s*(\d+(?:\.\d+)?)\s*|(\+)\s*)$")

DistanceInput = Union[int, float, str, Sequence[float]]


@dataclass(frozen=True)
class ViewingDistanceBand:
    pixel_pitch: float
    min_meters: float
    max_meters: float
    environment: str

    @property
    def open_ended(self) -> bool:
        return self.max_meters >= OPEN_ENDED_METERS

    @property
    def min_feet(self) -> float:
        return round(self.min_meters / FEET_TO_METERS, 1)

    @property
    def max_feet(self) -> Optional[float]:
        if self.open_ended:
            return None
        return round(self.max_meters / FEET_TO_METERS, 1)

    @property
    def label(self) -> str:
        if self.open_ended:
            return f"{self.min_meters:g}+"
        return f"{self.min_meters:g}-{self.max_meters:g}"

    def contains(self, meters: float) -> bool:
        if self.open_ended:
            return meters >= self.min_meters
        return self.min_meters <= meters <= self.max_meters

    def to_dict(self) -> dict:
        return {
            "pixelPitch": self.pixel_pitch,
            "minMeters": self.min_meters,
            "maxMeters": None if self.open_ended else self.max_meters,
            "minFeet": self.min_feet,
            "maxFeet": self.max_feet,
            "label": self.label,
            "environment": self.environment,
        }


INDOOR_BANDS: Tuple[ViewingDistanceBand, ...] = (
    ViewingDistanceBand(0.9, 0.9, 1.5, "Indoor"),
    ViewingDistanceBand(1.25, 0.9, 1.5, "Indoor"),
    ViewingDistanceBand(1.25, 1.25, 1.8, "Indoor"),
    ViewingDistanceBand(1.5625, 1.25, 1.8, "Indoor"),
    ViewingDistanceBand(1.8, 1.8, 3.0, "Indoor"),
    ViewingDistanceBand(2.5, 1.8, 3.0, "Indoor"),
)

OUTDOOR_BANDS: Tuple[ViewingDistanceBand, ...] = (
    ViewingDistanceBand(2.5, 2.5, 3.0, "Outdoor"),
    ViewingDistanceBand(3.0, 2.5, 3.0, "Outdoor"),
    ViewingDistanceBand(4.0, 4.0, 8.0, "Outdoor"),
    ViewingDistanceBand(6.6, 4.0, 8.0, "Outdoor"),
    ViewingDistanceBand(6.6, 10.0, OPEN_ENDED_METERS, "Outdoor"),
    ViewingDistanceBand(10.0, 10.0, OPEN_ENDED_METERS, "Outdoor"),
)


@dataclass(frozen=True)
class IdealPitchRange:
    ideal: float
    minimum: float
    maximum: float

    def contains(self, pitch: float) -> bool:
        return self.minimum <= pitch <= self.maximum


@dataclass(frozen=True)
class PitchRecommendation:
    ideal_range: Optional[IdealPitchRange]
    pitches_in_window: Tuple[float, ...]
    pitch: Optional[float]

    def to_dict(self) -> dict:
        window = self.ideal_range
        return {
            "pixelPitch": self.pitch,
            "idealPitch": None if window is None else round(window.ideal, 4),
            "window": None if window is None else [round(window.minimum, 4), round(window.maximum, 4)],
            "pitchesInWindow": list(self.pitches_in_window),
        }


def normalize_unit(unit: Optional[str]) -> str:
    key = (unit or "meters").strip().lower()
    try:
        return _UNITS[key]
    except KeyError:
        raise ValidationError(f"unknown distance unit: {unit!r}", "unit") from None


def to_meters(distance: float, unit: Optional[str] = "meters") -> float:
    if normalize_unit(unit) == "feet":
        return distance * FEET_TO_METERS
    return distance


def to_feet(distance: float, unit: Optional[str] = "meters") -> float:
    if normalize_unit(unit) == "meters":
        return distance / FEET_TO_METERS
    return distance


def parse_range_label(label: str) -> Tuple[float, Optional[float]]:
    """Parse ``"1.8-3"`` into ``(1.8, 3.0)`` and ``"10+"`` into ``(10.0, None)``."""
    match = _RANGE_RE.match(label or "")
    if not match:
        raise ValidationError(f"invalid viewing distance range: {label!r}", "viewingDistance")
    low = float(match.group(1))
    if match.group(3):
        return low, None
    high = float(match.group(2))
    if high < low:
        raise ValidationError(f"invalid viewing distance range: {label!r}", "viewingDistance")
    return low, high


def coerce_distance(value: DistanceInput) -> float:
    """Reduce a scalar, a ``[min, max]`` pair or a range label to one distance.

    Closed ranges reduce to their midpoint, open ranges (``"10+"``) to their
    lower bound.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError("viewing distance must be numeric", "viewingDistance")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return float(text)
        except ValueError:
            pass
        low, high = parse_range_label(text)
        return low if high is None else (low + high) / 2
    if isinstance(value, (list, tuple)) and len(value) == 2:
        try:
            low, high = float(value[0]), float(value[1])
        except (TypeError, ValueError):
            raise ValidationError("viewing distance range must be numeric", "viewingDistance") from None
        if high < low:
            low, high = high, low
        return (low + high) / 2
    raise ValidationError("viewing distance must be a number or a [min, max] range", "viewingDistance")


def bands(environment: Optional[str] = None) -> Tuple[ViewingDistanceBand, ...]:
    env = normalize_environment(environment) if environment else None
    if env == "Indoor":
        return INDOOR_BANDS
    if env == "Outdoor":
        return OUTDOOR_BANDS
    if env:
        raise ValidationError(f"unknown environment: {environment!r}", "environment")
    return INDOOR_BANDS + OUTDOOR_BANDS


def band_for_pitch(pixel_pitch: float, environment: Optional[str] = None) -> Optional[ViewingDistanceBand]:
    for band in bands(environment):
        if abs(band.pixel_pitch - pixel_pitch) < 0.01:
            return band
    return None


def is_distance_in_band(
    pixel_pitch: float,
    distance: float,
    unit: Optional[str] = "meters",
    environment: Optional[str] = None,
) -> bool:
    meters = to_meters(float(distance), unit)
    return any(
        band.contains(meters)
        for band in bands(environment)
        if abs(band.pixel_pitch - pixel_pitch) < 0.01
    )


def _distinct(pitches: Iterable[float]) -> List[float]:
    seen: List[float] = []
    for pitch in pitches:
        if pitch not in seen:
            seen.append(pitch)
    return seen


def pitches_for_distance(
    distance: float,
    unit: Optional[str] = "meters",
    environment: Optional[str] = None,
) -> List[float]:
    meters = to_meters(float(distance), unit)
    return _distinct(band.pixel_pitch for band in bands(environment) if band.contains(meters))


def pitches_for_range_label(
    label: str,
    unit: Optional[str] = "meters",
    environment: Optional[str] = None,
) -> List[float]:
    low, high = parse_range_label(label)
    low_m = to_meters(low, unit)
    high_m = None if high is None else to_meters(high, unit)
    matches = []
    for band in bands(environment):
        if abs(band.min_meters - low_m) >= 0.05:
            continue
        if high_m is None:
            if band.open_ended:
                matches.append(band.pixel_pitch)
        elif not band.open_ended and abs(band.max_meters - high_m) < 0.05:
            matches.append(band.pixel_pitch)
    return _distinct(matches)


def ideal_pitch_range(distance: float, unit: Optional[str] = "meters") -> Optional[IdealPitchRange]:
    if distance <= 0:
        return None
    ideal = to_feet(distance, unit) / 10
    return IdealPitchRange(
        ideal=ideal,
        minimum=max(MIN_PRACTICAL_PITCH, ideal * WINDOW_LOW),
        maximum=min(MAX_PRACTICAL_PITCH, ideal * WINDOW_HIGH),
    )


def candidate_pitches(
    catalog: Catalog,
    environment: Optional[str] = None,
    curated: bool = False,
) -> List[float]:
    env = normalize_environment(environment).lower() if environment else None
    pitches = {
        product.pixel_pitch
        for product in catalog
        if product.enabled
        and (env is None or product.environment.lower() == env)
        and not (curated and product.is_specialty)
    }
    return sorted(pitches)


def _closest(ideal: float, pitches: Sequence[float]) -> float:
    # ascending input, so min() keeps the finer pitch on ties
    return min(pitches, key=lambda pitch: abs(pitch - ideal))


def recommend(
    catalog: Catalog,
    distance: DistanceInput,
    unit: Optional[str] = "meters",
    environment: Optional[str] = None,
    curated: bool = False,
) -> PitchRecommendation:
    value = coerce_distance(distance)
    window = ideal_pitch_range(value, unit)
    if window is None:
        return PitchRecommendation(None, (), None)
    pitches = candidate_pitches(catalog, environment, curated=curated)
    if not pitches:
        logger.debug("No catalog pitches for environment %s", environment)
        return PitchRecommendation(window, (), None)
    in_window = tuple(p for p in pitches if window.contains(p))
    chosen = _closest(window.ideal, in_window or pitches)
    return PitchRecommendation(window, in_window, chosen)


def recommend_pitch(
    catalog: Catalog,
    distance: DistanceInput,
    unit: Optional[str] = "meters",
    environment: Optional[str] = None,
    curated: bool = False,
) -> Optional[float]:
    """Return the single catalog pitch best suited to ``distance``, or None."""
    return recommend(catalog, distance, unit, environment, curated=curated).pitch
