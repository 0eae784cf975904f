from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from .catalog import Catalog, CatalogProduct
from .errors import ValidationError
from .viewing_distance import (
    PITCH_TOLERANCE,
    coerce_distance,
    pitches_for_distance,
    pitches_for_range_label,
)

SUB_TYPES = ("SMD", "COB")


@dataclass(frozen=True)
class FilterCriteria:
    environment: Optional[str] = None
    sub_type: Optional[str] = None
    category: Optional[str] = None
    pixel_pitch: Optional[float] = None
    pixel_pitches: Tuple[float, ...] = field(default_factory=tuple)
    viewing_distance: Optional[object] = None
    viewing_distance_unit: str = "meters"
    enabled: bool = True
    curated: bool = False


def product_sub_type(product: CatalogProduct) -> Optional[str]:
    """SMD/COB classification from the declared LED type, else the display name."""
    declared = (product.sub_type or "").strip()
    lowered = (declared or product.name or "").lower()
    if "cob" in lowered:
        return "COB"
    if "smd" in lowered:
        return "SMD"
    return None


def _normalize(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _pitch_matches(pitch: float, targets: Sequence[float]) -> bool:
    return any(abs(pitch - target) < PITCH_TOLERANCE for target in targets)


def _band_pitches(criteria: FilterCriteria) -> List[float]:
    value = criteria.viewing_distance
    if isinstance(value, str) and ("-" in value or value.strip().endswith("+")):
        return pitches_for_range_label(value, criteria.viewing_distance_unit, criteria.environment)
    return pitches_for_distance(coerce_distance(value), criteria.viewing_distance_unit, criteria.environment)


def filter_products(catalog: Catalog, criteria: Optional[FilterCriteria] = None) -> List[CatalogProduct]:
    criteria = criteria or FilterCriteria()
    sub_type = None
    if criteria.sub_type:
        sub_type = criteria.sub_type.strip().upper()
        if sub_type not in SUB_TYPES:
            raise ValidationError(f"unknown sub-type: {criteria.sub_type!r}", "subType")

    targets: List[float] = []
    if criteria.pixel_pitch is not None:
        targets.append(float(criteria.pixel_pitch))
    targets.extend(float(p) for p in criteria.pixel_pitches)

    band_targets: List[float] = []
    if criteria.viewing_distance not in (None, ""):
        band_targets = _band_pitches(criteria)

    env = _normalize(criteria.environment)
    selected: List[CatalogProduct] = []
    seen = set()
    for product in catalog:
        if product.id in seen:
            continue
        if criteria.enabled and not product.enabled:
            continue
        if criteria.curated and product.is_specialty:
            continue
        if env and _normalize(product.environment) != env:
            continue
        if sub_type and product_sub_type(product) != sub_type:
            continue
        if criteria.category and product.category != criteria.category:
            continue
        if targets and not _pitch_matches(product.pixel_pitch, targets):
            continue
        # band table narrows only when it knows the distance
        if band_targets and not _pitch_matches(product.pixel_pitch, band_targets):
            continue
        seen.add(product.id)
        selected.append(product)

    return sorted(selected, key=lambda p: p.pixel_pitch)


def available_pitches(catalog: Catalog, criteria: Optional[FilterCriteria] = None) -> List[float]:
    return sorted({p.pixel_pitch for p in filter_products(catalog, criteria)})
