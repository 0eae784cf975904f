"""
Read-only LED product catalog.

Products are loaded once (from the bundled JSON file or any sequence of
records) and never mutated afterwards. Each product's pricing shape is
resolved at load time into either a flat per-tier price set or a rental
price object, so the pricing code never has to probe optional fields.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from .errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

PriceValue = Union[int, float, str, None]

NA_MARKERS = frozenset({"NA", "N/A"})

# families left out of the guided recommendation flow
SPECIALTY_FAMILIES = ("rental", "flexible", "transparent", "jumbo")


class CustomerTier(str, Enum):
    END_USER = "endUser"
    RESELLER = "reseller"
    SI_CHANNEL = "siChannel"

    @property
    def label(self) -> str:
        return TIER_LABELS[self]

    @classmethod
    def parse(cls, value: Union[str, "CustomerTier", None]) -> "CustomerTier":
        if isinstance(value, CustomerTier):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise ValidationError(f"unknown customer tier: {value!r}", "userType") from None


TIER_LABELS: Dict[CustomerTier, str] = {
    CustomerTier.END_USER: "End User",
    CustomerTier.RESELLER: "Reseller",
    CustomerTier.SI_CHANNEL: "Channel",
}


def tier_from_label(label: Optional[str]) -> CustomerTier:
    """Map a stored display label back to its tier; legacy records default to end user."""
    text = (label or "").lower()
    if "reseller" in text:
        return CustomerTier.RESELLER
    if "channel" in text or text.startswith("si"):
        return CustomerTier.SI_CHANNEL
    return CustomerTier.END_USER


def is_na(value: PriceValue) -> bool:
    return isinstance(value, str) and value.strip().upper() in NA_MARKERS


def _first_present(data: Mapping[str, Any], *keys: str) -> PriceValue:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


@dataclass(frozen=True)
class FlatPricing:
    """Flat per-tier unit prices; `base` doubles as the generic price field."""

    base: PriceValue = None
    reseller: PriceValue = None
    channel: PriceValue = None

    def for_tier(self, tier: CustomerTier) -> PriceValue:
        if tier is CustomerTier.RESELLER:
            return self.reseller
        if tier is CustomerTier.SI_CHANNEL:
            return self.channel
        return self.base


@dataclass(frozen=True)
class TierPrices:
    end_customer: PriceValue = None
    reseller: PriceValue = None
    si_channel: PriceValue = None

    def for_tier(self, tier: CustomerTier) -> PriceValue:
        if tier is CustomerTier.RESELLER:
            return self.reseller
        if tier is CustomerTier.SI_CHANNEL:
            return self.si_channel
        return self.end_customer

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TierPrices":
        return cls(
            end_customer=data.get("endCustomer"),
            reseller=data.get("reseller"),
            si_channel=data.get("siChannel"),
        )


@dataclass(frozen=True)
class RentalPricing:
    cabinet: TierPrices
    curve_lock: Optional[TierPrices] = None

    def for_tier(self, tier: CustomerTier) -> PriceValue:
        return self.cabinet.for_tier(tier)


PricingMode = Union[FlatPricing, RentalPricing]


@dataclass(frozen=True)
class CatalogProduct:
    id: str
    name: str
    category: str
    environment: str
    pixel_pitch: float
    pricing: PricingMode
    enabled: bool = True
    sub_type: Optional[str] = None
    cabinet_width_mm: Optional[float] = None
    cabinet_height_mm: Optional[float] = None
    resolution: Optional[Tuple[int, int]] = None
    rental_option: Optional[str] = None

    @property
    def is_rental(self) -> bool:
        return isinstance(self.pricing, RentalPricing)

    @property
    def is_specialty(self) -> bool:
        category = self.category.lower()
        return any(keyword in category for keyword in SPECIALTY_FAMILIES)

    @property
    def is_jumbo(self) -> bool:
        return (
            "jumbo" in self.category.lower()
            or self.id.lower().startswith("jumbo-")
            or "jumbo series" in self.name.lower()
        )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CatalogProduct":
        product_id = str(data.get("id") or "").strip()
        if not product_id:
            raise ValidationError("catalog product is missing an id", "id")
        try:
            pitch = float(data.get("pixelPitch"))
        except (TypeError, ValueError):
            raise ValidationError(f"invalid pixel pitch for {product_id}", "pixelPitch") from None
        if pitch <= 0:
            raise ValidationError(f"pixel pitch must be positive for {product_id}", "pixelPitch")

        category = str(data.get("category") or "")
        rental_prices = data.get("rentalPrices") or data.get("prices")
        pricing: PricingMode
        if "rental" in category.lower() and isinstance(rental_prices, Mapping) and "cabinet" in rental_prices:
            curve_lock = rental_prices.get("curveLock")
            pricing = RentalPricing(
                cabinet=TierPrices.from_dict(rental_prices["cabinet"]),
                curve_lock=TierPrices.from_dict(curve_lock) if isinstance(curve_lock, Mapping) else None,
            )
        else:
            pricing = FlatPricing(
                base=_first_present(data, "price", "basePrice"),
                reseller=data.get("resellerPrice"),
                channel=_first_present(data, "siChannelPrice", "channelPrice"),
            )

        cabinet = data.get("cabinetDimensions") or {}
        resolution = data.get("resolution") or {}
        return cls(
            id=product_id,
            name=str(data.get("name") or product_id),
            category=category,
            environment=normalize_environment(data.get("environment")),
            pixel_pitch=pitch,
            pricing=pricing,
            enabled=bool(data.get("enabled", True)),
            sub_type=data.get("ledType") or data.get("pixelComposition") or data.get("subType"),
            cabinet_width_mm=cabinet.get("width"),
            cabinet_height_mm=cabinet.get("height"),
            resolution=(
                (int(resolution["width"]), int(resolution["height"]))
                if "width" in resolution and "height" in resolution
                else None
            ),
            rental_option=data.get("rentalOption"),
        )

    def to_summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "environment": self.environment,
            "pixelPitch": self.pixel_pitch,
            "enabled": self.enabled,
            "subType": self.sub_type,
            "rental": self.is_rental,
        }


def normalize_environment(value: Any) -> str:
    text = str(value or "").strip()
    if text.lower() == "indoor":
        return "Indoor"
    if text.lower() == "outdoor":
        return "Outdoor"
    return text


@dataclass(frozen=True)
class Catalog:
    products: Tuple[CatalogProduct, ...] = ()
    _by_id: Dict[str, CatalogProduct] = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: Dict[str, CatalogProduct] = {}
        for product in self.products:
            if product.id in index:
                logger.debug("Duplicate catalog id %s; keeping the first entry", product.id)
                continue
            index[product.id] = product
        object.__setattr__(self, "_by_id", index)

    def __iter__(self) -> Iterator[CatalogProduct]:
        return iter(self.products)

    def __len__(self) -> int:
        return len(self.products)

    def find(self, product_id: str) -> Optional[CatalogProduct]:
        return self._by_id.get(product_id)

    def get(self, product_id: str) -> CatalogProduct:
        product = self.find(product_id)
        if product is None:
            raise NotFoundError(f"unknown product: {product_id}", "productId")
        return product

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "Catalog":
        return cls(products=tuple(CatalogProduct.from_dict(record) for record in records))

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Catalog":
        path = Path(path)
        payload = json.loads(path.read_text(encoding="utf-8"))
        records = payload.get("products", []) if isinstance(payload, dict) else payload
        catalog = cls.from_records(records)
        logger.info("Loaded %d catalog products from %s", len(catalog), path)
        return catalog


@lru_cache(maxsize=4)
def get_catalog(path: str) -> Catalog:
    return Catalog.load(path)
