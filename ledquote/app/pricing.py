from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from .breakdown import GST_RATE, ZERO, PricingBreakdown, to_decimal
from .catalog import CatalogProduct, CustomerTier, PriceValue, is_na, normalize_environment
from .errors import ValidationError
from .processors import get_processor

logger = logging.getLogger(__name__)

GLOBAL_FALLBACK_UNIT_PRICE = Decimal("5300")
METERS_TO_FEET = Decimal("3.2808399")
STRUCTURE_RATE_PER_CABINET = Decimal("4000")
STRUCTURE_RATE_PER_SQFT = Decimal("2500")
INSTALLATION_RATE_PER_SQFT = Decimal("500")
TWO_PLACES = Decimal("0.01")

# Deprecated: prices for catalog ids that predate per-tier pricing. Only
# consulted by legacy_fallback_unit_price(); remove once old quotations
# carry explicit overrides.
LEGACY_FALLBACK_PRICES: Dict[str, Decimal] = {
    "rigel-p3-outdoor": Decimal("50000"),
    "rigel-p2.5-outdoor": Decimal("75000"),
    "rigel-p1.8-outdoor": Decimal("100000"),
    "rigel-p1.5-outdoor": Decimal("125000"),
    "rigel-p1.25-outdoor": Decimal("150000"),
    "rigel-p0.9-outdoor": Decimal("200000"),
    "rigel-p3-indoor": Decimal("40000"),
    "rigel-p2.5-indoor": Decimal("60000"),
    "rigel-p1.8-indoor": Decimal("80000"),
    "rigel-p1.5-indoor": Decimal("100000"),
    "rigel-p1.25-indoor": Decimal("120000"),
    "rigel-p0.9-indoor": Decimal("160000"),
    "orion-p3.9": Decimal("60000"),
    "orion-p3-outdoor-rigel": Decimal("80000"),
}


@dataclass(frozen=True)
class CabinetGrid:
    columns: int
    rows: int

    def __post_init__(self) -> None:
        for name in ("columns", "rows"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise ValidationError(f"cabinet grid {name} must be a non-negative integer", name)

    @property
    def quantity(self) -> int:
        return max(self.columns * self.rows, 1)


@dataclass(frozen=True)
class DisplayConfig:
    """Physical display size plus any externally estimated costs."""

    width_mm: Optional[Decimal] = None
    height_mm: Optional[Decimal] = None
    structure_cost: Decimal = ZERO
    installation_cost: Decimal = ZERO

    @property
    def display_size(self) -> Optional[Tuple[float, float]]:
        if self.width_mm is None or self.height_mm is None:
            return None
        return (round(float(self.width_mm) / 1000, 2), round(float(self.height_mm) / 1000, 2))


@dataclass(frozen=True)
class PriceOverride:
    product_id: str
    tier: CustomerTier
    unit_price: Decimal

    def applies_to(self, product_id: str, tier: CustomerTier) -> bool:
        return self.product_id == product_id and self.tier is tier


@dataclass(frozen=True)
class UnitPrice:
    amount: Optional[Decimal]
    source: str

    @property
    def available(self) -> bool:
        return self.amount is not None


def display_area_sqft(width_mm: Any, height_mm: Any) -> Decimal:
    width_ft = to_decimal(width_mm, "width") / 1000 * METERS_TO_FEET
    height_ft = to_decimal(height_mm, "height") / 1000 * METERS_TO_FEET
    return (width_ft * height_ft).quantize(TWO_PLACES)


def estimate_structure_cost(environment: str, cabinets: int, area_sqft: Decimal) -> Decimal:
    if normalize_environment(environment) == "Indoor":
        return STRUCTURE_RATE_PER_CABINET * max(cabinets, 1)
    return (STRUCTURE_RATE_PER_SQFT * area_sqft).quantize(TWO_PLACES)


def estimate_installation_cost(area_sqft: Decimal, fixed_amount: Optional[Decimal] = None) -> Decimal:
    if fixed_amount is not None:
        return fixed_amount
    return (INSTALLATION_RATE_PER_SQFT * area_sqft).quantize(TWO_PLACES)


def estimated_display_config(
    product: CatalogProduct,
    grid: CabinetGrid,
    width_mm: Any,
    height_mm: Any,
    installation_fixed: Optional[Any] = None,
) -> DisplayConfig:
    area = display_area_sqft(width_mm, height_mm)
    fixed = None if installation_fixed is None else to_decimal(installation_fixed, "installationCost")
    return DisplayConfig(
        width_mm=to_decimal(width_mm, "width"),
        height_mm=to_decimal(height_mm, "height"),
        structure_cost=estimate_structure_cost(product.environment, grid.columns * grid.rows, area),
        installation_cost=estimate_installation_cost(area, fixed),
    )


def _positive(value: PriceValue, allow_string: bool) -> Optional[Decimal]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        if not allow_string:
            return None
        text = value.replace(",", "").strip()
        if not text:
            return None
        try:
            amount = Decimal(text)
        except ArithmeticError:
            return None
    else:
        amount = Decimal(str(value))
    if not amount.is_finite() or amount <= 0:
        return None
    return amount


def legacy_fallback_unit_price(product_id: str) -> Optional[Decimal]:
    return LEGACY_FALLBACK_PRICES.get(product_id)


def resolve_unit_price(
    product: CatalogProduct,
    tier: CustomerTier,
    override: Optional[PriceOverride] = None,
) -> UnitPrice:
    if override is not None and override.applies_to(product.id, tier):
        return UnitPrice(override.unit_price, "override")

    tier_value = product.pricing.for_tier(tier)
    if is_na(tier_value):
        return UnitPrice(None, "unavailable")

    if product.is_rental:
        amount = _positive(tier_value, allow_string=True)
        if amount is not None:
            return UnitPrice(amount, "rental")
    else:
        # end-user tier_value is the generic price; a string there resolves as "generic" below
        amount = _positive(tier_value, allow_string=tier is not CustomerTier.END_USER)
        if amount is not None:
            return UnitPrice(amount, "tier")
        if tier_value is not None and tier is not CustomerTier.END_USER:
            logger.warning("Unusable %s price %r for %s", tier.value, tier_value, product.id)
        generic = product.pricing.base
        if is_na(generic) and tier_value is None:
            return UnitPrice(None, "unavailable")
        amount = _positive(generic, allow_string=True)
        if amount is not None:
            return UnitPrice(amount, "generic")

    legacy = legacy_fallback_unit_price(product.id)
    if legacy is not None:
        logger.warning("Using legacy fallback price for %s", product.id)
        return UnitPrice(legacy, "legacy")
    logger.warning("No price for %s (%s); using default unit price", product.id, tier.value)
    return UnitPrice(GLOBAL_FALLBACK_UNIT_PRICE, "default")


def _with_gst(amount: Decimal, rate: Decimal) -> Tuple[Decimal, Decimal]:
    gst = amount * rate
    return gst, amount + gst


def compute_price(
    product: CatalogProduct,
    grid: CabinetGrid,
    processor: Optional[str] = None,
    tier: CustomerTier = CustomerTier.END_USER,
    config: Optional[DisplayConfig] = None,
    override: Optional[PriceOverride] = None,
    gst_rate: Decimal = GST_RATE,
) -> PricingBreakdown:
    config = config or DisplayConfig()
    tier = CustomerTier.parse(tier)
    for name in ("structure_cost", "installation_cost"):
        if getattr(config, name) < 0:
            raise ValidationError(f"{name} cannot be negative", name)

    processor_name = None
    processor_price = ZERO
    if processor:
        selected = get_processor(processor)
        processor_name = selected.name
        # jumbo series ships with its controller bundled
        if not product.is_jumbo:
            processor_price = selected.price_for(tier)

    unit = resolve_unit_price(product, tier, override)
    common: Dict[str, Any] = dict(
        user_type=tier,
        product_id=product.id,
        product_name=product.name,
        processor_name=processor_name,
        cabinet_grid=(grid.columns, grid.rows),
        display_size=config.display_size,
        price_source=unit.source,
    )
    if not unit.available:
        return PricingBreakdown(
            unit_price=ZERO,
            quantity=0,
            product_subtotal=ZERO,
            product_gst=ZERO,
            product_total=ZERO,
            processor_price=ZERO,
            processor_gst=ZERO,
            processor_total=ZERO,
            structure_cost=ZERO,
            structure_gst=ZERO,
            structure_total=ZERO,
            installation_cost=ZERO,
            installation_gst=ZERO,
            installation_total=ZERO,
            grand_total=ZERO,
            is_available=False,
            **common,
        )

    quantity = grid.quantity
    product_subtotal = unit.amount * quantity
    product_gst, product_total = _with_gst(product_subtotal, gst_rate)
    processor_gst, processor_total = _with_gst(processor_price, gst_rate)
    structure_gst, structure_total = _with_gst(config.structure_cost, gst_rate)
    installation_gst, installation_total = _with_gst(config.installation_cost, gst_rate)

    return PricingBreakdown(
        unit_price=unit.amount,
        quantity=quantity,
        product_subtotal=product_subtotal,
        product_gst=product_gst,
        product_total=product_total,
        processor_price=processor_price,
        processor_gst=processor_gst,
        processor_total=processor_total,
        structure_cost=config.structure_cost,
        structure_gst=structure_gst,
        structure_total=structure_total,
        installation_cost=config.installation_cost,
        installation_gst=installation_gst,
        installation_total=installation_total,
        grand_total=product_total + processor_total + structure_total + installation_total,
        **common,
    )


def build_display_config(
    product: CatalogProduct,
    grid: CabinetGrid,
    width_mm: Optional[Any] = None,
    height_mm: Optional[Any] = None,
    structure_cost: Optional[Any] = None,
    installation_cost: Optional[Any] = None,
) -> DisplayConfig:
    """Caller-supplied costs win; otherwise estimate from the display size."""
    if width_mm is not None and height_mm is not None:
        config = estimated_display_config(product, grid, width_mm, height_mm)
    else:
        config = DisplayConfig()
    if structure_cost is not None:
        config = replace(config, structure_cost=to_decimal(structure_cost, "structureCost"))
    if installation_cost is not None:
        config = replace(config, installation_cost=to_decimal(installation_cost, "installationCost"))
    return config
