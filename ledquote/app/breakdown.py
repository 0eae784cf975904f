"""
Value objects shared by the pricing calculator and the discount applier.

All money is carried as unrounded ``Decimal``. Rounding to whole currency
units only happens in :meth:`PricingBreakdown.display`, which is what gets
shown to users and stored as the quotation's headline total.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .catalog import CustomerTier
from .errors import ValidationError

ZERO = Decimal("0")
HUNDRED = Decimal("100")
GST_RATE = Decimal("0.18")


def to_decimal(value: Any, field_name: str = "amount") -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be numeric", field_name)
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be numeric", field_name) from None


def to_whole(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class DiscountScope(str, Enum):
    PANEL = "Panel"
    CONTROLLER = "Controller"
    GRAND_TOTAL = "GrandTotal"

    @classmethod
    def parse(cls, value: Any) -> "DiscountScope":
        if isinstance(value, DiscountScope):
            return value
        text = str(value or "").replace(" ", "").replace("_", "").lower()
        for scope in cls:
            if scope.value.lower() == text:
                return scope
        aliases = {"product": cls.PANEL, "processor": cls.CONTROLLER, "total": cls.GRAND_TOTAL}
        if text in aliases:
            return aliases[text]
        raise ValidationError(f"unknown discount scope: {value!r}", "scope")


@dataclass(frozen=True)
class DiscountRecord:
    """What a discount took away, kept so the original can be rebuilt by addition."""

    scope: DiscountScope
    percent: Decimal
    amount_deducted: Decimal
    subtotal_deducted: Decimal = ZERO
    gst_deducted: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scope": self.scope.value,
            "percent": str(self.percent),
            "amountDeducted": str(self.amount_deducted),
            "subtotalDeducted": str(self.subtotal_deducted),
            "gstDeducted": str(self.gst_deducted),
            "amountDeductedRounded": to_whole(self.amount_deducted),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "DiscountRecord":
        return cls(
            scope=DiscountScope.parse(data["scope"]),
            percent=to_decimal(data["percent"], "percent"),
            amount_deducted=to_decimal(data["amountDeducted"], "amountDeducted"),
            subtotal_deducted=to_decimal(data.get("subtotalDeducted", "0"), "subtotalDeducted"),
            gst_deducted=to_decimal(data.get("gstDeducted", "0"), "gstDeducted"),
        )


_MONEY_FIELDS = (
    "unit_price",
    "product_subtotal",
    "product_gst",
    "product_total",
    "processor_price",
    "processor_gst",
    "processor_total",
    "structure_cost",
    "structure_gst",
    "structure_total",
    "installation_cost",
    "installation_gst",
    "installation_total",
    "grand_total",
)

_CAMEL = {
    "unit_price": "unitPrice",
    "quantity": "quantity",
    "product_subtotal": "productSubtotal",
    "product_gst": "productGST",
    "product_total": "productTotal",
    "processor_price": "processorPrice",
    "processor_gst": "processorGST",
    "processor_total": "processorTotal",
    "structure_cost": "structureCost",
    "structure_gst": "structureGST",
    "structure_total": "structureTotal",
    "installation_cost": "installationCost",
    "installation_gst": "installationGST",
    "installation_total": "installationTotal",
    "grand_total": "grandTotal",
}


@dataclass(frozen=True)
class PricingBreakdown:
    unit_price: Decimal
    quantity: int
    product_subtotal: Decimal
    product_gst: Decimal
    product_total: Decimal
    processor_price: Decimal
    processor_gst: Decimal
    processor_total: Decimal
    structure_cost: Decimal
    structure_gst: Decimal
    structure_total: Decimal
    installation_cost: Decimal
    installation_gst: Decimal
    installation_total: Decimal
    grand_total: Decimal
    user_type: CustomerTier
    product_id: str
    product_name: str
    is_available: bool = True
    price_source: str = "tier"
    processor_name: Optional[str] = None
    cabinet_grid: Optional[Tuple[int, int]] = None
    display_size: Optional[Tuple[float, float]] = None
    discount: Optional[DiscountRecord] = None

    @property
    def user_type_label(self) -> str:
        return self.user_type.label

    @property
    def components_total(self) -> Decimal:
        return self.product_total + self.processor_total + self.structure_total + self.installation_total

    def with_changes(self, **changes: Any) -> "PricingBreakdown":
        return replace(self, **changes)

    def display(self) -> Dict[str, int]:
        """Whole-unit figures.

        Subtotal and GST are rounded separately and each component total
        is their sum, so the displayed rows always add up.
        """
        rounded: Dict[str, int] = {"unitPrice": to_whole(self.unit_price), "quantity": self.quantity}
        grand = 0
        for prefix, base in (
            ("product", "product_subtotal"),
            ("processor", "processor_price"),
            ("structure", "structure_cost"),
            ("installation", "installation_cost"),
        ):
            base_value = to_whole(getattr(self, base))
            gst_value = to_whole(getattr(self, f"{prefix}_gst"))
            rounded[_CAMEL[base]] = base_value
            rounded[_CAMEL[f"{prefix}_gst"]] = gst_value
            rounded[_CAMEL[f"{prefix}_total"]] = base_value + gst_value
            grand += base_value + gst_value
        if self.discount is not None and self.discount.scope is DiscountScope.GRAND_TOTAL:
            grand = to_whole(self.grand_total)
        rounded["grandTotal"] = grand
        return rounded

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for name in _MONEY_FIELDS:
            payload[_CAMEL[name]] = str(getattr(self, name))
        payload.update(
            {
                "quantity": self.quantity,
                "userType": self.user_type.value,
                "userTypeLabel": self.user_type_label,
                "productId": self.product_id,
                "productName": self.product_name,
                "isAvailable": self.is_available,
                "priceSource": self.price_source,
                "processorName": self.processor_name,
                "cabinetGrid": list(self.cabinet_grid) if self.cabinet_grid else None,
                "displaySize": list(self.display_size) if self.display_size else None,
                "discount": self.discount.to_dict() if self.discount else None,
                "display": self.display(),
            }
        )
        return payload

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PricingBreakdown":
        money = {name: to_decimal(data.get(_CAMEL[name], "0"), _CAMEL[name]) for name in _MONEY_FIELDS}
        grid = data.get("cabinetGrid")
        size = data.get("displaySize")
        discount = data.get("discount")
        return cls(
            quantity=int(data.get("quantity") or 0),
            user_type=CustomerTier.parse(data.get("userType") or CustomerTier.END_USER),
            product_id=str(data.get("productId") or ""),
            product_name=str(data.get("productName") or ""),
            is_available=bool(data.get("isAvailable", True)),
            price_source=str(data.get("priceSource") or "tier"),
            processor_name=data.get("processorName"),
            cabinet_grid=(int(grid[0]), int(grid[1])) if grid else None,
            display_size=(float(size[0]), float(size[1])) if size else None,
            discount=DiscountRecord.from_dict(discount) if discount else None,
            **money,
        )

