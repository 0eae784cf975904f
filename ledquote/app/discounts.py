"""
Percentage discounts on a priced breakdown.

At most one discount is active on a breakdown. Applying a new one always
restores the undiscounted figures first, so edits replace rather than
compound. The :class:`DiscountRecord` embedded in the result holds the exact
amounts taken off each figure, which makes :func:`restore_original` a plain
addition.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Optional, Tuple, Union

from .breakdown import HUNDRED, ZERO, DiscountRecord, DiscountScope, PricingBreakdown, to_decimal
from .errors import ValidationError


@dataclass(frozen=True)
class DiscountDirective:
    scope: DiscountScope
    percent: Decimal

    def __post_init__(self) -> None:
        if not isinstance(self.scope, DiscountScope):
            object.__setattr__(self, "scope", DiscountScope.parse(self.scope))
        percent = to_decimal(self.percent, "percent")
        if not percent.is_finite() or percent < 0 or percent > HUNDRED:
            raise ValidationError("discount percent must be between 0 and 100", "percent")
        object.__setattr__(self, "percent", percent)

    @classmethod
    def from_scopes(cls, scopes: Union[str, Iterable[Any]], percent: Any) -> "DiscountDirective":
        """Build a directive from a scope list, rejecting stacked scopes."""
        if isinstance(scopes, (str, DiscountScope)):
            scopes = [scopes]
        parsed = {DiscountScope.parse(scope) for scope in scopes}
        if not parsed:
            raise ValidationError("a discount scope is required", "scope")
        if len(parsed) > 1:
            raise ValidationError("only one discount scope can be active at a time", "scope")
        return cls(parsed.pop(), percent)


def restore_original(breakdown: PricingBreakdown) -> PricingBreakdown:
    record = breakdown.discount
    if record is None:
        return breakdown
    changes = {"discount": None, "grand_total": breakdown.grand_total + record.amount_deducted}
    if record.scope is DiscountScope.PANEL:
        changes.update(
            product_subtotal=breakdown.product_subtotal + record.subtotal_deducted,
            product_gst=breakdown.product_gst + record.gst_deducted,
            product_total=breakdown.product_total + record.amount_deducted,
        )
    elif record.scope is DiscountScope.CONTROLLER:
        changes.update(
            processor_price=breakdown.processor_price + record.subtotal_deducted,
            processor_gst=breakdown.processor_gst + record.gst_deducted,
            processor_total=breakdown.processor_total + record.amount_deducted,
        )
    return breakdown.with_changes(**changes)


def _component(breakdown: PricingBreakdown, scope: DiscountScope) -> Tuple[str, str, str]:
    if scope is DiscountScope.PANEL:
        return "product_subtotal", "product_gst", "product_total"
    return "processor_price", "processor_gst", "processor_total"


def apply_discount(
    breakdown: PricingBreakdown,
    directive: DiscountDirective,
) -> Tuple[PricingBreakdown, Optional[DiscountRecord]]:
    """Return the discounted breakdown and its record.

    A 0% directive clears any active discount and returns ``None`` as the
    record.
    """
    if not breakdown.is_available:
        raise ValidationError("cannot discount a breakdown without pricing", "pricing")
    original = restore_original(breakdown)
    if directive.percent == ZERO:
        return original, None

    fraction = directive.percent / HUNDRED
    if directive.scope is DiscountScope.GRAND_TOTAL:
        amount = original.grand_total * fraction
        record = DiscountRecord(directive.scope, directive.percent, amount)
        return original.with_changes(grand_total=original.grand_total - amount, discount=record), record

    base_name, gst_name, total_name = _component(original, directive.scope)
    base, gst, total = (getattr(original, name) for name in (base_name, gst_name, total_name))
    base_cut = base * fraction
    gst_cut = gst * fraction
    amount = base_cut + gst_cut
    record = DiscountRecord(directive.scope, directive.percent, amount, base_cut, gst_cut)
    discounted = original.with_changes(
        **{
            base_name: base - base_cut,
            gst_name: gst - gst_cut,
            total_name: total - amount,
        },
        grand_total=original.grand_total - amount,
        discount=record,
    )
    return discounted, record
