from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .attribution import OwnerTotals, aggregate_by_owner, is_elevated, resolve_owner
from .breakdown import PricingBreakdown, to_decimal
from .catalog import Catalog, CatalogProduct, CustomerTier
from .config import EngineSettings
from .discounts import DiscountDirective, apply_discount, restore_original
from .errors import ConflictError, NotFoundError, ValidationError
from .models import Quotation, SalesUser
from .pricing import CabinetGrid, PriceOverride, build_display_config, compute_price
from .quotation_ids import QuotationIdGenerator, format_quotation_id, normalize_name_part, parse_quotation_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuotationRequest:
    customer_name: str
    product_id: str
    grid: CabinetGrid
    user_type: CustomerTier = CustomerTier.END_USER
    processor: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    message: Optional[str] = None
    width_mm: Optional[Decimal] = None
    height_mm: Optional[Decimal] = None
    structure_cost: Optional[Decimal] = None
    installation_cost: Optional[Decimal] = None
    unit_price_override: Optional[Decimal] = None
    requested_owner_id: Any = None
    quotation_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "QuotationRequest":
        customer = payload.get("customer") or {}
        grid = payload.get("cabinetGrid") or {}
        display = payload.get("display") or {}

        def _money(value: Any, name: str) -> Optional[Decimal]:
            return None if value in (None, "") else to_decimal(value, name)

        name = (customer.get("name") or "").strip()
        if not name:
            raise ValidationError("customer name is required", "customer.name")
        product_id = (payload.get("productId") or "").strip()
        if not product_id:
            raise ValidationError("productId is required", "productId")
        try:
            cabinet_grid = CabinetGrid(int(grid.get("columns", 1)), int(grid.get("rows", 1)))
        except (TypeError, ValueError):
            raise ValidationError("cabinet grid must be integers", "cabinetGrid") from None
        return cls(
            customer_name=name,
            customer_email=customer.get("email"),
            customer_phone=customer.get("phone"),
            message=payload.get("message"),
            product_id=product_id,
            grid=cabinet_grid,
            user_type=CustomerTier.parse(payload.get("userType") or CustomerTier.END_USER),
            processor=payload.get("processor") or None,
            width_mm=_money(display.get("widthMm"), "display.widthMm"),
            height_mm=_money(display.get("heightMm"), "display.heightMm"),
            structure_cost=_money(payload.get("structureCost"), "structureCost"),
            installation_cost=_money(payload.get("installationCost"), "installationCost"),
            unit_price_override=_money(payload.get("unitPriceOverride"), "unitPriceOverride"),
            requested_owner_id=payload.get("ownerSalesUserId"),
            quotation_id=(payload.get("quotationId") or "").strip() or None,
        )


def product_snapshot(product: CatalogProduct, request: QuotationRequest, breakdown: PricingBreakdown) -> Dict[str, Any]:
    snapshot = product.to_summary()
    snapshot.update(
        {
            "resolution": list(product.resolution) if product.resolution else None,
            "cabinetGrid": {"columns": request.grid.columns, "rows": request.grid.rows},
            "cabinetDimensions": {"width": product.cabinet_width_mm, "height": product.cabinet_height_mm},
            "processor": breakdown.processor_name,
            "mode": product.rental_option or ("rental" if product.is_rental else "standard"),
            "displaySize": list(breakdown.display_size) if breakdown.display_size else None,
        }
    )
    return snapshot


class QuotationService:
    def __init__(
        self,
        session: Session,
        catalog: Catalog,
        generator: QuotationIdGenerator,
        settings: Optional[EngineSettings] = None,
    ):
        self.session = session
        self.catalog = catalog
        self.generator = generator
        self.settings = settings or EngineSettings()

    def get_user(self, user_id: Any) -> SalesUser:
        try:
            key = int(user_id)
        except (TypeError, ValueError):
            raise ValidationError("sales user id must be an integer", "salesUserId") from None
        user = self.session.get(SalesUser, key)
        if user is None:
            raise NotFoundError(f"sales user {user_id} not found", "salesUserId")
        return user

    def get_quotation(self, quotation_id: str) -> Quotation:
        quote = self.session.execute(
            select(Quotation).where(Quotation.quotation_id == quotation_id)
        ).scalar_one_or_none()
        if quote is None:
            raise NotFoundError(f"quotation {quotation_id} not found", "quotationId")
        return quote

    def price(self, request: QuotationRequest) -> PricingBreakdown:
        product = self.catalog.get(request.product_id)
        override = None
        if request.unit_price_override is not None:
            if request.unit_price_override <= 0:
                raise ValidationError("unit price override must be positive", "unitPriceOverride")
            override = PriceOverride(product.id, request.user_type, request.unit_price_override)
        return compute_price(
            product,
            request.grid,
            processor=request.processor,
            tier=request.user_type,
            config=build_display_config(
                product,
                request.grid,
                request.width_mm,
                request.height_mm,
                request.structure_cost,
                request.installation_cost,
            ),
            override=override,
            gst_rate=self.settings.gst_rate,
        )

    def generate_quotation_id(self, name: str, on: Optional[date] = None) -> str:
        return self.generator.generate_for(name, on)

    def _check_issued_id(self, quotation_id: str, creator: SalesUser) -> str:
        parts = parse_quotation_id(quotation_id)
        # round-trips the date and serial through the formatter's checks
        format_quotation_id(parts.name, parts.year, parts.month, parts.day, parts.serial, parts.org)
        if parts.org != self.generator.prefix:
            raise ValidationError(f"quotation id must start with {self.generator.prefix}/", "quotationId")
        if parts.name != normalize_name_part(creator.name):
            raise ValidationError("quotation id was not issued for this sales user", "quotationId")
        return quotation_id

    def save_quotation(self, creator_id: Any, request: QuotationRequest, on: Optional[date] = None) -> Quotation:
        creator = self.get_user(creator_id)
        owner_id = resolve_owner(self.session, creator, request.requested_owner_id)
        product = self.catalog.get(request.product_id)
        breakdown = self.price(request)
        if not breakdown.is_available:
            raise ValidationError(
                f"{product.name} is not priced for {breakdown.user_type_label}", "userType"
            )
        snapshot = product_snapshot(product, request, breakdown)
        creator_name = creator.name

        issued = self._check_issued_id(request.quotation_id, creator) if request.quotation_id else None

        attempts = self.settings.quotation_id_max_attempts
        last_id = None
        for attempt in range(1, attempts + 1):
            if attempt == 1 and issued is not None:
                quotation_id = issued
            else:
                quotation_id = self.generate_quotation_id(creator_name, on)
            last_id = quotation_id
            quote = Quotation(
                quotation_id=quotation_id,
                owner_sales_user_id=owner_id,
                created_by_id=creator.id,
                customer_name=request.customer_name,
                customer_email=request.customer_email,
                customer_phone=request.customer_phone,
                message=request.message,
                product_id=product.id,
                product_name=product.name,
                user_type=breakdown.user_type.value,
                user_type_label=breakdown.user_type_label,
                product_snapshot=snapshot,
                pricing_breakdown=breakdown.to_dict(),
                total_price=breakdown.display()["grandTotal"],
            )
            self.session.add(quote)
            try:
                self.session.commit()
            except IntegrityError:
                self.session.rollback()
                logger.warning(
                    "Quotation id %s collided on insert (attempt %d/%d)", quotation_id, attempt, attempts
                )
                continue
            logger.info("Saved quotation %s for owner %s", quotation_id, owner_id)
            return quote
        raise ConflictError(f"could not store a unique quotation id after {attempts} attempts", last_id)

    def apply_discount(self, editor_id: Any, quotation_id: str, directive: DiscountDirective) -> Quotation:
        editor = self.get_user(editor_id)
        quote = self.get_quotation(quotation_id)
        if not is_elevated(editor) and editor.id not in (quote.owner_sales_user_id, quote.created_by_id):
            raise ValidationError("not allowed to edit this quotation", "salesUserId")

        current = PricingBreakdown.from_dict(quote.pricing_breakdown)
        discounted, record = apply_discount(current, directive)
        if quote.original_pricing_breakdown is None and record is not None:
            original = restore_original(current)
            quote.original_pricing_breakdown = original.to_dict()
            quote.original_total_price = original.display()["grandTotal"]
        quote.pricing_breakdown = discounted.to_dict()
        quote.discount = record.to_dict() if record else None
        quote.total_price = discounted.display()["grandTotal"]
        quote.updated_at = datetime.utcnow()
        self.session.commit()
        logger.info(
            "Discount %s%% on %s applied to %s by %s",
            directive.percent,
            directive.scope.value,
            quotation_id,
            editor.id,
        )
        return quote

    def delete_quotation(self, user_id: Any, quotation_id: str) -> None:
        user = self.get_user(user_id)
        if not is_elevated(user):
            raise ValidationError("only administrators can delete quotations", "salesUserId")
        quote = self.get_quotation(quotation_id)
        self.session.delete(quote)
        self.session.commit()
        logger.info("Deleted quotation %s by %s", quotation_id, user.id)

    def report(
        self,
        viewer_id: Any,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[OwnerTotals]:
        viewer = self.get_user(viewer_id)
        return aggregate_by_owner(self.session, viewer, start, end)

