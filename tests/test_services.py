from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from ledquote.app.catalog import Catalog
from ledquote.app.config import EngineSettings
from ledquote.app.discounts import DiscountDirective
from ledquote.app.errors import ConflictError, NotFoundError, ValidationError
from ledquote.app.models import Base, SalesUser
from ledquote.app.quotation_ids import QuotationIdGenerator
from ledquote.app.services import QuotationRequest, QuotationService

ON = date(2025, 1, 2)


@pytest.fixture()
def service(tmp_path, bundled_catalog: Catalog) -> QuotationService:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'quotes.db'}", future=True, connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, future=True)()
    session.add_all(
        [
            SalesUser(id=1, name="Priya Admin", email="priya@example.com", role="superAdmin"),
            SalesUser(id=2, name="Anna Sharma", email="anna@example.com", role="sales"),
            SalesUser(id=3, name="Ben Roy", email="ben@example.com", role="sales"),
        ]
    )
    session.commit()
    try:
        yield QuotationService(session, bundled_catalog, QuotationIdGenerator(engine), EngineSettings())
    finally:
        session.close()


def request_for(**overrides) -> QuotationRequest:
    payload = {
        "customer": {"name": "Acme Halls", "email": "buyer@acme.test"},
        "productId": "rigel-cob-p1.25",
        "cabinetGrid": {"columns": 3, "rows": 2},
        "userType": "endUser",
    }
    payload.update(overrides)
    return QuotationRequest.from_payload(payload)


def test_save_quotation(service: QuotationService) -> None:
    quote = service.save_quotation(2, request_for(), on=ON)
    assert quote.quotation_id == "ORION/2025/01/02/ANNA/001"
    assert quote.owner_sales_user_id == 2
    assert quote.created_by_id == 2
    assert quote.total_price == 203196
    assert quote.user_type_label == "End User"
    assert quote.pricing_breakdown["display"]["productGST"] == 30996
    assert quote.product_snapshot["cabinetGrid"] == {"columns": 3, "rows": 2}
    assert quote.product_snapshot["mode"] == "standard"
    assert quote.original_pricing_breakdown is None


def test_admin_saves_on_behalf_of_another_user(service: QuotationService) -> None:
    quote = service.save_quotation(1, request_for(ownerSalesUserId=3), on=ON)
    assert quote.quotation_id == "ORION/2025/01/02/PRIYA/001"
    assert quote.owner_sales_user_id == 3
    assert quote.created_by_id == 1

    ignored = service.save_quotation(2, request_for(ownerSalesUserId=3), on=ON)
    assert ignored.owner_sales_user_id == 2
    assert ignored.quotation_id == "ORION/2025/01/02/ANNA/002"


def test_display_and_costs_flow_into_the_breakdown(service: QuotationService) -> None:
    request = request_for(
        productId="rigel-p10-outdoor",
        processor="VX400",
        display={"widthMm": 1000, "heightMm": 1000},
        installationCost=0,
    )
    breakdown = service.price(request)
    assert breakdown.structure_cost == 26900
    assert breakdown.installation_cost == 0
    assert breakdown.display_size == (1.0, 1.0)
    assert breakdown.grand_total == breakdown.components_total


def test_unit_price_override(service: QuotationService) -> None:
    breakdown = service.price(request_for(unitPriceOverride="1000"))
    assert breakdown.price_source == "override"
    assert breakdown.product_subtotal == 6000
    with pytest.raises(ValidationError):
        service.price(request_for(unitPriceOverride=-5))


def test_unavailable_pricing_is_not_saved(service: QuotationService) -> None:
    request = request_for(productId="transparent-indoor-p3.9", userType="reseller")
    with pytest.raises(ValidationError) as excinfo:
        service.save_quotation(2, request, on=ON)
    assert excinfo.value.field == "userType"


def test_unknown_product_and_user(service: QuotationService) -> None:
    with pytest.raises(NotFoundError):
        service.save_quotation(2, request_for(productId="nope"), on=ON)
    with pytest.raises(NotFoundError):
        service.save_quotation(42, request_for(), on=ON)


@pytest.mark.parametrize(
    "payload, field",
    [
        ({"productId": "x"}, "customer.name"),
        ({"customer": {"name": "Acme"}}, "productId"),
        ({"customer": {"name": "Acme"}, "productId": "x", "cabinetGrid": {"columns": "a"}}, "cabinetGrid"),
        ({"customer": {"name": "Acme"}, "productId": "x", "userType": "vip"}, "userType"),
    ],
)
def test_request_validation(payload, field) -> None:
    with pytest.raises(ValidationError) as excinfo:
        QuotationRequest.from_payload(payload)
    assert excinfo.value.field == field


def test_insert_collision_is_retried(service: QuotationService, monkeypatch) -> None:
    taken = service.save_quotation(2, request_for(), on=ON).quotation_id
    candidates = iter([taken, "ORION/2025/01/02/ANNA/009"])
    monkeypatch.setattr(service, "generate_quotation_id", lambda name, on=None: next(candidates))
    second = service.save_quotation(2, request_for(), on=ON)
    assert second.quotation_id == "ORION/2025/01/02/ANNA/009"


def test_insert_collision_gives_up_with_conflict(service: QuotationService, monkeypatch) -> None:
    taken = service.save_quotation(2, request_for(), on=ON).quotation_id
    monkeypatch.setattr(service, "generate_quotation_id", lambda name, on=None: taken)
    with pytest.raises(ConflictError) as excinfo:
        service.save_quotation(2, request_for(), on=ON)
    assert excinfo.value.quotation_id == taken


def test_discount_keeps_original(service: QuotationService) -> None:
    quote = service.save_quotation(2, request_for(), on=ON)
    discounted = service.apply_discount(2, quote.quotation_id, DiscountDirective("Panel", 10))
    assert discounted.total_price == 182876
    assert discounted.original_total_price == 203196
    assert discounted.discount["scope"] == "Panel"
    assert discounted.discount["amountDeductedRounded"] == 20320

    again = service.apply_discount(1, quote.quotation_id, DiscountDirective("GrandTotal", 50))
    assert again.total_price == 101598
    assert again.original_total_price == 203196

    cleared = service.apply_discount(2, quote.quotation_id, DiscountDirective("Panel", 0))
    assert cleared.total_price == 203196
    assert cleared.discount is None


def test_only_owner_creator_or_admin_may_discount(service: QuotationService) -> None:
    quote = service.save_quotation(2, request_for(), on=ON)
    with pytest.raises(ValidationError):
        service.apply_discount(3, quote.quotation_id, DiscountDirective("Panel", 10))


def test_delete_requires_elevated_role(service: QuotationService) -> None:
    quote = service.save_quotation(2, request_for(), on=ON)
    with pytest.raises(ValidationError):
        service.delete_quotation(2, quote.quotation_id)
    service.delete_quotation(1, quote.quotation_id)
    with pytest.raises(NotFoundError):
        service.get_quotation("ORION/2025/01/02/ANNA/001")


def test_report_uses_owner(service: QuotationService) -> None:
    service.save_quotation(1, request_for(ownerSalesUserId=3), on=ON)
    service.save_quotation(2, request_for(), on=ON)
    totals = {row.sales_user_id: row for row in service.report(1)}
    assert totals[1].quotation_count == 0
    assert totals[3].revenue == 203196
    assert [row.sales_user_id for row in service.report(3)] == [3]


def test_pre_issued_id_is_stored(service: QuotationService) -> None:
    issued = service.generate_quotation_id("Anna", ON)
    quote = service.save_quotation(2, request_for(quotationId=issued), on=ON)
    assert quote.quotation_id == issued == "ORION/2025/01/02/ANNA/001"
    assert service.save_quotation(2, request_for(), on=ON).quotation_id == "ORION/2025/01/02/ANNA/002"


@pytest.mark.parametrize(
    "quotation_id",
    ["ORION/2025/01/02/BEN/001", "VEGA/2025/01/02/ANNA/001", "ORION/2025/02/30/ANNA/001", "not-an-id"],
)
def test_pre_issued_id_must_belong_to_creator(service: QuotationService, quotation_id) -> None:
    with pytest.raises(ValidationError) as excinfo:
        service.save_quotation(2, request_for(quotationId=quotation_id), on=ON)
    assert excinfo.value.field in ("quotationId", "date")


def test_taken_pre_issued_id_is_regenerated(service: QuotationService) -> None:
    taken = service.save_quotation(2, request_for(), on=ON).quotation_id
    quote = service.save_quotation(2, request_for(quotationId=taken), on=ON)
    assert quote.quotation_id == "ORION/2025/01/02/ANNA/002"


def test_saved_quotation_is_not_repriced(service: QuotationService, make_record) -> None:
    quote = service.save_quotation(2, request_for(), on=ON)
    repriced = Catalog.from_records([make_record("rigel-cob-p1.25", 1.25, price=99999)])
    later = QuotationService(service.session, repriced, service.generator, service.settings)

    stored = later.get_quotation(quote.quotation_id)
    assert stored.total_price == 203196
    assert stored.pricing_breakdown["display"]["grandTotal"] == 203196

    discounted = later.apply_discount(2, quote.quotation_id, DiscountDirective("Panel", 10))
    assert discounted.total_price == 182876
    assert discounted.original_total_price == 203196
