from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict, Field

from ..app.breakdown import PricingBreakdown
from ..app.catalog import Catalog, CustomerTier, get_catalog
from ..app.config import get_engine_settings
from ..app.discounts import DiscountDirective, apply_discount
from ..app.errors import NotFoundError, QuoteEngineError
from ..app.pricing import CabinetGrid, PriceOverride, build_display_config, compute_price
from ..app.product_filter import FilterCriteria, filter_products
from ..app.viewing_distance import bands, recommend

router = APIRouter(prefix="/api/engine", tags=["engine"])
logger = logging.getLogger(__name__)


def engine_catalog() -> Catalog:
    return get_catalog(get_engine_settings().catalog_path)


def _http_error(exc: QuoteEngineError) -> HTTPException:
    logger.warning("Engine request rejected: %s", exc)
    status = 404 if isinstance(exc, NotFoundError) else 400
    return HTTPException(status_code=status, detail={"error": str(exc), "field": getattr(exc, "field", None)})


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RecommendBody(_Body):
    distance: Union[float, str, List[float]]
    unit: str = "meters"
    environment: Optional[str] = None
    curated: bool = False


class ProductsBody(_Body):
    environment: Optional[str] = None
    sub_type: Optional[str] = Field(default=None, alias="subType")
    category: Optional[str] = None
    pixel_pitch: Optional[float] = Field(default=None, alias="pixelPitch")
    pixel_pitches: List[float] = Field(default_factory=list, alias="pixelPitches")
    viewing_distance: Optional[Union[float, str]] = Field(default=None, alias="viewingDistance")
    viewing_distance_unit: str = Field(default="meters", alias="viewingDistanceUnit")
    enabled: bool = True
    curated: bool = False


class GridBody(_Body):
    columns: int = Field(ge=0)
    rows: int = Field(ge=0)


class PriceBody(_Body):
    product_id: str = Field(alias="productId")
    cabinet_grid: GridBody = Field(alias="cabinetGrid")
    processor: Optional[str] = None
    user_type: CustomerTier = Field(default=CustomerTier.END_USER, alias="userType")
    width_mm: Optional[Decimal] = Field(default=None, alias="widthMm")
    height_mm: Optional[Decimal] = Field(default=None, alias="heightMm")
    structure_cost: Optional[Decimal] = Field(default=None, alias="structureCost")
    installation_cost: Optional[Decimal] = Field(default=None, alias="installationCost")
    unit_price_override: Optional[Decimal] = Field(default=None, alias="unitPriceOverride", gt=0)


class DiscountBody(_Body):
    breakdown: Dict[str, Any]
    scope: Union[str, List[str]]
    percent: Decimal = Field(ge=0, le=100)


@router.post("/recommend-pitch")
def recommend_pitch(body: RecommendBody, catalog: Catalog = Depends(engine_catalog)) -> Dict[str, Any]:
    try:
        result = recommend(catalog, body.distance, body.unit, body.environment, curated=body.curated)
    except QuoteEngineError as exc:
        raise _http_error(exc)
    return result.to_dict()


@router.post("/products")
def list_products(body: ProductsBody, catalog: Catalog = Depends(engine_catalog)) -> Dict[str, Any]:
    criteria = FilterCriteria(
        environment=body.environment,
        sub_type=body.sub_type,
        category=body.category,
        pixel_pitch=body.pixel_pitch,
        pixel_pitches=tuple(body.pixel_pitches),
        viewing_distance=body.viewing_distance,
        viewing_distance_unit=body.viewing_distance_unit,
        enabled=body.enabled,
        curated=body.curated,
    )
    try:
        products = filter_products(catalog, criteria)
    except QuoteEngineError as exc:
        raise _http_error(exc)
    return {"products": [p.to_summary() for p in products]}


@router.post("/price")
def price(body: PriceBody, catalog: Catalog = Depends(engine_catalog)) -> Dict[str, Any]:
    try:
        product = catalog.get(body.product_id)
        grid = CabinetGrid(body.cabinet_grid.columns, body.cabinet_grid.rows)
        config = build_display_config(
            product,
            grid,
            body.width_mm,
            body.height_mm,
            body.structure_cost,
            body.installation_cost,
        )
        override = None
        if body.unit_price_override is not None:
            override = PriceOverride(product.id, body.user_type, body.unit_price_override)
        breakdown = compute_price(
            product,
            grid,
            processor=body.processor,
            tier=body.user_type,
            config=config,
            override=override,
            gst_rate=get_engine_settings().gst_rate,
        )
    except QuoteEngineError as exc:
        raise _http_error(exc)
    return breakdown.to_dict()


@router.post("/discount")
def discount(body: DiscountBody) -> Dict[str, Any]:
    try:
        directive = DiscountDirective.from_scopes(body.scope, body.percent)
        breakdown = PricingBreakdown.from_dict(body.breakdown)
        discounted, record = apply_discount(breakdown, directive)
    except QuoteEngineError as exc:
        raise _http_error(exc)
    return {"breakdown": discounted.to_dict(), "discount": record.to_dict() if record else None}


@router.get("/viewing-distances")
def viewing_distances(environment: Optional[str] = Query(default=None)) -> Dict[str, Any]:
    try:
        table = bands(environment)
    except QuoteEngineError as exc:
        raise _http_error(exc)
    return {"bands": [band.to_dict() for band in table]}
