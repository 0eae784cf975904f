from __future__ import annotations

import pytest
from fastapi import HTTPException

from ledquote.app.catalog import Catalog
from ledquote.routers import engine as engine_router


def test_recommend_pitch(indoor_catalog: Catalog) -> None:
    body = engine_router.RecommendBody(distance=20, unit="feet", environment="Indoor")
    payload = engine_router.recommend_pitch(body, catalog=indoor_catalog)
    assert payload["pixelPitch"] == 1.8
    assert payload["idealPitch"] == 2.0
    assert payload["pitchesInWindow"] == [1.5, 1.8, 2.5]


def test_recommend_pitch_rejects_bad_distance(indoor_catalog: Catalog) -> None:
    body = engine_router.RecommendBody(distance="far", unit="feet")
    with pytest.raises(HTTPException) as excinfo:
        engine_router.recommend_pitch(body, catalog=indoor_catalog)
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail["field"] == "viewingDistance"


def test_list_products(bundled_catalog: Catalog) -> None:
    body = engine_router.ProductsBody.model_validate(
        {"environment": "Outdoor", "viewingDistance": "10+"}
    )
    payload = engine_router.list_products(body, catalog=bundled_catalog)
    assert [p["id"] for p in payload["products"]] == ["rigel-p6.6-outdoor", "rigel-p10-outdoor"]


def test_price_and_discount(bundled_catalog: Catalog) -> None:
    body = engine_router.PriceBody.model_validate(
        {"productId": "rigel-cob-p1.25", "cabinetGrid": {"columns": 3, "rows": 2}, "userType": "endUser"}
    )
    priced = engine_router.price(body, catalog=bundled_catalog)
    assert priced["display"]["grandTotal"] == 203196

    discounted = engine_router.discount(
        engine_router.DiscountBody(breakdown=priced, scope="Panel", percent=10)
    )
    assert discounted["breakdown"]["display"]["grandTotal"] == 182876
    assert discounted["discount"]["amountDeductedRounded"] == 20320


def test_price_unknown_product(bundled_catalog: Catalog) -> None:
    body = engine_router.PriceBody.model_validate(
        {"productId": "missing", "cabinetGrid": {"columns": 1, "rows": 1}}
    )
    with pytest.raises(HTTPException) as excinfo:
        engine_router.price(body, catalog=bundled_catalog)
    assert excinfo.value.status_code == 404


def test_discount_rejects_stacked_scopes(bundled_catalog: Catalog) -> None:
    body = engine_router.PriceBody.model_validate(
        {"productId": "rigel-smd-p2.5", "cabinetGrid": {"columns": 1, "rows": 1}}
    )
    priced = engine_router.price(body, catalog=bundled_catalog)
    with pytest.raises(HTTPException) as excinfo:
        engine_router.discount(
            engine_router.DiscountBody(breakdown=priced, scope=["Panel", "Controller"], percent=5)
        )
    assert excinfo.value.detail["field"] == "scope"


def test_viewing_distances() -> None:
    payload = engine_router.viewing_distances(environment="outdoor")
    labels = [band["label"] for band in payload["bands"]]
    assert labels == ["2.5-3", "2.5-3", "4-8", "4-8", "10+", "10+"]
    with pytest.raises(HTTPException):
        engine_router.viewing_distances(environment="underwater")
