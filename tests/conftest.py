from __future__ import annotations

from typing import Any, Callable, Dict

import pytest

from ledquote.app.catalog import Catalog
from ledquote.app.config import DEFAULT_CATALOG_PATH


def product_record(
    product_id: str,
    pitch: float,
    environment: str = "Indoor",
    category: str = "Rigel Series",
    enabled: bool = True,
    **extra: Any,
) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "id": product_id,
        "name": extra.pop("name", f"{category} {environment} P{pitch}"),
        "category": category,
        "pixelPitch": pitch,
        "environment": environment,
        "enabled": enabled,
        "price": extra.pop("price", 10000),
    }
    record.update(extra)
    return record


@pytest.fixture()
def make_record() -> Callable[..., Dict[str, Any]]:
    return product_record


@pytest.fixture(scope="session")
def bundled_catalog() -> Catalog:
    return Catalog.load(DEFAULT_CATALOG_PATH)


@pytest.fixture()
def indoor_catalog() -> Catalog:
    pitches = [0.9, 1.25, 1.5, 1.8, 2.5, 3.0, 4.0]
    return Catalog.from_records(product_record(f"indoor-p{p}", p) for p in pitches)
