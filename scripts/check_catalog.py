from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from ledquote.app.catalog import Catalog, CustomerTier
from ledquote.app.config import DEFAULT_CATALOG_PATH
from ledquote.app.errors import ValidationError
from ledquote.app.pricing import resolve_unit_price


def report(catalog: Catalog) -> int:
    """Print one line per product and return the number of problems found."""
    problems = 0
    seen: set[str] = set()
    for product in catalog:
        if product.id in seen:
            print(f"  duplicate id: {product.id}")
            problems += 1
            continue
        seen.add(product.id)
        sources = []
        for tier in CustomerTier:
            unit = resolve_unit_price(product, tier)
            sources.append(f"{tier.value}={unit.amount if unit.available else 'NA'}({unit.source})")
            if unit.source in {"legacy", "default"}:
                problems += 1
        state = "enabled" if product.enabled else "disabled"
        print(f"{product.id:<32} P{product.pixel_pitch:<7g} {product.environment:<8} {state:<9} " + " ".join(sources))
    return problems


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Validate an LED product catalog file")
    parser.add_argument("catalog", type=Path, nargs="?", default=DEFAULT_CATALOG_PATH, help="Path to catalog JSON")
    args = parser.parse_args()

    try:
        catalog = Catalog.load(args.catalog)
    except ValidationError as exc:
        print(f"Invalid catalog {args.catalog}: {exc} (field {exc.field})")
        sys.exit(2)
    problems = report(catalog)
    print(f"{len(catalog)} products, {problems} problem(s)")
    sys.exit(1 if problems else 0)
