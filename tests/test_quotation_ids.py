from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from datetime import date

import pytest
from sqlalchemy import create_engine, insert
from sqlalchemy.engine import Engine

from ledquote.app.errors import ConflictError, GenerationError, ValidationError
from ledquote.app.models import Base, Quotation, SalesUser
from ledquote.app.quotation_ids import (
    MAX_SERIAL,
    QUOTATION_ID_PATTERN,
    QuotationIdGenerator,
    format_quotation_id,
    normalize_name_part,
    parse_quotation_id,
)


@pytest.fixture()
def engine(tmp_path) -> Engine:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ids.db'}", future=True, connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    with engine.begin() as conn:
        conn.execute(insert(SalesUser.__table__).values(id=1, name="Anna Sharma", email="anna@example.com", role="sales"))
    return engine


def store(engine: Engine, *quotation_ids: str) -> None:
    with engine.begin() as conn:
        for value in quotation_ids:
            conn.execute(
                insert(Quotation.__table__).values(
                    quotation_id=value,
                    owner_sales_user_id=1,
                    created_by_id=1,
                    customer_name="Acme",
                    product_id="rigel-smd-p2.5",
                    product_name="Rigel Series Indoor SMD P2.5",
                    product_snapshot={},
                    pricing_breakdown={},
                    total_price=0,
                )
            )


def test_format_and_parse() -> None:
    value = format_quotation_id("anna sharma", 2025, 1, 2, 7)
    assert value == "ORION/2025/01/02/ANNA/007"
    assert QUOTATION_ID_PATTERN.match(value)
    parts = parse_quotation_id(value)
    assert (parts.year, parts.month, parts.day, parts.name, parts.serial) == (2025, 1, 2, "ANNA", 7)
    assert parts.prefix == "ORION/2025/01/02/ANNA/"
    assert parts.format() == value


@pytest.mark.parametrize("name", ["", "   ", "9lives", "O'Neil", "Zoë"])
def test_names_must_be_letters(name) -> None:
    with pytest.raises(ValidationError) as excinfo:
        normalize_name_part(name)
    assert excinfo.value.field == "name"


def test_invalid_date_and_serial() -> None:
    with pytest.raises(ValidationError):
        format_quotation_id("anna", 2025, 2, 30, 1)
    with pytest.raises(GenerationError):
        format_quotation_id("anna", 2025, 2, 3, MAX_SERIAL + 1)
    with pytest.raises(ValidationError):
        parse_quotation_id("ORION/2025/1/2/ANNA/7")


def test_first_identifier_starts_at_one(engine: Engine) -> None:
    generator = QuotationIdGenerator(engine)
    assert generator.generate("Anna", 2025, 1, 2) == "ORION/2025/01/02/ANNA/001"


def test_serial_is_global_across_names_and_dates(engine: Engine) -> None:
    store(engine, "ORION/2025/01/02/ZED/005", "ORION/2024/12/31/ANNA/004")
    generator = QuotationIdGenerator(engine)
    assert generator.generate("Anna", 2025, 1, 2) == "ORION/2025/01/02/ANNA/006"
    assert generator.generate("Zed", 2025, 1, 3) == "ORION/2025/01/03/ZED/007"


def test_taken_candidate_retries_from_prefix(engine: Engine, monkeypatch) -> None:
    store(engine, "ORION/2025/01/02/ZED/005", "ORION/2025/01/02/ANNA/006")
    generator = QuotationIdGenerator(engine)
    # a stale read of the serial lands on ANNA/006, which is already stored
    monkeypatch.setattr(generator, "_latest_serial", lambda conn: 5)
    assert generator.generate("Anna", 2025, 1, 2) == "ORION/2025/01/02/ANNA/007"


def test_serial_comes_from_highest_stored_serial(engine: Engine) -> None:
    store(engine, "ORION/2025/01/02/ZED/002", "ORION/2025/01/02/ANNA/003")
    # a fresh generator has no in-process high-water mark to lean on
    assert QuotationIdGenerator(engine).generate("Zed", 2025, 1, 2) == "ORION/2025/01/02/ZED/004"



def test_identifiers_are_never_handed_out_twice(engine: Engine) -> None:
    generator = QuotationIdGenerator(engine)
    issued = {generator.generate_for("Anna", date(2025, 3, 4)) for _ in range(5)}
    assert len(issued) == 5


def test_persistent_collision_raises_conflict(engine: Engine, monkeypatch) -> None:
    generator = QuotationIdGenerator(engine)
    monkeypatch.setattr(generator, "_exists", lambda conn, quotation_id: True)
    with pytest.raises(ConflictError) as excinfo:
        generator.generate("Anna", 2025, 1, 2)
    assert excinfo.value.retryable
    assert excinfo.value.quotation_id.startswith("ORION/2025/01/02/ANNA/")


def test_exhausted_serials(engine: Engine) -> None:
    store(engine, f"ORION/2025/01/02/ANNA/{MAX_SERIAL:03d}")
    with pytest.raises(GenerationError):
        QuotationIdGenerator(engine).generate("Anna", 2025, 1, 3)


def test_store_failure_raises_generation_error(tmp_path) -> None:
    bare = create_engine(f"sqlite:///{tmp_path / 'empty.db'}", future=True)
    generator = QuotationIdGenerator(bare)
    with pytest.raises(GenerationError):
        generator.generate("Anna", 2025, 1, 2)
    assert generator._issued == set()


def test_custom_prefix_ignores_other_orgs(engine: Engine) -> None:
    store(engine, "ORION/2025/01/02/ANNA/050")
    generator = QuotationIdGenerator(engine, prefix="vega")
    assert generator.generate("Anna", 2025, 1, 2) == "VEGA/2025/01/02/ANNA/001"


def test_concurrent_requests_get_distinct_ids(engine: Engine) -> None:
    generator = QuotationIdGenerator(engine)
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: generator.generate("Anna", 2025, 1, 2), range(40)))
    assert len(set(results)) == 40
    serials = sorted(parse_quotation_id(value).serial for value in results)
    assert serials == list(range(1, 41))
