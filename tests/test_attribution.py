from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from ledquote.app.attribution import aggregate_by_owner, is_elevated, normalize_role, resolve_owner
from ledquote.app.errors import ValidationError
from ledquote.app.models import Base, Quotation, SalesUser


@pytest.fixture()
def session() -> Session:
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, future=True)
    db = SessionLocal()
    db.add_all(
        [
            SalesUser(id=1, name="Priya Admin", email="priya@example.com", role="superAdmin"),
            SalesUser(id=2, name="Anna Sharma", email="anna@example.com", role="sales"),
            SalesUser(id=3, name="Ben Roy", email="ben@example.com", role="sales"),
            SalesUser(
                id=4,
                name="Kiran Partner",
                email="kiran@example.com",
                role="partner",
                allowed_customer_types=["reseller"],
            ),
        ]
    )
    db.commit()
    try:
        yield db
    finally:
        db.close()


def add_quote(db: Session, quotation_id: str, owner: int, creator: int, user_type: str, total: int, created_at: datetime):
    db.add(
        Quotation(
            quotation_id=quotation_id,
            owner_sales_user_id=owner,
            created_by_id=creator,
            customer_name="Acme",
            product_id="rigel-smd-p2.5",
            product_name="Rigel Series Indoor SMD P2.5",
            user_type=user_type,
            total_price=total,
            created_at=created_at,
        )
    )
    db.commit()


@pytest.fixture()
def seeded(session: Session) -> Session:
    add_quote(session, "ORION/2025/01/02/PRIYA/001", 2, 1, "endUser", 100, datetime(2025, 1, 2))
    add_quote(session, "ORION/2025/02/03/ANNA/002", 2, 2, "reseller", 200, datetime(2025, 2, 3))
    add_quote(session, "ORION/2025/03/04/BEN/003", 3, 3, "reseller", 50, datetime(2025, 3, 4))
    return session


def rows(totals):
    return [(row.sales_user_id, row.quotation_count, row.revenue) for row in totals]


def test_roles() -> None:
    assert normalize_role("super_admin") == "superAdmin"
    assert normalize_role(None) == "sales"
    with pytest.raises(ValidationError):
        normalize_role("intern")


def test_sales_user_always_owns_their_quotes(session: Session) -> None:
    anna = session.get(SalesUser, 2)
    assert not is_elevated(anna)
    assert resolve_owner(session, anna) == 2
    assert resolve_owner(session, anna, 3) == 2


def test_elevated_user_can_assign_owner(session: Session) -> None:
    admin = session.get(SalesUser, 1)
    partner = session.get(SalesUser, 4)
    assert resolve_owner(session, admin, 3) == 3
    assert resolve_owner(session, partner, "2") == 2
    assert resolve_owner(session, admin, "") == 1


@pytest.mark.parametrize("owner", [99, "abc", True])
def test_unknown_owner_is_rejected(session: Session, owner) -> None:
    admin = session.get(SalesUser, 1)
    with pytest.raises(ValidationError) as excinfo:
        resolve_owner(session, admin, owner)
    assert excinfo.value.field == "owner"


def test_report_groups_by_owner_not_creator(seeded: Session) -> None:
    admin = seeded.get(SalesUser, 1)
    assert rows(aggregate_by_owner(seeded, admin)) == [(1, 0, 0), (2, 2, 300), (3, 1, 50), (4, 0, 0)]
    assert rows(aggregate_by_owner(seeded)) == rows(aggregate_by_owner(seeded, admin))


def test_sales_viewer_sees_only_their_row(seeded: Session) -> None:
    ben = seeded.get(SalesUser, 3)
    assert rows(aggregate_by_owner(seeded, ben)) == [(3, 1, 50)]


def test_partner_viewer_is_limited_to_allowed_customer_types(seeded: Session) -> None:
    partner = seeded.get(SalesUser, 4)
    assert rows(aggregate_by_owner(seeded, partner)) == [(1, 0, 0), (2, 1, 200), (3, 1, 50), (4, 0, 0)]


def test_date_window(seeded: Session) -> None:
    totals = aggregate_by_owner(seeded, start=datetime(2025, 2, 1), end=datetime(2025, 2, 28))
    assert rows(totals) == [(1, 0, 0), (2, 1, 200), (3, 0, 0), (4, 0, 0)]
    assert totals[1].to_dict() == {"salesUserId": 2, "name": "Anna Sharma", "quotationCount": 1, "revenue": 200}
