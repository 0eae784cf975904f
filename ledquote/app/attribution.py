from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.orm import Session

from .errors import ValidationError
from .models import Quotation, SalesUser

logger = logging.getLogger(__name__)

SUPER_ADMIN = "superAdmin"
PARTNER = "partner"
SALES = "sales"
ELEVATED_ROLES = frozenset({SUPER_ADMIN, PARTNER})

_ROLE_ALIASES = {
    "super": SUPER_ADMIN,
    "super_admin": SUPER_ADMIN,
    "superadmin": SUPER_ADMIN,
    "partner": PARTNER,
    "sales": SALES,
}


def normalize_role(role: Optional[str]) -> str:
    key = (role or SALES).strip().lower()
    try:
        return _ROLE_ALIASES[key]
    except KeyError:
        raise ValidationError(f"unknown role: {role!r}", "role") from None


def is_elevated(user: SalesUser) -> bool:
    return normalize_role(user.role) in ELEVATED_ROLES


def _coerce_user_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValidationError("owner id must be an integer", "owner")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError("owner id must be an integer", "owner") from None


def resolve_owner(session: Session, creator: SalesUser, requested_owner_id: Any = None) -> int:
    """Pick the sales user a new quotation counts against.

    Only elevated creators may assign on behalf of someone else; anyone
    else's request is ignored and they own the quotation themselves.
    """
    requested = None if requested_owner_id in (None, "") else requested_owner_id
    if requested is not None and is_elevated(creator):
        owner_id = _coerce_user_id(requested)
    else:
        if requested is not None:
            logger.warning(
                "Ignoring owner override %s from non-elevated user %s", requested, creator.id
            )
        owner_id = creator.id

    owner = session.get(SalesUser, owner_id)
    if owner is None:
        raise ValidationError(f"sales user {owner_id} does not exist", "owner")
    return owner.id


@dataclass(frozen=True)
class OwnerTotals:
    sales_user_id: int
    name: str
    quotation_count: int
    revenue: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "salesUserId": self.sales_user_id,
            "name": self.name,
            "quotationCount": self.quotation_count,
            "revenue": self.revenue,
        }


def aggregate_by_owner(
    session: Session,
    viewer: Optional[SalesUser] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[OwnerTotals]:
    """Count and revenue per sales user, grouped by quotation owner."""
    join_on = [Quotation.owner_sales_user_id == SalesUser.id]
    if start is not None:
        join_on.append(Quotation.created_at >= start)
    if end is not None:
        join_on.append(Quotation.created_at <= end)

    stmt = select(
        SalesUser.id,
        SalesUser.name,
        func.count(Quotation.id),
        func.coalesce(func.sum(Quotation.total_price), 0),
    )
    if viewer is not None:
        role = normalize_role(viewer.role)
        if role == PARTNER:
            allowed = list(viewer.allowed_customer_types or [])
            join_on.append(Quotation.user_type.in_(allowed))
        elif role == SALES:
            stmt = stmt.where(SalesUser.id == viewer.id)

    stmt = (
        stmt.select_from(SalesUser)
        .outerjoin(Quotation, and_(*join_on))
        .group_by(SalesUser.id, SalesUser.name)
        .order_by(SalesUser.id)
    )
    return [
        OwnerTotals(sales_user_id=row[0], name=row[1], quotation_count=int(row[2]), revenue=int(row[3]))
        for row in session.execute(stmt)
    ]
