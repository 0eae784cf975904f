"""
Quotation identifiers of the form ``ORION/YYYY/MM/DD/NAME/NNN``.

``NNN`` is a global serial, not per day or per person. The generator reads
the highest stored serial inside a serializable transaction and never writes;
the unique constraint on ``quotations.quotation_id`` is the final guard and
the caller retries its insert when that constraint fires.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from datetime import date
from typing import Optional, Set

from sqlalchemy import func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from .errors import ConflictError, GenerationError, ValidationError
from .models import Quotation

logger = logging.getLogger(__name__)

MAX_SERIAL = 999
QUOTATION_ID_FORMAT = "{org}/{year:04d}/{month:02d}/{day:02d}/{name}/{serial:03d}"
QUOTATION_ID_PATTERN = re.compile(
    r"^(?P<org>[A-Z]+)/(?P<year>\d{4})/(?P<month>\d{2})/(?P<day>\d{2})/(?P<name>[A-Z]+)/(?P<serial>\d{3})$"
)
_NAME_RE = re.compile(r"^[A-Z]+$")


@dataclass(frozen=True)
class QuotationIdParts:
    org: str
    year: int
    month: int
    day: int
    name: str
    serial: int

    @property
    def prefix(self) -> str:
        return QUOTATION_ID_FORMAT.format(**self.__dict__).rsplit("/", 1)[0] + "/"

    def format(self) -> str:
        return QUOTATION_ID_FORMAT.format(**self.__dict__)


def normalize_name_part(name: str) -> str:
    tokens = (name or "").split()
    token = tokens[0].upper() if tokens else ""
    if not _NAME_RE.match(token):
        raise ValidationError("name must start with a word made of letters only", "name")
    return token


def format_quotation_id(name: str, year: int, month: int, day: int, serial: int, org: str = "ORION") -> str:
    try:
        date(year, month, day)
    except (TypeError, ValueError):
        raise ValidationError(f"invalid quotation date: {year}-{month}-{day}", "date") from None
    if not 1 <= serial <= MAX_SERIAL:
        raise GenerationError(f"quotation serial {serial} is outside 1..{MAX_SERIAL}")
    org = org.upper()
    if not _NAME_RE.match(org):
        raise ValidationError(f"invalid quotation prefix: {org!r}", "prefix")
    return QuotationIdParts(org, year, month, day, normalize_name_part(name), serial).format()


def parse_quotation_id(value: str) -> QuotationIdParts:
    match = QUOTATION_ID_PATTERN.match(value or "")
    if not match:
        raise ValidationError(f"not a quotation id: {value!r}", "quotationId")
    return QuotationIdParts(
        org=match.group("org"),
        year=int(match.group("year")),
        month=int(match.group("month")),
        day=int(match.group("day")),
        name=match.group("name"),
        serial=int(match.group("serial")),
    )


def _try_parse(value: str) -> Optional[QuotationIdParts]:
    try:
        return parse_quotation_id(value)
    except ValidationError:
        return None


class QuotationIdGenerator:
    def __init__(self, engine: Engine, prefix: str = "ORION"):
        self.engine = engine.execution_options(isolation_level="SERIALIZABLE")
        self.prefix = prefix.upper()
        self._lock = threading.Lock()
        self._issued: Set[str] = set()
        self._high_water = 0

    def generate(self, name: str, year: int, month: int, day: int) -> str:
        name_part = normalize_name_part(name)
        # validates the date before touching the store
        format_quotation_id(name_part, year, month, day, 1, self.prefix)
        with self._lock:
            try:
                with self.engine.begin() as conn:
                    quotation_id = self._next_id(conn, name_part, year, month, day)
            except SQLAlchemyError as exc:
                logger.exception("Quotation id generation failed for %s", name_part)
                raise GenerationError("quotation id generation failed") from exc
            parts = parse_quotation_id(quotation_id)
            self._issued.add(quotation_id)
            self._high_water = max(self._high_water, parts.serial)
        return quotation_id

    def generate_for(self, name: str, on: Optional[date] = None) -> str:
        on = on or date.today()
        return self.generate(name, on.year, on.month, on.day)

    def _latest_serial(self, conn: Connection) -> int:
        # max(serial), not the greatest id: ZED/002 sorts after ANNA/003
        column = Quotation.__table__.c.quotation_id
        rows = conn.execute(select(column).where(column.like(f"{self.prefix}/%"))).scalars()
        serials = [
            parts.serial for parts in map(_try_parse, rows) if parts is not None and parts.org == self.prefix
        ]
        return max(serials, default=0)

    def _exists(self, conn: Connection, quotation_id: str) -> bool:
        if quotation_id in self._issued:
            return True
        column = Quotation.__table__.c.quotation_id
        count = conn.execute(select(func.count()).where(column == quotation_id)).scalar_one()
        return count > 0

    def _prefix_max(self, conn: Connection, prefix: str) -> int:
        column = Quotation.__table__.c.quotation_id
        values = list(conn.execute(select(column).where(column.like(f"{prefix}%"))).scalars())
        values.extend(v for v in self._issued if v.startswith(prefix))
        serials = [p.serial for p in map(_try_parse, values) if p is not None]
        return max(serials, default=0)

    def _next_id(self, conn: Connection, name: str, year: int, month: int, day: int) -> str:
        serial = max(self._latest_serial(conn), self._high_water) + 1
        if serial > MAX_SERIAL:
            raise GenerationError(f"quotation serials exhausted (max {MAX_SERIAL})")
        candidate = format_quotation_id(name, year, month, day, serial, self.prefix)
        if not self._exists(conn, candidate):
            return candidate

        logger.warning("Quotation id %s already taken; retrying from its prefix", candidate)
        prefix = parse_quotation_id(candidate).prefix
        serial = self._prefix_max(conn, prefix) + 1
        if serial > MAX_SERIAL:
            raise GenerationError(f"quotation serials exhausted (max {MAX_SERIAL})")
        candidate = format_quotation_id(name, year, month, day, serial, self.prefix)
        if self._exists(conn, candidate):
            raise ConflictError("quotation id collided after retry", candidate)
        return candidate
