from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Optional, Tuple

from .catalog import CustomerTier
from .errors import ValidationError

_PREFIXES = ("novastar ", "nova ")


@dataclass(frozen=True)
class Processor:
    name: str
    end_user: Decimal
    reseller: Decimal
    channel: Decimal

    def price_for(self, tier: CustomerTier) -> Decimal:
        if tier is CustomerTier.RESELLER:
            return self.reseller
        if tier is CustomerTier.SI_CHANNEL:
            return self.channel
        return self.end_user

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "endUser": str(self.end_user),
            "reseller": str(self.reseller),
            "channel": str(self.channel),
        }


def _p(name: str, end_user: int, reseller: int, channel: int) -> Processor:
    return Processor(name, Decimal(end_user), Decimal(reseller), Decimal(channel))


PROCESSORS: Tuple[Processor, ...] = (
    _p("TB2", 35000, 29800, 31500),
    _p("TB40", 35000, 29800, 31500),
    _p("TB60", 51000, 43350, 45900),
    _p("VX1", 35000, 29800, 31500),
    _p("VX400", 90000, 76500, 81000),
    _p("VX400 Pro", 98000, 83300, 88200),
    _p("VX600", 105000, 89250, 94500),
    _p("VX600 Pro", 115000, 97750, 103500),
    _p("VX1000", 157500, 133875, 141750),
    _p("VX1000 Pro", 168000, 142800, 151200),
    _p("VX16S", 315000, 267750, 283500),
    _p("VX2000pro", 337500, 286875, 303750),
    _p("TU15PRO", 51000, 43350, 45900),
    _p("TU20PRO", 72000, 61200, 64800),
    _p("TU4k pro", 290500, 246925, 261450),
)

_BY_KEY: Dict[str, Processor] = {p.name.lower(): p for p in PROCESSORS}


def normalize_processor_name(name: str) -> str:
    text = " ".join((name or "").split())
    lowered = text.lower()
    for prefix in _PREFIXES:
        if lowered.startswith(prefix):
            return text[len(prefix):]
    return text


def find_processor(name: Optional[str]) -> Optional[Processor]:
    if not name:
        return None
    return _BY_KEY.get(normalize_processor_name(name).lower())


def get_processor(name: str) -> Processor:
    processor = find_processor(name)
    if processor is None:
        raise ValidationError(f"unknown processor: {name!r}", "processor")
    return processor
