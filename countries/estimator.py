"""
Turns raw restcountries entries into unsaved country candidates.

Nothing here touches the network or the database. The GDP multiplier is
drawn fresh for every record, so two refreshes of identical upstream data
give different ``estimated_gdp`` values; pass ``multiplier`` to pin it.
"""
import logging
import math
from dataclasses import dataclass, asdict
from datetime import datetime
from numbers import Real
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .utils import make_multiplier

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CountryCandidate:
    name: str
    capital: Optional[str]
    region: Optional[str]
    population: int
    currency_code: Optional[str]
    exchange_rate: Optional[float]
    estimated_gdp: Optional[float]
    flag_url: Optional[str]
    last_refreshed_at: datetime

    def as_fields(self) -> Dict:
        return asdict(self)


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _text(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def first_currency_code(raw: Dict) -> Optional[str]:
    currencies = raw.get("currencies") or []
    if not isinstance(currencies, list) or not currencies:
        return None
    first = currencies[0]
    if not isinstance(first, dict):
        return None
    return _text(first.get("code"))


def estimate_country(
    raw: Dict,
    rates: Dict,
    refreshed_at: datetime,
    multiplier: Callable[[], int] = make_multiplier,
) -> Optional[CountryCandidate]:
    """Build a candidate from one raw country, or ``None`` if it must be dropped.

    A record is dropped when it has no name or no positive population.
    ``exchange_rate`` and ``estimated_gdp`` are set together or not at all:
    only when the first listed currency has a positive rate in ``rates``.
    """
    name = _text(raw.get("name"))
    population = raw.get("population")
    if name is None or not _is_number(population) or not math.isfinite(population):
        return None
    # stored as an integer, so GDP is derived from the same truncated value
    population = int(population)
    if population <= 0:
        return None

    currency_code = first_currency_code(raw)
    exchange_rate = None
    estimated_gdp = None

    rate = rates.get(currency_code) if currency_code else None
    if _is_number(rate) and rate > 0:
        exchange_rate = float(rate)
        estimated_gdp = population * multiplier() / exchange_rate

    return CountryCandidate(
        name=name.strip(),
        capital=_text(raw.get("capital")),
        region=_text(raw.get("region")),
        population=population,
        currency_code=currency_code,
        exchange_rate=exchange_rate,
        estimated_gdp=estimated_gdp,
        flag_url=_text(raw.get("flag")),
        last_refreshed_at=refreshed_at,
    )


def estimate_batch(
    raw_countries: Iterable[Dict],
    rates: Dict,
    refreshed_at: datetime,
    multiplier: Callable[[], int] = make_multiplier,
) -> Tuple[List[CountryCandidate], int]:
    """Estimate a whole upstream payload.

    Returns ``(candidates, skipped)``. Names repeated within the payload
    (compared case-insensitively) keep only their last occurrence.
    """
    by_name: Dict[str, CountryCandidate] = {}
    skipped = 0
    for raw in raw_countries:
        candidate = estimate_country(raw, rates, refreshed_at, multiplier) if isinstance(raw, dict) else None
        if candidate is None:
            skipped += 1
            label = raw.get("name") if isinstance(raw, dict) else raw
            logger.warning("Skipping country with missing name or population: %r", label)
            continue
        by_name[candidate.name.lower()] = candidate
    return list(by_name.values()), skipped
