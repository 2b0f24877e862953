"""Read side: filtered / sorted country listings, keyed lookups, status."""
from dataclasses import dataclass
from typing import Optional

from django.db.models import F

from .errors import CountryAPIError
from .reconciliation import CountryStore

ASC, DESC = "ASC", "DESC"

SORT_FIELDS = {
    "gdp": "estimated_gdp",
    "name": "name",
    "population": "population",
}


@dataclass(frozen=True)
class CountryQuery:
    region: Optional[str] = None
    currency: Optional[str] = None
    sort_field: str = "name"
    direction: str = ASC


class CountryQueryService:
    """Assumes ``CountryQuery`` values were validated at the HTTP boundary."""

    def __init__(self, store=None):
        self.store = store or CountryStore()

    def list(self, query=CountryQuery()):
        qs = self.store.all_countries()
        if query.region:
            qs = qs.filter(region__icontains=query.region)
        if query.currency:
            qs = qs.filter(currency_code__iexact=query.currency)

        column = SORT_FIELDS[query.sort_field]
        expr = F(column)
        # rows without a GDP always go to the end
        primary = expr.desc(nulls_last=True) if query.direction == DESC else expr.asc(nulls_last=True)
        ordering = [primary]
        if column != "name":
            ordering.append(F("name").asc())
        return list(qs.order_by(*ordering))

    def get(self, name):
        country = self.store.get_by_name(name)
        if country is None:
            raise CountryAPIError.not_found(f"Country '{name}' not found")
        return country

    def delete(self, name):
        if not self.store.delete_by_name(name):
            raise CountryAPIError.not_found(f"Country '{name}' not found")

    def status(self):
        last = self.store.last_refreshed_at()
        return {
            "total_countries": self.store.count(),
            "last_refreshed_at": last.isoformat() if last else None,
        }
