from datetime import datetime, timezone

import requests
from django.db import DatabaseError

from countries.errors import CountryAPIError
from countries.models import Country
from countries.reconciliation import CountryStore

REFRESH_TIME = datetime(2025, 10, 22, 12, 0, tzinfo=timezone.utc)


def make_country(name, **overrides):
    fields = {
        "capital": f"{name} City",
        "region": "Test Region",
        "population": 1000,
        "currency_code": "TST",
        "exchange_rate": 2.0,
        "estimated_gdp": 500.0,
        "flag_url": "http://example.com/flag.png",
        "last_refreshed_at": REFRESH_TIME,
    }
    fields.update(overrides)
    return Country.objects.create(name=name, **fields)


def raw_country(name, population=1000, code="TST", **extra):
    data = {
        "name": name,
        "capital": f"{name} City",
        "region": "Test Region",
        "population": population,
        "flag": f"http://example.com/{name}.png",
        "currencies": [{"code": code, "name": "Test", "symbol": "T"}] if code else [],
    }
    data.update(extra)
    return data


class FailingInsertStore(CountryStore):
    """Applies updates, then blows up on the bulk insert."""

    def insert_countries(self, rows):
        raise DatabaseError("disk full")


class FakeSource:
    """Stands in for CountriesClient / ExchangeRatesClient."""

    def __init__(self, payload=None, source_name="Countries API", fail=False):
        self.payload = payload
        self.source_name = source_name
        self.fail = fail
        self.calls = 0

    def fetch(self):
        self.calls += 1
        if self.fail:
            raise CountryAPIError.source_unavailable(self.source_name)
        return self.payload


class FakeResponse:
    def __init__(self, json_data, status=200):
        self._json = json_data
        self.status_code = status

    def json(self):
        if isinstance(self._json, Exception):
            raise self._json
        return self._json

    def raise_for_status(self):
        if not (200 <= self.status_code < 300):
            raise requests.HTTPError(f"{self.status_code} error", response=self)
