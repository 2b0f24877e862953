"""
Refresh pipeline: fetch both sources, estimate, then reconcile by name.

``CountryStore`` is the one object that talks to the ORM; the refresher and
the query service get one handed to them instead of reaching for the model
managers directly, which keeps test doubles a constructor argument away.
"""
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from django.db import DatabaseError, transaction
from django.db.models import F

from .clients import CountriesClient, ExchangeRatesClient
from .errors import CountryAPIError
from .estimator import CountryCandidate, estimate_batch
from .models import Country, Status, STATUS_LAST_REFRESHED_AT
from .utils import get_now, make_multiplier

logger = logging.getLogger(__name__)

BULK_BATCH_SIZE = 100
SUMMARY_TOP_N = 5


class CountryStore:
    """Persistence client for ``Country`` and ``Status`` on one database alias."""

    def __init__(self, alias="default"):
        self.alias = alias

    @property
    def countries(self):
        return Country.objects.using(self.alias)

    @property
    def statuses(self):
        return Status.objects.using(self.alias)

    def atomic(self):
        return transaction.atomic(using=self.alias)

    # -- refresh side --------------------------------------------------------

    def existing_name_ids(self) -> Dict[str, int]:
        """Lower-cased name -> id for every stored country."""
        return {name.lower(): pk for name, pk in self.countries.values_list("name", "id")}

    def update_countries(self, rows: List[Country]):
        if rows:
            self.countries.bulk_update(rows, fields=Country.REFRESH_FIELDS, batch_size=BULK_BATCH_SIZE)

    def insert_countries(self, rows: List[Country]):
        if rows:
            self.countries.bulk_create(rows, batch_size=BULK_BATCH_SIZE)

    def upsert_status(self, refreshed_at: datetime):
        self.statuses.update_or_create(key=STATUS_LAST_REFRESHED_AT, defaults={"value": refreshed_at})

    # -- read side -----------------------------------------------------------

    def all_countries(self):
        return self.countries.all()

    def count(self) -> int:
        return self.countries.count()

    def last_refreshed_at(self) -> Optional[datetime]:
        row = self.statuses.filter(key=STATUS_LAST_REFRESHED_AT).first()
        return row.value if row else None

    def top_by_gdp(self, limit=SUMMARY_TOP_N) -> List[Country]:
        qs = self.countries.filter(estimated_gdp__isnull=False)
        return list(qs.order_by(F("estimated_gdp").desc(), "name")[:limit])

    def get_by_name(self, name) -> Optional[Country]:
        return self.countries.filter(name__iexact=name).first()

    def delete_by_name(self, name) -> int:
        deleted, _ = self.countries.filter(name__iexact=name).delete()
        return deleted


@dataclass(frozen=True)
class RefreshResult:
    refreshed_at: datetime
    inserted: int
    updated: int
    skipped: int
    total_countries: int

    def as_payload(self):
        return {
            "message": "Refresh successful",
            "last_refreshed_at": self.refreshed_at.isoformat(),
            "inserted": self.inserted,
            "updated": self.updated,
            "skipped": self.skipped,
            "total_countries": self.total_countries,
        }


_refresh_lock = threading.Lock()


@contextmanager
def single_flight(lock=_refresh_lock):
    """Hold ``lock`` for the block, or fail at once if another refresh has it."""
    if not lock.acquire(blocking=False):
        raise CountryAPIError.refresh_in_progress()
    try:
        yield
    finally:
        lock.release()


class CountryRefresher:
    """One refresh cycle: fetch -> estimate -> reconcile -> status -> image."""

    def __init__(self, store=None, countries_client=None, rates_client=None,
                 renderer=None, multiplier=make_multiplier, clock=get_now, lock=_refresh_lock):
        self.store = store or CountryStore()
        self.countries_client = countries_client or CountriesClient()
        self.rates_client = rates_client or ExchangeRatesClient()
        self.renderer = renderer
        self.multiplier = multiplier
        self.clock = clock
        self.lock = lock

    def refresh(self) -> RefreshResult:
        with single_flight(self.lock):
            # countries first; a failure here never reaches the rates API
            raw_countries = self.countries_client.fetch()
            rates = self.rates_client.fetch()

            refreshed_at = self.clock()
            candidates, skipped = estimate_batch(raw_countries, rates, refreshed_at, self.multiplier)
            inserted, updated = self.reconcile(candidates, refreshed_at)

            total = self.store.count()
            logger.info(
                "Refresh at %s: %d inserted, %d updated, %d skipped, %d stored",
                refreshed_at.isoformat(), inserted, updated, skipped, total,
            )
            self.render_summary(total, refreshed_at)
            return RefreshResult(refreshed_at, inserted, updated, skipped, total)

    def reconcile(self, candidates: List[CountryCandidate], refreshed_at: datetime):
        """Apply the batch and the status row in one transaction.

        Returns ``(inserted, updated)``. Any database failure rolls the whole
        batch back and is raised as a persistence error.
        """
        try:
            with self.store.atomic():
                existing = self.store.existing_name_ids()
                to_update, to_insert = [], []
                for candidate in candidates:
                    pk = existing.get(candidate.name.lower())
                    row = Country(**candidate.as_fields())
                    if pk is None:
                        to_insert.append(row)
                    else:
                        row.pk = pk
                        to_update.append(row)

                self.store.update_countries(to_update)
                self.store.insert_countries(to_insert)
                self.store.upsert_status(refreshed_at)
        except DatabaseError as exc:
            logger.error("Refresh rolled back: %s", exc)
            raise CountryAPIError.persistence() from exc
        return len(to_insert), len(to_update)

    def render_summary(self, total, refreshed_at):
        if self.renderer is None:
            return
        try:
            self.renderer.render(self.store.top_by_gdp(), total, refreshed_at)
        except CountryAPIError:
            # committed data stays; GET /countries/image rebuilds on demand
            logger.warning("Summary image not regenerated after refresh at %s", refreshed_at.isoformat())
