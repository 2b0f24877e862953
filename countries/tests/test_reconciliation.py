import threading
from datetime import timedelta
from itertools import cycle
from unittest import mock

from django.db import DatabaseError
from django.test import TestCase

from countries.errors import CountryAPIError, ErrorKind
from countries.models import Country, Status, STATUS_LAST_REFRESHED_AT
from countries.reconciliation import CountryRefresher, CountryStore, single_flight

from .helpers import REFRESH_TIME, FailingInsertStore, FakeSource, make_country, raw_country


class CountryRefresherTests(TestCase):

    def make_refresher(self, countries, rates=None, store=None, **kwargs):
        self.countries_source = countries if isinstance(countries, FakeSource) else FakeSource(countries)
        self.rates_source = rates if isinstance(rates, FakeSource) else FakeSource(
            rates or {}, source_name="Exchange rates API")
        kwargs.setdefault("clock", lambda: REFRESH_TIME)
        kwargs.setdefault("lock", threading.Lock())
        return CountryRefresher(
            store=store or CountryStore(),
            countries_client=self.countries_source,
            rates_client=self.rates_source,
            **kwargs
        )

    def test_testland_scenario(self):
        refresher = self.make_refresher(
            [{"name": "Testland", "population": 1000, "currencies": [{"code": "TST"}]}],
            {"TST": 10},
        )
        result = refresher.refresh()

        self.assertEqual((result.inserted, result.updated, result.skipped), (1, 0, 0))
        country = Country.objects.get()
        self.assertEqual(country.name, "Testland")
        self.assertEqual(country.currency_code, "TST")
        self.assertEqual(country.exchange_rate, 10)
        self.assertTrue(100000 <= country.estimated_gdp <= 200000)
        self.assertEqual(country.last_refreshed_at, REFRESH_TIME)
        self.assertEqual(Status.objects.get(key=STATUS_LAST_REFRESHED_AT).value, REFRESH_TIME)

    def test_case_insensitive_match_updates_same_row(self):
        ghana = make_country("Ghana", population=100)
        refresher = self.make_refresher([raw_country("GHANA", population=31000000)], {"TST": 2})

        result = refresher.refresh()

        self.assertEqual((result.inserted, result.updated), (0, 1))
        self.assertEqual(Country.objects.count(), 1)
        ghana.refresh_from_db()
        self.assertEqual(ghana.population, 31000000)
        self.assertEqual(ghana.name, "GHANA")

    def test_repeated_refresh_keeps_ids_and_rerolls_gdp(self):
        multipliers = cycle([1000, 2000])
        refresher = self.make_refresher([raw_country("Togo")], {"TST": 1}, multiplier=lambda: next(multipliers))

        refresher.refresh()
        first = Country.objects.get()
        refresher.refresh()
        second = Country.objects.get()

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(first.estimated_gdp, 1000 * 1000)
        self.assertEqual(second.estimated_gdp, 1000 * 2000)

    def test_invalid_records_never_persisted_and_leave_existing_untouched(self):
        make_country("Ghostland", population=42)
        refresher = self.make_refresher(
            [raw_country("Ghostland", population=0), {"population": 5}, raw_country("Benin")],
            {"TST": 1},
        )
        result = refresher.refresh()

        self.assertEqual(result.skipped, 2)
        self.assertEqual(Country.objects.get(name="Ghostland").population, 42)
        self.assertEqual(sorted(Country.objects.values_list("name", flat=True)), ["Benin", "Ghostland"])

    def test_refresh_never_deletes_missing_countries(self):
        make_country("Atlantis")
        self.make_refresher([raw_country("Benin")]).refresh()
        self.assertTrue(Country.objects.filter(name="Atlantis").exists())

    def test_missing_rate_clears_previous_gdp(self):
        make_country("Oddland", currency_code="ODD", exchange_rate=3.0, estimated_gdp=999.0)
        self.make_refresher([raw_country("Oddland", code="ODD")], {"TST": 1}).refresh()

        country = Country.objects.get(name="Oddland")
        self.assertEqual(country.currency_code, "ODD")
        self.assertIsNone(country.exchange_rate)
        self.assertIsNone(country.estimated_gdp)

    def test_status_row_is_upserted_not_duplicated(self):
        Status.objects.create(key=STATUS_LAST_REFRESHED_AT, value=REFRESH_TIME - timedelta(days=1))
        self.make_refresher([raw_country("Benin")]).refresh()

        self.assertEqual(Status.objects.count(), 1)
        self.assertEqual(Status.objects.get().value, REFRESH_TIME)

    def test_countries_source_down_short_circuits(self):
        make_country("Ghana", population=100)
        refresher = self.make_refresher(FakeSource(fail=True), {"TST": 1})

        with self.assertRaises(CountryAPIError) as ctx:
            refresher.refresh()

        self.assertIs(ctx.exception.kind, ErrorKind.SOURCE_UNAVAILABLE)
        self.assertEqual(ctx.exception.source, "Countries API")
        self.assertEqual(self.rates_source.calls, 0)
        self.assertEqual(Country.objects.get().population, 100)
        self.assertFalse(Status.objects.exists())

    def test_rates_source_down_touches_nothing(self):
        refresher = self.make_refresher(
            [raw_country("Benin")], FakeSource(source_name="Exchange rates API", fail=True))

        with self.assertRaises(CountryAPIError) as ctx:
            refresher.refresh()

        self.assertEqual(ctx.exception.source, "Exchange rates API")
        self.assertFalse(Country.objects.exists())
        self.assertFalse(Status.objects.exists())

    def test_persistence_failure_rolls_back_everything(self):
        earlier = REFRESH_TIME - timedelta(hours=6)
        make_country("Ghana", population=100)
        Status.objects.create(key=STATUS_LAST_REFRESHED_AT, value=earlier)
        refresher = self.make_refresher(
            [raw_country("Ghana", population=999), raw_country("Togo")],
            {"TST": 1},
            store=FailingInsertStore(),
        )

        with self.assertLogs("countries.reconciliation", level="ERROR"):
            with self.assertRaises(CountryAPIError) as ctx:
                refresher.refresh()

        self.assertIs(ctx.exception.kind, ErrorKind.PERSISTENCE)
        self.assertIsInstance(ctx.exception.__cause__, DatabaseError)
        self.assertEqual(Country.objects.get().population, 100)
        self.assertFalse(Country.objects.filter(name="Togo").exists())
        self.assertEqual(Status.objects.get().value, earlier)

    def test_concurrent_refresh_is_rejected(self):
        lock = threading.Lock()
        refresher = self.make_refresher([raw_country("Benin")], lock=lock)

        with single_flight(lock):
            with self.assertRaises(CountryAPIError) as ctx:
                refresher.refresh()

        self.assertIs(ctx.exception.kind, ErrorKind.REFRESH_IN_PROGRESS)
        self.assertEqual(self.countries_source.calls, 0)
        # lock released afterwards
        refresher.refresh()
        self.assertTrue(Country.objects.filter(name="Benin").exists())

    def test_lock_released_after_failure(self):
        lock = threading.Lock()
        refresher = self.make_refresher(FakeSource(fail=True), lock=lock)
        with self.assertRaises(CountryAPIError):
            refresher.refresh()
        self.assertFalse(lock.locked())

    def test_renderer_receives_top_five_by_gdp(self):
        renderer = mock.Mock()
        payload = [raw_country(f"Country{i}", population=i + 1) for i in range(7)]
        result = self.make_refresher(payload, {"TST": 1}, renderer=renderer, multiplier=lambda: 1000).refresh()

        top, total, refreshed_at = renderer.render.call_args.args
        self.assertEqual([c.name for c in top], ["Country6", "Country5", "Country4", "Country3", "Country2"])
        self.assertEqual(total, 7)
        self.assertEqual(result.total_countries, 7)
        self.assertEqual(refreshed_at, REFRESH_TIME)

    def test_render_failure_keeps_committed_refresh(self):
        renderer = mock.Mock()
        renderer.render.side_effect = CountryAPIError.render_failed()

        result = self.make_refresher([raw_country("Benin")], renderer=renderer).refresh()

        self.assertEqual(result.inserted, 1)
        self.assertTrue(Country.objects.filter(name="Benin").exists())
