"""
HTTP clients for the two upstream sources.

Both clients share ``SourceClient._get_json``: one GET with a timeout, no
retries. Whatever goes wrong (connection error, timeout, non-2xx status,
a body that is not JSON, or a payload of the wrong shape) surfaces as
``CountryAPIError.source_unavailable(source_name)``; the transport error is
only kept as ``__cause__`` for the logs.
"""
import logging

import requests
from django.conf import settings

from .errors import CountryAPIError

logger = logging.getLogger(__name__)


class SourceClient:
    """Base class: subclasses set ``source_name`` and implement ``fetch()``."""

    source_name = "external API"

    def __init__(self, url, timeout=None, session=None):
        self.url = url
        self.timeout = timeout if timeout is not None else settings.EXTERNAL_API_TIMEOUT
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    def fetch(self):
        raise NotImplementedError

    def unavailable(self, reason):
        logger.warning("%s unavailable: %s", self.source_name, reason)
        return CountryAPIError.source_unavailable(self.source_name)

    def _get_json(self):
        try:
            resp = self._session.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.Timeout as exc:
            raise self.unavailable(f"timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            # also covers HTTPError from raise_for_status
            raise self.unavailable(str(exc)) from exc
        except ValueError as exc:
            raise self.unavailable("response body is not valid JSON") from exc


class CountriesClient(SourceClient):
    source_name = "Countries API"

    def __init__(self, url=None, **kwargs):
        super().__init__(url or settings.COUNTRIES_API_URL, **kwargs)

    def fetch(self):
        """Return the raw list of country dicts."""
        data = self._get_json()
        if not isinstance(data, list) or not data:
            raise self.unavailable("expected a non-empty JSON array")
        logger.debug("Fetched %d countries", len(data))
        return data


class ExchangeRatesClient(SourceClient):
    source_name = "Exchange rates API"

    def __init__(self, url=None, **kwargs):
        super().__init__(url or settings.EXCHANGE_RATE_API_URL, **kwargs)

    def fetch(self):
        """Return the ``rates`` mapping (currency code -> units per USD)."""
        data = self._get_json()
        rates = data.get("rates") if isinstance(data, dict) else None
        if not isinstance(rates, dict):
            raise self.unavailable("payload has no 'rates' object")
        logger.debug("Fetched %d exchange rates", len(rates))
        return rates
