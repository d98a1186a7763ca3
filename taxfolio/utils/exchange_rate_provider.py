# taxfolio/utils/exchange_rate_provider.py
import datetime
import json
import logging
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_ECB_API_URL_TEMPLATE = "https://data-api.ecb.europa.eu/service/data/EXR/D.{currency_code}.EUR.SP00.A?startPeriod={start_date_str}&endPeriod={end_date_str}&format=jsondata"
DEFAULT_MAX_FALLBACK_DAYS = 7
DEFAULT_REQUEST_TIMEOUT_SECONDS = 15
DEFAULT_CURRENCY_CODE_MAPPING: Dict[str, str] = {
    "CNH": "CNY",
}

RatesByDay = Dict[str, Dict[str, Optional[str]]] # "YYYY-MM-DD" -> {currency -> rate string, None for a known gap}


class ExchangeRateProvider:
    """
    Interface for exchange rate sources.
    Rates are expressed the ECB way: units of foreign currency per 1 EUR.
    """
    def get_rate(self, date_of_conversion: datetime.date, currency_code: str) -> Optional[Decimal]:
        raise NotImplementedError("Subclasses must implement get_rate")

    def get_max_fallback_days(self) -> int:
        raise NotImplementedError("Subclasses must implement get_max_fallback_days")


class ECBExchangeRateProvider(ExchangeRateProvider):
    """
    Daily ECB reference rates, one currency and day per request, remembered in a JSON file.

    A day without a publication (weekend, holiday) is stored as a gap and the previous
    day is tried, up to ``max_fallback_days`` back. Failed requests are stored as gaps too,
    so a run never hammers the API for the same day twice.
    """
    def __init__(self,
                 cache_file_path: str = "cache/ecb_exchange_rates.json",
                 max_fallback_days: int = DEFAULT_MAX_FALLBACK_DAYS,
                 currency_code_mapping: Optional[Dict[str, str]] = None,
                 api_url_template: str = DEFAULT_ECB_API_URL_TEMPLATE,
                 request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
                 session: Optional[requests.Session] = None):
        self.cache_path = Path(cache_file_path)
        self.max_fallback_days = max_fallback_days
        self.currency_code_mapping = dict(DEFAULT_CURRENCY_CODE_MAPPING if currency_code_mapping is None else currency_code_mapping)
        self.api_url_template = api_url_template
        self.request_timeout_seconds = request_timeout_seconds
        self.session = session or requests.Session()
        self.rates_by_day: RatesByDay = self._read_cache_file()

    def _read_cache_file(self) -> RatesByDay:
        if not self.cache_path.exists():
            logger.info(f"No exchange rate cache at {self.cache_path} yet. It is created on the first fetch.")
            return {}
        try:
            with self.cache_path.open("r", encoding="utf-8") as f:
                rates = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Unreadable exchange rate cache {self.cache_path} ({e}). Starting empty.")
            return {}
        known = sum(1 for day in rates.values() for value in day.values() if value is not None)
        logger.info(f"Loaded {known} cached ECB rates from {self.cache_path}")
        return rates

    def _write_cache_file(self) -> None:
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            with self.cache_path.open("w", encoding="utf-8") as f:
                json.dump(self.rates_by_day, f, indent=2, sort_keys=True)
        except OSError as e:
            logger.error(f"Could not write exchange rate cache {self.cache_path}: {e}")

    def _ecb_code(self, currency_code: str) -> str:
        code = currency_code.upper()
        return self.currency_code_mapping.get(code, code)

    def _request(self, day: datetime.date, ecb_code: str) -> Optional[Dict[str, Any]]:
        day_str = day.isoformat()
        url = self.api_url_template.format(currency_code=ecb_code, start_date_str=day_str, end_date_str=day_str)
        try:
            response = self.session.get(url, timeout=self.request_timeout_seconds, headers={"Accept": "application/json"})
            response.raise_for_status()
            if not response.content:
                logger.debug(f"ECB has no {ecb_code} observation for {day_str}.")
                return None
            return response.json()
        except requests.exceptions.HTTPError as http_err:
            status = http_err.response.status_code if http_err.response is not None else None
            log = logger.warning if status == 404 else logger.error
            log(f"ECB request for {ecb_code} on {day_str} failed with HTTP {status}: {http_err}")
        except requests.exceptions.RequestException as req_err:
            logger.error(f"ECB request for {ecb_code} on {day_str} failed: {req_err}")
        except ValueError as json_err:
            logger.error(f"ECB response for {ecb_code} on {day_str} is not JSON: {json_err}")
        return None

    @staticmethod
    def _extract_rate(data: Dict[str, Any], date_str: str, currency_code: str) -> Optional[Decimal]:
        """Rate observed on ``date_str`` in an SDMX-JSON response, or None."""
        try:
            series = data["dataSets"][0]["series"]
            if not series:
                return None
            observations = next(iter(series.values())).get("observations") or {}
            periods = next(d for d in data["structure"]["dimensions"]["observation"] if d.get("id") == "TIME_PERIOD")["values"]
        except (KeyError, IndexError, TypeError, StopIteration) as e:
            logger.error(f"Unexpected ECB response layout for {currency_code} on {date_str}: {e!r}. Snippet: {str(data)[:200]}")
            return None

        for index, period in enumerate(periods):
            if period.get("id") != date_str:
                continue
            values = observations.get(str(index))
            if not values or values[0] is None:
                return None
            try:
                return Decimal(str(values[0]))
            except InvalidOperation:
                logger.error(f"ECB rate '{values[0]}' for {currency_code} on {date_str} is not a number.")
                return None
        return None

    def _rate_for_day(self, day: datetime.date, ecb_code: str) -> Optional[Decimal]:
        day_str = day.isoformat()
        cached_day = self.rates_by_day.setdefault(day_str, {})
        if ecb_code in cached_day:
            cached = cached_day[ecb_code]
            return None if cached is None else Decimal(cached)

        data = self._request(day, ecb_code)
        rate = self._extract_rate(data, day_str, ecb_code) if data is not None else None
        cached_day[ecb_code] = None if rate is None else str(rate)
        self._write_cache_file()
        if rate is not None:
            logger.info(f"ECB rate for {ecb_code} on {day_str}: {rate}")
        return rate

    def get_rate(self, date_of_conversion: datetime.date, currency_code: str) -> Optional[Decimal]:
        if currency_code.upper() == "EUR":
            return Decimal("1")
        ecb_code = self._ecb_code(currency_code)

        for days_back in range(self.max_fallback_days + 1):
            day = date_of_conversion - datetime.timedelta(days=days_back)
            rate = self._rate_for_day(day, ecb_code)
            if rate is not None:
                if days_back:
                    logger.debug(f"Using {ecb_code} rate of {day} for {date_of_conversion} ({days_back} days back).")
                return rate

        logger.warning(f"No ECB rate for {ecb_code} (requested as {currency_code}) within {self.max_fallback_days} days before {date_of_conversion}.")
        return None

    def get_max_fallback_days(self) -> int:
        return self.max_fallback_days
