from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

import requests

from roc.domain.currency import validate_rate
from roc.domain.errors import FxUnavailableError, InvalidRate

log = logging.getLogger("roc.fx")

PRIMARY_URL = "https://cdn.jsdelivr.net/npm/@fawazahmed0/currency-api@latest/v1/currencies/usd.json"
FALLBACK_URL = "https://latest.currency-api.pages.dev/v1/currencies/usd.json"


class FxService:
    """Source of the current SRD-per-USD rate.

    Lookup order for a day: stored rate (a manual rate set for that day wins
    over anything fetched), remote API, latest stored rate, configured
    default rate.
    """

    def __init__(self, repo, default_rate: Optional[Decimal] = None, timeout: float = 10.0, activity=None):
        self.repo = repo
        self.default_rate = default_rate
        self.timeout = timeout
        self.activity = activity

    def _fetch_json(self, url: str) -> dict:
        r = requests.get(url, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _extract_usd_srd(self, data: dict) -> Decimal:
        # common structure: {"date":"YYYY-MM-DD","usd":{"srd":36.51, ...}}
        if "usd" in data and isinstance(data["usd"], dict):
            v = data["usd"].get("srd")
            if v is not None:
                return self._validate_rate(v)

        for _k, v in data.items():
            if isinstance(v, dict) and "srd" in v:
                return self._validate_rate(v["srd"])

        raise FxUnavailableError(f"FX API response missing SRD rate. Raw: {data}")

    def _validate_rate(self, value: object) -> Decimal:
        try:
            return validate_rate(value)
        except InvalidRate as e:
            raise FxUnavailableError(str(e)) from e

    def get_rate_for_date(self, d: date) -> Decimal:
        d_iso = d.isoformat()
        cached = self.repo.get_fx_rate(d_iso)
        if cached is not None:
            return cached

        last_err = None
        for url in (PRIMARY_URL, FALLBACK_URL):
            try:
                data = self._fetch_json(url)
                rate = self._extract_usd_srd(data)
                self.repo.set_fx_rate(d_iso, rate, source="remote")
                log.info("fx_rate_fetched date=%s rate=%s url=%s", d_iso, rate, url)
                return rate
            except (requests.RequestException, ValueError, FxUnavailableError) as e:
                last_err = e
                log.warning("fx_source_failed url=%s error=%s", url, e)

        latest = self.repo.get_latest_fx_rate()
        if latest is not None:
            log.warning("fx_fallback_cached rate=%s", latest)
            self.repo.set_fx_rate(d_iso, latest, source="cache")
            return latest

        if self.default_rate is not None:
            rate = self._validate_rate(self.default_rate)
            log.warning("fx_fallback_default rate=%s", rate)
            self.repo.set_fx_rate(d_iso, rate, source="default")
            return rate

        raise FxUnavailableError(f"FX fetch failed and no cached rate available. Last error: {last_err}")

    def get_today_rate(self) -> Decimal:
        return self.get_rate_for_date(date.today())

    def set_manual_rate(self, rate: object, day: Optional[date] = None, user_id: Optional[int] = None) -> Decimal:
        value = validate_rate(rate)
        d_iso = (day or date.today()).isoformat()
        previous = self.repo.get_fx_rate(d_iso)
        self.repo.set_fx_rate(d_iso, value, source="manual")
        log.info("fx_rate_set_manual date=%s rate=%s previous=%s", d_iso, value, previous)
        if self.activity is not None:
            self.activity.record(
                "update",
                "exchange_rate",
                entity_id=d_iso,
                entity_name=f"USD/SRD {d_iso}",
                details=f"Exchange rate set to {value} SRD per USD" + (f" (was {previous})" if previous is not None else ""),
                user_id=user_id,
            )
        return value

    def rate_history(self, limit: int = 30) -> list[tuple[str, Decimal, str]]:
        return self.repo.list_fx_rates(limit)
