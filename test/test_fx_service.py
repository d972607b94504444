from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
import requests

from roc.domain.errors import FxUnavailableError, InvalidRate
from roc.repositories.sqlite_repo import SqliteRepository
from roc.services.activity_service import ActivityLog
from roc.services.fx_service import FALLBACK_URL, PRIMARY_URL, FxService


def _repo(tmp_path: Path) -> SqliteRepository:
    repo = SqliteRepository(tmp_path / "fx.db")
    repo.init_db()
    return repo


def _fail(_url: str):
    raise requests.RequestException("network down")


def test_fx_fetches_and_caches_remote_rate(tmp_path: Path):
    repo = _repo(tmp_path)
    fx = FxService(repo)
    calls = []

    def fetch(url):
        calls.append(url)
        return {"date": "2024-01-02", "usd": {"srd": 36.51, "eur": 0.91}}

    fx._fetch_json = fetch  # type: ignore[attr-defined]

    assert fx.get_rate_for_date(date(2024, 1, 2)) == Decimal("36.51")
    assert fx.get_rate_for_date(date(2024, 1, 2)) == Decimal("36.51")
    assert calls == [PRIMARY_URL]
    assert repo.get_fx_rate_source("2024-01-02") == "remote"


def test_fx_uses_fallback_url_when_primary_fails(tmp_path: Path):
    repo = _repo(tmp_path)
    fx = FxService(repo)

    def fetch(url):
        if url == PRIMARY_URL:
            raise requests.Timeout("slow")
        return {"usd": {"srd": "37.2"}}

    fx._fetch_json = fetch  # type: ignore[attr-defined]
    assert fx.get_rate_for_date(date(2024, 3, 1)) == Decimal("37.2")


def test_fx_uses_latest_cached_rate_when_remote_fails(tmp_path: Path):
    repo = _repo(tmp_path)
    repo.set_fx_rate("2024-01-01", Decimal("35.5"))
    fx = FxService(repo)
    fx._fetch_json = _fail  # type: ignore[attr-defined]

    rate = fx.get_rate_for_date(date(2024, 1, 2))
    assert rate == Decimal("35.5")
    assert repo.get_fx_rate("2024-01-02") == Decimal("35.5")
    assert repo.get_fx_rate_source("2024-01-02") == "cache"


def test_fx_rejects_non_positive_remote_rate(tmp_path: Path):
    repo = _repo(tmp_path)
    fx = FxService(repo, default_rate=Decimal("38"))
    fx._fetch_json = lambda url: {"usd": {"srd": 0}}  # type: ignore[attr-defined]

    assert fx.get_rate_for_date(date(2024, 5, 5)) == Decimal("38")
    assert repo.get_fx_rate_source("2024-05-05") == "default"


def test_fx_without_any_rate_raises(tmp_path: Path):
    fx = FxService(_repo(tmp_path))
    fx._fetch_json = _fail  # type: ignore[attr-defined]

    with pytest.raises(FxUnavailableError):
        fx.get_rate_for_date(date(2024, 1, 2))


def test_manual_rate_wins_and_is_audited(tmp_path: Path):
    repo = _repo(tmp_path)
    fx = FxService(repo, activity=ActivityLog(repo))

    def must_not_fetch(url):
        raise AssertionError("remote source must not be called")

    fx._fetch_json = must_not_fetch  # type: ignore[attr-defined]

    assert fx.set_manual_rate("39.25") == Decimal("39.25")
    assert fx.get_today_rate() == Decimal("39.25")
    assert fx.rate_history()[0][1:] == (Decimal("39.25"), "manual")

    entry = repo.recent_activity(1)[0]
    assert (entry.action, entry.entity_type) == ("update", "exchange_rate")


@pytest.mark.parametrize("rate", [0, "-3", "abc"])
def test_manual_rate_must_be_positive(tmp_path: Path, rate):
    fx = FxService(_repo(tmp_path))
    with pytest.raises(InvalidRate):
        fx.set_manual_rate(rate)
