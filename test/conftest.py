import sys
from decimal import Decimal
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


class FixedFxService:
    """Stands in for FxService: always the same SRD-per-USD rate."""

    def __init__(self, rate="40"):
        self.rate = Decimal(rate)

    def get_today_rate(self):
        return self.rate


@pytest.fixture
def fx():
    return FixedFxService("40")


@pytest.fixture
def app(tmp_path: Path, fx):
    from roc.application.container import build_container

    return build_container(tmp_path / "roc.db", fx=fx)


@pytest.fixture
def seeded(app):
    """One location, one supplier, two items, an SRD and a USD wallet."""
    loc = app.catalog.add_location("Paramaribo")
    supplier = app.catalog.add_client("Acme Supplies")
    item_a = app.catalog.add_item("Rice 5kg", "2.50")
    item_b = app.catalog.add_item("Cooking oil", "4.00")
    srd = app.wallets.create_wallet(loc, "cash", "SRD", "1000")
    usd = app.wallets.create_wallet(loc, "bank", "USD", "100")
    return {"loc": loc, "supplier": supplier, "item_a": item_a, "item_b": item_b, "srd": srd, "usd": usd}
