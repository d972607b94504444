from __future__ import annotations

from decimal import Decimal
from typing import Optional

from roc.domain.currency import Number, money
from roc.domain.errors import NotFoundError, ValidationError
from roc.domain.models import Item, StockRow


class CatalogService:
    """Locations, suppliers, items and stock levels the order engine reads
    from and writes to."""

    def __init__(self, repo, activity=None):
        self.repo = repo
        self.activity = activity

    def _record(self, entity_type: str, entity_id: int, name: str, user_id: Optional[int]) -> None:
        if self.activity is not None:
            self.activity.record("create", entity_type, entity_id=entity_id, entity_name=name, user_id=user_id)

    def add_location(self, name: str, user_id: Optional[int] = None) -> int:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Location name is required.")
        location_id = self.repo.add_location(name)
        self._record("location", location_id, name, user_id)
        return location_id

    def list_locations(self):
        return self.repo.list_locations()

    def add_client(self, name: str, user_id: Optional[int] = None) -> int:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Supplier name is required.")
        client_id = self.repo.add_client(name)
        self._record("client", client_id, name, user_id)
        return client_id

    def add_item(self, name: str, purchase_price_usd: Number = 0, user_id: Optional[int] = None) -> int:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Item name is required.")
        cost = money(purchase_price_usd)
        if cost < 0:
            raise ValidationError("Purchase price must be >= 0.")
        item_id = self.repo.add_item(name, cost)
        self._record("item", item_id, name, user_id)
        return item_id

    def get_item(self, item_id: int) -> Item:
        item = self.repo.get_item(item_id)
        if not item:
            raise NotFoundError("Item not found.")
        return item

    def item_cost_usd(self, item_id: int) -> Decimal:
        return self.get_item(item_id).purchase_price_usd

    def stock_level(self, item_id: int, location_id: int) -> int:
        return self.repo.stock_level(item_id, location_id)

    def list_stock(self, location_id: int) -> list[StockRow]:
        if self.repo.get_location(location_id) is None:
            raise NotFoundError("Location not found.")
        return self.repo.list_stock(location_id)
