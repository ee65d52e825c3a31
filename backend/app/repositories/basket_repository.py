"""
Basket Repository - Data Access Layer for the customer basket

The basket is one namespace of the key-value store holding item snapshots
with quantities. Quantities stored here are always at least 1.
"""
import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from app.domain.basket import BasketEntry
from app.domain.catalog import Item
from app.repositories.kv_store import KeyValueStore, BASKET_KEY, get_kv_store

logger = logging.getLogger(__name__)


class BasketRepository:
    """Repository for basket entries"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _map_row_to_entry(row: dict) -> BasketEntry:
        return BasketEntry(**row)

    def get_basket(self) -> List[BasketEntry]:
        """
        Get all basket entries in the order they were added

        Returns:
            List of BasketEntry objects
        """
        return [self._map_row_to_entry(row) for row in self.store.read(BASKET_KEY)]

    def add_to_basket(self, item: Item, quantity: int = 1) -> BasketEntry:
        """
        Add units of an item to the basket

        If the item is already present its quantity grows; the stored
        snapshot keeps the name and price from when it was first added.

        Args:
            item: Catalog item to add
            quantity: Units to add (must be positive)

        Returns:
            The resulting basket entry

        Raises:
            ValueError: If quantity is not positive
        """
        if quantity <= 0:
            raise ValueError(f"Quantity to add must be positive, got {quantity}")

        records = self.store.read(BASKET_KEY)

        for row in records:
            if row.get('id') == item.id:
                row['quantity'] = row['quantity'] + quantity
                entry = self._map_row_to_entry(row)
                break
        else:
            entry = BasketEntry.from_item(item, quantity)
            records.append(entry.model_dump())

        self.store.write(BASKET_KEY, records)
        return entry

    def update_quantity(self, item_id: str, quantity: int) -> None:
        """
        Set the quantity of a basket entry

        Args:
            item_id: Item identifier
            quantity: New quantity; zero or less removes the entry
        """
        records = self.store.read(BASKET_KEY)

        if quantity <= 0:
            remaining = [row for row in records if row.get('id') != item_id]
            if len(remaining) != len(records):
                self.store.write(BASKET_KEY, remaining)
            return

        for row in records:
            if row.get('id') == item_id:
                row['quantity'] = quantity
                self.store.write(BASKET_KEY, records)
                return

    def clear_basket(self) -> None:
        self.store.write(BASKET_KEY, [])
        logger.debug("Basket cleared")

    def get_total(self) -> int:
        """
        Sum of price times quantity over all entries, in satoshis

        The sum is accumulated exactly and rounded once at the end.
        """
        total = Decimal(0)
        for row in self.store.read(BASKET_KEY):
            total += Decimal(str(row['price'])) * row['quantity']
        return int(total.quantize(Decimal(1), rounding=ROUND_HALF_UP))

    def is_empty(self) -> bool:
        return not self.store.read(BASKET_KEY)


_basket_repository: Optional[BasketRepository] = None


def get_basket_repository() -> BasketRepository:
    """Get the singleton basket repository over the shared store"""
    global _basket_repository
    if _basket_repository is None:
        _basket_repository = BasketRepository(get_kv_store())
    return _basket_repository
