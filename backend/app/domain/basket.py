"""
Basket Domain Model
"""
from pydantic import Field

from app.domain.catalog import Item


class BasketEntry(Item):
    """
    Basket entry - a copy of an Item taken when it was added, plus a quantity

    The snapshot is never refreshed from the catalog, so later edits to the
    source item do not change what is already in the basket.
    """

    quantity: int = Field(..., description="Units in the basket", ge=1)

    @classmethod
    def from_item(cls, item: Item, quantity: int) -> "BasketEntry":
        return cls(**item.model_dump(exclude={"quantity"}), quantity=quantity)

    @property
    def line_total(self) -> int:
        """Price times quantity, in satoshis"""
        return self.price * self.quantity
