"""
Catalog Repository - Data Access Layer for Items and Categories

Items and categories each live in one namespace of the key-value store.
Every operation reads the collection, changes it in memory and writes
the whole collection back.
"""
import logging
import uuid
from typing import List, Optional

from app.domain.catalog import Item, Category
from app.repositories.kv_store import (
    KeyValueStore,
    get_kv_store,
    ITEMS_KEY,
    CATEGORIES_KEY,
)

logger = logging.getLogger(__name__)


def _upsert_record(records: List[dict], record: dict) -> List[dict]:
    """Replace the record with the same id in place, or append it"""
    for index, existing in enumerate(records):
        if existing.get('id') == record['id']:
            records[index] = record
            return records
    records.append(record)
    return records


def _require_id(entity_id: str, kind: str) -> None:
    if not entity_id or not str(entity_id).strip():
        raise ValueError(f"{kind} id must not be blank")


class CatalogRepository:
    """
    Repository for catalog data access

    Returns Item and Category domain models, not raw dictionaries.
    Deleting an item never touches the basket; basket entries are snapshots.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    @staticmethod
    def _map_row_to_item(row: dict) -> Item:
        return Item(
            id=row['id'],
            name=row['name'],
            price=row['price'],
            description=row.get('description'),
            image=row.get('image'),
            category_id=row.get('category_id'),
        )

    @staticmethod
    def _map_row_to_category(row: dict) -> Category:
        return Category(
            id=row['id'],
            name=row['name'],
            color=row.get('color'),
        )

    # ========================================================================
    # Items
    # ========================================================================

    def list_items(self) -> List[Item]:
        """
        Get all items in insertion order

        Returns:
            List of Item objects (empty when nothing is stored)
        """
        return [self._map_row_to_item(row) for row in self.store.read(ITEMS_KEY)]

    def get_item(self, item_id: str) -> Optional[Item]:
        """
        Find item by ID

        Args:
            item_id: Item identifier

        Returns:
            Item or None if not found
        """
        for row in self.store.read(ITEMS_KEY):
            if row.get('id') == item_id:
                return self._map_row_to_item(row)
        return None

    def create_item(
        self,
        name: str,
        price: int,
        description: Optional[str] = None,
        image: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> Item:
        """
        Create a new item with a generated identifier

        Returns:
            The stored Item
        """
        item = Item(
            id=str(uuid.uuid4()),
            name=name,
            price=price,
            description=description,
            image=image,
            category_id=category_id,
        )
        return self.upsert_item(item)

    def upsert_item(self, item: Item) -> Item:
        """
        Insert the item, or replace the existing one with the same id

        Replacement keeps the item's position in the collection.

        Args:
            item: Item to store

        Returns:
            The stored Item

        Raises:
            ValueError: If the item id is blank
        """
        _require_id(item.id, "Item")

        records = self.store.read(ITEMS_KEY)
        self.store.write(ITEMS_KEY, _upsert_record(records, item.model_dump()))
        return item

    def delete_item(self, item_id: str) -> None:
        """
        Remove an item; unknown ids are ignored

        Args:
            item_id: Item identifier
        """
        records = self.store.read(ITEMS_KEY)
        remaining = [row for row in records if row.get('id') != item_id]
        if len(remaining) == len(records):
            return
        self.store.write(ITEMS_KEY, remaining)

    # ========================================================================
    # Categories
    # ========================================================================

    def list_categories(self) -> List[Category]:
        return [self._map_row_to_category(row) for row in self.store.read(CATEGORIES_KEY)]

    def create_category(self, name: str, color: Optional[str] = None) -> Category:
        category = Category(id=str(uuid.uuid4()), name=name, color=color)
        return self.upsert_category(category)

    def upsert_category(self, category: Category) -> Category:
        """
        Insert the category, or replace the existing one with the same id

        Raises:
            ValueError: If the category id is blank
        """
        _require_id(category.id, "Category")

        records = self.store.read(CATEGORIES_KEY)
        self.store.write(CATEGORIES_KEY, _upsert_record(records, category.model_dump()))
        return category

    def delete_category(self, category_id: str) -> None:
        """
        Remove a category and detach every item that referenced it

        Both collections are written in a single store call, so readers
        never see the category gone while items still point at it.

        Args:
            category_id: Category identifier
        """
        categories = self.store.read(CATEGORIES_KEY)
        items = self.store.read(ITEMS_KEY)

        remaining = [row for row in categories if row.get('id') != category_id]

        detached = 0
        for row in items:
            if row.get('category_id') == category_id:
                row['category_id'] = None
                detached += 1

        if len(remaining) == len(categories) and detached == 0:
            return

        self.store.write_many({
            CATEGORIES_KEY: remaining,
            ITEMS_KEY: items,
        })
        logger.info(f"Deleted category {category_id}, detached {detached} items")


_catalog_repository: Optional[CatalogRepository] = None


def get_catalog_repository() -> CatalogRepository:
    """Get the singleton catalog repository over the shared store"""
    global _catalog_repository
    if _catalog_repository is None:
        _catalog_repository = CatalogRepository(get_kv_store())
    return _catalog_repository
