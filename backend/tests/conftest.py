"""
Pytest fixtures and configuration for Lightning POS Backend tests

This file provides shared fixtures that can be used across all test modules.
"""
import pytest
from dotenv import load_dotenv

from app.domain.catalog import Item, Category
from app.repositories.kv_store import InMemoryKeyValueStore
from app.repositories.catalog_repository import CatalogRepository
from app.repositories.basket_repository import BasketRepository

# Load environment variables for tests
load_dotenv()


@pytest.fixture
def kv_store():
    """
    Provides an empty in-memory key-value store

    Scope: function (fresh store per test)
    """
    return InMemoryKeyValueStore()


@pytest.fixture
def catalog_repo(kv_store):
    """Provides a CatalogRepository over the test store"""
    return CatalogRepository(kv_store)


@pytest.fixture
def basket_repo(kv_store):
    """Provides a BasketRepository over the test store"""
    return BasketRepository(kv_store)


@pytest.fixture
def coffee_item():
    """
    Provides sample item data for tests
    """
    return Item(id="coffee", name="Coffee", price=500, description="Espresso")


@pytest.fixture
def tea_item():
    return Item(id="tea", name="Tea", price=300)


@pytest.fixture
def drinks_category():
    return Category(id="drinks", name="Drinks", color="#f7931a")
