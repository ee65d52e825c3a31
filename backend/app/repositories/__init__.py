"""
Repository Layer - Data Access

This layer handles all storage access and returns domain models.
Repositories abstract away the key-value store from business logic.
"""
from app.repositories.kv_store import (
    KeyValueStore,
    InMemoryKeyValueStore,
    PostgresKeyValueStore,
    build_kv_store,
    get_kv_store,
)
from app.repositories.catalog_repository import CatalogRepository, get_catalog_repository
from app.repositories.basket_repository import BasketRepository, get_basket_repository

__all__ = [
    'KeyValueStore',
    'InMemoryKeyValueStore',
    'PostgresKeyValueStore',
    'build_kv_store',
    'get_kv_store',
    'CatalogRepository',
    'BasketRepository',
    'get_catalog_repository',
    'get_basket_repository',
]
