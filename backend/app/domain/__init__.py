"""
Domain Layer - Business Entities

Pydantic models for the catalog, basket and invoices, plus the error
taxonomy shared by storage and checkout.
"""
from app.domain.catalog import Item, Category
from app.domain.basket import BasketEntry
from app.domain.invoice import Invoice
from app.domain.errors import (
    PaymentError,
    EmptyBasket,
    InvalidAmount,
    GatewayUnavailable,
    CheckoutError,
    StorageError,
)

__all__ = [
    'Item',
    'Category',
    'BasketEntry',
    'Invoice',
    'PaymentError',
    'EmptyBasket',
    'InvalidAmount',
    'GatewayUnavailable',
    'CheckoutError',
    'StorageError',
]
