"""
Catalog Domain Models

Sellable items and the categories they are grouped into.
Prices are whole satoshis.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional


class Category(BaseModel):
    """
    Category domain model - groups items on the POS screen

    Fields:
        id: Opaque unique identifier
        name: Category name
        color: Optional display color for UI styling
    """

    id: str = Field(..., description="Category ID")
    name: str = Field(..., description="Category name")
    color: Optional[str] = Field(None, description="Display color")

    model_config = ConfigDict(from_attributes=True)


class Item(BaseModel):
    """
    Item domain model - something the operator sells

    Fields:
        id: Opaque unique identifier
        name: Item name
        price: Price in satoshis
        description: Item description (optional)
        image: Image URL or data URI (optional)
        category_id: Reference to a Category (optional)
    """

    id: str = Field(..., description="Item ID")
    name: str = Field(..., description="Item name")
    price: int = Field(..., description="Price in satoshis", ge=0)
    description: Optional[str] = Field(None, description="Item description")
    image: Optional[str] = Field(None, description="Image URL or data URI")
    category_id: Optional[str] = Field(None, description="Category reference")

    model_config = ConfigDict(from_attributes=True)
