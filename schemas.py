"""
Database Schemas for the storefront

Each Pydantic model maps to a MongoDB collection (lowercased class name).

Collections:
- user
- product
- data (DataRecord)
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, JsonValue

CART_SLOTS = 300


def empty_cart() -> Dict[str, int]:
    return {str(slot): 0 for slot in range(CART_SLOTS)}


class User(BaseModel):
    """
    Users collection schema
    Collection name: "user"
    """
    name: str = Field(..., description="Display name")
    email: EmailStr = Field(..., description="Email address, unique")
    password_hash: str = Field(..., description="BCrypt password hash")
    cart: Dict[str, int] = Field(default_factory=empty_cart, description="Slot index -> quantity")


class Product(BaseModel):
    """
    Products collection schema
    Collection name: "product"
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field(..., min_length=1)
    new_price: float = Field(..., description="Current price")
    old_price: float = Field(0, description="Previous price, for was/now display")
    images: List[str] = Field(..., min_length=1, description="/uploads/<filename> paths")
    category: str = Field(..., min_length=1)
    attributes: Dict[str, JsonValue] = Field(default_factory=dict, description="Free-form extra data")
    available: bool = True


class ProductUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    new_price: Optional[float] = None
    old_price: Optional[float] = None
    category: Optional[str] = Field(None, min_length=1)
    available: Optional[bool] = None


class DataRecord(BaseModel):
    """
    Generic records schema
    Collection name: "data"
    """
    title: Optional[str] = None
    description: Optional[str] = None
    imageUrl: Optional[str] = None
