from pydantic import BaseModel, Field
from uuid import UUID
from decimal import Decimal
from typing import Optional, List
from datetime import datetime

from app.modules.products.models import ProductLogAction
from app.modules.shipping.schemas import ChargeRule


class ProductCreate(BaseModel):
    """Alta manual de producto (las compras crean productos automáticamente)"""
    name: str = Field(..., min_length=1, max_length=150)
    sku: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=255)
    category: Optional[str] = Field(None, max_length=100)
    initial_quantity: int = Field(default=0, ge=0)
    purchase_price: Optional[Decimal] = Field(None, ge=0)
    retail_price: Optional[Decimal] = Field(None, ge=0)
    min_stock_level: int = Field(default=0, ge=0)
    max_stock_level: Optional[int] = Field(None, ge=0)
    use_default_shipping: bool = True
    shipping_quantity_rules: List[ChargeRule] = Field(default_factory=list)
    shipping_default_quantity_charge: Optional[Decimal] = Field(None, ge=0)


class ProductShippingUpdate(BaseModel):
    use_default_shipping: bool
    shipping_quantity_rules: List[ChargeRule] = Field(default_factory=list)
    shipping_default_quantity_charge: Optional[Decimal] = Field(None, ge=0)


class ProductPriceUpdate(BaseModel):
    retail_price: Decimal = Field(..., ge=0)


class ProductVariantOut(BaseModel):
    id: UUID
    color: Optional[str] = None
    size: Optional[str] = None
    sku: Optional[str] = None
    current_quantity: int
    last_purchase_price: Optional[Decimal] = None

    class Config:
        from_attributes = True


class ProductOut(BaseModel):
    id: UUID
    name: str
    sku: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    current_quantity: int
    last_purchase_price: Optional[Decimal] = None
    current_retail_price: Optional[Decimal] = None
    min_stock_level: int
    max_stock_level: Optional[int] = None
    use_default_shipping: bool
    is_low_stock: bool
    variants: List[ProductVariantOut] = []

    class Config:
        from_attributes = True


class ProductList(BaseModel):
    items: List[ProductOut]
    total: int
    limit: int
    offset: int


class ProductLogOut(BaseModel):
    id: UUID
    product_id: UUID
    variant_id: Optional[UUID] = None
    purchase_item_id: Optional[UUID] = None
    action: ProductLogAction
    quantity: int
    old_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    old_price: Optional[Decimal] = None
    new_price: Optional[Decimal] = None
    reason: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True
