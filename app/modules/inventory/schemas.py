from pydantic import BaseModel, Field, field_validator
from uuid import UUID
from decimal import Decimal
from typing import Optional, List


class InventoryAdjustment(BaseModel):
    product_id: UUID
    variant_id: Optional[UUID] = None
    quantity_delta: int = Field(..., description="Positivo aumenta, negativo disminuye (con tope en 0)")
    reason: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = None

    @field_validator("quantity_delta")
    @classmethod
    def non_zero(cls, v):
        if v == 0:
            raise ValueError("quantity_delta no puede ser 0")
        return v


class LowStockProduct(BaseModel):
    id: UUID
    name: str
    sku: Optional[str] = None
    current_quantity: int
    min_stock_level: int

    class Config:
        from_attributes = True


class InventorySummary(BaseModel):
    total_products: int
    total_quantity: int
    total_value: Decimal
    low_stock_count: int
    low_stock_products: List[LowStockProduct] = []


class ProductReconciliation(BaseModel):
    product_id: UUID
    stored_quantity: int
    computed_quantity: int
    repaired: bool
    variants_repaired: int = 0
