from pydantic import BaseModel, Field, model_validator
from uuid import UUID
from decimal import Decimal
from typing import Optional, List
from datetime import datetime

from app.modules.orders.models import OrderStatus, CodFeePaidBy


class OrderItemCreate(BaseModel):
    product_id: UUID
    variant_id: Optional[UUID] = None
    quantity: int = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0, description="Por defecto, el precio de venta del producto")


class OrderCreate(BaseModel):
    """
    Orden de venta.

    El cliente se indica por customer_id o por teléfono (se crea si no existe).
    Sin shipping_charges se calculan con la configuración de envíos; sin cod_fee
    se calcula con la transportadora indicada.
    """
    customer_id: Optional[UUID] = None
    customer_phone: Optional[str] = Field(None, max_length=30)
    customer_name: Optional[str] = Field(None, max_length=150)
    city: Optional[str] = Field(None, max_length=100)
    delivery_address: Optional[str] = None
    order_date: Optional[datetime] = None
    items: List[OrderItemCreate] = Field(..., min_length=1)
    shipping_charges: Optional[Decimal] = Field(None, ge=0)
    logistics_company_id: Optional[UUID] = None
    cod_amount: Optional[Decimal] = Field(None, ge=0)
    cod_fee: Optional[Decimal] = Field(None, ge=0)
    cod_fee_paid_by: CodFeePaidBy = CodFeePaidBy.BUSINESS
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_customer(self):
        if not self.customer_id and not self.customer_phone:
            raise ValueError("Debe indicar customer_id o customer_phone")
        return self


class OrderItemOut(BaseModel):
    id: UUID
    product_id: UUID
    variant_id: Optional[UUID] = None
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: UUID
    order_number: str
    customer_id: UUID
    status: OrderStatus
    order_date: datetime
    city: Optional[str] = None
    delivery_address: Optional[str] = None
    shipping_charges: Decimal
    cod_amount: Decimal
    cod_fee: Decimal
    cod_fee_paid_by: CodFeePaidBy
    payment_amount: Decimal
    refund_amount: Decimal
    logistics_company_id: Optional[UUID] = None
    sale_transaction_id: Optional[UUID] = None
    items_total: Decimal
    total_amount: Decimal
    confirmed_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    notes: Optional[str] = None
    items: List[OrderItemOut] = []

    class Config:
        from_attributes = True


class OrderList(BaseModel):
    items: List[OrderOut]
    total: int
    limit: int
    offset: int
