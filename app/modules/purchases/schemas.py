from pydantic import BaseModel, Field, field_validator, model_validator
from uuid import UUID
from decimal import Decimal
from typing import Optional, List
from datetime import datetime

from app.modules.payments.models import PaymentMethod


class PurchaseItemCreate(BaseModel):
    """Ítem de compra; sin product_id se resuelve por SKU o nombre (o se crea)"""
    product_id: Optional[UUID] = None
    name: str = Field(..., min_length=1, max_length=150)
    sku: Optional[str] = Field(None, max_length=50)
    color: Optional[str] = Field(None, max_length=50)
    size: Optional[str] = Field(None, max_length=50)
    quantity: int = Field(..., gt=0)
    purchase_price: Decimal = Field(..., ge=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        return v.strip()


class PurchaseInvoiceCreate(BaseModel):
    supplier_id: UUID
    invoice_number: str = Field(..., min_length=1, max_length=50)
    invoice_date: Optional[datetime] = None
    items: List[PurchaseItemCreate] = Field(..., min_length=1)
    payment_amount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    account_id: Optional[UUID] = None
    notes: Optional[str] = None

    @property
    def total_amount(self) -> Decimal:
        return sum((item.purchase_price * item.quantity for item in self.items), Decimal("0"))

    @model_validator(mode="after")
    def validate_payment(self):
        if self.payment_amount > self.total_amount:
            raise ValueError("El pago inicial no puede superar el total de la factura")
        if self.payment_method == PaymentMethod.ADVANCE and self.payment_amount > 0:
            raise ValueError("El pago inicial debe hacerse por caja o banco")
        return self


class PurchaseItemOut(BaseModel):
    id: UUID
    product_id: Optional[UUID] = None
    variant_id: Optional[UUID] = None
    name: str
    sku: Optional[str] = None
    color: Optional[str] = None
    size: Optional[str] = None
    quantity: int
    purchase_price: Decimal
    is_deleted: bool

    class Config:
        from_attributes = True


class PurchaseInvoiceOut(BaseModel):
    id: UUID
    supplier_id: UUID
    invoice_number: str
    invoice_date: datetime
    total_amount: Decimal
    payment_amount: Decimal
    unpaid_amount: Decimal
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None
    items: List[PurchaseItemOut] = []
    created_at: datetime

    class Config:
        from_attributes = True


class PurchaseInvoiceList(BaseModel):
    items: List[PurchaseInvoiceOut]
    total: int
    limit: int
    offset: int


class PurchaseInvoiceDeleted(BaseModel):
    invoice_number: str
    reversed_transactions: List[str]
    inventory_reversals: int
