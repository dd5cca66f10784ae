from pydantic import BaseModel, Field, model_validator
from uuid import UUID
from decimal import Decimal
from typing import Optional, List
from datetime import datetime

from app.modules.payments.models import PaymentMethod, PaymentType


class CustomerPaymentCreate(BaseModel):
    """
    Pago de cliente.

    Con order_id se abona a la orden; sin orden es un pago directo. is_advance
    registra el pago como anticipo (crédito a favor del cliente).
    """
    customer_id: UUID
    order_id: Optional[UUID] = None
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    account_id: Optional[UUID] = None
    payment_date: Optional[datetime] = None
    is_advance: bool = False
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_method(self):
        if self.payment_method == PaymentMethod.ADVANCE:
            raise ValueError("Los pagos de clientes deben ingresar por caja o banco")
        if self.is_advance and self.order_id:
            raise ValueError("Un anticipo no puede estar vinculado a una orden")
        return self


class SupplierPaymentCreate(BaseModel):
    """amount es lo pagado por caja/banco; advance_used lo cubierto con anticipos"""
    supplier_id: UUID
    purchase_invoice_id: Optional[UUID] = None
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    advance_used: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod = PaymentMethod.CASH
    account_id: Optional[UUID] = None
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_amounts(self):
        if self.amount + self.advance_used <= 0:
            raise ValueError("El pago debe tener un monto mayor a 0")
        if self.payment_method == PaymentMethod.ADVANCE and self.amount > 0:
            raise ValueError("Con método ADVANCE solo se aplica anticipo (amount debe ser 0)")
        return self


class PaymentOut(BaseModel):
    id: UUID
    payment_number: str
    type: PaymentType
    amount: Decimal
    advance_used: Decimal
    payment_date: datetime
    payment_method: PaymentMethod
    account_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    supplier_id: Optional[UUID] = None
    purchase_invoice_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    transaction_id: Optional[UUID] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class PaymentList(BaseModel):
    items: List[PaymentOut]
    total: int
    limit: int
    offset: int
