from pydantic import BaseModel, Field, model_validator
from uuid import UUID
from decimal import Decimal
from typing import Optional, List
from datetime import datetime

from app.modules.returns.models import (
    ReturnType, ReturnStatus, SettlementMethod, ShippingChargeHandling, RefundMethod
)


class ReturnItemCreate(BaseModel):
    """
    Ítem devuelto. Con purchase_item_id u order_item_id se toman producto y
    precio del documento original.
    """
    purchase_item_id: Optional[UUID] = None
    order_item_id: Optional[UUID] = None
    product_id: Optional[UUID] = None
    variant_id: Optional[UUID] = None
    product_name: Optional[str] = Field(None, max_length=150)
    quantity: int = Field(..., gt=0)
    unit_price: Optional[Decimal] = Field(None, ge=0)


class SupplierReturnCreate(BaseModel):
    """
    Devolución a proveedor.

    REDUCE_PAYABLE descuenta todo de la cuenta por pagar; CASH_REFUND registra el
    reembolso en caja/banco; MIXED descuenta payable_offset_amount y el resto se
    recibe en caja/banco.
    """
    supplier_id: UUID
    purchase_invoice_id: Optional[UUID] = None
    items: List[ReturnItemCreate] = Field(..., min_length=1)
    settlement_method: SettlementMethod = SettlementMethod.REDUCE_PAYABLE
    payable_offset_amount: Optional[Decimal] = Field(None, ge=0)
    refund_method: RefundMethod = RefundMethod.CASH
    reason: Optional[str] = None
    return_date: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_settlement(self):
        if self.settlement_method == SettlementMethod.MIXED and self.payable_offset_amount is None:
            raise ValueError("MIXED requiere payable_offset_amount")
        if self.refund_method == RefundMethod.CUSTOMER_ADVANCE:
            raise ValueError("Un proveedor reembolsa por caja o banco")
        return self


class CustomerReturnCreate(BaseModel):
    """Devolución de cliente sobre una orden; CUSTOMER_FULL devuelve todos los ítems"""
    order_id: UUID
    return_type: ReturnType = ReturnType.CUSTOMER_PARTIAL
    items: List[ReturnItemCreate] = Field(default_factory=list)
    shipping_charge_handling: ShippingChargeHandling = ShippingChargeHandling.CUSTOMER_PAYS
    reason: Optional[str] = None
    return_date: Optional[datetime] = None

    @model_validator(mode="after")
    def validate_items(self):
        if self.return_type == ReturnType.SUPPLIER:
            raise ValueError("Use la devolución a proveedor para este tipo")
        if self.return_type == ReturnType.CUSTOMER_PARTIAL and not self.items:
            raise ValueError("Una devolución parcial requiere ítems")
        return self


class RefundRequest(BaseModel):
    refund_method: RefundMethod = RefundMethod.CASH
    amount: Optional[Decimal] = Field(None, gt=0, description="Por defecto, el total de la devolución")


class ReturnItemOut(BaseModel):
    id: UUID
    product_id: Optional[UUID] = None
    variant_id: Optional[UUID] = None
    purchase_item_id: Optional[UUID] = None
    order_item_id: Optional[UUID] = None
    product_name: str
    quantity: int
    unit_price: Decimal

    class Config:
        from_attributes = True


class ReturnOut(BaseModel):
    id: UUID
    return_number: str
    return_type: ReturnType
    status: ReturnStatus
    reason: Optional[str] = None
    return_date: datetime
    total_amount: Decimal
    shipping_amount: Decimal
    refund_amount: Decimal
    settlement_method: Optional[SettlementMethod] = None
    payable_offset_amount: Decimal
    shipping_charge_handling: Optional[ShippingChargeHandling] = None
    refund_method: Optional[RefundMethod] = None
    purchase_invoice_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    supplier_id: Optional[UUID] = None
    customer_id: Optional[UUID] = None
    transaction_id: Optional[UUID] = None
    refund_transaction_id: Optional[UUID] = None
    items: List[ReturnItemOut] = []

    class Config:
        from_attributes = True


class ReturnList(BaseModel):
    items: List[ReturnOut]
    total: int
    limit: int
    offset: int
