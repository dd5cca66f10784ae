"""
Modelos SQLAlchemy para el módulo de Devoluciones

- Return: devolución a proveedor (sobre una factura de compra) o de cliente
  (sobre una orden), con el método de liquidación elegido al registrarla
- ReturnItem: productos devueltos con su precio unitario
"""

from sqlalchemy import (
    Column, String, Text, Integer, Numeric, DateTime, ForeignKey, Enum,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from decimal import Decimal
import enum

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


# ===== ENUMS =====

class ReturnType(enum.Enum):
    SUPPLIER = "SUPPLIER"
    CUSTOMER_FULL = "CUSTOMER_FULL"
    CUSTOMER_PARTIAL = "CUSTOMER_PARTIAL"


class ReturnStatus(enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    REFUNDED = "REFUNDED"


class SettlementMethod(enum.Enum):
    """Cómo se liquida una devolución a proveedor; se decide una sola vez"""
    REDUCE_PAYABLE = "REDUCE_PAYABLE"
    CASH_REFUND = "CASH_REFUND"
    MIXED = "MIXED"


class ShippingChargeHandling(enum.Enum):
    CUSTOMER_PAYS = "CUSTOMER_PAYS"
    FULL_REFUND = "FULL_REFUND"


class RefundMethod(enum.Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CUSTOMER_ADVANCE = "CUSTOMER_ADVANCE"  # Crédito a favor del cliente


# ===== MODELOS =====

class Return(Base, TenantMixin, TimestampMixin):
    __tablename__ = "returns"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    return_number = Column(String(50), nullable=False)
    return_type = Column(Enum(ReturnType), nullable=False)
    status = Column(Enum(ReturnStatus), nullable=False, default=ReturnStatus.PENDING)
    reason = Column(Text, nullable=True)
    return_date = Column(DateTime(timezone=True), nullable=False)

    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    shipping_amount = Column(Numeric(15, 2), nullable=False, default=0)
    refund_amount = Column(Numeric(15, 2), nullable=False, default=0)

    # Proveedor
    settlement_method = Column(Enum(SettlementMethod), nullable=True)
    payable_offset_amount = Column(Numeric(15, 2), nullable=False, default=0)
    # Cliente
    shipping_charge_handling = Column(Enum(ShippingChargeHandling), nullable=True)
    refund_method = Column(Enum(RefundMethod), nullable=True)

    purchase_invoice_id = Column(
        UUID(as_uuid=True), ForeignKey("purchase_invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=True, index=True)
    supplier_id = Column(UUID(as_uuid=True), ForeignKey("suppliers.id"), nullable=True, index=True)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)

    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=True)
    refund_transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship("ReturnItem", back_populates="return_", cascade="all, delete-orphan")
    purchase_invoice = relationship("PurchaseInvoice", back_populates="returns")
    order = relationship("Order")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'return_number', name='uq_return_tenant_number'),
        CheckConstraint('total_amount >= 0', name='check_return_total_non_negative'),
    )

    @property
    def is_supplier_return(self) -> bool:
        return self.return_type == ReturnType.SUPPLIER

    @property
    def cash_refund_amount(self) -> Decimal:
        """Parte de una devolución a proveedor recibida en caja/banco"""
        return Decimal(self.total_amount or 0) - Decimal(self.payable_offset_amount or 0)


class ReturnItem(Base, TenantMixin):
    """unit_price es el costo de compra (proveedor) o el precio de venta (cliente)"""
    __tablename__ = "return_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    return_id = Column(UUID(as_uuid=True), ForeignKey("returns.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=True)
    variant_id = Column(UUID(as_uuid=True), ForeignKey("product_variants.id"), nullable=True)
    purchase_item_id = Column(UUID(as_uuid=True), ForeignKey("purchase_items.id"), nullable=True)
    order_item_id = Column(UUID(as_uuid=True), ForeignKey("order_items.id"), nullable=True)
    product_name = Column(String(150), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 4), nullable=False)

    return_ = relationship("Return", back_populates="items")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_return_item_quantity_positive'),
    )

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price or 0) * (self.quantity or 0)
