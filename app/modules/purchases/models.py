"""
Modelos SQLAlchemy para el módulo de Compras

- PurchaseInvoice: factura de proveedor (total, pagado, método de pago)
- PurchaseItem: ítems de la factura, con soft delete para conservar la auditoría
  cuando la factura se elimina
"""

from sqlalchemy import (
    Column, String, Text, Integer, Numeric, DateTime, ForeignKey, Enum,
    UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from decimal import Decimal

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin, SoftDeleteMixin
from app.modules.payments.models import PaymentMethod


class PurchaseInvoice(Base, TenantMixin, TimestampMixin):
    """Factura de compra. Al eliminarla, ítems, pagos y devoluciones quedan desvinculados."""
    __tablename__ = "purchase_invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    supplier_id = Column(UUID(as_uuid=True), ForeignKey("suppliers.id"), nullable=False, index=True)
    invoice_number = Column(String(50), nullable=False)
    invoice_date = Column(DateTime(timezone=True), nullable=False)
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    payment_amount = Column(Numeric(15, 2), nullable=False, default=0)
    payment_method = Column(Enum(PaymentMethod), nullable=True)
    notes = Column(Text, nullable=True)

    supplier = relationship("Supplier", back_populates="purchase_invoices")
    items = relationship("PurchaseItem", back_populates="purchase_invoice")
    payments = relationship("Payment", back_populates="purchase_invoice")
    returns = relationship("Return", back_populates="purchase_invoice")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'invoice_number', name='uq_purchase_invoice_tenant_number'),
        CheckConstraint('total_amount >= 0', name='check_purchase_total_non_negative'),
        CheckConstraint('payment_amount >= 0', name='check_purchase_payment_non_negative'),
    )

    @property
    def active_items(self):
        return [item for item in self.items if not item.is_deleted]

    @property
    def unpaid_amount(self) -> Decimal:
        return max(Decimal(self.total_amount or 0) - Decimal(self.payment_amount or 0), Decimal("0"))


class PurchaseItem(Base, TenantMixin, TimestampMixin, SoftDeleteMixin):
    __tablename__ = "purchase_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    purchase_invoice_id = Column(
        UUID(as_uuid=True), ForeignKey("purchase_invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )
    # Copia del número de factura: se conserva después de eliminarla
    invoice_number = Column(String(50), nullable=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=True)
    variant_id = Column(UUID(as_uuid=True), ForeignKey("product_variants.id"), nullable=True)

    name = Column(String(150), nullable=False)
    sku = Column(String(50), nullable=True)
    color = Column(String(50), nullable=True)
    size = Column(String(50), nullable=True)
    quantity = Column(Integer, nullable=False)
    purchase_price = Column(Numeric(15, 4), nullable=False)

    purchase_invoice = relationship("PurchaseInvoice", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_purchase_item_quantity_positive'),
    )

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.purchase_price or 0) * (self.quantity or 0)
