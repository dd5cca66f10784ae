"""
Modelos SQLAlchemy para el módulo de Pagos
"""

from sqlalchemy import Column, String, Text, Numeric, DateTime, ForeignKey, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
import enum

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


# ===== ENUMS =====

class PaymentType(enum.Enum):
    SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"
    CUSTOMER_PAYMENT = "CUSTOMER_PAYMENT"


class PaymentMethod(enum.Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"
    CARD = "CARD"
    CHEQUE = "CHEQUE"
    ADVANCE = "ADVANCE"  # Solo aplica anticipo, sin movimiento de caja


# ===== MODELOS =====

class Payment(Base, TenantMixin, TimestampMixin):
    """
    Pago de cliente o a proveedor.

    amount es la parte pagada con caja/banco (account_id); advance_used la parte
    cubierta con anticipos previos. account_id es nulo para liquidaciones que
    solo aplican anticipo.
    """
    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    payment_number = Column(String(50), nullable=False)
    type = Column(Enum(PaymentType), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False, default=0)
    advance_used = Column(Numeric(15, 2), nullable=False, default=0)
    payment_date = Column(DateTime(timezone=True), nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False, default=PaymentMethod.CASH)
    account_id = Column(UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=True)

    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)
    supplier_id = Column(UUID(as_uuid=True), ForeignKey("suppliers.id"), nullable=True, index=True)
    purchase_invoice_id = Column(
        UUID(as_uuid=True), ForeignKey("purchase_invoices.id", ondelete="SET NULL"), nullable=True, index=True
    )
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=True, index=True)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=True)
    notes = Column(Text, nullable=True)

    purchase_invoice = relationship("PurchaseInvoice", back_populates="payments")
    order = relationship("Order", back_populates="payments")
    account = relationship("Account")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'payment_number', name='uq_payment_tenant_number'),
    )

    @property
    def total_settled(self):
        return (self.amount or 0) + (self.advance_used or 0)
