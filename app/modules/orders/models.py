"""
Modelos SQLAlchemy para el módulo de Órdenes

- Order: orden de venta con cargos de envío y comisión COD
- OrderItem: ítems normalizados (producto, variante, cantidad, precio)
"""

from sqlalchemy import (
    Column, String, Text, Integer, Numeric, DateTime, ForeignKey, Enum,
    UniqueConstraint, CheckConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from decimal import Decimal
import enum

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


# ===== ENUMS =====

class OrderStatus(enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DISPATCHED = "DISPATCHED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Estados que cuentan como venta en ledgers y estadísticas
BILLABLE_STATUSES = (OrderStatus.CONFIRMED, OrderStatus.DISPATCHED, OrderStatus.COMPLETED)


class CodFeePaidBy(enum.Enum):
    CUSTOMER = "CUSTOMER"
    BUSINESS = "BUSINESS"


# ===== MODELOS =====

class Order(Base, TenantMixin, TimestampMixin):
    __tablename__ = "orders"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_number = Column(String(50), nullable=False)
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=False, index=True)
    status = Column(Enum(OrderStatus), nullable=False, default=OrderStatus.PENDING)
    order_date = Column(DateTime(timezone=True), nullable=False)
    city = Column(String(100), nullable=True)
    delivery_address = Column(Text, nullable=True)

    shipping_charges = Column(Numeric(15, 2), nullable=False, default=0)
    cod_amount = Column(Numeric(15, 2), nullable=False, default=0)
    cod_fee = Column(Numeric(15, 2), nullable=False, default=0)
    cod_fee_paid_by = Column(Enum(CodFeePaidBy), nullable=False, default=CodFeePaidBy.BUSINESS)
    payment_amount = Column(Numeric(15, 2), nullable=False, default=0)
    refund_amount = Column(Numeric(15, 2), nullable=False, default=0)

    logistics_company_id = Column(UUID(as_uuid=True), ForeignKey("logistics_companies.id"), nullable=True)
    sale_transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id"), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    dispatched_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    customer = relationship("Customer", back_populates="orders")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")
    payments = relationship("Payment", back_populates="order")
    logistics_company = relationship("LogisticsCompany")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'order_number', name='uq_order_tenant_number'),
        Index('idx_order_tenant_customer_status', 'tenant_id', 'customer_id', 'status'),
    )

    @property
    def items_total(self) -> Decimal:
        return sum((item.line_total for item in self.items), Decimal("0"))

    @property
    def customer_cod_fee(self) -> Decimal:
        if self.cod_fee_paid_by == CodFeePaidBy.CUSTOMER:
            return Decimal(self.cod_fee or 0)
        return Decimal("0")

    @property
    def total_amount(self) -> Decimal:
        """Ítems + envío + comisión COD cuando la paga el cliente"""
        return self.items_total + Decimal(self.shipping_charges or 0) + self.customer_cod_fee


class OrderItem(Base, TenantMixin):
    __tablename__ = "order_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    order_id = Column(UUID(as_uuid=True), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    variant_id = Column(UUID(as_uuid=True), ForeignKey("product_variants.id"), nullable=True)
    product_name = Column(String(150), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)

    order = relationship("Order", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_order_item_quantity_positive'),
    )

    @property
    def line_total(self) -> Decimal:
        return Decimal(self.unit_price or 0) * (self.quantity or 0)
