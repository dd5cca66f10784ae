"""
Modelos SQLAlchemy para el módulo de Contactos

- Customer: clientes identificados por teléfono, con acumulados de órdenes
- Supplier: proveedores con saldo inicial firmado

Los acumulados (advance_balance, total_orders, total_spent, last_order_date) son
cachés del historial y solo se recalculan desde los servicios de saldos.

Arquitectura multi-tenant: Todas las tablas incluyen tenant_id
"""

from app.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, Numeric, Integer, Text, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from app.common.mixins import TenantMixin, TimestampMixin


# ===== MODELOS =====

class Customer(Base, TenantMixin, TimestampMixin):
    """
    Cliente.

    advance_balance guarda la magnitud del dinero que la empresa le debe al
    cliente (anticipos) cuando no existe un asiento de saldo inicial.
    """
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(150), nullable=True)
    phone_number = Column(String(30), nullable=False)
    email = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)
    city = Column(String(100), nullable=True)

    advance_balance = Column(Numeric(15, 2), nullable=False, default=0)
    total_orders = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(15, 2), nullable=False, default=0)
    last_order_date = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    orders = relationship("Order", back_populates="customer")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'phone_number', name='uq_customer_tenant_phone'),
    )

    @property
    def display_name(self) -> str:
        return self.name or self.phone_number


class Supplier(Base, TenantMixin, TimestampMixin):
    """
    Proveedor.

    opening_balance es firmado: positivo = la empresa le debe al proveedor,
    negativo = anticipo entregado al proveedor.
    """
    __tablename__ = "suppliers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(150), nullable=False)
    phone = Column(String(30), nullable=True)
    email = Column(String(100), nullable=True)
    address = Column(Text, nullable=True)

    opening_balance = Column(Numeric(15, 2), nullable=False, default=0)
    opening_balance_date = Column(DateTime(timezone=True), nullable=True)
    advance_balance = Column(Numeric(15, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)

    purchase_invoices = relationship("PurchaseInvoice", back_populates="supplier")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_supplier_tenant_name'),
    )
