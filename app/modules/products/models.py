from app.database.database import Base
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey,
    UniqueConstraint, Numeric, Enum, JSON, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from datetime import datetime, timezone
from app.common.mixins import TenantMixin, TimestampMixin
import enum


class ProductLogAction(enum.Enum):
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"
    CREATE = "CREATE"
    PRICE_UPDATE = "PRICE_UPDATE"
    QUANTITY_ADJUSTMENT = "QUANTITY_ADJUSTMENT"
    VARIANT_CREATE = "VARIANT_CREATE"
    VARIANT_INCREASE = "VARIANT_INCREASE"
    VARIANT_DECREASE = "VARIANT_DECREASE"


# Acciones que modifican la cantidad del producto (las demás registran quantity=0)
QUANTITY_ACTIONS = (
    ProductLogAction.INCREASE,
    ProductLogAction.DECREASE,
    ProductLogAction.CREATE,
    ProductLogAction.QUANTITY_ADJUSTMENT,
    ProductLogAction.VARIANT_CREATE,
    ProductLogAction.VARIANT_INCREASE,
    ProductLogAction.VARIANT_DECREASE,
)


class Product(Base, TenantMixin, TimestampMixin):
    """
    Producto con cantidad y costo denormalizados.

    current_quantity y last_purchase_price solo cambian a través del servicio de
    inventario, que deja un ProductLog por cada cambio.
    """
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(150), nullable=False)
    sku = Column(String(50), nullable=True)
    description = Column(String(255), nullable=True)
    category = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True)

    current_quantity = Column(Integer, nullable=False, default=0)
    last_purchase_price = Column(Numeric(15, 4), nullable=True)
    current_retail_price = Column(Numeric(15, 2), nullable=True)
    min_stock_level = Column(Integer, nullable=False, default=0)
    max_stock_level = Column(Integer, nullable=True)

    # Envíos: reglas propias cuando use_default_shipping es False
    use_default_shipping = Column(Boolean, nullable=False, default=True)
    shipping_quantity_rules = Column(JSON, nullable=True)
    shipping_default_quantity_charge = Column(Numeric(15, 2), nullable=True)

    # Relationships
    variants = relationship("ProductVariant", back_populates="product", cascade="all, delete-orphan")
    logs = relationship("ProductLog", back_populates="product", order_by="ProductLog.created_at")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
        Index("idx_product_tenant_name", "tenant_id", "name"),
    )

    @property
    def is_low_stock(self) -> bool:
        return (self.current_quantity or 0) <= (self.min_stock_level or 0)


class ProductVariant(Base, TenantMixin, TimestampMixin):
    __tablename__ = "product_variants"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False)
    color = Column(String(50), nullable=True)
    size = Column(String(50), nullable=True)
    sku = Column(String(50), nullable=True)
    current_quantity = Column(Integer, nullable=False, default=0)
    last_purchase_price = Column(Numeric(15, 4), nullable=True)
    current_retail_price = Column(Numeric(15, 2), nullable=True)
    is_active = Column(Boolean, default=True)

    # Relationships
    product = relationship("Product", back_populates="variants")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_variant_tenant_sku"),
    )


def _log_timestamp():
    return datetime.now(timezone.utc)


class ProductLog(Base, TenantMixin):
    """
    Entrada de auditoría de inventario (solo inserción).

    quantity es el cambio aplicado al producto (new_quantity - old_quantity); cuando
    el cambio afecta una variante se registran también sus cantidades.
    """
    __tablename__ = "product_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(UUID(as_uuid=True), ForeignKey("product_variants.id"), nullable=True)
    purchase_item_id = Column(UUID(as_uuid=True), ForeignKey("purchase_items.id"), nullable=True)

    action = Column(Enum(ProductLogAction), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    old_quantity = Column(Integer, nullable=True)
    new_quantity = Column(Integer, nullable=True)
    variant_old_quantity = Column(Integer, nullable=True)
    variant_new_quantity = Column(Integer, nullable=True)
    old_price = Column(Numeric(15, 4), nullable=True)
    new_price = Column(Numeric(15, 4), nullable=True)

    reason = Column(String(255), nullable=True)
    reference = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_log_timestamp)

    # Relationships
    product = relationship("Product", back_populates="logs")
    variant = relationship("ProductVariant")
