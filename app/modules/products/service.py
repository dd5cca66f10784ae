"""
Servicio de productos: alta, consulta y configuración de envío.

Las cantidades y costos no se editan aquí; pasan por InventoryService.
"""
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.common.exceptions import InvalidOperationError
from app.common.tenancy import TenantScope
from app.modules.products.models import Product
from app.modules.products.schemas import ProductCreate, ProductShippingUpdate

logger = logging.getLogger(__name__)


def create_product(db: Session, data: ProductCreate, tenant_id: UUID) -> Product:
    """Crear producto; la cantidad inicial queda registrada como log CREATE"""
    from app.modules.inventory.service import InventoryService

    scope = TenantScope(db, tenant_id)
    if data.sku and scope.query(Product).filter(Product.sku == data.sku).first():
        raise InvalidOperationError(f"Ya existe un producto con SKU {data.sku}")

    try:
        product = InventoryService(db, tenant_id).create_product(
            name=data.name,
            sku=data.sku,
            quantity=data.initial_quantity,
            purchase_price=data.purchase_price,
            retail_price=data.retail_price,
            reason="Product created",
        )
        product.description = data.description
        product.category = data.category
        product.min_stock_level = data.min_stock_level
        if data.max_stock_level is not None:
            product.max_stock_level = data.max_stock_level
        product.use_default_shipping = data.use_default_shipping
        product.shipping_quantity_rules = [r.model_dump(mode="json") for r in data.shipping_quantity_rules]
        product.shipping_default_quantity_charge = data.shipping_default_quantity_charge
        db.commit()
        db.refresh(product)
    except Exception:
        db.rollback()
        raise
    return product


def get_product_by_id(db: Session, tenant_id: UUID, product_id: UUID) -> Product:
    return TenantScope(db, tenant_id).get(Product, product_id, "Producto")


def get_all_products(
    db: Session,
    tenant_id: UUID,
    search: Optional[str] = None,
    low_stock: bool = False,
    limit: int = 20,
    offset: int = 0
):
    query = TenantScope(db, tenant_id).query(Product).filter(Product.is_active == True)
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(func.lower(Product.name).like(pattern) | func.lower(Product.sku).like(pattern))
    if low_stock:
        query = query.filter(Product.current_quantity <= Product.min_stock_level)
    total = query.count()
    items = query.order_by(Product.name).offset(offset).limit(limit).all()
    return items, total


def update_product_shipping(db: Session, tenant_id: UUID, product_id: UUID, data: ProductShippingUpdate) -> Product:
    product = get_product_by_id(db, tenant_id, product_id)
    product.use_default_shipping = data.use_default_shipping
    product.shipping_quantity_rules = [r.model_dump(mode="json") for r in data.shipping_quantity_rules]
    product.shipping_default_quantity_charge = data.shipping_default_quantity_charge
    db.commit()
    db.refresh(product)
    logger.info(f"Shipping settings updated for product {product.name}")
    return product
