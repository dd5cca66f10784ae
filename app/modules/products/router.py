from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.products import service
from app.modules.products.schemas import (
    ProductCreate, ProductList, ProductOut, ProductPriceUpdate, ProductShippingUpdate
)
from app.modules.inventory.service import InventoryService

product_router = APIRouter(prefix="/products", tags=["Products"])


@product_router.post("/", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(product: ProductCreate, db: db_dependency, tenant_id: TenantId):
    return service.create_product(db, product, tenant_id)


@product_router.get("/", response_model=ProductList)
def get_products(
    db: db_dependency,
    tenant_id: TenantId,
    search: Optional[str] = Query(None),
    low_stock: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
):
    items, total = service.get_all_products(db, tenant_id, search, low_stock, limit, offset)
    return ProductList(items=items, total=total, limit=limit, offset=offset)


@product_router.get("/{product_id}", response_model=ProductOut)
def get_product(product_id: UUID, db: db_dependency, tenant_id: TenantId):
    return service.get_product_by_id(db, tenant_id, product_id)


@product_router.put("/{product_id}/shipping", response_model=ProductOut)
def update_product_shipping(product_id: UUID, data: ProductShippingUpdate, db: db_dependency, tenant_id: TenantId):
    """Reglas de envío propias del producto"""
    return service.update_product_shipping(db, tenant_id, product_id, data)


@product_router.put("/{product_id}/price", response_model=ProductOut)
def update_product_price(product_id: UUID, data: ProductPriceUpdate, db: db_dependency, tenant_id: TenantId):
    """Actualizar precio de venta (queda registrado en el historial)"""
    return InventoryService(db, tenant_id).update_product_price(product_id, data.retail_price)
