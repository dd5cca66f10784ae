from fastapi import APIRouter, Query, status
from typing import List, Optional
from uuid import UUID

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.inventory.service import InventoryService
from app.modules.inventory.schemas import InventoryAdjustment, InventorySummary, ProductReconciliation
from app.modules.products.schemas import ProductLogOut

inventory_router = APIRouter(prefix="/inventory", tags=["Inventory"])


@inventory_router.get("/summary", response_model=InventorySummary)
def get_inventory_summary(db: db_dependency, tenant_id: TenantId):
    """Totales de inventario valorizado al último costo y productos con stock bajo"""
    return InventoryService(db, tenant_id).get_inventory_summary()


@inventory_router.post("/adjustments", response_model=ProductLogOut, status_code=status.HTTP_201_CREATED)
def adjust_inventory(data: InventoryAdjustment, db: db_dependency, tenant_id: TenantId):
    """Ajuste manual; una disminución mayor al stock deja el producto en 0"""
    return InventoryService(db, tenant_id).adjust_inventory(
        data.product_id,
        data.quantity_delta,
        data.reason,
        notes=data.notes,
        variant_id=data.variant_id
    )


@inventory_router.get("/history", response_model=List[ProductLogOut])
def get_product_history(
    db: db_dependency,
    tenant_id: TenantId,
    product_id: Optional[UUID] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0)
):
    items, _ = InventoryService(db, tenant_id).get_product_history(product_id, limit, offset)
    return items


@inventory_router.post("/products/{product_id}/reconcile", response_model=ProductReconciliation)
def reconcile_product_quantity(product_id: UUID, db: db_dependency, tenant_id: TenantId):
    """Recalcular la cantidad desde el historial y corregir diferencias"""
    return InventoryService(db, tenant_id).reconcile_product_quantity(product_id)
