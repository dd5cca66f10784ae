from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.orders.models import OrderStatus
from app.modules.orders.schemas import OrderCreate, OrderOut, OrderList
from app.modules.orders.service import OrderService

orders_router = APIRouter(prefix="/orders", tags=["Orders"])


@orders_router.post("/", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
def create_order(data: OrderCreate, db: db_dependency, tenant_id: TenantId):
    """Crear una orden pendiente calculando envío y comisión COD cuando no se indican"""
    return OrderService(db, tenant_id).create_order(data)


@orders_router.get("/", response_model=OrderList)
def list_orders(
    db: db_dependency,
    tenant_id: TenantId,
    customer_id: Optional[UUID] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
):
    items, total = OrderService(db, tenant_id).list_orders(customer_id, status, limit, offset)
    return OrderList(items=items, total=total, limit=limit, offset=offset)


@orders_router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: UUID, db: db_dependency, tenant_id: TenantId):
    return OrderService(db, tenant_id).get_order(order_id)


@orders_router.post("/{order_id}/confirm", response_model=OrderOut)
def confirm_order(order_id: UUID, db: db_dependency, tenant_id: TenantId):
    """Confirmar: registra la venta y descuenta inventario"""
    return OrderService(db, tenant_id).confirm_order(order_id)


@orders_router.post("/{order_id}/dispatch", response_model=OrderOut)
def dispatch_order(order_id: UUID, db: db_dependency, tenant_id: TenantId):
    return OrderService(db, tenant_id).dispatch_order(order_id)


@orders_router.post("/{order_id}/complete", response_model=OrderOut)
def complete_order(order_id: UUID, db: db_dependency, tenant_id: TenantId):
    return OrderService(db, tenant_id).complete_order(order_id)


@orders_router.post("/{order_id}/cancel", response_model=OrderOut)
def cancel_order(order_id: UUID, db: db_dependency, tenant_id: TenantId):
    """Cancelar: revierte la venta y el inventario si la orden ya estaba confirmada"""
    return OrderService(db, tenant_id).cancel_order(order_id)
