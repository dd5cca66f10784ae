from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.returns.models import ReturnStatus, ReturnType
from app.modules.returns.schemas import (
    SupplierReturnCreate, CustomerReturnCreate, RefundRequest, ReturnOut, ReturnList
)
from app.modules.returns.service import ReturnService

returns_router = APIRouter(prefix="/returns", tags=["Returns"])


@returns_router.post("/supplier", response_model=ReturnOut, status_code=status.HTTP_201_CREATED)
def post_supplier_return(data: SupplierReturnCreate, db: db_dependency, tenant_id: TenantId):
    """Registrar una devolución a proveedor: asiento, salida de inventario y aprobación inmediata"""
    return ReturnService(db, tenant_id).post_supplier_return(data)


@returns_router.post("/customer", response_model=ReturnOut, status_code=status.HTTP_201_CREATED)
def create_customer_return(data: CustomerReturnCreate, db: db_dependency, tenant_id: TenantId):
    return ReturnService(db, tenant_id).create_customer_return(data)


@returns_router.get("/", response_model=ReturnList)
def list_returns(
    db: db_dependency,
    tenant_id: TenantId,
    return_type: Optional[ReturnType] = Query(None),
    status: Optional[ReturnStatus] = Query(None),
    supplier_id: Optional[UUID] = Query(None),
    customer_id: Optional[UUID] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
):
    items, total = ReturnService(db, tenant_id).list_returns(
        return_type, status, supplier_id, customer_id, limit, offset
    )
    return ReturnList(items=items, total=total, limit=limit, offset=offset)


@returns_router.get("/{return_id}", response_model=ReturnOut)
def get_return(return_id: UUID, db: db_dependency, tenant_id: TenantId):
    return ReturnService(db, tenant_id).get_return(return_id)


@returns_router.post("/{return_id}/approve", response_model=ReturnOut)
def approve_customer_return(return_id: UUID, db: db_dependency, tenant_id: TenantId):
    """Aprobar una devolución de cliente: asiento contra cuentas por cobrar y reingreso de stock"""
    return ReturnService(db, tenant_id).post_customer_return(return_id)


@returns_router.post("/{return_id}/refund", response_model=ReturnOut)
def process_refund(return_id: UUID, data: RefundRequest, db: db_dependency, tenant_id: TenantId):
    return ReturnService(db, tenant_id).process_refund(return_id, data.refund_method, data.amount)


@returns_router.post("/{return_id}/reject", response_model=ReturnOut)
def reject_return(
    return_id: UUID,
    db: db_dependency,
    tenant_id: TenantId,
    reason: Optional[str] = Query(None)
):
    return ReturnService(db, tenant_id).reject_return(return_id, reason)
