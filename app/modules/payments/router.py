from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.payments.models import PaymentType
from app.modules.payments.schemas import CustomerPaymentCreate, SupplierPaymentCreate, PaymentOut, PaymentList
from app.modules.payments.service import PaymentService

payments_router = APIRouter(prefix="/payments", tags=["Payments"])


@payments_router.post("/customer", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def record_customer_payment(data: CustomerPaymentCreate, db: db_dependency, tenant_id: TenantId):
    """Registrar un pago de cliente (abono a orden, pago directo o anticipo)"""
    return PaymentService(db, tenant_id).record_customer_payment(data)


@payments_router.post("/supplier", response_model=PaymentOut, status_code=status.HTTP_201_CREATED)
def record_supplier_payment(data: SupplierPaymentCreate, db: db_dependency, tenant_id: TenantId):
    """Registrar un pago a proveedor, opcionalmente aplicando anticipos"""
    return PaymentService(db, tenant_id).record_supplier_payment(data)


@payments_router.get("/", response_model=PaymentList)
def list_payments(
    db: db_dependency,
    tenant_id: TenantId,
    type: Optional[PaymentType] = Query(None),
    customer_id: Optional[UUID] = Query(None),
    supplier_id: Optional[UUID] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
):
    items, total = PaymentService(db, tenant_id).list_payments(type, customer_id, supplier_id, limit, offset)
    return PaymentList(items=items, total=total, limit=limit, offset=offset)


@payments_router.get("/{payment_id}", response_model=PaymentOut)
def get_payment(payment_id: UUID, db: db_dependency, tenant_id: TenantId):
    return PaymentService(db, tenant_id).get_payment(payment_id)
