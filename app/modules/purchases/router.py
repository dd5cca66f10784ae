from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.purchases.schemas import (
    PurchaseInvoiceCreate, PurchaseInvoiceOut, PurchaseInvoiceList, PurchaseInvoiceDeleted
)
from app.modules.purchases.service import PurchaseService

purchases_router = APIRouter(prefix="/purchase-invoices", tags=["Purchases"])


@purchases_router.post("/", response_model=PurchaseInvoiceOut, status_code=status.HTTP_201_CREATED)
def create_purchase_invoice(data: PurchaseInvoiceCreate, db: db_dependency, tenant_id: TenantId):
    """
    Registrar una factura de compra

    Suma el inventario (creando productos nuevos), registra el asiento de compra
    y el pago inicial si lo hay.
    """
    return PurchaseService(db, tenant_id).create_purchase_invoice(data)


@purchases_router.get("/", response_model=PurchaseInvoiceList)
def list_purchase_invoices(
    db: db_dependency,
    tenant_id: TenantId,
    supplier_id: Optional[UUID] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
):
    items, total = PurchaseService(db, tenant_id).list_invoices(supplier_id, limit, offset)
    return PurchaseInvoiceList(items=items, total=total, limit=limit, offset=offset)


@purchases_router.get("/{invoice_id}", response_model=PurchaseInvoiceOut)
def get_purchase_invoice(invoice_id: UUID, db: db_dependency, tenant_id: TenantId):
    return PurchaseService(db, tenant_id).get_invoice(invoice_id)


@purchases_router.delete("/{invoice_id}", response_model=PurchaseInvoiceDeleted)
def delete_purchase_invoice(invoice_id: UUID, db: db_dependency, tenant_id: TenantId):
    """Eliminar la factura revirtiendo sus asientos y el inventario que sumó"""
    return PurchaseService(db, tenant_id).delete_purchase_invoice(invoice_id)
