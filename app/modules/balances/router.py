from fastapi import APIRouter, Query
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.balances.schemas import (
    BalanceSummary, CustomerBalance, CustomerLedger, CustomerStats,
    InvoicePayableReconciliation, SupplierBalance, SupplierLedger
)
from app.modules.balances.service import BalanceService

balances_router = APIRouter(prefix="/balances", tags=["Balances"])


@balances_router.get("/summary", response_model=BalanceSummary)
def get_balance_summary(db: db_dependency, tenant_id: TenantId):
    """Cuentas por cobrar, por pagar y posición de caja de la empresa"""
    return BalanceService(db, tenant_id).get_balance_summary()


@balances_router.get("/customers", response_model=List[CustomerBalance])
def get_all_customer_balances(db: db_dependency, tenant_id: TenantId):
    return BalanceService(db, tenant_id).get_all_customer_balances()


@balances_router.get("/customers/{customer_id}", response_model=CustomerBalance)
def get_customer_balance(customer_id: UUID, db: db_dependency, tenant_id: TenantId):
    return BalanceService(db, tenant_id).calculate_customer_balance(customer_id)


@balances_router.get("/customers/{customer_id}/ledger", response_model=CustomerLedger)
def get_customer_ledger(
    customer_id: UUID,
    db: db_dependency,
    tenant_id: TenantId,
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None)
):
    return BalanceService(db, tenant_id).build_customer_ledger(customer_id, date_from, date_to)


@balances_router.post("/customers/{customer_id}/recalculate", response_model=CustomerStats)
def recalculate_customer_stats(customer_id: UUID, db: db_dependency, tenant_id: TenantId):
    return BalanceService(db, tenant_id).recalculate_customer_stats(customer_id)


@balances_router.get("/suppliers", response_model=List[SupplierBalance])
def get_all_supplier_balances(db: db_dependency, tenant_id: TenantId):
    return BalanceService(db, tenant_id).get_all_supplier_balances()


@balances_router.get("/suppliers/{supplier_id}", response_model=SupplierBalance)
def get_supplier_balance(supplier_id: UUID, db: db_dependency, tenant_id: TenantId):
    return BalanceService(db, tenant_id).calculate_supplier_balance(supplier_id)


@balances_router.get("/suppliers/{supplier_id}/ledger", response_model=SupplierLedger)
def get_supplier_ledger(
    supplier_id: UUID,
    db: db_dependency,
    tenant_id: TenantId,
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None)
):
    return BalanceService(db, tenant_id).build_supplier_ledger(supplier_id, date_from, date_to)


@balances_router.get("/purchase-invoices/{invoice_id}/reconcile", response_model=InvoicePayableReconciliation)
def reconcile_invoice_payable(invoice_id: UUID, db: db_dependency, tenant_id: TenantId):
    """Comparar la cuenta por pagar registrada de la factura con lo esperado"""
    return BalanceService(db, tenant_id).reconcile_invoice_payable(invoice_id)
