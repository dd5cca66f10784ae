"""
Routers FastAPI para el módulo de Contabilidad

- Plan de cuentas: listado, alta, inicialización, cuentas de pago
- Asientos: registro manual, consulta, listado filtrado y reversión
- Conciliación: verificación de saldos contra líneas
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.dependencies.requestDependencies import TenantId
from app.modules.accounting.models import AccountType, AccountSubtype
from app.modules.accounting.schemas import (
    AccountCreate, AccountOut, AccountBalanceCheck,
    TransactionCreate, TransactionOut, TransactionList, TransactionFilters,
    TransactionReverse
)
from app.modules.accounting.service import AccountService, TransactionService

accounts_router = APIRouter(prefix="/accounts", tags=["Accounting"])
transactions_router = APIRouter(prefix="/transactions", tags=["Accounting"])


# ===== ACCOUNTS ENDPOINTS =====

@accounts_router.get("/", response_model=List[AccountOut])
def list_accounts(
    tenant_id: TenantId,
    type: Optional[AccountType] = Query(None),
    subtype: Optional[AccountSubtype] = Query(None),
    db: Session = Depends(get_db)
):
    """Listar el plan de cuentas"""
    return AccountService(db, tenant_id).list_accounts(type, subtype)


@accounts_router.post("/", response_model=AccountOut, status_code=status.HTTP_201_CREATED)
def create_account(account: AccountCreate, tenant_id: TenantId, db: Session = Depends(get_db)):
    """Crear una cuenta (409 si el código ya existe)"""
    return AccountService(db, tenant_id).create_account(account)


@accounts_router.post("/initialize", response_model=List[AccountOut])
def initialize_chart_of_accounts(tenant_id: TenantId, db: Session = Depends(get_db)):
    """Crear las cuentas del plan por defecto que falten"""
    return AccountService(db, tenant_id).initialize_chart_of_accounts()


@accounts_router.get("/payment-accounts", response_model=List[AccountOut])
def get_payment_accounts(
    tenant_id: TenantId,
    subtype: Optional[AccountSubtype] = Query(None),
    db: Session = Depends(get_db)
):
    """Cuentas de caja y banco"""
    return AccountService(db, tenant_id).get_payment_accounts(subtype)


@accounts_router.get("/verify", response_model=List[AccountBalanceCheck])
def verify_balances(tenant_id: TenantId, db: Session = Depends(get_db)):
    """Cuentas cuyo saldo no coincide con sus líneas"""
    return AccountService(db, tenant_id).verify_balances()


@accounts_router.get("/{account_id}", response_model=AccountOut)
def get_account(account_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    return AccountService(db, tenant_id).get_account(account_id)


# ===== TRANSACTIONS ENDPOINTS =====

@transactions_router.post("/", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def create_transaction(transaction: TransactionCreate, tenant_id: TenantId, db: Session = Depends(get_db)):
    """Registrar un asiento manual balanceado"""
    return TransactionService(db, tenant_id).create_transaction(transaction)


@transactions_router.get("/", response_model=TransactionList)
def list_transactions(
    tenant_id: TenantId,
    filters: TransactionFilters = Depends(),
    db: Session = Depends(get_db)
):
    """Listar asientos con filtros y paginación"""
    items, total = TransactionService(db, tenant_id).list_transactions(filters)
    return TransactionList(items=items, total=total, limit=filters.limit, offset=filters.offset)


@transactions_router.get("/{transaction_id}", response_model=TransactionOut)
def get_transaction(transaction_id: UUID, tenant_id: TenantId, db: Session = Depends(get_db)):
    return TransactionService(db, tenant_id).get_transaction(transaction_id)


@transactions_router.post("/{transaction_id}/reverse", response_model=TransactionOut, status_code=status.HTTP_201_CREATED)
def reverse_transaction(
    transaction_id: UUID,
    tenant_id: TenantId,
    body: Optional[TransactionReverse] = None,
    db: Session = Depends(get_db)
):
    """Revertir un asiento con uno nuevo en sentido contrario"""
    description = body.description if body else None
    return TransactionService(db, tenant_id).reverse_transaction(transaction_id, description)
