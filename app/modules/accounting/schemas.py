"""
Esquemas Pydantic para el módulo de Contabilidad

- Accounts: alta y consulta del plan de cuentas
- Transactions: asientos con sus líneas débito/crédito
- Verificación de saldos (conciliación)

El balance de los asientos no se valida aquí sino en el servicio, que es la
única puerta de entrada para los flujos internos (compras, pagos, devoluciones).
"""

from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import datetime

from app.modules.accounting.models import AccountType, AccountSubtype, TransactionKind, PartyType


# ===== ACCOUNT SCHEMAS =====

class AccountCreate(BaseModel):
    code: str = Field(..., min_length=1, max_length=20, description="Código único de la cuenta")
    name: str = Field(..., min_length=1, max_length=150)
    type: AccountType
    subtype: Optional[AccountSubtype] = None
    description: Optional[str] = None

    @field_validator("code")
    @classmethod
    def strip_code(cls, v):
        return v.strip()


class AccountOut(BaseModel):
    id: UUID
    code: str
    name: str
    type: AccountType
    subtype: Optional[AccountSubtype] = None
    balance: Decimal
    is_system: bool

    class Config:
        from_attributes = True


class AccountBalanceCheck(BaseModel):
    account_id: UUID
    code: str
    stored_balance: Decimal
    computed_balance: Decimal
    drift: Decimal


# ===== TRANSACTION SCHEMAS =====

class TransactionLineCreate(BaseModel):
    account_id: Optional[UUID] = None
    debit_amount: Decimal = Field(default=Decimal("0"))
    credit_amount: Decimal = Field(default=Decimal("0"))
    description: Optional[str] = Field(None, max_length=255)


class TransactionCreate(BaseModel):
    description: str = Field(..., min_length=1, max_length=500)
    transaction_date: Optional[datetime] = None
    kind: TransactionKind = TransactionKind.ADJUSTMENT
    party_type: Optional[PartyType] = None
    party_id: Optional[UUID] = None
    purchase_invoice_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    order_return_id: Optional[UUID] = None
    payment_id: Optional[UUID] = None
    lines: List[TransactionLineCreate] = Field(default_factory=list)


class TransactionLineOut(BaseModel):
    id: UUID
    account_id: UUID
    position: int
    debit_amount: Decimal
    credit_amount: Decimal
    description: Optional[str] = None

    class Config:
        from_attributes = True


class TransactionOut(BaseModel):
    id: UUID
    transaction_number: str
    transaction_date: datetime
    description: str
    kind: TransactionKind
    party_type: Optional[PartyType] = None
    party_id: Optional[UUID] = None
    purchase_invoice_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    order_return_id: Optional[UUID] = None
    payment_id: Optional[UUID] = None
    reverses_transaction_id: Optional[UUID] = None
    lines: List[TransactionLineOut] = []

    class Config:
        from_attributes = True


class TransactionList(BaseModel):
    items: List[TransactionOut]
    total: int
    limit: int
    offset: int


class TransactionFilters(BaseModel):
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    account_id: Optional[UUID] = None
    kind: Optional[TransactionKind] = None
    purchase_invoice_id: Optional[UUID] = None
    order_id: Optional[UUID] = None
    order_return_id: Optional[UUID] = None
    payment_id: Optional[UUID] = None
    limit: int = Field(default=20, ge=1, le=100)
    offset: int = Field(default=0, ge=0)


class TransactionReverse(BaseModel):
    description: Optional[str] = Field(None, max_length=500)
