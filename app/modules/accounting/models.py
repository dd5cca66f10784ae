"""
Modelos SQLAlchemy para el módulo de Contabilidad

Implementa:
- Account: plan de cuentas por empresa con saldo acumulado
- Transaction: asiento contable inmutable con número único por empresa
- TransactionLine: líneas débito/crédito del asiento

Todas las tablas son multi-tenant. Los asientos nunca se modifican ni se eliminan;
las correcciones se registran como un nuevo asiento (reversión).
"""

from sqlalchemy import (
    Column, String, Text, Integer, Numeric, DateTime, ForeignKey,
    UniqueConstraint, CheckConstraint, Index, Enum, Boolean
)
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from decimal import Decimal
import enum

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


# ===== ENUMS =====

class AccountType(enum.Enum):
    ASSET = "ASSET"
    LIABILITY = "LIABILITY"
    EQUITY = "EQUITY"
    REVENUE = "REVENUE"
    EXPENSE = "EXPENSE"


class AccountSubtype(enum.Enum):
    CASH = "CASH"
    BANK = "BANK"
    RECEIVABLE = "RECEIVABLE"
    PAYABLE = "PAYABLE"
    INVENTORY = "INVENTORY"
    ADVANCE = "ADVANCE"
    OTHER = "OTHER"


class TransactionKind(enum.Enum):
    OPENING_BALANCE = "OPENING_BALANCE"
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    PAYMENT = "PAYMENT"
    RETURN = "RETURN"
    REFUND = "REFUND"
    REVERSAL = "REVERSAL"
    ADJUSTMENT = "ADJUSTMENT"


class PartyType(enum.Enum):
    CUSTOMER = "CUSTOMER"
    SUPPLIER = "SUPPLIER"


# Tipos cuyo saldo crece con el débito
DEBIT_NORMAL_TYPES = (AccountType.ASSET, AccountType.EXPENSE)


def balance_delta(account_type: AccountType, debit: Decimal, credit: Decimal) -> Decimal:
    """Variación de saldo que produce una línea según la naturaleza de la cuenta"""
    debit = debit or Decimal("0")
    credit = credit or Decimal("0")
    if account_type in DEBIT_NORMAL_TYPES:
        return debit - credit
    return credit - debit


# ===== MODELOS =====

class Account(Base, TenantMixin, TimestampMixin):
    """
    Cuenta contable.

    El saldo es un acumulado de todas las líneas que la referencian:
    débitos - créditos para ASSET/EXPENSE, créditos - débitos para el resto.
    Solo se actualiza desde el motor de transacciones.
    """
    __tablename__ = "accounts"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(20), nullable=False)
    name = Column(String(150), nullable=False)
    type = Column(Enum(AccountType), nullable=False)
    subtype = Column(Enum(AccountSubtype), nullable=True)
    balance = Column(Numeric(15, 2), nullable=False, default=0)
    description = Column(Text, nullable=True)
    is_system = Column(Boolean, nullable=False, default=False)

    lines = relationship("TransactionLine", back_populates="account")

    __table_args__ = (
        UniqueConstraint('tenant_id', 'code', name='uq_account_tenant_code'),
        Index('idx_account_tenant_type', 'tenant_id', 'type'),
    )

    @property
    def is_debit_normal(self) -> bool:
        return self.type in DEBIT_NORMAL_TYPES

    def __repr__(self):
        return f"<Account(code={self.code}, name={self.name}, balance={self.balance})>"


class Transaction(Base, TenantMixin, TimestampMixin):
    """
    Asiento contable balanceado.

    Los vínculos a facturas, órdenes, devoluciones y pagos son referencias simples
    (sin llave foránea) para que sobrevivan a la eliminación del documento origen.
    """
    __tablename__ = "transactions"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    transaction_number = Column(String(50), nullable=False)
    transaction_date = Column(DateTime(timezone=True), nullable=False)
    description = Column(String(500), nullable=False)
    kind = Column(Enum(TransactionKind), nullable=False, default=TransactionKind.ADJUSTMENT)

    party_type = Column(Enum(PartyType), nullable=True)
    party_id = Column(UUID(as_uuid=True), nullable=True, index=True)

    purchase_invoice_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    order_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    order_return_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    payment_id = Column(UUID(as_uuid=True), nullable=True, index=True)
    reverses_transaction_id = Column(UUID(as_uuid=True), nullable=True)

    lines = relationship(
        "TransactionLine",
        back_populates="transaction",
        cascade="all, delete-orphan",
        order_by="TransactionLine.position"
    )

    __table_args__ = (
        UniqueConstraint('tenant_id', 'transaction_number', name='uq_transaction_tenant_number'),
        Index('idx_transaction_tenant_date', 'tenant_id', 'transaction_date'),
    )

    @property
    def total_debit(self) -> Decimal:
        return sum((line.debit_amount or Decimal("0") for line in self.lines), Decimal("0"))

    @property
    def total_credit(self) -> Decimal:
        return sum((line.credit_amount or Decimal("0") for line in self.lines), Decimal("0"))


class TransactionLine(Base, TenantMixin):
    """Línea de un asiento: exactamente uno de los dos montos es distinto de cero"""
    __tablename__ = "transaction_lines"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    transaction_id = Column(UUID(as_uuid=True), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(UUID(as_uuid=True), ForeignKey("accounts.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    debit_amount = Column(Numeric(15, 2), nullable=False, default=0)
    credit_amount = Column(Numeric(15, 2), nullable=False, default=0)
    description = Column(String(255), nullable=True)

    transaction = relationship("Transaction", back_populates="lines")
    account = relationship("Account", back_populates="lines")

    __table_args__ = (
        CheckConstraint('debit_amount >= 0', name='check_line_debit_non_negative'),
        CheckConstraint('credit_amount >= 0', name='check_line_credit_non_negative'),
    )
