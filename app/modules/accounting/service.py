"""
Servicios de negocio para el módulo de Contabilidad

Implementa:
- AccountService: plan de cuentas, creación idempotente por código, aplicación
  atómica de líneas al saldo y conciliación de saldos contra las líneas
- TransactionService: motor de asientos de partida doble (validación, numeración,
  persistencia y actualización de saldos como una sola unidad) y reversiones

Integración con otros módulos:
- Purchases, Payments, Returns, Orders, Contacts: registran sus asientos con
  post_entries() usando los códigos del plan por defecto
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.core.config import settings
from app.common.exceptions import (
    DuplicateAccountError, InvalidAccountError, InvalidOperationError,
    TransactionNumberCollisionError, UnbalancedTransactionError
)
from app.common.tenancy import TenantScopedService
from app.common.validators import to_decimal, round_money, utcnow
from app.modules.accounting.chart import DEFAULT_CHART_OF_ACCOUNTS
from app.modules.accounting.models import (
    Account, AccountSubtype, AccountType, Transaction, TransactionKind,
    TransactionLine, balance_delta
)
from app.modules.accounting.schemas import (
    AccountBalanceCheck, AccountCreate, TransactionCreate, TransactionFilters,
    TransactionLineCreate
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

# (código de cuenta, débito, crédito)
Entry = Tuple[str, Decimal, Decimal]


class AccountService(TenantScopedService):
    """Servicio para el plan de cuentas y sus saldos"""

    def get_account_by_code(self, code: str) -> Optional[Account]:
        return self.scope.query(Account).filter(Account.code == code).first()

    def get_account(self, account_id: UUID) -> Account:
        return self.scope.get(Account, account_id, "Cuenta")

    def list_accounts(
        self,
        account_type: Optional[AccountType] = None,
        subtype: Optional[AccountSubtype] = None
    ) -> List[Account]:
        query = self.scope.query(Account)
        if account_type:
            query = query.filter(Account.type == account_type)
        if subtype:
            query = query.filter(Account.subtype == subtype)
        return query.order_by(Account.code).all()

    def create_account(self, data: AccountCreate, commit: bool = True, is_system: bool = False) -> Account:
        """Crear cuenta con saldo 0. Falla con DuplicateAccountError si el código existe."""
        if self.get_account_by_code(data.code):
            raise DuplicateAccountError(
                f"Ya existe una cuenta con el código {data.code}", account_code=data.code
            )

        account = Account(
            code=data.code,
            name=data.name,
            type=data.type,
            subtype=data.subtype,
            description=data.description,
            balance=ZERO,
            is_system=is_system
        )
        try:
            with self.db.begin_nested():
                self.scope.add(account)
                self.db.flush()
        except IntegrityError as e:
            # Otra sesión creó el mismo código entre la consulta y el insert
            raise DuplicateAccountError(
                f"Ya existe una cuenta con el código {data.code}", account_code=data.code
            ) from e

        if commit:
            self.db.commit()
            self.db.refresh(account)

        logger.info(f"Account created: {account.code} {account.name} (tenant {self.tenant_id})")
        return account

    def get_or_create_account(self, data: AccountCreate, is_system: bool = False) -> Account:
        """
        Obtener la cuenta por código o crearla con saldo 0.

        No confirma la sesión: la cuenta se persiste junto con el asiento que la
        necesita. Si dos creadores compiten, el perdedor vuelve a leer la fila canónica.
        """
        account = self.get_account_by_code(data.code)
        if account:
            return account
        try:
            return self.create_account(data, commit=False, is_system=is_system)
        except DuplicateAccountError:
            account = self.get_account_by_code(data.code)
            if account is None:
                raise
            logger.info(f"Account {data.code} created concurrently, using existing row")
            return account

    def ensure_account(self, code: str) -> Account:
        """Cuenta del plan por defecto, creada bajo demanda"""
        account = self.get_account_by_code(code)
        if account:
            return account
        if code not in DEFAULT_CHART_OF_ACCOUNTS:
            raise InvalidAccountError(f"La cuenta {code} no existe", account_code=code)
        name, account_type, subtype = DEFAULT_CHART_OF_ACCOUNTS[code]
        return self.get_or_create_account(
            AccountCreate(code=code, name=name, type=account_type, subtype=subtype),
            is_system=True
        )

    def initialize_chart_of_accounts(self, commit: bool = True) -> List[Account]:
        """Crear las cuentas del plan por defecto que falten (idempotente)"""
        accounts = [self.ensure_account(code) for code in DEFAULT_CHART_OF_ACCOUNTS]
        if commit:
            self.db.commit()
        logger.info(f"Chart of accounts initialized for tenant {self.tenant_id} ({len(accounts)} accounts)")
        return accounts

    def get_payment_accounts(self, subtype: Optional[AccountSubtype] = None) -> List[Account]:
        """Cuentas de caja y banco disponibles para pagos"""
        subtypes = [subtype] if subtype else [AccountSubtype.CASH, AccountSubtype.BANK]
        return self.scope.query(Account).filter(
            Account.subtype.in_(subtypes)
        ).order_by(Account.code).all()

    def apply_line(self, account_id: UUID, debit: Decimal, credit: Decimal) -> Decimal:
        """
        Aplicar una línea al saldo de la cuenta.

        Usa un UPDATE ... SET balance = balance + :delta para que dos asientos
        concurrentes sobre la misma cuenta no pierdan actualizaciones. Solo debe
        invocarse dentro de la unidad de trabajo del asiento.
        """
        account_type = self.scope.query(Account, Account.type).filter(Account.id == account_id).scalar()
        if account_type is None:
            raise InvalidAccountError("Cuenta no encontrada", account_id=account_id)

        delta = balance_delta(account_type, to_decimal(debit), to_decimal(credit))
        if delta == ZERO:
            return delta

        self.db.execute(
            update(Account)
            .where(Account.id == account_id, Account.tenant_id == self.tenant_id)
            .values(balance=Account.balance + delta)
            .execution_options(synchronize_session="fetch")
        )
        return delta

    def compute_balance(self, account: Account) -> Decimal:
        """Saldo recalculado desde todas las líneas de la cuenta"""
        debit, credit = self.scope.query(
            TransactionLine,
            func.coalesce(func.sum(TransactionLine.debit_amount), 0),
            func.coalesce(func.sum(TransactionLine.credit_amount), 0)
        ).filter(TransactionLine.account_id == account.id).one()
        return round_money(balance_delta(account.type, to_decimal(debit), to_decimal(credit)))

    def verify_balances(self) -> List[AccountBalanceCheck]:
        """Cuentas cuyo saldo almacenado no coincide con sus líneas"""
        drifting = []
        for account in self.list_accounts():
            computed = self.compute_balance(account)
            stored = round_money(account.balance)
            if stored != computed:
                logger.warning(
                    f"Balance drift on account {account.code}: stored={stored} computed={computed}"
                )
                drifting.append(AccountBalanceCheck(
                    account_id=account.id,
                    code=account.code,
                    stored_balance=stored,
                    computed_balance=computed,
                    drift=stored - computed
                ))
        return drifting

    def reconcile_account_balance(self, account_id: UUID) -> Account:
        """Reescribir el saldo almacenado con el recalculado desde las líneas"""
        account = self.get_account(account_id)
        computed = self.compute_balance(account)
        if round_money(account.balance) != computed:
            logger.warning(f"Repairing balance of account {account.code}: {account.balance} -> {computed}")
            account.balance = computed
            self.db.commit()
            self.db.refresh(account)
        return account


class TransactionService(TenantScopedService):
    """Motor de asientos de partida doble"""

    def __init__(self, db, tenant_id: UUID):
        super().__init__(db, tenant_id)
        self.accounts = AccountService(db, tenant_id)

    # ----- validación -----

    def _validate_lines(self, lines: Sequence[TransactionLineCreate]) -> None:
        if not lines:
            raise UnbalancedTransactionError("El asiento no tiene líneas")

        total_debit = ZERO
        total_credit = ZERO
        for index, line in enumerate(lines, start=1):
            if line.account_id is None:
                raise InvalidAccountError(f"La línea {index} no tiene cuenta")
            debit = to_decimal(line.debit_amount)
            credit = to_decimal(line.credit_amount)
            if debit < ZERO or credit < ZERO:
                raise InvalidAccountError(f"La línea {index} tiene montos negativos")
            if (debit > ZERO) == (credit > ZERO):
                raise InvalidAccountError(
                    f"La línea {index} debe tener exactamente un monto (débito o crédito) distinto de cero"
                )
            total_debit += debit
            total_credit += credit

        if abs(total_debit - total_credit) > settings.BALANCE_TOLERANCE:
            raise UnbalancedTransactionError(
                f"Débitos ({total_debit}) y créditos ({total_credit}) no cuadran",
                total_debit=total_debit,
                total_credit=total_credit
            )

    def _resolve_accounts(self, lines: Sequence[TransactionLineCreate]) -> Dict[UUID, Account]:
        account_ids = {line.account_id for line in lines}
        found = {
            account.id: account
            for account in self.scope.query(Account).filter(Account.id.in_(account_ids)).all()
        }
        missing = account_ids - set(found)
        if missing:
            raise InvalidAccountError(
                "Cuenta(s) no encontrada(s) en la empresa",
                account_ids=", ".join(sorted(str(m) for m in missing))
            )
        return found

    def _next_transaction_number(self, when: datetime) -> str:
        return self.scope.next_number(settings.TRANSACTION_NUMBER_PREFIX, when, width=6)

    # ----- escritura -----

    def create_transaction(self, data: TransactionCreate, commit: bool = True) -> Transaction:
        """
        Registrar un asiento balanceado y actualizar los saldos de sus cuentas.

        Todo o nada: si falla cualquier línea o actualización de saldo se revierte
        la sesión completa. Con commit=False el llamador agrupa el asiento con sus
        propias escrituras y confirma al final.
        """
        self._validate_lines(data.lines)
        self._resolve_accounts(data.lines)

        when = data.transaction_date or utcnow()
        transaction_number = self._next_transaction_number(when)

        transaction = Transaction(
            transaction_number=transaction_number,
            transaction_date=when,
            description=data.description[:500],
            kind=data.kind,
            party_type=data.party_type,
            party_id=data.party_id,
            purchase_invoice_id=data.purchase_invoice_id,
            order_id=data.order_id,
            order_return_id=data.order_return_id,
            payment_id=data.payment_id
        )
        for position, line in enumerate(data.lines):
            transaction.lines.append(TransactionLine(
                tenant_id=self.tenant_id,
                account_id=line.account_id,
                position=position,
                debit_amount=to_decimal(line.debit_amount),
                credit_amount=to_decimal(line.credit_amount),
                description=line.description
            ))
        self.scope.add(transaction)

        try:
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            if "transaction_number" in str(e.orig) or "uq_transaction_tenant_number" in str(e.orig):
                logger.error(f"Transaction number collision: {transaction_number} (tenant {self.tenant_id})")
                raise TransactionNumberCollisionError(
                    f"El número de asiento {transaction_number} ya existe",
                    transaction_number=transaction_number
                ) from e
            raise

        try:
            for line in transaction.lines:
                self.accounts.apply_line(line.account_id, line.debit_amount, line.credit_amount)
            if commit:
                self.db.commit()
                self.db.refresh(transaction)
        except SQLAlchemyError:
            self.db.rollback()
            raise

        logger.info(
            f"Transaction {transaction_number} posted: {data.description} "
            f"({transaction.total_debit} / {len(data.lines)} lines)"
        )
        return transaction

    def post_entries(
        self,
        description: str,
        entries: Sequence[Entry],
        kind: TransactionKind,
        commit: bool = False,
        **links
    ) -> Transaction:
        """
        Registrar un asiento a partir de códigos del plan de cuentas.

        Las líneas en cero se omiten; las cuentas se crean bajo demanda.
        ``links`` acepta los campos opcionales de TransactionCreate
        (transaction_date, party_type, party_id, purchase_invoice_id, ...).
        """
        lines = []
        for code, debit, credit in entries:
            debit = round_money(debit)
            credit = round_money(credit)
            if debit == ZERO and credit == ZERO:
                continue
            account = self.accounts.ensure_account(code)
            lines.append(TransactionLineCreate(
                account_id=account.id, debit_amount=debit, credit_amount=credit
            ))
        data = TransactionCreate(description=description, kind=kind, lines=lines, **links)
        return self.create_transaction(data, commit=commit)

    def reverse_transaction(
        self,
        transaction_id: UUID,
        description: Optional[str] = None,
        commit: bool = True
    ) -> Transaction:
        """Registrar un asiento espejo (débitos y créditos intercambiados)"""
        original = self.get_transaction(transaction_id)
        already_reversed = self.scope.query(Transaction).filter(
            Transaction.reverses_transaction_id == original.id
        ).first()
        if already_reversed:
            raise InvalidOperationError(
                f"El asiento {original.transaction_number} ya fue revertido por {already_reversed.transaction_number}"
            )

        lines = [
            TransactionLineCreate(
                account_id=line.account_id,
                debit_amount=line.credit_amount,
                credit_amount=line.debit_amount,
                description=line.description
            )
            for line in original.lines
        ]
        data = TransactionCreate(
            description=description or f"Reversal of {original.transaction_number}: {original.description}",
            kind=TransactionKind.REVERSAL,
            party_type=original.party_type,
            party_id=original.party_id,
            purchase_invoice_id=original.purchase_invoice_id,
            order_id=original.order_id,
            order_return_id=original.order_return_id,
            payment_id=original.payment_id,
            lines=lines
        )
        reversal = self.create_transaction(data, commit=False)
        reversal.reverses_transaction_id = original.id
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(reversal)
        logger.info(f"Transaction {original.transaction_number} reversed by {reversal.transaction_number}")
        return reversal

    # ----- lectura -----

    def get_transaction(self, transaction_id: UUID) -> Transaction:
        return self.scope.get(Transaction, transaction_id, "Asiento")

    def list_transactions(self, filters: TransactionFilters) -> Tuple[List[Transaction], int]:
        query = self.scope.query(Transaction)

        if filters.date_from:
            query = query.filter(Transaction.transaction_date >= filters.date_from)
        if filters.date_to:
            query = query.filter(Transaction.transaction_date <= filters.date_to)
        if filters.kind:
            query = query.filter(Transaction.kind == filters.kind)
        if filters.account_id:
            query = query.filter(Transaction.lines.any(TransactionLine.account_id == filters.account_id))
        for field in ("purchase_invoice_id", "order_id", "order_return_id", "payment_id"):
            value = getattr(filters, field)
            if value:
                query = query.filter(getattr(Transaction, field) == value)

        total = query.count()
        items = query.order_by(
            Transaction.transaction_date.desc(), Transaction.transaction_number.desc()
        ).offset(filters.offset).limit(filters.limit).all()
        return items, total
