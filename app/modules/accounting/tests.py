"""
Tests para el módulo de Contabilidad

Cubren:
- Plan de cuentas: inicialización idempotente y creación por código
- Motor de asientos: balance, cuentas inválidas, numeración y atomicidad
- Consistencia de saldos contra las líneas y conciliación
- Reversiones
- Aislamiento entre empresas
"""

import os
import threading
import time

import pytest
from decimal import Decimal
from datetime import datetime
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.database.database import Base, build_engine
from app.common.exceptions import (
    DuplicateAccountError, InvalidAccountError, InvalidOperationError,
    UnbalancedTransactionError
)
from app.modules.accounting.chart import AccountCodes, DEFAULT_CHART_OF_ACCOUNTS
from app.modules.accounting.models import (
    Account, AccountType, Transaction, TransactionKind, balance_delta
)
from app.modules.accounting.schemas import (
    AccountCreate, TransactionCreate, TransactionLineCreate, TransactionFilters
)
from app.modules.accounting.service import AccountService, TransactionService


# ===== FIXTURES =====

@pytest.fixture
def accounts(db_session, tenant_id):
    service = AccountService(db_session, tenant_id)
    service.initialize_chart_of_accounts()
    return service


@pytest.fixture
def engine(db_session, tenant_id, accounts):
    return TransactionService(db_session, tenant_id)


def _line(account, debit=0, credit=0):
    return TransactionLineCreate(
        account_id=account.id,
        debit_amount=Decimal(str(debit)),
        credit_amount=Decimal(str(credit))
    )


# ===== TESTS DE CUENTAS =====

class TestAccountLedger:
    """Tests del plan de cuentas"""

    def test_balance_delta_by_account_type(self):
        assert balance_delta(AccountType.ASSET, Decimal("100"), Decimal("0")) == Decimal("100")
        assert balance_delta(AccountType.EXPENSE, Decimal("0"), Decimal("40")) == Decimal("-40")
        assert balance_delta(AccountType.LIABILITY, Decimal("0"), Decimal("100")) == Decimal("100")
        assert balance_delta(AccountType.REVENUE, Decimal("30"), Decimal("0")) == Decimal("-30")

    def test_initialize_chart_is_idempotent(self, db_session, tenant_id, accounts):
        """Inicializar dos veces no duplica cuentas"""
        accounts.initialize_chart_of_accounts()
        total = db_session.query(Account).filter(Account.tenant_id == tenant_id).count()
        assert total == len(DEFAULT_CHART_OF_ACCOUNTS)

    def test_get_or_create_account_is_idempotent(self, db_session, tenant_id):
        service = AccountService(db_session, tenant_id)
        data = AccountCreate(code="6100", name="Rent", type=AccountType.EXPENSE)
        first = service.get_or_create_account(data)
        second = service.get_or_create_account(data)
        db_session.commit()
        assert first.id == second.id
        assert first.balance == Decimal("0")

    def test_create_account_duplicate_code(self, accounts):
        with pytest.raises(DuplicateAccountError) as exc:
            accounts.create_account(AccountCreate(code=AccountCodes.CASH, name="Caja 2", type=AccountType.ASSET))
        assert exc.value.status_code == 409

    def test_get_or_create_account_recovers_when_lookup_misses_committed_row(
        self, db_session, tenant_id, monkeypatch
    ):
        """La búsqueda previa no ve la cuenta que otra sesión ya confirmó"""
        service = AccountService(db_session, tenant_id)
        data = AccountCreate(code="6200", name="Utilities", type=AccountType.EXPENSE)
        canonical = service.create_account(data)
        pending = service.create_account(
            AccountCreate(code="6300", name="Salaries", type=AccountType.EXPENSE), commit=False
        )

        original_lookup = AccountService.get_account_by_code
        calls = {"count": 0}

        def stale_lookup(self, code):
            calls["count"] += 1
            if calls["count"] <= 2:
                return None
            return original_lookup(self, code)

        monkeypatch.setattr(AccountService, "get_account_by_code", stale_lookup)
        account = service.get_or_create_account(data)
        monkeypatch.undo()

        assert calls["count"] == 3
        assert account.id == canonical.id
        assert db_session.query(Account).filter(
            Account.tenant_id == tenant_id, Account.code == "6200"
        ).count() == 1

        # el savepoint revertido no arrastra el trabajo pendiente de la unidad externa
        db_session.commit()
        assert service.get_account_by_code("6300").id == pending.id

    def test_get_account_by_code_scoped_by_tenant(self, db_session, accounts, other_tenant_id):
        assert accounts.get_account_by_code(AccountCodes.CASH) is not None
        assert AccountService(db_session, other_tenant_id).get_account_by_code(AccountCodes.CASH) is None

    def test_payment_accounts(self, accounts):
        codes = [a.code for a in accounts.get_payment_accounts()]
        assert codes == [AccountCodes.CASH, AccountCodes.BANK]

    def test_ensure_unknown_code_raises(self, accounts):
        with pytest.raises(InvalidAccountError):
            accounts.ensure_account("9999")


# ===== TESTS DEL MOTOR DE ASIENTOS =====

class TestTransactionEngine:
    """Tests de creación de asientos balanceados"""

    def test_balanced_transaction_updates_balances(self, engine, accounts):
        inventory = accounts.get_account_by_code(AccountCodes.INVENTORY)
        payable = accounts.get_account_by_code(AccountCodes.ACCOUNTS_PAYABLE)

        transaction = engine.create_transaction(TransactionCreate(
            description="Compra de mercancía",
            kind=TransactionKind.PURCHASE,
            lines=[_line(inventory, debit=1000), _line(payable, credit=1000)]
        ))

        assert len(transaction.lines) == 2
        assert transaction.total_debit == transaction.total_credit == Decimal("1000")
        assert accounts.get_account(inventory.id).balance == Decimal("1000")
        assert accounts.get_account(payable.id).balance == Decimal("1000")

    def test_unbalanced_transaction_rejected_without_writes(self, db_session, engine, accounts):
        cash = accounts.get_account_by_code(AccountCodes.CASH)
        revenue = accounts.get_account_by_code(AccountCodes.SALES_REVENUE)

        with pytest.raises(UnbalancedTransactionError) as exc:
            engine.create_transaction(TransactionCreate(
                description="Desbalanceado",
                lines=[_line(cash, debit=100), _line(revenue, credit=90)]
            ))

        assert exc.value.category == "client"
        assert db_session.query(Transaction).count() == 0
        assert accounts.get_account(cash.id).balance == Decimal("0")

    def test_tolerance_of_one_cent(self, engine, accounts):
        cash = accounts.get_account_by_code(AccountCodes.CASH)
        revenue = accounts.get_account_by_code(AccountCodes.SALES_REVENUE)
        transaction = engine.create_transaction(TransactionCreate(
            description="Redondeo",
            lines=[_line(cash, debit="100.01"), _line(revenue, credit="100.00")]
        ))
        assert transaction.id is not None

    def test_empty_lines_rejected(self, engine):
        with pytest.raises(UnbalancedTransactionError):
            engine.create_transaction(TransactionCreate(description="Vacío", lines=[]))

    def test_line_with_both_amounts_rejected(self, engine, accounts):
        cash = accounts.get_account_by_code(AccountCodes.CASH)
        with pytest.raises(InvalidAccountError):
            engine.create_transaction(TransactionCreate(
                description="Línea doble",
                lines=[_line(cash, debit=10, credit=10)]
            ))

    def test_line_with_zero_amounts_rejected(self, engine, accounts):
        cash = accounts.get_account_by_code(AccountCodes.CASH)
        revenue = accounts.get_account_by_code(AccountCodes.SALES_REVENUE)
        with pytest.raises(InvalidAccountError):
            engine.create_transaction(TransactionCreate(
                description="Línea vacía",
                lines=[_line(cash, debit=10), _line(revenue, credit=10), _line(revenue)]
            ))

    def test_account_from_other_tenant_is_invalid(self, db_session, engine, accounts, other_tenant_id):
        foreign = AccountService(db_session, other_tenant_id)
        foreign.initialize_chart_of_accounts()
        foreign_cash = foreign.get_account_by_code(AccountCodes.CASH)
        revenue = accounts.get_account_by_code(AccountCodes.SALES_REVENUE)

        with pytest.raises(InvalidAccountError):
            engine.create_transaction(TransactionCreate(
                description="Cuenta ajena",
                lines=[_line(foreign_cash, debit=50), _line(revenue, credit=50)]
            ))

    def test_transaction_numbers_are_sequential_per_year(self, engine):
        when = datetime(2024, 3, 1, 10, 0, 0)
        first = engine.post_entries(
            "Venta 1", [(AccountCodes.CASH, 10, 0), (AccountCodes.SALES_REVENUE, 0, 10)],
            TransactionKind.SALE, commit=True, transaction_date=when
        )
        second = engine.post_entries(
            "Venta 2", [(AccountCodes.CASH, 20, 0), (AccountCodes.SALES_REVENUE, 0, 20)],
            TransactionKind.SALE, commit=True, transaction_date=when
        )
        assert first.transaction_number == "TXN-2024-000001"
        assert second.transaction_number == "TXN-2024-000002"

    def test_numbers_allocated_before_documents_are_written_do_not_repeat(self, db_session, engine):
        """Dos asignaciones en curso, sin asiento insertado todavía, reciben números distintos"""
        when = datetime(2024, 5, 1)
        first = engine.scope.next_number("TXN", when, width=6)
        second = engine.scope.next_number("TXN", when, width=6)
        assert (first, second) == ("TXN-2024-000001", "TXN-2024-000002")

        posted = engine.post_entries(
            "Venta", [(AccountCodes.CASH, 10, 0), (AccountCodes.SALES_REVENUE, 0, 10)],
            TransactionKind.SALE, commit=True, transaction_date=when
        )
        assert posted.transaction_number == "TXN-2024-000003"

    def test_rolled_back_posting_releases_its_number(self, db_session, engine):
        when = datetime(2024, 6, 1)
        entries = [(AccountCodes.CASH, 10, 0), (AccountCodes.SALES_REVENUE, 0, 10)]
        abandoned = engine.post_entries("Venta abandonada", entries, TransactionKind.SALE, transaction_date=when)
        assert abandoned.transaction_number == "TXN-2024-000001"
        db_session.rollback()

        posted = engine.post_entries("Venta", entries, TransactionKind.SALE, commit=True, transaction_date=when)
        assert posted.transaction_number == "TXN-2024-000001"

    def test_numbering_is_independent_per_tenant(self, db_session, engine, other_tenant_id):
        foreign = TransactionService(db_session, other_tenant_id)
        foreign.accounts.initialize_chart_of_accounts()
        when = datetime(2024, 7, 1)
        entries = [(AccountCodes.CASH, 10, 0), (AccountCodes.SALES_REVENUE, 0, 10)]

        engine.post_entries("Venta", entries, TransactionKind.SALE, commit=True, transaction_date=when)
        theirs = foreign.post_entries("Venta", entries, TransactionKind.SALE, commit=True, transaction_date=when)

        assert theirs.transaction_number == "TXN-2024-000001"

    def test_failure_while_applying_balances_rolls_back_everything(self, db_session, engine, accounts, monkeypatch):
        """Si falla la actualización de un saldo no queda nada persistido"""
        cash = accounts.get_account_by_code(AccountCodes.CASH)
        revenue = accounts.get_account_by_code(AccountCodes.SALES_REVENUE)
        original_apply = AccountService.apply_line
        calls = {"count": 0}

        def failing_apply(self, account_id, debit, credit):
            calls["count"] += 1
            if calls["count"] == 2:
                raise SQLAlchemyError("storage failure")
            return original_apply(self, account_id, debit, credit)

        monkeypatch.setattr(AccountService, "apply_line", failing_apply)

        with pytest.raises(SQLAlchemyError):
            engine.create_transaction(TransactionCreate(
                description="Venta fallida",
                lines=[_line(cash, debit=75), _line(revenue, credit=75)]
            ))

        assert db_session.query(Transaction).count() == 0
        assert accounts.get_account(cash.id).balance == Decimal("0")

    def test_post_entries_skips_zero_lines(self, engine):
        transaction = engine.post_entries(
            "Compra pagada",
            [
                (AccountCodes.INVENTORY, 500, 0),
                (AccountCodes.CASH, 0, 500),
                (AccountCodes.ACCOUNTS_PAYABLE, 0, 0),
            ],
            TransactionKind.PURCHASE,
            commit=True
        )
        assert len(transaction.lines) == 2


# ===== TESTS DE CONSISTENCIA Y CONCILIACIÓN =====

class TestBalanceConsistency:
    """El saldo almacenado siempre coincide con las líneas"""

    def test_stored_balance_matches_lines(self, engine, accounts):
        engine.post_entries("A", [(AccountCodes.INVENTORY, 1000, 0), (AccountCodes.ACCOUNTS_PAYABLE, 0, 1000)],
                            TransactionKind.PURCHASE, commit=True)
        engine.post_entries("B", [(AccountCodes.ACCOUNTS_PAYABLE, 300, 0), (AccountCodes.CASH, 0, 300)],
                            TransactionKind.PAYMENT, commit=True)
        engine.post_entries("C", [(AccountCodes.CASH, 800, 0), (AccountCodes.SALES_REVENUE, 0, 800)],
                            TransactionKind.SALE, commit=True)

        for account in accounts.list_accounts():
            assert account.balance == accounts.compute_balance(account)
        assert accounts.verify_balances() == []
        assert accounts.get_account_by_code(AccountCodes.ACCOUNTS_PAYABLE).balance == Decimal("700")
        assert accounts.get_account_by_code(AccountCodes.CASH).balance == Decimal("500")

    def test_verify_and_reconcile_drift(self, db_session, engine, accounts):
        engine.post_entries("A", [(AccountCodes.CASH, 100, 0), (AccountCodes.SALES_REVENUE, 0, 100)],
                            TransactionKind.SALE, commit=True)
        cash = accounts.get_account_by_code(AccountCodes.CASH)
        cash.balance = Decimal("999")
        db_session.commit()

        drift = accounts.verify_balances()
        assert [d.code for d in drift] == [AccountCodes.CASH]
        assert drift[0].computed_balance == Decimal("100")

        repaired = accounts.reconcile_account_balance(cash.id)
        assert repaired.balance == Decimal("100")
        assert accounts.verify_balances() == []


# ===== TESTS DE REVERSIONES =====

class TestReversal:
    """Las correcciones se registran como asientos nuevos"""

    def test_reverse_transaction_restores_balances(self, engine, accounts):
        original = engine.post_entries(
            "Compra", [(AccountCodes.INVENTORY, 400, 0), (AccountCodes.ACCOUNTS_PAYABLE, 0, 400)],
            TransactionKind.PURCHASE, commit=True
        )
        reversal = engine.reverse_transaction(original.id)

        assert reversal.kind == TransactionKind.REVERSAL
        assert reversal.reverses_transaction_id == original.id
        assert accounts.get_account_by_code(AccountCodes.INVENTORY).balance == Decimal("0")
        assert accounts.get_account_by_code(AccountCodes.ACCOUNTS_PAYABLE).balance == Decimal("0")
        # El asiento original no cambia
        assert engine.get_transaction(original.id).total_debit == Decimal("400")

    def test_reverse_twice_rejected(self, engine):
        original = engine.post_entries(
            "Venta", [(AccountCodes.CASH, 10, 0), (AccountCodes.SALES_REVENUE, 0, 10)],
            TransactionKind.SALE, commit=True
        )
        engine.reverse_transaction(original.id)
        with pytest.raises(InvalidOperationError):
            engine.reverse_transaction(original.id)

    def test_list_transactions_by_account(self, engine, accounts):
        engine.post_entries("A", [(AccountCodes.CASH, 10, 0), (AccountCodes.SALES_REVENUE, 0, 10)],
                            TransactionKind.SALE, commit=True)
        engine.post_entries("B", [(AccountCodes.INVENTORY, 10, 0), (AccountCodes.ACCOUNTS_PAYABLE, 0, 10)],
                            TransactionKind.PURCHASE, commit=True)
        cash = accounts.get_account_by_code(AccountCodes.CASH)

        items, total = engine.list_transactions(TransactionFilters(account_id=cash.id))
        assert total == 1
        assert items[0].description == "A"


# ===== TESTS DE API =====

class TestAccountingAPI:
    """Errores estructurados en la capa HTTP"""

    def test_unbalanced_transaction_returns_client_error(self, client, tenant_headers):
        client.post("/accounts/initialize", headers=tenant_headers)
        accounts = client.get("/accounts/", headers=tenant_headers).json()
        by_code = {a["code"]: a["id"] for a in accounts}

        response = client.post("/transactions/", headers=tenant_headers, json={
            "description": "Manual",
            "lines": [
                {"account_id": by_code[AccountCodes.CASH], "debit_amount": "100"},
                {"account_id": by_code[AccountCodes.SALES_REVENUE], "credit_amount": "50"},
            ]
        })

        assert response.status_code == 400
        body = response.json()
        assert body["error"]["code"] == "UNBALANCED_TRANSACTION"
        assert body["error"]["category"] == "client"

    def test_missing_tenant_header(self, client):
        response = client.get("/accounts/")
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "MISSING_TENANT"

    def test_create_and_reverse_via_api(self, client, tenant_headers):
        client.post("/accounts/initialize", headers=tenant_headers)
        by_code = {a["code"]: a["id"] for a in client.get("/accounts/", headers=tenant_headers).json()}

        created = client.post("/transactions/", headers=tenant_headers, json={
            "description": "Aporte de capital",
            "lines": [
                {"account_id": by_code[AccountCodes.BANK], "debit_amount": "5000"},
                {"account_id": by_code[AccountCodes.OWNER_CAPITAL], "credit_amount": "5000"},
            ]
        })
        assert created.status_code == 201
        transaction_id = created.json()["id"]

        reversed_response = client.post(f"/transactions/{transaction_id}/reverse", headers=tenant_headers)
        assert reversed_response.status_code == 201
        assert reversed_response.json()["kind"] == "REVERSAL"


# ===== TESTS DE NUMERACIÓN CONCURRENTE =====

POSTGRES_URL = os.environ.get("TEST_POSTGRES_URL")


@pytest.mark.skipif(not POSTGRES_URL, reason="requiere TEST_POSTGRES_URL (bloqueos de fila reales)")
class TestConcurrentNumbering:
    """Dos sesiones registran asientos antes de que cualquiera confirme"""

    @pytest.fixture
    def session_factory(self, tenant_id):
        engine = build_engine(POSTGRES_URL)
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        setup = factory()
        AccountService(setup, tenant_id).initialize_chart_of_accounts()
        setup.close()
        yield factory
        Base.metadata.drop_all(bind=engine)
        engine.dispose()

    def test_two_sessions_posting_before_either_commits(self, session_factory, tenant_id):
        when = datetime(2025, 2, 1)
        entries = [(AccountCodes.CASH, 10, 0), (AccountCodes.SALES_REVENUE, 0, 10)]
        first_session, second_session = session_factory(), session_factory()
        result = {}

        def post_from_second_session():
            try:
                posted = TransactionService(second_session, tenant_id).post_entries(
                    "Venta B", entries, TransactionKind.SALE, transaction_date=when
                )
                result["number"] = posted.transaction_number
                second_session.commit()
            except Exception as e:
                second_session.rollback()
                result["error"] = e

        try:
            first = TransactionService(first_session, tenant_id).post_entries(
                "Venta A", entries, TransactionKind.SALE, transaction_date=when
            )
            first_number = first.transaction_number

            worker = threading.Thread(target=post_from_second_session)
            worker.start()
            # la segunda sesión queda esperando la fila del contador
            time.sleep(0.5)
            first_session.commit()
            worker.join(timeout=10)

            assert not worker.is_alive()
            assert "error" not in result, result.get("error")
            assert {first_number, result["number"]} == {"TXN-2025-000001", "TXN-2025-000002"}

            check = session_factory()
            numbers = [
                number for (number,) in check.query(Transaction.transaction_number)
                .filter(Transaction.tenant_id == tenant_id).all()
            ]
            check.close()
            assert sorted(numbers) == ["TXN-2025-000001", "TXN-2025-000002"]
        finally:
            first_session.close()
            second_session.close()
