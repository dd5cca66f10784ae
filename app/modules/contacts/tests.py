"""
Tests para el módulo de Contactos

Cubren:
- Alta de clientes con saldo por cobrar o anticipo y su asiento de saldo inicial
- Alta de proveedores con saldo positivo (por pagar) o negativo (anticipo)
- Búsqueda o creación de clientes por teléfono
- Unicidad por empresa y aislamiento entre empresas
"""

import pytest
from decimal import Decimal

from app.common.exceptions import ConflictError, NotFoundError
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import Account, PartyType, Transaction, TransactionKind
from app.modules.contacts.schemas import CustomerCreate, SupplierCreate
from app.modules.contacts.service import CustomerService, SupplierService


# ===== FIXTURES =====

@pytest.fixture
def customers(db_session, tenant_id):
    return CustomerService(db_session, tenant_id)


@pytest.fixture
def suppliers(db_session, tenant_id):
    return SupplierService(db_session, tenant_id)


def _balance(db_session, tenant_id, code):
    account = db_session.query(Account).filter(
        Account.tenant_id == tenant_id, Account.code == code
    ).one()
    return account.balance


# ===== TESTS DE CLIENTES =====

class TestCustomers:

    def test_create_customer_without_opening(self, db_session, customers):
        customer = customers.create_customer(CustomerCreate(name="Ana", phone_number="0300 1234567"))
        assert customer.phone_number == "03001234567"
        assert customer.total_orders == 0
        assert db_session.query(Transaction).count() == 0

    def test_customer_opening_receivable(self, db_session, tenant_id, customers):
        customer = customers.create_customer(CustomerCreate(
            name="Bilal", phone_number="03001111111", opening_balance=Decimal("750")
        ))

        transaction = customers.get_opening_transaction(customer)
        assert transaction.kind == TransactionKind.OPENING_BALANCE
        assert transaction.party_type == PartyType.CUSTOMER
        assert transaction.description == "Customer Opening Balance - Bilal"
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_RECEIVABLE) == Decimal("750")
        assert _balance(db_session, tenant_id, AccountCodes.OPENING_BALANCE) == Decimal("750")

    def test_customer_opening_advance(self, db_session, tenant_id, customers):
        customer = customers.create_customer(CustomerCreate(
            phone_number="03002222222", advance_balance=Decimal("300")
        ))

        assert customer.advance_balance == Decimal("300")
        transaction = customers.get_opening_transaction(customer)
        assert transaction.description == "Customer Opening Balance - 03002222222"
        assert _balance(db_session, tenant_id, AccountCodes.CUSTOMER_ADVANCE) == Decimal("300")

    def test_receivable_and_advance_rejected(self):
        with pytest.raises(ValueError):
            CustomerCreate(phone_number="03003333333", opening_balance=1, advance_balance=1)

    def test_duplicate_phone(self, customers):
        customers.create_customer(CustomerCreate(phone_number="03004444444"))
        with pytest.raises(ConflictError):
            customers.create_customer(CustomerCreate(phone_number="03004444444"))

    def test_find_or_create_by_phone(self, db_session, customers):
        first = customers.find_or_create_customer("03005555555", city="Lahore")
        db_session.commit()
        second = customers.find_or_create_customer("03005555555", name="Sara")

        assert first.id == second.id
        assert second.name == "Sara"

    def test_same_phone_in_other_tenant(self, db_session, customers, other_tenant_id):
        customers.create_customer(CustomerCreate(phone_number="03006666666"))
        other = CustomerService(db_session, other_tenant_id).create_customer(
            CustomerCreate(phone_number="03006666666")
        )
        assert other.tenant_id == other_tenant_id

    def test_get_customer_of_other_tenant(self, db_session, customers, other_tenant_id):
        customer = customers.create_customer(CustomerCreate(phone_number="03007777777"))
        with pytest.raises(NotFoundError):
            CustomerService(db_session, other_tenant_id).get_customer(customer.id)


# ===== TESTS DE PROVEEDORES =====

class TestSuppliers:

    def test_supplier_owed_balance(self, db_session, tenant_id, suppliers):
        supplier = suppliers.create_supplier(SupplierCreate(name="Mills Co", opening_balance=Decimal("1200")))

        transaction = db_session.query(Transaction).filter(Transaction.party_id == supplier.id).one()
        assert transaction.description == "Supplier Opening Balance - Mills Co"
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_PAYABLE) == Decimal("1200")
        assert supplier.advance_balance == Decimal("0")

    def test_supplier_advance_balance(self, db_session, tenant_id, suppliers):
        supplier = suppliers.create_supplier(SupplierCreate(name="Dyes Ltd", opening_balance=Decimal("-400")))

        assert supplier.advance_balance == Decimal("400")
        assert _balance(db_session, tenant_id, AccountCodes.SUPPLIER_ADVANCE) == Decimal("400")
        assert _balance(db_session, tenant_id, AccountCodes.OPENING_BALANCE) == Decimal("400")

    def test_duplicate_supplier_name(self, suppliers):
        suppliers.create_supplier(SupplierCreate(name="Same"))
        with pytest.raises(ConflictError):
            suppliers.create_supplier(SupplierCreate(name="same"))


class TestContactsAPI:

    def test_create_and_list_customers(self, client, tenant_headers):
        response = client.post("/customers/", headers=tenant_headers, json={
            "name": "Zara", "phone_number": "03008888888", "opening_balance": "100"
        })
        assert response.status_code == 201

        response = client.get("/customers/", headers=tenant_headers, params={"search": "zar"})
        assert response.status_code == 200
        assert response.json()["total"] == 1

    def test_duplicate_supplier_conflict(self, client, tenant_headers):
        client.post("/suppliers/", headers=tenant_headers, json={"name": "Acme"})
        response = client.post("/suppliers/", headers=tenant_headers, json={"name": "Acme"})
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"
