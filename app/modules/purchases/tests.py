"""
Tests para el módulo de Compras

Cubren el asiento de compra con pago inicial, la unicidad del número de factura
y la eliminación con reversión contable y de inventario.
"""

import pytest
from decimal import Decimal
from pydantic import ValidationError

from app.common.exceptions import ConflictError, NotFoundError
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import Account, Transaction, TransactionKind
from app.modules.contacts.schemas import SupplierCreate
from app.modules.contacts.service import SupplierService
from app.modules.payments.models import Payment, PaymentMethod
from app.modules.products.models import Product
from app.modules.purchases.schemas import PurchaseInvoiceCreate, PurchaseItemCreate
from app.modules.purchases.service import PurchaseService


@pytest.fixture
def supplier(db_session, tenant_id):
    return SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="Hilos del Sur"))


@pytest.fixture
def purchases(db_session, tenant_id):
    return PurchaseService(db_session, tenant_id)


def _invoice(supplier, number="F-001", paid="0", method=PaymentMethod.CASH):
    return PurchaseInvoiceCreate(
        supplier_id=supplier.id,
        invoice_number=number,
        items=[
            PurchaseItemCreate(name="Botón", sku="BOT-1", quantity=100, purchase_price=Decimal("5")),
            PurchaseItemCreate(name="Cierre", sku="CIE-1", quantity=20, purchase_price=Decimal("25")),
        ],
        payment_amount=Decimal(paid),
        payment_method=method
    )


def _balance(db_session, tenant_id, code):
    account = db_session.query(Account).filter(
        Account.tenant_id == tenant_id, Account.code == code
    ).first()
    return account.balance if account else Decimal("0")


class TestPurchaseInvoices:

    def test_partial_payment_posting(self, db_session, tenant_id, purchases, supplier):
        invoice = purchases.create_purchase_invoice(_invoice(supplier, paid="400", method=PaymentMethod.BANK_TRANSFER))

        assert invoice.total_amount == Decimal("1000")
        assert invoice.unpaid_amount == Decimal("600")
        assert _balance(db_session, tenant_id, AccountCodes.INVENTORY) == Decimal("1000")
        assert _balance(db_session, tenant_id, AccountCodes.BANK) == Decimal("-400")
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_PAYABLE) == Decimal("600")

        transaction = db_session.query(Transaction).filter(Transaction.purchase_invoice_id == invoice.id).one()
        assert transaction.kind == TransactionKind.PURCHASE
        assert transaction.total_debit == transaction.total_credit == Decimal("1000")

        payment = db_session.query(Payment).filter(Payment.purchase_invoice_id == invoice.id).one()
        assert payment.amount == Decimal("400")
        assert payment.transaction_id == transaction.id

        quantities = {p.name: p.current_quantity for p in db_session.query(Product).all()}
        assert quantities == {"Botón": 100, "Cierre": 20}

    def test_credit_purchase_has_no_payment(self, db_session, purchases, supplier):
        invoice = purchases.create_purchase_invoice(_invoice(supplier))
        assert invoice.payment_method is None
        assert db_session.query(Payment).count() == 0

    def test_duplicate_invoice_number(self, purchases, supplier):
        purchases.create_purchase_invoice(_invoice(supplier))
        with pytest.raises(ConflictError):
            purchases.create_purchase_invoice(_invoice(supplier, number=" F-001 "))

    def test_payment_cannot_exceed_total(self, supplier):
        with pytest.raises(ValidationError):
            _invoice(supplier, paid="1500")

    def test_delete_reverses_posting_and_stock(self, db_session, tenant_id, purchases, supplier):
        invoice = purchases.create_purchase_invoice(_invoice(supplier, paid="400"))

        result = purchases.delete_purchase_invoice(invoice.id)

        assert result.invoice_number == "F-001"
        assert len(result.reversed_transactions) == 1
        assert result.inventory_reversals == 2
        for code in (AccountCodes.INVENTORY, AccountCodes.CASH, AccountCodes.ACCOUNTS_PAYABLE):
            assert _balance(db_session, tenant_id, code) == Decimal("0")
        assert db_session.query(Payment).count() == 0
        assert all(p.current_quantity == 0 for p in db_session.query(Product).all())

        with pytest.raises(NotFoundError):
            purchases.get_invoice(invoice.id)

    def test_other_tenant_cannot_see_invoice(self, db_session, other_tenant_id, purchases, supplier):
        invoice = purchases.create_purchase_invoice(_invoice(supplier))
        with pytest.raises(NotFoundError):
            PurchaseService(db_session, other_tenant_id).get_invoice(invoice.id)


class TestPurchasesAPI:

    def test_create_and_duplicate(self, client, tenant_headers, supplier):
        payload = {
            "supplier_id": str(supplier.id),
            "invoice_number": "F-900",
            "items": [{"name": "Lino", "quantity": 3, "purchase_price": "150"}],
            "payment_amount": "450"
        }
        response = client.post("/purchase-invoices/", headers=tenant_headers, json=payload)
        assert response.status_code == 201
        assert Decimal(response.json()["unpaid_amount"]) == Decimal("0")

        response = client.post("/purchase-invoices/", headers=tenant_headers, json=payload)
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "CONFLICT"
