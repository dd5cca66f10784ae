"""
Tests para el módulo de Pagos
"""

import pytest
from decimal import Decimal
from pydantic import ValidationError

from app.common.exceptions import InvalidAccountError, InvalidOperationError
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import Account, Transaction
from app.modules.contacts.schemas import CustomerCreate, SupplierCreate
from app.modules.contacts.service import CustomerService, SupplierService
from app.modules.orders.schemas import OrderCreate, OrderItemCreate
from app.modules.orders.service import OrderService
from app.modules.payments.models import PaymentMethod, PaymentType
from app.modules.payments.schemas import CustomerPaymentCreate, SupplierPaymentCreate
from app.modules.payments.service import PaymentService
from app.modules.products.models import Product
from app.modules.purchases.schemas import PurchaseInvoiceCreate, PurchaseItemCreate
from app.modules.purchases.service import PurchaseService


@pytest.fixture
def payments(db_session, tenant_id):
    return PaymentService(db_session, tenant_id)


@pytest.fixture
def customer(db_session, tenant_id):
    return CustomerService(db_session, tenant_id).create_customer(
        CustomerCreate(name="Nadia", phone_number="03001112222")
    )


@pytest.fixture
def supplier(db_session, tenant_id):
    return SupplierService(db_session, tenant_id).create_supplier(
        SupplierCreate(name="Algodones SA", opening_balance=Decimal("-1000"))
    )


def _balance(db_session, tenant_id, code):
    account = db_session.query(Account).filter(
        Account.tenant_id == tenant_id, Account.code == code
    ).first()
    return account.balance if account else Decimal("0")


# ===== CLIENTES =====

class TestCustomerPayments:

    def test_payment_against_order(self, db_session, tenant_id, payments, customer):
        product = Product(tenant_id=tenant_id, name="Pañuelo", current_quantity=5, current_retail_price=Decimal("250"))
        db_session.add(product)
        db_session.commit()
        order = OrderService(db_session, tenant_id).create_order(OrderCreate(
            customer_id=customer.id,
            items=[OrderItemCreate(product_id=product.id, quantity=2)],
            shipping_charges=Decimal("0")
        ))

        payment = payments.record_customer_payment(CustomerPaymentCreate(
            customer_id=customer.id, order_id=order.id, amount=Decimal("300"),
            payment_method=PaymentMethod.BANK_TRANSFER
        ))

        assert payment.type == PaymentType.CUSTOMER_PAYMENT
        assert payment.payment_number.startswith("PAY-")
        db_session.refresh(order)
        assert order.payment_amount == Decimal("300")
        assert _balance(db_session, tenant_id, AccountCodes.BANK) == Decimal("300")
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_RECEIVABLE) == Decimal("-300")

        transaction = db_session.get(Transaction, payment.transaction_id)
        assert transaction.payment_id == payment.id
        assert transaction.order_id == order.id

    def test_advance_payment(self, db_session, tenant_id, payments, customer):
        payments.record_customer_payment(CustomerPaymentCreate(
            customer_id=customer.id, amount=Decimal("800"), is_advance=True
        ))

        db_session.refresh(customer)
        assert customer.advance_balance == Decimal("800")
        assert _balance(db_session, tenant_id, AccountCodes.CASH) == Decimal("800")
        assert _balance(db_session, tenant_id, AccountCodes.CUSTOMER_ADVANCE) == Decimal("-800")

    def test_advance_cannot_target_order(self, customer):
        with pytest.raises(ValidationError):
            CustomerPaymentCreate(customer_id=customer.id, order_id=customer.id, amount=Decimal("1"), is_advance=True)

    def test_payment_numbers_are_sequential(self, payments, customer):
        first = payments.record_customer_payment(CustomerPaymentCreate(customer_id=customer.id, amount=Decimal("10")))
        second = payments.record_customer_payment(CustomerPaymentCreate(customer_id=customer.id, amount=Decimal("10")))
        assert int(second.payment_number.rsplit("-", 1)[1]) == int(first.payment_number.rsplit("-", 1)[1]) + 1

    def test_account_must_be_cash_or_bank(self, payments, customer):
        revenue = payments.transactions.accounts.ensure_account(AccountCodes.SALES_REVENUE)
        with pytest.raises(InvalidAccountError):
            payments.record_customer_payment(CustomerPaymentCreate(
                customer_id=customer.id, amount=Decimal("10"), account_id=revenue.id
            ))


# ===== PROVEEDORES =====

class TestSupplierPayments:

    def test_payment_with_advance(self, db_session, tenant_id, payments, supplier):
        invoice = PurchaseService(db_session, tenant_id).create_purchase_invoice(PurchaseInvoiceCreate(
            supplier_id=supplier.id,
            invoice_number="A-1",
            items=[PurchaseItemCreate(name="Algodón", quantity=10, purchase_price=Decimal("200"))]
        ))

        payment = payments.record_supplier_payment(SupplierPaymentCreate(
            supplier_id=supplier.id, purchase_invoice_id=invoice.id,
            amount=Decimal("1200"), advance_used=Decimal("800")
        ))

        assert payment.total_settled == Decimal("2000")
        db_session.refresh(supplier)
        db_session.refresh(invoice)
        assert supplier.advance_balance == Decimal("200")
        assert invoice.unpaid_amount == Decimal("0")
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_PAYABLE) == Decimal("0")
        assert _balance(db_session, tenant_id, AccountCodes.SUPPLIER_ADVANCE) == Decimal("200")

        transaction = db_session.get(Transaction, payment.transaction_id)
        assert "Advance Used: 800" in transaction.description
        assert transaction.total_debit == transaction.total_credit == Decimal("2000")

    def test_advance_cannot_exceed_available(self, payments, supplier):
        with pytest.raises(InvalidOperationError):
            payments.record_supplier_payment(SupplierPaymentCreate(
                supplier_id=supplier.id, advance_used=Decimal("1500"), payment_method=PaymentMethod.ADVANCE
            ))

    def test_invoice_of_other_supplier(self, db_session, tenant_id, payments, supplier):
        other = SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="Otro"))
        invoice = PurchaseService(db_session, tenant_id).create_purchase_invoice(PurchaseInvoiceCreate(
            supplier_id=other.id,
            invoice_number="B-1",
            items=[PurchaseItemCreate(name="Seda", quantity=1, purchase_price=Decimal("100"))]
        ))
        with pytest.raises(InvalidOperationError):
            payments.record_supplier_payment(SupplierPaymentCreate(
                supplier_id=supplier.id, purchase_invoice_id=invoice.id, amount=Decimal("100")
            ))

    def test_empty_payment_rejected(self, supplier):
        with pytest.raises(ValidationError):
            SupplierPaymentCreate(supplier_id=supplier.id)


class TestPaymentsAPI:

    def test_record_and_list(self, client, tenant_headers, customer):
        response = client.post("/payments/customer", headers=tenant_headers, json={
            "customer_id": str(customer.id), "amount": "150"
        })
        assert response.status_code == 201

        response = client.get("/payments/", headers=tenant_headers, params={"customer_id": str(customer.id)})
        assert response.status_code == 200
        assert response.json()["total"] == 1
