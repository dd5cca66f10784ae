"""
Tests para el servicio de Saldos

Cubren:
- Ledger de clientes con y sin asiento de saldo inicial (sin doble conteo de anticipos)
- Ventana de fechas y cierre = apertura + débitos - créditos
- Ledger de proveedores: compras, devoluciones, pagos y anticipos
- Recálculo idempotente de acumulados del cliente
- Resumen general y conciliación de cuentas por pagar por factura
"""

import pytest
from decimal import Decimal
from datetime import datetime, timedelta, timezone

from app.common.exceptions import InvalidOperationError, NotFoundError
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import TransactionKind
from app.modules.accounting.service import TransactionService
from app.modules.balances.service import BalanceService
from app.modules.contacts.models import Customer
from app.modules.contacts.schemas import CustomerCreate, SupplierCreate
from app.modules.contacts.service import CustomerService, SupplierService
from app.modules.orders.schemas import OrderCreate, OrderItemCreate
from app.modules.orders.service import OrderService
from app.modules.payments.schemas import CustomerPaymentCreate, SupplierPaymentCreate
from app.modules.payments.service import PaymentService
from app.modules.products.models import Product
from app.modules.purchases.schemas import PurchaseInvoiceCreate, PurchaseItemCreate
from app.modules.purchases.service import PurchaseService
from app.modules.returns.models import SettlementMethod
from app.modules.returns.schemas import ReturnItemCreate, SupplierReturnCreate
from app.modules.returns.service import ReturnService


BASE_DATE = datetime(2025, 3, 1, 10, 0, tzinfo=timezone.utc)


# ===== FIXTURES =====

@pytest.fixture
def balances(db_session, tenant_id):
    return BalanceService(db_session, tenant_id)


@pytest.fixture
def bag(db_session, tenant_id):
    product = Product(
        tenant_id=tenant_id,
        name="Bolso",
        current_quantity=50,
        last_purchase_price=Decimal("400"),
        current_retail_price=Decimal("800")
    )
    db_session.add(product)
    db_session.commit()
    return product


def _confirmed_order(db_session, tenant_id, customer, product, day=0, quantity=1, shipping="0"):
    orders = OrderService(db_session, tenant_id)
    order = orders.create_order(OrderCreate(
        customer_id=customer.id,
        order_date=BASE_DATE + timedelta(days=day),
        items=[OrderItemCreate(product_id=product.id, quantity=quantity)],
        shipping_charges=Decimal(shipping)
    ))
    return orders.confirm_order(order.id)


def _customer_payment(db_session, tenant_id, customer, amount, day, order=None, is_advance=False):
    return PaymentService(db_session, tenant_id).record_customer_payment(CustomerPaymentCreate(
        customer_id=customer.id,
        order_id=order.id if order else None,
        amount=Decimal(amount),
        payment_date=BASE_DATE + timedelta(days=day),
        is_advance=is_advance
    ))


def _purchase(db_session, tenant_id, supplier, number, quantity, price, paid="0", day=0):
    return PurchaseService(db_session, tenant_id).create_purchase_invoice(PurchaseInvoiceCreate(
        supplier_id=supplier.id,
        invoice_number=number,
        invoice_date=BASE_DATE + timedelta(days=day),
        items=[PurchaseItemCreate(name="Tela", sku="TEL-1", quantity=quantity, purchase_price=Decimal(price))],
        payment_amount=Decimal(paid)
    ))


# ===== TESTS DE CLIENTES =====

class TestCustomerLedger:

    def test_advance_without_opening_transaction_is_not_counted_twice(self, db_session, tenant_id, balances, bag):
        customer = Customer(
            tenant_id=tenant_id, name="Hina", phone_number="03001230000", advance_balance=Decimal("500")
        )
        db_session.add(customer)
        db_session.commit()

        order = _confirmed_order(db_session, tenant_id, customer, bag, day=1)
        _customer_payment(db_session, tenant_id, customer, "300", day=2, order=order)

        ledger = balances.build_customer_ledger(customer.id)
        assert not ledger.has_opening_transaction
        assert [row.balance for row in ledger.rows] == [Decimal("800"), Decimal("500")]
        assert ledger.summary.closing_balance == Decimal("500")

        balance = balances.calculate_customer_balance(customer.id)
        assert balance.opening_ar_balance == Decimal("0")
        assert balance.opening_advance_balance == Decimal("500")
        assert balance.net_balance == Decimal("500")
        assert balance.total_pending == Decimal("500")

    def test_explicit_opening_receivable(self, db_session, tenant_id, balances, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(CustomerCreate(
            name="Omar", phone_number="03002220000",
            opening_balance=Decimal("750"), opening_balance_date=BASE_DATE
        ))
        _confirmed_order(db_session, tenant_id, customer, bag, day=1)

        ledger = balances.build_customer_ledger(customer.id)
        assert ledger.has_opening_transaction
        assert ledger.rows[0].type.value == "OPENING"
        assert ledger.summary.opening_balance == Decimal("750")
        assert ledger.summary.closing_balance == Decimal("1550")

    def test_explicit_opening_advance(self, db_session, tenant_id, balances, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(CustomerCreate(
            name="Zara", phone_number="03003330000",
            advance_balance=Decimal("200"), opening_balance_date=BASE_DATE
        ))
        _confirmed_order(db_session, tenant_id, customer, bag, day=1)

        balance = balances.calculate_customer_balance(customer.id)
        assert balance.has_opening_transaction
        assert balance.opening_advance_balance == Decimal("200")
        assert balance.net_balance == Decimal("600")

    def test_direct_payment_and_customer_paid_cod_fee(self, db_session, tenant_id, balances, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(
            CustomerCreate(name="Ali", phone_number="03004440000")
        )
        orders = OrderService(db_session, tenant_id)
        order = orders.create_order(OrderCreate(
            customer_id=customer.id,
            order_date=BASE_DATE,
            items=[OrderItemCreate(product_id=bag.id, quantity=1)],
            shipping_charges=Decimal("150"),
            cod_fee=Decimal("50"),
            cod_fee_paid_by="CUSTOMER"
        ))
        orders.confirm_order(order.id)
        _customer_payment(db_session, tenant_id, customer, "1000", day=1)

        ledger = balances.build_customer_ledger(customer.id)
        assert ledger.rows[0].debit == Decimal("1000")
        assert ledger.rows[1].direct
        assert ledger.summary.closing_balance == Decimal("0")

    def test_pending_and_cancelled_orders_are_excluded(self, db_session, tenant_id, balances, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(
            CustomerCreate(name="Nida", phone_number="03005550001")
        )
        orders = OrderService(db_session, tenant_id)
        orders.create_order(OrderCreate(
            customer_id=customer.id, items=[OrderItemCreate(product_id=bag.id, quantity=1)],
            shipping_charges=Decimal("0")
        ))
        cancelled = _confirmed_order(db_session, tenant_id, customer, bag)
        orders.cancel_order(cancelled.id)

        ledger = balances.build_customer_ledger(customer.id)
        assert ledger.rows == []
        assert ledger.summary.closing_balance == Decimal("0")

    def test_date_window_folds_earlier_rows(self, db_session, tenant_id, balances, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(
            CustomerCreate(name="Rafay", phone_number="03006660000")
        )
        _confirmed_order(db_session, tenant_id, customer, bag, day=0)
        _customer_payment(db_session, tenant_id, customer, "300", day=5)
        _confirmed_order(db_session, tenant_id, customer, bag, day=10)

        ledger = balances.build_customer_ledger(
            customer.id,
            date_from=BASE_DATE + timedelta(days=3),
            date_to=BASE_DATE + timedelta(days=7)
        )
        assert ledger.summary.opening_balance == Decimal("800")
        assert [row.type.value for row in ledger.rows] == ["PAYMENT"]
        assert ledger.summary.closing_balance == Decimal("500")

    def test_closing_balance_identity(self, db_session, tenant_id, balances, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(CustomerCreate(
            name="Maha", phone_number="03007770000", opening_balance=Decimal("100"),
            opening_balance_date=BASE_DATE
        ))
        order = _confirmed_order(db_session, tenant_id, customer, bag, day=1, quantity=2, shipping="200")
        _customer_payment(db_session, tenant_id, customer, "900", day=2, order=order)
        _customer_payment(db_session, tenant_id, customer, "250", day=3, is_advance=True)

        ledger = balances.build_customer_ledger(customer.id)
        s = ledger.summary
        assert s.closing_balance == (
            s.opening_balance + s.total_orders - s.total_payments - s.total_returns + s.total_refunds
        )
        assert s.closing_balance == Decimal("100") + Decimal("1800") - Decimal("1150")

    def test_unknown_customer(self, balances):
        from uuid import uuid4
        with pytest.raises(NotFoundError):
            balances.build_customer_ledger(uuid4())


class TestCustomerStats:

    def test_recalculate_is_idempotent(self, db_session, tenant_id, balances, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(
            CustomerCreate(name="Usman", phone_number="03008880000")
        )
        first = _confirmed_order(db_session, tenant_id, customer, bag, day=0, shipping="100")
        _customer_payment(db_session, tenant_id, customer, "900", day=1, order=first)
        second = _confirmed_order(db_session, tenant_id, customer, bag, day=4, shipping="100")
        OrderService(db_session, tenant_id).cancel_order(second.id)

        stats = balances.recalculate_customer_stats(customer.id)
        again = balances.recalculate_customer_stats(customer.id)
        assert stats == again
        assert stats.total_orders == 1
        assert stats.total_spent == Decimal("1000")

    def test_confirm_updates_stats(self, db_session, tenant_id, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(
            CustomerCreate(name="Iqra", phone_number="03009990001")
        )
        _confirmed_order(db_session, tenant_id, customer, bag, day=2, shipping="150")
        db_session.refresh(customer)
        assert customer.total_orders == 1
        assert customer.total_spent == Decimal("150")
        assert customer.last_order_date is not None


# ===== TESTS DE PROVEEDORES =====

class TestSupplierBalances:

    def test_purchase_return_and_payment(self, db_session, tenant_id, balances):
        supplier = SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="Hilos SA"))
        invoice = _purchase(db_session, tenant_id, supplier, "F-1", 10, "1000")
        ReturnService(db_session, tenant_id).post_supplier_return(SupplierReturnCreate(
            supplier_id=supplier.id,
            purchase_invoice_id=invoice.id,
            items=[ReturnItemCreate(purchase_item_id=invoice.items[0].id, quantity=2)],
            settlement_method=SettlementMethod.REDUCE_PAYABLE,
            return_date=BASE_DATE + timedelta(days=1)
        ))
        PaymentService(db_session, tenant_id).record_supplier_payment(SupplierPaymentCreate(
            supplier_id=supplier.id,
            purchase_invoice_id=invoice.id,
            amount=Decimal("3000"),
            payment_date=BASE_DATE + timedelta(days=2)
        ))

        balance = balances.calculate_supplier_balance(supplier.id)
        assert balance.total_purchases == Decimal("10000")
        assert balance.total_returns == Decimal("2000")
        assert balance.total_payments == Decimal("3000")
        assert balance.pending == Decimal("5000")

        ledger = balances.build_supplier_ledger(supplier.id)
        assert [row.type.value for row in ledger.rows] == ["PURCHASE", "RETURN", "PAYMENT"]
        assert ledger.summary.closing_balance == Decimal("5000")

        reconciliation = balances.reconcile_invoice_payable(invoice.id)
        assert reconciliation.balanced
        assert reconciliation.recorded_payable == Decimal("5000")

    def test_initial_payment_is_counted_once(self, db_session, tenant_id, balances):
        supplier = SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="Botones"))
        _purchase(db_session, tenant_id, supplier, "F-2", 4, "500", paid="1500")

        balance = balances.calculate_supplier_balance(supplier.id)
        assert balance.total_payments == Decimal("1500")
        assert balance.pending == Decimal("500")

    def test_advance_from_negative_opening(self, db_session, tenant_id, balances):
        supplier = SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(
            name="Cierres", opening_balance=Decimal("-500"), opening_balance_date=BASE_DATE
        ))
        invoice = _purchase(db_session, tenant_id, supplier, "F-3", 1, "1000", day=1)
        assert balances.calculate_supplier_balance(supplier.id).pending == Decimal("500")

        payments = PaymentService(db_session, tenant_id)
        payments.record_supplier_payment(SupplierPaymentCreate(
            supplier_id=supplier.id, purchase_invoice_id=invoice.id,
            amount=Decimal("500"), advance_used=Decimal("500"),
            payment_date=BASE_DATE + timedelta(days=2)
        ))

        balance = balances.calculate_supplier_balance(supplier.id)
        assert balance.pending == Decimal("0")
        assert balance.advance_balance == Decimal("0")
        assert balances.reconcile_invoice_payable(invoice.id).balanced

        with pytest.raises(InvalidOperationError):
            payments.record_supplier_payment(SupplierPaymentCreate(
                supplier_id=supplier.id, advance_used=Decimal("1"), payment_method="ADVANCE"
            ))

    def test_cash_refund_return_nets_to_zero(self, db_session, tenant_id, balances):
        supplier = SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="Encajes"))
        invoice = _purchase(db_session, tenant_id, supplier, "F-4", 5, "200")
        ReturnService(db_session, tenant_id).post_supplier_return(SupplierReturnCreate(
            supplier_id=supplier.id,
            purchase_invoice_id=invoice.id,
            items=[ReturnItemCreate(purchase_item_id=invoice.items[0].id, quantity=1)],
            settlement_method=SettlementMethod.CASH_REFUND
        ))

        balance = balances.calculate_supplier_balance(supplier.id)
        assert balance.total_returns == Decimal("200")
        assert balance.total_refunds == Decimal("200")
        assert balance.pending == Decimal("1000")


# ===== TESTS DE RESUMEN Y CONCILIACIÓN =====

class TestSummaryAndReconciliation:

    def test_empty_tenant_summary_is_zeroed(self, balances):
        summary = balances.get_balance_summary()
        assert summary.total_receivables == Decimal("0")
        assert summary.total_payables == Decimal("0")
        assert summary.cash_position == Decimal("0")
        assert summary.customer_count == 0

    def test_summary(self, db_session, tenant_id, balances, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(
            CustomerCreate(name="Saad", phone_number="03001112222")
        )
        order = _confirmed_order(db_session, tenant_id, customer, bag)
        _customer_payment(db_session, tenant_id, customer, "300", day=1, order=order)

        owed = SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="A"))
        _purchase(db_session, tenant_id, owed, "F-5", 2, "1000")
        SupplierService(db_session, tenant_id).create_supplier(
            SupplierCreate(name="B", opening_balance=Decimal("-400"))
        )

        summary = balances.get_balance_summary()
        assert summary.total_receivables == Decimal("500")
        assert summary.total_payables == Decimal("2000")
        assert summary.cash_position == Decimal("300")
        assert summary.net_balance == Decimal("-1500")
        assert summary.supplier_count == 2
        assert len(balances.get_all_customer_balances()) == 1

    def test_payable_drift_is_reported_not_corrected(self, db_session, tenant_id, balances):
        supplier = SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="Agujas"))
        invoice = _purchase(db_session, tenant_id, supplier, "F-6", 1, "1000")

        TransactionService(db_session, tenant_id).post_entries(
            "Manual adjustment",
            [(AccountCodes.INVENTORY, Decimal("100"), Decimal("0")),
             (AccountCodes.ACCOUNTS_PAYABLE, Decimal("0"), Decimal("100"))],
            TransactionKind.ADJUSTMENT,
            commit=True,
            purchase_invoice_id=invoice.id
        )

        reconciliation = balances.reconcile_invoice_payable(invoice.id)
        assert not reconciliation.balanced
        assert reconciliation.expected_payable == Decimal("1000")
        assert reconciliation.recorded_payable == Decimal("1100")
        assert reconciliation.drift == Decimal("100")


# ===== TESTS DE API =====

class TestBalancesAPI:

    def test_customer_ledger_endpoint(self, client, tenant_headers, db_session, tenant_id, bag):
        customer = CustomerService(db_session, tenant_id).create_customer(
            CustomerCreate(name="Ayesha", phone_number="03004445555")
        )
        _confirmed_order(db_session, tenant_id, customer, bag)

        response = client.get(f"/balances/customers/{customer.id}/ledger", headers=tenant_headers)
        assert response.status_code == 200
        body = response.json()
        assert Decimal(body["summary"]["closing_balance"]) == Decimal("800")
        assert body["rows"][0]["type"] == "ORDER"

    def test_summary_endpoint(self, client, tenant_headers):
        response = client.get("/balances/summary", headers=tenant_headers)
        assert response.status_code == 200
        assert Decimal(response.json()["total_payables"]) == Decimal("0")
