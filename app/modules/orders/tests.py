"""
Tests para el módulo de Órdenes

Cubren el cálculo de envío y comisión COD al crear, el asiento de venta al
confirmar, la cancelación con reversión y las transiciones inválidas.
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from app.common.exceptions import InvalidOperationError, NotFoundError
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import Account, Transaction, TransactionKind
from app.modules.contacts.models import Customer
from app.modules.orders.models import CodFeePaidBy, OrderStatus
from app.modules.orders.schemas import OrderCreate, OrderItemCreate
from app.modules.orders.service import OrderService
from app.modules.products.models import Product
from app.modules.shipping.models import CodFeeCalculationType
from app.modules.shipping.schemas import LogisticsCompanyCreate
from app.modules.shipping.service import ShippingService


@pytest.fixture
def orders(db_session, tenant_id):
    return OrderService(db_session, tenant_id)


@pytest.fixture
def product(db_session, tenant_id):
    product = Product(tenant_id=tenant_id, name="Kurta", current_quantity=10, current_retail_price=Decimal("500"))
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture
def courier(db_session, tenant_id):
    return ShippingService(db_session, tenant_id).create_logistics_company(LogisticsCompanyCreate(
        name="Leopards",
        cod_fee_calculation_type=CodFeeCalculationType.FIXED,
        fixed_cod_fee=Decimal("75")
    ))


def _order(product, quantity=2, **fields):
    fields.setdefault("customer_phone", "03009998888")
    return OrderCreate(
        customer_name="Ayesha",
        city="Lahore",
        items=[OrderItemCreate(product_id=product.id, quantity=quantity)],
        **fields
    )


def _balance(db_session, tenant_id, code):
    account = db_session.query(Account).filter(
        Account.tenant_id == tenant_id, Account.code == code
    ).first()
    return account.balance if account else Decimal("0")


class TestOrderLifecycle:

    def test_create_computes_shipping_and_cod_fee(self, db_session, orders, product, courier):
        order = orders.create_order(_order(product, logistics_company_id=courier.id))

        assert order.status == OrderStatus.PENDING
        assert order.order_number.startswith("ORD-")
        assert order.items[0].unit_price == Decimal("500")
        assert order.shipping_charges == Decimal("350")
        assert order.cod_amount == Decimal("1350")
        assert order.cod_fee == Decimal("75")
        assert order.total_amount == Decimal("1350")
        assert db_session.query(Customer).filter(Customer.phone_number == "03009998888").count() == 1

        db_session.refresh(product)
        assert product.current_quantity == 10
        assert db_session.query(Transaction).count() == 0

    def test_customer_paid_cod_fee_is_billed(self, orders, product, courier):
        order = orders.create_order(_order(
            product, logistics_company_id=courier.id, cod_fee_paid_by=CodFeePaidBy.CUSTOMER
        ))
        assert order.total_amount == Decimal("1425")

    def test_nothing_to_collect_means_no_cod_fee(self, orders, product, courier):
        order = orders.create_order(_order(product, logistics_company_id=courier.id, cod_amount=Decimal("0")))
        assert order.cod_amount == Decimal("0")
        assert order.cod_fee == Decimal("0")

    def test_confirm_posts_sale(self, db_session, tenant_id, orders, product, courier):
        order = orders.create_order(_order(product, logistics_company_id=courier.id))
        order = orders.confirm_order(order.id)

        assert order.status == OrderStatus.CONFIRMED
        assert order.confirmed_at is not None
        sale = db_session.get(Transaction, order.sale_transaction_id)
        assert sale.kind == TransactionKind.SALE
        assert sale.total_debit == sale.total_credit == Decimal("1425")

        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_RECEIVABLE) == Decimal("1350")
        assert _balance(db_session, tenant_id, AccountCodes.SALES_REVENUE) == Decimal("1000")
        assert _balance(db_session, tenant_id, AccountCodes.SHIPPING_REVENUE) == Decimal("350")
        assert _balance(db_session, tenant_id, AccountCodes.COD_FEE_EXPENSE) == Decimal("75")
        assert _balance(db_session, tenant_id, AccountCodes.COD_FEE_PAYABLE) == Decimal("75")

        db_session.refresh(product)
        assert product.current_quantity == 8
        customer = db_session.get(Customer, order.customer_id)
        assert customer.total_orders == 1

    def test_cancel_confirmed_order_reverses(self, db_session, tenant_id, orders, product):
        order = orders.create_order(_order(product, shipping_charges=Decimal("100")))
        orders.confirm_order(order.id)
        orders.dispatch_order(order.id)

        order = orders.cancel_order(order.id)

        assert order.status == OrderStatus.CANCELLED
        reversal = db_session.query(Transaction).filter(
            Transaction.reverses_transaction_id == order.sale_transaction_id
        ).one()
        assert reversal.total_debit == Decimal("1100")
        for code in (AccountCodes.ACCOUNTS_RECEIVABLE, AccountCodes.SALES_REVENUE, AccountCodes.SHIPPING_REVENUE):
            assert _balance(db_session, tenant_id, code) == Decimal("0")

        db_session.refresh(product)
        assert product.current_quantity == 10
        assert db_session.get(Customer, order.customer_id).total_orders == 0

    def test_cancel_pending_order_posts_nothing(self, db_session, orders, product):
        order = orders.create_order(_order(product, shipping_charges=Decimal("0")))
        orders.cancel_order(order.id)
        assert db_session.query(Transaction).count() == 0

    def test_invalid_transitions(self, orders, product):
        order = orders.create_order(_order(product, shipping_charges=Decimal("0")))
        with pytest.raises(InvalidOperationError):
            orders.complete_order(order.id)
        with pytest.raises(InvalidOperationError):
            orders.dispatch_order(order.id)

        orders.confirm_order(order.id)
        orders.dispatch_order(order.id)
        orders.complete_order(order.id)
        with pytest.raises(InvalidOperationError):
            orders.cancel_order(order.id)
        with pytest.raises(InvalidOperationError):
            orders.confirm_order(order.id)

    def test_unknown_product(self, orders):
        with pytest.raises(NotFoundError):
            orders.create_order(_order(SimpleNamespace(id=uuid4())))

    def test_other_tenant_cannot_confirm(self, db_session, other_tenant_id, orders, product):
        order = orders.create_order(_order(product, shipping_charges=Decimal("0")))
        with pytest.raises(NotFoundError):
            OrderService(db_session, other_tenant_id).confirm_order(order.id)


class TestOrdersAPI:

    def test_create_and_confirm(self, client, tenant_headers, product):
        response = client.post("/orders/", headers=tenant_headers, json={
            "customer_phone": "03001231234",
            "city": "Lahore",
            "items": [{"product_id": str(product.id), "quantity": 1}]
        })
        assert response.status_code == 201
        body = response.json()
        assert Decimal(body["total_amount"]) == Decimal("850")

        response = client.post(f"/orders/{body['id']}/confirm", headers=tenant_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"

        response = client.post(f"/orders/{body['id']}/confirm", headers=tenant_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_OPERATION"
