"""
Tests para el módulo de Devoluciones

Cubren:
- Devoluciones a proveedor con cada método de liquidación y su efecto en
  Cuentas por Pagar, Caja e Inventario
- Límites de cantidad frente a lo comprado o vendido
- Ciclo de devoluciones de clientes: creación, aprobación, reembolso y rechazo
- Aislamiento entre empresas y endpoints principales
"""

import pytest
from decimal import Decimal
from pydantic import ValidationError

from app.common.exceptions import InvalidOperationError, NotFoundError
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import Account, Transaction, TransactionKind
from app.modules.balances.service import BalanceService
from app.modules.contacts.schemas import CustomerCreate, SupplierCreate
from app.modules.contacts.service import CustomerService, SupplierService
from app.modules.orders.schemas import OrderCreate, OrderItemCreate
from app.modules.orders.service import OrderService
from app.modules.payments.schemas import CustomerPaymentCreate
from app.modules.payments.service import PaymentService
from app.modules.products.models import Product
from app.modules.purchases.schemas import PurchaseInvoiceCreate, PurchaseItemCreate
from app.modules.purchases.service import PurchaseService
from app.modules.returns.models import (
    RefundMethod, ReturnStatus, ReturnType, SettlementMethod, ShippingChargeHandling
)
from app.modules.returns.schemas import CustomerReturnCreate, ReturnItemCreate, SupplierReturnCreate
from app.modules.returns.service import ReturnService


# ===== FIXTURES =====

@pytest.fixture
def returns(db_session, tenant_id):
    return ReturnService(db_session, tenant_id)


@pytest.fixture
def supplier(db_session, tenant_id):
    return SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="Textiles Norte"))


@pytest.fixture
def invoice(db_session, tenant_id, supplier):
    """Factura a crédito: 10 camisas a 1000"""
    return PurchaseService(db_session, tenant_id).create_purchase_invoice(PurchaseInvoiceCreate(
        supplier_id=supplier.id,
        invoice_number="INV-100",
        items=[PurchaseItemCreate(name="Camisa", sku="CAM-1", quantity=10, purchase_price=Decimal("1000"))]
    ))


@pytest.fixture
def product(db_session, tenant_id, invoice):
    return db_session.query(Product).filter(Product.tenant_id == tenant_id).one()


@pytest.fixture
def paid_order(db_session, tenant_id, product):
    """Orden confirmada y pagada: 2 camisas a 300 + 100 de envío"""
    customer = CustomerService(db_session, tenant_id).create_customer(
        CustomerCreate(name="Sara", phone_number="03005550000")
    )
    orders = OrderService(db_session, tenant_id)
    order = orders.create_order(OrderCreate(
        customer_id=customer.id,
        items=[OrderItemCreate(product_id=product.id, quantity=2, unit_price=Decimal("300"))],
        shipping_charges=Decimal("100")
    ))
    order = orders.confirm_order(order.id)
    PaymentService(db_session, tenant_id).record_customer_payment(CustomerPaymentCreate(
        customer_id=customer.id, order_id=order.id, amount=Decimal("700")
    ))
    return order


def _balance(db_session, tenant_id, code):
    account = db_session.query(Account).filter(
        Account.tenant_id == tenant_id, Account.code == code
    ).first()
    return account.balance if account else Decimal("0")


def _supplier_return(supplier, invoice, quantity, method=SettlementMethod.REDUCE_PAYABLE, offset=None):
    return SupplierReturnCreate(
        supplier_id=supplier.id,
        purchase_invoice_id=invoice.id,
        items=[ReturnItemCreate(purchase_item_id=invoice.items[0].id, quantity=quantity)],
        settlement_method=method,
        payable_offset_amount=offset
    )


# ===== TESTS DE DEVOLUCIONES A PROVEEDOR =====

class TestSupplierReturns:

    def test_reduce_payable(self, db_session, tenant_id, returns, supplier, invoice, product):
        return_ = returns.post_supplier_return(_supplier_return(supplier, invoice, 2))

        assert return_.status == ReturnStatus.APPROVED
        assert return_.return_number.startswith("RET-")
        assert return_.total_amount == Decimal("2000")
        assert return_.payable_offset_amount == Decimal("2000")
        assert return_.refund_amount == Decimal("0")
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_PAYABLE) == Decimal("8000")
        assert _balance(db_session, tenant_id, AccountCodes.INVENTORY) == Decimal("8000")

        db_session.refresh(product)
        assert product.current_quantity == 8

        transaction = db_session.query(Transaction).filter(Transaction.order_return_id == return_.id).one()
        assert transaction.kind == TransactionKind.RETURN
        assert transaction.purchase_invoice_id == invoice.id
        assert transaction.total_debit == transaction.total_credit == Decimal("2000")

    def test_cash_refund_leaves_payable(self, db_session, tenant_id, returns, supplier, invoice):
        return_ = returns.post_supplier_return(
            _supplier_return(supplier, invoice, 2, SettlementMethod.CASH_REFUND)
        )

        assert return_.refund_amount == Decimal("2000")
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_PAYABLE) == Decimal("10000")
        assert _balance(db_session, tenant_id, AccountCodes.CASH) == Decimal("2000")
        balance = BalanceService(db_session, tenant_id).calculate_supplier_balance(supplier.id)
        assert balance.pending == Decimal("10000")

    def test_mixed_settlement(self, db_session, tenant_id, returns, supplier, invoice):
        return_ = returns.post_supplier_return(
            _supplier_return(supplier, invoice, 2, SettlementMethod.MIXED, Decimal("500"))
        )

        assert return_.payable_offset_amount == Decimal("500")
        assert return_.refund_amount == Decimal("1500")
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_PAYABLE) == Decimal("9500")
        assert _balance(db_session, tenant_id, AccountCodes.CASH) == Decimal("1500")
        assert BalanceService(db_session, tenant_id).reconcile_invoice_payable(invoice.id).balanced

    @pytest.mark.parametrize("offset", [Decimal("0"), Decimal("2000"), Decimal("2500")])
    def test_mixed_offset_must_be_partial(self, returns, supplier, invoice, offset):
        with pytest.raises(InvalidOperationError):
            returns.post_supplier_return(
                _supplier_return(supplier, invoice, 2, SettlementMethod.MIXED, offset)
            )

    def test_mixed_requires_offset(self, supplier, invoice):
        with pytest.raises(ValidationError):
            _supplier_return(supplier, invoice, 2, SettlementMethod.MIXED)

    def test_cannot_return_more_than_purchased(self, db_session, tenant_id, returns, supplier, invoice):
        returns.post_supplier_return(_supplier_return(supplier, invoice, 6))
        with pytest.raises(InvalidOperationError):
            returns.post_supplier_return(_supplier_return(supplier, invoice, 5))
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_PAYABLE) == Decimal("4000")

    def test_invoice_of_other_supplier_rejected(self, db_session, tenant_id, returns, invoice):
        other = SupplierService(db_session, tenant_id).create_supplier(SupplierCreate(name="Otro"))
        with pytest.raises(InvalidOperationError):
            returns.post_supplier_return(_supplier_return(other, invoice, 1))

    def test_return_without_purchase_item(self, db_session, tenant_id, returns, supplier, product):
        return_ = returns.post_supplier_return(SupplierReturnCreate(
            supplier_id=supplier.id,
            items=[ReturnItemCreate(product_id=product.id, quantity=1)]
        ))
        assert return_.total_amount == Decimal("1000")
        assert return_.purchase_invoice_id is None
        assert return_.items[0].product_name == "Camisa"


# ===== TESTS DE DEVOLUCIONES DE CLIENTES =====

class TestCustomerReturns:

    def test_full_return_lifecycle(self, db_session, tenant_id, returns, product, paid_order):
        return_ = returns.create_customer_return(CustomerReturnCreate(
            order_id=paid_order.id,
            return_type=ReturnType.CUSTOMER_FULL,
            shipping_charge_handling=ShippingChargeHandling.FULL_REFUND
        ))
        assert return_.status == ReturnStatus.PENDING
        assert return_.total_amount == Decimal("600")
        assert return_.shipping_amount == Decimal("100")
        assert db_session.query(Transaction).filter(Transaction.order_return_id == return_.id).count() == 0

        return_ = returns.post_customer_return(return_.id)
        assert return_.status == ReturnStatus.APPROVED
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_RECEIVABLE) == Decimal("-700")
        db_session.refresh(product)
        assert product.current_quantity == 10

        return_ = returns.process_refund(return_.id, RefundMethod.CASH)
        assert return_.status == ReturnStatus.REFUNDED
        assert return_.refund_amount == Decimal("700")
        assert return_.refund_transaction_id is not None
        assert _balance(db_session, tenant_id, AccountCodes.ACCOUNTS_RECEIVABLE) == Decimal("0")
        db_session.refresh(paid_order)
        assert paid_order.refund_amount == Decimal("700")

        ledger = BalanceService(db_session, tenant_id).build_customer_ledger(paid_order.customer_id)
        assert [row.type.value for row in ledger.rows] == ["ORDER", "PAYMENT", "RETURN", "REFUND"]
        assert ledger.summary.closing_balance == Decimal("0")

    def test_customer_pays_shipping_keeps_shipping(self, returns, paid_order):
        return_ = returns.create_customer_return(CustomerReturnCreate(
            order_id=paid_order.id, return_type=ReturnType.CUSTOMER_FULL
        ))
        assert return_.shipping_amount == Decimal("0")
        assert return_.total_amount == Decimal("600")

    def test_refund_to_customer_advance(self, db_session, tenant_id, returns, paid_order):
        return_ = returns.create_customer_return(CustomerReturnCreate(
            order_id=paid_order.id, return_type=ReturnType.CUSTOMER_FULL
        ))
        returns.post_customer_return(return_.id)
        returns.process_refund(return_.id, RefundMethod.CUSTOMER_ADVANCE)

        customer = paid_order.customer
        db_session.refresh(customer)
        assert customer.advance_balance == Decimal("600")
        assert _balance(db_session, tenant_id, AccountCodes.CUSTOMER_ADVANCE) == Decimal("-600")

        ledger = BalanceService(db_session, tenant_id).build_customer_ledger(customer.id)
        assert "REFUND" not in [row.type.value for row in ledger.rows]
        assert ledger.summary.closing_balance == Decimal("-600")

    def test_partial_return_limits(self, returns, product, paid_order):
        item = ReturnItemCreate(order_item_id=paid_order.items[0].id, quantity=1)
        first = returns.create_customer_return(CustomerReturnCreate(
            order_id=paid_order.id, items=[item]
        ))
        assert first.total_amount == Decimal("300")

        with pytest.raises(InvalidOperationError):
            returns.create_customer_return(CustomerReturnCreate(
                order_id=paid_order.id,
                items=[ReturnItemCreate(product_id=product.id, quantity=2)]
            ))

        rest = returns.create_customer_return(CustomerReturnCreate(
            order_id=paid_order.id, return_type=ReturnType.CUSTOMER_FULL
        ))
        assert rest.items[0].quantity == 1

    def test_rejected_return_frees_quantity(self, returns, paid_order):
        data = CustomerReturnCreate(order_id=paid_order.id, return_type=ReturnType.CUSTOMER_FULL)
        rejected = returns.reject_return(returns.create_customer_return(data).id, "Producto usado")
        assert rejected.status == ReturnStatus.REJECTED
        assert rejected.reason == "Producto usado"

        again = returns.create_customer_return(data)
        assert again.total_amount == Decimal("600")

    def test_invalid_transitions(self, returns, paid_order):
        return_ = returns.create_customer_return(CustomerReturnCreate(
            order_id=paid_order.id, return_type=ReturnType.CUSTOMER_FULL
        ))
        with pytest.raises(InvalidOperationError):
            returns.process_refund(return_.id)
        returns.post_customer_return(return_.id)
        with pytest.raises(InvalidOperationError):
            returns.post_customer_return(return_.id)
        with pytest.raises(InvalidOperationError):
            returns.reject_return(return_.id)
        with pytest.raises(InvalidOperationError):
            returns.process_refund(return_.id, amount=Decimal("5000"))

    def test_pending_order_cannot_be_returned(self, db_session, tenant_id, returns, product):
        order = OrderService(db_session, tenant_id).create_order(OrderCreate(
            customer_phone="03009990000",
            items=[OrderItemCreate(product_id=product.id, quantity=1)],
            shipping_charges=Decimal("0")
        ))
        with pytest.raises(InvalidOperationError):
            returns.create_customer_return(CustomerReturnCreate(
                order_id=order.id, return_type=ReturnType.CUSTOMER_FULL
            ))

    def test_supplier_return_is_not_a_customer_return(self, returns, supplier, invoice):
        return_ = returns.post_supplier_return(_supplier_return(supplier, invoice, 1))
        with pytest.raises(InvalidOperationError):
            returns.post_customer_return(return_.id)

    def test_other_tenant_cannot_see_return(self, db_session, returns, supplier, invoice, other_tenant_id):
        return_ = returns.post_supplier_return(_supplier_return(supplier, invoice, 1))
        with pytest.raises(NotFoundError):
            ReturnService(db_session, other_tenant_id).get_return(return_.id)


# ===== TESTS DE API =====

class TestReturnsAPI:

    def test_supplier_return_endpoint(self, client, tenant_headers, supplier, invoice):
        response = client.post("/returns/supplier", headers=tenant_headers, json={
            "supplier_id": str(supplier.id),
            "purchase_invoice_id": str(invoice.id),
            "items": [{"purchase_item_id": str(invoice.items[0].id), "quantity": 1}],
            "settlement_method": "CASH_REFUND",
            "refund_method": "BANK_TRANSFER"
        })
        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "APPROVED"
        assert Decimal(body["refund_amount"]) == Decimal("1000")

        listing = client.get("/returns/", headers=tenant_headers, params={"return_type": "SUPPLIER"})
        assert listing.json()["total"] == 1

    def test_approve_supplier_return_is_client_error(self, client, tenant_headers, returns, supplier, invoice):
        return_ = returns.post_supplier_return(_supplier_return(supplier, invoice, 1))
        response = client.post(f"/returns/{return_.id}/approve", headers=tenant_headers)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_OPERATION"
