"""
Servicios de negocio para el módulo de Pagos

- Pagos de clientes: Dr Caja/Banco, Cr Cuentas por Cobrar (o Customer Advance
  cuando es un anticipo); abonan a la orden vinculada
- Pagos a proveedores: Dr Cuentas por Pagar por el total liquidado, Cr Caja/Banco
  por lo pagado y Cr Advance to Suppliers por el anticipo aplicado

Cada pago y su asiento se confirman juntos.
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from app.core.config import settings
from app.common.exceptions import InvalidAccountError, InvalidOperationError
from app.common.tenancy import TenantScopedService
from app.common.validators import round_money, to_decimal, utcnow
from app.modules.accounting.chart import AccountCodes, account_code_for_payment_method
from app.modules.accounting.models import Account, AccountSubtype, PartyType, TransactionKind
from app.modules.accounting.service import TransactionService
from app.modules.contacts.models import Customer, Supplier
from app.modules.orders.models import Order, OrderStatus
from app.modules.payments.models import Payment, PaymentMethod, PaymentType
from app.modules.payments.schemas import CustomerPaymentCreate, SupplierPaymentCreate

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class PaymentService(TenantScopedService):
    """Registro de pagos de clientes y a proveedores"""

    def __init__(self, db, tenant_id: UUID):
        super().__init__(db, tenant_id)
        self.transactions = TransactionService(db, tenant_id)

    def cash_account(self, method: PaymentMethod, account_id: Optional[UUID] = None) -> Account:
        """Cuenta de caja o banco del pago: la indicada o la del método"""
        if account_id:
            account = self.scope.get(Account, account_id, "Cuenta")
            if account.subtype not in (AccountSubtype.CASH, AccountSubtype.BANK):
                raise InvalidAccountError(
                    f"La cuenta {account.code} no es de caja o banco",
                    account_id=account_id
                )
            return account
        return self.transactions.accounts.ensure_account(account_code_for_payment_method(method))

    def new_payment(self, payment_type: PaymentType, when, **fields) -> Payment:
        payment = Payment(
            payment_number=self.scope.next_number(settings.PAYMENT_NUMBER_PREFIX, when),
            type=payment_type,
            payment_date=when,
            **fields
        )
        self.scope.add(payment)
        self.db.flush()
        return payment

    # ===== CLIENTES =====

    def record_customer_payment(self, data: CustomerPaymentCreate, commit: bool = True) -> Payment:
        customer = self.scope.get(Customer, data.customer_id, "Cliente")
        order = None
        if data.order_id:
            order = self.scope.get(Order, data.order_id, "Orden")
            if order.customer_id != customer.id:
                raise InvalidOperationError("La orden no pertenece al cliente")
            if order.status == OrderStatus.CANCELLED:
                raise InvalidOperationError(f"La orden {order.order_number} está cancelada")

        amount = round_money(data.amount)
        when = data.payment_date or utcnow()
        try:
            account = self.cash_account(data.payment_method, data.account_id)
            payment = self.new_payment(
                PaymentType.CUSTOMER_PAYMENT,
                when,
                amount=amount,
                advance_used=ZERO,
                payment_method=data.payment_method,
                account_id=account.id,
                customer_id=customer.id,
                order_id=order.id if order else None,
                notes=data.notes
            )

            credit_code = AccountCodes.CUSTOMER_ADVANCE if data.is_advance else AccountCodes.ACCOUNTS_RECEIVABLE
            label = "Advance" if data.is_advance else "Payment"
            description = f"Customer {label} {payment.payment_number} - {customer.display_name}"
            if order:
                description += f" (Order {order.order_number})"

            transaction = self.transactions.post_entries(
                description,
                [(account.code, amount, ZERO), (credit_code, ZERO, amount)],
                TransactionKind.PAYMENT,
                transaction_date=when,
                party_type=PartyType.CUSTOMER,
                party_id=customer.id,
                order_id=order.id if order else None,
                payment_id=payment.id
            )
            payment.transaction_id = transaction.id

            if order:
                order.payment_amount = to_decimal(order.payment_amount) + amount
            if data.is_advance:
                customer.advance_balance = to_decimal(customer.advance_balance) + amount

            if commit:
                self.db.commit()
                self.db.refresh(payment)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Customer payment {payment.payment_number} recorded: {amount} ({customer.display_name})")
        return payment

    # ===== PROVEEDORES =====

    def record_supplier_payment(self, data: SupplierPaymentCreate, commit: bool = True) -> Payment:
        from app.modules.purchases.models import PurchaseInvoice

        supplier = self.scope.get(Supplier, data.supplier_id, "Proveedor")
        invoice = None
        if data.purchase_invoice_id:
            invoice = self.scope.get(PurchaseInvoice, data.purchase_invoice_id, "Factura de compra")
            if invoice.supplier_id != supplier.id:
                raise InvalidOperationError("La factura no pertenece al proveedor")

        amount = round_money(data.amount)
        advance_used = round_money(data.advance_used)
        if advance_used > ZERO:
            available = to_decimal(supplier.advance_balance)
            if advance_used > available:
                raise InvalidOperationError(
                    f"Anticipo insuficiente: disponible {available}, solicitado {advance_used}",
                    available=available,
                    requested=advance_used
                )

        when = data.payment_date or utcnow()
        total = amount + advance_used
        try:
            account = self.cash_account(data.payment_method, data.account_id) if amount > ZERO else None
            payment = self.new_payment(
                PaymentType.SUPPLIER_PAYMENT,
                when,
                amount=amount,
                advance_used=advance_used,
                payment_method=data.payment_method,
                account_id=account.id if account else None,
                supplier_id=supplier.id,
                purchase_invoice_id=invoice.id if invoice else None,
                notes=data.notes
            )

            description = f"Supplier Payment {payment.payment_number} - {supplier.name}"
            if invoice:
                description += f" (Invoice {invoice.invoice_number})"
            if amount > ZERO and advance_used > ZERO:
                description += f" (Paid: {amount}, Advance Used: {advance_used})"
            elif advance_used > ZERO:
                description += f" (Advance Used: {advance_used})"

            entries = [(AccountCodes.ACCOUNTS_PAYABLE, total, ZERO)]
            if account is not None:
                entries.append((account.code, ZERO, amount))
            if advance_used > ZERO:
                entries.append((AccountCodes.SUPPLIER_ADVANCE, ZERO, advance_used))

            transaction = self.transactions.post_entries(
                description,
                entries,
                TransactionKind.PAYMENT,
                transaction_date=when,
                party_type=PartyType.SUPPLIER,
                party_id=supplier.id,
                purchase_invoice_id=invoice.id if invoice else None,
                payment_id=payment.id
            )
            payment.transaction_id = transaction.id

            if invoice:
                invoice.payment_amount = to_decimal(invoice.payment_amount) + total
            if advance_used > ZERO:
                supplier.advance_balance = to_decimal(supplier.advance_balance) - advance_used

            if commit:
                self.db.commit()
                self.db.refresh(payment)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Supplier payment {payment.payment_number} recorded: {total} ({supplier.name})")
        return payment

    # ===== CONSULTAS =====

    def get_payment(self, payment_id: UUID) -> Payment:
        return self.scope.get(Payment, payment_id, "Pago")

    def list_payments(
        self,
        payment_type: Optional[PaymentType] = None,
        customer_id: Optional[UUID] = None,
        supplier_id: Optional[UUID] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Payment], int]:
        query = self.scope.query(Payment)
        if payment_type:
            query = query.filter(Payment.type == payment_type)
        if customer_id:
            query = query.filter(Payment.customer_id == customer_id)
        if supplier_id:
            query = query.filter(Payment.supplier_id == supplier_id)
        total = query.count()
        items = query.order_by(Payment.payment_date.desc()).offset(offset).limit(limit).all()
        return items, total
