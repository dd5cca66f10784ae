"""
Servicios de negocio para el módulo de Saldos

Implementa:
- Saldo y ledger de clientes: saldo inicial explícito, órdenes facturables,
  pagos, devoluciones y reembolsos con saldo acumulado
- Saldo y ledger de proveedores: saldo inicial, facturas de compra, pagos,
  devoluciones y reembolsos recibidos
- Recálculo idempotente de los acumulados del cliente
- Resumen general y conciliación de la cuenta por pagar de una factura

Saldo positivo: la contraparte nos debe (clientes) o le debemos (proveedores).
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from app.core.config import settings
from app.common.tenancy import TenantScopedService
from app.common.validators import as_naive_utc, round_money, to_decimal
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import (
    Account, AccountSubtype, AccountType, Transaction, TransactionLine
)
from app.modules.balances.schemas import (
    BalanceSummary, CustomerBalance, CustomerLedger, CustomerLedgerSummary, CustomerStats,
    InvoicePayableReconciliation, LedgerEntryType, LedgerRow, SupplierBalance,
    SupplierLedger, SupplierLedgerSummary
)
from app.modules.contacts.models import Customer, Supplier
from app.modules.contacts.service import CustomerService
from app.modules.orders.models import BILLABLE_STATUSES, Order, OrderStatus
from app.modules.payments.models import Payment, PaymentType
from app.modules.purchases.models import PurchaseInvoice
from app.modules.returns.models import (
    RefundMethod, Return, ReturnStatus, ReturnType, SettlementMethod
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

POSTED_RETURN_STATUSES = (ReturnStatus.APPROVED, ReturnStatus.REFUNDED)
CASH_REFUND_METHODS = (RefundMethod.CASH, RefundMethod.BANK_TRANSFER)


def _sum(rows: List[LedgerRow], entry_type: LedgerEntryType, field: str) -> Decimal:
    return sum((getattr(row, field) for row in rows if row.type == entry_type), ZERO)


def _running_ledger(
    rows: List[LedgerRow],
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None
) -> Tuple[List[LedgerRow], Decimal]:
    """
    Ordena las filas por fecha (estable) y calcula el saldo acumulado.

    Las filas anteriores a date_from se acumulan en el saldo de apertura de la
    ventana; las posteriores a date_to se descartan. Devuelve (filas, apertura).
    """
    start = as_naive_utc(date_from)
    end = as_naive_utc(date_to)
    ordered = sorted(rows, key=lambda row: as_naive_utc(row.date))

    opening = ZERO
    visible = []
    for row in ordered:
        when = as_naive_utc(row.date)
        if end is not None and when > end:
            continue
        if start is not None and when < start:
            opening += row.debit - row.credit
            continue
        visible.append(row)

    balance = opening
    for row in visible:
        balance += row.debit - row.credit
        row.balance = round_money(balance)
    return visible, round_money(opening)


class BalanceService(TenantScopedService):
    """Saldos, ledgers y conciliaciones de clientes y proveedores"""

    # ===== CLIENTES =====

    def _opening_figures(self, customer: Customer) -> Tuple[Optional[Transaction], Decimal, Decimal]:
        """(asiento, AR inicial, anticipo inicial) a partir del asiento de saldo inicial"""
        transaction = CustomerService(self.db, self.tenant_id).get_opening_transaction(customer)
        if transaction is None:
            return None, ZERO, to_decimal(customer.advance_balance)

        opening_ar = ZERO
        opening_advance = ZERO
        for line in transaction.lines:
            code = line.account.code
            net = to_decimal(line.debit_amount) - to_decimal(line.credit_amount)
            if code == AccountCodes.ACCOUNTS_RECEIVABLE:
                opening_ar += net
            elif code == AccountCodes.CUSTOMER_ADVANCE:
                opening_advance += net
        return transaction, opening_ar, opening_advance

    def _customer_rows(self, customer: Customer, opening: Optional[Transaction],
                       opening_ar: Decimal, opening_advance: Decimal) -> List[LedgerRow]:
        rows = []
        if opening is not None:
            rows.append(LedgerRow(
                date=opening.transaction_date,
                type=LedgerEntryType.OPENING,
                reference=opening.transaction_number,
                description="Opening Balance",
                debit=opening_ar,
                credit=opening_advance,
                source_id=opening.id
            ))

        orders = self.scope.query(Order).filter(
            Order.customer_id == customer.id,
            Order.status.in_(BILLABLE_STATUSES)
        ).order_by(Order.order_date).all()
        for order in orders:
            rows.append(LedgerRow(
                date=order.order_date,
                type=LedgerEntryType.ORDER,
                reference=order.order_number,
                description=f"Order {order.order_number}",
                debit=round_money(order.total_amount),
                source_id=order.id
            ))

        payments = self.scope.query(Payment).filter(
            Payment.customer_id == customer.id,
            Payment.type == PaymentType.CUSTOMER_PAYMENT
        ).order_by(Payment.payment_date).all()
        for payment in payments:
            direct = payment.order_id is None
            rows.append(LedgerRow(
                date=payment.payment_date,
                type=LedgerEntryType.PAYMENT,
                reference=payment.payment_number,
                description="Direct payment" if direct else f"Payment {payment.payment_number}",
                credit=round_money(payment.amount),
                direct=direct,
                source_id=payment.id
            ))

        returns = self.scope.query(Return).filter(
            Return.customer_id == customer.id,
            Return.return_type != ReturnType.SUPPLIER,
            Return.status.in_(POSTED_RETURN_STATUSES)
        ).order_by(Return.return_date).all()
        for return_ in returns:
            rows.append(LedgerRow(
                date=return_.return_date,
                type=LedgerEntryType.RETURN,
                reference=return_.return_number,
                description=f"Return {return_.return_number}",
                credit=round_money(to_decimal(return_.total_amount) + to_decimal(return_.shipping_amount)),
                source_id=return_.id
            ))
            if return_.status == ReturnStatus.REFUNDED and return_.refund_method in CASH_REFUND_METHODS:
                rows.append(LedgerRow(
                    date=return_.refunded_at or return_.return_date,
                    type=LedgerEntryType.REFUND,
                    reference=return_.return_number,
                    description=f"Refund {return_.return_number}",
                    debit=round_money(return_.refund_amount),
                    source_id=return_.id
                ))
        return rows

    def build_customer_ledger(
        self,
        customer_id: UUID,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None
    ) -> CustomerLedger:
        """
        Ledger del cliente con saldo acumulado.

        Sin asiento de saldo inicial explícito el saldo parte de 0: los anticipos
        ya aparecen como filas de pago y no se cuentan dos veces.
        """
        customer = self.scope.get(Customer, customer_id, "Cliente")
        opening, opening_ar, opening_advance = self._opening_figures(customer)
        rows = self._customer_rows(customer, opening, opening_ar, opening_advance)
        visible, window_opening = _running_ledger(rows, date_from, date_to)

        movements = [row for row in visible if row.type != LedgerEntryType.OPENING]
        opening_balance = window_opening + sum(
            (row.debit - row.credit for row in visible if row.type == LedgerEntryType.OPENING), ZERO
        )
        summary = CustomerLedgerSummary(
            opening_balance=round_money(opening_balance),
            total_orders=_sum(movements, LedgerEntryType.ORDER, "debit"),
            total_payments=_sum(movements, LedgerEntryType.PAYMENT, "credit"),
            total_returns=_sum(movements, LedgerEntryType.RETURN, "credit"),
            total_refunds=_sum(movements, LedgerEntryType.REFUND, "debit"),
            closing_balance=visible[-1].balance if visible else round_money(window_opening)
        )
        return CustomerLedger(
            customer_id=customer.id,
            customer_name=customer.display_name,
            has_opening_transaction=opening is not None,
            rows=visible,
            summary=summary
        )

    def calculate_customer_balance(self, customer_id: UUID) -> CustomerBalance:
        customer = self.scope.get(Customer, customer_id, "Cliente")
        opening, opening_ar, opening_advance = self._opening_figures(customer)
        rows = self._customer_rows(customer, opening, opening_ar, opening_advance)
        visible, _ = _running_ledger(rows)
        net = visible[-1].balance if visible else ZERO

        return CustomerBalance(
            customer_id=customer.id,
            customer_name=customer.display_name,
            has_opening_transaction=opening is not None,
            opening_ar_balance=round_money(opening_ar),
            opening_advance_balance=round_money(opening_advance),
            total_orders=_sum(visible, LedgerEntryType.ORDER, "debit"),
            total_payments=_sum(visible, LedgerEntryType.PAYMENT, "credit"),
            total_direct_payments=sum(
                (row.credit for row in visible if row.type == LedgerEntryType.PAYMENT and row.direct), ZERO
            ),
            total_returns=_sum(visible, LedgerEntryType.RETURN, "credit"),
            total_refunds=_sum(visible, LedgerEntryType.REFUND, "debit"),
            net_balance=net,
            total_pending=max(net, ZERO),
            available_advance=max(-net, ZERO)
        )

    def recalculate_customer_stats(self, customer_id: UUID, commit: bool = True) -> CustomerStats:
        """
        Recalcula total_orders, total_spent y last_order_date desde las órdenes
        vinculadas (no canceladas). Siempre converge al mismo resultado.
        """
        customer = self.scope.get(Customer, customer_id, "Cliente")
        orders = self.scope.query(Order).filter(
            Order.customer_id == customer.id,
            Order.status != OrderStatus.CANCELLED
        ).all()

        customer.total_orders = len(orders)
        customer.total_spent = round_money(sum(
            (to_decimal(o.payment_amount) + to_decimal(o.shipping_charges) for o in orders), ZERO
        ))
        customer.last_order_date = max((o.order_date for o in orders), key=as_naive_utc, default=None)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(customer)

        logger.debug(f"Customer {customer.id} stats: {customer.total_orders} orders, spent {customer.total_spent}")
        return CustomerStats(
            customer_id=customer.id,
            total_orders=customer.total_orders,
            total_spent=customer.total_spent,
            last_order_date=customer.last_order_date
        )

    def get_all_customer_balances(self) -> List[CustomerBalance]:
        customers = self.scope.query(Customer).order_by(Customer.name).all()
        return [self.calculate_customer_balance(c.id) for c in customers]

    # ===== PROVEEDORES =====

    def _supplier_rows(self, supplier: Supplier) -> List[LedgerRow]:
        rows = []
        opening = to_decimal(supplier.opening_balance)
        if opening != ZERO:
            rows.append(LedgerRow(
                date=supplier.opening_balance_date or supplier.created_at,
                type=LedgerEntryType.OPENING,
                reference="OPENING",
                description="Opening Balance",
                debit=max(opening, ZERO),
                credit=max(-opening, ZERO)
            ))

        invoices = self.scope.query(PurchaseInvoice).filter(
            PurchaseInvoice.supplier_id == supplier.id
        ).order_by(PurchaseInvoice.invoice_date).all()
        payments = self.scope.query(Payment).filter(
            Payment.supplier_id == supplier.id,
            Payment.type == PaymentType.SUPPLIER_PAYMENT
        ).order_by(Payment.payment_date).all()
        paid_invoice_ids = {p.purchase_invoice_id for p in payments if p.purchase_invoice_id}

        for invoice in invoices:
            rows.append(LedgerRow(
                date=invoice.invoice_date,
                type=LedgerEntryType.PURCHASE,
                reference=invoice.invoice_number,
                description=f"Purchase Invoice {invoice.invoice_number}",
                debit=round_money(invoice.total_amount),
                source_id=invoice.id
            ))
            # Facturas sin pagos registrados: se usa el monto pagado de la factura
            if invoice.id not in paid_invoice_ids and to_decimal(invoice.payment_amount) > ZERO:
                rows.append(LedgerRow(
                    date=invoice.invoice_date,
                    type=LedgerEntryType.PAYMENT,
                    reference=invoice.invoice_number,
                    description=f"Payment on invoice {invoice.invoice_number}",
                    credit=round_money(invoice.payment_amount),
                    source_id=invoice.id
                ))

        for payment in payments:
            advance_used = to_decimal(payment.advance_used)
            description = f"Payment {payment.payment_number}"
            if advance_used > ZERO:
                description += f" (Advance Used: {advance_used})"
            rows.append(LedgerRow(
                date=payment.payment_date,
                type=LedgerEntryType.PAYMENT,
                reference=payment.payment_number,
                description=description,
                credit=round_money(payment.amount),
                direct=payment.purchase_invoice_id is None,
                source_id=payment.id
            ))

        returns = self.scope.query(Return).filter(
            Return.supplier_id == supplier.id,
            Return.return_type == ReturnType.SUPPLIER,
            Return.status.in_(POSTED_RETURN_STATUSES)
        ).order_by(Return.return_date).all()
        for return_ in returns:
            rows.append(LedgerRow(
                date=return_.return_date,
                type=LedgerEntryType.RETURN,
                reference=return_.return_number,
                description=f"Return {return_.return_number}",
                credit=round_money(return_.total_amount),
                source_id=return_.id
            ))
            cash_part = round_money(return_.cash_refund_amount)
            if return_.settlement_method != SettlementMethod.REDUCE_PAYABLE and cash_part > ZERO:
                rows.append(LedgerRow(
                    date=return_.return_date,
                    type=LedgerEntryType.REFUND,
                    reference=return_.return_number,
                    description=f"Refund received {return_.return_number}",
                    debit=cash_part,
                    source_id=return_.id
                ))
        return rows

    def build_supplier_ledger(
        self,
        supplier_id: UUID,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None
    ) -> SupplierLedger:
        supplier = self.scope.get(Supplier, supplier_id, "Proveedor")
        visible, window_opening = _running_ledger(self._supplier_rows(supplier), date_from, date_to)

        movements = [row for row in visible if row.type != LedgerEntryType.OPENING]
        opening_balance = window_opening + sum(
            (row.debit - row.credit for row in visible if row.type == LedgerEntryType.OPENING), ZERO
        )
        summary = SupplierLedgerSummary(
            opening_balance=round_money(opening_balance),
            total_purchases=_sum(movements, LedgerEntryType.PURCHASE, "debit"),
            total_payments=_sum(movements, LedgerEntryType.PAYMENT, "credit"),
            total_returns=_sum(movements, LedgerEntryType.RETURN, "credit"),
            total_refunds=_sum(movements, LedgerEntryType.REFUND, "debit"),
            closing_balance=visible[-1].balance if visible else round_money(window_opening)
        )
        return SupplierLedger(
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            rows=visible,
            summary=summary
        )

    def calculate_supplier_balance(self, supplier_id: UUID) -> SupplierBalance:
        """pending = apertura + compras - pagos - devoluciones + reembolsos recibidos"""
        supplier = self.scope.get(Supplier, supplier_id, "Proveedor")
        rows = self._supplier_rows(supplier)

        opening = round_money(supplier.opening_balance)
        purchases = _sum(rows, LedgerEntryType.PURCHASE, "debit")
        payments = _sum(rows, LedgerEntryType.PAYMENT, "credit")
        returns = _sum(rows, LedgerEntryType.RETURN, "credit")
        refunds = _sum(rows, LedgerEntryType.REFUND, "debit")

        return SupplierBalance(
            supplier_id=supplier.id,
            supplier_name=supplier.name,
            opening_balance=opening,
            total_purchases=purchases,
            total_payments=payments,
            total_returns=returns,
            total_refunds=refunds,
            pending=round_money(opening + purchases - payments - returns + refunds),
            advance_balance=round_money(supplier.advance_balance)
        )

    def get_all_supplier_balances(self) -> List[SupplierBalance]:
        suppliers = self.scope.query(Supplier).order_by(Supplier.name).all()
        return [self.calculate_supplier_balance(s.id) for s in suppliers]

    # ===== RESUMEN Y CONCILIACIÓN =====

    def get_balance_summary(self) -> BalanceSummary:
        customer_balances = self.get_all_customer_balances()
        supplier_balances = self.get_all_supplier_balances()
        accounts = self.scope.query(Account).all()

        receivables = sum((b.total_pending for b in customer_balances), ZERO)
        # Los anticipos a proveedores (pending negativo) no son cuentas por pagar
        payables = sum((max(b.pending, ZERO) for b in supplier_balances), ZERO)
        cash = sum(
            (to_decimal(a.balance) for a in accounts if a.subtype in (AccountSubtype.CASH, AccountSubtype.BANK)),
            ZERO
        )
        expenses: Dict[str, Decimal] = {
            a.name: round_money(a.balance) for a in accounts if a.type == AccountType.EXPENSE
        }

        return BalanceSummary(
            total_receivables=round_money(receivables),
            total_payables=round_money(payables),
            cash_position=round_money(cash),
            net_balance=round_money(receivables - payables),
            expenses_by_category=expenses,
            customer_count=len(customer_balances),
            supplier_count=len(supplier_balances)
        )

    def reconcile_invoice_payable(self, invoice_id: UUID) -> InvoicePayableReconciliation:
        """
        Compara la cuenta por pagar registrada en los asientos de la factura con
        total - devoluciones compensadas - pagos. La diferencia se informa, no se
        corrige.
        """
        invoice = self.scope.get(PurchaseInvoice, invoice_id, "Factura de compra")

        returns = self.scope.query(Return).filter(
            Return.purchase_invoice_id == invoice.id,
            Return.return_type == ReturnType.SUPPLIER,
            Return.status.in_(POSTED_RETURN_STATUSES)
        ).all()
        offsets = sum((to_decimal(r.payable_offset_amount) for r in returns), ZERO)
        payments = self.scope.query(Payment).filter(Payment.purchase_invoice_id == invoice.id).all()
        settled = sum((to_decimal(p.total_settled) for p in payments), ZERO)
        expected = round_money(to_decimal(invoice.total_amount) - offsets - settled)

        lines = self.scope.query(TransactionLine).join(
            TransactionLine.transaction
        ).join(
            TransactionLine.account
        ).filter(
            Transaction.purchase_invoice_id == invoice.id,
            Account.code == AccountCodes.ACCOUNTS_PAYABLE
        ).all()
        recorded = round_money(sum(
            (to_decimal(line.credit_amount) - to_decimal(line.debit_amount) for line in lines), ZERO
        ))

        drift = round_money(recorded - expected)
        balanced = abs(drift) <= settings.BALANCE_TOLERANCE
        if balanced:
            logger.info(f"Invoice {invoice.invoice_number} payable reconciled: {recorded}")
        else:
            logger.warning(
                f"Invoice {invoice.invoice_number} payable drift: recorded {recorded}, "
                f"expected {expected} (drift {drift})"
            )
        return InvoicePayableReconciliation(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            expected_payable=expected,
            recorded_payable=recorded,
            drift=drift,
            balanced=balanced
        )
