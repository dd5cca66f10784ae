from pydantic import BaseModel
from uuid import UUID
from decimal import Decimal
from typing import Optional, List, Dict
from datetime import datetime
import enum


class LedgerEntryType(str, enum.Enum):
    OPENING = "OPENING"
    ORDER = "ORDER"
    PURCHASE = "PURCHASE"
    PAYMENT = "PAYMENT"
    RETURN = "RETURN"
    REFUND = "REFUND"


class LedgerRow(BaseModel):
    """Movimiento del ledger; balance es el saldo acumulado después de la fila"""
    date: datetime
    type: LedgerEntryType
    reference: str
    description: str
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    direct: bool = False
    source_id: Optional[UUID] = None


class CustomerLedgerSummary(BaseModel):
    opening_balance: Decimal
    total_orders: Decimal
    total_payments: Decimal
    total_returns: Decimal
    total_refunds: Decimal
    closing_balance: Decimal


class CustomerLedger(BaseModel):
    customer_id: UUID
    customer_name: str
    has_opening_transaction: bool
    rows: List[LedgerRow]
    summary: CustomerLedgerSummary


class CustomerBalance(BaseModel):
    """net_balance positivo: el cliente nos debe; negativo: saldo a favor del cliente"""
    customer_id: UUID
    customer_name: str
    has_opening_transaction: bool
    opening_ar_balance: Decimal
    opening_advance_balance: Decimal
    total_orders: Decimal
    total_payments: Decimal
    total_direct_payments: Decimal
    total_returns: Decimal
    total_refunds: Decimal
    net_balance: Decimal
    total_pending: Decimal
    available_advance: Decimal


class SupplierLedgerSummary(BaseModel):
    opening_balance: Decimal
    total_purchases: Decimal
    total_payments: Decimal
    total_returns: Decimal
    total_refunds: Decimal
    closing_balance: Decimal


class SupplierLedger(BaseModel):
    supplier_id: UUID
    supplier_name: str
    rows: List[LedgerRow]
    summary: SupplierLedgerSummary


class SupplierBalance(BaseModel):
    """pending positivo: le debemos al proveedor; negativo: anticipo a nuestro favor"""
    supplier_id: UUID
    supplier_name: str
    opening_balance: Decimal
    total_purchases: Decimal
    total_payments: Decimal
    total_returns: Decimal
    total_refunds: Decimal
    pending: Decimal
    advance_balance: Decimal


class BalanceSummary(BaseModel):
    total_receivables: Decimal = Decimal("0")
    total_payables: Decimal = Decimal("0")
    cash_position: Decimal = Decimal("0")
    net_balance: Decimal = Decimal("0")
    expenses_by_category: Dict[str, Decimal] = {}
    customer_count: int = 0
    supplier_count: int = 0


class CustomerStats(BaseModel):
    customer_id: UUID
    total_orders: int
    total_spent: Decimal
    last_order_date: Optional[datetime] = None


class InvoicePayableReconciliation(BaseModel):
    """expected: total - devoluciones compensadas - pagos; actual: efecto neto en Cuentas por Pagar"""
    invoice_id: UUID
    invoice_number: str
    expected_payable: Decimal
    recorded_payable: Decimal
    drift: Decimal
    balanced: bool
