"""
Servicios de negocio para el módulo de Compras

Implementa:
- Registro de facturas de compra: factura e ítems, entrada de inventario y un
  asiento (Dr Inventario por el total, Cr Caja/Banco por lo pagado, Cr Cuentas
  por Pagar por el saldo), más el pago inicial como Payment
- Eliminación de facturas: reversión contable de sus asientos de compra y
  reversión de inventario, en una sola unidad de trabajo
"""

import logging
from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from app.common.exceptions import ConflictError
from app.common.tenancy import TenantScopedService
from app.common.validators import round_money, utcnow
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import PartyType, Transaction, TransactionKind
from app.modules.accounting.service import TransactionService
from app.modules.contacts.models import Supplier
from app.modules.inventory.service import InventoryService
from app.modules.payments.models import Payment, PaymentType
from app.modules.payments.service import PaymentService
from app.modules.purchases.models import PurchaseInvoice, PurchaseItem
from app.modules.purchases.schemas import PurchaseInvoiceCreate, PurchaseInvoiceDeleted

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class PurchaseService(TenantScopedService):
    """Facturas de compra a proveedores"""

    def __init__(self, db, tenant_id: UUID):
        super().__init__(db, tenant_id)
        self.transactions = TransactionService(db, tenant_id)
        self.inventory = InventoryService(db, tenant_id)
        self.payments = PaymentService(db, tenant_id)

    def create_purchase_invoice(self, data: PurchaseInvoiceCreate) -> PurchaseInvoice:
        """
        Registrar una factura de compra.

        Inventario, asiento y pago inicial se confirman juntos; cualquier error
        revierte la factura completa.
        """
        supplier = self.scope.get(Supplier, data.supplier_id, "Proveedor")
        number = data.invoice_number.strip()
        existing = self.scope.query(PurchaseInvoice).filter(PurchaseInvoice.invoice_number == number).first()
        if existing:
            raise ConflictError(f"La factura {number} ya existe", invoice_number=number)

        total = round_money(data.total_amount)
        paid = round_money(data.payment_amount)
        unpaid = total - paid
        when = data.invoice_date or utcnow()

        try:
            invoice = PurchaseInvoice(
                supplier_id=supplier.id,
                invoice_number=number,
                invoice_date=when,
                total_amount=total,
                payment_amount=paid,
                payment_method=data.payment_method if paid > ZERO else None,
                notes=data.notes
            )
            self.scope.add(invoice)
            self.db.flush()

            items = []
            for item_data in data.items:
                item = PurchaseItem(
                    purchase_invoice_id=invoice.id,
                    invoice_number=number,
                    **item_data.model_dump()
                )
                self.scope.add(item)
                items.append(item)
            self.db.flush()

            self.inventory.update_inventory_from_purchase(items, invoice.id, number, commit=False)

            account = self.payments.cash_account(data.payment_method, data.account_id) if paid > ZERO else None
            entries = [(AccountCodes.INVENTORY, total, ZERO)]
            if account is not None:
                entries.append((account.code, ZERO, paid))
            entries.append((AccountCodes.ACCOUNTS_PAYABLE, ZERO, unpaid))

            transaction = self.transactions.post_entries(
                f"Purchase Invoice {number} - {supplier.name}",
                entries,
                TransactionKind.PURCHASE,
                transaction_date=when,
                party_type=PartyType.SUPPLIER,
                party_id=supplier.id,
                purchase_invoice_id=invoice.id
            )

            if account is not None:
                self.payments.new_payment(
                    PaymentType.SUPPLIER_PAYMENT,
                    when,
                    amount=paid,
                    advance_used=ZERO,
                    payment_method=data.payment_method,
                    account_id=account.id,
                    supplier_id=supplier.id,
                    purchase_invoice_id=invoice.id,
                    transaction_id=transaction.id,
                    notes=f"Initial payment for invoice {number}"
                )

            self.db.commit()
            self.db.refresh(invoice)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Purchase invoice {number} created: total {total}, paid {paid}, "
            f"{len(data.items)} items (supplier {supplier.name})"
        )
        return invoice

    def delete_purchase_invoice(self, invoice_id: UUID) -> PurchaseInvoiceDeleted:
        """
        Eliminar una factura con su reversión contable y de inventario.

        Los asientos de compra se revierten con asientos espejo; el pago inicial
        registrado con la compra se elimina porque su asiento queda revertido.
        Pagos posteriores y devoluciones quedan desvinculados de la factura.
        """
        invoice = self.scope.get(PurchaseInvoice, invoice_id, "Factura de compra")
        number = invoice.invoice_number

        try:
            postings = self.scope.query(Transaction).filter(
                Transaction.purchase_invoice_id == invoice.id,
                Transaction.kind == TransactionKind.PURCHASE
            ).all()

            reversed_numbers = []
            for posting in postings:
                already = self.scope.query(Transaction).filter(
                    Transaction.reverses_transaction_id == posting.id
                ).first()
                if already:
                    continue
                reversal = self.transactions.reverse_transaction(
                    posting.id,
                    f"Reversal of purchase invoice {number} ({posting.transaction_number})",
                    commit=False
                )
                reversed_numbers.append(reversal.transaction_number)

                for payment in self.scope.query(Payment).filter(Payment.transaction_id == posting.id).all():
                    self.db.delete(payment)
            self.db.flush()

            logs = self.inventory.delete_purchase_invoice(invoice.id, number, commit=False)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Purchase invoice {number} deleted ({len(reversed_numbers)} postings reversed)")
        return PurchaseInvoiceDeleted(
            invoice_number=number,
            reversed_transactions=reversed_numbers,
            inventory_reversals=len(logs)
        )

    def get_invoice(self, invoice_id: UUID) -> PurchaseInvoice:
        return self.scope.get(PurchaseInvoice, invoice_id, "Factura de compra")

    def list_invoices(
        self,
        supplier_id: Optional[UUID] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[PurchaseInvoice], int]:
        query = self.scope.query(PurchaseInvoice)
        if supplier_id:
            query = query.filter(PurchaseInvoice.supplier_id == supplier_id)
        total = query.count()
        items = query.order_by(PurchaseInvoice.invoice_date.desc()).offset(offset).limit(limit).all()
        return items, total
