"""
Servicios de negocio para el módulo de Devoluciones

Devoluciones a proveedor (se aprueban al registrarse):
- REDUCE_PAYABLE: Dr Cuentas por Pagar / Cr Inventario
- CASH_REFUND: Dr Caja/Banco / Cr Inventario
- MIXED: Dr Cuentas por Pagar (parte compensada), Dr Caja/Banco (resto) / Cr Inventario

Devoluciones de clientes: PENDING -> APPROVED -> REFUNDED, o REJECTED.
- Aprobación: Dr Devoluciones en Ventas (+ Dr Ingresos por Envío con FULL_REFUND)
  / Cr Cuentas por Cobrar; el inventario vuelve a stock
- Reembolso: Dr Cuentas por Cobrar / Cr Caja/Banco, o Cr Customer Advance cuando
  se abona a favor del cliente
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func

from app.core.config import settings
from app.common.exceptions import InvalidOperationError
from app.common.tenancy import TenantScopedService
from app.common.validators import round_money, to_decimal, utcnow
from app.modules.accounting.chart import AccountCodes, account_code_for_payment_method
from app.modules.accounting.models import PartyType, TransactionKind
from app.modules.accounting.service import TransactionService
from app.modules.contacts.models import Customer, Supplier
from app.modules.inventory.service import InventoryService
from app.modules.orders.models import BILLABLE_STATUSES, Order, OrderItem
from app.modules.products.models import Product
from app.modules.purchases.models import PurchaseInvoice, PurchaseItem
from app.modules.returns.models import (
    RefundMethod, Return, ReturnItem, ReturnStatus, ReturnType,
    SettlementMethod, ShippingChargeHandling
)
from app.modules.returns.schemas import CustomerReturnCreate, ReturnItemCreate, SupplierReturnCreate

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

CUSTOMER_RETURN_TYPES = (ReturnType.CUSTOMER_FULL, ReturnType.CUSTOMER_PARTIAL)


class ReturnService(TenantScopedService):
    """Devoluciones a proveedor y de clientes"""

    def __init__(self, db, tenant_id: UUID):
        super().__init__(db, tenant_id)
        self.transactions = TransactionService(db, tenant_id)
        self.inventory = InventoryService(db, tenant_id)

    def _new_return(self, return_type: ReturnType, when, **fields) -> Return:
        return_ = Return(
            return_number=self.scope.next_number(settings.RETURN_NUMBER_PREFIX, when),
            return_type=return_type,
            return_date=when,
            **fields
        )
        self.scope.add(return_)
        return return_

    def _returned_quantities(self, column, ids: List[UUID]) -> Dict[UUID, int]:
        """Cantidades ya devueltas por ítem de origen (devoluciones no rechazadas)"""
        if not ids:
            return {}
        rows = self.scope.query(ReturnItem, column, func.sum(ReturnItem.quantity)).join(
            Return, ReturnItem.return_id == Return.id
        ).filter(
            column.in_(ids),
            Return.status != ReturnStatus.REJECTED
        ).group_by(column).all()
        return {row[0]: int(row[1] or 0) for row in rows}

    # ===== PROVEEDORES =====

    def _supplier_return_item(
        self,
        item_data: ReturnItemCreate,
        invoice: Optional[PurchaseInvoice],
        returned: Dict[UUID, int]
    ) -> Tuple[ReturnItem, Optional[PurchaseInvoice]]:
        if item_data.purchase_item_id:
            source = self.scope.get(PurchaseItem, item_data.purchase_item_id, "Ítem de compra")
            if source.is_deleted:
                raise InvalidOperationError(f"El ítem {source.name} pertenece a una factura eliminada")
            if invoice is not None and source.purchase_invoice_id != invoice.id:
                raise InvalidOperationError(
                    f"El ítem {source.name} no pertenece a la factura {invoice.invoice_number}"
                )
            available = source.quantity - returned.get(source.id, 0)
            if item_data.quantity > available:
                raise InvalidOperationError(
                    f"Solo quedan {available} unidades de {source.name} por devolver",
                    purchase_item_id=source.id,
                    available=available
                )
            returned[source.id] = returned.get(source.id, 0) + item_data.quantity
            unit_price = item_data.unit_price if item_data.unit_price is not None else source.purchase_price
            item = ReturnItem(
                purchase_item_id=source.id,
                product_id=item_data.product_id or source.product_id,
                variant_id=item_data.variant_id or source.variant_id,
                product_name=item_data.product_name or source.name,
                quantity=item_data.quantity,
                unit_price=to_decimal(unit_price)
            )
            return item, source.purchase_invoice

        product = None
        if item_data.product_id:
            product = self.scope.get(Product, item_data.product_id, "Producto")
        unit_price = item_data.unit_price
        if unit_price is None and product is not None:
            unit_price = product.last_purchase_price
        if unit_price is None or not (item_data.product_name or product):
            raise InvalidOperationError("Cada ítem requiere purchase_item_id, o producto y precio")
        item = ReturnItem(
            product_id=item_data.product_id,
            variant_id=item_data.variant_id,
            product_name=item_data.product_name or product.name,
            quantity=item_data.quantity,
            unit_price=to_decimal(unit_price)
        )
        return item, None

    def post_supplier_return(self, data: SupplierReturnCreate) -> Return:
        """
        Registrar y aprobar una devolución a proveedor.

        El método de liquidación se guarda una sola vez con la devolución; de él
        salen el asiento, el saldo del proveedor y la conciliación de la factura.
        """
        supplier = self.scope.get(Supplier, data.supplier_id, "Proveedor")
        invoice = None
        if data.purchase_invoice_id:
            invoice = self.scope.get(PurchaseInvoice, data.purchase_invoice_id, "Factura de compra")
        if invoice is not None and invoice.supplier_id != supplier.id:
            raise InvalidOperationError(f"La factura {invoice.invoice_number} es de otro proveedor")

        source_ids = [i.purchase_item_id for i in data.items if i.purchase_item_id]
        returned = self._returned_quantities(ReturnItem.purchase_item_id, source_ids)
        items = []
        for item_data in data.items:
            item, source_invoice = self._supplier_return_item(item_data, invoice, returned)
            if invoice is None and source_invoice is not None:
                invoice = source_invoice
            items.append(item)

        total = round_money(sum((item.line_total for item in items), ZERO))
        if total <= ZERO:
            raise InvalidOperationError("El total de la devolución debe ser mayor a cero")

        if data.settlement_method == SettlementMethod.REDUCE_PAYABLE:
            offset = total
        elif data.settlement_method == SettlementMethod.CASH_REFUND:
            offset = ZERO
        else:
            offset = round_money(data.payable_offset_amount)
            if not ZERO < offset < total:
                raise InvalidOperationError(
                    f"En MIXED el monto compensado debe estar entre 0 y {total}",
                    payable_offset_amount=str(offset)
                )
        cash_part = total - offset
        when = data.return_date or utcnow()

        try:
            return_ = self._new_return(
                ReturnType.SUPPLIER,
                when,
                status=ReturnStatus.APPROVED,
                reason=data.reason,
                total_amount=total,
                shipping_amount=ZERO,
                refund_amount=cash_part,
                settlement_method=data.settlement_method,
                payable_offset_amount=offset,
                refund_method=data.refund_method if cash_part > ZERO else None,
                purchase_invoice_id=invoice.id if invoice else None,
                supplier_id=supplier.id,
                approved_at=utcnow()
            )
            for item in items:
                item.tenant_id = self.tenant_id
            return_.items.extend(items)
            self.db.flush()

            cash_code = account_code_for_payment_method(data.refund_method)
            transaction = self.transactions.post_entries(
                f"Supplier Return {return_.return_number} - {supplier.name}",
                [
                    (AccountCodes.ACCOUNTS_PAYABLE, offset, ZERO),
                    (cash_code, cash_part, ZERO),
                    (AccountCodes.INVENTORY, ZERO, total),
                ],
                TransactionKind.RETURN,
                transaction_date=when,
                party_type=PartyType.SUPPLIER,
                party_id=supplier.id,
                purchase_invoice_id=return_.purchase_invoice_id,
                order_return_id=return_.id
            )
            return_.transaction_id = transaction.id

            self.inventory.decrease_inventory_from_supplier_return(return_.items, return_.return_number)
            self.db.commit()
            self.db.refresh(return_)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Supplier return {return_.return_number} posted ({data.settlement_method.value}): "
            f"total {total}, payable offset {offset}, cash {cash_part}"
        )
        if return_.purchase_invoice_id:
            from app.modules.balances.service import BalanceService
            BalanceService(self.db, self.tenant_id).reconcile_invoice_payable(return_.purchase_invoice_id)
        return return_

    # ===== CLIENTES =====

    def _match_order_item(self, order: Order, item_data: ReturnItemCreate) -> OrderItem:
        for order_item in order.items:
            if item_data.order_item_id:
                if order_item.id == item_data.order_item_id:
                    return order_item
            elif order_item.product_id == item_data.product_id and (
                item_data.variant_id is None or order_item.variant_id == item_data.variant_id
            ):
                return order_item
        raise InvalidOperationError(
            f"El ítem no pertenece a la orden {order.order_number}",
            order_item_id=item_data.order_item_id,
            product_id=item_data.product_id
        )

    def create_customer_return(self, data: CustomerReturnCreate) -> Return:
        """
        Registrar una devolución de cliente pendiente de aprobación.

        CUSTOMER_FULL devuelve todo lo que queda por devolver de la orden;
        CUSTOMER_PARTIAL no puede superar lo pendiente por ítem.
        """
        order = self.scope.get(Order, data.order_id, "Orden")
        if order.status not in BILLABLE_STATUSES:
            raise InvalidOperationError(
                f"La orden {order.order_number} está en estado {order.status.value} y no admite devoluciones",
                order_number=order.order_number
            )

        returned = self._returned_quantities(ReturnItem.order_item_id, [i.id for i in order.items])
        if data.return_type == ReturnType.CUSTOMER_FULL:
            requested = [
                (order_item, order_item.quantity - returned.get(order_item.id, 0))
                for order_item in order.items
            ]
            requested = [(order_item, qty) for order_item, qty in requested if qty > 0]
            if not requested:
                raise InvalidOperationError(f"La orden {order.order_number} ya fue devuelta por completo")
        else:
            requested = []
            for item_data in data.items:
                order_item = self._match_order_item(order, item_data)
                available = order_item.quantity - returned.get(order_item.id, 0)
                if item_data.quantity > available:
                    raise InvalidOperationError(
                        f"Solo quedan {available} unidades de {order_item.product_name} por devolver",
                        order_item_id=order_item.id,
                        available=available
                    )
                returned[order_item.id] = returned.get(order_item.id, 0) + item_data.quantity
                requested.append((order_item, item_data.quantity))

        items = [
            ReturnItem(
                tenant_id=self.tenant_id,
                order_item_id=order_item.id,
                product_id=order_item.product_id,
                variant_id=order_item.variant_id,
                product_name=order_item.product_name,
                quantity=quantity,
                unit_price=to_decimal(order_item.unit_price)
            )
            for order_item, quantity in requested
        ]
        total = round_money(sum((item.line_total for item in items), ZERO))
        shipping = ZERO
        if data.shipping_charge_handling == ShippingChargeHandling.FULL_REFUND:
            shipping = round_money(order.shipping_charges)

        try:
            return_ = self._new_return(
                data.return_type,
                data.return_date or utcnow(),
                status=ReturnStatus.PENDING,
                reason=data.reason,
                total_amount=total,
                shipping_amount=shipping,
                refund_amount=ZERO,
                payable_offset_amount=ZERO,
                shipping_charge_handling=data.shipping_charge_handling,
                order_id=order.id,
                customer_id=order.customer_id
            )
            return_.items.extend(items)
            self.db.commit()
            self.db.refresh(return_)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Customer return {return_.return_number} created for order {order.order_number}: "
            f"total {total}, shipping {shipping}"
        )
        return return_

    def _get_customer_return(self, return_id: UUID) -> Return:
        return_ = self.get_return(return_id)
        if return_.return_type not in CUSTOMER_RETURN_TYPES:
            raise InvalidOperationError(f"La devolución {return_.return_number} no es de cliente")
        return return_

    def _require_status(self, return_: Return, expected: ReturnStatus) -> None:
        if return_.status != expected:
            raise InvalidOperationError(
                f"La devolución {return_.return_number} está en estado {return_.status.value} "
                f"(se esperaba {expected.value})",
                return_number=return_.return_number,
                status=return_.status.value
            )

    def post_customer_return(self, return_id: UUID) -> Return:
        """Aprobar: registra la devolución contra la cuenta por cobrar y devuelve el stock"""
        return_ = self._get_customer_return(return_id)
        self._require_status(return_, ReturnStatus.PENDING)
        customer = self.scope.get(Customer, return_.customer_id, "Cliente")
        order = self.scope.get(Order, return_.order_id, "Orden")

        total = round_money(return_.total_amount)
        shipping = round_money(return_.shipping_amount)
        try:
            transaction = self.transactions.post_entries(
                f"Customer Return {return_.return_number} - Order {order.order_number}",
                [
                    (AccountCodes.SALES_RETURNS, total, ZERO),
                    (AccountCodes.SHIPPING_REVENUE, shipping, ZERO),
                    (AccountCodes.ACCOUNTS_RECEIVABLE, ZERO, total + shipping),
                ],
                TransactionKind.RETURN,
                transaction_date=return_.return_date,
                party_type=PartyType.CUSTOMER,
                party_id=customer.id,
                order_id=order.id,
                order_return_id=return_.id
            )
            return_.transaction_id = transaction.id
            return_.status = ReturnStatus.APPROVED
            return_.approved_at = utcnow()

            self.inventory.increase_inventory_from_customer_return(return_.items, return_.return_number)
            self.db.commit()
            self.db.refresh(return_)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Customer return {return_.return_number} approved ({transaction.transaction_number})")
        return return_

    def process_refund(
        self,
        return_id: UUID,
        refund_method: RefundMethod = RefundMethod.CASH,
        amount: Optional[Decimal] = None
    ) -> Return:
        """
        Reembolsar una devolución aprobada.

        CUSTOMER_ADVANCE deja el monto como saldo a favor del cliente en lugar de
        pagarlo por caja o banco.
        """
        return_ = self._get_customer_return(return_id)
        self._require_status(return_, ReturnStatus.APPROVED)
        customer = self.scope.get(Customer, return_.customer_id, "Cliente")
        order = self.scope.get(Order, return_.order_id, "Orden")

        refundable = round_money(to_decimal(return_.total_amount) + to_decimal(return_.shipping_amount))
        amount = round_money(amount) if amount is not None else refundable
        if amount <= ZERO or amount > refundable:
            raise InvalidOperationError(
                f"El reembolso debe estar entre 0 y {refundable}",
                amount=str(amount)
            )

        if refund_method == RefundMethod.CUSTOMER_ADVANCE:
            credit_code = AccountCodes.CUSTOMER_ADVANCE
        else:
            credit_code = account_code_for_payment_method(refund_method)

        try:
            transaction = self.transactions.post_entries(
                f"Refund {return_.return_number} - {customer.display_name}",
                [
                    (AccountCodes.ACCOUNTS_RECEIVABLE, amount, ZERO),
                    (credit_code, ZERO, amount),
                ],
                TransactionKind.REFUND,
                party_type=PartyType.CUSTOMER,
                party_id=customer.id,
                order_id=order.id,
                order_return_id=return_.id
            )
            return_.refund_transaction_id = transaction.id
            return_.refund_amount = amount
            return_.refund_method = refund_method
            return_.status = ReturnStatus.REFUNDED
            return_.refunded_at = utcnow()

            if refund_method == RefundMethod.CUSTOMER_ADVANCE:
                customer.advance_balance = to_decimal(customer.advance_balance) + amount
            else:
                order.refund_amount = to_decimal(order.refund_amount) + amount
            self.db.commit()
            self.db.refresh(return_)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Return {return_.return_number} refunded: {amount} via {refund_method.value}")
        return return_

    def reject_return(self, return_id: UUID, reason: Optional[str] = None) -> Return:
        return_ = self.get_return(return_id)
        self._require_status(return_, ReturnStatus.PENDING)
        return_.status = ReturnStatus.REJECTED
        if reason:
            return_.reason = reason
        self.db.commit()
        self.db.refresh(return_)
        logger.info(f"Return {return_.return_number} rejected")
        return return_

    # ===== CONSULTAS =====

    def get_return(self, return_id: UUID) -> Return:
        return self.scope.get(Return, return_id, "Devolución")

    def list_returns(
        self,
        return_type: Optional[ReturnType] = None,
        status: Optional[ReturnStatus] = None,
        supplier_id: Optional[UUID] = None,
        customer_id: Optional[UUID] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Return], int]:
        query = self.scope.query(Return)
        if return_type:
            query = query.filter(Return.return_type == return_type)
        if status:
            query = query.filter(Return.status == status)
        if supplier_id:
            query = query.filter(Return.supplier_id == supplier_id)
        if customer_id:
            query = query.filter(Return.customer_id == customer_id)
        total = query.count()
        items = query.order_by(Return.return_date.desc()).offset(offset).limit(limit).all()
        return items, total
