"""
Servicios de negocio para el módulo de Órdenes

Ciclo de vida: PENDING -> CONFIRMED -> DISPATCHED -> COMPLETED, o CANCELLED.

- Al crear: cargos de envío y comisión COD con el servicio de envíos
- Al confirmar: asiento de venta (Dr Cuentas por Cobrar / Cr Ventas, Cr Ingresos
  por Envío, Cr COD Fee Payable), salida de inventario y recálculo de
  acumulados del cliente
- Al cancelar una orden confirmada: reversión del asiento de venta y devolución
  del inventario
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from app.core.config import settings
from app.common.exceptions import InvalidOperationError
from app.common.tenancy import TenantScopedService
from app.common.validators import round_money, to_decimal, utcnow
from app.modules.accounting.chart import AccountCodes
from app.modules.accounting.models import PartyType, TransactionKind
from app.modules.accounting.service import TransactionService
from app.modules.contacts.models import Customer
from app.modules.contacts.service import CustomerService
from app.modules.inventory.service import InventoryService
from app.modules.orders.models import CodFeePaidBy, Order, OrderItem, OrderStatus
from app.modules.orders.schemas import OrderCreate
from app.modules.products.models import Product, ProductVariant
from app.modules.shipping.service import ShippingService

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.DISPATCHED)


class OrderService(TenantScopedService):
    """Órdenes de venta"""

    def __init__(self, db, tenant_id: UUID):
        super().__init__(db, tenant_id)
        self.transactions = TransactionService(db, tenant_id)
        self.inventory = InventoryService(db, tenant_id)
        self.shipping = ShippingService(db, tenant_id)

    def _resolve_customer(self, data: OrderCreate) -> Customer:
        if data.customer_id:
            return self.scope.get(Customer, data.customer_id, "Cliente")
        return CustomerService(self.db, self.tenant_id).find_or_create_customer(
            data.customer_phone,
            name=data.customer_name,
            city=data.city,
            address=data.delivery_address
        )

    def create_order(self, data: OrderCreate) -> Order:
        """Crear orden PENDING; no mueve inventario ni registra asientos"""
        try:
            customer = self._resolve_customer(data)

            products: Dict[UUID, Product] = {}
            quantities: Dict[UUID, int] = {}
            unit_prices: Dict[UUID, Decimal] = {}
            items = []
            for item_data in data.items:
                product = products.get(item_data.product_id) or self.scope.get(
                    Product, item_data.product_id, "Producto"
                )
                products[product.id] = product
                if item_data.variant_id:
                    variant = self.scope.get(ProductVariant, item_data.variant_id, "Variante")
                    if variant.product_id != product.id:
                        raise InvalidOperationError("La variante no pertenece al producto")

                unit_price = item_data.unit_price
                if unit_price is None:
                    unit_price = to_decimal(product.current_retail_price)
                quantities[product.id] = quantities.get(product.id, 0) + item_data.quantity
                unit_prices.setdefault(product.id, unit_price)
                items.append(OrderItem(
                    tenant_id=self.tenant_id,
                    product_id=product.id,
                    variant_id=item_data.variant_id,
                    product_name=product.name,
                    quantity=item_data.quantity,
                    unit_price=unit_price
                ))

            shipping_charges = data.shipping_charges
            if shipping_charges is None:
                shipping_charges = self.shipping.calculate_shipping_charges(
                    data.city, list(products.values()), quantities, unit_prices
                )

            items_total = sum((item.line_total for item in items), ZERO)
            cod_amount = data.cod_amount
            if cod_amount is None:
                cod_amount = items_total + to_decimal(shipping_charges)

            cod_fee = data.cod_fee
            if cod_fee is None:
                cod_fee = ZERO
                # sin monto a recaudar no hay comisión COD
                if data.logistics_company_id and to_decimal(cod_amount) > ZERO:
                    cod_fee = self.shipping.calculate_cod_fee_for_company(data.logistics_company_id, cod_amount)

            when = data.order_date or utcnow()
            order = Order(
                order_number=self.scope.next_number(settings.ORDER_NUMBER_PREFIX, when),
                customer_id=customer.id,
                status=OrderStatus.PENDING,
                order_date=when,
                city=data.city,
                delivery_address=data.delivery_address,
                shipping_charges=round_money(shipping_charges),
                cod_amount=round_money(cod_amount),
                cod_fee=round_money(cod_fee),
                cod_fee_paid_by=data.cod_fee_paid_by,
                payment_amount=ZERO,
                refund_amount=ZERO,
                logistics_company_id=data.logistics_company_id,
                notes=data.notes
            )
            order.items.extend(items)
            self.scope.add(order)
            self.db.commit()
            self.db.refresh(order)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Order {order.order_number} created for {customer.display_name}: "
            f"items {items_total}, shipping {order.shipping_charges}, COD fee {order.cod_fee}"
        )
        return order

    def get_order(self, order_id: UUID) -> Order:
        return self.scope.get(Order, order_id, "Orden")

    def list_orders(
        self,
        customer_id: Optional[UUID] = None,
        status: Optional[OrderStatus] = None,
        limit: int = 20,
        offset: int = 0
    ) -> Tuple[List[Order], int]:
        query = self.scope.query(Order)
        if customer_id:
            query = query.filter(Order.customer_id == customer_id)
        if status:
            query = query.filter(Order.status == status)
        total = query.count()
        items = query.order_by(Order.order_date.desc()).offset(offset).limit(limit).all()
        return items, total

    # ===== TRANSICIONES =====

    def _require_status(self, order: Order, *allowed: OrderStatus) -> None:
        if order.status not in allowed:
            expected = ", ".join(s.value for s in allowed)
            raise InvalidOperationError(
                f"La orden {order.order_number} está en estado {order.status.value} (se esperaba {expected})",
                order_number=order.order_number,
                status=order.status.value
            )

    def _recalculate_stats(self, customer_id: UUID) -> None:
        from app.modules.balances.service import BalanceService
        BalanceService(self.db, self.tenant_id).recalculate_customer_stats(customer_id, commit=False)

    def confirm_order(self, order_id: UUID) -> Order:
        """
        Confirmar la orden: registra la venta y descuenta inventario.

        La comisión COD a cargo del negocio se registra como gasto contra la misma
        cuenta por pagar a la transportadora.
        """
        order = self.get_order(order_id)
        self._require_status(order, OrderStatus.PENDING)

        items_total = round_money(order.items_total)
        shipping = round_money(order.shipping_charges)
        cod_fee = round_money(order.cod_fee)
        customer_fee = cod_fee if order.cod_fee_paid_by == CodFeePaidBy.CUSTOMER else ZERO
        business_fee = cod_fee - customer_fee

        try:
            transaction = self.transactions.post_entries(
                f"Sale - Order {order.order_number}",
                [
                    (AccountCodes.ACCOUNTS_RECEIVABLE, items_total + shipping + customer_fee, ZERO),
                    (AccountCodes.COD_FEE_EXPENSE, business_fee, ZERO),
                    (AccountCodes.SALES_REVENUE, ZERO, items_total),
                    (AccountCodes.SHIPPING_REVENUE, ZERO, shipping),
                    (AccountCodes.COD_FEE_PAYABLE, ZERO, cod_fee),
                ],
                TransactionKind.SALE,
                transaction_date=order.order_date,
                party_type=PartyType.CUSTOMER,
                party_id=order.customer_id,
                order_id=order.id
            )
            order.sale_transaction_id = transaction.id
            order.status = OrderStatus.CONFIRMED
            order.confirmed_at = utcnow()

            self.inventory.decrease_inventory_from_order(order)
            self.db.flush()
            self._recalculate_stats(order.customer_id)
            self.db.commit()
            self.db.refresh(order)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Order {order.order_number} confirmed ({transaction.transaction_number})")
        return order

    def dispatch_order(self, order_id: UUID) -> Order:
        order = self.get_order(order_id)
        self._require_status(order, OrderStatus.CONFIRMED)
        order.status = OrderStatus.DISPATCHED
        order.dispatched_at = utcnow()
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.order_number} dispatched")
        return order

    def complete_order(self, order_id: UUID) -> Order:
        order = self.get_order(order_id)
        self._require_status(order, OrderStatus.DISPATCHED)
        order.status = OrderStatus.COMPLETED
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"Order {order.order_number} completed")
        return order

    def cancel_order(self, order_id: UUID) -> Order:
        """
        Cancelar la orden. Si ya estaba confirmada se revierte el asiento de venta
        y se devuelve el inventario. Las órdenes completadas se gestionan con
        devoluciones.
        """
        order = self.get_order(order_id)
        self._require_status(order, *CANCELLABLE_STATUSES)
        was_confirmed = order.status != OrderStatus.PENDING

        try:
            if was_confirmed:
                if order.sale_transaction_id:
                    self.transactions.reverse_transaction(
                        order.sale_transaction_id,
                        f"Cancellation - Order {order.order_number}",
                        commit=False
                    )
                self.inventory.restore_inventory_from_order(order)
            order.status = OrderStatus.CANCELLED
            self.db.flush()
            self._recalculate_stats(order.customer_id)
            self.db.commit()
            self.db.refresh(order)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Order {order.order_number} cancelled")
        return order
