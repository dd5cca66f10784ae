"""
Servicio de Inventario

Única vía para modificar cantidades y costos de productos:
- Entradas por facturas de compra (crea productos/variantes que no existan)
- Reversión al eliminar una factura de compra
- Ajustes manuales, ventas, cancelaciones y devoluciones
- Historial (ProductLog) y conciliación de cantidades contra el historial

Las disminuciones nunca dejan cantidades negativas: se recortan en 0 y se
registra un warning junto con la nota en el log.
"""

import logging
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func

from app.common.exceptions import InvalidOperationError
from app.common.tenancy import TenantScopedService
from app.common.validators import round_money, to_decimal
from app.modules.inventory.schemas import InventorySummary, LowStockProduct, ProductReconciliation
from app.modules.products.models import (
    Product, ProductLog, ProductLogAction, ProductVariant, QUANTITY_ACTIONS
)

logger = logging.getLogger(__name__)

RETAIL_MARKUP = Decimal("1.5")


class InventoryService(TenantScopedService):
    """Reconciliación de cantidades y costos de inventario"""

    # ----- resolución de productos -----

    def _find_product(
        self,
        product_id: Optional[UUID] = None,
        sku: Optional[str] = None,
        name: Optional[str] = None
    ) -> Optional[Product]:
        if product_id:
            return self.scope.get(Product, product_id, "Producto")
        query = self.scope.query(Product)
        if sku:
            product = query.filter(Product.sku == sku.strip()).first()
            if product:
                return product
        if name:
            return query.filter(func.lower(func.trim(Product.name)) == name.strip().lower()).first()
        return None

    def _find_variant(self, product: Product, color: Optional[str], size: Optional[str]) -> Optional[ProductVariant]:
        color = (color or "").strip().lower()
        size = (size or "").strip().lower()
        for variant in product.variants:
            if (variant.color or "").strip().lower() == color and (variant.size or "").strip().lower() == size:
                return variant
        return None

    def _lock_product(self, product_id: UUID) -> Product:
        """Producto con bloqueo de fila para serializar cambios de cantidad"""
        product = self.scope.query(Product).filter(Product.id == product_id).with_for_update().first()
        if product is None:
            return self.scope.get(Product, product_id, "Producto")
        return product

    def _variant(self, product: Product, variant_id: Optional[UUID]) -> Optional[ProductVariant]:
        if not variant_id:
            return None
        variant = self.scope.get(ProductVariant, variant_id, "Variante")
        if variant.product_id != product.id:
            raise InvalidOperationError("La variante no pertenece al producto")
        return variant

    # ----- núcleo -----

    def _log(self, product: Product, action: ProductLogAction, **fields) -> ProductLog:
        log = ProductLog(product_id=product.id, action=action, **fields)
        self.scope.add(log)
        return log

    def _change_quantity(
        self,
        product: Product,
        delta: int,
        reason: str,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
        variant: Optional[ProductVariant] = None,
        purchase_item_id: Optional[UUID] = None,
        new_price: Optional[Decimal] = None,
        action: Optional[ProductLogAction] = None
    ) -> ProductLog:
        """
        Aplicar un cambio de cantidad con tope inferior 0.

        Con variante, el cambio aplicado es el de la variante y se refleja en el
        producto. El log guarda el cambio realmente aplicado.
        """
        delta = int(delta)
        old_quantity = product.current_quantity or 0
        applied = delta

        variant_old = variant_new = None
        if variant is not None:
            variant_old = variant.current_quantity or 0
            variant_new = max(0, variant_old + delta)
            applied = variant_new - variant_old
            variant.current_quantity = variant_new

        new_quantity = max(0, old_quantity + applied)
        if new_quantity - old_quantity != delta:
            clamp_note = f"Clamped at 0: requested {delta}, applied {new_quantity - old_quantity}"
            notes = f"{notes}. {clamp_note}" if notes else clamp_note
            logger.warning(
                f"Inventory underflow on product {product.name} ({product.id}): {clamp_note}"
            )
        product.current_quantity = new_quantity

        old_price = None
        if new_price is not None:
            old_price = product.last_purchase_price
            product.last_purchase_price = new_price
            if variant is not None:
                variant.last_purchase_price = new_price

        if action is None:
            if variant is not None:
                action = ProductLogAction.VARIANT_INCREASE if delta >= 0 else ProductLogAction.VARIANT_DECREASE
            else:
                action = ProductLogAction.INCREASE if delta >= 0 else ProductLogAction.DECREASE

        return self._log(
            product,
            action,
            variant_id=variant.id if variant is not None else None,
            purchase_item_id=purchase_item_id,
            quantity=new_quantity - old_quantity,
            old_quantity=old_quantity,
            new_quantity=new_quantity,
            variant_old_quantity=variant_old,
            variant_new_quantity=variant_new,
            old_price=old_price,
            new_price=new_price,
            reason=reason,
            reference=reference,
            notes=notes
        )

    def create_product(self, *args, **kwargs) -> Product:
        product, _ = self._create_product(*args, **kwargs)
        return product

    def _create_product(
        self,
        name: str,
        sku: Optional[str],
        quantity: int,
        purchase_price: Optional[Decimal],
        retail_price: Optional[Decimal] = None,
        reason: str = "Product created",
        reference: Optional[str] = None,
        purchase_item_id: Optional[UUID] = None
    ) -> Tuple[Product, ProductLog]:
        """
        Crear producto con su log CREATE.
        Sin precio de venta se usa 1.5x el costo; el stock máximo es 2x la cantidad inicial.
        """
        purchase_price = to_decimal(purchase_price) if purchase_price is not None else None
        if retail_price is None and purchase_price:
            retail_price = round_money(purchase_price * RETAIL_MARKUP)

        product = Product(
            name=name.strip(),
            sku=sku.strip() if sku else None,
            current_quantity=quantity,
            last_purchase_price=purchase_price,
            current_retail_price=retail_price,
            min_stock_level=0,
            max_stock_level=quantity * 2 if quantity else None
        )
        self.scope.add(product)
        self.db.flush()

        log = self._log(
            product,
            ProductLogAction.CREATE,
            purchase_item_id=purchase_item_id,
            quantity=quantity,
            old_quantity=0,
            new_quantity=quantity,
            new_price=purchase_price,
            reason=reason,
            reference=reference
        )
        logger.info(f"Product created: {product.name} (qty {quantity})")
        return product, log

    def _create_variant(self, product: Product, color: Optional[str], size: Optional[str], sku: Optional[str]) -> ProductVariant:
        variant = ProductVariant(
            product_id=product.id,
            color=color.strip() if color else None,
            size=size.strip() if size else None,
            sku=sku.strip() if sku else None,
            current_quantity=0
        )
        self.scope.add(variant)
        product.variants.append(variant)
        self.db.flush()
        return variant

    # ----- compras -----

    def update_inventory_from_purchase(
        self,
        items: Iterable[Any],
        invoice_id: UUID,
        invoice_number: str,
        commit: bool = True
    ) -> List[ProductLog]:
        """
        Sumar al inventario los ítems de una factura de compra.

        Resuelve cada ítem por producto, SKU o nombre (sin distinguir mayúsculas),
        creando producto y variante cuando no existen. No deduplica por factura:
        el llamador garantiza una sola invocación por factura.
        """
        reference = f"Invoice: {invoice_number}"
        logs = []

        for item in items:
            quantity = int(item.quantity)
            if quantity <= 0:
                raise InvalidOperationError(f"Cantidad inválida para '{item.name}': {quantity}")

            price = to_decimal(item.purchase_price)
            has_variant = bool(item.color or item.size)
            product = self._find_product(
                product_id=item.product_id,
                sku=None if has_variant else item.sku,
                name=item.name
            )

            if product is None and not has_variant:
                product, log = self._create_product(
                    name=item.name,
                    sku=item.sku,
                    quantity=quantity,
                    purchase_price=price,
                    reason="Created from purchase invoice",
                    reference=reference,
                    purchase_item_id=item.id
                )
                item.product_id = product.id
                logs.append(log)
                continue

            if product is None:
                product = self.create_product(
                    name=item.name,
                    sku=None,
                    quantity=0,
                    purchase_price=price,
                    reason="Created from purchase invoice",
                    reference=reference,
                    purchase_item_id=item.id
                )
            else:
                product = self._lock_product(product.id)

            variant = None
            action = None
            if has_variant:
                variant = self._find_variant(product, item.color, item.size)
                if variant is None:
                    variant = self._create_variant(product, item.color, item.size, item.sku)
                    action = ProductLogAction.VARIANT_CREATE

            logs.append(self._change_quantity(
                product,
                quantity,
                reason="Purchase invoice",
                reference=reference,
                variant=variant,
                purchase_item_id=item.id,
                new_price=price,
                action=action
            ))
            item.product_id = product.id
            item.variant_id = variant.id if variant is not None else None

        self.db.flush()
        if commit:
            self.db.commit()
        logger.info(f"Inventory updated from purchase invoice {invoice_number} ({len(logs)} items)")
        return logs

    def delete_purchase_invoice(
        self,
        invoice_id: UUID,
        invoice_number: Optional[str] = None,
        commit: bool = True
    ) -> List[ProductLog]:
        """
        Revertir el inventario de una factura y eliminarla.

        Resta cada ítem activo (con tope en 0), registra un log con referencia
        "Invoice Deletion: <número>", marca los ítems como eliminados y borra la
        fila de la factura. Ítems, pagos y devoluciones quedan desvinculados.
        """
        from app.modules.purchases.models import PurchaseInvoice, PurchaseItem

        invoice = self.scope.get(PurchaseInvoice, invoice_id, "Factura de compra")
        number = invoice_number or invoice.invoice_number
        reference = f"Invoice Deletion: {number}"

        items = self.scope.query(PurchaseItem).filter(
            PurchaseItem.purchase_invoice_id == invoice.id,
            PurchaseItem.is_deleted == False
        ).all()

        logs = []
        for item in items:
            if item.product_id:
                product = self._lock_product(item.product_id)
                variant = self.scope.find(ProductVariant, item.variant_id) if item.variant_id else None
                logs.append(self._change_quantity(
                    product,
                    -int(item.quantity),
                    reason="Purchase invoice deleted",
                    reference=reference,
                    variant=variant,
                    purchase_item_id=item.id
                ))
            item.soft_delete()

        self.db.flush()
        self.db.delete(invoice)
        self.db.flush()
        if commit:
            self.db.commit()
        logger.info(f"Purchase invoice {number} deleted, {len(logs)} inventory reversals")
        return logs

    # ----- ajustes y movimientos -----

    def adjust_inventory(
        self,
        product_id: UUID,
        delta: int,
        reason: str,
        notes: Optional[str] = None,
        variant_id: Optional[UUID] = None,
        reference: Optional[str] = None,
        commit: bool = True
    ) -> ProductLog:
        """Nueva cantidad = max(0, actual + delta). Nunca falla por quedar negativa."""
        product = self._lock_product(product_id)
        variant = self._variant(product, variant_id)
        log = self._change_quantity(product, delta, reason, reference=reference, notes=notes, variant=variant)
        self.db.flush()
        if commit:
            self.db.commit()
            self.db.refresh(log)
        return log

    def _apply_lines(self, lines: Iterable[Any], sign: int, reason: str, reference: str) -> List[ProductLog]:
        """Aplicar ítems de orden o devolución (product_id/variant_id/quantity)"""
        logs = []
        for line in lines:
            product_id = getattr(line, "product_id", None)
            if product_id is None:
                name = getattr(line, "product_name", None)
                product = self._find_product(name=name) if name else None
                if product is None:
                    logger.warning(f"Skipping inventory line without product ({name}) for {reference}")
                    continue
                product_id = product.id
            product = self._lock_product(product_id)
            variant = self._variant(product, getattr(line, "variant_id", None))
            logs.append(self._change_quantity(
                product, sign * int(line.quantity), reason, reference=reference, variant=variant
            ))
        self.db.flush()
        return logs

    def decrease_inventory_from_order(self, order: Any, commit: bool = False) -> List[ProductLog]:
        logs = self._apply_lines(order.items, -1, "Order confirmed", f"Order: {order.order_number}")
        if commit:
            self.db.commit()
        return logs

    def restore_inventory_from_order(self, order: Any, commit: bool = False) -> List[ProductLog]:
        logs = self._apply_lines(order.items, 1, "Order cancelled", f"Order Cancellation: {order.order_number}")
        if commit:
            self.db.commit()
        return logs

    def decrease_inventory_from_supplier_return(self, items: Iterable[Any], return_number: str, commit: bool = False) -> List[ProductLog]:
        logs = self._apply_lines(items, -1, "Supplier return", f"Return: {return_number}")
        if commit:
            self.db.commit()
        return logs

    def increase_inventory_from_customer_return(self, items: Iterable[Any], return_number: str, commit: bool = False) -> List[ProductLog]:
        logs = self._apply_lines(items, 1, "Customer return", f"Return: {return_number}")
        if commit:
            self.db.commit()
        return logs

    def update_product_price(self, product_id: UUID, retail_price: Decimal) -> Product:
        product = self._lock_product(product_id)
        old_price = product.current_retail_price
        product.current_retail_price = retail_price
        self._log(
            product,
            ProductLogAction.PRICE_UPDATE,
            quantity=0,
            old_quantity=product.current_quantity,
            new_quantity=product.current_quantity,
            old_price=old_price,
            new_price=retail_price,
            reason="Retail price updated"
        )
        self.db.commit()
        self.db.refresh(product)
        return product

    # ----- consultas -----

    def get_inventory_summary(self) -> InventorySummary:
        products = self.scope.query(Product).filter(Product.is_active == True).all()
        total_value = sum(
            (to_decimal(p.last_purchase_price) * (p.current_quantity or 0) for p in products),
            Decimal("0")
        )
        low_stock = [p for p in products if p.is_low_stock]
        return InventorySummary(
            total_products=len(products),
            total_quantity=sum(p.current_quantity or 0 for p in products),
            total_value=round_money(total_value),
            low_stock_count=len(low_stock),
            low_stock_products=[LowStockProduct.model_validate(p) for p in low_stock]
        )

    def get_product_history(
        self,
        product_id: Optional[UUID] = None,
        limit: int = 50,
        offset: int = 0
    ) -> Tuple[List[ProductLog], int]:
        query = self.scope.query(ProductLog)
        if product_id:
            self.scope.get(Product, product_id, "Producto")
            query = query.filter(ProductLog.product_id == product_id)
        total = query.count()
        items = query.order_by(ProductLog.created_at.desc()).offset(offset).limit(limit).all()
        return items, total

    # ----- conciliación -----

    def compute_product_quantity(self, product_id: UUID) -> int:
        """Cantidad según el historial: suma de los cambios aplicados"""
        total = self.scope.query(ProductLog, func.coalesce(func.sum(ProductLog.quantity), 0)).filter(
            ProductLog.product_id == product_id,
            ProductLog.action.in_(QUANTITY_ACTIONS)
        ).scalar()
        return int(total or 0)

    def compute_variant_quantity(self, variant_id: UUID) -> int:
        logs = self.scope.query(ProductLog).filter(
            ProductLog.variant_id == variant_id,
            ProductLog.variant_new_quantity.isnot(None)
        ).all()
        return sum((log.variant_new_quantity or 0) - (log.variant_old_quantity or 0) for log in logs)

    def reconcile_product_quantity(self, product_id: UUID) -> ProductReconciliation:
        """
        Recalcular la cantidad del producto (y sus variantes) desde el historial
        y corregir la diferencia. Se puede ejecutar las veces que sea necesario.
        """
        product = self._lock_product(product_id)
        stored = product.current_quantity or 0
        computed = self.compute_product_quantity(product.id)

        variants_repaired = 0
        for variant in product.variants:
            expected = self.compute_variant_quantity(variant.id)
            if (variant.current_quantity or 0) != expected:
                logger.warning(
                    f"Variant {variant.id} quantity drift: stored={variant.current_quantity} computed={expected}"
                )
                variant.current_quantity = expected
                variants_repaired += 1

        repaired = stored != computed
        if repaired:
            logger.warning(f"Product {product.name} quantity drift: stored={stored} computed={computed}")
            product.current_quantity = computed
            self._log(
                product,
                ProductLogAction.QUANTITY_ADJUSTMENT,
                quantity=0,
                old_quantity=stored,
                new_quantity=computed,
                reason="Reconciled from product history"
            )

        if repaired or variants_repaired:
            self.db.commit()

        return ProductReconciliation(
            product_id=product.id,
            stored_quantity=stored,
            computed_quantity=computed,
            repaired=repaired,
            variants_repaired=variants_repaired
        )
