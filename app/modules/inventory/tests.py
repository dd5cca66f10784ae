"""
Tests para el servicio de Inventario

Cubren entradas por compra (creación de productos y variantes), eliminación de
facturas, ajustes con tope en 0, historial y conciliación de cantidades.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from app.common.exceptions import NotFoundError
from app.modules.contacts.models import Supplier
from app.modules.inventory.service import InventoryService
from app.modules.products.models import Product, ProductLog, ProductLogAction, ProductVariant
from app.modules.purchases.models import PurchaseInvoice, PurchaseItem


# ===== FIXTURES =====

@pytest.fixture
def inventory(db_session, tenant_id):
    return InventoryService(db_session, tenant_id)


@pytest.fixture
def supplier(db_session, tenant_id):
    supplier = Supplier(tenant_id=tenant_id, name="Textiles Norte")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def _invoice(db_session, tenant_id, supplier, number, items):
    invoice = PurchaseInvoice(
        tenant_id=tenant_id,
        supplier_id=supplier.id,
        invoice_number=number,
        invoice_date=datetime.now(timezone.utc),
        total_amount=sum((Decimal(str(i["purchase_price"])) * i["quantity"] for i in items), Decimal("0")),
        payment_amount=Decimal("0")
    )
    db_session.add(invoice)
    db_session.flush()
    rows = []
    for data in items:
        item = PurchaseItem(
            tenant_id=tenant_id,
            purchase_invoice_id=invoice.id,
            invoice_number=number,
            name=data["name"],
            sku=data.get("sku"),
            color=data.get("color"),
            size=data.get("size"),
            quantity=data["quantity"],
            purchase_price=Decimal(str(data["purchase_price"]))
        )
        db_session.add(item)
        rows.append(item)
    db_session.flush()
    return invoice, rows


# ===== TESTS DE COMPRAS =====

class TestPurchaseInventory:

    def test_purchase_creates_missing_product(self, db_session, tenant_id, inventory, supplier):
        invoice, items = _invoice(db_session, tenant_id, supplier, "INV-1", [
            {"name": "Camiseta", "sku": "CAM-1", "quantity": 10, "purchase_price": 100}
        ])
        inventory.update_inventory_from_purchase(items, invoice.id, invoice.invoice_number)

        product = db_session.query(Product).filter(Product.tenant_id == tenant_id).one()
        assert product.current_quantity == 10
        assert product.last_purchase_price == Decimal("100")
        assert product.current_retail_price == Decimal("150.00")
        assert product.max_stock_level == 20
        assert items[0].product_id == product.id

        log = db_session.query(ProductLog).filter(ProductLog.product_id == product.id).one()
        assert log.action == ProductLogAction.CREATE
        assert log.reference == "Invoice: INV-1"
        assert log.purchase_item_id == items[0].id

    def test_purchase_increases_existing_product_by_name(self, db_session, tenant_id, inventory, supplier):
        inventory.create_product(name="Gorra", sku=None, quantity=5, purchase_price=Decimal("20"))
        db_session.commit()

        invoice, items = _invoice(db_session, tenant_id, supplier, "INV-2", [
            {"name": "  gorra ", "quantity": 3, "purchase_price": 25}
        ])
        logs = inventory.update_inventory_from_purchase(items, invoice.id, invoice.invoice_number)

        product = db_session.query(Product).filter(Product.tenant_id == tenant_id).one()
        assert product.current_quantity == 8
        assert product.last_purchase_price == Decimal("25")
        assert logs[0].action == ProductLogAction.INCREASE
        assert logs[0].old_quantity == 5
        assert logs[0].new_quantity == 8
        assert logs[0].old_price == Decimal("20")

    def test_purchase_creates_variant(self, db_session, tenant_id, inventory, supplier):
        invoice, items = _invoice(db_session, tenant_id, supplier, "INV-3", [
            {"name": "Pantalón", "color": "Azul", "size": "M", "quantity": 4, "purchase_price": 50},
            {"name": "Pantalón", "color": "azul", "size": "m", "quantity": 2, "purchase_price": 55},
        ])
        inventory.update_inventory_from_purchase(items, invoice.id, invoice.invoice_number)

        product = db_session.query(Product).filter(Product.tenant_id == tenant_id).one()
        variants = db_session.query(ProductVariant).filter(ProductVariant.product_id == product.id).all()
        assert len(variants) == 1
        assert variants[0].current_quantity == 6
        assert product.current_quantity == 6
        assert items[0].variant_id == variants[0].id

        actions = [log.action for log in db_session.query(ProductLog).filter(
            ProductLog.product_id == product.id
        ).all()]
        assert ProductLogAction.VARIANT_CREATE in actions
        assert ProductLogAction.VARIANT_INCREASE in actions

    def test_delete_purchase_invoice_reverts_stock(self, db_session, tenant_id, inventory, supplier):
        invoice, items = _invoice(db_session, tenant_id, supplier, "INV-4", [
            {"name": "Medias", "sku": "MED", "quantity": 10, "purchase_price": 5}
        ])
        inventory.update_inventory_from_purchase(items, invoice.id, invoice.invoice_number)
        product = db_session.query(Product).filter(Product.tenant_id == tenant_id).one()
        inventory.adjust_inventory(product.id, -7, "Venta mostrador")

        logs = inventory.delete_purchase_invoice(invoice.id)

        db_session.refresh(product)
        assert product.current_quantity == 0
        assert logs[0].reference == "Invoice Deletion: INV-4"
        assert "Clamped" in logs[0].notes
        assert db_session.query(PurchaseInvoice).count() == 0

        item = db_session.query(PurchaseItem).one()
        assert item.is_deleted is True
        assert item.purchase_invoice_id is None
        assert item.invoice_number == "INV-4"


# ===== TESTS DE AJUSTES =====

class TestAdjustments:

    def test_decrease_clamps_at_zero(self, db_session, inventory):
        product = inventory.create_product(name="Bolso", sku="BOL", quantity=3, purchase_price=Decimal("10"))
        db_session.commit()

        log = inventory.adjust_inventory(product.id, -5, "Conteo físico")

        db_session.refresh(product)
        assert product.current_quantity == 0
        assert log.quantity == -3
        assert log.action == ProductLogAction.DECREASE

    def test_adjust_unknown_product(self, inventory):
        from uuid import uuid4
        with pytest.raises(NotFoundError):
            inventory.adjust_inventory(uuid4(), 1, "x")

    def test_other_tenant_cannot_adjust(self, db_session, inventory, other_tenant_id):
        product = inventory.create_product(name="Reloj", sku=None, quantity=1, purchase_price=None)
        db_session.commit()
        with pytest.raises(NotFoundError):
            InventoryService(db_session, other_tenant_id).adjust_inventory(product.id, 1, "x")

    def test_summary_and_low_stock(self, db_session, inventory):
        inventory.create_product(name="A", sku="A", quantity=10, purchase_price=Decimal("2"))
        inventory.create_product(name="B", sku="B", quantity=0, purchase_price=Decimal("4"))
        db_session.commit()

        summary = inventory.get_inventory_summary()
        assert summary.total_products == 2
        assert summary.total_quantity == 10
        assert summary.total_value == Decimal("20.00")
        assert summary.low_stock_count == 1
        assert summary.low_stock_products[0].name == "B"

    def test_price_update_is_logged(self, db_session, inventory):
        product = inventory.create_product(name="Anillo", sku=None, quantity=1, purchase_price=Decimal("10"))
        db_session.commit()

        inventory.update_product_price(product.id, Decimal("25"))

        assert product.current_retail_price == Decimal("25")
        history, total = inventory.get_product_history(product.id)
        assert total == 2
        assert any(log.action == ProductLogAction.PRICE_UPDATE for log in history)


# ===== TESTS DE CONCILIACIÓN =====

class TestReconciliation:

    def test_reconcile_repairs_drift(self, db_session, inventory):
        product = inventory.create_product(name="Collar", sku="COL", quantity=4, purchase_price=Decimal("8"))
        db_session.commit()
        inventory.adjust_inventory(product.id, 2, "Devolución")

        product.current_quantity = 99
        db_session.commit()

        result = inventory.reconcile_product_quantity(product.id)
        assert result.stored_quantity == 99
        assert result.computed_quantity == 6
        assert result.repaired is True

        db_session.refresh(product)
        assert product.current_quantity == 6

        again = inventory.reconcile_product_quantity(product.id)
        assert again.repaired is False
        assert again.computed_quantity == 6

    def test_reconcile_after_clamp_matches_stored(self, db_session, inventory):
        product = inventory.create_product(name="Pulsera", sku=None, quantity=1, purchase_price=None)
        db_session.commit()
        inventory.adjust_inventory(product.id, -4, "Pérdida")

        result = inventory.reconcile_product_quantity(product.id)
        assert result.repaired is False
        assert result.computed_quantity == 0


class TestInventoryAPI:

    def test_adjustment_endpoint(self, client, db_session, tenant_id, tenant_headers):
        product = InventoryService(db_session, tenant_id).create_product(
            name="Cinturón", sku="CIN", quantity=2, purchase_price=Decimal("10")
        )
        db_session.commit()

        response = client.post("/inventory/adjustments", headers=tenant_headers, json={
            "product_id": str(product.id),
            "quantity_delta": -1,
            "reason": "Dañado"
        })
        assert response.status_code == 201
        assert response.json()["new_quantity"] == 1

    def test_zero_adjustment_rejected(self, client, tenant_headers):
        from uuid import uuid4
        response = client.post("/inventory/adjustments", headers=tenant_headers, json={
            "product_id": str(uuid4()),
            "quantity_delta": 0,
            "reason": "x"
        })
        assert response.status_code == 422
