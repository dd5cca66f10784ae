"""
Tests para el módulo de Productos
"""

import pytest
from decimal import Decimal

from app.common.exceptions import InvalidOperationError, NotFoundError
from app.modules.products import service
from app.modules.products.models import ProductLog, ProductLogAction
from app.modules.products.schemas import ProductCreate, ProductShippingUpdate
from app.modules.shipping.schemas import ChargeRule


class TestProducts:

    def test_create_logs_initial_quantity(self, db_session, tenant_id):
        product = service.create_product(db_session, ProductCreate(
            name="Dupatta", sku="DUP-1", initial_quantity=12, retail_price=Decimal("900"), min_stock_level=3
        ), tenant_id)

        assert product.current_quantity == 12
        assert product.min_stock_level == 3
        log = db_session.query(ProductLog).filter(ProductLog.product_id == product.id).one()
        assert log.action == ProductLogAction.CREATE

    def test_duplicate_sku(self, db_session, tenant_id):
        service.create_product(db_session, ProductCreate(name="Dupatta", sku="DUP-1"), tenant_id)
        with pytest.raises(InvalidOperationError):
            service.create_product(db_session, ProductCreate(name="Otra", sku="DUP-1"), tenant_id)

    def test_search_and_low_stock(self, db_session, tenant_id):
        service.create_product(db_session, ProductCreate(name="Chal Azul", initial_quantity=1, min_stock_level=5), tenant_id)
        service.create_product(db_session, ProductCreate(name="Kurta", initial_quantity=50, min_stock_level=5), tenant_id)

        items, total = service.get_all_products(db_session, tenant_id, search="chal")
        assert total == 1 and items[0].name == "Chal Azul"
        items, total = service.get_all_products(db_session, tenant_id, low_stock=True)
        assert [p.name for p in items] == ["Chal Azul"]

    def test_shipping_settings(self, db_session, tenant_id):
        product = service.create_product(db_session, ProductCreate(name="Kurta"), tenant_id)
        product = service.update_product_shipping(db_session, tenant_id, product.id, ProductShippingUpdate(
            use_default_shipping=False,
            shipping_quantity_rules=[ChargeRule(min=Decimal("1"), fee=Decimal("90"))],
            shipping_default_quantity_charge=Decimal("60")
        ))
        assert product.use_default_shipping is False
        assert product.shipping_quantity_rules[0]["fee"] == "90"

    def test_other_tenant(self, db_session, tenant_id, other_tenant_id):
        product = service.create_product(db_session, ProductCreate(name="Kurta"), tenant_id)
        with pytest.raises(NotFoundError):
            service.get_product_by_id(db_session, other_tenant_id, product.id)


class TestProductsAPI:

    def test_create_and_get(self, client, tenant_headers):
        response = client.post("/products/", headers=tenant_headers, json={"name": "Shalwar", "initial_quantity": 4})
        assert response.status_code == 201
        product_id = response.json()["id"]

        response = client.get(f"/products/{product_id}", headers=tenant_headers)
        assert response.status_code == 200
        assert response.json()["current_quantity"] == 4
