"""
Tests para el cálculo de envíos y comisiones COD

Cubren la búsqueda del cargo por ciudad, las reglas por cantidad (de la empresa
y propias del producto), los vacíos de configuración y los tres esquemas de
comisión COD.
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

from app.common.exceptions import ConfigurationGapError, ConflictError, InvalidOperationError, NotFoundError
from app.modules.company.schemas import CompanyCreate
from app.modules.company.service import CompanyService
from app.modules.products.models import Product
from app.modules.shipping.calculator import CodFeeCalculator, ShippingChargesCalculator, parse_rules
from app.modules.shipping.models import CodFeeCalculationType, LogisticsCompanyStatus
from app.modules.shipping.schemas import ChargeRule, LogisticsCompanyCreate, ShippingConfig
from app.modules.shipping.service import ShippingService


def _product(use_default_shipping=True, rules=None, default_charge=None, price="100"):
    return SimpleNamespace(
        id=uuid4(),
        use_default_shipping=use_default_shipping,
        shipping_quantity_rules=rules,
        shipping_default_quantity_charge=default_charge,
        current_retail_price=Decimal(price)
    )


RANGE_RULES = [{"min": 0, "max": 500, "type": "FIXED", "fee": 50}]


# ===== CARGOS DE ENVÍO =====

class TestShippingCalculator:

    def test_city_default_plus_tenant_quantity_charge(self):
        calculator = ShippingChargesCalculator(
            city_charges={"Lahore": Decimal("200")},
            default_quantity_charge=Decimal("150")
        )
        product = _product()
        breakdown = calculator.calculate("Lahore", [product], {product.id: 1})
        assert breakdown.total == Decimal("350")
        assert breakdown.product_charges[0].source == "tenant_default"

    def test_city_lookup_order(self):
        calculator = ShippingChargesCalculator(
            city_charges={"Lahore": "200", "default": "300"},
            default_city_charge=Decimal("999")
        )
        assert calculator.city_charge("Lahore") == (Decimal("200"), "city")
        assert calculator.city_charge("  lahore ") == (Decimal("200"), "city")
        assert calculator.city_charge("Karachi") == (Decimal("300"), "city_default")

        without_default_key = ShippingChargesCalculator(default_city_charge=Decimal("250"))
        assert without_default_key.city_charge("Multan") == (Decimal("250"), "tenant_default")

    def test_city_charge_applies_once_per_order(self):
        calculator = ShippingChargesCalculator(
            city_charges={"Lahore": "200"}, default_quantity_charge=Decimal("0")
        )
        first, second = _product(), _product()
        breakdown = calculator.calculate("Lahore", [first, second], {first.id: 1, second.id: 3})
        assert breakdown.city_charge == Decimal("200")
        assert breakdown.total == Decimal("200")

    def test_tenant_rules_sorted_by_min(self):
        calculator = ShippingChargesCalculator(
            city_charges={"default": "0"},
            quantity_rules=[
                {"min": 3, "max": None, "type": "FIXED", "fee": 300},
                {"min": 1, "max": 2, "type": "FIXED", "fee": 100},
            ],
            default_quantity_charge=Decimal("150")
        )
        product = _product()
        assert calculator.product_charge(product, 2) == (Decimal("100"), "tenant_rule")
        assert calculator.product_charge(product, 40) == (Decimal("300"), "tenant_rule")

    def test_product_percentage_rule_uses_unit_price(self):
        calculator = ShippingChargesCalculator(city_charges={"default": "0"})
        product = _product(
            use_default_shipping=False,
            rules=[{"min": 1, "max": None, "type": "PERCENTAGE", "percentage": 10}]
        )
        amount, source = calculator.product_charge(product, 5, Decimal("200"))
        assert amount == Decimal("100")
        assert source == "product_rule"

    def test_product_default_when_no_rule_matches(self):
        calculator = ShippingChargesCalculator(default_quantity_charge=Decimal("150"))
        product = _product(
            use_default_shipping=False,
            rules=[{"min": 10, "max": 20, "type": "FIXED", "fee": 80}],
            default_charge=Decimal("60")
        )
        assert calculator.product_charge(product, 2) == (Decimal("60"), "product_default")

    def test_missing_configuration_resolves_to_zero(self):
        calculator = ShippingChargesCalculator()
        product = _product()
        breakdown = calculator.calculate("Quetta", [product], {product.id: 1})
        assert breakdown.total == Decimal("0")
        assert breakdown.city_source == "missing"

    def test_missing_configuration_raises_in_strict_mode(self):
        with pytest.raises(ConfigurationGapError):
            ShippingChargesCalculator(strict=True).city_charge("Quetta")

    def test_malformed_rules_are_skipped(self):
        rules = parse_rules([{"min": 5, "max": 1, "fee": 10}, {"min": 0, "type": "FIXED", "fee": 20}])
        assert len(rules) == 1
        assert rules[0].fee == Decimal("20")


# ===== COMISIÓN COD =====

class TestCodFee:

    def test_range_based(self):
        calculator = CodFeeCalculator()
        assert calculator.calculate(CodFeeCalculationType.RANGE_BASED, Decimal("212"), rules=RANGE_RULES) == Decimal("50")
        assert calculator.calculate(CodFeeCalculationType.RANGE_BASED, Decimal("9999"), rules=RANGE_RULES) == Decimal("0")

    def test_range_gap_in_strict_mode(self):
        with pytest.raises(ConfigurationGapError):
            CodFeeCalculator(strict=True).calculate(
                CodFeeCalculationType.RANGE_BASED, Decimal("9999"), rules=RANGE_RULES
            )

    def test_fixed_and_percentage(self):
        calculator = CodFeeCalculator()
        assert calculator.calculate(CodFeeCalculationType.FIXED, Decimal("1000"), fixed_fee=Decimal("75")) == Decimal("75")
        assert calculator.calculate(
            CodFeeCalculationType.PERCENTAGE, Decimal("1234"), percentage=Decimal("2.5")
        ) == Decimal("30.85")

    def test_percentage_range_rule(self):
        rules = [{"min": 0, "max": None, "type": "PERCENTAGE", "percentage": 3}]
        fee = CodFeeCalculator().calculate(CodFeeCalculationType.RANGE_BASED, Decimal("1000"), rules=rules)
        assert fee == Decimal("30.00")

    def test_zero_amount_is_still_priced(self):
        calculator = CodFeeCalculator()
        assert calculator.calculate(CodFeeCalculationType.FIXED, Decimal("0"), fixed_fee=Decimal("75")) == Decimal("75")
        assert calculator.calculate(CodFeeCalculationType.RANGE_BASED, Decimal("0"), rules=RANGE_RULES) == Decimal("50")
        assert calculator.calculate(
            CodFeeCalculationType.PERCENTAGE, Decimal("0"), percentage=Decimal("2.5")
        ) == Decimal("0")


# ===== SERVICIO =====

@pytest.fixture
def company(db_session):
    return CompanyService(db_session).create_company(CompanyCreate(name="Moda Express"))


class TestShippingService:

    def test_system_defaults_without_company(self, db_session, tenant_id):
        config = ShippingService(db_session, tenant_id).get_default_shipping_config()
        assert config.default_city_charge == Decimal("200")
        assert config.default_quantity_charge == Decimal("150")

    def test_update_config_requires_company(self, db_session, tenant_id):
        with pytest.raises(NotFoundError):
            ShippingService(db_session, tenant_id).update_shipping_config(ShippingConfig())

    def test_configured_charges(self, db_session, company):
        service = ShippingService(db_session, company.id)
        service.update_shipping_config(ShippingConfig(
            city_charges={"Lahore": Decimal("180")},
            quantity_rules=[ChargeRule(min=Decimal("1"), max=Decimal("5"), fee=Decimal("40"))],
            default_quantity_charge=Decimal("90")
        ))
        product = Product(tenant_id=company.id, name="Chal", current_retail_price=Decimal("500"))
        db_session.add(product)
        db_session.commit()

        assert service.calculate_shipping_charges("lahore", [product], {product.id: 2}) == Decimal("220")
        assert service.calculate_shipping_charges("Lahore", [product], {product.id: 9}) == Decimal("270")

    def test_logistics_companies(self, db_session, tenant_id):
        service = ShippingService(db_session, tenant_id)
        courier = service.create_logistics_company(LogisticsCompanyCreate(
            name="TCS",
            cod_fee_calculation_type=CodFeeCalculationType.RANGE_BASED,
            cod_fee_rules=[ChargeRule(**rule) for rule in RANGE_RULES]
        ))
        assert service.calculate_cod_fee_for_company(courier.id, Decimal("212")) == Decimal("50")

        with pytest.raises(ConflictError):
            service.create_logistics_company(LogisticsCompanyCreate(name="TCS", fixed_cod_fee=Decimal("10")))

        service.update_logistics_company_status(courier.id, LogisticsCompanyStatus.INACTIVE)
        with pytest.raises(InvalidOperationError):
            service.calculate_cod_fee_for_company(courier.id, Decimal("212"))
        assert service.list_logistics_companies(LogisticsCompanyStatus.ACTIVE) == []

    def test_quote_endpoint(self, client, db_session, tenant_id, tenant_headers):
        product = Product(tenant_id=tenant_id, name="Chal", current_retail_price=Decimal("500"))
        db_session.add(product)
        db_session.commit()

        response = client.post("/shipping/quote", headers=tenant_headers, json={
            "city": "Lahore",
            "items": [{"product_id": str(product.id), "quantity": 1}]
        })
        assert response.status_code == 200
        assert Decimal(response.json()["total"]) == Decimal("350")
