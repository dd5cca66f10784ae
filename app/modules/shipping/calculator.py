"""
Helper para cálculo de cargos de envío y comisiones COD

Cálculo puro (sin acceso a base de datos): recibe la configuración ya cargada
y devuelve montos. Lo consumen la creación de órdenes y el servicio de envíos.
"""

import logging
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple
from uuid import UUID

from pydantic import ValidationError

from app.common.exceptions import ConfigurationGapError
from app.common.validators import normalize_key, round_money, to_decimal
from app.modules.shipping.models import ChargeRuleType, CodFeeCalculationType
from app.modules.shipping.schemas import ChargeRule, ProductShippingCharge, ShippingBreakdown

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def parse_rules(raw_rules: Optional[Iterable[Any]]) -> List[ChargeRule]:
    """
    Convertir reglas guardadas como JSON en ChargeRule ordenadas por min.
    Las reglas mal formadas se descartan con un warning.
    """
    rules = []
    for raw in raw_rules or []:
        if isinstance(raw, ChargeRule):
            rules.append(raw)
            continue
        try:
            rules.append(ChargeRule.model_validate(raw))
        except ValidationError as e:
            logger.warning(f"Ignoring malformed charge rule {raw!r}: {e.errors()[0]['msg']}")
    return sorted(rules, key=lambda rule: rule.min)


def match_rule(rules: Sequence[ChargeRule], value: Decimal) -> Optional[ChargeRule]:
    """Primera regla (por min ascendente) cuyo rango inclusivo contiene el valor"""
    for rule in rules:
        if rule.contains(value):
            return rule
    return None


def apply_rule(rule: ChargeRule, base_amount: Decimal) -> Decimal:
    """
    Monto de una regla

    Args:
        rule: Regla coincidente
        base_amount: Base para reglas porcentuales

    Returns:
        fee para FIXED, base_amount * percentage / 100 para PERCENTAGE
    """
    if rule.type == ChargeRuleType.FIXED:
        return to_decimal(rule.fee)
    return to_decimal(base_amount) * to_decimal(rule.percentage) / HUNDRED


def report_gap(message: str, strict: bool, **context) -> Decimal:
    """Una regla faltante se resuelve en 0; en modo estricto es un error"""
    if strict:
        raise ConfigurationGapError(message, **context)
    logger.warning(f"Configuration gap: {message}")
    return ZERO


class ShippingChargesCalculator:
    """Cargos de envío de una orden con la configuración de una empresa"""

    def __init__(
        self,
        city_charges: Optional[Mapping[str, Any]] = None,
        quantity_rules: Optional[Iterable[Any]] = None,
        default_city_charge: Optional[Decimal] = None,
        default_quantity_charge: Optional[Decimal] = None,
        strict: bool = False
    ):
        self.city_charges = {key: to_decimal(value) for key, value in (city_charges or {}).items()}
        self.normalized_city_charges = {
            normalize_key(key): value for key, value in self.city_charges.items()
        }
        self.quantity_rules = parse_rules(quantity_rules)
        self.default_city_charge = default_city_charge
        self.default_quantity_charge = default_quantity_charge
        self.strict = strict

    def city_charge(self, city: Optional[str]) -> Tuple[Decimal, str]:
        """
        Cargo fijo por ciudad, una vez por orden.

        Orden de búsqueda: nombre exacto, nombre normalizado, clave "default",
        cargo por defecto de la empresa.
        """
        if city and city in self.city_charges:
            return self.city_charges[city], "city"
        normalized = normalize_key(city)
        if normalized and normalized in self.normalized_city_charges:
            return self.normalized_city_charges[normalized], "city"
        if "default" in self.normalized_city_charges:
            return self.normalized_city_charges["default"], "city_default"
        if self.default_city_charge is not None:
            return to_decimal(self.default_city_charge), "tenant_default"
        return report_gap(f"no city charge for '{city}'", self.strict, city=city), "missing"

    def product_charge(self, product: Any, quantity: int, unit_price: Optional[Decimal] = None) -> Tuple[Decimal, str]:
        """
        Cargo por cantidad de un producto.

        Usa las reglas propias del producto si no usa la configuración por defecto,
        si no las de la empresa. Sin regla aplicable se cobra el cargo por defecto
        del producto (o de la empresa).
        """
        uses_own_rules = getattr(product, "use_default_shipping", True) is False
        rules = parse_rules(product.shipping_quantity_rules) if uses_own_rules else self.quantity_rules

        rule = match_rule(rules, Decimal(quantity))
        if rule is not None:
            if unit_price is None:
                unit_price = to_decimal(getattr(product, "current_retail_price", None))
            base = to_decimal(unit_price) * quantity
            return apply_rule(rule, base), "product_rule" if uses_own_rules else "tenant_rule"

        own_default = getattr(product, "shipping_default_quantity_charge", None)
        if uses_own_rules and own_default is not None:
            return to_decimal(own_default), "product_default"
        if self.default_quantity_charge is not None:
            return to_decimal(self.default_quantity_charge), "tenant_default"
        return report_gap(
            f"no quantity charge for product {getattr(product, 'id', None)} (qty {quantity})",
            self.strict,
            product_id=getattr(product, "id", None)
        ), "missing"

    def calculate(
        self,
        city: Optional[str],
        products: Sequence[Any],
        quantities: Mapping[UUID, int],
        unit_prices: Optional[Mapping[UUID, Decimal]] = None
    ) -> ShippingBreakdown:
        """Cargo de ciudad (una vez) + suma de cargos por producto; nunca negativo"""
        city_amount, city_source = self.city_charge(city)
        unit_prices = unit_prices or {}

        charges = []
        for product in products:
            quantity = int(quantities.get(product.id, 0) or 0)
            if quantity <= 0:
                continue
            amount, source = self.product_charge(product, quantity, unit_prices.get(product.id))
            charges.append(ProductShippingCharge(
                product_id=product.id,
                quantity=quantity,
                charge=round_money(amount),
                source=source
            ))

        total = to_decimal(city_amount) + sum((c.charge for c in charges), ZERO)
        return ShippingBreakdown(
            city_charge=round_money(city_amount),
            city_source=city_source,
            product_charges=charges,
            total=round_money(max(total, ZERO))
        )


class CodFeeCalculator:
    """Comisión COD según el esquema de la transportadora"""

    def __init__(self, strict: bool = False):
        self.strict = strict

    def calculate(
        self,
        calculation_type: CodFeeCalculationType,
        cod_amount: Decimal,
        fixed_fee: Optional[Decimal] = None,
        percentage: Optional[Decimal] = None,
        rules: Optional[Iterable[Any]] = None
    ) -> Decimal:
        """
        Calcular la comisión COD

        Args:
            calculation_type: FIXED, PERCENTAGE o RANGE_BASED
            cod_amount: Monto a recaudar contra entrega
            fixed_fee: Comisión fija (FIXED)
            percentage: Porcentaje (PERCENTAGE)
            rules: Reglas por rango (RANGE_BASED)

        Returns:
            Comisión redondeada a 2 decimales; 0 si ninguna regla aplica.
            Un monto de 0 también se tarifa: decidir si hay algo que recaudar
            corresponde al llamador.
        """
        amount = to_decimal(cod_amount)

        if calculation_type == CodFeeCalculationType.FIXED:
            return round_money(to_decimal(fixed_fee))

        if calculation_type == CodFeeCalculationType.PERCENTAGE:
            return round_money(amount * to_decimal(percentage) / HUNDRED)

        rule = match_rule(parse_rules(rules), amount)
        if rule is None:
            return round_money(report_gap(f"no COD fee range for amount {amount}", self.strict, cod_amount=amount))
        return round_money(apply_rule(rule, amount))

    def calculate_for_company(self, logistics_company: Any, cod_amount: Decimal) -> Decimal:
        return self.calculate(
            logistics_company.cod_fee_calculation_type,
            cod_amount,
            fixed_fee=logistics_company.fixed_cod_fee,
            percentage=logistics_company.cod_fee_percentage,
            rules=logistics_company.cod_fee_rules
        )
