"""
Servicio de Envíos

- Configuración de cargos de envío de la empresa (ciudades, reglas por cantidad)
- Cotización de envíos para órdenes
- Transportadoras y comisión COD
"""

import logging
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence
from uuid import UUID

from app.core.config import settings
from app.common.exceptions import ConflictError, InvalidOperationError, NotFoundError
from app.common.tenancy import TenantScopedService
from app.modules.company.models import Company
from app.modules.products.models import Product
from app.modules.shipping.calculator import CodFeeCalculator, ShippingChargesCalculator
from app.modules.shipping.models import LogisticsCompany, LogisticsCompanyStatus
from app.modules.shipping.schemas import (
    LogisticsCompanyCreate, ShippingBreakdown, ShippingConfig, ShippingQuoteRequest
)

logger = logging.getLogger(__name__)


class ShippingService(TenantScopedService):
    """Cargos de envío y comisiones COD de la empresa"""

    # ----- configuración -----

    def _company(self) -> Optional[Company]:
        return self.db.query(Company).filter(Company.id == self.tenant_id).first()

    def get_default_shipping_config(self) -> ShippingConfig:
        """Configuración de la empresa, completada con los valores del sistema"""
        company = self._company()
        default_city = settings.DEFAULT_CITY_CHARGE
        default_quantity = settings.DEFAULT_QUANTITY_CHARGE
        city_charges: Dict[str, Decimal] = {}
        rules = []
        if company is not None:
            city_charges = company.shipping_city_charges or {}
            rules = company.shipping_quantity_rules or []
            if company.default_city_charge is not None:
                default_city = company.default_city_charge
            if company.default_quantity_charge is not None:
                default_quantity = company.default_quantity_charge
        return ShippingConfig(
            city_charges=city_charges,
            quantity_rules=rules,
            default_city_charge=default_city,
            default_quantity_charge=default_quantity
        )

    def update_shipping_config(self, data: ShippingConfig) -> ShippingConfig:
        company = self._company()
        if company is None:
            raise NotFoundError("Empresa no encontrada", id=self.tenant_id)

        company.shipping_city_charges = {city: str(fee) for city, fee in data.city_charges.items()}
        company.shipping_quantity_rules = [rule.model_dump(mode="json") for rule in data.quantity_rules]
        company.default_city_charge = data.default_city_charge
        company.default_quantity_charge = data.default_quantity_charge
        self.db.commit()
        logger.info(f"Shipping configuration updated for tenant {self.tenant_id}")
        return self.get_default_shipping_config()

    def _calculator(self) -> ShippingChargesCalculator:
        config = self.get_default_shipping_config()
        return ShippingChargesCalculator(
            city_charges=config.city_charges,
            quantity_rules=config.quantity_rules,
            default_city_charge=config.default_city_charge,
            default_quantity_charge=config.default_quantity_charge,
            strict=settings.STRICT_CHARGE_RULES
        )

    # ----- cálculo -----

    def calculate_shipping_breakdown(
        self,
        city: Optional[str],
        products: Sequence[Product],
        quantities: Mapping[UUID, int],
        unit_prices: Optional[Mapping[UUID, Decimal]] = None
    ) -> ShippingBreakdown:
        return self._calculator().calculate(city, products, quantities, unit_prices)

    def calculate_shipping_charges(
        self,
        city: Optional[str],
        products: Sequence[Product],
        quantities: Mapping[UUID, int],
        unit_prices: Optional[Mapping[UUID, Decimal]] = None
    ) -> Decimal:
        """Total de envío: cargo de ciudad + cargos por cantidad de cada producto"""
        return self.calculate_shipping_breakdown(city, products, quantities, unit_prices).total

    def quote_shipping(self, data: ShippingQuoteRequest) -> ShippingBreakdown:
        products = [self.scope.get(Product, item.product_id, "Producto") for item in data.items]
        quantities = {item.product_id: item.quantity for item in data.items}
        unit_prices = {item.product_id: item.unit_price for item in data.items if item.unit_price is not None}
        return self.calculate_shipping_breakdown(data.city, products, quantities, unit_prices)

    # ----- transportadoras -----

    def create_logistics_company(self, data: LogisticsCompanyCreate) -> LogisticsCompany:
        existing = self.scope.query(LogisticsCompany).filter(LogisticsCompany.name == data.name).first()
        if existing:
            raise ConflictError(f"Ya existe la transportadora '{data.name}'")

        company = LogisticsCompany(
            name=data.name,
            contact_phone=data.contact_phone,
            status=data.status,
            cod_fee_calculation_type=data.cod_fee_calculation_type,
            fixed_cod_fee=data.fixed_cod_fee,
            cod_fee_percentage=data.cod_fee_percentage,
            cod_fee_rules=[rule.model_dump(mode="json") for rule in data.cod_fee_rules]
        )
        self.scope.add(company)
        self.db.commit()
        self.db.refresh(company)
        logger.info(f"Logistics company created: {company.name} ({company.cod_fee_calculation_type.value})")
        return company

    def get_logistics_company(self, logistics_company_id: UUID) -> LogisticsCompany:
        return self.scope.get(LogisticsCompany, logistics_company_id, "Transportadora")

    def list_logistics_companies(self, status: Optional[LogisticsCompanyStatus] = None) -> List[LogisticsCompany]:
        query = self.scope.query(LogisticsCompany)
        if status:
            query = query.filter(LogisticsCompany.status == status)
        return query.order_by(LogisticsCompany.name).all()

    def update_logistics_company_status(self, logistics_company_id: UUID, status: LogisticsCompanyStatus) -> LogisticsCompany:
        company = self.get_logistics_company(logistics_company_id)
        company.status = status
        self.db.commit()
        self.db.refresh(company)
        return company

    def calculate_cod_fee(self, logistics_company: LogisticsCompany, cod_amount: Decimal) -> Decimal:
        return CodFeeCalculator(strict=settings.STRICT_CHARGE_RULES).calculate_for_company(logistics_company, cod_amount)

    def calculate_cod_fee_for_company(self, logistics_company_id: UUID, cod_amount: Decimal) -> Decimal:
        """Comisión COD validando que la transportadora exista y esté activa"""
        company = self.get_logistics_company(logistics_company_id)
        if company.status != LogisticsCompanyStatus.ACTIVE:
            raise InvalidOperationError(f"La transportadora '{company.name}' no está activa")
        return self.calculate_cod_fee(company, cod_amount)
