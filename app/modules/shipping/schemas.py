"""
Esquemas Pydantic para el módulo de Envíos
"""

from pydantic import BaseModel, Field, model_validator
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from app.modules.shipping.models import ChargeRuleType, CodFeeCalculationType, LogisticsCompanyStatus


# ===== REGLAS =====

class ChargeRule(BaseModel):
    """Regla por rango [min, max] inclusivo; max vacío = sin límite superior"""
    min: Decimal = Decimal("0")
    max: Optional[Decimal] = None
    type: ChargeRuleType = ChargeRuleType.FIXED
    fee: Optional[Decimal] = Field(None, ge=0)
    percentage: Optional[Decimal] = Field(None, ge=0)

    @model_validator(mode="after")
    def check_rule(self):
        if self.max is not None and self.max < self.min:
            raise ValueError("max debe ser mayor o igual a min")
        if self.type == ChargeRuleType.FIXED and self.fee is None:
            raise ValueError("Las reglas FIXED requieren fee")
        if self.type == ChargeRuleType.PERCENTAGE and self.percentage is None:
            raise ValueError("Las reglas PERCENTAGE requieren percentage")
        return self

    def contains(self, value: Decimal) -> bool:
        return self.min <= value and (self.max is None or value <= self.max)


# ===== CONFIGURACIÓN DE ENVÍOS =====

class ShippingConfig(BaseModel):
    city_charges: Dict[str, Decimal] = Field(default_factory=dict)
    quantity_rules: List[ChargeRule] = Field(default_factory=list)
    default_city_charge: Optional[Decimal] = Field(None, ge=0)
    default_quantity_charge: Optional[Decimal] = Field(None, ge=0)


class ShippingQuoteItem(BaseModel):
    product_id: UUID
    quantity: int = Field(..., ge=1)
    unit_price: Optional[Decimal] = Field(None, ge=0)


class ShippingQuoteRequest(BaseModel):
    city: Optional[str] = None
    items: List[ShippingQuoteItem] = Field(..., min_length=1)


class ProductShippingCharge(BaseModel):
    product_id: Optional[UUID] = None
    quantity: int
    charge: Decimal
    source: str


class ShippingBreakdown(BaseModel):
    city_charge: Decimal
    city_source: str
    product_charges: List[ProductShippingCharge] = []
    total: Decimal


# ===== TRANSPORTADORAS =====

class LogisticsCompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    contact_phone: Optional[str] = None
    status: LogisticsCompanyStatus = LogisticsCompanyStatus.ACTIVE
    cod_fee_calculation_type: CodFeeCalculationType = CodFeeCalculationType.FIXED
    fixed_cod_fee: Optional[Decimal] = Field(None, ge=0)
    cod_fee_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    cod_fee_rules: List[ChargeRule] = Field(default_factory=list)


class LogisticsCompanyStatusUpdate(BaseModel):
    status: LogisticsCompanyStatus


class LogisticsCompanyOut(BaseModel):
    id: UUID
    name: str
    contact_phone: Optional[str] = None
    status: LogisticsCompanyStatus
    cod_fee_calculation_type: CodFeeCalculationType
    fixed_cod_fee: Optional[Decimal] = None
    cod_fee_percentage: Optional[Decimal] = None
    cod_fee_rules: Optional[List[dict]] = None

    class Config:
        from_attributes = True


class CodFeeRequest(BaseModel):
    logistics_company_id: UUID
    cod_amount: Decimal = Field(..., ge=0)


class CodFeeOut(BaseModel):
    logistics_company_id: UUID
    cod_amount: Decimal
    calculation_type: CodFeeCalculationType
    fee: Decimal
