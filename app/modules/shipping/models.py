"""
Modelos SQLAlchemy para el módulo de Envíos

- LogisticsCompany: transportadora con su esquema de comisión COD
  (fija, porcentual o por rangos)
"""

from sqlalchemy import Column, String, Numeric, Enum, JSON, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
import enum

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


# ===== ENUMS =====

class LogisticsCompanyStatus(enum.Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class CodFeeCalculationType(enum.Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"
    RANGE_BASED = "RANGE_BASED"


class ChargeRuleType(str, enum.Enum):
    FIXED = "FIXED"
    PERCENTAGE = "PERCENTAGE"


# ===== MODELOS =====

class LogisticsCompany(Base, TenantMixin, TimestampMixin):
    """
    Transportadora.

    cod_fee_rules (RANGE_BASED): [{"min": 0, "max": 500, "type": "FIXED", "fee": 50}, ...]
    """
    __tablename__ = "logistics_companies"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(150), nullable=False)
    contact_phone = Column(String(30), nullable=True)
    status = Column(Enum(LogisticsCompanyStatus), nullable=False, default=LogisticsCompanyStatus.ACTIVE)

    cod_fee_calculation_type = Column(Enum(CodFeeCalculationType), nullable=False, default=CodFeeCalculationType.FIXED)
    fixed_cod_fee = Column(Numeric(15, 2), nullable=True)
    cod_fee_percentage = Column(Numeric(7, 4), nullable=True)
    cod_fee_rules = Column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_logistics_company_tenant_name'),
    )
