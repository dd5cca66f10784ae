from app.database.database import Base
from sqlalchemy import Column, String, Boolean, DateTime, Numeric, JSON
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid

class Company(Base):
    """
    Empresa (tenant). Su id es el tenant_id de todas las tablas del sistema.

    Guarda la configuración de envíos de la empresa:
    - shipping_city_charges: {"Lahore": 200, "default": 250}
    - shipping_quantity_rules: [{"min": 1, "max": 5, "type": "FIXED", "fee": 100}]
    """
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4)
    name = Column(String(150), unique=True, index=True, nullable=False)
    phone_number = Column(String(30), nullable=True)
    address = Column(String, nullable=True)
    currency = Column(String(3), nullable=False, default="PKR")

    shipping_city_charges = Column(JSON, nullable=True)
    shipping_quantity_rules = Column(JSON, nullable=True)
    default_city_charge = Column(Numeric(15, 2), nullable=True)
    default_quantity_charge = Column(Numeric(15, 2), nullable=True)

    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
