from pydantic import BaseModel, Field
from typing import Optional
from uuid import UUID
from datetime import datetime


class CompanyCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    phone_number: Optional[str] = None
    address: Optional[str] = None
    currency: str = Field(default="PKR", min_length=3, max_length=3)
    initialize_chart_of_accounts: bool = Field(
        default=True, description="Crear el plan de cuentas por defecto al registrar la empresa"
    )


class CompanyOut(BaseModel):
    id: UUID
    name: str
    phone_number: Optional[str] = None
    address: Optional[str] = None
    currency: str
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
