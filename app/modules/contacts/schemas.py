"""
Schemas Pydantic para el módulo de Contactos

- Clientes: identificados por teléfono; saldo inicial opcional
- Proveedores: identificados por nombre; saldo inicial firmado
"""

import re
from pydantic import BaseModel, Field, field_validator, model_validator
from uuid import UUID
from decimal import Decimal
from typing import Optional, List
from datetime import datetime


def _clean_phone(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    cleaned = re.sub(r"[\s\-()]", "", value)
    if not re.match(r"^\+?\d{7,15}$", cleaned):
        raise ValueError("Teléfono inválido: use solo dígitos (7 a 15), opcionalmente con +")
    return cleaned


# ===== CLIENTES =====

class CustomerCreate(BaseModel):
    """
    Alta de cliente.

    opening_balance > 0: el cliente debe a la empresa (Dr Cuentas por Cobrar).
    advance_balance > 0: la empresa debe al cliente (anticipo, Dr Customer Advance).
    """
    name: Optional[str] = Field(None, max_length=150)
    phone_number: str = Field(..., min_length=7, max_length=30)
    email: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    opening_balance: Decimal = Field(default=Decimal("0"), ge=0)
    advance_balance: Decimal = Field(default=Decimal("0"), ge=0)
    opening_balance_date: Optional[datetime] = None

    @field_validator("phone_number")
    @classmethod
    def validate_phone(cls, v):
        return _clean_phone(v)

    @field_validator("email")
    @classmethod
    def validate_email(cls, v):
        if v and v.strip():
            pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
            if not re.match(pattern, v):
                raise ValueError('Email debe tener formato válido')
        return v

    @model_validator(mode="after")
    def single_opening_side(self):
        if self.opening_balance > 0 and self.advance_balance > 0:
            raise ValueError("Un cliente no puede tener saldo por cobrar y anticipo a la vez")
        return self


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=150)
    email: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = None
    city: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None


class CustomerOut(BaseModel):
    id: UUID
    name: Optional[str] = None
    phone_number: str
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    advance_balance: Decimal
    total_orders: int
    total_spent: Decimal
    last_order_date: Optional[datetime] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class CustomerList(BaseModel):
    items: List[CustomerOut]
    total: int
    limit: int
    offset: int


# ===== PROVEEDORES =====

class SupplierCreate(BaseModel):
    """opening_balance firmado: positivo = se le debe al proveedor, negativo = anticipo entregado"""
    name: str = Field(..., min_length=1, max_length=150)
    phone: Optional[str] = Field(None, max_length=30)
    email: Optional[str] = Field(None, max_length=100)
    address: Optional[str] = None
    opening_balance: Decimal = Decimal("0")
    opening_balance_date: Optional[datetime] = None

    @field_validator("phone")
    @classmethod
    def validate_phone(cls, v):
        return _clean_phone(v) if v else v

    @field_validator("name")
    @classmethod
    def strip_name(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("El nombre no puede estar vacío")
        return v


class SupplierOut(BaseModel):
    id: UUID
    name: str
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    opening_balance: Decimal
    opening_balance_date: Optional[datetime] = None
    advance_balance: Decimal
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SupplierList(BaseModel):
    items: List[SupplierOut]
    total: int
    limit: int
    offset: int
