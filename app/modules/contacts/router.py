"""
Router para el módulo de Contactos

Endpoints REST de clientes y proveedores, scoped por la empresa del header
X-Company-ID.
"""

from fastapi import APIRouter, Query, status
from typing import Optional
from uuid import UUID

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.contacts.service import CustomerService, SupplierService
from app.modules.contacts.schemas import (
    CustomerCreate, CustomerUpdate, CustomerOut, CustomerList,
    SupplierCreate, SupplierOut, SupplierList
)

customers_router = APIRouter(prefix="/customers", tags=["Contacts"])
suppliers_router = APIRouter(prefix="/suppliers", tags=["Contacts"])


# ===== CLIENTES =====

@customers_router.post("/", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
def create_customer(data: CustomerCreate, db: db_dependency, tenant_id: TenantId):
    """
    Crear un cliente

    - **phone_number**: único por empresa
    - **opening_balance**: saldo que el cliente debe al iniciar
    - **advance_balance**: anticipo que la empresa le debe al cliente
    """
    return CustomerService(db, tenant_id).create_customer(data)


@customers_router.get("/", response_model=CustomerList)
def list_customers(
    db: db_dependency,
    tenant_id: TenantId,
    search: Optional[str] = Query(None, description="Nombre o teléfono"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
):
    items, total = CustomerService(db, tenant_id).list_customers(search, limit, offset)
    return CustomerList(items=items, total=total, limit=limit, offset=offset)


@customers_router.get("/{customer_id}", response_model=CustomerOut)
def get_customer(customer_id: UUID, db: db_dependency, tenant_id: TenantId):
    return CustomerService(db, tenant_id).get_customer(customer_id)


@customers_router.patch("/{customer_id}", response_model=CustomerOut)
def update_customer(customer_id: UUID, data: CustomerUpdate, db: db_dependency, tenant_id: TenantId):
    return CustomerService(db, tenant_id).update_customer(customer_id, data)


# ===== PROVEEDORES =====

@suppliers_router.post("/", response_model=SupplierOut, status_code=status.HTTP_201_CREATED)
def create_supplier(data: SupplierCreate, db: db_dependency, tenant_id: TenantId):
    """Crear un proveedor; opening_balance negativo representa un anticipo entregado"""
    return SupplierService(db, tenant_id).create_supplier(data)


@suppliers_router.get("/", response_model=SupplierList)
def list_suppliers(
    db: db_dependency,
    tenant_id: TenantId,
    search: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0)
):
    items, total = SupplierService(db, tenant_id).list_suppliers(search, limit, offset)
    return SupplierList(items=items, total=total, limit=limit, offset=offset)


@suppliers_router.get("/{supplier_id}", response_model=SupplierOut)
def get_supplier(supplier_id: UUID, db: db_dependency, tenant_id: TenantId):
    return SupplierService(db, tenant_id).get_supplier(supplier_id)
