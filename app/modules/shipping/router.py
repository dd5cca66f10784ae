from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.database.database import get_db
from app.dependencies.requestDependencies import TenantId
from app.modules.shipping.models import LogisticsCompanyStatus
from app.modules.shipping.schemas import (
    CodFeeOut, CodFeeRequest, LogisticsCompanyCreate, LogisticsCompanyOut,
    LogisticsCompanyStatusUpdate, ShippingBreakdown, ShippingConfig, ShippingQuoteRequest
)
from app.modules.shipping.service import ShippingService

shipping_router = APIRouter(prefix="/shipping", tags=["Shipping"])


@shipping_router.get("/config", response_model=ShippingConfig)
def get_shipping_config(tenant_id: TenantId, db: Session = Depends(get_db)):
    """Configuración de envíos vigente (empresa o valores del sistema)"""
    return ShippingService(db, tenant_id).get_default_shipping_config()


@shipping_router.put("/config", response_model=ShippingConfig)
def update_shipping_config(config: ShippingConfig, tenant_id: TenantId, db: Session = Depends(get_db)):
    return ShippingService(db, tenant_id).update_shipping_config(config)


@shipping_router.post("/quote", response_model=ShippingBreakdown)
def quote_shipping(quote: ShippingQuoteRequest, tenant_id: TenantId, db: Session = Depends(get_db)):
    """Cotizar el envío de una orden"""
    return ShippingService(db, tenant_id).quote_shipping(quote)


@shipping_router.post("/logistics-companies", response_model=LogisticsCompanyOut, status_code=status.HTTP_201_CREATED)
def create_logistics_company(data: LogisticsCompanyCreate, tenant_id: TenantId, db: Session = Depends(get_db)):
    return ShippingService(db, tenant_id).create_logistics_company(data)


@shipping_router.get("/logistics-companies", response_model=List[LogisticsCompanyOut])
def list_logistics_companies(
    tenant_id: TenantId,
    status_filter: Optional[LogisticsCompanyStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    return ShippingService(db, tenant_id).list_logistics_companies(status_filter)


@shipping_router.patch("/logistics-companies/{logistics_company_id}/status", response_model=LogisticsCompanyOut)
def update_logistics_company_status(
    logistics_company_id: UUID,
    data: LogisticsCompanyStatusUpdate,
    tenant_id: TenantId,
    db: Session = Depends(get_db)
):
    return ShippingService(db, tenant_id).update_logistics_company_status(logistics_company_id, data.status)


@shipping_router.post("/cod-fee", response_model=CodFeeOut)
def calculate_cod_fee(data: CodFeeRequest, tenant_id: TenantId, db: Session = Depends(get_db)):
    """Comisión COD de una transportadora activa"""
    service = ShippingService(db, tenant_id)
    fee = service.calculate_cod_fee_for_company(data.logistics_company_id, data.cod_amount)
    company = service.get_logistics_company(data.logistics_company_id)
    return CodFeeOut(
        logistics_company_id=company.id,
        cod_amount=data.cod_amount,
        calculation_type=company.cod_fee_calculation_type,
        fee=fee
    )
