from fastapi import APIRouter, status

from app.dependencies.requestDependencies import TenantId, db_dependency
from app.modules.company.schemas import CompanyCreate, CompanyOut
from app.modules.company.service import CompanyService

company_router = APIRouter(tags=["Companies"])


@company_router.post("/companies", response_model=CompanyOut, status_code=status.HTTP_201_CREATED)
def create_company(company: CompanyCreate, db: db_dependency):
    """Registrar una empresa (tenant) con su plan de cuentas"""
    return CompanyService(db).create_company(company)


@company_router.get("/company/me", response_model=CompanyOut)
def get_my_company(db: db_dependency, tenant_id: TenantId):
    """Empresa del contexto actual (X-Company-ID)"""
    return CompanyService(db).get_company(tenant_id)
