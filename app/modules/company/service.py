"""
Servicio de empresas (tenants)
"""
import logging
from uuid import UUID

from sqlalchemy.orm import Session

from app.common.exceptions import ConflictError, NotFoundError
from app.modules.company.models import Company
from app.modules.company.schemas import CompanyCreate

logger = logging.getLogger(__name__)


class CompanyService:
    """Alta y consulta de empresas"""

    def __init__(self, db: Session):
        self.db = db

    def create_company(self, data: CompanyCreate) -> Company:
        """Crear empresa y, opcionalmente, su plan de cuentas por defecto"""
        from app.modules.accounting.service import AccountService

        existing = self.db.query(Company).filter(Company.name == data.name).first()
        if existing:
            raise ConflictError(f"Ya existe una empresa con el nombre '{data.name}'")

        try:
            company = Company(
                name=data.name,
                phone_number=data.phone_number,
                address=data.address,
                currency=data.currency.upper(),
            )
            self.db.add(company)
            self.db.flush()

            if data.initialize_chart_of_accounts:
                AccountService(self.db, company.id).initialize_chart_of_accounts(commit=False)

            self.db.commit()
            self.db.refresh(company)
        except Exception:
            self.db.rollback()
            raise

        logger.info(f"Company created: {company.name} ({company.id})")
        return company

    def get_company(self, company_id: UUID) -> Company:
        company = self.db.query(Company).filter(Company.id == company_id).first()
        if not company:
            raise NotFoundError("Empresa no encontrada", id=company_id)
        return company
