"""
Dependencias por request: sesión de base de datos y empresa (tenant) activa
"""
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.common.exceptions import InvalidOperationError
from app.database.database import get_db

db_dependency = Annotated[Session, Depends(get_db)]


def get_tenant_id(request: Request) -> UUID:
    """tenant_id fijado por TenantMiddleware a partir del header X-Company-ID"""
    tenant_id = getattr(request.state, "tenant_id", None)
    if tenant_id is None:
        raise InvalidOperationError("No se encontró la empresa del request; envíe el header X-Company-ID")
    return tenant_id


TenantId = Annotated[UUID, Depends(get_tenant_id)]
