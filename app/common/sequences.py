"""
Contadores de numeración de documentos por empresa

Una fila por (empresa, serie), donde la serie es "<PREFIJO>-<AÑO>". El número se
asigna incrementando la fila dentro de la misma unidad de trabajo que inserta el
documento: la fila queda bloqueada hasta el commit y, si la unidad se revierte,
el número vuelve a estar disponible.
"""
from uuid import uuid4

from sqlalchemy import Column, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from app.database.database import Base
from app.common.mixins import TenantMixin, TimestampMixin


class DocumentSequence(Base, TenantMixin, TimestampMixin):
    __tablename__ = "document_sequences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(50), nullable=False)
    current_value = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint('tenant_id', 'name', name='uq_document_sequence_tenant_name'),
    )
