"""
Domain error taxonomy shared by every module.

Errors extend FastAPI's HTTPException so services can raise them directly and the
web layer answers with the right status code. Each error carries a stable machine
``code`` and a ``category``: ``client`` for invalid requests (4xx) and ``server``
for failures the system could not complete (5xx).
"""
from typing import Any, Dict, Optional
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for accounting/inventory domain errors"""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "DOMAIN_ERROR"
    default_message: str = "Operación inválida"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        super().__init__(status_code=self.status_code, detail=self.message)

    @property
    def category(self) -> str:
        return "server" if self.status_code >= 500 else "client"

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "code": self.code,
            "message": self.message,
            "category": self.category,
        }
        if self.context:
            payload["context"] = {k: str(v) for k, v in self.context.items()}
        return payload


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_message = "Recurso no encontrado"


class UnbalancedTransactionError(DomainError):
    code = "UNBALANCED_TRANSACTION"
    default_message = "La suma de débitos no coincide con la suma de créditos"


class InvalidAccountError(DomainError):
    code = "INVALID_ACCOUNT"
    default_message = "Cuenta contable inválida"


class DuplicateAccountError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "DUPLICATE_ACCOUNT"
    default_message = "Ya existe una cuenta con ese código"


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"
    default_message = "El registro ya existe"


class InvalidOperationError(DomainError):
    code = "INVALID_OPERATION"
    default_message = "La operación no es válida en el estado actual"


class ConfigurationGapError(DomainError):
    """No shipping/COD rule matched. Only raised when STRICT_CHARGE_RULES is on."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "CONFIGURATION_GAP"
    default_message = "No existe una regla de cobro aplicable"


class TransactionNumberCollisionError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "TRANSACTION_NUMBER_COLLISION"
    default_message = "Número de transacción duplicado"
