"""
Validadores y normalizadores comunes (dinero, fechas, textos)
"""
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


def to_decimal(value: Any, default: Decimal = Decimal("0")) -> Decimal:
    """
    Convierte valores numéricos (int, float, str, Decimal) a Decimal.
    Los floats pasan por str para no arrastrar errores binarios.
    """
    if value is None or value == "":
        return default
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        logger.warning(f"Valor no numérico {value!r}, se usa {default}")
        return default


def round_money(value: Any) -> Decimal:
    """Redondea a 2 decimales (solo para resultados de cálculo y presentación)"""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def normalize_key(value: Optional[str]) -> str:
    """
    Normaliza nombres de ciudades o productos para comparaciones:
    sin espacios en los extremos, minúsculas y espacios internos colapsados.
    """
    if not value:
        return ""
    return re.sub(r"\s+", " ", value.strip()).lower()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Compara fechas de forma uniforme (SQLite devuelve datetimes sin zona)."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
