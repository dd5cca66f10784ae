from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
from decimal import Decimal
from pydantic import field_validator

class Settings(BaseSettings):
    # Database settings
    POSTGRES_USER: str = 'ledger_user'
    POSTGRES_PASSWORD: str = 'ledger_pass'
    POSTGRES_DB: str = 'ledger_db'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432

    # Full SQLAlchemy URL, overrides the POSTGRES_* settings when present
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # Accounting
    BALANCE_TOLERANCE: Decimal = Decimal("0.01")
    TRANSACTION_NUMBER_PREFIX: str = "TXN"
    PAYMENT_NUMBER_PREFIX: str = "PAY"
    RETURN_NUMBER_PREFIX: str = "RET"
    ORDER_NUMBER_PREFIX: str = "ORD"

    # Shipping system defaults (used when the company has no configuration)
    DEFAULT_CITY_CHARGE: Decimal = Decimal("200")
    DEFAULT_QUANTITY_CHARGE: Decimal = Decimal("150")
    # Raise instead of resolving to 0 when no shipping/COD rule matches
    STRICT_CHARGE_RULES: bool = False

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: Optional[str] = None

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", mode="before")
    @classmethod
    def parse_debug(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("STRICT_CHARGE_RULES", mode="before")
    @classmethod
    def parse_strict_rules(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

settings = Settings()
