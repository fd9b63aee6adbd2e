from decimal import Decimal
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Database settings
    DATABASE_URL: Optional[str] = None
    POSTGRES_USER: Optional[str] = None
    POSTGRES_PASSWORD: str = ''
    POSTGRES_DB: str = 'posledger'
    POSTGRES_HOST: str = 'postgres'
    POSTGRES_PORT: int = 5432
    SQLITE_PATH: str = './posledger.db'

    # Currency
    CURRENCY_CODE: str = 'MXN'
    CURRENCY_EPSILON: Decimal = Decimal('0.01')

    # Inventory ledger policies
    INVENTORY_TRANSFER_DIRECTION: Literal['IN', 'OUT'] = 'IN'
    INVENTORY_CLAMP_ON_PERSIST: bool = False

    # Pagination
    DEFAULT_PAGE_SIZE: int = 50
    MAX_PAGE_SIZE: int = 500

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if self.POSTGRES_USER:
            return (
                f"postgresql+psycopg2://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
                f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
            )
        return f"sqlite:///{self.SQLITE_PATH}"

    model_config = SettingsConfigDict(
        extra="allow",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @field_validator("DEBUG", "INVENTORY_CLAMP_ON_PERSIST", mode="before")
    @classmethod
    def parse_bool(cls, v):
        if isinstance(v, str):
            return v.lower().strip('"').strip("'") in ("true", "1", "yes", "on")
        return bool(v)

    @field_validator("INVENTORY_TRANSFER_DIRECTION", mode="before")
    @classmethod
    def parse_direction(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @field_validator("CURRENCY_EPSILON")
    @classmethod
    def validate_epsilon(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("CURRENCY_EPSILON debe ser mayor a cero")
        return v


settings = Settings()
