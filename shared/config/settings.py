from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_HOST: str = "localhost"  # In Docker, this will be 'postgres'
    POSTGRES_PORT: int = 5433
    POSTGRES_DB: str = "ecommerce"
    DATABASE_URL: str = ""  # overrides the POSTGRES_* parts when set
    DATABASE_ECHO: bool = False

    JWT_SECRET_KEY: str = ""
    INTERNAL_API_KEY: str = ""

    # Banco de Venezuela conciliation API
    BDV_API_KEY: str = ""
    BDV_TELEFONO_COMERCIO: str = ""
    BDV_AMBIENTE: str = "PRODUCCION"  # PRODUCCION | CALIDAD
    BDV_TIMEOUT_SECONDS: float = 15.0

    RESERVATION_TTL_MINUTES: int = 15
    RESERVATION_SWEEP_INTERVAL_SECONDS: int = 60

    AUTO_APPROVE_TOLERANCE: Decimal = Decimal("0.005")
    PAGO_MOVIL_MAX_AMOUNT_BS: Decimal = Decimal("3000000")
    PAGO_MOVIL_MAX_AGE_DAYS: int = 30

    STORE_SETTINGS_TTL_SECONDS: int = 60

    OTLP_ENDPOINT: str = "http://localhost:4317"
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )


@lru_cache
def get_settings() -> Settings:
    return Settings()
