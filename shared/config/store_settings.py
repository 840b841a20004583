"""
Store-level business settings (order limits) read from the database.

``StoreSettingsProvider`` is created once per application and injected through
``get_store_settings_provider``. It caches the row for a fixed TTL and exposes
``refresh`` and ``invalidate`` so writers can drop the cached copy explicitly.
"""
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional

import structlog
from fastapi import Request
from sqlalchemy import Column, Numeric, String, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.config.database import Base

logger = structlog.get_logger(__name__)

DEFAULT_SETTINGS_ID = "default"


class CompanySettings(Base):
    __tablename__ = "company_settings"

    id = Column(String(32), primary_key=True, default=DEFAULT_SETTINGS_ID)
    company_name = Column(String(255), nullable=False, default="Electro Shop")
    min_order_amount_usd = Column(Numeric(12, 2), nullable=True)
    max_order_amount_usd = Column(Numeric(12, 2), nullable=True)


@dataclass(frozen=True)
class StoreSettings:
    company_name: str = "Electro Shop"
    min_order_amount_usd: Optional[Decimal] = None
    max_order_amount_usd: Optional[Decimal] = None


class StoreSettingsRepository:
    @staticmethod
    async def get(db: AsyncSession) -> Optional[CompanySettings]:
        result = await db.execute(
            select(CompanySettings)
            .where(CompanySettings.id == DEFAULT_SETTINGS_ID)
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    @staticmethod
    async def update_order_limits(
        db: AsyncSession,
        min_amount: Optional[Decimal],
        max_amount: Optional[Decimal],
    ) -> CompanySettings:
        row = await StoreSettingsRepository.get(db)
        if row is None:
            row = CompanySettings(id=DEFAULT_SETTINGS_ID)
            db.add(row)
        row.min_order_amount_usd = min_amount
        row.max_order_amount_usd = max_amount
        await db.flush()
        return row


class StoreSettingsProvider:
    def __init__(self, ttl_seconds: int = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._cached: Optional[StoreSettings] = None
        self._loaded_at = 0.0

    async def get(self, db: AsyncSession) -> StoreSettings:
        if self._cached is not None and (self._clock() - self._loaded_at) < self.ttl_seconds:
            return self._cached
        return await self.refresh(db)

    async def refresh(self, db: AsyncSession) -> StoreSettings:
        row = await StoreSettingsRepository.get(db)
        if row is None:
            settings = StoreSettings()
        else:
            settings = StoreSettings(
                company_name=row.company_name,
                min_order_amount_usd=row.min_order_amount_usd,
                max_order_amount_usd=row.max_order_amount_usd,
            )
        self._cached = settings
        self._loaded_at = self._clock()
        logger.info("store_settings_loaded", min_order=str(settings.min_order_amount_usd),
                    max_order=str(settings.max_order_amount_usd))
        return settings

    def invalidate(self) -> None:
        self._cached = None
        self._loaded_at = 0.0


def get_store_settings_provider(request: Request) -> StoreSettingsProvider:
    return request.app.state.store_settings
