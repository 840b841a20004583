import asyncio

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .service import StockReservationManager

logger = structlog.get_logger(__name__)


async def reservation_sweeper(
    session_factory: async_sessionmaker[AsyncSession],
    manager: StockReservationManager,
    interval_seconds: int,
):
    """Deletes expired holds every ``interval_seconds`` until cancelled."""
    logger.info("reservation_sweeper_started", interval_seconds=interval_seconds)
    while True:
        try:
            async with session_factory() as session:
                await manager.sweep_expired(session)
        except asyncio.CancelledError:
            raise
        except Exception:
            # A failed pass must not end the loop
            logger.exception("reservation_sweep_failed")
        await asyncio.sleep(interval_seconds)
