from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import PagoMovilVerificacion


class DuplicateReferenceGuard:
    """Read side of the one-verified-payment-per-reference rule.

    The partial unique index on ``referencia`` is the authority; this lookup
    only lets the common replay fail before the bank is called.
    """

    @staticmethod
    async def find_verified(db: AsyncSession, reference: str) -> Optional[PagoMovilVerificacion]:
        result = await db.execute(
            select(PagoMovilVerificacion)
            .where(
                PagoMovilVerificacion.referencia == reference,
                PagoMovilVerificacion.verificado.is_(True),
            )
            .limit(1)
        )
        return result.scalars().first()

    @staticmethod
    async def record_attempt(db: AsyncSession, attempt: PagoMovilVerificacion) -> PagoMovilVerificacion:
        """Flushes the attempt; a verified duplicate raises IntegrityError here."""
        db.add(attempt)
        await db.flush()
        return attempt
