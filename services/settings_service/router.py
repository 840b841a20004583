from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from services.audit_service.service import AuditAction, AuditLogger, get_audit_logger
from shared.config.database import get_db
from shared.config.store_settings import (
    StoreSettingsProvider,
    StoreSettingsRepository,
    get_store_settings_provider,
)
from shared.security.dependencies import Principal, RequestMeta, get_request_meta, require_permission
from shared.security.jwt_handler import MANAGE_SETTINGS
from .schemas import OrderLimitsResponse, OrderLimitsUpdate

router = APIRouter(prefix="/settings", tags=["Store settings"])


@router.patch("/order-limits", response_model=OrderLimitsResponse)
async def update_order_limits(
    payload: OrderLimitsUpdate,
    principal: Principal = Depends(require_permission(MANAGE_SETTINGS)),
    db: AsyncSession = Depends(get_db),
    provider: StoreSettingsProvider = Depends(get_store_settings_provider),
    audit: AuditLogger = Depends(get_audit_logger),
    meta: RequestMeta = Depends(get_request_meta),
):
    try:
        await StoreSettingsRepository.update_order_limits(
            db, payload.min_order_amount_usd, payload.max_order_amount_usd
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    provider.invalidate()
    settings = await provider.refresh(db)

    await audit.log(
        AuditAction.SETTINGS_UPDATED,
        actor_id=principal.user_id,
        target_type="company_settings",
        target_id="default",
        details={
            "min_order_amount_usd": str(settings.min_order_amount_usd),
            "max_order_amount_usd": str(settings.max_order_amount_usd),
        },
        request_meta=meta,
    )
    return OrderLimitsResponse(
        company_name=settings.company_name,
        min_order_amount_usd=settings.min_order_amount_usd,
        max_order_amount_usd=settings.max_order_amount_usd,
    )
