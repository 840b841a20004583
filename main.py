import asyncio
import contextlib
from datetime import timedelta

from fastapi import FastAPI
from slowapi.errors import RateLimitExceeded

from shared.config.database import engine, Base, get_session_factory
from shared.config.settings import get_settings
from shared.config.store_settings import StoreSettingsProvider
from shared.errors import register_exception_handlers
from shared.observability import setup_observability
from shared.security import limiter, rate_limit_exceeded_handler

# IMPORTANT: import models so they register with Base
from services.audit_service import models as audit_models
from services.notification_service import models as notification_models
from services.product_service import models as product_models
from services.order_service import models as order_models
from services.payment_service import models as payment_models
from services.wallet_service import models as wallet_models

from services.audit_service.service import AuditLogger
from services.notification_service.service import LoggingEmailSender, NotificationDispatcher
from services.order_service.router import router as order_router
from services.order_service.service import OrderService
from services.payment_service.bank_client import BdvClient
from services.payment_service.router import router as pago_movil_router
from services.payment_service.service import PaymentVerificationGateway
from services.product_service.router import router as cart_router, internal_router as cart_internal_router
from services.product_service.service import StockReservationManager
from services.product_service.sweeper import reservation_sweeper
from services.settings_service.router import router as settings_router
from services.wallet_service.router import router as balance_router, admin_router as transactions_admin_router
from services.wallet_service.service import TransactionLedger

settings = get_settings()

app = FastAPI(title="Storefront Fulfillment", version="1.0.0")

# --- OBSERVABILITY BOOTSTRAP ---
setup_observability(app, "storefront")

# --- SECURITY SETUP ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
register_exception_handlers(app)

# --- COLLABORATORS ---
session_factory = get_session_factory()
app.state.store_settings = StoreSettingsProvider(ttl_seconds=settings.STORE_SETTINGS_TTL_SECONDS)
app.state.audit_logger = AuditLogger(session_factory)
app.state.notifier = NotificationDispatcher(session_factory, LoggingEmailSender())
app.state.reservations = StockReservationManager(ttl=timedelta(minutes=settings.RESERVATION_TTL_MINUTES))
app.state.ledger = TransactionLedger(
    app.state.audit_logger,
    app.state.notifier,
    tolerance=settings.AUTO_APPROVE_TOLERANCE,
)
app.state.payments = PaymentVerificationGateway(
    BdvClient.from_settings(settings),
    app.state.ledger,
    app.state.audit_logger,
    max_amount_bs=settings.PAGO_MOVIL_MAX_AMOUNT_BS,
    max_age_days=settings.PAGO_MOVIL_MAX_AGE_DAYS,
)
app.state.orders = OrderService(
    app.state.reservations,
    app.state.ledger,
    app.state.store_settings,
    app.state.notifier,
    app.state.audit_logger,
)

app.include_router(order_router)
app.include_router(pago_movil_router)
app.include_router(cart_router)
app.include_router(cart_internal_router)
app.include_router(balance_router)
app.include_router(transactions_admin_router)
app.include_router(settings_router)


@app.get("/health", include_in_schema=False)
async def health_check():
    return {"service": "storefront", "status": "running"}


@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    app.state.sweeper_task = asyncio.create_task(
        reservation_sweeper(session_factory, app.state.reservations, settings.RESERVATION_SWEEP_INTERVAL_SECONDS)
    )


@app.on_event("shutdown")
async def shutdown_event():
    task = getattr(app.state, "sweeper_task", None)
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await engine.dispose()
