import os

# Settings are read at import time by the shared modules
os.environ["JWT_SECRET_KEY"] = "test-secret-key"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["OTLP_ENDPOINT"] = ""
os.environ["BDV_API_KEY"] = "test-bdv-key"
os.environ["BDV_TELEFONO_COMERCIO"] = "04140000000"

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from main import app
from services.audit_service.models import AuditLogEntry
from services.audit_service.service import AuditLogger
from services.notification_service.models import Notification
from services.notification_service.service import NotificationDispatcher
from services.order_service.service import OrderService
from services.payment_service.bank_client import BankVerificationResult
from services.payment_service.service import PaymentVerificationGateway
from services.product_service.models import Product, ProductStatus, ProductType
from services.product_service.service import StockReservationManager
from services.wallet_service.models import UserBalance
from services.wallet_service.service import TransactionLedger
from shared.config.database import Base, get_db
from shared.config.store_settings import StoreSettingsProvider
from shared.security import create_access_token, limiter

TODAY = date(2026, 10, 19)


class Clock:
    """Settable UTC clock for reservation expiry tests."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@dataclass
class RecordingEmailSender:
    sent: list = field(default_factory=list)

    async def send(self, user_id, subject, template, context, send_after=None):
        self.sent.append(SimpleNamespace(
            user_id=user_id, subject=subject, template=template, context=context, send_after=send_after,
        ))


class FakeBankClient:
    """Stands in for BdvClient; returns ``result`` and records every call."""

    def __init__(self):
        self.result = BankVerificationResult(
            True, 1000, "Transaccion exitosa", amount=Decimal("1000.00"), raw_response={"code": 1000},
        )
        self.calls = []

    async def verify_payment(self, payer_phone, bank_code, reference, payment_date, amount_bs, payer_id=None):
        self.calls.append(SimpleNamespace(
            payer_phone=payer_phone, bank_code=bank_code, reference=reference,
            payment_date=payment_date, amount_bs=amount_bs, payer_id=payer_id,
        ))
        return self.result


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)

    @event.listens_for(engine.sync_engine, "connect")
    def _set_wal(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def bank_client():
    return FakeBankClient()


@pytest.fixture
def services(session_factory, clock, email_sender, bank_client):
    audit = AuditLogger(session_factory)
    notifier = NotificationDispatcher(session_factory, email_sender)
    reservations = StockReservationManager(clock=clock)
    ledger = TransactionLedger(audit, notifier)
    store_settings = StoreSettingsProvider(ttl_seconds=60)
    payments = PaymentVerificationGateway(bank_client, ledger, audit, today=lambda: TODAY)
    orders = OrderService(reservations, ledger, store_settings, notifier, audit)
    return SimpleNamespace(
        audit_logger=audit,
        notifier=notifier,
        reservations=reservations,
        ledger=ledger,
        store_settings=store_settings,
        payments=payments,
        orders=orders,
    )


@pytest.fixture
async def client(services, session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    for name, collaborator in vars(services).items():
        setattr(app.state, name, collaborator)
    limiter.enabled = False

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def auth_headers():
    def _headers(user_id: str, *permissions: str) -> dict:
        token = create_access_token(user_id, permissions)
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_product(session_factory):
    async def _make(
        name: str = "Laptop",
        price: str = "100.00",
        stock: int = 10,
        status: ProductStatus = ProductStatus.PUBLISHED,
        product_type: ProductType = ProductType.PHYSICAL,
        sku: Optional[str] = None,
    ) -> Product:
        async with session_factory() as session:
            product = Product(
                name=name, sku=sku, price=Decimal(price), stock=stock, status=status, product_type=product_type,
            )
            session.add(product)
            await session.commit()
            return product

    return _make


@pytest.fixture
def make_balance(session_factory):
    async def _make(user_id: str, amount: str = "0.00") -> UserBalance:
        async with session_factory() as session:
            balance = UserBalance(
                user_id=user_id,
                balance=Decimal(amount),
                total_spent=Decimal("0"),
                total_recharges=Decimal("0"),
            )
            session.add(balance)
            await session.commit()
            return balance

    return _make


@pytest.fixture
def fetch(session_factory):
    """Reads a fresh copy of a row in a new session."""

    async def _fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)

    return _fetch


@pytest.fixture
def audit_entries(session_factory):
    async def _entries(action: Optional[str] = None) -> list[AuditLogEntry]:
        async with session_factory() as session:
            stmt = select(AuditLogEntry).order_by(AuditLogEntry.id)
            if action:
                stmt = stmt.where(AuditLogEntry.action == action)
            return list((await session.execute(stmt)).scalars().all())

    return _entries


@pytest.fixture
def notifications(session_factory):
    async def _notifications(user_id: Optional[str] = None) -> list[Notification]:
        async with session_factory() as session:
            stmt = select(Notification).order_by(Notification.id)
            if user_id:
                stmt = stmt.where(Notification.user_id == user_id)
            return list((await session.execute(stmt)).scalars().all())

    return _notifications
