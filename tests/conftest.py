"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Gateway credentials used across the suite (sandbox-style values)
os.environ.setdefault("DATABASE__URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("VNPAY__TMN_CODE", "TESTTMN1")
os.environ.setdefault("VNPAY__HASH_SECRET", "vnpay-test-secret")
os.environ.setdefault("MOMO__PARTNER_CODE", "MOMOTEST")
os.environ.setdefault("MOMO__ACCESS_KEY", "momo-test-access")
os.environ.setdefault("MOMO__SECRET_KEY", "momo-test-secret")
os.environ.setdefault("PAYPAL__MERCHANT_ID", "MERCHANT1")
os.environ.setdefault("PAYPAL__RELAY_SECRET", "paypal-test-secret")

import pytest
import pytest_asyncio
from pydantic import SecretStr
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from core.settings import MomoSettings, PaymentSettings, PaypalSettings, VnpaySettings
from infrastructure.models import Base
from infrastructure.unit_of_work import SQLAlchemyUnitOfWork
from tests.fakes import InMemoryUnitOfWork, MemoryState


VNPAY_SECRET = "vnpay-test-secret"
MOMO_ACCESS_KEY = "momo-test-access"
MOMO_SECRET = "momo-test-secret"
PAYPAL_SECRET = "paypal-test-secret"


def build_payment_settings(**overrides) -> PaymentSettings:
    values = dict(
        vnpay=VnpaySettings(tmn_code="TESTTMN1", hash_secret=SecretStr(VNPAY_SECRET)),
        momo=MomoSettings(
            partner_code="MOMOTEST",
            access_key=SecretStr(MOMO_ACCESS_KEY),
            secret_key=SecretStr(MOMO_SECRET),
        ),
        paypal=PaypalSettings(merchant_id="MERCHANT1", relay_secret=SecretStr(PAYPAL_SECRET)),
    )
    values.update(overrides)
    return PaymentSettings(**values)


@pytest.fixture
def payment_cfg() -> PaymentSettings:
    return build_payment_settings()


# ---- SQLite (aiosqlite) ----

@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def uow_factory(session_factory):
    def _factory() -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork(session_factory=session_factory)
    return _factory


@pytest.fixture
def memory_state() -> MemoryState:
    return MemoryState()


@pytest.fixture
def memory_uow_factory(memory_state):
    def _factory() -> InMemoryUnitOfWork:
        return InMemoryUnitOfWork(memory_state)
    return _factory


@pytest.fixture
def settings_factory():
    return build_payment_settings
