"""Shared fixtures: a throwaway SQLite ticket database and verified users."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from genmedia.core.security.identity import AuthUser
from genmedia.database.db import create_tables
from genmedia.src.billing.tickets.daily_bonus import DailyBonusService
from genmedia.src.billing.tickets.ledger import TicketLedger
from genmedia.src.billing.settlement.engine import SettlementEngine


@pytest_asyncio.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh database file per test with all ticket tables created."""
    engine = create_async_engine(f'sqlite+aiosqlite:///{tmp_path / "tickets.db"}')
    await create_tables(engine)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def ledger(session_factory) -> TicketLedger:
    return TicketLedger(session_factory=session_factory, signup_grant=5)


@pytest.fixture
def engine(ledger) -> SettlementEngine:
    return SettlementEngine(ledger=ledger)


@pytest.fixture
def bonus_service(ledger) -> DailyBonusService:
    return DailyBonusService(ledger=ledger, amount=1, cooldown_hours=24)


@pytest.fixture
def user() -> AuthUser:
    return AuthUser(id='user-1', email='ada@example.com', provider='google', identities=['google'])


@pytest.fixture
def other_user() -> AuthUser:
    return AuthUser(id='user-2', email='grace@example.com', provider='google', identities=['google'])
