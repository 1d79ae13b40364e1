from __future__ import annotations

from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from cashpay.db.base import Base
from cashpay.db.models import AdminLog, CashPayment, User
from cashpay.services.security import AdminContext


@pytest_asyncio.fixture
async def maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def seeded(maker):
    async with maker() as session:
        session.add_all([
            User(id="a1", full_name="Admin One", email="admin@example.com", mobile_number="9000000001", role="admin", telegram_id=1001),
            User(id="u1", full_name="Asha", email="asha@example.com", mobile_number="9876543210", role="user"),
            User(id="u2", full_name="Ravi", email="ravi@example.com", mobile_number="9123456780", role="user"),
        ])
        await session.flush()
        session.add_all([
            CashPayment(id="p1", user_id="u1", amount=Decimal("500"), status="pending", created_at=datetime(2026, 10, 1, 10, 0)),
            CashPayment(id="p2", user_id="u2", amount=Decimal("1200.50"), status="pending", created_at=datetime(2026, 10, 1, 9, 0)),
            CashPayment(
                id="p3", user_id="u1", amount=Decimal("300"), status="approved", created_at=datetime(2026, 9, 30, 8, 0),
                approved_by="a1", approved_at=datetime(2026, 9, 30, 8, 30), admin_notes="receipt checked",
            ),
            CashPayment(
                id="p4", user_id="u2", amount=Decimal("750"), status="rejected", created_at=datetime(2026, 9, 29, 7, 0),
                approved_by="a1", approved_at=datetime(2026, 9, 29, 7, 45),
            ),
        ])
        await session.commit()
    return maker


@pytest.fixture
def admin() -> AdminContext:
    return AdminContext(user_id="a1", role="admin", full_name="Admin One", telegram_id=1001)


@pytest.fixture
def non_admin() -> AdminContext:
    return AdminContext(user_id="u1", role="user", full_name="Asha")


async def admin_logs(maker) -> list[AdminLog]:
    from cashpay.services.audit import list_admin_actions

    async with maker() as session:
        return await list_admin_actions(session)


async def payment(maker, payment_id: str) -> CashPayment | None:
    async with maker() as session:
        return await session.get(CashPayment, payment_id)
