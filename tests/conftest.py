from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from resumeops.config import Settings
from resumeops.models import Base
from resumeops.models.base import utcnow
from resumeops.services import order_workflow

ADMIN = "01ADMIN0000000000000000000"
CLIENT = "01CLIENT000000000000000000"


@pytest_asyncio.fixture
async def db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def settings():
    return Settings()


@pytest.fixture
def make_order(db, settings):
    async def _make(status: str | None = None, **overrides):
        fields = dict(
            actor_id=ADMIN,
            client_id=CLIENT,
            service_type="resume_writing",
            base_price=150.0,
            estimated_completion=utcnow() + timedelta(days=7),
            settings=settings,
        )
        fields.update(overrides)
        order = await order_workflow.create_order(db, **fields)
        if status is not None:
            order.status = status
            await db.commit()
            await db.refresh(order)
        return order
    return _make
