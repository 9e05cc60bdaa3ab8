"""Shared fixtures: a throwaway SQLite database per test and a small warehouse builder."""
import uuid
from typing import List, Optional, Tuple

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.allocation import AllocationEngine
from core.ledger import InventoryLedger
from db import Base, Cell, InventoryRecord, Operation, Product, User, Zone


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
async def actor_id(db) -> uuid.UUID:
    user_id = uuid.uuid4()
    db.add(
        User(
            id=user_id,
            email="picker@example.com",
            hashed_password="not-a-real-hash",
            is_active=True,
            is_superuser=True,
            is_verified=True,
            full_name="Pat Picker",
        )
    )
    await db.commit()
    return user_id


@pytest.fixture
def ledger(db) -> InventoryLedger:
    return InventoryLedger(db)


@pytest.fixture
def allocation(ledger) -> AllocationEngine:
    return AllocationEngine(ledger)


class WarehouseBuilder:
    """Creates catalog rows and reads ledger state back as plain values.

    Everything returns ids or tuples, never ORM objects, so assertions keep
    working after a ledger rollback has expired the session.
    """

    def __init__(self, db):
        self.db = db
        self._zone_id: Optional[int] = None
        self._next_cell = 1

    async def zone(self, name: str = "A") -> int:
        z = Zone(name=name, description=f"Zone {name}")
        self.db.add(z)
        await self.db.commit()
        return z.id

    async def cell(self, capacity: int = 100, zone_id: Optional[int] = None) -> int:
        if zone_id is None:
            if self._zone_id is None:
                self._zone_id = await self.zone()
            zone_id = self._zone_id
        c = Cell(zone_id=zone_id, row_number=1, cell_number=self._next_cell, capacity=capacity, current_fill=0)
        self._next_cell += 1
        self.db.add(c)
        await self.db.commit()
        return c.id

    async def product(self, sku: str = "SKU-1", name: str = "Widget") -> int:
        p = Product(name=name, sku=sku, unit="pcs")
        self.db.add(p)
        await self.db.commit()
        return p.id

    async def fill_of(self, cell_id: int) -> int:
        res = await self.db.execute(select(Cell.current_fill).where(Cell.id == cell_id))
        return int(res.scalar_one())

    async def quantity(self, cell_id: int, product_id: int) -> Optional[int]:
        res = await self.db.execute(
            select(InventoryRecord.quantity).where(
                InventoryRecord.cell_id == cell_id,
                InventoryRecord.product_id == product_id,
            )
        )
        q = res.scalar_one_or_none()
        return int(q) if q is not None else None

    async def records(self) -> List[Tuple[int, int, int]]:
        res = await self.db.execute(
            select(InventoryRecord.cell_id, InventoryRecord.product_id, InventoryRecord.quantity)
            .order_by(InventoryRecord.cell_id, InventoryRecord.product_id)
        )
        return [tuple(r) for r in res.all()]

    async def fills(self) -> List[Tuple[int, int]]:
        res = await self.db.execute(select(Cell.id, Cell.current_fill).order_by(Cell.id))
        return [tuple(r) for r in res.all()]

    async def operations(self) -> List[Tuple[str, int, int, Optional[int], int]]:
        res = await self.db.execute(
            select(Operation.type, Operation.product_id, Operation.cell_id, Operation.to_cell_id, Operation.quantity)
            .order_by(Operation.id)
        )
        return [(t.value, p, c, to, q) for (t, p, c, to, q) in res.all()]

    async def assert_fill_consistent(self):
        records = await self.records()
        for cell_id, fill in await self.fills():
            expected = sum(q for (c, _p, q) in records if c == cell_id)
            assert fill == expected, f"cell {cell_id}: fill {fill} != sum {expected}"
        keys = [(c, p) for (c, p, _q) in records]
        assert len(keys) == len(set(keys))
        assert all(q > 0 for (_c, _p, q) in records)


@pytest.fixture
def warehouse(db) -> WarehouseBuilder:
    return WarehouseBuilder(db)


@pytest.fixture
async def client(session_maker, actor_id):
    """HTTP client against the app, authenticated as a superuser."""
    from httpx import ASGITransport, AsyncClient

    from core.auth import current_active_superuser, current_active_user
    from db.database import get_async_session
    from main import app

    async def override_session():
        async with session_maker() as session:
            yield session

    user = User(
        id=actor_id,
        email="picker@example.com",
        hashed_password="not-a-real-hash",
        is_active=True,
        is_superuser=True,
        is_verified=True,
    )

    app.dependency_overrides[get_async_session] = override_session
    app.dependency_overrides[current_active_user] = lambda: user
    app.dependency_overrides[current_active_superuser] = lambda: user
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
