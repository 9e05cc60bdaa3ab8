"""Database maintenance utilities"""
import logging
from typing import List, Tuple

from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import AsyncEngine

from db.cell import Cell
from db.inventory.record import InventoryRecord

logger = logging.getLogger(__name__)


async def add_missing_user_columns(engine: AsyncEngine):
    """Add the full_name column to a users table created before it existed"""
    async with engine.begin() as conn:
        if conn.dialect.name != "postgresql":
            return
        result = await conn.execute(
            text("""
                SELECT column_name
                FROM information_schema.columns
                WHERE table_name = 'users'
            """)
        )
        existing_columns = {row[0] for row in result.fetchall()}
        if "full_name" not in existing_columns:
            logger.info("Adding full_name column to users table...")
            await conn.execute(text("ALTER TABLE users ADD COLUMN full_name VARCHAR"))


async def recompute_all_fills(engine: AsyncEngine, dry_run: bool = False) -> List[Tuple[int, int, int]]:
    """
    Recompute every cell's current_fill from its inventory records.

    Returns (cell_id, stored_fill, actual_fill) for each cell that had drifted.
    With dry_run the drift is only reported.
    """
    totals = (
        select(InventoryRecord.cell_id, func.sum(InventoryRecord.quantity).label("total"))
        .group_by(InventoryRecord.cell_id)
        .subquery()
    )
    stmt = (
        select(Cell.id, Cell.current_fill, func.coalesce(totals.c.total, 0))
        .outerjoin(totals, totals.c.cell_id == Cell.id)
        .order_by(Cell.id)
    )

    drifted: List[Tuple[int, int, int]] = []
    async with engine.begin() as conn:
        rows = (await conn.execute(stmt)).all()
        for cell_id, stored, actual in rows:
            if int(stored or 0) != int(actual):
                drifted.append((cell_id, int(stored or 0), int(actual)))

        if not dry_run:
            for cell_id, _stored, actual in drifted:
                await conn.execute(
                    Cell.__table__.update().where(Cell.__table__.c.id == cell_id).values(current_fill=actual)
                )

    for cell_id, stored, actual in drifted:
        logger.warning("cell %s fill drift: stored=%s actual=%s%s", cell_id, stored, actual, " (dry run)" if dry_run else "")
    return drifted
