"""
Operation log: append-only audit trail of committed stock movements.

Only the ledger appends; everyone else reads. Corrections are new entries
(e.g. an ADJUST), never rewrites.
"""
from datetime import date, datetime, time, timedelta
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.inventory.operation import Operation, OperationType


def append_operation(
    db: AsyncSession,
    *,
    op_type: OperationType,
    product_id: int,
    cell_id: int,
    quantity: int,
    actor_id: Optional[UUID],
    to_cell_id: Optional[int] = None,
) -> Operation:
    """Stage one log entry on the caller's transaction."""
    op = Operation(
        type=op_type,
        product_id=product_id,
        cell_id=cell_id,
        to_cell_id=to_cell_id,
        quantity=int(quantity),
        actor_id=actor_id,
    )
    db.add(op)
    return op


def _start_of(d) -> datetime:
    if isinstance(d, datetime):
        return d
    return datetime.combine(d, time.min)


def _end_exclusive(d) -> datetime:
    if isinstance(d, datetime):
        return d + timedelta(microseconds=1)
    return datetime.combine(d, time.min) + timedelta(days=1)


async def list_operations(
    db: AsyncSession,
    *,
    start: Optional[date | datetime] = None,
    end: Optional[date | datetime] = None,
    op_type: Optional[OperationType] = None,
    product_id: Optional[int] = None,
    cell_id: Optional[int] = None,
    limit: Optional[int] = None,
    newest_first: bool = True,
) -> List[Operation]:
    """
    History query.

    - start/end are inclusive; a plain date covers the whole day.
    - cell_id matches both the source and the destination side of a transfer.
    """
    stmt = select(Operation)
    if start is not None:
        stmt = stmt.where(Operation.created_at >= _start_of(start))
    if end is not None:
        stmt = stmt.where(Operation.created_at < _end_exclusive(end))
    if op_type is not None:
        stmt = stmt.where(Operation.type == op_type)
    if product_id is not None:
        stmt = stmt.where(Operation.product_id == product_id)
    if cell_id is not None:
        stmt = stmt.where(or_(Operation.cell_id == cell_id, Operation.to_cell_id == cell_id))

    if newest_first:
        stmt = stmt.order_by(Operation.created_at.desc(), Operation.id.desc())
    else:
        stmt = stmt.order_by(Operation.created_at.asc(), Operation.id.asc())
    if limit:
        stmt = stmt.limit(limit)

    res = await db.execute(stmt)
    return list(res.scalars().all())


async def get_operation(db: AsyncSession, operation_id: int) -> Optional[Operation]:
    res = await db.execute(select(Operation).where(Operation.id == operation_id))
    return res.scalar_one_or_none()
