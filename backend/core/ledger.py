"""
Inventory ledger: sole writer of InventoryRecord and Cell.current_fill.

Every public mutation runs as one unit of work on the session it was given:
cells are locked (ascending id), then the guarded stock writes, the fill
recomputation and the operation log entries are committed together.
A failure at any point rolls the whole transaction back.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from core.exceptions import CapacityExceeded, InsufficientStock, InvalidQuantity, LedgerError, NotFound
from core.oplog import append_operation
from db.cell import Cell
from db.inventory.operation import OperationType
from db.inventory.record import InventoryRecord
from db.product import Product

logger = logging.getLogger(__name__)


def require_positive(quantity) -> int:
    # bool is an int subclass; reject it explicitly.
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(quantity, "must be a whole number")
    if quantity <= 0:
        raise InvalidQuantity(quantity)
    return quantity


@dataclass(frozen=True)
class CellFill:
    cell_id: int
    current_fill: int
    capacity: int

    @property
    def free_space(self) -> int:
        return max(self.capacity - self.current_fill, 0)


class InventoryLedger:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ---- transaction boundary -------------------------------------------

    @asynccontextmanager
    async def unit_of_work(self, action: str):
        # The session may already have autobegun (a dependency can share it),
        # so never call db.begin() here; commit/rollback explicitly instead.
        try:
            yield
            await self.db.commit()
        except LedgerError as e:
            await self.db.rollback()
            logger.warning("%s rejected: %s: %s", action, type(e).__name__, e.detail)
            raise
        except Exception:
            await self.db.rollback()
            logger.exception("%s failed", action)
            raise

    # ---- lookups ----------------------------------------------------------

    async def get_product(self, product_id: int) -> Product:
        res = await self.db.execute(select(Product).where(Product.id == product_id))
        product = res.scalar_one_or_none()
        if product is None:
            raise NotFound("Product", product_id)
        return product

    async def get_cell(self, cell_id: int) -> Cell:
        res = await self.db.execute(select(Cell).where(Cell.id == cell_id))
        cell = res.scalar_one_or_none()
        if cell is None:
            raise NotFound("Cell", cell_id)
        return cell

    async def lock_cells(self, cell_ids: Iterable[int]) -> Dict[int, Cell]:
        """SELECT ... FOR UPDATE the given cells in ascending id order."""
        ids = sorted(set(cell_ids))
        if not ids:
            return {}
        res = await self.db.execute(
            select(Cell)
            .where(Cell.id.in_(ids))
            .order_by(Cell.id.asc())
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        cells = {c.id: c for c in res.scalars().all()}
        for cid in ids:
            if cid not in cells:
                raise NotFound("Cell", cid)
        return cells

    async def get_record(self, cell_id: int, product_id: int, lock: bool = False) -> Optional[InventoryRecord]:
        stmt = select(InventoryRecord).where(
            InventoryRecord.cell_id == cell_id,
            InventoryRecord.product_id == product_id,
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        res = await self.db.execute(stmt)
        return res.scalar_one_or_none()

    async def records_for_product(
        self, product_id: int, cell_ids: Optional[Iterable[int]] = None, lock: bool = False
    ) -> List[InventoryRecord]:
        stmt = select(InventoryRecord).where(InventoryRecord.product_id == product_id)
        if cell_ids is not None:
            stmt = stmt.where(InventoryRecord.cell_id.in_(list(cell_ids)))
        stmt = stmt.order_by(InventoryRecord.cell_id.asc())
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        res = await self.db.execute(stmt)
        return list(res.scalars().all())

    # ---- primitive writes (only inside a unit of work) ------------------
    #
    # Stock and fill changes are relative, guarded statements: the check and
    # the write are a single UPDATE against the current row.

    async def recompute_fill(self, cell: Cell) -> int:
        """Set cell.current_fill to the sum of its records, from scratch."""
        await self.db.flush()
        res = await self.db.execute(
            select(func.coalesce(func.sum(InventoryRecord.quantity), 0)).where(
                InventoryRecord.cell_id == cell.id
            )
        )
        cell.current_fill = int(res.scalar_one())
        return cell.current_fill

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            return sqlite.insert
        return postgresql.insert

    async def apply_credit(self, cell_id: int, product_id: int, quantity: int) -> InventoryRecord:
        """Add quantity to the (cell, product) record, creating it if missing."""
        records_tbl = InventoryRecord.__table__
        upsert = (
            self._insert()(records_tbl)
            .values(cell_id=cell_id, product_id=product_id, quantity=quantity)
            .on_conflict_do_update(
                index_elements=[records_tbl.c.cell_id, records_tbl.c.product_id],
                set_={"quantity": records_tbl.c.quantity + quantity},
            )
        )
        await self.db.execute(upsert)
        return await self.get_record(cell_id, product_id, lock=True)

    async def apply_debit(self, record: InventoryRecord, quantity: int) -> int:
        """Take quantity from record, deleting it when it drains to zero. Returns what is left."""
        records_tbl = InventoryRecord.__table__
        res = await self.db.execute(
            records_tbl.update()
            .where(records_tbl.c.id == record.id, records_tbl.c.quantity > quantity)
            .values(quantity=records_tbl.c.quantity - quantity)
            .returning(records_tbl.c.quantity)
        )
        remaining = res.scalar_one_or_none()
        if remaining is not None:
            set_committed_value(record, "quantity", int(remaining))
            return int(remaining)

        # quantity > 0 is a table constraint, so an exact drain is a delete
        res = await self.db.execute(
            records_tbl.delete().where(records_tbl.c.id == record.id, records_tbl.c.quantity == quantity)
        )
        if res.rowcount == 1:
            self.db.expunge(record)
            return 0

        res = await self.db.execute(select(records_tbl.c.quantity).where(records_tbl.c.id == record.id))
        available = int(res.scalar_one_or_none() or 0)
        raise InsufficientStock(record.product_id, quantity, available, cell_id=record.cell_id)

    async def delete_record(self, record: InventoryRecord) -> int:
        """Delete record outright. Returns the quantity it held when deleted."""
        records_tbl = InventoryRecord.__table__
        res = await self.db.execute(
            records_tbl.delete().where(records_tbl.c.id == record.id).returning(records_tbl.c.quantity)
        )
        removed = res.scalar_one_or_none()
        if removed is None:
            raise NotFound("Inventory record", f"cell={record.cell_id} product={record.product_id}")
        self.db.expunge(record)
        return int(removed)

    async def claim_capacity(self, cell: Cell, quantity: int) -> int:
        """Raise cell.current_fill by quantity unless that would pass capacity."""
        cells_tbl = Cell.__table__
        res = await self.db.execute(
            cells_tbl.update()
            .where(cells_tbl.c.id == cell.id, cells_tbl.c.current_fill + quantity <= cells_tbl.c.capacity)
            .values(current_fill=cells_tbl.c.current_fill + quantity)
            .returning(cells_tbl.c.current_fill)
        )
        fill = res.scalar_one_or_none()
        if fill is None:
            res = await self.db.execute(
                select(cells_tbl.c.capacity, cells_tbl.c.current_fill).where(cells_tbl.c.id == cell.id)
            )
            capacity, current_fill = res.one()
            raise CapacityExceeded(cell.id, int(capacity), int(current_fill), quantity)
        set_committed_value(cell, "current_fill", int(fill))
        return int(fill)

    # ---- operations -------------------------------------------------------

    async def receive(self, cell_id: int, product_id: int, quantity: int, actor_id: Optional[UUID]) -> InventoryRecord:
        """
        Put stock into a cell.

        Capacity is not checked here; only transfers enforce destination capacity.
        """
        async with self.unit_of_work("receive"):
            require_positive(quantity)
            cell = (await self.lock_cells([cell_id]))[cell_id]
            await self.get_product(product_id)

            record = await self.apply_credit(cell_id, product_id, quantity)
            await self.recompute_fill(cell)
            append_operation(
                self.db,
                op_type=OperationType.RECEIVE,
                product_id=product_id,
                cell_id=cell_id,
                quantity=quantity,
                actor_id=actor_id,
            )
        logger.info(
            "RECEIVE product=%s cell=%s qty=%s actor=%s fill=%s/%s",
            product_id, cell_id, quantity, actor_id, cell.current_fill, cell.capacity,
        )
        return record

    async def adjust_quantity(
        self, cell_id: int, product_id: int, new_quantity: int, actor_id: Optional[UUID]
    ) -> Optional[InventoryRecord]:
        """Overwrite a record's quantity. Zero removes the record (logged as REMOVE)."""
        async with self.unit_of_work("adjust"):
            if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
                raise InvalidQuantity(new_quantity, "must be a whole number")
            if new_quantity < 0:
                raise InvalidQuantity(new_quantity, "must be >= 0")
            cell = (await self.lock_cells([cell_id]))[cell_id]
            record = await self.get_record(cell_id, product_id, lock=True)
            if record is None:
                raise NotFound("Inventory record", f"cell={cell_id} product={product_id}")

            if new_quantity == 0:
                removed = await self.delete_record(record)
                record = None
                op_type, logged_qty = OperationType.REMOVE, removed
            else:
                record.quantity = new_quantity
                op_type, logged_qty = OperationType.ADJUST, new_quantity

            await self.recompute_fill(cell)
            append_operation(
                self.db,
                op_type=op_type,
                product_id=product_id,
                cell_id=cell_id,
                quantity=logged_qty,
                actor_id=actor_id,
            )
        logger.info(
            "%s product=%s cell=%s qty=%s actor=%s", op_type.value, product_id, cell_id, logged_qty, actor_id
        )
        return record

    async def remove(self, cell_id: int, product_id: int, actor_id: Optional[UUID]) -> int:
        """Delete a record outright. Returns the quantity it held."""
        async with self.unit_of_work("remove"):
            cell = (await self.lock_cells([cell_id]))[cell_id]
            record = await self.get_record(cell_id, product_id, lock=True)
            if record is None:
                raise NotFound("Inventory record", f"cell={cell_id} product={product_id}")
            removed = await self.delete_record(record)
            await self.recompute_fill(cell)
            append_operation(
                self.db,
                op_type=OperationType.REMOVE,
                product_id=product_id,
                cell_id=cell_id,
                quantity=removed,
                actor_id=actor_id,
            )
        logger.info("REMOVE product=%s cell=%s qty=%s actor=%s", product_id, cell_id, removed, actor_id)
        return removed

    # ---- read accessors ---------------------------------------------------

    async def quantity_of(self, cell_id: int, product_id: int) -> int:
        record = await self.get_record(cell_id, product_id)
        return int(record.quantity) if record else 0

    async def cell_fill(self, cell_id: int) -> CellFill:
        res = await self.db.execute(
            select(Cell.id, Cell.current_fill, Cell.capacity).where(Cell.id == cell_id)
        )
        row = res.first()
        if row is None:
            raise NotFound("Cell", cell_id)
        return CellFill(cell_id=row.id, current_fill=int(row.current_fill), capacity=int(row.capacity))

    async def total_on_hand(self, product_id: int) -> int:
        res = await self.db.execute(
            select(func.coalesce(func.sum(InventoryRecord.quantity), 0)).where(
                InventoryRecord.product_id == product_id
            )
        )
        return int(res.scalar_one())
