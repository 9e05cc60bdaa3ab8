"""
Allocation engine: withdrawals (single cell or pooled) and transfers.

Every stock and capacity check is a guarded write inside one transaction;
a rejected request rolls back and leaves every record and cell fill untouched.
"""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple
from uuid import UUID

from core.exceptions import InsufficientStock, InvalidTransfer
from core.ledger import InventoryLedger, require_positive
from core.oplog import append_operation
from db.inventory.operation import OperationType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allocation:
    cell_id: int
    quantity: int


@dataclass(frozen=True)
class TransferResult:
    product_id: int
    quantity: int
    from_cell_id: int
    to_cell_id: int
    source_remaining: int
    destination_quantity: int


def plan_pooled_withdrawal(product_id: int, holdings: Iterable[Tuple[int, int]], quantity: int) -> List[Allocation]:
    """
    Greedy plan over (cell_id, on_hand) pairs, visited in ascending cell id.

    Takes min(on_hand, remaining) from each cell until the request is met.
    Raises InsufficientStock with the total available if it cannot be.
    """
    remaining = quantity
    plan: List[Allocation] = []
    available = 0
    for cell_id, on_hand in sorted(holdings, key=lambda h: h[0]):
        on_hand = int(on_hand)
        available += on_hand
        if remaining <= 0 or on_hand <= 0:
            continue
        take = min(on_hand, remaining)
        plan.append(Allocation(cell_id=cell_id, quantity=take))
        remaining -= take
    if remaining > 0:
        raise InsufficientStock(product_id, quantity, available)
    return plan


class AllocationEngine:
    def __init__(self, ledger: InventoryLedger):
        self.ledger = ledger

    @property
    def db(self):
        return self.ledger.db

    async def withdraw(
        self,
        product_id: int,
        quantity: int,
        actor_id: Optional[UUID],
        cell_id: Optional[int] = None,
    ) -> List[Allocation]:
        """Take stock of a product, from cell_id if given, else pooled across all cells."""
        if cell_id is not None:
            plan = await self._withdraw_from_cell(product_id, quantity, actor_id, cell_id)
        else:
            plan = await self._withdraw_pooled(product_id, quantity, actor_id)
        logger.info(
            "WITHDRAW product=%s qty=%s actor=%s cells=%s",
            product_id, quantity, actor_id, [(a.cell_id, a.quantity) for a in plan],
        )
        return plan

    async def _withdraw_from_cell(self, product_id, quantity, actor_id, cell_id) -> List[Allocation]:
        async with self.ledger.unit_of_work("withdraw"):
            require_positive(quantity)
            cell = (await self.ledger.lock_cells([cell_id]))[cell_id]
            await self.ledger.get_product(product_id)

            record = await self.ledger.get_record(cell_id, product_id, lock=True)
            available = int(record.quantity) if record else 0
            if available < quantity:
                raise InsufficientStock(product_id, quantity, available, cell_id=cell_id)

            await self.ledger.apply_debit(record, quantity)
            await self.ledger.recompute_fill(cell)
            append_operation(
                self.db,
                op_type=OperationType.WITHDRAW,
                product_id=product_id,
                cell_id=cell_id,
                quantity=quantity,
                actor_id=actor_id,
            )
        return [Allocation(cell_id=cell_id, quantity=quantity)]

    async def _withdraw_pooled(self, product_id, quantity, actor_id) -> List[Allocation]:
        async with self.ledger.unit_of_work("withdraw"):
            require_positive(quantity)
            await self.ledger.get_product(product_id)

            # Find the candidate cells, lock them, then re-read their records under lock.
            candidates = await self.ledger.records_for_product(product_id)
            cells = await self.ledger.lock_cells(r.cell_id for r in candidates)
            records = await self.ledger.records_for_product(product_id, cell_ids=cells.keys(), lock=True)

            plan = plan_pooled_withdrawal(product_id, ((r.cell_id, r.quantity) for r in records), quantity)

            by_cell = {r.cell_id: r for r in records}
            for alloc in plan:
                await self.ledger.apply_debit(by_cell[alloc.cell_id], alloc.quantity)
                await self.ledger.recompute_fill(cells[alloc.cell_id])
                append_operation(
                    self.db,
                    op_type=OperationType.WITHDRAW,
                    product_id=product_id,
                    cell_id=alloc.cell_id,
                    quantity=alloc.quantity,
                    actor_id=actor_id,
                )
        return plan

    async def transfer(
        self,
        product_id: int,
        quantity: int,
        from_cell_id: int,
        to_cell_id: int,
        actor_id: Optional[UUID],
    ) -> TransferResult:
        """
        Move stock between two cells in one transaction.

        Destination capacity is enforced. One TRANSFER entry is logged with the
        source as cell_id and the destination as to_cell_id.
        """
        async with self.ledger.unit_of_work("transfer"):
            require_positive(quantity)
            if from_cell_id == to_cell_id:
                raise InvalidTransfer(from_cell_id)
            cells = await self.ledger.lock_cells([from_cell_id, to_cell_id])
            source, destination = cells[from_cell_id], cells[to_cell_id]
            await self.ledger.get_product(product_id)

            # Destination capacity is decided before source stock.
            await self.ledger.claim_capacity(destination, quantity)

            source_record = await self.ledger.get_record(from_cell_id, product_id, lock=True)
            if source_record is None:
                raise InsufficientStock(product_id, quantity, 0, cell_id=from_cell_id)
            source_remaining = await self.ledger.apply_debit(source_record, quantity)
            dest_record = await self.ledger.apply_credit(to_cell_id, product_id, quantity)

            await self.ledger.recompute_fill(source)
            await self.ledger.recompute_fill(destination)
            append_operation(
                self.db,
                op_type=OperationType.TRANSFER,
                product_id=product_id,
                cell_id=from_cell_id,
                to_cell_id=to_cell_id,
                quantity=quantity,
                actor_id=actor_id,
            )
            destination_quantity = int(dest_record.quantity)

        logger.info(
            "TRANSFER product=%s qty=%s from=%s to=%s actor=%s",
            product_id, quantity, from_cell_id, to_cell_id, actor_id,
        )
        return TransferResult(
            product_id=product_id,
            quantity=quantity,
            from_cell_id=from_cell_id,
            to_cell_id=to_cell_id,
            source_remaining=source_remaining,
            destination_quantity=destination_quantity,
        )
