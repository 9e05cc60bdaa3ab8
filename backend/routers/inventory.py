from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.allocation import AllocationEngine
from core.auth import current_active_user
from core.ledger import InventoryLedger
from db import (
    Cell as CellModel,
    InventoryRecord as InventoryRecordModel,
    Product as ProductModel,
    Zone as ZoneModel,
)
from db.database import get_async_session
from db.users import User
from schemas.inventory import (
    AdjustRequest,
    CellTaken,
    InventoryRecordRead,
    MoveRequest,
    ReceiveRequest,
    SimpleTakeRequest,
    TakeRequest,
    TransferRead,
    WithdrawalRead,
)

router = APIRouter()


def get_ledger(db: AsyncSession = Depends(get_async_session)) -> InventoryLedger:
    return InventoryLedger(db)


def get_allocation_engine(ledger: InventoryLedger = Depends(get_ledger)) -> AllocationEngine:
    return AllocationEngine(ledger)


def _record_stmt():
    return (
        select(
            InventoryRecordModel,
            ProductModel.name.label("product_name"),
            ProductModel.sku.label("sku"),
            CellModel.row_number.label("row_number"),
            CellModel.cell_number.label("cell_number"),
            CellModel.current_fill.label("current_fill"),
            CellModel.capacity.label("capacity"),
            ZoneModel.name.label("zone_name"),
        )
        .outerjoin(ProductModel, InventoryRecordModel.product_id == ProductModel.id)
        .outerjoin(CellModel, InventoryRecordModel.cell_id == CellModel.id)
        .outerjoin(ZoneModel, CellModel.zone_id == ZoneModel.id)
    )


def _record_out(row) -> InventoryRecordRead:
    r = row[0]
    return InventoryRecordRead(
        **r.to_schema,
        product_name=row.product_name,
        sku=row.sku,
        row_number=row.row_number,
        cell_number=row.cell_number,
        zone_name=row.zone_name,
        current_fill=row.current_fill,
        capacity=row.capacity,
    )


async def _load_record(db: AsyncSession, cell_id: int, product_id: int) -> InventoryRecordRead:
    res = await db.execute(
        _record_stmt().where(
            InventoryRecordModel.cell_id == cell_id,
            InventoryRecordModel.product_id == product_id,
        )
    )
    row = res.first()
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Inventory record not found")
    return _record_out(row)


# ---- stock state ------------------------------------------------------------


@router.get("/inventory", response_model=List[InventoryRecordRead])
async def list_inventory(
    cell_id: Optional[int] = Query(None),
    product_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    stmt = _record_stmt()
    if cell_id is not None:
        stmt = stmt.where(InventoryRecordModel.cell_id == cell_id)
    if product_id is not None:
        stmt = stmt.where(InventoryRecordModel.product_id == product_id)
    res = await db.execute(stmt.order_by(InventoryRecordModel.cell_id, InventoryRecordModel.product_id))
    return [_record_out(row) for row in res.all()]


@router.get("/inventory/{cell_id}/{product_id}", response_model=InventoryRecordRead)
async def get_inventory_record(
    cell_id: int,
    product_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    return await _load_record(db, cell_id, product_id)


@router.post("/inventory", response_model=InventoryRecordRead, status_code=status.HTTP_201_CREATED)
async def receive_stock(
    payload: ReceiveRequest,
    ledger: InventoryLedger = Depends(get_ledger),
    user: User = Depends(current_active_user),
):
    """Put stock into a cell (creates or increments the record)."""
    await ledger.receive(payload.cell_id, payload.product_id, payload.quantity, user.id)
    return await _load_record(ledger.db, payload.cell_id, payload.product_id)


@router.put("/inventory/{cell_id}/{product_id}")
async def adjust_inventory_record(
    cell_id: int,
    product_id: int,
    payload: AdjustRequest,
    ledger: InventoryLedger = Depends(get_ledger),
    user: User = Depends(current_active_user),
):
    """Set a record's quantity. Quantity 0 removes the record."""
    record = await ledger.adjust_quantity(cell_id, product_id, payload.quantity, user.id)
    if record is None:
        return {"message": "Inventory record removed", "cell_id": cell_id, "product_id": product_id}
    return await _load_record(ledger.db, cell_id, product_id)


@router.delete("/inventory/{cell_id}/{product_id}")
async def remove_inventory_record(
    cell_id: int,
    product_id: int,
    ledger: InventoryLedger = Depends(get_ledger),
    user: User = Depends(current_active_user),
):
    removed = await ledger.remove(cell_id, product_id, user.id)
    return {"message": "Inventory record removed", "cell_id": cell_id, "product_id": product_id, "quantity": removed}


# ---- movements --------------------------------------------------------------


def _withdrawal_out(product_id: int, quantity: int, plan) -> WithdrawalRead:
    return WithdrawalRead(
        product_id=product_id,
        quantity=quantity,
        cells_processed=[CellTaken(cell_id=a.cell_id, quantity_taken=a.quantity) for a in plan],
    )


@router.post("/take", response_model=WithdrawalRead)
async def take_from_cell(
    payload: TakeRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
    user: User = Depends(current_active_user),
):
    plan = await engine.withdraw(payload.product_id, payload.quantity, user.id, cell_id=payload.cell_id)
    return _withdrawal_out(payload.product_id, payload.quantity, plan)


@router.post("/take/simple", response_model=WithdrawalRead)
async def take_from_any_cell(
    payload: SimpleTakeRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
    user: User = Depends(current_active_user),
):
    """Pooled withdrawal across every cell holding the product, lowest cell id first."""
    plan = await engine.withdraw(payload.product_id, payload.quantity, user.id)
    return _withdrawal_out(payload.product_id, payload.quantity, plan)


async def _transfer(payload: MoveRequest, engine: AllocationEngine, user: User) -> TransferRead:
    result = await engine.transfer(
        payload.product_id, payload.quantity, payload.from_cell_id, payload.to_cell_id, user.id
    )
    return TransferRead(
        product_id=result.product_id,
        quantity=result.quantity,
        from_cell_id=result.from_cell_id,
        to_cell_id=result.to_cell_id,
        source_remaining=result.source_remaining,
        destination_quantity=result.destination_quantity,
    )


@router.post("/move", response_model=TransferRead)
async def move_between_cells(
    payload: MoveRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
    user: User = Depends(current_active_user),
):
    return await _transfer(payload, engine, user)


@router.post("/move/simple", response_model=TransferRead)
async def move_between_cells_simple(
    payload: MoveRequest,
    engine: AllocationEngine = Depends(get_allocation_engine),
    user: User = Depends(current_active_user),
):
    # Kept for clients of the simplified picker; same protocol as /move.
    return await _transfer(payload, engine, user)
