from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from core.auth import current_active_superuser, current_active_user
from core.ledger import InventoryLedger
from db import (
    Cell as CellModel,
    InventoryRecord as InventoryRecordModel,
    Operation as OperationModel,
    Zone as ZoneModel,
)
from db.database import get_async_session
from db.users import User
from schemas.catalog import CellRead, CellCreate, CellUpdate, CellFillRead

router = APIRouter()


def _cell_stmt():
    return (
        select(CellModel, ZoneModel.name.label("zone_name"))
        .outerjoin(ZoneModel, CellModel.zone_id == ZoneModel.id)
    )


def _cell_out(c: CellModel, zone_name: Optional[str]) -> CellRead:
    return CellRead(**c.to_schema, zone_name=zone_name)


async def _get_cell_row(db: AsyncSession, cell_id: int):
    res = await db.execute(_cell_stmt().where(CellModel.id == cell_id).execution_options(populate_existing=True))
    row = res.first()
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cell not found")
    return row


async def _ensure_zone(db: AsyncSession, zone_id: int):
    res = await db.execute(select(ZoneModel.id).where(ZoneModel.id == zone_id))
    if res.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Zone does not exist")


async def _ensure_coordinate_free(db: AsyncSession, zone_id: int, row_number: int, cell_number: int, exclude_id: Optional[int] = None):
    stmt = select(CellModel.id).where(
        CellModel.zone_id == zone_id,
        CellModel.row_number == row_number,
        CellModel.cell_number == cell_number,
    )
    if exclude_id is not None:
        stmt = stmt.where(CellModel.id != exclude_id)
    res = await db.execute(stmt)
    if res.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cell {row_number}.{cell_number} already exists in zone {zone_id}",
        )


@router.get("/", response_model=List[CellRead])
async def list_cells(
    zone_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    stmt = _cell_stmt()
    if zone_id is not None:
        stmt = stmt.where(CellModel.zone_id == zone_id)
    stmt = stmt.order_by(CellModel.zone_id, CellModel.row_number, CellModel.cell_number)
    res = await db.execute(stmt)
    return [_cell_out(c, zone_name) for (c, zone_name) in res.all()]


@router.get("/empty", response_model=List[CellRead])
async def list_empty_cells(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    stmt = (
        _cell_stmt()
        .where(CellModel.current_fill == 0)
        .order_by(CellModel.zone_id, CellModel.row_number, CellModel.cell_number)
    )
    res = await db.execute(stmt)
    return [_cell_out(c, zone_name) for (c, zone_name) in res.all()]


@router.get("/{cell_id}", response_model=CellRead)
async def get_cell(
    cell_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    c, zone_name = await _get_cell_row(db, cell_id)
    return _cell_out(c, zone_name)


@router.get("/{cell_id}/fill", response_model=CellFillRead)
async def get_cell_fill(
    cell_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    fill = await InventoryLedger(db).cell_fill(cell_id)
    return CellFillRead(
        cell_id=fill.cell_id,
        current_fill=fill.current_fill,
        capacity=fill.capacity,
        free_space=fill.free_space,
    )


@router.post("/", response_model=CellRead, status_code=status.HTTP_201_CREATED)
async def create_cell(
    payload: CellCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    await _ensure_zone(db, payload.zone_id)
    await _ensure_coordinate_free(db, payload.zone_id, payload.row_number, payload.cell_number)

    c = CellModel(
        zone_id=payload.zone_id,
        row_number=payload.row_number,
        cell_number=payload.cell_number,
        capacity=payload.capacity,
        current_fill=0,
    )
    db.add(c)
    await db.commit()
    c, zone_name = await _get_cell_row(db, c.id)
    return _cell_out(c, zone_name)


@router.patch("/{cell_id}", response_model=CellRead)
async def update_cell(
    cell_id: int,
    payload: CellUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    await _get_cell_row(db, cell_id)
    c = (await InventoryLedger(db).lock_cells([cell_id]))[cell_id]
    data = payload.model_dump(exclude_unset=True, exclude_none=True)

    zone_id = data.get("zone_id", c.zone_id)
    row_number = data.get("row_number", c.row_number)
    cell_number = data.get("cell_number", c.cell_number)
    if "zone_id" in data:
        await _ensure_zone(db, zone_id)
    if {"zone_id", "row_number", "cell_number"} & data.keys():
        await _ensure_coordinate_free(db, zone_id, row_number, cell_number, exclude_id=cell_id)

    if "capacity" in data:
        capacity = int(data["capacity"])
        # check and write in one statement
        cells_tbl = CellModel.__table__
        res = await db.execute(
            cells_tbl.update()
            .where(cells_tbl.c.id == cell_id, cells_tbl.c.current_fill <= capacity)
            .values(capacity=capacity)
            .returning(cells_tbl.c.current_fill)
        )
        if res.scalar_one_or_none() is None:
            await db.rollback()
            fill = (await db.execute(select(CellModel.current_fill).where(CellModel.id == cell_id))).scalar_one()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Capacity {capacity} is below current fill {fill}",
            )

    c.zone_id = zone_id
    c.row_number = row_number
    c.cell_number = cell_number

    await db.commit()
    c, zone_name = await _get_cell_row(db, cell_id)
    return _cell_out(c, zone_name)


@router.delete("/{cell_id}")
async def delete_cell(
    cell_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    c, _zone_name = await _get_cell_row(db, cell_id)

    held = await db.execute(
        select(func.count(InventoryRecordModel.id)).where(InventoryRecordModel.cell_id == cell_id)
    )
    if int(held.scalar_one()) > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cell still holds inventory")

    # The operation log keeps its foreign keys; a cell with history stays.
    logged = await db.execute(
        select(func.count(OperationModel.id)).where(
            or_(OperationModel.cell_id == cell_id, OperationModel.to_cell_id == cell_id)
        )
    )
    if int(logged.scalar_one()) > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Cell is referenced by operation history")

    await db.delete(c)
    await db.commit()
    return {"message": "Cell deleted"}
