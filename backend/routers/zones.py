from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from core.auth import current_active_superuser, current_active_user
from db import Zone as ZoneModel, Cell as CellModel
from db.database import get_async_session
from db.users import User
from schemas.catalog import ZoneRead, ZoneCreate, ZoneUpdate

router = APIRouter()


async def _get_zone_or_404(db: AsyncSession, zone_id: int) -> ZoneModel:
    res = await db.execute(select(ZoneModel).where(ZoneModel.id == zone_id))
    z = res.scalar_one_or_none()
    if not z:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Zone not found")
    return z


@router.get("/", response_model=List[ZoneRead])
async def list_zones(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    res = await db.execute(select(ZoneModel).order_by(func.lower(ZoneModel.name).asc(), ZoneModel.id.asc()))
    return [ZoneRead(**z.to_schema) for z in res.scalars().all()]


@router.get("/{zone_id}", response_model=ZoneRead)
async def get_zone(
    zone_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    z = await _get_zone_or_404(db, zone_id)
    return ZoneRead(**z.to_schema)


@router.post("/", response_model=ZoneRead, status_code=status.HTTP_201_CREATED)
async def create_zone(
    payload: ZoneCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    z = ZoneModel(name=payload.name, description=payload.description)
    db.add(z)
    await db.commit()
    await db.refresh(z)
    return ZoneRead(**z.to_schema)


@router.patch("/{zone_id}", response_model=ZoneRead)
async def update_zone(
    zone_id: int,
    payload: ZoneUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    z = await _get_zone_or_404(db, zone_id)

    data = payload.model_dump(exclude_unset=True)
    if "name" in data and data["name"] is not None:
        name = data["name"].strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name cannot be empty")
        z.name = name
    if "description" in data:
        z.description = data["description"]

    await db.commit()
    await db.refresh(z)
    return ZoneRead(**z.to_schema)


@router.delete("/{zone_id}")
async def delete_zone(
    zone_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    z = await _get_zone_or_404(db, zone_id)
    cells = await db.execute(select(func.count(CellModel.id)).where(CellModel.zone_id == zone_id))
    if int(cells.scalar_one()) > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Zone still has cells")
    await db.delete(z)
    await db.commit()
    return {"message": "Zone deleted"}
