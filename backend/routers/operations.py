from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import current_active_user
from core.oplog import get_operation, list_operations
from db.database import get_async_session
from db.inventory.operation import OperationType
from db.users import User
from schemas.inventory import OperationHistoryQuery, OperationRead

router = APIRouter()


@router.get("/", response_model=List[OperationRead])
async def list_operation_history(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    type: Optional[OperationType] = None,
    product_id: Optional[int] = None,
    cell_id: Optional[int] = None,
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    """Operation history, newest first. Dates are inclusive."""
    if start_date and end_date and start_date > end_date:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must not be after end_date")
    ops = await list_operations(
        db,
        start=start_date,
        end=end_date,
        op_type=type,
        product_id=product_id,
        cell_id=cell_id,
        limit=limit,
    )
    return [OperationRead(**op.to_schema) for op in ops]


@router.post("/history", response_model=List[OperationRead])
async def search_operation_history(
    payload: OperationHistoryQuery,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    ops = await list_operations(
        db,
        start=payload.start_date,
        end=payload.end_date,
        op_type=payload.type,
        product_id=payload.product_id,
        cell_id=payload.cell_id,
        limit=payload.limit,
    )
    return [OperationRead(**op.to_schema) for op in ops]


@router.get("/{operation_id}", response_model=OperationRead)
async def get_operation_by_id(
    operation_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    op = await get_operation(db, operation_id)
    if not op:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Operation not found")
    return OperationRead(**op.to_schema)
