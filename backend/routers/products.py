from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List, Optional

from core.auth import current_active_superuser, current_active_user
from db import (
    Category as CategoryModel,
    Cell as CellModel,
    InventoryRecord as InventoryRecordModel,
    Operation as OperationModel,
    Product as ProductModel,
    Zone as ZoneModel,
)
from db.database import get_async_session
from db.users import User
from schemas.catalog import ProductRead, ProductCreate, ProductUpdate

router = APIRouter()


def _product_stmt():
    return (
        select(ProductModel, CategoryModel.name.label("category_name"))
        .outerjoin(CategoryModel, ProductModel.category_id == CategoryModel.id)
    )


async def _get_product_row(db: AsyncSession, product_id: int):
    res = await db.execute(_product_stmt().where(ProductModel.id == product_id))
    row = res.first()
    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
    return row


async def _resolve_category_id(db: AsyncSession, category_id: Optional[int], category_name: Optional[str]) -> Optional[int]:
    """Explicit id wins; otherwise find-or-create the category by name."""
    if category_id is not None:
        res = await db.execute(select(CategoryModel.id).where(CategoryModel.id == category_id))
        if res.scalar_one_or_none() is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Category does not exist")
        return category_id

    name = (category_name or "").strip()
    if not name:
        return None
    res = await db.execute(select(CategoryModel).where(func.lower(CategoryModel.name) == name.lower()))
    existing = res.scalar_one_or_none()
    if existing:
        return existing.id
    c = CategoryModel(name=name)
    db.add(c)
    await db.flush()
    return c.id


async def _ensure_sku_free(db: AsyncSession, sku: str, exclude_id: Optional[int] = None):
    stmt = select(ProductModel.id).where(ProductModel.sku == sku)
    if exclude_id is not None:
        stmt = stmt.where(ProductModel.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=f"SKU {sku} already exists")


@router.get("/", response_model=List[ProductRead])
async def list_products(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    res = await db.execute(_product_stmt().order_by(func.lower(ProductModel.name).asc(), ProductModel.id.asc()))
    return [ProductRead(**p.to_schema, category_name=category_name) for (p, category_name) in res.all()]


@router.get("/with-quantities", response_model=List[Dict])
async def list_products_in_stock(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    """Products with a positive total on hand, for take/move pickers."""
    total = func.coalesce(func.sum(InventoryRecordModel.quantity), 0)
    stmt = (
        select(ProductModel, CategoryModel.name.label("category_name"), total.label("total_quantity"))
        .outerjoin(CategoryModel, ProductModel.category_id == CategoryModel.id)
        .join(InventoryRecordModel, InventoryRecordModel.product_id == ProductModel.id)
        .group_by(ProductModel.id, CategoryModel.name)
        .having(total > 0)
        .order_by(func.lower(ProductModel.name).asc())
    )
    res = await db.execute(stmt)
    return [
        {**p.to_schema, "category_name": category_name, "total_quantity": int(total_quantity)}
        for (p, category_name, total_quantity) in res.all()
    ]


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    p, category_name = await _get_product_row(db, product_id)
    return ProductRead(**p.to_schema, category_name=category_name)


@router.get("/{product_id}/cells", response_model=List[Dict])
async def list_cells_holding_product(
    product_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    await _get_product_row(db, product_id)
    stmt = (
        select(InventoryRecordModel, CellModel, ZoneModel.name.label("zone_name"))
        .join(CellModel, InventoryRecordModel.cell_id == CellModel.id)
        .outerjoin(ZoneModel, CellModel.zone_id == ZoneModel.id)
        .where(InventoryRecordModel.product_id == product_id)
        .order_by(CellModel.zone_id, CellModel.row_number, CellModel.cell_number)
    )
    res = await db.execute(stmt)
    return [
        {
            "cell_id": c.id,
            "zone_id": c.zone_id,
            "zone_name": zone_name,
            "row_number": c.row_number,
            "cell_number": c.cell_number,
            "capacity": c.capacity,
            "current_fill": c.current_fill,
            "quantity": int(r.quantity),
        }
        for (r, c, zone_name) in res.all()
    ]


@router.post("/", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    payload: ProductCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    await _ensure_sku_free(db, payload.sku)
    category_id = await _resolve_category_id(db, payload.category_id, payload.category)

    p = ProductModel(name=payload.name, sku=payload.sku, unit=payload.unit, category_id=category_id)
    db.add(p)
    await db.commit()
    p, category_name = await _get_product_row(db, p.id)
    return ProductRead(**p.to_schema, category_name=category_name)


@router.patch("/{product_id}", response_model=ProductRead)
async def update_product(
    product_id: int,
    payload: ProductUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    p, _category_name = await _get_product_row(db, product_id)

    data = payload.model_dump(exclude_unset=True)
    if data.get("sku") is not None and data["sku"] != p.sku:
        await _ensure_sku_free(db, data["sku"], exclude_id=product_id)
        p.sku = data["sku"]
    if data.get("name") is not None:
        p.name = data["name"]
    if data.get("unit") is not None:
        p.unit = data["unit"]
    if "category_id" in data or "category" in data:
        p.category_id = await _resolve_category_id(db, data.get("category_id"), data.get("category"))

    await db.commit()
    p, category_name = await _get_product_row(db, product_id)
    return ProductRead(**p.to_schema, category_name=category_name)


@router.delete("/{product_id}")
async def delete_product(
    product_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    p, _category_name = await _get_product_row(db, product_id)

    held = await db.execute(
        select(func.count(InventoryRecordModel.id)).where(InventoryRecordModel.product_id == product_id)
    )
    if int(held.scalar_one()) > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Product is still in stock")
    logged = await db.execute(
        select(func.count(OperationModel.id)).where(OperationModel.product_id == product_id)
    )
    if int(logged.scalar_one()) > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Product is referenced by operation history")

    await db.delete(p)
    await db.commit()
    return {"message": "Product deleted"}
