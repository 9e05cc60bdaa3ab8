from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func, update
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Dict, List

from core.auth import current_active_superuser, current_active_user
from db import Category as CategoryModel, Product as ProductModel
from db.database import get_async_session
from db.users import User
from schemas.catalog import CategoryRead, CategoryCreate, CategoryUpdate

router = APIRouter()


async def _get_category_or_404(db: AsyncSession, category_id: int) -> CategoryModel:
    res = await db.execute(select(CategoryModel).where(CategoryModel.id == category_id))
    c = res.scalar_one_or_none()
    if not c:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Category not found")
    return c


async def _ensure_name_free(db: AsyncSession, name: str, exclude_id: int | None = None):
    stmt = select(CategoryModel.id).where(func.lower(CategoryModel.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(CategoryModel.id != exclude_id)
    if (await db.execute(stmt)).first() is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Category already exists")


@router.get("/", response_model=List[CategoryRead])
async def list_categories(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    res = await db.execute(select(CategoryModel).order_by(func.lower(CategoryModel.name).asc()))
    return [CategoryRead(**c.to_schema) for c in res.scalars().all()]


@router.get("/with-products", response_model=List[Dict])
async def list_categories_with_product_counts(
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    stmt = (
        select(CategoryModel, func.count(ProductModel.id).label("products_count"))
        .outerjoin(ProductModel, ProductModel.category_id == CategoryModel.id)
        .group_by(CategoryModel.id)
        .order_by(func.lower(CategoryModel.name).asc())
    )
    res = await db.execute(stmt)
    return [{**c.to_schema, "products_count": int(n)} for (c, n) in res.all()]


@router.get("/{category_id}", response_model=CategoryRead)
async def get_category(
    category_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_user),
):
    c = await _get_category_or_404(db, category_id)
    return CategoryRead(**c.to_schema)


@router.post("/", response_model=CategoryRead, status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryCreate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    await _ensure_name_free(db, payload.name)
    c = CategoryModel(name=payload.name, description=payload.description)
    db.add(c)
    await db.commit()
    await db.refresh(c)
    return CategoryRead(**c.to_schema)


@router.patch("/{category_id}", response_model=CategoryRead)
async def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    c = await _get_category_or_404(db, category_id)

    data = payload.model_dump(exclude_unset=True)
    if "name" in data and data["name"] is not None:
        name = data["name"].strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name cannot be empty")
        await _ensure_name_free(db, name, exclude_id=category_id)
        c.name = name
    if "description" in data:
        c.description = data["description"]

    await db.commit()
    await db.refresh(c)
    return CategoryRead(**c.to_schema)


@router.delete("/{category_id}")
async def delete_category(
    category_id: int,
    db: AsyncSession = Depends(get_async_session),
    user: User = Depends(current_active_superuser),
):
    c = await _get_category_or_404(db, category_id)
    # Products outlive their category.
    await db.execute(
        update(ProductModel).where(ProductModel.category_id == category_id).values(category_id=None)
    )
    await db.delete(c)
    await db.commit()
    return {"message": "Category deleted"}
