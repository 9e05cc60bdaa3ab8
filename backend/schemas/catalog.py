from pydantic import BaseModel, Field, field_validator
from typing import Optional
from datetime import datetime


def _strip_required(v: str) -> str:
    v = (v or "").strip()
    if not v:
        raise ValueError("field is required")
    return v


class ZoneRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None


class ZoneCreate(BaseModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _strip_required(v)


class ZoneUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class CellRead(BaseModel):
    id: int
    zone_id: int
    row_number: int
    cell_number: int
    capacity: int
    current_fill: int
    zone_name: Optional[str] = None


class CellCreate(BaseModel):
    zone_id: int
    row_number: int = Field(ge=0)
    cell_number: int = Field(ge=0)
    capacity: int = Field(default=0, ge=0)


class CellUpdate(BaseModel):
    # current_fill is derived by the ledger and deliberately absent here
    zone_id: Optional[int] = None
    row_number: Optional[int] = Field(default=None, ge=0)
    cell_number: Optional[int] = Field(default=None, ge=0)
    capacity: Optional[int] = Field(default=None, ge=0)


class CellFillRead(BaseModel):
    cell_id: int
    current_fill: int
    capacity: int
    free_space: int


class CategoryRead(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class CategoryCreate(BaseModel):
    name: str
    description: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _strip_required(v)


class CategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ProductRead(BaseModel):
    id: int
    name: str
    sku: str
    unit: str
    category_id: Optional[int] = None
    category_name: Optional[str] = None


class ProductCreate(BaseModel):
    name: str
    sku: str
    unit: str
    category_id: Optional[int] = None
    # find-or-create by name when category_id is not given
    category: Optional[str] = None

    @field_validator("name", "sku", "unit")
    @classmethod
    def _strip(cls, v: str) -> str:
        return _strip_required(v)


class ProductUpdate(BaseModel):
    name: Optional[str] = None
    sku: Optional[str] = None
    unit: Optional[str] = None
    category_id: Optional[int] = None
    category: Optional[str] = None

    @field_validator("name", "sku", "unit")
    @classmethod
    def _strip_optional(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        if not v:
            raise ValueError("cannot be empty")
        return v
