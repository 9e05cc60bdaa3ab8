from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from db.inventory.operation import OperationType


class ReceiveRequest(BaseModel):
    cell_id: int
    product_id: int
    quantity: int = Field(gt=0)


class AdjustRequest(BaseModel):
    quantity: int = Field(ge=0)


class TakeRequest(BaseModel):
    cell_id: int
    product_id: int
    quantity: int = Field(gt=0)


class SimpleTakeRequest(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)


class MoveRequest(BaseModel):
    product_id: int
    from_cell_id: int
    to_cell_id: int
    quantity: int = Field(gt=0)

    @model_validator(mode="after")
    def _distinct_cells(self):
        if self.from_cell_id == self.to_cell_id:
            raise ValueError("from_cell_id and to_cell_id must differ")
        return self


class InventoryRecordRead(BaseModel):
    id: int
    cell_id: int
    product_id: int
    quantity: int
    placed_at: Optional[datetime] = None
    product_name: Optional[str] = None
    sku: Optional[str] = None
    row_number: Optional[int] = None
    cell_number: Optional[int] = None
    zone_name: Optional[str] = None
    current_fill: Optional[int] = None
    capacity: Optional[int] = None


class CellTaken(BaseModel):
    cell_id: int
    quantity_taken: int


class WithdrawalRead(BaseModel):
    product_id: int
    quantity: int
    cells_processed: List[CellTaken]


class TransferRead(BaseModel):
    product_id: int
    quantity: int
    from_cell_id: int
    to_cell_id: int
    source_remaining: int
    destination_quantity: int


class OperationRead(BaseModel):
    id: int
    type: OperationType
    product_id: int
    cell_id: int
    to_cell_id: Optional[int] = None
    quantity: int
    actor_id: Optional[UUID] = None
    created_at: datetime


class OperationHistoryQuery(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[OperationType] = None
    product_id: Optional[int] = None
    cell_id: Optional[int] = None
    limit: int = Field(default=200, ge=1, le=1000)

    @model_validator(mode="after")
    def _ordered_range(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self
