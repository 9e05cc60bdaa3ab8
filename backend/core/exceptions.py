"""Ledger error taxonomy and its HTTP mapping."""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def extra(self) -> dict:
        return {}


class NotFound(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, key):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class InvalidQuantity(LedgerError):
    def __init__(self, quantity, rule: str = "must be > 0"):
        super().__init__(f"quantity {rule} (got {quantity})")
        self.quantity = quantity


class InsufficientStock(LedgerError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, product_id: int, requested: int, available: int, cell_id: int | None = None):
        where = f"cell {cell_id}" if cell_id is not None else "all cells"
        super().__init__(
            f"Not enough of product {product_id} in {where}. Requested={requested} available={available}"
        )
        self.product_id = product_id
        self.cell_id = cell_id
        self.requested = requested
        self.available = available

    def extra(self) -> dict:
        return {"requested": self.requested, "available": self.available}


class CapacityExceeded(LedgerError):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, cell_id: int, capacity: int, current_fill: int, requested: int):
        super().__init__(
            f"Cell {cell_id} cannot hold {requested} more units (fill {current_fill}/{capacity})"
        )
        self.cell_id = cell_id
        self.capacity = capacity
        self.current_fill = current_fill
        self.requested = requested

    def extra(self) -> dict:
        return {
            "capacity": self.capacity,
            "current_fill": self.current_fill,
            "requested": self.requested,
        }


class InvalidTransfer(LedgerError):
    def __init__(self, cell_id: int):
        super().__init__(f"Source and destination cell are the same ({cell_id})")
        self.cell_id = cell_id


def setup_exception_handlers(app: FastAPI):

    @app.exception_handler(LedgerError)
    async def ledger_exception_handler(request: Request, exc: LedgerError):
        body = {"detail": exc.detail, "error": type(exc).__name__}
        body.update(exc.extra())
        return JSONResponse(content=body, status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return JSONResponse(
            content={"detail": "Internal server error", "error": type(exc).__name__},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
