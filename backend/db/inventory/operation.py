import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Integer, event
from fastapi_users_db_sqlalchemy.generics import GUID

from ..database import Base, utcnow


class OperationType(str, enum.Enum):
    RECEIVE = "RECEIVE"
    WITHDRAW = "WITHDRAW"
    TRANSFER = "TRANSFER"
    ADJUST = "ADJUST"
    REMOVE = "REMOVE"


class Operation(Base):
    """One committed stock movement against one cell.

    cell_id is the cell the stock left (or entered, for RECEIVE/ADJUST);
    to_cell_id is only set for TRANSFER.
    """
    __tablename__ = "operations"

    id = Column(Integer, primary_key=True, index=True)
    type = Column(Enum(OperationType, name="operation_type", native_enum=False, length=16), nullable=False, index=True)

    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    cell_id = Column(Integer, ForeignKey("cells.id"), nullable=False, index=True)
    to_cell_id = Column(Integer, ForeignKey("cells.id"), nullable=True)
    quantity = Column(Integer, nullable=False)

    actor_id = Column(GUID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "type": self.type.value if isinstance(self.type, OperationType) else self.type,
            "product_id": self.product_id,
            "cell_id": self.cell_id,
            "to_cell_id": self.to_cell_id,
            "quantity": int(self.quantity),
            "actor_id": self.actor_id,
            "created_at": self.created_at,
        }


class AppendOnlyViolation(RuntimeError):
    pass


@event.listens_for(Operation, "before_update")
def _refuse_update(mapper, connection, target):
    raise AppendOnlyViolation(f"operation {target.id} is append-only and cannot be updated")


@event.listens_for(Operation, "before_delete")
def _refuse_delete(mapper, connection, target):
    raise AppendOnlyViolation(f"operation {target.id} is append-only and cannot be deleted")
