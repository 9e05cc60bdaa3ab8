from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from .database import Base


class Cell(Base):
    """A storage slot addressed by (zone, row_number, cell_number).

    current_fill is derived from the cell's inventory records and is only
    ever written by the ledger.
    """
    __tablename__ = "cells"
    __table_args__ = (
        UniqueConstraint("zone_id", "row_number", "cell_number", name="ux_cells_zone_coordinate"),
        CheckConstraint("capacity >= 0", name="ck_cells_capacity_non_negative"),
        CheckConstraint("current_fill >= 0", name="ck_cells_fill_non_negative"),
    )

    id = Column(Integer, primary_key=True, index=True)
    zone_id = Column(Integer, ForeignKey("zones.id"), nullable=False, index=True)
    row_number = Column(Integer, nullable=False)
    cell_number = Column(Integer, nullable=False)
    capacity = Column(Integer, nullable=False, default=0)
    current_fill = Column(Integer, nullable=False, default=0)

    zone = relationship("Zone", back_populates="cells")
    records = relationship("InventoryRecord", back_populates="cell", passive_deletes=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "zone_id": self.zone_id,
            "row_number": self.row_number,
            "cell_number": self.cell_number,
            "capacity": self.capacity,
            "current_fill": self.current_fill,
        }
