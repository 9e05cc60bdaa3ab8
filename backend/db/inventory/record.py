from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import Base, utcnow


class InventoryRecord(Base):
    __tablename__ = "inventory_records"
    __table_args__ = (
        UniqueConstraint("cell_id", "product_id", name="ux_inventory_records_cell_product"),
        CheckConstraint("quantity > 0", name="ck_inventory_records_quantity_positive"),
    )

    id = Column(Integer, primary_key=True, index=True)
    cell_id = Column(Integer, ForeignKey("cells.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    placed_at = Column(DateTime, nullable=False, default=utcnow)

    cell = relationship("Cell", back_populates="records")
    product = relationship("Product", back_populates="records")

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "cell_id": self.cell_id,
            "product_id": self.product_id,
            "quantity": int(self.quantity),
            "placed_at": self.placed_at,
        }
