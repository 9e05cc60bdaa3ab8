from sqlalchemy import Column, Integer, String, Text
from sqlalchemy.orm import relationship

from .database import Base


class Zone(Base):
    __tablename__ = "zones"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    cells = relationship("Cell", back_populates="zone", passive_deletes=True)

    @property
    def to_schema(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
        }
