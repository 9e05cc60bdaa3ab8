# Importing the package registers every mapped class on Base.metadata.
from .database import Base  # noqa: F401
from .users import User  # noqa: F401
from .zone import Zone  # noqa: F401
from .cell import Cell  # noqa: F401
from .category import Category  # noqa: F401
from .product import Product  # noqa: F401
from .inventory.record import InventoryRecord  # noqa: F401
from .inventory.operation import Operation, OperationType  # noqa: F401
