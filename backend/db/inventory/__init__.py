"""
Inventory ledger tables.

Models:
- InventoryRecord (quantity of one product in one cell; deleted when it drains to zero)
- Operation (append-only audit trail of committed stock movements)
"""
