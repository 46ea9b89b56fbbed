from .inventory import Category, Product, Warehouse, StockMovement, StockMovementType
from .sales import Sale, SaleItem, SaleStatus
from .customers import Customer

__all__ = [
    'Category', 'Product', 'Warehouse', 'StockMovement', 'StockMovementType',
    'Sale', 'SaleItem', 'SaleStatus',
    'Customer',
]
