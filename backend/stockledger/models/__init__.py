from .catalog import Product, Category, Supplier, Accessory, product_categories
from .locations import Location
from .customers import Customer
from .movements import Movement, MovementLine, MovementLineAddOn
from .documents import DocumentSeries
from .pricing import PriceRule

__all__ = [
    'Product', 'Category', 'Supplier', 'Accessory', 'product_categories',
    'Location',
    'Customer',
    'Movement', 'MovementLine', 'MovementLineAddOn',
    'DocumentSeries',
    'PriceRule',
]
