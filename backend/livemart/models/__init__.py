from .users import User, CustomerDetails, RetailerDetails, WholesalerDetails, AdminDetails, BankDetails
from .catalog import Product
from .inventory import InventoryRecord, Discount
from .orders import Order, OrderItem, OrderStatusHistory

__all__ = [
    'User', 'CustomerDetails', 'RetailerDetails', 'WholesalerDetails', 'AdminDetails', 'BankDetails',
    'Product',
    'InventoryRecord', 'Discount',
    'Order', 'OrderItem', 'OrderStatusHistory',
]
