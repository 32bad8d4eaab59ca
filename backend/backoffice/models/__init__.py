from .catalog import Category, Unit, Branch, Product
from .inventory import Inventory, InventoryMovement
from .purchases import Supplier, PaymentMethod, Purchase, PurchaseDetail, PurchasePayment
from .sales import CustomerCategory, Customer, DiscountCode, Sale, SaleDetail, SaleDiscount, SalePayment
from .documents import InvoiceSequence

__all__ = [
    'Category', 'Unit', 'Branch', 'Product',
    'Inventory', 'InventoryMovement',
    'Supplier', 'PaymentMethod', 'Purchase', 'PurchaseDetail', 'PurchasePayment',
    'CustomerCategory', 'Customer', 'DiscountCode', 'Sale', 'SaleDetail', 'SaleDiscount', 'SalePayment',
    'InvoiceSequence',
]
