from .users import User, VendorProfile, CustomerProfile, SessionToken
from .catalog import RentalPeriod, Product, ProductPricing, Inventory, ProductVariant
from .orders import SaleOrder, SaleOrderLine, Reservation
from .billing import Invoice, InvoiceLine, Payment, Coupon
from .settings import SystemSetting
from .audit import AuditLog, RentalNotification

__all__ = [
    'User', 'VendorProfile', 'CustomerProfile', 'SessionToken',
    'RentalPeriod', 'Product', 'ProductPricing', 'Inventory', 'ProductVariant',
    'SaleOrder', 'SaleOrderLine', 'Reservation',
    'Invoice', 'InvoiceLine', 'Payment', 'Coupon',
    'SystemSetting',
    'AuditLog', 'RentalNotification',
]
