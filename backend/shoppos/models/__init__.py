from .catalog import Category, Product
from .inventory import StockMovement, MOVEMENT_TYPES
from .sales import Sale, SaleItem, CreditPayment, PAYMENT_METHODS
from .phones import Phone, PhoneMovement, PhoneSale, PHONE_CONDITIONS, PHONE_STATUSES
from .auth import User, LoginAttempt, ROLES
from .jobs import ScheduledJobRun

__all__ = [
    'Category', 'Product',
    'StockMovement', 'MOVEMENT_TYPES',
    'Sale', 'SaleItem', 'CreditPayment', 'PAYMENT_METHODS',
    'Phone', 'PhoneMovement', 'PhoneSale', 'PHONE_CONDITIONS', 'PHONE_STATUSES',
    'User', 'LoginAttempt', 'ROLES',
    'ScheduledJobRun',
]
