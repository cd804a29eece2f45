from .auth import User, Role, UserRole, Permission, RolePermission, SessionToken
from .tenancy import Branch, Warehouse, BranchUser, UserWarehouse
from .master import Item, ItemUnit, Customer, Allocation
from .accounting import ChartOfAccount, SettingJournal, Journal
from .forms import Form, FormSequence
from .inventory import StockCorrection, StockCorrectionItem, Inventory
from .sales import SalesInvoice, SalesInvoiceItem
from .notifications import FormNotification, ReminderJob

__all__ = [
    'User', 'Role', 'UserRole', 'Permission', 'RolePermission', 'SessionToken',
    'Branch', 'Warehouse', 'BranchUser', 'UserWarehouse',
    'Item', 'ItemUnit', 'Customer', 'Allocation',
    'ChartOfAccount', 'SettingJournal', 'Journal',
    'Form', 'FormSequence',
    'StockCorrection', 'StockCorrectionItem', 'Inventory',
    'SalesInvoice', 'SalesInvoiceItem',
    'FormNotification', 'ReminderJob',
]
