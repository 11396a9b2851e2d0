from .organization import Base, Organization
from .store import Store
from .user import User
from .cash_closing import CashClosing
from .closing_issue import ClosingIssue
from .product import Product
from .account_request import AccountRequest

__all__ = ["Base", "Organization", "Store", "User", "CashClosing", "ClosingIssue", "Product", "AccountRequest"]
