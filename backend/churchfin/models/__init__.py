from churchfin.models.audit import AuditLog
from churchfin.models.budget import Category, RevenueSource, Votehead
from churchfin.models.gl import Account, JournalEntry, JournalLine
from churchfin.models.tenant import FiscalPeriod, Tenant
from churchfin.models.transaction import Expenditure, Income
from churchfin.models.user import User

__all__ = [
    # Tenancy
    "Tenant",
    "FiscalPeriod",
    # General Ledger
    "Account",
    "JournalEntry",
    "JournalLine",
    # Classification
    "RevenueSource",
    "Votehead",
    "Category",
    # Income & expenditure
    "Income",
    "Expenditure",
    # Users & audit
    "User",
    "AuditLog",
]
