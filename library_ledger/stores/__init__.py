"""Library Ledger - Stores Package

This package contains the durable record stores used by the circulation service:
- Catalog store (items and their total copy counts)
- Loan ledger (open/closed loan records)
"""

from library_ledger.stores.catalog import CatalogStore
from library_ledger.stores.loan_ledger import LoanLedger

__all__ = ["CatalogStore", "LoanLedger"]
