"""
Expense Ledger - Source Package

Core of a personal finance / expense tracker: transaction validation,
swappable transaction storage, read-only analytics and JSON backup.

DESIGN PRINCIPLES:
1. Validate every write before it reaches storage
2. Fail loudly, never fall back to a silent success
3. Storage layer is swappable
4. Aggregations are recomputed from stored data, never cached
5. Imports are all-or-nothing
"""

__version__ = "1.0.0"
__author__ = "Expense Ledger Team"
