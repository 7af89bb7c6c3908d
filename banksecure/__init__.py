"""
BankSecure - Ledger Core

The consistency core of a personal-banking application: accounts,
an append-only transaction ledger, bills and budgets.

DESIGN PRINCIPLES:
1. A balance only moves through a posted transaction
2. Fail early, fail visibly (validation and access checks before mutation)
3. No silent corrections - mistakes are fixed by offsetting transactions
4. Every mutation is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "BankSecure Team"
