"""
Storage Services Package

Provides abstract interfaces and concrete implementations for ledger storage.
Ships an in-memory store, a SQL store and a Google Sheets store, all
interchangeable behind the same interface.
"""

from banksecure.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    LedgerStorageInterface,
    StorageError,
)
from banksecure.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)
from banksecure.services.storage.sql import (
    SqlAuditStorage,
    SqlLedgerStorage,
    create_ledger_engine,
)
from banksecure.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    # SQL implementation
    "SqlAuditStorage",
    "SqlLedgerStorage",
    "create_ledger_engine",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsLedgerStorage",
]
