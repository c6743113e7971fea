"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the production backend; the in-memory backend serves
tests and unconfigured installs.
"""

from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GroupStorageInterface,
    NotFoundError,
    StorageError,
)
from src.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsGroupStorage,
)
from src.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryGroupStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "GroupStorageInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsGroupStorage",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryGroupStorage",
]
