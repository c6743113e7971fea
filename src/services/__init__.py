"""Services package."""

from src.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsGroupStorage,
    GroupStorageInterface,
    InMemoryAuditStorage,
    InMemoryGroupStorage,
    NotFoundError,
    StorageError,
)
from src.services.writer import (
    BatchWriteError,
    NonBlockingWriter,
    Notification,
    NotificationCenter,
)

__all__ = [
    # Storage services
    "AuditStorageInterface",
    "ConnectionError",
    "DuplicateError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsGroupStorage",
    "GroupStorageInterface",
    "InMemoryAuditStorage",
    "InMemoryGroupStorage",
    "NotFoundError",
    "StorageError",
    # Background writes
    "BatchWriteError",
    "NonBlockingWriter",
    "Notification",
    "NotificationCenter",
]
