"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a real document database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

Every implementation is constructed for exactly one group and only
ever reads or writes that group's records.

MERGE SEMANTICS: updates are partial. `update_member`, `update_loan`
and `patch_payment_month` change only the fields (or the single month
key) they are given and leave sibling fields untouched. There is no
operation that reads a whole payment record, mutates it and writes it
back, so concurrent edits to different months never clobber each other.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from uuid import UUID

from src.models.audit import AuditEvent
from src.models.group import (
    InsurancePayment,
    InsurancePolicy,
    Loan,
    Member,
    PremiumStatus,
    Transaction,
)


class GroupStorageInterface(ABC):
    """
    Abstract interface for group record storage.

    Any storage implementation (Google Sheets, Firestore, etc.)
    must implement these methods.
    """

    def __init__(self, group_id: str):
        if not group_id:
            raise ValueError("group_id is required")
        self._group_id = group_id

    @property
    def group_id(self) -> str:
        return self._group_id

    def _check_group(self, record_group_id: str) -> None:
        if record_group_id != self._group_id:
            raise StorageError(
                f"Record belongs to group {record_group_id!r}, "
                f"storage is scoped to {self._group_id!r}"
            )

    # ---------------------------------------------------------------- members

    @abstractmethod
    async def add_member(self, member: Member) -> UUID:
        """
        Save a new member.

        Returns:
            The member's ID

        Raises:
            DuplicateError: If a member with the same ID exists
        """

    @abstractmethod
    async def get_member(self, member_id: UUID) -> Optional[Member]:
        """Retrieve a member by ID, or None."""

    @abstractmethod
    async def list_members(self) -> list[Member]:
        """List all members of the group."""

    @abstractmethod
    async def update_member(self, member_id: UUID, fields: dict[str, Any]) -> None:
        """
        Merge the given fields into an existing member.

        Raises:
            NotFoundError: If the member doesn't exist
        """

    @abstractmethod
    async def delete_member(self, member_id: UUID) -> bool:
        """Delete a member. Returns False if there was nothing to delete."""

    # ----------------------------------------------------------- transactions

    @abstractmethod
    async def add_transaction(self, transaction: Transaction) -> UUID:
        """Save a new transaction and return its ID."""

    @abstractmethod
    async def list_transactions(
        self,
        member_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        List transactions, optionally only those linked to one member.

        Returns newest first.
        """

    # ------------------------------------------------------------------ loans

    @abstractmethod
    async def add_loan(self, loan: Loan) -> UUID:
        """Save a new loan and return its ID."""

    @abstractmethod
    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        """Retrieve a loan by ID, or None."""

    @abstractmethod
    async def list_loans(self) -> list[Loan]:
        """List all loans of the group."""

    @abstractmethod
    async def update_loan(self, loan_id: UUID, fields: dict[str, Any]) -> None:
        """
        Merge the given fields into an existing loan.

        Raises:
            NotFoundError: If the loan doesn't exist
        """

    @abstractmethod
    async def rename_member_references(self, member_id: UUID, name: str) -> int:
        """
        Update the denormalised member name on transactions and loans.

        Returns:
            Number of records updated
        """

    # --------------------------------------------------------------- policies

    @abstractmethod
    async def add_policy(self, policy: InsurancePolicy) -> UUID:
        """Save a new insurance policy and return its ID."""

    @abstractmethod
    async def get_policy(self, policy_id: UUID) -> Optional[InsurancePolicy]:
        """Retrieve a policy by ID, or None."""

    @abstractmethod
    async def list_policies(self) -> list[InsurancePolicy]:
        """List all insurance policies of the group."""

    # -------------------------------------------------------- payment records

    @abstractmethod
    async def list_payment_records(self, policy_id: UUID) -> list[InsurancePayment]:
        """List all member payment records under a policy."""

    @abstractmethod
    async def create_payment_record(self, record: InsurancePayment) -> UUID:
        """
        Create a payment record holding only the months it was built with.

        Returns:
            The record's ID
        """

    @abstractmethod
    async def patch_payment_month(
        self,
        policy_id: UUID,
        record_id: UUID,
        month_key: str,
        status: PremiumStatus,
    ) -> None:
        """
        Set one month's status on a payment record.

        Only `month_key` is written; every other month keeps its state.

        Raises:
            NotFoundError: If the record doesn't exist
        """


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get all events of one user action, in chronological order."""

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get the most recent audit events (newest first)."""


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
