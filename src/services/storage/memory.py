"""
In-Memory Storage Implementation

Process-local storage used by the test suite and as the fallback when
Google Sheets is not configured. Records are copied on the way in and
on the way out, so callers never hold a reference into the store.
"""

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ValidationError

from src.models.audit import AuditEvent
from src.models.group import (
    InsurancePayment,
    InsurancePolicy,
    Loan,
    Member,
    PremiumStatus,
    Transaction,
)
from src.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    GroupStorageInterface,
    NotFoundError,
    StorageError,
)


IMMUTABLE_FIELDS = {"id", "group_id"}


def _merge(record: BaseModel, fields: dict[str, Any]) -> BaseModel:
    """Return a validated copy of `record` with `fields` merged in."""
    blocked = IMMUTABLE_FIELDS & set(fields)
    if blocked:
        raise StorageError(f"Cannot update immutable fields: {sorted(blocked)}")
    data = record.model_dump()
    data.update(fields)
    try:
        return type(record).model_validate(data)
    except ValidationError as e:
        raise StorageError(f"Update rejected: {e}") from e


class InMemoryGroupStorage(GroupStorageInterface):
    """Dictionary-backed group storage."""

    def __init__(self, group_id: str):
        super().__init__(group_id)
        self._members: dict[UUID, Member] = {}
        self._transactions: dict[UUID, Transaction] = {}
        self._loans: dict[UUID, Loan] = {}
        self._policies: dict[UUID, InsurancePolicy] = {}
        # policy_id -> record_id -> record
        self._payments: dict[UUID, dict[UUID, InsurancePayment]] = {}

    def _insert(self, table: dict, record: BaseModel) -> UUID:
        self._check_group(record.group_id)
        if record.id in table:
            raise DuplicateError(f"{type(record).__name__} already exists: {record.id}")
        table[record.id] = record.model_copy(deep=True)
        return record.id

    # ---------------------------------------------------------------- members

    async def add_member(self, member: Member) -> UUID:
        return self._insert(self._members, member)

    async def get_member(self, member_id: UUID) -> Optional[Member]:
        member = self._members.get(member_id)
        return member.model_copy(deep=True) if member else None

    async def list_members(self) -> list[Member]:
        return [m.model_copy(deep=True) for m in self._members.values()]

    async def update_member(self, member_id: UUID, fields: dict[str, Any]) -> None:
        if member_id not in self._members:
            raise NotFoundError(f"Member not found: {member_id}")
        self._members[member_id] = _merge(self._members[member_id], fields)

    async def delete_member(self, member_id: UUID) -> bool:
        return self._members.pop(member_id, None) is not None

    # ----------------------------------------------------------- transactions

    async def add_transaction(self, transaction: Transaction) -> UUID:
        return self._insert(self._transactions, transaction)

    async def list_transactions(
        self,
        member_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        transactions = [
            t.model_copy(deep=True)
            for t in self._transactions.values()
            if member_id is None or t.member_id == member_id
        ]
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    # ------------------------------------------------------------------ loans

    async def add_loan(self, loan: Loan) -> UUID:
        return self._insert(self._loans, loan)

    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        loan = self._loans.get(loan_id)
        return loan.model_copy(deep=True) if loan else None

    async def list_loans(self) -> list[Loan]:
        return [loan.model_copy(deep=True) for loan in self._loans.values()]

    async def update_loan(self, loan_id: UUID, fields: dict[str, Any]) -> None:
        if loan_id not in self._loans:
            raise NotFoundError(f"Loan not found: {loan_id}")
        self._loans[loan_id] = _merge(self._loans[loan_id], fields)

    async def rename_member_references(self, member_id: UUID, name: str) -> int:
        updated = 0
        for table in (self._transactions, self._loans):
            for record_id, record in table.items():
                if record.member_id == member_id:
                    table[record_id] = _merge(record, {"member_name": name})
                    updated += 1
        return updated

    # --------------------------------------------------------------- policies

    async def add_policy(self, policy: InsurancePolicy) -> UUID:
        return self._insert(self._policies, policy)

    async def get_policy(self, policy_id: UUID) -> Optional[InsurancePolicy]:
        policy = self._policies.get(policy_id)
        return policy.model_copy(deep=True) if policy else None

    async def list_policies(self) -> list[InsurancePolicy]:
        return [p.model_copy(deep=True) for p in self._policies.values()]

    # -------------------------------------------------------- payment records

    async def list_payment_records(self, policy_id: UUID) -> list[InsurancePayment]:
        return [
            r.model_copy(deep=True)
            for r in self._payments.get(policy_id, {}).values()
        ]

    async def create_payment_record(self, record: InsurancePayment) -> UUID:
        return self._insert(self._payments.setdefault(record.policy_id, {}), record)

    async def patch_payment_month(
        self,
        policy_id: UUID,
        record_id: UUID,
        month_key: str,
        status: PremiumStatus,
    ) -> None:
        record = self._payments.get(policy_id, {}).get(record_id)
        if record is None:
            raise NotFoundError(f"Payment record not found: {record_id}")
        patched = dict(record.payments)
        patched[month_key] = PremiumStatus(status)
        try:
            self._payments[policy_id][record_id] = InsurancePayment.model_validate(
                {**record.model_dump(), "payments": patched}
            )
        except ValidationError as e:
            raise StorageError(f"Patch rejected: {e}") from e


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed, append-only audit storage."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = sorted(
            self._events,
            key=lambda e: e.timestamp,
            reverse=True,
        )
        return events[:limit]
