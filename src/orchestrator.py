"""
Main Orchestrator for Chama Ledger

This module ties together all the components and defines the
end-to-end flows for:
1. Members (add, edit, delete, CSV import/export)
2. Transactions and payouts (record, SMS draft, CSV import/export)
3. Loans (issue, repay)
4. Insurance premiums (policies, status cells, month totals)
5. Merry-go-round schedule
6. Assistant (constitution, report cards, summaries, calendar)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written until validation passes
- Writes go through the NonBlockingWriter; the flow returns the
  optimistic record immediately and failures arrive as notifications
- Every successful write is audited under the action's correlation id

Reads are awaited directly; only writes are fire-and-forget.
"""

from datetime import date
from decimal import Decimal
from functools import partial
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel

from src.agents import (
    AIError,
    CalendarAgent,
    CalendarEvent,
    ConstitutionAgent,
    ConstitutionAnswer,
    FinancialSummary,
    MemberReport,
    ReportAgent,
    SmsParsingAgent,
)
from src.audit import AuditLogger, create_correlation_id
from src.config import get_settings
from src.ledger import (
    DEFAULT_CONTRIBUTION_AMOUNT,
    AnnualProgress,
    MonthlyStats,
    PaymentWrite,
    RotationSchedule,
    annual_progress,
    find_record,
    plan_mark_month_paid,
    plan_month_toggle,
    reconcile_month,
    status_grid,
)
from src.ledger import reports
from src.models.audit import AuditEvent, AuditEventBuilder
from src.models.group import (
    InsurancePolicy,
    Loan,
    LoanStatus,
    Member,
    MemberStatus,
    PayoutStatus,
    PremiumStatus,
    ScheduleItem,
    Transaction,
    TransactionCategory,
    TransactionType,
    ValidationIssue,
    ValidationResult,
)
from src.services import csv_io
from src.services.storage import (
    AuditStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsGroupStorage,
    GroupStorageInterface,
    InMemoryAuditStorage,
    InMemoryGroupStorage,
    NotFoundError,
)
from src.services.writer import BatchWriteError, NonBlockingWriter, NotificationCenter
from src.validation import (
    CsvValidationError,
    FormValidationError,
    GroupValidator,
    parse_amount,
)


logger = structlog.get_logger(__name__)

DEFAULT_POLICIES = [
    ("NHIF", Decimal("500")),
    ("Private Cover", Decimal("2000")),
]


class _Flow:
    """Shared plumbing: storage, background writes, audit, validation."""

    def __init__(
        self,
        storage: GroupStorageInterface,
        writer: NonBlockingWriter,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[GroupValidator] = None,
    ):
        self._storage = storage
        self._writer = writer
        self._audit_logger = audit_logger or AuditLogger(storage.group_id)
        self._validator = validator or GroupValidator()

    @property
    def group_id(self) -> str:
        return self._storage.group_id

    def _submit(
        self,
        operation: str,
        *writes: Callable[[], Awaitable],
        event: Optional[AuditEvent] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Run `writes` in order in the background, then audit `event`.

        Each write is a zero-argument callable started only when its
        turn comes. A failed write does not stop the ones after it;
        `event` is audited only when every write landed.
        """
        async def run():
            failures = []
            for index, write in enumerate(writes):
                try:
                    await write()
                except Exception as e:
                    logger.warning("write_failed", operation=operation, index=index, error=str(e))
                    failures.append(e)

            if len(writes) == 1 and failures:
                raise failures[0]
            if failures:
                raise BatchWriteError(len(failures), len(writes), failures[0])
            if event is not None:
                await self._audit_logger.log(event)

        self._writer.submit(run(), operation, correlation_id)

    async def _require_valid(
        self,
        result: ValidationResult,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Raise FormValidationError (and audit it) if `result` has errors."""
        if result.is_valid:
            return
        await self._audit_logger.log_validation_failed(
            result.subject,
            [issue.model_dump() for issue in result.issues],
            correlation_id=correlation_id,
        )
        raise FormValidationError(result)

    async def _reject_csv(self, error: CsvValidationError, correlation_id: UUID) -> None:
        await self._audit_logger.log_validation_failed(
            error.result.subject,
            [issue.model_dump() for issue in error.result.issues],
            correlation_id=correlation_id,
        )

    async def _get_member(self, member_id: UUID) -> Member:
        member = await self._storage.get_member(member_id)
        if member is None:
            raise NotFoundError(f"Member not found: {member_id}")
        return member


# =============================================================================
# MEMBERS
# =============================================================================

class MemberFlow(_Flow):
    """
    Member management.

    Renaming a member also updates the name stored on their
    transactions and loans, in the same background write.
    """

    async def add_member(self, name: str, phone: str) -> Member:
        correlation_id = create_correlation_id()
        await self._require_valid(self._validator.validate_member(name, phone), correlation_id)

        member = Member(group_id=self.group_id, name=name, phone=phone)
        self._submit(
            f"member {member.name}",
            partial(self._storage.add_member, member),
            event=AuditEventBuilder.member_added(self.group_id, member.id, member.name, correlation_id),
            correlation_id=correlation_id,
        )
        return member

    async def edit_member(
        self,
        member_id: UUID,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        status: Optional[str] = None,
    ) -> Member:
        """
        Update the given fields of a member.

        Returns the member as it will be once the write lands.
        """
        correlation_id = create_correlation_id()
        current = await self._get_member(member_id)

        new_name = name.strip() if name is not None else current.name
        new_phone = phone.strip() if phone is not None else current.phone
        new_status = status if status is not None else current.status.value
        await self._require_valid(
            self._validator.validate_member(new_name, new_phone, new_status),
            correlation_id,
        )

        changes: dict[str, Any] = {}
        if new_name != current.name:
            changes["name"] = new_name
        if new_phone != current.phone:
            changes["phone"] = new_phone
        if new_status != current.status.value:
            changes["status"] = MemberStatus(new_status)

        if not changes:
            return current

        writes = [partial(self._storage.update_member, member_id, changes)]
        if "name" in changes:
            writes.append(partial(self._storage.rename_member_references, member_id, new_name))

        self._submit(
            f"changes to {current.name}",
            *writes,
            event=AuditEventBuilder.member_updated(
                self.group_id,
                member_id,
                {k: getattr(v, "value", v) for k, v in changes.items()},
                correlation_id,
            ),
            correlation_id=correlation_id,
        )
        return current.model_copy(update=changes)

    async def delete_member(self, member_id: UUID) -> None:
        correlation_id = create_correlation_id()
        member = await self._get_member(member_id)
        self._submit(
            f"removal of {member.name}",
            partial(self._storage.delete_member, member_id),
            event=AuditEventBuilder.member_deleted(self.group_id, member_id, member.name, correlation_id),
            correlation_id=correlation_id,
        )

    async def list_members(self, filter_text: str = "") -> list[Member]:
        return reports.filter_members(await self._storage.list_members(), filter_text)

    async def active_members(self) -> list[Member]:
        return [m for m in await self.list_members() if m.is_active]

    async def import_csv(self, data: bytes) -> list[Member]:
        """
        Import members from CSV. All rows or none.

        Raises:
            CsvValidationError: If the header or any row is invalid
        """
        correlation_id = create_correlation_id()
        try:
            members = csv_io.parse_members_csv(
                data,
                self.group_id,
                validator=self._validator,
                max_rows=get_settings().app.max_csv_rows,
            )
        except CsvValidationError as e:
            await self._reject_csv(e, correlation_id)
            raise

        if members:
            self._submit(
                f"import of {len(members)} members",
                *[partial(self._storage.add_member, m) for m in members],
                event=AuditEventBuilder.records_imported(
                    self.group_id, "members", len(members), correlation_id
                ),
                correlation_id=correlation_id,
            )
        return members

    async def export_csv(self) -> bytes:
        return csv_io.members_to_csv_bytes(await self.list_members())

    @staticmethod
    def template_csv() -> bytes:
        return csv_io.members_template_csv()


# =============================================================================
# TRANSACTIONS AND PAYOUTS
# =============================================================================

class TransactionDraft(BaseModel):
    """Pre-filled transaction form values; nothing is recorded until submitted."""

    date: date
    description: str
    amount: Decimal
    type: TransactionType
    category: TransactionCategory
    member_id: Optional[UUID] = None
    transaction_cost: Optional[Decimal] = None


class TransactionFlow(_Flow):
    """Ledger entries, SMS drafts, CSV and payouts."""

    def __init__(
        self,
        storage: GroupStorageInterface,
        writer: NonBlockingWriter,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[GroupValidator] = None,
        sms_agent: Optional[SmsParsingAgent] = None,
    ):
        super().__init__(storage, writer, audit_logger, validator)
        self._sms_agent = sms_agent

    async def record_transaction(
        self,
        transaction_date: date,
        description: str,
        amount: Any,
        transaction_type: str,
        category: str,
        member_id: Optional[UUID] = None,
        loan_id: Optional[UUID] = None,
    ) -> Transaction:
        correlation_id = create_correlation_id()
        result = self._validator.validate_transaction(
            transaction_date, description, amount, transaction_type, category
        )

        member = None
        if member_id is not None:
            member = await self._storage.get_member(member_id)
            if member is None:
                result.issues.append(ValidationIssue(
                    field="member",
                    issue_type="invalid_value",
                    message="Selected member no longer exists",
                    severity="error",
                ))
        await self._require_valid(result, correlation_id)

        transaction = Transaction(
            group_id=self.group_id,
            date=transaction_date,
            description=description,
            amount=parse_amount(amount),
            type=TransactionType(transaction_type),
            category=TransactionCategory(category),
            member_id=member.id if member else None,
            member_name=member.name if member else None,
            loan_id=loan_id,
        )
        self._submit_transaction(transaction, correlation_id)
        return transaction

    def _submit_transaction(self, transaction: Transaction, correlation_id: UUID) -> None:
        self._submit(
            f"{transaction.category.value.lower()} of {transaction.amount}",
            partial(self._storage.add_transaction, transaction),
            event=AuditEventBuilder.transaction_recorded(
                self.group_id,
                transaction.id,
                transaction.type.value,
                transaction.category.value,
                str(transaction.amount),
                correlation_id,
            ),
            correlation_id=correlation_id,
        )

    async def list_transactions(self, filter_text: str = "") -> list[Transaction]:
        return reports.filter_transactions(await self._storage.list_transactions(), filter_text)

    def _get_sms_agent(self) -> SmsParsingAgent:
        if self._sms_agent is None:
            try:
                self._sms_agent = SmsParsingAgent()
            except Exception as e:
                raise AIError("sms_parsing", f"The assistant is not configured: {e}") from e
        return self._sms_agent

    async def parse_sms(self, sms_text: str) -> TransactionDraft:
        """
        Turn an M-Pesa SMS into a draft for the transaction form.

        Raises:
            FormValidationError: If the text is empty (no model call)
            AIError: If the model fails or its reply doesn't fit the schema
        """
        correlation_id = create_correlation_id()
        await self._require_valid(self._validator.validate_sms(sms_text), correlation_id)

        members = [m for m in await self._storage.list_members() if m.is_active]
        try:
            parsed = await self._get_sms_agent().parse_sms(sms_text, members)
        except AIError as e:
            await self._audit_logger.log_ai_request("sms_parsing", False, str(e), correlation_id)
            raise
        await self._audit_logger.log_ai_request("sms_parsing", True, correlation_id=correlation_id)

        income = parsed.transaction_type == TransactionType.INCOME
        return TransactionDraft(
            date=parsed.date.date(),
            description=f"M-Pesa {'from' if income else 'to'} {parsed.sender_recipient}",
            amount=parsed.amount,
            type=parsed.transaction_type,
            category=TransactionCategory.CONTRIBUTION if income else TransactionCategory.OPERATIONAL,
            member_id=parsed.member_id,
            transaction_cost=parsed.transaction_cost,
        )

    async def import_csv(self, data: bytes) -> list[Transaction]:
        """
        Import transactions from CSV. All rows or none.

        Raises:
            CsvValidationError: If the header or any row is invalid
        """
        correlation_id = create_correlation_id()
        try:
            transactions = csv_io.parse_transactions_csv(
                data,
                self.group_id,
                await self._storage.list_members(),
                validator=self._validator,
                max_rows=get_settings().app.max_csv_rows,
            )
        except CsvValidationError as e:
            await self._reject_csv(e, correlation_id)
            raise

        if transactions:
            self._submit(
                f"import of {len(transactions)} transactions",
                *[partial(self._storage.add_transaction, t) for t in transactions],
                event=AuditEventBuilder.records_imported(
                    self.group_id, "transactions", len(transactions), correlation_id
                ),
                correlation_id=correlation_id,
            )
        return transactions

    async def export_csv(self) -> bytes:
        return csv_io.transactions_to_csv_bytes(await self._storage.list_transactions())

    async def record_payout(
        self,
        member_id: UUID,
        amount: Any,
        payout_date: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Transaction:
        """Record a merry-go-round payout as an Expense to the member."""
        member = await self._get_member(member_id)
        return await self.record_transaction(
            payout_date or date.today(),
            description or f"Merry-go-round payout to {member.name}",
            amount,
            TransactionType.EXPENSE.value,
            TransactionCategory.PAYOUT.value,
            member_id=member.id,
        )

    async def list_payouts(self) -> list[Transaction]:
        return reports.payouts(await self._storage.list_transactions())


# =============================================================================
# LOANS
# =============================================================================

class LoanFlow(_Flow):
    """
    Loans to members.

    Issuing pays the principal out of the group account; repayments
    come back in as income linked to the loan.
    """

    async def issue_loan(
        self,
        member_id: UUID,
        principal: Any,
        interest_rate: Any,
        reason: str,
        issue_date: Optional[date] = None,
    ) -> Loan:
        correlation_id = create_correlation_id()
        member = await self._storage.get_member(member_id)
        await self._require_valid(
            self._validator.validate_loan(member, principal, interest_rate, reason),
            correlation_id,
        )

        amount = parse_amount(principal)
        rate = parse_amount(interest_rate) if interest_rate not in (None, "") else Decimal("0")
        balance = (amount * (1 + rate / 100)).quantize(Decimal("0.01"))
        issued_on = issue_date or date.today()

        loan = Loan(
            group_id=self.group_id,
            member_id=member.id,
            member_name=member.name,
            principal=amount,
            interest_rate=rate,
            balance=balance,
            issue_date=issued_on,
            reason=reason,
        )
        disbursement = Transaction(
            group_id=self.group_id,
            date=issued_on,
            description=f"Loan issued to {member.name}",
            amount=amount,
            type=TransactionType.EXPENSE,
            category=TransactionCategory.OPERATIONAL,
            member_id=member.id,
            member_name=member.name,
            loan_id=loan.id,
        )
        self._submit(
            f"loan to {member.name}",
            partial(self._storage.add_loan, loan),
            partial(self._storage.add_transaction, disbursement),
            event=AuditEventBuilder.loan_issued(
                self.group_id, loan.id, member.name, str(amount), str(balance), correlation_id
            ),
            correlation_id=correlation_id,
        )
        return loan

    async def record_repayment(
        self,
        loan_id: UUID,
        amount: Any,
        repayment_date: Optional[date] = None,
    ) -> Loan:
        """
        Reduce the loan balance; the loan is Paid Off once it reaches zero.

        Returns the loan as it will be once the write lands.
        """
        correlation_id = create_correlation_id()
        loan = await self._storage.get_loan(loan_id)
        await self._require_valid(self._validator.validate_repayment(loan, amount), correlation_id)

        paid = parse_amount(amount)
        new_balance = loan.balance - paid
        status = LoanStatus.PAID_OFF if new_balance <= 0 else LoanStatus.ACTIVE

        repayment = Transaction(
            group_id=self.group_id,
            date=repayment_date or date.today(),
            description=f"Loan repayment from {loan.member_name}",
            amount=paid,
            type=TransactionType.INCOME,
            category=TransactionCategory.LOAN_REPAYMENT,
            member_id=loan.member_id,
            member_name=loan.member_name,
            loan_id=loan.id,
        )
        self._submit(
            f"repayment of {paid} from {loan.member_name}",
            partial(self._storage.update_loan, loan.id, {"balance": new_balance, "status": status}),
            partial(self._storage.add_transaction, repayment),
            event=AuditEventBuilder.loan_repayment(
                self.group_id, loan.id, str(paid), str(new_balance), status.value, correlation_id
            ),
            correlation_id=correlation_id,
        )
        return loan.model_copy(update={"balance": new_balance, "status": status})

    async def list_loans(self, filter_text: str = "") -> list[Loan]:
        return reports.filter_loans(await self._storage.list_loans(), filter_text)


# =============================================================================
# INSURANCE
# =============================================================================

class MemberPremiumRow(BaseModel):
    """One row of the annual premium table."""

    member: Member
    months: dict[str, Optional[PremiumStatus]]
    progress: AnnualProgress


class InsuranceFlow(_Flow):
    """
    Insurance policies and the per-member monthly premium grid.

    Every status write touches a single month of a single record.
    """

    async def create_policy(self, name: str, monthly_premium: Any) -> InsurancePolicy:
        correlation_id = create_correlation_id()
        await self._require_valid(self._validator.validate_policy(name, monthly_premium), correlation_id)

        policy = InsurancePolicy(
            group_id=self.group_id,
            name=name,
            monthly_premium=parse_amount(monthly_premium),
        )
        self._submit(
            f"policy {policy.name}",
            partial(self._storage.add_policy, policy),
            event=AuditEventBuilder.policy_created(
                self.group_id, policy.id, policy.name, str(policy.monthly_premium), correlation_id
            ),
            correlation_id=correlation_id,
        )
        return policy

    async def ensure_default_policies(self) -> list[InsurancePolicy]:
        """Seed the default policies if the group has none yet."""
        policies = await self._storage.list_policies()
        if policies:
            return policies
        return [await self.create_policy(name, premium) for name, premium in DEFAULT_POLICIES]

    async def list_policies(self) -> list[InsurancePolicy]:
        return await self._storage.list_policies()

    async def _get_policy(self, policy_id: UUID) -> InsurancePolicy:
        policy = await self._storage.get_policy(policy_id)
        if policy is None:
            raise NotFoundError(f"Policy not found: {policy_id}")
        return policy

    def _submit_payment_write(
        self,
        policy: InsurancePolicy,
        write: PaymentWrite,
        correlation_id: UUID,
        audit: bool = True,
    ) -> None:
        if write.kind == "patch":
            operation = partial(
                self._storage.patch_payment_month,
                policy.id,
                write.record_id,
                write.month_key,
                write.status,
            )
        else:
            operation = partial(
                self._storage.create_payment_record, write.to_record(self.group_id, policy.id)
            )

        event = None
        if audit:
            event = AuditEventBuilder.premium_status_updated(
                self.group_id,
                policy.id,
                write.member_id,
                write.month_key,
                write.status.value,
                correlation_id,
            )
        self._submit(
            f"{policy.name} premium for {write.month_key}",
            operation,
            event=event,
            correlation_id=correlation_id,
        )

    async def toggle_payment(
        self,
        policy_id: UUID,
        member_id: UUID,
        month_key: str,
        paid: bool,
    ) -> PaymentWrite:
        """Tick (Paid) or untick (Unpaid) one member's month."""
        correlation_id = create_correlation_id()
        policy = await self._get_policy(policy_id)
        records = await self._storage.list_payment_records(policy.id)

        write = plan_month_toggle(member_id, records, month_key, paid)
        self._submit_payment_write(policy, write, correlation_id)
        return write

    async def mark_month_paid(self, policy_id: UUID, month_key: str) -> list[PaymentWrite]:
        """Mark the month Paid for every Active member whose month isn't Waived."""
        correlation_id = create_correlation_id()
        policy = await self._get_policy(policy_id)
        members = await self._storage.list_members()
        records = await self._storage.list_payment_records(policy.id)

        writes = plan_mark_month_paid(members, records, month_key)
        for write in writes:
            self._submit_payment_write(policy, write, correlation_id, audit=False)

        active_count = sum(1 for m in members if m.is_active)
        await self._audit_logger.log(AuditEventBuilder.month_marked_paid(
            self.group_id,
            policy.id,
            month_key,
            writes=len(writes),
            skipped_waived=active_count - len(writes),
            correlation_id=correlation_id,
        ))
        return writes

    async def monthly_stats(self, policy_id: UUID, year: int, month: int) -> MonthlyStats:
        policy = await self._get_policy(policy_id)
        return reconcile_month(
            await self._storage.list_members(),
            policy.monthly_premium,
            await self._storage.list_payment_records(policy.id),
            year,
            month,
        )

    async def annual_table(self, policy_id: UUID, year: int) -> list[MemberPremiumRow]:
        """Status grid and progress for every Active member, by name."""
        policy = await self._get_policy(policy_id)
        members = reports.filter_members(
            [m for m in await self._storage.list_members() if m.is_active]
        )
        records = await self._storage.list_payment_records(policy.id)

        rows = []
        for member in members:
            record = find_record(records, member.id)
            rows.append(MemberPremiumRow(
                member=member,
                months=status_grid(record, year),
                progress=annual_progress(record, year),
            ))
        return rows


# =============================================================================
# MERRY-GO-ROUND
# =============================================================================

class ScheduleFlow:
    """Generates and tracks the in-memory rotation schedule."""

    def __init__(
        self,
        storage: GroupStorageInterface,
        contribution_amount: Decimal = DEFAULT_CONTRIBUTION_AMOUNT,
        audit_logger: Optional[AuditLogger] = None,
        schedule: Optional[RotationSchedule] = None,
    ):
        self._storage = storage
        self._schedule = schedule or RotationSchedule(contribution_amount)
        self._audit_logger = audit_logger or AuditLogger(storage.group_id)

    @property
    def items(self) -> list[ScheduleItem]:
        return self._schedule.items

    async def generate(self, start: Optional[date] = None) -> list[ScheduleItem]:
        """Discard the current schedule and draw a new order."""
        items = self._schedule.regenerate(await self._storage.list_members(), start=start)
        await self._audit_logger.log(AuditEventBuilder.schedule_generated(
            self._storage.group_id,
            len(items),
            items[0].month_label if items else None,
            correlation_id=create_correlation_id(),
        ))
        return items

    async def set_status(self, payout_date: date, status: PayoutStatus) -> list[ScheduleItem]:
        items = self._schedule.set_status(payout_date, status)
        [item] = [i for i in items if i.payout_date == payout_date]
        await self._audit_logger.log(AuditEventBuilder.payout_status_updated(
            self._storage.group_id,
            item.member.id,
            item.month_label,
            item.status.value,
            correlation_id=create_correlation_id(),
        ))
        return items


# =============================================================================
# ASSISTANT
# =============================================================================

class AssistantFlow:
    """
    AI assistant features.

    Agents are created on first use so the rest of the app works
    without a Gemini key.
    """

    def __init__(
        self,
        storage: GroupStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        constitution_agent: Optional[ConstitutionAgent] = None,
        report_agent: Optional[ReportAgent] = None,
        calendar_agent: Optional[CalendarAgent] = None,
        currency: str = "KES",
    ):
        self._storage = storage
        self._audit_logger = audit_logger or AuditLogger(storage.group_id)
        self._agents: dict[str, Any] = {
            "constitution_query": constitution_agent,
            "member_report": report_agent,
            "calendar_event": calendar_agent,
        }
        self._agent_types = {
            "constitution_query": ConstitutionAgent,
            "member_report": ReportAgent,
            "calendar_event": CalendarAgent,
        }
        self._currency = currency

    def _agent(self, task: str):
        if self._agents[task] is None:
            try:
                self._agents[task] = self._agent_types[task]()
            except Exception as e:
                raise AIError(task, f"The assistant is not configured: {e}") from e
        return self._agents[task]

    async def _call(self, task: str, request: Awaitable):
        correlation_id = create_correlation_id()
        try:
            result = await request
        except AIError as e:
            await self._audit_logger.log_ai_request(task, False, str(e), correlation_id)
            raise
        await self._audit_logger.log_ai_request(task, True, correlation_id=correlation_id)
        return result

    async def ask_constitution(self, constitution_text: str, question: str) -> ConstitutionAnswer:
        if not constitution_text.strip() or not question.strip():
            raise FormValidationError(ValidationResult(
                subject="constitution_query",
                issues=[ValidationIssue(
                    field="question",
                    issue_type="missing",
                    message="Both the constitution text and a question are required",
                    severity="error",
                )],
            ))
        agent = self._agent("constitution_query")
        return await self._call("constitution_query", agent.ask(constitution_text, question))

    async def member_report(self, member_id: UUID, today: Optional[date] = None) -> MemberReport:
        member = await self._storage.get_member(member_id)
        if member is None:
            raise NotFoundError(f"Member not found: {member_id}")

        policies = await self._storage.list_policies()
        records_by_policy = {
            policy.id: await self._storage.list_payment_records(policy.id)
            for policy in policies
        }
        report_input = reports.member_report_input(
            member,
            await self._storage.list_transactions(member_id=member.id),
            policies,
            records_by_policy,
            today=today,
        )
        agent = self._agent("member_report")
        return await self._call("member_report", agent.member_report(report_input))

    async def financial_summary(self, today: Optional[date] = None) -> FinancialSummary:
        report_text = reports.financial_report_text(
            await self._storage.list_transactions(),
            await self._storage.list_loans(),
            currency=self._currency,
            today=today,
        )
        agent = self._agent("member_report")
        return await self._call("financial_summary", agent.financial_summary(report_text))

    async def event_from_text(self, prompt_text: str, today: Optional[date] = None) -> CalendarEvent:
        agent = self._agent("calendar_event")
        return await self._call("calendar_event", agent.event_from_text(prompt_text, today))


# =============================================================================
# WIRING
# =============================================================================

class AppComponents:
    """Everything a front end needs, wired for one group."""

    def __init__(
        self,
        storage: GroupStorageInterface,
        audit_storage: Optional[AuditStorageInterface] = None,
        contribution_amount: Decimal = DEFAULT_CONTRIBUTION_AMOUNT,
        currency: str = "KES",
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        self.storage = storage
        self.audit_storage = audit_storage
        self.sheets_client = sheets_client
        self.audit_logger = AuditLogger(storage.group_id, audit_storage)
        self.notifications = NotificationCenter()
        self.writer = NonBlockingWriter(self.notifications, self.audit_logger)
        self.validator = GroupValidator()

        shared = dict(
            storage=storage,
            writer=self.writer,
            audit_logger=self.audit_logger,
            validator=self.validator,
        )
        self.members = MemberFlow(**shared)
        self.transactions = TransactionFlow(**shared)
        self.loans = LoanFlow(**shared)
        self.insurance = InsuranceFlow(**shared)
        self.schedule = ScheduleFlow(storage, contribution_amount, self.audit_logger)
        self.assistant = AssistantFlow(storage, self.audit_logger, currency=currency)

    @property
    def group_id(self) -> str:
        return self.storage.group_id


def create_app_components(use_storage: bool = True) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                    Set to False to run on in-memory storage.
    """
    settings = get_settings()
    group = settings.group

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.get_spreadsheet()
            return AppComponents(
                GoogleSheetsGroupStorage(group.id, sheets_client),
                GoogleSheetsAuditStorage(sheets_client),
                contribution_amount=group.contribution_amount,
                currency=group.currency,
                sheets_client=sheets_client,
            )
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))

    return AppComponents(
        InMemoryGroupStorage(group.id),
        InMemoryAuditStorage(),
        contribution_amount=group.contribution_amount,
        currency=group.currency,
    )
