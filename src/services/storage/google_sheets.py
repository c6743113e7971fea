"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the storage backend because:
1. The group treasurer can open the data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (a chama has tens of members)
- No transactions (each write touches as few cells as possible)
- Limited query capabilities (we filter in Python)

LAYOUT: one worksheet per entity, one row per record, a `group_id`
column on every row. Insurance payment months live in their own
worksheet with one row per (payment record, month), so changing one
month's status updates exactly one cell and can never reset another
month.
"""

import json
from datetime import datetime
from typing import Any, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.config import GoogleSheetsSettings, get_settings
from src.models.audit import AuditEvent, AuditEventType, AuditSeverity
from src.models.group import (
    MONTH_KEY_PATTERN,
    InsurancePayment,
    InsurancePolicy,
    Loan,
    Member,
    PremiumStatus,
    Transaction,
)
from src.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    GroupStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


MEMBER_COLUMNS = ["id", "group_id", "name", "phone", "join_date", "status"]

TRANSACTION_COLUMNS = [
    "id",
    "group_id",
    "date",
    "description",
    "amount",
    "type",
    "category",
    "member_id",
    "member_name",
    "loan_id",
]

LOAN_COLUMNS = [
    "id",
    "group_id",
    "member_id",
    "member_name",
    "principal",
    "interest_rate",
    "balance",
    "issue_date",
    "status",
    "reason",
]

POLICY_COLUMNS = ["id", "group_id", "name", "monthly_premium"]

PAYMENT_RECORD_COLUMNS = ["id", "group_id", "policy_id", "member_id"]

PAYMENT_MONTH_COLUMNS = [
    "record_id",
    "group_id",
    "policy_id",
    "month_key",
    "status",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "group_id",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

# Wraps idempotent steps only: a retry may follow a write that landed.
# Not-found and duplicate are answers, not transient failures.
sheets_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((NotFoundError, DuplicateError)),
    reraise=True,
)


def model_to_row(record: BaseModel, columns: list[str]) -> list[str]:
    """Convert a model to a spreadsheet row in column order."""
    data = record.model_dump(mode="json")
    return ["" if data.get(col) is None else str(data[col]) for col in columns]


def row_to_model(model_cls: type[ModelT], row: list[str], columns: list[str]) -> ModelT:
    """Convert a spreadsheet row to a model; empty cells become None."""
    data = {}
    for index, col in enumerate(columns):
        value = row[index] if index < len(row) else ""
        if value != "":
            data[col] = value
    return model_cls.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and worksheet creation.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._worksheets: dict[str, gspread.Worksheet] = {}
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        if title in self._worksheets:
            return self._worksheets[title]

        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
            logger.info("worksheet_created", title=title)

        self._worksheets[title] = sheet
        return sheet


class GoogleSheetsGroupStorage(GroupStorageInterface):
    """
    Google Sheets implementation of group storage.

    Rows belonging to other groups in the same spreadsheet are
    ignored on read and never touched on write.
    """

    def __init__(self, group_id: str, client: Optional[GoogleSheetsClient] = None):
        super().__init__(group_id)
        self._client = client or GoogleSheetsClient()

    # ------------------------------------------------------------- worksheets

    def _sheet(self, name_attr: str, columns: list[str]) -> gspread.Worksheet:
        title = getattr(self._client.settings, name_attr)
        return self._client.get_worksheet(title, columns)

    def _members_sheet(self) -> gspread.Worksheet:
        return self._sheet("members_sheet_name", MEMBER_COLUMNS)

    def _transactions_sheet(self) -> gspread.Worksheet:
        return self._sheet("transactions_sheet_name", TRANSACTION_COLUMNS)

    def _loans_sheet(self) -> gspread.Worksheet:
        return self._sheet("loans_sheet_name", LOAN_COLUMNS)

    def _policies_sheet(self) -> gspread.Worksheet:
        return self._sheet("policies_sheet_name", POLICY_COLUMNS)

    def _payment_records_sheet(self) -> gspread.Worksheet:
        return self._sheet("payment_records_sheet_name", PAYMENT_RECORD_COLUMNS)

    def _payment_months_sheet(self) -> gspread.Worksheet:
        return self._sheet("payment_months_sheet_name", PAYMENT_MONTH_COLUMNS)

    # ---------------------------------------------------------------- helpers

    def _group_rows(self, sheet: gspread.Worksheet) -> list[tuple[int, list[str]]]:
        """
        All data rows of this group with their 1-based sheet row number.

        Every sheet has group_id in its second column.
        """
        rows = []
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if len(row) > 1 and row[0] and row[1] == self.group_id:
                rows.append((idx, row))
        return rows

    def _find_row(self, sheet: gspread.Worksheet, record_id: UUID) -> Optional[tuple[int, list[str]]]:
        for idx, row in self._group_rows(sheet):
            if row[0] == str(record_id):
                return idx, row
        return None

    def _read_all(self, sheet: gspread.Worksheet, model_cls: type[ModelT], columns: list[str]) -> list[ModelT]:
        records = []
        for idx, row in self._group_rows(sheet):
            try:
                records.append(row_to_model(model_cls, row, columns))
            except ValueError as e:
                logger.warning("malformed_row_skipped", sheet=sheet.title, row=idx, error=str(e))
        return records

    def _append(self, sheet: gspread.Worksheet, record: BaseModel, columns: list[str]) -> UUID:
        self._check_group(record.group_id)
        if self._find_row(sheet, record.id) is not None:
            raise DuplicateError(f"{type(record).__name__} already exists: {record.id}")
        self._append_row_once(sheet, record.id, model_to_row(record, columns))
        return record.id

    @sheets_retry
    def _append_row_once(self, sheet: gspread.Worksheet, record_id: UUID, row: list[str]) -> None:
        """
        Append `row` unless the row for `record_id` is already there.

        A retry after an append whose response was lost finds the row
        and stops, so a record is never written twice.
        """
        if self._find_row(sheet, record_id) is None:
            sheet.append_row(row, value_input_option="RAW")

    @sheets_retry
    def _set_month_status(
        self,
        record_id: UUID,
        policy_id: UUID,
        month_key: str,
        status: PremiumStatus,
    ) -> None:
        """Update the (record, month) row in place, or append it if missing."""
        sheet = self._payment_months_sheet()
        now = datetime.utcnow().isoformat()
        status_col = PAYMENT_MONTH_COLUMNS.index("status") + 1
        updated_col = PAYMENT_MONTH_COLUMNS.index("updated_at") + 1

        for idx, row in self._group_rows(sheet):
            if row[0] == str(record_id) and len(row) > 3 and row[3] == month_key:
                sheet.update_cell(idx, status_col, status.value)
                sheet.update_cell(idx, updated_col, now)
                return

        sheet.append_row(
            [str(record_id), self.group_id, str(policy_id), month_key, status.value, now],
            value_input_option="RAW",
        )

    def _update_fields(
        self,
        sheet: gspread.Worksheet,
        model_cls: type[ModelT],
        columns: list[str],
        record_id: UUID,
        fields: dict[str, Any],
    ) -> None:
        """Write only the cells of the given fields."""
        blocked = {"id", "group_id"} & set(fields)
        if blocked:
            raise StorageError(f"Cannot update immutable fields: {sorted(blocked)}")
        unknown = set(fields) - set(columns)
        if unknown:
            raise StorageError(f"Unknown fields: {sorted(unknown)}")

        found = self._find_row(sheet, record_id)
        if found is None:
            raise NotFoundError(f"{model_cls.__name__} not found: {record_id}")
        idx, row = found

        current = row_to_model(model_cls, row, columns)
        updated = model_cls.model_validate({**current.model_dump(), **fields})
        new_row = model_to_row(updated, columns)

        for field in fields:
            col_idx = columns.index(field)
            sheet.update_cell(idx, col_idx + 1, new_row[col_idx])

    # ---------------------------------------------------------------- members

    async def add_member(self, member: Member) -> UUID:
        try:
            return self._append(self._members_sheet(), member, MEMBER_COLUMNS)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save member: {e}")

    async def get_member(self, member_id: UUID) -> Optional[Member]:
        try:
            found = self._find_row(self._members_sheet(), member_id)
            return row_to_model(Member, found[1], MEMBER_COLUMNS) if found else None
        except Exception as e:
            raise StorageError(f"Failed to get member: {e}")

    async def list_members(self) -> list[Member]:
        try:
            return self._read_all(self._members_sheet(), Member, MEMBER_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to list members: {e}")

    @sheets_retry
    async def update_member(self, member_id: UUID, fields: dict[str, Any]) -> None:
        try:
            self._update_fields(self._members_sheet(), Member, MEMBER_COLUMNS, member_id, fields)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update member: {e}")

    async def delete_member(self, member_id: UUID) -> bool:
        try:
            sheet = self._members_sheet()
            found = self._find_row(sheet, member_id)
            if found is None:
                return False
            sheet.delete_rows(found[0])
            return True
        except Exception as e:
            raise StorageError(f"Failed to delete member: {e}")

    # ----------------------------------------------------------- transactions

    async def add_transaction(self, transaction: Transaction) -> UUID:
        try:
            return self._append(self._transactions_sheet(), transaction, TRANSACTION_COLUMNS)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def list_transactions(
        self,
        member_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        try:
            transactions = self._read_all(
                self._transactions_sheet(), Transaction, TRANSACTION_COLUMNS
            )
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")

        if member_id is not None:
            transactions = [t for t in transactions if t.member_id == member_id]
        transactions.sort(key=lambda t: t.date, reverse=True)
        return transactions

    # ------------------------------------------------------------------ loans

    async def add_loan(self, loan: Loan) -> UUID:
        try:
            return self._append(self._loans_sheet(), loan, LOAN_COLUMNS)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save loan: {e}")

    async def get_loan(self, loan_id: UUID) -> Optional[Loan]:
        try:
            found = self._find_row(self._loans_sheet(), loan_id)
            return row_to_model(Loan, found[1], LOAN_COLUMNS) if found else None
        except Exception as e:
            raise StorageError(f"Failed to get loan: {e}")

    async def list_loans(self) -> list[Loan]:
        try:
            return self._read_all(self._loans_sheet(), Loan, LOAN_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to list loans: {e}")

    @sheets_retry
    async def update_loan(self, loan_id: UUID, fields: dict[str, Any]) -> None:
        try:
            self._update_fields(self._loans_sheet(), Loan, LOAN_COLUMNS, loan_id, fields)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update loan: {e}")

    async def rename_member_references(self, member_id: UUID, name: str) -> int:
        updated = 0
        try:
            for sheet, columns in (
                (self._transactions_sheet(), TRANSACTION_COLUMNS),
                (self._loans_sheet(), LOAN_COLUMNS),
            ):
                member_col = columns.index("member_id")
                name_col = columns.index("member_name")
                for idx, row in self._group_rows(sheet):
                    if len(row) > member_col and row[member_col] == str(member_id):
                        sheet.update_cell(idx, name_col + 1, name)
                        updated += 1
        except Exception as e:
            raise StorageError(f"Failed to rename member references: {e}")
        return updated

    # --------------------------------------------------------------- policies

    async def add_policy(self, policy: InsurancePolicy) -> UUID:
        try:
            return self._append(self._policies_sheet(), policy, POLICY_COLUMNS)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save policy: {e}")

    async def get_policy(self, policy_id: UUID) -> Optional[InsurancePolicy]:
        try:
            found = self._find_row(self._policies_sheet(), policy_id)
            return row_to_model(InsurancePolicy, found[1], POLICY_COLUMNS) if found else None
        except Exception as e:
            raise StorageError(f"Failed to get policy: {e}")

    async def list_policies(self) -> list[InsurancePolicy]:
        try:
            return self._read_all(self._policies_sheet(), InsurancePolicy, POLICY_COLUMNS)
        except Exception as e:
            raise StorageError(f"Failed to list policies: {e}")

    # -------------------------------------------------------- payment records

    async def list_payment_records(self, policy_id: UUID) -> list[InsurancePayment]:
        try:
            record_rows = [
                row for _, row in self._group_rows(self._payment_records_sheet())
                if len(row) > 2 and row[2] == str(policy_id)
            ]
            month_rows = [
                row for _, row in self._group_rows(self._payment_months_sheet())
                if len(row) > 4 and row[2] == str(policy_id)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list payment records: {e}")

        months_by_record: dict[str, dict[str, str]] = {}
        for row in month_rows:
            months_by_record.setdefault(row[0], {})[row[3]] = row[4]

        records = []
        for row in record_rows:
            data = dict(zip(PAYMENT_RECORD_COLUMNS, row))
            data["payments"] = months_by_record.get(row[0], {})
            try:
                records.append(InsurancePayment.model_validate(data))
            except ValueError as e:
                logger.warning("malformed_payment_record_skipped", record_id=row[0], error=str(e))
        return records

    async def create_payment_record(self, record: InsurancePayment) -> UUID:
        try:
            self._append(self._payment_records_sheet(), record, PAYMENT_RECORD_COLUMNS)
            for month_key, status in record.payments.items():
                self._set_month_status(record.id, record.policy_id, month_key, status)
            return record.id
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to create payment record: {e}")

    async def patch_payment_month(
        self,
        policy_id: UUID,
        record_id: UUID,
        month_key: str,
        status: PremiumStatus,
    ) -> None:
        if not MONTH_KEY_PATTERN.match(month_key):
            raise StorageError(f"Invalid month key: {month_key!r}")
        status = PremiumStatus(status)

        try:
            if self._find_row(self._payment_records_sheet(), record_id) is None:
                raise NotFoundError(f"Payment record not found: {record_id}")

            self._set_month_status(record_id, policy_id, month_key, status)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update payment month: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(
            self._client.settings.audit_sheet_name,
            AUDIT_COLUMNS,
            rows=5000,  # More rows for audit log
        )

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            group_id=safe_get(2) or None,
            event_type=AuditEventType(safe_get(3)),
            severity=AuditSeverity(safe_get(4)),
            entity_type=safe_get(5) or None,
            entity_id=UUID(safe_get(6)) if safe_get(6) else None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    @sheets_retry
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    def _read_events(self) -> list[AuditEvent]:
        events = []
        for row in self._sheet().get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by correlation ID."""
        try:
            events = [e for e in self._read_events() if e.correlation_id == correlation_id]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            events = self._read_events()
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
