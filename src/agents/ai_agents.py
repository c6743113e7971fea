"""
AI Agents for Chama Ledger

DESIGN DECISION: Every model call asks for a JSON object and the reply is
validated against a fixed Pydantic schema before anything else sees it.

CRITICAL BOUNDARIES:

1. SMS PARSING AGENT:
   - CAN: Pre-fill a transaction draft from an M-Pesa SMS
   - CANNOT: Record the transaction (the user confirms the draft)
   - CANNOT: Link a member who is not in the group's member list

2. CONSTITUTION / REPORT / CALENDAR AGENTS:
   - CAN: Answer from, summarise, or restructure the text they are given
   - CANNOT: Write anything to the ledger

FAILURES: A reply that is not valid JSON for the schema raises
AISchemaError. There is no retry and no fallback value: the caller shows
one failure message and the user tries again.

The LLM is a TRANSLATOR, not an ORACLE.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, TypeVar
from uuid import UUID

import google.generativeai as genai
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from src.config import GeminiSettings, get_settings
from src.models.group import Member, TransactionType


logger = structlog.get_logger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class AIError(Exception):
    """The model could not be reached or refused to answer."""

    def __init__(self, task: str, message: str):
        self.task = task
        super().__init__(message)


class AISchemaError(AIError):
    """The model answered, but not with JSON matching the expected schema."""

    def __init__(self, task: str, message: str, raw_text: str = ""):
        super().__init__(task, message)
        self.raw_text = raw_text


# =============================================================================
# OUTPUT SCHEMAS
# =============================================================================

class _CamelModel(BaseModel):
    """Accepts the camelCase keys the prompts ask for, or snake_case."""

    model_config = ConfigDict(populate_by_name=True)


class ParsedSms(_CamelModel):
    """Transaction details extracted from an M-Pesa SMS."""

    amount: Decimal = Field(..., gt=0, description="Main transaction amount")
    date: datetime = Field(..., description="When the transaction happened")
    sender_recipient: str = Field(..., min_length=1, alias="senderRecipient")
    transaction_type: TransactionType = Field(..., alias="transactionType")
    transaction_cost: Optional[Decimal] = Field(
        default=None,
        ge=0,
        alias="transactionCost",
    )
    member_id: Optional[UUID] = Field(default=None, alias="memberId")

    @field_validator("member_id", mode="before")
    @classmethod
    def blank_member_id(cls, v: Any) -> Any:
        """An id that isn't a UUID can't be a member; treat it as no match."""
        if v in (None, ""):
            return None
        try:
            return UUID(str(v))
        except ValueError:
            return None


class ConstitutionAnswer(BaseModel):
    answer: str = Field(..., min_length=1)


class ReportTransaction(BaseModel):
    date: date
    description: str
    amount: Decimal
    type: TransactionType
    category: str


class PolicyPaymentStatus(_CamelModel):
    policy_name: str = Field(..., alias="policyName")
    status: str


class MemberReportInput(_CamelModel):
    """Everything the report-card prompt sees about one member."""

    member_name: str = Field(..., alias="memberName")
    transactions: list[ReportTransaction] = Field(default_factory=list)
    insurance_payments: list[PolicyPaymentStatus] = Field(
        default_factory=list,
        alias="insurancePayments",
        description="Current-month status per policy",
    )


class MemberReport(BaseModel):
    report: str = Field(..., min_length=1)


class FinancialSummary(BaseModel):
    summary: str = Field(..., min_length=1)


class RecurrenceFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class Recurrence(_CamelModel):
    frequency: RecurrenceFrequency
    interval: Optional[int] = Field(default=None, ge=1)
    end_date: Optional[date] = Field(default=None, alias="endDate")
    count: Optional[int] = Field(default=None, ge=1)

    def describe(self) -> str:
        every = self.interval or 1
        unit = {
            RecurrenceFrequency.DAILY: "day",
            RecurrenceFrequency.WEEKLY: "week",
            RecurrenceFrequency.MONTHLY: "month",
            RecurrenceFrequency.YEARLY: "year",
        }[self.frequency]
        text = f"every {unit}" if every == 1 else f"every {every} {unit}s"
        if self.count:
            text += f", {self.count} times"
        if self.end_date:
            text += f", until {self.end_date.isoformat()}"
        return text


class CalendarEvent(BaseModel):
    title: str = Field(..., min_length=1)
    date: date
    description: Optional[str] = None
    recurrence: Optional[Recurrence] = None


# =============================================================================
# BASE AGENT
# =============================================================================

class GeminiJsonAgent:
    """
    Shared plumbing: prompt in, schema-validated object out.

    Pass `model` to use something other than a configured Gemini model
    (anything with an async `generate_content_async(prompt)` whose
    result has a `.text`).
    """

    temperature: Optional[float] = None

    def __init__(
        self,
        model: Any = None,
        settings: Optional[GeminiSettings] = None,
    ):
        if model is not None:
            self._model = model
        else:
            self._settings = settings or get_settings().gemini
            self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": (
                    self.temperature
                    if self.temperature is not None
                    else self._settings.temperature
                ),
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            }
        )

    @staticmethod
    def extract_json(text: str) -> dict:
        """
        Pull the JSON object out of a model reply.

        Replies sometimes wrap the object in prose or code fences;
        everything outside the outermost braces is ignored.
        """
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            raise ValueError("No JSON object in reply")
        data = json.loads(text[start:end])
        if not isinstance(data, dict):
            raise ValueError("Reply JSON is not an object")
        return data

    async def _generate(self, prompt: str, schema: type[SchemaT], task: str) -> SchemaT:
        try:
            response = await self._model.generate_content_async(prompt)
            text = response.text.strip()
        except Exception as e:
            logger.error("ai_request_failed", task=task, error=str(e))
            raise AIError(task, f"The assistant is unavailable: {e}") from e

        try:
            result = schema.model_validate(self.extract_json(text))
        except (ValueError, ValidationError) as e:
            logger.warning("ai_schema_mismatch", task=task, error=str(e))
            raise AISchemaError(
                task,
                f"The assistant's reply could not be understood ({task})",
                raw_text=text,
            ) from e

        logger.info("ai_request_completed", task=task)
        return result


# =============================================================================
# AGENTS
# =============================================================================

class SmsParsingAgent(GeminiJsonAgent):
    """
    Turns an M-Pesa SMS into a transaction draft.

    BOUNDARIES:
    - NEVER records the transaction
    - ONLY links members from the list it was given
    """

    temperature = 0.1

    async def parse_sms(self, sms_text: str, members: list[Member]) -> ParsedSms:
        """
        Raises:
            ValueError: If the SMS text is empty (no model call is made)
            AISchemaError: If the reply doesn't match ParsedSms
        """
        if not sms_text or not sms_text.strip():
            raise ValueError("SMS text is empty")

        member_lines = "\n".join(f"- ID: {m.id}, Name: {m.name}" for m in members) or "- (none)"
        prompt = f"""You are an expert financial assistant specializing in parsing M-Pesa SMS messages from Kenya.

Examples:
1. "SDB1234567 Confirmed. You have received Ksh5,000.00 from JOHN DOE 254712345678 on 25/7/24 at 7:30 PM. New M-PESA balance is Ksh15,250.00."
   -> amount 5000.00, date 2024-07-25T19:30:00, senderRecipient JOHN DOE, transactionType Income
2. "SDB1234568 Confirmed. Ksh3,000.00 sent to JANE DOE 254722987654 on 26/7/24 at 10:15 AM. New M-PESA balance is Ksh12,250.00. Transaction cost, Ksh23.00."
   -> amount 3000.00, date 2024-07-26T10:15:00, senderRecipient JANE DOE, transactionType Expense, transactionCost 23.00

Instructions:
- amount: the main transaction amount (ignore balance and transaction cost)
- date: ISO 8601 (YYYY-MM-DDTHH:mm:ss); assume the current year if not given
- senderRecipient: the person or business name only, no phone number
- transactionType: "Income" if money was received, "Expense" if it was sent or paid
- transactionCost: only if the SMS states one
- memberId: if senderRecipient closely matches a member below, that member's ID; otherwise omit it

Members List:
{member_lines}

SMS Message to Parse:
```
{sms_text.strip()}
```

Respond with ONLY a JSON object with the keys amount, date, senderRecipient,
transactionType, and optionally transactionCost and memberId."""

        parsed = await self._generate(prompt, ParsedSms, "sms_parsing")

        known_ids = {m.id for m in members}
        if parsed.member_id is not None and parsed.member_id not in known_ids:
            logger.info("sms_member_match_dropped", member_id=str(parsed.member_id))
            parsed = parsed.model_copy(update={"member_id": None})
        return parsed


class ConstitutionAgent(GeminiJsonAgent):
    """Answers questions using only the constitution text it is given."""

    async def ask(self, constitution_text: str, question: str) -> ConstitutionAnswer:
        prompt = f"""You are an AI assistant that answers questions about a group's constitution.

Here is the constitution text:
{constitution_text}

Answer the following question about the constitution. If the constitution
does not cover it, say so.
{question}

Respond with ONLY a JSON object: {{"answer": "..."}}"""

        return await self._generate(prompt, ConstitutionAnswer, "constitution_query")


class ReportAgent(GeminiJsonAgent):
    """Narrative report cards and financial summaries."""

    temperature = 0.4

    async def member_report(self, report_input: MemberReportInput) -> MemberReport:
        if report_input.transactions:
            transaction_lines = "\n".join(
                f"- {t.date.isoformat()}: {t.description} (Amount: {t.amount}, Type: {t.type.value})"
                for t in report_input.transactions
            )
        else:
            transaction_lines = "- No recent transactions recorded."

        if report_input.insurance_payments:
            insurance_lines = "\n".join(
                f"- {p.policy_name}: {p.status}" for p in report_input.insurance_payments
            )
        else:
            insurance_lines = "- No insurance policies tracked for this member."

        name = report_input.member_name
        prompt = f"""You are the financial secretary of a community group. Write a concise,
encouraging and informative financial report card (2-3 sentences) for a member named {name}.

Recent Transactions:
{transaction_lines}

Insurance Payments This Month:
{insurance_lines}

Guidelines:
1. Start by addressing the member by name.
2. Summarise their contribution activity; mention if they are up to date.
3. Mention their insurance payment status.
4. Keep the tone positive and professional.

Respond with ONLY a JSON object: {{"report": "..."}}"""

        return await self._generate(prompt, MemberReport, "member_report")

    async def financial_summary(self, report_text: str) -> FinancialSummary:
        prompt = f"""You are an expert financial analyst. Provide a narrative summary of the
following financial report of a community savings group.

Financial Report:
{report_text}

Respond with ONLY a JSON object: {{"summary": "..."}}"""

        return await self._generate(prompt, FinancialSummary, "financial_summary")


class CalendarAgent(GeminiJsonAgent):
    """Turns a sentence like "meeting every first Saturday" into an event."""

    temperature = 0.1

    async def event_from_text(self, prompt_text: str, today: Optional[date] = None) -> CalendarEvent:
        today = today or date.today()
        prompt = f"""You are an intelligent assistant that creates calendar events from natural language.
The current date is {today.strftime('%A %d %B %Y')}.

Extract the event details from the prompt below.
- date is the first occurrence, in YYYY-MM-DD format.
- If the event repeats, include a recurrence object with frequency
  (daily, weekly, monthly or yearly), an optional interval, and either
  an endDate (YYYY-MM-DD) or a count of occurrences.
  "for 5 weeks" means count 5; "until December" means an endDate.

Prompt: {prompt_text}

Respond with ONLY a JSON object with the keys title, date, and optionally
description and recurrence."""

        return await self._generate(prompt, CalendarEvent, "calendar_event")
