"""
Tests for the AI agents.

No real API calls: every agent gets a fake model that returns canned text.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest

from src.agents import (
    AIError,
    AISchemaError,
    CalendarAgent,
    ConstitutionAgent,
    GeminiJsonAgent,
    MemberReportInput,
    Recurrence,
    RecurrenceFrequency,
    ReportAgent,
    SmsParsingAgent,
)
from src.models.group import Member, TransactionType


GROUP = "test-group"


class FakeResponse:
    def __init__(self, text):
        self.text = text


class FakeModel:
    """Stands in for a Gemini model; records prompts, replays replies."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.prompts = []

    async def generate_content_async(self, prompt):
        self.prompts.append(prompt)
        if self.error:
            raise self.error
        return FakeResponse(self.reply)


class TestExtractJson:

    def test_plain_object(self):
        assert GeminiJsonAgent.extract_json('{"answer": "yes"}') == {"answer": "yes"}

    def test_object_inside_code_fence(self):
        text = 'Here you go:\n```json\n{"answer": "yes"}\n```'
        assert GeminiJsonAgent.extract_json(text) == {"answer": "yes"}

    @pytest.mark.parametrize("text", ["no json here", "} backwards {", '{"broken": '])
    def test_rejects_non_json(self, text):
        with pytest.raises(ValueError):
            GeminiJsonAgent.extract_json(text)


class TestSmsParsingAgent:
    """Tests for M-Pesa SMS parsing."""

    SMS = (
        "SDB1234567 Confirmed. You have received Ksh5,000.00 from JOHN DOE "
        "254712345678 on 25/7/24 at 7:30 PM. New M-PESA balance is Ksh15,250.00."
    )

    @pytest.mark.asyncio
    async def test_parses_reply_and_keeps_known_member(self):
        john = Member(group_id=GROUP, name="John Doe", phone="254712345678")
        model = FakeModel(
            '{"amount": 5000.00, "date": "2024-07-25T19:30:00", '
            '"senderRecipient": "JOHN DOE", "transactionType": "Income", '
            f'"memberId": "{john.id}"}}'
        )

        parsed = await SmsParsingAgent(model=model).parse_sms(self.SMS, [john])

        assert parsed.amount == Decimal("5000.00")
        assert parsed.date == datetime(2024, 7, 25, 19, 30)
        assert parsed.sender_recipient == "JOHN DOE"
        assert parsed.transaction_type == TransactionType.INCOME
        assert parsed.transaction_cost is None
        assert parsed.member_id == john.id
        assert f"ID: {john.id}, Name: John Doe" in model.prompts[0]

    @pytest.mark.asyncio
    async def test_drops_member_id_not_in_list(self):
        model = FakeModel(
            '{"amount": 3000, "date": "2024-07-26T10:15:00", "senderRecipient": "JANE DOE", '
            f'"transactionType": "Expense", "transactionCost": 23, "memberId": "{uuid4()}"}}'
        )

        parsed = await SmsParsingAgent(model=model).parse_sms("Ksh3,000.00 sent to JANE DOE", [])

        assert parsed.member_id is None
        assert parsed.transaction_cost == Decimal("23")

    @pytest.mark.asyncio
    async def test_non_uuid_member_id_is_no_match(self):
        model = FakeModel(
            '{"amount": 10, "date": "2024-07-26T10:15:00", "senderRecipient": "X", '
            '"transactionType": "Income", "memberId": "john"}'
        )
        parsed = await SmsParsingAgent(model=model).parse_sms("sms", [])
        assert parsed.member_id is None

    @pytest.mark.asyncio
    async def test_empty_sms_makes_no_call(self):
        model = FakeModel("{}")
        with pytest.raises(ValueError):
            await SmsParsingAgent(model=model).parse_sms("   ", [])
        assert model.prompts == []

    @pytest.mark.asyncio
    async def test_schema_mismatch(self):
        model = FakeModel('{"amount": -5, "senderRecipient": "X"}')
        with pytest.raises(AISchemaError) as excinfo:
            await SmsParsingAgent(model=model).parse_sms("sms", [])
        assert excinfo.value.task == "sms_parsing"
        assert excinfo.value.raw_text == '{"amount": -5, "senderRecipient": "X"}'

    @pytest.mark.asyncio
    async def test_model_failure(self):
        model = FakeModel(error=RuntimeError("quota"))
        with pytest.raises(AIError, match="quota"):
            await SmsParsingAgent(model=model).parse_sms("sms", [])


class TestOtherAgents:

    @pytest.mark.asyncio
    async def test_constitution_answer(self):
        model = FakeModel('{"answer": "The fine is KES 200."}')
        answer = await ConstitutionAgent(model=model).ask("Article 5: lateness costs 200.", "Fine?")
        assert answer.answer == "The fine is KES 200."
        assert "Article 5" in model.prompts[0]

    @pytest.mark.asyncio
    async def test_member_report_prompt_mentions_everything(self):
        model = FakeModel('{"report": "Wanjiku is up to date."}')
        report_input = MemberReportInput(
            member_name="Wanjiku",
            transactions=[{
                "date": date(2025, 6, 1),
                "description": "June contribution",
                "amount": Decimal("5000"),
                "type": "Income",
                "category": "Contribution",
            }],
            insurance_payments=[{"policyName": "NHIF", "status": "Paid"}],
        )

        report = await ReportAgent(model=model).member_report(report_input)

        assert report.report == "Wanjiku is up to date."
        prompt = model.prompts[0]
        assert "June contribution" in prompt
        assert "- NHIF: Paid" in prompt

    @pytest.mark.asyncio
    async def test_financial_summary_schema_mismatch(self):
        model = FakeModel('{"answer": "wrong key"}')
        with pytest.raises(AISchemaError):
            await ReportAgent(model=model).financial_summary("Overall balance: 0")

    @pytest.mark.asyncio
    async def test_calendar_event_with_recurrence(self):
        model = FakeModel(
            '{"title": "Monthly meeting", "date": "2025-07-05", '
            '"recurrence": {"frequency": "monthly", "count": 6}}'
        )

        event = await CalendarAgent(model=model).event_from_text(
            "Meeting every first Saturday for six months", today=date(2025, 6, 30)
        )

        assert event.title == "Monthly meeting"
        assert event.date == date(2025, 7, 5)
        assert event.recurrence.frequency == RecurrenceFrequency.MONTHLY
        assert event.recurrence.describe() == "every month, 6 times"
        assert "Monday 30 June 2025" in model.prompts[0]

    def test_recurrence_description_with_interval_and_end(self):
        recurrence = Recurrence(frequency="weekly", interval=2, endDate=date(2025, 12, 31))
        assert recurrence.describe() == "every 2 weeks, until 2025-12-31"
