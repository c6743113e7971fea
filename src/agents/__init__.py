"""AI Agents package."""

from src.agents.ai_agents import (
    AIError,
    AISchemaError,
    CalendarAgent,
    CalendarEvent,
    ConstitutionAgent,
    ConstitutionAnswer,
    FinancialSummary,
    GeminiJsonAgent,
    MemberReport,
    MemberReportInput,
    ParsedSms,
    PolicyPaymentStatus,
    Recurrence,
    RecurrenceFrequency,
    ReportAgent,
    ReportTransaction,
    SmsParsingAgent,
)

__all__ = [
    "AIError",
    "AISchemaError",
    "CalendarAgent",
    "CalendarEvent",
    "ConstitutionAgent",
    "ConstitutionAnswer",
    "FinancialSummary",
    "GeminiJsonAgent",
    "MemberReport",
    "MemberReportInput",
    "ParsedSms",
    "PolicyPaymentStatus",
    "Recurrence",
    "RecurrenceFrequency",
    "ReportAgent",
    "ReportTransaction",
    "SmsParsingAgent",
]
