"""Validation package."""

from src.validation.validator import (
    CsvValidationError,
    FormValidationError,
    GroupValidator,
    parse_amount,
)

__all__ = [
    "CsvValidationError",
    "FormValidationError",
    "GroupValidator",
    "parse_amount",
]
