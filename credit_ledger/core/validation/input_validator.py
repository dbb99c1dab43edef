"""
Input Validation Layer for the Credit Ledger

Purpose
-------
Provide a centralized validation layer for every caller-supplied value that
reaches the orchestrator. Enforces type safety, bounds checking and format
validation so nothing malformed reaches the ledger.

Responsibilities
----------------
- Validate user ids, amounts, descriptions and tokens
- Validate choices (platforms, referral types, transaction types, sort order)
- Validate pagination and date ranges
- Raise ValidationError with user-friendly error messages

Non-Responsibilities
--------------------
- Business rule validation (balances, streaks, referral eligibility)
- Persistence, transactions, locking, or side effects

Observability
-------------
Every validation failure is logged at debug level with:
- field_name
- raw_value (repr)
- reason/message
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, FrozenSet, Iterable, NoReturn, Optional, Sequence, Tuple

from credit_ledger.core.database.base import ensure_utc
from credit_ledger.core.logging.logger import get_logger
from credit_ledger.database.models.enums import TransactionType
from credit_ledger.modules.shared.constants import (
    MAX_CREDIT_AMOUNT,
    MAX_DESCRIPTION_LENGTH,
    MAX_TOKEN_LENGTH,
    MAX_USER_ID_LENGTH,
)
from credit_ledger.modules.shared.exceptions import ValidationError

logger = get_logger(__name__)


def _raise_validation_error(field_name: str, value: Any, message: str) -> NoReturn:
    """
    Centralized helper to log and raise a ValidationError.

    All validation failures go through this function to ensure consistent,
    structured logging and error construction.
    """
    logger.debug(
        "Input validation failed",
        extra={
            "field_name": field_name,
            "raw_value": repr(value),
            "reason": message,
        },
    )
    raise ValidationError(field_name, message)


class InputValidator:
    """
    Centralized input validation for all orchestrator inputs.

    All validation methods:
    - Are stateless and deterministic
    - Return validated values on success
    - Raise ValidationError on failure (never silently fail)
    """

    # =========================================================================
    # INTEGER VALIDATION
    # =========================================================================

    @staticmethod
    def validate_integer(
        value: Any,
        field_name: str,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        allow_zero: bool = True,
    ) -> int:
        """
        Validate and convert value to integer with optional bounds checking.

        Booleans and non-integral floats are rejected rather than coerced.

        Raises:
            ValidationError: If validation fails
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            _raise_validation_error(
                field_name, value, f"Must be a whole number, got '{value}'"
            )

        try:
            int_value = int(value)
        except (ValueError, TypeError):
            _raise_validation_error(
                field_name,
                value,
                f"Must be a whole number, got '{value}'",
            )

        if not allow_zero and int_value == 0:
            _raise_validation_error(field_name, int_value, "Cannot be zero")

        if min_value is not None and int_value < min_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Must be at least {min_value}, got {int_value}",
            )

        if max_value is not None and int_value > max_value:
            _raise_validation_error(
                field_name,
                int_value,
                f"Cannot exceed {max_value}, got {int_value}",
            )

        return int_value

    @staticmethod
    def validate_positive_integer(
        value: Any,
        field_name: str,
        max_value: Optional[int] = None,
    ) -> int:
        return InputValidator.validate_integer(
            value=value,
            field_name=field_name,
            min_value=1,
            max_value=max_value,
            allow_zero=False,
        )

    @staticmethod
    def validate_credit_amount(value: Any, field_name: str = "amount") -> int:
        """Validate a strictly positive credit amount within MAX_CREDIT_AMOUNT."""
        return InputValidator.validate_positive_integer(
            value, field_name, max_value=MAX_CREDIT_AMOUNT
        )

    # =========================================================================
    # STRING VALIDATION
    # =========================================================================

    @staticmethod
    def validate_string(
        value: Any,
        field_name: str,
        min_length: Optional[int] = None,
        max_length: Optional[int] = None,
    ) -> str:
        """
        Validate string input with optional length constraints.

        Returns:
            The stripped string
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        if not isinstance(value, str):
            _raise_validation_error(field_name, value, "Must be a string")

        str_value = value.strip()

        if min_length is not None and len(str_value) < min_length:
            _raise_validation_error(
                field_name,
                str_value,
                f"Must be at least {min_length} characters",
            )

        if max_length is not None and len(str_value) > max_length:
            _raise_validation_error(
                field_name,
                str_value,
                f"Cannot exceed {max_length} characters",
            )

        return str_value

    @staticmethod
    def validate_user_id(value: Any, field_name: str = "user_id") -> str:
        return InputValidator.validate_string(
            value, field_name, min_length=1, max_length=MAX_USER_ID_LENGTH
        )

    @staticmethod
    def validate_description(value: Any, field_name: str = "description") -> str:
        if value is None:
            return ""
        return InputValidator.validate_string(
            value, field_name, max_length=MAX_DESCRIPTION_LENGTH
        )

    @staticmethod
    def validate_token(value: Any, field_name: str) -> str:
        """Validate an opaque caller token (purchase token, transaction id, code)."""
        return InputValidator.validate_string(
            value, field_name, min_length=1, max_length=MAX_TOKEN_LENGTH
        )

    # =========================================================================
    # CHOICE VALIDATION
    # =========================================================================

    @staticmethod
    def validate_choice(
        value: Any,
        field_name: str,
        valid_choices: Sequence[str],
    ) -> str:
        """
        Validate that value is one of the allowed choices (case-insensitive).

        Returns:
            Lowercased validated choice
        """
        if value is None:
            _raise_validation_error(field_name, value, "Value is required")

        raw = getattr(value, "value", value)
        str_value = str(raw).lower().strip()
        normalized_choices = {choice.lower() for choice in valid_choices}

        if str_value not in normalized_choices:
            choices_str = ", ".join(sorted(valid_choices))
            _raise_validation_error(
                field_name,
                value,
                f"Invalid choice '{raw}'. Must be one of: {choices_str}",
            )

        return str_value

    @staticmethod
    def validate_transaction_types(
        values: Optional[Iterable[Any]],
        field_name: str = "types",
    ) -> FrozenSet[TransactionType]:
        """Validate an optional collection of transaction type names."""
        if values is None:
            return frozenset()
        if isinstance(values, (str, TransactionType)):
            values = [values]

        valid = [t.value for t in TransactionType]
        return frozenset(
            TransactionType(InputValidator.validate_choice(v, field_name, valid))
            for v in values
        )

    # =========================================================================
    # PAGINATION AND RANGES
    # =========================================================================

    @staticmethod
    def validate_pagination(page: Any, limit: Any, max_limit: int) -> Tuple[int, int]:
        """
        Validate a 1-based page number and a page size.

        Returns:
            (page, limit)
        """
        validated_page = InputValidator.validate_positive_integer(page, "page")
        validated_limit = InputValidator.validate_positive_integer(
            limit, "limit", max_value=max_limit
        )
        return validated_page, validated_limit

    @staticmethod
    def validate_date_range(
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> Tuple[Optional[datetime], Optional[datetime]]:
        """
        Validate an optional [start, end) range and normalize both ends to UTC.

        Raises:
            ValidationError: If either end is not a datetime or start >= end
        """
        for name, value in (("start", start), ("end", end)):
            if value is not None and not isinstance(value, datetime):
                _raise_validation_error(name, value, "Must be a datetime")

        start_utc = ensure_utc(start) if start is not None else None
        end_utc = ensure_utc(end) if end is not None else None

        if start_utc is not None and end_utc is not None and start_utc >= end_utc:
            _raise_validation_error(
                "date_range",
                (start, end),
                "Start must be before end",
            )

        return start_utc, end_utc
