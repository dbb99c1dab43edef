"""
Result types for the orchestrator boundary.

Every public `CreditOrchestrator` operation returns `Ok(value)` or
`Err(error)` instead of raising, where `error` is a `LedgerError` carrying
`error_code`, `message`, `is_retryable` and `details`.

Usage
-----
    result = await orchestrator.deduct_credits("u-1", 10, "sticker pack")
    if result.is_ok:
        balance = result.value
    elif result.error.error_code == "INSUFFICIENT_CREDITS":
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Generic, NoReturn, TypeVar, Union

from credit_ledger.core.exceptions import LedgerError

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True

    @property
    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True, slots=True)
class Err:
    error: LedgerError

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def is_err(self) -> bool:
        return True

    @property
    def error_code(self) -> str:
        return self.error.error_code

    @property
    def is_retryable(self) -> bool:
        return self.error.is_retryable

    def unwrap(self) -> NoReturn:
        raise self.error

    def to_dict(self) -> Dict[str, Any]:
        return self.error.to_dict()


Result = Union[Ok[T], Err]


def unwrap(result: "Result[T]") -> T:
    """Return the value of an `Ok`, or raise the error carried by an `Err`."""
    return result.unwrap()
