from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Generic, TypeVar

T = TypeVar("T")


NOT_FOUND = "NOT_FOUND"
INSUFFICIENT_AMOUNT = "INSUFFICIENT_AMOUNT"
FORBIDDEN = "FORBIDDEN"
INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
NO_ACTIVE_PARTNERSHIP = "NO_ACTIVE_PARTNERSHIP"
DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
PARTNERSHIP_EXISTS = "PARTNERSHIP_EXISTS"
INVALID_REQUEST = "INVALID_REQUEST"


@dataclass(frozen=True)
class LedgerError:
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerOutcome(Generic[T]):
    """Result of a ledger operation.

    Validation failures are values, not exceptions: callers branch on ``ok``
    and read ``error.code`` to tell "retry with a smaller amount" apart from
    "not authorized" and "nothing to act on".
    """

    ok: bool
    value: T | None = None
    error: LedgerError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> "LedgerOutcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, code: str, message: str, **details: Any) -> "LedgerOutcome[T]":
        return cls(ok=False, error=LedgerError(code=code, message=message, details=details))


def not_found(what: str, ref: Any) -> LedgerOutcome:
    return LedgerOutcome.failure(NOT_FOUND, f"{what} not found", ref=str(ref))


def insufficient_amount(requested: Decimal, available: Decimal) -> LedgerOutcome:
    return LedgerOutcome.failure(
        INSUFFICIENT_AMOUNT,
        "Requested amount exceeds the available balance",
        requested=float(requested),
        available=float(available),
    )


def forbidden(message: str) -> LedgerOutcome:
    return LedgerOutcome.failure(FORBIDDEN, message)


def invalid_transition(current: str, target: str) -> LedgerOutcome:
    return LedgerOutcome.failure(
        INVALID_STATE_TRANSITION,
        f"Cannot move from {current} to {target}",
        current_status=current,
        requested_status=target,
    )
