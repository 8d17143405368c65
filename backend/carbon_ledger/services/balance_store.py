from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.util import identity_key

from carbon_ledger import models

_CONSUMING_CLAIM_STATUSES = (
    models.ClaimStatus.active,
    models.ClaimStatus.pending_pdf,
    models.ClaimStatus.expired,
)
_OUTSTANDING_TRANSFER_STATUSES = (
    models.TransferStatus.pending,
    models.TransferStatus.completed,
)


class LedgerInvariantError(RuntimeError):
    """Raised when a write would push remaining_amount outside [0, total_amount]."""


@dataclass(frozen=True)
class ReserveResult:
    reserved: bool
    available: Decimal


def as_amount(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _expire_cached(db: Session, intervention_id: int) -> None:
    # Conditional UPDATEs bypass the identity map; drop any loaded copy of the balance.
    cached = db.identity_map.get(identity_key(models.Intervention, int(intervention_id)))
    if cached is not None:
        db.expire(cached, ["remaining_amount"])


def get_available(db: Session, intervention_id: int) -> Decimal | None:
    """Current remaining_amount read straight from the database (None when unknown)."""

    value = (
        db.query(models.Intervention.remaining_amount)
        .filter(models.Intervention.id == int(intervention_id))
        .scalar()
    )
    return None if value is None else as_amount(value)


def reserve(db: Session, *, intervention_id: int, amount: Decimal) -> ReserveResult:
    """Atomically decrement remaining_amount by ``amount`` if enough is left.

    A single conditional UPDATE re-validates the balance inside the caller's
    transaction:

        UPDATE interventions
        SET remaining_amount = remaining_amount - :amount
        WHERE id = :id AND remaining_amount >= :amount

    Two concurrent reservations against the same row serialize on the row
    write; the loser re-evaluates the guard against the committed value and
    matches nothing. Callers control commit/rollback.
    """

    amt = as_amount(amount)
    if amt <= 0:
        raise ValueError("amount must be positive")

    rowcount = (
        db.query(models.Intervention)
        .filter(models.Intervention.id == int(intervention_id))
        .filter(models.Intervention.remaining_amount >= amt)
        .update(
            {models.Intervention.remaining_amount: models.Intervention.remaining_amount - amt},
            synchronize_session=False,
        )
    )
    _expire_cached(db, intervention_id)

    available = get_available(db, intervention_id) or Decimal("0")
    return ReserveResult(reserved=bool(rowcount), available=available)


def release(db: Session, *, intervention_id: int, amount: Decimal) -> Decimal:
    """Atomically give ``amount`` back to the intervention.

    The guard ``remaining_amount + amount <= total_amount`` keeps a double
    release from ever inflating the balance; matching nothing is an invariant
    violation and raises, so the caller's transaction is rolled back.
    """

    amt = as_amount(amount)
    if amt <= 0:
        raise ValueError("amount must be positive")

    rowcount = (
        db.query(models.Intervention)
        .filter(models.Intervention.id == int(intervention_id))
        .filter(models.Intervention.remaining_amount + amt <= models.Intervention.total_amount)
        .update(
            {models.Intervention.remaining_amount: models.Intervention.remaining_amount + amt},
            synchronize_session=False,
        )
    )
    _expire_cached(db, intervention_id)

    if not rowcount:
        raise LedgerInvariantError(
            f"release of {amt} would exceed total_amount for intervention {intervention_id}"
        )
    return get_available(db, intervention_id) or Decimal("0")


def ledger_snapshot(db: Session, intervention: models.Intervention) -> dict[str, Any]:
    """Reconcile an intervention's balance against its claims and transfers.

    total - remaining must equal the claims that still consume balance
    (active, pending_pdf, expired) plus the transfers that were not rolled
    back (pending, completed).
    """

    claimed = (
        db.query(func.coalesce(func.sum(models.Claim.amount), 0))
        .filter(models.Claim.intervention_id == intervention.id)
        .filter(models.Claim.status.in_(_CONSUMING_CLAIM_STATUSES))
        .scalar()
    )
    transferred = (
        db.query(func.coalesce(func.sum(models.Transfer.amount), 0))
        .filter(models.Transfer.source_intervention_id == intervention.id)
        .filter(models.Transfer.status.in_(_OUTSTANDING_TRANSFER_STATUSES))
        .scalar()
    )
    pending_transfers = (
        db.query(func.coalesce(func.sum(models.Transfer.amount), 0))
        .filter(models.Transfer.source_intervention_id == intervention.id)
        .filter(models.Transfer.status == models.TransferStatus.pending)
        .scalar()
    )

    total = as_amount(intervention.total_amount)
    remaining = get_available(db, intervention.id) or Decimal("0")
    claimed_amt = as_amount(claimed)
    transferred_amt = as_amount(transferred)
    consumed = total - remaining

    return {
        "intervention_id": intervention.id,
        "total_amount": total,
        "remaining_amount": remaining,
        "claimed_amount": claimed_amt,
        "transferred_amount": transferred_amt,
        "pending_transfer_amount": as_amount(pending_transfers),
        "consumed_amount": consumed,
        "balanced": consumed == claimed_amt + transferred_amt,
    }
