from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import or_
from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.services import balance_store
from carbon_ledger.services.audit import audit_event
from carbon_ledger.services.interventions_service import resolve_intervention
from carbon_ledger.services.notifications import notify
from carbon_ledger.services.partnership_registry import is_partnership_active
from carbon_ledger.services.results import (
    INVALID_REQUEST,
    NO_ACTIVE_PARTNERSHIP,
    LedgerOutcome,
    forbidden,
    insufficient_amount,
    invalid_transition,
    not_found,
)

logger = logging.getLogger("carbon_ledger.transfers")

TS = models.TransferStatus

# Domains registered without a level sit at the top of the chain.
DEFAULT_SUPPLY_CHAIN_LEVEL = 1


@dataclass(frozen=True)
class TransitionResult:
    updated: bool
    rowcount: int


def supply_chain_level(domain: models.Domain) -> int:
    if domain.supply_chain_level is None:
        return DEFAULT_SUPPLY_CHAIN_LEVEL
    return int(domain.supply_chain_level)


def atomic_transition_transfer_status(
    *,
    db: Session,
    transfer_id: int,
    to_status: TS,
    allowed_from: Iterable[TS],
    updates: dict[str, Any] | None = None,
) -> TransitionResult:
    """Apply a transfer status transition with an atomic DB guard.

        UPDATE transfers
        SET status = :to_status, ...
        WHERE id = :transfer_id AND status IN (:allowed_from)

    Of two concurrent approve/reject calls exactly one matches the row.
    Callers control commit/rollback.
    """

    update_values: dict[str, Any] = {"status": to_status}
    if updates:
        update_values.update(updates)

    rowcount = (
        db.query(models.Transfer)
        .filter(models.Transfer.id == int(transfer_id))
        .filter(models.Transfer.status.in_(set(allowed_from)))
        .update(update_values, synchronize_session=False)
    )
    return TransitionResult(updated=rowcount > 0, rowcount=int(rowcount or 0))


def create_transfer(
    db: Session,
    *,
    source_intervention_ref: int | str,
    source_domain_id: int,
    target_domain_id: int,
    amount: Decimal,
    notes: str | None = None,
    created_by_id: int | None = None,
) -> LedgerOutcome[models.Transfer]:
    """Move ``amount`` of unclaimed abatement towards a partnered domain.

    Transfers only flow downstream: the target must sit at a higher supply
    chain level than the source. The balance is reserved immediately and the
    transfer starts ``pending``; only the target domain can complete or
    cancel it.
    """

    amt = balance_store.as_amount(amount)
    if amt <= 0:
        return LedgerOutcome.failure(INVALID_REQUEST, "amount must be positive")

    source_id = int(source_domain_id)
    target_id = int(target_domain_id)
    if source_id == target_id:
        return LedgerOutcome.failure(INVALID_REQUEST, "Cannot transfer to your own domain")

    intervention = resolve_intervention(db, source_intervention_ref)
    if intervention is None or intervention.domain_id != source_id:
        return not_found("Intervention", source_intervention_ref)
    if intervention.status != models.InterventionStatus.verified:
        return LedgerOutcome.failure(
            INVALID_REQUEST,
            "Only verified interventions can be transferred",
            status=intervention.status.value,
        )
    target = db.get(models.Domain, target_id)
    if target is None:
        return not_found("Domain", target_id)

    source_level = supply_chain_level(intervention.domain)
    target_level = supply_chain_level(target)
    if target_level <= source_level:
        return LedgerOutcome.failure(
            INVALID_REQUEST,
            "Transfers can only be made downstream in the supply chain",
            source_level=source_level,
            target_level=target_level,
        )

    if not is_partnership_active(db, source_id, target_id):
        return LedgerOutcome.failure(
            NO_ACTIVE_PARTNERSHIP,
            "No active partnership exists with the target domain",
            target_domain_id=target_id,
        )

    available = balance_store.get_available(db, intervention.id) or Decimal("0")
    if amt > available:
        return insufficient_amount(amt, available)

    reservation = balance_store.reserve(db, intervention_id=intervention.id, amount=amt)
    if not reservation.reserved:
        db.rollback()
        return insufficient_amount(amt, reservation.available)

    transfer = models.Transfer(
        source_intervention_id=intervention.id,
        source_domain_id=source_id,
        target_domain_id=target_id,
        amount=amt,
        status=TS.pending,
        notes=notes,
        created_by_id=created_by_id,
    )
    db.add(transfer)
    db.flush()

    notify(
        db,
        domain_id=target_id,
        type=models.NotificationType.TRANSFER_REQUEST,
        message=f"New transfer request for {amt.normalize():f} tCO2e",
        metadata={
            "transfer_id": transfer.id,
            "amount": float(amt),
            "intervention_id": intervention.intervention_id,
        },
    )
    db.commit()
    db.refresh(transfer)

    logger.info(
        "transfer_created",
        extra={
            "transfer_id": transfer.id,
            "intervention_id": intervention.id,
            "source_domain_id": source_id,
            "target_domain_id": target_id,
            "amount": str(amt),
        },
    )
    audit_event(
        "transfer.created",
        created_by_id,
        {"transfer_id": transfer.id, "intervention_id": intervention.id, "amount": str(amt)},
        db=db,
        domain_id=source_id,
    )
    return LedgerOutcome.success(transfer)


def _load_for_decision(
    db: Session, transfer_id: int, approver_domain_id: int, target: TS
) -> tuple[models.Transfer | None, LedgerOutcome | None]:
    transfer = db.get(models.Transfer, int(transfer_id))
    if transfer is None:
        return None, not_found("Transfer", transfer_id)
    approver = int(approver_domain_id)
    if approver not in {transfer.source_domain_id, transfer.target_domain_id}:
        return None, not_found("Transfer", transfer_id)
    if approver != transfer.target_domain_id:
        return None, forbidden("Only the receiving domain can act on this transfer")
    if transfer.status != TS.pending:
        return None, invalid_transition(transfer.status.value, target.value)
    return transfer, None


def _lost_race(db: Session, transfer_id: int, target: TS) -> LedgerOutcome:
    db.rollback()
    fresh = db.get(models.Transfer, int(transfer_id), populate_existing=True)
    current = fresh.status.value if fresh is not None else "unknown"
    return invalid_transition(current, target.value)


def _credit_target(db: Session, transfer: models.Transfer, now: datetime) -> models.Intervention:
    """Book the transferred amount as a verified intervention of the receiving domain."""

    source = transfer.source_intervention
    received = models.Intervention(
        intervention_id=f"{source.intervention_id}_transfer_{transfer.id}",
        domain_id=transfer.target_domain_id,
        modality=source.modality,
        geography=source.geography,
        vintage=source.vintage,
        low_carbon_fuel=source.low_carbon_fuel,
        feedstock=source.feedstock,
        certification_scheme=source.certification_scheme,
        total_amount=transfer.amount,
        remaining_amount=transfer.amount,
        status=models.InterventionStatus.verified,
        created_at=now,
    )
    db.add(received)
    db.flush()

    db.query(models.Transfer).filter(models.Transfer.id == transfer.id).update(
        {"target_intervention_id": received.id}, synchronize_session=False
    )
    return received


def approve_transfer(
    db: Session,
    *,
    transfer_id: int,
    approver_domain_id: int,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> LedgerOutcome[models.Transfer]:
    """pending -> completed.

    The source balance is untouched (the amount left it at creation); the
    receiving domain gets a new verified intervention holding the amount.
    """

    transfer, error = _load_for_decision(db, transfer_id, approver_domain_id, TS.completed)
    if error is not None:
        return error

    if now is None:
        now = models.utc_now()
    res = atomic_transition_transfer_status(
        db=db,
        transfer_id=transfer.id,
        to_status=TS.completed,
        allowed_from=[TS.pending],
        updates={"completed_at": now},
    )
    if not res.updated:
        return _lost_race(db, transfer.id, TS.completed)

    received = _credit_target(db, transfer, now)

    amount_txt = f"{balance_store.as_amount(transfer.amount).normalize():f}"
    for domain_id, counterparty in (
        (transfer.source_domain_id, transfer.target_domain),
        (transfer.target_domain_id, transfer.source_domain),
    ):
        notify(
            db,
            domain_id=domain_id,
            type=models.NotificationType.TRANSFER_COMPLETED,
            message=f"Transfer of {amount_txt} tCO2e with {counterparty.company_name} completed",
            metadata={
                "transfer_id": transfer.id,
                "amount": float(transfer.amount),
                "source_intervention_id": transfer.source_intervention_id,
                "target_intervention_id": received.id,
            },
        )
    db.commit()
    db.refresh(transfer)

    logger.info(
        "transfer_completed",
        extra={
            "transfer_id": transfer.id,
            "approver_domain_id": int(approver_domain_id),
            "target_intervention_id": received.id,
        },
    )
    audit_event(
        "transfer.completed",
        actor_user_id,
        {"transfer_id": transfer.id, "target_intervention_id": received.id},
        db=db,
        domain_id=int(approver_domain_id),
    )
    return LedgerOutcome.success(transfer)


def reject_transfer(
    db: Session,
    *,
    transfer_id: int,
    approver_domain_id: int,
    reason: str | None = None,
    actor_user_id: int | None = None,
    now: datetime | None = None,
) -> LedgerOutcome[models.Transfer]:
    """pending -> cancelled, restoring the amount to the source intervention.

    The status swap and the release commit together, so a transfer's amount
    is restored at most once.
    """

    transfer, error = _load_for_decision(db, transfer_id, approver_domain_id, TS.cancelled)
    if error is not None:
        return error

    if now is None:
        now = models.utc_now()
    res = atomic_transition_transfer_status(
        db=db,
        transfer_id=transfer.id,
        to_status=TS.cancelled,
        allowed_from=[TS.pending],
        updates={"cancelled_at": now, "rejection_reason": reason},
    )
    if not res.updated:
        return _lost_race(db, transfer.id, TS.cancelled)

    remaining = balance_store.release(
        db, intervention_id=transfer.source_intervention_id, amount=transfer.amount
    )

    amount_txt = f"{balance_store.as_amount(transfer.amount).normalize():f}"
    message = f"Transfer of {amount_txt} tCO2e has been rejected"
    if reason:
        message = f"{message}: {reason}"
    notify(
        db,
        domain_id=transfer.source_domain_id,
        type=models.NotificationType.TRANSFER_REJECTED,
        message=message,
        metadata={
            "transfer_id": transfer.id,
            "amount": float(transfer.amount),
            "reason": reason,
        },
    )
    db.commit()
    db.refresh(transfer)

    logger.info(
        "transfer_rejected",
        extra={
            "transfer_id": transfer.id,
            "intervention_id": transfer.source_intervention_id,
            "restored": amount_txt,
            "remaining": str(remaining),
        },
    )
    audit_event(
        "transfer.cancelled",
        actor_user_id,
        {"transfer_id": transfer.id, "reason": reason, "restored": amount_txt},
        db=db,
        domain_id=int(approver_domain_id),
    )
    return LedgerOutcome.success(transfer)


def list_transfers(
    db: Session,
    *,
    domain_id: int,
    status: TS | None = None,
    direction: str | None = None,
) -> list[models.Transfer]:
    """Transfers where the domain is source or target, newest first.

    ``direction`` narrows to ``incoming`` (domain is target) or ``outgoing``
    (domain is source).
    """

    d = int(domain_id)
    q = db.query(models.Transfer)
    if direction == "incoming":
        q = q.filter(models.Transfer.target_domain_id == d)
    elif direction == "outgoing":
        q = q.filter(models.Transfer.source_domain_id == d)
    else:
        q = q.filter(
            or_(models.Transfer.source_domain_id == d, models.Transfer.target_domain_id == d)
        )
    if status is not None:
        q = q.filter(models.Transfer.status == status)
    return q.order_by(models.Transfer.created_at.desc(), models.Transfer.id.desc()).all()
