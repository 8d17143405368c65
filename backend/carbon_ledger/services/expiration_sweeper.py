"""Scheduled claim lifecycle passes.

- expire pass: live claims past their expiry date become ``expired``.
- warn pass: live claims expiring within the warning horizon get a single
  ``CLAIM_EXPIRING_SOON`` notification and email.
- statement retry pass: ``pending_pdf`` claims get their statement produced.

Every claim is handled in its own transaction; a failure on one claim is
logged and the batch carries on. Expiry never restores balance.
A claim still waiting for its statement (``pending_pdf``) is live: its
validity window runs from creation like any active claim.
"""

from __future__ import annotations

import logging
import math
from html import escape
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.config import settings
from carbon_ledger.services.claims_service import finalize_statement
from carbon_ledger.services.email_sender import (
    EmailMessage,
    EmailSender,
    get_email_sender,
    send_email_safely,
)
from carbon_ledger.services.notifications import notify
from carbon_ledger.services.statements import StatementRenderer, get_statement_renderer

logger = logging.getLogger("carbon_ledger.sweeper")

CS = models.ClaimStatus

_LIVE_STATUSES = (CS.active, CS.pending_pdf)


@dataclass
class SweepResult:
    name: str
    examined: int = 0
    changed: int = 0
    failed: int = 0
    claim_ids: list[int] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "sweep": self.name,
            "examined": self.examined,
            "changed": self.changed,
            "failed": self.failed,
            "claim_ids": list(self.claim_ids),
        }


def _fmt_amount(value) -> str:
    return f"{float(value):,.4f}".rstrip("0").rstrip(".")


def days_until_expiry(expiry_date: datetime, now: datetime) -> int:
    return max(0, math.ceil((expiry_date - now).total_seconds() / 86400))


def _claim_email_context(claim: models.Claim) -> tuple[str, str]:
    intervention = claim.intervention
    label = intervention.modality or intervention.intervention_id
    return _fmt_amount(claim.amount), escape(label)


def run_expire_pass(
    db: Session,
    *,
    now: datetime | None = None,
    email_sender: EmailSender | None = None,
) -> SweepResult:
    """Set overdue live claims to expired, notify and email their owners.

    The status change is a compare-and-swap on the live statuses and the
    notification carries an idempotency key, so a second run changes nothing.
    """

    if now is None:
        now = models.utc_now()
    sender = email_sender or get_email_sender()
    result = SweepResult(name="expire")

    claim_ids = [
        cid
        for (cid,) in db.query(models.Claim.id)
        .filter(models.Claim.status.in_(_LIVE_STATUSES))
        .filter(models.Claim.expiry_date <= now)
        .order_by(models.Claim.expiry_date.asc(), models.Claim.id.asc())
        .all()
    ]
    result.examined = len(claim_ids)

    for claim_id in claim_ids:
        try:
            rowcount = (
                db.query(models.Claim)
                .filter(models.Claim.id == claim_id)
                .filter(models.Claim.status.in_(_LIVE_STATUSES))
                .update({"status": CS.expired}, synchronize_session=False)
            )
            if not rowcount:
                db.rollback()
                continue

            claim = db.get(models.Claim, claim_id, populate_existing=True)
            amount_txt, label = _claim_email_context(claim)
            notify(
                db,
                domain_id=claim.domain_id,
                type=models.NotificationType.CLAIM_EXPIRED,
                message=f"Carbon claim for {amount_txt} tCO2e has expired",
                metadata={
                    "claim_id": claim.id,
                    "intervention_id": claim.intervention.intervention_id,
                    "amount": float(claim.amount),
                },
                idempotency_key=f"claim:{claim.id}:expired",
            )
            db.commit()
        except Exception as exc:
            db.rollback()
            result.failed += 1
            logger.exception(
                "expire_pass_claim_failed", extra={"claim_id": claim_id, "error": str(exc)}
            )
            continue

        result.changed += 1
        result.claim_ids.append(claim_id)
        logger.info("claim_expired", extra={"claim_id": claim_id, "domain_id": claim.domain_id})

        send_email_safely(
            sender,
            EmailMessage(
                to=claim.domain.company_email or "",
                subject="Carbon Claim Expired",
                html=(
                    "<h1>Carbon Claim Expired</h1>"
                    "<p>Your carbon claim has expired:</p><ul>"
                    f"<li>Amount: {amount_txt} tCO2e</li>"
                    f"<li>Intervention: {label}</li>"
                    f"<li>Claim ID: {claim.id}</li>"
                    f"<li>Expiry Date: {claim.expiry_date.date().isoformat()}</li>"
                    "</ul>"
                ),
            ),
            claim_id=claim_id,
        )

    logger.info("expire_pass_done", extra=result.as_dict())
    return result


def run_warn_pass(
    db: Session,
    *,
    now: datetime | None = None,
    horizon_days: int | None = None,
    email_sender: EmailSender | None = None,
) -> SweepResult:
    """Warn once per claim that expires within the horizon.

    ``last_warned_at`` is the watermark: it is set with a compare-and-swap on
    NULL in the same transaction as the notification.
    """

    if now is None:
        now = models.utc_now()
    if horizon_days is None:
        horizon_days = int(settings.claim_warning_horizon_days)
    sender = email_sender or get_email_sender()
    result = SweepResult(name="warn")

    horizon = now + timedelta(days=int(horizon_days))
    claim_ids = [
        cid
        for (cid,) in db.query(models.Claim.id)
        .filter(models.Claim.status.in_(_LIVE_STATUSES))
        .filter(models.Claim.expiry_date > now)
        .filter(models.Claim.expiry_date <= horizon)
        .filter(models.Claim.last_warned_at.is_(None))
        .order_by(models.Claim.expiry_date.asc(), models.Claim.id.asc())
        .all()
    ]
    result.examined = len(claim_ids)

    for claim_id in claim_ids:
        try:
            rowcount = (
                db.query(models.Claim)
                .filter(models.Claim.id == claim_id)
                .filter(models.Claim.status.in_(_LIVE_STATUSES))
                .filter(models.Claim.last_warned_at.is_(None))
                .update({"last_warned_at": now}, synchronize_session=False)
            )
            if not rowcount:
                db.rollback()
                continue

            claim = db.get(models.Claim, claim_id, populate_existing=True)
            days = days_until_expiry(claim.expiry_date, now)
            amount_txt, label = _claim_email_context(claim)
            notify(
                db,
                domain_id=claim.domain_id,
                type=models.NotificationType.CLAIM_EXPIRING_SOON,
                message=f"Carbon claim for {amount_txt} tCO2e expires in {days} days",
                metadata={
                    "claim_id": claim.id,
                    "intervention_id": claim.intervention.intervention_id,
                    "amount": float(claim.amount),
                    "days_until_expiry": days,
                },
                idempotency_key=f"claim:{claim.id}:expiring_soon",
            )
            db.commit()
        except Exception as exc:
            db.rollback()
            result.failed += 1
            logger.exception(
                "warn_pass_claim_failed", extra={"claim_id": claim_id, "error": str(exc)}
            )
            continue

        result.changed += 1
        result.claim_ids.append(claim_id)

        send_email_safely(
            sender,
            EmailMessage(
                to=claim.domain.company_email or "",
                subject="Carbon Claim Expiring Soon",
                html=(
                    "<h1>Carbon Claim Expiring Soon</h1>"
                    f"<p>Your carbon claim will expire in {days} days:</p><ul>"
                    f"<li>Amount: {amount_txt} tCO2e</li>"
                    f"<li>Intervention: {label}</li>"
                    f"<li>Claim ID: {claim.id}</li>"
                    f"<li>Expiry Date: {claim.expiry_date.date().isoformat()}</li>"
                    "</ul>"
                ),
            ),
            claim_id=claim_id,
        )

    logger.info("warn_pass_done", extra=result.as_dict())
    return result


def run_statement_retry_pass(
    db: Session,
    *,
    renderer: StatementRenderer | None = None,
) -> SweepResult:
    """Produce missing statements and promote ``pending_pdf`` claims to active."""

    renderer = renderer or get_statement_renderer()
    result = SweepResult(name="statements")

    claim_ids = [
        cid
        for (cid,) in db.query(models.Claim.id)
        .filter(models.Claim.status == CS.pending_pdf)
        .order_by(models.Claim.created_at.asc(), models.Claim.id.asc())
        .all()
    ]
    result.examined = len(claim_ids)

    for claim_id in claim_ids:
        claim = db.get(models.Claim, claim_id)
        if claim is None or claim.status != CS.pending_pdf:
            continue
        if finalize_statement(db, claim=claim, renderer=renderer):
            result.changed += 1
            result.claim_ids.append(claim_id)
        else:
            result.failed += 1

    logger.info("statement_retry_pass_done", extra=result.as_dict())
    return result
