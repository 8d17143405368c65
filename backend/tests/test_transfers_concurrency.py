import threading
from decimal import Decimal

from carbon_ledger import models
from carbon_ledger.services import balance_store
from carbon_ledger.services.transfers_service import (
    approve_transfer,
    atomic_transition_transfer_status,
    create_transfer,
    reject_transfer,
)
from conftest import TestingSessionLocal, seed_domain, seed_intervention, seed_partnership


def _setup(db, *, total="100"):
    source = seed_domain(db, "northsea-shipping.com", level=1)
    target = seed_domain(db, "greenfreight.eu", level=2)
    intervention = seed_intervention(db, source, ref="INT-2024-0003", total=total)
    seed_partnership(db, source, target)
    return source, target, intervention


def _pending_transfer(db, source, target, intervention, amount="100"):
    outcome = create_transfer(
        db,
        source_intervention_ref=intervention.id,
        source_domain_id=source.id,
        target_domain_id=target.id,
        amount=Decimal(amount),
    )
    assert outcome.ok, outcome.error
    return outcome.value.id


def _run_together(*calls):
    barrier = threading.Barrier(len(calls))
    outcomes = {}
    lock = threading.Lock()

    def _worker(name, call):
        db = TestingSessionLocal()
        try:
            barrier.wait(timeout=10)
            outcome = call(db)
            with lock:
                outcomes[name] = outcome
        finally:
            db.close()

    threads = [
        threading.Thread(target=_worker, args=(name, call)) for name, call in calls
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def test_concurrent_transfers_never_overdraw_the_intervention(db_session):
    source, target, intervention = _setup(db_session)
    source_id, target_id, intervention_id = source.id, target.id, intervention.id

    def _transfer(db):
        return create_transfer(
            db,
            source_intervention_ref=intervention_id,
            source_domain_id=source_id,
            target_domain_id=target_id,
            amount=Decimal("60"),
        )

    outcomes = _run_together(("first", _transfer), ("second", _transfer))

    assert len(outcomes) == 2
    successes = [o for o in outcomes.values() if o.ok]
    failures = [o for o in outcomes.values() if not o.ok]
    assert len(successes) == 1
    assert len(failures) == 1
    assert failures[0].error.code == "INSUFFICIENT_AMOUNT"
    assert failures[0].error.details["available"] == 40.0

    assert balance_store.get_available(db_session, intervention_id) == Decimal("40")
    assert db_session.query(models.Transfer).count() == 1


def test_concurrent_approve_and_reject_settle_exactly_once(db_session):
    source, target, intervention = _setup(db_session)
    transfer_id = _pending_transfer(db_session, source, target, intervention)
    target_id, intervention_id = target.id, intervention.id

    outcomes = _run_together(
        (
            "approve",
            lambda db: approve_transfer(db, transfer_id=transfer_id, approver_domain_id=target_id),
        ),
        (
            "reject",
            lambda db: reject_transfer(db, transfer_id=transfer_id, approver_domain_id=target_id),
        ),
    )

    assert len(outcomes) == 2
    winners = [name for name, o in outcomes.items() if o.ok]
    assert len(winners) == 1
    loser = outcomes["reject" if winners == ["approve"] else "approve"]
    assert loser.error.code == "INVALID_STATE_TRANSITION"

    transfer = db_session.get(models.Transfer, transfer_id, populate_existing=True)
    received = db_session.query(models.Intervention).filter_by(domain_id=target_id).all()
    if winners == ["approve"]:
        assert transfer.status == models.TransferStatus.completed
        assert balance_store.get_available(db_session, intervention_id) == Decimal("0")
        assert [i.id for i in received] == [transfer.target_intervention_id]
    else:
        assert transfer.status == models.TransferStatus.cancelled
        assert balance_store.get_available(db_session, intervention_id) == Decimal("100")
        assert received == []


def test_reject_after_a_competing_approval_releases_nothing(db_session):
    source, target, intervention = _setup(db_session)
    transfer_id = _pending_transfer(db_session, source, target, intervention)

    stale = TestingSessionLocal()
    competitor = TestingSessionLocal()
    try:
        # The stale session holds the transfer as pending in its identity map.
        assert stale.get(models.Transfer, transfer_id).status == models.TransferStatus.pending

        assert approve_transfer(
            competitor, transfer_id=transfer_id, approver_domain_id=target.id
        ).ok

        outcome = reject_transfer(stale, transfer_id=transfer_id, approver_domain_id=target.id)
    finally:
        stale.close()
        competitor.close()

    assert not outcome.ok
    assert outcome.error.code == "INVALID_STATE_TRANSITION"
    assert outcome.error.details["current_status"] == "completed"
    assert balance_store.get_available(db_session, intervention.id) == Decimal("0")
    rejected = (
        db_session.query(models.Notification)
        .filter_by(type=models.NotificationType.TRANSFER_REJECTED)
        .count()
    )
    assert rejected == 0


def test_approve_after_a_competing_rejection_credits_nobody(db_session):
    source, target, intervention = _setup(db_session)
    transfer_id = _pending_transfer(db_session, source, target, intervention)

    stale = TestingSessionLocal()
    competitor = TestingSessionLocal()
    try:
        assert stale.get(models.Transfer, transfer_id).status == models.TransferStatus.pending

        assert reject_transfer(
            competitor, transfer_id=transfer_id, approver_domain_id=target.id
        ).ok

        outcome = approve_transfer(stale, transfer_id=transfer_id, approver_domain_id=target.id)
    finally:
        stale.close()
        competitor.close()

    assert not outcome.ok
    assert outcome.error.code == "INVALID_STATE_TRANSITION"
    assert outcome.error.details["current_status"] == "cancelled"
    assert balance_store.get_available(db_session, intervention.id) == Decimal("100")
    assert db_session.query(models.Intervention).filter_by(domain_id=target.id).count() == 0


def test_status_guard_matches_nothing_once_the_transfer_has_moved(db_session):
    source, target, intervention = _setup(db_session)
    transfer_id = _pending_transfer(db_session, source, target, intervention)

    first = atomic_transition_transfer_status(
        db=db_session,
        transfer_id=transfer_id,
        to_status=models.TransferStatus.completed,
        allowed_from=[models.TransferStatus.pending],
    )
    db_session.commit()
    second = atomic_transition_transfer_status(
        db=db_session,
        transfer_id=transfer_id,
        to_status=models.TransferStatus.cancelled,
        allowed_from=[models.TransferStatus.pending],
    )
    db_session.commit()

    assert (first.updated, first.rowcount) == (True, 1)
    assert (second.updated, second.rowcount) == (False, 0)
    transfer = db_session.get(models.Transfer, transfer_id, populate_existing=True)
    assert transfer.status == models.TransferStatus.completed
