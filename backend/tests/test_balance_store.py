from decimal import Decimal

import pytest

from carbon_ledger import models
from carbon_ledger.services import balance_store
from conftest import seed_domain, seed_intervention


def test_reserve_decrements_when_enough_is_left(db_session):
    domain = seed_domain(db_session, "carbonleap.nl")
    intervention = seed_intervention(db_session, domain, total="100")

    res = balance_store.reserve(db_session, intervention_id=intervention.id, amount=Decimal("60"))
    db_session.commit()

    assert res.reserved is True
    assert res.available == Decimal("40")
    assert balance_store.get_available(db_session, intervention.id) == Decimal("40")


def test_reserve_refuses_more_than_remaining_and_leaves_balance_untouched(db_session):
    domain = seed_domain(db_session, "carbonleap.nl")
    intervention = seed_intervention(db_session, domain, total="100", remaining="40")

    res = balance_store.reserve(db_session, intervention_id=intervention.id, amount=Decimal("60"))
    db_session.commit()

    assert res.reserved is False
    assert res.available == Decimal("40")


def test_reserve_exact_remaining_reaches_zero(db_session):
    domain = seed_domain(db_session, "carbonleap.nl")
    intervention = seed_intervention(db_session, domain, total="100", remaining="12.5")

    res = balance_store.reserve(db_session, intervention_id=intervention.id, amount=Decimal("12.5"))
    db_session.commit()

    assert res.reserved is True
    assert balance_store.get_available(db_session, intervention.id) == Decimal("0")


def test_reserve_refreshes_loaded_intervention(db_session):
    domain = seed_domain(db_session, "carbonleap.nl")
    intervention = seed_intervention(db_session, domain, total="100")
    assert intervention.remaining_amount == Decimal("100")

    balance_store.reserve(db_session, intervention_id=intervention.id, amount=Decimal("30"))

    assert intervention.remaining_amount == Decimal("70")


def test_release_restores_balance(db_session):
    domain = seed_domain(db_session, "carbonleap.nl")
    intervention = seed_intervention(db_session, domain, total="100", remaining="40")

    remaining = balance_store.release(
        db_session, intervention_id=intervention.id, amount=Decimal("60")
    )
    db_session.commit()

    assert remaining == Decimal("100")


def test_release_never_exceeds_total(db_session):
    domain = seed_domain(db_session, "carbonleap.nl")
    intervention = seed_intervention(db_session, domain, total="100", remaining="90")

    with pytest.raises(balance_store.LedgerInvariantError):
        balance_store.release(db_session, intervention_id=intervention.id, amount=Decimal("20"))
    db_session.rollback()

    assert balance_store.get_available(db_session, intervention.id) == Decimal("90")


@pytest.mark.parametrize("amount", ["0", "-5"])
def test_non_positive_amounts_are_rejected(db_session, amount):
    domain = seed_domain(db_session, "carbonleap.nl")
    intervention = seed_intervention(db_session, domain, total="100")

    with pytest.raises(ValueError):
        balance_store.reserve(db_session, intervention_id=intervention.id, amount=Decimal(amount))
    with pytest.raises(ValueError):
        balance_store.release(db_session, intervention_id=intervention.id, amount=Decimal(amount))


def test_get_available_unknown_intervention(db_session):
    assert balance_store.get_available(db_session, 999) is None


def test_ledger_snapshot_balances_claims_and_transfers(db_session):
    domain = seed_domain(db_session, "carbonleap.nl")
    other = seed_domain(db_session, "northsea-shipping.com")
    intervention = seed_intervention(db_session, domain, total="500", remaining="250")
    now = models.utc_now()

    db_session.add_all(
        [
            models.Claim(
                intervention_id=intervention.id,
                domain_id=domain.id,
                amount=Decimal("150"),
                vintage="2024",
                status=models.ClaimStatus.expired,
                expiry_date=now,
            ),
            models.Claim(
                intervention_id=intervention.id,
                domain_id=domain.id,
                amount=Decimal("50"),
                vintage="2024",
                status=models.ClaimStatus.active,
                expiry_date=now,
            ),
            models.Transfer(
                source_intervention_id=intervention.id,
                source_domain_id=domain.id,
                target_domain_id=other.id,
                amount=Decimal("50"),
                status=models.TransferStatus.pending,
            ),
            models.Transfer(
                source_intervention_id=intervention.id,
                source_domain_id=domain.id,
                target_domain_id=other.id,
                amount=Decimal("75"),
                status=models.TransferStatus.cancelled,
            ),
        ]
    )
    db_session.commit()

    snap = balance_store.ledger_snapshot(db_session, intervention)

    assert snap["claimed_amount"] == Decimal("200")
    assert snap["transferred_amount"] == Decimal("50")
    assert snap["pending_transfer_amount"] == Decimal("50")
    assert snap["consumed_amount"] == Decimal("250")
    assert snap["balanced"] is True
