"""End-to-end walk through one intervention's balance."""

from carbon_ledger import models
from conftest import seed_domain, seed_intervention, seed_partnership, seed_user


def test_claims_and_transfers_share_one_balance(client, db_session, login_as, outbox):
    owner = seed_domain(db_session, "northsea-shipping.com", level=1)
    partner = seed_domain(db_session, "greenfreight.eu", level=2)
    owner_user = seed_user(db_session, owner)
    partner_user = seed_user(db_session, partner)
    seed_intervention(db_session, owner, ref="INT-2024-0001", total="500")
    seed_partnership(db_session, owner, partner)

    def _remaining():
        return client.get("/api/interventions/INT-2024-0001").json()["remaining_amount"]

    login_as(owner_user)
    claim = client.post("/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 200})
    assert claim.status_code == 201
    assert _remaining() == 300.0

    too_much = client.post(
        "/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 350}
    )
    assert too_much.status_code == 400
    assert too_much.json()["detail"]["available"] == 300.0

    transfer = client.post(
        "/api/transfers",
        json={"intervention_id": "INT-2024-0001", "target_domain_id": partner.id, "amount": 100},
    )
    assert transfer.status_code == 201
    assert _remaining() == 200.0

    ledger = client.get("/api/interventions/INT-2024-0001/ledger").json()
    assert ledger["claimed_amount"] == 200.0
    assert ledger["pending_transfer_amount"] == 100.0
    assert ledger["balanced"] is True

    login_as(partner_user)
    incoming = client.get("/api/interventions/INT-2024-0001/transfers").json()
    assert [t["id"] for t in incoming] == [transfer.json()["id"]]
    rejected = client.post(f"/api/transfers/{transfer.json()['id']}/reject")
    assert rejected.status_code == 200

    login_as(owner_user)
    assert _remaining() == 300.0
    ledger = client.get("/api/interventions/INT-2024-0001/ledger").json()
    assert ledger["transferred_amount"] == 0.0
    assert ledger["consumed_amount"] == 200.0
    assert ledger["balanced"] is True

    kinds = {
        n["type"] for n in client.get("/api/notifications").json()
    }
    assert kinds == {
        models.NotificationType.CLAIM_CREATED.value,
        models.NotificationType.TRANSFER_REJECTED.value,
    }
