from decimal import Decimal

from carbon_ledger.services import balance_store
from carbon_ledger.services.interventions_service import resolve_intervention
from conftest import seed_domain, seed_intervention, seed_user


def test_admin_registers_intervention(client, db_session, login_as):
    registry = seed_domain(db_session, "carbonleap.nl")
    owner = seed_domain(db_session, "northsea-shipping.com")
    login_as(seed_user(db_session, registry, is_admin=True))

    resp = client.post(
        "/api/interventions",
        json={
            "intervention_id": "INT-2025-0100",
            "domain_id": owner.id,
            "total_amount": 750.5,
            "vintage": "2025",
            "modality": "Maritime",
            "low_carbon_fuel": "Bio-LNG",
        },
    )

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["remaining_amount"] == 750.5
    assert body["status"] == "verified"
    assert body["domain_id"] == owner.id

    duplicate = client.post(
        "/api/interventions",
        json={
            "intervention_id": "INT-2025-0100",
            "domain_id": owner.id,
            "total_amount": 10,
            "vintage": "2025",
        },
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"]["code"] == "INVALID_REQUEST"


def test_register_for_unknown_domain(client, db_session, login_as):
    registry = seed_domain(db_session, "carbonleap.nl")
    login_as(seed_user(db_session, registry, is_admin=True))

    resp = client.post(
        "/api/interventions",
        json={"intervention_id": "INT-X", "domain_id": 404, "total_amount": 1, "vintage": "2025"},
    )

    assert resp.status_code == 404


def test_non_admin_cannot_register(client, db_session, login_as):
    domain = seed_domain(db_session, "northsea-shipping.com")
    login_as(seed_user(db_session, domain))

    resp = client.post(
        "/api/interventions",
        json={"intervention_id": "INT-X", "domain_id": domain.id, "total_amount": 1, "vintage": "2025"},
    )

    assert resp.status_code == 403


def test_interventions_are_scoped_to_the_callers_domain(client, db_session, login_as):
    a = seed_domain(db_session, "northsea-shipping.com")
    b = seed_domain(db_session, "greenfreight.eu")
    mine = seed_intervention(db_session, a, ref="INT-A")
    seed_intervention(db_session, b, ref="INT-B")
    login_as(seed_user(db_session, a))

    listed = client.get("/api/interventions").json()
    assert [i["intervention_id"] for i in listed] == ["INT-A"]

    assert client.get(f"/api/interventions/{mine.id}").json()["intervention_id"] == "INT-A"
    assert client.get("/api/interventions/INT-B").status_code == 404
    assert client.get("/api/interventions/INT-B/ledger").status_code == 404
    assert client.get("/api/interventions/INT-B/transfers").status_code == 404


def test_numeric_external_identifier_wins_over_internal_id(db_session):
    a = seed_domain(db_session, "northsea-shipping.com")
    b = seed_domain(db_session, "greenfreight.eu")
    first = seed_intervention(db_session, a, ref="INT-A")
    numbered = seed_intervention(db_session, b, ref=str(first.id))

    assert resolve_intervention(db_session, str(first.id)).id == numbered.id
    assert resolve_intervention(db_session, first.id).id == numbered.id
    assert resolve_intervention(db_session, numbered.id).id == numbered.id
    assert resolve_intervention(db_session, "INT-A").id == first.id
    assert resolve_intervention(db_session, "999") is None


def test_claim_by_numeric_external_identifier_hits_that_intervention(
    client, db_session, login_as
):
    a = seed_domain(db_session, "northsea-shipping.com")
    b = seed_domain(db_session, "greenfreight.eu")
    first = seed_intervention(db_session, a, ref="INT-A", total="100")
    numbered = seed_intervention(db_session, b, ref=str(first.id), total="100")
    login_as(seed_user(db_session, b))

    resp = client.post("/api/claims", json={"intervention_id": str(first.id), "amount": 40})

    assert resp.status_code == 201, resp.text
    assert resp.json()["intervention_id"] == numbered.id
    assert balance_store.get_available(db_session, first.id) == Decimal("100")
    assert balance_store.get_available(db_session, numbered.id) == Decimal("60")
