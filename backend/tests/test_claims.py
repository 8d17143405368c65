from decimal import Decimal

from carbon_ledger import models
from carbon_ledger.api import deps
from carbon_ledger.main import app
from carbon_ledger.services import balance_store
from carbon_ledger.services.expiration_sweeper import run_statement_retry_pass
from carbon_ledger.services.statements import PdfStatementRenderer
from conftest import seed_domain, seed_intervention, seed_user


def _setup(db, *, total="500"):
    domain = seed_domain(db, "carbonleap.nl")
    user = seed_user(db, domain)
    intervention = seed_intervention(db, domain, ref="INT-2024-0001", total=total)
    return domain, user, intervention


def test_create_claim_reserves_balance_and_attaches_statement(client, db_session, login_as):
    domain, user, intervention = _setup(db_session)
    login_as(user)

    resp = client.post("/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 200})

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "active"
    assert body["amount"] == 200.0
    assert body["vintage"] == "2024"
    assert body["intervention_ref"] == "INT-2024-0001"
    assert body["statement"]["content_type"] == "application/pdf"
    assert body["statement"]["download_url"] == f"/api/claims/{body['id']}/statement"
    assert len(body["statement"]["checksum_sha256"]) == 64

    assert balance_store.get_available(db_session, intervention.id) == Decimal("300")

    claim = db_session.get(models.Claim, body["id"])
    validity = claim.expiry_date - claim.created_at
    assert validity.days == 730

    notes = db_session.query(models.Notification).filter_by(domain_id=domain.id).all()
    assert [n.type for n in notes] == [models.NotificationType.CLAIM_CREATED]
    assert notes[0].metadata_json["claim_id"] == body["id"]


def test_create_claim_accepts_internal_id(client, db_session, login_as):
    _, user, intervention = _setup(db_session)
    login_as(user)

    resp = client.post("/api/claims", json={"intervention_id": intervention.id, "amount": 1.5})

    assert resp.status_code == 201, resp.text
    assert resp.json()["intervention_id"] == intervention.id


def test_claim_more_than_available_reports_available(client, db_session, login_as):
    _, user, intervention = _setup(db_session, total="100")
    login_as(user)

    resp = client.post("/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 150})

    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_AMOUNT"
    assert detail["requested"] == 150.0
    assert detail["available"] == 100.0
    assert balance_store.get_available(db_session, intervention.id) == Decimal("100")
    assert db_session.query(models.Claim).count() == 0


def test_claim_unknown_intervention_is_not_found(client, db_session, login_as):
    _, user, _ = _setup(db_session)
    login_as(user)

    resp = client.post("/api/claims", json={"intervention_id": "INT-DOES-NOT-EXIST", "amount": 1})

    assert resp.status_code == 404
    assert resp.json()["detail"]["code"] == "NOT_FOUND"


def test_claim_on_another_domains_intervention_is_allowed(client, db_session, login_as):
    owner, _, intervention = _setup(db_session)
    outsider = seed_domain(db_session, "greenfreight.eu")
    login_as(seed_user(db_session, outsider))

    resp = client.post("/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 10})

    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["domain_id"] == outsider.id
    assert balance_store.get_available(db_session, intervention.id) == Decimal("490")
    notes = db_session.query(models.Notification).filter_by(domain_id=owner.id).all()
    assert notes == []


def test_claim_on_unverified_intervention_is_rejected(client, db_session, login_as):
    domain = seed_domain(db_session, "carbonleap.nl")
    user = seed_user(db_session, domain)
    seed_intervention(
        db_session, domain, ref="INT-PENDING", status=models.InterventionStatus.pending
    )
    login_as(user)

    resp = client.post("/api/claims", json={"intervention_id": "INT-PENDING", "amount": 10})

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "INVALID_REQUEST"


def test_claim_amount_must_be_positive(client, db_session, login_as):
    _, user, _ = _setup(db_session)
    login_as(user)

    resp = client.post("/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 0})

    assert resp.status_code == 422


def test_statement_failure_keeps_claim_pending_until_retry(
    client, db_session, login_as, failing_renderer
):
    _, user, intervention = _setup(db_session)
    login_as(user)

    resp = client.post("/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 120})

    assert resp.status_code == 202, resp.text
    body = resp.json()
    assert body["status"] == "pending_pdf"
    assert body["statement"] is None
    assert failing_renderer.calls == 1
    # The reservation stands while the statement is outstanding.
    assert balance_store.get_available(db_session, intervention.id) == Decimal("380")

    result = run_statement_retry_pass(db_session, renderer=PdfStatementRenderer())

    assert result.changed == 1
    assert result.claim_ids == [body["id"]]
    claim = db_session.get(models.Claim, body["id"], populate_existing=True)
    assert claim.status == models.ClaimStatus.active
    assert claim.statement is not None
    assert balance_store.get_available(db_session, intervention.id) == Decimal("380")


def test_download_regenerates_missing_statement_or_reports_dependency_failure(
    client, db_session, login_as, failing_renderer
):
    _, user, _ = _setup(db_session)
    login_as(user)
    claim_id = client.post(
        "/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 10}
    ).json()["id"]

    resp = client.get(f"/api/claims/{claim_id}/statement")
    assert resp.status_code == 502
    assert resp.json()["detail"]["code"] == "DEPENDENCY_FAILURE"

    app.dependency_overrides.pop(deps.get_renderer)
    resp = client.get(f"/api/claims/{claim_id}/statement")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert resp.content.startswith(b"%PDF-1.4")

    assert client.get(f"/api/claims/{claim_id}").json()["status"] == "active"


def test_download_statement(client, db_session, login_as):
    _, user, _ = _setup(db_session)
    login_as(user)
    created = client.post(
        "/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 25}
    ).json()

    resp = client.get(created["statement"]["download_url"])

    assert resp.status_code == 200
    assert resp.content.startswith(b"%PDF-1.4")
    assert len(resp.content) == created["statement"]["size_bytes"]


def test_list_claims_newest_first_and_scoped_to_domain(client, db_session, login_as):
    domain, user, _ = _setup(db_session)
    other = seed_domain(db_session, "greenfreight.eu")
    seed_intervention(db_session, other, ref="INT-OTHER")
    other_user = seed_user(db_session, other)

    login_as(user)
    first = client.post("/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 10})
    second = client.post("/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 20})
    login_as(other_user)
    client.post("/api/claims", json={"intervention_id": "INT-OTHER", "amount": 5})

    login_as(user)
    resp = client.get("/api/claims")

    assert resp.status_code == 200
    ids = [c["id"] for c in resp.json()["items"]]
    assert ids == [second.json()["id"], first.json()["id"]]

    resp = client.get("/api/claims", params={"status": "expired"})
    assert resp.json()["items"] == []


def test_get_claim_of_another_domain_is_not_found(client, db_session, login_as):
    _, user, _ = _setup(db_session)
    login_as(user)
    claim_id = client.post(
        "/api/claims", json={"intervention_id": "INT-2024-0001", "amount": 10}
    ).json()["id"]

    login_as(seed_user(db_session, seed_domain(db_session, "greenfreight.eu")))

    assert client.get(f"/api/claims/{claim_id}").status_code == 404
    assert client.get(f"/api/claims/{claim_id}/statement").status_code == 404
