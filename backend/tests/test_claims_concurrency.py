import threading
from decimal import Decimal

from carbon_ledger import models
from carbon_ledger.services import balance_store
from carbon_ledger.services.claims_service import create_claim
from carbon_ledger.services.statements import PdfStatementRenderer
from conftest import TestingSessionLocal, seed_domain, seed_intervention


def test_concurrent_claims_never_overdraw_the_intervention(db_session):
    domain = seed_domain(db_session, "carbonleap.nl")
    intervention = seed_intervention(db_session, domain, total="100")
    domain_id, intervention_id = domain.id, intervention.id

    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def _claim():
        db = TestingSessionLocal()
        try:
            barrier.wait(timeout=10)
            outcome = create_claim(
                db,
                intervention_ref=intervention_id,
                claiming_domain_id=domain_id,
                amount=Decimal("60"),
                renderer=PdfStatementRenderer(),
            )
            with lock:
                outcomes.append(outcome)
        finally:
            db.close()

    threads = [threading.Thread(target=_claim) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)

    successes = [o for o in outcomes if o.ok]
    failures = [o for o in outcomes if not o.ok]
    assert len(successes) == 1
    assert len(failures) == 1
    assert failures[0].error.code == "INSUFFICIENT_AMOUNT"
    assert failures[0].error.details["available"] == 40.0

    assert balance_store.get_available(db_session, intervention_id) == Decimal("40")
    assert db_session.query(models.Claim).count() == 1
    snap = balance_store.ledger_snapshot(db_session, db_session.get(models.Intervention, intervention_id))
    assert snap["balanced"] is True
