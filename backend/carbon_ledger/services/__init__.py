from carbon_ledger.services import balance_store
from carbon_ledger.services.audit import audit_event
from carbon_ledger.services.results import LedgerError, LedgerOutcome

__all__ = [
    "audit_event",
    "balance_store",
    "LedgerError",
    "LedgerOutcome",
]
