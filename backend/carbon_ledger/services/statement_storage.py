from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

from carbon_ledger.config import settings


def storage_root() -> Path:
    """Return the absolute storage root for this backend instance."""

    root = Path(settings.storage_dir)
    if root.is_absolute():
        return root

    # backend/carbon_ledger/services/... -> backend/
    backend_root = Path(__file__).resolve().parents[2]
    return (backend_root / root).resolve()


def statement_path(*, domain_id: int, claim_id: int) -> Path:
    return storage_root() / "claims" / str(int(domain_id)) / f"{int(claim_id)}.pdf"


def write_statement_bytes(*, domain_id: int, claim_id: int, content: bytes) -> dict[str, Any]:
    """Write a statement atomically (tmp file + rename) and describe it."""

    target_path = statement_path(domain_id=domain_id, claim_id=claim_id).resolve()
    target_dir = target_path.parent
    target_dir.mkdir(parents=True, exist_ok=True)
    if not target_path.is_relative_to(storage_root().resolve()):
        raise ValueError("Invalid statement path")

    tmp_path = target_path.with_suffix(target_path.suffix + ".tmp")
    tmp_path.write_bytes(content)
    tmp_path.replace(target_path)

    return {
        "filename": target_path.name,
        "content_type": "application/pdf",
        "size_bytes": len(content),
        "checksum_sha256": hashlib.sha256(content).hexdigest(),
        "storage_uri": f"file://{target_path.as_posix()}",
    }


def resolve_storage_uri(storage_uri: str) -> Path | None:
    """Map a stored ``file://`` uri back to a path inside the storage root."""

    if not storage_uri.startswith("file://"):
        return None
    path = Path(storage_uri[len("file://") :]).resolve()
    if not path.is_relative_to(storage_root().resolve()):
        return None
    return path
