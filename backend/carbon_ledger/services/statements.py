from __future__ import annotations

from typing import Protocol

from sqlalchemy.orm import Session

from carbon_ledger import models
from carbon_ledger.config import settings
from carbon_ledger.services.statement_pdf import build_statement_pdf_bytes
from carbon_ledger.services.statement_storage import write_statement_bytes


class StatementRenderer(Protocol):
    def render(
        self,
        claim: models.Claim,
        intervention: models.Intervention,
        domain: models.Domain,
    ) -> bytes: ...


def _fmt_amount(value) -> str:
    return f"{float(value):,.4f}".rstrip("0").rstrip(".")


class PdfStatementRenderer:
    """Renders the default claim statement as a one-page PDF."""

    def __init__(self, template_version: str | None = None) -> None:
        self.template_version = template_version or settings.statement_template_version

    def render(
        self,
        claim: models.Claim,
        intervention: models.Intervention,
        domain: models.Domain,
    ) -> bytes:
        lines = [
            f"Claimant: {domain.company_name} ({domain.name})",
            f"Claim ID: {claim.id}",
            f"Intervention: {intervention.intervention_id}",
            f"Modality: {intervention.modality or '-'}",
            f"Geography: {intervention.geography or '-'}",
            f"Low-carbon fuel: {intervention.low_carbon_fuel or '-'}",
            f"Certification scheme: {intervention.certification_scheme or '-'}",
            f"Vintage: {claim.vintage}",
            f"Amount claimed: {_fmt_amount(claim.amount)} tCO2e",
            f"Claimed on: {claim.created_at.date().isoformat()}",
            f"Valid until: {claim.expiry_date.date().isoformat()}",
        ]
        return build_statement_pdf_bytes(
            title="Statement of Abated Emissions Claim",
            lines=lines,
            footer_lines=[f"Template version {self.template_version}"],
        )


_renderer: StatementRenderer | None = None


def get_statement_renderer() -> StatementRenderer:
    global _renderer
    if _renderer is None:
        _renderer = PdfStatementRenderer()
    return _renderer


def set_statement_renderer(renderer: StatementRenderer | None) -> None:
    global _renderer
    _renderer = renderer


def attach_statement(
    db: Session,
    *,
    claim: models.Claim,
    renderer: StatementRenderer,
) -> models.ClaimStatement:
    """Render, store and record the statement for ``claim``.

    Stages the ClaimStatement row (replacing a stale one left by an earlier
    partial attempt); the caller promotes the claim and commits.
    """

    intervention = claim.intervention
    domain = claim.domain
    content = renderer.render(claim, intervention, domain)
    if not content:
        raise ValueError("statement renderer returned no content")

    meta = write_statement_bytes(domain_id=claim.domain_id, claim_id=claim.id, content=content)

    statement = (
        db.query(models.ClaimStatement).filter(models.ClaimStatement.claim_id == claim.id).first()
    )
    if statement is None:
        statement = models.ClaimStatement(claim_id=claim.id)
        db.add(statement)

    statement.filename = meta["filename"]
    statement.content_type = meta["content_type"]
    statement.storage_uri = meta["storage_uri"]
    statement.checksum_sha256 = meta["checksum_sha256"]
    statement.size_bytes = meta["size_bytes"]
    statement.template_version = getattr(
        renderer, "template_version", settings.statement_template_version
    )
    db.flush()
    return statement
