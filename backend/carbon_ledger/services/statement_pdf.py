from __future__ import annotations

from typing import Iterable

# A4 in points
_PAGE_W = 595
_PAGE_H = 842


def _latin1(text: object) -> str:
    return str(text).encode("latin-1", errors="replace").decode("latin-1")


def _pdf_string(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")
    return f"({escaped})"


def _content_stream(title: str, lines: list[str], footer_lines: list[str]) -> bytes:
    ops: list[str] = [
        "BT",
        "/F1 16 Tf",
        f"50 {_PAGE_H - 60} Td {_pdf_string(title)} Tj",
        "/F1 11 Tf",
    ]
    for idx, line in enumerate(lines):
        step = 26 if idx == 0 else 16
        ops.append(f"0 -{step} Td {_pdf_string(line)} Tj")
    ops.append("ET")

    if footer_lines:
        ops.extend(["BT", "/F1 8 Tf", "50 40 Td"])
        for idx, line in enumerate(footer_lines):
            prefix = "" if idx == 0 else "0 10 Td "
            ops.append(f"{prefix}{_pdf_string(line)} Tj")
        ops.append("ET")

    return ("\n".join(ops) + "\n").encode("latin-1")


def build_statement_pdf_bytes(
    *,
    title: str,
    lines: Iterable[str],
    footer_lines: Iterable[str] | None = None,
) -> bytes:
    """Build a deterministic single-page PDF for a claim statement.

    Same inputs give byte-identical output: no wall-clock timestamps, no
    random ids, Base14 Helvetica only.
    """

    stream = _content_stream(
        _latin1(title),
        [_latin1(line) for line in lines],
        [_latin1(line) for line in (footer_lines or [])],
    )

    objects: list[bytes] = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        (
            f"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 {_PAGE_W} {_PAGE_H}] "
            "/Resources << /Font << /F1 4 0 R >> >> /Contents 5 0 R >>"
        ).encode("ascii"),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
        f"<< /Length {len(stream)} >>\nstream\n".encode("ascii") + stream + b"endstream",
    ]

    out = bytearray(b"%PDF-1.4\n")
    offsets: list[int] = []
    for num, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{num} 0 obj\n".encode("ascii") + body + b"\nendobj\n"

    xref_start = len(out)
    out += f"xref\n0 {len(objects) + 1}\n".encode("ascii")
    out += b"0000000000 65535 f \n"
    for off in offsets:
        out += f"{off:010d} 00000 n \n".encode("ascii")
    out += f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n".encode("ascii")
    out += f"startxref\n{xref_start}\n%%EOF\n".encode("ascii")
    return bytes(out)
