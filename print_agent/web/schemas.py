from __future__ import annotations

"""
Pydantic schemas for the print agent's JSON surface.

Request bodies are validated here; responses are serialized with camelCase
aliases because the POS clients calling the agent are JavaScript apps.
"""

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from print_agent.printing.models import DocumentKind, LogicalPrinter, PrintOutcome, PrintRequest


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


class PrintBody(BaseModel):
    """Body of POST /print and /print-kot: exactly one of `html` or base64 `pdf`."""

    model_config = ConfigDict(extra="ignore")

    html: Optional[str] = Field(default=None, description="Self-contained HTML document or fragment")
    pdf: Optional[str] = Field(default=None, description="Base64-encoded PDF document")

    @model_validator(mode="after")
    def _one_document(self):
        has_html = bool(self.html and self.html.strip())
        has_pdf = bool(self.pdf and self.pdf.strip())
        if has_html and has_pdf:
            raise ValueError("Send either html or pdf, not both")
        if not has_html and not has_pdf:
            raise ValueError("Missing html in request body")
        return self

    def to_request(self, logical_printer: LogicalPrinter) -> PrintRequest:
        if self.pdf and self.pdf.strip():
            return PrintRequest(DocumentKind.PDF, self.pdf, logical_printer)
        return PrintRequest(DocumentKind.HTML, self.html or "", logical_printer)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=_camel, populate_by_name=True)

    def dump(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class PrintSuccess(_CamelModel):
    success: bool = True
    message: str
    printer: Optional[str] = None
    duration_ms: int = 0
    resolution: Optional[str] = None
    job_id: Optional[str] = None


class PrintFailure(_CamelModel):
    success: bool = False
    error: str
    kind: str
    printer: Optional[str] = None


class PrinterOut(_CamelModel):
    name: str
    display_name: str
    status: str
    is_default: bool
    driver: str


class PrinterList(_CamelModel):
    success: bool = True
    printers: List[PrinterOut] = Field(default_factory=list)


def outcome_payload(outcome: PrintOutcome, message: str) -> dict:
    """
    Serialize an outcome into the success or failure response body.
    """
    if outcome.succeeded:
        return PrintSuccess(
            message=message,
            printer=outcome.printer_name,
            duration_ms=outcome.duration_ms,
            resolution=outcome.resolution.value if outcome.resolution else None,
            job_id=outcome.details.get("job_id"),
        ).dump()
    return PrintFailure(
        error=outcome.failure_reason or "Print failed",
        kind=outcome.error_kind or "print_failed",
        printer=outcome.printer_name,
    ).dump()
