from __future__ import annotations

"""
JSON API for the print agent.

Endpoints:
- GET  /printers    : Fresh printer enumeration
- POST /print       : Print a bill on the main printer ({html} or {pdf: base64})
- POST /print-kot   : Print a kitchen order ticket on the KOT printer
- POST /test-print  : Print the built-in test receipt on the main printer

Every print request answers with exactly one outcome:
success 200 {success, message, printer, durationMs, resolution}
failure {success: false, error, kind, printer?} with the status mapped from kind.
"""

from flask import Blueprint, current_app, jsonify, request
from pydantic import ValidationError

from print_agent import csrf
from print_agent.core.config import get_settings
from print_agent.core.errors import STATUS_BY_KIND, BadRequest, ErrorKind
from print_agent.printing.models import DocumentKind, LogicalPrinter, PrintOutcome, PrintRequest
from print_agent.printing.orchestrator import build_test_document, list_available_printers, print_document

from . import schemas

api_bp = Blueprint("api", __name__)

SUCCESS_MESSAGES = {
    LogicalPrinter.MAIN: "Bill sent to printer successfully",
    LogicalPrinter.KITCHEN: "KOT sent to printer successfully",
}


def _json_error(error: Exception, kind: ErrorKind, code: int):
    return jsonify(schemas.PrintFailure(error=str(error), kind=kind.value).dump()), code


def _outcome_response(outcome: PrintOutcome, logical: LogicalPrinter):
    body = schemas.outcome_payload(outcome, SUCCESS_MESSAGES[logical])
    if outcome.succeeded:
        return jsonify(body), 200
    try:
        code = STATUS_BY_KIND[ErrorKind(outcome.error_kind)]
    except (KeyError, ValueError):
        code = 500
    return jsonify(body), code


def _validation_message(e: ValidationError) -> str:
    first = e.errors()[0]
    msg = str(first.get("msg") or e)
    # pydantic prefixes model-validator errors
    return msg.removeprefix("Value error, ")


def _handle_print(logical: LogicalPrinter):
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return _json_error(BadRequest("Expected application/json body"), ErrorKind.BAD_REQUEST, 400)
    try:
        body = schemas.PrintBody.model_validate(data)
    except ValidationError as e:
        return _json_error(BadRequest(_validation_message(e)), ErrorKind.BAD_REQUEST, 400)

    print_request = body.to_request(logical)
    current_app.logger.info(
        "Received %s print request (%s, %d chars)",
        logical.label,
        print_request.document_kind.value,
        len(print_request.payload),
    )
    outcome = print_document(print_request, get_settings())
    return _outcome_response(outcome, logical)


@csrf.exempt
@api_bp.post("/print")
def print_bill():
    return _handle_print(LogicalPrinter.MAIN)


@csrf.exempt
@api_bp.post("/print-kot")
def print_kot():
    return _handle_print(LogicalPrinter.KITCHEN)


@csrf.exempt
@api_bp.post("/test-print")
def test_print():
    """
    Run the built-in test receipt through the main print pipeline.
    """
    settings = get_settings()
    html = build_test_document(settings.printer_name or "(not configured)")
    outcome = print_document(PrintRequest(DocumentKind.HTML, html, LogicalPrinter.MAIN), settings)
    return _outcome_response(outcome, LogicalPrinter.MAIN)


@api_bp.get("/printers")
def printers():
    try:
        found = list_available_printers(get_settings())
    except Exception as e:
        current_app.logger.exception("Error getting printers: %s", e)
        return jsonify({"success": False, "error": str(e)}), 500
    out = schemas.PrinterList(printers=[schemas.PrinterOut.model_validate(p.to_dict()) for p in found])
    return jsonify(out.dump())
