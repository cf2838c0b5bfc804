# Overview: Flask API routes for invoices, quotes and certificates; parses input and returns JSON responses.

# backend/tradeflow/routes/documents.py
"""Document API routes"""

from flask import Blueprint, Response, current_app, jsonify, request

from ..services import document_service
from ..services.render_service import render_document
from ..services.snapshot_service import customer_selection_from_payload
from ..time_utils import parse_iso_datetime
from ..validation import DocumentError, ValidationError, require_bool, require_int, require_mapping


documents_bp = Blueprint("documents", __name__, url_prefix="/api")


def _parse_optional_datetime(data: dict, field: str):
    raw = data.get(field)
    if raw in (None, ""):
        return None
    try:
        return parse_iso_datetime(str(raw))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date or datetime", details={"field": field})


def _optional_int(data: dict, field: str):
    if data.get(field) is None:
        return None
    return require_int(data, field)


def _artifact_response(artifact) -> Response:
    response = Response(artifact.content, mimetype=artifact.media_type)
    response.headers["Content-Disposition"] = f'inline; filename="{artifact.filename}"'
    return response


@documents_bp.post("/businesses/<int:business_id>/documents")
def create_document_route(business_id: int):
    """
    Issue an invoice, quote or certificate.

    Body:
        document_class: invoice | quote | certificate
        items: [{description, quantity, unit_price, tax_percent}]
        discount_percent, partial_payment: decimal strings (optional)
        customer: {"customer_id": N} or {"new": {...}}
        preparer_id: required for certificates
        certificate: inspection content (certificates only)
        issued_at, expiry_at: ISO dates (optional)
        notes, payment_info, draft (optional)
        job_id: job the document is raised from (optional)
    """
    try:
        data = request.get_json(silent=True) or {}
        document_class = data.get("document_class")
        if not document_class:
            return jsonify({"error": "document_class required"}), 400

        certificate = data.get("certificate")
        if certificate is not None:
            require_mapping(certificate, "certificate")

        document = document_service.create_document(
            business_id,
            document_class,
            document_service.parse_line_items(data.get("items")),
            document_service.parse_discount(data.get("discount_percent")),
            document_service.parse_partial_payment(data.get("partial_payment")),
            customer_selection_from_payload(data.get("customer")),
            preparer_id=data.get("preparer_id"),
            certificate_content=certificate,
            issued_at=_parse_optional_datetime(data, "issued_at"),
            expiry_at=_parse_optional_datetime(data, "expiry_at"),
            notes=data.get("notes"),
            payment_info=data.get("payment_info"),
            draft=require_bool(data, "draft"),
            job_id=_optional_int(data, "job_id"),
        )
        return jsonify({"document": document.to_dict()}), 201

    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/businesses/<int:business_id>/documents")
def list_documents_route(business_id: int):
    """List documents, newest first. Filters: document_class, status, limit, offset."""
    try:
        documents, total = document_service.list_documents(
            business_id,
            document_class=request.args.get("document_class"),
            status=request.args.get("status"),
            limit=request.args.get("limit", 50, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
        return jsonify({
            "documents": [d.to_dict(include_lines=False) for d in documents],
            "total": total,
        }), 200

    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list documents")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/documents/<int:document_id>")
def get_document_route(document_id: int):
    try:
        document = document_service.get_document(document_id)
        return jsonify({"document": document.to_dict()}), 200
    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.patch("/documents/<int:document_id>/status")
def update_status_route(document_id: int):
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        document = document_service.update_document_status(document_id, status)
        return jsonify({"document": document.to_dict()}), 200

    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update document status")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/documents/<int:document_id>/render")
def render_document_route(document_id: int):
    """Render through the configured renderer (JSON by default)."""
    try:
        return _artifact_response(render_document(document_id))
    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to render document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/documents/<int:document_id>/reissue")
def reissue_certificate_route(document_id: int):
    """Reproduce a certificate exactly as it was issued."""
    try:
        return _artifact_response(document_service.reissue_certificate(document_id))
    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reissue certificate")
        return jsonify({"error": "Internal server error"}), 500
