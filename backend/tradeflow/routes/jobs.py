# Overview: Flask API routes for jobs; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request

from ..services import job_service
from ..services.document_service import parse_amount
from ..services.snapshot_service import customer_selection_from_payload
from ..time_utils import parse_iso_datetime
from ..validation import DocumentError, require_bool


jobs_bp = Blueprint("jobs", __name__, url_prefix="/api")


@jobs_bp.post("/businesses/<int:business_id>/jobs")
def create_job_route(business_id: int):
    """
    Book a job.

    Body: title, scheduled_at (ISO), customer, quick_entry, quick_address,
    estimated_duration, price, notes
    """
    try:
        data = request.get_json(silent=True) or {}
        title = data.get("title")
        scheduled_raw = data.get("scheduled_at")
        if not all([title, scheduled_raw]):
            return jsonify({"error": "title and scheduled_at required"}), 400

        try:
            scheduled_at = parse_iso_datetime(str(scheduled_raw))
        except ValueError:
            return jsonify({"error": "scheduled_at must be an ISO-8601 date or datetime"}), 400

        price = None
        if data.get("price") not in (None, ""):
            price = parse_amount(data["price"], "price")

        job = job_service.create_job(
            business_id,
            title,
            customer_selection_from_payload(data.get("customer")),
            scheduled_at,
            quick_entry=require_bool(data, "quick_entry"),
            quick_address=data.get("quick_address"),
            estimated_duration=data.get("estimated_duration"),
            price=price,
            notes=data.get("notes"),
        )
        return jsonify({"job": job.to_dict()}), 201

    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create job")
        return jsonify({"error": "Internal server error"}), 500


@jobs_bp.patch("/jobs/<int:job_id>/status")
def update_job_status_route(job_id: int):
    try:
        data = request.get_json(silent=True) or {}
        status = data.get("status")
        if not status:
            return jsonify({"error": "status required"}), 400

        job = job_service.update_job_status(job_id, status)
        return jsonify({"job": job.to_dict()}), 200

    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update job status")
        return jsonify({"error": "Internal server error"}), 500
