# Overview: Flask API routes for numbering counters; inspection and admin override.

from flask import Blueprint, current_app, jsonify, request

from ..extensions import db
from ..models import Business
from ..services import sequence_service
from ..validation import DocumentError, NotFoundError, require_int


counters_bp = Blueprint("counters", __name__, url_prefix="/api/businesses")


def _require_business(business_id: int) -> None:
    if db.session.get(Business, business_id) is None:
        raise NotFoundError(f"Business {business_id} not found", details={"business_id": business_id})


@counters_bp.get("/<int:business_id>/counters")
def list_counters_route(business_id: int):
    try:
        _require_business(business_id)
        return jsonify({"counters": sequence_service.list_counters(business_id)}), 200
    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list counters")
        return jsonify({"error": "Internal server error"}), 500


@counters_bp.put("/<int:business_id>/counters/<counter_name>")
def set_counter_route(business_id: int, counter_name: str):
    """
    Set the next number a counter will hand out.

    Body: {"next_value": 1001}. Rejected (409) if it would re-issue a number.
    """
    try:
        _require_business(business_id)
        data = request.get_json(silent=True) or {}
        next_value = require_int(data, "next_value")

        seq = sequence_service.set_next_value(business_id, counter_name, next_value)
        current_app.logger.info(
            "Counter %s for business %s set to %s", counter_name, business_id, next_value,
        )
        return jsonify({"counter": seq.to_dict()}), 200

    except DocumentError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set counter")
        return jsonify({"error": "Internal server error"}), 500
