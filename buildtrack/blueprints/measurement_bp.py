"""
Measurement blueprint — contractor progress reports and their review.

Endpoints:
  GET/POST  /api/v1/projects/<project_id>/measurements
  POST      /api/v1/projects/<project_id>/measurements/batch
  GET       /api/v1/projects/<project_id>/measurements/<measurement_id>
  PATCH     /api/v1/projects/<project_id>/measurements/<measurement_id>/review

Approval is the only way UnitActivity progress changes; a second review of
the same measurement answers 409.
"""

import logging

from flask import Blueprint, jsonify, request

import buildtrack.services.measurement_service as ms
from buildtrack.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

measurement_bp = Blueprint("measurements", __name__, url_prefix="/api/v1")
register_error_handlers(measurement_bp)


@measurement_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in measurement_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


@measurement_bp.route("/projects/<int:project_id>/measurements", methods=["GET"])
def list_measurements(project_id):
    """Query params: status, activity_id, contractor_id, page, per_page."""
    result = ms.list_measurements(
        project_id,
        status=request.args.get("status"),
        activity_id=request.args.get("activity_id", type=int),
        contractor_id=request.args.get("contractor_id", type=int),
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@measurement_bp.route("/projects/<int:project_id>/measurements", methods=["POST"])
def submit_measurement(project_id):
    """Body: {activityId, unitActivityId?, unitId?, progress, contractorId?, notes?, photos?}"""
    data = request.get_json(silent=True) or {}
    if data.get("activityId") is None:
        return api_error(E.VALIDATION_REQUIRED, "activityId is required")
    m = ms.submit(
        project_id,
        data["activityId"],
        data.get("unitActivityId"),
        data.get("progress"),
        contractor_id=data.get("contractorId"),
        notes=data.get("notes"),
        photos=data.get("photos"),
        reported_by=data.get("reportedBy"),
        unit_id=data.get("unitId"),
    )
    return jsonify(m.to_dict()), 201


@measurement_bp.route("/projects/<int:project_id>/measurements/batch", methods=["POST"])
def submit_batch(project_id):
    """Body: {items: [{activityId, unitActivityId?, progress}], notes?, contractorId?}"""
    data = request.get_json(silent=True) or {}
    created = ms.submit_batch(
        project_id,
        data.get("items"),
        contractor_id=data.get("contractorId"),
        notes=data.get("notes"),
        reported_by=data.get("reportedBy"),
    )
    return jsonify({"created": len(created), "items": [m.to_dict() for m in created]}), 201


@measurement_bp.route("/projects/<int:project_id>/measurements/<int:measurement_id>", methods=["GET"])
def get_measurement(project_id, measurement_id):
    return jsonify(ms.get_measurement(project_id, measurement_id).to_dict()), 200


@measurement_bp.route(
    "/projects/<int:project_id>/measurements/<int:measurement_id>/review", methods=["PATCH"]
)
def review_measurement(project_id, measurement_id):
    """Body: {status: "APPROVED" | "REJECTED", reviewNotes?, reviewedBy?}"""
    data = request.get_json(silent=True) or {}
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    m = ms.review(
        project_id,
        measurement_id,
        data["status"],
        review_notes=data.get("reviewNotes"),
        reviewed_by=data.get("reviewedBy"),
    )
    return jsonify(m.to_dict()), 200
