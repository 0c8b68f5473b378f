"""
Project activity blueprint — work tree, schedule import and progress.

Endpoints:
  GET/POST    /api/v1/projects/<project_id>/activities
  PUT/DELETE  /api/v1/projects/<project_id>/activities/<activity_id>
  POST        /api/v1/projects/<project_id>/activities/from-schedule
  GET         /api/v1/projects/<project_id>/progress
"""

import logging

from flask import Blueprint, jsonify, request

import buildtrack.services.activity_service as acts
from buildtrack.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

activity_bp = Blueprint("activities", __name__, url_prefix="/api/v1")
register_error_handlers(activity_bp)


@activity_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in activity_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


@activity_bp.route("/projects/<int:project_id>/activities", methods=["GET"])
def get_activity_tree(project_id):
    return jsonify(acts.get_activity_tree(project_id)), 200


@activity_bp.route("/projects/<int:project_id>/activities", methods=["POST"])
def create_activity(project_id):
    """Body: {name, level?, parentId?, weight?, order?, scope?, unitIds?, color?,
    plannedStartDate?, plannedEndDate?}"""
    data = request.get_json(silent=True) or {}
    activity = acts.create_activity(project_id, data)
    return jsonify(activity.to_dict(include_units=True)), 201


@activity_bp.route("/projects/<int:project_id>/activities/<int:activity_id>", methods=["PUT"])
def update_activity(project_id, activity_id):
    data = request.get_json(silent=True) or {}
    activity = acts.update_activity(project_id, activity_id, data)
    return jsonify(activity.to_dict()), 200


@activity_bp.route("/projects/<int:project_id>/activities/<int:activity_id>", methods=["DELETE"])
def delete_activity(project_id, activity_id):
    removed = acts.delete_activity(project_id, activity_id)
    return jsonify({"deleted": removed}), 200


@activity_bp.route("/projects/<int:project_id>/activities/from-schedule", methods=["POST"])
def create_from_schedule(project_id):
    """Body, either an edited preview:
        {templateId, activities: [...], schedulingMode?, holidays?, replace?}
    or a date range to compute it from:
        {templateId, startDate, endDate, mode?, holidays?, replace?}
    """
    data = request.get_json(silent=True) or {}
    template_id = data.get("templateId")
    if template_id is None:
        return api_error(E.VALIDATION_REQUIRED, "templateId is required")
    replace = bool(data.get("replace"))

    if data.get("activities") is not None:
        created = acts.apply_schedule(
            project_id,
            template_id,
            data["activities"],
            scheduling_mode=data.get("schedulingMode"),
            holidays=data.get("holidays"),
            replace=replace,
        )
    else:
        created = acts.create_from_template(project_id, template_id, data, replace=replace)

    return jsonify({"created": len(created), "activities": acts.get_activity_tree(project_id)}), 201


@activity_bp.route("/projects/<int:project_id>/progress", methods=["GET"])
def get_project_progress(project_id):
    return jsonify(acts.get_project_progress(project_id)), 200
