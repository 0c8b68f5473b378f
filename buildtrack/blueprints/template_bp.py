"""
Activity template blueprint.

Endpoints:
  GET/POST        /api/v1/templates
  GET/PUT/DELETE  /api/v1/templates/<id>
  POST            /api/v1/templates/<id>/clone
  POST            /api/v1/templates/<id>/preview-schedule
  POST            /api/v1/templates/seed-default

Service layer owns all business logic and commits.
"""

import logging

from flask import Blueprint, jsonify, request

import buildtrack.services.template_service as ts
from buildtrack.services.default_template import seed_default_template
from buildtrack.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

template_bp = Blueprint("templates", __name__, url_prefix="/api/v1")
register_error_handlers(template_bp)


@template_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in template_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


@template_bp.route("/templates", methods=["GET"])
def list_templates():
    """Query params: search, page (default 1), per_page (default 10, max 100)."""
    page = request.args.get("page", 1, type=int)
    per_page = min(request.args.get("per_page", 10, type=int), 100)
    return jsonify(ts.list_templates(request.args.get("search"), page, per_page)), 200


@template_bp.route("/templates", methods=["POST"])
def create_template():
    """Body: {name, description?, phases: [...]}"""
    data = request.get_json(silent=True) or {}
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    template = ts.create_template(data)
    return jsonify(ts.serialize_template(template)), 201


@template_bp.route("/templates/<int:template_id>", methods=["GET"])
def get_template(template_id):
    return jsonify(ts.get_template(template_id)), 200


@template_bp.route("/templates/<int:template_id>", methods=["PUT"])
def update_template(template_id):
    data = request.get_json(silent=True) or {}
    template = ts.update_template(template_id, data)
    return jsonify(ts.serialize_template(template)), 200


@template_bp.route("/templates/<int:template_id>", methods=["DELETE"])
def delete_template(template_id):
    ts.delete_template(template_id)
    return jsonify({"message": "Template deleted"}), 200


@template_bp.route("/templates/<int:template_id>/clone", methods=["POST"])
def clone_template(template_id):
    """Body: {name?, description?}"""
    data = request.get_json(silent=True) or {}
    template = ts.clone_template(template_id, data)
    return jsonify(ts.serialize_template(template)), 201


@template_bp.route("/templates/<int:template_id>/preview-schedule", methods=["POST"])
def preview_schedule(template_id):
    """Body: {startDate, endDate, mode?, holidays?}. Nothing is persisted."""
    data = request.get_json(silent=True) or {}
    return jsonify(ts.preview_schedule(template_id, data)), 200


@template_bp.route("/templates/seed-default", methods=["POST"])
def seed_default():
    template, created = seed_default_template()
    return jsonify({"template": template.to_dict(), "created": created}), 201 if created else 200
