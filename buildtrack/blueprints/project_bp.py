"""
Project & unit blueprint.

Endpoints:
  POST  /api/v1/projects
  GET   /api/v1/projects/<project_id>
  GET   /api/v1/projects/<project_id>/units
  POST  /api/v1/projects/<project_id>/units
"""

import logging

from flask import Blueprint, jsonify, request

import buildtrack.services.project_service as ps
from buildtrack.utils.errors import E, api_error, register_error_handlers

logger = logging.getLogger(__name__)

project_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
register_error_handlers(project_bp)


@project_bp.errorhandler(Exception)
def _handle_unexpected(error: Exception):
    logger.exception("Unexpected error in project_bp endpoint=%s", request.endpoint)
    return api_error(E.INTERNAL, "Internal server error")


@project_bp.route("/projects", methods=["POST"])
def create_project():
    """Body: {name, code?, schedulingMode?, holidays?, startDate?, endDate?}"""
    data = request.get_json(silent=True) or {}
    if not data.get("name"):
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    return jsonify(ps.create_project(data).to_dict()), 201


@project_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(ps.get_project(project_id).to_dict()), 200


@project_bp.route("/projects/<int:project_id>/units", methods=["GET"])
def list_units(project_id):
    project = ps.get_project(project_id)
    return jsonify([u.to_dict() for u in project.units]), 200


@project_bp.route("/projects/<int:project_id>/units", methods=["POST"])
def create_units(project_id):
    """Body: {units: ["A-101", {"code": "A-102", "unitType": "APARTMENT"}]}"""
    data = request.get_json(silent=True) or {}
    units = ps.create_units(project_id, data.get("units"))
    return jsonify([u.to_dict() for u in units]), 201
