from __future__ import annotations

from flask import Blueprint, jsonify, request

from backoffice.application import registry
from backoffice.auth import current_user
from backoffice.db import get_db
from backoffice.errors import ValidationError
from backoffice.ui_strings import success_message


config_bp = Blueprint("config", __name__)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError(code="payload_invalid", message_key="payload_invalid")
    return payload


@config_bp.route("/api/preferences", methods=["GET"])
def get_preferences():
    result = registry.preferences_service().get_preferences(get_db(), current_user())
    return jsonify(result.payload), result.status_code


@config_bp.route("/api/preferences", methods=["PUT"])
def update_preferences():
    result = registry.preferences_service().update_preferences(get_db(), current_user(), _json_body())
    return jsonify({**result.payload, "message": success_message("preferences_saved")}), result.status_code


@config_bp.route("/api/agency-config", methods=["GET"])
def get_agency_config():
    result = registry.agency_config_service().get_config(get_db(), current_user())
    return jsonify(result.payload), result.status_code


@config_bp.route("/api/agency-config", methods=["PUT"])
def update_agency_config():
    result = registry.agency_config_service().update_config(get_db(), current_user(), _json_body())
    return jsonify({**result.payload, "message": success_message("agency_config_saved")}), result.status_code


@config_bp.route("/api/agency-config/custom-fields/remap", methods=["POST"])
def remap_custom_fields():
    result = registry.agency_config_service().remap_custom_fields(get_db(), current_user())
    return jsonify(result.payload), result.status_code


@config_bp.route("/api/contacts/<homio_id>", methods=["GET"])
def lookup_contact(homio_id: str):
    result = registry.agency_config_service().lookup_contact(get_db(), current_user(), homio_id)
    return jsonify(result.payload), result.status_code


@config_bp.route("/api/opportunities/<opportunity_id>", methods=["GET"])
def lookup_opportunity(opportunity_id: str):
    result = registry.agency_config_service().lookup_opportunity(get_db(), current_user(), opportunity_id)
    return jsonify(result.payload), result.status_code
