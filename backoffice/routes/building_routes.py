from __future__ import annotations

from flask import Blueprint, jsonify, request

from backoffice.application import registry
from backoffice.auth import current_user
from backoffice.db import get_db
from backoffice.domain.contracts import UnitStatusChangeInput
from backoffice.errors import ValidationError
from backoffice.ui_strings import success_message


building_bp = Blueprint("buildings", __name__)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError(code="payload_invalid", message_key="payload_invalid")
    return payload


def _respond(result, message_key: str | None = None):
    payload = dict(result.payload)
    if message_key:
        payload["message"] = success_message(message_key)
    return jsonify(payload), result.status_code


@building_bp.route("/api/buildings", methods=["GET"])
def list_buildings():
    return _respond(registry.building_service().list_buildings(get_db(), current_user()))


@building_bp.route("/api/buildings", methods=["POST"])
def create_building():
    result = registry.building_service().create_building(get_db(), current_user(), _json_body())
    return _respond(result, "building_saved")


@building_bp.route("/api/buildings/<building_id>", methods=["GET"])
def get_building(building_id: str):
    return _respond(registry.building_service().get_building(get_db(), current_user(), building_id))


@building_bp.route("/api/buildings/<building_id>", methods=["PUT"])
def update_building(building_id: str):
    result = registry.building_service().update_building(get_db(), current_user(), building_id, _json_body())
    return _respond(result, "building_saved")


@building_bp.route("/api/buildings/<building_id>", methods=["DELETE"])
def delete_building(building_id: str):
    result = registry.building_service().delete_building(get_db(), current_user(), building_id)
    return _respond(result, "building_deleted")


@building_bp.route("/api/buildings/<building_id>/units", methods=["POST"])
def create_unit(building_id: str):
    result = registry.building_service().create_unit(get_db(), current_user(), building_id, _json_body())
    return _respond(result, "unit_saved")


@building_bp.route("/api/units/<unit_id>", methods=["PUT"])
def update_unit(unit_id: str):
    result = registry.building_service().update_unit(get_db(), current_user(), unit_id, _json_body())
    return _respond(result, "unit_saved")


@building_bp.route("/api/units/<unit_id>", methods=["DELETE"])
def delete_unit(unit_id: str):
    result = registry.building_service().delete_unit(get_db(), current_user(), unit_id)
    return _respond(result, "unit_deleted")


@building_bp.route("/api/units/<unit_id>/status", methods=["PATCH"])
def change_unit_status(unit_id: str):
    payload = _json_body()
    raw_reserved = payload.get("reservedUntil")
    result = registry.building_service().change_unit_status(
        get_db(),
        current_user(),
        UnitStatusChangeInput(
            unit_id=unit_id,
            status=str(payload.get("status") or "").strip(),
            reserved_until=str(raw_reserved).strip() if raw_reserved else None,
        ),
    )
    return _respond(result, "unit_status_updated")


@building_bp.route("/api/units/<unit_id>/rates", methods=["PUT"])
def save_unit_rates(unit_id: str):
    payload = _json_body()
    result = registry.building_service().save_rates(get_db(), current_user(), unit_id, payload.get("rates"))
    return _respond(result, "rates_saved")
