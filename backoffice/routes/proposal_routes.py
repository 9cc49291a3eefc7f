from __future__ import annotations

from flask import Blueprint, jsonify, request

from backoffice.application import registry
from backoffice.auth import current_user
from backoffice.db import get_db
from backoffice.domain.contracts import ProposalStatusChangeInput
from backoffice.errors import ValidationError
from backoffice.proposals.form_steps import (
    STEP_KEYS,
    can_enter_step,
    check_status_change_request,
    first_invalid_step,
    validate_form,
)
from backoffice.ui_strings import error_message, success_message


proposal_bp = Blueprint("proposals", __name__)


def _json_body() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError(code="payload_invalid", message_key="payload_invalid")
    return payload


@proposal_bp.route("/api/proposals", methods=["GET"])
def list_proposals():
    result = registry.proposal_service().list_proposals(get_db(), current_user())
    return jsonify(result.payload), result.status_code


@proposal_bp.route("/api/proposals", methods=["POST"])
def create_proposal():
    result = registry.proposal_service().create_proposal(get_db(), current_user(), _json_body())
    payload = {**result.payload, "message": success_message("proposal_saved")}
    return jsonify(payload), result.status_code


@proposal_bp.route("/api/proposals/<proposal_id>", methods=["GET"])
def get_proposal(proposal_id: str):
    result = registry.proposal_service().get_proposal(get_db(), current_user(), proposal_id)
    return jsonify(result.payload), result.status_code


@proposal_bp.route("/api/proposals/<proposal_id>", methods=["PUT"])
def update_proposal(proposal_id: str):
    result = registry.proposal_service().update_proposal(get_db(), current_user(), proposal_id, _json_body())
    payload = {**result.payload, "message": success_message("proposal_saved")}
    return jsonify(payload), result.status_code


@proposal_bp.route("/api/proposals/<proposal_id>", methods=["DELETE"])
def delete_proposal(proposal_id: str):
    result = registry.proposal_service().delete_proposal(get_db(), current_user(), proposal_id)
    payload = {**result.payload, "message": success_message("proposal_deleted")}
    return jsonify(payload), result.status_code


@proposal_bp.route("/api/proposals/<proposal_id>/status", methods=["PATCH"])
def change_proposal_status(proposal_id: str):
    user = current_user()
    payload = _json_body()
    raw_reserved = payload.get("reservedUntil")
    result = registry.proposal_status_service().change_status(
        get_db(),
        user,
        ProposalStatusChangeInput(
            proposal_id=proposal_id,
            status=str(payload.get("status") or "").strip(),
            update_unit_status=bool(payload.get("updateUnitStatus")),
            reserved_until=str(raw_reserved).strip() if raw_reserved is not None else None,
        ),
    )
    return jsonify(result.payload), result.status_code


@proposal_bp.route("/api/proposals/status-change/validate", methods=["POST"])
def validate_status_change():
    current_user()
    payload = _json_body()
    check = check_status_change_request(
        payload.get("status"),
        update_unit_status=bool(payload.get("updateUnitStatus")),
        reserved_until=payload.get("reservedUntil"),
    )
    body = {"ok": check.ok}
    if not check.ok:
        body["error"] = check.error_key
        body["message"] = error_message(check.error_key)
    return jsonify(body), 200


@proposal_bp.route("/api/proposals/form/validate", methods=["POST"])
def validate_proposal_form():
    current_user()
    form = _json_body()
    return jsonify(
        {
            "errors": validate_form(form),
            "firstInvalidStep": first_invalid_step(form),
            "enterable": {key: can_enter_step(key, form) for key in STEP_KEYS},
        }
    )
