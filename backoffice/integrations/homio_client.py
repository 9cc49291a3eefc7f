from __future__ import annotations

import http.client
import json
import logging
import os
import ssl
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List

from flask import current_app

from backoffice.domain.contracts import WebhookResult
from backoffice.integrations import homio_mock
from backoffice.observability import observe_webhook


logger = logging.getLogger("backoffice.homio")


class HomioError(RuntimeError):
    pass


def push_unit_status(
    *,
    unit_id: str,
    unit_name: str | None,
    status: str,
    agency_id: str,
    building_name: str | None,
) -> WebhookResult:
    """Confirm a unit status change with the CRM. ``status`` uses the livre/reservado/vendido vocabulary."""
    payload = {
        "id": unit_id,
        "name": unit_name or "",
        "status": status,
        "agencyId": agency_id,
        "buildingName": building_name or "",
    }
    return _call_webhook(
        "unit_status",
        lambda: _dispatch(
            homio_mock.push_unit_status,
            "PUT",
            lambda: _webhook_url("HOMIO_UNIT_WEBHOOK_PATH"),
            payload,
        ),
        strict=True,
    )


def update_opportunity(*, agency_id: str, opportunity_id: str, custom_fields: List[Dict[str, str]]) -> WebhookResult:
    payload = {"opportunityId": opportunity_id, "customFields": custom_fields}
    return _call_webhook(
        "opportunity",
        lambda: _dispatch(
            homio_mock.update_opportunity,
            "POST",
            lambda: _operations_url("ghl-update-opportunity"),
            payload,
            headers=_operations_headers(agency_id),
        ),
    )


def push_finance_installments(
    *,
    agency_id: str,
    contact_external_id: str,
    installments: List[Dict[str, Any]],
) -> WebhookResult:
    payload = {
        "contactExternalId": contact_external_id,
        "agencyId": agency_id,
        "installments": installments,
    }
    return _call_webhook(
        "finance",
        lambda: _dispatch(
            homio_mock.push_finance,
            "POST",
            lambda: _webhook_url("HOMIO_FINANCE_WEBHOOK_PATH"),
            payload,
        ),
    )


def fetch_custom_fields(*, agency_id: str, model: str) -> List[dict]:
    if _mode() == "mock":
        response = homio_mock.fetch_custom_fields(model)
    else:
        query = urllib.parse.urlencode({"model": model})
        response = _request_json(
            "GET",
            f"{_operations_url('ghl-get-custom-fields-v1')}?{query}",
            headers=_operations_headers(agency_id),
        )
    if isinstance(response, dict) and response.get("success") is False:
        raise HomioError(str(response.get("message") or "Falha ao consultar campos personalizados."))
    return _normalize_records(response, "customFields")


def fetch_contact(*, agency_id: str, contact_id: str) -> dict:
    if _mode() == "mock":
        response = homio_mock.fetch_contact(contact_id)
    else:
        query = urllib.parse.urlencode({"contactId": contact_id})
        response = _request_json(
            "GET",
            f"{_operations_url('ghl-get-contact')}?{query}",
            headers=_operations_headers(agency_id),
        )
    if not isinstance(response, dict) or response.get("success") is False:
        raise HomioError("Contato nao retornado pelo CRM.")
    contact = response.get("contact") if isinstance(response.get("contact"), dict) else response
    if not contact.get("id"):
        raise HomioError("Contato nao retornado pelo CRM.")
    return contact


def fetch_opportunity(*, agency_id: str, opportunity_id: str) -> dict:
    if _mode() == "mock":
        response = homio_mock.fetch_opportunity(opportunity_id)
    else:
        response = _request_json(
            "POST",
            _operations_url("ghl-get-opportunity-by-id"),
            payload={"opportunityId": opportunity_id},
            headers=_operations_headers(agency_id),
        )
    if not isinstance(response, dict) or response.get("success") is False:
        raise HomioError("Oportunidade nao retornada pelo CRM.")
    opportunity = response.get("opportunity") if isinstance(response.get("opportunity"), dict) else response
    if not opportunity.get("id") and not opportunity.get("name"):
        raise HomioError("Oportunidade nao retornada pelo CRM.")
    return opportunity


def _call_webhook(target: str, send, *, strict: bool = False) -> WebhookResult:
    # strict: only an explicit success=true counts.
    try:
        response = send()
    except HomioError as exc:
        observe_webhook(target, "error")
        logger.warning("homio_call_error", extra={"target": target, "error_details": str(exc)})
        return WebhookResult(success=False, message=str(exc))

    data = response if isinstance(response, dict) else {}
    if strict:
        success = data.get("success") is True
    else:
        success = data.get("success") is not False
    observe_webhook(target, "success" if success else "failure")
    message = data.get("message") or data.get("error")
    if not success:
        message = message or "Webhook nao confirmou a operacao."
        logger.warning("homio_call_rejected", extra={"target": target, "error_details": str(message)})
    return WebhookResult(success=success, message=str(message) if message else None, response=response)


def _dispatch(mock_fn, method: str, url_fn, payload: dict, headers: Dict[str, str] | None = None) -> object:
    # URLs are only resolved in live mode; mock mode needs no endpoint config.
    if _mode() == "mock":
        return mock_fn(payload)
    return _request_json(method, url_fn(), payload=payload, headers=headers)


def _mode() -> str:
    mode = str(_get_config("HOMIO_MODE", "mock") or "mock").strip().lower()
    if mode not in {"mock", "live"}:
        raise HomioError(f"HOMIO_MODE invalido: {mode}")
    return mode


def _webhook_url(path_key: str) -> str:
    base_url = str(_get_config("HOMIO_WEBHOOK_BASE_URL") or "").rstrip("/")
    if not base_url:
        raise HomioError("HOMIO_WEBHOOK_BASE_URL nao configurado.")
    path = str(_get_config(path_key) or "").lstrip("/")
    return f"{base_url}/{path}"


def _operations_url(function_name: str) -> str:
    base_url = str(_get_config("HOMIO_OPERATIONS_URL") or "").rstrip("/")
    if not base_url:
        raise HomioError("HOMIO_OPERATIONS_URL nao configurado.")
    return f"{base_url}/{function_name}"


def _operations_headers(agency_id: str) -> Dict[str, str]:
    headers = {"locationId": agency_id}
    api_key = _get_config("HOMIO_OPERATIONS_API_KEY")
    if api_key:
        headers["Authorization"] = f"Bearer {api_key}"
        headers["apikey"] = str(api_key)
    return headers


def _request_json(
    method: str,
    url: str,
    payload: dict | None = None,
    headers: Dict[str, str] | None = None,
) -> object:
    timeout = _int_config("HOMIO_TIMEOUT_SECONDS", 15)
    request_headers = {"Accept": "application/json"}
    request_headers.update(headers or {})

    data = None
    if payload is not None:
        request_headers["Content-Type"] = "application/json"
        data = json.dumps(payload, separators=(",", ":"), ensure_ascii=True).encode("utf-8")

    request = urllib.request.Request(url, data=data, headers=request_headers, method=method.upper())

    context = None
    if not _bool_config("HOMIO_VERIFY_SSL", True):
        context = ssl._create_unverified_context()

    try:
        with urllib.request.urlopen(request, timeout=timeout, context=context) as response:
            body = response.read().decode("utf-8")
            if not body:
                return {}
            return json.loads(body)
    except urllib.error.HTTPError as exc:  # noqa: PERF203
        error_body = exc.read().decode("utf-8") if exc.fp else ""
        raise HomioError(f"Homio HTTP {exc.code}: {error_body[:200]}") from exc
    except urllib.error.URLError as exc:
        raise HomioError(f"Erro de conexao Homio: {exc.reason}") from exc
    except TimeoutError as exc:
        raise HomioError(f"Homio nao respondeu em {timeout}s.") from exc
    except json.JSONDecodeError as exc:
        raise HomioError("Homio retornou JSON invalido.") from exc
    except UnicodeDecodeError as exc:
        raise HomioError("Homio retornou corpo fora de UTF-8.") from exc
    except (OSError, http.client.HTTPException) as exc:
        # Raised while reading the response, outside urllib's URLError wrapping.
        raise HomioError(f"Erro de conexao Homio: {exc.__class__.__name__}: {exc}") from exc


def _normalize_records(payload: object, key: str) -> List[dict]:
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        items = payload.get(key) or payload.get("data") or payload.get("items") or []
        if isinstance(items, list):
            return [item for item in items if isinstance(item, dict)]
    return []


def _get_config(key: str, default: object | None = None) -> object | None:
    try:
        return current_app.config.get(key, default)
    except RuntimeError:
        return os.environ.get(key, default)


def _int_config(key: str, default: int) -> int:
    value = _get_config(key, default)
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def _bool_config(key: str, default: bool) -> bool:
    value = _get_config(key, default)
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}
