from __future__ import annotations

import re
import unicodedata
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Tuple

from backoffice.proposals.installments import parse_iso_date


# Internal field -> accepted external key spellings, in priority order.
OPPORTUNITY_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "name": ("nome", "nome_proposta", "name"),
    "building": ("empreendimento", "building"),
    "unit": ("unidade", "unit"),
    "floor": ("andar", "floor"),
    "tower": ("torre", "tower"),
    "responsible": ("responsavel", "opportunityresponsavel", "responsible"),
    "observations": ("observacoes", "observacao", "observations"),
    "reserve_until": ("reservado_ate", "reserva_ate", "data_reserva", "reserve_until"),
    "parking_spots": ("vagas", "vagas_garagem", "parking_spots"),
}

CONTACT_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "cpf": ("cpf",),
    "rg": ("rg",),
    "rg_issuer": ("orgaoEmissor", "orgao_emissor"),
    "nationality": ("nacionalidade",),
    "marital_status": ("estadoCivil", "estado_civil", "civil"),
    "profession": ("profissao", "profisso"),
    "postal_code": ("cep",),
    "address": ("endereco",),
    "city": ("cidade",),
    "neighborhood": ("bairro",),
    "state": ("estado",),
}

MODEL_FIELD_ALIASES: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "opportunity": OPPORTUNITY_FIELD_ALIASES,
    "contact": CONTACT_FIELD_ALIASES,
}

# Fields pushed to the opportunity when a proposal goes back to analysis.
OPPORTUNITY_SYNC_FIELDS: Tuple[str, ...] = ("building", "unit", "responsible", "observations", "reserve_until")

MARITAL_STATUS_ALIASES: Dict[str, Tuple[str, ...]] = {
    "solteiro": ("solteiro", "solteira", "single"),
    "casado": ("casado", "casada", "married"),
    "divorciado": ("divorciado", "divorciada", "separado", "separada", "divorced"),
    "viuvo": ("viuvo", "viuva", "widowed"),
    "uniao_estavel": ("uniao estavel", "uniao_estavel", "uniaoestavel", "stable union"),
}

# Contact custom field -> wizard form field.
CONTACT_FORM_FIELDS: Dict[str, str] = {
    "cpf": "cpf",
    "rg": "rg",
    "rg_issuer": "rgIssuer",
    "nationality": "nationality",
    "marital_status": "maritalStatus",
    "profession": "profession",
    "postal_code": "postalCode",
    "address": "address",
    "city": "city",
    "neighborhood": "neighborhood",
    "state": "state",
}


def config_column(model: str, field: str) -> str:
    if model not in MODEL_FIELD_ALIASES or field not in MODEL_FIELD_ALIASES[model]:
        raise ValueError(f"campo personalizado desconhecido: {model}.{field}")
    return f"{model}_{field}"


def config_columns() -> List[str]:
    return [config_column(model, field) for model, fields in MODEL_FIELD_ALIASES.items() for field in fields]


def _normalize_key(value: Any) -> str:
    text = unicodedata.normalize("NFKD", str(value or ""))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]", "", text.lower())


def _remote_keys(model: str, remote: Dict[str, Any]) -> set[str]:
    keys = set()
    field_key = str(remote.get("fieldKey") or "")
    if field_key:
        prefix, _, suffix = field_key.partition(".")
        if suffix and prefix.lower() == model:
            keys.add(_normalize_key(suffix))
        elif not suffix:
            keys.add(_normalize_key(prefix))
    if remote.get("name"):
        keys.add(_normalize_key(remote["name"]))
    keys.discard("")
    return keys


def resolve_field_id(
    model: str,
    field: str,
    remote_fields: Iterable[Dict[str, Any]],
    configured: str | None = None,
) -> str | None:
    """External ID for one internal field, or None when nothing matches.

    A configured value wins when it is already an ID of the catalog or one of
    its keys; otherwise the alias list is tried in order.
    """
    remote_list = [item for item in remote_fields if isinstance(item, dict) and item.get("id")]
    configured_value = str(configured or "").strip()
    if configured_value:
        for remote in remote_list:
            if str(remote["id"]) == configured_value:
                return configured_value

    candidates = [configured_value] if configured_value else []
    candidates.extend(MODEL_FIELD_ALIASES[model][field])
    indexed = [(remote, _remote_keys(model, remote)) for remote in remote_list]
    for candidate in candidates:
        normalized = _normalize_key(candidate)
        if not normalized:
            continue
        for remote, keys in indexed:
            if normalized in keys:
                return str(remote["id"])
    return None


def resolve_model_field_ids(
    model: str,
    remote_fields: Iterable[Dict[str, Any]],
    configured: Dict[str, Any] | None = None,
) -> Tuple[Dict[str, str], List[str]]:
    """Resolve every field of ``model``; returns (column -> id, unresolved columns)."""
    remote_list = list(remote_fields or [])
    current = configured or {}
    resolved: Dict[str, str] = {}
    unresolved: List[str] = []
    for field in MODEL_FIELD_ALIASES[model]:
        column = config_column(model, field)
        field_id = resolve_field_id(model, field, remote_list, configured=current.get(column))
        if field_id:
            resolved[column] = field_id
        else:
            unresolved.append(column)
    return resolved, unresolved


def opportunity_sync_fields(config: Dict[str, Any] | None, values: Dict[str, Any]) -> List[Dict[str, str]]:
    """Build ``[{id, field_value}]`` for the opportunity update.

    Fields without a mapped ID or whose value is blank after trimming are left
    out.
    """
    if not config:
        return []
    custom_fields: List[Dict[str, str]] = []
    for field in OPPORTUNITY_SYNC_FIELDS:
        field_id = str(config.get(config_column("opportunity", field)) or "").strip()
        value = str(values.get(field) if values.get(field) is not None else "").strip()
        if field_id and value:
            custom_fields.append({"id": field_id, "field_value": value})
    return custom_fields


def normalize_marital_status(value: Any) -> str | None:
    normalized = _normalize_key(value)
    if not normalized:
        return None
    for canonical, aliases in MARITAL_STATUS_ALIASES.items():
        if normalized in {_normalize_key(alias) for alias in aliases}:
            return canonical
    return None


def map_contact_custom_fields(
    custom_fields: Iterable[Dict[str, Any]],
    config: Dict[str, Any] | None,
) -> Dict[str, Any]:
    """Project a CRM contact's custom field values onto wizard form fields."""
    if not config:
        return {}
    by_id: Dict[str, Any] = {}
    for item in custom_fields or []:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        value = item.get("value")
        if value is None:
            value = item.get("field_value")
        by_id[str(item["id"])] = value

    form: Dict[str, Any] = {}
    for field, form_field in CONTACT_FORM_FIELDS.items():
        field_id = str(config.get(config_column("contact", field)) or "").strip()
        if not field_id or field_id not in by_id:
            continue
        value = by_id[field_id]
        if field == "marital_status":
            value = normalize_marital_status(value)
        elif isinstance(value, str):
            value = value.strip()
        if value not in (None, ""):
            form[form_field] = value
    return form


# Opportunity custom field -> wizard form field.
OPPORTUNITY_FORM_FIELDS: Dict[str, str] = {
    "responsible": "responsible",
    "building": "buildingName",
    "unit": "unitNumber",
    "floor": "floor",
    "tower": "tower",
    "observations": "notes",
    "reserve_until": "reservedUntil",
    "parking_spots": "parkingSpots",
}

_BR_DATE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")


def _as_iso_date(value: Any) -> str | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        # Date fields come back as epoch milliseconds.
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc).date().isoformat()
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value or "").strip()
    match = _BR_DATE.match(text)
    if match:
        text = f"{match.group(3)}-{match.group(2)}-{match.group(1)}"
    return parse_iso_date(text)


def custom_field_value(field: Dict[str, Any]) -> Any:
    """Raw value of one CRM custom field entry, whatever slot the CRM used."""
    array_value = field.get("fieldValueArray")
    if isinstance(array_value, list) and array_value and array_value[0] is not None:
        return str(array_value[0])
    if field.get("fieldValueDate") is not None:
        return _as_iso_date(field["fieldValueDate"])
    for key in ("fieldValueString", "fieldValue", "value", "field_value"):
        if field.get(key) is not None:
            return field[key]
    return None


def map_opportunity_custom_fields(
    custom_fields: Iterable[Dict[str, Any]],
    config: Dict[str, Any] | None,
) -> Dict[str, Any]:
    """Project a CRM opportunity's custom field values onto wizard form fields."""
    if not config:
        return {}
    by_id = {
        str(item["id"]): custom_field_value(item)
        for item in custom_fields or []
        if isinstance(item, dict) and item.get("id")
    }

    form: Dict[str, Any] = {}
    for field, form_field in OPPORTUNITY_FORM_FIELDS.items():
        field_id = str(config.get(config_column("opportunity", field)) or "").strip()
        if not field_id or field_id not in by_id:
            continue
        value = by_id[field_id]
        if field == "reserve_until":
            value = _as_iso_date(value)
        elif value is not None:
            value = str(value).strip()
        if value not in (None, ""):
            form[form_field] = value
    return form
