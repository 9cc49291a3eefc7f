from __future__ import annotations

import copy
import threading
from typing import Dict, List


HOMIO_CUSTOM_FIELDS: Dict[str, List[dict]] = {
    "opportunity": [
        {"id": "cf-opp-empreendimento", "name": "Empreendimento", "fieldKey": "opportunity.empreendimento"},
        {"id": "cf-opp-unidade", "name": "Unidade", "fieldKey": "opportunity.unidade"},
        {"id": "cf-opp-andar", "name": "Andar", "fieldKey": "opportunity.andar"},
        {"id": "cf-opp-torre", "name": "Torre", "fieldKey": "opportunity.torre"},
        {"id": "cf-opp-responsavel", "name": "Responsavel", "fieldKey": "opportunity.opportunityresponsavel"},
        {"id": "cf-opp-observacoes", "name": "Observacoes", "fieldKey": "opportunity.observacoes"},
        {"id": "cf-opp-reserva", "name": "Reservado ate", "fieldKey": "opportunity.reservado_ate"},
    ],
    "contact": [
        {"id": "cf-ct-cpf", "name": "CPF", "fieldKey": "contact.cpf"},
        {"id": "cf-ct-rg", "name": "RG", "fieldKey": "contact.rg"},
        {"id": "cf-ct-orgao", "name": "Orgao emissor", "fieldKey": "contact.orgaoEmissor"},
        {"id": "cf-ct-nacionalidade", "name": "Nacionalidade", "fieldKey": "contact.nacionalidade"},
        {"id": "cf-ct-civil", "name": "Estado civil", "fieldKey": "contact.civil"},
        {"id": "cf-ct-profissao", "name": "Profissao", "fieldKey": "contact.profisso"},
        {"id": "cf-ct-cep", "name": "CEP", "fieldKey": "contact.cep"},
        {"id": "cf-ct-endereco", "name": "Endereco", "fieldKey": "contact.endereco"},
        {"id": "cf-ct-cidade", "name": "Cidade", "fieldKey": "contact.cidade"},
        {"id": "cf-ct-bairro", "name": "Bairro", "fieldKey": "contact.bairro"},
        {"id": "cf-ct-estado", "name": "Estado", "fieldKey": "contact.estado"},
    ],
}

_LOCK = threading.Lock()
_CALLS: List[dict] = []
_FAILURES: Dict[str, str] = {}


def _record(target: str, payload: dict) -> str | None:
    with _LOCK:
        _CALLS.append({"target": target, "payload": copy.deepcopy(payload)})
        return _FAILURES.pop(target, None)


def push_unit_status(payload: dict) -> dict:
    failure = _record("unit_status", payload)
    if failure:
        return {"success": False, "message": failure}
    return {"success": True, "message": "Status da unidade sincronizado (simulado)."}


def update_opportunity(payload: dict) -> dict:
    failure = _record("opportunity", payload)
    if failure:
        return {"success": False, "message": failure}
    return {"success": True, "opportunityId": payload.get("opportunityId")}


def push_finance(payload: dict) -> dict:
    failure = _record("finance", payload)
    if failure:
        return {"success": False, "message": failure}
    return {"success": True}


def fetch_custom_fields(model: str) -> dict:
    failure = _record("custom_fields", {"model": model})
    if failure:
        return {"success": False, "message": failure}
    return {"customFields": copy.deepcopy(HOMIO_CUSTOM_FIELDS.get(model, []))}


def fetch_contact(contact_id: str) -> dict:
    failure = _record("contact", {"contactId": contact_id})
    if failure:
        return {"success": False, "message": failure}
    return {
        "contact": {
            "id": contact_id,
            "name": f"Contato {contact_id}",
            "customFields": [
                {"id": "cf-ct-cpf", "value": "000.000.000-00"},
                {"id": "cf-ct-civil", "value": "Casada"},
            ],
        }
    }


def fetch_opportunity(opportunity_id: str) -> dict:
    failure = _record("opportunity_lookup", {"opportunityId": opportunity_id})
    if failure:
        return {"success": False, "message": failure}
    return {
        "opportunity": {
            "id": opportunity_id,
            "name": f"Oportunidade {opportunity_id}",
            "contactId": f"contact-{opportunity_id}",
            "customFields": [
                {"id": "cf-opp-empreendimento", "fieldValueArray": ["Residencial Aurora"]},
                {"id": "cf-opp-unidade", "fieldValueString": "101"},
                {"id": "cf-opp-andar", "fieldValueString": "1"},
                {"id": "cf-opp-torre", "fieldValueString": "A"},
                {"id": "cf-opp-responsavel", "fieldValueString": "Corretor Joao"},
                {"id": "cf-opp-observacoes", "fieldValueString": "Cliente quer vista para o parque"},
                # 2026-11-30T00:00:00Z, as the CRM stores date fields.
                {"id": "cf-opp-reserva", "fieldValueDate": 1795996800000},
            ],
        }
    }


def fail_next(target: str, message: str) -> None:
    """Make the next mocked call to ``target`` report failure."""
    with _LOCK:
        _FAILURES[target] = message


def recorded_calls(target: str | None = None) -> List[dict]:
    with _LOCK:
        return [copy.deepcopy(call) for call in _CALLS if target is None or call["target"] == target]


def reset() -> None:
    with _LOCK:
        _CALLS.clear()
        _FAILURES.clear()
