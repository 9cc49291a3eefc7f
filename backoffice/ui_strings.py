from __future__ import annotations

from typing import Dict, List


FRIENDLY_TERMS: Dict[str, str] = {
    "app_name": "Backoffice Imobiliario",
    "proposal": "Proposta",
    "building": "Empreendimento",
    "unit": "Unidade",
    "installment": "Condicao de pagamento",
    "contact": "Contato",
    "agency": "Imobiliaria",
}


STATUS_GROUPS: Dict[str, List[Dict[str, str]]] = {
    "proposta": [
        {
            "key": "em_analise",
            "label": "Em analise",
            "description": "Proposta aguardando avaliacao da imobiliaria.",
        },
        {
            "key": "aprovada",
            "label": "Aprovada",
            "description": "Proposta aprovada, unidade pode ser marcada como vendida.",
        },
        {
            "key": "negada",
            "label": "Negada",
            "description": "Proposta recusada, unidade pode voltar a ficar livre.",
        },
    ],
    "unidade": [
        {
            "key": "livre",
            "label": "Livre",
            "description": "Unidade disponivel para novas propostas.",
        },
        {
            "key": "reservado",
            "label": "Reservado",
            "description": "Unidade reservada ate a data informada.",
        },
        {
            "key": "vendido",
            "label": "Vendido",
            "description": "Unidade vendida.",
        },
    ],
}


INSTALLMENT_LABELS: Dict[str, str] = {
    "sinal": "Sinal",
    "parcela_unica": "Parcela unica",
    "financiamento": "Financiamento",
    "mensais": "Mensais",
    "intermediarias": "Intermediarias",
    "anuais": "Anuais",
    "semestrais": "Semestrais",
    "bimestrais": "Bimestrais",
    "trimestrais": "Trimestrais",
}


WIZARD_STEP_LABELS: Dict[str, str] = {
    "proposal": "Dados da proposta",
    "primary_contact": "Contato principal",
    "secondary_contact": "Contato secundario",
    "property": "Imovel",
    "installments": "Condicoes de pagamento",
}


MESSAGES: Dict[str, Dict[str, str]] = {
    "success": {
        "proposal_saved": "Proposta salva com sucesso.",
        "proposal_deleted": "Proposta excluida com sucesso.",
        "proposal_status_updated": "Status da proposta atualizado.",
        "unit_status_updated": "Status da unidade atualizado.",
        "building_saved": "Empreendimento salvo com sucesso.",
        "building_deleted": "Empreendimento excluido com sucesso.",
        "unit_saved": "Unidade salva com sucesso.",
        "unit_deleted": "Unidade excluida com sucesso.",
        "rates_saved": "Taxas de reajuste salvas.",
        "preferences_saved": "Preferencias salvas.",
        "agency_config_saved": "Configuracao da imobiliaria salva.",
    },
    "error": {
        "action_invalid": "Acao invalida para esta operacao.",
        "agency_config_not_found": "Configuracao da imobiliaria nao encontrada.",
        "auth_required": "Autenticacao necessaria.",
        "building_not_found": "Empreendimento nao encontrado.",
        "building_name_required": "Informe o nome do empreendimento.",
        "contact_not_found": "Contato nao encontrado.",
        "opportunity_not_found": "Oportunidade nao encontrada.",
        "custom_fields_unavailable": "Nao foi possivel consultar os campos personalizados do CRM.",
        "form_invalid": "Existem campos obrigatorios nao preenchidos.",
        "installments_invalid": "Condicoes de pagamento invalidas.",
        "integration_unavailable": "Nao conseguimos falar com o CRM agora. Tente novamente em instantes.",
        "no_changes": "Nenhuma alteracao informada.",
        "payload_invalid": "Corpo da requisicao invalido.",
        "permission_denied": "Voce nao possui permissao para executar esta acao.",
        "preferences_invalid": "Preferencias informadas sao invalidas.",
        "proposal_not_found": "Proposta nao encontrada.",
        "proposal_not_found_after_update": "Proposta nao encontrada apos atualizacao.",
        "rate_limit_exceeded": "Muitas requisicoes. Tente novamente em instantes.",
        "rates_invalid": "Taxas de reajuste invalidas.",
        "reserved_until_invalid": "Informe uma data de reserva futura.",
        "reserved_until_required": "Informe a data de reserva para manter a unidade reservada.",
        "status_invalid": "Status informado e invalido.",
        "status_required": "Informe o status.",
        "storage_error": "Erro ao acessar o banco de dados.",
        "unexpected_error": "Nao foi possivel concluir a operacao. Tente novamente em instantes.",
        "unit_not_found": "Unidade nao encontrada.",
        "unit_required": "Informe a unidade da proposta.",
        "webhook_error": "Status atualizado no sistema, mas a sincronizacao falhou. Entre em contato com o suporte.",
    },
    "confirm": {
        "delete_proposal": "Confirma a exclusao da proposta? Parcelas e contatos sem uso serao removidos.",
        "delete_building": "Confirma a exclusao do empreendimento? Unidades e propostas vinculadas serao removidas.",
        "delete_unit": "Confirma a exclusao da unidade? Propostas vinculadas serao removidas.",
        "change_proposal_status": "Confirma a alteracao de status da proposta?",
    },
}


def status_keys_for_group(group: str) -> List[str]:
    return [item["key"] for item in STATUS_GROUPS.get(group, [])]


def status_items_for_group(group: str) -> List[Dict[str, str]]:
    return list(STATUS_GROUPS.get(group, []))


def status_label(group: str, key: str | None, default: str | None = None) -> str:
    for item in STATUS_GROUPS.get(group, []):
        if item["key"] == key:
            return item["label"]
    if default is not None:
        return default
    return str(key or "")


def installment_label(condition: str | None) -> str:
    return INSTALLMENT_LABELS.get(str(condition or ""), str(condition or ""))


def get_message(category: str, key: str, default: str | None = None) -> str:
    message = MESSAGES.get(category, {}).get(key)
    if message:
        return message
    if default is not None:
        return default
    return key


def error_message(key: str, default: str | None = None) -> str:
    return get_message("error", key, default)


def success_message(key: str, default: str | None = None) -> str:
    return get_message("success", key, default)


def confirm_message(key: str, default: str | None = None) -> str:
    return get_message("confirm", key, default)
