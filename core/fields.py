"""Canonical field taxonomy for the daily metrics rows.

Column names in the source view change between releases (``aguardando_analise``
became ``comercial_aguardando_analise``, ``n2_aguardando_agendamento`` turned into
``posvenda_aguardando_agendamento``...). Each canonical field lists its known
column names in priority order, newest first.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

SUM = "sum"
SNAPSHOT = "snapshot"
RATE = "rate"

DATE_KEYS: Tuple[str, ...] = ("data_referencia", "data", "date", "created_at")

RESERVED_KEYS: FrozenSet[str] = frozenset(
    {"id", "telefone", "email", "nome", "origem", "status", "updated_at"} | set(DATE_KEYS)
)

RATE_TOKENS: Tuple[str, ...] = ("taxa", "percentual", "conversao")
QUEUE_TOKENS: Tuple[str, ...] = ("aguardando", "pendente", "estoque", "producao")


@dataclass(frozen=True)
class CanonicalField:
    name: str
    label: str
    aliases: Tuple[str, ...]
    kind: str = SUM
    # Backlog counters: a zero in the last row does not reset a real queue.
    carry_forward: bool = False


CANONICAL_FIELDS: Tuple[CanonicalField, ...] = (
    CanonicalField("leads", "Leads (Total Entrada)", ("total_leads_dia", "comercial_aguardando_analise", "aguardando_analise")),
    CanonicalField("contratos", "Contratos Fechados", ("total_contratos_dia", "comercial_contratos_fechados", "contratos_fechados")),
    CanonicalField("reunioes", "Reuniões Feitas", ("n3_reuniao_feita", "comercial_reunioes_feitas", "reunioes_feitas")),
    CanonicalField("protocolos", "Processos Protocolados", ("juridico_protocolados", "processos_protocolados")),
    CanonicalField("pendentes", "Pendentes Total", ("comercial_pendentes_total", "clientes_pendentes_total"), kind=SNAPSHOT),
    CanonicalField(
        "agendamento",
        "Aguardando Agendamento",
        ("posvenda_aguardando_agendamento", "n2_aguardando_agendamento", "aguardando_agendamento"),
        kind=SNAPSHOT,
        carry_forward=True,
    ),
    CanonicalField(
        "documentacao",
        "Aguardando Documentação",
        ("posvenda_aguardando_documentacao", "n4_aguardando_documentacao", "aguardando_documentacao"),
        kind=SNAPSHOT,
        carry_forward=True,
    ),
    CanonicalField(
        "producao",
        "Em Produção",
        ("juridico_producao_inicial", "producao_inicial", "estoque_processos"),
        kind=SNAPSHOT,
        carry_forward=True,
    ),
    CanonicalField(
        "financeiro",
        "Pendente Financeiro",
        ("financeiro_aguardando_atend", "financeiro_acordo_pendente", "pendente_financeiro"),
        kind=SNAPSHOT,
        carry_forward=True,
    ),
    CanonicalField("taxa_conversao", "Taxa de Conversão", ("taxa_conversao_percentual",), kind=RATE),
)

FIELDS_BY_NAME: Dict[str, CanonicalField] = {f.name: f for f in CANONICAL_FIELDS}

KNOWN_COLUMNS: FrozenSet[str] = frozenset(a for f in CANONICAL_FIELDS for a in f.aliases)

# Rate columns that can be rebuilt from their raw counts: token -> (numerator, denominator).
RATE_COMPONENTS: Dict[str, Tuple[str, str]] = {
    "conversao": ("contratos", "leads"),
}


def aliases_for(name: str) -> Tuple[str, ...]:
    field = FIELDS_BY_NAME.get(name)
    return field.aliases if field else (name,)


def is_rate_field(key: str) -> bool:
    k = key.lower()
    return any(tok in k for tok in RATE_TOKENS)


def is_queue_field(key: str) -> bool:
    k = key.lower()
    return any(tok in k for tok in QUEUE_TOKENS)


def rate_components(key: str) -> Optional[Tuple[Tuple[str, ...], Tuple[str, ...]]]:
    """Column aliases for (numerator, denominator) of a rate column, if known."""
    k = key.lower()
    for token, (num, den) in RATE_COMPONENTS.items():
        if token in k:
            return aliases_for(num), aliases_for(den)
    return None


def humanize_label(key: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))
