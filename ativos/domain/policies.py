"""
Políticas de transição de status e classificação de movimentações.

Este módulo concentra as regras de negócio puras do ciclo de vida de um
ativo: quais mudanças de status são permitidas, quais campos cada
mudança exige e qual tipo de movimentação cada par (status anterior,
status novo) gera no livro. Todos os caminhos de escrita (alteração
individual, alteração em lote, transferência, recebimento e leitura em
lote) usam as mesmas funções, para que a mesma transição nunca seja
classificada de duas formas diferentes.

Nenhuma função aqui faz I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional, Tuple

from ativos.domain.errors import ErroValidacao
from ativos.domain.models import (
    DESCARTADO,
    DISPONIVEL,
    EM_TRANSITO,
    EM_USO,
    MANUTENCAO,
    MOV_ALTERACAO_STATUS,
    MOV_DESCARTE,
    MOV_ENTRADA,
    MOV_MANUTENCAO,
    MOV_SAIDA,
    MOV_TRANSFERENCIA,
    STATUS_VALIDOS,
    TIPO_CONSUMIVEL,
)


# Origem da solicitação de mudança de status
VIA_STATUS = "status"
VIA_TRANSFERENCIA = "transferencia"
VIA_RECEBIMENTO = "recebimento"
VIA_CADASTRO = "cadastro"

# Transições diretas permitidas para ativos únicos (edição de status)
TRANSICOES_DIRETAS: FrozenSet[Tuple[str, str]] = frozenset({
    (DISPONIVEL, EM_USO),
    (EM_USO, DISPONIVEL),
    (DISPONIVEL, MANUTENCAO),
    (MANUTENCAO, DISPONIVEL),
})

# Transições que só existem dentro do protocolo de transferência
TRANSICOES_PROTOCOLO: Dict[Tuple[str, str], str] = {
    (DISPONIVEL, EM_TRANSITO): VIA_TRANSFERENCIA,
    (EM_TRANSITO, DISPONIVEL): VIA_RECEBIMENTO,
}

# Campos exigidos pelo status de destino. Uma tupla com mais de um campo
# significa "pelo menos um deles preenchido".
CAMPOS_OBRIGATORIOS: Dict[str, Tuple[str, ...]] = {
    EM_USO: ("colaborador",),
    MANUTENCAO: ("observacoes",),
    DESCARTADO: ("observacoes",),
    DISPONIVEL: ("colaborador", "observacoes"),
    EM_TRANSITO: ("colaborador", "observacoes"),
}


@dataclass(frozen=True)
class Decisao:
    """Resultado da avaliação de uma transição."""
    aceita: bool
    motivo: Optional[str] = None
    mensagem: Optional[str] = None


ACEITA = Decisao(True)


def _preenchido(valor: Optional[str]) -> bool:
    return valor is not None and str(valor).strip() != ""


def avaliar_transicao(
    status_atual: Optional[str],
    status_novo: str,
    tipo_ativo: str,
    via: str = VIA_STATUS,
    colaborador: Optional[str] = None,
    observacoes: Optional[str] = None,
) -> Decisao:
    """Avalia uma mudança de status sem efeitos colaterais.

    Regras:
        - Insumos não têm transições de status; apenas deltas de saldo.
        - ``status_atual == status_novo`` → ``same-status``.
        - Qualquer status pode ir para ``Descartado`` (terminal).
        - ``Disponível → Em Trânsito`` somente via despacho de transferência;
          ``Em Trânsito → Disponível`` somente via confirmação de recebimento.
        - Demais pares fora de ``TRANSICOES_DIRETAS`` → ``invalid-transition``.
        - Campos exigidos pelo destino (``CAMPOS_OBRIGATORIOS``) ausentes →
          ``missing-required-field``.

    Args:
        status_atual: Status corrente do ativo.
        status_novo: Status solicitado.
        tipo_ativo: ``unique`` ou ``consumable``.
        via: Caminho de escrita que solicitou a mudança.
        colaborador: Nome do colaborador (custódia).
        observacoes: Observações informadas.

    Returns:
        Uma ``Decisao`` aceita ou rejeitada com o motivo.
    """
    if tipo_ativo == TIPO_CONSUMIVEL:
        return Decisao(False, "invalid-transition",
                       "Insumos não possuem status; movimente o saldo.")
    if status_novo not in STATUS_VALIDOS:
        return Decisao(False, "invalid-transition", f"Status desconhecido: '{status_novo}'.")
    if via == VIA_CADASTRO or status_atual is None:
        # Cadastro: primeira linha do livro, sempre em 'Disponível'
        if via == VIA_CADASTRO and status_atual is None and status_novo == DISPONIVEL:
            return ACEITA
        return Decisao(False, "invalid-transition", "Ativos são cadastrados como 'Disponível'.")
    if status_novo == status_atual:
        return Decisao(False, "same-status", f"O ativo já está '{status_atual}'.")
    if status_atual == DESCARTADO:
        return Decisao(False, "invalid-transition", "Ativos descartados não podem ser alterados.")

    par = (status_atual, status_novo)
    if status_novo == DESCARTADO:
        pass
    elif par in TRANSICOES_PROTOCOLO:
        if via != TRANSICOES_PROTOCOLO[par]:
            caminho = ("despacho de transferência" if par[1] == EM_TRANSITO
                       else "confirmação de recebimento")
            return Decisao(False, "invalid-transition",
                           f"'{status_atual}' → '{status_novo}' só ocorre por {caminho}.")
    elif par not in TRANSICOES_DIRETAS or via != VIA_STATUS:
        return Decisao(False, "invalid-transition",
                       f"Não é possível ir de '{status_atual}' para '{status_novo}'.")

    exigidos = CAMPOS_OBRIGATORIOS.get(status_novo, ())
    valores = {"colaborador": colaborador, "observacoes": observacoes}
    if exigidos and not any(_preenchido(valores[c]) for c in exigidos):
        return Decisao(False, "missing-required-field",
                       f"'{status_novo}' exige: {' ou '.join(exigidos)}.")
    return ACEITA


def validar_transicao(
    status_atual: Optional[str],
    status_novo: str,
    tipo_ativo: str,
    via: str = VIA_STATUS,
    colaborador: Optional[str] = None,
    observacoes: Optional[str] = None,
) -> None:
    """Valida e levanta ``ErroValidacao`` se a transição não for permitida."""
    decisao = avaliar_transicao(status_atual, status_novo, tipo_ativo, via, colaborador, observacoes)
    if not decisao.aceita:
        raise ErroValidacao(
            decisao.motivo,
            decisao.mensagem,
            {"status_atual": status_atual, "status_solicitado": status_novo},
        )


def tipo_movimentacao(status_anterior: Optional[str], status_novo: str) -> str:
    """Classifica a movimentação gerada por uma mudança de status.

    Mapeamento único usado por todos os caminhos de escrita:
        - destino ``Manutenção`` → ``Manutenção``
        - destino ``Descartado`` → ``Descarte``
        - destino ``Em Trânsito`` → ``Transferência``
        - ``Disponível → Em Uso`` → ``Saída``
        - ``Em Uso → Disponível`` e ``Em Trânsito → Disponível`` → ``Entrada``
        - cadastro (sem status anterior) → ``Entrada``
        - demais → ``Alteração de Status``
    """
    if status_novo == MANUTENCAO:
        return MOV_MANUTENCAO
    if status_novo == DESCARTADO:
        return MOV_DESCARTE
    if status_novo == EM_TRANSITO:
        return MOV_TRANSFERENCIA
    if status_anterior == DISPONIVEL and status_novo == EM_USO:
        return MOV_SAIDA
    if status_novo == DISPONIVEL and status_anterior in (EM_USO, EM_TRANSITO, None):
        return MOV_ENTRADA
    return MOV_ALTERACAO_STATUS


def status_estoque(quantidade: Optional[int], minimo: Optional[int]) -> str:
    """Classifica o saldo de um insumo.

    Regras:
        - ``quantidade`` ausente → ``'VERIFICAR'``
        - ``quantidade <= 0`` → ``'ESGOTADO'``
        - ``quantidade <= minimo`` → ``'BAIXO'``
        - caso contrário → ``'OK'``
    """
    if quantidade is None:
        return "VERIFICAR"
    if quantidade <= 0:
        return "ESGOTADO"
    if quantidade <= (minimo or 0):
        return "BAIXO"
    return "OK"
