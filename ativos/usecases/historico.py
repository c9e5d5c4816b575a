# ativos/usecases/historico.py
"""
Consultas sobre o livro:
- histórico de um ativo com tempo de permanência (dias no local)
- histórico restrito a uma unidade (data de chegada e dias na unidade)
- listagem filtrada/paginada do livro
- indicadores (KPIs) de movimentação por período
- inventário atual de uma loja

Tudo aqui é leitura: nenhuma função grava no banco.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import asdict
from datetime import date, datetime
from math import ceil
from typing import Any, Dict, Optional

from ativos.config import DB_PATH
from ativos.domain import formulas
from ativos.domain.errors import ErroValidacao
from ativos.domain.models import (
    DISPONIVEL,
    EM_USO,
    MANUTENCAO,
    STATUS_VALIDOS,
    TIPO_CONSUMIVEL,
    TIPO_UNICO,
    TIPOS_MOVIMENTACAO,
)
from ativos.domain.policies import status_estoque
from ativos.infra.db import connect
from ativos.infra.repositories import AtivoRepo, MovimentacaoRepo
from ativos.infra.logger import log_system_event
from ativos.usecases.livro import Livro
from ativos.usecases.transferencias import resolver_loja


# ----------------------
# util
# ----------------------

def _mov_dict(mov, dias: Optional[int]) -> Dict[str, Any]:
    d = asdict(mov)
    d["data_movimentacao"] = mov.data_movimentacao.isoformat(timespec="seconds")
    d["dias_no_local"] = dias
    return d


def _inicio_do_mes() -> str:
    return date.today().replace(day=1).isoformat()


# ----------------------
# 1) Histórico do ativo
# ----------------------

def historico(
    ativo_id: int,
    local: Optional[str] = None,
    agora: Optional[datetime] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """
    Linha do tempo de um ativo, mais recente primeiro.

    `dias_no_local` de cada linha = dias inteiros até a linha seguinte
    (None na mais recente, que ainda está em curso).

    Com `local`, restringe à última sequência contínua de linhas cujo
    destino é `local` e informa `data_chegada` (início da sequência) e
    `dias_na_unidade` (agora − data_chegada).

    Returns:
        {"ativo", "local_atual", "custodiante", "status_estoque",
         "movimentacoes": [...], e com `local`: "local", "data_chegada",
         "dias_na_unidade"}
    """
    agora = agora or datetime.now()
    livro = Livro(db_path)
    with connect(db_path) as conn:
        ativo = livro.carregar_ativo(ativo_id, conn=conn)
        movs = formulas.ordenar(livro.movimentacoes(ativo_id, conn=conn))

    dias = formulas.dias_no_local(movs)
    proj = formulas.projetar(ativo_id, ativo["tipo_ativo"], movs)
    out: Dict[str, Any] = {
        "ativo": ativo,
        "local_atual": proj.local_atual,
        "custodiante": proj.custodiante,
        "status_estoque": (status_estoque(proj.quantidade_estoque, ativo["estoque_minimo"])
                           if ativo["tipo_ativo"] == TIPO_CONSUMIVEL else None),
    }

    indices = range(len(movs))
    if local is not None:
        out.update({"local": local, "data_chegada": None, "dias_na_unidade": None})
        seq = formulas.ultima_sequencia_no_local(movs, local)
        if seq is None:
            indices = range(0)
        else:
            ini, fim = seq
            indices = range(ini, fim + 1)
            chegada = movs[ini].data_movimentacao
            out["data_chegada"] = chegada.isoformat(timespec="seconds")
            out["dias_na_unidade"] = formulas.dias_inteiros(chegada, agora)

    out["movimentacoes"] = [_mov_dict(movs[i], dias[i]) for i in reversed(indices)]
    log_system_event("historico_consultado", {"ativo_id": ativo_id, "local": local,
                                              "linhas": len(out["movimentacoes"])})
    return out


# ----------------------
# 2) Listagem do livro
# ----------------------

def listar_movimentacoes(
    ativo_id: Optional[int] = None,
    tipo: Optional[str] = None,
    loja_id: Optional[int] = None,
    tecnico: Optional[str] = None,
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    pagina: int = 1,
    limite: int = 20,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Livro filtrado e paginado (mais recentes primeiro)."""
    if tipo and tipo not in TIPOS_MOVIMENTACAO:
        raise ErroValidacao("invalid-field", f"Tipo de movimentação inválido: '{tipo}'.",
                            {"valores_aceitos": list(TIPOS_MOVIMENTACAO)})
    rows, total = MovimentacaoRepo(db_path).listar(
        ativo_id=ativo_id, tipo=tipo, loja_id=loja_id, tecnico=tecnico,
        data_inicio=data_inicio, data_fim=data_fim, pagina=pagina, limite=limite,
    )
    return {
        "movimentacoes": rows,
        "total": total,
        "pagina": pagina,
        "limite": limite,
        "paginas": ceil(total / limite) if limite else 1,
    }


# ----------------------
# 3) KPIs
# ----------------------

def kpis(
    data_inicio: Optional[str] = None,
    data_fim: Optional[str] = None,
    top_n: int = 5,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """
    Indicadores do período (padrão: mês corrente).

    - movimentações por tipo e total
    - técnicos mais ativos
    - ativos únicos em manutenção (agora)
    - transferências pendentes de confirmação (agora)
    """
    if not data_inicio and not data_fim:
        data_inicio = _inicio_do_mes()
    movs = MovimentacaoRepo(db_path)
    por_tipo = movs.contagem_por_tipo(data_inicio, data_fim)
    return {
        "periodo": {"inicio": data_inicio, "fim": data_fim},
        "total_movimentacoes": sum(r["total"] for r in por_tipo),
        "por_tipo": por_tipo,
        "tecnicos_mais_ativos": movs.tecnicos_mais_ativos(data_inicio, data_fim, top_n=top_n),
        "itens_manutencao": AtivoRepo(db_path).contagem_por_status().get(MANUTENCAO, 0),
        "transferencias_pendentes": len(movs.pendentes()),
    }


# ----------------------
# 4) Inventário da loja
# ----------------------

def inventario_loja(
    loja,
    status: Optional[str] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """
    Itens que estão hoje na loja, com um resumo por tipo e status.

    Local atual vem do livro: destino da última linha (ativos únicos) ou
    saldo no local (insumos). Ativos em trânsito para a loja aparecem em
    `listar_pendentes`, não aqui.

    Args:
        loja: nome ou id da loja.
        status: filtra ativos únicos por status (insumos não têm status).

    Returns:
        {"loja", "ativos": [...], "resumo": {...}}
    """
    if status is not None and status not in STATUS_VALIDOS:
        raise ErroValidacao("invalid-field", f"Status inválido: '{status}'.",
                            {"valores_aceitos": list(STATUS_VALIDOS)})
    with connect(db_path) as conn:
        alvo = resolver_loja(loja, db_path, conn=conn)
        itens = MovimentacaoRepo(db_path).inventario_no_local(alvo["nome"], status=status, conn=conn)

    por_status = Counter(i["status"] for i in itens if i["tipo_ativo"] == TIPO_UNICO)
    resumo = {
        "total_itens": len(itens),
        "total_unidades": sum(i["quantidade_no_local"] for i in itens),
        "valor_total": round(sum((i["valor_unitario"] or 0) * i["quantidade_no_local"] for i in itens), 2),
        "unicos": sum(1 for i in itens if i["tipo_ativo"] == TIPO_UNICO),
        "insumos": sum(1 for i in itens if i["tipo_ativo"] == TIPO_CONSUMIVEL),
        "disponiveis": por_status.get(DISPONIVEL, 0),
        "em_uso": por_status.get(EM_USO, 0),
        "manutencao": por_status.get(MANUTENCAO, 0),
    }
    log_system_event("inventario_consultado", {"loja": alvo["nome"], "status": status, "itens": len(itens)})
    return {"loja": alvo, "ativos": itens, "resumo": resumo}
