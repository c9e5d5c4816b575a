# ativos/usecases/alterar_status.py
"""
UC: Alterar status de ativos únicos.

- alterar_status():          uma mudança de status validada pela máquina de estados.
- alterar_status_em_lote():  a mesma mudança para vários ativos, item a item.
- registrar_saida():         atalho Disponível → Em Uso (check-out para colaborador).
- registrar_devolucao():     atalho Em Uso → Disponível (check-in, encerra a custódia).

Obs.:
- O tipo da movimentação nunca é informado aqui: vem de `tipo_movimentacao`.
- Sem destino informado, o ativo permanece no local atual.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from ativos.config import DB_PATH
from ativos.domain.errors import ErroAtivos
from ativos.domain.models import DISPONIVEL, EM_USO, ResultadoItem, ResultadoLote
from ativos.infra.db import transacao
from ativos.infra.repositories import ParamsRepo
from ativos.infra.logger import log_transaction, log_system_event
from ativos.usecases.livro import Livro, executar_com_tentativas


def alterar_status(
    ativo_id: int,
    status_novo: str,
    colaborador: Optional[str] = None,
    observacoes: Optional[str] = None,
    tecnico: Optional[str] = None,
    destino: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Muda o status de um ativo único e grava a movimentação correspondente.

    Returns:
        {"movimentacao_id", "ativo_id", "tipo", "status_anterior", "status_novo", "local"}

    Raises:
        ErroValidacao: same-status, invalid-transition, missing-required-field.
        ErroConflito: concurrent-mutation.
        ErroNaoEncontrado: ativo inexistente.
    """
    dados = {"ativo_id": ativo_id, "status_novo": status_novo, "colaborador": colaborador}
    livro = Livro(db_path)
    try:
        with transacao(db_path) as conn:
            ativo = livro.carregar_ativo(ativo_id, conn=conn)
            status_anterior = ativo["status"]
            local = livro.local_atual(ativo_id, conn=conn)
            mov_id = livro.anexar(
                conn, ativo,
                {
                    "status_novo": status_novo,
                    "colaborador": colaborador,
                    "observacoes": observacoes,
                    "tecnico_responsavel": tecnico,
                    "origem": local,
                    "destino": destino or local,
                    "criado_por": criado_por,
                },
                agora=agora,
            )
            mov = livro.movs.get(mov_id, conn=conn)
    except Exception as e:
        log_transaction("alterar_status", dados, error=str(e))
        raise

    result = {
        "movimentacao_id": mov_id,
        "ativo_id": ativo_id,
        "tipo": mov["tipo"],
        "status_anterior": status_anterior,
        "status_novo": status_novo,
        "local": mov["destino"],
    }
    log_transaction("alterar_status", dados, result=result)
    return result


def alterar_status_em_lote(
    ativo_ids: Iterable[int],
    status_novo: str,
    colaborador: Optional[str] = None,
    observacoes: Optional[str] = None,
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
) -> ResultadoLote:
    """
    Aplica a mesma mudança de status a vários ativos.

    Cada ativo é gravado na sua própria transação; rejeições (inclusive banco
    travado após as novas tentativas) são reportadas por item e não desfazem
    os itens já gravados.
    """
    tentativas = ParamsRepo(db_path).carregar_config().tentativas_lote
    resultado = ResultadoLote()
    for ativo_id in ativo_ids:
        try:
            out = executar_com_tentativas(
                lambda: alterar_status(
                    ativo_id, status_novo, colaborador=colaborador, observacoes=observacoes,
                    tecnico=tecnico, criado_por=criado_por, db_path=db_path,
                ),
                tentativas,
            )
            resultado.sucessos.append(ResultadoItem(ativo_id, True, out["movimentacao_id"]))
        except ErroAtivos as e:
            resultado.falhas.append(ResultadoItem(ativo_id, False, None, e.motivo, e.mensagem, e.detalhes))
        except sqlite3.OperationalError as e:
            resultado.falhas.append(ResultadoItem(ativo_id, False, None, "database-locked", str(e)))

    log_system_event(
        "alterar_status_em_lote",
        {"status_novo": status_novo, "sucessos": len(resultado.sucessos), "falhas": len(resultado.falhas)},
        level="warning" if resultado.falhas else "info",
    )
    return resultado


def registrar_saida(
    ativo_id: int,
    colaborador: str,
    destino: Optional[str] = None,
    observacoes: Optional[str] = None,
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Entrega o ativo a um colaborador (Disponível → Em Uso)."""
    return alterar_status(
        ativo_id, EM_USO, colaborador=colaborador, observacoes=observacoes, tecnico=tecnico,
        destino=destino, criado_por=criado_por, db_path=db_path, agora=agora,
    )


def registrar_devolucao(
    ativo_id: int,
    observacoes: Optional[str] = None,
    destino: Optional[str] = None,
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Recebe o ativo de volta (Em Uso → Disponível); a custódia é encerrada."""
    return alterar_status(
        ativo_id, DISPONIVEL, observacoes=observacoes or "Devolução", tecnico=tecnico,
        destino=destino, criado_por=criado_por, db_path=db_path, agora=agora,
    )
