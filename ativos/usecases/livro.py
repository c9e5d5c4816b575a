# ativos/usecases/livro.py
"""
UC: Livro de movimentações e contabilidade de estoque.

- Livro.anexar():          único caminho de escrita no livro. Valida a
                           transição (ativos únicos) ou o saldo (insumos),
                           grava a linha e atualiza o retrato do ativo.
- saldo_em()/status_em():  leituras pontuais a partir do livro.
- reconstruir_do_livro():  projeção do estado atual usando apenas o livro.
- verificar_consistencia(): compara retrato x projeção e checa invariantes.
- reconciliar():           regrava o retrato a partir da projeção.

Obs.:
- `Livro.anexar` deve ser chamado dentro de `infra.db.transacao`, com o
  ativo lido na mesma transação.
- Correções são feitas com novas linhas compensatórias; o livro nunca é
  editado nem apagado.
"""

from __future__ import annotations

import sqlite3
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ativos.config import DB_PATH
from ativos.domain import formulas
from ativos.domain.errors import ErroConflito, ErroNaoEncontrado, ErroValidacao
from ativos.domain.models import TIPO_CONSUMIVEL, Movimentacao, Projecao
from ativos.domain.policies import VIA_STATUS, tipo_movimentacao, validar_transicao
from ativos.infra.db import connect, transacao
from ativos.infra.repositories import AtivoRepo, MovimentacaoRepo
from ativos.infra.logger import log_database_operation, log_movimentacao, log_system_event

T = TypeVar("T")


def agora_iso(agora: Optional[datetime] = None) -> str:
    return (agora or datetime.now()).isoformat(timespec="seconds")


def _vazio(x: Any) -> Optional[str]:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


class Livro:
    """Escrita e leitura do livro de um banco."""

    def __init__(self, db_path: str = DB_PATH):
        self.db_path = db_path
        self.ativos = AtivoRepo(db_path)
        self.movs = MovimentacaoRepo(db_path)

    def carregar_ativo(self, ativo_id: int, conn=None) -> Dict[str, Any]:
        ativo = self.ativos.get(ativo_id, conn=conn)
        if not ativo:
            raise ErroNaoEncontrado(f"Ativo {ativo_id} não encontrado", {"ativo_id": ativo_id})
        return ativo

    def anexar(
        self,
        conn,
        ativo: Dict[str, Any],
        mov: Dict[str, Any],
        via: str = VIA_STATUS,
        cadastro: Optional[Dict[str, Any]] = None,
        agora: Optional[datetime] = None,
    ) -> int:
        """
        Grava uma linha no livro e atualiza o retrato do ativo.

        Ativos únicos: `mov["status_novo"]` passa pela máquina de estados e o
        tipo da movimentação é derivado do par (status atual, status novo).
        Insumos: `mov["quantidade"]` é o delta com sinal e `mov["tipo"]` é
        informado pelo chamador; débitos exigem saldo suficiente na origem.

        Args:
            conn: conexão de uma `transacao` aberta.
            ativo: linha do ativo lida na mesma transação.
            mov: campos da movimentação.
            via: caminho de escrita (status, transferencia, recebimento, cadastro).
            cadastro: campos do cadastro atualizados junto (valor_unitario, fornecedor).
            agora: instante da movimentação (padrão: relógio do servidor).

        Returns:
            Id da movimentação gravada.
        """
        row = dict(mov)
        row["ativo_id"] = ativo["id"]
        row["data_movimentacao"] = agora_iso(agora)
        for campo in ("colaborador", "tecnico_responsavel", "observacoes", "origem", "destino"):
            row[campo] = _vazio(row.get(campo))

        if ativo["tipo_ativo"] == TIPO_CONSUMIVEL:
            if row.get("status_novo") is not None:
                # insumo não tem status: a máquina de estados rejeita
                validar_transicao(ativo["status"], row["status_novo"], ativo["tipo_ativo"], via)
            campos = self._debitar_ou_creditar(conn, ativo, row)
        else:
            validar_transicao(
                ativo["status"], row.get("status_novo"), ativo["tipo_ativo"], via,
                row.get("colaborador"), row.get("observacoes"),
            )
            row["status_anterior"] = ativo["status"]
            row["tipo"] = tipo_movimentacao(ativo["status"], row["status_novo"])
            row["quantidade"] = 1
            campos = {"status": row["status_novo"]}

        if cadastro:
            campos.update(cadastro)

        mov_id = self.movs.insert(row, conn=conn)
        ativo["versao"] = self.ativos.atualizar_retrato(ativo["id"], ativo["versao"], campos, conn=conn)
        ativo.update(campos)

        log_database_operation("movimentacao", "INSERT", 1, ativo_id=ativo["id"], movimentacao_id=mov_id)
        log_movimentacao(row["tipo"], ativo["id"], row["quantidade"],
                         status_novo=row.get("status_novo"), destino=row.get("destino"))
        return mov_id

    def _debitar_ou_creditar(self, conn, ativo: Dict[str, Any], row: Dict[str, Any]) -> Dict[str, Any]:
        if not row.get("tipo"):
            raise ErroValidacao("missing-required-field", "Movimentação de insumo sem tipo.")
        delta = int(row.get("quantidade") or 0)
        row["quantidade"] = delta
        row["status_anterior"] = None
        row["status_novo"] = None

        saldo = self.movs.saldo_total(ativo["id"], conn=conn)
        if delta < 0:
            local = row.get("origem")
            saldo_local = self.movs.saldo_no_local(ativo["id"], local, conn=conn)
            if saldo_local + delta < 0 or saldo + delta < 0:
                raise ErroConflito(
                    "insufficient-stock",
                    f"Estoque insuficiente em '{local}'. Disponível: {saldo_local}, solicitado: {-delta}",
                    {"ativo_id": ativo["id"], "local": local, "saldo_local": saldo_local,
                     "saldo_atual": saldo, "solicitado": -delta},
                )
        return {"quantidade_estoque": saldo + delta}

    # -------------------------
    # leituras a partir do livro
    # -------------------------

    def movimentacoes(self, ativo_id: int, conn=None) -> List[Movimentacao]:
        return [Movimentacao.from_row(r) for r in self.movs.listar_por_ativo(ativo_id, conn=conn)]

    def local_atual(self, ativo_id: int, conn=None) -> Optional[str]:
        """Destino da movimentação mais recente."""
        ultima = self.movs.ultima(ativo_id, conn=conn)
        return ultima["destino"] if ultima else None


def executar_com_tentativas(fn: Callable[[], T], tentativas: int, espera: float = 0.05) -> T:
    """
    Executa `fn` repetindo quando o SQLite responde "database is locked".

    Demais erros sobem na primeira ocorrência. Esgotadas as tentativas, o
    último OperationalError é relançado: nada é considerado gravado.
    """
    for tentativa in range(1, max(tentativas, 1) + 1):
        try:
            return fn()
        except sqlite3.OperationalError as e:
            if "locked" not in str(e) or tentativa >= tentativas:
                raise
            log_system_event("banco_travado_nova_tentativa", {"tentativa": tentativa}, level="warning")
            time.sleep(espera * tentativa)


def saldo_em(ativo_id: int, instante: datetime, db_path: str = DB_PATH) -> int:
    """Saldo de um insumo em um instante: soma dos deltas com data <= instante."""
    livro = Livro(db_path)
    livro.carregar_ativo(ativo_id)
    return formulas.saldo_ate(livro.movimentacoes(ativo_id), instante)


def status_em(ativo_id: int, instante: datetime, db_path: str = DB_PATH) -> Optional[str]:
    """Status de um ativo único em um instante."""
    livro = Livro(db_path)
    livro.carregar_ativo(ativo_id)
    return formulas.status_ate(livro.movimentacoes(ativo_id), instante)


def reconstruir_do_livro(ativo_id: int, db_path: str = DB_PATH) -> Projecao:
    """Reconstrói status, saldo, local e custódia usando somente o livro."""
    livro = Livro(db_path)
    with connect(db_path) as conn:
        ativo = livro.carregar_ativo(ativo_id, conn=conn)
        movs = livro.movimentacoes(ativo_id, conn=conn)
    return formulas.projetar(ativo_id, ativo["tipo_ativo"], movs)


def verificar_consistencia(ativo_id: int, db_path: str = DB_PATH) -> Dict[str, Any]:
    """
    Compara o retrato gravado no ativo com a projeção do livro.

    Retorna {"ativo_id", "consistente", "divergencias": [...], "violacoes": [...]}.
    """
    livro = Livro(db_path)
    with connect(db_path) as conn:
        ativo = livro.carregar_ativo(ativo_id, conn=conn)
        movs = livro.movimentacoes(ativo_id, conn=conn)
    proj = formulas.projetar(ativo_id, ativo["tipo_ativo"], movs)

    divergencias = []
    if ativo["tipo_ativo"] == TIPO_CONSUMIVEL:
        if ativo["quantidade_estoque"] != proj.quantidade_estoque:
            divergencias.append({"campo": "quantidade_estoque",
                                 "retrato": ativo["quantidade_estoque"], "livro": proj.quantidade_estoque})
    elif ativo["status"] != proj.status:
        divergencias.append({"campo": "status", "retrato": ativo["status"], "livro": proj.status})

    viol = formulas.violacoes(ativo["tipo_ativo"], movs)
    return {
        "ativo_id": ativo_id,
        "consistente": not divergencias and not viol,
        "divergencias": divergencias,
        "violacoes": viol,
    }


def reconciliar(ativo_id: int, db_path: str = DB_PATH) -> Projecao:
    """Regrava o retrato do ativo a partir do livro (o livro não é alterado)."""
    livro = Livro(db_path)
    with transacao(db_path) as conn:
        ativo = livro.carregar_ativo(ativo_id, conn=conn)
        proj = formulas.projetar(ativo_id, ativo["tipo_ativo"], livro.movimentacoes(ativo_id, conn=conn))
        campos = ({"quantidade_estoque": proj.quantidade_estoque}
                  if ativo["tipo_ativo"] == TIPO_CONSUMIVEL else {"status": proj.status})
        livro.ativos.atualizar_retrato(ativo_id, ativo["versao"], campos, conn=conn)
    log_system_event("retrato_reconciliado", {"ativo_id": ativo_id, **campos})
    return proj
