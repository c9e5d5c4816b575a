# ativos/infra/repositories.py
"""
Repositórios (DAO) para acesso e manipulação de dados no SQLite.

Classes:
- ParamsRepo
- LojaRepo
- AtivoRepo
- MovimentacaoRepo  (livro de movimentações: somente INSERT e SELECT)

Todos os métodos aceitam `conn` opcional. Sem `conn`, abrem a própria
conexão; com `conn`, participam da transação do chamador (ver
`infra.db.transacao`), que é como os casos de uso fazem
verificar-e-gravar de forma atômica.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import asdict, fields, is_dataclass, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from ativos.config import DEFAULTS, DefaultConfig
from ativos.domain.errors import ErroConflito
from .db import connect


# -------------------------
# Helpers
# -------------------------

def _as_dict(row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return row
    if is_dataclass(row):
        return asdict(row)
    raise TypeError("row must be dict or dataclass")


def _rows(cur) -> List[Dict[str, Any]]:
    cols = [d[0] for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def _one(cur) -> Optional[Dict[str, Any]]:
    rows = _rows(cur)
    return rows[0] if rows else None


class _Repo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    @contextmanager
    def _usar(self, conn=None) -> Iterator[Any]:
        if conn is not None:
            yield conn
        else:
            with connect(self.db_path) as c:
                yield c


# -------------------------
# Params
# -------------------------

class ParamsRepo(_Repo):
    def set_many(self, items: Iterable[Tuple[str, str]]) -> None:
        with self._usar() as c:
            c.executemany(
                """
                INSERT INTO params (chave, valor)
                VALUES (?, ?)
                ON CONFLICT(chave) DO UPDATE SET valor=excluded.valor
                """,
                list(items),
            )

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with self._usar() as c:
            row = c.execute("SELECT valor FROM params WHERE chave = ?", (key,)).fetchone()
            return row[0] if row else default

    def get_all(self) -> Dict[str, str]:
        with self._usar() as c:
            return {r[0]: r[1] for r in c.execute("SELECT chave, valor FROM params ORDER BY chave")}

    def carregar_config(self) -> DefaultConfig:
        """Valores padrão sobrescritos pelos parâmetros gravados (convertidos para o tipo do padrão)."""
        gravados = self.get_all()
        override = {}
        for f in fields(DefaultConfig):
            if f.name in gravados:
                padrao = getattr(DEFAULTS, f.name)
                try:
                    override[f.name] = type(padrao)(gravados[f.name])
                except ValueError:
                    continue
        return replace(DEFAULTS, **override)


# -------------------------
# Loja
# -------------------------

class LojaRepo(_Repo):
    def insert(self, row: Dict[str, Any], conn=None) -> int:
        row = _as_dict(row)
        with self._usar(conn) as c:
            cur = c.execute(
                "INSERT INTO loja (nome, cidade, responsavel) VALUES (:nome, :cidade, :responsavel)",
                {"nome": row.get("nome"), "cidade": row.get("cidade"), "responsavel": row.get("responsavel")},
            )
            return cur.lastrowid

    def get(self, loja_id: int, conn=None) -> Optional[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _one(c.execute("SELECT * FROM loja WHERE id = ?", (loja_id,)))

    def get_by_nome(self, nome: str, conn=None) -> Optional[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _one(c.execute("SELECT * FROM loja WHERE nome = ?", (nome,)))

    def get_all(self) -> List[Dict[str, Any]]:
        with self._usar() as c:
            return _rows(c.execute("SELECT * FROM loja ORDER BY nome"))


# -------------------------
# Ativo
# -------------------------

COLUNAS_ATIVO = (
    "nome", "tipo_ativo", "codigo_barras", "numero_serie", "patrimonio",
    "marca_modelo", "categoria", "status", "quantidade_estoque",
    "estoque_minimo", "valor_unitario", "fornecedor", "criado_em",
)

# Campos que podem ser atualizados junto com uma movimentação
CAMPOS_RETRATO = ("status", "quantidade_estoque", "valor_unitario", "fornecedor")


class AtivoRepo(_Repo):
    def insert(self, row: Dict[str, Any], conn=None) -> int:
        row = _as_dict(row)
        payload = {k: row.get(k) for k in COLUNAS_ATIVO}
        payload["quantidade_estoque"] = payload["quantidade_estoque"] or 0
        payload["estoque_minimo"] = payload["estoque_minimo"] or 0
        with self._usar(conn) as c:
            cur = c.execute(
                f"""
                INSERT INTO ativo ({",".join(COLUNAS_ATIVO)})
                VALUES ({",".join(":" + k for k in COLUNAS_ATIVO)})
                """,
                payload,
            )
            return cur.lastrowid

    def get(self, ativo_id: int, conn=None) -> Optional[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _one(c.execute("SELECT * FROM ativo WHERE id = ?", (ativo_id,)))

    def get_by_codigo_barras(self, codigo: str, conn=None) -> Optional[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _one(c.execute("SELECT * FROM ativo WHERE codigo_barras = ?", (codigo,)))

    def find_duplicado(self, row: Dict[str, Any], conn=None) -> Optional[Tuple[str, str]]:
        """Retorna (coluna, valor) do primeiro identificador único já cadastrado."""
        with self._usar(conn) as c:
            for col in ("codigo_barras", "numero_serie", "patrimonio"):
                val = row.get(col)
                if val and c.execute(f"SELECT 1 FROM ativo WHERE {col} = ?", (val,)).fetchone():
                    return col, val
        return None

    def get_all(self, tipo_ativo: Optional[str] = None) -> List[Dict[str, Any]]:
        with self._usar() as c:
            if tipo_ativo:
                cur = c.execute("SELECT * FROM ativo WHERE tipo_ativo = ? ORDER BY id", (tipo_ativo,))
            else:
                cur = c.execute("SELECT * FROM ativo ORDER BY id")
            return _rows(cur)

    def contagem_por_status(self) -> Dict[str, int]:
        with self._usar() as c:
            return {
                r[0]: r[1] for r in c.execute(
                    "SELECT status, COUNT(*) FROM ativo WHERE tipo_ativo = 'unique' GROUP BY status"
                )
            }

    def estoque_baixo(self) -> List[Dict[str, Any]]:
        with self._usar() as c:
            return _rows(c.execute(
                "SELECT * FROM vw_estoque_baixo ORDER BY quantidade_estoque ASC, nome"
            ))

    def atualizar_retrato(self, ativo_id: int, versao: int, campos: Dict[str, Any], conn=None) -> int:
        """
        Atualiza o retrato do ativo com compare-and-set em `versao`.

        Levanta ErroConflito('concurrent-mutation') se outra mutação gravou
        antes. Retorna a nova versão.
        """
        campos = {k: v for k, v in campos.items() if k in CAMPOS_RETRATO}
        sets = ", ".join(f"{k} = :{k}" for k in campos)
        sets = f"{sets}, versao = versao + 1" if sets else "versao = versao + 1"
        with self._usar(conn) as c:
            cur = c.execute(
                f"UPDATE ativo SET {sets} WHERE id = :_id AND versao = :_versao",
                {**campos, "_id": ativo_id, "_versao": versao},
            )
            if cur.rowcount == 0:
                raise ErroConflito(
                    "concurrent-mutation",
                    "O ativo foi alterado por outra operação; recarregue e tente novamente.",
                    {"ativo_id": ativo_id, "versao_lida": versao},
                )
        return versao + 1


# -------------------------
# Livro de movimentações
# -------------------------

COLUNAS_MOVIMENTACAO = (
    "ativo_id", "tipo", "quantidade", "status_anterior", "status_novo",
    "colaborador", "tecnico_responsavel", "origem", "destino", "loja_id",
    "observacoes", "data_movimentacao", "criado_por", "referencia",
    "confirma_id", "quantidade_enviada", "divergencia", "tipo_divergencia",
    "descricao_divergencia",
)

_ORDEM_LIVRO = "ORDER BY data_movimentacao ASC, id ASC"


class MovimentacaoRepo(_Repo):
    def insert(self, row: Dict[str, Any], conn=None) -> int:
        row = _as_dict(row)
        payload = {k: row.get(k) for k in COLUNAS_MOVIMENTACAO}
        payload["divergencia"] = int(bool(payload["divergencia"]))
        with self._usar(conn) as c:
            cur = c.execute(
                f"""
                INSERT INTO movimentacao ({",".join(COLUNAS_MOVIMENTACAO)})
                VALUES ({",".join(":" + k for k in COLUNAS_MOVIMENTACAO)})
                """,
                payload,
            )
            return cur.lastrowid

    def get(self, mov_id: int, conn=None) -> Optional[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _one(c.execute("SELECT * FROM movimentacao WHERE id = ?", (mov_id,)))

    def get_by_referencia(self, referencia: str, conn=None) -> Optional[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _one(c.execute("SELECT * FROM movimentacao WHERE referencia = ?", (referencia,)))

    def confirmacao_de(self, mov_id: int, conn=None) -> Optional[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _one(c.execute("SELECT * FROM movimentacao WHERE confirma_id = ?", (mov_id,)))

    def ultima(self, ativo_id: int, conn=None) -> Optional[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _one(c.execute("SELECT * FROM vw_ultima_movimentacao WHERE ativo_id = ?", (ativo_id,)))

    def listar_por_ativo(self, ativo_id: int, conn=None) -> List[Dict[str, Any]]:
        with self._usar(conn) as c:
            return _rows(c.execute(
                f"SELECT * FROM movimentacao WHERE ativo_id = ? {_ORDEM_LIVRO}", (ativo_id,)
            ))

    def saldo_total(self, ativo_id: int, conn=None) -> int:
        with self._usar(conn) as c:
            row = c.execute(
                "SELECT COALESCE(SUM(quantidade), 0) FROM movimentacao WHERE ativo_id = ?",
                (ativo_id,),
            ).fetchone()
            return int(row[0])

    def saldo_no_local(self, ativo_id: int, local: str, conn=None) -> int:
        """Saldo de um insumo em um local: débitos saem da origem, créditos entram no destino."""
        with self._usar(conn) as c:
            row = c.execute(
                """
                SELECT COALESCE(SUM(
                    CASE
                        WHEN quantidade < 0 AND origem = :local THEN quantidade
                        WHEN quantidade > 0 AND destino = :local THEN quantidade
                        ELSE 0
                    END), 0)
                FROM movimentacao
                WHERE ativo_id = :ativo_id
                """,
                {"ativo_id": ativo_id, "local": local},
            ).fetchone()
            return int(row[0])

    def pendentes(self, loja_id: Optional[int] = None, conn=None) -> List[Dict[str, Any]]:
        sql = "SELECT * FROM vw_transferencias_pendentes"
        params: List[Any] = []
        if loja_id is not None:
            sql += " WHERE loja_id = ?"
            params.append(loja_id)
        sql += " ORDER BY data_envio DESC, movimentacao_id DESC"
        with self._usar(conn) as c:
            return _rows(c.execute(sql, params))

    def pendente_por_codigo_barras(self, codigo: str, loja_id: Optional[int] = None, conn=None) -> Optional[Dict[str, Any]]:
        sql = "SELECT * FROM vw_transferencias_pendentes WHERE codigo_barras = ?"
        params: List[Any] = [codigo]
        if loja_id is not None:
            sql += " AND loja_id = ?"
            params.append(loja_id)
        sql += " ORDER BY data_envio DESC, movimentacao_id DESC LIMIT 1"
        with self._usar(conn) as c:
            return _one(c.execute(sql, params))

    def listar(
        self,
        ativo_id: Optional[int] = None,
        tipo: Optional[str] = None,
        loja_id: Optional[int] = None,
        tecnico: Optional[str] = None,
        data_inicio: Optional[str] = None,
        data_fim: Optional[str] = None,
        pagina: int = 1,
        limite: int = 20,
    ) -> Tuple[List[Dict[str, Any]], int]:
        """Lista o livro (mais recentes primeiro) com filtros e paginação."""
        where = ["1=1"]
        params: List[Any] = []
        if ativo_id is not None:
            where.append("m.ativo_id = ?")
            params.append(ativo_id)
        if tipo:
            where.append("m.tipo = ?")
            params.append(tipo)
        if loja_id is not None:
            where.append("m.loja_id = ?")
            params.append(loja_id)
        if tecnico:
            where.append("m.tecnico_responsavel LIKE ?")
            params.append(f"%{tecnico}%")
        if data_inicio:
            where.append("date(m.data_movimentacao) >= ?")
            params.append(data_inicio)
        if data_fim:
            where.append("date(m.data_movimentacao) <= ?")
            params.append(data_fim)
        filtro = " AND ".join(where)
        with self._usar() as c:
            total = c.execute(f"SELECT COUNT(*) FROM movimentacao m WHERE {filtro}", params).fetchone()[0]
            rows = _rows(c.execute(
                f"""
                SELECT m.*, a.nome AS ativo_nome, a.tipo_ativo, a.patrimonio, a.numero_serie
                FROM movimentacao m
                JOIN ativo a ON a.id = m.ativo_id
                WHERE {filtro}
                ORDER BY m.data_movimentacao DESC, m.id DESC
                LIMIT ? OFFSET ?
                """,
                params + [limite, (max(pagina, 1) - 1) * limite],
            ))
        return rows, int(total)

    def inventario_no_local(self, local: str, status: Optional[str] = None, conn=None) -> List[Dict[str, Any]]:
        """
        Itens que estão hoje em `local`.

        Ativo único: a última linha do livro tem `destino = local` (em trânsito
        não conta). Insumo: saldo do livro no local maior que zero.
        """
        with self._usar(conn) as c:
            return _rows(c.execute(
                """
                SELECT * FROM (
                    SELECT a.id, a.nome, a.tipo_ativo, a.codigo_barras, a.numero_serie, a.patrimonio,
                           a.status, a.valor_unitario,
                           1                   AS quantidade_no_local,
                           CASE WHEN a.status = 'Em Uso' THEN u.colaborador END AS custodiante,
                           u.data_movimentacao AS ultima_movimentacao
                    FROM ativo a
                    JOIN vw_ultima_movimentacao u ON u.ativo_id = a.id
                    WHERE a.tipo_ativo = 'unique'
                      AND u.destino = :local
                      AND a.status <> 'Em Trânsito'
                    UNION ALL
                    SELECT a.id, a.nome, a.tipo_ativo, a.codigo_barras, a.numero_serie, a.patrimonio,
                           a.status, a.valor_unitario,
                           s.saldo, NULL, s.ultima
                    FROM ativo a
                    JOIN (
                        SELECT ativo_id,
                               SUM(CASE
                                       WHEN quantidade < 0 AND origem = :local THEN quantidade
                                       WHEN quantidade > 0 AND destino = :local THEN quantidade
                                       ELSE 0
                                   END) AS saldo,
                               MAX(CASE WHEN origem = :local OR destino = :local
                                        THEN data_movimentacao END) AS ultima
                        FROM movimentacao
                        GROUP BY ativo_id
                    ) s ON s.ativo_id = a.id
                    WHERE a.tipo_ativo = 'consumable'
                      AND s.saldo > 0
                ) inv
                WHERE :status IS NULL OR inv.status = :status
                ORDER BY inv.nome, inv.id
                """,
                {"local": local, "status": status},
            ))

    def contagem_por_tipo(self, data_inicio: Optional[str] = None, data_fim: Optional[str] = None) -> List[Dict[str, Any]]:
        sql, params = self._periodo(data_inicio, data_fim)
        with self._usar() as c:
            return _rows(c.execute(
                f"SELECT tipo, COUNT(*) AS total FROM movimentacao WHERE {sql} "
                "GROUP BY tipo ORDER BY total DESC, tipo",
                params,
            ))

    def tecnicos_mais_ativos(self, data_inicio: Optional[str] = None, data_fim: Optional[str] = None, top_n: int = 5) -> List[Dict[str, Any]]:
        sql, params = self._periodo(data_inicio, data_fim)
        with self._usar() as c:
            return _rows(c.execute(
                f"SELECT tecnico_responsavel, COUNT(*) AS total FROM movimentacao "
                f"WHERE {sql} AND tecnico_responsavel IS NOT NULL "
                "GROUP BY tecnico_responsavel ORDER BY total DESC, tecnico_responsavel LIMIT ?",
                params + [top_n],
            ))

    @staticmethod
    def _periodo(data_inicio: Optional[str], data_fim: Optional[str]) -> Tuple[str, List[Any]]:
        where = ["1=1"]
        params: List[Any] = []
        if data_inicio:
            where.append("date(data_movimentacao) >= ?")
            params.append(data_inicio)
        if data_fim:
            where.append("date(data_movimentacao) <= ?")
            params.append(data_fim)
        return " AND ".join(where), params
