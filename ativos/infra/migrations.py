# ativos/infra/migrations.py
"""
Migrações de schema usando PRAGMA user_version.

V1: tabelas base (params, loja, ativo, movimentacao)
V2: colunas do protocolo de transferência (referência, confirmação e
    divergência) e índice único que impede duas confirmações do mesmo despacho
V3: loja padrão de estoque
"""

from __future__ import annotations

from typing import List

from ativos.config import DEFAULTS
from .db import connect


SCHEMA_V1: List[str] = [
    # Parâmetros K/V
    """
    CREATE TABLE IF NOT EXISTS params (
        chave TEXT PRIMARY KEY,
        valor TEXT
    );
    """,
    # Lojas / unidades
    """
    CREATE TABLE IF NOT EXISTS loja (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        nome TEXT NOT NULL UNIQUE,
        cidade TEXT,
        responsavel TEXT
    );
    """,
    # Cadastro de ativos + retrato do estado atual (projeção do livro)
    """
    CREATE TABLE IF NOT EXISTS ativo (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        nome TEXT NOT NULL,
        tipo_ativo TEXT NOT NULL DEFAULT 'unique'
            CHECK (tipo_ativo IN ('unique', 'consumable')),
        codigo_barras TEXT UNIQUE,
        numero_serie TEXT UNIQUE,
        patrimonio TEXT UNIQUE,
        marca_modelo TEXT,
        categoria TEXT,
        status TEXT CHECK (status IS NULL OR status IN
            ('Disponível', 'Em Uso', 'Manutenção', 'Em Trânsito', 'Descartado')),
        quantidade_estoque INTEGER NOT NULL DEFAULT 0 CHECK (quantidade_estoque >= 0),
        estoque_minimo INTEGER NOT NULL DEFAULT 0,
        valor_unitario REAL,
        fornecedor TEXT,
        versao INTEGER NOT NULL DEFAULT 0,
        criado_em TEXT
    );
    """,
    # Livro de movimentações (somente inserção)
    """
    CREATE TABLE IF NOT EXISTS movimentacao (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        ativo_id INTEGER NOT NULL,
        tipo TEXT NOT NULL CHECK (tipo IN
            ('Entrada', 'Saída', 'Transferência', 'Manutenção', 'Descarte',
             'Alteração de Status', 'ENTRADA_ESTOQUE')),
        quantidade INTEGER NOT NULL,
        status_anterior TEXT,
        status_novo TEXT,
        colaborador TEXT,
        tecnico_responsavel TEXT,
        origem TEXT,
        destino TEXT,
        loja_id INTEGER,
        observacoes TEXT,
        data_movimentacao TEXT NOT NULL,
        criado_por TEXT,
        FOREIGN KEY (ativo_id) REFERENCES ativo(id),
        FOREIGN KEY (loja_id) REFERENCES loja(id)
    );
    """,
    # Histórico é imutável
    """
    CREATE TRIGGER IF NOT EXISTS trg_movimentacao_sem_update
    BEFORE UPDATE ON movimentacao
    BEGIN
        SELECT RAISE(ABORT, 'movimentacao e somente insercao');
    END;
    """,
    """
    CREATE TRIGGER IF NOT EXISTS trg_movimentacao_sem_delete
    BEFORE DELETE ON movimentacao
    BEGIN
        SELECT RAISE(ABORT, 'movimentacao e somente insercao');
    END;
    """,
]


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Adiciona coluna se não existir."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [r[1] for r in cur.fetchall()]  # r[1] é o nome da coluna
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _apply_v1(conn) -> None:
    for sql in SCHEMA_V1:
        conn.execute(sql)


def _apply_v2(conn) -> None:
    # movimentacao: protocolo de transferência e recebimento
    _ensure_column(conn, "movimentacao", "referencia", "referencia TEXT")
    _ensure_column(conn, "movimentacao", "confirma_id", "confirma_id INTEGER REFERENCES movimentacao(id)")
    _ensure_column(conn, "movimentacao", "quantidade_enviada", "quantidade_enviada INTEGER")
    _ensure_column(conn, "movimentacao", "divergencia", "divergencia INTEGER NOT NULL DEFAULT 0")
    _ensure_column(conn, "movimentacao", "tipo_divergencia", "tipo_divergencia TEXT")
    _ensure_column(conn, "movimentacao", "descricao_divergencia", "descricao_divergencia TEXT")
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ux_movimentacao_referencia "
        "ON movimentacao(referencia) WHERE referencia IS NOT NULL;"
    )
    conn.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS ux_movimentacao_confirma "
        "ON movimentacao(confirma_id) WHERE confirma_id IS NOT NULL;"
    )


def _apply_v3(conn) -> None:
    conn.execute("INSERT OR IGNORE INTO loja (nome) VALUES (?);", (DEFAULTS.local_padrao,))


def apply_migrations(db_path: str) -> None:
    """Aplica migrações incrementais de acordo com PRAGMA user_version."""
    with connect(db_path) as conn:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0] or 0

        if ver < 1:
            _apply_v1(conn)
            conn.execute("PRAGMA user_version = 1;")
            ver = 1

        if ver < 2:
            _apply_v2(conn)
            conn.execute("PRAGMA user_version = 2;")
            ver = 2

        if ver < 3:
            _apply_v3(conn)
            conn.execute("PRAGMA user_version = 3;")
            ver = 3
