# ativos/infra/db.py
"""
Utilidades de conexão SQLite.

- connect():   leituras e escritas simples (commit ao sair).
- transacao(): bloco de escrita com BEGIN IMMEDIATE. Toda sequência
  verificar-e-gravar sobre um ativo roda dentro dela, de modo que duas
  mutações concorrentes nunca leem a mesma pré-condição.

O tempo de espera pelo lock vem do parâmetro `timeout_lock_segundos`
(tabela `params`) quando gravado; senão, de DEFAULTS.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from ativos.config import DEFAULTS


def _timeout_gravado(conn: sqlite3.Connection) -> Optional[float]:
    """Valor de `timeout_lock_segundos` na tabela params (None se ausente ou inválido)."""
    tem_params = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'params'"
    ).fetchone()
    if not tem_params:
        return None
    row = conn.execute("SELECT valor FROM params WHERE chave = 'timeout_lock_segundos'").fetchone()
    if not row:
        return None
    try:
        return float(row[0])
    except (TypeError, ValueError):
        return None


def _open(db_path: str, timeout: Optional[float] = None) -> sqlite3.Connection:
    conn = sqlite3.connect(
        db_path,
        timeout=DEFAULTS.timeout_lock_segundos if timeout is None else timeout,
        isolation_level=None,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if timeout is None:
        gravado = _timeout_gravado(conn)
        if gravado is not None and gravado >= 0:
            conn.execute(f"PRAGMA busy_timeout = {int(gravado * 1000)};")
    return conn


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Context manager para abrir conexão SQLite com:
    - foreign_keys ON
    - row_factory = sqlite3.Row
    - commit ao sair (rollback em caso de exceção)
    """
    conn = _open(db_path)
    try:
        conn.execute("BEGIN;")
        yield conn
        if conn.in_transaction:
            conn.execute("COMMIT;")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK;")
        raise
    finally:
        conn.close()


@contextmanager
def transacao(db_path: str, timeout: float | None = None) -> Iterator[sqlite3.Connection]:
    """
    Abre uma transação de escrita exclusiva (BEGIN IMMEDIATE).

    O lock de escrita é obtido antes da primeira leitura, então a checagem
    de saldo/status e a gravação no livro formam uma unidade lógica.
    Qualquer exceção desfaz tudo o que foi feito no bloco.

    Args:
        timeout: espera máxima pelo lock, em segundos (padrão: parâmetro
            `timeout_lock_segundos`).
    """
    conn = _open(db_path, timeout)
    try:
        conn.execute("BEGIN IMMEDIATE;")
        yield conn
        if conn.in_transaction:
            conn.execute("COMMIT;")
    except Exception:
        if conn.in_transaction:
            conn.execute("ROLLBACK;")
        raise
    finally:
        conn.close()
