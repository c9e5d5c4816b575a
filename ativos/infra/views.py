# ativos/infra/views.py
"""
Criação de views auxiliares para consultas frequentes.

Views criadas:
- vw_transferencias_pendentes: despachos sem confirmação de recebimento.
- vw_estoque_baixo:            insumos com saldo <= estoque mínimo.
- vw_ultima_movimentacao:      última linha do livro por ativo (local atual).

Obs.:
- As views assumem que as migrações V1→V3 já foram aplicadas.
- Um conjunto de índices úteis também é criado, caso não existam.
"""

from __future__ import annotations

from .db import connect


VIEWS = [
    "DROP VIEW IF EXISTS vw_transferencias_pendentes;",
    """
    CREATE VIEW vw_transferencias_pendentes AS
    SELECT
        d.id                 AS movimentacao_id,
        d.referencia,
        d.ativo_id,
        a.nome               AS ativo_nome,
        a.codigo_barras,
        a.tipo_ativo,
        ABS(d.quantidade)    AS quantidade,
        d.origem,
        d.destino,
        d.loja_id,
        d.colaborador,
        d.tecnico_responsavel,
        d.data_movimentacao  AS data_envio,
        d.observacoes
    FROM movimentacao d
    JOIN ativo a ON a.id = d.ativo_id
    LEFT JOIN movimentacao c ON c.confirma_id = d.id
    WHERE d.tipo = 'Transferência'
      AND d.referencia IS NOT NULL
      AND c.id IS NULL;
    """,
    "DROP VIEW IF EXISTS vw_estoque_baixo;",
    """
    CREATE VIEW vw_estoque_baixo AS
    SELECT id, nome, codigo_barras, quantidade_estoque, estoque_minimo
    FROM ativo
    WHERE tipo_ativo = 'consumable'
      AND quantidade_estoque <= estoque_minimo;
    """,
    "DROP VIEW IF EXISTS vw_ultima_movimentacao;",
    """
    CREATE VIEW vw_ultima_movimentacao AS
    SELECT m.*
    FROM movimentacao m
    WHERE m.id = (
        SELECT m2.id FROM movimentacao m2
        WHERE m2.ativo_id = m.ativo_id
        ORDER BY m2.data_movimentacao DESC, m2.id DESC
        LIMIT 1
    );
    """,
]

INDICES = [
    "CREATE INDEX IF NOT EXISTS idx_mov_ativo_data ON movimentacao(ativo_id, data_movimentacao, id);",
    "CREATE INDEX IF NOT EXISTS idx_mov_tipo       ON movimentacao(tipo);",
    "CREATE INDEX IF NOT EXISTS idx_mov_loja       ON movimentacao(loja_id);",
    "CREATE INDEX IF NOT EXISTS idx_mov_data       ON movimentacao(data_movimentacao);",
    "CREATE INDEX IF NOT EXISTS idx_ativo_tipo     ON ativo(tipo_ativo);",
]


def create_views(db_path: str) -> None:
    with connect(db_path) as c:
        for sql in VIEWS:
            c.execute(sql)
        for sql in INDICES:
            c.execute(sql)
