# ativos/usecases/registrar_ativo.py
"""
UC: Cadastrar ativos (único e em lote a partir de XLSX).

- registrar_ativo(dados):      valida, grava o cadastro e a primeira linha do livro.
- registrar_ativos_lote(path): lê o XLSX com o adapter e cadastra linha a linha,
                               reportando os erros por linha.

Obs.:
- Ativos únicos exigem número de série e patrimônio e nascem 'Disponível'.
- Insumos nascem com o saldo inicial lançado como ENTRADA_ESTOQUE (se > 0).
- Sem código de barras informado, gera `<PREFIXO>-<8 HEX>`.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from ativos.config import DB_PATH
from ativos.adapters.planilha_loader import load_ativos_from_xlsx
from ativos.domain.errors import ErroAtivos, ErroConflito, ErroValidacao
from ativos.domain.models import (
    DISPONIVEL,
    MOV_ENTRADA_ESTOQUE,
    TIPO_CONSUMIVEL,
    TIPO_UNICO,
    TIPOS_ATIVO,
)
from ativos.domain.policies import VIA_CADASTRO
from ativos.infra.db import transacao
from ativos.infra.repositories import LojaRepo, ParamsRepo
from ativos.infra.logger import (
    log_transaction, log_system_event, log_file_operation, print_system
)
from ativos.usecases.livro import Livro, agora_iso


def _normalize_str(x: Any) -> Optional[str]:
    if x is None:
        return None
    s = str(x).strip()
    return s or None


def gerar_codigo_barras(prefixo: str) -> str:
    """Gera um código de barras único: PREFIXO-8HEX."""
    return f"{prefixo}-{uuid.uuid4().hex[:8].upper()}"


def _validar(dados: Dict[str, Any]) -> None:
    if not dados.get("nome"):
        raise ErroValidacao("missing-required-field", "Nome do ativo é obrigatório.", {"campo": "nome"})
    if dados["tipo_ativo"] not in TIPOS_ATIVO:
        raise ErroValidacao(
            "invalid-field",
            f"Tipo de ativo inválido: '{dados['tipo_ativo']}'.",
            {"campo": "tipo_ativo", "valores_aceitos": list(TIPOS_ATIVO)},
        )
    if dados["tipo_ativo"] == TIPO_UNICO:
        for campo in ("numero_serie", "patrimonio"):
            if not dados.get(campo):
                raise ErroValidacao(
                    "missing-required-field",
                    f"Ativos únicos exigem '{campo}'.",
                    {"campo": campo},
                )
    elif dados["quantidade_estoque"] < 0 or dados["estoque_minimo"] < 0:
        raise ErroValidacao(
            "invalid-quantity",
            "Quantidade e estoque mínimo não podem ser negativos.",
            {"quantidade_estoque": dados["quantidade_estoque"], "estoque_minimo": dados["estoque_minimo"]},
        )


def registrar_ativo(
    dados: Dict[str, Any],
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Cadastra um ativo e grava a primeira linha do livro.

    Args:
        dados: campos do ativo (nome, tipo_ativo, numero_serie, patrimonio,
            codigo_barras, quantidade_estoque, estoque_minimo, local, ...).
        tecnico: operador responsável pelo cadastro.
        criado_por: id do usuário (opaco).

    Returns:
        O ativo cadastrado (dict), já com status/saldo projetados.
    """
    cfg = ParamsRepo(db_path).carregar_config()
    rec = {k: _normalize_str(v) if isinstance(v, str) else v for k, v in dados.items()}
    rec["tipo_ativo"] = rec.get("tipo_ativo") or TIPO_UNICO
    rec["quantidade_estoque"] = int(rec.get("quantidade_estoque") or 0)
    rec["estoque_minimo"] = int(rec.get("estoque_minimo") or 0)
    local = rec.pop("local", None) or cfg.local_padrao
    log_system_event("registrar_ativo_start", {"nome": rec.get("nome"), "tipo_ativo": rec["tipo_ativo"]})

    try:
        _validar(rec)
        rec["codigo_barras"] = rec.get("codigo_barras") or gerar_codigo_barras(cfg.prefixo_codigo_barras)
        quantidade_inicial = rec["quantidade_estoque"] if rec["tipo_ativo"] == TIPO_CONSUMIVEL else 0

        livro = Livro(db_path)
        with transacao(db_path) as conn:
            duplicado = livro.ativos.find_duplicado(rec, conn=conn)
            if duplicado:
                col, val = duplicado
                raise ErroConflito(
                    "duplicate-identifier",
                    f"Já existe um ativo com {col} = '{val}'.",
                    {"campo": col, "valor": val},
                )
            loja = LojaRepo(db_path).get_by_nome(local, conn=conn)

            ativo_id = livro.ativos.insert(
                {**rec, "status": None, "quantidade_estoque": 0, "criado_em": agora_iso(agora)},
                conn=conn,
            )
            ativo = livro.carregar_ativo(ativo_id, conn=conn)
            base = {
                "destino": local,
                "loja_id": loja["id"] if loja else None,
                "tecnico_responsavel": tecnico,
                "criado_por": criado_por,
                "observacoes": "Cadastro do ativo",
            }
            if rec["tipo_ativo"] == TIPO_UNICO:
                livro.anexar(conn, ativo, {**base, "status_novo": DISPONIVEL}, via=VIA_CADASTRO, agora=agora)
            elif quantidade_inicial > 0:
                livro.anexar(
                    conn, ativo,
                    {**base, "tipo": MOV_ENTRADA_ESTOQUE, "quantidade": quantidade_inicial,
                     "observacoes": f"Estoque inicial: {quantidade_inicial}"},
                    agora=agora,
                )

        print_system(f">> Ativo {ativo_id} cadastrado ({ativo['codigo_barras']}).")
        log_transaction("registrar_ativo", {"nome": rec["nome"], "local": local}, result=ativo_id)
        return ativo
    except Exception as e:
        log_transaction("registrar_ativo", {"nome": rec.get("nome")}, error=str(e))
        log_system_event("registrar_ativo_error", {"error": str(e)}, level="error")
        raise


def registrar_ativos_lote(
    path: str,
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Lê um XLSX de ativos e cadastra cada linha de forma independente."""
    log_system_event("registrar_ativos_lote_start", {"file_path": path})
    rows: List[Dict[str, Any]] = load_ativos_from_xlsx(path)
    log_file_operation("import", path, rows_processed=len(rows))

    ids: List[int] = []
    erros: List[Dict[str, Any]] = []
    for row in rows:
        linha = row.pop("linha", None)
        try:
            ids.append(registrar_ativo(row, tecnico=tecnico, criado_por=criado_por, db_path=db_path)["id"])
        except ErroAtivos as e:
            erros.append({"linha": linha, "motivo": e.motivo, "mensagem": e.mensagem})

    result = {
        "tipo": "Cadastro de Ativos",
        "arquivo": path,
        "total": len(rows),
        "sucessos": len(ids),
        "ids": ids,
        "erros": erros,
    }
    log_transaction("registrar_ativos_lote", {"file": path, "rows_count": len(rows)}, result=result)
    log_system_event("registrar_ativos_lote_success", {"file_path": path, "sucessos": len(ids), "erros": len(erros)})
    return result
