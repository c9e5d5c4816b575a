# ativos/usecases/movimentar_estoque.py
"""
UC: Movimentar o saldo de insumos (consumíveis).

- adicionar_estoque():       crédito (ENTRADA_ESTOQUE), com documento, fornecedor
                             e valor unitário registrados nas observações.
- registrar_saida_estoque(): débito por consumo em um local.
- movimentar_insumo():       caminho comum; o sinal do delta vem do tipo.

Obs.:
- Débitos são verificados contra o saldo do local de origem dentro da
  mesma transação que grava a linha (ver `Livro.anexar`).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from ativos.config import DB_PATH
from ativos.domain.errors import ErroValidacao
from ativos.domain.models import (
    MOV_DESCARTE,
    MOV_ENTRADA,
    MOV_ENTRADA_ESTOQUE,
    MOV_SAIDA,
    TIPO_CONSUMIVEL,
)
from ativos.domain.policies import status_estoque
from ativos.infra.db import transacao
from ativos.infra.repositories import AtivoRepo, LojaRepo, ParamsRepo
from ativos.infra.logger import log_transaction
from ativos.usecases.livro import Livro

TIPOS_CREDITO = (MOV_ENTRADA, MOV_ENTRADA_ESTOQUE)
TIPOS_DEBITO = (MOV_SAIDA, MOV_DESCARTE)


def _brl(valor: float) -> str:
    return f"R$ {valor:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")


def movimentar_insumo(
    ativo_id: int,
    tipo: str,
    quantidade: int,
    local: Optional[str] = None,
    destino: Optional[str] = None,
    colaborador: Optional[str] = None,
    observacoes: Optional[str] = None,
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    cadastro: Optional[Dict[str, Any]] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Grava um delta de saldo para um insumo.

    Créditos (Entrada, ENTRADA_ESTOQUE) entram em `local`; débitos (Saída,
    Descarte) saem de `local`. `local` padrão: parâmetro `local_padrao`.

    Returns:
        {"movimentacao_id", "ativo_id", "tipo", "quantidade", "estoque_anterior",
         "estoque_atual", "status_estoque"}
    """
    if tipo not in TIPOS_CREDITO + TIPOS_DEBITO:
        raise ErroValidacao("invalid-transition", f"Tipo '{tipo}' não movimenta saldo de insumo.",
                            {"tipo": tipo})
    if quantidade is None or int(quantidade) <= 0:
        raise ErroValidacao("invalid-quantity", "A quantidade deve ser maior que zero.",
                            {"quantidade": quantidade})
    quantidade = int(quantidade)
    local = local or ParamsRepo(db_path).carregar_config().local_padrao
    credito = tipo in TIPOS_CREDITO
    dados = {"ativo_id": ativo_id, "tipo": tipo, "quantidade": quantidade, "local": local}

    livro = Livro(db_path)
    try:
        with transacao(db_path) as conn:
            ativo = livro.carregar_ativo(ativo_id, conn=conn)
            if ativo["tipo_ativo"] != TIPO_CONSUMIVEL:
                raise ErroValidacao(
                    "invalid-transition",
                    "Ativos únicos não possuem saldo; altere o status.",
                    {"ativo_id": ativo_id, "status_atual": ativo["status"]},
                )
            anterior = ativo["quantidade_estoque"]
            obs = observacoes
            if credito and tipo == MOV_ENTRADA_ESTOQUE:
                partes = [p for p in (observacoes,) if p]
                partes.append(f"Estoque anterior: {anterior}")
                partes.append(f"Novo estoque: {anterior + quantidade}")
                obs = " | ".join(partes)
            loja = LojaRepo(db_path).get_by_nome(local, conn=conn)
            mov_id = livro.anexar(
                conn, ativo,
                {
                    "tipo": tipo,
                    "quantidade": quantidade if credito else -quantidade,
                    "origem": None if credito else local,
                    "destino": local if credito else destino,
                    "loja_id": loja["id"] if loja else None,
                    "colaborador": colaborador,
                    "observacoes": obs,
                    "tecnico_responsavel": tecnico,
                    "criado_por": criado_por,
                },
                cadastro=cadastro,
                agora=agora,
            )
    except Exception as e:
        log_transaction("movimentar_insumo", dados, error=str(e))
        raise

    result = {
        "movimentacao_id": mov_id,
        "ativo_id": ativo_id,
        "tipo": tipo,
        "quantidade": quantidade,
        "estoque_anterior": anterior,
        "estoque_atual": ativo["quantidade_estoque"],
        "status_estoque": status_estoque(ativo["quantidade_estoque"], ativo["estoque_minimo"]),
    }
    log_transaction("movimentar_insumo", dados, result=result)
    return result


def adicionar_estoque(
    ativo_id: int,
    quantidade: int,
    documento: Optional[str] = None,
    fornecedor: Optional[str] = None,
    valor_unitario: Optional[float] = None,
    local: Optional[str] = None,
    observacoes: Optional[str] = None,
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Credita estoque de um insumo; fornecedor e valor unitário também atualizam o cadastro."""
    partes = []
    if documento:
        partes.append(f"Documento: {documento}")
    if fornecedor:
        partes.append(f"Fornecedor: {fornecedor}")
    if valor_unitario is not None:
        partes.append(f"Valor unitário: {_brl(valor_unitario)}")
    if observacoes:
        partes.append(observacoes)

    cadastro = {}
    if fornecedor:
        cadastro["fornecedor"] = fornecedor
    if valor_unitario is not None:
        cadastro["valor_unitario"] = float(valor_unitario)

    return movimentar_insumo(
        ativo_id, MOV_ENTRADA_ESTOQUE, quantidade, local=local,
        observacoes=" | ".join(partes) or None, tecnico=tecnico, criado_por=criado_por,
        cadastro=cadastro or None, db_path=db_path, agora=agora,
    )


def registrar_saida_estoque(
    ativo_id: int,
    quantidade: int,
    local: Optional[str] = None,
    colaborador: Optional[str] = None,
    destino: Optional[str] = None,
    observacoes: Optional[str] = None,
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Debita estoque de um insumo consumido a partir de `local`."""
    return movimentar_insumo(
        ativo_id, MOV_SAIDA, quantidade, local=local, destino=destino, colaborador=colaborador,
        observacoes=observacoes, tecnico=tecnico, criado_por=criado_por, db_path=db_path, agora=agora,
    )


def listar_estoque_baixo(db_path: str = DB_PATH) -> List[Dict[str, Any]]:
    """Insumos com saldo <= estoque mínimo, do menor saldo para o maior."""
    out = []
    for row in AtivoRepo(db_path).estoque_baixo():
        row["status_estoque"] = status_estoque(row["quantidade_estoque"], row["estoque_minimo"])
        out.append(row)
    return out
