# ativos/usecases/transferencias.py
"""
UC: Transferência entre lojas em duas fases.

1) despachar_transferencia(): retira o ativo/saldo da origem, grava a linha
   'Transferência' com uma referência opaca e monta a etiqueta de envio
   (URL de confirmação em QR + linhas legíveis).
2) confirmar_recebimento():   resolve a referência lida no QR (ou o id do
   despacho), grava a linha 'Entrada' no destino e registra divergências.

Consultas:
- listar_pendentes():            despachos ainda sem confirmação.
- buscar_pendente_por_codigo():  despacho pendente mais recente de um código de barras.

Obs.:
- Um despacho aceita exatamente uma confirmação (checagem na transação +
  índice único em `confirma_id`).
- Divergência não bloqueia o recebimento: é registrada na linha de confirmação.
  Só a quantidade recebida é creditada; a diferença fica gravada em
  `quantidade_enviada`.
"""

from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from ativos.config import DB_PATH
from ativos.adapters.parsers import parse_referencia
from ativos.adapters.qr import gerar_qr_png
from ativos.domain.errors import ErroConflito, ErroNaoEncontrado, ErroValidacao
from ativos.domain.models import (
    DISPONIVEL,
    DIVERGENCIA_OUTRA,
    DIVERGENCIA_QUANTIDADE,
    EM_TRANSITO,
    MOV_ENTRADA,
    MOV_TRANSFERENCIA,
    TIPO_CONSUMIVEL,
    TIPOS_DIVERGENCIA,
    EtiquetaEnvio,
)
from ativos.domain.policies import VIA_RECEBIMENTO, VIA_TRANSFERENCIA
from ativos.infra.db import connect, transacao
from ativos.infra.repositories import LojaRepo, MovimentacaoRepo, ParamsRepo
from ativos.infra.logger import log_transaction, log_transferencia
from ativos.usecases.livro import Livro


def montar_url_confirmacao(base: str, referencia: str) -> str:
    sep = "&" if "?" in base else "?"
    return f"{base}{sep}ref={referencia}"


def montar_etiqueta(
    ativo: Dict[str, Any],
    despacho: Dict[str, Any],
    url: str,
    gerar_qr: bool = True,
) -> EtiquetaEnvio:
    """Monta o artefato de envio a partir do ativo e da linha de despacho."""
    linhas = [
        f"Ativo: {ativo['nome']}",
        f"Código: {ativo['codigo_barras']}",
    ]
    if ativo.get("patrimonio"):
        linhas.append(f"Patrimônio: {ativo['patrimonio']}")
    if ativo.get("numero_serie"):
        linhas.append(f"Série: {ativo['numero_serie']}")
    linhas.append(f"Quantidade: {abs(despacho['quantidade'])}")
    linhas.append(f"De: {despacho['origem'] or '-'}  Para: {despacho['destino']}")
    if despacho.get("colaborador"):
        linhas.append(f"Destinatário: {despacho['colaborador']}")
    if despacho.get("tecnico_responsavel"):
        linhas.append(f"Técnico: {despacho['tecnico_responsavel']}")
    linhas.append(f"Enviado em: {despacho['data_movimentacao']}")
    linhas.append(f"Ref.: {despacho['referencia']}")
    return EtiquetaEnvio(
        movimentacao_id=despacho["id"],
        referencia=despacho["referencia"],
        url_confirmacao=url,
        linhas=linhas,
        qr_png=gerar_qr_png(url) if gerar_qr else None,
    )


def resolver_loja(nome_ou_id: Union[str, int, None], db_path: str, conn=None) -> Optional[Dict[str, Any]]:
    """Loja pelo id ou pelo nome (None quando nada é informado)."""
    if nome_ou_id is None:
        return None
    repo = LojaRepo(db_path)
    if isinstance(nome_ou_id, int) or str(nome_ou_id).isdigit():
        loja = repo.get(int(nome_ou_id), conn=conn)
    else:
        loja = repo.get_by_nome(str(nome_ou_id).strip(), conn=conn)
    if not loja:
        raise ErroNaoEncontrado(f"Loja '{nome_ou_id}' não encontrada", {"loja": nome_ou_id})
    return loja


# -------------------------
# 1) Despacho
# -------------------------

def despachar_transferencia(
    ativo_id: int,
    destino: Union[str, int],
    quantidade: int = 1,
    colaborador: Optional[str] = None,
    tecnico: Optional[str] = None,
    origem: Optional[str] = None,
    observacoes: Optional[str] = None,
    criado_por: Optional[str] = None,
    gerar_qr: bool = True,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Tuple[int, EtiquetaEnvio]:
    """
    Despacha um ativo (ou parte do saldo de um insumo) para outra loja.

    Ativo único: precisa estar 'Disponível'; vai para 'Em Trânsito' e a
    quantidade é sempre 1. Insumo: a quantidade sai do saldo da origem.

    Args:
        destino: nome ou id da loja de destino.
        origem: local de saída (padrão: local atual do ativo ou `local_padrao`).

    Returns:
        (id da movimentação de despacho, etiqueta de envio)

    Raises:
        ErroValidacao: invalid-transition, missing-required-field, invalid-quantity.
        ErroConflito: insufficient-stock, concurrent-mutation.
        ErroNaoEncontrado: ativo ou loja inexistentes.
    """
    cfg = ParamsRepo(db_path).carregar_config()
    dados = {"ativo_id": ativo_id, "destino": destino, "quantidade": quantidade}
    livro = Livro(db_path)
    try:
        with transacao(db_path) as conn:
            loja = resolver_loja(destino, db_path, conn=conn)
            ativo = livro.carregar_ativo(ativo_id, conn=conn)
            consumivel = ativo["tipo_ativo"] == TIPO_CONSUMIVEL
            origem = origem or (None if consumivel else livro.local_atual(ativo_id, conn=conn)) or cfg.local_padrao
            if origem == loja["nome"]:
                raise ErroValidacao(
                    "invalid-field", "Origem e destino são a mesma loja.",
                    {"origem": origem, "destino": loja["nome"]},
                )
            if consumivel and (quantidade is None or int(quantidade) <= 0):
                raise ErroValidacao("invalid-quantity", "A quantidade deve ser maior que zero.",
                                    {"quantidade": quantidade})

            referencia = uuid.uuid4().hex
            mov = {
                "origem": origem,
                "destino": loja["nome"],
                "loja_id": loja["id"],
                "colaborador": colaborador,
                "tecnico_responsavel": tecnico,
                "observacoes": observacoes,
                "criado_por": criado_por,
                "referencia": referencia,
            }
            if consumivel:
                mov.update({"tipo": MOV_TRANSFERENCIA, "quantidade": -int(quantidade)})
            else:
                mov["status_novo"] = EM_TRANSITO
            mov_id = livro.anexar(conn, ativo, mov, via=VIA_TRANSFERENCIA, agora=agora)
            despacho = livro.movs.get(mov_id, conn=conn)
    except Exception as e:
        log_transaction("despachar_transferencia", dados, error=str(e))
        raise

    url = montar_url_confirmacao(cfg.url_confirmacao, referencia)
    etiqueta = montar_etiqueta(ativo, despacho, url, gerar_qr=gerar_qr)
    log_transferencia("despacho", ativo_id, abs(despacho["quantidade"]),
                      movimentacao_id=mov_id, origem=origem, destino=loja["nome"], referencia=referencia)
    log_transaction("despachar_transferencia", dados, result=mov_id)
    return mov_id, etiqueta


# -------------------------
# 2) Confirmação de recebimento
# -------------------------

def _resolver_despacho(referencia: Union[str, int], repo: MovimentacaoRepo, conn) -> Dict[str, Any]:
    ref = parse_referencia(str(referencia)) if referencia is not None else None
    despacho = repo.get_by_referencia(ref, conn=conn) if ref else None
    if despacho is None and ref and ref.isdigit():
        despacho = repo.get(int(ref), conn=conn)
    if despacho is None or despacho["tipo"] != MOV_TRANSFERENCIA or not despacho["referencia"]:
        raise ErroNaoEncontrado(f"Despacho '{referencia}' não encontrado", {"referencia": referencia})
    return despacho


def confirmar_recebimento(
    referencia: Union[str, int],
    quantidade_recebida: Optional[int] = None,
    observacoes: Optional[str] = None,
    divergencia: bool = False,
    tipo_divergencia: Optional[str] = None,
    descricao_divergencia: Optional[str] = None,
    tecnico: Optional[str] = None,
    criado_por: Optional[str] = None,
    db_path: str = DB_PATH,
    agora: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Confirma o recebimento de um despacho no destino.

    Args:
        referencia: referência do QR, a URL completa lida ou o id do despacho.
        quantidade_recebida: somente insumos; padrão = quantidade enviada.
            Não pode ser maior que a enviada. Uma quantidade menor sem
            divergência informada é marcada como 'quantity_mismatch'.
        divergencia: marca a confirmação com divergência (não bloqueia).
        tipo_divergencia: 'damaged', 'quantity_mismatch' ou 'other'.

    Returns:
        {"movimentacao_id", "despacho_id", "ativo_id", "destino", "quantidade_enviada",
         "quantidade_recebida", "divergencia", "tipo_divergencia", "descricao_divergencia"}

    Raises:
        ErroConflito: already-confirmed, concurrent-mutation.
        ErroValidacao: invalid-quantity, invalid-field.
        ErroNaoEncontrado: referência desconhecida.
    """
    dados = {"referencia": referencia, "quantidade_recebida": quantidade_recebida}
    livro = Livro(db_path)
    try:
        with transacao(db_path) as conn:
            despacho = _resolver_despacho(referencia, livro.movs, conn)
            ja = livro.movs.confirmacao_de(despacho["id"], conn=conn)
            if ja:
                raise ErroConflito(
                    "already-confirmed",
                    f"O despacho {despacho['id']} já foi confirmado em {ja['data_movimentacao']}.",
                    {"despacho_id": despacho["id"], "confirmacao_id": ja["id"],
                     "data_confirmacao": ja["data_movimentacao"]},
                )
            ativo = livro.carregar_ativo(despacho["ativo_id"], conn=conn)
            consumivel = ativo["tipo_ativo"] == TIPO_CONSUMIVEL

            enviada = abs(despacho["quantidade"])
            recebida = enviada if (quantidade_recebida is None or not consumivel) else int(quantidade_recebida)
            if recebida < 0 or recebida > enviada:
                raise ErroValidacao(
                    "invalid-quantity",
                    f"Quantidade recebida ({recebida}) deve estar entre 0 e a enviada ({enviada}).",
                    {"quantidade_enviada": enviada, "quantidade_recebida": recebida},
                )

            if divergencia:
                tipo_divergencia = tipo_divergencia or DIVERGENCIA_OUTRA
                if tipo_divergencia not in TIPOS_DIVERGENCIA:
                    raise ErroValidacao(
                        "invalid-field", f"Tipo de divergência inválido: '{tipo_divergencia}'.",
                        {"valores_aceitos": list(TIPOS_DIVERGENCIA)},
                    )
            elif recebida < enviada:
                divergencia = True
                tipo_divergencia = DIVERGENCIA_QUANTIDADE
                descricao_divergencia = descricao_divergencia or f"Recebido {recebida} de {enviada}"
            else:
                tipo_divergencia = None
                descricao_divergencia = None

            mov = {
                "origem": despacho["origem"],
                "destino": despacho["destino"],
                "loja_id": despacho["loja_id"],
                "colaborador": despacho["colaborador"],
                "tecnico_responsavel": tecnico,
                "observacoes": observacoes or "Recebimento confirmado",
                "criado_por": criado_por,
                "confirma_id": despacho["id"],
                "quantidade_enviada": enviada,
                "divergencia": divergencia,
                "tipo_divergencia": tipo_divergencia,
                "descricao_divergencia": descricao_divergencia,
            }
            if consumivel:
                mov.update({"tipo": MOV_ENTRADA, "quantidade": recebida})
            else:
                mov["status_novo"] = DISPONIVEL
            mov_id = livro.anexar(conn, ativo, mov, via=VIA_RECEBIMENTO, agora=agora)
    except sqlite3.IntegrityError as e:
        log_transaction("confirmar_recebimento", dados, error=str(e))
        raise ErroConflito("already-confirmed", "O despacho já foi confirmado.",
                           {"referencia": referencia}) from e
    except Exception as e:
        log_transaction("confirmar_recebimento", dados, error=str(e))
        raise

    result = {
        "movimentacao_id": mov_id,
        "despacho_id": despacho["id"],
        "ativo_id": ativo["id"],
        "destino": despacho["destino"],
        "quantidade_enviada": enviada,
        "quantidade_recebida": recebida,
        "divergencia": bool(divergencia),
        "tipo_divergencia": tipo_divergencia,
        "descricao_divergencia": descricao_divergencia,
    }
    log_transferencia("confirmacao", ativo["id"], recebida, despacho_id=despacho["id"], movimentacao_id=mov_id)
    if divergencia:
        log_transferencia("divergencia", ativo["id"], recebida, despacho_id=despacho["id"],
                          quantidade_enviada=enviada, tipo=tipo_divergencia, descricao=descricao_divergencia)
    log_transaction("confirmar_recebimento", dados, result=result)
    return result


# -------------------------
# consultas
# -------------------------

def listar_pendentes(loja: Union[str, int, None] = None, db_path: str = DB_PATH) -> List[Dict[str, Any]]:
    """Despachos sem confirmação, opcionalmente filtrados pela loja de destino."""
    with connect(db_path) as conn:
        alvo = resolver_loja(loja, db_path, conn=conn)
        return MovimentacaoRepo(db_path).pendentes(alvo["id"] if alvo else None, conn=conn)


def buscar_pendente_por_codigo(
    codigo_barras: str,
    loja: Union[str, int, None] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Despacho pendente mais recente do ativo lido (recebimento pelo próprio item)."""
    with connect(db_path) as conn:
        alvo = resolver_loja(loja, db_path, conn=conn)
        pendente = MovimentacaoRepo(db_path).pendente_por_codigo_barras(
            codigo_barras.strip(), alvo["id"] if alvo else None, conn=conn
        )
    if not pendente:
        raise ErroNaoEncontrado(
            f"Nenhuma transferência pendente para o código '{codigo_barras}'",
            {"codigo_barras": codigo_barras, "loja": loja},
        )
    return pendente
