# ativos/domain/errors.py
"""
Taxonomia de erros do controle de ativos.

Todo erro carrega um `motivo` (código estável, ex.: ``insufficient-stock``)
e um dicionário `detalhes` com o estado atual relevante (status, saldo,
quantidade pedida) para que o chamador decida a correção em vez de
simplesmente repetir a chamada.

- ErroValidacao:     campo obrigatório ausente, transição inválida. Nada é gravado.
- ErroConflito:      estoque insuficiente, recebimento já confirmado, corrida
                     perdida para outra mutação. Refaça a leitura e tente de novo.
- ErroNaoEncontrado: ativo, código de barras, loja ou referência desconhecidos.
- FalhaParcialLote:  envio de um lote de leituras com itens rejeitados; os itens
                     já gravados não são desfeitos.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ErroAtivos(Exception):
    """Base dos erros de domínio."""

    def __init__(self, motivo: str, mensagem: str, detalhes: Optional[Dict[str, Any]] = None):
        super().__init__(mensagem)
        self.motivo = motivo
        self.mensagem = mensagem
        self.detalhes = detalhes or {}


class ErroValidacao(ErroAtivos):
    pass


class ErroConflito(ErroAtivos):
    pass


class ErroNaoEncontrado(ErroAtivos):
    def __init__(self, mensagem: str, detalhes: Optional[Dict[str, Any]] = None):
        super().__init__("not-found", mensagem, detalhes)


class FalhaParcialLote(ErroAtivos):
    """Levantada pelo envio do lote quando ao menos um item falhou."""

    def __init__(self, resultado: Any):
        falhas = len(resultado.falhas)
        total = falhas + len(resultado.sucessos)
        super().__init__(
            "partial-batch-failure",
            f"{falhas} de {total} itens do lote falharam",
            {"sucessos": len(resultado.sucessos), "falhas": falhas},
        )
        self.resultado = resultado
