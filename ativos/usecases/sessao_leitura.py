# ativos/usecases/sessao_leitura.py
"""
UC: Sessão de leitura em lote (leitor de código de barras / câmera).

A sessão acumula, em memória, os itens lidos (ativo → quantidade) até o
envio. Nada aqui é persistido antes de `enviar()`.

Regras:
- Ativo único entra na lista assim que é lido (quantidade 1).
- Insumo pede a quantidade (`informar_quantidade`) e então acumula; ler o
  mesmo insumo de novo soma na mesma linha (chave = id do ativo).
- A mesma leitura crua repetida dentro da janela (padrão 2 s) é tratada
  como duplicata física e ignorada.
- `enviar(tipo)` grava um item por vez, cada um na sua transação. Itens
  rejeitados ficam na lista para correção; os gravados saem dela.

`consumir_decodificador()` liga um decodificador externo (``() -> str | None``)
à sessão, chamando-o em intervalo fixo.
"""

from __future__ import annotations

import sqlite3
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from ativos.config import DB_PATH
from ativos.adapters.parsers import parse_codigo_lido
from ativos.domain.errors import ErroAtivos, ErroNaoEncontrado, ErroValidacao, FalhaParcialLote
from ativos.domain.models import (
    DESCARTADO,
    DISPONIVEL,
    EM_USO,
    MANUTENCAO,
    MOV_DESCARTE,
    MOV_ENTRADA,
    MOV_ENTRADA_ESTOQUE,
    MOV_MANUTENCAO,
    MOV_SAIDA,
    MOV_TRANSFERENCIA,
    Ativo,
    ItemLido,
    ResultadoItem,
    ResultadoLote,
)
from ativos.infra.repositories import AtivoRepo, ParamsRepo
from ativos.infra.logger import log_system_event, log_transaction
from ativos.usecases.alterar_status import alterar_status
from ativos.usecases.livro import executar_com_tentativas
from ativos.usecases.movimentar_estoque import movimentar_insumo
from ativos.usecases.transferencias import despachar_transferencia

LEITURA_ADICIONADA = "adicionada"
LEITURA_ACUMULADA = "acumulada"
LEITURA_DUPLICADA = "duplicada"
LEITURA_JA_LISTADA = "ja_listada"
LEITURA_AGUARDANDO_QUANTIDADE = "aguardando_quantidade"

# Status de destino de um ativo único para cada tipo de movimentação do lote
STATUS_POR_TIPO = {
    MOV_ENTRADA: DISPONIVEL,
    MOV_SAIDA: EM_USO,
    MOV_MANUTENCAO: MANUTENCAO,
    MOV_DESCARTE: DESCARTADO,
}
TIPOS_LOTE = (MOV_ENTRADA, MOV_ENTRADA_ESTOQUE, MOV_SAIDA, MOV_MANUTENCAO, MOV_DESCARTE, MOV_TRANSFERENCIA)


class SessaoLeitura:
    """Buffer de itens lidos, indexado pelo id do ativo."""

    def __init__(
        self,
        db_path: str = DB_PATH,
        janela_segundos: Optional[float] = None,
        relogio: Callable[[], float] = time.monotonic,
        resolver: Optional[Callable[[str], Ativo]] = None,
    ):
        cfg = ParamsRepo(db_path).carregar_config()
        self.db_path = db_path
        self.janela = cfg.janela_leitura_segundos if janela_segundos is None else janela_segundos
        self.tentativas = cfg.tentativas_lote
        self.relogio = relogio
        self.resolver = resolver or self._resolver_por_codigo
        self._itens: Dict[int, ItemLido] = {}
        self._ultimas: Dict[str, float] = {}
        self.aguardando: Optional[Ativo] = None

    def _resolver_por_codigo(self, codigo: str) -> Ativo:
        row = AtivoRepo(self.db_path).get_by_codigo_barras(codigo)
        if not row:
            raise ErroNaoEncontrado(f"Código '{codigo}' não cadastrado", {"codigo_barras": codigo})
        return Ativo.from_row(row)

    @property
    def itens(self) -> List[ItemLido]:
        return list(self._itens.values())

    def __len__(self) -> int:
        return len(self._itens)

    # -------------------------
    # leitura
    # -------------------------

    def ler(self, leitura: str, quantidade: Optional[int] = None) -> Tuple[str, Any]:
        """
        Processa uma leitura crua ("COD" ou "COD*QTD").

        Returns:
            (evento, objeto): `objeto` é o ItemLido afetado, ou o Ativo
            quando o evento é LEITURA_AGUARDANDO_QUANTIDADE, ou None para
            leituras duplicadas.

        Raises:
            ErroNaoEncontrado: código desconhecido (a leitura não conta para a janela).
            ErroValidacao: outro insumo ainda aguarda quantidade; a leitura nova não
                conta para a janela e o insumo pendente continua aguardando.
        """
        bruto = (leitura or "").strip()
        codigo, qtd_lida = parse_codigo_lido(bruto)
        if not codigo:
            raise ErroValidacao("missing-required-field", "Leitura vazia.")

        agora = self.relogio()
        ultima = self._ultimas.get(bruto)
        if ultima is not None and agora - ultima < self.janela:
            return LEITURA_DUPLICADA, None

        ativo = self.resolver(codigo)
        quantidade = quantidade if quantidade is not None else qtd_lida
        pendente = self.aguardando
        if (ativo.consumivel and quantidade is None and pendente is not None
                and pendente.id != ativo.id):
            raise ErroValidacao(
                "missing-required-field",
                f"Informe a quantidade de '{pendente.nome}' antes de ler outro insumo.",
                {"campo": "quantidade", "aguardando": pendente.id, "lido": ativo.id},
            )
        self._ultimas[bruto] = agora

        if not ativo.consumivel:
            if ativo.id in self._itens:
                self._itens[ativo.id].ultima_leitura = agora
                return LEITURA_JA_LISTADA, self._itens[ativo.id]
            item = ItemLido(ativo, 1, agora)
            self._itens[ativo.id] = item
            return LEITURA_ADICIONADA, item

        if quantidade is None:
            self.aguardando = ativo
            return LEITURA_AGUARDANDO_QUANTIDADE, ativo
        return self._acumular(ativo, quantidade, agora)

    def informar_quantidade(self, quantidade: int) -> Tuple[str, ItemLido]:
        """
        Completa a leitura de um insumo que aguardava quantidade.

        Quantidade inválida levanta ErroValidacao e o insumo continua aguardando.
        """
        if self.aguardando is None:
            raise ErroValidacao("invalid-transition", "Nenhum insumo aguardando quantidade.")
        out = self._acumular(self.aguardando, quantidade, self.relogio())
        self.aguardando = None
        return out

    def _acumular(self, ativo: Ativo, quantidade: int, agora: float) -> Tuple[str, ItemLido]:
        if quantidade is None or int(quantidade) <= 0:
            raise ErroValidacao("invalid-quantity", "A quantidade deve ser maior que zero.",
                                {"quantidade": quantidade})
        item = self._itens.get(ativo.id)
        if item:
            item.quantidade += int(quantidade)
            item.ultima_leitura = agora
            return LEITURA_ACUMULADA, item
        item = ItemLido(ativo, int(quantidade), agora)
        self._itens[ativo.id] = item
        return LEITURA_ADICIONADA, item

    def remover(self, ativo_id: int) -> Optional[ItemLido]:
        return self._itens.pop(ativo_id, None)

    def cancelar(self) -> None:
        self._itens.clear()
        self._ultimas.clear()
        self.aguardando = None

    # -------------------------
    # envio
    # -------------------------

    def _gravar(self, item: ItemLido, tipo: str, kw: Dict[str, Any]) -> Tuple[int, Dict[str, Any]]:
        ativo = item.ativo
        comum = {"tecnico": kw.get("tecnico"), "criado_por": kw.get("criado_por"), "db_path": self.db_path}
        if tipo == MOV_TRANSFERENCIA:
            mov_id, etiqueta = despachar_transferencia(
                ativo.id, kw.get("destino"), quantidade=item.quantidade,
                colaborador=kw.get("colaborador"), origem=kw.get("local"),
                observacoes=kw.get("observacoes"), **comum,
            )
            return mov_id, {"etiqueta": etiqueta}
        if ativo.consumivel:
            out = movimentar_insumo(
                ativo.id, tipo, item.quantidade, local=kw.get("local"), destino=kw.get("destino"),
                colaborador=kw.get("colaborador"), observacoes=kw.get("observacoes"), **comum,
            )
            return out["movimentacao_id"], {"estoque_atual": out["estoque_atual"]}
        status_novo = STATUS_POR_TIPO.get(MOV_ENTRADA if tipo == MOV_ENTRADA_ESTOQUE else tipo)
        out = alterar_status(
            ativo.id, status_novo, colaborador=kw.get("colaborador"),
            observacoes=kw.get("observacoes"), destino=kw.get("destino"), **comum,
        )
        return out["movimentacao_id"], {"tipo": out["tipo"]}

    def enviar(
        self,
        tipo: str,
        destino: Optional[str] = None,
        local: Optional[str] = None,
        colaborador: Optional[str] = None,
        observacoes: Optional[str] = None,
        tecnico: Optional[str] = None,
        criado_por: Optional[str] = None,
    ) -> ResultadoLote:
        """
        Grava cada item da lista como uma movimentação independente.

        Args:
            tipo: Entrada, ENTRADA_ESTOQUE, Saída, Manutenção, Descarte ou Transferência.
            destino: loja de destino (obrigatória para Transferência).
            local: local de saída/entrada do saldo de insumos.

        Returns:
            ResultadoLote com todos os itens gravados.

        Raises:
            ErroValidacao: tipo inválido ou Transferência sem destino (nada é gravado).
            FalhaParcialLote: algum item falhou; `.resultado` traz sucessos e falhas.
        """
        if tipo not in TIPOS_LOTE:
            raise ErroValidacao("invalid-transition", f"Tipo '{tipo}' não pode ser usado em lote.",
                                {"tipo": tipo, "valores_aceitos": list(TIPOS_LOTE)})
        if tipo == MOV_TRANSFERENCIA and not destino:
            raise ErroValidacao("missing-required-field", "Transferência exige a loja de destino.",
                                {"campo": "destino"})
        kw = {"destino": destino, "local": local, "colaborador": colaborador,
              "observacoes": observacoes, "tecnico": tecnico, "criado_por": criado_por}

        resultado = ResultadoLote()
        for item in self.itens:
            chave = item.ativo.id
            try:
                mov_id, extra = executar_com_tentativas(
                    lambda: self._gravar(item, tipo, kw), self.tentativas
                )
            except ErroAtivos as e:
                resultado.falhas.append(ResultadoItem(chave, False, None, e.motivo, e.mensagem, e.detalhes))
                continue
            except sqlite3.OperationalError as e:
                resultado.falhas.append(ResultadoItem(chave, False, None, "database-locked", str(e)))
                continue
            resultado.sucessos.append(ResultadoItem(chave, True, mov_id, detalhes=extra))
            self._itens.pop(chave, None)

        log_transaction(
            "enviar_lote",
            {"tipo": tipo, "itens": len(resultado.sucessos) + len(resultado.falhas)},
            result={"sucessos": len(resultado.sucessos), "falhas": len(resultado.falhas)},
        )
        if resultado.falhas:
            log_system_event("lote_parcial", {"tipo": tipo, "falhas": [f.chave for f in resultado.falhas]},
                             level="warning")
            raise FalhaParcialLote(resultado)
        return resultado


def consumir_decodificador(
    decodificar: Callable[[], Optional[str]],
    sessao: SessaoLeitura,
    intervalo: Optional[float] = None,
    max_chamadas: Optional[int] = None,
    parar: Optional[Callable[[], bool]] = None,
    dormir: Callable[[float], None] = time.sleep,
) -> List[Tuple[str, str]]:
    """
    Chama `decodificar()` em intervalo fixo e entrega as leituras à sessão.

    O laço termina quando `parar()` retorna True ou após `max_chamadas`.
    Códigos desconhecidos e leituras rejeitadas são registrados no log e não
    interrompem o laço.

    Returns:
        Lista de (leitura, evento) na ordem em que ocorreram.
    """
    if intervalo is None:
        intervalo = ParamsRepo(sessao.db_path).carregar_config().intervalo_decodificacao_segundos
    eventos: List[Tuple[str, str]] = []
    chamadas = 0
    while not (parar and parar()):
        if max_chamadas is not None and chamadas >= max_chamadas:
            break
        chamadas += 1
        leitura = decodificar()
        if leitura:
            try:
                evento, _ = sessao.ler(leitura)
            except ErroNaoEncontrado as e:
                log_system_event("leitura_desconhecida", {"leitura": leitura, "erro": e.mensagem}, level="warning")
                evento = "desconhecida"
            except ErroValidacao as e:
                log_system_event("leitura_rejeitada", {"leitura": leitura, "motivo": e.motivo}, level="warning")
                evento = "rejeitada"
            eventos.append((leitura, evento))
        dormir(intervalo)
    return eventos
