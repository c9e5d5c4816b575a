# ativos/adapters/cli.py
"""
CLI do controle de ativos (Typer).

Comandos principais:
- migrate                       -> aplica migrações e cria views
- params set/get/show           -> gerencia parâmetros globais
- lojas add/list/inventario      -> cadastro mínimo de lojas e itens presentes em cada uma
- ativos add/importar/list/show/estoque-baixo
- status <ids...> --para S      -> muda status de um ou vários ativos únicos
- estoque adicionar/saida       -> movimenta saldo de insumos
- transferir <id> <loja>        -> despacha e imprime a etiqueta (QR opcional em PNG)
- confirmar <ref|url|id>        -> confirma recebimento (com divergência opcional)
- pendentes                     -> transferências sem confirmação
- historico <id>                -> linha do tempo com dias no local
- movimentacoes                 -> livro filtrado / KPIs
- reconstruir <id>              -> projeção do livro x retrato (e reconciliação)
- lote <tipo> <codigos...>      -> sessão de leitura em lote (COD ou COD*QTD)
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import asdict, fields
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from ativos.config import DB_PATH, DEFAULTS, DefaultConfig
from ativos.adapters.qr import salvar_png
from ativos.domain.errors import ErroAtivos, FalhaParcialLote
from ativos.domain.models import ResultadoLote
from ativos.infra import logger
from ativos.infra.migrations import apply_migrations
from ativos.infra.views import create_views
from ativos.infra.repositories import AtivoRepo, LojaRepo, ParamsRepo
from ativos.usecases.alterar_status import alterar_status, alterar_status_em_lote
from ativos.usecases.historico import historico, inventario_loja, kpis, listar_movimentacoes
from ativos.usecases.livro import reconciliar, reconstruir_do_livro, verificar_consistencia
from ativos.usecases.movimentar_estoque import (
    adicionar_estoque,
    listar_estoque_baixo,
    registrar_saida_estoque,
)
from ativos.usecases.registrar_ativo import registrar_ativo, registrar_ativos_lote
from ativos.usecases.sessao_leitura import LEITURA_AGUARDANDO_QUANTIDADE, SessaoLeitura
from ativos.usecases.transferencias import (
    buscar_pendente_por_codigo,
    confirmar_recebimento,
    despachar_transferencia,
    listar_pendentes,
)


app = typer.Typer(help="Controle de Ativos de TI — CLI")
console = Console()

DB_OPT = typer.Option(DB_PATH, "--db", help="Caminho do SQLite")


@app.callback()
def _main(log: bool = typer.Option(False, "--log", help="Grava os logs em ATIVOS_LOG_DIR")):
    logger.ENABLE_LOGGING = log


# -----------------------
# util
# -----------------------

def _print_json(obj) -> None:
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _fmt(val: Any) -> str:
    if val is None:
        return "-"
    if isinstance(val, float):
        return f"{val:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return str(val)


def _display_table(data: Dict[str, Any] | List[Dict[str, Any]], title: str = "Resultado",
                   colunas: Optional[List[str]] = None) -> None:
    """Exibe listas de dicts como tabela e dicts como pares campo/valor."""
    if not data:
        console.print(Panel("Nenhum dado encontrado", title=title, border_style="yellow"))
        return

    if isinstance(data, list):
        table = Table(title=title, box=box.ROUNDED)
        columns = colunas or list(data[0].keys())
        for column in columns:
            if column in ("id", "quantidade", "quantidade_estoque", "estoque_minimo", "dias_no_local", "total"):
                table.add_column(column, justify="right")
            else:
                table.add_column(column)
        for row in data:
            table.add_row(*[_fmt(row.get(col)) for col in columns])
        console.print(table)
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Campo")
    table.add_column("Valor")
    for chave, valor in data.items():
        table.add_row(chave, _fmt(valor))
    console.print(table)


def _display_lote(resultado: ResultadoLote, titulo: str) -> None:
    info = resultado.to_dict()
    panel_content = [
        f"Total de registros: {info['total']}",
        f"Processados com sucesso: {info['sucessos']}",
    ]
    if info["erros"]:
        panel_content.append(f"Erros: {len(info['erros'])}")
    console.print(Panel("\n".join(panel_content), title=titulo))

    if info["erros"]:
        erro_table = Table(title="Erros Encontrados")
        erro_table.add_column("Item")
        erro_table.add_column("Motivo")
        erro_table.add_column("Erro")
        for erro in info["erros"]:
            erro_table.add_row(str(erro["linha"]), erro["motivo"] or "?", erro["mensagem"] or "Erro desconhecido")
        console.print(erro_table)


@contextmanager
def _erros():
    """Converte erros de domínio em painel vermelho + exit code 1."""
    try:
        yield
    except FalhaParcialLote as e:
        _display_lote(e.resultado, "Lote com falhas")
        raise typer.Exit(code=1)
    except ErroAtivos as e:
        corpo = [e.mensagem, f"[dim]motivo: {e.motivo}[/dim]"]
        corpo += [f"[dim]{k}: {v}[/dim]" for k, v in e.detalhes.items()]
        console.print(Panel("\n".join(corpo), title=type(e).__name__, border_style="red"))
        raise typer.Exit(code=1)


# -----------------------
# comandos de infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = DB_OPT):
    """Aplica migrações e recria as views auxiliares."""
    apply_migrations(db_path)
    create_views(db_path)
    typer.echo(f">> Migrações aplicadas e views criadas em: {db_path}")


params_app = typer.Typer(help="Gerenciar parâmetros globais.")
app.add_typer(params_app, name="params")

CHAVES_PARAMS = [f.name for f in fields(DefaultConfig)]


@params_app.command("set")
def cmd_params_set(
    chave: str = typer.Argument(..., help=" | ".join(CHAVES_PARAMS)),
    valor: str = typer.Argument(...),
    db_path: str = DB_OPT,
):
    """Define um parâmetro global."""
    if chave not in CHAVES_PARAMS:
        typer.echo(f"Parâmetro desconhecido: {chave}. Use: {', '.join(CHAVES_PARAMS)}")
        raise typer.Exit(code=1)
    ParamsRepo(db_path).set_many([(chave, valor)])
    typer.echo(">> Parâmetro atualizado.")


@params_app.command("get")
def cmd_params_get(chave: str = typer.Argument(...), db_path: str = DB_OPT):
    """Mostra um parâmetro específico."""
    val = ParamsRepo(db_path).get(chave)
    typer.echo("(None)" if val is None else val)


@params_app.command("show")
def cmd_params_show(
    como_json: bool = typer.Option(False, "--json", help="Saída em JSON"),
    db_path: str = DB_OPT,
):
    """Exibe os parâmetros efetivos (com fallback para defaults)."""
    efetivos = asdict(ParamsRepo(db_path).carregar_config())
    if como_json:
        _print_json(efetivos)
        return
    padroes = asdict(DEFAULTS)
    rows = [{"parametro": k, "valor_atual": efetivos[k], "valor_padrao": padroes[k]} for k in CHAVES_PARAMS]
    _display_table(rows, title="Parâmetros do Sistema")
    console.print(f"[dim]Banco de dados: {db_path}[/dim]")


# -----------------------
# lojas
# -----------------------

lojas_app = typer.Typer(help="Lojas / unidades.")
app.add_typer(lojas_app, name="lojas")


@lojas_app.command("add")
def cmd_lojas_add(
    nome: str = typer.Argument(...),
    cidade: Optional[str] = typer.Option(None),
    responsavel: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Cadastra uma loja."""
    repo = LojaRepo(db_path)
    if repo.get_by_nome(nome):
        typer.echo(f"Loja '{nome}' já cadastrada.")
        raise typer.Exit(code=1)
    loja_id = repo.insert({"nome": nome, "cidade": cidade, "responsavel": responsavel})
    typer.echo(f">> Loja {loja_id} cadastrada: {nome}")


@lojas_app.command("list")
def cmd_lojas_list(db_path: str = DB_OPT):
    """Lista as lojas."""
    _display_table(LojaRepo(db_path).get_all(), title="Lojas")


@lojas_app.command("inventario")
def cmd_lojas_inventario(
    loja: str = typer.Argument(..., help="Nome ou id da loja"),
    status: Optional[str] = typer.Option(None, help="Filtra ativos únicos por status"),
    db_path: str = DB_OPT,
):
    """Itens que estão hoje na loja, com resumo."""
    with _erros():
        res = inventario_loja(loja, status=status, db_path=db_path)
    _display_table(
        res["ativos"], title=f"Inventário - {res['loja']['nome']}",
        colunas=["id", "nome", "tipo_ativo", "codigo_barras", "patrimonio", "status",
                 "quantidade_no_local", "custodiante", "ultima_movimentacao"],
    )
    _display_table(res["resumo"], title="Resumo")


# -----------------------
# ativos
# -----------------------

ativos_app = typer.Typer(help="Cadastro e consulta de ativos.")
app.add_typer(ativos_app, name="ativos")

COLUNAS_LISTA = ["id", "nome", "tipo_ativo", "codigo_barras", "patrimonio", "status",
                 "quantidade_estoque", "estoque_minimo"]


@ativos_app.command("add")
def cmd_ativos_add(
    nome: str = typer.Option(..., help="Nome do ativo"),
    tipo: str = typer.Option("unique", help="unique | consumable"),
    serie: Optional[str] = typer.Option(None, help="Número de série (únicos)"),
    patrimonio: Optional[str] = typer.Option(None, help="Patrimônio (únicos)"),
    codigo: Optional[str] = typer.Option(None, help="Código de barras (gerado se omitido)"),
    marca_modelo: Optional[str] = typer.Option(None),
    categoria: Optional[str] = typer.Option(None),
    quantidade: int = typer.Option(0, help="Saldo inicial (insumos)"),
    minimo: int = typer.Option(0, help="Estoque mínimo (insumos)"),
    valor: Optional[float] = typer.Option(None, help="Valor unitário"),
    fornecedor: Optional[str] = typer.Option(None),
    local: Optional[str] = typer.Option(None, help="Local inicial"),
    tecnico: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Cadastra um ativo."""
    with _erros():
        ativo = registrar_ativo(
            {
                "nome": nome, "tipo_ativo": tipo, "numero_serie": serie, "patrimonio": patrimonio,
                "codigo_barras": codigo, "marca_modelo": marca_modelo, "categoria": categoria,
                "quantidade_estoque": quantidade, "estoque_minimo": minimo,
                "valor_unitario": valor, "fornecedor": fornecedor, "local": local,
            },
            tecnico=tecnico, db_path=db_path,
        )
    _display_table({k: ativo[k] for k in COLUNAS_LISTA}, title="Ativo Cadastrado")


@ativos_app.command("importar")
def cmd_ativos_importar(
    path: str = typer.Argument(..., help="Caminho do XLSX de ativos"),
    tecnico: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Cadastra ativos em lote a partir de um XLSX."""
    info = registrar_ativos_lote(path, tecnico=tecnico, db_path=db_path)
    panel = [f"Total de registros: {info['total']}", f"Processados com sucesso: {info['sucessos']}"]
    if info["erros"]:
        panel.append(f"Erros: {len(info['erros'])}")
    console.print(Panel("\n".join(panel), title=info["tipo"]))
    if info["erros"]:
        _display_table(info["erros"], title="Erros Encontrados")
        raise typer.Exit(code=1)


@ativos_app.command("list")
def cmd_ativos_list(
    tipo: Optional[str] = typer.Option(None, help="unique | consumable"),
    db_path: str = DB_OPT,
):
    """Lista os ativos."""
    _display_table(AtivoRepo(db_path).get_all(tipo), title="Ativos", colunas=COLUNAS_LISTA)


@ativos_app.command("show")
def cmd_ativos_show(ativo_id: int = typer.Argument(...), db_path: str = DB_OPT):
    """Mostra o ativo com local atual e custódia projetados do livro."""
    with _erros():
        proj = reconstruir_do_livro(ativo_id, db_path=db_path)
        ativo = AtivoRepo(db_path).get(ativo_id)
    out = {k: ativo[k] for k in COLUNAS_LISTA}
    out.update({"local_atual": proj.local_atual, "custodiante": proj.custodiante,
                "movimentacoes": proj.total_movimentacoes})
    _display_table(out, title=f"Ativo {ativo_id}")
    if proj.saldos_por_local:
        _display_table([{"local": k, "saldo": v} for k, v in proj.saldos_por_local.items()],
                       title="Saldo por local")


@ativos_app.command("estoque-baixo")
def cmd_ativos_estoque_baixo(db_path: str = DB_OPT):
    """Insumos com saldo abaixo ou igual ao mínimo."""
    _display_table(listar_estoque_baixo(db_path=db_path), title="Estoque Baixo")


# -----------------------
# movimentações
# -----------------------

@app.command("status")
def cmd_status(
    ativo_ids: List[int] = typer.Argument(..., help="Um ou mais ids de ativos únicos"),
    para: str = typer.Option(..., "--para", help="Novo status"),
    colaborador: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs", help="Observações"),
    tecnico: Optional[str] = typer.Option(None),
    destino: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Altera o status de um ou vários ativos únicos."""
    with _erros():
        if len(ativo_ids) == 1:
            res = alterar_status(ativo_ids[0], para, colaborador=colaborador, observacoes=obs,
                                 tecnico=tecnico, destino=destino, db_path=db_path)
            _display_table(res, title="Status Alterado")
            return
        resultado = alterar_status_em_lote(ativo_ids, para, colaborador=colaborador, observacoes=obs,
                                           tecnico=tecnico, db_path=db_path)
    _display_lote(resultado, f"{para} em Lote")
    if resultado.falhas:
        raise typer.Exit(code=1)


estoque_app = typer.Typer(help="Saldo de insumos.")
app.add_typer(estoque_app, name="estoque")


@estoque_app.command("adicionar")
def cmd_estoque_adicionar(
    ativo_id: int = typer.Argument(...),
    quantidade: int = typer.Argument(...),
    documento: Optional[str] = typer.Option(None, help="NF / documento"),
    fornecedor: Optional[str] = typer.Option(None),
    valor: Optional[float] = typer.Option(None, help="Valor unitário"),
    local: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs"),
    tecnico: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Adiciona estoque a um insumo."""
    with _erros():
        res = adicionar_estoque(ativo_id, quantidade, documento=documento, fornecedor=fornecedor,
                                valor_unitario=valor, local=local, observacoes=obs,
                                tecnico=tecnico, db_path=db_path)
    _display_table(res, title="Estoque Adicionado")


@estoque_app.command("saida")
def cmd_estoque_saida(
    ativo_id: int = typer.Argument(...),
    quantidade: int = typer.Argument(...),
    local: Optional[str] = typer.Option(None),
    colaborador: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs"),
    tecnico: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Registra consumo de um insumo."""
    with _erros():
        res = registrar_saida_estoque(ativo_id, quantidade, local=local, colaborador=colaborador,
                                      observacoes=obs, tecnico=tecnico, db_path=db_path)
    _display_table(res, title="Saída de Estoque")


@app.command("transferir")
def cmd_transferir(
    ativo_id: int = typer.Argument(...),
    destino: str = typer.Argument(..., help="Loja de destino (nome ou id)"),
    quantidade: int = typer.Option(1, help="Quantidade (insumos)"),
    colaborador: Optional[str] = typer.Option(None, help="Destinatário"),
    tecnico: Optional[str] = typer.Option(None),
    origem: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs"),
    qr_png: Optional[str] = typer.Option(None, "--qr-png", help="Salva o QR da etiqueta neste arquivo"),
    db_path: str = DB_OPT,
):
    """Despacha uma transferência e mostra a etiqueta de envio."""
    with _erros():
        mov_id, etiqueta = despachar_transferencia(
            ativo_id, destino, quantidade=quantidade, colaborador=colaborador, tecnico=tecnico,
            origem=origem, observacoes=obs, gerar_qr=qr_png is not None, db_path=db_path,
        )
    console.print(Panel("\n".join(etiqueta.linhas), title=f"Etiqueta de Envio #{mov_id}"))
    typer.echo(etiqueta.url_confirmacao)
    if qr_png:
        salvar_png(etiqueta.qr_png, qr_png)
        typer.echo(f">> QR salvo em: {qr_png}")


@app.command("confirmar")
def cmd_confirmar(
    referencia: str = typer.Argument(..., help="Referência, URL do QR ou id do despacho"),
    quantidade: Optional[int] = typer.Option(None, help="Quantidade recebida (insumos)"),
    obs: Optional[str] = typer.Option(None, "--obs"),
    divergencia: Optional[str] = typer.Option(None, help="damaged | quantity_mismatch | other"),
    descricao: Optional[str] = typer.Option(None, help="Descrição da divergência"),
    tecnico: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Confirma o recebimento de uma transferência."""
    with _erros():
        res = confirmar_recebimento(
            referencia, quantidade_recebida=quantidade, observacoes=obs,
            divergencia=divergencia is not None, tipo_divergencia=divergencia,
            descricao_divergencia=descricao, tecnico=tecnico, db_path=db_path,
        )
    _display_table(res, title="Recebimento Confirmado")
    if res["divergencia"]:
        console.print(f"[bold yellow]Divergência registrada: {res['tipo_divergencia']}[/]")


@app.command("pendentes")
def cmd_pendentes(
    loja: Optional[str] = typer.Option(None, help="Loja de destino"),
    codigo: Optional[str] = typer.Option(None, help="Código de barras do item recebido"),
    db_path: str = DB_OPT,
):
    """Lista transferências aguardando confirmação."""
    colunas = ["movimentacao_id", "ativo_nome", "codigo_barras", "quantidade", "origem",
               "destino", "colaborador", "data_envio", "referencia"]
    with _erros():
        if codigo:
            rows = [buscar_pendente_por_codigo(codigo, loja=loja, db_path=db_path)]
        else:
            rows = listar_pendentes(loja=loja, db_path=db_path)
    _display_table(rows, title="Transferências Pendentes", colunas=colunas)


@app.command("historico")
def cmd_historico(
    ativo_id: int = typer.Argument(...),
    local: Optional[str] = typer.Option(None, help="Restringe à permanência nesta loja"),
    db_path: str = DB_OPT,
):
    """Linha do tempo do ativo com dias em cada local."""
    with _erros():
        res = historico(ativo_id, local=local, db_path=db_path)
    resumo = {"ativo": res["ativo"]["nome"], "local_atual": res["local_atual"],
              "custodiante": res["custodiante"]}
    if local is not None:
        resumo.update({"data_chegada": res["data_chegada"], "dias_na_unidade": res["dias_na_unidade"]})
    _display_table(resumo, title=f"Histórico do Ativo {ativo_id}")
    _display_table(
        res["movimentacoes"], title="Movimentações",
        colunas=["id", "data_movimentacao", "tipo", "quantidade", "status_novo", "origem",
                 "destino", "colaborador", "dias_no_local"],
    )


@app.command("movimentacoes")
def cmd_movimentacoes(
    ativo_id: Optional[int] = typer.Option(None, "--ativo"),
    tipo: Optional[str] = typer.Option(None),
    loja_id: Optional[int] = typer.Option(None, "--loja"),
    tecnico: Optional[str] = typer.Option(None),
    inicio: Optional[str] = typer.Option(None, help="YYYY-MM-DD"),
    fim: Optional[str] = typer.Option(None, help="YYYY-MM-DD"),
    pagina: int = typer.Option(1),
    limite: int = typer.Option(20),
    mostrar_kpis: bool = typer.Option(False, "--kpis", help="Mostra indicadores do período"),
    db_path: str = DB_OPT,
):
    """Lista o livro de movimentações."""
    if mostrar_kpis:
        res = kpis(data_inicio=inicio, data_fim=fim, db_path=db_path)
        _display_table({k: v for k, v in res.items() if not isinstance(v, (list, dict))}, title="KPIs")
        _display_table(res["por_tipo"], title="Movimentações por Tipo")
        _display_table(res["tecnicos_mais_ativos"], title="Técnicos Mais Ativos")
        return
    with _erros():
        res = listar_movimentacoes(ativo_id=ativo_id, tipo=tipo, loja_id=loja_id, tecnico=tecnico,
                                   data_inicio=inicio, data_fim=fim, pagina=pagina, limite=limite,
                                   db_path=db_path)
    _display_table(
        res["movimentacoes"], title=f"Movimentações (página {res['pagina']}/{max(res['paginas'], 1)})",
        colunas=["id", "data_movimentacao", "ativo_nome", "tipo", "quantidade", "origem",
                 "destino", "colaborador", "tecnico_responsavel"],
    )
    console.print(f"[dim]Total: {res['total']}[/dim]")


@app.command("reconstruir")
def cmd_reconstruir(
    ativo_id: int = typer.Argument(...),
    reconciliar_retrato: bool = typer.Option(False, "--reconciliar", help="Regrava o retrato a partir do livro"),
    db_path: str = DB_OPT,
):
    """Compara o retrato do ativo com a projeção do livro."""
    with _erros():
        if reconciliar_retrato:
            reconciliar(ativo_id, db_path=db_path)
        res = verificar_consistencia(ativo_id, db_path=db_path)
        proj = reconstruir_do_livro(ativo_id, db_path=db_path)
    _display_table({"status": proj.status, "quantidade_estoque": proj.quantidade_estoque,
                    "local_atual": proj.local_atual, "custodiante": proj.custodiante,
                    "consistente": res["consistente"]}, title="Projeção do Livro")
    if res["divergencias"]:
        _display_table(res["divergencias"], title="Retrato x Livro")
    for v in res["violacoes"]:
        console.print(f"[bold red]{v}[/]")
    if not res["consistente"]:
        raise typer.Exit(code=1)


@app.command("lote")
def cmd_lote(
    tipo: str = typer.Argument(..., help="Entrada | ENTRADA_ESTOQUE | Saída | Manutenção | Descarte | Transferência"),
    codigos: List[str] = typer.Argument(..., help="Códigos lidos (COD ou COD*QTD)"),
    destino: Optional[str] = typer.Option(None),
    local: Optional[str] = typer.Option(None),
    colaborador: Optional[str] = typer.Option(None),
    obs: Optional[str] = typer.Option(None, "--obs"),
    tecnico: Optional[str] = typer.Option(None),
    db_path: str = DB_OPT,
):
    """Processa uma sessão de leitura em lote; insumos sem quantidade contam 1."""
    sessao = SessaoLeitura(db_path=db_path, janela_segundos=0)
    with _erros():
        for leitura in codigos:
            evento, _ = sessao.ler(leitura)
            if evento == LEITURA_AGUARDANDO_QUANTIDADE:
                sessao.informar_quantidade(1)
        _display_table(
            [{"id": i.ativo.id, "nome": i.ativo.nome, "quantidade": i.quantidade} for i in sessao.itens],
            title="Itens Lidos",
        )
        resultado = sessao.enviar(tipo, destino=destino, local=local, colaborador=colaborador,
                                  observacoes=obs, tecnico=tecnico)
    _display_lote(resultado, f"{tipo} em Lote")


@app.command("logs")
def cmd_logs(
    tipo: str = typer.Argument("transactions", help=" | ".join(logger.LOG_FILES)),
    linhas: int = typer.Option(50, help="Últimas N linhas"),
):
    """Mostra as linhas mais recentes de um arquivo de log."""
    typer.echo(logger.get_log_summary(tipo, lines=linhas))


# Entry point opcional:
def main():
    app()


if __name__ == "__main__":
    main()
