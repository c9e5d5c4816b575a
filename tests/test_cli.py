import json
from pathlib import Path

from typer.testing import CliRunner

from ativos.adapters.cli import app
from ativos.infra.db import connect
from ativos.infra.repositories import AtivoRepo

runner = CliRunner()


def _migrar(tmp_path: Path) -> str:
    db_path = str(tmp_path / "ativos_cli.sqlite")
    result = runner.invoke(app, ["migrate", "--db", db_path])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["lojas", "add", "Loja Norte", "--cidade", "Manaus", "--db", db_path])
    assert result.exit_code == 0, result.output
    return db_path


def _add_notebook(db_path: str) -> None:
    result = runner.invoke(app, [
        "ativos", "add", "--nome", "Notebook", "--serie", "SN-1", "--patrimonio", "PAT-1",
        "--codigo", "ATV-CLI00001", "--tecnico", "Carlos", "--db", db_path,
    ])
    assert result.exit_code == 0, result.output


def _add_cabo(db_path: str) -> None:
    result = runner.invoke(app, [
        "ativos", "add", "--nome", "Cabo", "--tipo", "consumable", "--codigo", "CABO-CLI",
        "--quantidade", "10", "--minimo", "2", "--db", db_path,
    ])
    assert result.exit_code == 0, result.output


def test_cli_migrate_e_params(tmp_path: Path):
    db_path = _migrar(tmp_path)

    result = runner.invoke(app, ["params", "show", "--json", "--db", db_path])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["local_padrao"] == "Estoque Central"
    assert data["janela_leitura_segundos"] == 2.0

    result = runner.invoke(app, ["params", "set", "janela_leitura_segundos", "5", "--db", db_path])
    assert result.exit_code == 0, result.output
    result = runner.invoke(app, ["params", "get", "janela_leitura_segundos", "--db", db_path])
    assert result.stdout.strip() == "5"
    data = json.loads(runner.invoke(app, ["params", "show", "--json", "--db", db_path]).stdout)
    assert data["janela_leitura_segundos"] == 5.0

    result = runner.invoke(app, ["params", "set", "nao_existe", "1", "--db", db_path])
    assert result.exit_code == 1


def test_cli_loja_duplicada(tmp_path: Path):
    db_path = _migrar(tmp_path)
    result = runner.invoke(app, ["lojas", "add", "Loja Norte", "--db", db_path])
    assert result.exit_code == 1
    assert "já cadastrada" in result.output


def test_cli_transferencia_e_confirmacao(tmp_path: Path):
    db_path = _migrar(tmp_path)
    _add_notebook(db_path)

    result = runner.invoke(app, ["transferir", "1", "Loja Norte", "--colaborador", "Joana", "--db", db_path])
    assert result.exit_code == 0, result.output
    url = [ln for ln in result.stdout.splitlines() if ln.startswith("http")][0]
    assert "?ref=" in url
    assert AtivoRepo(db_path).get(1)["status"] == "Em Trânsito"

    result = runner.invoke(app, ["pendentes", "--loja", "Loja Norte", "--db", db_path])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["confirmar", url, "--db", db_path])
    assert result.exit_code == 0, result.output
    assert AtivoRepo(db_path).get(1)["status"] == "Disponível"

    result = runner.invoke(app, ["confirmar", url, "--db", db_path])
    assert result.exit_code == 1
    assert "already-confirmed" in result.output


def test_cli_transferir_salva_qr(tmp_path: Path):
    db_path = _migrar(tmp_path)
    _add_notebook(db_path)
    destino = tmp_path / "etiquetas" / "envio.png"

    result = runner.invoke(app, ["transferir", "1", "Loja Norte", "--obs", "Reposição",
                                 "--qr-png", str(destino), "--db", db_path])
    assert result.exit_code == 0, result.output
    assert destino.read_bytes().startswith(b"\x89PNG")


def test_cli_status_sem_colaborador(tmp_path: Path):
    db_path = _migrar(tmp_path)
    _add_notebook(db_path)
    result = runner.invoke(app, ["status", "1", "--para", "Em Uso", "--db", db_path])
    assert result.exit_code == 1
    assert "missing-required-field" in result.output

    result = runner.invoke(app, ["status", "1", "--para", "Em Uso", "--colaborador", "Ana", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert AtivoRepo(db_path).get(1)["status"] == "Em Uso"


def test_cli_estoque_insuficiente(tmp_path: Path):
    db_path = _migrar(tmp_path)
    _add_cabo(db_path)
    result = runner.invoke(app, ["estoque", "saida", "1", "11", "--db", db_path])
    assert result.exit_code == 1
    assert "insufficient-stock" in result.output

    result = runner.invoke(app, ["estoque", "adicionar", "1", "5", "--documento", "NF 9", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert AtivoRepo(db_path).get(1)["quantidade_estoque"] == 15


def test_cli_lote_com_falha_parcial(tmp_path: Path):
    db_path = _migrar(tmp_path)
    _add_notebook(db_path)
    _add_cabo(db_path)
    runner.invoke(app, ["status", "1", "--para", "Manutenção", "--obs", "Tela", "--db", db_path])

    result = runner.invoke(app, ["lote", "Saída", "ATV-CLI00001", "CABO-CLI*3", "--colaborador", "Ana",
                                 "--db", db_path])
    assert result.exit_code == 1
    assert "Lote com falhas" in result.output
    assert AtivoRepo(db_path).get(2)["quantidade_estoque"] == 7
    assert AtivoRepo(db_path).get(1)["status"] == "Manutenção"


def test_cli_reconstruir_e_reconciliar(tmp_path: Path):
    db_path = _migrar(tmp_path)
    _add_cabo(db_path)
    result = runner.invoke(app, ["reconstruir", "1", "--db", db_path])
    assert result.exit_code == 0, result.output

    with connect(db_path) as c:
        c.execute("UPDATE ativo SET quantidade_estoque = 99 WHERE id = 1")
    result = runner.invoke(app, ["reconstruir", "1", "--db", db_path])
    assert result.exit_code == 1

    result = runner.invoke(app, ["reconstruir", "1", "--reconciliar", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert AtivoRepo(db_path).get(1)["quantidade_estoque"] == 10


def test_cli_historico_e_movimentacoes(tmp_path: Path):
    db_path = _migrar(tmp_path)
    _add_notebook(db_path)
    assert runner.invoke(app, ["historico", "1", "--db", db_path]).exit_code == 0
    assert runner.invoke(app, ["movimentacoes", "--db", db_path]).exit_code == 0
    assert runner.invoke(app, ["movimentacoes", "--kpis", "--db", db_path]).exit_code == 0

    result = runner.invoke(app, ["historico", "42", "--db", db_path])
    assert result.exit_code == 1
    assert "ErroNaoEncontrado" in result.output


def test_cli_inventario_da_loja(tmp_path: Path):
    db_path = _migrar(tmp_path)
    _add_notebook(db_path)
    url = [ln for ln in runner.invoke(app, ["transferir", "1", "Loja Norte", "--colaborador", "Joana",
                                            "--db", db_path]).stdout.splitlines() if ln.startswith("http")][0]
    assert runner.invoke(app, ["confirmar", url, "--db", db_path]).exit_code == 0

    result = runner.invoke(app, ["lojas", "inventario", "Loja Norte", "--db", db_path])
    assert result.exit_code == 0, result.output
    assert "unicos" in result.output
    assert "total_itens" in result.output

    result = runner.invoke(app, ["lojas", "inventario", "Loja Norte", "--status", "Perdido", "--db", db_path])
    assert result.exit_code == 1
    assert "invalid-field" in result.output
