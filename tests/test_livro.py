import sqlite3
import threading
import time
from datetime import datetime, timedelta

import pytest

from ativos.domain.errors import ErroConflito, ErroNaoEncontrado, ErroValidacao
from ativos.infra.db import connect, transacao
from ativos.infra.repositories import AtivoRepo, MovimentacaoRepo, ParamsRepo
from ativos.usecases.alterar_status import (
    alterar_status,
    alterar_status_em_lote,
    registrar_devolucao,
    registrar_saida,
)
from ativos.usecases.livro import (
    reconciliar,
    reconstruir_do_livro,
    saldo_em,
    status_em,
    verificar_consistencia,
)
from ativos.usecases.movimentar_estoque import (
    adicionar_estoque,
    listar_estoque_baixo,
    registrar_saida_estoque,
)
from ativos.usecases.registrar_ativo import registrar_ativo

T0 = datetime(2024, 5, 2, 8, 30, 0)


def _notebook(db_path, n=1, agora=None):
    return registrar_ativo(
        {"nome": f"Notebook {n}", "numero_serie": f"SN-{n}", "patrimonio": f"PAT-{n}"},
        tecnico="Carlos", db_path=db_path, agora=agora,
    )


def _cabo(db_path, quantidade=10, minimo=5, agora=None):
    return registrar_ativo(
        {"nome": "Cabo HDMI", "tipo_ativo": "consumable", "codigo_barras": "CABO-HDMI",
         "quantidade_estoque": quantidade, "estoque_minimo": minimo},
        db_path=db_path, agora=agora,
    )


# ----------------------
# cadastro
# ----------------------

def test_cadastro_unico_grava_primeira_linha(db_path):
    ativo = _notebook(db_path)
    assert ativo["status"] == "Disponível"
    assert ativo["codigo_barras"].startswith("ATV-")
    assert len(ativo["codigo_barras"]) == len("ATV-") + 8

    movs = MovimentacaoRepo(db_path).listar_por_ativo(ativo["id"])
    assert len(movs) == 1
    assert movs[0]["tipo"] == "Entrada"
    assert movs[0]["status_anterior"] is None
    assert movs[0]["status_novo"] == "Disponível"
    assert movs[0]["destino"] == "Estoque Central"
    assert movs[0]["quantidade"] == 1


def test_cadastro_insumo_lanca_saldo_inicial(db_path):
    cabo = _cabo(db_path)
    assert cabo["quantidade_estoque"] == 10
    movs = MovimentacaoRepo(db_path).listar_por_ativo(cabo["id"])
    assert [(m["tipo"], m["quantidade"]) for m in movs] == [("ENTRADA_ESTOQUE", 10)]


def test_cadastro_insumo_sem_saldo_nao_grava_linha(db_path):
    cabo = _cabo(db_path, quantidade=0)
    assert cabo["quantidade_estoque"] == 0
    assert MovimentacaoRepo(db_path).listar_por_ativo(cabo["id"]) == []


def test_cadastro_unico_exige_serie_e_patrimonio(db_path):
    with pytest.raises(ErroValidacao) as exc:
        registrar_ativo({"nome": "Monitor", "numero_serie": "X1"}, db_path=db_path)
    assert exc.value.motivo == "missing-required-field"
    assert exc.value.detalhes["campo"] == "patrimonio"
    assert AtivoRepo(db_path).get_all() == []


def test_cadastro_duplicado_rejeitado(db_path):
    _notebook(db_path)
    with pytest.raises(ErroConflito) as exc:
        registrar_ativo({"nome": "Outro", "numero_serie": "SN-1", "patrimonio": "PAT-99"}, db_path=db_path)
    assert exc.value.motivo == "duplicate-identifier"
    assert exc.value.detalhes == {"campo": "numero_serie", "valor": "SN-1"}


# ----------------------
# status
# ----------------------

def test_checkout_e_checkin_encerram_custodia(db_path):
    ativo = _notebook(db_path)
    res = registrar_saida(ativo["id"], "Ana", tecnico="Carlos", db_path=db_path)
    assert res["tipo"] == "Saída"
    assert res["status_anterior"] == "Disponível"
    assert reconstruir_do_livro(ativo["id"], db_path=db_path).custodiante == "Ana"

    res = registrar_devolucao(ativo["id"], db_path=db_path)
    assert res["tipo"] == "Entrada"
    proj = reconstruir_do_livro(ativo["id"], db_path=db_path)
    assert proj.status == "Disponível"
    assert proj.custodiante is None


def test_em_uso_sem_colaborador_nao_grava(db_path):
    ativo = _notebook(db_path)
    with pytest.raises(ErroValidacao) as exc:
        alterar_status(ativo["id"], "Em Uso", db_path=db_path)
    assert exc.value.motivo == "missing-required-field"
    assert len(MovimentacaoRepo(db_path).listar_por_ativo(ativo["id"])) == 1
    assert AtivoRepo(db_path).get(ativo["id"])["status"] == "Disponível"


def test_status_inexistente_e_ativo_inexistente(db_path):
    with pytest.raises(ErroNaoEncontrado):
        alterar_status(999, "Manutenção", observacoes="x", db_path=db_path)


def test_alterar_status_em_lote_reporta_por_item(db_path):
    a = _notebook(db_path, 1)
    b = _notebook(db_path, 2)
    alterar_status(b["id"], "Manutenção", observacoes="Teclado", db_path=db_path)

    res = alterar_status_em_lote([a["id"], b["id"]], "Manutenção", observacoes="Revisão", db_path=db_path)
    assert [i.chave for i in res.sucessos] == [a["id"]]
    assert [(i.chave, i.motivo) for i in res.falhas] == [(b["id"], "same-status")]
    assert AtivoRepo(db_path).get(a["id"])["status"] == "Manutenção"


def test_alterar_status_em_lote_reporta_banco_travado(db_path, monkeypatch):
    a = _notebook(db_path, 1)
    b = _notebook(db_path, 2)

    def travado(ativo_id, *args, **kwargs):
        if ativo_id == b["id"]:
            raise sqlite3.OperationalError("database is locked")
        return alterar_status(ativo_id, *args, **kwargs)

    monkeypatch.setattr("ativos.usecases.alterar_status.alterar_status", travado)
    res = alterar_status_em_lote([b["id"], a["id"]], "Manutenção", observacoes="Revisão", db_path=db_path)
    assert [i.chave for i in res.sucessos] == [a["id"]]
    assert [(i.chave, i.motivo) for i in res.falhas] == [(b["id"], "database-locked")]
    assert AtivoRepo(db_path).get(a["id"])["status"] == "Manutenção"
    assert AtivoRepo(db_path).get(b["id"])["status"] == "Disponível"


def test_insumo_nao_aceita_mudanca_de_status(db_path):
    cabo = _cabo(db_path)
    with pytest.raises(ErroValidacao) as exc:
        alterar_status(cabo["id"], "Manutenção", observacoes="Conector", db_path=db_path)
    assert exc.value.motivo == "invalid-transition"
    assert len(MovimentacaoRepo(db_path).listar_por_ativo(cabo["id"])) == 1


def test_livro_e_somente_insercao(db_path):
    ativo = _notebook(db_path)
    with pytest.raises(sqlite3.DatabaseError):
        with connect(db_path) as c:
            c.execute("UPDATE movimentacao SET tipo = 'Saída' WHERE ativo_id = ?", (ativo["id"],))
    with pytest.raises(sqlite3.DatabaseError):
        with connect(db_path) as c:
            c.execute("DELETE FROM movimentacao WHERE ativo_id = ?", (ativo["id"],))
    assert len(MovimentacaoRepo(db_path).listar_por_ativo(ativo["id"])) == 1


# ----------------------
# saldo de insumos
# ----------------------

def test_adicionar_estoque_registra_documento_e_atualiza_cadastro(db_path):
    cabo = _cabo(db_path)
    res = adicionar_estoque(cabo["id"], 5, documento="NF 123", fornecedor="Distribuidora X",
                            valor_unitario=12.5, db_path=db_path)
    assert res["estoque_anterior"] == 10
    assert res["estoque_atual"] == 15

    mov = MovimentacaoRepo(db_path).get(res["movimentacao_id"])
    assert mov["tipo"] == "ENTRADA_ESTOQUE"
    assert mov["quantidade"] == 5
    assert "Documento: NF 123" in mov["observacoes"]
    assert "Fornecedor: Distribuidora X" in mov["observacoes"]
    assert "Estoque anterior: 10 | Novo estoque: 15" in mov["observacoes"]

    ativo = AtivoRepo(db_path).get(cabo["id"])
    assert ativo["fornecedor"] == "Distribuidora X"
    assert ativo["valor_unitario"] == 12.5


def test_saida_maior_que_saldo_rejeitada_sem_gravar(db_path):
    cabo = _cabo(db_path)
    with pytest.raises(ErroConflito) as exc:
        registrar_saida_estoque(cabo["id"], 11, db_path=db_path)
    assert exc.value.motivo == "insufficient-stock"
    assert exc.value.detalhes["saldo_local"] == 10
    assert exc.value.detalhes["solicitado"] == 11
    assert AtivoRepo(db_path).get(cabo["id"])["quantidade_estoque"] == 10
    assert len(MovimentacaoRepo(db_path).listar_por_ativo(cabo["id"])) == 1


def test_saida_de_local_sem_saldo_rejeitada(db_path):
    cabo = _cabo(db_path)
    with pytest.raises(ErroConflito) as exc:
        registrar_saida_estoque(cabo["id"], 1, local="Loja Norte", db_path=db_path)
    assert exc.value.detalhes["saldo_local"] == 0


def test_quantidade_invalida_e_ativo_unico(db_path):
    cabo = _cabo(db_path)
    with pytest.raises(ErroValidacao) as exc:
        registrar_saida_estoque(cabo["id"], 0, db_path=db_path)
    assert exc.value.motivo == "invalid-quantity"

    note = _notebook(db_path)
    with pytest.raises(ErroValidacao) as exc:
        adicionar_estoque(note["id"], 1, db_path=db_path)
    assert exc.value.motivo == "invalid-transition"


def test_estoque_baixo(db_path):
    cabo = _cabo(db_path, quantidade=10, minimo=5)
    assert listar_estoque_baixo(db_path=db_path) == []
    res = registrar_saida_estoque(cabo["id"], 6, db_path=db_path)
    assert res["status_estoque"] == "BAIXO"
    baixos = listar_estoque_baixo(db_path=db_path)
    assert [b["id"] for b in baixos] == [cabo["id"]]
    assert baixos[0]["status_estoque"] == "BAIXO"


def test_saldo_em_e_status_em(db_path):
    cabo = _cabo(db_path, agora=T0)
    adicionar_estoque(cabo["id"], 5, db_path=db_path, agora=T0 + timedelta(days=1))
    registrar_saida_estoque(cabo["id"], 12, db_path=db_path, agora=T0 + timedelta(days=2))

    assert saldo_em(cabo["id"], T0 - timedelta(seconds=1), db_path=db_path) == 0
    assert saldo_em(cabo["id"], T0, db_path=db_path) == 10
    assert saldo_em(cabo["id"], T0 + timedelta(days=1, hours=1), db_path=db_path) == 15
    assert saldo_em(cabo["id"], T0 + timedelta(days=3), db_path=db_path) == 3

    note = _notebook(db_path, agora=T0)
    registrar_saida(note["id"], "Ana", db_path=db_path, agora=T0 + timedelta(days=1))
    assert status_em(note["id"], T0, db_path=db_path) == "Disponível"
    assert status_em(note["id"], T0 + timedelta(days=2), db_path=db_path) == "Em Uso"


# ----------------------
# retrato x livro
# ----------------------

def test_reconstruir_confere_com_retrato(db_path):
    cabo = _cabo(db_path)
    registrar_saida_estoque(cabo["id"], 4, db_path=db_path)
    proj = reconstruir_do_livro(cabo["id"], db_path=db_path)
    assert proj.quantidade_estoque == 6
    assert proj.saldos_por_local == {"Estoque Central": 6}
    assert verificar_consistencia(cabo["id"], db_path=db_path)["consistente"]


def test_reconciliar_corrige_retrato_adulterado(db_path):
    note = _notebook(db_path)
    with connect(db_path) as c:
        c.execute("UPDATE ativo SET status = 'Manutenção' WHERE id = ?", (note["id"],))

    res = verificar_consistencia(note["id"], db_path=db_path)
    assert not res["consistente"]
    assert res["divergencias"] == [{"campo": "status", "retrato": "Manutenção", "livro": "Disponível"}]

    reconciliar(note["id"], db_path=db_path)
    assert AtivoRepo(db_path).get(note["id"])["status"] == "Disponível"
    assert verificar_consistencia(note["id"], db_path=db_path)["consistente"]


def test_versao_desatualizada_gera_conflito(db_path):
    note = _notebook(db_path)
    versao = AtivoRepo(db_path).get(note["id"])["versao"]
    repo = AtivoRepo(db_path)
    with transacao(db_path) as conn:
        repo.atualizar_retrato(note["id"], versao, {"status": "Disponível"}, conn=conn)
    with pytest.raises(ErroConflito) as exc:
        with transacao(db_path) as conn:
            repo.atualizar_retrato(note["id"], versao, {"status": "Disponível"}, conn=conn)
    assert exc.value.motivo == "concurrent-mutation"


def test_saidas_concorrentes_nao_deixam_saldo_negativo(db_path):
    cabo = _cabo(db_path, quantidade=10)
    barreira = threading.Barrier(2)
    resultados = []

    def saida():
        barreira.wait()
        try:
            registrar_saida_estoque(cabo["id"], 7, db_path=db_path)
            resultados.append("ok")
        except ErroConflito as e:
            resultados.append(e.motivo)

    threads = [threading.Thread(target=saida) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(resultados) == ["insufficient-stock", "ok"]
    assert AtivoRepo(db_path).get(cabo["id"])["quantidade_estoque"] == 3
    assert verificar_consistencia(cabo["id"], db_path=db_path)["consistente"]


def test_timeout_do_lock_vem_dos_parametros(db_path):
    ParamsRepo(db_path).set_many([("timeout_lock_segundos", "0.2")])
    bloqueio = sqlite3.connect(db_path, timeout=0, isolation_level=None)
    bloqueio.execute("BEGIN IMMEDIATE;")
    try:
        inicio = time.monotonic()
        with pytest.raises(sqlite3.OperationalError, match="locked"):
            with transacao(db_path):
                pass
        assert time.monotonic() - inicio < 2
    finally:
        bloqueio.execute("ROLLBACK;")
        bloqueio.close()
