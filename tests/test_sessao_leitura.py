import pytest

from ativos.domain.errors import ErroNaoEncontrado, ErroValidacao, FalhaParcialLote
from ativos.infra.repositories import AtivoRepo
from ativos.usecases.alterar_status import alterar_status
from ativos.usecases.registrar_ativo import registrar_ativo
from ativos.usecases.sessao_leitura import (
    LEITURA_ACUMULADA,
    LEITURA_ADICIONADA,
    LEITURA_AGUARDANDO_QUANTIDADE,
    LEITURA_DUPLICADA,
    LEITURA_JA_LISTADA,
    SessaoLeitura,
    consumir_decodificador,
)


class Relogio:
    def __init__(self):
        self.t = 100.0

    def __call__(self):
        return self.t


def _seed(db_path):
    a = registrar_ativo({"nome": "Notebook A", "numero_serie": "SN-A", "patrimonio": "PAT-A",
                         "codigo_barras": "ATV-AAAA0001"}, db_path=db_path)
    b = registrar_ativo({"nome": "Notebook B", "numero_serie": "SN-B", "patrimonio": "PAT-B",
                         "codigo_barras": "ATV-BBBB0002"}, db_path=db_path)
    cabo = registrar_ativo({"nome": "Cabo de rede", "tipo_ativo": "consumable", "codigo_barras": "CABO-RJ45",
                            "quantidade_estoque": 10, "estoque_minimo": 2}, db_path=db_path)
    return a, b, cabo


def test_leitura_repetida_dentro_da_janela_e_ignorada(db_path):
    a, _, _ = _seed(db_path)
    relogio = Relogio()
    sessao = SessaoLeitura(db_path, janela_segundos=2, relogio=relogio)

    evento, item = sessao.ler("ATV-AAAA0001")
    assert evento == LEITURA_ADICIONADA
    assert item.ativo.id == a["id"]
    assert item.quantidade == 1

    relogio.t += 0.5
    assert sessao.ler("ATV-AAAA0001") == (LEITURA_DUPLICADA, None)

    relogio.t += 3
    evento, item = sessao.ler("ATV-AAAA0001")
    assert evento == LEITURA_JA_LISTADA
    assert item.quantidade == 1
    assert len(sessao) == 1


def test_insumo_pede_quantidade_e_acumula(db_path):
    _, _, cabo = _seed(db_path)
    relogio = Relogio()
    sessao = SessaoLeitura(db_path, relogio=relogio)

    evento, ativo = sessao.ler("CABO-RJ45")
    assert evento == LEITURA_AGUARDANDO_QUANTIDADE
    assert ativo.id == cabo["id"]
    assert len(sessao) == 0

    evento, item = sessao.informar_quantidade(2)
    assert evento == LEITURA_ADICIONADA
    assert sessao.aguardando is None

    evento, item = sessao.ler("CABO-RJ45*3")
    assert evento == LEITURA_ACUMULADA
    assert item.quantidade == 5
    assert len(sessao) == 1


def test_quantidade_invalida_e_leitura_vazia(db_path):
    _seed(db_path)
    sessao = SessaoLeitura(db_path, relogio=Relogio())
    with pytest.raises(ErroValidacao) as exc:
        sessao.ler("CABO-RJ45", quantidade=0)
    assert exc.value.motivo == "invalid-quantity"
    with pytest.raises(ErroValidacao):
        sessao.ler("   ")
    with pytest.raises(ErroValidacao):
        sessao.informar_quantidade(1)


def test_quantidade_invalida_mantem_insumo_aguardando(db_path):
    _, _, cabo = _seed(db_path)
    relogio = Relogio()
    sessao = SessaoLeitura(db_path, relogio=relogio)
    sessao.ler("CABO-RJ45")

    with pytest.raises(ErroValidacao) as exc:
        sessao.informar_quantidade(0)
    assert exc.value.motivo == "invalid-quantity"
    assert sessao.aguardando.id == cabo["id"]

    evento, item = sessao.informar_quantidade(3)
    assert evento == LEITURA_ADICIONADA
    assert item.quantidade == 3
    assert sessao.aguardando is None


def test_outro_insumo_nao_substitui_o_que_aguarda_quantidade(db_path):
    _, _, cabo = _seed(db_path)
    registrar_ativo({"nome": "Fita isolante", "tipo_ativo": "consumable", "codigo_barras": "FITA-01",
                     "quantidade_estoque": 5}, db_path=db_path)
    relogio = Relogio()
    sessao = SessaoLeitura(db_path, relogio=relogio)
    sessao.ler("CABO-RJ45")

    with pytest.raises(ErroValidacao) as exc:
        sessao.ler("FITA-01")
    assert exc.value.motivo == "missing-required-field"
    assert exc.value.detalhes["aguardando"] == cabo["id"]
    assert sessao.aguardando.id == cabo["id"]

    sessao.informar_quantidade(2)
    evento, _ = sessao.ler("FITA-01")
    assert evento == LEITURA_AGUARDANDO_QUANTIDADE

    evento, item = sessao.ler("ATV-AAAA0001")
    assert evento == LEITURA_ADICIONADA


def test_codigo_desconhecido_nao_conta_para_janela(db_path):
    sessao = SessaoLeitura(db_path, relogio=Relogio())
    with pytest.raises(ErroNaoEncontrado):
        sessao.ler("NAO-EXISTE")
    with pytest.raises(ErroNaoEncontrado):
        sessao.ler("NAO-EXISTE")


def test_envio_parcial_mantem_item_rejeitado(db_path):
    a, b, cabo = _seed(db_path)
    alterar_status(b["id"], "Manutenção", observacoes="Tela", db_path=db_path)

    sessao = SessaoLeitura(db_path, janela_segundos=0, relogio=Relogio())
    sessao.ler("ATV-AAAA0001")
    sessao.ler("ATV-BBBB0002")
    sessao.ler("CABO-RJ45*4")

    with pytest.raises(FalhaParcialLote) as exc:
        sessao.enviar("Saída", colaborador="Ana", tecnico="Carlos")
    resultado = exc.value.resultado
    assert [s.chave for s in resultado.sucessos] == [a["id"], cabo["id"]]
    assert [(f.chave, f.motivo) for f in resultado.falhas] == [(b["id"], "invalid-transition")]
    assert resultado.to_dict()["erros"][0]["linha"] == b["id"]

    assert [i.ativo.id for i in sessao.itens] == [b["id"]]
    repo = AtivoRepo(db_path)
    assert repo.get(a["id"])["status"] == "Em Uso"
    assert repo.get(b["id"])["status"] == "Manutenção"
    assert repo.get(cabo["id"])["quantidade_estoque"] == 6


def test_envio_parcial_com_insumo_sem_saldo(db_path):
    a, b, cabo = _seed(db_path)
    sessao = SessaoLeitura(db_path, janela_segundos=0, relogio=Relogio())
    sessao.ler("ATV-AAAA0001")
    sessao.ler("CABO-RJ45*15")
    sessao.ler("ATV-BBBB0002")

    with pytest.raises(FalhaParcialLote) as exc:
        sessao.enviar("Saída", colaborador="Ana")
    resultado = exc.value.resultado
    assert [s.chave for s in resultado.sucessos] == [a["id"], b["id"]]
    assert [(f.chave, f.motivo) for f in resultado.falhas] == [(cabo["id"], "insufficient-stock")]
    assert resultado.falhas[0].detalhes["solicitado"] == 15

    assert [(i.ativo.id, i.quantidade) for i in sessao.itens] == [(cabo["id"], 15)]
    repo = AtivoRepo(db_path)
    assert repo.get(a["id"])["status"] == "Em Uso"
    assert repo.get(b["id"])["status"] == "Em Uso"
    assert repo.get(cabo["id"])["quantidade_estoque"] == 10


def test_envio_completo_esvazia_a_lista(db_path):
    a, _, cabo = _seed(db_path)
    sessao = SessaoLeitura(db_path, relogio=Relogio())
    sessao.ler("ATV-AAAA0001")
    sessao.ler("CABO-RJ45*2")

    resultado = sessao.enviar("Transferência", destino="Loja Norte", colaborador="Joana")
    assert resultado.completo
    assert len(resultado.sucessos) == 2
    assert resultado.sucessos[0].detalhes["etiqueta"].referencia
    assert len(sessao) == 0
    assert AtivoRepo(db_path).get(a["id"])["status"] == "Em Trânsito"
    assert AtivoRepo(db_path).get(cabo["id"])["quantidade_estoque"] == 8


def test_envio_com_tipo_invalido_nao_grava(db_path):
    _seed(db_path)
    sessao = SessaoLeitura(db_path, relogio=Relogio())
    sessao.ler("ATV-AAAA0001")
    with pytest.raises(ErroValidacao) as exc:
        sessao.enviar("Alteração de Status")
    assert exc.value.motivo == "invalid-transition"
    with pytest.raises(ErroValidacao) as exc:
        sessao.enviar("Transferência")
    assert exc.value.motivo == "missing-required-field"
    assert len(sessao) == 1


def test_remover_e_cancelar(db_path):
    a, _, _ = _seed(db_path)
    sessao = SessaoLeitura(db_path, relogio=Relogio())
    sessao.ler("ATV-AAAA0001")
    sessao.ler("ATV-BBBB0002")
    assert sessao.remover(a["id"]).ativo.id == a["id"]
    assert len(sessao) == 1
    sessao.cancelar()
    assert len(sessao) == 0


def test_consumir_decodificador(db_path):
    _seed(db_path)
    leituras = iter(["ATV-AAAA0001", None, "ATV-AAAA0001", "XYZ-000"])
    pausas = []
    sessao = SessaoLeitura(db_path, relogio=Relogio())

    eventos = consumir_decodificador(
        lambda: next(leituras), sessao, intervalo=0.1, max_chamadas=4, dormir=pausas.append,
    )
    assert eventos == [
        ("ATV-AAAA0001", LEITURA_ADICIONADA),
        ("ATV-AAAA0001", LEITURA_DUPLICADA),
        ("XYZ-000", "desconhecida"),
    ]
    assert pausas == [0.1] * 4
    assert len(sessao) == 1


def test_decodificador_registra_leitura_rejeitada(db_path):
    _seed(db_path)
    registrar_ativo({"nome": "Fita isolante", "tipo_ativo": "consumable", "codigo_barras": "FITA-01",
                     "quantidade_estoque": 5}, db_path=db_path)
    leituras = iter(["CABO-RJ45", "FITA-01"])
    sessao = SessaoLeitura(db_path, relogio=Relogio())

    eventos = consumir_decodificador(lambda: next(leituras), sessao, intervalo=0, max_chamadas=2,
                                     dormir=lambda s: None)
    assert eventos == [("CABO-RJ45", LEITURA_AGUARDANDO_QUANTIDADE), ("FITA-01", "rejeitada")]
    assert sessao.aguardando.nome == "Cabo de rede"
