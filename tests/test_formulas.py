from datetime import datetime, timedelta

from ativos.domain.formulas import (
    dias_inteiros,
    dias_no_local,
    ordenar,
    projetar,
    saldo_ate,
    saldos_por_local,
    status_ate,
    ultima_sequencia_no_local,
    violacoes,
)
from ativos.domain.models import Movimentacao

T0 = datetime(2024, 3, 1, 9, 0, 0)


def _mov(id, dt, tipo="Entrada", quantidade=1, anterior=None, novo=None, origem=None, destino=None, colaborador=None):
    return Movimentacao(
        id=id, ativo_id=1, tipo=tipo, quantidade=quantidade, data_movimentacao=dt,
        status_anterior=anterior, status_novo=novo, origem=origem, destino=destino,
        colaborador=colaborador,
    )


def test_dias_inteiros_arredonda_para_baixo():
    assert dias_inteiros(T0, T0 + timedelta(days=2, hours=23)) == 2
    assert dias_inteiros(T0, T0) == 0
    assert dias_inteiros(T0 + timedelta(days=1), T0) == 0


def test_dias_no_local_ultima_linha_em_aberto():
    movs = [
        _mov(1, T0),
        _mov(2, T0 + timedelta(days=3, hours=12)),
        _mov(3, T0 + timedelta(days=10)),
    ]
    assert dias_no_local(movs) == [3, 6, None]
    assert dias_no_local([]) == []


def test_ordenar_por_data_e_id():
    a = _mov(2, T0)
    b = _mov(1, T0)
    c = _mov(3, T0 - timedelta(days=1))
    assert [m.id for m in ordenar([a, b, c])] == [3, 1, 2]


def test_ultima_sequencia_no_local():
    movs = [
        _mov(1, T0, destino="A"),
        _mov(2, T0 + timedelta(days=1), destino="B"),
        _mov(3, T0 + timedelta(days=2), destino="B"),
        _mov(4, T0 + timedelta(days=3), destino="A"),
        _mov(5, T0 + timedelta(days=4), destino="A"),
    ]
    assert ultima_sequencia_no_local(movs, "A") == (3, 4)
    assert ultima_sequencia_no_local(movs, "B") == (1, 2)
    assert ultima_sequencia_no_local(movs, "C") is None


def test_saldos_por_local_conserva_transferencia():
    movs = [
        _mov(1, T0, "ENTRADA_ESTOQUE", 10, destino="Central"),
        _mov(2, T0 + timedelta(hours=1), "Transferência", -7, origem="Central", destino="Loja"),
        _mov(3, T0 + timedelta(days=1), "Entrada", 7, origem="Central", destino="Loja"),
    ]
    assert saldos_por_local(movs) == {"Central": 3, "Loja": 7}
    assert saldo_ate(movs, T0 + timedelta(hours=2)) == 3
    assert saldo_ate(movs, T0 + timedelta(days=2)) == 10
    assert saldo_ate(movs, T0 - timedelta(seconds=1)) == 0


def test_status_ate():
    movs = [
        _mov(1, T0, novo="Disponível"),
        _mov(2, T0 + timedelta(days=1), anterior="Disponível", novo="Em Uso", colaborador="Ana"),
        _mov(3, T0 + timedelta(days=5), anterior="Em Uso", novo="Disponível"),
    ]
    assert status_ate(movs, T0 - timedelta(days=1)) is None
    assert status_ate(movs, T0 + timedelta(days=2)) == "Em Uso"
    assert status_ate(movs, T0 + timedelta(days=5)) == "Disponível"


def test_projetar_unico_custodia():
    movs = [
        _mov(1, T0, novo="Disponível", destino="Central"),
        _mov(2, T0 + timedelta(days=1), "Saída", anterior="Disponível", novo="Em Uso",
             destino="Central", colaborador="Ana"),
    ]
    proj = projetar(1, "unique", movs)
    assert proj.status == "Em Uso"
    assert proj.custodiante == "Ana"
    assert proj.local_atual == "Central"
    assert proj.total_movimentacoes == 2

    movs.append(_mov(3, T0 + timedelta(days=2), "Entrada", anterior="Em Uso", novo="Disponível",
                     destino="Central", colaborador="Ana"))
    assert projetar(1, "unique", movs).custodiante is None


def test_projetar_insumo():
    movs = [
        _mov(1, T0, "ENTRADA_ESTOQUE", 10, destino="Central"),
        _mov(2, T0 + timedelta(hours=1), "Saída", -4, origem="Central"),
    ]
    proj = projetar(9, "consumable", movs)
    assert proj.quantidade_estoque == 6
    assert proj.status is None
    assert proj.saldos_por_local == {"Central": 6}


def test_violacoes_detecta_quebra_de_cadeia_e_saldo_negativo():
    ok = [
        _mov(1, T0, novo="Disponível"),
        _mov(2, T0 + timedelta(days=1), anterior="Disponível", novo="Em Uso"),
    ]
    assert violacoes("unique", ok) == []

    quebrada = ok + [_mov(3, T0 + timedelta(days=2), anterior="Manutenção", novo="Disponível")]
    assert len(violacoes("unique", quebrada)) == 1

    negativo = [
        _mov(1, T0, "ENTRADA_ESTOQUE", 2, destino="Central"),
        _mov(2, T0 + timedelta(hours=1), "Saída", -3, origem="Central"),
    ]
    out = violacoes("consumable", negativo)
    assert any("saldo negativo (-1)" in v for v in out)
    assert any("'Central'" in v for v in out)
