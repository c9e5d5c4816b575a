from ativos.adapters.parsers import parse_codigo_lido, parse_referencia


def test_parse_codigo_lido_simples():
    assert parse_codigo_lido("ATV-1A2B3C4D") == ("ATV-1A2B3C4D", None)
    assert parse_codigo_lido("  7891234 ") == ("7891234", None)


def test_parse_codigo_lido_com_quantidade():
    assert parse_codigo_lido("ATV-1A2B3C4D*3") == ("ATV-1A2B3C4D", 3)
    assert parse_codigo_lido("  7891234  * 12 ") == ("7891234", 12)


def test_parse_codigo_lido_vazio():
    assert parse_codigo_lido(None) == (None, None)
    assert parse_codigo_lido("   ") == (None, None)


def test_parse_referencia_url_e_texto():
    url = "http://localhost:5173/confirmar-recebimento?ref=abc123"
    assert parse_referencia(url) == "abc123"
    assert parse_referencia("https://x/confirmar-recebimento?id=42") == "42"
    assert parse_referencia(" abc123 ") == "abc123"
    assert parse_referencia("17") == "17"


def test_parse_referencia_sem_parametro():
    assert parse_referencia("http://localhost:5173/confirmar-recebimento") is None
    assert parse_referencia("") is None
    assert parse_referencia(None) is None
