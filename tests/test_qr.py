from ativos.adapters.qr import gerar_qr_png, salvar_png


def test_gerar_qr_png():
    png = gerar_qr_png("http://localhost:5173/confirmar-recebimento?ref=abc123")
    assert png.startswith(b"\x89PNG\r\n\x1a\n")
    assert gerar_qr_png("http://x?ref=abc", box_size=12) != png


def test_salvar_png_cria_diretorio(tmp_path):
    destino = tmp_path / "qr" / "etiqueta.png"
    path = salvar_png(gerar_qr_png("ref"), destino)
    assert path == destino
    assert destino.read_bytes().startswith(b"\x89PNG")
