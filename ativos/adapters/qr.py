# ativos/adapters/qr.py
"""Geração de QR Code (PNG) para etiquetas de envio."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path
from typing import Union

import qrcode

from ativos.infra.logger import log_file_operation


def gerar_qr_png(conteudo: str, box_size: int = 6, border: int = 2) -> bytes:
    """Codifica `conteudo` em um QR Code e retorna os bytes do PNG."""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(conteudo)
    qr.make(fit=True)

    buffer = BytesIO()
    img = qr.make_image(fill_color="black", back_color="white")
    img.save(buffer, format="PNG")
    return buffer.getvalue()


def salvar_png(png: bytes, destino: Union[str, Path]) -> Path:
    path = Path(destino)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(png)
    log_file_operation("export", str(path), rows_processed=1, bytes=len(png))
    return path
