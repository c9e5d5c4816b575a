"""
Utilidades de parsing para códigos lidos e URLs de confirmação.

Leitores de código de barras entregam apenas uma string. Para lançar
vários volumes de um insumo de uma vez, o operador pode digitar o código
seguido de ``*`` e da quantidade (por exemplo, ``"ATV-1A2B3C4D*5"``). O
QR impresso na etiqueta de envio carrega a URL de confirmação, da qual
extraímos a referência do despacho.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple
from urllib.parse import parse_qs, urlparse

_QTD_RE = re.compile(r"^(?P<codigo>.+?)\s*\*\s*(?P<qtd>[-+]?\d+)$")


def parse_codigo_lido(txt: str) -> Tuple[Optional[str], Optional[int]]:
    """Separa código e quantidade de uma leitura.

    Exemplos:
        "ATV-1A2B3C4D"     → ("ATV-1A2B3C4D", None)
        "ATV-1A2B3C4D*3"   → ("ATV-1A2B3C4D", 3)
        "  7891234  * 12 " → ("7891234", 12)

    Args:
        txt: Texto lido.

    Returns:
        Uma tupla (codigo, quantidade). A quantidade é None quando não
        informada; o código é None para leituras vazias.
    """
    if txt is None:
        return None, None
    s = str(txt).strip()
    if not s:
        return None, None
    m = _QTD_RE.match(s)
    if m:
        return m.group("codigo").strip(), int(m.group("qtd"))
    return s, None


def parse_referencia(txt: str) -> Optional[str]:
    """Extrai a referência de um despacho.

    Aceita a URL completa do QR (``...?ref=<referencia>``), a URL antiga
    com ``?id=<n>`` ou a própria referência/id digitados.
    """
    if txt is None:
        return None
    s = str(txt).strip()
    if not s:
        return None
    if "?" in s or "://" in s:
        query = parse_qs(urlparse(s).query)
        for chave in ("ref", "id"):
            if query.get(chave):
                return query[chave][0].strip() or None
        return None
    return s
