# ativos/adapters/planilha_loader.py
"""
Loader para planilhas (XLSX) de cadastro de ativos.

A função:
- lê a planilha usando pandas;
- normaliza cabeçalhos (acentos, variações, sinônimos);
- retorna lista de dicionários com as chaves esperadas por `registrar_ativo`.

Observações:
- O tipo do ativo aceita "único"/"unique" e "insumo"/"consumível"/"consumable".
- Quantidades e estoque mínimo são convertidos para int; valor unitário para float.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

import pandas as pd

from ativos.domain.models import TIPO_CONSUMIVEL, TIPO_UNICO


# ---------------------------
# utilitários de normalização
# ---------------------------

def _slug(s: str) -> str:
    """Normaliza cabeçalhos: minúsculas, sem acentos, sem não-alfanumérico."""
    if s is None:
        return ""
    s = str(s).strip().lower()
    acentos = dict(zip("áàâãäéèêëíìîïóòôõöúùûüç", "aaaaaeeeeiiiiooooouuuuc"))
    s = "".join(acentos.get(ch, ch) for ch in s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def _safe_get(row, key):
    """Lê um valor da linha tratando NA do pandas."""
    val = row.get(key)
    if val is None or pd.isna(val):
        return None
    s = str(val).strip()
    return s or None


def _to_int(val: Any) -> Optional[int]:
    if val is None:
        return None
    try:
        return int(float(str(val).replace(",", ".")))
    except ValueError:
        return None


def _to_float(val: Any) -> Optional[float]:
    if val is None:
        return None
    s = str(val).strip().replace("R$", "").strip()
    # "1.234,56" → "1234.56"
    if "," in s:
        s = s.replace(".", "").replace(",", ".")
    try:
        return float(s)
    except ValueError:
        return None


def _to_tipo(val: Any) -> str:
    s = _slug(val or "")
    if s in {"consumable", "consumivel", "insumo", "insumos", "consumo"}:
        return TIPO_CONSUMIVEL
    if s in {"", "unique", "unico", "individual", "patrimonio"}:
        return TIPO_UNICO
    return s


ALIASES = {
    "nome": "nome",
    "descricao": "nome",
    "ativo": "nome",
    "item": "nome",

    "tipo": "tipo_ativo",
    "tipo ativo": "tipo_ativo",
    "tipo de ativo": "tipo_ativo",

    "codigo": "codigo_barras",
    "codigo de barras": "codigo_barras",
    "codigo barras": "codigo_barras",
    "barcode": "codigo_barras",

    "serie": "numero_serie",
    "numero serie": "numero_serie",
    "numero de serie": "numero_serie",
    "n serie": "numero_serie",
    "serial": "numero_serie",

    "patrimonio": "patrimonio",
    "plaqueta": "patrimonio",

    "marca": "marca_modelo",
    "modelo": "marca_modelo",
    "marca modelo": "marca_modelo",
    "marca e modelo": "marca_modelo",

    "categoria": "categoria",

    "quantidade": "quantidade_estoque",
    "qtd": "quantidade_estoque",
    "qtde": "quantidade_estoque",
    "estoque": "quantidade_estoque",
    "quantidade estoque": "quantidade_estoque",

    "minimo": "estoque_minimo",
    "estoque minimo": "estoque_minimo",
    "quantidade minima": "estoque_minimo",

    "valor": "valor_unitario",
    "valor unitario": "valor_unitario",
    "preco": "valor_unitario",

    "fornecedor": "fornecedor",
}


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Renomeia colunas com base em sinônimos/variações."""
    new_cols = {}
    for col in df.columns:
        key = _slug(col)
        new_cols[col] = ALIASES.get(key, key)
    return df.rename(columns=new_cols)


# ---------------------------
# loader público (XLSX)
# ---------------------------

def load_ativos_from_xlsx(path: str) -> List[Dict[str, Any]]:
    """Lê XLSX de ativos e retorna registros para `registrar_ativo`.

    Linhas sem nome são ignoradas; `linha` guarda o número da linha na planilha.
    """
    df = pd.read_excel(path, dtype="string")
    df = _normalize_columns(df)
    out: List[Dict[str, Any]] = []
    # idx 0 corresponde à linha 2 da planilha (a 1 é o cabeçalho)
    for idx, row in df.iterrows():
        nome = _safe_get(row, "nome")
        if not nome:
            continue
        out.append({
            "linha": int(idx) + 2,
            "nome": nome,
            "tipo_ativo": _to_tipo(_safe_get(row, "tipo_ativo")),
            "codigo_barras": _safe_get(row, "codigo_barras"),
            "numero_serie": _safe_get(row, "numero_serie"),
            "patrimonio": _safe_get(row, "patrimonio"),
            "marca_modelo": _safe_get(row, "marca_modelo"),
            "categoria": _safe_get(row, "categoria"),
            "quantidade_estoque": _to_int(_safe_get(row, "quantidade_estoque")) or 0,
            "estoque_minimo": _to_int(_safe_get(row, "estoque_minimo")) or 0,
            "valor_unitario": _to_float(_safe_get(row, "valor_unitario")),
            "fornecedor": _safe_get(row, "fornecedor"),
        })
    return out
