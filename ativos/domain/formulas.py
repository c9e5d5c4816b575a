"""
Pure functions over the movement ledger.

These functions fold an asset's ledger entries into derived values:
dwell time between consecutive entries, per-location balances, the
projected current state and the list of invariant violations. They
never touch the database, so the same ledger always produces the same
answer and every cached field on the asset can be checked against them.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ativos.domain.models import (
    EM_USO,
    TIPO_CONSUMIVEL,
    Movimentacao,
    Projecao,
)


SEGUNDOS_DIA = 86400


def ordenar(movs: Iterable[Movimentacao]) -> List[Movimentacao]:
    """Return entries in ledger order (movement date, then id)."""
    return sorted(movs, key=lambda m: (m.data_movimentacao, m.id or 0))


def dias_inteiros(inicio: datetime, fim: datetime) -> int:
    """Whole days elapsed between two instants.

    Parameters
    ----------
    inicio, fim: datetime
        Interval bounds. ``fim`` is expected to be >= ``inicio``.

    Returns
    -------
    int
        ``floor((fim - inicio) / 1 day)``; never negative.
    """
    segundos = (fim - inicio).total_seconds()
    if segundos <= 0:
        return 0
    return int(segundos // SEGUNDOS_DIA)


def dias_no_local(movs_asc: Sequence[Movimentacao]) -> List[Optional[int]]:
    """Dwell time of each entry until the next one.

    The most recent entry is still ongoing, so its value is ``None``.
    ``movs_asc`` must already be in ledger order.
    """
    out: List[Optional[int]] = []
    for i, mov in enumerate(movs_asc):
        if i + 1 < len(movs_asc):
            out.append(dias_inteiros(mov.data_movimentacao, movs_asc[i + 1].data_movimentacao))
        else:
            out.append(None)
    return out


def ultima_sequencia_no_local(movs_asc: Sequence[Movimentacao], local: str) -> Optional[Tuple[int, int]]:
    """Bounds of the latest contiguous run of entries whose destination is ``local``.

    Returns
    -------
    tuple or None
        ``(first_index, last_index)`` inclusive, or ``None`` when the asset
        never arrived at ``local``.
    """
    fim = None
    for i in range(len(movs_asc) - 1, -1, -1):
        if movs_asc[i].destino == local:
            fim = i
            break
    if fim is None:
        return None
    inicio = fim
    while inicio > 0 and movs_asc[inicio - 1].destino == local:
        inicio -= 1
    return inicio, fim


def local_do_saldo(mov: Movimentacao) -> Optional[str]:
    """Location whose balance a consumable delta changes.

    Negative deltas debit the origin; positive deltas credit the destination.
    """
    if mov.quantidade < 0:
        return mov.origem
    if mov.quantidade > 0:
        return mov.destino
    return None


def saldos_por_local(movs: Iterable[Movimentacao]) -> Dict[str, int]:
    """On-hand balance of a consumable per location."""
    saldos: Dict[str, int] = defaultdict(int)
    for mov in movs:
        local = local_do_saldo(mov)
        if local is not None:
            saldos[local] += mov.quantidade
    return {k: v for k, v in saldos.items() if v != 0}


def saldo_ate(movs: Iterable[Movimentacao], instante: datetime) -> int:
    """Sum of deltas for entries with ``data_movimentacao <= instante``."""
    return sum(m.quantidade for m in movs if m.data_movimentacao <= instante)


def status_ate(movs: Iterable[Movimentacao], instante: datetime) -> Optional[str]:
    """Status of a unique asset at ``instante`` (``status_novo`` of the latest entry)."""
    status = None
    for mov in ordenar(movs):
        if mov.data_movimentacao > instante:
            break
        if mov.status_novo is not None:
            status = mov.status_novo
    return status


def projetar(ativo_id: int, tipo_ativo: str, movs: Iterable[Movimentacao]) -> Projecao:
    """Rebuild the asset snapshot from its ledger entries alone."""
    movs_asc = ordenar(movs)
    ultimo = movs_asc[-1] if movs_asc else None
    if tipo_ativo == TIPO_CONSUMIVEL:
        return Projecao(
            ativo_id=ativo_id,
            tipo_ativo=tipo_ativo,
            status=None,
            quantidade_estoque=sum(m.quantidade for m in movs_asc),
            local_atual=ultimo.destino if ultimo else None,
            custodiante=None,
            saldos_por_local=saldos_por_local(movs_asc),
            total_movimentacoes=len(movs_asc),
        )

    status = ultimo.status_novo if ultimo else None
    return Projecao(
        ativo_id=ativo_id,
        tipo_ativo=tipo_ativo,
        status=status,
        quantidade_estoque=0,
        local_atual=ultimo.destino if ultimo else None,
        custodiante=ultimo.colaborador if ultimo and status == EM_USO else None,
        total_movimentacoes=len(movs_asc),
    )


def violacoes(tipo_ativo: str, movs: Iterable[Movimentacao]) -> List[str]:
    """List ledger invariant violations for one asset.

    - unique assets: every entry's ``status_anterior`` equals the previous
      entry's ``status_novo``;
    - consumables: the running sum of deltas never goes negative, neither
      in total nor at any single location.
    """
    movs_asc = ordenar(movs)
    out: List[str] = []
    if tipo_ativo == TIPO_CONSUMIVEL:
        total = 0
        por_local: Dict[str, int] = defaultdict(int)
        for mov in movs_asc:
            total += mov.quantidade
            if total < 0:
                out.append(f"saldo negativo ({total}) após a movimentação {mov.id}")
            local = local_do_saldo(mov)
            if local is not None:
                por_local[local] += mov.quantidade
                if por_local[local] < 0:
                    out.append(f"saldo negativo em '{local}' após a movimentação {mov.id}")
        return out

    anterior = None
    for i, mov in enumerate(movs_asc):
        if i > 0 and mov.status_anterior != anterior:
            out.append(
                f"movimentação {mov.id}: status anterior '{mov.status_anterior}' "
                f"difere de '{anterior}'"
            )
        anterior = mov.status_novo
    return out
