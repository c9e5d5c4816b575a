# ativos/domain/models.py
"""
Modelos (dataclasses) e constantes do domínio.

Observação importante:
- Os repositórios aceitam e devolvem dicionários; as dataclasses servem para
  tipagem/clareza nas camadas de caso de uso e de apresentação.
- `status` só tem significado para ativos únicos. Insumos (consumíveis) são
  controlados apenas pelo saldo e estão "disponíveis" sempre que saldo > 0.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


# Tipos de ativo (fixos na criação)
TIPO_UNICO = "unique"
TIPO_CONSUMIVEL = "consumable"
TIPOS_ATIVO = (TIPO_UNICO, TIPO_CONSUMIVEL)

# Status de ativos únicos
DISPONIVEL = "Disponível"
EM_USO = "Em Uso"
MANUTENCAO = "Manutenção"
EM_TRANSITO = "Em Trânsito"
DESCARTADO = "Descartado"
STATUS_VALIDOS = (DISPONIVEL, EM_USO, MANUTENCAO, EM_TRANSITO, DESCARTADO)

# Tipos de movimentação
MOV_ENTRADA = "Entrada"
MOV_SAIDA = "Saída"
MOV_TRANSFERENCIA = "Transferência"
MOV_MANUTENCAO = "Manutenção"
MOV_DESCARTE = "Descarte"
MOV_ALTERACAO_STATUS = "Alteração de Status"
MOV_ENTRADA_ESTOQUE = "ENTRADA_ESTOQUE"
TIPOS_MOVIMENTACAO = (
    MOV_ENTRADA, MOV_SAIDA, MOV_TRANSFERENCIA, MOV_MANUTENCAO,
    MOV_DESCARTE, MOV_ALTERACAO_STATUS, MOV_ENTRADA_ESTOQUE,
)

# Tipos de divergência no recebimento
DIVERGENCIA_AVARIA = "damaged"
DIVERGENCIA_QUANTIDADE = "quantity_mismatch"
DIVERGENCIA_OUTRA = "other"
TIPOS_DIVERGENCIA = (DIVERGENCIA_AVARIA, DIVERGENCIA_QUANTIDADE, DIVERGENCIA_OUTRA)


def _parse_dt(valor: Any) -> Optional[datetime]:
    if valor is None or isinstance(valor, datetime):
        return valor
    return datetime.fromisoformat(str(valor))


@dataclass
class Ativo:
    """Cadastro do ativo com o retrato (projeção) do estado atual."""
    nome: str
    tipo_ativo: str = TIPO_UNICO
    codigo_barras: Optional[str] = None
    numero_serie: Optional[str] = None
    patrimonio: Optional[str] = None
    marca_modelo: Optional[str] = None
    categoria: Optional[str] = None
    status: Optional[str] = None
    quantidade_estoque: int = 0
    estoque_minimo: int = 0
    valor_unitario: Optional[float] = None
    fornecedor: Optional[str] = None
    versao: int = 0
    id: Optional[int] = None

    @property
    def consumivel(self) -> bool:
        return self.tipo_ativo == TIPO_CONSUMIVEL

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Ativo":
        campos = cls.__dataclass_fields__
        return cls(**{k: row[k] for k in row.keys() if k in campos})


@dataclass
class Movimentacao:
    """Linha do livro de movimentações (imutável depois de gravada)."""
    ativo_id: int
    tipo: str
    quantidade: int
    data_movimentacao: datetime
    status_anterior: Optional[str] = None
    status_novo: Optional[str] = None
    colaborador: Optional[str] = None
    tecnico_responsavel: Optional[str] = None
    origem: Optional[str] = None
    destino: Optional[str] = None
    loja_id: Optional[int] = None
    observacoes: Optional[str] = None
    criado_por: Optional[str] = None
    referencia: Optional[str] = None
    confirma_id: Optional[int] = None
    quantidade_enviada: Optional[int] = None
    divergencia: int = 0
    tipo_divergencia: Optional[str] = None
    descricao_divergencia: Optional[str] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Movimentacao":
        campos = cls.__dataclass_fields__
        dados = {k: row[k] for k in row.keys() if k in campos}
        dados["data_movimentacao"] = _parse_dt(dados.get("data_movimentacao"))
        return cls(**dados)


@dataclass
class EtiquetaEnvio:
    """Artefato de envio: URL de confirmação (conteúdo do QR) e linhas do rótulo."""
    movimentacao_id: int
    referencia: str
    url_confirmacao: str
    linhas: List[str] = field(default_factory=list)
    qr_png: Optional[bytes] = None


@dataclass
class ItemLido:
    """Item acumulado na sessão de leitura (somente em memória)."""
    ativo: Ativo
    quantidade: int
    ultima_leitura: float


@dataclass
class Projecao:
    """Estado do ativo reconstruído exclusivamente a partir do livro."""
    ativo_id: int
    tipo_ativo: str
    status: Optional[str]
    quantidade_estoque: int
    local_atual: Optional[str]
    custodiante: Optional[str]
    saldos_por_local: Dict[str, int] = field(default_factory=dict)
    total_movimentacoes: int = 0


@dataclass
class ResultadoItem:
    """Resultado de um item de uma operação em lote."""
    chave: Any
    ok: bool
    movimentacao_id: Optional[int] = None
    motivo: Optional[str] = None
    mensagem: Optional[str] = None
    detalhes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ResultadoLote:
    """Itens gravados e rejeitados de um lote; gravados nunca são desfeitos."""
    sucessos: List[ResultadoItem] = field(default_factory=list)
    falhas: List[ResultadoItem] = field(default_factory=list)

    @property
    def completo(self) -> bool:
        return not self.falhas

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": len(self.sucessos) + len(self.falhas),
            "sucessos": len(self.sucessos),
            "erros": [
                {"linha": f.chave, "motivo": f.motivo, "mensagem": f.mensagem}
                for f in self.falhas
            ],
        }
