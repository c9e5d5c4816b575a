# ativos/config.py
"""
Configurações globais e valores padrão do controle de ativos.

Os valores de `DEFAULTS` podem ser sobrescritos em tempo de execução pela
tabela `params` (ver `ParamsRepo` e o comando `params set`).
"""

import os
from dataclasses import dataclass
from pathlib import Path


# Caminho padrão do banco de dados SQLite
DB_PATH = os.environ.get("ATIVOS_DB", os.path.join(os.getcwd(), "ativos.db"))

# Diretório dos arquivos de log
LOGS_DIR = Path(os.environ.get("ATIVOS_LOG_DIR", os.path.join(os.getcwd(), "logs")))


@dataclass
class DefaultConfig:
    """Valores padrão para parâmetros do sistema."""
    url_confirmacao: str = "http://localhost:5173/confirmar-recebimento"
    janela_leitura_segundos: float = 2.0   # leituras repetidas do mesmo código são ignoradas
    local_padrao: str = "Estoque Central"  # local de origem quando nenhum é informado
    prefixo_codigo_barras: str = "ATV"
    tentativas_lote: int = 3               # novas tentativas por item quando o banco está travado
    timeout_lock_segundos: float = 5.0
    intervalo_decodificacao_segundos: float = 0.25


# Instância global dos valores padrão
DEFAULTS = DefaultConfig()
