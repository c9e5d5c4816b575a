# ativos/infra/logger.py
"""
Sistema de logging para as operações do controle de ativos.

Este módulo configura e fornece loggers para registrar todas as operações
críticas do sistema: movimentações do livro, transferências/recebimentos,
operações no banco de dados e eventos gerais.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from ativos.config import LOGS_DIR


# Flag global para habilitar/desabilitar logging
ENABLE_LOGGING = False
# Flag global para habilitar/desabilitar prints/output
ENABLE_OUTPUT = False


def print_system(*args, **kwargs):
    """Print controlado pelo ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)


# Configuração base dos loggers
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configura um logger específico com arquivo de saída.

    O arquivo só é aberto na primeira mensagem emitida.

    Args:
        name: Nome do logger
        log_file: Caminho do arquivo de log
        level: Nível de logging (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logger configurado
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False

    # Remove handlers existentes (reconfiguração)
    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    file_handler = logging.FileHandler(log_file, encoding='utf-8', delay=True)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


LOG_FILES = {
    "transactions": LOGS_DIR / "transactions.log",
    "movimentacoes": LOGS_DIR / "movimentacoes.log",
    "transferencias": LOGS_DIR / "transferencias.log",
    "database": LOGS_DIR / "database.log",
    "system": LOGS_DIR / "system.log",
}

# Loggers específicos para cada operação
transaction_logger = setup_logger('ativos.transactions', str(LOG_FILES["transactions"]))
movimentacao_logger = setup_logger('ativos.movimentacoes', str(LOG_FILES["movimentacoes"]))
transferencia_logger = setup_logger('ativos.transferencias', str(LOG_FILES["transferencias"]))
database_logger = setup_logger('ativos.database', str(LOG_FILES["database"]))
system_logger = setup_logger('ativos.system', str(LOG_FILES["system"]))


def _ativo() -> bool:
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return False
    Path(LOGS_DIR).mkdir(parents=True, exist_ok=True)
    return True


def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Registra uma transação completa no log.

    Args:
        operation: Tipo de operação (transferencia, alterar_status, etc.)
        data: Dados da transação
        result: Resultado da operação (opcional)
        error: Mensagem de erro (opcional)
    """
    if not _ativo():
        return
    if error:
        transaction_logger.error(f"TRANSACTION_FAILED: {operation} - {error} - Data: {data}")
    else:
        transaction_logger.info(f"TRANSACTION_SUCCESS: {operation} - Result: {result} - Data: {data}")


def log_movimentacao(tipo: str, ativo_id: Any, quantidade: Any, **kwargs) -> None:
    """
    Log específico para linhas gravadas no livro de movimentações.

    Args:
        tipo: Tipo da movimentação (Entrada, Saída, ...)
        ativo_id: Id do ativo
        quantidade: Delta gravado
        **kwargs: Dados adicionais
    """
    if not _ativo():
        return
    log_data = {"tipo": tipo, "ativo_id": ativo_id, "quantidade": quantidade, **kwargs}
    movimentacao_logger.info(f"MOVIMENTACAO: {log_data}")


def log_transferencia(action: str, ativo_id: Any, quantidade: Any, **kwargs) -> None:
    """
    Log específico para o protocolo de transferência.

    Args:
        action: Ação realizada (despacho, confirmacao, divergencia)
        ativo_id: Id do ativo
        quantidade: Quantidade despachada ou recebida
        **kwargs: Dados adicionais
    """
    if not _ativo():
        return
    log_data = {"action": action, "ativo_id": ativo_id, "quantidade": quantidade, **kwargs}
    if action == "divergencia":
        transferencia_logger.warning(f"TRANSFERENCIA_{action.upper()}: {log_data}")
    else:
        transferencia_logger.info(f"TRANSFERENCIA_{action.upper()}: {log_data}")


def log_database_operation(table: str, operation: str, affected_rows: int = 0, **kwargs) -> None:
    """
    Log específico para operações no banco de dados.

    Args:
        table: Nome da tabela
        operation: Operação SQL (INSERT, UPDATE, SELECT)
        affected_rows: Número de linhas afetadas
        **kwargs: Dados adicionais
    """
    if not _ativo():
        return
    log_data = {"table": table, "operation": operation, "affected_rows": affected_rows, **kwargs}
    database_logger.info(f"DB_{operation}: {log_data}")


def log_system_event(event: str, details: Dict[str, Any] = None, level: str = "info") -> None:
    """
    Log para eventos do sistema.

    Args:
        event: Descrição do evento
        details: Detalhes adicionais (opcional)
        level: Nível do log (info, warning, error)
    """
    if not _ativo():
        return
    log_data = {"event": event, "details": details or {}}
    log_method = getattr(system_logger, level.lower(), system_logger.info)
    log_method(f"SYSTEM_EVENT: {event} - {log_data}")


def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """
    Log para operações de arquivo (importação de planilhas, etiquetas).

    Args:
        operation: Tipo de operação (import, export)
        file_path: Caminho do arquivo
        rows_processed: Número de linhas processadas
        **kwargs: Dados adicionais
    """
    if not _ativo():
        return
    log_data = {"operation": operation, "file_path": file_path, "rows_processed": rows_processed, **kwargs}
    system_logger.info(f"FILE_{operation.upper()}: {log_data}")


def get_log_summary(log_type: str = "transactions", lines: int = 100) -> str:
    """
    Obtém um resumo dos logs recentes.

    Args:
        log_type: Tipo de log (transactions, movimentacoes, transferencias, database, system)
        lines: Número de linhas a retornar

    Returns:
        Conteúdo do log como string
    """
    log_file = LOG_FILES.get(log_type)
    if not log_file or not log_file.exists():
        return f"Log {log_type} não encontrado."

    with open(log_file, 'r', encoding='utf-8') as f:
        all_lines = f.readlines()
    return ''.join(all_lines[-lines:])
