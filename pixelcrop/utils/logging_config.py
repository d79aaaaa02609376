import inspect
import logging
import logging.handlers
import os
import sys
import time
from contextlib import contextmanager
from functools import wraps
from typing import List, Optional

DEFAULT_FORMAT = (
    '%(asctime)s - %(name)s - %(levelname)s - '
    '[%(filename)s:%(lineno)d] - %(message)s'
)

# Third-party loggers that flood DEBUG output
NOISY_LOGGERS = ("aiohttp", "PIL", "multipart", "uvicorn.access")

def _build_handlers(level: int, formatter: logging.Formatter, log_file: Optional[str],
                    max_file_size: int, backup_count: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            ))
        except OSError as e:
            sys.stderr.write(f"Warning: file logging disabled ({log_file}): {e}\n")

    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
    return handlers

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
    format_string: Optional[str] = None
):
    """
    Configure the root logger for the service

    Replaces any handlers already on the root logger with a stdout handler
    and, when ``log_file`` is given, a size-rotated file handler.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_file: Path to log file (optional)
        max_file_size: Bytes before the log file is rotated
        backup_count: Rotated files to keep
        format_string: Custom format string for log messages
    """
    level = logging.getLevelName(log_level.upper())
    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()
    for handler in _build_handlers(level, formatter, log_file, max_file_size, backup_count):
        root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("pixelcrop").setLevel(level)

def _format_details(details: Optional[dict]) -> str:
    if not details:
        return ""
    return " - " + ", ".join(f"{k}={v}" for k, v in details.items())

class EditorLogger:
    """Logger for export, storage and session components"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)
        self.component_name = name

    def debug(self, message: str, *args, **kwargs):
        self.logger.debug(message, *args, **kwargs)

    def info(self, message: str, *args, **kwargs):
        self.logger.info(message, *args, **kwargs)

    def warning(self, message: str, *args, **kwargs):
        self.logger.warning(message, *args, **kwargs)

    def error(self, message: str, *args, **kwargs):
        self.logger.error(message, *args, **kwargs)

    def critical(self, message: str, *args, **kwargs):
        self.logger.critical(message, *args, **kwargs)

    def log_processing_start(self, operation: str, details: Optional[dict] = None):
        self.logger.info(f"Starting {operation}{_format_details(details)}")

    def log_processing_end(self, operation: str, success: bool,
                           duration: float, details: Optional[dict] = None):
        """Completion at INFO, failure at ERROR"""
        status = "completed" if success else "failed"
        level = logging.INFO if success else logging.ERROR
        self.logger.log(level, f"{operation} {status} in {duration:.2f}s{_format_details(details)}")

    def log_performance_metric(self, metric_name: str, value: float, unit: str = ""):
        suffix = f" {unit}" if unit else ""
        self.logger.info(f"Performance metric: {metric_name} = {value:.2f}{suffix}")

    def log_export_result(self, format_name: str, width: int, height: int, size_bytes: int):
        """Log an encoded export artifact"""
        self.logger.info(f"Export: {format_name} - {width}x{height} px, {size_bytes} bytes")

    def log_persistence_result(self, asset_id: str, storage_id: str, format_name: str):
        """Log a persisted asset record"""
        self.logger.info(f"Persisted asset {asset_id} - storage_id={storage_id}, format={format_name}")

    def log_error_with_context(self, error: Exception, context: dict):
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        self.logger.error(f"Error in {self.component_name}: {error} - Context: {context_str}")
        self.logger.debug("Full traceback:", exc_info=True)

def get_logger(name: str) -> EditorLogger:
    return EditorLogger(name)

@contextmanager
def _timed_operation(logger: EditorLogger, operation_name: str, function_name: str):
    start_time = time.time()
    logger.log_processing_start(operation_name, {"function": function_name})
    try:
        yield
    except Exception as e:
        logger.log_processing_end(operation_name, False, time.time() - start_time)
        logger.log_error_with_context(e, {"function": function_name})
        raise
    logger.log_processing_end(operation_name, True, time.time() - start_time)

def log_performance(logger: EditorLogger, operation_name: str):
    """Log start, duration and failure of a sync or async function"""
    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                with _timed_operation(logger, operation_name, func.__name__):
                    return await func(*args, **kwargs)
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            with _timed_operation(logger, operation_name, func.__name__):
                return func(*args, **kwargs)
        return sync_wrapper

    return decorator
