# src/common/logger.py
"""
Модуль структурированного логирования.
Поддерживает JSON и цветной текстовый формат, ротацию файлов по размеру
и отдельный файл для ошибок.
"""

from __future__ import annotations

import inspect
import json
import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

from src.common.constants import TypeMsg


DEFAULT_LOGGER_NAME = "premium_taxi"


# =============================================================================
# ФОРМАТТЕРЫ
# =============================================================================

class JsonFormatter(logging.Formatter):
    """Форматтер для JSON логов."""

    def format(self, record: logging.LogRecord) -> str:
        """Форматирует запись лога в JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        extra_data = getattr(record, "extra_data", None)
        if extra_data:
            log_data["extra"] = extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Цветной форматтер для консоли (разработка)."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"
    GRAY = "\033[90m"

    def format(self, record: logging.LogRecord) -> str:
        """Форматирует запись лога с цветом и местом вызова."""
        color = self.COLORS.get(record.levelname, self.GRAY)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

        caller_info = ""
        extra_data = getattr(record, "extra_data", None) or {}
        if extra_data.get("caller_function"):
            caller_info = (
                f" {self.GRAY}[{extra_data.get('caller_module')}."
                f"{extra_data.get('caller_function')}() "
                f"{extra_data.get('caller_file')}:{extra_data.get('caller_line')}]{self.RESET}"
            )

        message = f"{timestamp} {color}[{record.levelname}]{self.RESET}{caller_info} {record.getMessage()}"

        if record.exc_info:
            message += "\n" + self.formatException(record.exc_info)

        return message


class DateBasedRotatingFileHandler(RotatingFileHandler):
    """
    Хендлер ротации логов по размеру.
    Пишет в фиксированный файл, при переполнении переименовывает его,
    добавляя к имени дату и время ротации.
    """

    def __init__(self, log_dir: str, max_bytes: int, logger_name: str = "app", encoding: str = "utf-8"):
        """
        Args:
            log_dir: Директория для логов
            max_bytes: Максимальный размер файла в байтах
            logger_name: Имя файла без расширения
            encoding: Кодировка файла
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.logger_name = logger_name

        super().__init__(
            filename=str(self.log_dir / f"{logger_name}.log"),
            maxBytes=max_bytes,
            backupCount=0,
            encoding=encoding,
        )

    def doRollover(self) -> None:
        """Переименовывает текущий файл в архивный и открывает новый."""
        if self.stream:
            self.stream.close()
            self.stream = None

        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        archive_filename = self.log_dir / f"{self.logger_name}_{timestamp}.log"

        if os.path.exists(self.baseFilename):
            try:
                os.rename(self.baseFilename, archive_filename)
            except OSError:
                # Файл занят другим процессом: продолжаем писать в текущий
                pass

        self.stream = self._open()


# =============================================================================
# НАСТРОЙКА ЛОГГЕРОВ
# =============================================================================

@dataclass
class _LogOptions:
    """Параметры логирования, прочитанные из конфигурации."""
    level: str = "DEBUG"
    fmt: str = "colored"
    to_file: bool = False
    file_path: str = "logs/app.log"
    max_bytes: int = 10485760


_loggers: dict[str, logging.Logger] = {}
_file_handlers: dict[str, logging.Handler] = {}
_LOGGING_INITIALIZED: bool = False


def _read_options() -> _LogOptions:
    """Читает настройки логирования, при любой ошибке возвращает значения по умолчанию."""
    try:
        # Ленивый импорт: конфигурация сама логирует при загрузке
        from src.config import settings
        options = _LogOptions(
            level=settings.logging.LOG_LEVEL,
            fmt=settings.logging.LOG_FORMAT,
            to_file=settings.logging.LOG_TO_FILE,
            file_path=settings.logging.LOG_FILE_PATH,
            max_bytes=settings.logging.LOG_MAX_BYTES,
        )
    except Exception:
        return _LogOptions()

    # Защита от MagicMock в тестах
    if not isinstance(options.level, str):
        options.level = "DEBUG"
    if not isinstance(options.fmt, str):
        options.fmt = "colored"
    if not isinstance(options.file_path, str):
        options.file_path = "logs/app.log"
    return options


def _make_formatter(fmt: str) -> logging.Formatter:
    return JsonFormatter() if fmt == "json" else ColoredFormatter()


def _shared_file_handler(key: str, log_dir: Path, name: str, options: _LogOptions, level: int) -> logging.Handler:
    """Возвращает общий для всех логгеров файловый хендлер."""
    handler = _file_handlers.get(key)
    if handler is None:
        handler = DateBasedRotatingFileHandler(
            log_dir=str(log_dir),
            max_bytes=options.max_bytes,
            logger_name=name,
        )
        handler.setLevel(level)
        handler.setFormatter(_make_formatter(options.fmt))
        _file_handlers[key] = handler
    return handler


def setup_logging() -> None:
    """
    Инициализирует систему логирования.
    Вызывается при старте приложения, повторные вызовы ничего не делают.
    """
    global _LOGGING_INITIALIZED

    if _LOGGING_INITIALIZED:
        return
    _LOGGING_INITIALIZED = True

    get_logger(DEFAULT_LOGGER_NAME)

    logging.getLogger("asyncpg").setLevel(logging.WARNING)
    logging.getLogger("redis").setLevel(logging.WARNING)
    logging.getLogger("aio_pika").setLevel(logging.WARNING)
    logging.getLogger("aiormq").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str = DEFAULT_LOGGER_NAME) -> logging.Logger:
    """
    Возвращает настроенный логгер.
    Кэширует логгеры, чтобы не дублировать хендлеры.

    Args:
        name: Имя логгера

    Returns:
        Настроенный логгер
    """
    if name in _loggers:
        return _loggers[name]

    options = _read_options()

    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, options.level.upper(), logging.DEBUG))

    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(_make_formatter(options.fmt))
    logger.addHandler(console_handler)

    if options.to_file:
        log_path = Path(options.file_path)
        log_name = log_path.stem
        service_name = os.getenv("SERVICE_NAME")
        if service_name:
            log_name = f"{log_name}_{service_name}"

        logger.addHandler(_shared_file_handler("main", log_path.parent, log_name, options, logging.NOTSET))
        logger.addHandler(_shared_file_handler("error", log_path.parent, "error", options, logging.ERROR))

    logger.propagate = False

    _loggers[name] = logger
    return logger


# =============================================================================
# АСИНХРОННЫЕ ФУНКЦИИ ЛОГИРОВАНИЯ
# =============================================================================

def _get_caller_info() -> dict[str, Any]:
    """
    Возвращает информацию о коде, вызвавшем функцию логирования.

    Стек: [0] _get_caller_info, [1] log_*, [2] вызывающий код.
    Для log_debug/log_warning добавляется ещё один уровень, поэтому
    пропускаем кадры самого модуля логирования.
    """
    frame = inspect.currentframe()
    try:
        caller_frame = frame.f_back if frame else None
        while caller_frame is not None and caller_frame.f_globals.get("__name__") == __name__:
            caller_frame = caller_frame.f_back
        if caller_frame is None:
            return {}

        module = inspect.getmodule(caller_frame)
        filename = caller_frame.f_code.co_filename
        return {
            "caller_function": caller_frame.f_code.co_name,
            "caller_module": module.__name__ if module else "unknown",
            "caller_file": filename.split("/")[-1] if filename else "unknown",
            "caller_line": caller_frame.f_lineno,
        }
    except Exception:
        return {}
    finally:
        # Освобождаем ссылки на фреймы
        del frame


def _build_extra(extra: dict[str, Any] | None) -> dict[str, Any]:
    return {"extra_data": {**_get_caller_info(), **(extra or {})}}


async def log_info(
    message: str,
    *,
    type_msg: TypeMsg = TypeMsg.INFO,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Асинхронная функция логирования с выбором уровня через type_msg.

    Args:
        message: Сообщение для логирования
        type_msg: Уровень сообщения
        logger_name: Имя логгера
        extra: Дополнительные данные
    """
    logger = get_logger(logger_name)
    record_extra = _build_extra(extra)

    match type_msg:
        case TypeMsg.DEBUG:
            logger.debug(message, extra=record_extra)
        case TypeMsg.WARNING:
            logger.warning(message, extra=record_extra)
        case TypeMsg.ERROR:
            logger.error(message, extra=record_extra)
        case TypeMsg.CRITICAL:
            logger.critical(message, extra=record_extra)
        case _:
            logger.info(message, extra=record_extra)


async def log_debug(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """Логирование DEBUG уровня."""
    await log_info(message, type_msg=TypeMsg.DEBUG, logger_name=logger_name, extra=extra)


async def log_warning(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
) -> None:
    """Логирование WARNING уровня."""
    await log_info(message, type_msg=TypeMsg.WARNING, logger_name=logger_name, extra=extra)


async def log_error(
    message: str,
    logger_name: str = DEFAULT_LOGGER_NAME,
    extra: dict[str, Any] | None = None,
    exc_info: bool = False,
) -> None:
    """
    Логирование ERROR уровня.

    Args:
        message: Сообщение об ошибке
        logger_name: Имя логгера
        extra: Дополнительные данные
        exc_info: Включать ли трейсбек текущего исключения
    """
    logger = get_logger(logger_name)
    logger.error(message, extra=_build_extra(extra), exc_info=exc_info)
