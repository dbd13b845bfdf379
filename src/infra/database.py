# src/infra/database.py
"""
Менеджер базы данных PostgreSQL.
Пул соединений, автоматический retry при обрыве связи и транзакции
с гарантированным возвратом соединения в пул.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from functools import wraps
from typing import Any, AsyncGenerator, Callable, Protocol, TypeVar

import asyncpg
from asyncpg import Connection, Pool, Record

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, log_warning

T = TypeVar("T")

# Ошибки, после которых имеет смысл повторить запрос
CONNECTION_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresConnectionError,
    asyncpg.InterfaceError,
    ConnectionRefusedError,
    OSError,
)

# Произвольный ID advisory lock для применения схемы
SCHEMA_LOCK_ID = 725104331


class QueryExecutor(Protocol):
    """Общий интерфейс DatabaseManager и asyncpg.Connection для репозиториев."""

    async def execute(self, query: str, *args: Any) -> str: ...

    async def fetch(self, query: str, *args: Any) -> list[Record]: ...

    async def fetchrow(self, query: str, *args: Any) -> Record | None: ...

    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any: ...


def retry_on_connection_error(
    max_attempts: int = 3,
    delay: float = 1.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Декоратор для автоматического ретрая при ошибках подключения.
    Задержка растёт линейно: delay * номер попытки.

    Args:
        max_attempts: Максимальное количество попыток
        delay: Базовая задержка между попытками (секунды)
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            last_error: BaseException | None = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except CONNECTION_ERRORS as e:
                    last_error = e
                    if attempt < max_attempts:
                        await log_warning(
                            f"Ошибка подключения к БД (попытка {attempt}/{max_attempts}): {e}",
                        )
                        await asyncio.sleep(delay * attempt)
                    else:
                        await log_error(f"Не удалось выполнить запрос после {max_attempts} попыток: {e}")

            raise last_error  # type: ignore[misc]

        return wrapper  # type: ignore[return-value]

    return decorator


class DatabaseManager:
    """
    Менеджер подключений к PostgreSQL.
    Реализует паттерн Singleton для пула соединений.
    """

    _instance: DatabaseManager | None = None
    _pool: Pool | None = None

    def __new__(cls) -> DatabaseManager:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        """Инициализация (вызывается только один раз благодаря Singleton)."""
        if hasattr(self, "_initialized"):
            return
        self._initialized = True
        self._pool = None

    @property
    def pool(self) -> Pool:
        """Возвращает пул соединений."""
        if self._pool is None:
            raise RuntimeError("Пул соединений не инициализирован. Вызовите connect() сначала.")
        return self._pool

    @property
    def is_connected(self) -> bool:
        """Создан ли пул."""
        return self._pool is not None

    @retry_on_connection_error(max_attempts=3, delay=1.0)
    async def connect(
        self,
        dsn: str,
        min_size: int = 5,
        max_size: int = 20,
        command_timeout: int = 60,
    ) -> None:
        """
        Создаёт пул соединений к PostgreSQL.

        Args:
            dsn: DSN строка подключения
            min_size: Минимальный размер пула
            max_size: Максимальный размер пула
            command_timeout: Таймаут команд (секунды)
        """
        if self._pool is not None:
            return

        await log_info("Подключение к PostgreSQL...", type_msg=TypeMsg.INFO)

        self._pool = await asyncpg.create_pool(
            dsn=dsn,
            min_size=min_size,
            max_size=max_size,
            command_timeout=command_timeout,
        )

        await log_info("Подключение к PostgreSQL установлено", type_msg=TypeMsg.INFO)

    async def disconnect(self) -> None:
        """Закрывает пул соединений."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            await log_info("Соединение с PostgreSQL закрыто", type_msg=TypeMsg.INFO)

    @asynccontextmanager
    async def acquire(self) -> AsyncGenerator[Connection, None]:
        """
        Контекстный менеджер для получения соединения из пула.

        Example:
            async with db.acquire() as conn:
                row = await conn.fetchrow("SELECT * FROM orders WHERE id = $1", order_id)
        """
        async with self.pool.acquire() as connection:
            yield connection

    @asynccontextmanager
    async def transaction(self, isolation: str = "read_committed") -> AsyncGenerator[Connection, None]:
        """
        Контекстный менеджер для транзакции.
        Commit при успешном выходе, rollback при любом исключении,
        соединение возвращается в пул в обоих случаях.

        Args:
            isolation: Уровень изоляции (read_committed, repeatable_read, serializable)

        Example:
            async with db.transaction() as conn:
                await conn.execute("UPDATE orders ...")
                await conn.execute("UPDATE drivers ...")
        """
        async with self.pool.acquire() as connection:
            async with connection.transaction(isolation=isolation):
                yield connection

    @retry_on_connection_error()
    async def execute(self, query: str, *args: Any) -> str:
        """Выполняет SQL запрос без возврата данных."""
        async with self.acquire() as conn:
            return await conn.execute(query, *args)

    @retry_on_connection_error()
    async def fetch(self, query: str, *args: Any) -> list[Record]:
        """Выполняет SQL запрос и возвращает все строки."""
        async with self.acquire() as conn:
            return await conn.fetch(query, *args)

    @retry_on_connection_error()
    async def fetchrow(self, query: str, *args: Any) -> Record | None:
        """Выполняет SQL запрос и возвращает одну строку."""
        async with self.acquire() as conn:
            return await conn.fetchrow(query, *args)

    @retry_on_connection_error()
    async def fetchval(self, query: str, *args: Any, column: int = 0) -> Any:
        """Выполняет SQL запрос и возвращает одно значение."""
        async with self.acquire() as conn:
            return await conn.fetchval(query, *args, column=column)

    async def health_check(self) -> bool:
        """
        Проверяет здоровье подключения к БД.

        Returns:
            True если подключение работает
        """
        try:
            return await self.fetchval("SELECT 1") == 1
        except Exception as e:
            await log_error(f"Health check PostgreSQL failed: {e}")
            return False


def get_db() -> DatabaseManager:
    """Возвращает глобальный экземпляр DatabaseManager."""
    return DatabaseManager()


async def init_db() -> DatabaseManager:
    """
    Подключается к базе данных по настройкам и применяет схему.

    Returns:
        Подключённый DatabaseManager
    """
    from src.config import settings

    db = get_db()
    await db.connect(
        dsn=settings.database.dsn,
        min_size=settings.database.DB_MIN_POOL_SIZE,
        max_size=settings.database.DB_MAX_POOL_SIZE,
        command_timeout=settings.database.DB_COMMAND_TIMEOUT,
    )
    await log_info(
        f"PostgreSQL подключён: {settings.database.DB_HOST}:{settings.database.DB_PORT}/{settings.database.DB_NAME}",
        type_msg=TypeMsg.INFO,
    )

    await _init_schema(db)
    return db


async def _init_schema(db: DatabaseManager) -> None:
    """Применяет migrations/init.sql под advisory lock."""
    from src.config.loader import get_project_root

    schema_path = get_project_root() / "migrations" / "init.sql"
    if not schema_path.exists():
        await log_error(f"Файл схемы БД не найден: {schema_path}")
        return

    with open(schema_path, "r", encoding="utf-8") as f:
        schema_sql = f.read()

    await log_info("Применение схемы БД...", type_msg=TypeMsg.INFO)

    try:
        # Транзакционный lock: несколько инстансов не применяют схему одновременно
        async with db.transaction() as conn:
            await conn.execute("SELECT pg_advisory_xact_lock($1)", SCHEMA_LOCK_ID)
            await conn.execute(schema_sql)
    except (asyncpg.DeadlockDetectedError, asyncpg.DuplicateObjectError, asyncpg.UniqueViolationError) as e:
        # Гонка при одновременном старте: схему уже применил другой процесс
        await log_warning(f"Игнорируем ошибку инициализации схемы (гонка процессов): {e}")
        return

    await log_info("Схема БД успешно применена", type_msg=TypeMsg.INFO)


async def close_db() -> None:
    """Закрывает подключение к базе данных."""
    await get_db().disconnect()
