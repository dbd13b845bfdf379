#!/usr/bin/env python3
# main.py
"""
Точка входа сервиса заказов Premium Taxi.
Запускает HTTP API (uvicorn) с корректной остановкой по SIGINT/SIGTERM.
"""

from __future__ import annotations

import asyncio
import signal
import sys

from src.common.constants import TypeMsg
from src.common.logger import log_info, setup_logging
from src.config import settings

_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики сигналов для graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows не поддерживает add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def run_api() -> None:
    """Запускает HTTP API. Подключения к инфраструктуре открывает lifespan приложения."""
    import uvicorn

    await log_info(
        f"Запуск Order Service на {settings.api.API_HOST}:{settings.api.API_PORT}...",
        type_msg=TypeMsg.INFO,
    )

    config = uvicorn.Config(
        "src.api.app:app",
        host=settings.api.API_HOST,
        port=settings.api.API_PORT,
        log_level="debug" if settings.system.DEBUG else "info",
    )

    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info("Order Service: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def main() -> None:
    """Главная функция запуска."""
    setup_logging()
    setup_signal_handlers()

    await log_info(
        f"Premium Taxi v{settings.system.VERSION} ({settings.system.ENVIRONMENT})",
        type_msg=TypeMsg.INFO,
    )

    api_task = asyncio.create_task(run_api())
    _running_tasks.append(api_task)
    await asyncio.gather(api_task, return_exceptions=True)


def print_usage() -> None:
    print("Использование: python main.py")
    print("Настройки читаются из config/config.json и переменных окружения (.env).")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1].lower() in ("--help", "-h"):
        print_usage()
        sys.exit(0)

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
