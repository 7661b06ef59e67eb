#!/usr/bin/env python3
# main.py
"""
Главная точка входа сервиса диспетчеризации заявок.
Запускает HTTP API, WebSocket шлюз или воркеры в зависимости от аргументов.
"""

from __future__ import annotations

import asyncio
import signal
import sys

import uvicorn

from ride_dispatch.common.constants import TypeMsg
from ride_dispatch.common.logger import log_error, log_info, setup_logging
from ride_dispatch.config import settings

COMPONENTS = ("api", "ws", "worker", "all")

# Задачи компонентов для graceful shutdown
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Настраивает обработчики SIGINT и SIGTERM."""

    def signal_handler(sig: int) -> None:
        print(f"\nПолучен сигнал остановки (sig={sig}), завершаем работу...")
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


async def _serve(app_path: str, host: str, port: int, title: str) -> None:
    """Запускает ASGI приложение под uvicorn до отмены."""
    await log_info(f"Запуск {title} на {host}:{port}...", type_msg=TypeMsg.INFO)

    config = uvicorn.Config(
        app_path,
        host=host,
        port=port,
        log_level="debug" if settings.system.DEBUG else "info",
    )
    server = uvicorn.Server(config)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await log_info(f"{title}: graceful shutdown", type_msg=TypeMsg.DEBUG)
        await server.shutdown()


async def run_dispatch_api() -> None:
    """Запускает HTTP API диспетчеризации."""
    await _serve(
        "ride_dispatch.services.dispatch_api.app:app",
        settings.deployment.DISPATCH_API_HOST,
        settings.deployment.DISPATCH_API_PORT,
        "Dispatch API",
    )


async def run_realtime_ws() -> None:
    """Запускает Realtime WebSocket Gateway."""
    await _serve(
        "ride_dispatch.services.realtime_ws.app:app",
        settings.deployment.REALTIME_WS_HOST,
        settings.deployment.REALTIME_WS_PORT,
        "Realtime WS Gateway",
    )


async def run_worker() -> None:
    """Запускает воркеры (автоотмена просроченных заявок)."""
    from ride_dispatch.worker.runner import run_workers

    await run_workers(init_infra=True)


RUNNERS = {
    "api": (run_dispatch_api,),
    "ws": (run_realtime_ws,),
    "worker": (run_worker,),
    "all": (run_dispatch_api, run_realtime_ws, run_worker),
}


def resolve_mode(argv: list[str]) -> str:
    """Режим из аргумента командной строки или COMPONENT_MODE."""
    if len(argv) > 1:
        return argv[1].strip().lower()
    if settings.system.RUN_DEV_MODE:
        return "all"
    return settings.system.COMPONENT_MODE


async def main(mode: str) -> int:
    """
    Главная функция запуска.

    Args:
        mode: Компонент (api, ws, worker, all)

    Returns:
        Код выхода
    """
    global _running_tasks

    setup_logging()
    if mode not in RUNNERS:
        await log_error(f"Неизвестный режим: {mode}")
        print_usage()
        return 2

    setup_signal_handlers()
    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}: запуск в режиме '{mode}'",
        type_msg=TypeMsg.INFO,
    )

    _running_tasks = [asyncio.create_task(runner()) for runner in RUNNERS[mode]]
    results = await asyncio.gather(*_running_tasks, return_exceptions=True)

    exit_code = 0
    for result in results:
        if isinstance(result, Exception) and not isinstance(result, asyncio.CancelledError):
            await log_error(f"Компонент завершился с ошибкой: {result}")
            exit_code = 1

    await log_info("Остановлено", type_msg=TypeMsg.INFO)
    return exit_code


def print_usage() -> None:
    print("Использование: python main.py [api|ws|worker|all]")
    print("  api     - HTTP API диспетчеризации")
    print("  ws      - Realtime WebSocket Gateway")
    print("  worker  - воркеры (автоотмена просроченных заявок)")
    print("  all     - все компоненты в одном процессе")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] in ("-h", "--help"):
        print_usage()
        sys.exit(0)
    try:
        sys.exit(asyncio.run(main(resolve_mode(sys.argv))))
    except KeyboardInterrupt:
        sys.exit(0)
