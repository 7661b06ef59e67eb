#!/usr/bin/env python3
# entrypoint_dispatch_api.py
"""
Точка входа для запуска HTTP API диспетчеризации в Docker контейнере.
Порт: settings.deployment.DISPATCH_API_PORT
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

# Добавляем корневую директорию проекта в путь
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from main import main


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main(mode="api")))
    except KeyboardInterrupt:
        pass
