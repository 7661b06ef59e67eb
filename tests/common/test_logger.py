# tests/common/test_logger.py
"""
Тесты для модуля логирования.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ride_dispatch.common.constants import TypeMsg
from ride_dispatch.common.logger import (
    ColoredFormatter,
    DateBasedRotatingFileHandler,
    JsonFormatter,
    _get_caller_info,
    log_debug,
    log_error,
    log_info,
    log_warning,
)


def _record(message: str = "Тестовое сообщение", level: int = logging.INFO) -> logging.LogRecord:
    return logging.LogRecord(
        name="ride_dispatch",
        level=level,
        pathname="test.py",
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )


class TestJsonFormatter:
    """Тесты для JSON форматтера."""

    def test_format_basic_record(self) -> None:
        """Проверяет базовые поля."""
        data = json.loads(JsonFormatter().format(_record()))

        assert data["level"] == "INFO"
        assert data["logger"] == "ride_dispatch"
        assert data["message"] == "Тестовое сообщение"
        assert data["timestamp"].endswith("Z")

    def test_format_with_extra(self) -> None:
        """Дополнительные данные попадают в поле extra."""
        record = _record()
        record.extra_data = {"request_id": "abc"}

        data = json.loads(JsonFormatter().format(record))

        assert data["extra"] == {"request_id": "abc"}

    def test_format_with_exception(self) -> None:
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record(level=logging.ERROR)
            record.exc_info = sys.exc_info()

        data = json.loads(JsonFormatter().format(record))

        assert "ValueError: boom" in data["exception"]


class TestColoredFormatter:
    """Тесты для цветного форматтера."""

    def test_contains_level_and_message(self) -> None:
        output = ColoredFormatter().format(_record(level=logging.WARNING))

        assert "[WARNING]" in output
        assert "Тестовое сообщение" in output

    def test_caller_info(self) -> None:
        record = _record()
        record.extra_data = {
            "caller_function": "accept",
            "caller_module": "ride_dispatch.core.dispatch.acceptance",
            "caller_file": "acceptance.py",
            "caller_line": 42,
        }

        output = ColoredFormatter().format(record)

        assert "ride_dispatch.core.dispatch.acceptance.accept()" in output
        assert "acceptance.py:42" in output


class TestRotatingHandler:
    """Тесты для ротации файлов логов."""

    def test_rollover_creates_archive(self, tmp_path: Path) -> None:
        handler = DateBasedRotatingFileHandler(
            log_dir=str(tmp_path),
            max_bytes=64,
            logger_name="app",
            backup_count=2,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        try:
            for _ in range(5):
                handler.emit(_record("x" * 80))
        finally:
            handler.close()

        assert (tmp_path / "app.log").exists()
        archives = list(tmp_path.glob("app_*.log"))
        assert 1 <= len(archives) <= 2

    def test_zero_max_bytes_never_rolls(self, tmp_path: Path) -> None:
        handler = DateBasedRotatingFileHandler(log_dir=str(tmp_path), max_bytes=0, logger_name="app")
        try:
            assert handler.shouldRollover(_record()) is False
        finally:
            handler.close()


class TestLogFunctions:
    """Тесты для асинхронных функций логирования."""

    @pytest.fixture
    def logger(self) -> MagicMock:
        with patch("ride_dispatch.common.logger.get_logger") as get_logger:
            mock_logger = MagicMock()
            get_logger.return_value = mock_logger
            yield mock_logger

    @pytest.mark.asyncio
    async def test_log_info_default_level(self, logger: MagicMock) -> None:
        await log_info("Сообщение", extra={"request_id": "r1"})

        logger.info.assert_called_once()
        extra = logger.info.call_args.kwargs["extra"]["extra_data"]
        assert extra["request_id"] == "r1"
        assert extra["caller_function"] == "test_log_info_default_level"

    @pytest.mark.asyncio
    async def test_log_info_with_type_msg(self, logger: MagicMock) -> None:
        await log_info("Отладка", type_msg=TypeMsg.DEBUG)

        logger.debug.assert_called_once()
        logger.info.assert_not_called()

    @pytest.mark.asyncio
    async def test_log_debug_and_warning(self, logger: MagicMock) -> None:
        await log_debug("d")
        await log_warning("w")

        logger.debug.assert_called_once()
        logger.warning.assert_called_once()

    @pytest.mark.asyncio
    async def test_log_error_with_exc_info(self, logger: MagicMock) -> None:
        await log_error("Ошибка", exc_info=True)

        assert logger.error.call_args.kwargs["exc_info"] is True


class TestCallerInfo:
    """Тесты для определения вызывающего кода."""

    def test_returns_current_function(self) -> None:
        info = _get_caller_info(depth=1)

        assert info["caller_function"] == "test_returns_current_function"
        assert info["caller_file"] == "test_logger.py"
