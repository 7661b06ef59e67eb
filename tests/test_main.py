# tests/test_main.py
"""
Тесты для точки входа.
"""

from unittest.mock import MagicMock, patch

import pytest

import main


class TestResolveMode:
    """Тесты выбора режима запуска."""

    def test_from_argv(self) -> None:
        assert main.resolve_mode(["main.py", " WS "]) == "ws"

    def test_dev_mode_runs_all(self) -> None:
        mocked = MagicMock()
        mocked.system.RUN_DEV_MODE = True
        with patch("main.settings", mocked):
            assert main.resolve_mode(["main.py"]) == "all"

    def test_component_mode(self) -> None:
        mocked = MagicMock()
        mocked.system.RUN_DEV_MODE = False
        mocked.system.COMPONENT_MODE = "worker"
        with patch("main.settings", mocked):
            assert main.resolve_mode(["main.py"]) == "worker"


class TestMain:
    """Тесты для main()."""

    def test_runners(self) -> None:
        assert set(main.RUNNERS) == set(main.COMPONENTS)
        assert len(main.RUNNERS["all"]) == 3

    @pytest.mark.asyncio
    async def test_unknown_mode(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert await main.main("bogus") == 2
        assert "Использование" in capsys.readouterr().out
