#!/usr/bin/env python3
"""Tests for the Ejector startup sequence and the command line entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from validator_ejector.app import Ejector
from validator_ejector.config import EjectorConfig
from validator_ejector.exit_strategy import MessageExitStrategy
from validator_ejector.main import main
from validator_ejector.models import VerifiedMessageSet


@pytest.fixture
def ejector(base_env, tmp_path, metrics):
    base_env["MESSAGES_LOCATION"] = str(tmp_path)
    ejector = Ejector(EjectorConfig.from_env(base_env), metrics=metrics)

    ejector.execution_api.check_sync = AsyncMock()
    ejector.consensus_api.check_sync = AsyncMock()
    ejector.messages_processor.verify = AsyncMock(return_value=VerifiedMessageSet())
    ejector.job_runner.once = AsyncMock()
    ejector.job_runner.pooling = AsyncMock()
    return ejector


class TestEjector:

    def test_wiring(self, ejector):
        assert isinstance(ejector.strategy, MessageExitStrategy)
        assert ejector.webhook_client is None
        assert ejector.job_processor.exit_status is ejector.consensus_api
        assert ejector.job_runner.interval == 384.0

    @pytest.mark.asyncio
    async def test_run_preloads_then_polls(self, ejector):
        manager = MagicMock()
        manager.attach_mock(ejector.job_runner.once, "once")
        manager.attach_mock(ejector.job_runner.pooling, "pooling")

        await ejector.run()

        ejector.execution_api.check_sync.assert_awaited_once()
        ejector.consensus_api.check_sync.assert_awaited_once()
        assert [c[0] for c in manager.mock_calls] == ["once", "pooling"]
        assert manager.mock_calls[0].args[0] == 50000
        assert manager.mock_calls[1].args[0] == 900
        await ejector.shutdown()

    @pytest.mark.asyncio
    async def test_preload_failure_stops_startup(self, ejector):
        ejector.job_runner.once.side_effect = RuntimeError("preload failed")

        with pytest.raises(RuntimeError):
            await ejector.run()

        ejector.job_runner.pooling.assert_not_awaited()
        await ejector.shutdown()


class TestMain:

    @pytest.mark.asyncio
    async def test_configuration_error_exits(self):
        with patch(
            "validator_ejector.main.EjectorConfig.from_env",
            side_effect=ValueError("EXECUTION_NODE is required")
        ):
            with pytest.raises(SystemExit) as exc_info:
                await main([])

        assert exc_info.value.code == 1

    @pytest.mark.asyncio
    async def test_runs_and_shuts_down(self, base_env):
        config = EjectorConfig.from_env(base_env)
        ejector = MagicMock()
        ejector.run = AsyncMock()
        ejector.shutdown = AsyncMock()

        with patch("validator_ejector.main.EjectorConfig.from_env", return_value=config), \
                patch("validator_ejector.main.Ejector", return_value=ejector):
            await main(["--log-level", "DEBUG"])

        ejector.run.assert_awaited_once()
        ejector.shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("argv,expected", [
        ([], "WARNING"),
        (["--log-level", "DEBUG"], "DEBUG"),
    ])
    async def test_log_level_from_config_unless_flag_given(self, base_env, argv, expected):
        base_env["LOGGER_LEVEL"] = "warning"
        config = EjectorConfig.from_env(base_env)
        ejector = MagicMock()
        ejector.run = AsyncMock()
        ejector.shutdown = AsyncMock()

        with patch("validator_ejector.main.EjectorConfig.from_env", return_value=config), \
                patch("validator_ejector.main.Ejector", return_value=ejector), \
                patch("validator_ejector.main.setup_logging") as setup_logging:
            await main(argv)

        assert setup_logging.call_args.args[0] == expected
        assert setup_logging.call_args.args[1] == config.secrets
