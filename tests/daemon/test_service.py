"""Tests for the daemon service."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pulse_cli.config import PulseConfig
from pulse_cli.daemon.service import PulseDaemon, run_daemon
from pulse_cli.exceptions import ConfigurationError


def mock_engine():
    engine = MagicMock()
    engine.start = AsyncMock()
    engine.stop = AsyncMock()
    return engine


class TestPulseDaemon:
    """Tests for PulseDaemon."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, tmp_path):
        """Test the engine is built, started and stopped."""
        engine = mock_engine()
        daemon = PulseDaemon(PulseConfig(data_dir=tmp_path), engine=engine)

        await daemon.start()
        assert daemon.is_running
        engine.build.assert_called_once()
        engine.start.assert_awaited_once()

        await daemon.stop()
        assert not daemon.is_running
        engine.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_builds_engine_with_store(self, tmp_path):
        """Test a persisting daemon records into the configured database."""
        config = PulseConfig(data_dir=tmp_path)

        with patch("pulse_cli.daemon.service.PulseEngine") as engine_cls:
            engine_cls.return_value = mock_engine()
            daemon = PulseDaemon(config)
            await daemon.start()
            await daemon.stop()

        store = engine_cls.call_args.kwargs["store"]
        assert store.database_url == config.database_url
        assert (tmp_path / "pulse.db").exists()

    @pytest.mark.asyncio
    async def test_no_store(self, tmp_path):
        """Test persistence can be disabled."""
        with patch("pulse_cli.daemon.service.PulseEngine") as engine_cls:
            engine_cls.return_value = mock_engine()
            daemon = PulseDaemon(PulseConfig(data_dir=tmp_path), persist=False)
            await daemon.start()
            await daemon.stop()

        assert engine_cls.call_args.kwargs["store"] is None

    @pytest.mark.asyncio
    async def test_invalid_config_does_not_start(self, tmp_path):
        """Test build errors propagate before the engine starts."""
        engine = mock_engine()
        engine.build.side_effect = ConfigurationError("bad schedule")
        daemon = PulseDaemon(PulseConfig(data_dir=tmp_path), engine=engine)

        with pytest.raises(ConfigurationError):
            await daemon.start()

        engine.start.assert_not_awaited()
        assert not daemon.is_running

    @pytest.mark.asyncio
    async def test_stop_error_logged(self, tmp_path, caplog):
        """Test engine stop failures do not escape."""
        engine = mock_engine()
        engine.stop.side_effect = RuntimeError("stuck")
        daemon = PulseDaemon(PulseConfig(data_dir=tmp_path), engine=engine)

        await daemon.stop()

        assert "stuck" in caplog.text

    @pytest.mark.asyncio
    async def test_request_shutdown(self, tmp_path):
        """Test run_until_shutdown returns once shutdown is requested."""
        daemon = PulseDaemon(PulseConfig(data_dir=tmp_path), engine=mock_engine())
        waiter = asyncio.create_task(daemon.run_until_shutdown())

        await asyncio.sleep(0)
        assert not waiter.done()

        daemon.request_shutdown()
        await asyncio.wait_for(waiter, timeout=1)


class TestRunDaemon:
    """Tests for run_daemon."""

    @pytest.mark.asyncio
    async def test_runs_until_shutdown(self, tmp_path):
        """Test the daemon is started, awaited and stopped."""
        daemon = MagicMock()
        daemon.start = AsyncMock()
        daemon.run_until_shutdown = AsyncMock()
        daemon.stop = AsyncMock()

        with patch("pulse_cli.daemon.service.PulseDaemon", return_value=daemon) as daemon_cls:
            await run_daemon(PulseConfig(data_dir=tmp_path), {"persist": False})

        assert daemon_cls.call_args.kwargs["persist"] is False
        daemon.start.assert_awaited_once()
        daemon.run_until_shutdown.assert_awaited_once()
        daemon.stop.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stops_after_failed_start(self, tmp_path):
        """Test the daemon is stopped even when start fails."""
        daemon = MagicMock()
        daemon.start = AsyncMock(side_effect=ConfigurationError("bad"))
        daemon.stop = AsyncMock()

        with patch("pulse_cli.daemon.service.PulseDaemon", return_value=daemon):
            with pytest.raises(ConfigurationError):
                await run_daemon(PulseConfig(data_dir=tmp_path))

        daemon.stop.assert_awaited_once()
