"""Daemon service for Pulse.

This module provides:
- Engine lifecycle management with graceful shutdown
- Signal handling (SIGTERM/SIGINT)
- Background daemon mode with process forking
"""

import asyncio
import logging
import os
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from pulse_cli.config import PulseConfig
from pulse_cli.database.store import SqlEventStore
from pulse_cli.engine import PulseEngine

logger = logging.getLogger(__name__)


class PulseDaemon:
    """Runs a PulseEngine until asked to shut down.

    Example:
        daemon = PulseDaemon(config)
        await daemon.start()
        await daemon.run_until_shutdown()
        await daemon.stop()
    """

    def __init__(self, config: PulseConfig, persist: bool = True, engine: Optional[PulseEngine] = None):
        """Initialize the daemon.

        Args:
            config: Pulse configuration
            persist: Record events and runs in the configured database
            engine: Pre-built engine (default: built from config)
        """
        self._config = config
        self._persist = persist
        self._engine = engine
        self._store: Optional[SqlEventStore] = None
        self._running = False
        self._shutdown_event = asyncio.Event()

    @property
    def engine(self) -> Optional[PulseEngine]:
        return self._engine

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Build and start the engine.

        Raises:
            ConfigurationError: If the configuration is structurally invalid
        """
        logger.info("Starting Pulse daemon...")

        if self._engine is None:
            if self._persist:
                self._store = SqlEventStore(self._config.database_url)
                logger.info(f"Recording events to {self._config.database_url}")
            self._engine = PulseEngine(self._config, store=self._store)

        # Validation errors surface here, before anything runs
        self._engine.build()
        await self._engine.start()

        self._running = True
        logger.info(f"Pulse daemon started (tick every {self._config.scheduler.tick_interval}s)")

    async def stop(self) -> None:
        """Stop the engine and release resources."""
        logger.info("Stopping Pulse daemon...")
        self._running = False

        if self._engine is not None:
            try:
                await self._engine.stop()
            except Exception as e:
                logger.warning(f"Error stopping engine: {e}")

        if self._store is not None:
            self._store.close()

        logger.info("Pulse daemon stopped")

    async def run_until_shutdown(self) -> None:
        """Block until ``request_shutdown()`` is called."""
        await self._shutdown_event.wait()

    def request_shutdown(self) -> None:
        logger.info("Shutdown requested")
        self._shutdown_event.set()


async def run_daemon(config: PulseConfig, options: Optional[Dict[str, Any]] = None) -> None:
    """Run the Pulse daemon with signal handling.

    Args:
        config: Pulse configuration
        options: Daemon options:
            - persist: Record events and runs in the database (default True)
    """
    options = options or {}
    daemon = PulseDaemon(config, persist=options.get("persist", True))

    loop = asyncio.get_running_loop()

    def handle_signal(sig: signal.Signals) -> None:
        logger.info(f"Received signal {sig.name}, initiating shutdown...")
        daemon.request_shutdown()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            signal.signal(sig, lambda signum, frame: handle_signal(signal.Signals(signum)))

    try:
        await daemon.start()
        await daemon.run_until_shutdown()
    finally:
        await daemon.stop()


def daemonize(log_file: Optional[Path] = None) -> None:
    """Detach from the terminal with the double-fork technique.

    Args:
        log_file: File receiving stdout/stderr (default: /dev/null)
    """
    if sys.platform == "win32":
        logger.warning("Daemon mode not supported on Windows")
        return

    if os.fork() > 0:
        sys.exit(0)

    os.setsid()

    if os.fork() > 0:
        sys.exit(0)

    sys.stdout.flush()
    sys.stderr.flush()

    with open(os.devnull, "r") as devnull:
        os.dup2(devnull.fileno(), sys.stdin.fileno())

    target = log_file or Path(os.devnull)
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "a+") as out:
        os.dup2(out.fileno(), sys.stdout.fileno())
        os.dup2(out.fileno(), sys.stderr.fileno())

    logger.info(f"Daemon process started (PID: {os.getpid()})")
