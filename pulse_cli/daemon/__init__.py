"""Daemon module for Pulse.

Runs the engine as a foreground or background service with graceful
shutdown on SIGTERM/SIGINT.
"""

from pulse_cli.daemon.pid import PIDFile
from pulse_cli.daemon.service import (
    PulseDaemon,
    daemonize,
    run_daemon,
)

__all__ = [
    "PulseDaemon",
    "PIDFile",
    "daemonize",
    "run_daemon",
]
