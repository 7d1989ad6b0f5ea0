"""PID file tracking the running Pulse daemon."""

import os
import signal
from pathlib import Path
from typing import Optional


class PIDFile:
    """Records the daemon's process id so the CLI can find it.

    Usable as a context manager that claims the file on entry and
    releases it on exit.

    Example:
        with PIDFile(config.data_dir / "pulse.pid"):
            asyncio.run(run_daemon(config))

        # From another process
        PIDFile(config.data_dir / "pulse.pid").send_signal(signal.SIGTERM)
    """

    def __init__(self, path: Path):
        self.path = path

    def __enter__(self) -> "PIDFile":
        self.acquire()
        return self

    def __exit__(self, *exc_info) -> None:
        self.release()

    def acquire(self) -> None:
        """Claim the PID file for the current process.

        A stale file left by a dead process is replaced.

        Raises:
            RuntimeError: If another live process holds the file
        """
        self.clear_if_stale()
        pid = self.get_pid()
        if pid is not None and pid != os.getpid():
            raise RuntimeError(f"Pulse daemon already running (PID: {pid})")

        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(f"{os.getpid()}\n")

    def release(self) -> None:
        """Remove the file if it still belongs to this process."""
        if self.read() == os.getpid():
            self.path.unlink(missing_ok=True)

    def read(self) -> Optional[int]:
        """PID stored in the file, or None if missing or unreadable."""
        try:
            return int(self.path.read_text().strip())
        except (OSError, ValueError):
            return None

    @staticmethod
    def _alive(pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            # Exists but belongs to another user
            return True
        return True

    def is_running(self) -> bool:
        pid = self.read()
        return pid is not None and self._alive(pid)

    def get_pid(self) -> Optional[int]:
        """PID of the running daemon, or None."""
        pid = self.read()
        if pid is not None and self._alive(pid):
            return pid
        return None

    def clear_if_stale(self) -> bool:
        """Remove the file when its process is gone.

        Returns:
            True if a stale file was removed
        """
        pid = self.read()
        if pid is None or self._alive(pid):
            return False
        self.path.unlink(missing_ok=True)
        return True

    def send_signal(self, sig: int = signal.SIGTERM) -> Optional[int]:
        """Signal the running daemon.

        Returns:
            The signalled PID, or None if no daemon is running
        """
        pid = self.get_pid()
        if pid is None:
            return None
        os.kill(pid, sig)
        return pid
