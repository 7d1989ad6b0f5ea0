"""Shell command operation."""

import asyncio
import logging
from typing import Optional

from pulse_cli.events.bus import Event
from pulse_cli.exceptions import OperationError
from pulse_cli.operations.base import Operation

logger = logging.getLogger(__name__)

COMMAND_OUTPUT = "command-output"


class CommandOperation(Operation):
    """Runs a shell command and reports its output.

    A non-zero exit status fails the execution.

    Example:
        operation = CommandOperation("uptime", "uptime -p")
        event = await operation.execute()
        print(event.payload["stdout"])
    """

    def __init__(
        self,
        name: str,
        command: str,
        event_name: str = COMMAND_OUTPUT,
        shell: str = "/bin/bash",
        cwd: Optional[str] = None,
    ) -> None:
        super().__init__({"command": command, "event": event_name})
        self.name = name
        self.command = command
        self.event_name = event_name
        self._shell = shell
        self._cwd = cwd

    async def execute(self) -> Event:
        try:
            process = await asyncio.create_subprocess_shell(
                self.command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                executable=self._shell,
                cwd=self._cwd,
            )
        except OSError as e:
            raise OperationError(f"Cannot start command: {e}", operation=self.name) from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            # Do not leave the child running when the execution times out
            if process.returncode is None:
                process.kill()
                await process.wait()
            raise

        stdout_text = stdout.decode("utf-8", errors="replace")
        stderr_text = stderr.decode("utf-8", errors="replace")

        if process.returncode != 0:
            raise OperationError(
                f"Command exited with status {process.returncode}",
                operation=self.name,
                details={"stderr": stderr_text.strip()[:200]},
            )

        logger.debug(f"Command {self.name} produced {len(stdout_text)} characters of output")
        return self.event(
            self.event_name,
            {
                "command": self.command,
                "returncode": process.returncode,
                "stdout": stdout_text,
                "stderr": stderr_text,
            },
        )
