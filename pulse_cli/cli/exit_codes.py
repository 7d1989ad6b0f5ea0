"""Standard exit codes for Pulse CLI.

Scripts wrapping ``pulse`` can tell a broken configuration apart from a
failed operation or a daemon that is not running.
"""


class ExitCode:
    """Standard exit codes for Pulse CLI.

    Pulse-specific codes start at 2:
    - 2: Configuration error (bad file, cron expression or reference)
    - 3: Operation error
    - 4: Delivery error
    - 5: Daemon not running / already running
    - 7: Invalid argument
    - 8: Not found
    """

    SUCCESS = 0
    GENERAL_ERROR = 1

    CONFIGURATION_ERROR = 2
    OPERATION_ERROR = 3
    DELIVERY_ERROR = 4
    DAEMON_ERROR = 5
    INVALID_ARGUMENT = 7
    NOT_FOUND = 8

    # 128 + SIGINT
    CANCELLED = 130

    @classmethod
    def get_name(cls, code: int) -> str:
        names = {
            cls.SUCCESS: "SUCCESS",
            cls.GENERAL_ERROR: "GENERAL_ERROR",
            cls.CONFIGURATION_ERROR: "CONFIGURATION_ERROR",
            cls.OPERATION_ERROR: "OPERATION_ERROR",
            cls.DELIVERY_ERROR: "DELIVERY_ERROR",
            cls.DAEMON_ERROR: "DAEMON_ERROR",
            cls.INVALID_ARGUMENT: "INVALID_ARGUMENT",
            cls.NOT_FOUND: "NOT_FOUND",
            cls.CANCELLED: "CANCELLED",
        }
        return names.get(code, f"UNKNOWN({code})")
