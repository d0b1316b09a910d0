"""
Host power control for the /suspend command.

The command is started and not waited for: the machine is about to go
to sleep, so there is nobody left to collect an exit status.
"""

import logging
import subprocess
import sys
from typing import List, Optional, Sequence


logger = logging.getLogger(__name__)


# Platform prefix → suspend command line
SUSPEND_COMMANDS = {
    "win32": ["rundll32.exe", "powrprof.dll,SetSuspendState", "0,1,0"],
    "linux": ["systemctl", "suspend"],
    "darwin": ["pmset", "sleepnow"],
}


def suspend_command(platform: Optional[str] = None) -> Optional[List[str]]:
    """Suspend command for platform (default: this one), or None if unsupported."""
    platform = platform or sys.platform
    for prefix, command in SUSPEND_COMMANDS.items():
        if platform.startswith(prefix):
            return list(command)
    return None


class SystemController:
    """
    Puts the host to sleep.

    Swap in a subclass (or any object with suspend() -> bool) to test
    the command without sleeping the test machine.
    """

    def __init__(self, command: Optional[Sequence[str]] = None):
        self.command = list(command) if command is not None else suspend_command()

    def suspend(self) -> bool:
        """
        Launch the suspend command.

        Returns:
            True if the process was started, False if this platform has no
            known command.

        Raises:
            OSError: The command could not be started.
        """
        if not self.command:
            logger.error(f"Suspend is not supported on {sys.platform}")
            return False

        logger.info(f"Suspending host: {' '.join(self.command)}")
        subprocess.Popen(
            self.command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=sys.platform != "win32",
        )
        return True
