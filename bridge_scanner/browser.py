"""Launch a Tor Browser bundle located next to the working directory."""

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from bridge_scanner.errors import BrowserNotFoundError

LOGGER = logging.getLogger(__name__)

BROWSER_COMMANDS = (
    ("Browser/start-tor-browser", "--detach"),
    ("Browser/firefox.exe",),
)


def start_browser(commands: Sequence[Sequence[str]] = BROWSER_COMMANDS) -> Sequence[str]:
    """Start the first launcher in ``commands`` whose executable exists.

    Returns:
        The command that was started.

    Raises:
        BrowserNotFoundError: If no launcher exists or none could be started.
    """
    for command in commands:
        if not Path(command[0]).exists():
            continue
        try:
            subprocess.Popen(list(command))
        except OSError as exc:
            LOGGER.warning("Failed to start browser with %s: %s", " ".join(command), exc)
            continue
        LOGGER.info("Started browser with %s", " ".join(command))
        return command
    raise BrowserNotFoundError("no Tor Browser launcher found")


__all__ = ["BROWSER_COMMANDS", "start_browser"]
