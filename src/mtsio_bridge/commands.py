"""
Command translation and execution for mts-io-sysfs.

`translate` turns one object of a request into the utility's argument
list; `CommandExecutor` runs the utility and returns its stdout.
Execution is blocking and is meant to be called from the dispatch
worker thread, never from the asyncio loop.
"""
import logging
import subprocess
from typing import List, Sequence

from mtsio_bridge.codec import encode
from mtsio_bridge.models import ObjectSpec, Operation

logger = logging.getLogger(__name__)

MTSIO_CMD = "mts-io-sysfs"
DEFAULT_TIMEOUT = 10.0


class CommandError(Exception):
    """The utility could not be launched, failed, or timed out."""


def translate(operation: Operation, port_name: str, obj: ObjectSpec) -> List[str]:
    """Builds the argument list for a single object read or write."""
    args = [operation.token, f"{port_name}/{obj.name}"]

    # Only writes carry a value
    if operation is Operation.WRITE:
        encoded = encode(obj.value)
        if encoded is not None:
            args.append(encoded)
    return args


class CommandExecutor:
    program: str
    timeout: float

    """
    Runs mts-io-sysfs with a bounded timeout.
    """
    def __init__(self, program: str = MTSIO_CMD, timeout: float = DEFAULT_TIMEOUT):
        self.program = program
        self.timeout = timeout

    def execute(self, args: Sequence[str]) -> str:
        """
        Runs the utility and returns its standard output.

        Raises CommandError on launch failure, non-zero exit or timeout.
        The error message carries the utility's own stderr text when it
        produced any.
        """
        cmd = [self.program, *args]
        logger.debug(f"Executing command: {cmd}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise CommandError(f"{self.program} timed out after {self.timeout}s") from None
        except OSError as e:
            raise CommandError(f"Unable to launch {self.program}: {e}") from e

        if result.returncode != 0:
            detail = (result.stderr or "").strip() or f"exit status {result.returncode}"
            raise CommandError(detail)

        logger.debug(f"Command response received: {result.stdout!r}")
        return result.stdout
