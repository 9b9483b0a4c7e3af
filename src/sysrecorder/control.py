"""
Control channel from the console to the sampling engine.

Commands are delivered in send order. The console is the only producer and
the sampling engine the only consumer.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum

from sysrecorder.logging import get_logger

logger = get_logger(__name__)


class Command(str, Enum):
    """Recording commands understood by the sampling engine."""

    STOP = "stop"
    START = "start"
    START_VERBOSE = "start_verbose"


class ControlChannel:
    """
    Single-producer command queue.

    Example:
        >>> channel = ControlChannel()
        >>> channel.send(Command.START)
        >>> await channel.receive()
        <Command.START: 'start'>
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Command] = asyncio.Queue()

    def send(self, command: Command) -> None:
        """Enqueue a command. Never blocks."""
        self._queue.put_nowait(Command(command))
        logger.debug("Command sent", extra={"command": command.value})

    def poll(self) -> Command | None:
        """Take the oldest pending command, or None if there is none."""
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    async def receive(self, timeout: float | None = None) -> Command | None:
        """
        Wait for the next command.

        Args:
            timeout: Seconds to wait. None waits indefinitely; zero or less
                only takes an already pending command.

        Returns:
            The command, or None if the timeout elapsed first.
        """
        if timeout is not None and timeout <= 0:
            return self.poll()

        with contextlib.suppress(TimeoutError):
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        return None

    def pending(self) -> int:
        """Number of commands not yet received."""
        return self._queue.qsize()
