"""
Background sampling engine.

The engine owns the recording state machine:

    Idle --Start--------> RecordingQuiet
    Idle --StartVerbose-> RecordingVerbose
    any  --Stop---------> Idle

(Start and StartVerbose are accepted from every state.)

While recording, each tick captures one snapshot and writes its records
through the storage handle one row at a time; in RecordingVerbose every
written record is also printed to the engine's output stream. Between ticks
the engine waits on the control channel with a timeout equal to the time left
until the next tick, and without a timeout while Idle, so an idle engine does
no work until a command arrives.

A failed row write is logged and counted; the rest of the tick and the engine
carry on.
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, TextIO

from sysrecorder.control import Command, ControlChannel
from sysrecorder.errors import RecorderError, StorageError
from sysrecorder.logging import get_logger
from sysrecorder.records import Record, format_timestamp
from sysrecorder.snapshot import MetricsSource, capture, identity_record

if TYPE_CHECKING:
    from sysrecorder.config import SamplingConfig
    from sysrecorder.storage import StorageHandle

logger = get_logger(__name__)

# =============================================================================
# Constants
# =============================================================================

DEFAULT_SAMPLING_INTERVAL = 10.0  # seconds

# =============================================================================
# State
# =============================================================================


class RecorderState(str, Enum):
    """Recording state of the sampling engine."""

    IDLE = "idle"
    RECORDING_QUIET = "recording_quiet"
    RECORDING_VERBOSE = "recording_verbose"

    @property
    def is_recording(self) -> bool:
        return self is not RecorderState.IDLE


_TARGETS: dict[Command, RecorderState] = {
    Command.STOP: RecorderState.IDLE,
    Command.START: RecorderState.RECORDING_QUIET,
    Command.START_VERBOSE: RecorderState.RECORDING_VERBOSE,
}

# Every command is accepted in every state.
_TRANSITIONS: dict[tuple[RecorderState, Command], RecorderState] = {
    (state, command): target
    for state in RecorderState
    for command, target in _TARGETS.items()
}


def transition(state: RecorderState, command: Command) -> RecorderState:
    """Return the state the engine enters on `command` from `state`."""
    return _TRANSITIONS[RecorderState(state), Command(command)]


@dataclass
class EngineStatus:
    """
    Snapshot of the engine's progress.

    Attributes:
        state: Current recording state.
        interval_seconds: Seconds between ticks.
        tick_count: Ticks performed since the engine was created.
        rows_written: Rows successfully written.
        error_count: Rows or ticks that failed.
        last_tick_at: When the last tick finished.
        last_error: Last error message if any.
    """

    state: RecorderState = RecorderState.IDLE
    interval_seconds: float = DEFAULT_SAMPLING_INTERVAL
    tick_count: int = 0
    rows_written: int = 0
    error_count: int = 0
    last_tick_at: datetime | None = None
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "state": self.state.value,
            "interval_seconds": self.interval_seconds,
            "tick_count": self.tick_count,
            "rows_written": self.rows_written,
            "error_count": self.error_count,
            "last_tick_at": self.last_tick_at.isoformat() if self.last_tick_at else None,
            "last_error": self.last_error,
        }


# =============================================================================
# SamplingEngine Class
# =============================================================================


class SamplingEngine:
    """
    Command-driven background recorder.

    Example:
        >>> engine = SamplingEngine(storage, PsutilMetricsSource(), channel)
        >>> await engine.startup()
        >>> engine.start()
        >>> channel.send(Command.START)
        >>> ...
        >>> await engine.close()
    """

    def __init__(
        self,
        storage: StorageHandle,
        source: MetricsSource,
        channel: ControlChannel,
        config: SamplingConfig | None = None,
        *,
        output: TextIO | None = None,
    ) -> None:
        """
        Initialize the SamplingEngine.

        Args:
            storage: Storage handle shared with the query path.
            source: Metrics source read on every tick.
            channel: Control channel the console sends commands through.
            config: Optional SamplingConfig; defaults to a 10 second interval.
            output: Stream verbose records are printed to (default: stdout).
        """
        self._storage = storage
        self._source = source
        self._channel = channel
        self._output = output
        self._status = EngineStatus()
        self._task: asyncio.Task[None] | None = None

        if config:
            self._status.interval_seconds = config.interval_seconds

    @property
    def state(self) -> RecorderState:
        return self._status.state

    @property
    def interval_seconds(self) -> float:
        return self._status.interval_seconds

    @property
    def is_running(self) -> bool:
        """Whether the background task is alive."""
        return self._task is not None and not self._task.done()

    def get_status(self) -> EngineStatus:
        """Return a copy of the current status."""
        return EngineStatus(**vars(self._status))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def startup(self) -> bool:
        """
        Prepare the store before the loop starts.

        Creates any missing tables and records the host identity if this
        hostname has no sys row yet.

        Returns:
            True if the identity row was written.
        """
        await asyncio.get_event_loop().run_in_executor(None, self._storage.ensure_schema)

        try:
            record = await asyncio.get_event_loop().run_in_executor(
                None, identity_record, self._source
            )
            return await self._storage.write_identity(record)
        except RecorderError as e:
            self._record_error(e)
            logger.error(
                "Failed to record host identity",
                extra={"error": e.message, "error_code": e.error_code},
            )
            return False

    def start(self) -> asyncio.Task[None]:
        """Start the background loop if it is not already running."""
        task = self._task
        if task is None or task.done():
            task = asyncio.create_task(self.run(), name="sampling-engine")
            self._task = task
            logger.info(
                "Sampling engine started",
                extra={"interval_seconds": self.interval_seconds},
            )
        return task

    async def close(self) -> None:
        """Cancel the background loop and wait for it to finish."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info(
            "Sampling engine stopped",
            extra={
                "tick_count": self._status.tick_count,
                "rows_written": self._status.rows_written,
            },
        )

    # -------------------------------------------------------------------------
    # State machine
    # -------------------------------------------------------------------------

    def apply(self, command: Command) -> RecorderState:
        """Apply a command and return the new state."""
        previous = self._status.state
        self._status.state = transition(previous, command)
        if self._status.state is not previous:
            logger.info(
                "Recorder state changed",
                extra={"from_state": previous.value, "to_state": self._status.state.value},
            )
        return self._status.state

    async def run(self) -> None:
        """
        Main loop. Runs until cancelled.

        A command received while recording takes effect at once. Entering a
        recording state from Idle makes the next tick due immediately;
        switching between the two recording states keeps the tick schedule.
        A tick that raises is logged and counted; the loop carries on.
        """
        loop = asyncio.get_event_loop()
        next_tick: float | None = None

        while True:
            if next_tick is None:
                timeout = None
            else:
                timeout = max(0.0, next_tick - loop.time())

            command = await self._channel.receive(timeout)
            if command is not None:
                self.apply(command)
                if not self.state.is_recording:
                    next_tick = None
                elif next_tick is None:
                    next_tick = loop.time()
                continue

            if next_tick is None:
                continue

            try:
                await self.tick()
            except Exception as e:
                self._record_error(e)
                logger.error(
                    "Error during metrics sampling",
                    extra={"error": str(e), "state": self.state.value},
                )
            next_tick = loop.time() + self.interval_seconds

    async def tick(self) -> list[Record]:
        """
        Capture one snapshot and write its records.

        Returns:
            The records that were written.
        """
        verbose = self.state is RecorderState.RECORDING_VERBOSE
        timestamp = format_timestamp()

        try:
            snapshot = await asyncio.get_event_loop().run_in_executor(
                None, capture, self._source, timestamp
            )
        except Exception as e:
            self._record_error(e)
            logger.error(
                "Failed to capture metrics snapshot",
                extra={"error": str(e), "tick_timestamp": timestamp},
            )
            return []

        written: list[Record] = []
        for record in snapshot.records():
            try:
                await self._storage.insert(record)
            except StorageError as e:
                self._record_error(e)
                logger.error(
                    "Failed to write record",
                    extra={
                        "kind": record.kind.value,
                        "tick_timestamp": timestamp,
                        "error": e.message,
                    },
                )
                continue
            written.append(record)
            if verbose:
                print(record, file=self._output or sys.stdout, flush=True)

        self._status.tick_count += 1
        self._status.rows_written += len(written)
        self._status.last_tick_at = datetime.now()
        logger.debug(
            "Tick recorded",
            extra={"tick_timestamp": timestamp, "rows": len(written), "verbose": verbose},
        )
        return written

    def _record_error(self, error: Exception) -> None:
        self._status.error_count += 1
        self._status.last_error = str(error)
