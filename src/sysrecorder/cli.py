"""
Interactive console for the system recorder.

The console runs as the foreground task next to the sampling engine. It reads
one line at a time on a daemon thread, sends recording commands through
the control channel, and queries recorded samples through the query service.
"""

from __future__ import annotations

import asyncio
import contextlib
import sys
import threading
from collections.abc import Awaitable, Callable
from typing import TextIO

import yaml
from pydantic import ValidationError

from sysrecorder.config import AppConfig, load_config
from sysrecorder.control import Command, ControlChannel
from sysrecorder.errors import DecodeError, InputError, StorageError
from sysrecorder.logging import get_logger, setup_logging
from sysrecorder.query import QueryService, parse_range
from sysrecorder.records import Record, RecordKind
from sysrecorder.sampler import SamplingEngine
from sysrecorder.snapshot import MetricsSource, PsutilMetricsSource
from sysrecorder.storage import StorageHandle

logger = get_logger(__name__)

MAIN_MENU = (
    "Please select one of the options below by typing the respective number "
    "and pressing the 'Enter' key.\n"
    "1.    Start recording\n"
    "2.    Stop recording\n"
    "3.    View records\n"
    "4.    Live data feed\n"
    "5.    Quit Program"
)

KIND_MENU = (
    "Which records would you like to view?\n"
    "1.    System information\n"
    "2.    Components\n"
    "3.    Disks\n"
    "4.    Memory\n"
    "5.    Back"
)

MODE_MENU = (
    "How would you like to view them?\n"
    "1.    All records\n"
    "2.    Records in a date range\n"
    "3.    Back"
)

RANGE_PROMPT = (
    "Enter a start and an end datetime in the format YYYY-MM-DD HH:MM:SS, "
    "or 'q' to go back."
)

MENU_KINDS = {
    1: RecordKind.SYS,
    2: RecordKind.COMPONENT,
    3: RecordKind.DISK,
    4: RecordKind.RAM,
}


def parse_choice(text: str, maximum: int) -> int:
    """
    Parse a menu choice in the range 1..maximum.

    Raises:
        InputError: If the text is not a number in range.
    """
    try:
        choice = int(text.strip())
    except ValueError as e:
        raise InputError(
            f"Invalid input. Please enter a number in the range 1-{maximum}.",
            details={"input": text},
        ) from e
    if not 1 <= choice <= maximum:
        raise InputError(
            f"Invalid input. Please enter a number in the range 1-{maximum}.",
            details={"input": text},
        )
    return choice


def read_in_thread(
    loop: asyncio.AbstractEventLoop,
    read_line: Callable[[str], str],
    prompt: str,
) -> asyncio.Future[str]:
    """
    Call `read_line(prompt)` on a daemon thread and return a future for it.

    Cancelling the future abandons the thread, which may stay blocked in
    `input()`. It is a daemon thread outside the loop's default executor, so
    neither `asyncio.run` shutdown nor interpreter exit waits for it.
    """
    future: asyncio.Future[str] = loop.create_future()

    def _deliver(line: str | None, error: Exception | None) -> None:
        if future.done():
            return
        if error is not None:
            future.set_exception(error)
        else:
            future.set_result(line or "")

    def _read() -> None:
        try:
            line, error = read_line(prompt), None
        except Exception as e:
            line, error = None, e
        # The loop is closed if the console was cancelled and the run ended
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(_deliver, line, error)

    threading.Thread(target=_read, name="console-input", daemon=True).start()
    return future


class ConsoleApp:
    """
    Line-oriented menu driving the recorder.

    Args:
        channel: Control channel to the sampling engine.
        queries: Query service for viewing records.
        read_line: Function reading one line given a prompt (default: input).
        output: Stream menus and results are written to (default: stdout).
    """

    def __init__(
        self,
        channel: ControlChannel,
        queries: QueryService,
        *,
        read_line: Callable[[str], str] = input,
        output: TextIO | None = None,
    ) -> None:
        self._channel = channel
        self._queries = queries
        self._read_line = read_line
        self._output = output

    def _say(self, text: str) -> None:
        print(text, file=self._output or sys.stdout, flush=True)

    async def _ask(self, prompt: str = "> ") -> str:
        return await read_in_thread(asyncio.get_event_loop(), self._read_line, prompt)

    async def _choose(self, menu: str, maximum: int) -> int:
        """Show a menu until a valid choice is entered."""
        while True:
            self._say(menu)
            try:
                return parse_choice(await self._ask(), maximum)
            except InputError as e:
                self._say(e.message)

    async def run(self) -> None:
        """Run the main menu until the operator quits or input ends."""
        self._say("Welcome to the sysinfo database!")
        try:
            await self._main_menu()
        except EOFError:
            pass
        self._say("Quitting Program...")

    async def _main_menu(self) -> None:
        while True:
            choice = await self._choose(MAIN_MENU, 5)
            if choice == 1:
                self._channel.send(Command.START)
                self._say(
                    "Starting recording... We will keep recording data for you "
                    "until you stop recording."
                )
            elif choice == 2:
                self._channel.send(Command.STOP)
                self._say("Stopping recording...")
            elif choice == 3:
                await self._view_records()
            elif choice == 4:
                self._channel.send(Command.START_VERBOSE)
                self._say(
                    "Starting live data feed... Records are printed as they are "
                    "written. Select 2 to stop recording."
                )
            else:
                return

    async def _view_records(self) -> None:
        while True:
            choice = await self._choose(KIND_MENU, 5)
            if choice == 5:
                return
            kind = MENU_KINDS[choice]
            if kind is RecordKind.SYS:
                await self._show(self._queries.fetch_all(kind))
            else:
                await self._view_kind(kind)

    async def _view_kind(self, kind: RecordKind) -> None:
        while True:
            choice = await self._choose(MODE_MENU, 3)
            if choice == 1:
                await self._show(self._queries.fetch_all(kind))
            elif choice == 2:
                await self._view_range(kind)
            else:
                return

    async def _view_range(self, kind: RecordKind) -> None:
        self._say(RANGE_PROMPT)
        while True:
            text = await self._ask()
            if text.strip() == "q":
                return
            try:
                start, end = parse_range(text)
            except InputError as e:
                self._say(f"{e.message} {RANGE_PROMPT}")
                continue
            await self._show(self._queries.fetch_between(kind, start, end))
            return

    async def _show(self, query: Awaitable[list[Record]]) -> None:
        try:
            records = await query
        except (StorageError, DecodeError) as e:
            logger.error(
                "Query failed",
                extra={"error": e.message, "error_code": e.error_code},
            )
            self._say(f"Query failed: {e.message}")
            return

        if not records:
            self._say("No records found.")
            return
        for record in records:
            self._say(str(record))
        self._say(f"{len(records)} record(s).")


async def run_app(
    config: AppConfig,
    storage: StorageHandle,
    source: MetricsSource | None = None,
    *,
    read_line: Callable[[str], str] = input,
    output: TextIO | None = None,
) -> None:
    """
    Run the sampling engine and the console until the operator quits.

    The storage handle must already be open.
    """
    channel = ControlChannel()
    engine = SamplingEngine(
        storage,
        source or PsutilMetricsSource(),
        channel,
        config.sampling,
        output=output,
    )
    await engine.startup()
    engine.start()

    app = ConsoleApp(channel, QueryService(storage), read_line=read_line, output=output)
    try:
        await app.run()
    finally:
        await engine.close()


def main(argv: list[str] | None = None) -> int:
    """Console script entry point."""
    try:
        config = load_config(cli_args=argv)
    except (FileNotFoundError, yaml.YAMLError, ValidationError) as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    setup_logging(config.logging)

    storage = StorageHandle(config.storage.db_path)
    try:
        storage.open()
    except StorageError as e:
        logger.critical(
            "Cannot start without a database",
            extra={"db_path": str(storage.db_path), "error": e.message},
        )
        print(f"Could not open database {storage.db_path}: {e.message}", file=sys.stderr)
        return 1

    try:
        asyncio.run(run_app(config, storage))
    except KeyboardInterrupt:
        print("\nQuitting Program...")
    finally:
        storage.close()
    return 0
