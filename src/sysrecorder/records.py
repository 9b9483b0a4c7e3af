"""
Record types and their mapping to SQLite rows.

Four record kinds are recorded, each in its own table:

    sys(os, osversion, hostname)
    component(timestamp, label, temp)
    disk(timestamp, name, total, available)
    ram(timestamp, total_memory, used_memory, total_swap, used_swap)

Every table also has an `id INTEGER PRIMARY KEY AUTOINCREMENT` column owned
by SQLite. All other columns are NOT NULL.

The kinds form a closed set. RECORD_SPECS maps each RecordKind to a RecordSpec
holding its table, column list, record class, and the SQL built from them, so
that writing, selecting and decoding go through one code path for all four.

Timestamps are stored as local time text in TIMESTAMP_FORMAT. The layout is
fixed width and most-significant-first, so comparing the strings compares the
instants, which is what the range queries rely on.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Sequence
from dataclasses import astuple, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, NamedTuple

from sysrecorder.errors import DecodeError, InputError

# =============================================================================
# Constants
# =============================================================================

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(moment: datetime | None = None) -> str:
    """
    Format a moment in the canonical `YYYY-MM-DD HH:MM:SS` layout.

    Args:
        moment: The moment to format. Defaults to the current local time.

    Returns:
        The timestamp string with second precision.
    """
    return (moment or datetime.now()).strftime(TIMESTAMP_FORMAT)


# =============================================================================
# Record Kinds
# =============================================================================


class RecordKind(str, Enum):
    """The kinds of recorded samples, one table each."""

    SYS = "sys"
    COMPONENT = "component"
    DISK = "disk"
    RAM = "ram"


# =============================================================================
# Record Models
# =============================================================================


@dataclass(frozen=True)
class SysRecord:
    """Identity of the recorded host. Stored once per hostname.

    Attributes:
        os: Operating system name.
        os_version: Operating system version.
        hostname: Host name, the deduplication key.
    """

    kind: ClassVar[RecordKind] = RecordKind.SYS

    os: str
    os_version: str
    hostname: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"os": self.os, "os_version": self.os_version, "hostname": self.hostname}

    def __str__(self) -> str:
        return f"Host {self.hostname}: {self.os} {self.os_version}"


@dataclass(frozen=True)
class ComponentRecord:
    """One temperature sensor reading.

    Attributes:
        timestamp: Tick timestamp in TIMESTAMP_FORMAT.
        label: Sensor label.
        temperature: Temperature in degrees Celsius.
    """

    kind: ClassVar[RecordKind] = RecordKind.COMPONENT

    timestamp: str
    label: str
    temperature: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp,
            "label": self.label,
            "temperature": self.temperature,
        }

    def __str__(self) -> str:
        return f"[{self.timestamp}] {self.label}: {self.temperature:.1f} °C"


@dataclass(frozen=True)
class DiskRecord:
    """Capacity of one disk.

    Attributes:
        timestamp: Tick timestamp in TIMESTAMP_FORMAT.
        name: Device name.
        total_bytes: Total capacity in bytes.
        available_bytes: Available capacity in bytes.
    """

    kind: ClassVar[RecordKind] = RecordKind.DISK

    timestamp: str
    name: str
    total_bytes: int
    available_bytes: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp,
            "name": self.name,
            "total_bytes": self.total_bytes,
            "available_bytes": self.available_bytes,
        }

    def __str__(self) -> str:
        return (
            f"[{self.timestamp}] {self.name}: "
            f"{self.available_bytes} of {self.total_bytes} bytes available"
        )


@dataclass(frozen=True)
class RamRecord:
    """Memory and swap usage.

    Attributes:
        timestamp: Tick timestamp in TIMESTAMP_FORMAT.
        total_memory: Physical memory in bytes.
        used_memory: Used physical memory in bytes.
        total_swap: Swap space in bytes.
        used_swap: Used swap space in bytes.
    """

    kind: ClassVar[RecordKind] = RecordKind.RAM

    timestamp: str
    total_memory: int
    used_memory: int
    total_swap: int
    used_swap: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "timestamp": self.timestamp,
            "total_memory": self.total_memory,
            "used_memory": self.used_memory,
            "total_swap": self.total_swap,
            "used_swap": self.used_swap,
        }

    def __str__(self) -> str:
        return (
            f"[{self.timestamp}] memory {self.used_memory}/{self.total_memory} bytes, "
            f"swap {self.used_swap}/{self.total_swap} bytes"
        )


Record = SysRecord | ComponentRecord | DiskRecord | RamRecord


# =============================================================================
# Table Specifications
# =============================================================================


class Column(NamedTuple):
    """A stored column: SQL name, SQL type and the Python type it decodes to."""

    name: str
    sql_type: str
    py_type: type


@dataclass(frozen=True)
class RecordSpec:
    """
    Storage mapping of one record kind.

    Columns are listed in the same order as the record's dataclass fields, so
    a record serializes with `astuple` and deserializes positionally.
    """

    kind: RecordKind
    table: str
    columns: tuple[Column, ...]
    record_type: type

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    @property
    def timestamped(self) -> bool:
        return self.column_names[0] == "timestamp"

    @property
    def create_sql(self) -> str:
        column_defs = ",\n    ".join(
            f"{column.name} {column.sql_type} NOT NULL" for column in self.columns
        )
        return (
            f"CREATE TABLE IF NOT EXISTS {self.table} (\n"
            f"    id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            f"    {column_defs}\n"
            f")"
        )

    @property
    def insert_sql(self) -> str:
        placeholders = ", ".join("?" for _ in self.columns)
        return (
            f"INSERT INTO {self.table} ({', '.join(self.column_names)}) "
            f"VALUES ({placeholders})"
        )

    @property
    def select_all_sql(self) -> str:
        return f"SELECT {', '.join(self.column_names)} FROM {self.table} ORDER BY id"

    @property
    def select_range_sql(self) -> str:
        return (
            f"SELECT {', '.join(self.column_names)} FROM {self.table} "
            f"WHERE timestamp BETWEEN ? AND ? ORDER BY id"
        )

    def encode(self, record: Record) -> tuple[Any, ...]:
        """Serialize a record to its row values."""
        if not isinstance(record, self.record_type):
            raise TypeError(
                f"{type(record).__name__} cannot be stored in table {self.table}"
            )
        return astuple(record)

    def decode(self, row: Sequence[Any]) -> Record:
        """
        Reconstruct a record from a row.

        Integers are accepted for REAL columns, since SQLite returns whole
        floats stored through other clients as integers.

        Raises:
            DecodeError: If the row arity or a column type does not match.
        """
        values = tuple(row)
        if len(values) != len(self.columns):
            raise DecodeError(
                f"Expected {len(self.columns)} columns for {self.table}, "
                f"got {len(values)}",
                details={"table": self.table, "row": values},
            )

        decoded: list[Any] = []
        for column, value in zip(self.columns, values, strict=True):
            if column.py_type is float and type(value) is int:
                value = float(value)
            if type(value) is not column.py_type:
                raise DecodeError(
                    f"Column {self.table}.{column.name} expected "
                    f"{column.py_type.__name__}, got {type(value).__name__}",
                    details={"table": self.table, "column": column.name, "value": value},
                )
            decoded.append(value)

        return self.record_type(*decoded)


RECORD_SPECS: dict[RecordKind, RecordSpec] = {
    RecordKind.SYS: RecordSpec(
        kind=RecordKind.SYS,
        table="sys",
        columns=(
            Column("os", "TEXT", str),
            Column("osversion", "TEXT", str),
            Column("hostname", "TEXT", str),
        ),
        record_type=SysRecord,
    ),
    RecordKind.COMPONENT: RecordSpec(
        kind=RecordKind.COMPONENT,
        table="component",
        columns=(
            Column("timestamp", "TEXT", str),
            Column("label", "TEXT", str),
            Column("temp", "REAL", float),
        ),
        record_type=ComponentRecord,
    ),
    RecordKind.DISK: RecordSpec(
        kind=RecordKind.DISK,
        table="disk",
        columns=(
            Column("timestamp", "TEXT", str),
            Column("name", "TEXT", str),
            Column("total", "INTEGER", int),
            Column("available", "INTEGER", int),
        ),
        record_type=DiskRecord,
    ),
    RecordKind.RAM: RecordSpec(
        kind=RecordKind.RAM,
        table="ram",
        columns=(
            Column("timestamp", "TEXT", str),
            Column("total_memory", "INTEGER", int),
            Column("used_memory", "INTEGER", int),
            Column("total_swap", "INTEGER", int),
            Column("used_swap", "INTEGER", int),
        ),
        record_type=RamRecord,
    ),
}


def spec_for(kind: RecordKind) -> RecordSpec:
    """Return the storage mapping of a record kind."""
    return RECORD_SPECS[RecordKind(kind)]


# =============================================================================
# Record Operations
# =============================================================================


def write_to_store(record: Record, conn: sqlite3.Connection) -> int:
    """
    Insert one record into its kind's table and commit.

    No retry is attempted. On failure the open transaction is rolled back
    and the error propagates to the caller.

    Args:
        record: The record to insert.
        conn: An open SQLite connection the caller has exclusive use of.

    Returns:
        The row id assigned by SQLite.

    Raises:
        sqlite3.Error: If the store rejects the statement.
        OverflowError: If an integer does not fit a signed 64-bit column.
    """
    spec = spec_for(record.kind)
    values = spec.encode(record)
    try:
        cursor = conn.execute(spec.insert_sql, values)
        conn.commit()
    except (sqlite3.Error, OverflowError, ValueError):
        conn.rollback()
        raise
    return cursor.lastrowid or 0


def query_all(kind: RecordKind) -> str:
    """Return the statement selecting every row of a kind in insertion order."""
    return spec_for(kind).select_all_sql


def query_by_range(
    kind: RecordKind, start: str, end: str
) -> tuple[str, tuple[str, str]]:
    """
    Return the statement and parameters selecting rows between two timestamps.

    Both bounds are inclusive and compared as text. They are passed through
    untouched: an inverted range simply matches nothing.

    Raises:
        InputError: If the kind carries no timestamp.
    """
    spec = spec_for(kind)
    if not spec.timestamped:
        raise InputError(
            f"{spec.table} records have no timestamp to filter on",
            details={"kind": spec.kind.value},
        )
    return spec.select_range_sql, (start, end)


def from_row(kind: RecordKind, row: Sequence[Any]) -> Record:
    """Reconstruct a record of the given kind from a storage row."""
    return spec_for(kind).decode(row)
