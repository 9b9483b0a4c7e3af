"""
Tests for record types and their row mapping.

This test module validates:
- Table specifications and generated SQL
- Serializing records to rows and inserting them
- Decoding rows, including arity and type mismatches
- Canonical timestamp formatting and ordering
"""

from __future__ import annotations

import sqlite3
from datetime import datetime

import pytest

from sysrecorder.errors import DecodeError, InputError
from sysrecorder.records import (
    RECORD_SPECS,
    ComponentRecord,
    DiskRecord,
    RamRecord,
    RecordKind,
    SysRecord,
    format_timestamp,
    from_row,
    query_all,
    query_by_range,
    spec_for,
    write_to_store,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def conn() -> sqlite3.Connection:
    """In-memory connection with every record table created."""
    connection = sqlite3.connect(":memory:")
    for spec in RECORD_SPECS.values():
        connection.execute(spec.create_sql)
    yield connection
    connection.close()


# =============================================================================
# Tests for Timestamps
# =============================================================================


class TestTimestamps:
    """Tests for the canonical timestamp layout."""

    def test_format_timestamp(self) -> None:
        """Test second-precision fixed-width formatting."""
        moment = datetime(2024, 3, 5, 7, 8, 9, 123456)
        assert format_timestamp(moment) == "2024-03-05 07:08:09"

    def test_text_order_matches_time_order(self) -> None:
        """Test that comparing formatted strings compares instants."""
        moments = [
            datetime(2023, 12, 31, 23, 59, 59),
            datetime(2024, 1, 1, 0, 0, 0),
            datetime(2024, 1, 1, 9, 0, 0),
            datetime(2024, 1, 1, 10, 0, 0),
        ]
        texts = [format_timestamp(m) for m in moments]
        assert sorted(texts) == texts


# =============================================================================
# Tests for Table Specifications
# =============================================================================


class TestRecordSpecs:
    """Tests for the per-kind storage mapping."""

    def test_every_kind_has_a_spec(self) -> None:
        """Test that the closed set of kinds is fully mapped."""
        assert set(RECORD_SPECS) == set(RecordKind)

    @pytest.mark.parametrize(
        ("kind", "table", "columns"),
        [
            (RecordKind.SYS, "sys", ("os", "osversion", "hostname")),
            (RecordKind.COMPONENT, "component", ("timestamp", "label", "temp")),
            (RecordKind.DISK, "disk", ("timestamp", "name", "total", "available")),
            (
                RecordKind.RAM,
                "ram",
                ("timestamp", "total_memory", "used_memory", "total_swap", "used_swap"),
            ),
        ],
    )
    def test_layout(self, kind: RecordKind, table: str, columns: tuple[str, ...]) -> None:
        """Test table names and column order."""
        spec = spec_for(kind)
        assert spec.table == table
        assert spec.column_names == columns

    def test_only_sys_is_untimestamped(self) -> None:
        """Test which kinds carry a timestamp."""
        assert not spec_for(RecordKind.SYS).timestamped
        assert all(
            spec_for(kind).timestamped
            for kind in (RecordKind.COMPONENT, RecordKind.DISK, RecordKind.RAM)
        )

    def test_columns_not_null(self, conn: sqlite3.Connection) -> None:
        """Test that NULLs are rejected by the schema."""
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO component (timestamp, label, temp) VALUES (?, ?, ?)",
                ("2024-01-01 00:00:00", None, 1.0),
            )

    def test_query_all_orders_by_insertion(self) -> None:
        """Test the all-rows statement."""
        assert query_all(RecordKind.DISK) == (
            "SELECT timestamp, name, total, available FROM disk ORDER BY id"
        )

    def test_query_by_range_passes_bounds_through(self) -> None:
        """Test the range statement keeps bounds untouched and in order."""
        sql, params = query_by_range(
            RecordKind.RAM, "2024-01-02 00:00:00", "2024-01-01 00:00:00"
        )
        assert "WHERE timestamp BETWEEN ? AND ?" in sql
        assert params == ("2024-01-02 00:00:00", "2024-01-01 00:00:00")

    def test_query_by_range_on_sys_rejected(self) -> None:
        """Test that sys records cannot be range-filtered."""
        with pytest.raises(InputError):
            query_by_range(RecordKind.SYS, "a", "b")


# =============================================================================
# Tests for write_to_store and from_row
# =============================================================================


class TestWriteAndDecode:
    """Tests for inserting and decoding records."""

    @pytest.mark.parametrize(
        "record",
        [
            SysRecord(os="Ubuntu", os_version="22.04", hostname="box"),
            ComponentRecord(timestamp="2024-01-01 10:00:00", label="cpu", temperature=51.25),
            DiskRecord(
                timestamp="2024-01-01 10:00:00",
                name="/dev/nvme0n1p2",
                total_bytes=2**40,
                available_bytes=2**39,
            ),
            RamRecord(
                timestamp="2024-01-01 10:00:00",
                total_memory=16 * 2**30,
                used_memory=5 * 2**30,
                total_swap=2**31,
                used_swap=0,
            ),
        ],
    )
    def test_stored_row_decodes_to_same_record(
        self, conn: sqlite3.Connection, record: SysRecord
    ) -> None:
        """Test that a stored record is read back unchanged."""
        row_id = write_to_store(record, conn)
        row = conn.execute(query_all(record.kind)).fetchone()

        assert row_id == 1
        assert from_row(record.kind, row) == record

    def test_ids_increase(self, conn: sqlite3.Connection) -> None:
        """Test that the identity column grows with each insert."""
        first = write_to_store(ComponentRecord("2024-01-01 10:00:00", "a", 1.0), conn)
        second = write_to_store(ComponentRecord("2024-01-01 10:00:00", "b", 2.0), conn)
        assert second > first

    def test_failed_insert_rolls_back(self, conn: sqlite3.Connection) -> None:
        """Test that a rejected insert leaves no transaction open."""
        with pytest.raises(sqlite3.IntegrityError):
            write_to_store(ComponentRecord("2024-01-01 10:00:00", None, 1.0), conn)

        assert not conn.in_transaction
        write_to_store(ComponentRecord("2024-01-01 10:00:00", "cpu", 1.0), conn)
        assert conn.execute("SELECT COUNT(*) FROM component").fetchone() == (1,)

    def test_unsigned_64_bit_maximum_rejected(self, conn: sqlite3.Connection) -> None:
        """Test that sizes above the signed 64-bit range cannot be stored."""
        record = DiskRecord(
            timestamp="2024-01-01 10:00:00",
            name="/dev/sda1",
            total_bytes=2**64 - 1,
            available_bytes=0,
        )

        with pytest.raises(OverflowError):
            write_to_store(record, conn)

        assert not conn.in_transaction
        assert conn.execute("SELECT COUNT(*) FROM disk").fetchone() == (0,)

    def test_wrong_table_rejected(self) -> None:
        """Test that a record cannot be encoded for another kind."""
        with pytest.raises(TypeError):
            spec_for(RecordKind.RAM).encode(SysRecord("os", "1", "h"))

    def test_decode_arity_mismatch(self) -> None:
        """Test that a short row raises DecodeError."""
        with pytest.raises(DecodeError) as exc_info:
            from_row(RecordKind.DISK, ("2024-01-01 10:00:00", "sda"))
        assert exc_info.value.details["table"] == "disk"

    def test_decode_type_mismatch(self) -> None:
        """Test that a wrongly typed column raises DecodeError."""
        with pytest.raises(DecodeError) as exc_info:
            from_row(RecordKind.RAM, ("2024-01-01 10:00:00", "lots", 1, 1, 1))
        assert exc_info.value.details["column"] == "total_memory"

    def test_decode_integer_temperature(self) -> None:
        """Test that an integer temperature decodes as float."""
        record = from_row(RecordKind.COMPONENT, ("2024-01-01 10:00:00", "cpu", 50))
        assert record == ComponentRecord("2024-01-01 10:00:00", "cpu", 50.0)
        assert isinstance(record.temperature, float)

    def test_str_includes_timestamp(self) -> None:
        """Test the display form of timestamped records."""
        record = RamRecord("2024-01-01 10:00:00", 8, 4, 2, 1)
        assert "2024-01-01 10:00:00" in str(record)
