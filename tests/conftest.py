"""
Pytest configuration for the system recorder tests.
"""

from __future__ import annotations

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

from sysrecorder.snapshot import DiskInfo, MemoryInfo, SensorReading, SystemIdentity
from sysrecorder.storage import StorageHandle

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


class FakeMetricsSource:
    """Deterministic MetricsSource with two sensors and two disks."""

    def __init__(self, hostname: str = "test-host") -> None:
        self.hostname = hostname
        self.refresh_count = 0

    def system_identity(self) -> SystemIdentity:
        return SystemIdentity(os="TestOS", os_version="1.0", hostname=self.hostname)

    def refresh(self) -> None:
        self.refresh_count += 1

    def memory(self) -> MemoryInfo:
        return MemoryInfo(
            total_memory=8_000_000_000,
            used_memory=3_000_000_000 + self.refresh_count,
            total_swap=2_000_000_000,
            used_swap=0,
        )

    def disks(self) -> list[DiskInfo]:
        return [
            DiskInfo(name="/dev/sda1", total_bytes=500_000_000_000, available_bytes=200_000_000_000),
            DiskInfo(name="/dev/sdb1", total_bytes=1_000_000_000_000, available_bytes=900_000_000_000),
        ]

    def sensors(self) -> list[SensorReading]:
        return [
            SensorReading(label="coretemp Package id 0", temperature=45.5),
            SensorReading(label="acpitz 0", temperature=40.0),
        ]


@pytest.fixture
def fake_source() -> FakeMetricsSource:
    """A deterministic metrics source."""
    return FakeMetricsSource()


@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test_sysinfo.db"


@pytest.fixture
def storage(temp_db_path: Path) -> Generator[StorageHandle, None, None]:
    """An open StorageHandle with the schema in place."""
    handle = StorageHandle(temp_db_path)
    handle.open()
    handle.ensure_schema()
    yield handle
    handle.close()


class OversizedDiskSource(FakeMetricsSource):
    """FakeMetricsSource whose second disk reports the unsigned 64-bit maximum."""

    def disks(self) -> list[DiskInfo]:
        normal, _ = super().disks()
        return [
            normal,
            DiskInfo(name="/dev/sdz1", total_bytes=2**64 - 1, available_bytes=2**64 - 1),
        ]


@pytest.fixture
def oversized_source() -> OversizedDiskSource:
    """A metrics source with one disk too large for a SQLite INTEGER."""
    return OversizedDiskSource()
