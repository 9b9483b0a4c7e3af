"""
Host metrics snapshot.

This module defines the MetricsSource protocol the sampling engine reads
metrics from, and PsutilMetricsSource, the implementation backed by psutil.
A source is refreshed once per tick and then read, so every record of a tick
comes from the same reading.

`capture()` turns one refreshed reading into the tick's records, all stamped
with the same timestamp.
"""

from __future__ import annotations

import platform
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

import psutil

from sysrecorder.logging import get_logger
from sysrecorder.records import (
    ComponentRecord,
    DiskRecord,
    RamRecord,
    Record,
    SysRecord,
    format_timestamp,
)

logger = get_logger(__name__)

OS_RELEASE_PATH = Path("/etc/os-release")
THERMAL_BASE_PATH = Path("/sys/class/thermal")

# =============================================================================
# Data Models
# =============================================================================


@dataclass(frozen=True)
class SystemIdentity:
    """OS name, OS version and hostname of the host."""

    os: str
    os_version: str
    hostname: str


@dataclass(frozen=True)
class MemoryInfo:
    """Physical memory and swap, in bytes."""

    total_memory: int
    used_memory: int
    total_swap: int
    used_swap: int


@dataclass(frozen=True)
class DiskInfo:
    """Capacity of one disk, in bytes."""

    name: str
    total_bytes: int
    available_bytes: int


@dataclass(frozen=True)
class SensorReading:
    """One temperature sensor, in degrees Celsius."""

    label: str
    temperature: float


@dataclass
class Snapshot:
    """The records produced by one tick.

    Attributes:
        timestamp: Timestamp shared by every record of the tick.
        components: One record per temperature sensor.
        disks: One record per disk.
        ram: The memory record.
    """

    timestamp: str
    ram: RamRecord
    components: list[ComponentRecord] = field(default_factory=list)
    disks: list[DiskRecord] = field(default_factory=list)

    def records(self) -> list[Record]:
        """All records of the tick in table order."""
        return [*self.components, *self.disks, self.ram]


# =============================================================================
# MetricsSource Protocol
# =============================================================================


@runtime_checkable
class MetricsSource(Protocol):
    """Capability the sampling engine gathers host metrics through."""

    def system_identity(self) -> SystemIdentity: ...

    def refresh(self) -> None: ...

    def memory(self) -> MemoryInfo: ...

    def disks(self) -> list[DiskInfo]: ...

    def sensors(self) -> list[SensorReading]: ...


# =============================================================================
# psutil-backed implementation
# =============================================================================


def _get_os_info() -> tuple[str, str]:
    """
    Get OS name and version.

    Reads NAME and VERSION_ID (or VERSION) from /etc/os-release on Linux,
    falling back to the platform module.

    Returns:
        Tuple of (os_name, os_version).
    """
    os_name = platform.system()
    os_version = platform.release()

    try:
        if OS_RELEASE_PATH.exists():
            fields: dict[str, str] = {}
            for line in OS_RELEASE_PATH.read_text().splitlines():
                key, sep, value = line.partition("=")
                if sep:
                    fields[key.strip()] = value.strip().strip('"')
            os_name = fields.get("NAME", os_name)
            os_version = fields.get("VERSION_ID", fields.get("VERSION", os_version))
    except OSError as e:
        logger.debug("Could not read os-release: %r", e)

    return os_name, os_version


def _read_psutil_sensors() -> list[SensorReading] | None:
    """
    Read temperature sensors through psutil.

    Returns:
        The readings, or None when psutil has no sensor support here.
    """
    if not hasattr(psutil, "sensors_temperatures"):
        return None

    try:
        temps = psutil.sensors_temperatures()
    except (OSError, RuntimeError) as e:
        logger.debug("psutil could not read temperature sensors: %r", e)
        return None

    readings = []
    for chip, entries in sorted(temps.items()):
        for index, entry in enumerate(entries):
            label = f"{chip} {entry.label}" if entry.label else f"{chip} {index}"
            readings.append(SensorReading(label=label, temperature=float(entry.current)))
    return readings


def _read_thermal_zones() -> list[SensorReading]:
    """Read temperatures from /sys/class/thermal/thermal_zone*."""
    readings: list[SensorReading] = []

    if not THERMAL_BASE_PATH.exists():
        return readings

    for zone_path in sorted(THERMAL_BASE_PATH.glob("thermal_zone*")):
        try:
            temp_milli_c = int((zone_path / "temp").read_text().strip())
            type_path = zone_path / "type"
            zone_type = (
                type_path.read_text().strip() if type_path.exists() else zone_path.name
            )
        except (OSError, ValueError):
            continue
        readings.append(SensorReading(label=zone_type, temperature=temp_milli_c / 1000.0))

    return readings


def _read_disks() -> list[DiskInfo]:
    """Capacity of each distinct device among the mounted partitions."""
    disks: list[DiskInfo] = []
    seen: set[str] = set()

    for partition in psutil.disk_partitions(all=False):
        if partition.device in seen:
            continue
        try:
            usage = psutil.disk_usage(partition.mountpoint)
        except OSError:
            # Unready removable media, permission-restricted mounts
            continue
        seen.add(partition.device)
        disks.append(
            DiskInfo(
                name=partition.device,
                total_bytes=int(usage.total),
                available_bytes=int(usage.free),
            )
        )

    return disks


class PsutilMetricsSource:
    """
    MetricsSource backed by psutil.

    `refresh()` reads memory, disks and sensors once and caches them; the
    accessors return the cached reading, refreshing first if nothing has
    been read yet.
    """

    def __init__(self) -> None:
        self._memory: MemoryInfo | None = None
        self._disks: list[DiskInfo] = []
        self._sensors: list[SensorReading] = []

    def system_identity(self) -> SystemIdentity:
        os_name, os_version = _get_os_info()
        return SystemIdentity(
            os=os_name, os_version=os_version, hostname=socket.gethostname()
        )

    def refresh(self) -> None:
        self._refresh()

    def _refresh(self) -> MemoryInfo:
        memory = psutil.virtual_memory()
        swap = psutil.swap_memory()
        self._memory = MemoryInfo(
            total_memory=int(memory.total),
            used_memory=int(memory.used),
            total_swap=int(swap.total),
            used_swap=int(swap.used),
        )
        self._disks = _read_disks()

        sensors = _read_psutil_sensors()
        if not sensors:
            sensors = _read_thermal_zones()
        self._sensors = sensors
        return self._memory

    def memory(self) -> MemoryInfo:
        return self._memory or self._refresh()

    def disks(self) -> list[DiskInfo]:
        if self._memory is None:
            self._refresh()
        return list(self._disks)

    def sensors(self) -> list[SensorReading]:
        if self._memory is None:
            self._refresh()
        return list(self._sensors)


# =============================================================================
# Snapshot capture
# =============================================================================


def identity_record(source: MetricsSource) -> SysRecord:
    """Build the host identity record."""
    identity = source.system_identity()
    return SysRecord(
        os=identity.os, os_version=identity.os_version, hostname=identity.hostname
    )


def capture(source: MetricsSource, timestamp: str | None = None) -> Snapshot:
    """
    Refresh the source and build the records of one tick.

    Args:
        source: The metrics source to read.
        timestamp: Timestamp for every record. Defaults to now.

    Returns:
        The tick's Snapshot.
    """
    timestamp = timestamp or format_timestamp()
    source.refresh()

    memory = source.memory()
    return Snapshot(
        timestamp=timestamp,
        ram=RamRecord(
            timestamp=timestamp,
            total_memory=memory.total_memory,
            used_memory=memory.used_memory,
            total_swap=memory.total_swap,
            used_swap=memory.used_swap,
        ),
        components=[
            ComponentRecord(
                timestamp=timestamp, label=sensor.label, temperature=sensor.temperature
            )
            for sensor in source.sensors()
        ],
        disks=[
            DiskRecord(
                timestamp=timestamp,
                name=disk.name,
                total_bytes=disk.total_bytes,
                available_bytes=disk.available_bytes,
            )
            for disk in source.disks()
        ],
    )
