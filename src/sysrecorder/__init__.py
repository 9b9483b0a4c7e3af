"""
System recorder - local host telemetry recorder.

This package periodically samples host metrics (OS identity, temperature
sensors, disks, memory and swap) into SQLite, and lets an interactive
console start and stop recording and query the recorded samples.
"""

__version__ = "0.1.0"
