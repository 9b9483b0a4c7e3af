"""Allow running the recorder with `python -m sysrecorder`."""

from sysrecorder.cli import main

raise SystemExit(main())
