"""
Version, platform and timing helpers shared by the CLI and the run report.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import platform
from datetime import datetime, timezone

__version__ = "0.1.0"


def get_version() -> str:
    return __version__


def get_version_banner() -> str:
    """One-line banner logged at the start of a merge."""
    return f"cleanplate v{__version__} | Transient-free image merging"


def get_platform_info() -> str:
    """OS and interpreter, recorded in manifests for reproducibility."""
    return f"{platform.system()} {platform.release()} / Python {platform.python_version()}"


def get_timestamp_iso() -> str:
    """Current UTC time, ISO 8601 with second precision."""
    return datetime.now(timezone.utc).isoformat(timespec="seconds")


def format_duration(seconds: float) -> str:
    """
    Format an elapsed time for the terminal.

    Sub-minute durations keep one decimal ("4.2s"); longer ones are split
    into whole units ("3m 07s", "1h 02m 05s").
    """
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    if minutes < 60:
        return f"{minutes}m {secs:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m {secs:02d}s"
