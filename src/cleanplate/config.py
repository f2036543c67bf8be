"""
Configuration dataclasses for the cleanplate merge.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from .compose import DEFAULT_CHUNK_ROWS


@dataclass
class MergeConfig:
    """
    Configuration for one merge run.

    Fixed for the duration of the run; every value is passed explicitly to
    the compositor.
    """

    # --- Rejection ---
    n_sigma: float = 1.3
    """Strength of the pixel rejection, in multiples of the standard deviation."""

    on_all_rejected: Literal["error", "fallback"] = "error"
    """What to do when every image is rejected at a pixel:
    - 'error': abort the run, naming the coordinate.
    - 'fallback': use the unfiltered mean there and log a warning.
    """

    # --- Parallelism ---
    workers: int | None = None
    """Number of worker threads. None = auto-detect (CPU count - 1)."""

    chunk_rows: int = DEFAULT_CHUNK_ROWS
    """Rows per worker task."""

    # --- Output ---
    quality: int = 100
    """JPEG quality (1-100)."""

    overwrite: bool = False
    """Replace an existing output file."""

    def validate(self) -> None:
        """Validate configuration parameters."""
        if not self.n_sigma > 0:
            raise ValueError(f"n_sigma must be positive, got {self.n_sigma}")
        if self.on_all_rejected not in ("error", "fallback"):
            raise ValueError(
                f"on_all_rejected must be 'error' or 'fallback', got {self.on_all_rejected!r}"
            )
        if self.workers is not None and self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")
        if self.chunk_rows < 1:
            raise ValueError(f"chunk_rows must be >= 1, got {self.chunk_rows}")
        if not 1 <= self.quality <= 100:
            raise ValueError(f"quality must be in [1, 100], got {self.quality}")


@dataclass
class MergeResult:
    """
    Result of a merge run.

    Contains all information needed to understand and reproduce the result.
    """

    # --- Inputs ---
    inputs: list[str] = field(default_factory=list)
    """Input files, in merge order."""

    bounds: tuple[int, int, int, int] | None = None
    """Shared bounds as (min_x, min_y, max_x, max_y)."""

    # --- Outputs ---
    output: str = ""
    """Path of the merged image."""

    report: str = ""
    """Path of the JSON manifest, if one was written."""

    # --- Statistics ---
    stats: dict[str, float] = field(default_factory=dict)
    """Merge statistics (e.g., 'mean_rejected_fraction', 'n_fallback_pixels')."""

    # --- Configuration ---
    config: MergeConfig | None = None
    """Configuration used for this run."""

    # --- Metadata ---
    version: str = ""
    """Library version."""

    timestamp: str = ""
    """ISO format timestamp of run completion."""

    platform: str = ""
    """Platform information."""

    elapsed_s: float = 0.0
    """Wall-clock duration of the run."""
