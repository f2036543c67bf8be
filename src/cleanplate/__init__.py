"""
cleanplate - Remove transient objects from a series of aligned photos.

Merges N aligned images of the same scene into one by taking, at every
pixel, the mean of the images that are not outliers on any channel.
People and vehicles that pass through the frame are rejected; the static
background remains.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com

Example
-------
>>> from cleanplate import merge_images, MergeConfig
>>> config = MergeConfig(n_sigma=1.3)
>>> result = merge_images(["Demo/Input/*.jpeg"], "Demo/output.jpeg", config=config)
>>> print(result.stats["mean_rejected_fraction"])

Example (in memory)
-------------------
>>> from cleanplate import composite_grids
>>> merged, keep_count = composite_grids(grids, n_sigma=1.3)
"""

from .config import MergeConfig, MergeResult
from .utils import __version__, get_version_banner

# Primary entry point
from .cli import merge_images

# Data model
from .grid import CHANNEL_NAMES, MAX_VALUE, Bounds, PixelGrid

# Statistics engine
from .stats import mean, sample_std

# Compositor
from .compose import (
    MergeStatistics,
    check_grids,
    composite_grids,
    composite_pixel,
    compute_merge_statistics,
    outlier_mask,
)

# I/O functions
from .io import expand_inputs, load_grid, load_grids, save_grid

# Reports
from .report import write_manifest, write_report, write_report_markdown

# Errors
from .errors import (
    AllPixelsRejectedError,
    DimensionMismatchError,
    EmptyInputError,
    ImageDecodeError,
    InsufficientImagesError,
    InsufficientSamplesError,
    MergeError,
    NoInputFilesError,
    StatisticsError,
    UnsupportedFormatError,
)

__all__ = [
    # Version
    "__version__",
    "get_version_banner",
    # Config
    "MergeConfig",
    "MergeResult",
    # Main entry point
    "merge_images",
    # Data model
    "Bounds",
    "PixelGrid",
    "CHANNEL_NAMES",
    "MAX_VALUE",
    # Statistics
    "mean",
    "sample_std",
    # Compositor
    "composite_pixel",
    "composite_grids",
    "check_grids",
    "outlier_mask",
    "compute_merge_statistics",
    "MergeStatistics",
    # I/O
    "expand_inputs",
    "load_grid",
    "load_grids",
    "save_grid",
    # Reports
    "write_manifest",
    "write_report",
    "write_report_markdown",
    # Errors
    "MergeError",
    "DimensionMismatchError",
    "InsufficientImagesError",
    "StatisticsError",
    "EmptyInputError",
    "InsufficientSamplesError",
    "AllPixelsRejectedError",
    "NoInputFilesError",
    "ImageDecodeError",
    "UnsupportedFormatError",
]
