"""
Per-pixel outlier-rejecting compositor.

For every coordinate, each channel's mean and sample standard deviation are
computed across the image stack. An image's pixel is rejected when any of
its channels lies strictly outside ``mean ± n_sigma * std``; the output pixel
is the mean of the surviving pixels.

The grid is processed in disjoint row chunks on a thread pool. Each chunk
runs the same vectorised kernel as ``composite_pixel``, so the result does
not depend on ``workers`` or ``chunk_rows``.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Literal, Sequence

import numpy as np

from . import stats
from .errors import (
    AllPixelsRejectedError,
    DimensionMismatchError,
    InsufficientImagesError,
    MergeError,
    StatisticsError,
)
from .grid import CHANNEL_NAMES, MAX_VALUE, N_CHANNELS, PIXEL_DTYPE, Bounds, PixelGrid

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = max(1, os.cpu_count() - 1) if os.cpu_count() else 4
DEFAULT_CHUNK_ROWS = 32

AllRejectedPolicy = Literal["error", "fallback"]


@dataclass
class MergeStatistics:
    """Statistics from a merge."""

    n_images: int
    n_pixels: int
    mean_rejected_fraction: float  # Average fraction of images rejected per pixel
    fully_kept_fraction: float  # Fraction of pixels where no image was rejected
    min_contributing: int
    max_contributing: int
    n_fallback_pixels: int  # Pixels where every image was rejected


def _check_n_sigma(n_sigma: float) -> None:
    if not n_sigma > 0:
        raise ValueError(f"n_sigma must be positive, got {n_sigma}")


def _check_policy(on_all_rejected: str) -> None:
    if on_all_rejected not in ("error", "fallback"):
        raise ValueError(f"Unknown all-rejected policy: {on_all_rejected!r}")


def outlier_mask(
    cube: np.ndarray,
    means: np.ndarray,
    stds: np.ndarray,
    n_sigma: float,
) -> np.ndarray:
    """
    Whole-pixel rejection rule.

    Parameters
    ----------
    cube : np.ndarray
        Samples with shape (n_images, ..., 4).
    means, stds : np.ndarray
        Per-channel mean and sample standard deviation, shape (..., 4).
    n_sigma : float
        Rejection threshold in standard deviations.

    Returns
    -------
    np.ndarray
        Boolean array of shape (n_images, ...), True where the sample is
        rejected.

    Notes
    -----
    Comparisons are strict, so a value exactly at ``mean ± n_sigma * std``
    is kept. A sample that is an outlier on any one channel is rejected on
    all four.
    """
    lower = means - n_sigma * stds
    upper = means + n_sigma * stds
    outlier = (cube < lower) | (cube > upper)
    return outlier.any(axis=-1)


def _to_pixels(values: np.ndarray, max_value: int, dtype=PIXEL_DTYPE) -> np.ndarray:
    """Truncate toward zero and clip into the pixel range."""
    return np.clip(np.trunc(values), 0, max_value).astype(dtype)


def _first_pixel(mask: np.ndarray, origin: tuple[int, int]) -> tuple[int, int]:
    """Absolute (x, y) of the first True entry of a (rows, cols) mask, row-major."""
    hits = np.argwhere(mask)
    if hits.size == 0:
        return origin
    iy, ix = hits[0]
    return origin[0] + int(ix), origin[1] + int(iy)


def _composite_block(
    cube: np.ndarray,
    n_sigma: float,
    origin: tuple[int, int],
    on_all_rejected: AllRejectedPolicy = "error",
) -> tuple[np.ndarray, np.ndarray]:
    """
    Composite a block of samples.

    ``cube`` has shape (n_images, rows, cols, 4) in float64. ``origin`` is the
    absolute (x, y) of the block's first pixel and is only used for error
    reporting.

    Returns the float64 survivor means (rows, cols, 4) and the number of
    surviving images per pixel (rows, cols).
    """
    rows, cols = cube.shape[1:3]
    means = np.empty((rows, cols, N_CHANNELS), dtype=np.float64)
    stds = np.empty((rows, cols, N_CHANNELS), dtype=np.float64)

    for c, channel_name in enumerate(CHANNEL_NAMES):
        try:
            means[..., c] = stats.mean(cube[..., c], axis=0)
            stds[..., c] = stats.sample_std(cube[..., c], axis=0)
        except StatisticsError as e:
            # Every pixel of the block has the same sample count, so the
            # first one in row-major order is the block's first pixel.
            raise e.locate(channel=channel_name, coordinate=origin)

    rejected = outlier_mask(cube, means, stds, n_sigma)
    keep = ~rejected
    keep_count = keep.sum(axis=0)

    empty = keep_count == 0
    if np.any(empty):
        if on_all_rejected == "error":
            x, y = _first_pixel(empty, origin)
            raise AllPixelsRejectedError(x, y, n_sigma)
        # Unfiltered mean where nothing survived
        keep = keep | empty[np.newaxis]

    try:
        survivors = stats.mean(cube, axis=0, where=keep[..., np.newaxis])
    except StatisticsError as e:
        raise e.locate(coordinate=_first_pixel(~keep.any(axis=0), origin))

    return survivors, keep_count


def composite_pixel(
    samples: Sequence[Sequence[float]] | np.ndarray,
    n_sigma: float,
    max_value: int = MAX_VALUE,
    on_all_rejected: AllRejectedPolicy = "error",
    coordinate: tuple[int, int] = (0, 0),
) -> tuple[int, int, int, int]:
    """
    Composite one output pixel from the stack of input pixels at a coordinate.

    Parameters
    ----------
    samples : sequence of (R, G, B, A)
        One pixel per input image, in input order.
    n_sigma : float
        Rejection threshold in standard deviations (must be positive).
    max_value : int, default 65535
        Upper bound of the output channel range.
    on_all_rejected : {"error", "fallback"}, default "error"
        What to do when every sample is rejected: raise
        ``AllPixelsRejectedError`` or use the unfiltered mean.
    coordinate : tuple[int, int], default (0, 0)
        Coordinate reported in errors.

    Returns
    -------
    tuple[int, int, int, int]
        Output (R, G, B, A).

    Raises
    ------
    InsufficientSamplesError
        Fewer than two samples.
    AllPixelsRejectedError
        Every sample rejected under the "error" policy.
    """
    _check_n_sigma(n_sigma)
    _check_policy(on_all_rejected)
    cube = np.asarray(samples, dtype=np.float64)
    if cube.size == 0:
        cube = cube.reshape(0, N_CHANNELS)
    if cube.ndim != 2 or cube.shape[1] != N_CHANNELS:
        raise ValueError(f"Expected samples of shape (n, {N_CHANNELS}), got {cube.shape}")

    survivors, keep_count = _composite_block(
        cube[:, np.newaxis, np.newaxis, :],
        n_sigma,
        origin=coordinate,
        on_all_rejected=on_all_rejected,
    )
    if keep_count[0, 0] == 0:
        logger.warning(
            "All %d samples rejected at x=%d y=%d (N=%g); using unfiltered mean",
            cube.shape[0], coordinate[0], coordinate[1], n_sigma,
        )

    r, g, b, a = _to_pixels(survivors[0, 0], max_value, dtype=np.int64)
    return int(r), int(g), int(b), int(a)


def check_grids(grids: Sequence[PixelGrid]) -> Bounds:
    """
    Validate merge preconditions and return the shared bounds.

    Raises
    ------
    InsufficientImagesError
        Fewer than two grids.
    DimensionMismatchError
        A grid's bounds differ from the first grid's.
    """
    if len(grids) < 2:
        raise InsufficientImagesError(len(grids))

    bounds = grids[0].bounds
    for i, grid in enumerate(grids[1:], start=1):
        if grid.bounds != bounds:
            raise DimensionMismatchError(bounds, grid.bounds, index=i)
    return bounds


def composite_grids(
    grids: Sequence[PixelGrid],
    n_sigma: float = 1.3,
    workers: int | None = None,
    chunk_rows: int = DEFAULT_CHUNK_ROWS,
    on_all_rejected: AllRejectedPolicy = "error",
    max_value: int = MAX_VALUE,
    show_progress: bool = False,
) -> tuple[PixelGrid, np.ndarray]:
    """
    Merge a stack of equal-bounds grids into one outlier-rejected mean grid.

    Parameters
    ----------
    grids : sequence of PixelGrid
        At least two grids with identical bounds.
    n_sigma : float, default 1.3
        Rejection threshold in standard deviations.
    workers : int or None, default None
        Number of worker threads. None uses CPU count - 1.
    chunk_rows : int, default 32
        Rows per task. Peak memory per worker is about
        ``n_images * chunk_rows * width * 4 * 8`` bytes.
    on_all_rejected : {"error", "fallback"}, default "error"
        Policy for coordinates where every image is rejected.
    max_value : int, default 65535
        Upper bound of the output channel range.
    show_progress : bool, default False
        Show a progress bar over row chunks.

    Returns
    -------
    tuple[PixelGrid, np.ndarray]
        (merged, keep_count)
        merged: Output grid with the same bounds as the inputs.
        keep_count: Number of surviving images per pixel, shape (H, W), int32.
        Zero marks a fallback pixel.

    Notes
    -----
    Preconditions are checked before any pixel is processed, so a mismatch
    never produces partial output. Under the "error" policy the reported
    coordinate is the first failing one in row-major order: chunk results
    are collected in submission order and chunks not yet started are
    cancelled.
    """
    _check_n_sigma(n_sigma)
    if chunk_rows < 1:
        raise ValueError(f"chunk_rows must be >= 1, got {chunk_rows}")
    _check_policy(on_all_rejected)

    bounds = check_grids(grids)
    if workers is None:
        workers = DEFAULT_WORKERS
    workers = max(1, workers)

    n_images = len(grids)
    height, width = bounds.height, bounds.width

    logger.info(
        "Merging %d images (%dx%d) with N=%.2f, workers=%d, chunk_rows=%d",
        n_images, width, height, n_sigma, workers, chunk_rows
    )

    merged = PixelGrid.blank(bounds)
    keep_count = np.zeros((height, width), dtype=np.int32)

    def _run_chunk(row_start: int, row_end: int) -> None:
        cube = np.stack(
            [g.data[row_start:row_end] for g in grids], axis=0
        ).astype(np.float64)
        survivors, counts = _composite_block(
            cube,
            n_sigma,
            origin=(bounds.min_x, bounds.min_y + row_start),
            on_all_rejected=on_all_rejected,
        )
        merged.data[row_start:row_end] = _to_pixels(survivors, max_value)
        keep_count[row_start:row_end] = counts

    chunks = [
        (row_start, min(row_start + chunk_rows, height))
        for row_start in range(0, height, chunk_rows)
    ]

    from .cli_output import create_progress_bar

    pbar = create_progress_bar(
        total=len(chunks),
        desc=f"Merge ({workers} workers)",
        unit="chunk",
        disable=not show_progress,
    )

    with pbar:
        if workers == 1:
            for chunk_idx, (row_start, row_end) in enumerate(chunks):
                logger.debug(
                    "Processing chunk %d/%d (rows %d-%d)",
                    chunk_idx + 1, len(chunks), row_start, row_end - 1
                )
                _run_chunk(row_start, row_end)
                pbar.update(1)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(_run_chunk, *chunk) for chunk in chunks]
                for future in futures:
                    try:
                        future.result()
                    except MergeError:
                        for pending in futures:
                            pending.cancel()
                        raise
                    pbar.update(1)

    n_fallback = int(np.count_nonzero(keep_count == 0))
    if n_fallback:
        logger.warning(
            "All images rejected at %d pixel(s) with N=%g; used unfiltered mean there",
            n_fallback, n_sigma
        )

    logger.info(
        "Merge complete. Mean contributing images: %.2f, min: %d, max: %d",
        float(np.mean(keep_count)) if keep_count.size else 0.0,
        int(np.min(keep_count)) if keep_count.size else 0,
        int(np.max(keep_count)) if keep_count.size else 0,
    )

    return merged, keep_count


def compute_merge_statistics(keep_count: np.ndarray, n_images: int) -> MergeStatistics:
    """
    Summarise a merge from its per-pixel keep counts.

    Parameters
    ----------
    keep_count : np.ndarray
        Surviving images per pixel, as returned by ``composite_grids``.
    n_images : int
        Number of input images.

    Returns
    -------
    MergeStatistics
        Statistics dataclass.
    """
    n_pixels = int(keep_count.size)
    if n_pixels == 0:
        return MergeStatistics(
            n_images=n_images,
            n_pixels=0,
            mean_rejected_fraction=0.0,
            fully_kept_fraction=1.0,
            min_contributing=n_images,
            max_contributing=n_images,
            n_fallback_pixels=0,
        )

    counts = keep_count.astype(np.float64)
    return MergeStatistics(
        n_images=n_images,
        n_pixels=n_pixels,
        mean_rejected_fraction=float(1.0 - np.mean(counts) / n_images),
        fully_kept_fraction=float(np.count_nonzero(keep_count == n_images) / n_pixels),
        min_contributing=int(np.min(keep_count)),
        max_contributing=int(np.max(keep_count)),
        n_fallback_pixels=int(np.count_nonzero(keep_count == 0)),
    )
