"""
I/O operations for cleanplate.

Handles:
- Input discovery from glob patterns, in a stable order
- Decoding raster images (imageio) and FITS files (astropy) into RGBA16 grids
- Encoding the merged grid to JPEG/PNG/TIFF/FITS

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import glob
import logging
from pathlib import Path
from typing import Iterable

import imageio.v3 as iio
import numpy as np
from astropy.io import fits

from .errors import ImageDecodeError, NoInputFilesError, UnsupportedFormatError
from .grid import MAX_VALUE, PIXEL_DTYPE, PixelGrid
from .utils import get_version

logger = logging.getLogger(__name__)

FITS_SUFFIXES = {".fits", ".fit", ".fts"}
JPEG_SUFFIXES = {".jpg", ".jpeg"}
RGBA8_SUFFIXES = {".png", ".webp"}
RGB8_SUFFIXES = {".bmp"}
TIFF_SUFFIXES = {".tif", ".tiff"}
OUTPUT_SUFFIXES = FITS_SUFFIXES | JPEG_SUFFIXES | RGBA8_SUFFIXES | RGB8_SUFFIXES | TIFF_SUFFIXES


def expand_inputs(patterns: Iterable[str | Path]) -> list[Path]:
    """
    Expand glob patterns into an ordered list of input files.

    Parameters
    ----------
    patterns : iterable of str or Path
        Glob patterns (e.g. ``"Demo/Input/*.jpeg"``) or plain paths.

    Returns
    -------
    list[Path]
        Matches of each pattern sorted by name, concatenated in argument
        order, without duplicates.

    Raises
    ------
    NoInputFilesError
        If no pattern matches an existing file.

    Notes
    -----
    Sorting makes the merge order, and therefore the result, reproducible
    across runs and filesystems.
    """
    patterns = [str(p) for p in patterns]
    seen = set()
    paths = []

    for pattern in patterns:
        matches = sorted(glob.glob(pattern))
        if not matches:
            logger.warning("No files match: %s", pattern)
        for match in matches:
            path = Path(match)
            if not path.is_file():
                logger.debug("Skipping non-file: %s", path)
                continue
            key = path.resolve()
            if key in seen:
                continue
            seen.add(key)
            paths.append(path)

    if not paths:
        raise NoInputFilesError(patterns)

    logger.info("Discovered %d input images", len(paths))
    return paths


def to_rgba16(data: np.ndarray, float_scale: bool = True) -> np.ndarray:
    """
    Normalise decoded pixel data into an (H, W, 4) uint16 RGBA array.

    Parameters
    ----------
    data : np.ndarray
        Channel-last image: (H, W) grey, (H, W, 1) grey, (H, W, 2) grey+alpha,
        (H, W, 3) RGB or (H, W, 4) RGBA.
    float_scale : bool, default True
        Treat floating-point data as normalised [0, 1] and scale it to the
        16-bit range. If False, float data is clipped as-is.

    Returns
    -------
    np.ndarray
        RGBA16 array. Missing alpha is set to opaque.

    Notes
    -----
    8-bit samples are widened by 257 (0xAB -> 0xABAB) so 255 maps to 65535.
    """
    if data.ndim == 2:
        data = data[:, :, np.newaxis]
    if data.ndim != 3 or data.shape[2] not in (1, 2, 3, 4):
        raise ValueError(f"Unsupported pixel layout {data.shape}")

    if data.dtype == np.uint8:
        values = data.astype(np.uint32) * 257
    elif data.dtype == np.bool_:
        values = data.astype(np.uint32) * MAX_VALUE
    elif np.issubdtype(data.dtype, np.floating):
        values = np.nan_to_num(data.astype(np.float64), nan=0.0)
        if float_scale:
            values = np.rint(np.clip(values, 0.0, 1.0) * MAX_VALUE)
    else:
        values = data

    values = np.clip(values, 0, MAX_VALUE).astype(PIXEL_DTYPE)

    n = values.shape[2]
    if n == 1:
        grey = values[:, :, 0]
        alpha = np.full_like(grey, MAX_VALUE)
        return np.stack([grey, grey, grey, alpha], axis=-1)
    if n == 2:
        grey, alpha = values[:, :, 0], values[:, :, 1]
        return np.stack([grey, grey, grey, alpha], axis=-1)
    if n == 3:
        alpha = np.full(values.shape[:2] + (1,), MAX_VALUE, dtype=PIXEL_DTYPE)
        return np.concatenate([values, alpha], axis=-1)
    return np.ascontiguousarray(values)


def read_fits_image(path: str | Path) -> np.ndarray:
    """
    Read a FITS image as channel-last pixel data.

    2D data is a grey image; 3D data must be channel-first with 3 or 4
    planes. Values are taken as 16-bit counts (no rescaling).
    """
    with fits.open(path) as hdul:
        hdu = next((h for h in hdul if h.data is not None), None)
        if hdu is None:
            raise ValueError("no image data in any HDU")
        data = np.array(hdu.data)

    if data.ndim == 3:
        if data.shape[0] not in (3, 4):
            raise ValueError(f"expected 3 or 4 colour planes, got shape {data.shape}")
        data = np.moveaxis(data, 0, -1)
    elif data.ndim != 2:
        raise ValueError(f"unsupported FITS dimensions {data.shape}")

    return data


def load_grid(path: str | Path) -> PixelGrid:
    """
    Decode an image file into an RGBA16 pixel grid anchored at (0, 0).

    Parameters
    ----------
    path : str or Path
        Raster image (anything imageio can read) or FITS file.

    Returns
    -------
    PixelGrid
        Decoded grid.

    Raises
    ------
    ImageDecodeError
        If the file cannot be read or has an unsupported layout.
    """
    path = Path(path)
    try:
        if path.suffix.lower() in FITS_SUFFIXES:
            data = to_rgba16(read_fits_image(path), float_scale=False)
        else:
            data = to_rgba16(iio.imread(path, index=0))
    except Exception as e:
        raise ImageDecodeError(path, str(e)) from e

    logger.debug("Loaded %s (%dx%d)", path.name, data.shape[1], data.shape[0])
    return PixelGrid(data=data)


def load_grids(paths: list[Path], show_progress: bool = False) -> list[PixelGrid]:
    """
    Decode every input file, in order.

    Parameters
    ----------
    paths : list[Path]
        Input files.
    show_progress : bool, default False
        Show a progress bar.

    Returns
    -------
    list[PixelGrid]
        One grid per path.
    """
    from .cli_output import create_progress_bar

    grids = []
    pbar = create_progress_bar(
        total=len(paths),
        desc="Loading",
        unit="image",
        disable=not show_progress,
    )
    with pbar:
        for path in paths:
            grids.append(load_grid(path))
            pbar.update(1)
    return grids


def save_grid(
    grid: PixelGrid,
    path: str | Path,
    quality: int = 100,
    overwrite: bool = False,
) -> Path:
    """
    Encode a pixel grid to disk, choosing the format from the extension.

    Parameters
    ----------
    grid : PixelGrid
        Grid to write.
    path : str or Path
        Output path. ``.jpg``/``.jpeg`` (8-bit RGB), ``.png``/``.webp`` (8-bit
        RGBA), ``.bmp`` (8-bit RGB), ``.tif``/``.tiff`` (16-bit RGBA) or
        ``.fits``/``.fit``/``.fts`` (16-bit, channel-first).
    quality : int, default 100
        JPEG quality.
    overwrite : bool, default False
        Whether to overwrite an existing file.

    Returns
    -------
    Path
        Written path.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in OUTPUT_SUFFIXES:
        raise UnsupportedFormatError(path, OUTPUT_SUFFIXES)
    if path.exists() and not overwrite:
        raise FileExistsError(f"Output file exists (use overwrite): {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    data = grid.data

    if suffix in FITS_SUFFIXES:
        header = fits.Header()
        header["ORIGIN"] = f"cleanplate {get_version()}"
        header["XORIGIN"] = (grid.origin[0], "Absolute x of first column")
        header["YORIGIN"] = (grid.origin[1], "Absolute y of first row")
        hdu = fits.PrimaryHDU(data=np.moveaxis(data, -1, 0), header=header)
        hdu.writeto(path, overwrite=overwrite)
    elif suffix in TIFF_SUFFIXES:
        iio.imwrite(path, data, photometric="rgb")
    else:
        data8 = (data >> 8).astype(np.uint8)
        if suffix in JPEG_SUFFIXES:
            iio.imwrite(path, data8[:, :, :3], quality=quality)
        elif suffix in RGB8_SUFFIXES:
            iio.imwrite(path, data8[:, :, :3])
        else:
            iio.imwrite(path, data8)

    logger.info("Wrote %s (%dx%d)", path, grid.width, grid.height)
    return path
