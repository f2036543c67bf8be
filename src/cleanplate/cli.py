"""
Command-line interface for cleanplate.

Usage:
    python -m cleanplate merge "Demo/Input/*.jpeg" -o Demo/output.jpeg
    cleanplate merge <pattern> [<pattern> ...] -o <output> [options]

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import asdict
from pathlib import Path

from .cli_output import (
    PipelineProgress,
    Symbols,
    print_banner,
    print_error,
    print_field,
    print_header,
    print_path,
    print_success,
    print_summary_box,
    print_warning,
    setup_terminal,
)
from .compose import composite_grids, compute_merge_statistics
from .config import MergeConfig, MergeResult
from .errors import AllPixelsRejectedError, MergeError
from .io import expand_inputs, load_grids, save_grid
from .report import write_report
from .utils import (
    format_duration,
    get_platform_info,
    get_timestamp_iso,
    get_version,
    get_version_banner,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-7s | %(message)s",
        datefmt="%H:%M:%S",
    )


def merge_images(
    patterns: list[str | Path],
    output: str | Path,
    config: MergeConfig | None = None,
    quiet: bool = True,
    report_path: str | Path | None = None,
) -> MergeResult:
    """
    Merge every image matching ``patterns`` into ``output``.

    Parameters
    ----------
    patterns : list of str or Path
        Glob patterns or paths of the aligned input images.
    output : str or Path
        Output image path; the extension selects the encoder.
    config : MergeConfig, optional
        Configuration. Uses defaults if not provided.
    quiet : bool, default True
        If True, suppress colored output and progress bars (logging only).
    report_path : str or Path, optional
        Write a JSON manifest (or Markdown for ``.md``) describing the run.

    Returns
    -------
    MergeResult
        Inputs, output path, statistics and configuration of the run.

    Raises
    ------
    MergeError
        Any precondition or rejection failure. Nothing is written when the
        merge fails.
    """
    start_time = time.time()
    if config is None:
        config = MergeConfig()
    config.validate()
    logger.info(get_version_banner())

    output = Path(output)
    if output.exists() and not config.overwrite:
        raise FileExistsError(f"Output file exists (use --overwrite): {output}")

    if not quiet:
        setup_terminal()
        print_banner(get_version())
        print_header(f"Output: {output.name}")
        print_field("Rejection N", config.n_sigma)
        print_field("All-rejected policy", config.on_all_rejected)

    result = MergeResult(
        config=config,
        version=get_version(),
        platform=get_platform_info(),
    )
    progress = PipelineProgress(
        [
            ("Load Images", Symbols.FOLDER),
            ("Merge", Symbols.LAYERS),
            ("Save", Symbols.SAVE),
        ],
        quiet=quiet,
    )

    # --- Stage 1: Load ---
    progress.next_stage()
    paths = expand_inputs(patterns)
    result.inputs = [str(p) for p in paths]
    grids = load_grids(paths, show_progress=not quiet)
    progress.done(f"Loaded {len(grids)} images")

    # --- Stage 2: Merge ---
    progress.next_stage()
    try:
        merged, keep_count = composite_grids(
            grids,
            n_sigma=config.n_sigma,
            workers=config.workers,
            chunk_rows=config.chunk_rows,
            on_all_rejected=config.on_all_rejected,
            show_progress=not quiet,
        )
    except MergeError as e:
        progress.fail(str(e))
        raise

    b = merged.bounds
    result.bounds = (b.min_x, b.min_y, b.max_x, b.max_y)
    merge_stats = compute_merge_statistics(keep_count, len(grids))
    result.stats = asdict(merge_stats)
    progress.detail(
        f"Mean rejected fraction: {merge_stats.mean_rejected_fraction:.1%}"
    )
    if merge_stats.n_fallback_pixels:
        progress.detail(
            f"Fallback pixels (all images rejected): {merge_stats.n_fallback_pixels}"
        )
    progress.done()

    # --- Stage 3: Save ---
    progress.next_stage()
    save_grid(merged, output, quality=config.quality, overwrite=config.overwrite)
    result.output = str(output)
    result.elapsed_s = time.time() - start_time
    result.timestamp = get_timestamp_iso()
    if report_path is not None:
        result.report = str(write_report(result, report_path))
    progress.done()

    logger.info(
        "Merged %d images into %s in %s",
        len(grids), output, format_duration(result.elapsed_s)
    )

    if not quiet:
        print_success(f"Merged {len(grids)} images")
        print_path("Output", result.output)
        if result.report:
            print_path("Report", result.report)
        print_summary_box(
            {
                "Images": len(grids),
                "Size": f"{b.width}x{b.height}",
                "Pixels fully kept": f"{merge_stats.fully_kept_fraction:.1%}",
                "Elapsed": format_duration(result.elapsed_s),
            },
            title="Merge Complete",
        )

    return result


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog="cleanplate",
        description="Merge aligned photos into one image free of transient objects",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"cleanplate {get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    merge_parser = subparsers.add_parser(
        "merge",
        help="Merge images with per-pixel outlier rejection",
    )
    merge_parser.add_argument(
        "inputs",
        nargs="+",
        help="Input files; glob patterns are supported (e.g. 'Demo/Input/*.jpeg')",
    )
    merge_parser.add_argument(
        "-o", "--output",
        type=str,
        required=True,
        help="Output file (.jpeg, .png, .tiff, .fits, ...)",
    )
    merge_parser.add_argument(
        "-N", "--n-sigma",
        dest="n_sigma",
        type=float,
        default=1.3,
        help="Strength of the pixel rejection, in multiples of standard deviation (default: 1.3)",
    )
    merge_parser.add_argument(
        "--on-all-rejected",
        choices=["error", "fallback"],
        default="error",
        help="When every image is rejected at a pixel: abort (error) or use the "
             "unfiltered mean (fallback) (default: error)",
    )
    merge_parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Worker threads (default: CPU count - 1)",
    )
    merge_parser.add_argument(
        "--chunk-rows",
        type=int,
        default=MergeConfig.chunk_rows,
        help=f"Rows per worker task (default: {MergeConfig.chunk_rows})",
    )
    merge_parser.add_argument(
        "--quality",
        type=int,
        default=100,
        help="JPEG quality 1-100 (default: 100)",
    )
    merge_parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace an existing output file",
    )
    merge_parser.add_argument(
        "--report",
        type=str,
        default=None,
        help="Write a run report (JSON, or Markdown if the name ends in .md)",
    )
    merge_parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress colored output and progress bars",
    )
    merge_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "merge":
        setup_logging(args.verbose)

        config = MergeConfig(
            n_sigma=args.n_sigma,
            on_all_rejected=args.on_all_rejected,
            workers=args.workers,
            chunk_rows=args.chunk_rows,
            quality=args.quality,
            overwrite=args.overwrite,
        )

        try:
            merge_images(
                args.inputs,
                args.output,
                config=config,
                quiet=args.quiet,
                report_path=args.report,
            )
            return 0

        except AllPixelsRejectedError as e:
            print_error(str(e))
            print_warning("Rerun with a higher -N, or with --on-all-rejected fallback")
            logger.error("Merge failed: %s", e)
            return 1

        except (MergeError, ValueError, FileExistsError) as e:
            print_error(str(e))
            logger.error("Merge failed: %s", e)
            return 1

        except Exception as e:
            print_error(f"Merge failed: {e}")
            logger.exception("Merge failed: %s", e)
            return 1

    return 1


if __name__ == "__main__":
    sys.exit(main())
