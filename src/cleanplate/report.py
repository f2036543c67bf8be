"""
Run reports for cleanplate.

Produces either:
- a JSON manifest: machine-readable complete record of a merge
- a Markdown report: human-readable summary

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

import numpy as np

from .config import MergeConfig, MergeResult
from .utils import get_platform_info, get_timestamp_iso, get_version

logger = logging.getLogger(__name__)


def _to_native(obj: Any) -> Any:
    """Convert numpy types to native Python types for JSON serialization."""
    if isinstance(obj, np.floating):
        return float(obj)
    elif isinstance(obj, np.integer):
        return int(obj)
    elif isinstance(obj, np.ndarray):
        return obj.tolist()
    elif isinstance(obj, dict):
        return {k: _to_native(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_to_native(v) for v in obj]
    return obj


def _serialize_config(config: MergeConfig | None) -> dict[str, Any]:
    return asdict(config) if config is not None else {}


def build_manifest(result: MergeResult) -> dict[str, Any]:
    """Assemble the manifest dictionary for a merge result."""
    return _to_native({
        "cleanplate_version": result.version or get_version(),
        "timestamp": result.timestamp or get_timestamp_iso(),
        "platform": result.platform or get_platform_info(),
        "config": _serialize_config(result.config),
        "images": len(result.inputs),
        "inputs": result.inputs,
        "bounds": list(result.bounds) if result.bounds else None,
        "output": result.output,
        "elapsed_s": result.elapsed_s,
        "statistics": result.stats,
    })


def write_manifest(result: MergeResult, path: str | Path) -> Path:
    """
    Write the complete run manifest as JSON.

    Parameters
    ----------
    result : MergeResult
        Merge result.
    path : str or Path
        Output file.

    Returns
    -------
    Path
        Path to written manifest file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(build_manifest(result), f, indent=2)

    logger.info("Wrote manifest: %s", path)
    return path


def write_report_markdown(result: MergeResult, path: str | Path) -> Path:
    """
    Write a human-readable Markdown report.

    Parameters
    ----------
    result : MergeResult
        Merge result.
    path : str or Path
        Output file.

    Returns
    -------
    Path
        Path to written report file.
    """
    lines = [
        "# Merge Report",
        "",
        f"**Generated:** {result.timestamp or get_timestamp_iso()}",
        f"**cleanplate version:** {result.version or get_version()}",
        f"**Platform:** {result.platform or get_platform_info()}",
        "",
        "## Summary",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Images merged | {len(result.inputs)} |",
        f"| Bounds | {result.bounds if result.bounds else 'N/A'} |",
        f"| Output | `{result.output}` |",
        f"| Elapsed | {result.elapsed_s:.2f} s |",
        "",
    ]

    if result.config:
        lines.extend([
            "## Configuration",
            "",
            "| Parameter | Value |",
            "|-----------|-------|",
        ])
        for key, value in asdict(result.config).items():
            lines.append(f"| {key} | {value} |")
        lines.append("")

    if result.stats:
        lines.extend([
            "## Statistics",
            "",
            "| Metric | Value |",
            "|--------|-------|",
        ])
        for key, value in result.stats.items():
            if isinstance(value, float):
                lines.append(f"| {key} | {value:.4f} |")
            else:
                lines.append(f"| {key} | {value} |")
        lines.append("")

    if result.inputs:
        lines.extend(["## Inputs", ""])
        lines.extend(f"{i}. `{Path(p).name}`" for i, p in enumerate(result.inputs, 1))
        lines.append("")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        f.write("\n".join(lines))

    logger.info("Wrote Markdown report: %s", path)
    return path


def write_report(result: MergeResult, path: str | Path) -> Path:
    """Write a Markdown report for ``.md`` paths, a JSON manifest otherwise."""
    if Path(path).suffix.lower() == ".md":
        return write_report_markdown(result, path)
    return write_manifest(result, path)
