"""
Terminal output for the cleanplate CLI.

Colored status lines, the run banner, per-stage progress and tqdm bars for
the load and merge loops. Everything here writes to the terminal only;
logging goes through the ``logging`` module.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations

import os
import sys
import time

from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm

from .utils import format_duration

colorama_init(autoreset=True)

_BAR_FORMAT = "{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]"
_BAR_WIDTH = 80


class Colors:
    """Styles used by the CLI."""

    HEADER = Fore.CYAN + Style.BRIGHT
    STAGE = Fore.BLUE + Style.BRIGHT
    SUCCESS = Fore.GREEN + Style.BRIGHT
    WARNING = Fore.YELLOW
    ERROR = Fore.RED + Style.BRIGHT
    LABEL = Fore.MAGENTA
    VALUE = Fore.YELLOW + Style.BRIGHT
    PATH = Fore.CYAN
    DETAIL = Fore.WHITE
    RESET = Style.RESET_ALL


class Symbols:
    """Status glyphs, switched to ASCII on terminals without unicode."""

    CHECK = "✔"
    CROSS = "✘"
    CAMERA = "\U0001F4F7"
    FOLDER = "\U0001F4C1"
    LAYERS = "\U0001F5C2"
    SAVE = "\U0001F4BE"

    _ASCII = {
        "CHECK": "[OK]",
        "CROSS": "[X]",
        "CAMERA": "[C]",
        "FOLDER": "[D]",
        "LAYERS": "[M]",
        "SAVE": "[S]",
    }

    @classmethod
    def use_ascii(cls):
        for name, fallback in cls._ASCII.items():
            setattr(cls, name, fallback)


def setup_terminal() -> bool:
    """
    Pick unicode or ASCII glyphs for the current terminal.

    Returns
    -------
    bool
        True if unicode glyphs are kept.
    """
    dumb = os.environ.get("TERM") == "dumb"
    legacy_console = sys.platform == "win32" and "utf" not in os.environ.get("LANG", "").lower()
    if dumb or legacy_console:
        Symbols.use_ascii()
        return False
    return True


def print_banner(version: str) -> None:
    title = f"{Symbols.CAMERA}  cleanplate {version}"
    subtitle = "outlier-rejecting mean of aligned photos"
    width = max(len(title), len(subtitle)) + 4
    print(f"\n{Colors.HEADER}╔{'═' * width}╗")
    print(f"║  {title:<{width - 2}}║")
    print(f"║  {subtitle:<{width - 2}}║")
    print(f"╚{'═' * width}╝{Colors.RESET}")


def print_header(text: str, width: int = 60) -> None:
    rule = "═" * width
    print(f"\n{Colors.HEADER}{rule}\n  {text}\n{rule}{Colors.RESET}")


def print_field(label: str, value, style: str = Colors.VALUE) -> None:
    """Print an indented ``label: value`` line."""
    print(f"  {Colors.LABEL}{label}: {style}{value}{Colors.RESET}")


def print_path(label: str, path: str) -> None:
    print_field(label, path, style=Colors.PATH)


def print_success(text: str) -> None:
    print(f"{Colors.SUCCESS}{Symbols.CHECK} {text}{Colors.RESET}")


def print_warning(text: str) -> None:
    print(f"{Colors.WARNING}! {text}{Colors.RESET}")


def print_error(text: str) -> None:
    """Errors go to stderr so they survive ``-q`` redirection of stdout."""
    print(f"{Colors.ERROR}{Symbols.CROSS} {text}{Colors.RESET}", file=sys.stderr)


def print_summary_box(rows: dict[str, object], title: str = "Summary") -> None:
    """
    Print a boxed two-column summary.

    Parameters
    ----------
    rows : dict
        Label to value, printed in insertion order with aligned labels.
    title : str
        Centered box title.
    """
    key_width = max((len(k) for k in rows), default=0)
    lines = [f"{k:<{key_width}}  {v}" for k, v in rows.items()]
    width = max([len(title)] + [len(line) for line in lines]) + 4

    print(f"\n{Colors.SUCCESS}╔{'═' * width}╗")
    print(f"║{title:^{width}}║")
    print(f"╟{'─' * width}╢")
    for line in lines:
        print(f"║  {line:<{width - 2}}║")
    print(f"╚{'═' * width}╝{Colors.RESET}")


def create_progress_bar(
    total: int,
    desc: str,
    unit: str = "image",
    disable: bool = False,
) -> tqdm:
    """Progress bar styled for the CLI; ``disable=True`` makes it a no-op."""
    return tqdm(
        total=total,
        desc=f"{Colors.STAGE}{desc}{Colors.RESET}",
        unit=unit,
        bar_format=_BAR_FORMAT,
        ncols=_BAR_WIDTH,
        colour="green",
        leave=True,
        disable=disable,
    )


class PipelineProgress:
    """
    Numbered stage display for a merge run.

    Stages are given up front as ``(name, glyph)`` pairs and entered in
    order with ``next_stage``. Nothing is printed when ``quiet`` is set.

    Example
    -------
    >>> progress = PipelineProgress([("Load Images", Symbols.FOLDER), ("Save", Symbols.SAVE)])
    >>> progress.next_stage()
    >>> progress.detail("Found 12 images")
    >>> progress.done()
    """

    def __init__(self, stages: list[tuple[str, str]], quiet: bool = False):
        self.stages = list(stages)
        self.quiet = quiet
        self.index = -1
        self._started = 0.0

    def next_stage(self) -> None:
        self.index += 1
        self._started = time.time()
        if self.quiet:
            return
        name, glyph = self.stages[self.index]
        print(
            f"\n{Colors.STAGE}{glyph}  Stage {self.index + 1}/{len(self.stages)}: "
            f"{name}{Colors.RESET}"
        )

    def detail(self, text: str) -> None:
        if not self.quiet:
            print(f"   {Colors.DETAIL}{text}{Colors.RESET}")

    def done(self, message: str = "Complete") -> None:
        if self.quiet:
            return
        elapsed = format_duration(time.time() - self._started)
        print(f"   {Colors.SUCCESS}{Symbols.CHECK} {message} ({elapsed}){Colors.RESET}")

    def fail(self, message: str) -> None:
        if not self.quiet:
            print(f"   {Colors.ERROR}{Symbols.CROSS} {message}{Colors.RESET}")
