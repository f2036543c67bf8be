"""
Exception hierarchy for cleanplate.

Every failure in a merge is a deterministic function of the inputs and the
configuration, so none of these are retried.

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

from __future__ import annotations


class MergeError(Exception):
    """Base class for all cleanplate errors."""


class DimensionMismatchError(MergeError, ValueError):
    """Input grids do not share identical bounds."""

    def __init__(self, expected, actual, index: int | None = None):
        self.expected = expected
        self.actual = actual
        self.index = index
        where = f" (image {index})" if index is not None else ""
        super().__init__(
            f"Cannot merge images of different sizes{where}: {actual} vs {expected}"
        )


class InsufficientImagesError(MergeError, ValueError):
    """Fewer than two input grids were supplied."""

    def __init__(self, count: int):
        self.count = count
        super().__init__(
            f"At least 2 images are required to estimate a standard deviation, got {count}"
        )


class StatisticsError(MergeError, ValueError):
    """
    Guard failure inside the statistics engine.

    ``channel`` and ``coordinate`` are filled in by the compositor when the
    error surfaces while processing a pixel.
    """

    def __init__(self, message: str, channel: str | None = None, coordinate=None):
        self.base_message = message
        self.channel = channel
        self.coordinate = coordinate
        super().__init__(self._format())

    def _format(self) -> str:
        parts = [self.base_message]
        if self.channel is not None:
            parts.append(f"channel={self.channel}")
        if self.coordinate is not None:
            parts.append(f"at x={self.coordinate[0]} y={self.coordinate[1]}")
        return " | ".join(parts)

    def locate(self, channel: str | None = None, coordinate=None) -> "StatisticsError":
        """Attach channel/coordinate context and refresh the message."""
        if channel is not None:
            self.channel = channel
        if coordinate is not None:
            self.coordinate = coordinate
        self.args = (self._format(),)
        return self


class EmptyInputError(StatisticsError):
    """Mean requested over an empty sequence."""


class InsufficientSamplesError(StatisticsError):
    """Sample standard deviation requested over fewer than two values."""


class AllPixelsRejectedError(MergeError):
    """Every image's pixel at one coordinate was rejected by the threshold."""

    def __init__(self, x: int, y: int, n_sigma: float):
        self.x = x
        self.y = y
        self.n_sigma = n_sigma
        super().__init__(
            f"Standard deviation filter removed all pixels at x={x} y={y} "
            f"(N={n_sigma:g}); use a higher -N value to make the filter more permissive"
        )


class NoInputFilesError(MergeError, FileNotFoundError):
    """No file matched the input patterns."""

    def __init__(self, patterns):
        self.patterns = list(patterns)
        super().__init__(f"No files found for path: {', '.join(map(str, self.patterns))}")


class ImageDecodeError(MergeError):
    """An input file could not be decoded into a pixel grid."""

    def __init__(self, path, reason: str):
        self.path = str(path)
        self.reason = reason
        super().__init__(f"Failed decoding image {self.path}: {reason}")


class UnsupportedFormatError(MergeError, ValueError):
    """Output path has an extension no encoder handles."""

    def __init__(self, path, supported):
        self.path = str(path)
        super().__init__(
            f"Unsupported output format for {self.path}; expected one of {', '.join(sorted(supported))}"
        )
