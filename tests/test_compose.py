"""
Tests for the compose module.

Tests cover:
- Rejection rule (strict boundary, whole-pixel rejection, monotonicity in N)
- Single-pixel compositing and its error paths
- Grid compositing: preconditions, parallel chunking, all-rejected policies
- Merge statistics

Author: Olivier Vitrac, PhD, HDR
        Generative Simulation Initiative
        olivier.vitrac@gmail.com
"""

import logging

import numpy as np
import pytest

from cleanplate.compose import (
    _composite_block,
    _first_pixel,
    check_grids,
    composite_grids,
    composite_pixel,
    compute_merge_statistics,
    outlier_mask,
)
from cleanplate.errors import (
    AllPixelsRejectedError,
    DimensionMismatchError,
    EmptyInputError,
    InsufficientImagesError,
    InsufficientSamplesError,
)
from cleanplate.grid import Bounds, PixelGrid
from cleanplate.stats import mean, sample_std


def _rejected(samples, n_sigma):
    cube = np.asarray(samples, dtype=np.float64)
    means = mean(cube, axis=0)
    stds = sample_std(cube, axis=0)
    return outlier_mask(cube, means, stds, n_sigma)


class TestOutlierMask:
    """Tests for the rejection rule."""

    def test_value_at_upper_boundary_is_kept(self):
        """A value exactly at mean + N*std is kept."""
        means = np.array([100.0, 0.0, 0.0, 0.0])
        stds = np.array([10.0, 0.0, 0.0, 0.0])
        cube = np.array([[120.0, 0, 0, 0]])
        assert not outlier_mask(cube, means, stds, 2.0)[0]

    def test_value_just_above_boundary_is_rejected(self):
        means = np.array([100.0, 0.0, 0.0, 0.0])
        stds = np.array([10.0, 0.0, 0.0, 0.0])
        cube = np.array([[np.nextafter(120.0, np.inf), 0, 0, 0]])
        assert outlier_mask(cube, means, stds, 2.0)[0]

    def test_lower_boundary(self):
        means = np.array([100.0, 0.0, 0.0, 0.0])
        stds = np.array([10.0, 0.0, 0.0, 0.0])
        cube = np.array([[80.0, 0, 0, 0], [np.nextafter(80.0, -np.inf), 0, 0, 0]])
        np.testing.assert_array_equal(outlier_mask(cube, means, stds, 2.0), [False, True])

    @pytest.mark.parametrize("channel", [0, 1, 2, 3])
    def test_any_channel_rejects_whole_pixel(self, channel):
        """An outlier on one channel, including alpha, rejects the whole sample."""
        samples = np.full((6, 4), 100.0)
        samples[0, channel] = 10000.0
        rejected = _rejected(samples, 1.3)
        np.testing.assert_array_equal(rejected, [True, False, False, False, False, False])

    def test_zero_std_keeps_identical_values(self):
        samples = np.full((3, 4), 77.0)
        assert not _rejected(samples, 1.3).any()

    @pytest.mark.parametrize("seed", range(25))
    def test_monotonic_in_n(self, seed):
        """Raising N never rejects a sample that a smaller N kept."""
        rng = np.random.default_rng(seed)
        n_images = int(rng.integers(2, 12))
        samples = rng.integers(0, 65536, (n_images, 4)).astype(np.float64)
        thresholds = np.sort(rng.uniform(0.05, 3.0, 6))

        previous = _rejected(samples, thresholds[0])
        for n_sigma in thresholds[1:]:
            current = _rejected(samples, n_sigma)
            assert not np.any(current & ~previous)
            previous = current


class TestCompositePixel:
    """Tests for single-pixel compositing."""

    def test_two_identical_pixels(self):
        """Zero standard deviation keeps both pixels without dividing by zero."""
        samples = [(10, 10, 10, 255), (10, 10, 10, 255)]
        assert composite_pixel(samples, 1.3) == (10, 10, 10, 255)

    def test_all_survive_with_large_n(self):
        samples = [(0, 0, 0, 0), (100, 0, 0, 0), (200, 0, 0, 0)]
        assert composite_pixel(samples, 2.0) == (100, 0, 0, 0)

    def test_extreme_outlier_rejected(self):
        """The extreme value is rejected and the remaining two are averaged."""
        samples = [(0, 0, 0, 0), (100, 0, 0, 0), (1000000, 0, 0, 0)]
        assert composite_pixel(samples, 1.1) == (50, 0, 0, 0)

    def test_three_samples_cannot_exceed_z_bound(self):
        """With 3 samples no |z| exceeds 2/sqrt(3), so N=1.3 keeps everything."""
        samples = [(0, 0, 0, 0), (100, 0, 0, 0), (1000000, 0, 0, 0)]
        assert composite_pixel(samples, 1.3, max_value=10**7) == (333366, 0, 0, 0)

    def test_output_clipped_to_range(self):
        samples = [(0, 0, 0, 0), (100, 0, 0, 0), (1000000, 0, 0, 0)]
        assert composite_pixel(samples, 1.3) == (65535, 0, 0, 0)

    def test_mean_truncated(self):
        assert composite_pixel([(1, 0, 0, 0), (2, 0, 0, 0)], 2.0) == (1, 0, 0, 0)

    def test_all_rejected_raises(self):
        """Every sample outside a tiny N raises with the coordinate."""
        samples = [(0, 0, 0, 255), (100, 0, 0, 255)]
        with pytest.raises(AllPixelsRejectedError, match="x=3 y=4") as excinfo:
            composite_pixel(samples, 0.5, coordinate=(3, 4))
        assert excinfo.value.n_sigma == 0.5
        assert "higher -N" in str(excinfo.value)

    def test_all_rejected_fallback(self, caplog):
        """Fallback policy uses the unfiltered mean and warns."""
        samples = [(0, 0, 0, 255), (100, 0, 0, 255)]
        with caplog.at_level(logging.WARNING, logger="cleanplate.compose"):
            result = composite_pixel(samples, 0.5, on_all_rejected="fallback")
        assert result == (50, 0, 0, 255)
        assert "unfiltered mean" in caplog.text

    @pytest.mark.parametrize("seed", range(10))
    def test_identical_stack_is_idempotent(self, seed):
        rng = np.random.default_rng(seed)
        pixel = tuple(int(v) for v in rng.integers(0, 65536, 4))
        n_images = int(rng.integers(2, 20))
        assert composite_pixel([pixel] * n_images, 1.3) == pixel

    def test_deterministic(self):
        rng = np.random.default_rng(11)
        samples = rng.integers(0, 65536, (9, 4))
        assert composite_pixel(samples, 1.3) == composite_pixel(samples, 1.3)

    def test_single_sample_raises(self):
        with pytest.raises(InsufficientSamplesError) as excinfo:
            composite_pixel([(1, 2, 3, 4)], 1.3, coordinate=(7, 8))
        assert excinfo.value.channel == "R"
        assert excinfo.value.coordinate == (7, 8)

    def test_no_samples_raises(self):
        with pytest.raises(EmptyInputError):
            composite_pixel([], 1.3)

    @pytest.mark.parametrize("n_sigma", [0, -1.0])
    def test_non_positive_n_raises(self, n_sigma):
        with pytest.raises(ValueError, match="positive"):
            composite_pixel([(0, 0, 0, 0), (1, 1, 1, 1)], n_sigma)

    def test_wrong_channel_count_raises(self):
        with pytest.raises(ValueError, match="shape"):
            composite_pixel([(0, 0, 0), (1, 1, 1)], 1.3)

    def test_unknown_policy_raises(self):
        samples = [(0, 0, 0, 0), (100, 0, 0, 0)]
        with pytest.raises(ValueError, match="policy"):
            composite_pixel(samples, 0.5, on_all_rejected="median")


class TestErrorLocation:
    """Tests for the coordinate attached to compositing errors."""

    def test_block_statistics_error_at_first_pixel(self):
        cube = np.zeros((1, 3, 2, 4))
        with pytest.raises(InsufficientSamplesError) as excinfo:
            _composite_block(cube, 1.3, origin=(5, 6))
        assert excinfo.value.channel == "R"
        assert excinfo.value.coordinate == (5, 6)

    def test_all_rejected_at_exact_pixel_of_block(self):
        cube = np.zeros((2, 3, 2, 4))
        cube[1, 2, 1, 0] = 100.0
        with pytest.raises(AllPixelsRejectedError) as excinfo:
            _composite_block(cube, 0.5, origin=(5, 6))
        assert (excinfo.value.x, excinfo.value.y) == (6, 8)

    def test_first_pixel_row_major(self):
        mask = np.array([[False, False, False], [False, True, True]])
        assert _first_pixel(mask, (10, 20)) == (11, 21)
        assert _first_pixel(np.zeros((2, 2), dtype=bool), (10, 20)) == (10, 20)


class TestCheckGrids:
    """Tests for merge preconditions."""

    def test_returns_shared_bounds(self, solid_grid):
        grids = [solid_grid(origin=(2, 3)), solid_grid(origin=(2, 3))]
        assert check_grids(grids) == Bounds(2, 3, 7, 7)

    @pytest.mark.parametrize("count", [0, 1])
    def test_fewer_than_two_raises(self, solid_grid, count):
        with pytest.raises(InsufficientImagesError):
            check_grids([solid_grid() for _ in range(count)])

    def test_size_mismatch_raises(self, solid_grid):
        grids = [solid_grid(), solid_grid(), solid_grid(height=5)]
        with pytest.raises(DimensionMismatchError, match="different sizes") as excinfo:
            check_grids(grids)
        assert excinfo.value.index == 2
        assert excinfo.value.actual == Bounds(0, 0, 5, 5)

    def test_origin_mismatch_raises(self, solid_grid):
        """Same size at a different origin is still a mismatch."""
        with pytest.raises(DimensionMismatchError):
            check_grids([solid_grid(), solid_grid(origin=(1, 0))])


class TestCompositeGrids:
    """Tests for grid compositing."""

    @pytest.mark.parametrize("n_sigma,policy", [(1.3, "error"), (1.0, "fallback")])
    def test_matches_per_pixel_compositing(self, random_grids, n_sigma, policy):
        """Every output pixel equals composite_pixel on that coordinate's stack."""
        grids = random_grids(n_images=5, height=6, width=7, origin=(-3, 10))
        merged, keep_count = composite_grids(
            grids, n_sigma=n_sigma, workers=2, chunk_rows=2, on_all_rejected=policy
        )

        assert merged.bounds == grids[0].bounds
        b = merged.bounds
        for y in range(b.min_y, b.max_y):
            for x in range(b.min_x, b.max_x):
                expected = composite_pixel(
                    [g.at(x, y) for g in grids], n_sigma, on_all_rejected=policy
                )
                assert merged.at(x, y) == expected

        assert keep_count.shape == (6, 7)
        assert keep_count.dtype == np.int32
        if policy == "error":
            assert np.all(keep_count >= 1)

    @pytest.mark.parametrize("workers,chunk_rows", [(1, 1), (1, 64), (3, 1), (4, 5)])
    def test_partitioning_does_not_change_result(self, random_grids, workers, chunk_rows):
        grids = random_grids(n_images=7, height=11, width=9, seed=5)
        reference, reference_count = composite_grids(grids, n_sigma=1.3, workers=1, chunk_rows=11)
        merged, keep_count = composite_grids(grids, n_sigma=1.3, workers=workers, chunk_rows=chunk_rows)

        np.testing.assert_array_equal(merged.data, reference.data)
        np.testing.assert_array_equal(keep_count, reference_count)

    def test_keep_count_holds_large_stacks(self):
        """Counts above the int16 range are stored without wrapping."""
        n_images = 40000
        grid = PixelGrid(data=np.full((1, 1, 4), 7, dtype=np.uint16))
        merged, keep_count = composite_grids([grid] * n_images, n_sigma=1.3, workers=1)

        assert merged.at(0, 0) == (7, 7, 7, 7)
        assert keep_count[0, 0] == n_images
        stats = compute_merge_statistics(keep_count, n_images)
        assert stats.min_contributing == n_images
        assert stats.fully_kept_fraction == 1.0
        assert stats.n_fallback_pixels == 0

    def test_identical_grids(self, solid_grid):
        grids = [solid_grid(pixel=(10, 10, 10, 255)) for _ in range(2)]
        merged, keep_count = composite_grids(grids, n_sigma=1.3)
        np.testing.assert_array_equal(merged.data, grids[0].data)
        assert np.all(keep_count == 2)

    def test_removes_transient_object(self, street_scene):
        """The crossing pedestrian disappears; the background remains."""
        grids, background = street_scene()
        merged, keep_count = composite_grids(grids, n_sigma=1.3, workers=2, chunk_rows=3)

        diff = np.abs(merged.data.astype(np.int64) - background.data.astype(np.int64))
        assert diff.max() <= 50
        assert np.all(keep_count[2:8, :12] <= 5)

    def test_mismatch_raises_before_processing(self, solid_grid):
        grids = [solid_grid(), solid_grid(width=6)]
        with pytest.raises(DimensionMismatchError):
            composite_grids(grids, n_sigma=1.3)

    def test_single_grid_raises(self, solid_grid):
        with pytest.raises(InsufficientImagesError):
            composite_grids([solid_grid()], n_sigma=1.3)

    def test_invalid_parameters(self, solid_grid):
        grids = [solid_grid(), solid_grid()]
        with pytest.raises(ValueError):
            composite_grids(grids, n_sigma=0)
        with pytest.raises(ValueError):
            composite_grids(grids, chunk_rows=0)
        with pytest.raises(ValueError):
            composite_grids(grids, on_all_rejected="median")

    @pytest.mark.parametrize("workers", [1, 3])
    def test_all_rejected_reports_first_coordinate(self, workers):
        """The first failing coordinate in row-major order is reported."""
        base = np.zeros((3, 4, 4), dtype=np.uint16)
        other = base.copy()
        other[1, 2, 0] = 100
        other[2, 0, 0] = 100
        grids = [PixelGrid(base, origin=(10, 20)), PixelGrid(other, origin=(10, 20))]

        with pytest.raises(AllPixelsRejectedError) as excinfo:
            composite_grids(grids, n_sigma=0.5, workers=workers, chunk_rows=1)
        assert (excinfo.value.x, excinfo.value.y) == (12, 21)

    def test_all_rejected_fallback(self, caplog):
        base = np.zeros((2, 2, 4), dtype=np.uint16)
        other = base.copy()
        other[0, 1, 0] = 100
        grids = [PixelGrid(base), PixelGrid(other)]

        with caplog.at_level(logging.WARNING, logger="cleanplate.compose"):
            merged, keep_count = composite_grids(grids, n_sigma=0.5, on_all_rejected="fallback")

        assert merged.at(1, 0) == (50, 0, 0, 0)
        assert keep_count[0, 1] == 0
        assert np.count_nonzero(keep_count == 2) == 3
        assert "1 pixel(s)" in caplog.text


class TestMergeStatistics:
    """Tests for merge statistics."""

    def test_basic_statistics(self):
        keep_count = np.array([[4, 4], [3, 0]], dtype=np.int32)
        stats = compute_merge_statistics(keep_count, n_images=4)

        assert stats.n_images == 4
        assert stats.n_pixels == 4
        assert stats.mean_rejected_fraction == pytest.approx(1 - 11 / 16)
        assert stats.fully_kept_fraction == 0.5
        assert stats.min_contributing == 0
        assert stats.max_contributing == 4
        assert stats.n_fallback_pixels == 1

    def test_nothing_rejected(self):
        stats = compute_merge_statistics(np.full((3, 3), 5, dtype=np.int32), n_images=5)
        assert stats.mean_rejected_fraction == 0.0
        assert stats.fully_kept_fraction == 1.0
        assert stats.n_fallback_pixels == 0
