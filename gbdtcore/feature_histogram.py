"""Per-feature gradient histograms and best-threshold search."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from .split_info import K_MIN_SCORE, SplitInfo

K_EPSILON = 1e-15

HISTOGRAM_ENTRY_DTYPE = np.dtype(
    [("sum_gradients", "<f8"), ("sum_hessians", "<f8"), ("cnt", "<i4")],
    align=True,
)


def _leaf_split_gain(sum_gradients: float, sum_hessians: float) -> float:
    return float(np.float64(sum_gradients) * sum_gradients / np.float64(sum_hessians))


def _leaf_output(sum_gradients: float, sum_hessians: float) -> float:
    return float(-np.float64(sum_gradients) / np.float64(sum_hessians))


class FeatureHistogram:
    """Histogram of gradients and hessians over the bins of one feature."""

    def __init__(
        self,
        bins: Sequence[int],
        num_bins: int,
        feature_idx: int,
        min_num_data_one_leaf: int,
        min_sum_hessian_one_leaf: float,
    ) -> None:
        self.bins = np.asarray(bins, dtype=np.int64)
        self.num_bins = int(num_bins)
        self.feature_idx = feature_idx
        self.min_num_data_one_leaf = min_num_data_one_leaf
        self.min_sum_hessian_one_leaf = min_sum_hessian_one_leaf
        self.data = np.zeros(self.num_bins, dtype=HISTOGRAM_ENTRY_DTYPE)
        self.num_data = 0
        self.sum_gradients = 0.0
        self.sum_hessians = 0.0
        self.is_splittable = True

    def construct(
        self,
        data_indices,
        num_data: int,
        sum_gradients: float,
        sum_hessians: float,
        ordered_gradients,
        ordered_hessians,
    ) -> None:
        """Build the histogram from leaf data; ``data_indices`` None means all data."""
        self.set_sumup(num_data, sum_gradients, sum_hessians)
        if data_indices is None:
            selected = self.bins[:num_data]
        else:
            selected = self.bins[np.asarray(data_indices, dtype=np.int64)[:num_data]]
        gradients = np.asarray(ordered_gradients, dtype=np.float64)[:num_data]
        hessians = np.asarray(ordered_hessians, dtype=np.float64)[:num_data]
        data = np.zeros(self.num_bins, dtype=HISTOGRAM_ENTRY_DTYPE)
        data["sum_gradients"] = np.bincount(selected, weights=gradients, minlength=self.num_bins)
        data["sum_hessians"] = np.bincount(selected, weights=hessians, minlength=self.num_bins)
        data["cnt"] = np.bincount(selected, minlength=self.num_bins)
        self.data = data

    def set_sumup(self, num_data: int, sum_gradients: float, sum_hessians: float) -> None:
        """Set the totals of the leaf this histogram describes."""
        self.num_data = num_data
        self.sum_gradients = sum_gradients
        self.sum_hessians = sum_hessians + 2 * K_EPSILON

    def subtract(self, other: "FeatureHistogram") -> None:
        """Subtract another histogram (a child) from this one (the parent)."""
        self.num_data -= other.num_data
        self.sum_gradients -= other.sum_gradients
        self.sum_hessians -= other.sum_hessians
        for field in ("sum_gradients", "sum_hessians", "cnt"):
            self.data[field] -= other.data[field]

    def find_best_threshold(self) -> SplitInfo:
        """Scan bins from right to left and return the best split found."""
        best_sum_left_gradient = float("nan")
        best_sum_left_hessian = float("nan")
        best_gain = K_MIN_SCORE
        best_left_count = 0
        best_threshold = self.num_bins
        sum_right_gradient = 0.0
        sum_right_hessian = K_EPSILON
        right_count = 0
        with np.errstate(divide="ignore", invalid="ignore"):
            gain_shift = _leaf_split_gain(self.sum_gradients, self.sum_hessians)
            self.is_splittable = False
            entries = zip(
                self.data["sum_gradients"][:0:-1].tolist(),
                self.data["sum_hessians"][:0:-1].tolist(),
                self.data["cnt"][:0:-1].tolist(),
            )
            for t, (bin_gradient, bin_hessian, bin_count) in zip(
                range(self.num_bins - 1, 0, -1), entries
            ):
                sum_right_gradient += bin_gradient
                sum_right_hessian += bin_hessian
                right_count += bin_count
                if (
                    right_count < self.min_num_data_one_leaf
                    or sum_right_hessian < self.min_sum_hessian_one_leaf
                ):
                    continue
                left_count = self.num_data - right_count
                if left_count < self.min_num_data_one_leaf:
                    break
                sum_left_hessian = self.sum_hessians - sum_right_hessian
                if sum_left_hessian < self.min_sum_hessian_one_leaf:
                    break
                sum_left_gradient = self.sum_gradients - sum_right_gradient
                current_gain = _leaf_split_gain(
                    sum_left_gradient, sum_left_hessian
                ) + _leaf_split_gain(sum_right_gradient, sum_right_hessian)
                if current_gain < gain_shift:
                    continue
                self.is_splittable = True
                if current_gain > best_gain:
                    best_left_count = left_count
                    best_sum_left_gradient = sum_left_gradient
                    best_sum_left_hessian = sum_left_hessian
                    # left holds bins <= threshold
                    best_threshold = t - 1
                    best_gain = current_gain

            right_sum_gradient = self.sum_gradients - best_sum_left_gradient
            right_sum_hessian = self.sum_hessians - best_sum_left_hessian
            return SplitInfo(
                feature=self.feature_idx,
                threshold=best_threshold,
                left_output=_leaf_output(best_sum_left_gradient, best_sum_left_hessian),
                right_output=_leaf_output(right_sum_gradient, right_sum_hessian),
                gain=best_gain - gain_shift,
                left_count=best_left_count,
                right_count=self.num_data - best_left_count,
                left_sum_gradient=best_sum_left_gradient,
                left_sum_hessian=best_sum_left_hessian,
                right_sum_gradient=right_sum_gradient,
                right_sum_hessian=right_sum_hessian,
            )

    def size_of_histogram(self) -> int:
        """Size in bytes of the serialised histogram."""
        return self.num_bins * HISTOGRAM_ENTRY_DTYPE.itemsize

    def to_bytes(self) -> bytes:
        """Serialise the bin entries."""
        return self.data.tobytes()

    def from_bytes(self, data: bytes) -> None:
        """Restore the bin entries from their serialised form."""
        if len(data) != self.size_of_histogram():
            raise ValueError(
                f"expected {self.size_of_histogram()} bytes, got {len(data)}"
            )
        self.data = np.frombuffer(bytes(data), dtype=HISTOGRAM_ENTRY_DTYPE).copy()