"""Assignment of data rows to the leaves of a tree being grown."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


class DataPartition:
    """Keeps row indices grouped contiguously by leaf."""

    def __init__(self, num_data: int, num_leaves: int) -> None:
        self.num_data = num_data
        self.num_leaves = num_leaves
        self._leaf_begin = [0] * num_leaves
        self._leaf_count = [0] * num_leaves
        self._indices = np.zeros(num_data, dtype=np.int32)
        self._used_data_indices: np.ndarray | None = None

    @property
    def indices(self) -> np.ndarray:
        """All row indices, ordered leaf by leaf."""
        return self._indices

    def init(self) -> None:
        """Put all (or all bagged) rows on the root leaf."""
        self._leaf_count = [0] * self.num_leaves
        self._leaf_begin[0] = 0
        if self._used_data_indices is None:
            self._leaf_count[0] = self.num_data
            self._indices[:] = np.arange(self.num_data, dtype=np.int32)
        else:
            used = self._used_data_indices
            self._leaf_count[0] = len(used)
            self._indices[: len(used)] = used

    def indices_on_leaf(self, leaf: int) -> np.ndarray:
        """View of the row indices that sit on ``leaf``."""
        begin = self._leaf_begin[leaf]
        return self._indices[begin : begin + self._leaf_count[leaf]]

    def split(self, leaf: int, bins: Sequence[int], threshold: int, right_leaf: int) -> None:
        """Move rows whose bin exceeds ``threshold`` from ``leaf`` to ``right_leaf``."""
        begin = self._leaf_begin[leaf]
        count = self._leaf_count[leaf]
        segment = self._indices[begin : begin + count]
        goes_left = np.asarray(bins)[segment] <= threshold
        left = segment[goes_left]
        right = segment[~goes_left]
        left_count = len(left)
        self._indices[begin : begin + left_count] = left
        self._indices[begin + left_count : begin + count] = right
        self._leaf_count[leaf] = left_count
        self._leaf_begin[right_leaf] = begin + left_count
        self._leaf_count[right_leaf] = count - left_count

    def set_used_data_indices(self, used_data_indices: Sequence[int] | None) -> None:
        """Restrict the next ``init`` to a bagged subset; None uses all rows."""
        if used_data_indices is None:
            self._used_data_indices = None
            return
        used = np.asarray(used_data_indices, dtype=np.int32).copy()
        if len(used) > self.num_data:
            raise ValueError("more used rows than rows in the partition")
        self._used_data_indices = used

    def leaf_count(self, leaf: int) -> int:
        """Number of rows on ``leaf``."""
        return self._leaf_count[leaf]

    def leaf_begin(self, leaf: int) -> int:
        """Position of the first row of ``leaf`` in ``indices``."""
        return self._leaf_begin[leaf]