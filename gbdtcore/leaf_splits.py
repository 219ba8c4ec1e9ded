"""Per-leaf bookkeeping of candidate splits during tree growth."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from .data_partition import DataPartition
from .split_info import SplitInfo


class LeafSplits:
    """Sums and best split per feature for the leaf currently examined."""

    def __init__(self, num_features: int, num_data: int) -> None:
        self.num_features = num_features
        self.num_data = num_data
        self.num_data_in_leaf = num_data
        self.leaf_index = -1
        self.sum_gradients = 0.0
        self.sum_hessians = 0.0
        self.data_indices: np.ndarray | None = None
        self.best_split_per_feature = [SplitInfo(feature=i) for i in range(num_features)]

    def _reset_splits(self) -> None:
        for split in self.best_split_per_feature:
            split.reset()

    def init_from_partition(
        self,
        leaf: int,
        data_partition: DataPartition,
        sum_gradients: float,
        sum_hessians: float,
    ) -> None:
        """Point at ``leaf`` of the partition with already known sums."""
        self.leaf_index = leaf
        self.data_indices = data_partition.indices_on_leaf(leaf)
        self.num_data_in_leaf = len(self.data_indices)
        self.sum_gradients = sum_gradients
        self.sum_hessians = sum_hessians
        self._reset_splits()

    def init_root(self, gradients: Sequence[float], hessians: Sequence[float]) -> None:
        """Make this the root leaf over all data and sum its gradients and hessians."""
        self.num_data_in_leaf = self.num_data
        self.leaf_index = 0
        self.data_indices = None
        n = self.num_data_in_leaf
        self.sum_gradients = float(np.sum(np.asarray(gradients, dtype=np.float64)[:n]))
        self.sum_hessians = float(np.sum(np.asarray(hessians, dtype=np.float64)[:n]))
        self._reset_splits()

    def init_leaf(
        self,
        leaf: int,
        data_partition: DataPartition,
        gradients: Sequence[float],
        hessians: Sequence[float],
    ) -> None:
        """Point at ``leaf`` of the partition and sum the gradients of its rows."""
        self.leaf_index = leaf
        self.data_indices = data_partition.indices_on_leaf(leaf)
        self.num_data_in_leaf = len(self.data_indices)
        rows = np.asarray(self.data_indices, dtype=np.int64)
        self.sum_gradients = float(np.sum(np.asarray(gradients, dtype=np.float64)[rows]))
        self.sum_hessians = float(np.sum(np.asarray(hessians, dtype=np.float64)[rows]))
        self._reset_splits()

    def init_sums(self, sum_gradients: float, sum_hessians: float) -> None:
        """Make this the root leaf, only replacing the sums."""
        self.leaf_index = 0
        self.sum_gradients = sum_gradients
        self.sum_hessians = sum_hessians
        self._reset_splits()

    def reset(self) -> None:
        """Mark the leaf as absent and clear the candidate splits."""
        self.leaf_index = -1
        self._reset_splits()