import pytest

from gbdtcore.data_partition import DataPartition

BINS = [3, 0, 2, 1, 0, 3]


def fresh_partition(num_leaves=4):
    partition = DataPartition(len(BINS), num_leaves)
    partition.init()
    return partition


def test_init_puts_everything_on_root():
    partition = fresh_partition()
    assert partition.leaf_count(0) == len(BINS)
    assert partition.indices_on_leaf(0).tolist() == list(range(len(BINS)))


def test_split_is_stable_and_contiguous():
    partition = fresh_partition()
    partition.split(0, BINS, 1, 1)
    assert partition.indices_on_leaf(0).tolist() == [1, 3, 4]
    assert partition.indices_on_leaf(1).tolist() == [0, 2, 5]
    assert partition.leaf_begin(1) == partition.leaf_count(0)


def test_split_sends_low_bins_left():
    partition = fresh_partition()
    partition.split(0, BINS, 2, 1)
    assert all(BINS[i] <= 2 for i in partition.indices_on_leaf(0))
    assert all(BINS[i] > 2 for i in partition.indices_on_leaf(1))


def test_nested_splits_keep_every_row_once():
    partition = fresh_partition()
    partition.split(0, BINS, 1, 1)
    partition.split(1, BINS, 2, 2)
    partition.split(0, BINS, 0, 3)
    rows = []
    for leaf in range(4):
        rows.extend(partition.indices_on_leaf(leaf).tolist())
    assert sorted(rows) == list(range(len(BINS)))
    assert sum(partition.leaf_count(leaf) for leaf in range(4)) == len(BINS)


def test_bagging_uses_given_rows():
    partition = DataPartition(len(BINS), 2)
    used = [4, 1, 5]
    partition.set_used_data_indices(used)
    partition.init()
    assert partition.leaf_count(0) == len(used)
    assert partition.indices_on_leaf(0).tolist() == used


def test_clearing_bagging_restores_all_rows():
    partition = DataPartition(len(BINS), 2)
    partition.set_used_data_indices([2, 3])
    partition.set_used_data_indices(None)
    partition.init()
    assert partition.leaf_count(0) == len(BINS)


def test_init_resets_leaf_counts():
    partition = fresh_partition()
    partition.split(0, BINS, 1, 1)
    partition.init()
    assert partition.leaf_count(1) == 0
    assert partition.leaf_count(0) == len(BINS)


def test_too_many_used_rows_rejected():
    partition = DataPartition(2, 2)
    with pytest.raises(ValueError):
        partition.set_used_data_indices([0, 1, 1])