import numpy as np
import pytest

from gbdtcore.feature_histogram import K_EPSILON, FeatureHistogram
from gbdtcore.split_info import K_MIN_SCORE

BINS = [0, 0, 1, 1]
GRADIENTS = [-1.0, -1.0, 1.0, 1.0]
HESSIANS = [1.0, 1.0, 1.0, 1.0]


def make_histogram(bins=BINS, num_bins=2, min_data=1, min_hessian=1e-3):
    return FeatureHistogram(bins, num_bins, 0, min_data, min_hessian)


def built_histogram(**kwargs):
    hist = make_histogram(**kwargs)
    hist.construct(None, len(BINS), sum(GRADIENTS), sum(HESSIANS), GRADIENTS, HESSIANS)
    return hist


def test_construct_counts_per_bin():
    hist = FeatureHistogram([0, 1, 1, 2], 3, 0, 1, 1e-3)
    grads = [1.0, 2.0, 3.0, 4.0]
    hist.construct(None, 4, sum(grads), 4.0, grads, [1.0] * 4)
    assert hist.data["cnt"].tolist() == [1, 2, 1]
    assert hist.data["sum_gradients"].sum() == pytest.approx(sum(grads))
    assert hist.data["sum_hessians"].sum() == pytest.approx(4.0)


def test_construct_with_indices_uses_only_those_rows():
    hist = make_histogram()
    indices = [1, 2]
    hist.construct(indices, 2, 0.0, 2.0, [GRADIENTS[i] for i in indices], [1.0, 1.0])
    assert hist.data["cnt"].sum() == len(indices)
    assert hist.num_data == len(indices)


def test_set_sumup_adds_epsilon_to_hessian():
    hist = make_histogram()
    hist.set_sumup(7, 1.25, 3.0)
    assert hist.num_data == 7
    assert hist.sum_gradients == 1.25
    assert hist.sum_hessians == pytest.approx(3.0 + 2 * K_EPSILON)


def test_subtract_gives_sibling_histogram():
    parent = built_histogram()
    left_idx, right_idx = [0, 2], [1, 3]
    child = make_histogram()
    child.construct(
        left_idx,
        2,
        sum(GRADIENTS[i] for i in left_idx),
        2.0,
        [GRADIENTS[i] for i in left_idx],
        [HESSIANS[i] for i in left_idx],
    )
    sibling = make_histogram()
    sibling.construct(
        right_idx,
        2,
        sum(GRADIENTS[i] for i in right_idx),
        2.0,
        [GRADIENTS[i] for i in right_idx],
        [HESSIANS[i] for i in right_idx],
    )
    parent.subtract(child)
    assert parent.num_data == sibling.num_data
    for field in ("sum_gradients", "sum_hessians", "cnt"):
        np.testing.assert_allclose(parent.data[field], sibling.data[field])


def test_find_best_threshold_separates_signs():
    hist = built_histogram()
    split = hist.find_best_threshold()
    assert split.threshold == 0
    assert split.left_count == 2
    assert split.right_count == 2
    assert split.gain > 0
    assert split.left_output > 0 > split.right_output
    assert split.left_sum_gradient == pytest.approx(GRADIENTS[0] + GRADIENTS[1])
    assert hist.is_splittable


def test_find_best_threshold_respects_min_data():
    hist = built_histogram(min_data=3)
    split = hist.find_best_threshold()
    assert split.gain == K_MIN_SCORE
    assert split.threshold == hist.num_bins
    assert not hist.is_splittable


def test_bytes_round_trip():
    hist = built_histogram()
    data = hist.to_bytes()
    assert len(data) == hist.size_of_histogram()
    other = make_histogram()
    other.from_bytes(data)
    for field in ("sum_gradients", "sum_hessians", "cnt"):
        np.testing.assert_array_equal(other.data[field], hist.data[field])


def test_from_bytes_rejects_wrong_size():
    hist = make_histogram()
    with pytest.raises(ValueError):
        hist.from_bytes(b"\x00" * (hist.size_of_histogram() + 1))