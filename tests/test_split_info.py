import math

import pytest

from gbdtcore.split_info import K_MIN_SCORE, SplitInfo, max_reducer


def test_default_split_is_unset():
    split = SplitInfo()
    assert split.feature == -1
    assert split.gain == K_MIN_SCORE


def test_reset_clears_feature_and_gain_only():
    split = SplitInfo(feature=3, gain=1.5, threshold=7)
    split.reset()
    assert split.feature == -1
    assert split.gain == K_MIN_SCORE
    assert split.threshold == 7


def test_higher_gain_wins():
    better = SplitInfo(feature=5, gain=2.0)
    worse = SplitInfo(feature=1, gain=1.0)
    assert better > worse
    assert not (worse > better)


def test_equal_gain_prefers_smaller_feature():
    a = SplitInfo(feature=1, gain=1.0)
    b = SplitInfo(feature=4, gain=1.0)
    assert a > b
    assert not (b > a)


def test_unset_feature_loses_tie():
    unset = SplitInfo(feature=-1, gain=1.0)
    named = SplitInfo(feature=100, gain=1.0)
    assert named > unset
    assert not (unset > named)


def test_nan_gain_counts_as_lowest():
    nan_split = SplitInfo(feature=0, gain=math.nan)
    finite = SplitInfo(feature=1, gain=-5.0)
    assert finite > nan_split
    assert not (nan_split > finite)


def test_bytes_round_trip():
    split = SplitInfo(
        feature=2,
        threshold=9,
        left_output=0.25,
        right_output=-0.5,
        gain=3.5,
        left_count=10,
        right_count=20,
        left_sum_gradient=-1.5,
        left_sum_hessian=4.0,
        right_sum_gradient=2.5,
        right_sum_hessian=6.0,
    )
    data = split.to_bytes()
    assert len(data) == SplitInfo.SIZE
    assert SplitInfo.from_bytes(data) == split


def test_from_bytes_rejects_wrong_length():
    with pytest.raises(ValueError):
        SplitInfo.from_bytes(b"\x00" * (SplitInfo.SIZE - 1))


def test_max_reducer_keeps_better_records():
    src = SplitInfo(feature=1, gain=5.0).to_bytes() + SplitInfo(feature=2, gain=0.5).to_bytes()
    dst = bytearray(
        SplitInfo(feature=3, gain=1.0).to_bytes() + SplitInfo(feature=4, gain=9.0).to_bytes()
    )
    max_reducer(src, dst)
    first = SplitInfo.from_bytes(dst[: SplitInfo.SIZE])
    second = SplitInfo.from_bytes(dst[SplitInfo.SIZE :])
    assert first.feature == 1
    assert first.gain == 5.0
    assert second.feature == 4
    assert second.gain == 9.0


def test_max_reducer_rejects_partial_record():
    with pytest.raises(ValueError):
        max_reducer(b"\x00" * (SplitInfo.SIZE + 1), bytearray(SplitInfo.SIZE * 2))