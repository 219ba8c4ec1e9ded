"""Candidate split records and the reducer that keeps the best of them."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from typing import ClassVar

K_MIN_SCORE = -math.inf
_INT32_MAX = 2**31 - 1
_LAYOUT = struct.Struct("<iIdddiidddd")


@dataclass
class SplitInfo:
    """Best split found for one feature or one leaf."""

    feature: int = -1
    threshold: int = 0
    left_output: float = 0.0
    right_output: float = 0.0
    gain: float = K_MIN_SCORE
    left_count: int = 0
    right_count: int = 0
    left_sum_gradient: float = 0.0
    left_sum_hessian: float = 0.0
    right_sum_gradient: float = 0.0
    right_sum_hessian: float = 0.0

    SIZE: ClassVar[int] = _LAYOUT.size

    def reset(self) -> None:
        """Mark the split as unset: no feature and the lowest possible gain."""
        self.feature = -1
        self.gain = K_MIN_SCORE

    def _rank(self) -> tuple[float, int]:
        gain = K_MIN_SCORE if math.isnan(self.gain) else self.gain
        feature = _INT32_MAX if self.feature == -1 else self.feature
        return gain, feature

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, SplitInfo):
            return NotImplemented
        local_gain, local_feature = self._rank()
        other_gain, other_feature = other._rank()
        if local_gain != other_gain:
            return local_gain > other_gain
        # equal gain: the smaller feature index is preferred
        return local_feature < other_feature

    def to_bytes(self) -> bytes:
        """Pack the split into its fixed-size wire form."""
        return _LAYOUT.pack(
            self.feature,
            self.threshold,
            self.left_output,
            self.right_output,
            self.gain,
            self.left_count,
            self.right_count,
            self.left_sum_gradient,
            self.left_sum_hessian,
            self.right_sum_gradient,
            self.right_sum_hessian,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "SplitInfo":
        """Unpack a split from its fixed-size wire form."""
        if len(data) != cls.SIZE:
            raise ValueError(f"expected {cls.SIZE} bytes, got {len(data)}")
        return cls(*_LAYOUT.unpack(bytes(data)))


def max_reducer(src: bytes, dst: bytearray) -> None:
    """Keep, record by record, the better split of ``src`` and ``dst`` in ``dst``."""
    if len(src) % SplitInfo.SIZE:
        raise ValueError("source length is not a whole number of split records")
    if len(dst) < len(src):
        raise ValueError("destination is shorter than source")
    size = SplitInfo.SIZE
    incoming = _LAYOUT.iter_unpack(bytes(src))
    current = _LAYOUT.iter_unpack(bytes(dst[: len(src)]))
    for position, (new_values, old_values) in enumerate(zip(incoming, current)):
        if SplitInfo(*new_values) > SplitInfo(*old_values):
            _LAYOUT.pack_into(dst, position * size, *new_values)