from dataclasses import dataclass
from typing import List

from .utils import MAX_U64


def segment_count(count: int, max_segments: int) -> int:
    """Number of segment hashes (boundary points) used to subdivide a range of `count` steps."""

    assert count >= 1 and max_segments >= 3

    return min(count + 1, max_segments)


@dataclass(frozen=True)
class StepRange:
    """
    A contiguous span [start, start + count) of the disputed execution.

    Instances are immutable; each bisection derives a new, narrower one with `subrange`.
    """

    start: int
    count: int

    def __post_init__(self):
        if self.start < 0 or self.start > MAX_U64:
            raise ValueError(f"Invalid range start: {self.start}")
        if self.count < 1 or self.count > MAX_U64:
            raise ValueError(f"A step range must contain at least one step, got {self.count}")
        if self.start + self.count - 1 > MAX_U64:
            raise ValueError("Range end overflows u64")

    @property
    def end(self) -> int:
        return self.start + self.count

    def contains(self, other: 'StepRange') -> bool:
        return self.start <= other.start and other.end <= self.end

    def subrange(self, n_segments: int, index: int) -> 'StepRange':
        """
        Returns the sub-range covered by the interval `index` when this range is split by `n_segments`
        boundary points into `n_segments - 1` intervals.

        Every interval but the last is `count // (n_segments - 1)` steps long, so the inner boundaries fall
        on multiples of that length; the last interval absorbs the remainder.
        """

        degree = n_segments - 1
        if degree < 1:
            raise ValueError("At least two segments are needed to subdivide a range")
        if degree > self.count:
            raise ValueError(f"Cannot split {self.count} steps into {degree} intervals")
        if not (0 <= index < degree):
            raise ValueError(f"Segment index {index} out of bounds")

        length = self.count // degree
        start = self.start + length * index
        if index == degree - 1:
            length += self.count % degree
        return StepRange(start, length)

    def boundaries(self, n_segments: int) -> List[int]:
        """Returns the step indices of the `n_segments` boundary points of the subdivision used by `subrange`."""

        degree = n_segments - 1
        length = self.count // degree
        return [self.start + length * i for i in range(degree)] + [self.end]

    def __repr__(self):
        return f"StepRange(start={self.start}, count={self.count})"


def bisection_rounds(num_steps: int, max_segments: int) -> int:
    """
    Returns the number of bisections needed to narrow `num_steps` steps down to a single step, when every
    round disputes the largest interval (the last one, which absorbs the remainder).

    This is the worst case; for `num_steps` equal to a power of `max_segments - 1` every path takes exactly
    this many rounds.
    """

    assert num_steps >= 1

    rounds = 0
    r = StepRange(0, num_steps)
    while r.count > 1:
        n_segments = segment_count(r.count, max_segments)
        r = r.subrange(n_segments, n_segments - 2)
        rounds += 1
    return rounds


def ceil_log(n: int, base: int) -> int:
    """Return ceiling(log_base(n)) for a positive integer `n` and `base` >= 2."""

    assert n > 0 and base >= 2

    r = 0
    t = 1
    while t < n:
        t = base * t
        r = r + 1
    return r
