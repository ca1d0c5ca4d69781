from dataclasses import dataclass
from typing import Sequence

from .range import StepRange
from .utils import check_digest, encode_u64, sha256


def hash_challenge_state(start: int, count: int, segment_hashes: Sequence[bytes]) -> bytes:
    """
    Computes the 32-byte commitment to a segmentation of the range [start, start + count).

    The digest is sha256(start || count || h_0 || h_1 || ... || h_{k-1}), where start and count are encoded as
    8-byte big-endian integers.
    """

    if len(segment_hashes) < 2:
        raise ValueError("A segmentation needs at least two segment hashes")
    for i, h in enumerate(segment_hashes):
        check_digest(h, f"segment hash {i}")

    return sha256(encode_u64(start) + encode_u64(count) + b''.join(segment_hashes))


@dataclass(frozen=True)
class ChallengeCommitment:
    """The full data committed to by a challenge: a step range and the claimed state hashes at its subdivision points."""

    step_range: StepRange
    segment_hashes: Sequence[bytes]

    def __post_init__(self):
        # stored as a tuple
        object.__setattr__(self, 'segment_hashes', tuple(self.segment_hashes))
        if len(self.segment_hashes) < 2:
            raise ValueError("A segmentation needs at least two segment hashes")

    @property
    def start_hash(self) -> bytes:
        return self.segment_hashes[0]

    @property
    def end_hash(self) -> bytes:
        return self.segment_hashes[-1]

    def encode(self) -> bytes:
        return hash_challenge_state(self.step_range.start, self.step_range.count, self.segment_hashes)

    def matches(self, digest: bytes) -> bool:
        return self.encode() == digest
