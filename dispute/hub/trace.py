"""
Off-chain participants of the bisection protocol.

A TraceParty knows the full computation trace according to its own view:

    x_0 ==> x_1 ==> x_2 ==> ... ==> x_n

and holds the hashed states h_i = H(x_i) for each i in 0, ..., n. Facing the segmentation committed by the opponent,
it finds the first interval whose start it agrees with, and whose end it disputes: such an interval always exists
if the two parties agree on the first segment hash and disagree on the last one. Then it either bisects the interval
with its own hashes at the subdivision points, or, once the interval is a single step, proves that step.

Whether it wins only depends on whether its trace is the correct one; a party with a faulty trace is simply a
TraceParty built from wrong hashes.
"""

from dataclasses import dataclass
from typing import Callable, Hashable, List, Optional, Sequence, Tuple, Union

from ..challenge import ChallengeSession, Verdict
from ..events import Bisected
from ..manager import ChallengeManager
from ..range import StepRange, segment_count


@dataclass
class BisectMove:
    segment_hashes: List[bytes]
    previous_segment_index: int
    previous_segment_hashes: List[bytes]


@dataclass
class ProveMove:
    previous_segment_index: int
    previous_segment_hashes: List[bytes]
    proof: bytes


Move = Union[BisectMove, ProveMove]


class TraceParty:
    def __init__(self, identity: Hashable, trace: List[bytes], prover: Optional[Callable[[int], bytes]] = None):
        """
        Parameters:
            identity (Hashable): The identity used when submitting moves.
            trace (List[bytes]): The state hashes h_0, ..., h_n of the computation, according to this party.
            prover (Optional[Callable[[int], bytes]]): Given the index i of a step, returns the one-step proof for the
                transition from x_i to x_{i+1}. Only needed if the party has to prove a step.
        """

        if len(trace) < 2:
            raise ValueError("A trace must contain at least one step")

        self.identity = identity
        self.trace = trace
        self.prover = prover

    @property
    def num_steps(self) -> int:
        return len(self.trace) - 1

    def initial_claim(self) -> Tuple[bytes, bytes, int]:
        """Returns the (start_hash, end_hash, num_steps) claimed by this party when acting as the asserter."""
        return self.trace[0], self.trace[-1], self.num_steps

    def segmentation(self, step_range: StepRange, max_segments: int) -> List[bytes]:
        n_segments = segment_count(step_range.count, max_segments)
        return [self.trace[i] for i in step_range.boundaries(n_segments)]

    def choose_segment(self, step_range: StepRange, segment_hashes: Sequence[bytes]) -> Optional[int]:
        """Returns the index of the first interval whose start matches this party's trace but whose end doesn't."""

        bounds = step_range.boundaries(len(segment_hashes))
        for i in range(len(segment_hashes) - 1):
            if segment_hashes[i] == self.trace[bounds[i]] and segment_hashes[i + 1] != self.trace[bounds[i + 1]]:
                return i
        return None

    def next_move(self, session: ChallengeSession, committed: Bisected) -> Move:
        step_range = committed.step_range
        segment_hashes = list(committed.segment_hashes)

        index = self.choose_segment(step_range, segment_hashes)
        if index is None:
            raise ValueError(f"{self.identity} has nothing to dispute in the committed segmentation")

        sub_range = step_range.subrange(len(segment_hashes), index)
        if sub_range.count == 1:
            if self.prover is None:
                raise ValueError(f"{self.identity} cannot produce one-step proofs")
            return ProveMove(index, segment_hashes, self.prover(sub_range.start))
        else:
            return BisectMove(self.segmentation(sub_range, session.max_segments), index, segment_hashes)

    def play(self, manager: ChallengeManager, session_id: int) -> Union[ChallengeSession, Verdict]:
        """Computes and submits this party's move in the challenge."""

        session = manager.get(session_id)
        move = self.next_move(session, manager.current_segmentation(session_id))

        if isinstance(move, BisectMove):
            return manager.bisect(session_id, self.identity, move.segment_hashes, move.previous_segment_index,
                                  move.previous_segment_hashes)
        else:
            return manager.one_step_prove(session_id, self.identity, move.previous_segment_index,
                                          move.previous_segment_hashes, move.proof)

    def __repr__(self):
        return f"{self.__class__.__name__}(identity={self.identity}, num_steps={self.num_steps})"


def run_challenge(manager: ChallengeManager, session_id: int, asserter: TraceParty, challenger: TraceParty,
                  on_move: Optional[Callable[[ChallengeSession], None]] = None) -> Verdict:
    """Lets the two parties alternate their moves until the challenge is over; returns the verdict."""

    session = manager.get(session_id)
    while not session.is_terminal():
        party = asserter if session.current_party == asserter.identity else challenger
        party.play(manager, session_id)
        session = manager.get(session_id)
        if on_move is not None:
            on_move(session)

    assert session.verdict is not None
    return session.verdict
