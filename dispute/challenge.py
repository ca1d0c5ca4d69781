"""
The bisection challenge state machine.

An asserter claims that executing `num_steps` steps from the state `start_hash` ends in the state `end_hash`; a
challenger disputes it. The state of a challenge only stores a commitment to the current segmentation of the
disputed range, i.e. the claimed state hashes at the subdivision points of the range:

    range [s, s + n),  segment hashes h_0, h_1, ..., h_{k-1},  commitment = H(s || n || h_0 || ... || h_{k-1})

The party on turn reveals the committed segmentation again, picks an interval i whose start h_i it agrees with
and whose end h_{i+1} it disputes, and either:
  - bisect: if the interval spans more than one step, commits to its own segmentation of the interval, starting
    at h_i and ending at a state different from h_{i+1}. The turn passes to the opponent;
  - one-step proof: if the interval is a single step, has the step replayed by the step oracle from h_i. If the
    result matches h_{i+1}, the party that committed the segmentation (the claimant) wins; otherwise the prover
    does.

The initial segmentation is [start_hash, end_hash] over [0, num_steps), committed by the asserter, and the
challenger moves first.

Each party has a time budget; time elapsed since the last move is debited from the party on turn. Anyone can call
`timeout` to end the challenge once the party on turn has exhausted its budget.

The transitions below validate everything before touching the session, so a rejected move leaves no trace.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Hashable, List, Optional

from .clock import TimeoutClock
from .commitment import ChallengeCommitment, hash_challenge_state
from .errors import (ChallengeAlreadyEnded, InvalidSegmentCount, InvalidSegmentIndex, MoveDeadlineExceeded,
                     ProtocolViolation, RangeTooLong, RangeTooShort, SegmentEndUnchanged, SegmentStartMismatch, StaleSegmentation,
                     WrongTurn)
from .oracle import StepOracle
from .range import StepRange, segment_count
from .utils import check_digest, short_hex

logger = logging.getLogger(__name__)

# upper bound on the number of segment hashes of a bisection, bounding the work per move
DEFAULT_MAX_SEGMENTS = 400


class Turn(Enum):
    ASSERTER = 0
    CHALLENGER = 1

    def other(self) -> 'Turn':
        return Turn.CHALLENGER if self == Turn.ASSERTER else Turn.ASSERTER


class ChallengeStatus(Enum):
    OPEN = 0
    ASSERTER_WON = 1
    CHALLENGER_WON = 2

    @staticmethod
    def won_by(side: Turn) -> 'ChallengeStatus':
        return ChallengeStatus.ASSERTER_WON if side == Turn.ASSERTER else ChallengeStatus.CHALLENGER_WON


class VerdictReason(Enum):
    ONE_STEP_PROOF = 0
    TIMEOUT = 1


@dataclass(frozen=True)
class Verdict:
    session_id: int
    winner_side: Turn
    winner: Hashable
    loser: Hashable
    reason: VerdictReason
    max_inbox_messages_read: int


@dataclass
class ChallengeSession:
    """
    The live state of a challenge.

    `commitment` and `current_range` describe the segmentation committed by `claimant`; `turn` is the party
    expected to answer it.
    """

    session_id: int
    asserter: Hashable
    challenger: Hashable
    commitment: bytes
    current_range: StepRange
    turn: Turn
    claimant: Turn
    asserter_time_left: float
    challenger_time_left: float
    last_move_timestamp: float
    max_inbox_messages_read: int
    max_segments: int
    status: ChallengeStatus = ChallengeStatus.OPEN
    verdict: Optional[Verdict] = None

    def party(self, side: Turn) -> Hashable:
        return self.asserter if side == Turn.ASSERTER else self.challenger

    def time_left(self, side: Turn) -> float:
        return self.asserter_time_left if side == Turn.ASSERTER else self.challenger_time_left

    @property
    def current_party(self) -> Hashable:
        return self.party(self.turn)

    def is_terminal(self) -> bool:
        return self.status != ChallengeStatus.OPEN

    def expected_segment_count(self, step_range: StepRange) -> int:
        return segment_count(step_range.count, self.max_segments)

    def __repr__(self):
        return (f"{self.__class__.__name__}(id={self.session_id}, status={self.status.name}, "
                f"turn={self.turn.name}, range={self.current_range}, commitment={short_hex(self.commitment)}, "
                f"time_left=({self.asserter_time_left}, {self.challenger_time_left}))")


def initiate(
    start_hash: bytes,
    end_hash: bytes,
    num_steps: int,
    asserter: Hashable,
    challenger: Hashable,
    asserter_budget: float,
    challenger_budget: float,
    *,
    now: float,
    session_id: int = 0,
    max_inbox_messages_read: int = 0,
    max_segments: int = DEFAULT_MAX_SEGMENTS
) -> ChallengeSession:
    """
    Opens a challenge against the claim that `num_steps` steps lead from `start_hash` to `end_hash`.

    Raises:
        ValueError: on invalid parameters.
    """

    check_digest(start_hash, "start_hash")
    check_digest(end_hash, "end_hash")
    if num_steps < 1:
        raise ValueError("A challenge must cover at least one step")
    if asserter == challenger:
        raise ValueError("Asserter and challenger must be different parties")
    if asserter_budget <= 0 or challenger_budget <= 0:
        raise ValueError("Time budgets must be positive")
    if max_segments < 3:
        raise ValueError("max_segments must be at least 3")
    if max_inbox_messages_read < 0:
        raise ValueError("max_inbox_messages_read cannot be negative")

    step_range = StepRange(0, num_steps)

    return ChallengeSession(
        session_id=session_id,
        asserter=asserter,
        challenger=challenger,
        commitment=hash_challenge_state(step_range.start, step_range.count, [start_hash, end_hash]),
        current_range=step_range,
        turn=Turn.CHALLENGER,
        claimant=Turn.ASSERTER,
        asserter_time_left=asserter_budget,
        challenger_time_left=challenger_budget,
        last_move_timestamp=now,
        max_inbox_messages_read=max_inbox_messages_read,
        max_segments=max_segments,
    )


def _check_open(session: ChallengeSession):
    if session.is_terminal():
        raise ChallengeAlreadyEnded(f"Challenge {session.session_id} already ended: {session.status.name}")


def _check_sender(session: ChallengeSession, sender: Hashable):
    if sender != session.current_party:
        raise WrongTurn(f"Not {sender}'s turn: waiting for the {session.turn.name.lower()}")


def _extract_challenged_segment(session: ChallengeSession, previous_segment_index: int, previous_segment_hashes: List[bytes]) -> StepRange:
    r = session.current_range
    try:
        matches = ChallengeCommitment(r, previous_segment_hashes).matches(session.commitment)
    except ValueError as e:
        raise StaleSegmentation(f"Malformed previous segmentation: {e}") from e

    if not matches:
        raise StaleSegmentation("The previous segmentation does not match the current commitment")

    if not (0 <= previous_segment_index < len(previous_segment_hashes) - 1):
        raise InvalidSegmentIndex(f"Segment index {previous_segment_index} out of bounds")

    return r.subrange(len(previous_segment_hashes), previous_segment_index)


def _check_deadline(session: ChallengeSession, now: float) -> float:
    elapsed = TimeoutClock.elapsed(session.last_move_timestamp, now)
    if TimeoutClock.is_exhausted(session.time_left(session.turn), elapsed):
        raise MoveDeadlineExceeded(f"The {session.turn.name.lower()} ran out of time")
    return elapsed


def _conclude(session: ChallengeSession, winner_side: Turn, reason: VerdictReason) -> Verdict:
    verdict = Verdict(
        session_id=session.session_id,
        winner_side=winner_side,
        winner=session.party(winner_side),
        loser=session.party(winner_side.other()),
        reason=reason,
        max_inbox_messages_read=session.max_inbox_messages_read,
    )
    session.status = ChallengeStatus.won_by(winner_side)
    session.verdict = verdict

    logger.info("Challenge %d won by the %s (%s)", session.session_id, winner_side.name.lower(), reason.name)
    return verdict


def bisect(
    session: ChallengeSession,
    segment_hashes: List[bytes],
    previous_segment_index: int,
    previous_segment_hashes: List[bytes],
    *,
    sender: Hashable,
    now: float
) -> ChallengeSession:
    """
    Disputes the interval `previous_segment_index` of the committed segmentation, and commits to a new
    segmentation of it.

    Raises:
        ChallengeAlreadyEnded: if the session is terminal.
        ProtocolViolation: if the move is invalid; the session is unchanged.
    """

    _check_open(session)
    _check_sender(session, sender)

    new_range = _extract_challenged_segment(session, previous_segment_index, previous_segment_hashes)
    if new_range.count <= 1:
        raise RangeTooShort("The challenged segment is a single step: a one-step proof is required")

    expected_count = session.expected_segment_count(new_range)
    if len(segment_hashes) != expected_count:
        raise InvalidSegmentCount(f"Expected {expected_count} segment hashes, got {len(segment_hashes)}")

    try:
        new_commitment = hash_challenge_state(new_range.start, new_range.count, segment_hashes)
    except ValueError as e:
        raise ProtocolViolation(f"Malformed segmentation: {e}") from e

    if segment_hashes[0] != previous_segment_hashes[previous_segment_index]:
        raise SegmentStartMismatch("The new segmentation must start from the start of the challenged segment")
    if segment_hashes[-1] == previous_segment_hashes[previous_segment_index + 1]:
        raise SegmentEndUnchanged("The new segmentation must dispute the end of the challenged segment")

    elapsed = _check_deadline(session, now)

    mover = session.turn
    if mover == Turn.ASSERTER:
        session.asserter_time_left = TimeoutClock.debit(session.asserter_time_left, elapsed)
    else:
        session.challenger_time_left = TimeoutClock.debit(session.challenger_time_left, elapsed)
    session.commitment = new_commitment
    session.current_range = new_range
    session.claimant = mover
    session.turn = mover.other()
    session.last_move_timestamp = now

    logger.info("Challenge %d: %s bisected to %s", session.session_id, mover.name.lower(), new_range)
    return session


def one_step_prove(
    session: ChallengeSession,
    previous_segment_index: int,
    previous_segment_hashes: List[bytes],
    proof: bytes,
    *,
    sender: Hashable,
    oracle: StepOracle,
    now: float
) -> Verdict:
    """
    Settles a single-step interval of the committed segmentation by replaying it with the step oracle.

    If the oracle's result matches the committed end of the step, the claimant of the segmentation wins;
    otherwise the prover wins. Exceptions raised by the oracle (in particular `ProofRejected`) propagate and
    leave the session unchanged.
    """

    _check_open(session)
    _check_sender(session, sender)

    step = _extract_challenged_segment(session, previous_segment_index, previous_segment_hashes)
    if step.count != 1:
        raise RangeTooLong(f"The challenged segment spans {step.count} steps: it must be bisected first")

    elapsed = _check_deadline(session, now)

    start_hash = previous_segment_hashes[previous_segment_index]
    claimed_end_hash = previous_segment_hashes[previous_segment_index + 1]

    result_hash = oracle.prove_one_step(start_hash, proof, session.max_inbox_messages_read)

    prover = session.turn
    winner_side = session.claimant if result_hash == claimed_end_hash else prover

    if prover == Turn.ASSERTER:
        session.asserter_time_left = TimeoutClock.debit(session.asserter_time_left, elapsed)
    else:
        session.challenger_time_left = TimeoutClock.debit(session.challenger_time_left, elapsed)
    session.last_move_timestamp = now

    logger.debug("Challenge %d: step %d replayed, result %s, claimed %s", session.session_id, step.start,
                 short_hex(result_hash), short_hex(claimed_end_hash))
    return _conclude(session, winner_side, VerdictReason.ONE_STEP_PROOF)


def timeout(session: ChallengeSession, *, now: float) -> Optional[Verdict]:
    """
    Ends the challenge if the party on turn has exhausted its time budget; that party loses.
    Returns None, and changes nothing, if the party on turn still has time left.
    """

    _check_open(session)

    elapsed = TimeoutClock.elapsed(session.last_move_timestamp, now)
    if not TimeoutClock.is_exhausted(session.time_left(session.turn), elapsed):
        return None

    if session.turn == Turn.ASSERTER:
        session.asserter_time_left = 0
    else:
        session.challenger_time_left = 0

    return _conclude(session, session.turn.other(), VerdictReason.TIMEOUT)
