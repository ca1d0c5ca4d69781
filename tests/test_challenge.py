import pytest

from dispute.challenge import (ChallengeStatus, Turn, VerdictReason, bisect, initiate, one_step_prove,
                               timeout)
from dispute.commitment import hash_challenge_state
from dispute.errors import (ChallengeAlreadyEnded, InvalidSegmentCount, InvalidSegmentIndex, MoveDeadlineExceeded,
                            ProofRejected, ProtocolViolation, RangeTooLong, RangeTooShort, SegmentEndUnchanged,
                            SegmentStartMismatch, StaleSegmentation, WrongTurn)
from dispute.range import StepRange
from dispute.utils import encode_int

from examples.doubling.doubling_machine import DoublingMachine, make_trace, state_hash

from test_utils import fake_hashes


ALICE = "alice"  # asserter
BOB = "bob"  # challenger


def new_session(start_hash: bytes, end_hash: bytes, num_steps: int, *, budgets=(100, 100), max_segments=5, now=0):
    return initiate(start_hash, end_hash, num_steps, ALICE, BOB, budgets[0], budgets[1],
                    now=now, session_id=1, max_inbox_messages_read=7, max_segments=max_segments)


def test_initiate():
    h_start, h_end = fake_hashes(2)
    s = new_session(h_start, h_end, 16, budgets=(30, 40), now=123)

    assert s.status == ChallengeStatus.OPEN
    assert s.turn == Turn.CHALLENGER
    assert s.current_party == BOB
    assert s.claimant == Turn.ASSERTER
    assert s.current_range == StepRange(0, 16)
    assert s.commitment == hash_challenge_state(0, 16, [h_start, h_end])
    assert (s.asserter_time_left, s.challenger_time_left) == (30, 40)
    assert s.last_move_timestamp == 123
    assert s.max_inbox_messages_read == 7
    assert s.verdict is None


def test_initiate_invalid():
    h_start, h_end = fake_hashes(2)

    with pytest.raises(ValueError):
        new_session(h_start, h_end, 0)
    with pytest.raises(ValueError):
        new_session(h_start, h_end, 4, budgets=(0, 10))
    with pytest.raises(ValueError):
        new_session(h_start, b'\x00', 4)
    with pytest.raises(ValueError):
        new_session(h_start, h_end, 4, max_segments=2)
    with pytest.raises(ValueError):
        initiate(h_start, h_end, 4, ALICE, ALICE, 10, 10, now=0)


def test_single_step_asserter_wins():
    # numSteps = 1, Alice claims the correct end state H1
    states, hashes = make_trace(21, 1)
    s = new_session(hashes[0], hashes[1], 1)

    verdict = one_step_prove(s, 0, [hashes[0], hashes[1]], encode_int(states[0]),
                             sender=BOB, oracle=DoublingMachine(), now=5)

    assert s.status == ChallengeStatus.ASSERTER_WON
    assert verdict.winner == ALICE and verdict.loser == BOB
    assert verdict.winner_side == Turn.ASSERTER
    assert verdict.reason == VerdictReason.ONE_STEP_PROOF
    assert verdict.max_inbox_messages_read == 7
    assert s.verdict == verdict
    assert s.challenger_time_left == 95


def test_single_step_challenger_wins():
    # same setup, but the claimed end state is wrong: the replay yields H2 != H1
    states, hashes = make_trace(21, 1)
    h_wrong = state_hash(43)
    s = new_session(hashes[0], h_wrong, 1)

    verdict = one_step_prove(s, 0, [hashes[0], h_wrong], encode_int(states[0]),
                             sender=BOB, oracle=DoublingMachine(), now=5)

    assert s.status == ChallengeStatus.CHALLENGER_WON
    assert verdict.winner == BOB and verdict.loser == ALICE


def test_single_step_cannot_be_bisected():
    h = fake_hashes(3)
    s = new_session(h[0], h[1], 1)

    with pytest.raises(RangeTooShort):
        bisect(s, [h[0], h[2]], 0, [h[0], h[1]], sender=BOB, now=1)


def test_bisect_arithmetic_16_steps():
    h_a = fake_hashes(17, b'alice')
    h_b = fake_hashes(17, b'bob')
    h_b[0] = h_a[0]

    s = new_session(h_a[0], h_a[16], 16)

    # Bob bisects the whole range into 5 segments
    bob_segments = [h_b[i] for i in [0, 4, 8, 12, 16]]
    bisect(s, bob_segments, 0, [h_a[0], h_a[16]], sender=BOB, now=1)

    assert s.current_range == StepRange(0, 16)
    assert s.turn == Turn.ASSERTER
    assert s.claimant == Turn.CHALLENGER
    assert s.commitment == hash_challenge_state(0, 16, bob_segments)

    # Alice disputes the segment with index 2, that is the steps [8, 12)
    alice_segments = [h_b[8], h_a[9], h_a[10], h_a[11], h_a[12]]
    bisect(s, alice_segments, 2, bob_segments, sender=ALICE, now=2)

    assert s.current_range == StepRange(8, 4)
    assert s.turn == Turn.CHALLENGER
    assert s.claimant == Turn.ASSERTER
    assert s.commitment == hash_challenge_state(8, 4, alice_segments)


def test_bisect_arithmetic_17_steps():
    h_a = fake_hashes(18, b'alice')
    h_b = fake_hashes(18, b'bob')

    s = new_session(h_a[0], h_a[17], 17)

    bob_segments = [h_a[0], h_b[4], h_b[8], h_b[12], h_b[17]]
    bisect(s, bob_segments, 0, [h_a[0], h_a[17]], sender=BOB, now=1)

    # the last segment absorbs the remainder: [12, 17)
    alice_segments = [h_b[12], h_a[13], h_a[14], h_a[15], h_a[17]]
    bisect(s, alice_segments, 3, bob_segments, sender=ALICE, now=2)
    assert s.current_range == StepRange(12, 5)

    # 5 steps with 5 segments: [12, 13), [13, 14), [14, 15), [15, 17)
    with pytest.raises(InvalidSegmentCount):
        bisect(s, [h_a[15], h_b[16], h_b[16], h_b[17]], 3, alice_segments, sender=BOB, now=3)

    bob_segments_2 = [h_a[15], h_b[16], h_b[17]]
    bisect(s, bob_segments_2, 3, alice_segments, sender=BOB, now=3)
    assert s.current_range == StepRange(15, 2)

    # a single step is left in each segment
    with pytest.raises(RangeTooShort):
        bisect(s, [h_a[15], h_a[16]], 0, bob_segments_2, sender=ALICE, now=4)


def test_bisect_rejections_leave_no_trace():
    h_a = fake_hashes(17, b'alice')
    h_b = fake_hashes(17, b'bob')
    h_b[0] = h_a[0]

    s = new_session(h_a[0], h_a[16], 16, budgets=(50, 50))
    initial = [h_a[0], h_a[16]]
    good = [h_b[i] for i in [0, 4, 8, 12, 16]]

    snapshot = (s.commitment, s.turn, s.claimant, s.current_range, s.asserter_time_left, s.challenger_time_left,
                s.last_move_timestamp, s.status)

    with pytest.raises(WrongTurn):
        bisect(s, good, 0, initial, sender=ALICE, now=1)
    with pytest.raises(WrongTurn):
        bisect(s, good, 0, initial, sender="mallory", now=1)
    with pytest.raises(StaleSegmentation):
        bisect(s, good, 0, [h_a[0], h_b[16]], sender=BOB, now=1)
    with pytest.raises(StaleSegmentation):
        bisect(s, good, 0, [h_a[0]], sender=BOB, now=1)
    with pytest.raises(InvalidSegmentIndex):
        bisect(s, good, 1, initial, sender=BOB, now=1)
    with pytest.raises(InvalidSegmentIndex):
        bisect(s, good, -1, initial, sender=BOB, now=1)
    with pytest.raises(InvalidSegmentCount):
        bisect(s, good[:4], 0, initial, sender=BOB, now=1)
    with pytest.raises(ProtocolViolation):
        bisect(s, good[:4] + [b'\x01' * 31], 0, initial, sender=BOB, now=1)
    with pytest.raises(SegmentStartMismatch):
        bisect(s, [h_b[1]] + good[1:], 0, initial, sender=BOB, now=1)
    with pytest.raises(SegmentEndUnchanged):
        bisect(s, good[:4] + [h_a[16]], 0, initial, sender=BOB, now=1)
    with pytest.raises(RangeTooLong):
        one_step_prove(s, 0, initial, b'', sender=BOB, oracle=DoublingMachine(), now=1)

    assert snapshot == (s.commitment, s.turn, s.claimant, s.current_range, s.asserter_time_left,
                        s.challenger_time_left, s.last_move_timestamp, s.status)

    # a corrected move is accepted afterwards
    bisect(s, good, 0, initial, sender=BOB, now=1)
    assert s.turn == Turn.ASSERTER


def test_turn_alternation_and_monotonicity():
    _, h_a = make_trace(3, 64, fault_step=50)
    _, h_b = make_trace(3, 64)

    s = new_session(h_a[0], h_a[64], 64, budgets=(1000, 1000), max_segments=3)

    sides = {Turn.ASSERTER: (ALICE, h_a), Turn.CHALLENGER: (BOB, h_b)}
    previous = [h_a[0], h_a[64]]
    now = 0
    while True:
        r = s.current_range
        sender, trace = sides[s.turn]
        bounds = r.boundaries(len(previous))
        index = next(i for i in range(len(previous) - 1)
                     if previous[i] == trace[bounds[i]] and previous[i + 1] != trace[bounds[i + 1]])
        sub = r.subrange(len(previous), index)
        if sub.count == 1:
            break

        n = min(sub.count + 1, 3)
        segments = [trace[i] for i in sub.boundaries(n)]

        turn_before = s.turn
        time_left_before = (s.asserter_time_left, s.challenger_time_left)
        now += 3
        bisect(s, segments, index, previous, sender=sender, now=now)

        assert s.turn == turn_before.other()
        assert s.current_range == sub and r.contains(sub)
        # the initial segmentation is a single interval: only later bisections shrink the committed range
        assert sub.count < r.count or len(previous) == 2
        assert s.asserter_time_left <= time_left_before[0]
        assert s.challenger_time_left <= time_left_before[1]
        # only the mover pays
        if turn_before == Turn.ASSERTER:
            assert s.challenger_time_left == time_left_before[1]
        else:
            assert s.asserter_time_left == time_left_before[0]

        previous = segments

    assert s.status == ChallengeStatus.OPEN


def test_timeout_scenario():
    h_start, h_end = fake_hashes(2)
    s = new_session(h_start, h_end, 8, budgets=(100, 10), now=0)

    # the challenger still has time
    assert timeout(s, now=9) is None
    assert s.status == ChallengeStatus.OPEN
    assert s.challenger_time_left == 10

    # 11 units elapse before the challenger's move
    with pytest.raises(MoveDeadlineExceeded):
        bisect(s, [h_start] + fake_hashes(4, b"c"), 0, [h_start, h_end], sender=BOB, now=11)

    verdict = timeout(s, now=11)
    assert verdict is not None
    assert s.status == ChallengeStatus.ASSERTER_WON
    assert verdict.winner == ALICE and verdict.loser == BOB
    assert verdict.reason == VerdictReason.TIMEOUT
    assert s.challenger_time_left == 0
    assert s.asserter_time_left == 100


def test_timeout_exact_exhaustion():
    h_start, h_end = fake_hashes(2)
    s = new_session(h_start, h_end, 8, budgets=(100, 10), now=0)

    verdict = timeout(s, now=10)
    assert verdict is not None and verdict.winner == ALICE


def test_timeout_debits_the_party_on_turn():
    h_a = fake_hashes(9, b'alice')
    h_b = fake_hashes(9, b'bob')
    h_b[0] = h_a[0]

    s = new_session(h_a[0], h_a[8], 8, budgets=(20, 20), now=0)
    segments = [h_b[i] for i in [0, 2, 4, 6, 8]]
    bisect(s, segments, 0, [h_a[0], h_a[8]], sender=BOB, now=15)
    assert s.challenger_time_left == 5
    assert s.asserter_time_left == 20

    # Alice's clock runs now; Bob's is frozen
    assert timeout(s, now=34) is None
    verdict = timeout(s, now=35)
    assert verdict.winner == BOB
    assert s.status == ChallengeStatus.CHALLENGER_WON
    assert s.challenger_time_left == 5


def test_time_source_going_backwards():
    h_start, h_end = fake_hashes(2)
    s = new_session(h_start, h_end, 8, budgets=(100, 10), now=50)

    assert timeout(s, now=0) is None
    assert s.challenger_time_left == 10


def test_terminal_session_rejects_everything():
    states, hashes = make_trace(5, 1)
    s = new_session(hashes[0], hashes[1], 1)
    previous = [hashes[0], hashes[1]]
    one_step_prove(s, 0, previous, encode_int(states[0]), sender=BOB, oracle=DoublingMachine(), now=1)
    status = s.status

    with pytest.raises(ChallengeAlreadyEnded):
        one_step_prove(s, 0, previous, encode_int(states[0]), sender=BOB, oracle=DoublingMachine(), now=2)
    with pytest.raises(ChallengeAlreadyEnded):
        bisect(s, previous, 0, previous, sender=ALICE, now=2)
    with pytest.raises(ChallengeAlreadyEnded):
        timeout(s, now=10**6)

    assert s.status == status


def test_proof_rejected_is_not_a_move():
    states, hashes = make_trace(5, 1)
    s = new_session(hashes[0], hashes[1], 1, budgets=(10, 10))
    previous = [hashes[0], hashes[1]]
    oracle = DoublingMachine()

    with pytest.raises(ProofRejected):
        one_step_prove(s, 0, previous, encode_int(states[0] + 1), sender=BOB, oracle=oracle, now=3)

    assert s.status == ChallengeStatus.OPEN
    assert s.turn == Turn.CHALLENGER
    assert s.challenger_time_left == 10
    assert s.last_move_timestamp == 0

    # the opponent can eventually claim the win by timeout
    assert timeout(s, now=10).winner == ALICE
