"""
This module provides the registry of live challenges.

The ChallengeManager owns a collection of ChallengeSession objects, keyed by an opaque integer id, and has methods
for
- opening a challenge;
- applying the moves of the two parties (bisections and one-step proofs);
- ending a challenge whose party on turn ran out of time.

Every operation, reads included, runs under the manager lock: a move reads the time source once and applies the
transition as a single indivisible unit, and reads return snapshots of the sessions. The events for observers are
recorded in an EventLog, and the verdicts of completed challenges are forwarded through a VerdictDispatcher.
"""

import dataclasses
import logging
import threading
from typing import Dict, Hashable, List, Optional

from . import challenge
from .challenge import DEFAULT_MAX_SEGMENTS, ChallengeSession, ChallengeStatus, Verdict
from .clock import SystemTimeSource, TimeSource
from .errors import ChallengeError, UnknownChallenge
from .events import Bisected, ChallengeEvent, Completed, EventLog
from .oracle import StepOracle
from .verdict import VerdictDispatcher

logger = logging.getLogger(__name__)


class ChallengeManager:
    """
    Manages a collection of challenges, coordinating their lifecycle from creation to the verdict.
    """

    def __init__(
        self,
        oracle: StepOracle,
        *,
        time_source: Optional[TimeSource] = None,
        dispatcher: Optional[VerdictDispatcher] = None,
        max_segments: int = DEFAULT_MAX_SEGMENTS
    ):
        """
        Initializes a new ChallengeManager.

        Parameters:
            oracle (StepOracle): The authority used to replay single steps in one-step proofs.
            time_source (Optional[TimeSource]): The time source shared by both parties. Defaults to the system's
                monotonic clock.
            dispatcher (Optional[VerdictDispatcher]): Receives the verdict of each completed challenge. Defaults to a
                dispatcher with no receivers.
            max_segments (int, optional): The maximum number of segment hashes of a bisection, for all the
                challenges created by this manager. Defaults to DEFAULT_MAX_SEGMENTS.
        """

        if max_segments < 3:
            raise ValueError("max_segments must be at least 3")

        self.oracle = oracle
        self.time_source = time_source if time_source is not None else SystemTimeSource()
        self.dispatcher = dispatcher if dispatcher is not None else VerdictDispatcher()
        self.max_segments = max_segments

        self.sessions: Dict[int, ChallengeSession] = {}
        self.event_log = EventLog()

        self._next_id = 1
        self._lock = threading.RLock()

    def _get_live(self, session_id: int) -> ChallengeSession:
        try:
            return self.sessions[session_id]
        except KeyError:
            raise UnknownChallenge(f"Unknown challenge: {session_id}") from None

    def get(self, session_id: int) -> ChallengeSession:
        """
        Returns a snapshot of the challenge with the given id. Later moves do not change the returned object: call
        `get` again to observe them.

        Raises:
            UnknownChallenge: If no challenge with this id exists.
        """
        with self._lock:
            return dataclasses.replace(self._get_live(session_id))

    def list_sessions(self, status: Optional[ChallengeStatus] = None) -> List[ChallengeSession]:
        """Returns snapshots of the challenges in creation order, optionally filtered by status."""
        with self._lock:
            return [dataclasses.replace(s) for s in list(self.sessions.values())
                    if status is None or s.status == status]

    def events(self, session_id: int) -> List[ChallengeEvent]:
        with self._lock:
            self._get_live(session_id)
            return self.event_log.for_session(session_id)

    def current_segmentation(self, session_id: int) -> Bisected:
        """
        Returns the event describing the segmentation currently committed in the challenge, that the party on turn
        needs to reveal to make its move.
        """
        with self._lock:
            self._get_live(session_id)
            ev = self.event_log.last_segmentation(session_id)
        assert ev is not None  # every challenge starts with a Bisected event
        return ev

    def create_challenge(
        self,
        start_hash: bytes,
        end_hash: bytes,
        num_steps: int,
        asserter: Hashable,
        challenger: Hashable,
        asserter_budget: float,
        challenger_budget: float,
        *,
        max_inbox_messages_read: int = 0
    ) -> int:
        """
        Opens a new challenge, disputing the asserter's claim that `num_steps` steps lead from `start_hash` to
        `end_hash`. The challenger has the first move.

        Parameters:
            start_hash (bytes): Hash of the initial state, agreed by both parties.
            end_hash (bytes): Hash of the final state claimed by the asserter.
            num_steps (int): Number of steps of the disputed execution; at least 1.
            asserter (Hashable): Identity of the asserter.
            challenger (Hashable): Identity of the challenger.
            asserter_budget (float): Total time the asserter can spend on its moves.
            challenger_budget (float): Total time the challenger can spend on its moves.
            max_inbox_messages_read (int, optional): Cap on the external input the final step may consume; passed
                through to the step oracle and to the result receivers.

        Returns:
            int: The id of the new challenge.

        Raises:
            ValueError: If any of the parameters is invalid.
        """

        with self._lock:
            session_id = self._next_id

            session = challenge.initiate(
                start_hash, end_hash, num_steps, asserter, challenger, asserter_budget, challenger_budget,
                now=self.time_source.now(),
                session_id=session_id,
                max_inbox_messages_read=max_inbox_messages_read,
                max_segments=self.max_segments,
            )

            self._next_id += 1
            self.sessions[session_id] = session
            self.event_log.append(Bisected(session_id, session.commitment, 0, num_steps, (start_hash, end_hash)))

        logger.info("Challenge %d created: %d steps, asserter=%s, challenger=%s",
                    session_id, num_steps, asserter, challenger)
        return session_id

    def bisect(
        self,
        session_id: int,
        sender: Hashable,
        segment_hashes: List[bytes],
        previous_segment_index: int,
        previous_segment_hashes: List[bytes]
    ) -> ChallengeSession:
        """
        Applies a bisection move by `sender` to the challenge.

        Parameters:
            session_id (int): The id of the challenge.
            sender (Hashable): The party making the move; it must be the party on turn.
            segment_hashes (List[bytes]): The mover's segmentation of the challenged segment.
            previous_segment_index (int): The index of the challenged segment in the committed segmentation.
            previous_segment_hashes (List[bytes]): The committed segmentation.

        Returns:
            ChallengeSession: A snapshot of the updated challenge.

        Raises:
            UnknownChallenge: If no challenge with this id exists.
            ChallengeAlreadyEnded: If the challenge is terminal.
            ProtocolViolation: If the move is invalid; the challenge is left unchanged.
        """

        with self._lock:
            session = self._get_live(session_id)
            try:
                challenge.bisect(session, segment_hashes, previous_segment_index, previous_segment_hashes,
                                 sender=sender, now=self.time_source.now())
            except ChallengeError as e:
                logger.debug("Challenge %d: bisection by %s rejected: %r", session_id, sender, e)
                raise

            r = session.current_range
            self.event_log.append(Bisected(session_id, session.commitment, r.start, r.count, tuple(segment_hashes)))
            return dataclasses.replace(session)

    def one_step_prove(
        self,
        session_id: int,
        sender: Hashable,
        previous_segment_index: int,
        previous_segment_hashes: List[bytes],
        proof: bytes
    ) -> Verdict:
        """
        Applies a one-step proof by `sender` to the challenge, which ends it.

        Raises:
            UnknownChallenge: If no challenge with this id exists.
            ChallengeAlreadyEnded: If the challenge is terminal.
            ProtocolViolation: If the move is invalid.
            ProofRejected: If the step oracle refuses the proof.
            In all these cases the challenge is left unchanged.
        """

        with self._lock:
            session = self._get_live(session_id)
            try:
                verdict = challenge.one_step_prove(session, previous_segment_index, previous_segment_hashes, proof,
                                                   sender=sender, oracle=self.oracle, now=self.time_source.now())
            except ChallengeError as e:
                logger.debug("Challenge %d: one-step proof by %s rejected: %r", session_id, sender, e)
                raise

            self._complete(verdict)
            return verdict

    def timeout(self, session_id: int) -> Optional[Verdict]:
        """
        Ends the challenge if the party on turn exhausted its time budget. Anyone can call it, at any time.

        Returns:
            Optional[Verdict]: The verdict if the challenge ended, None if the party on turn still has time.

        Raises:
            UnknownChallenge: If no challenge with this id exists.
            ChallengeAlreadyEnded: If the challenge is terminal.
        """

        with self._lock:
            session = self._get_live(session_id)
            verdict = challenge.timeout(session, now=self.time_source.now())
            if verdict is not None:
                self._complete(verdict)
            return verdict

    def _complete(self, verdict: Verdict):
        self.event_log.append(Completed(verdict.session_id, verdict.winner, verdict.loser, verdict.reason))
        self.dispatcher.report(verdict)
