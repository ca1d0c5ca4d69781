from .challenge import (DEFAULT_MAX_SEGMENTS, ChallengeSession, ChallengeStatus, Turn, Verdict, VerdictReason,
                        bisect, initiate, one_step_prove, timeout)
from .clock import ManualTimeSource, SystemTimeSource, TimeoutClock, TimeSource
from .commitment import ChallengeCommitment, hash_challenge_state
from .errors import (ChallengeAlreadyEnded, ChallengeError, ProofRejected, ProtocolViolation, UnknownChallenge,
                     WrongTurn)
from .events import Bisected, Completed, EventLog
from .manager import ChallengeManager
from .oracle import ResultReceiver, StepOracle
from .range import StepRange, bisection_rounds, segment_count
from .verdict import VerdictDispatcher
