class ChallengeError(Exception):
    pass


class ProtocolViolation(ChallengeError):
    """
    A move that breaks the rules of the protocol. The move is rejected before any state is modified and no time
    is debited, so the caller can retry with corrected arguments.
    """
    pass


class WrongTurn(ProtocolViolation):
    pass


class StaleSegmentation(ProtocolViolation):
    """The segmentation supplied as the previous one does not hash to the current commitment."""
    pass


class InvalidSegmentIndex(ProtocolViolation):
    pass


class InvalidSegmentCount(ProtocolViolation):
    pass


class SegmentStartMismatch(ProtocolViolation):
    pass


class SegmentEndUnchanged(ProtocolViolation):
    pass


class RangeTooShort(ProtocolViolation):
    """Bisection attempted on a single step; a one-step proof is required instead."""
    pass


class RangeTooLong(ProtocolViolation):
    """One-step proof attempted on a range longer than one step."""
    pass


class MoveDeadlineExceeded(ProtocolViolation):
    """The mover ran out of time; the only way forward is a timeout."""
    pass


class ProofRejected(ChallengeError):
    """Raised by a step oracle refusing a malformed proof. It counts as no move at all."""
    pass


class ChallengeAlreadyEnded(ChallengeError):
    pass


class UnknownChallenge(ChallengeError, KeyError):
    pass
