import logging
from typing import List, Optional, Set, Union

from .challenge import Verdict
from .oracle import ResultReceiver

logger = logging.getLogger(__name__)


class VerdictDispatcher:
    """
    Forwards the outcome of completed challenges to the result receivers.

    Each challenge is reported at most once. Receivers are fire-and-forget: a failing receiver is logged, and does
    not prevent the others from being notified.
    """

    def __init__(self, receivers: Optional[Union[ResultReceiver, List[ResultReceiver]]] = None):
        if receivers is None:
            receivers = []
        elif not isinstance(receivers, list):
            receivers = [receivers]

        self.receivers: List[ResultReceiver] = list(receivers)
        self._reported: Set[int] = set()

    def add_receiver(self, receiver: ResultReceiver):
        self.receivers.append(receiver)

    def report(self, verdict: Verdict):
        if verdict.session_id in self._reported:
            raise ValueError(f"Challenge {verdict.session_id} was already reported")
        self._reported.add(verdict.session_id)

        for receiver in self.receivers:
            try:
                receiver.on_challenge_completed(verdict.session_id, verdict.winner, verdict.loser,
                                                verdict.max_inbox_messages_read)
            except Exception:
                logger.exception("Result receiver %r failed for challenge %d", receiver, verdict.session_id)
