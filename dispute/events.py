from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Sequence, Union

from .challenge import VerdictReason
from .range import StepRange


@dataclass(frozen=True)
class Bisected:
    """Emitted when a segmentation is committed, so observers can rebuild it without re-deriving it."""
    session_id: int
    commitment: bytes
    start: int
    count: int
    segment_hashes: Sequence[bytes]

    @property
    def step_range(self) -> StepRange:
        return StepRange(self.start, self.count)


@dataclass(frozen=True)
class Completed:
    session_id: int
    winner: Hashable
    loser: Hashable
    reason: VerdictReason


ChallengeEvent = Union[Bisected, Completed]


class EventLog:
    """Append-only record of the events of all the challenges of a manager."""

    def __init__(self):
        self.events: List[ChallengeEvent] = []
        self._by_session: Dict[int, List[ChallengeEvent]] = {}
        self._last_segmentation: Dict[int, Bisected] = {}

    def append(self, event: ChallengeEvent):
        self.events.append(event)
        self._by_session.setdefault(event.session_id, []).append(event)
        if isinstance(event, Bisected):
            self._last_segmentation[event.session_id] = event

    def for_session(self, session_id: int) -> List[ChallengeEvent]:
        return list(self._by_session.get(session_id, []))

    def last_segmentation(self, session_id: int) -> Optional[Bisected]:
        """Returns the event of the currently committed segmentation of a challenge, if any."""
        return self._last_segmentation.get(session_id)

    def __len__(self) -> int:
        return len(self.events)
