from typing import Optional

from .clock import ManualTimeSource
from .manager import ChallengeManager


class Environment:
    def __init__(self, manager: ChallengeManager, clock: ManualTimeSource, interactive: bool):
        self.manager = manager
        self.clock = clock
        self.interactive = interactive

    def advance(self, delta: float, message: Optional[str] = None) -> float:
        if message is not None:
            print(message)
        return self.clock.advance(delta)

    def prompt(self, message: Optional[str] = None):
        if message is not None:
            print(message)
        if self.interactive:
            print("Press Enter to continue...")
            input()
