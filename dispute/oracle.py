from abc import ABC, abstractmethod
from typing import Hashable


class StepOracle(ABC):
    """
    The authority that can replay exactly one step of the underlying machine.

    The challenge protocol is agnostic to the machine: implementations decide how a proof is encoded and how a
    step is executed.
    """

    @abstractmethod
    def prove_one_step(self, start_hash: bytes, proof: bytes, max_inbox_messages_read: int) -> bytes:
        """
        Executes the single step starting from the state committed to by `start_hash`, as described by `proof`, and
        returns the hash of the resulting state.

        Implementations must be deterministic and must raise `ProofRejected` for a malformed proof, or one that
        does not match `start_hash`, rather than returning a guessed hash. `max_inbox_messages_read` bounds how much
        external input the step may consume.
        """
        pass


class ResultReceiver(ABC):
    """Receives the outcome of completed challenges and applies its consequences."""

    @abstractmethod
    def on_challenge_completed(self, session_id: int, winner: Hashable, loser: Hashable, max_inbox_messages_read: int):
        pass
