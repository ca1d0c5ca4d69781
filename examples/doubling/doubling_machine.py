from typing import List, Optional, Tuple

from dispute.errors import ProofRejected
from dispute.oracle import StepOracle
from dispute.utils import decode_int, encode_int, sha256

# Each step of the machine doubles its state, an integer. The hash of a state is the sha256 of its minimal encoding,
# and the one-step proof of a step is the encoded state the step starts from.


def state_hash(x: int) -> bytes:
    return sha256(encode_int(x))


class DoublingMachine(StepOracle):
    def __init__(self):
        self.n_calls = 0

    def prove_one_step(self, start_hash: bytes, proof: bytes, max_inbox_messages_read: int) -> bytes:
        if sha256(proof) != start_hash:
            raise ProofRejected("The proof does not open the start state")

        self.n_calls += 1
        return state_hash(2 * decode_int(proof))


def make_trace(x_start: int, num_steps: int, fault_step: Optional[int] = None) -> Tuple[List[int], List[bytes]]:
    """
    Returns the states x_0, ..., x_n and their hashes for `num_steps` doubling steps from `x_start`.

    If `fault_step` is given, the step from x_{fault_step} to x_{fault_step + 1} is executed incorrectly, and every
    following state is computed from the wrong value.
    """

    states = [x_start]
    for i in range(num_steps):
        x = 2 * states[-1]
        if i == fault_step:
            x -= 1
        states.append(x)
    return states, [state_hash(x) for x in states]


def prover_for(states: List[int]):
    return lambda step: encode_int(states[step])
