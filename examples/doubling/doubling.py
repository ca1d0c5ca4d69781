"""
Interactive driver for a challenge over the doubling machine.

Alice asserts the result of a computation where one step was executed incorrectly; Bob holds the correct trace and
challenges her. Moves can be computed from the traces (`auto`, `step`) or typed in by hand (`bisect`, `prove`), and
the shared clock only moves with `advance`.
"""

import argparse
import json
import logging
import os
import shlex
import traceback
from typing import Dict, Tuple

from dotenv import load_dotenv

from prompt_toolkit import prompt
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.history import FileHistory

from dispute import ChallengeManager, ManualTimeSource, ResultReceiver, VerdictDispatcher
from dispute.environment import Environment
from dispute.hub.trace import BisectMove, TraceParty
from dispute.utils import format_segments_markdown, short_hex

from doubling_machine import DoublingMachine, make_trace, prover_for

logging.basicConfig(filename='dispute-cli.log', level=logging.DEBUG)


class ActionArgumentCompleter(Completer):
    ACTION_ARGUMENTS = {
        "start": ["steps=", "fault_step=", "x="],
        "list": [],
        "show": ["id="],
        "events": ["id="],
        "step": ["id="],
        "auto": ["id="],
        "bisect": ["id=", "index=", "segments=\"["],
        "prove": ["id=", "index=", "x="],
        "advance": [],
        "timeout": ["id="],
    }

    def get_completions(self, document, complete_event):
        word_before_cursor = document.get_word_before_cursor(WORD=True)

        if ' ' not in document.text:
            # user is typing the action
            for action in self.ACTION_ARGUMENTS.keys():
                if action.startswith(word_before_cursor):
                    yield Completion(action, start_position=-len(word_before_cursor))
        else:
            # user is typing an argument, find which are valid
            action = document.text.split()[0]
            for argument in self.ACTION_ARGUMENTS.get(action, []):
                if argument not in document.text and argument.startswith(word_before_cursor):
                    yield Completion(argument, start_position=-len(word_before_cursor))


class PrintingReceiver(ResultReceiver):
    def on_challenge_completed(self, session_id, winner, loser, max_inbox_messages_read):
        print(f"Challenge {session_id} completed: {winner} wins, {loser} loses")


load_dotenv()

max_segments = int(os.getenv("DISPUTE_MAX_SEGMENTS", 5))
asserter_budget = float(os.getenv("DISPUTE_ASSERTER_BUDGET", 100))
challenger_budget = float(os.getenv("DISPUTE_CHALLENGER_BUDGET", 100))

# parties of each challenge, by challenge id
parties: Dict[int, Tuple[TraceParty, TraceParty]] = {}


def get_session_id(args_dict: dict) -> int:
    if "id" in args_dict:
        return int(args_dict["id"])
    if '@0' in args_dict:
        return int(args_dict['@0'])
    if len(manager.sessions) == 0:
        raise ValueError("No challenge yet")
    return max(manager.sessions.keys())


def start_challenge(num_steps: int, fault_step: int, x_start: int) -> int:
    alice_states, alice_trace = make_trace(x_start, num_steps, fault_step=fault_step)
    bob_states, bob_trace = make_trace(x_start, num_steps)

    alice = TraceParty("alice", alice_trace, prover_for(alice_states))
    bob = TraceParty("bob", bob_trace, prover_for(bob_states))

    start_hash, end_hash, _ = alice.initial_claim()
    session_id = manager.create_challenge(start_hash, end_hash, num_steps, alice.identity, bob.identity,
                                          asserter_budget, challenger_budget)
    parties[session_id] = (alice, bob)
    return session_id


def play_step(session_id: int):
    session = manager.get(session_id)
    alice, bob = parties[session_id]
    party = alice if session.current_party == alice.identity else bob

    move = party.next_move(session, manager.current_segmentation(session_id))
    if isinstance(move, BisectMove):
        environment.prompt(f"{party.identity} bisects segment {move.previous_segment_index}")
    else:
        environment.prompt(f"{party.identity} proves segment {move.previous_segment_index}")
    return party.play(manager, session_id)


def execute_command(input_line: str):
    # consider lines starting with '#' (possibly prefixed with whitespaces) as comments
    if input_line.strip().startswith("#"):
        return

    # Split into a command and the list of arguments
    try:
        input_line_list = shlex.split(input_line)
    except ValueError as e:
        print(f"Invalid command: {str(e)}")
        return

    # Ensure input_line_list is not empty
    if input_line_list:
        action = input_line_list[0].strip()
    else:
        return

    # Get the necessary arguments from input_command_list
    args_dict = {}
    pos_count = 0  # count of positional arguments
    for item in input_line_list[1:]:
        parts = item.strip().split('=', 1)
        if len(parts) == 2:
            param, value = parts
            args_dict[param] = value
        else:
            # record positional arguments with keys @0, @1, ...
            args_dict['@' + str(pos_count)] = parts[0]
            pos_count += 1

    if action == "":
        return
    elif action not in actions:
        print("Invalid action")
        return
    elif action == "start":
        num_steps = int(args_dict.get("steps", default_steps))
        fault_step = int(args_dict.get("fault_step", default_fault_step))
        x_start = int(args_dict.get("x", 1))
        if not (0 <= fault_step < num_steps):
            raise ValueError("Invalid fault step")

        session_id = start_challenge(num_steps, fault_step, x_start)
        print(f"Challenge {session_id} started: {manager.get(session_id)}")
    elif action == "list":
        for session in manager.list_sessions():
            print(session.session_id, session.status.name, session)
    elif action == "show":
        session_id = get_session_id(args_dict)
        ev = manager.current_segmentation(session_id)
        print(manager.get(session_id))
        for i, h in enumerate(ev.segment_hashes):
            print(f"  [{i}] {h.hex()}")
    elif action == "events":
        session_id = get_session_id(args_dict)
        for ev in manager.events(session_id):
            print(ev)
    elif action == "step":
        session_id = get_session_id(args_dict)
        print(play_step(session_id))
    elif action == "auto":
        session_id = get_session_id(args_dict)
        session = manager.get(session_id)
        while not session.is_terminal():
            play_step(session_id)
            session = manager.get(session_id)
            ev = manager.current_segmentation(session_id)
            print(format_segments_markdown(list(ev.segment_hashes), f"Commitment {short_hex(ev.commitment)}",
                                           ev.start, ev.count))
        print(session.verdict)
    elif action == "bisect":
        session_id = get_session_id(args_dict)
        index = int(args_dict["index"])
        segments = [bytes.fromhex(h) for h in json.loads(args_dict["segments"])]
        session = manager.get(session_id)
        previous = list(manager.current_segmentation(session_id).segment_hashes)

        print(manager.bisect(session_id, session.current_party, segments, index, previous))
    elif action == "prove":
        session_id = get_session_id(args_dict)
        index = int(args_dict["index"])
        x = int(args_dict["x"])
        session = manager.get(session_id)
        previous = list(manager.current_segmentation(session_id).segment_hashes)

        print(manager.one_step_prove(session_id, session.current_party, index, previous, prover_for([x])(0)))
    elif action == "advance":
        delta = float(args_dict.get('@0', 1))
        print(f"now: {environment.advance(delta)}")
    elif action == "timeout":
        session_id = get_session_id(args_dict)
        verdict = manager.timeout(session_id)
        if verdict is None:
            session = manager.get(session_id)
            print(f"The {session.turn.name.lower()} still has time left")
        else:
            print(verdict)


def cli_main():
    completer = ActionArgumentCompleter()
    # Create a history object
    history = FileHistory('.cli-history')

    while True:
        try:
            input_line = prompt("⚖ ", history=history, completer=completer)
            execute_command(input_line)
        except (KeyboardInterrupt, EOFError):
            raise  # exit
        except Exception as err:
            print(f"Error: {err}")
            print(traceback.format_exc())


def script_main(script_filename: str):
    with open(script_filename, "r") as script_file:
        for input_line in script_file:
            try:
                execute_command(input_line)
            except Exception as e:
                print(f"Error executing command: {input_line.strip()} - Error: {str(e)}")
                break


if __name__ == "__main__":
    parser = argparse.ArgumentParser()

    # Script file option
    parser.add_argument("--script", "-s", type=str, help="Execute commands from script file")

    # Non-interactive option
    parser.add_argument("--non-interactive", "-n", action="store_true", help="Run in non-interactive mode")

    parser.add_argument("--steps", default=64, type=int, help="Default number of steps of a challenge (default: 64)")
    parser.add_argument("--fault-step", default=37, type=int, help="Default step where Alice cheats (default: 37)")

    args = parser.parse_args()

    actions = ["start", "list", "show", "events", "step", "auto", "bisect", "prove", "advance", "timeout"]

    default_steps = args.steps
    default_fault_step = args.fault_step

    clock = ManualTimeSource()
    manager = ChallengeManager(DoublingMachine(), time_source=clock,
                               dispatcher=VerdictDispatcher(PrintingReceiver()), max_segments=max_segments)
    environment = Environment(manager, clock, not args.non_interactive)

    if args.script:
        script_main(args.script)
    else:
        try:
            cli_main()
        except (KeyboardInterrupt, EOFError):
            pass  # exit
