import pytest

import sys
import os
from pathlib import Path

from dispute import ChallengeManager, ManualTimeSource, ResultReceiver, VerdictDispatcher
from test_utils.challenge_graph import create_challenge_graph

root_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), '../')
sys.path.append(root_path)

from examples.doubling.doubling_machine import DoublingMachine  # noqa: E402


def pytest_addoption(parser):
    parser.addoption("--challenge_graph", action="store_true")


@pytest.fixture
def challenge_graph(request: pytest.FixtureRequest):
    return request.config.getoption("--challenge_graph", False)


class RecordingReceiver(ResultReceiver):
    def __init__(self):
        self.calls = []

    def on_challenge_completed(self, session_id, winner, loser, max_inbox_messages_read):
        self.calls.append((session_id, winner, loser, max_inbox_messages_read))


@pytest.fixture
def clock():
    return ManualTimeSource(1000)


@pytest.fixture
def receiver():
    return RecordingReceiver()


@pytest.fixture
def oracle():
    return DoublingMachine()


@pytest.fixture
def manager(oracle, clock, receiver, request: pytest.FixtureRequest, challenge_graph: bool):
    manager = ChallengeManager(oracle, time_source=clock, dispatcher=VerdictDispatcher(receiver), max_segments=5)
    yield manager

    if challenge_graph:
        # Create the "tests/graphs" directory if it doesn't exist
        path = Path("tests/graphs")
        path.mkdir(exist_ok=True)
        create_challenge_graph(manager, f"tests/graphs/{request.node.name}.html")


class TestReport:
    def __init__(self):
        self.sections = {}

    def write(self, section_name, content):
        if section_name not in self.sections:
            self.sections[section_name] = []
        self.sections[section_name].append(content)

    def finalize_report(self, filename):
        with open(filename, "w") as file:
            for section, contents in self.sections.items():
                file.write(f"## {section}\n")
                for content in contents:
                    file.write(content + "\n")
                file.write("\n")


@pytest.fixture(scope="session")
def report():
    report_obj = TestReport()
    yield report_obj
    report_obj.finalize_report("report.md")
