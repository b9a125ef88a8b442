import pytest


class FakeProc:
    """Just enough of subprocess.Popen for the launcher: poll/terminate/wait/kill."""

    def __init__(self, returncode=None):
        self.returncode = returncode
        self.terminate_calls = 0
        self.kill_calls = 0

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminate_calls += 1
        self.returncode = -15

    def kill(self):
        self.kill_calls += 1
        self.returncode = -9

    def wait(self, timeout=None):
        return self.returncode


@pytest.fixture
def fake_proc():
    return FakeProc
