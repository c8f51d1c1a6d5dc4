import os
import shutil
import socket
import subprocess
import sys
import tempfile
from concurrent.futures import Future
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

import services
from models import ResultList, Video
from navigation import Navigator
from services import PlaybackSession, SearchPipeline


class FakeProcess:
    """Stands in for subprocess.Popen's return value."""
    _next_pid = 4000

    def __init__(self, args, events=None, **kwargs):
        FakeProcess._next_pid += 1
        self.pid = FakeProcess._next_pid
        self.args = args
        self.kwargs = kwargs
        self.returncode = None
        self.signals = []
        self.ignore_terminate = False
        self.events = events if events is not None else []

    def poll(self):
        return self.returncode

    def terminate(self):
        self.signals.append("TERM")
        self.events.append(("terminate", self.pid))
        if not self.ignore_terminate:
            self.returncode = -15

    def kill(self):
        self.signals.append("KILL")
        self.events.append(("kill", self.pid))
        self.returncode = -9

    def wait(self, timeout=None):
        if self.returncode is None:
            raise subprocess.TimeoutExpired(self.args, timeout)
        self.events.append(("wait", self.pid))
        return self.returncode


class FakeSearchProcess:
    """A finished search command: communicate() hands back canned output."""
    _next_pid = 6000

    def __init__(self, args, output="", error_output="", exit_status=0, **kwargs):
        FakeSearchProcess._next_pid += 1
        self.pid = FakeSearchProcess._next_pid
        self.args = args
        self.kwargs = kwargs
        self.output = output
        self.error_output = error_output
        self.exit_status = exit_status
        self.returncode = None
        self.signals = []

    def communicate(self, input=None, timeout=None):
        if self.returncode is None:
            self.returncode = self.exit_status
        return self.output, self.error_output

    def terminate(self):
        self.signals.append("TERM")
        self.returncode = -15

    def poll(self):
        return self.returncode


def fake_search_popen(stdout="", stderr="", returncode=0, calls=None):
    """A Popen replacement that only ever runs the search command."""
    def popen(command, **kwargs):
        process = FakeSearchProcess(command, output=stdout, error_output=stderr, exit_status=returncode, **kwargs)
        if calls is not None:
            calls.append(process)
        return process
    return popen


class ManualExecutor:
    """Executor whose jobs only run when a test says so."""

    def __init__(self):
        self.jobs = []
        self.shut_down = False

    def submit(self, fn, *args, **kwargs):
        future = Future()
        self.jobs.append((future, fn, args, kwargs))
        return future

    def run(self, index=0):
        future, fn, args, kwargs = self.jobs[index]
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)

    def shutdown(self, wait=True, cancel_futures=False):
        self.shut_down = True


class FakeCatalog:
    """Catalog client returning scripted (videos, error) outcomes per query."""

    def __init__(self, outcomes=None):
        self.outcomes = outcomes or {}
        self.queries = []
        self.closed = False

    def search(self, query):
        self.queries.append(query)
        outcome = self.outcomes.get(query, ([], None))
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self):
        self.closed = True


class RecordingConnection:
    """Socket stand-in that records what was written."""

    def __init__(self, fail=False):
        self.sent = []
        self.closed = False
        self.fail = fail

    def sendall(self, data):
        if self.fail:
            raise BrokenPipeError("peer went away")
        self.sent.append(data)

    def close(self):
        self.closed = True


@pytest.fixture
def socket_path():
    """A control-socket path short enough for AF_UNIX."""
    tmpdir = tempfile.mkdtemp(prefix="ytq", dir="/tmp")
    yield os.path.join(tmpdir, "mpv.sock")
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def control_server(socket_path):
    """A listening socket standing in for the player's IPC server."""
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(socket_path)
    server.listen(4)
    server.settimeout(1.0)
    yield server
    server.close()


@pytest.fixture
def events():
    return []


@pytest.fixture
def spawned(monkeypatch, events, socket_path):
    """Replaces Popen with FakeProcess and records every spawn."""
    processes = []

    def factory(args, **kwargs):
        events.append(("spawn", tuple(args), os.path.exists(socket_path)))
        process = FakeProcess(args, events=events, **kwargs)
        processes.append(process)
        return process

    monkeypatch.setattr(services.subprocess, "Popen", factory)
    return processes


@pytest.fixture
def session(socket_path):
    return PlaybackSession("mpv", socket_path, connect_attempts=3, volume_step=5,
                           command_timeout=0.5, terminate_timeout=0.1)


@pytest.fixture
def executor():
    return ManualExecutor()


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def pipeline(catalog, executor):
    return SearchPipeline(catalog, ResultList(), executor=executor)


@pytest.fixture
def clipboard():
    return []


@pytest.fixture
def navigator(pipeline, session, spawned, clipboard):
    return Navigator(pipeline, session, clipboard=clipboard.append)


@pytest.fixture
def videos():
    return [
        Video(id="aaaaaaaaaaa", title="Lofi Beats", uploader="Chill Channel"),
        Video(id="bbbbbbbbbbb", title="Study Mix", uploader="Focus"),
        Video(id="ccccccccccc", title="Rainy Jazz", uploader=""),
    ]
