import signal

import pytest

import process_handoff
from bootstrap_settings import Role
from process_handoff import build_command, exec_process, exit_status, select_handoff, spawn_and_wait


def test_build_command():
    assert build_command(Role.MASTER, "/redis-master/redis.conf") == [
        "redis-server", "/redis-master/redis.conf", "--protected-mode", "no"
    ]
    assert build_command(Role.SLAVE, "/redis-slave/redis.conf")[0] == "redis-server"
    assert build_command(Role.SENTINEL, "sentinel.conf") == [
        "redis-sentinel", "sentinel.conf", "--protected-mode", "no"
    ]


def test_select_handoff():
    assert select_handoff("exec") is exec_process
    assert select_handoff("spawn") is spawn_and_wait
    assert select_handoff("bogus") is exec_process


def test_exec_process_replaces_image(monkeypatch):
    calls = []
    monkeypatch.setattr(process_handoff.os, "execvp", lambda file, args: calls.append((file, args)))

    exec_process(("redis-server", "redis.conf"))

    assert calls == [("redis-server", ["redis-server", "redis.conf"])]


class FakeChild:
    """Stands in for subprocess.Popen"""

    pid = 4242

    def __init__(self, returncode=0, on_wait=None):
        self.returncode = returncode
        self.on_wait = on_wait
        self.signals = []

    def send_signal(self, signum):
        self.signals.append(signum)

    def wait(self):
        if self.on_wait:
            self.on_wait()
        return self.returncode


def _spawn(monkeypatch, child):
    monkeypatch.setattr(process_handoff.subprocess, "Popen", lambda argv: child)
    with pytest.raises(SystemExit) as exc:
        spawn_and_wait(["redis-server", "redis.conf"])
    return exc.value.code


def test_exit_status():
    assert exit_status(0) == 0
    assert exit_status(3) == 3
    assert exit_status(-signal.SIGTERM) == 143
    assert exit_status(-signal.SIGKILL) == 137


def test_spawn_and_wait_forwards_exit_status(monkeypatch):
    assert _spawn(monkeypatch, FakeChild(returncode=3)) == 3


def test_spawn_and_wait_child_killed_by_signal(monkeypatch):
    assert _spawn(monkeypatch, FakeChild(returncode=-signal.SIGTERM)) == 143


def test_spawn_and_wait_forwards_sigterm(monkeypatch):
    previous = signal.getsignal(signal.SIGTERM)

    def deliver_sigterm():
        signal.getsignal(signal.SIGTERM)(signal.SIGTERM, None)

    child = FakeChild(returncode=-signal.SIGTERM, on_wait=deliver_sigterm)

    assert _spawn(monkeypatch, child) == 143
    assert child.signals == [signal.SIGTERM]
    assert signal.getsignal(signal.SIGTERM) is previous


def test_spawn_and_wait_missing_binary(monkeypatch):
    def missing(argv):
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(process_handoff.subprocess, "Popen", missing)

    with pytest.raises(SystemExit) as exc:
        spawn_and_wait(["redis-server", "redis.conf"])

    assert exc.value.code == 127
