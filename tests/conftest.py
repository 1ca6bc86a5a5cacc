"""Shared fakes for the bootstrap tests."""

import asyncio

import pytest

from bootstrap_settings import BootstrapSettings
from sentinel_discovery import MasterUnreachable


class FakeRedisClient:
    """Stands in for redis.asyncio.Redis"""

    def __init__(self, reply=None, error=None, info_error=None, hang=False):
        self.reply = reply
        self.error = error
        self.info_error = info_error
        self.hang = hang
        self.commands = []
        self.closed = False

    async def _maybe_hang(self):
        if self.hang:
            await asyncio.sleep(60)

    async def execute_command(self, *args):
        self.commands.append(args)
        await self._maybe_hang()
        if self.error:
            raise self.error
        return self.reply

    async def info(self):
        self.commands.append(("INFO",))
        await self._maybe_hang()
        if self.info_error:
            raise self.info_error
        return {"role": "master"}

    async def aclose(self):
        self.closed = True


class ScriptedDiscovery:
    """Discovery double answering from a script; the last answer repeats"""

    endpoint = "sentinel:26379"

    def __init__(self, answers, probes=None):
        self.answers = list(answers)
        self.probe_results = list(probes or [])
        self.queries = 0
        self.probed = []

    async def query_master(self, timeout=10.0):
        answer = self.answers[min(self.queries, len(self.answers) - 1)]
        self.queries += 1
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def probe_master(self, location, timeout=10.0):
        self.probed.append(location)
        reachable = self.probe_results.pop(0) if self.probe_results else True
        if not reachable:
            raise MasterUnreachable(f"Connecting to master at {location} failed")


class SleepRecorder:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class HandoffRecorder:
    def __init__(self):
        self.commands = []

    def __call__(self, argv):
        self.commands.append(list(argv))


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def handoff():
    return HandoffRecorder()


@pytest.fixture
def make_settings(tmp_path):
    def _make(**env):
        base = {
            "REDIS_SENTINEL_SERVICE_HOST": "sentinel",
            "REDIS_SENTINEL_SERVICE_PORT": "26379",
            "POD_NAME": "redis-0",
            "POD_IP": "10.0.0.250",
            "CONFIG_DIR": str(tmp_path / "config"),
            "REDIS_DATA_DIR": str(tmp_path / "redis-data"),
            "REDIS_MASTER_CONFIG": str(tmp_path / "redis-master" / "redis.conf"),
            "REDIS_SLAVE_CONFIG": str(tmp_path / "redis-slave" / "redis.conf"),
            "REDIS_SENTINEL_CONFIG": str(tmp_path / "sentinel" / "sentinel.conf"),
        }
        base.update(env)
        return BootstrapSettings.from_env(base)

    return _make
