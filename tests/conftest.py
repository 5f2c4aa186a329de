"""Shared fixtures: a scripted provider adapter and a recording sleep."""
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from evergreen.gateway import ModelGateway, RawReply  # noqa: E402


class ScriptedAdapter:
    """Adapter that replays a script: str / RawReply are returned, exceptions are raised."""

    def __init__(self, script):
        self.script = list(script)
        self.requests = []

    async def send(self, request):
        self.requests.append(request)
        if not self.script:
            raise AssertionError("ScriptedAdapter ran out of replies")
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, str):
            return RawReply(text=item)
        return item


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def scripted(sleeps):
    """Factory: scripted(replies, **gateway_kwargs) -> (gateway, adapter)."""

    def _make(replies, **kwargs):
        adapter = ScriptedAdapter(replies)
        kwargs.setdefault("sleep", sleeps)
        return ModelGateway(adapter, "test-model", **kwargs), adapter

    return _make


@pytest.fixture(autouse=True)
def _reset_env(monkeypatch):
    for name in ("LLM_PROVIDER", "INTERLINK_STRATEGY", "EVERGREEN_SESSION_PATH", "MAX_RETRIES", "NOTE_DELAY"):
        monkeypatch.delenv(name, raising=False)
