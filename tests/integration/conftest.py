"""Shared config for integration tests: path, env, and skip conditions."""
import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", ".."))

from dotenv import load_dotenv

load_dotenv(os.path.join(os.path.dirname(__file__), "..", "..", ".env"))


def _has_llm_key():
    return bool(os.environ.get("OPENAI_API_KEY") or os.environ.get("ANTHROPIC_API_KEY"))


requires_llm = pytest.mark.skipif(
    not _has_llm_key(),
    reason="Set OPENAI_API_KEY or ANTHROPIC_API_KEY to run integration tests",
)


@pytest.fixture
def live_settings(tmp_path):
    """Settings for whichever provider has a key, with a throwaway session file."""
    from evergreen.config import Settings

    environ = dict(os.environ)
    environ["LLM_PROVIDER"] = "openai" if environ.get("OPENAI_API_KEY") else "anthropic"
    environ["EVERGREEN_SESSION_PATH"] = str(tmp_path / "session.json")
    environ["NOTE_DELAY"] = "0.5"
    return Settings.from_env(environ)
