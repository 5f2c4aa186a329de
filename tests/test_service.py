"""Tests for evergreen.service NoteService against an in-memory store."""
import asyncio
import zipfile

import pytest

from evergreen.config import Settings
from evergreen.errors import ConfigError, FatalError, PipelineError, SessionError
from evergreen.pipeline import orchestrator
from evergreen.service import NoteService
from evergreen.session import NoteBody, Session, Status
from evergreen.store import JsonFileStore, MemoryStore


@pytest.fixture
def fake_phases(monkeypatch):
    """Patch the phase functions; returns a dict of titles to fail on during generation."""
    failures = {}

    async def fake_extract(gateway, text):
        return ["X", "Y", "Z"]

    async def fake_generate(gateway, text, title):
        exc = failures.pop(title, None)
        if exc is not None:
            raise exc
        return NoteBody(content=f"{title} links to [[X]].", quotes=["q"], source="Ch. 1")

    async def fake_batch(gateway, notes):
        from evergreen.session import Note, note_id

        return [Note(id=note_id(i), **n.model_dump()) for i, n in enumerate(notes)]

    monkeypatch.setattr(orchestrator, "extract_concepts", fake_extract)
    monkeypatch.setattr(orchestrator, "generate_note_body", fake_generate)
    monkeypatch.setattr(orchestrator, "interlink_batch", fake_batch)
    return failures


def _service(store, sleeps, **kwargs):
    return NoteService(store, object(), sleep=sleeps, **kwargs)


def test_start_persists_every_update(fake_phases, sleeps):
    store = MemoryStore()
    seen = []
    service = _service(store, sleeps, listener=seen.append)
    notes = asyncio.run(service.start("book text"))
    assert [n.id for n in notes] == ["note_000", "note_001", "note_002"]
    stored = store.load()
    assert stored.status == Status.COMPLETED
    assert stored.final_notes == notes
    # initial save plus one save per progress update
    assert store.saves == len(seen) + 1


def test_start_rejects_blank_text(sleeps):
    service = _service(MemoryStore(), sleeps)
    with pytest.raises(SessionError, match="book content"):
        asyncio.run(service.start("   "))


def test_failure_is_persisted_and_resume_continues(fake_phases, sleeps):
    fake_phases["Y"] = FatalError("overloaded", status=503)
    store = MemoryStore()
    service = _service(store, sleeps)
    with pytest.raises(PipelineError):
        asyncio.run(service.start("book text"))
    stored = store.load()
    assert stored.status == Status.ERROR
    assert stored.error == "API Error (503): overloaded"
    assert [n.title for n in stored.unlinked_notes] == ["X"]

    notes = asyncio.run(service.resume())
    assert [n.title for n in notes] == ["X", "Y", "Z"]
    assert store.load().error == ""


def test_resume_without_session_is_an_error(sleeps):
    with pytest.raises(SessionError, match="no session to resume"):
        asyncio.run(_service(MemoryStore(), sleeps).resume())


def test_run_without_gateway_is_a_config_error(sleeps):
    service = NoteService(MemoryStore(Session(input_text="book")), sleep=sleeps)
    with pytest.raises(ConfigError):
        asyncio.run(service.resume())


def test_load_defaults_to_a_fresh_session():
    assert NoteService(MemoryStore()).load() == Session()


def test_export_requires_completed_session(tmp_path):
    service = NoteService(MemoryStore(Session(input_text="book", status=Status.PROCESSING)))
    with pytest.raises(SessionError, match="Nothing to export"):
        service.export(tmp_path / "out.zip")


def test_export_writes_archive_after_completion(fake_phases, sleeps, tmp_path):
    service = _service(MemoryStore(), sleeps)
    asyncio.run(service.start("book text"))
    path = service.export(tmp_path / "out.zip")
    with zipfile.ZipFile(path) as archive:
        assert sorted(archive.namelist()) == ["X.md", "Y.md", "Z.md"]


def test_reset_deletes_the_session():
    store = MemoryStore(Session(input_text="book"))
    NoteService(store).reset()
    assert store.load() is None


def test_from_settings_uses_session_path_and_strategy(tmp_path):
    settings = Settings(provider="openai", api_key="", session_path=tmp_path / "s.json", interlink_strategy="per_note")
    service = NoteService.from_settings(settings, with_gateway=False)
    assert isinstance(service.store, JsonFileStore)
    assert service.store.path == tmp_path / "s.json"
    assert service.strategy == "per_note"
    assert service.gateway is None
