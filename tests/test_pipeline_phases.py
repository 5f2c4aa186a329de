"""Tests for the phase functions: extract_concepts, generate_note_body, interlink_batch, interlink_note."""
import asyncio
import json

import pytest

from evergreen.errors import EmptyResponseError, InvalidJsonError
from evergreen.gateway import FinishReason, RawReply
from evergreen.pipeline import extract_concepts, generate_note_body, interlink_batch, interlink_note
from evergreen.pipeline.prompts import (
    EXTRACT_CONCEPTS_PROMPT,
    GENERATE_NOTE_PROMPT,
    INTERLINK_NOTES_PROMPT,
    INTERLINK_SINGLE_NOTE_PROMPT,
)
from evergreen.session import NoteBody, UnlinkedNote


def _unlinked(title, content=None):
    return UnlinkedNote(title=title, content=content or f"About {title}.", quotes=[f"{title} quote"], source="Ch. 1")


# ── extract_concepts ─────────────────────────────────────────────────────────

def test_extract_concepts_preserves_model_order(scripted):
    gateway, adapter = scripted(['["Habits compound", "Identity drives habits"]'])
    titles = asyncio.run(extract_concepts(gateway, "Book text"))
    assert titles == ["Habits compound", "Identity drives habits"]
    request = adapter.requests[0]
    assert request.messages[0] == {"role": "system", "content": EXTRACT_CONCEPTS_PROMPT}
    assert request.messages[1] == {"role": "user", "content": "Book text"}
    assert request.options.force_json is False


def test_extract_concepts_drops_blank_titles(scripted):
    gateway, _ = scripted(['["  A  ", "", "   ", "B"]'])
    assert asyncio.run(extract_concepts(gateway, "x")) == ["A", "B"]


def test_extract_concepts_rejects_non_array(scripted):
    gateway, _ = scripted(['{"titles": ["A"]}'])
    with pytest.raises(InvalidJsonError):
        asyncio.run(extract_concepts(gateway, "x"))


# ── generate_note_body ───────────────────────────────────────────────────────

def test_generate_note_body_sends_text_and_concept(scripted):
    reply = json.dumps({"content": "You act now.", "quotes": ["q1"], "source": "Ch. 2"})
    gateway, adapter = scripted([reply])
    body = asyncio.run(generate_note_body(gateway, "Full book", "Action beats planning"))
    assert body == NoteBody(content="You act now.", quotes=["q1"], source="Ch. 2")
    request = adapter.requests[0]
    assert request.messages[0]["content"] == GENERATE_NOTE_PROMPT
    assert json.loads(request.messages[1]["content"]) == {"text": "Full book", "concept": "Action beats planning"}
    assert request.options.force_json is True


def test_generate_note_body_unwraps_premature_links_and_caps_quotes(scripted):
    reply = json.dumps({"content": "See [[Other Idea]].", "quotes": ["a", "b", " ", "c", "d"], "source": " Ch. 3 "})
    gateway, _ = scripted([reply])
    body = asyncio.run(generate_note_body(gateway, "book", "T"))
    assert body.content == "See Other Idea."
    assert body.quotes == ["a", "b", "c"]
    assert body.source == "Ch. 3"


def test_generate_note_body_truncated_reply_is_reported(scripted):
    gateway, _ = scripted([RawReply(text="", finish_reason=FinishReason.LENGTH)])
    with pytest.raises(EmptyResponseError) as exc_info:
        asyncio.run(generate_note_body(gateway, "book", "T"))
    assert exc_info.value.finish_reason is FinishReason.LENGTH


# ── interlink_batch ──────────────────────────────────────────────────────────

def test_interlink_batch_assigns_ids_and_keeps_note_fields(scripted):
    notes = [_unlinked("X"), _unlinked("Y")]
    reply = json.dumps(
        [
            {"id": "note_000", "title": "renamed", "content": "X relates to [[y]].", "quotes": []},
            {"id": "note_001", "content": "Y stands alone."},
        ]
    )
    gateway, adapter = scripted([reply])
    final = asyncio.run(interlink_batch(gateway, notes))
    assert [n.id for n in final] == ["note_000", "note_001"]
    assert [n.title for n in final] == ["X", "Y"]
    assert final[0].content == "X relates to [[Y]]."
    assert final[0].quotes == ["X quote"]
    assert final[1].content == "Y stands alone."
    sent = json.loads(adapter.requests[0].messages[1]["content"])
    assert [n["id"] for n in sent] == ["note_000", "note_001"]
    assert adapter.requests[0].messages[0]["content"] == INTERLINK_NOTES_PROMPT


def test_interlink_batch_matches_reordered_reply_by_id(scripted):
    notes = [_unlinked("X"), _unlinked("Y")]
    reply = json.dumps([{"id": "note_001", "content": "why"}, {"id": "note_000", "content": "ex"}])
    gateway, _ = scripted([reply])
    final = asyncio.run(interlink_batch(gateway, notes))
    assert [n.content for n in final] == ["ex", "why"]


def test_interlink_batch_ignores_model_ids_when_unmatched(scripted):
    notes = [_unlinked("X"), _unlinked("Y")]
    reply = json.dumps([{"id": "abc", "content": "ex"}, {"id": "abc", "content": "why"}])
    gateway, _ = scripted([reply])
    final = asyncio.run(interlink_batch(gateway, notes))
    assert [(n.id, n.content) for n in final] == [("note_000", "ex"), ("note_001", "why")]


def test_interlink_batch_rejects_missing_notes(scripted):
    gateway, _ = scripted([json.dumps([{"id": "note_000", "content": "only one"}])])
    with pytest.raises(InvalidJsonError, match="expected 2"):
        asyncio.run(interlink_batch(gateway, [_unlinked("X"), _unlinked("Y")]))


def test_interlink_batch_unwraps_self_and_unknown_links(scripted):
    reply = json.dumps([{"id": "note_000", "content": "[[X]] and [[Z]]"}, {"id": "note_001", "content": "y"}])
    gateway, _ = scripted([reply])
    final = asyncio.run(interlink_batch(gateway, [_unlinked("X"), _unlinked("Y")]))
    assert final[0].content == "X and Z"


# ── interlink_note ───────────────────────────────────────────────────────────

def test_interlink_note_offers_other_titles_only(scripted):
    gateway, adapter = scripted([json.dumps({"content": "Links to [[Y]] and [[Nowhere]]."})])
    content = asyncio.run(interlink_note(gateway, _unlinked("X"), ["X", "Y"]))
    assert content == "Links to [[Y]] and Nowhere."
    request = adapter.requests[0]
    assert request.messages[0]["content"] == INTERLINK_SINGLE_NOTE_PROMPT
    assert json.loads(request.messages[1]["content"]) == {"content": "About X.", "link_targets": ["Y"]}


def test_interlink_note_without_other_titles_makes_no_call(scripted):
    gateway, adapter = scripted([])
    assert asyncio.run(interlink_note(gateway, _unlinked("X"), ["X"])) == "About X."
    assert adapter.requests == []


def test_interlink_note_accepts_unchanged_content(scripted):
    gateway, _ = scripted([json.dumps({"content": "About X."})])
    assert asyncio.run(interlink_note(gateway, _unlinked("X"), ["X", "Y"])) == "About X."
