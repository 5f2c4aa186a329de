"""Phase 3: weave [[Title]] cross-references into finished note bodies.

Two strategies:
    batch    : one call over all notes, returns every note's revised content.
    per-note : one call per note with the other titles as permissible targets.

Both only ever keep links to titles in the target list, spelled exactly, and
never to the note itself. Returning content unchanged is valid.
"""
import json
import logging

from pydantic import BaseModel

from evergreen.errors import InvalidJsonError
from evergreen.gateway import ModelGateway
from evergreen.links import normalize_title, sanitize_links
from evergreen.normalizer import parse
from evergreen.session import Note, UnlinkedNote, note_id
from evergreen.pipeline.prompts import INTERLINK_NOTES_PROMPT, INTERLINK_SINGLE_NOTE_PROMPT

logger = logging.getLogger(__name__)


class LinkedContent(BaseModel):
    id: str | None = None
    content: str


async def interlink_batch(gateway: ModelGateway, notes: list[UnlinkedNote]) -> list[Note]:
    """Interlink all notes in one call. Ids are assigned here, by position.

    Only content is taken from the reply; title, quotes and source come from the
    unlinked notes. Replies are matched by id when every id comes back exactly
    once, otherwise by position when the counts agree.

    Raises:
        InvalidJsonError: the reply cannot be matched one-to-one with the notes.
    """
    ids = [note_id(i) for i in range(len(notes))]
    payload = [{"id": ids[i], **note.model_dump()} for i, note in enumerate(notes)]
    request = gateway.request(
        [
            {"role": "system", "content": INTERLINK_NOTES_PROMPT},
            {"role": "user", "content": json.dumps(payload, indent=2)},
        ],
        force_json=False,
    )
    reply = await gateway.send(request)
    linked = parse(reply.text, reply.finish_reason, list[LinkedContent])

    by_id = {item.id: item.content for item in linked if item.id}
    if len(linked) == len(notes) and set(by_id) == set(ids):
        contents = [by_id[i] for i in ids]
    elif len(linked) == len(notes):
        contents = [item.content for item in linked]
    else:
        raise InvalidJsonError(
            f"Interlinking returned {len(linked)} notes, expected {len(notes)}",
            reply.text,
        )

    titles = [note.title for note in notes]
    return [
        Note(
            id=ids[i],
            title=note.title,
            content=sanitize_links(contents[i], titles, exclude=note.title),
            quotes=note.quotes,
            source=note.source,
        )
        for i, note in enumerate(notes)
    ]


async def interlink_note(gateway: ModelGateway, note: UnlinkedNote, targets: list[str]) -> str:
    """Return note's content revised with links to targets (its own title excluded)."""
    own = normalize_title(note.title)
    others = [t for t in targets if normalize_title(t) != own]
    if not others:
        return note.content
    request = gateway.request(
        [
            {"role": "system", "content": INTERLINK_SINGLE_NOTE_PROMPT},
            {"role": "user", "content": json.dumps({"content": note.content, "link_targets": others})},
        ]
    )
    reply = await gateway.send(request)
    revised = parse(reply.text, reply.finish_reason, LinkedContent).content
    return sanitize_links(revised, others)
