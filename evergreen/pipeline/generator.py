"""Phase 2: write the body of one note for one concept title, without cross-references."""
import json
import logging

from evergreen.gateway import ModelGateway
from evergreen.links import strip_links
from evergreen.normalizer import parse
from evergreen.session import NoteBody
from evergreen.pipeline.prompts import GENERATE_NOTE_PROMPT

logger = logging.getLogger(__name__)

MAX_QUOTES = 3


async def generate_note_body(gateway: ModelGateway, book_text: str, title: str) -> NoteBody:
    """Generate {content, quotes, source} for title.

    Links are woven in by a later phase, once every title exists, so any [[...]]
    the model emits here is unwrapped to plain text. At most three quotes are kept.
    """
    request = gateway.request(
        [
            {"role": "system", "content": GENERATE_NOTE_PROMPT},
            {"role": "user", "content": json.dumps({"text": book_text, "concept": title})},
        ]
    )
    reply = await gateway.send(request)
    body = parse(reply.text, reply.finish_reason, NoteBody)
    content = strip_links(body.content)
    if content != body.content:
        logger.warning("Removed premature links from note %r", title)
    quotes = [q.strip() for q in body.quotes if q.strip()]
    return NoteBody(content=content.strip(), quotes=quotes[:MAX_QUOTES], source=body.source.strip())
