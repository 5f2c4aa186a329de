"""Phase 1: extract the book's core concepts as an ordered list of declarative titles."""
import logging

from evergreen.gateway import ModelGateway
from evergreen.normalizer import parse
from evergreen.pipeline.prompts import EXTRACT_CONCEPTS_PROMPT

logger = logging.getLogger(__name__)


async def extract_concepts(gateway: ModelGateway, book_text: str) -> list[str]:
    """Return concept titles in the order the model gave them. Blank entries are dropped."""
    # JSON mode only admits objects, and this reply is a top-level array
    request = gateway.request(
        [
            {"role": "system", "content": EXTRACT_CONCEPTS_PROMPT},
            {"role": "user", "content": book_text},
        ],
        force_json=False,
    )
    reply = await gateway.send(request)
    titles = parse(reply.text, reply.finish_reason, list[str])
    titles = [t.strip() for t in titles if t.strip()]
    logger.info("Extracted %d concepts", len(titles))
    return titles
