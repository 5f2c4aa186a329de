"""Resumable note pipeline: concept extractor, note generator, interlinker, and orchestrator."""
from .extractor import extract_concepts
from .generator import generate_note_body
from .interlinker import interlink_batch, interlink_note
from .orchestrator import run, unique_titles

__all__ = [
    "extract_concepts",
    "generate_note_body",
    "interlink_batch",
    "interlink_note",
    "run",
    "unique_titles",
]
