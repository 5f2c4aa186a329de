"""Orchestrates the resumable pipeline: extract concepts → generate notes → interlink.

Remaining work is computed from the session's fields alone, so running again on
an errored or interrupted session picks up exactly where it stopped and never
repeats a phase whose output is already recorded.
"""
import asyncio
import logging
from typing import Awaitable, Callable

from evergreen.errors import EvergreenError, PipelineError
from evergreen.gateway import ModelGateway
from evergreen.links import normalize_title
from evergreen.session import Note, Session, Status, UnlinkedNote, note_id
from evergreen.pipeline.extractor import extract_concepts
from evergreen.pipeline.generator import generate_note_body
from evergreen.pipeline.interlinker import interlink_batch, interlink_note

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[dict], None]

STAGE_EXTRACT = "Phase 1/3: Extracting core concepts..."
STAGE_INTERLINK = "Phase 3/3: Weaving the knowledge graph..."
DEFAULT_NOTE_DELAY = 1.5


def unique_titles(titles: list[str]) -> list[str]:
    """Suffix repeated titles (normalized comparison) with " (2)", " (3)", ... so links stay unambiguous."""
    result: list[str] = []
    taken: set[str] = set()
    for title in titles:
        candidate, n = title, 1
        while normalize_title(candidate) in taken:
            n += 1
            candidate = f"{title} ({n})"
        if candidate != title:
            logger.warning("Duplicate concept title %r renamed to %r", title, candidate)
        taken.add(normalize_title(candidate))
        result.append(candidate)
    return result


def _short(title: str, limit: int = 40) -> str:
    return title if len(title) <= limit else title[:limit] + "..."


def _dump(notes) -> list[dict]:
    return [n.model_dump(mode="json", by_alias=True) for n in notes]


async def run(
    session: Session,
    gateway: ModelGateway,
    on_progress: ProgressCallback | None = None,
    *,
    strategy: str = "batch",
    note_delay: float = DEFAULT_NOTE_DELAY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[Note]:
    """Run whatever remains of the pipeline for session and return the final notes.

    session is not mutated; every change is emitted through on_progress as a
    partial update (camelCase keys, JSON-ready values) for the caller to merge
    and persist.

    Raises:
        PipelineError: any failure; the same message is emitted as the session error.
    """
    state = session.model_copy(deep=True)

    def emit(update: dict) -> None:
        state.apply(update)
        if on_progress is not None:
            on_progress(update)

    if state.is_complete:
        if state.status != Status.COMPLETED:
            emit({"status": Status.COMPLETED.value, "stage": "", "error": ""})
        return list(state.final_notes)

    try:
        emit({"status": Status.PROCESSING.value, "error": ""})

        if not state.titles:
            emit({"stage": STAGE_EXTRACT})
            titles = unique_titles(await extract_concepts(gateway, state.input_text))
            if not titles:
                raise PipelineError("No concepts could be extracted from the text.")
            emit({"titles": titles})

        await _generate_notes(state, gateway, emit, note_delay, sleep)

        # a partial finalNotes list only ever comes from the per-note strategy
        if strategy == "per_note" or state.final_notes:
            await _interlink_per_note(state, gateway, emit, note_delay, sleep)
        else:
            emit({"stage": STAGE_INTERLINK})
            emit({"finalNotes": _dump(await interlink_batch(gateway, state.unlinked_notes))})

        emit({"status": Status.COMPLETED.value, "stage": "", "error": ""})
        logger.info("Pipeline completed with %d notes", len(state.final_notes))
        return list(state.final_notes)

    except Exception as exc:
        if isinstance(exc, EvergreenError):
            message = str(exc) or type(exc).__name__
        else:
            message = f"An unexpected error occurred while processing the book: {exc}"
        logger.exception("Pipeline halted during %s phase: %s", state.phase.value, message)
        try:
            emit({"status": Status.ERROR.value, "error": message})
        except Exception:
            logger.exception("Could not record the pipeline error")
        raise PipelineError(message) from exc


async def _generate_notes(state: Session, gateway, emit, note_delay, sleep) -> None:
    total = len(state.titles)
    start = len(state.unlinked_notes)
    if start:
        logger.info("Resuming note generation at %d/%d", start + 1, total)
    for i in range(start, total):
        title = state.titles[i]
        emit({"stage": f'Phase 2/3: Generating note {i + 1}/{total}: "{_short(title)}"'})
        body = await generate_note_body(gateway, state.input_text, title)
        note = UnlinkedNote(title=title, **body.model_dump())
        emit({"unlinkedNotes": _dump([*state.unlinked_notes, note])})
        logger.info("Generated note %d/%d: %s", i + 1, total, title)
        if i < total - 1:
            await sleep(note_delay)


async def _interlink_per_note(state: Session, gateway, emit, note_delay, sleep) -> None:
    notes = state.unlinked_notes
    titles = [n.title for n in notes]
    total = len(notes)
    for i in range(len(state.final_notes), total):
        note = notes[i]
        emit({"stage": f'Phase 3/3: Linking note {i + 1}/{total}: "{_short(note.title)}"'})
        content = await interlink_note(gateway, note, titles)
        linked = Note(id=note_id(i), title=note.title, content=content, quotes=note.quotes, source=note.source)
        emit({"finalNotes": _dump([*state.final_notes, linked])})
        if i < total - 1:
            await sleep(note_delay)
