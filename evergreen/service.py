"""Binds the orchestrator to a session store: every progress event is merged and persisted."""
import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable

from evergreen.config import Settings
from evergreen.errors import ConfigError, SessionError
from evergreen.export import DEFAULT_ARCHIVE, export_zip
from evergreen.gateway import ModelGateway, build_gateway
from evergreen.pipeline import orchestrator
from evergreen.session import Note, Session, Status
from evergreen.store import JsonFileStore, SessionStore

logger = logging.getLogger(__name__)


class NoteService:
    """Start, resume, inspect, export and reset the stored session.

    Args:
        store: Where the session snapshot lives.
        gateway: Model gateway; only start() and resume() need one.
        strategy: Interlink strategy, "batch" or "per_note".
        note_delay: Seconds between per-note calls.
        listener: Optional extra consumer of progress updates (e.g. a CLI display).
        sleep: Awaitable sleep used for the inter-call delay.
    """

    def __init__(
        self,
        store: SessionStore,
        gateway: ModelGateway | None = None,
        *,
        strategy: str = "batch",
        note_delay: float = orchestrator.DEFAULT_NOTE_DELAY,
        listener: Callable[[dict], None] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.gateway = gateway
        self.strategy = strategy
        self.note_delay = note_delay
        self.listener = listener
        self._sleep = sleep

    @classmethod
    def from_settings(cls, settings: Settings, *, with_gateway: bool = True, **kwargs) -> "NoteService":
        gateway = build_gateway(settings) if with_gateway else None
        return cls(
            JsonFileStore(settings.session_path),
            gateway,
            strategy=settings.interlink_strategy,
            note_delay=settings.note_delay,
            **kwargs,
        )

    def load(self) -> Session:
        return self.store.load() or Session()

    async def start(self, text: str) -> list[Note]:
        """Discard any stored session and process text from scratch."""
        if not text.strip():
            raise SessionError("Please provide the book content first.")
        session = Session(input_text=text)
        self.store.save(session)
        return await self._run(session)

    async def resume(self) -> list[Note]:
        """Continue the stored session from its checkpoint."""
        session = self.store.load()
        if session is None or not session.input_text.strip():
            raise SessionError("There is no session to resume. Start one first.")
        return await self._run(session)

    def reset(self) -> None:
        self.store.delete()
        logger.info("Session deleted")

    def export(self, path: str | Path = DEFAULT_ARCHIVE) -> Path:
        session = self.load()
        if session.status != Status.COMPLETED or not session.final_notes:
            raise SessionError("Nothing to export yet; the session has not completed.")
        return export_zip(session.final_notes, path)

    async def _run(self, session: Session) -> list[Note]:
        if self.gateway is None:
            raise ConfigError("No model gateway configured")

        def on_progress(update: dict) -> None:
            session.apply(update)
            self.store.save(session)
            if self.listener is not None:
                self.listener(update)

        return await orchestrator.run(
            session,
            self.gateway,
            on_progress,
            strategy=self.strategy,
            note_delay=self.note_delay,
            sleep=self._sleep,
        )
