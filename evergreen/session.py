"""Session data model: the persisted unit of pipeline progress and its final output.

The checkpoint is implicit in the list lengths. ``Session.phase`` derives the
state-machine position from the fields alone; nothing else is stored.
"""
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Status(StrEnum):
    IDLE = "idle"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class Phase(StrEnum):
    EXTRACT = "extract"
    GENERATE = "generate"
    INTERLINK = "interlink"
    DONE = "done"


class _Model(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, validate_assignment=True)


class NoteBody(_Model):
    """Phase-2 reply: the body of one note, before it gets a title or links."""

    content: str
    quotes: list[str] = Field(default_factory=list)
    source: str = ""


class UnlinkedNote(NoteBody):
    title: str


class Note(UnlinkedNote):
    id: str


class Session(_Model):
    status: Status = Status.IDLE
    stage: str = ""
    input_text: str = ""
    titles: list[str] = Field(default_factory=list)
    unlinked_notes: list[UnlinkedNote] = Field(default_factory=list)
    final_notes: list[Note] = Field(default_factory=list)
    error: str = ""

    @field_validator("error", "stage", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return "" if value is None else value

    @property
    def phase(self) -> Phase:
        if not self.titles:
            return Phase.EXTRACT
        if len(self.unlinked_notes) < len(self.titles):
            return Phase.GENERATE
        if not self.final_notes or len(self.final_notes) < len(self.unlinked_notes):
            return Phase.INTERLINK
        return Phase.DONE

    @property
    def is_complete(self) -> bool:
        return self.phase is Phase.DONE

    def apply(self, update: dict) -> None:
        """Merge a partial progress update (camelCase or field names) into this session."""
        for key, value in update.items():
            name = _FIELD_BY_KEY.get(key)
            if name is None:
                raise ValueError(f"Unknown session field: {key}")
            setattr(self, name, value)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


_FIELD_BY_KEY = {
    **{name: name for name in Session.model_fields},
    **{field.alias: name for name, field in Session.model_fields.items() if field.alias},
}


def display_notes(session: Session) -> list[Note]:
    """Notes to show right now: final notes once completed, else unlinked notes under temporary ids."""
    if session.status == Status.COMPLETED and session.final_notes:
        return list(session.final_notes)
    return [
        Note(id=f"note_temp_{i}", **note.model_dump())
        for i, note in enumerate(session.unlinked_notes)
    ]


def note_id(index: int) -> str:
    return f"note_{index:03d}"
