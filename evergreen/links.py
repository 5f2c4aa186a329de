"""Cross-references: [[Exact Title]] markers embedded in note content.

A reference resolves by case- and whitespace-normalized match against another
note's title in the same session. Dangling references stay as literal text.
"""
import re
from dataclasses import dataclass
from typing import Iterable

from evergreen.session import Note

LINK_RE = re.compile(r"\[\[(.*?)\]\]")


@dataclass(frozen=True)
class Segment:
    """A run of note content: plain text, or a link resolved to target_id."""

    text: str
    target_id: str | None = None

    @property
    def is_link(self) -> bool:
        return self.target_id is not None


def normalize_title(title: str) -> str:
    return " ".join(title.split()).lower()


def find_references(content: str) -> list[str]:
    return [m.group(1) for m in LINK_RE.finditer(content)]


def title_index(notes: Iterable[Note]) -> dict[str, Note]:
    """Normalized title -> note. On duplicate normalized titles the first note wins."""
    index: dict[str, Note] = {}
    for note in notes:
        index.setdefault(normalize_title(note.title), note)
    return index


def resolve_reference(title: str, notes: Iterable[Note]) -> Note | None:
    return title_index(notes).get(normalize_title(title))


def split_content(content: str, notes: Iterable[Note]) -> list[Segment]:
    """Split content into text and link segments for a renderer."""
    index = title_index(notes)
    segments: list[Segment] = []
    pos = 0
    for m in LINK_RE.finditer(content):
        if m.start() > pos:
            segments.append(Segment(content[pos : m.start()]))
        target = index.get(normalize_title(m.group(1)))
        if target is None:
            segments.append(Segment(m.group(0)))
        else:
            segments.append(Segment(m.group(1), target_id=target.id))
        pos = m.end()
    if pos < len(content):
        segments.append(Segment(content[pos:]))
    return segments


def build_graph(notes: list[Note]) -> tuple[list[dict], list[tuple[str, str]]]:
    """Nodes and directed edges for a graph view. Self-links and dangling references are dropped."""
    index = title_index(notes)
    nodes = [{"id": note.id, "title": note.title} for note in notes]
    edges: list[tuple[str, str]] = []
    seen = set()
    for note in notes:
        for ref in find_references(note.content):
            target = index.get(normalize_title(ref))
            if target is None or target.id == note.id:
                continue
            edge = (note.id, target.id)
            if edge not in seen:
                seen.add(edge)
                edges.append(edge)
    return nodes, edges


def strip_links(content: str) -> str:
    """Unwrap every [[...]] marker to its plain text."""
    return LINK_RE.sub(lambda m: m.group(1), content)


def sanitize_links(content: str, targets: Iterable[str], exclude: str | None = None) -> str:
    """Keep only links to targets, spelled exactly as the target title.

    Links whose normalized text matches a target are rewritten to the exact
    title; links to unknown titles, or to ``exclude`` (the note's own title),
    are unwrapped to plain text.
    """
    allowed = {normalize_title(t): t for t in targets}
    if exclude is not None:
        allowed.pop(normalize_title(exclude), None)

    def _fix(m: re.Match) -> str:
        exact = allowed.get(normalize_title(m.group(1)))
        return f"[[{exact}]]" if exact is not None else m.group(1)

    return LINK_RE.sub(_fix, content)
