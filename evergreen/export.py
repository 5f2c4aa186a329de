"""Render final notes to Markdown and bundle them into a zip archive."""
import re
import zipfile
from pathlib import Path

from evergreen.session import Note

DEFAULT_ARCHIVE = "Evergreen-Notes.zip"

_UNSAFE_RE = re.compile(r'[/\\?%*:|"<>]')


def sanitize_filename(title: str) -> str:
    return _UNSAFE_RE.sub("-", title)[:200]


def render_markdown(note: Note) -> str:
    if note.quotes:
        quotes = "\n\n".join(f"> {q}" for q in note.quotes)
    else:
        quotes = "_No quotes available._"
    return "\n\n".join(
        [
            f"# {note.title}",
            note.content,
            "---",
            "## Supporting Quotes",
            quotes,
            "---",
            "## Source",
            note.source,
        ]
    ).strip()


def export_zip(notes: list[Note], path: str | Path = DEFAULT_ARCHIVE) -> Path:
    """Write one <title>.md per note into a zip at path. Colliding file names get a numeric suffix."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    used: set[str] = set()
    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for note in notes:
            stem = sanitize_filename(note.title) or note.id
            name, n = f"{stem}.md", 1
            while name.lower() in used:
                n += 1
                name = f"{stem} ({n}).md"
            used.add(name.lower())
            archive.writestr(name, render_markdown(note))
    return path
