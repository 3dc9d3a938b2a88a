"""
Document store and other host collaborators.

The dashboard never touches files directly: it reads and writes notes through
a DocumentStore, asks a LiveEditor for unsaved buffer contents, and asks a
Prompter when a user decision is needed. Every store call is a coroutine so
callers treat each read or write as a suspension point.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .dates import filename_for_period, is_calendar_filename
from .errors import HostFailureError
from .models import Note, Line

logger = logging.getLogger("notedash.store")

CALENDAR_FOLDER = "Calendar"
NOTES_FOLDER = "Notes"


def is_special_folder(filename: str) -> bool:
    """Folders starting with '@' (@Archive, @Templates, @Trash) are never scanned"""
    return any(part.startswith("@") for part in filename.split("/")[:-1])


class LiveEditor:
    """
    The note currently open for editing, if any.

    Holds the editor's filename and its (possibly unsaved) text, which is
    preferred over the stored copy when a caller asks for the live buffer.
    """

    def __init__(self):
        self.filename: Optional[str] = None
        self.text: Optional[str] = None
        self.changed_date: Optional[datetime] = None

    def open(self, filename: str, text: str, changed_date: Optional[datetime] = None) -> None:
        self.filename = filename
        self.text = text
        self.changed_date = changed_date or datetime.now()

    def close(self) -> None:
        self.filename = None
        self.text = None
        self.changed_date = None

    def live_note(self, filename: str) -> Optional[Note]:
        """Parsed live buffer if filename is the open note, else None"""
        if self.filename != filename or self.text is None:
            return None
        return Note.from_text(filename, self.text, self.changed_date)


class DocumentStore(ABC):
    """
    Abstract base class for note storage.

    replace_line, insert_lines and remove_lines edit the live editor buffer
    when the note is open there and write the result back, so unsaved text
    is kept.
    """

    def __init__(self, editor: Optional[LiveEditor] = None):
        self.editor = editor or LiveEditor()

    @abstractmethod
    async def list_notes(self) -> List[Note]:
        """All calendar and project notes"""
        pass

    @abstractmethod
    async def _load_note(self, filename: str) -> Optional[Note]:
        """Stored copy of one note, or None if it doesn't exist"""
        pass

    @abstractmethod
    async def save_note(self, filename: str, raw_lines: Sequence[str]) -> Note:
        """
        Replace a note's content, creating it if needed.

        Raises:
            HostFailureError: if the write is rejected
        """
        pass

    async def invalidate(self, filename: str) -> None:
        """Drop any cached copy of a note (no-op for uncached stores)"""
        return None

    async def get_note(self, filename: str, prefer_live: bool = True) -> Optional[Note]:
        """
        Fetch a note by filename.

        Args:
            filename: Store-relative filename
            prefer_live: Use the live editor buffer when this note is open there

        Returns:
            Note or None if it doesn't exist
        """
        if prefer_live:
            live = self.editor.live_note(filename)
            if live is not None:
                return live
        return await self._load_note(filename)

    async def get_calendar_note(self, period_str: str, prefer_live: bool = True) -> Optional[Note]:
        """Fetch the calendar note for a period string such as '2024-05-01' or '2024-W18'"""
        return await self.get_note(filename_for_period(period_str), prefer_live)

    async def find_line(self, filename: str, content: str) -> Optional[Line]:
        """Locate a line by (filename, content) in the stored copy"""
        note = await self.get_note(filename, prefer_live=False)
        if note is None:
            return None
        return note.find_line(content)

    async def notes_changed_since(self, since: datetime) -> List[Note]:
        return [
            n for n in await self.list_notes()
            if n.changed_date is not None and n.changed_date >= since
        ]

    async def replace_line(self, filename: str, line_index: int, raw: str) -> Note:
        note = await self._require(filename)
        raw_lines = note.raw_lines()
        raw_lines[line_index] = raw
        return await self.save_note(filename, raw_lines)

    async def insert_lines(self, filename: str, index: int, raws: Sequence[str]) -> Note:
        note = await self.get_note(filename)
        raw_lines = note.raw_lines() if note else []
        raw_lines[index:index] = list(raws)
        return await self.save_note(filename, raw_lines)

    async def remove_lines(self, filename: str, line_indexes: Sequence[int]) -> Note:
        note = await self._require(filename)
        drop = set(line_indexes)
        raw_lines = [raw for i, raw in enumerate(note.raw_lines()) if i not in drop]
        return await self.save_note(filename, raw_lines)

    async def _require(self, filename: str) -> Note:
        # Edits apply to what the user sees: the live buffer when the note is open
        note = await self.get_note(filename)
        if note is None:
            raise HostFailureError(f"Note '{filename}' disappeared before it could be updated")
        return note

    def _after_write(self, filename: str, raw_lines: Sequence[str]) -> None:
        # Writes land in the editor too, so the live buffer never goes stale
        if self.editor.filename == filename:
            self.editor.text = "\n".join(raw_lines) + "\n"
            self.editor.changed_date = datetime.now()


class FileDocumentStore(DocumentStore):
    """
    Notes kept as markdown files.

    Calendar notes live in <root>/Calendar/, project notes (with folders)
    in <root>/Notes/. Parsed notes are cached until the file's mtime changes.
    """

    def __init__(self, root: Path, editor: Optional[LiveEditor] = None):
        super().__init__(editor)
        self.root = Path(root)
        self._cache: Dict[str, tuple] = {}

    def _path_for(self, filename: str) -> Path:
        folder = CALENDAR_FOLDER if is_calendar_filename(filename) else NOTES_FOLDER
        return self.root / folder / filename

    def _read(self, filename: str, path: Path) -> Note:
        mtime = path.stat().st_mtime
        cached = self._cache.get(filename)
        if cached and cached[0] == mtime:
            return cached[1]
        note = Note.from_text(filename, path.read_text(encoding="utf-8"),
                              datetime.fromtimestamp(mtime))
        self._cache[filename] = (mtime, note)
        return note

    async def list_notes(self) -> List[Note]:
        notes = []
        for folder in (CALENDAR_FOLDER, NOTES_FOLDER):
            base = self.root / folder
            if not base.exists():
                continue
            for path in sorted(base.rglob("*")):
                if path.suffix not in (".md", ".txt") or not path.is_file():
                    continue
                filename = path.relative_to(base).as_posix()
                try:
                    notes.append(self._read(filename, path))
                except OSError as e:
                    logger.warning(f"Skipping unreadable note {path}: {e}")
        return notes

    async def _load_note(self, filename: str) -> Optional[Note]:
        path = self._path_for(filename)
        if not path.exists():
            return None
        try:
            return self._read(filename, path)
        except OSError as e:
            logger.warning(f"Could not read note {path}: {e}")
            return None

    async def save_note(self, filename: str, raw_lines: Sequence[str]) -> Note:
        path = self._path_for(filename)
        text = "\n".join(raw_lines) + "\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise HostFailureError(f"Could not write note '{filename}': {e}") from e
        self._cache.pop(filename, None)
        self._after_write(filename, raw_lines)
        logger.debug(f"Saved {filename} ({len(raw_lines)} lines)")
        return self._read(filename, path)

    async def invalidate(self, filename: str) -> None:
        self._cache.pop(filename, None)


class InMemoryDocumentStore(DocumentStore):
    """
    Notes held in a dict of filename -> (text, changed_date).

    Used for demo data and tests; writes stamp the note with the clock's time.
    """

    def __init__(self, notes: Optional[Dict[str, str]] = None,
                 changed_dates: Optional[Dict[str, datetime]] = None,
                 editor: Optional[LiveEditor] = None,
                 clock=datetime.now):
        super().__init__(editor)
        self.clock = clock
        self._notes: Dict[str, tuple] = {}
        changed_dates = changed_dates or {}
        for filename, text in (notes or {}).items():
            self._notes[filename] = (text, changed_dates.get(filename, clock()))
        self.fail_writes = False

    def add_note(self, filename: str, text: str, changed_date: Optional[datetime] = None) -> None:
        self._notes[filename] = (text, changed_date or self.clock())

    def text_of(self, filename: str) -> Optional[str]:
        entry = self._notes.get(filename)
        return entry[0] if entry else None

    async def list_notes(self) -> List[Note]:
        return [Note.from_text(f, text, changed) for f, (text, changed) in sorted(self._notes.items())]

    async def _load_note(self, filename: str) -> Optional[Note]:
        entry = self._notes.get(filename)
        if entry is None:
            return None
        return Note.from_text(filename, entry[0], entry[1])

    async def save_note(self, filename: str, raw_lines: Sequence[str]) -> Note:
        if self.fail_writes:
            raise HostFailureError(f"Write to '{filename}' rejected")
        text = "\n".join(raw_lines) + "\n"
        self._notes[filename] = (text, self.clock())
        self._after_write(filename, raw_lines)
        return Note.from_text(filename, text, self._notes[filename][1])


class Prompter(ABC):
    """User-interaction collaborator: confirmations, free text and choices"""

    @abstractmethod
    async def confirm(self, message: str) -> bool:
        pass

    @abstractmethod
    async def ask(self, message: str, default: str = "") -> Optional[str]:
        pass

    @abstractmethod
    async def choose(self, message: str, options: List[str]) -> Optional[str]:
        pass


class AutoPrompter(Prompter):
    """
    Non-interactive prompter.

    Answers confirmations with a fixed value and free-text questions from a
    queue of scripted answers (falling back to the default).
    """

    def __init__(self, confirm_answer: bool = False, answers: Optional[List[str]] = None):
        self.confirm_answer = confirm_answer
        self.answers = list(answers or [])
        self.asked: List[str] = []

    async def confirm(self, message: str) -> bool:
        self.asked.append(message)
        return self.confirm_answer

    async def ask(self, message: str, default: str = "") -> Optional[str]:
        self.asked.append(message)
        if self.answers:
            return self.answers.pop(0)
        return default or None

    async def choose(self, message: str, options: List[str]) -> Optional[str]:
        self.asked.append(message)
        if self.answers:
            answer = self.answers.pop(0)
            return answer if answer in options else None
        return options[0] if options else None
