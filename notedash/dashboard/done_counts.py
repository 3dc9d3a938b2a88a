"""
Cache of completed-today counts per note.

The cache file is a JSON array of {filename, completedTasks, lastUpdated}
records. A "last run" timestamp (kept in the preferences config) decides
which notes need rescanning: only notes changed since the last run are
recounted. When the calendar day changes the whole map is cleared, after
writing a short text summary of what was dropped.
"""

from dataclasses import dataclass
from datetime import datetime, date
from pathlib import Path
from typing import Callable, Dict, List, Optional
import json
import logging

from notedash.core.config import Config
from notedash.core.dates import parse_timestamp, day_str
from notedash.core.errors import StaleDataError
from notedash.core.store import DocumentStore
from notedash.dashboard.classifiers import Classifiers
from notedash.dashboard.models import DoneCounts

LAST_RUN_KEY = "done_counts_last_run"


@dataclass
class DoneCountRecord:
    """Completed-today count for one note"""
    filename: str
    completed_tasks: int
    last_updated: datetime

    def to_dict(self) -> Dict[str, object]:
        return {
            "filename": self.filename,
            "completedTasks": self.completed_tasks,
            "lastUpdated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, object]) -> 'DoneCountRecord':
        """
        Create a record from its persisted form.

        Raises:
            ValueError: if a field is missing or malformed
        """
        last_updated = parse_timestamp(data.get("lastUpdated"))
        if last_updated is None:
            raise ValueError(f"bad lastUpdated in {data!r}")
        count = int(data["completedTasks"])
        if count < 0:
            raise ValueError(f"negative completedTasks in {data!r}")
        return cls(
            filename=str(data["filename"]),
            completed_tasks=count,
            last_updated=last_updated,
        )

    def as_done_counts(self) -> DoneCounts:
        return DoneCounts(completed_tasks=self.completed_tasks, last_updated=self.last_updated)


class DoneCountCache:
    """
    Staleness-aware cache of per-note completed-today counts.

    Usage:
        cache = DoneCountCache(store, config, cache_dir)
        total = await cache.refresh_cache("refresh all")
    """

    def __init__(
        self,
        store: DocumentStore,
        config: Config,
        cache_dir: Path,
        classifiers: Optional[Classifiers] = None,
        clock: Callable[[], datetime] = datetime.now,
        archive: bool = True,
    ):
        """
        Initialize the cache.

        Args:
            store: Document store to count from
            config: Config holding the last-run timestamp preference
            cache_dir: Directory for the cache file and the rollover archive
            classifiers: Marker predicates (defaults to the standard set)
            clock: Returns the current local time
            archive: Write a text summary when the day rolls over
        """
        self.store = store
        self.config = config
        self.cache_dir = Path(cache_dir)
        self.cache_file = self.cache_dir / "done_counts.json"
        self.archive_dir = self.cache_dir / "done_counts_archive"
        self.classifiers = classifiers or Classifiers()
        self.clock = clock
        self.archive = archive
        self.logger = logging.getLogger("dashboard.done_counts")

    # =========================================================================
    # Persistence
    # =========================================================================

    def _read_records(self) -> List[DoneCountRecord]:
        try:
            with open(self.cache_file, "r") as f:
                raw = json.load(f)
            return [DoneCountRecord.from_dict(entry) for entry in raw]
        except (OSError, ValueError, TypeError, KeyError, AttributeError) as e:
            raise StaleDataError(f"Done-count cache {self.cache_file} unreadable: {e}") from e

    def load(self) -> Dict[str, DoneCountRecord]:
        """Read the cache file; any read or parse problem gives an empty map"""
        if not self.cache_file.exists():
            return {}
        try:
            records = self._read_records()
        except StaleDataError as e:
            self.logger.warning(f"{e}; starting fresh")
            return {}
        return {r.filename: r for r in records}

    def save(self, records: Dict[str, DoneCountRecord]) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        with open(self.cache_file, "w") as f:
            json.dump([r.to_dict() for r in records.values()], f, indent=2)

    def get_last_run(self) -> Optional[datetime]:
        return parse_timestamp(self.config.get(LAST_RUN_KEY, "preferences"))

    def set_last_run(self, when: datetime) -> None:
        self.config.set(LAST_RUN_KEY, when.isoformat(), "preferences")

    # =========================================================================
    # Counting
    # =========================================================================

    async def get_completed_today_count(self, filename: str,
                                        prefer_live_buffer: bool = True) -> DoneCountRecord:
        """
        Count today's completion markers in one note.

        Args:
            filename: Note to scan
            prefer_live_buffer: Count from the live editor buffer if the note is open

        Returns:
            DoneCountRecord (count 0 for a missing note)
        """
        now = self.clock()
        note = await self.store.get_note(filename, prefer_live=prefer_live_buffer)
        if note is None:
            return DoneCountRecord(filename=filename, completed_tasks=0, last_updated=now)
        today = now.date()
        count = sum(1 for line in note.lines if self.classifiers.is_done_today(line, today))
        return DoneCountRecord(
            filename=filename,
            completed_tasks=count,
            last_updated=note.changed_date or now,
        )

    async def done_counts_for(self, filename: str, prefer_live_buffer: bool = True) -> DoneCounts:
        """Section-ready counts for one note"""
        record = await self.get_completed_today_count(filename, prefer_live_buffer)
        return record.as_done_counts()

    @staticmethod
    def total_for_day(records: Dict[str, DoneCountRecord], day: date) -> int:
        """Sum of counts for records last updated on the given day"""
        return sum(r.completed_tasks for r in records.values() if r.last_updated.date() == day)

    async def refresh_cache(self, reason: str = "", prefer_live_buffer: bool = True) -> int:
        """
        Bring the cache up to date and return today's total.

        Args:
            reason: Free text for the log
            prefer_live_buffer: Count open notes from the live editor buffer

        Returns:
            Total completed today across all notes (0 if the refresh fails)
        """
        try:
            now = self.clock()
            today = now.date()
            start_of_today = datetime.combine(today, datetime.min.time())
            records = self.load()
            last_run = self.get_last_run()

            if last_run is None or last_run.date() != today:
                if records:
                    self._archive_records(records, last_run)
                records = {}
                since = start_of_today
            else:
                since = last_run

            changed = await self.store.notes_changed_since(since)
            for note in changed:
                record = await self.get_completed_today_count(note.filename, prefer_live_buffer)
                records[note.filename] = record

            total = self.total_for_day(records, today)
            self.save(records)
            self.set_last_run(now)
            self.logger.info(
                f"Done counts refreshed ({reason or 'no reason given'}): "
                f"{len(changed)} changed notes, {total} completed today"
            )
            return total
        except Exception as e:
            self.logger.error(f"Error refreshing done counts: {e}", exc_info=True)
            return 0

    def invalidate(self, filename: str) -> None:
        """Forget one note's record so its next change is recounted from scratch"""
        records = self.load()
        if records.pop(filename, None) is not None:
            self.save(records)

    def _archive_records(self, records: Dict[str, DoneCountRecord],
                         last_run: Optional[datetime]) -> None:
        if not self.archive:
            return
        day = day_str(last_run.date()) if last_run else "unknown"
        lines: List[str] = [f"Completed tasks for {day}"]
        for record in records.values():
            lines.append(f"{record.filename}: {record.completed_tasks}")
        lines.append(f"Total: {sum(r.completed_tasks for r in records.values())}")
        try:
            self.archive_dir.mkdir(parents=True, exist_ok=True)
            (self.archive_dir / f"{day}.txt").write_text("\n".join(lines) + "\n")
        except OSError as e:
            self.logger.warning(f"Could not archive done counts for {day}: {e}")
