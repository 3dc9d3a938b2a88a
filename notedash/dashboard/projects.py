"""
Project review source.

Project notes carry a metadata line such as:

    #project @start(2024-01-08) @review(2w) @reviewed(2024-04-20)

A project is due for review when it has never been reviewed, or when its
last review date plus the review interval is on or before today.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import List, Optional, Tuple
import logging
import re

from notedash.core.dates import calc_offset_date, day_str, RE_DATE_INTERVAL
from notedash.core.models import Note, ProjectReview, TASK_TYPES, DONE, OPEN
from notedash.core.store import DocumentStore, is_special_folder

logger = logging.getLogger("dashboard.projects")

RE_PROJECT_TAG = re.compile(r'(?:^|\s)#(project|area)\b', re.IGNORECASE)
RE_REVIEW = re.compile(r'@review\(([^)]*)\)')
RE_REVIEWED = re.compile(r'@reviewed\((\d{4}-\d{2}-\d{2})\)')
RE_FINISHED = re.compile(r'@(completed|cancelled)\(')
RE_PROGRESS = re.compile(r'^Progress:\s*(?:\d+@)?(?:\d{4}-\d{2}-\d{2}:?)?\s*(.*)$', re.IGNORECASE)


class ProjectReviewSource(ABC):
    """Collaborator that reports which projects are due for review"""

    @abstractmethod
    async def next_projects_to_review(self, today: date, limit: int = 0) -> List[ProjectReview]:
        """
        Projects due for review, soonest first.

        Args:
            today: Current day
            limit: Maximum number to return (0 = no limit)
        """
        pass


class NoteMetadataReviewSource(ProjectReviewSource):
    """Reads review metadata straight from project notes in the document store"""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def next_projects_to_review(self, today: date, limit: int = 0) -> List[ProjectReview]:
        due: List[Tuple[str, ProjectReview]] = []
        for note in await self.store.list_notes():
            if note.is_calendar or is_special_folder(note.filename):
                continue
            review = parse_project_review(note, today)
            if review is not None and review.next_review_date <= day_str(today):
                due.append((review.next_review_date, review))
        due.sort(key=lambda pair: pair[0])
        reviews = [review for _, review in due]
        return reviews[:limit] if limit else reviews


def _metadata_line(note: Note) -> Optional[str]:
    for line in note.lines[:6]:
        if RE_PROJECT_TAG.search(line.content):
            return line.content
    return None


def parse_project_review(note: Note, today: date) -> Optional[ProjectReview]:
    """
    Review details for a project note, or None if it isn't an active project.

    Never-reviewed projects get today's date as their next review date.
    """
    metadata = _metadata_line(note)
    if metadata is None or RE_FINISHED.search(metadata):
        return None
    interval_match = RE_REVIEW.search(metadata)
    if interval_match is None:
        return None
    interval = interval_match.group(1).strip()
    if not RE_DATE_INTERVAL.match(interval):
        logger.warning(f"Ignoring bad review interval '{interval}' in {note.filename}")
        return None

    reviewed = RE_REVIEWED.search(metadata)
    if reviewed:
        try:
            last_reviewed = date.fromisoformat(reviewed.group(1))
        except ValueError:
            logger.warning(f"Ignoring {note.filename}: bad review date '{reviewed.group(1)}'")
            return None
        next_review = calc_offset_date(last_reviewed, interval)
    else:
        next_review = today

    tasks = [line for line in note.lines if line.type in TASK_TYPES]
    done = sum(1 for line in tasks if line.type == DONE)
    open_count = sum(1 for line in tasks if line.type == OPEN)
    percent = round(100 * done / (done + open_count)) if (done + open_count) else None

    progress = ""
    for line in note.lines:
        m = RE_PROGRESS.match(line.content)
        if m:
            progress = m.group(1).strip()
            break

    return ProjectReview(
        title=note.title,
        filename=note.filename,
        review_interval=interval,
        percent_complete=percent,
        last_progress_comment=progress,
        next_review_date=day_str(next_review),
    )
