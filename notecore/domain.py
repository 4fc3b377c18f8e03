"""
Domain module for Note Core.

Contains the Domain class: the named queries and commands exposed over
JSON-RPC, composed from the index manager and the index store.
"""

import datetime as dt
from collections import Counter
from pathlib import PurePosixPath

from .config import DAILY_TEMPLATE, settings
from .logging import get_logger
from .manager import VaultIndexManager
from .models import (
    DateRange,
    Note,
    NoteMeta,
    ReindexStats,
    TagCount,
    TagItems,
    Task,
    TaskDetail,
    TaskFilter,
    WeeklySummary,
)
from .utils import NoteNotFoundError, date_from_stem, validate_content_size

logger = get_logger(__name__)


class Domain:
    """Query/command API over the vault index.

    Lookups return None when the task, tag or note is unknown; the RPC layer
    decides how to report that.
    """

    def __init__(
        self,
        manager: VaultIndexManager,
        daily_folder: str | None = None,
        max_content_size: int | None = None,
        summary_top_tags: int | None = None,
    ):
        self.manager = manager
        self.store = manager.store
        self.vault = manager.vault
        self.daily_folder = settings.daily_folder if daily_folder is None else daily_folder
        self.max_content_size = max_content_size or settings.max_content_size
        self.summary_top_tags = summary_top_tags or settings.summary_top_tags

    # ============== Indexing ==============

    async def reindex_all(self, strict: bool | None = None) -> ReindexStats:
        return await self.manager.full_reindex(strict=strict)

    async def reindex_note(self, note_id: str) -> Note:
        parsed = await self.manager.reindex_note(note_id)
        return parsed.note

    # ============== Queries ==============

    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        return self.store.list_tasks(task_filter)

    def task_detail(self, task_id: str) -> TaskDetail | None:
        """Return a task with its mentions, log entries and dependents."""
        task = self.store.get_task(task_id)
        if task is None:
            return None
        return TaskDetail(
            task=task,
            mentions=self.store.get_mentions_for_task(task_id),
            log_entries=self.store.get_log_entries_for_task(task_id),
            dependents=self.store.get_dependents(task_id),
        )

    def items_for_tag(self, tag: str) -> TagItems | None:
        return self.store.items_for_tag(tag)

    def notes_in_range(self, date_range: DateRange | None = None) -> list[NoteMeta]:
        return [note.meta() for note in self.store.list_notes(date_range)]

    def list_tags(self) -> list[str]:
        return self.store.list_tags()

    def read_note(self, note_id: str) -> Note | None:
        return self.store.get_note(note_id)

    def weekly_summary(self, date_range: DateRange, top_n: int | None = None) -> WeeklySummary:
        """Aggregate activity for a date range.

        New and completed tasks are matched on the calendar date of
        created_at and closed_at. Top tags count every indexed task,
        highest count first, ties broken by tag name.
        """
        top_n = top_n or self.summary_top_tags
        all_tasks = self.store.list_tasks()

        new_tasks = [t for t in all_tasks if date_range.contains(t.created_at.date())]
        completed_tasks = [
            t for t in all_tasks
            if t.closed_at is not None and date_range.contains(t.closed_at.date())
        ]

        counts = Counter(tag for task in all_tasks for tag in task.tags)
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))

        return WeeklySummary(
            new_tasks=new_tasks,
            completed_tasks=completed_tasks,
            notes=self.notes_in_range(date_range),
            top_tags=[TagCount(tag=tag, count=count) for tag, count in ranked[:top_n]],
        )

    # ============== Commands ==============

    async def write_note(self, note_id: str, content: str) -> Note:
        """Persist new content for an indexed note and re-index it.

        Raises:
            NoteNotFoundError: If the note is not indexed
            ContentValidationError: If the content is too large
        """
        if self.store.get_note(note_id) is None:
            raise NoteNotFoundError(f"Note not found: {note_id}")
        validate_content_size(content, self.max_content_size)

        await self.vault.write_note(note_id, content)
        parsed = await self.manager.reindex_note(note_id)
        return parsed.note

    async def open_daily(self, day: dt.date) -> Note:
        """Return the daily note for a date, creating it from the template if absent."""
        for note in self.store.list_notes(DateRange(start=day, end=day)):
            if date_from_stem(PurePosixPath(note.id).stem) == day:
                return note

        filename = f"{day.isoformat()}{self.vault.extension}"
        folder = self.daily_folder.strip("/")
        path = f"{folder}/{filename}" if folder else filename

        created = await self.vault.create_note(path, DAILY_TEMPLATE.format(date=day.isoformat()))
        parsed = await self.manager.reindex_note(path)
        logger.info("daily_note_opened", note_id=parsed.note.id, created=created)
        return parsed.note
