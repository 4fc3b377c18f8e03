"""
Pydantic models for Note Core.

Contains the note, task, log entry and mention entities extracted from the
vault, plus the filter and result payloads used by the query layer.
"""

import datetime as dt
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .utils import normalize_tags


class TaskStatus(str, Enum):
    """Lifecycle state of a task."""

    OPEN = "Open"
    IN_PROGRESS = "InProgress"
    BLOCKED = "Blocked"
    DONE = "Done"

    @classmethod
    def _missing_(cls, value):
        # Accept case-insensitive names and the "Todo" alias for Open
        if isinstance(value, str):
            key = value.strip().lower().replace("_", "").replace("-", "").replace(" ", "")
            aliases = {
                "open": cls.OPEN,
                "todo": cls.OPEN,
                "inprogress": cls.IN_PROGRESS,
                "blocked": cls.BLOCKED,
                "done": cls.DONE,
            }
            return aliases.get(key)
        return None


class Note(BaseModel):
    """Model for a Markdown note loaded from the vault."""

    id: str
    path: str
    title: str
    date: dt.date | None = None
    modified_at: dt.datetime | None = None
    content: str = ""

    def meta(self) -> "NoteMeta":
        return NoteMeta(id=self.id, path=self.path, title=self.title, date=self.date)


class NoteMeta(BaseModel):
    """Model for note metadata without content."""

    id: str
    path: str
    title: str
    date: dt.date | None = None


class Task(BaseModel):
    """Model for a checkbox task extracted from a note's Tasks section."""

    id: str
    note_id: str
    title: str
    status: TaskStatus = TaskStatus.OPEN
    tags: list[str] = Field(default_factory=list)
    created_at: dt.datetime
    updated_at: dt.datetime
    closed_at: dt.datetime | None = None
    line: int
    depends_on: list[str] = Field(default_factory=list)


class LogEntry(BaseModel):
    """Model for a bullet in a note's Log section."""

    id: str
    note_id: str
    line: int
    timestamp: str | None = None
    occurred_at: dt.datetime | None = None
    content: str
    tags: list[str] = Field(default_factory=list)
    task_ids: list[str] = Field(default_factory=list)


class TaskMention(BaseModel):
    """Model for a backlink from note text to a task id."""

    task_id: str
    note_id: str
    log_entry_id: str | None = None
    line: int
    excerpt: str
    tags: list[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.task_id}|{self.note_id}|{self.line}"


class ParsedNote(BaseModel):
    """Structured entities derived from one note by a NoteParser."""

    note: Note
    tasks: list[Task] = Field(default_factory=list)
    log_entries: list[LogEntry] = Field(default_factory=list)
    mentions: list[TaskMention] = Field(default_factory=list)


class TaskFilter(BaseModel):
    """Conjunctive filter for task listing. Empty fields do not constrain."""

    statuses: set[TaskStatus] = Field(default_factory=set)
    tags: list[str] = Field(default_factory=list)
    text_search: str | None = None
    touched_since: dt.date | None = None
    note_ids: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return normalize_tags(value)


class DateRange(BaseModel):
    """Inclusive date range; either bound may be omitted."""

    start: dt.date | None = None
    end: dt.date | None = None

    def contains(self, value: dt.date | None) -> bool:
        if value is None:
            return False
        if self.start is not None and value < self.start:
            return False
        if self.end is not None and value > self.end:
            return False
        return True

    @property
    def is_open(self) -> bool:
        return self.start is None and self.end is None


class TagItems(BaseModel):
    """Every indexed entity associated with one tag."""

    tag: str
    tasks: list[Task] = Field(default_factory=list)
    log_entries: list[LogEntry] = Field(default_factory=list)
    mentions: list[TaskMention] = Field(default_factory=list)


class TaskDetail(BaseModel):
    """A task with its backlinks and dependents."""

    task: Task
    mentions: list[TaskMention] = Field(default_factory=list)
    log_entries: list[LogEntry] = Field(default_factory=list)
    dependents: list[str] = Field(default_factory=list)


class TagCount(BaseModel):
    """Aggregated tag usage."""

    tag: str
    count: int


class WeeklySummary(BaseModel):
    """Activity aggregated over a date range."""

    new_tasks: list[Task] = Field(default_factory=list)
    completed_tasks: list[Task] = Field(default_factory=list)
    notes: list[NoteMeta] = Field(default_factory=list)
    top_tags: list[TagCount] = Field(default_factory=list)


class ReindexStats(BaseModel):
    """Outcome of a full reindex pass."""

    indexed: int = 0
    skipped: int = 0
    removed: int = 0
    duration_ms: float = 0.0
