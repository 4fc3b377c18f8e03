"""
Note parsing module for Note Core.

Defines the NoteParser protocol and RegexNoteParser, the line-scan strategy
that extracts tasks, log entries and task mentions from a note's
`## Tasks` and `## Log` sections.
"""

from datetime import datetime, time, timezone
from typing import Protocol

from .config import settings
from .models import LogEntry, Note, ParsedNote, Task, TaskMention, TaskStatus
from .utils import (
    BULLET_PATTERN,
    DATETIME_PREFIX_PATTERN,
    SECTION_HEADING_PATTERN,
    TAG_PATTERN,
    TASK_ID_PATTERN,
    TASK_LINE_PATTERN,
    TIME_PREFIX_PATTERN,
    collapse_whitespace,
    normalize_tags,
)

SECTION_TASKS = "tasks"
SECTION_LOG = "log"

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

CHECKBOX_STATUS = {
    " ": TaskStatus.OPEN,
    "x": TaskStatus.DONE,
    "X": TaskStatus.DONE,
    "~": TaskStatus.IN_PROGRESS,
    "/": TaskStatus.IN_PROGRESS,
    "!": TaskStatus.BLOCKED,
}


class NoteParser(Protocol):
    """Contract for turning one note into structured entities.

    Implementations must be pure: the same note yields the same ParsedNote.
    """

    def parse(self, note: Note) -> ParsedNote:
        ...


def extract_tags(text: str) -> list[str]:
    return normalize_tags(TAG_PATTERN.findall(text))


def extract_task_ids(text: str) -> list[str]:
    """Return task ids referenced in the text, first occurrence order, unique."""
    return list(dict.fromkeys(TASK_ID_PATTERN.findall(text)))


def clean_content(text: str) -> str:
    """Strip task ids and tags, collapsing whitespace."""
    without_ids = TASK_ID_PATTERN.sub(" ", text)
    without_tags = TAG_PATTERN.sub(" ", without_ids)
    return collapse_whitespace(without_tags)


def is_continuation(line: str) -> bool:
    if not line.strip() or not line[0].isspace():
        return False
    return not (BULLET_PATTERN.match(line) or SECTION_HEADING_PATTERN.match(line))


class RegexNoteParser:
    """Line-scanning parser for the Tasks/Log daily-note convention."""

    def __init__(self, excerpt_length: int | None = None):
        self.excerpt_length = excerpt_length or settings.excerpt_length

    def parse(self, note: Note) -> ParsedNote:
        lines = [line.rstrip("\r") for line in note.content.split("\n")]
        anchor = self._anchor(note)
        tasks: list[Task] = []
        log_entries: list[LogEntry] = []
        mentions: list[TaskMention] = []

        section = None
        idx = 0
        while idx < len(lines):
            line = lines[idx]
            line_number = idx + 1
            idx += 1

            heading = SECTION_HEADING_PATTERN.match(line)
            if heading:
                name = heading.group(1).lower()
                section = name if name in (SECTION_TASKS, SECTION_LOG) else None
                continue

            if section == SECTION_TASKS:
                match = TASK_LINE_PATTERN.match(line)
                if not match:
                    continue
                body, consumed = self._with_continuation(match.group(2) or "", lines, idx)
                idx += consumed
                task = self._build_task(note, match.group(1), body, line_number, anchor)
                if task is not None:
                    tasks.append(task)
            elif section == SECTION_LOG:
                match = BULLET_PATTERN.match(line)
                if not match:
                    continue
                body, consumed = self._with_continuation(match.group(1), lines, idx)
                idx += consumed
                entry = self._build_log_entry(note, body, line_number)
                if entry is not None:
                    log_entries.append(entry)
                    mentions.extend(self._mentions(note, body, line_number, entry))
            else:
                mentions.extend(self._mentions(note, line, line_number, None))

        return ParsedNote(note=note, tasks=tasks, log_entries=log_entries, mentions=mentions)

    @staticmethod
    def _anchor(note: Note) -> datetime:
        """Timestamp assigned to tasks; derived only from the note so parsing stays pure."""
        if note.date is not None:
            return datetime.combine(note.date, time.min, tzinfo=timezone.utc)
        if note.modified_at is not None:
            return note.modified_at
        return EPOCH

    @staticmethod
    def _with_continuation(first: str, lines: list[str], start: int) -> tuple[str, int]:
        parts = [first.strip()]
        consumed = 0
        for line in lines[start:]:
            if not is_continuation(line):
                break
            parts.append(line.strip())
            consumed += 1
        return "\n".join(p for p in parts if p), consumed

    def _build_task(self, note: Note, mark: str, body: str, line_number: int, anchor: datetime) -> Task | None:
        title = clean_content(body)
        if not title:
            return None

        ids = extract_task_ids(body)
        task_id = ids[0] if ids else f"{note.id}#{line_number}"
        status = CHECKBOX_STATUS.get(mark, TaskStatus.OPEN)

        return Task(
            id=task_id,
            note_id=note.id,
            title=title,
            status=status,
            tags=extract_tags(body),
            created_at=anchor,
            updated_at=anchor,
            closed_at=anchor if status is TaskStatus.DONE else None,
            line=line_number,
            depends_on=ids[1:],
        )

    def _build_log_entry(self, note: Note, body: str, line_number: int) -> LogEntry | None:
        timestamp, occurred_at, text = self._split_timestamp(body, note)
        if not text.strip():
            return None

        return LogEntry(
            id=f"{note.id}:{line_number}",
            note_id=note.id,
            line=line_number,
            timestamp=timestamp,
            occurred_at=occurred_at,
            content=clean_content(text),
            tags=extract_tags(text),
            task_ids=extract_task_ids(text),
        )

    @staticmethod
    def _split_timestamp(body: str, note: Note) -> tuple[str | None, datetime | None, str]:
        """Strip a leading timestamp token. Unparseable tokens are left in the text."""
        match = DATETIME_PREFIX_PATTERN.match(body)
        if match:
            day, clock = match.group(1), match.group(2)
            token = f"{day} {clock}" if clock else day
            layout = "%Y-%m-%d"
            if clock:
                layout += " %H:%M:%S" if clock.count(":") == 2 else " %H:%M"
            try:
                occurred_at = datetime.strptime(token, layout).replace(tzinfo=timezone.utc)
            except ValueError:
                return None, None, body
            return token, occurred_at, body[match.end():]

        match = TIME_PREFIX_PATTERN.match(body)
        if match:
            clock, meridiem = match.group(1), match.group(2)
            try:
                if meridiem:
                    parsed = datetime.strptime(f"{clock} {meridiem.upper()}", "%I:%M %p").time()
                else:
                    parsed = datetime.strptime(clock, "%H:%M").time()
            except ValueError:
                return None, None, body
            token = f"{clock}{meridiem.lower()}" if meridiem else clock
            occurred_at = None
            if note.date is not None:
                occurred_at = datetime.combine(note.date, parsed, tzinfo=timezone.utc)
            return token, occurred_at, body[match.end():]

        return None, None, body

    def _mentions(self, note: Note, text: str, line_number: int, entry: LogEntry | None) -> list[TaskMention]:
        task_ids = entry.task_ids if entry is not None else extract_task_ids(text)
        if not task_ids:
            return []
        tags = entry.tags if entry is not None else extract_tags(text)
        excerpt = self._excerpt(entry.content if entry is not None else clean_content(text))
        return [
            TaskMention(
                task_id=task_id,
                note_id=note.id,
                log_entry_id=entry.id if entry is not None else None,
                line=line_number,
                excerpt=excerpt,
                tags=tags,
            )
            for task_id in task_ids
        ]

    def _excerpt(self, text: str) -> str:
        text = collapse_whitespace(text)
        if len(text) <= self.excerpt_length:
            return text
        return text[:self.excerpt_length] + "…"
