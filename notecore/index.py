"""
In-memory index module for Note Core.

Contains InMemoryIndexStore, the derived index of tasks, log entries, task
mentions and tag buckets built from parsed notes.

Every upsert records a NoteSnapshot of exactly what the note contributed, so
removing or re-indexing a note undoes its contribution without scanning the
rest of the index. All maps are guarded by a reader/writer lock; a note's
old data is removed and its new data inserted under a single write lock.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from .locks import ReadWriteLock
from .logging import get_logger
from .models import (
    DateRange,
    LogEntry,
    Note,
    ParsedNote,
    TagItems,
    Task,
    TaskFilter,
    TaskMention,
)
from .utils import normalize_tag, normalize_tags

logger = get_logger(__name__)


@dataclass
class TagBucket:
    """Everything indexed under one tag."""

    task_ids: set[str] = field(default_factory=set)
    log_ids: set[str] = field(default_factory=set)
    mention_keys: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.task_ids or self.log_ids or self.mention_keys)


@dataclass
class NoteSnapshot:
    """What a single note contributed to the index."""

    task_ids: list[str] = field(default_factory=list)
    log_ids: list[str] = field(default_factory=list)
    mention_keys: list[str] = field(default_factory=list)
    task_tags: dict[str, set[str]] = field(default_factory=dict)
    log_tags: dict[str, set[str]] = field(default_factory=dict)
    mention_tags: dict[str, set[str]] = field(default_factory=dict)
    # (referenced task id, log entry id)
    log_refs: list[tuple[str, str]] = field(default_factory=list)
    # (dependency task id, dependent task id)
    dependency_edges: list[tuple[str, str]] = field(default_factory=list)


def _discard(mapping: dict[str, set[str]], key: str, value: str) -> None:
    """Remove value from mapping[key], dropping the key once its set is empty."""
    members = mapping.get(key)
    if members is None:
        return
    members.discard(value)
    if not members:
        del mapping[key]


def _by_location(item: LogEntry | TaskMention) -> tuple[str, int]:
    return item.note_id, item.line


class InMemoryIndexStore:
    """Thread-safe in-memory index of everything parsed from the vault."""

    def __init__(self):
        self._lock = ReadWriteLock()
        self._notes: dict[str, Note] = {}
        self._tasks: dict[str, Task] = {}
        self._task_owner: dict[str, str] = {}
        self._logs: dict[str, LogEntry] = {}
        self._mentions: dict[str, TaskMention] = {}
        self._mentions_by_task: dict[str, set[str]] = {}
        self._logs_by_task: dict[str, set[str]] = {}
        self._dependents: dict[str, set[str]] = {}
        self._tags: dict[str, TagBucket] = {}
        self._snapshots: dict[str, NoteSnapshot] = {}

    # ============== Write path ==============

    def upsert_parsed_note(self, parsed: ParsedNote) -> None:
        """Replace everything indexed for parsed.note.id with the parsed data."""
        note_id = parsed.note.id
        with self._lock.write():
            self._remove_locked(note_id)
            self._notes[note_id] = parsed.note
            snap = NoteSnapshot()

            for task in parsed.tasks:
                self._insert_task_locked(note_id, task, snap)
            for entry in parsed.log_entries:
                self._insert_log_locked(entry, snap)
            for mention in parsed.mentions:
                self._insert_mention_locked(mention, snap)

            self._snapshots[note_id] = snap

        logger.debug(
            "note_indexed",
            note_id=note_id,
            tasks=len(snap.task_ids),
            log_entries=len(snap.log_ids),
            mentions=len(snap.mention_keys),
        )

    def remove_note(self, note_id: str) -> bool:
        """Drop every entity derived from the note. Returns False if it was not indexed."""
        with self._lock.write():
            known = note_id in self._notes
            self._remove_locked(note_id)
        if known:
            logger.debug("note_removed", note_id=note_id)
        return known

    def _insert_task_locked(self, note_id: str, task: Task, snap: NoteSnapshot) -> None:
        owner = self._task_owner.get(task.id)
        if owner == note_id and task.id in snap.task_ids:
            logger.warning("task_id_conflict", task_id=task.id, note_id=note_id, previous_note_id=note_id)
            self._evict_task_locked(task.id, snap)
        elif owner is not None and owner != note_id:
            logger.warning("task_id_conflict", task_id=task.id, note_id=note_id, previous_note_id=owner)
            owner_snap = self._snapshots.get(owner)
            if owner_snap is not None:
                self._evict_task_locked(task.id, owner_snap)

        task = task.model_copy(update={"tags": normalize_tags(task.tags)})
        self._tasks[task.id] = task
        self._task_owner[task.id] = note_id
        snap.task_ids.append(task.id)
        for tag in task.tags:
            self._bucket(tag).task_ids.add(task.id)
            snap.task_tags.setdefault(tag, set()).add(task.id)
        for dependency in task.depends_on:
            self._dependents.setdefault(dependency, set()).add(task.id)
            snap.dependency_edges.append((dependency, task.id))

    def _insert_log_locked(self, entry: LogEntry, snap: NoteSnapshot) -> None:
        entry = entry.model_copy(update={"tags": normalize_tags(entry.tags)})
        self._logs[entry.id] = entry
        snap.log_ids.append(entry.id)
        for tag in entry.tags:
            self._bucket(tag).log_ids.add(entry.id)
            snap.log_tags.setdefault(tag, set()).add(entry.id)
        for task_id in entry.task_ids:
            self._logs_by_task.setdefault(task_id, set()).add(entry.id)
            snap.log_refs.append((task_id, entry.id))

    def _insert_mention_locked(self, mention: TaskMention, snap: NoteSnapshot) -> None:
        mention = mention.model_copy(update={"tags": normalize_tags(mention.tags)})
        key = mention.key
        self._mentions[key] = mention
        self._mentions_by_task.setdefault(mention.task_id, set()).add(key)
        snap.mention_keys.append(key)
        for tag in mention.tags:
            self._bucket(tag).mention_keys.add(key)
            snap.mention_tags.setdefault(tag, set()).add(key)

    def _evict_task_locked(self, task_id: str, snap: NoteSnapshot) -> None:
        """Undo one task's contribution recorded in snap."""
        self._tasks.pop(task_id, None)
        self._task_owner.pop(task_id, None)
        snap.task_ids = [t for t in snap.task_ids if t != task_id]
        for tag in [tag for tag, ids in snap.task_tags.items() if task_id in ids]:
            _discard(snap.task_tags, tag, task_id)
            self._unbucket(tag, "task_ids", task_id)
        for dependency, dependent in [e for e in snap.dependency_edges if e[1] == task_id]:
            _discard(self._dependents, dependency, dependent)
        snap.dependency_edges = [e for e in snap.dependency_edges if e[1] != task_id]

    def _remove_locked(self, note_id: str) -> None:
        self._notes.pop(note_id, None)
        snap = self._snapshots.pop(note_id, None)
        if snap is None:
            return

        for task_id in snap.task_ids:
            self._tasks.pop(task_id, None)
            self._task_owner.pop(task_id, None)
        for log_id in snap.log_ids:
            self._logs.pop(log_id, None)
        for key in snap.mention_keys:
            mention = self._mentions.pop(key, None)
            if mention is not None:
                _discard(self._mentions_by_task, mention.task_id, key)

        for task_id, log_id in snap.log_refs:
            _discard(self._logs_by_task, task_id, log_id)
        for dependency, dependent in snap.dependency_edges:
            _discard(self._dependents, dependency, dependent)

        for tag, ids in snap.task_tags.items():
            for task_id in ids:
                self._unbucket(tag, "task_ids", task_id)
        for tag, ids in snap.log_tags.items():
            for log_id in ids:
                self._unbucket(tag, "log_ids", log_id)
        for tag, keys in snap.mention_tags.items():
            for key in keys:
                self._unbucket(tag, "mention_keys", key)

    def _bucket(self, tag: str) -> TagBucket:
        bucket = self._tags.get(tag)
        if bucket is None:
            bucket = self._tags[tag] = TagBucket()
        return bucket

    def _unbucket(self, tag: str, kind: str, member: str) -> None:
        bucket = self._tags.get(tag)
        if bucket is None:
            return
        getattr(bucket, kind).discard(member)
        if bucket.is_empty():
            del self._tags[tag]

    # ============== Read path ==============

    def get_note(self, note_id: str) -> Note | None:
        with self._lock.read():
            note = self._notes.get(note_id)
            return note.model_copy() if note is not None else None

    def note_ids(self) -> list[str]:
        with self._lock.read():
            return sorted(self._notes)

    def get_task(self, task_id: str) -> Task | None:
        with self._lock.read():
            task = self._tasks.get(task_id)
            return task.model_copy(deep=True) if task is not None else None

    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """List tasks matching every field set on the filter, sorted by id."""
        task_filter = task_filter or TaskFilter()
        with self._lock.read():
            if task_filter.tags:
                # Narrow candidates through the tag buckets before matching
                candidate_ids: set[str] | None = None
                for tag in task_filter.tags:
                    bucket = self._tags.get(tag)
                    ids = bucket.task_ids if bucket is not None else set()
                    candidate_ids = set(ids) if candidate_ids is None else candidate_ids & ids
                candidates: Iterable[Task] = [self._tasks[i] for i in candidate_ids or () if i in self._tasks]
            else:
                candidates = self._tasks.values()
            matched = [t.model_copy(deep=True) for t in candidates if _matches(t, task_filter)]
        return sorted(matched, key=lambda t: t.id)

    def get_log_entries_for_task(self, task_id: str) -> list[LogEntry]:
        with self._lock.read():
            entries = [self._logs[i].model_copy(deep=True) for i in self._logs_by_task.get(task_id, ()) if i in self._logs]
        return sorted(entries, key=_by_location)

    def get_mentions_for_task(self, task_id: str) -> list[TaskMention]:
        with self._lock.read():
            mentions = [
                self._mentions[k].model_copy(deep=True)
                for k in self._mentions_by_task.get(task_id, ())
                if k in self._mentions
            ]
        return sorted(mentions, key=_by_location)

    def get_dependents(self, task_id: str) -> list[str]:
        with self._lock.read():
            return sorted(self._dependents.get(task_id, ()))

    def list_notes(self, date_range: DateRange | None = None) -> list[Note]:
        """List notes newest first (ties by id).

        Undated notes are only listed when the range has no bounds, after dated ones.
        """
        with self._lock.read():
            if date_range is None or date_range.is_open:
                notes = [n.model_copy() for n in self._notes.values()]
            else:
                notes = [n.model_copy() for n in self._notes.values() if date_range.contains(n.date)]
        notes.sort(key=lambda n: n.id)
        notes.sort(key=lambda n: (n.date is None, -n.date.toordinal() if n.date else 0))
        return notes

    def list_tags(self) -> list[str]:
        with self._lock.read():
            return sorted(self._tags)

    def items_for_tag(self, tag: str) -> TagItems | None:
        """Return every entity under the tag, or None if the tag is unknown."""
        tag = normalize_tag(tag)
        with self._lock.read():
            bucket = self._tags.get(tag)
            if bucket is None:
                return None
            tasks = [self._tasks[i].model_copy(deep=True) for i in bucket.task_ids if i in self._tasks]
            logs = [self._logs[i].model_copy(deep=True) for i in bucket.log_ids if i in self._logs]
            mentions = [self._mentions[k].model_copy(deep=True) for k in bucket.mention_keys if k in self._mentions]

        return TagItems(
            tag=tag,
            tasks=sorted(tasks, key=lambda t: t.id),
            log_entries=sorted(logs, key=_by_location),
            mentions=sorted(mentions, key=lambda m: (m.task_id, m.note_id, m.line)),
        )


def _matches(task: Task, task_filter: TaskFilter) -> bool:
    if task_filter.statuses and task.status not in task_filter.statuses:
        return False
    if task_filter.tags and not set(task_filter.tags).issubset(task.tags):
        return False
    if task_filter.text_search and task_filter.text_search.strip():
        if task_filter.text_search.strip().lower() not in task.title.lower():
            return False
    if task_filter.touched_since is not None:
        cutoff = task_filter.touched_since
        touched = task.updated_at.date() >= cutoff
        closed = task.closed_at is not None and task.closed_at.date() >= cutoff
        if not (touched or closed):
            return False
    if task_filter.note_ids and task.note_id not in task_filter.note_ids:
        return False
    return True
