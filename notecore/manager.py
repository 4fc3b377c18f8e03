"""
Index maintenance module for Note Core.

Contains VaultIndexManager, which keeps the InMemoryIndexStore in step with
the vault: a full reindex walks every note, and single notes are re-indexed
after they are written back.
"""

import asyncio
import time

from .config import settings
from .index import InMemoryIndexStore
from .logging import get_logger
from .models import ParsedNote, ReindexStats
from .parser import NoteParser
from .vault import FileSystemVault

logger = get_logger(__name__)


class VaultIndexManager:
    """Loads, parses and upserts vault notes into the index store.

    A full reindex yields to the event loop between notes, so cancelling the
    task running it stops the scan cleanly. Notes upserted before the
    cancellation stay indexed; upserts are idempotent, so the next pass
    converges.
    """

    def __init__(
        self,
        vault: FileSystemVault,
        parser: NoteParser,
        store: InMemoryIndexStore,
        strict: bool | None = None,
    ):
        self.vault = vault
        self.parser = parser
        self.store = store
        self.strict = settings.strict_reindex if strict is None else strict

    async def full_reindex(self, strict: bool | None = None) -> ReindexStats:
        """Re-parse every note in the vault.

        Args:
            strict: Abort on the first failing note (defaults to the manager's mode).
                In lenient mode a failing note is logged and skipped.

        Returns:
            Counts of indexed, skipped and removed notes
        """
        strict = self.strict if strict is None else strict
        start_time = time.perf_counter()

        paths = await self.vault.list_note_paths()
        indexed = 0
        skipped = 0

        for path in paths:
            await asyncio.sleep(0)
            try:
                await self.reindex_note(path)
            except Exception as e:
                if strict:
                    logger.error("reindex_aborted", path=path, error=str(e))
                    raise
                logger.warning("note_index_failed", path=path, error=str(e))
                skipped += 1
                continue
            indexed += 1

        # Drop notes that disappeared from disk since the last pass
        present = set(paths)
        removed = 0
        for note_id in self.store.note_ids():
            if note_id not in present and self.store.remove_note(note_id):
                removed += 1

        duration_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "reindex_completed",
            indexed=indexed,
            skipped=skipped,
            removed=removed,
            duration_ms=round(duration_ms, 2),
        )
        return ReindexStats(indexed=indexed, skipped=skipped, removed=removed, duration_ms=duration_ms)

    async def reindex_note(self, path: str) -> ParsedNote:
        """Load, parse and upsert a single note."""
        note = await self.vault.load_note(path)
        parsed = self.parser.parse(note)
        self.store.upsert_parsed_note(parsed)
        return parsed

    def remove_note(self, path: str) -> bool:
        """Drop a note from the index without touching the vault."""
        return self.store.remove_note(self.vault.note_id(path))
