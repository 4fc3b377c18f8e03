"""
Pytest configuration and fixtures for note-core tests.
"""

from datetime import date, datetime, timezone
from pathlib import Path

import pytest

SCENARIO_NOTE = (
    "## Tasks\n"
    "- [ ] Draft summary #work [T-1234]\n"
    "- [x] Finish report #work\n"
    "## Log\n"
    "- 2024-05-01 Completed milestone #wins [T-1234]\n"
)

PROJECT_NOTE = """---
title: Project Alpha
date: 2024-05-06
---

# Alpha kickoff

Follow up on [T-1234] next week.

## Tasks
- [ ] Ship beta #alpha #Work [T-2000] [T-1234]
- [/] Write docs #alpha
- [!] Wait for legal review [T-3000]

## Log
- 09:30 Kickoff with the team #meeting [T-2000]
  agenda shared beforehand
- 2024-05-07 14:00 - Beta cut #alpha
"""


@pytest.fixture
def temp_vault(tmp_path: Path):
    """Create a temporary vault with test notes."""
    vault_path = tmp_path / "vault"
    vault_path.mkdir()

    (vault_path / "projects").mkdir()
    (vault_path / ".obsidian").mkdir()

    # Daily note from the reference scenario
    (vault_path / "2024-05-02.md").write_text(SCENARIO_NOTE, encoding="utf-8")

    # Project note with frontmatter date, dependencies and a timed log
    (vault_path / "projects" / "alpha.md").write_text(PROJECT_NOTE, encoding="utf-8")

    # Hidden folder and non-note files are never indexed
    (vault_path / ".obsidian" / "workspace.md").write_text("## Tasks\n- [ ] Hidden [T-9999]\n", encoding="utf-8")
    (vault_path / "readme.txt").write_text("not a note", encoding="utf-8")

    yield vault_path


@pytest.fixture
def vault(temp_vault):
    """FileSystemVault over the temp vault."""
    from notecore.vault import FileSystemVault
    return FileSystemVault(temp_vault, ".md")


@pytest.fixture
def parser():
    from notecore.parser import RegexNoteParser
    return RegexNoteParser(excerpt_length=120)


@pytest.fixture
def store():
    from notecore.index import InMemoryIndexStore
    return InMemoryIndexStore()


@pytest.fixture
def manager(vault, parser, store):
    from notecore.manager import VaultIndexManager
    return VaultIndexManager(vault, parser, store, strict=True)


@pytest.fixture
def domain(manager):
    from notecore.domain import Domain
    return Domain(manager, daily_folder="", max_content_size=1024 * 1024, summary_top_tags=10)


@pytest.fixture
async def indexed_domain(domain):
    """Domain whose index holds every note of the temp vault."""
    await domain.reindex_all()
    return domain


@pytest.fixture
async def gateway(indexed_domain):
    from notecore.server import RpcGateway
    return RpcGateway(indexed_domain)


@pytest.fixture
def make_note():
    """Factory for in-memory notes, bypassing the filesystem."""
    from notecore.models import Note

    def _make(content: str, note_id: str = "2024-05-02.md", note_date: date | None = date(2024, 5, 2)) -> Note:
        return Note(
            id=note_id,
            path=note_id,
            title=Path(note_id).stem,
            date=note_date,
            modified_at=datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc),
            content=content,
        )

    return _make
