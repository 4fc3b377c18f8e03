"""
Vault access module for Note Core.

Contains the FileSystemVault class, which locates Markdown notes under a root
directory and reads or writes them. The vault keeps no state beyond its root;
callers cache what they need.
"""

import os
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath

import aiofiles

from .config import settings
from .logging import get_logger
from .models import Note
from .utils import (
    TITLE_HEADING_PATTERN,
    InvalidPathError,
    NoteNotFoundError,
    NoteReadError,
    VaultNotFoundError,
    coerce_frontmatter_date,
    date_from_stem,
    parse_frontmatter,
    validate_path_within_vault,
)

logger = get_logger(__name__)


def derive_title(frontmatter: dict, body: str, stem: str) -> str:
    """Pick a note title: frontmatter title, else a leading heading, else the stem."""
    title = frontmatter.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()

    for line in body.splitlines():
        if not line.strip():
            continue
        match = TITLE_HEADING_PATTERN.match(line.strip())
        if match and match.group(1):
            return match.group(1)
        break
    return stem


class FileSystemVault:
    """Markdown vault rooted at a local directory.

    Note ids are vault-relative, slash-separated paths. Hidden folders and
    files (leading '.') are never listed, and neither are symlinked files:
    os.walk does not descend into symlinked folders, so a note reached through
    a link is only loaded when requested by path, under that path.
    """

    def __init__(self, root: Path | str, extension: str | None = None):
        root = Path(root).expanduser()
        if not root.exists():
            raise VaultNotFoundError(f"Vault root does not exist: {root}")
        if not root.is_dir():
            raise VaultNotFoundError(f"Vault root is not a directory: {root}")
        self.root = root.resolve()
        self.extension = (extension or settings.note_extension).lower()

    def resolve(self, path: str) -> Path:
        """Validate a vault-relative note path and return its absolute location."""
        full_path = validate_path_within_vault(path, self.root)
        if full_path.suffix.lower() != self.extension:
            raise InvalidPathError(f"Not a note path (expected {self.extension}): {path}")
        return full_path

    def relative_id(self, full_path: Path) -> str:
        return full_path.relative_to(self.root).as_posix()

    def note_id(self, path: str) -> str:
        """Normalized id for a requested note path, without following symlinks."""
        self.resolve(path)
        return PurePosixPath(path.replace("\\", "/")).as_posix()

    async def list_note_paths(self) -> list[str]:
        """Return every note path relative to the root, sorted."""
        paths: list[str] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            # Skip hidden folders
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for filename in filenames:
                if filename.startswith("."):
                    continue
                if not filename.lower().endswith(self.extension):
                    continue
                if os.path.islink(os.path.join(dirpath, filename)):
                    continue
                paths.append(self.relative_id(Path(dirpath) / filename))
        paths.sort()
        return paths

    async def load_note(self, path: str) -> Note:
        """Read a single note and derive its title and date.

        Raises:
            InvalidPathError: If the path is not a note path inside the vault
            NoteNotFoundError: If the file does not exist
            NoteReadError: If the file is not valid UTF-8
        """
        full_path = self.resolve(path)
        if full_path.is_dir():
            raise InvalidPathError(f"Path is a directory: {path}")
        try:
            stat = full_path.stat()
            async with aiofiles.open(full_path, encoding="utf-8", newline="") as f:
                content = await f.read()
        except FileNotFoundError:
            raise NoteNotFoundError(f"Note not found: {path}")
        except UnicodeDecodeError:
            raise NoteReadError(f"Note is not valid UTF-8: {path}")

        note_id = self.note_id(path)
        stem = PurePosixPath(note_id).stem
        frontmatter, body = parse_frontmatter(content)
        modified_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)

        note_date = date_from_stem(stem)
        if note_date is None:
            note_date = coerce_frontmatter_date(frontmatter.get("date"))
        if note_date is None:
            note_date = modified_at.date()

        return Note(
            id=note_id,
            path=note_id,
            title=derive_title(frontmatter, body, stem),
            date=note_date,
            modified_at=modified_at,
            content=content,
        )

    async def load_notes(self) -> list[Note]:
        """Load every note in the vault."""
        return [await self.load_note(path) for path in await self.list_note_paths()]

    async def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    async def write_note(self, path: str, content: str) -> None:
        """Overwrite an existing note with new content.

        Raises:
            NoteNotFoundError: If the note does not exist
        """
        full_path = self.resolve(path)
        if not full_path.is_file():
            raise NoteNotFoundError(f"Note not found: {path}")
        async with aiofiles.open(full_path, mode="w", encoding="utf-8", newline="") as f:
            await f.write(content)
        logger.info("note_written", path=self.note_id(path), size=len(content))

    async def create_note(self, path: str, content: str) -> bool:
        """Create a new note. Returns False, leaving the file untouched, if it already exists."""
        full_path = self.resolve(path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiofiles.open(full_path, mode="x", encoding="utf-8", newline="") as f:
                await f.write(content)
        except FileExistsError:
            return False
        logger.info("note_created", path=self.note_id(path))
        return True
