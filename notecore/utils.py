"""
Utility functions and compiled regex patterns for Note Core.

Contains parsing helpers, validation utilities, the exception taxonomy,
and pre-compiled patterns shared by the vault and the parser.
"""

import re
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path, PurePosixPath

import yaml

from .config import settings

# Pre-compiled regex patterns for performance
FRONTMATTER_PATTERN = re.compile(r'^---\s*\n(.*?)\n---\s*\n', re.DOTALL)
SECTION_HEADING_PATTERN = re.compile(r'^\s*##\s+(.+?)\s*$')
TITLE_HEADING_PATTERN = re.compile(r'^#\s+(.*?)\s*$')
TASK_LINE_PATTERN = re.compile(r'^\s*[-*]\s+\[([^\]])\](?:\s+(.*))?$')
BULLET_PATTERN = re.compile(r'^\s*[-*]\s+(.*)$')
TAG_PATTERN = re.compile(r'(?<!\S)#([\w/-]+)')
TASK_ID_PATTERN = re.compile(r'\[(T-[A-Za-z0-9_-]+)\]')
DATETIME_PREFIX_PATTERN = re.compile(
    r'^(\d{4}-\d{2}-\d{2})(?:[ T](\d{1,2}:\d{2}(?::\d{2})?))?(?:\s+-\s+|\s+|$)'
)
TIME_PREFIX_PATTERN = re.compile(r'^(\d{1,2}:\d{2})(?:\s?([AaPp][Mm]))?(?:\s+-\s+|\s+|$)')
DATE_IN_STEM_PATTERN = re.compile(r'(?<!\d)(\d{4}|\d{2})-(\d{2})-(\d{2})(?!\d)')
WHITESPACE_PATTERN = re.compile(r'\s+')


# ============== Exceptions ==============

class NoteCoreError(Exception):
    """Base class for errors raised by Note Core."""
    pass


class NotFoundError(NoteCoreError):
    """Raised when a note, task or tag is unknown."""
    pass


class NoteNotFoundError(NotFoundError):
    """Raised when a note does not exist in the vault or the index."""
    pass


class InvalidPathError(NoteCoreError):
    """Raised when a note path is empty, absolute, or escapes the vault."""
    pass


class ContentValidationError(NoteCoreError):
    """Raised when note content fails validation."""
    pass


class DateParseError(NoteCoreError):
    """Raised when a YYYY-MM-DD value cannot be parsed."""
    pass


class NoteReadError(NoteCoreError):
    """Raised when a note file exists but cannot be decoded."""
    pass


class VaultNotFoundError(NoteCoreError):
    """Raised when the vault root is missing or not a directory."""
    pass


# ============== Helper Functions ==============

def parse_frontmatter(content: str) -> tuple[dict, str]:
    """Extract YAML frontmatter and body from note content."""
    frontmatter = {}
    body = content

    match = FRONTMATTER_PATTERN.match(content)
    if match:
        try:
            loaded = yaml.safe_load(match.group(1))
        except yaml.YAMLError:
            loaded = None
        if isinstance(loaded, dict):
            frontmatter = loaded
        body = content[match.end():]

    return frontmatter, body


def normalize_tag(tag: str) -> str:
    """Normalize a tag: trim, drop a leading '#', lowercase."""
    return tag.strip().lstrip("#").strip().lower()


def normalize_tags(tags: Iterable[str]) -> list[str]:
    """Normalize, de-duplicate and sort a collection of tags."""
    return sorted({norm for norm in (normalize_tag(t) for t in tags) if norm})


def collapse_whitespace(text: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", text).strip()


def parse_iso_date(value: str) -> date:
    """Parse a YYYY-MM-DD string.

    Raises:
        DateParseError: If the value is empty or not a valid calendar date
    """
    if not value or not value.strip():
        raise DateParseError("empty date")
    try:
        return datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        raise DateParseError(f"invalid date '{value}' (expected YYYY-MM-DD)")


def date_from_stem(stem: str) -> date | None:
    """Find a YYYY-MM-DD (or YY-MM-DD) date inside a filename stem."""
    for match in DATE_IN_STEM_PATTERN.finditer(stem):
        year, month, day = match.groups()
        layout = "%Y-%m-%d" if len(year) == 4 else "%y-%m-%d"
        try:
            return datetime.strptime(f"{year}-{month}-{day}", layout).date()
        except ValueError:
            continue
    return None


def coerce_frontmatter_date(value: object) -> date | None:
    """Turn a frontmatter `date` value (date, datetime or string) into a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_date(value)
        except DateParseError:
            return None
    return None


# ============== Security Validation ==============

def validate_path_within_vault(path_str: str, vault_path: Path) -> Path:
    """Validate that a path is safely within the vault directory.

    Args:
        path_str: The path string to validate (vault-relative note path)
        vault_path: The vault root path

    Returns:
        The validated absolute Path

    Raises:
        InvalidPathError: If the path attempts to escape the vault
    """
    # Reject empty paths
    if not path_str or not path_str.strip():
        raise InvalidPathError("Path cannot be empty")

    posix = PurePosixPath(path_str.replace("\\", "/"))

    # Reject paths with ".." components (path traversal attempt)
    if ".." in posix.parts:
        raise InvalidPathError("Path traversal detected: '..' is not allowed")

    # Reject absolute paths
    if posix.is_absolute() or (len(path_str) > 1 and path_str[1] == ":"):
        raise InvalidPathError("Absolute paths are not allowed")

    # Build the full path and resolve it
    full_path = (vault_path / Path(*posix.parts)).resolve()
    vault_resolved = vault_path.resolve()

    # Verify the resolved path is within the vault
    try:
        full_path.relative_to(vault_resolved)
    except ValueError:
        raise InvalidPathError(f"Path escapes vault directory: {path_str}")

    if full_path == vault_resolved:
        raise InvalidPathError("Path must name a note, not the vault root")

    return full_path


def validate_content_size(content: str, max_size: int | None = None) -> str:
    """Validate content size.

    Args:
        content: The content to validate
        max_size: Limit in bytes (defaults to settings.max_content_size)

    Returns:
        The validated content

    Raises:
        ContentValidationError: If the content exceeds size limits
    """
    limit = settings.max_content_size if max_size is None else max_size
    content_bytes = len(content.encode('utf-8'))

    if content_bytes > limit:
        max_mb = limit / (1024 * 1024)
        actual_mb = content_bytes / (1024 * 1024)
        raise ContentValidationError(
            f"Content size ({actual_mb:.2f}MB) exceeds maximum allowed size ({max_mb}MB)"
        )

    return content
