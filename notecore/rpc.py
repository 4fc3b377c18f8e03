"""
JSON-RPC 2.0 wire types for Note Core.

Contains error codes, response envelope helpers and the pydantic models that
validate each method's params.
"""

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import DateRange, TaskFilter, TaskStatus

JSONRPC_VERSION = "2.0"

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_ERROR = -32000


class RpcError(Exception):
    """An error that is reported to the client as a JSON-RPC error object."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def jsonrpc_error(code: int, message: str, *, request_id: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "error": {"code": code, "message": message}}


def jsonrpc_result(result: Any, *, request_id: Any) -> dict[str, Any]:
    return {"jsonrpc": JSONRPC_VERSION, "id": request_id, "result": result}


# ============== Params ==============

class Params(BaseModel):
    """Base for method params. Unknown members are ignored."""

    model_config = ConfigDict(extra="ignore")


class EmptyParams(Params):
    pass


class ListTasksParams(Params):
    status: list[TaskStatus] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    text_search: str | None = None
    touched_since: dt.date | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, value: Any) -> Any:
        # A single status or a list; names are matched case-insensitively
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        if isinstance(value, list):
            return [TaskStatus(v) if isinstance(v, str) else v for v in value]
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _coerce_tags(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value

    def to_filter(self) -> TaskFilter:
        return TaskFilter(
            statuses=set(self.status),
            tags=self.tags,
            text_search=self.text_search,
            touched_since=self.touched_since,
        )


class TaskDetailParams(Params):
    task_id: str = Field(min_length=1)


class TagParams(Params):
    tag: str = Field(min_length=1)

    @field_validator("tag")
    @classmethod
    def _check_tag(cls, value: str) -> str:
        if not value.strip().lstrip("#").strip():
            raise ValueError("tag cannot be empty")
        return value


class RangeParams(Params):
    start: dt.date | None = None
    end: dt.date | None = None

    def to_range(self) -> DateRange:
        return DateRange(start=self.start, end=self.end)


class OpenDailyParams(Params):
    date: dt.date


class NoteParams(Params):
    note_id: str = Field(min_length=1)


class WriteNoteParams(Params):
    note_id: str = Field(min_length=1)
    content: str
