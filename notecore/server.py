"""
JSON-RPC gateway for Note Core.

Contains RpcGateway, which maps newline-delimited JSON-RPC 2.0 requests onto
Domain operations, and the stdio and TCP stream loops that feed it.
"""

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from .domain import Domain
from .logging import get_logger
from .rpc import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    JSONRPC_VERSION,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SERVER_ERROR,
    EmptyParams,
    ListTasksParams,
    NoteParams,
    OpenDailyParams,
    RangeParams,
    RpcError,
    TagParams,
    TaskDetailParams,
    WriteNoteParams,
    jsonrpc_error,
    jsonrpc_result,
)
from .utils import (
    ContentValidationError,
    DateParseError,
    InvalidPathError,
    NotFoundError,
    NoteNotFoundError,
    NoteReadError,
)

logger = get_logger(__name__)

# Largest accepted request line; write_note carries whole notes
STREAM_LIMIT = 16 * 1024 * 1024

Handler = Callable[[Any], Awaitable[Any]]


def _describe_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(part) for part in err["loc"]) or "params"
        parts.append(f"{location}: {err['msg']}")
    return "Invalid params: " + "; ".join(parts)


def _valid_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return value is None or isinstance(value, (str, int, float))


def encode_message(message: dict[str, Any]) -> bytes:
    """Serialize one response as a single line."""
    return (json.dumps(message, separators=(",", ":"), ensure_ascii=False) + "\n").encode("utf-8")


class RpcGateway:
    """Stateless dispatcher from JSON-RPC methods to Domain operations."""

    def __init__(self, domain: Domain):
        self.domain = domain
        self._methods: dict[str, tuple[type[BaseModel], Handler]] = {
            "core.reindex": (EmptyParams, self._reindex),
            "core.reindex_note": (NoteParams, self._reindex_note),
            "core.list_tasks": (ListTasksParams, self._list_tasks),
            "core.task_detail": (TaskDetailParams, self._task_detail),
            "core.items_for_tag": (TagParams, self._items_for_tag),
            "core.list_tags": (EmptyParams, self._list_tags),
            "core.notes_in_range": (RangeParams, self._notes_in_range),
            "core.weekly_summary": (RangeParams, self._weekly_summary),
            "core.open_daily": (OpenDailyParams, self._open_daily),
            "core.read_note": (NoteParams, self._read_note),
            "core.write_note": (WriteNoteParams, self._write_note),
        }

    @property
    def methods(self) -> list[str]:
        return sorted(self._methods)

    async def handle_line(self, line: str | bytes) -> dict[str, Any] | None:
        """Process one request line. Returns the response, or None for notifications."""
        try:
            request = json.loads(line)
        except (ValueError, RecursionError) as e:
            # ValueError covers JSONDecodeError and UnicodeDecodeError
            return jsonrpc_error(PARSE_ERROR, f"Parse error: {e}", request_id=None)

        if not isinstance(request, dict):
            return jsonrpc_error(INVALID_REQUEST, "Invalid request: expected a JSON object", request_id=None)

        request_id = request.get("id")
        if not _valid_id(request_id):
            return jsonrpc_error(INVALID_REQUEST, "Invalid request: id must be a string, number or null", request_id=None)
        if request.get("jsonrpc") != JSONRPC_VERSION:
            return jsonrpc_error(INVALID_REQUEST, "Invalid request: jsonrpc must be \"2.0\"", request_id=request_id)
        method = request.get("method")
        if not isinstance(method, str):
            return jsonrpc_error(INVALID_REQUEST, "Invalid request: method must be a string", request_id=request_id)

        # Notifications carry no id member at all
        is_notification = "id" not in request

        try:
            result = await self.dispatch(method, request.get("params"))
        except RpcError as e:
            if is_notification:
                logger.warning("notification_failed", method=method, code=e.code, error=e.message)
                return None
            return jsonrpc_error(e.code, e.message, request_id=request_id)

        if is_notification:
            return None
        return jsonrpc_result(result, request_id=request_id)

    async def dispatch(self, method: str, params: Any) -> Any:
        """Validate params and run the named operation, returning a JSON-ready result.

        Raises:
            RpcError: For every failure, carrying the JSON-RPC error code
        """
        entry = self._methods.get(method)
        if entry is None:
            raise RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")
        model, handler = entry

        if params is None:
            params = {}
        if not isinstance(params, dict):
            raise RpcError(INVALID_PARAMS, "Invalid params: params must be an object")
        try:
            parsed = model.model_validate(params)
        except ValidationError as e:
            raise RpcError(INVALID_PARAMS, _describe_validation_error(e))

        try:
            result = await handler(parsed)
        except (NotFoundError, NoteReadError) as e:
            raise RpcError(SERVER_ERROR, str(e))
        except (InvalidPathError, ContentValidationError, DateParseError) as e:
            raise RpcError(INVALID_PARAMS, f"Invalid params: {e}")
        except OSError as e:
            logger.error("rpc_io_failed", method=method, error=str(e))
            raise RpcError(SERVER_ERROR, f"I/O error: {e}")
        except Exception as e:
            logger.exception("rpc_request_failed", method=method)
            raise RpcError(INTERNAL_ERROR, f"Internal error: {e}")

        return to_jsonable_python(result)

    # ============== Method handlers ==============

    async def _reindex(self, params: EmptyParams) -> dict[str, Any]:
        stats = await self.domain.reindex_all()
        return {"status": "ok", "indexed": stats.indexed, "skipped": stats.skipped, "removed": stats.removed}

    async def _reindex_note(self, params: NoteParams):
        note = await self.domain.reindex_note(params.note_id)
        return note.meta()

    async def _list_tasks(self, params: ListTasksParams):
        return self.domain.list_tasks(params.to_filter())

    async def _task_detail(self, params: TaskDetailParams):
        detail = self.domain.task_detail(params.task_id)
        if detail is None:
            raise NotFoundError(f"Task not found: {params.task_id}")
        return detail

    async def _items_for_tag(self, params: TagParams):
        items = self.domain.items_for_tag(params.tag)
        if items is None:
            raise NotFoundError(f"Tag not found: {params.tag}")
        return items

    async def _list_tags(self, params: EmptyParams):
        return self.domain.list_tags()

    async def _notes_in_range(self, params: RangeParams):
        return self.domain.notes_in_range(params.to_range())

    async def _weekly_summary(self, params: RangeParams):
        return self.domain.weekly_summary(params.to_range())

    async def _open_daily(self, params: OpenDailyParams):
        return await self.domain.open_daily(params.date)

    async def _read_note(self, params: NoteParams):
        note = self.domain.read_note(params.note_id)
        if note is None:
            raise NoteNotFoundError(f"Note not found: {params.note_id}")
        return note

    async def _write_note(self, params: WriteNoteParams):
        return await self.domain.write_note(params.note_id, params.content)

    # ============== Stream loop ==============

    async def serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Read, dispatch and answer requests one line at a time until EOF.

        Requests on one stream are handled strictly in order, so responses
        come back in request order.
        """
        peer = writer.get_extra_info("peername")
        logger.info("client_connected", peer=str(peer) if peer else "stdio")
        try:
            while True:
                try:
                    line = await reader.readline()
                except ValueError:
                    # Line longer than STREAM_LIMIT
                    logger.warning("request_too_large", limit=STREAM_LIMIT)
                    writer.write(encode_message(
                        jsonrpc_error(INVALID_REQUEST, "Invalid request: line too long", request_id=None)
                    ))
                    await writer.drain()
                    continue
                except ConnectionError:
                    break
                if not line:
                    break
                if not line.strip():
                    continue

                try:
                    response = await self.handle_line(line)
                except Exception as e:
                    logger.exception("rpc_request_failed")
                    response = jsonrpc_error(INTERNAL_ERROR, f"Internal error: {e}", request_id=None)
                if response is not None:
                    writer.write(encode_message(response))
                    await writer.drain()
        finally:
            logger.info("client_disconnected", peer=str(peer) if peer else "stdio")
            writer.close()


async def run_stdio(gateway: RpcGateway) -> None:
    """Serve requests from stdin, answering on stdout."""
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=STREAM_LIMIT)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    transport, protocol = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, sys.stdout)
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    await gateway.serve(reader, writer)


async def run_tcp(gateway: RpcGateway, host: str, port: int) -> None:
    """Serve each TCP connection with its own sequential request loop."""
    server = await asyncio.start_server(gateway.serve, host, port, limit=STREAM_LIMIT)
    logger.info("tcp_listening", host=host, port=port)
    async with server:
        await server.serve_forever()
