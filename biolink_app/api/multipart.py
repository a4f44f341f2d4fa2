"""
Streaming multipart intake for uploads.

Starlette's form parser spools file parts into temporary files. Uploads
here are relayed straight to media storage instead, so the request body is
fed through ``python_multipart``'s callback parser as it arrives and the
data of the file part is handed out chunk by chunk.
"""

from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator, Deque, List, Optional, Tuple

from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import ClientDisconnect, Request

from biolink_app.exceptions import NoFileError, UploadFailedError


@dataclass(frozen=True)
class FilePart:
    field_name: str
    filename: str
    content_type: Optional[str]


class MultipartFileReader:
    """
    Pulls one file field out of a multipart request without buffering it.

    Usage:
        reader = MultipartFileReader(request)
        part = await reader.open()          # headers of the file part
        async for chunk in reader.chunks(): # its content
            ...
    """

    def __init__(self, request: Request, field_name: str = "file"):
        self.request = request
        self.field_name = field_name
        self._events: Deque[Tuple] = deque()
        self._source = None
        self._parser: Optional[MultipartParser] = None
        self._exhausted = False

        self._header_name = b""
        self._header_value = b""
        self._headers: List[Tuple[bytes, bytes]] = []

    async def open(self) -> FilePart:
        """
        Read up to the end of the file part's headers.

        Raises:
            NoFileError: not multipart, or no file under ``field_name``
        """
        content_type, params = parse_options_header(self.request.headers.get("content-type", ""))
        boundary = params.get(b"boundary")
        if content_type != b"multipart/form-data" or not boundary:
            raise NoFileError()

        self._parser = MultipartParser(boundary, {
            "on_part_begin": self._on_part_begin,
            "on_part_data": self._on_part_data,
            "on_part_end": self._on_part_end,
            "on_header_field": self._on_header_field,
            "on_header_value": self._on_header_value,
            "on_header_end": self._on_header_end,
            "on_headers_finished": self._on_headers_finished,
            "on_end": self._on_end,
        })
        self._source = self.request.stream().__aiter__()

        while True:
            event = await self._next_event()
            if event is None or event[0] == "end":
                raise NoFileError()
            if event[0] == "headers":
                part = self._file_part(event[1])
                if part is not None:
                    return part
                await self._skip_part()

    async def chunks(self) -> AsyncIterator[bytes]:
        """Content of the opened file part, as it arrives."""
        while True:
            event = await self._next_event()
            if event is None or event[0] in ("part_end", "end"):
                return
            if event[0] == "data":
                yield event[1]

    async def _skip_part(self) -> None:
        while True:
            event = await self._next_event()
            if event is None or event[0] in ("part_end", "end"):
                return

    async def _next_event(self) -> Optional[Tuple]:
        while not self._events:
            if self._exhausted:
                return None
            try:
                chunk = await self._source.__anext__()
            except StopAsyncIteration:
                self._parser.finalize()
                self._exhausted = True
                continue
            except ClientDisconnect as e:
                raise UploadFailedError(diagnostic="client disconnected mid-upload") from e
            if chunk:
                self._parser.write(chunk)
        return self._events.popleft()

    def _file_part(self, headers: List[Tuple[bytes, bytes]]) -> Optional[FilePart]:
        disposition = b""
        content_type = None
        for name, value in headers:
            if name == b"content-disposition":
                disposition = value
            elif name == b"content-type":
                content_type = value.decode("latin-1")

        _, options = parse_options_header(disposition)
        field_name = options.get(b"name", b"").decode("utf-8", "replace")
        filename = options.get(b"filename")
        if field_name != self.field_name or not filename:
            return None
        return FilePart(
            field_name=field_name,
            filename=filename.decode("utf-8", "replace"),
            content_type=content_type,
        )

    # python_multipart callbacks (called synchronously from parser.write)

    def _on_part_begin(self) -> None:
        self._headers = []

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        self._events.append(("data", bytes(data[start:end])))

    def _on_part_end(self) -> None:
        self._events.append(("part_end",))

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_name += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._headers.append((self._header_name.lower(), self._header_value))
        self._header_name = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        self._events.append(("headers", self._headers))

    def _on_end(self) -> None:
        self._events.append(("end",))
