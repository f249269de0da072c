from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from multipart import MultipartError, MultipartSegment, PushMultipartParser

from scanbox.core.entities import PartHeaders
from scanbox.core.errors import ParseError, PayloadTooLargeError

log = logging.getLogger("scanbox.multipart")


class ParserState(enum.Enum):
    AWAITING_BOUNDARY = "awaiting_boundary"
    READING_HEADERS = "reading_headers"
    READING_BODY = "reading_body"
    NEXT_PART = "next_part"
    END = "end"
    ERROR = "error"


@dataclass(frozen=True)
class PartStarted:
    index: int
    headers: PartHeaders


@dataclass(frozen=True)
class PartData:
    data: bytes


@dataclass(frozen=True)
class PartEnded:
    index: int
    size: int


Event = Union[PartStarted, PartData, PartEnded]


class MultipartStream:
    """
    Push-style wrapper around `multipart.PushMultipartParser`.

    Chunks go in through `feed()` in arrival order and come back out as
    part events; `close()` must be called once the body is exhausted and
    fails unless the closing delimiter was seen. Part size and part count
    limits are enforced here so they surface as PayloadTooLargeError.

    A framing error never discards events decoded before it: `feed()`
    returns what it has and the error is raised by the next `feed()` or
    `close()`. Once in ERROR every call raises.
    """

    def __init__(
        self,
        boundary: str,
        max_header_bytes: int = 16 * 1024,
        max_part_bytes: Optional[int] = None,
        max_parts: Optional[int] = None,
    ):
        if not boundary:
            raise ValueError("boundary must not be empty")
        self._parser = PushMultipartParser(boundary, max_header_size=max_header_bytes)
        self.max_part_bytes = max_part_bytes
        self.max_parts = max_parts

        self.state = ParserState.AWAITING_BOUNDARY
        self._part_index = -1
        self._part_size = 0
        self._error: Optional[ParseError] = None

    # ------------------------------------------------------------------
    def feed(self, data: bytes) -> List[Event]:
        self._check_error()
        if self.state is ParserState.END:
            return []  # epilogue
        if self.state is ParserState.NEXT_PART:
            self.state = ParserState.READING_HEADERS

        events: List[Event] = []
        try:
            for result in self._parser.parse(data):
                self._dispatch(result, events)
        except MultipartError as e:
            self._record(ParseError(f"Malformed multipart body: {e}", part_index=self._current_index()))
        except ParseError as e:
            self._record(e)

        if self._parser.closed and self.state is not ParserState.ERROR:
            log.debug("Closing boundary reached after %d part(s)", self._part_index + 1)
            self.state = ParserState.END
        if self.state is ParserState.ERROR and not events:
            self._check_error()
        return events

    def close(self) -> None:
        self._check_error()
        if self.state is ParserState.END:
            return
        where = self.state.value
        self._parser.close(check_complete=False)
        self._record(ParseError(f"Stream ended before closing boundary (state={where})",
                                part_index=self._current_index()))
        self._check_error()

    # ------------------------------------------------------------------
    def _check_error(self) -> None:
        if self.state is ParserState.ERROR:
            raise self._error or ParseError("Parser is in error state")

    def _record(self, error: ParseError) -> None:
        self.state = ParserState.ERROR
        self._error = error

    def _current_index(self) -> Optional[int]:
        """Index of the part the parser is inside of, if any."""
        if self.state is ParserState.READING_BODY:
            return self._part_index
        if self.state in (ParserState.NEXT_PART, ParserState.READING_HEADERS):
            return self._part_index + 1
        return None

    def _dispatch(self, result, events: List[Event]) -> None:
        if isinstance(result, MultipartSegment):
            if self.max_parts is not None and self._part_index + 1 >= self.max_parts:
                raise PayloadTooLargeError(f"Too many parts (limit {self.max_parts})")
            self._part_index += 1
            self._part_size = 0
            self.state = ParserState.READING_BODY
            events.append(PartStarted(self._part_index, _part_headers(result)))
        elif result:
            self._part_size += len(result)
            if self.max_part_bytes is not None and self._part_size > self.max_part_bytes:
                raise PayloadTooLargeError(
                    f"Part exceeds {self.max_part_bytes} bytes", part_index=self._part_index
                )
            # the parser reuses its buffers between calls
            events.append(PartData(bytes(result)))
        elif result is None:
            events.append(PartEnded(self._part_index, self._part_size))
            self.state = ParserState.NEXT_PART


def _part_headers(segment: MultipartSegment) -> PartHeaders:
    return PartHeaders(
        field_name=segment.name or "",
        filename=segment.filename,
        content_type=segment.content_type,
        raw={name.lower(): value for name, value in segment.headerlist},
    )
