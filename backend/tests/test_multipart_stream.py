"""Tests for scanbox.core.services.multipart_stream"""

import pytest

from conftest import BOUNDARY, build_multipart
from scanbox.core.errors import ParseError, PayloadTooLargeError
from scanbox.core.services.multipart_stream import (
    MultipartStream,
    ParserState,
    PartData,
    PartEnded,
    PartStarted,
)

BAD_SECOND_PART = b"--XYZ\r\nno colon here\r\n\r\nx\r\n--XYZ--\r\n"


def collect(events, parts=None):
    parts = [] if parts is None else parts
    for event in events:
        if isinstance(event, PartStarted):
            parts.append([event.headers, b"", False])
        elif isinstance(event, PartData):
            parts[-1][1] += event.data
        elif isinstance(event, PartEnded):
            assert event.size == len(parts[-1][1])
            parts[-1][2] = True
    return parts


def run(data: bytes, chunk_size: int = None, **kwargs):
    """Feed `data` (optionally in fixed-size chunks), close, and collect parts as (headers, body)."""
    stream = MultipartStream(BOUNDARY, **kwargs)
    events = []
    if chunk_size is None:
        events += stream.feed(data)
    else:
        for i in range(0, len(data), chunk_size):
            events += stream.feed(data[i:i + chunk_size])
    stream.close()
    return stream, [(headers, body) for headers, body, _ in collect(events)]


class TestWellFormed:
    def test_single_file_part(self):
        body = build_multipart([("file", "scan.jpg", "image/jpeg", b"\xff\xd8jpegdata")])
        stream, parts = run(body)
        assert stream.state is ParserState.END
        headers, payload = parts[0]
        assert headers.field_name == "file"
        assert headers.filename == "scan.jpg"
        assert headers.content_type == "image/jpeg"
        assert headers.raw["content-type"] == "image/jpeg"
        assert payload == b"\xff\xd8jpegdata"

    @pytest.mark.parametrize("chunk_size", [1, 2, 3, 7, 64])
    def test_chunking_does_not_change_result(self, chunk_size):
        payloads = [b"a" * 1000, b"\r\n--XY\r\n-XYZ--", b"", b"tail\r\n"]
        body = build_multipart([("f", f"p{i}.bin", None, p) for i, p in enumerate(payloads)])
        _, parts = run(body, chunk_size=chunk_size)
        assert [p for _, p in parts] == payloads

    def test_form_field_without_filename(self):
        body = build_multipart([("comment", None, None, b"hello"), ("file", "a.pdf", None, b"%PDF")])
        _, parts = run(body)
        assert parts[0][0].filename is None
        assert not parts[0][0].is_file
        assert parts[1][0].is_file

    def test_preamble_and_epilogue_ignored(self):
        body = b"preamble text\r\n" + build_multipart([("f", "a.txt", None, b"x")]) + b"epilogue"
        _, parts = run(body)
        assert len(parts) == 1 and parts[0][1] == b"x"

    def test_data_after_end_ignored(self):
        stream = MultipartStream(BOUNDARY)
        stream.feed(build_multipart([("f", "a", None, b"x")]))
        assert stream.state is ParserState.END
        assert stream.feed(b"--XYZ\r\nmore") == []
        stream.close()

    def test_body_bytes_released_incrementally(self):
        stream = MultipartStream(BOUNDARY)
        head = b'--XYZ\r\nContent-Disposition: form-data; name="f"; filename="big"\r\n\r\n'
        events = stream.feed(head + b"z" * 10000)
        released = sum(len(e.data) for e in events if isinstance(e, PartData))
        assert released > 9000
        assert stream.state is ParserState.READING_BODY

    def test_states_follow_parts(self):
        stream = MultipartStream(BOUNDARY)
        assert stream.state is ParserState.AWAITING_BOUNDARY
        stream.feed(b'--XYZ\r\nContent-Disposition: form-data; name="f"; filename="a"\r\n\r\nab\r\n--XYZ\r\n')
        assert stream.state in (ParserState.NEXT_PART, ParserState.READING_HEADERS)
        stream.feed(b'Content-Disposition: form-data; name="g"\r\n\r\ncd\r\n--XYZ--\r\n')
        assert stream.state is ParserState.END


class TestMalformed:
    @pytest.mark.parametrize("body", [
        b"no delimiter anywhere " * 10,
        b"--XYZ\r\nnot a header\r\n\r\nbody\r\n--XYZ--\r\n",
        b"--XYZ\r\nContent-Type: text/plain\r\n\r\nbody\r\n--XYZ--\r\n",
        b"--XYZgarbage\r\n",
    ])
    def test_rejected(self, body):
        with pytest.raises(ParseError):
            run(body)

    def test_truncated_body(self):
        body = build_multipart([("f", "a.bin", None, b"x" * 100)])[:-40]
        stream = MultipartStream(BOUNDARY)
        stream.feed(body)
        with pytest.raises(ParseError) as info:
            stream.close()
        assert info.value.part_index == 0

    def test_truncated_headers(self):
        stream = MultipartStream(BOUNDARY)
        stream.feed(b'--XYZ\r\nContent-Disposition: form-data; name="f"')
        with pytest.raises(ParseError):
            stream.close()

    def test_header_limit(self):
        with pytest.raises(ParseError):
            run(b"--XYZ\r\nX-Junk: " + b"j" * 500 + b"\r\n\r\nx\r\n--XYZ--\r\n", max_header_bytes=128)

    def test_part_size_limit(self):
        body = build_multipart([("f", "a.bin", None, b"x" * 100)])
        with pytest.raises(PayloadTooLargeError):
            run(body, max_part_bytes=50)

    def test_part_count_limit(self):
        body = build_multipart([("f", f"{i}.bin", None, b"x") for i in range(3)])
        with pytest.raises(PayloadTooLargeError):
            run(body, max_parts=2)

    def test_error_state_is_absorbing(self):
        stream = MultipartStream(BOUNDARY)
        with pytest.raises(ParseError):
            stream.feed(b"--XYZ\r\nnot a header\r\n\r\n")
            stream.close()
        assert stream.state is ParserState.ERROR
        with pytest.raises(ParseError):
            stream.feed(b"--XYZ--")
        with pytest.raises(ParseError):
            stream.close()


class TestErrorAfterCompletePart:
    """A complete part followed by a broken one in the same chunk keeps its events."""

    def test_events_before_error_are_returned(self):
        good = build_multipart([("file", "a.jpg", None, b"a" * 100)], close=False)
        stream = MultipartStream(BOUNDARY)

        parts = collect(stream.feed(good + BAD_SECOND_PART))

        assert len(parts) == 1
        headers, payload, ended = parts[0]
        assert headers.filename == "a.jpg"
        assert payload == b"a" * 100
        assert ended
        assert stream.state is ParserState.ERROR
        with pytest.raises(ParseError) as info:
            stream.close()
        assert info.value.part_index == 1

    @pytest.mark.parametrize("chunk_size", [1, 64, 4096])
    def test_independent_of_chunking(self, chunk_size):
        data = build_multipart([("file", "a.jpg", None, b"a" * 100)], close=False) + BAD_SECOND_PART
        stream = MultipartStream(BOUNDARY)
        parts = []
        with pytest.raises(ParseError):
            for i in range(0, len(data), chunk_size):
                collect(stream.feed(data[i:i + chunk_size]), parts)
            stream.close()
        assert [(h.filename, p, ended) for h, p, ended in parts] == [("a.jpg", b"a" * 100, True)]
