"""Carve Chromium Bookmarks files out of disk images and other raw data.

The scan is a single forward pass. A candidate starts at the 17-byte prefix
the browser always writes at the top of the file; its opening brace occurs
nowhere else in the prefix, so a partial match can be dropped at the current
byte and the matcher never goes back over consumed input. Candidates then go
through a cheap marker check, a bounded structural scan for the end of the
JSON object and finally a strict decode with checksum verification. Only
verified documents are reported.
"""
import logging
import re
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, List, Optional, Protocol, Union

from bookmarks_recovery.codec import Document, decode
from bookmarks_recovery.errors import DecodeError, Stop


logger = logging.getLogger(__name__)

PREFIX = b'{\n   "checksum": "'
ROOTS_MARKER = b'   "roots": {\n      "bookmark_bar": {'

BUFFER_SIZE = 8192
WINDOW_SIZE = 20 * 1024 * 1024
LOOKAHEAD_SIZE = 1024

# Chunk size used while looking for the end of a candidate object
_SCAN_CHUNK = 64 * 1024

_STRUCTURAL = re.compile(rb'[{}\[\]"\\]')
_IN_STRING = re.compile(rb'["\\]')


class ByteSource(Protocol):
    """Random-access byte source."""

    def read_at(self, offset: int, size: int) -> bytes:
        """Read up to size bytes at offset. Short or empty reads mean EOF."""
        ...


class BytesSource:
    """In-memory source over bytes, bytearray, memoryview or mmap."""

    def __init__(self, data):
        self._data = memoryview(data)

    def __len__(self) -> int:
        return len(self._data)

    def read_at(self, offset: int, size: int) -> bytes:
        return bytes(self._data[offset:offset + size])


class FileSource:
    """Source over a seekable binary file, optionally limited to a section.

    Args:
        fp: Binary file object supporting seek and read
        start: Offset in the file where the section begins
        length: Section length in bytes, or None to read to the end
    """

    def __init__(self, fp: BinaryIO, start: int = 0, length: Optional[int] = None):
        if start < 0:
            raise ValueError("start must not be negative")
        if length is not None and length < 0:
            raise ValueError("length must not be negative")
        self._fp = fp
        self.start = start
        self.length = length

    def read_at(self, offset: int, size: int) -> bytes:
        if self.length is not None:
            size = min(size, self.length - offset)
        if size <= 0:
            return b""
        self._fp.seek(self.start + offset)
        return self._fp.read(size)


@contextmanager
def open_source(path: Union[str, Path], start: int = 0, length: Optional[int] = None) -> Iterator[FileSource]:
    """Open a file on disk as a ByteSource."""
    with open(path, "rb") as fp:
        yield FileSource(fp, start, length)


@dataclass(frozen=True)
class Match:
    """A verified bookmarks document found in a source."""
    offset: int
    data: bytes
    document: Document

    @property
    def length(self) -> int:
        return len(self.data)

    @property
    def end(self) -> int:
        return self.offset + len(self.data)


CarveSink = Callable[[int, bytes, Document], None]


class _Cursor:
    """Forward-only reader with a fixed read-ahead buffer."""

    def __init__(self, source: ByteSource, buffer_size: int):
        self._source = source
        self._buffer_size = buffer_size
        self._buf = b""
        self._pos = 0
        self._buf_start = 0

    @property
    def offset(self) -> int:
        """Stream offset of the next unread byte."""
        return self._buf_start + self._pos

    def fill(self) -> bool:
        """Make sure at least one byte is buffered. False at EOF."""
        if self._pos < len(self._buf):
            return True
        self._buf_start += len(self._buf)
        self._buf = self._source.read_at(self._buf_start, self._buffer_size)
        self._pos = 0
        return len(self._buf) > 0

    def seek(self, offset: int) -> None:
        """Move forward to offset, keeping the buffer if it still covers it."""
        if offset < self.offset:
            raise ValueError("cursor only moves forward")
        if offset <= self._buf_start + len(self._buf):
            self._pos = offset - self._buf_start
        else:
            self._buf_start = offset
            self._buf = b""
            self._pos = 0

    def find_prefix(self, prefix: bytes) -> Optional[int]:
        """Consume bytes up to and including the next full prefix match.

        Returns:
            The stream offset just past the match, or None at EOF
        """
        first = prefix[0]
        matched = 0
        while self.fill():
            buf = self._buf
            if matched == 0:
                i = buf.find(first, self._pos)
                if i < 0:
                    self._pos = len(buf)
                    continue
                self._pos = i + 1
                matched = 1
            while matched < len(prefix) and self._pos < len(buf):
                c = buf[self._pos]
                self._pos += 1
                if c == prefix[matched]:
                    matched += 1
                elif c == first:
                    matched = 1
                else:
                    matched = 0
                    break
            if matched == len(prefix):
                return self.offset
        return None


def _object_extent(chunks: Iterator[bytes], limit: int) -> Optional[bytes]:
    """Collect bytes up to the end of the first JSON object in chunks.

    Only the structure is tracked: brace and bracket nesting, and strings
    with their escapes. Full validation is left to the decoder.

    Returns:
        The object's bytes, or None if it is unbalanced, hits a stray
        character the structure rules out, or does not end within limit bytes
    """
    collected = bytearray()
    stack: List[int] = []
    in_string = False
    escaped_at = -1

    for chunk in chunks:
        base = len(collected)
        collected += chunk
        pos = base
        end = len(collected)
        while pos < end:
            if in_string:
                m = _IN_STRING.search(collected, pos, end)
                if m is None:
                    break
                i = m.start()
                pos = i + 1
                if i == escaped_at:
                    continue
                if collected[i] == 0x5C:  # backslash
                    escaped_at = i + 1
                else:
                    in_string = False
                continue

            m = _STRUCTURAL.search(collected, pos, end)
            if m is None:
                break
            i = m.start()
            pos = i + 1
            c = collected[i]
            if c == 0x22:  # quote
                in_string = True
            elif c in (0x7B, 0x5B):  # { [
                stack.append(c)
            elif c == 0x7D:  # }
                if not stack or stack.pop() != 0x7B:
                    return None
            elif c == 0x5D:  # ]
                if not stack or stack.pop() != 0x5B:
                    return None
            else:  # backslash outside a string
                return None
            if not stack:
                if pos > limit:
                    return None
                return bytes(collected[:pos])

        if len(collected) > limit:
            return None
    return None


def _window_chunks(source: ByteSource, prefix: bytes, lookahead: bytes, start: int, end: int) -> Iterator[bytes]:
    yield prefix
    yield lookahead
    offset = start + len(lookahead)
    while offset < end:
        chunk = source.read_at(offset, min(_SCAN_CHUNK, end - offset))
        if not chunk:
            return
        offset += len(chunk)
        yield chunk


def iter_carve(
    source: ByteSource,
    buffer_size: int = BUFFER_SIZE,
    window_size: int = WINDOW_SIZE,
    lookahead_size: int = LOOKAHEAD_SIZE,
) -> Iterator[Match]:
    """Yield every verified bookmarks document in source, in offset order.

    Args:
        source: Byte source to scan
        buffer_size: Read-ahead buffer used by the prefix scan
        window_size: Most bytes a candidate may span after its prefix
        lookahead_size: Bytes read after a prefix to look for the roots marker

    Raises:
        OSError: If reading the source fails
    """
    if buffer_size <= 0 or window_size <= 0:
        raise ValueError("buffer_size and window_size must be positive")
    if lookahead_size < len(ROOTS_MARKER):
        raise ValueError(f"lookahead_size must be at least {len(ROOTS_MARKER)}")

    cursor = _Cursor(source, buffer_size)
    while True:
        body = cursor.find_prefix(PREFIX)
        if body is None:
            return
        start = body - len(PREFIX)

        lookahead = source.read_at(body, min(lookahead_size, window_size))
        if ROOTS_MARKER not in lookahead:
            continue

        data = _object_extent(
            _window_chunks(source, PREFIX, lookahead, body, body + window_size),
            window_size + len(PREFIX),
        )
        if data is None:
            logger.debug("Candidate at %d: no complete object within window", start)
            continue

        try:
            document, valid = decode(data)
        except DecodeError as e:
            logger.debug("Candidate at %d: %s", start, e)
            continue
        if not valid:
            logger.debug("Candidate at %d: checksum mismatch", start)
            continue

        yield Match(start, data, document)
        cursor.seek(start + len(data))


def carve(
    source: ByteSource,
    sink: Optional[CarveSink],
    buffer_size: int = BUFFER_SIZE,
    window_size: int = WINDOW_SIZE,
    lookahead_size: int = LOOKAHEAD_SIZE,
) -> int:
    """Report every verified bookmarks document in source to sink.

    sink(offset, data, document) is called once per match in increasing
    offset order. It may raise Stop to end the scan early without error;
    any other exception propagates and aborts the scan.

    Returns:
        Number of matches reported
    """
    count = 0
    try:
        for match in iter_carve(source, buffer_size, window_size, lookahead_size):
            count += 1
            if sink is not None:
                sink(match.offset, match.data, match.document)
    except Stop:
        pass
    return count
