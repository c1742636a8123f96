"""Wire-level value types used inside a Chromium Bookmarks file.

Every type here has exactly one accepted wire representation. Decoding is
strict: anything outside the accepted form raises DecodeError instead of
being coerced.
"""
import base64
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from typing import Any, Optional

from bookmarks_recovery.errors import (
    DecodeError,
    EncodeError,
    GUIDError,
    InvalidGUIDFormat,
    InvalidGUIDHex,
)


# Seconds between 1601-01-01 and 1970-01-01
CHROME_EPOCH_DELTA_SECONDS = 11644473600
_EPOCH_DELTA_MICROS = CHROME_EPOCH_DELTA_SECONDS * 1_000_000

_UNIX_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_DECIMAL_RE = re.compile(r"[+-]?[0-9]+")


def _trunc_div(value: int, divisor: int) -> int:
    """Integer division rounding toward zero."""
    quotient = abs(value) // divisor
    return -quotient if value < 0 else quotient


@dataclass(frozen=True, order=True)
class Timestamp:
    """Microseconds since 1601-01-01T00:00:00Z, the browser's native epoch.

    The value 0 is the "unset" sentinel. It is never a real instant, so it
    has no datetime and is left out of the wire form.
    """
    value: int = 0

    def is_zero(self) -> bool:
        return self.value == 0

    def to_unix_microseconds(self) -> int:
        return self.value - _EPOCH_DELTA_MICROS

    def to_unix_seconds(self) -> int:
        return _trunc_div(self.to_unix_microseconds(), 1_000_000)

    @classmethod
    def from_unix_microseconds(cls, micros: int) -> "Timestamp":
        return cls(micros + _EPOCH_DELTA_MICROS)

    @classmethod
    def from_datetime(cls, dt: datetime) -> "Timestamp":
        """Convert a datetime; naive values are taken to be UTC."""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        delta = dt - _UNIX_EPOCH
        micros = (delta.days * 86400 + delta.seconds) * 1_000_000 + delta.microseconds
        return cls.from_unix_microseconds(micros)

    def to_datetime(self) -> Optional[datetime]:
        """Return the instant as an aware UTC datetime, or None when unset.

        Raises:
            OverflowError: If the instant is outside the datetime range
        """
        if self.is_zero():
            return None
        return _UNIX_EPOCH + timedelta(microseconds=self.to_unix_microseconds())

    def format(self, fmt: str) -> str:
        """strftime-style formatting; unset timestamps format as 'unset'.

        Dates are not covered by the checksum, so a verified file can still
        hold instants outside the datetime range; those format as the raw
        value.
        """
        try:
            dt = self.to_datetime()
        except OverflowError:
            return str(self.value)
        if dt is None:
            return "unset"
        return dt.strftime(fmt)

    def __str__(self) -> str:
        if self.is_zero():
            return "unset"
        try:
            return self.to_datetime().isoformat()
        except OverflowError:
            return f"{self.value} (out of range)"

    @classmethod
    def from_json(cls, value: Any) -> "Timestamp":
        """Decode the wire form: a string of decimal digits, null or absent."""
        if value is None:
            return cls()
        if not isinstance(value, str):
            raise DecodeError(f"timestamp must be a string, got {type(value).__name__}")
        if not _DECIMAL_RE.fullmatch(value):
            raise DecodeError(f"invalid timestamp {value!r}")
        parsed = int(value)
        if not _INT64_MIN <= parsed <= _INT64_MAX:
            raise DecodeError(f"timestamp {value!r} out of range")
        return cls(parsed)

    def to_json(self) -> Optional[str]:
        if self.is_zero():
            return None
        return str(self.value)


# Nibble value for every byte, 255 for anything that is not a hex digit
_HEX_VALUES = bytes(
    int(chr(i), 16) if chr(i) in "0123456789abcdefABCDEF" else 255
    for i in range(256)
)

# Offset of the first digit of each byte pair in the 36-char form
_GUID_PAIRS = (0, 2, 4, 6, 9, 11, 14, 16, 19, 21, 24, 26, 28, 30, 32, 34)
_GUID_HYPHENS = (8, 13, 18, 23)


def parse_guid(text: str) -> bytes:
    """Parse a hyphenated GUID string into its 16 bytes.

    Args:
        text: GUID in xxxxxxxx-xxxx-xxxx-xxxx-xxxxxxxxxxxx form, any case

    Returns:
        The 16 raw bytes

    Raises:
        InvalidGUIDFormat: If the length or hyphen layout is wrong
        InvalidGUIDHex: If any digit position holds a non-hex character
    """
    raw = text.encode("utf-8", "surrogatepass")
    if len(raw) != 36 or any(raw[i] != 0x2D for i in _GUID_HYPHENS):
        raise InvalidGUIDFormat(f"invalid guid format: {text!r}")

    out = bytearray(16)
    for i, pos in enumerate(_GUID_PAIRS):
        hi = _HEX_VALUES[raw[pos]]
        lo = _HEX_VALUES[raw[pos + 1]]
        if (hi | lo) > 15:
            raise InvalidGUIDHex(f"invalid guid hex char: {text!r}")
        out[i] = (hi << 4) | lo
    return bytes(out)


def format_guid(data: bytes) -> str:
    """Format 16 bytes as a canonical lowercase GUID string."""
    if len(data) != 16:
        raise ValueError(f"guid must be 16 bytes, got {len(data)}")
    h = data.hex()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


@dataclass(frozen=True)
class GUID:
    """A GUID as it appeared on the wire.

    The original text is kept so a decoded file re-encodes byte for byte;
    str() always goes through parse_guid and returns the canonical form.
    """
    text: str

    def to_bytes(self) -> bytes:
        return parse_guid(self.text)

    def is_valid(self) -> bool:
        try:
            parse_guid(self.text)
        except GUIDError:
            return False
        return True

    def canonical(self) -> str:
        """Raises GUIDError if the text is not a valid GUID."""
        return format_guid(parse_guid(self.text))

    def __str__(self) -> str:
        try:
            return self.canonical()
        except GUIDError:
            return ""

    @classmethod
    def from_bytes(cls, data: bytes) -> "GUID":
        return cls(format_guid(data))

    @classmethod
    def from_json(cls, value: Any) -> "GUID":
        if not isinstance(value, str):
            raise DecodeError(f"guid must be a string, got {type(value).__name__}")
        parse_guid(value)
        return cls(value)

    def to_json(self) -> str:
        try:
            parse_guid(self.text)
        except GUIDError as e:
            raise EncodeError(str(e)) from e
        return self.text


class Version(IntEnum):
    """Bookmarks file format version."""
    CURRENT = 1

    @classmethod
    def from_json(cls, value: Any) -> "Version":
        # bool is an int subclass; the wire form is a bare integer only
        if type(value) is not int:
            raise DecodeError(f"version must be an integer, got {value!r}")
        try:
            return cls(value)
        except ValueError:
            raise DecodeError(f"unsupported bookmarks version {value}") from None


class NodeType(str, Enum):
    URL = "url"
    FOLDER = "folder"

    @classmethod
    def from_json(cls, value: Any) -> "NodeType":
        return _decode_enum(cls, value, "node type")


class Source(str, Enum):
    """Where a node came from. Only written by Microsoft Edge."""
    USER_ADD = "user_add"
    IMPORT_FRE = "import_fre"
    UNKNOWN = "unknown"

    @classmethod
    def from_json(cls, value: Any) -> "Source":
        return _decode_enum(cls, value, "source")


def _decode_enum(cls, value: Any, what: str):
    if not isinstance(value, str):
        raise DecodeError(f"{what} must be a string, got {value!r}")
    try:
        return cls(value)
    except ValueError:
        raise DecodeError(f"unrecognized {what} {value!r}") from None


def decode_opaque_bytes(value: Any) -> Optional[bytes]:
    """Decode base64 wire bytes. null is None, "" is b"" (kept distinct)."""
    if value is None:
        return None
    if not isinstance(value, str):
        raise DecodeError(f"bytes must be a base64 string, got {type(value).__name__}")
    if value == "":
        return b""
    try:
        return base64.b64decode(value, validate=True)
    except ValueError as e:
        raise DecodeError(f"invalid base64: {e}") from e


def encode_opaque_bytes(data: Optional[bytes]) -> Optional[str]:
    if data is None:
        return None
    if not data:
        return ""
    return base64.b64encode(data).decode("ascii")
