"""Exceptions raised by the bookmarks recovery toolkit."""


class BookmarksError(Exception):
    """Base class for bookmark decoding and encoding failures."""


class DecodeError(BookmarksError, ValueError):
    """The input is not a structurally valid bookmarks document."""


class EncodeError(BookmarksError, ValueError):
    """A value cannot be represented in the bookmarks wire format."""


class GUIDError(DecodeError):
    """A GUID string could not be parsed."""


class InvalidGUIDFormat(GUIDError):
    """Wrong length or hyphens in the wrong place."""


class InvalidGUIDHex(GUIDError):
    """A non-hex character where a hex digit was expected."""


class Stop(Exception):
    """Raised by a walk visitor or carve sink to end early without error.

    The walk and carve entry points swallow it; anything else a visitor or
    sink raises propagates to the caller.
    """
