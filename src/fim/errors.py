"""Error taxonomy for board persistence, recovery and export.

Every public operation raises a BoardError subclass with a human-readable
message. The RPC boundary (fim.service) turns them into error strings.
"""

from __future__ import annotations


class BoardError(Exception):
    """Base class for all recoverable fim errors."""


class IoError(BoardError):
    """A file could not be created, opened, read or written."""


class FormatError(BoardError):
    """The archive is malformed or lacks an expected entry."""


class SerializationError(BoardError):
    """JSON encoding or decoding of the document failed."""


class SchemaError(BoardError):
    """The document's schema version is missing or newer than supported."""


class ResourceLimitError(BoardError):
    """The document payload exceeds the read cap."""


class UnsupportedFormatError(BoardError):
    """The file extension does not select a known format."""


class NotFoundError(BoardError):
    """A recovery file does not exist."""


class ArgumentValidationError(BoardError):
    """A caller-supplied argument is outside the accepted values."""


class CancelledError(BoardError):
    """The user dismissed a file picker."""
