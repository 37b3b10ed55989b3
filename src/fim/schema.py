"""Schema version gate, applied after every load and before every save."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fim.errors import SchemaError
from fim.models import CURRENT_SCHEMA_VERSION

if TYPE_CHECKING:
    from fim.models import BoardDocument


def validate(doc: BoardDocument) -> None:
    """Raise SchemaError unless 1 <= schema_version <= CURRENT_SCHEMA_VERSION.

    There is no migration: older-but-valid versions pass unchanged, newer
    versions are refused outright.
    """
    version = doc.schema_version
    if version < 1:
        msg = "Invalid or missing schema version"
        raise SchemaError(msg)
    if version > CURRENT_SCHEMA_VERSION:
        msg = f"Unsupported schema version {version}. Please update the application."
        raise SchemaError(msg)
