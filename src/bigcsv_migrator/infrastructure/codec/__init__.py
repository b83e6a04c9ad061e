"""Charset and escape-tunneling codecs."""

from bigcsv_migrator.infrastructure.codec.escape_tunneling import (
    ESCAPE_CHAR,
    UnescapeResult,
    escape_for_check,
    unescape,
)
from bigcsv_migrator.infrastructure.codec.legacy_charset import (
    REPLACEMENT_CHAR,
    LegacyCharset,
    iter_records,
)

__all__ = [
    "ESCAPE_CHAR",
    "LegacyCharset",
    "REPLACEMENT_CHAR",
    "UnescapeResult",
    "escape_for_check",
    "iter_records",
    "unescape",
]
