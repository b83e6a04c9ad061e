"""Legacy (EBCDIC family) charset helpers built on Python codecs."""

from __future__ import annotations

import codecs
import io
from collections.abc import Iterator
from functools import lru_cache
from typing import BinaryIO

from bigcsv_migrator.domain.errors import MigrationValidationError

REPLACEMENT_CHAR = "\ufffd"
_READ_CHUNK_CHARS = 64 * 1024


@lru_cache(maxsize=65536)
def _can_encode(encoding: str, char: str) -> bool:
    try:
        char.encode(encoding)
    except UnicodeEncodeError:
        return False
    return True


class LegacyCharset:
    """Lenient decoder and representability checks for one legacy encoding."""

    def __init__(self, encoding: str) -> None:
        try:
            info = codecs.lookup(encoding)
        except LookupError as exc:
            raise MigrationValidationError(f"Unknown legacy encoding '{encoding}'.") from exc
        self._encoding = info.name

    @property
    def encoding(self) -> str:
        """Return the normalized codec name."""

        return self._encoding

    def open_text(self, stream: BinaryIO) -> io.TextIOWrapper:
        """Wrap a binary stream with a decoder that never raises."""

        return io.TextIOWrapper(stream, encoding=self._encoding, errors="replace", newline="")

    def decode(self, data: bytes) -> str:
        """Decode bytes, replacing malformed sequences with U+FFFD."""

        return data.decode(self._encoding, errors="replace")

    def can_encode(self, char: str) -> bool:
        """Return whether the legacy encoder can represent `char`."""

        return _can_encode(self._encoding, char)

    def encode_approx(self, text: str) -> bytes:
        """Best-effort legacy encoding, unrepresentable characters replaced."""

        return text.encode(self._encoding, errors="replace")


def iter_records(text: io.TextIOBase, separator: str | None) -> Iterator[str]:
    """Yield physical lines for the csv module.

    With no separator the stream's own universal line splitting is used. A custom
    separator (for example the EBCDIC NEL, U+0085) is split on manually and each
    line is handed over with a trailing newline.
    """

    if not separator:
        yield from text
        return

    pending = ""
    while True:
        chunk = text.read(_READ_CHUNK_CHARS)
        if not chunk:
            break
        pending += chunk
        *lines, pending = pending.split(separator)
        for line in lines:
            yield f"{line}\n"
    if pending:
        yield f"{pending}\n"


__all__ = ["LegacyCharset", "REPLACEMENT_CHAR", "iter_records"]
