"""Escape-tunneling codec for characters outside the legacy charset.

Mainframe extracts carry code points the legacy charset cannot represent as
`\\<hex>\\` escapes (for example `\\2CC56\\`), and a literal backslash as `\\\\`.
"""

from __future__ import annotations

import string
from collections.abc import Callable
from typing import NamedTuple

ESCAPE_CHAR = "\\"
_HEX_DIGITS = frozenset(string.hexdigits)
_MAX_CODE_POINT = 0x10FFFF


class UnescapeResult(NamedTuple):
    """Unescaped text and whether any escape was resolved."""

    text: str
    changed: bool


def unescape(text: str) -> UnescapeResult:
    """Resolve `\\<hex>\\` escapes and `\\\\` into real characters.

    Malformed escapes (non-hex digits, surrogates, out-of-range code points) and
    an unterminated trailing escape are copied through verbatim.
    """

    if ESCAPE_CHAR not in text:
        return UnescapeResult(text, False)

    output: list[str] = []
    hex_buffer: list[str] = []
    in_escape = False
    for char in text:
        if not in_escape:
            if char == ESCAPE_CHAR:
                in_escape = True
                hex_buffer.clear()
            else:
                output.append(char)
            continue

        if char != ESCAPE_CHAR:
            hex_buffer.append(char)
            continue

        in_escape = False
        if not hex_buffer:
            output.append(ESCAPE_CHAR)
            continue
        decoded = _decode_code_point("".join(hex_buffer))
        if decoded is None:
            output.append(ESCAPE_CHAR)
            output.extend(hex_buffer)
            output.append(ESCAPE_CHAR)
        else:
            output.append(decoded)

    if in_escape:
        output.append(ESCAPE_CHAR)
        output.extend(hex_buffer)

    result = "".join(output)
    return UnescapeResult(result, result != text)


def escape_for_check(text: str, can_encode: Callable[[str], bool]) -> str:
    """Re-derive the escaped legacy-safe form of `text`.

    Characters the legacy encoder can represent are kept; every other code point
    becomes `\\<HEX>\\` and a backslash always becomes `\\\\`.
    """

    output: list[str] = []
    for char in text:
        if char == ESCAPE_CHAR:
            output.append(ESCAPE_CHAR * 2)
        elif can_encode(char):
            output.append(char)
        else:
            output.append(f"{ESCAPE_CHAR}{ord(char):X}{ESCAPE_CHAR}")
    return "".join(output)


def _decode_code_point(hex_text: str) -> str | None:
    if not all(char in _HEX_DIGITS for char in hex_text):
        return None
    code_point = int(hex_text, 16)
    if code_point > _MAX_CODE_POINT or 0xD800 <= code_point <= 0xDFFF:
        return None
    return chr(code_point)


__all__ = ["ESCAPE_CHAR", "UnescapeResult", "escape_for_check", "unescape"]
