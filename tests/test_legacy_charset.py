from __future__ import annotations

import io

import pytest

from bigcsv_migrator.domain.errors import MigrationValidationError
from bigcsv_migrator.infrastructure.codec import REPLACEMENT_CHAR, LegacyCharset, iter_records


def test_unknown_encoding_is_a_validation_error() -> None:
    with pytest.raises(MigrationValidationError):
        LegacyCharset("no-such-codec")


def test_decode_never_raises_and_marks_malformed_bytes() -> None:
    charset = LegacyCharset("utf-8")

    decoded = charset.decode(b"ok\xff")

    assert decoded == f"ok{REPLACEMENT_CHAR}"


def test_can_encode_reports_representability() -> None:
    charset = LegacyCharset("cp037")

    assert charset.can_encode("A")
    assert charset.can_encode("é")
    assert not charset.can_encode("中")


def test_encode_approx_replaces_unrepresentable_characters() -> None:
    charset = LegacyCharset("cp037")

    encoded = charset.encode_approx("A中")

    assert encoded[:1] == "A".encode("cp037")
    assert len(encoded) == 2


def test_open_text_decodes_legacy_stream() -> None:
    charset = LegacyCharset("cp037")
    stream = io.BytesIO("a,b\nc,d\n".encode("cp037"))

    with charset.open_text(stream) as text:
        assert list(text) == ["a,b\n", "c,d\n"]


def test_iter_records_splits_on_custom_separator() -> None:
    text = io.StringIO("a,b\u0085c,d\u0085tail")

    assert list(iter_records(text, "\u0085")) == ["a,b\n", "c,d\n", "tail\n"]


def test_iter_records_uses_stream_lines_without_separator() -> None:
    text = io.StringIO("a\nb\n")

    assert list(iter_records(text, None)) == ["a\n", "b\n"]
