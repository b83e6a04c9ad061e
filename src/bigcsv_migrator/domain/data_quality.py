"""Data-quality classifications emitted by the transcode engine."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field


class RowErrorType(StrEnum):
    """Why a source row was routed to the error file."""

    COLUMN_COUNT_MISMATCH = "COLUMN_COUNT_MISMATCH"
    STABILITY_MISMATCH = "STABILITY_MISMATCH"


class ColumnErrorReason(StrEnum):
    """Why one cell failed stability validation."""

    CONTAINS_REPLACEMENT_CHAR = "CONTAINS_REPLACEMENT_CHAR"
    STABILITY_MISMATCH = "STABILITY_MISMATCH"


class ColumnErrorDetail(BaseModel):
    """One failing cell, serialized into the error file JSON column."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    column_index: int = Field(alias="columnIndex")
    error_reason: ColumnErrorReason = Field(alias="errorReason")
    legacy_base64: str = Field(alias="legacyBase64")
    utf8_base64: str = Field(alias="utf8Base64")


__all__ = ["ColumnErrorDetail", "ColumnErrorReason", "RowErrorType"]
