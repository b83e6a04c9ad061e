"""Signal file payload dropped next to the source extracts."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SignalFile(BaseModel):
    """`*.ok` JSON document announcing one table worth of source files."""

    model_config = ConfigDict(extra="ignore")

    ddl: str = Field(min_length=1)
    csv: list[str] = Field(min_length=1)
    table: str | None = None
    schema_name: str | None = Field(default=None, alias="schema")

    @field_validator("ddl")
    @classmethod
    def validate_ddl(cls, value: str) -> str:
        """Reject a blank DDL reference."""

        stripped = value.strip()
        if not stripped:
            raise ValueError("ddl is empty")
        return stripped

    @field_validator("table", "schema_name")
    @classmethod
    def strip_text(cls, value: str | None) -> str | None:
        """Trim whitespace and treat blank optional values as missing."""

        if value is None:
            return None
        stripped = value.strip()
        return stripped or None

    @field_validator("csv")
    @classmethod
    def validate_csv_entries(cls, value: list[str]) -> list[str]:
        """Reject blank entries in the file list."""

        entries = [item.strip() for item in value]
        for index, entry in enumerate(entries, start=1):
            if not entry:
                raise ValueError(f"csv entry {index} is empty")
        return entries


__all__ = ["SignalFile"]
