"""Application settings."""

import codecs
from enum import StrEnum
from typing import Annotated

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from bigcsv_migrator.domain.verification import VerifyStrategy


class RepositoryBackend(StrEnum):
    """Available persistence adapters for migration state."""

    IN_MEMORY = "in_memory"
    POSTGRES = "postgres"


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "BigCSV Migrator"
    api_prefix: str = ""
    host: str = "0.0.0.0"
    port: int = 8080
    node_id: str = "node-local"
    node_base_url: str | None = None
    cluster_nodes: Annotated[dict[str, str], NoDecode] = Field(default_factory=dict)
    forward_timeout_seconds: float = 10.0

    repository_backend: RepositoryBackend = RepositoryBackend.IN_MEMORY
    postgres_dsn: str | None = None
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10

    dispatch_interval_seconds: float = 2.0
    transcode_fetch_limit: int = 5
    load_fetch_limit: int = 20
    verify_fetch_limit: int = 20
    transcode_workers: int = 2
    load_workers: int = 4
    verify_workers: int = 4

    output_dir: str = "./migration-output"
    source_encoding: str = "cp037"
    csv_delimiter: str = ","
    csv_quote_char: str = '"'
    csv_has_header: bool = False
    record_separator: str | None = None
    tunneling_enabled: bool = False
    split_rows: int = 500_000
    transcode_step_rows: int = 5_000

    load_max_retries: int = 0
    load_retry_base_delay_seconds: float = 2.0
    load_pre_sql: Annotated[list[str], NoDecode] = Field(default_factory=list)
    source_row_no_column: str = "source_row_no"
    split_id_column: str = "csv_split_id"

    verify_content: bool = False
    verify_strategy: VerifyStrategy = VerifyStrategy.USE_UTF8_SPLIT
    verify_max_diff_count: int = 1
    verify_fetch_size: int = 1000
    verify_stop_check_rows: int = 1000
    delete_split_artifacts_on_pass: bool = False

    target_pool_min_size: int = 1
    target_pool_max_size: int = 5
    target_command_timeout_seconds: float | None = None

    signal_scanner_enabled: bool = True
    signal_scan_interval_seconds: float = 5.0
    signal_file_suffix: str = ".ok"

    artifact_preview_max_lines: int = 200

    @field_validator("load_pre_sql", mode="before")
    @classmethod
    def parse_statement_list(cls, value: object) -> object:
        """Support semicolon-separated env var values in addition to lists."""

        if not isinstance(value, str):
            return value
        return [item.strip() for item in value.split(";") if item.strip()]

    @field_validator("cluster_nodes", mode="before")
    @classmethod
    def parse_node_map(cls, value: object) -> object:
        """Support `node-a=http://host-a:8080,node-b=http://host-b:8080` env values."""

        if not isinstance(value, str):
            return value
        nodes: dict[str, str] = {}
        for item in value.split(","):
            if not item.strip():
                continue
            node_id, separator, base_url = item.partition("=")
            if not separator or not node_id.strip() or not base_url.strip():
                raise ValueError(f"Invalid cluster node entry '{item.strip()}'.")
            nodes[node_id.strip()] = base_url.strip()
        return nodes

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Ensure settings are consistent."""

        if self.repository_backend == RepositoryBackend.POSTGRES and not self.postgres_dsn:
            raise ValueError(
                "BIGCSV_POSTGRES_DSN is required when BIGCSV_REPOSITORY_BACKEND=postgres."
            )
        if self.postgres_pool_min_size < 1:
            raise ValueError("BIGCSV_POSTGRES_POOL_MIN_SIZE must be >= 1.")
        if self.postgres_pool_max_size < self.postgres_pool_min_size:
            raise ValueError(
                "BIGCSV_POSTGRES_POOL_MAX_SIZE must be >= BIGCSV_POSTGRES_POOL_MIN_SIZE."
            )
        if not self.node_id.strip():
            raise ValueError("BIGCSV_NODE_ID cannot be empty.")
        if self.forward_timeout_seconds <= 0:
            raise ValueError("BIGCSV_FORWARD_TIMEOUT_SECONDS must be > 0.")
        if self.dispatch_interval_seconds <= 0:
            raise ValueError("BIGCSV_DISPATCH_INTERVAL_SECONDS must be > 0.")
        for name in (
            "transcode_fetch_limit",
            "load_fetch_limit",
            "verify_fetch_limit",
            "transcode_workers",
            "load_workers",
            "verify_workers",
            "split_rows",
            "transcode_step_rows",
            "verify_max_diff_count",
            "verify_fetch_size",
            "verify_stop_check_rows",
            "target_pool_max_size",
            "artifact_preview_max_lines",
        ):
            if getattr(self, name) < 1:
                raise ValueError(f"BIGCSV_{name.upper()} must be >= 1.")
        try:
            codecs.lookup(self.source_encoding)
        except LookupError as exc:
            raise ValueError(
                f"BIGCSV_SOURCE_ENCODING '{self.source_encoding}' is not a known codec."
            ) from exc
        if len(self.csv_delimiter) != 1:
            raise ValueError("BIGCSV_CSV_DELIMITER must be a single character.")
        if len(self.csv_quote_char) != 1:
            raise ValueError("BIGCSV_CSV_QUOTE_CHAR must be a single character.")
        if self.record_separator == "":
            raise ValueError("BIGCSV_RECORD_SEPARATOR cannot be empty when set.")
        if self.load_max_retries < 0:
            raise ValueError("BIGCSV_LOAD_MAX_RETRIES must be >= 0.")
        if self.load_retry_base_delay_seconds < 0:
            raise ValueError("BIGCSV_LOAD_RETRY_BASE_DELAY_SECONDS must be >= 0.")
        if self.source_row_no_column == self.split_id_column:
            raise ValueError(
                "BIGCSV_SOURCE_ROW_NO_COLUMN and BIGCSV_SPLIT_ID_COLUMN must differ."
            )
        if self.target_pool_min_size < 0:
            raise ValueError("BIGCSV_TARGET_POOL_MIN_SIZE must be >= 0.")
        if self.target_pool_max_size < self.target_pool_min_size:
            raise ValueError(
                "BIGCSV_TARGET_POOL_MAX_SIZE must be >= BIGCSV_TARGET_POOL_MIN_SIZE."
            )
        if self.signal_scan_interval_seconds <= 0:
            raise ValueError("BIGCSV_SIGNAL_SCAN_INTERVAL_SECONDS must be > 0.")
        if not self.signal_file_suffix:
            raise ValueError("BIGCSV_SIGNAL_FILE_SUFFIX cannot be empty.")
        own_url = self.cluster_nodes.get(self.node_id)
        if own_url is not None and self.node_base_url and own_url != self.node_base_url:
            raise ValueError(
                "BIGCSV_CLUSTER_NODES entry for BIGCSV_NODE_ID must match BIGCSV_NODE_BASE_URL."
            )
        return self

    model_config = SettingsConfigDict(env_prefix="BIGCSV_", extra="ignore")


__all__ = ["RepositoryBackend", "Settings"]
