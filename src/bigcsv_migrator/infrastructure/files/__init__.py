"""File formats produced and consumed by the pipeline."""

from bigcsv_migrator.infrastructure.files.csv_rows import (
    SourceFormat,
    data_records,
    iter_source_rows,
    iter_split_rows,
)
from bigcsv_migrator.infrastructure.files.ddl import (
    ColumnDefinition,
    parse_ddl,
    read_ddl,
    table_name_from_ddl_path,
)
from bigcsv_migrator.infrastructure.files.diff_writer import DiffWriter
from bigcsv_migrator.infrastructure.files.error_writer import (
    ERROR_FILE_HEADER,
    TranscodeErrorWriter,
)
from bigcsv_migrator.infrastructure.files.output_layout import OutputLayout, remove_file
from bigcsv_migrator.infrastructure.files.split_writer import SplitFileWriter

__all__ = [
    "ColumnDefinition",
    "DiffWriter",
    "ERROR_FILE_HEADER",
    "OutputLayout",
    "SourceFormat",
    "SplitFileWriter",
    "TranscodeErrorWriter",
    "data_records",
    "iter_source_rows",
    "iter_split_rows",
    "parse_ddl",
    "read_ddl",
    "remove_file",
    "table_name_from_ddl_path",
]
