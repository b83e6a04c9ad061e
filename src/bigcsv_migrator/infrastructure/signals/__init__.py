"""Signal file discovery."""

from bigcsv_migrator.infrastructure.signals.directory_scanner import (
    SignalDirectoryScanner,
    SignalHandler,
    find_signal_files,
)

__all__ = ["SignalDirectoryScanner", "SignalHandler", "find_signal_files"]
