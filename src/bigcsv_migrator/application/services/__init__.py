"""Application services public API."""

from bigcsv_migrator.application.services.dispatcher import Dispatcher, DispatchSummary
from bigcsv_migrator.application.services.global_verify_service import GlobalVerifyService
from bigcsv_migrator.application.services.load_service import LoadService
from bigcsv_migrator.application.services.management_service import ManagementService
from bigcsv_migrator.application.services.row_comparator import RowComparator, cells_equal
from bigcsv_migrator.application.services.signal_intake import (
    ResolvedSignal,
    SignalIntakeService,
    read_signal_file,
)
from bigcsv_migrator.application.services.state_gateway import StateGateway
from bigcsv_migrator.application.services.transcode_service import TranscodeService
from bigcsv_migrator.application.services.transcode_session import (
    RowClassifier,
    RowVerdict,
    TranscodeSession,
    TranscodeStep,
)
from bigcsv_migrator.application.services.verify_service import VerifyService

__all__ = [
    "DispatchSummary",
    "Dispatcher",
    "GlobalVerifyService",
    "LoadService",
    "ManagementService",
    "ResolvedSignal",
    "RowClassifier",
    "RowComparator",
    "RowVerdict",
    "SignalIntakeService",
    "StateGateway",
    "TranscodeService",
    "TranscodeSession",
    "TranscodeStep",
    "VerifyService",
    "cells_equal",
    "read_signal_file",
]
