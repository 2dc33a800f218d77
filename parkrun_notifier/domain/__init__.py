"""
Domain model exports.
"""

from parkrun_notifier.domain.results import (
    AdvanceResult,
    DispatchStatus,
    Event,
    EventRef,
    EventScanSummary,
    FinisherResult,
    PipelineRunSummary,
    ScanStatus,
)

__all__ = [
    "AdvanceResult",
    "DispatchStatus",
    "Event",
    "EventRef",
    "EventScanSummary",
    "FinisherResult",
    "PipelineRunSummary",
    "ScanStatus",
]
