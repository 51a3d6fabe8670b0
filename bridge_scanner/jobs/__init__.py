"""Batch scheduling and end-to-end scan runs."""

from bridge_scanner.jobs.runner import (
    BatchScheduler,
    ScanConfig,
    ScanResult,
    ScanState,
    prepare_candidates,
    run_scan,
)

__all__ = [
    "BatchScheduler",
    "ScanConfig",
    "ScanResult",
    "ScanState",
    "prepare_candidates",
    "run_scan",
]
