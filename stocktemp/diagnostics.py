"""
Run Diagnostics Module.

Tracks per-run statistics and failures, logs a summary at the end of each
cycle, and rotates the log file between runs.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger("stocktemp.diagnostics")


@dataclass
class RunDiagnostics:
    """Diagnostic information for one polling cycle."""

    # Run metadata
    run_id: str
    start_time: datetime
    end_time: Optional[datetime] = None

    # Symbol statistics
    symbols_attempted: int = 0
    symbols_completed: int = 0
    fetch_failures: int = 0
    decode_failures: int = 0
    storage_failures: int = 0
    unexpected_failures: int = 0

    # Message statistics
    messages_fetched: int = 0
    messages_stored: int = 0
    duplicates_skipped: int = 0
    snapshots_upserted: int = 0

    # Error tracking
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float:
        """Total run duration in seconds."""
        if self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return (datetime.now() - self.start_time).total_seconds()

    @property
    def duration_formatted(self) -> str:
        """Human-readable duration."""
        seconds = self.duration_seconds
        if seconds < 60:
            return f"{seconds:.1f}s"
        elif seconds < 3600:
            return f"{seconds / 60:.1f}m"
        else:
            return f"{seconds / 3600:.1f}h"

    @property
    def symbols_failed(self) -> int:
        return self.fetch_failures + self.decode_failures + self.storage_failures + self.unexpected_failures

    @property
    def has_critical_errors(self) -> bool:
        """True when the cycle attempted symbols but none completed."""
        return self.symbols_attempted > 0 and self.symbols_completed == 0

    @property
    def has_warnings(self) -> bool:
        """Check if run has warning conditions."""
        warning_conditions = [
            self.symbols_attempted == 0,  # Nothing configured
            self.symbols_failed > 0,
            len(self.warnings) > 0,
        ]
        return any(warning_conditions)

    def add_error(self, error: str) -> None:
        """Record an error during the run."""
        self.errors.append(f"[{datetime.now().strftime('%H:%M:%S')}] {error}")
        logger.error(f"Diagnostic error recorded: {error}")

    def add_warning(self, warning: str) -> None:
        """Record a warning during the run."""
        self.warnings.append(f"[{datetime.now().strftime('%H:%M:%S')}] {warning}")
        logger.warning(f"Diagnostic warning recorded: {warning}")

    def format_summary(self) -> str:
        """Generate a text summary for logging."""
        if self.has_critical_errors:
            status = "FAILED"
        elif self.has_warnings:
            status = "COMPLETED WITH WARNINGS"
        else:
            status = "SUCCESS"

        lines = [
            "=" * 60,
            "RUN DIAGNOSTICS SUMMARY",
            "=" * 60,
            f"Run ID: {self.run_id}",
            f"Duration: {self.duration_formatted}",
            f"Status: {status}",
            "",
            "SYMBOLS:",
            f"  Completed: {self.symbols_completed}/{self.symbols_attempted}",
            f"  Fetch failures: {self.fetch_failures}",
            f"  Decode failures: {self.decode_failures}",
            f"  Storage failures: {self.storage_failures}",
            f"  Unexpected failures: {self.unexpected_failures}",
            "",
            "MESSAGES:",
            f"  Fetched: {self.messages_fetched}",
            f"  Stored: {self.messages_stored}",
            f"  Duplicates skipped: {self.duplicates_skipped}",
            f"  Profiles upserted: {self.snapshots_upserted}",
        ]

        if self.errors:
            lines.extend(["", "ERRORS:"])
            lines.extend(f"  - {e}" for e in self.errors)

        if self.warnings:
            lines.extend(["", "WARNINGS:"])
            lines.extend(f"  - {w}" for w in self.warnings)

        lines.append("=" * 60)
        return "\n".join(lines)


class DiagnosticsCollector:
    """
    Collects diagnostic information throughout a polling cycle.

    main.py creates one per cycle and finalizes it once every symbol is done.
    """

    def __init__(self, run_id: str):
        """Initialize diagnostics collector for a new run."""
        self.diagnostics = RunDiagnostics(
            run_id=run_id,
            start_time=datetime.now(),
        )
        logger.debug(f"Diagnostics collector initialized for run {run_id}")

    def finalize(self) -> RunDiagnostics:
        """Mark run as complete and return final diagnostics."""
        self.diagnostics.end_time = datetime.now()
        logger.info(f"Run completed in {self.diagnostics.duration_formatted}")

        for line in self.diagnostics.format_summary().split('\n'):
            logger.info(line)

        return self.diagnostics


def rotate_logs(log_file: str = "stocktemp.log", keep_count: int = 10) -> None:
    """
    Rotate log files by renaming current log with timestamp.

    Args:
        log_file: Path to the current log file
        keep_count: Number of old logs to keep (default: 10)
    """
    log_path = Path(log_file)

    # Only rotate if log file exists and has content
    if not log_path.exists() or log_path.stat().st_size == 0:
        logger.debug(f"No log file to rotate: {log_file}")
        return

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    archive_name = f"{log_path.stem}_{timestamp}.log"
    archive_path = log_path.parent / archive_name

    try:
        log_path.rename(archive_path)
        logger.info(f"Rotated log: {log_file} -> {archive_name}")

        # Keep only the N most recent archives
        pattern = f"{log_path.stem}_*.log"
        old_logs = sorted(log_path.parent.glob(pattern), key=lambda p: p.stat().st_mtime, reverse=True)

        for old_log in old_logs[keep_count:]:
            old_log.unlink()
            logger.info(f"Cleaned up old log: {old_log.name}")

    except OSError as e:
        logger.warning(f"Failed to rotate log {log_file}: {e}")
