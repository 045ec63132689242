"""JSONL event log for observability."""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class LogEntry:
    """A single log entry."""

    timestamp: str
    event: str
    user_id: str | None = None
    goal_id: str | None = None
    suggestion_id: str | None = None
    duration_ms: float | None = None
    error: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dict, excluding None values."""
        data = asdict(self)
        return {k: v for k, v in data.items() if v is not None and v != {} and v != []}


class JSONLLogger:
    """Logger that writes structured events in JSONL format."""

    def __init__(
        self,
        log_dir: str | Path | None = None,
        filename: str = "events.jsonl",
        max_size_mb: float = 10.0,
    ) -> None:
        if log_dir is None:
            log_dir = Path.home() / ".cadence" / "logs"
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.filename = filename
        self.max_size_bytes = int(max_size_mb * 1024 * 1024)
        self._current_user_id: str | None = None

    @property
    def log_path(self) -> Path:
        """Current log file path."""
        return self.log_dir / self.filename

    def set_user_id(self, user_id: str | None) -> None:
        """Set the current user_id for all subsequent logs."""
        self._current_user_id = user_id

    def _rotate_if_needed(self) -> None:
        """Rotate log file if it exceeds max size."""
        if not self.log_path.exists():
            return

        if self.log_path.stat().st_size >= self.max_size_bytes:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            rotated_name = f"{self.log_path.stem}_{timestamp}.jsonl"
            self.log_path.rename(self.log_dir / rotated_name)

    def _write(self, entry: LogEntry) -> None:
        self._rotate_if_needed()

        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry.to_dict(), default=str) + "\n")

    def log(
        self,
        event: str,
        *,
        user_id: str | None = None,
        goal_id: str | None = None,
        suggestion_id: str | None = None,
        duration_ms: float | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log an event."""
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event=event,
            user_id=user_id or self._current_user_id,
            goal_id=goal_id,
            suggestion_id=suggestion_id,
            duration_ms=duration_ms,
            error=error,
            extra=extra if extra else {},
        )
        self._write(entry)

    def log_completion(
        self,
        purpose: str,
        success: bool,
        *,
        duration_ms: float | None = None,
        error: str | None = None,
    ) -> None:
        """Log a Completion Service call."""
        self.log(
            "completion",
            duration_ms=duration_ms,
            error=error if not success else None,
            purpose=purpose,
            success=success,
        )

    def log_transition(
        self,
        suggestion_id: str,
        old: str,
        new: str,
        *,
        user_id: str | None = None,
    ) -> None:
        """Log a suggestion status change."""
        self.log(
            "suggestion_transition",
            user_id=user_id,
            suggestion_id=suggestion_id,
            old_status=old,
            new_status=new,
        )

    def log_generation(
        self,
        goal_id: str,
        count: int,
        *,
        user_id: str | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log a batch of suggestions stored for a goal."""
        self.log(
            "suggestions_generated",
            user_id=user_id,
            goal_id=goal_id,
            duration_ms=duration_ms,
            count=count,
        )

    def log_operation(
        self,
        name: str,
        success: bool,
        *,
        user_id: str | None = None,
        error: str | None = None,
        **extra: Any,
    ) -> None:
        """Log the outcome of a boundary operation."""
        self.log(
            "operation",
            user_id=user_id,
            error=error if not success else None,
            operation=name,
            success=success,
            **extra,
        )


# Global logger instance
_logger: JSONLLogger | None = None


def get_logger() -> JSONLLogger:
    """Get the global logger instance."""
    global _logger
    if _logger is None:
        _logger = JSONLLogger()
    return _logger


def configure_logger(log_dir: str | Path | None = None, max_size_mb: float = 10.0) -> JSONLLogger:
    """Configure and return the global logger."""
    global _logger
    _logger = JSONLLogger(log_dir=log_dir, max_size_mb=max_size_mb)
    return _logger
