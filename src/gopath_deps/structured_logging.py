"""
Structured logging configuration for gopath-deps.

Provides consistent, machine-readable events for dependency resolution,
cache sweeps and VCS operations.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional

_RESERVED_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
    "taskName",
}


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": getattr(record, "component", record.name),
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_FIELDS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class EventLogger:
    """Structured logger emitting one JSON object per event."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(f"gopath_deps.events.{name}")
        self.component = name
        self.run_context: Dict[str, Any] = {}
        self._setup_logger()

    def _setup_logger(self) -> None:
        if not self.logger.handlers:
            handler = logging.StreamHandler(sys.stderr)
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)
            self.logger.propagate = False

    def set_run_context(
        self,
        run_id: Optional[str] = None,
        configuration: Optional[str] = None,
    ) -> None:
        self.run_context = {}
        if run_id:
            self.run_context["run_id"] = run_id
        if configuration:
            self.run_context["configuration"] = configuration

    def clear_run_context(self) -> None:
        self.run_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {
            "event_type": event_type,
            "component": self.component,
            **self.run_context,
            **kwargs,
        }
        getattr(self.logger, level)(event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        self._log("warning", event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        self._log("error", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        self._log("debug", event_type, **kwargs)


# Global logger instances
_resolver_logger = EventLogger("resolver")
_sweeper_logger = EventLogger("sweeper")
_vcs_logger = EventLogger("vcs")

_ALL_LOGGERS = (_resolver_logger, _sweeper_logger, _vcs_logger)


def get_resolver_logger() -> EventLogger:
    """Get dependency resolution logger."""
    return _resolver_logger


def get_sweeper_logger() -> EventLogger:
    """Get cache sweep logger."""
    return _sweeper_logger


def get_vcs_logger() -> EventLogger:
    """Get VCS operations logger."""
    return _vcs_logger


def log_dependency_resolved(
    identifier: str,
    kind: str,
    location: Optional[str] = None,
    parent: Optional[str] = None,
    tier: Optional[str] = None,
) -> None:
    """Log the provenance chosen for an import."""
    log_data: Dict[str, Any] = {"dependency": identifier, "kind": kind}
    if location is not None:
        log_data["location"] = location
    if parent is not None:
        log_data["parent"] = parent
    if tier is not None:
        log_data["tier"] = tier
    get_resolver_logger().debug("dependency_resolved", **log_data)


def log_dependency_updated(identifier: str, reference: str, outcome: str) -> None:
    """Log the fetch outcome of a single dependency."""
    logger = get_resolver_logger()
    if outcome == "downloaded":
        logger.info("dependency_updated", dependency=identifier, reference=reference)
    else:
        logger.debug(
            "dependency_up_to_date", dependency=identifier, reference=reference
        )


def log_resolution_complete(
    configuration: Optional[str],
    duration_ms: int,
    total: int,
    downloaded: int,
) -> None:
    """Log resolution run completion."""
    get_resolver_logger().info(
        "resolution_completed",
        configuration=configuration or "all",
        duration_ms=duration_ms,
        total_dependencies=total,
        downloaded=downloaded,
    )


def log_directory_deleted(path: str, reason: str) -> None:
    """Log a directory removed from the dependency cache."""
    get_sweeper_logger().info("directory_deleted", path=path, reason=reason)


def log_sweep_complete(root: str, deleted: int, mode: str) -> None:
    """Log cache sweep completion."""
    get_sweeper_logger().info(
        "sweep_completed", cache_root=root, deleted_count=deleted, mode=mode
    )


def log_vcs_operation(operation: str, repository: str, **kwargs) -> None:
    """Log a clone/fetch/checkout."""
    get_vcs_logger().info(
        "vcs_operation", operation=operation, repository=repository, **kwargs
    )


def set_run_context(
    run_id: Optional[str] = None, configuration: Optional[str] = None
) -> None:
    """Set global run context for all event loggers."""
    for logger in _ALL_LOGGERS:
        logger.set_run_context(run_id, configuration)


def clear_run_context() -> None:
    """Clear global run context."""
    for logger in _ALL_LOGGERS:
        logger.clear_run_context()


def configure_logging(
    log_level: str = "WARNING",
    enable_json: bool = True,
    loggers: Optional[Iterable[EventLogger]] = None,
) -> None:
    """Configure logging for the application."""
    level = getattr(logging, log_level.upper(), logging.WARNING)

    package_logger = logging.getLogger("gopath_deps")
    package_logger.setLevel(level)
    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            StructuredFormatter()
            if enable_json
            else logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        package_logger.addHandler(handler)

    for logger in loggers or _ALL_LOGGERS:
        logger.logger.setLevel(level)
        if not enable_json:
            for handler in logger.logger.handlers:
                handler.setFormatter(
                    logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
                )
