"""
Error taxonomy and centralized error handling for gopath-deps.

Fatal conditions are raised as ``GopathDepsError`` subclasses. Before being
raised they are recorded through the global ``ErrorHandler`` so that callers
get structured logging, per-category callbacks and error statistics.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional


class GopathDepsError(Exception):
    """Base class for all fatal gopath-deps errors."""


class UnresolvableReferenceError(GopathDepsError):
    """No VCS backend recognizes the reference of a non-source dependency."""

    def __init__(self, reference: Any):
        self.reference = reference
        super().__init__(f"Could not download dependency: {reference}")


class FilesystemWalkError(GopathDepsError):
    """An I/O error occurred while walking the dependency cache."""

    def __init__(self, path: Path, cause: Optional[BaseException] = None):
        self.path = path
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Failed to walk {path}{detail}")


class MissingExternalToolError(GopathDepsError):
    """The import extraction tool is missing or failed."""

    def __init__(self, command: str, detail: str = ""):
        self.command = command
        self.detail = detail
        message = f"External tool failed: {command}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class CommandTimeoutError(GopathDepsError):
    """An external command did not finish within its timeout."""

    def __init__(self, command: str, timeout_seconds: float):
        self.command = command
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Command timed out after {timeout_seconds}s: {command}")


class VcsOperationError(GopathDepsError):
    """A clone, fetch or checkout failed."""


class ConfigurationError(GopathDepsError):
    """Configuration cannot be loaded or is unusable."""


class ErrorCategory(Enum):
    """Part of the system an error originates from."""

    VCS = "vcs"
    FILESYSTEM = "filesystem"
    TOOLCHAIN = "toolchain"
    RESOLUTION = "resolution"
    CONFIGURATION = "configuration"
    NETWORK = "network"


@dataclass
class ErrorRecord:
    """An error as seen by the log and by registered callbacks."""

    level: int
    category: ErrorCategory
    message: str
    origin: str  # "<module>.<function>"
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[BaseException] = None
    suggestions: List[str] = field(default_factory=list)

    @property
    def level_name(self) -> str:
        return logging.getLevelName(self.level)

    @property
    def stat_key(self) -> str:
        return f"{self.category.name}_{self.level_name}"

    def render(self) -> str:
        parts = [f"[{self.category.value}] {self.message} ({self.origin})"]
        if self.details:
            parts.append(", ".join(f"{k}={v}" for k, v in sorted(self.details.items())))
        if self.exception is not None:
            parts.append(f"{type(self.exception).__name__}: {self.exception}")
        lines = [" | ".join(parts)]
        lines.extend(f"  hint: {suggestion}" for suggestion in self.suggestions)
        return "\n".join(lines)


ErrorCallback = Callable[[ErrorRecord], None]


class ErrorHandler:
    """
    Records errors before they are raised.

    Every record is logged on the package logger, counted per category and
    level, and handed to the callbacks registered for its category.
    """

    def __init__(
        self,
        logger_name: str = "gopath_deps",
        log_level: Optional[int] = None,
        enable_callbacks: bool = True,
    ):
        self.logger = logging.getLogger(logger_name)
        if log_level is not None:
            self.logger.setLevel(log_level)
        self.enable_callbacks = enable_callbacks
        self._callbacks: Dict[Optional[ErrorCategory], List[ErrorCallback]] = {}
        self._counts: Counter = Counter()

    def register_callback(
        self, callback: ErrorCallback, category: Optional[ErrorCategory] = None
    ) -> None:
        """Call ``callback`` for errors of ``category``, or of every category if None."""
        if self.enable_callbacks:
            self._callbacks.setdefault(category, []).append(callback)

    def record(
        self,
        level: int,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        exception: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> ErrorRecord:
        """
        Log and count an error, then notify callbacks.

        Args:
            level: ``logging`` level of the record
            category: Error category
            message: Human readable description
            module: Module reporting the error
            function: Function reporting the error
            exception: Underlying exception, if any
            details: Extra key/value context
            suggestions: Hints shown to the user

        Returns:
            ErrorRecord: The recorded error
        """
        record = ErrorRecord(
            level=level,
            category=category,
            message=message,
            origin=f"{module}.{function}",
            details=details or {},
            exception=exception,
            suggestions=suggestions or [],
        )
        self._counts[record.stat_key] += 1
        self.logger.log(level, record.render())

        if self.enable_callbacks:
            for callback in self._callbacks.get(category, []) + self._callbacks.get(None, []):
                try:
                    callback(record)
                except Exception:
                    # A broken callback must not replace the error being raised
                    self.logger.exception("Error callback failed")

        return record

    def warning(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorRecord:
        return self.record(logging.WARNING, category, message, module, function, **kwargs)

    def error(
        self, category: ErrorCategory, message: str, module: str, function: str, **kwargs
    ) -> ErrorRecord:
        return self.record(logging.ERROR, category, message, module, function, **kwargs)

    def get_error_stats(self) -> Dict[str, int]:
        """Counts keyed by ``<CATEGORY>_<LEVEL>``."""
        return dict(self._counts)

    def reset_stats(self) -> None:
        self._counts.clear()


_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    log_level: Optional[int] = None,
    enable_callbacks: bool = True,
    logger_name: str = "gopath_deps",
) -> ErrorHandler:
    """Replace the global error handler, dropping callbacks and statistics."""
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name, log_level, enable_callbacks)
    return _global_error_handler


def log_vcs_error(
    message: str,
    module: str,
    function: str,
    reference: Optional[str] = None,
    exception: Optional[BaseException] = None,
) -> None:
    """Convenience function for logging VCS errors."""
    details = {}
    if reference is not None:
        details["reference"] = reference

    get_error_handler().error(
        ErrorCategory.VCS,
        message,
        module,
        function,
        details=details,
        exception=exception,
        suggestions=[
            "Check that the import path is hosted on a supported VCS host",
            "Declare an explicit repository url for the dependency",
            "Verify network connectivity and repository access rights",
        ],
    )


def log_filesystem_error(
    message: str,
    module: str,
    function: str,
    path: Optional[Path] = None,
    exception: Optional[BaseException] = None,
) -> None:
    """Convenience function for logging filesystem errors."""
    details = {}
    if path is not None:
        details["path"] = str(path)

    get_error_handler().error(
        ErrorCategory.FILESYSTEM,
        message,
        module,
        function,
        details=details,
        exception=exception,
        suggestions=[
            "Check permissions of the dependency cache directory",
            "Make sure no other process is modifying the cache",
        ],
    )
