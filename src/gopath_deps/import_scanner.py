"""
Discovery of a dependency's imports through the external extraction tool.

The tool is invoked once per source file and prints one quoted import path
per line. Only host-qualified paths (``github.com/x/y`` but not ``fmt``) are
resolved further.
"""

import re
import shlex
from pathlib import Path
from typing import List, Optional, Set

from .command_runner import run_command_safely
from .config import ComprehensiveConfig, get_config
from .dependency import Dependency
from .error_handling import (
    ErrorCategory,
    MissingExternalToolError,
    get_error_handler,
)
from .path_resolver import PathResolver

IS_EXTERNAL_DEPENDENCY_PATTERN = re.compile(
    r"^([a-zA-Z0-9\-]+\.[a-zA-Z0-9\-.]+/[a-zA-Z0-9\-_.$]+[^ ]*)$"
)


def is_external_dependency(candidate: str) -> bool:
    """True for import paths whose first segment looks like a host name."""
    return IS_EXTERNAL_DEPENDENCY_PATTERN.match(candidate) is not None


def parse_import_candidates(output: str) -> List[str]:
    """Extract the quoted import literals from extractor output."""
    candidates = []
    for line in output.split("\n"):
        trimmed = line.strip()
        if len(trimmed) >= 2 and trimmed.startswith('"') and trimmed.endswith('"'):
            candidate = trimmed[1:-1]
            if candidate:
                candidates.append(candidate)
    return candidates


class ImportsExtractor:
    """Runs the configured import extraction command for a single file."""

    def __init__(self, config: Optional[ComprehensiveConfig] = None):
        self.config = config or get_config()

    def command_for(self, file_path: Path) -> List[str]:
        return shlex.split(self.config.toolchain.imports_extractor) + [str(file_path)]

    async def extract(self, file_path: Path) -> str:
        """
        Return the raw extractor output for ``file_path``.

        Raises:
            MissingExternalToolError: If the tool is missing or exits non-zero
        """
        command = self.command_for(file_path)
        try:
            result = await run_command_safely(
                command, timeout_seconds=self.config.toolchain.timeout_seconds
            )
        except (FileNotFoundError, PermissionError) as e:
            get_error_handler().error(
                ErrorCategory.TOOLCHAIN,
                "Import extractor could not be started",
                "import_scanner",
                "extract",
                exception=e,
                details={"command": command[0]},
                suggestions=["Set toolchain.imports_extractor to an executable command"],
            )
            raise MissingExternalToolError(command[0], str(e)) from e

        if not result.ok:
            detail = result.stderr.strip() or f"exit code {result.return_code}"
            get_error_handler().error(
                ErrorCategory.TOOLCHAIN,
                "Import extractor failed",
                "import_scanner",
                "extract",
                details={"command": command[0], "file": file_path.name},
            )
            raise MissingExternalToolError(command[0], detail)

        return result.stdout


class ImportScanner:
    """Computes the transitive imports of a dependency."""

    def __init__(
        self,
        config: Optional[ComprehensiveConfig] = None,
        path_resolver: Optional[PathResolver] = None,
        extractor: Optional[ImportsExtractor] = None,
    ):
        self.config = config or get_config()
        self.path_resolver = path_resolver or PathResolver(self.config)
        self.extractor = extractor or ImportsExtractor(self.config)

    def files_for(self, dependency: Dependency) -> List[Path]:
        """Source files of ``dependency`` in the cache and workspace roots."""
        files: Set[Path] = set()
        for root in (
            self.config.paths.dependency_cache,
            self.config.paths.workspace_source_root,
        ):
            self._append_files_for(root, dependency, files)
        return sorted(files)

    def _append_files_for(self, root: Path, dependency: Dependency, to: Set[Path]) -> None:
        directory = root / dependency.group
        if not directory.is_dir():
            return
        extensions = tuple(self.config.toolchain.source_extensions)
        for path in directory.iterdir():
            if path.name.endswith(extensions) and path.is_file():
                to.add(path)

    async def transitive_imports(self, dependency: Dependency) -> List[Dependency]:
        """
        Resolve every external import found in the dependency's sources.

        Returns:
            Unique dependencies sorted by identifier
        """
        result: Set[Dependency] = set()
        for file_path in self.files_for(dependency):
            output = await self.extractor.extract(file_path)
            for candidate in parse_import_candidates(output):
                if is_external_dependency(candidate):
                    child = self.path_resolver.resolve_package(dependency, candidate)
                    result.add(child)
        return sorted(result)
