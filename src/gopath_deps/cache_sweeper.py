"""
Garbage collection of the dependency cache.

Every directory below the cache root is classified against the identifiers of
the declared dependencies. Only directories that are neither a known
dependency, nor an ancestor or descendant of one, are deleted.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from .config import ComprehensiveConfig, get_config
from .dependency import Dependency
from .error_handling import FilesystemWalkError, log_filesystem_error
from .structured_logging import log_directory_deleted, log_sweep_complete

logger = logging.getLogger(__name__)


class DirectoryState(Enum):
    """Classification of a cache directory, ordered by strength."""

    UNKNOWN = 0
    DESCENDANT_OF_MATCH = 1
    ANCESTOR_OF_MATCH = 2
    MATCHES_KNOWN_DEPENDENCY = 3

    def upgraded_to(self, other: "DirectoryState") -> "DirectoryState":
        return other if other.value > self.value else self


def known_dependency_ids(dependencies: Iterable[Dependency]) -> Set[str]:
    return {dependency.group for dependency in dependencies}


def _relative_id(path: Path, root: Path) -> str:
    return path.relative_to(root).as_posix()


def _has_known_ancestor(relative_id: str, known_ids: Set[str]) -> bool:
    segments = relative_id.split("/")
    return any("/".join(segments[:length]) in known_ids for length in range(1, len(segments)))


def classify_cache_directories(root: Path, known_ids: Iterable[str]) -> Dict[Path, DirectoryState]:
    """
    Classify every directory below ``root``.

    States only ever upgrade, so the result does not depend on the order in
    which the filesystem returns directory entries.

    Args:
        root: Dependency cache root, itself never classified
        known_ids: Identifiers of the declared dependencies

    Returns:
        Mapping of directory path to its state; empty if ``root`` is missing

    Raises:
        FilesystemWalkError: If a directory cannot be read
    """
    known = {identifier.strip("/") for identifier in known_ids}
    states: Dict[Path, DirectoryState] = {}
    if not root.is_dir():
        return states

    def mark(path: Path, state: DirectoryState) -> None:
        states[path] = states.get(path, DirectoryState.UNKNOWN).upgraded_to(state)

    def on_error(error: OSError) -> None:
        path = Path(error.filename) if error.filename else root
        log_filesystem_error(
            "Failed to walk dependency cache",
            "cache_sweeper",
            "classify_cache_directories",
            path=path,
            exception=error,
        )
        raise FilesystemWalkError(path, error) from error

    for current, directories, _ in os.walk(root, onerror=on_error):
        directories.sort()
        for name in directories:
            path = Path(current) / name
            relative_id = _relative_id(path, root)

            if relative_id in known:
                mark(path, DirectoryState.MATCHES_KNOWN_DEPENDENCY)
                parent = path.parent
                while parent != root:
                    mark(parent, DirectoryState.ANCESTOR_OF_MATCH)
                    parent = parent.parent
            elif _has_known_ancestor(relative_id, known):
                mark(path, DirectoryState.DESCENDANT_OF_MATCH)
            else:
                mark(path, DirectoryState.UNKNOWN)

    return states


def collect_unknown_dependency_directories(
    root: Path, known_ids: Iterable[str]
) -> List[Path]:
    """Unknown directories below ``root``, deepest first."""
    states = classify_cache_directories(root, known_ids)
    return sorted(
        (path for path, state in states.items() if state == DirectoryState.UNKNOWN),
        reverse=True,
    )


def delete_with_logging(path: Path) -> Set[Path]:
    """
    Remove ``path`` and everything below it.

    Returns:
        Every removed file and directory

    Raises:
        FilesystemWalkError: On the first entry that cannot be removed
    """
    deleted: Set[Path] = set()
    if not path.exists() and not path.is_symlink():
        return deleted

    try:
        if path.is_symlink() or not path.is_dir():
            path.unlink()
            deleted.add(path)
            return deleted

        for current, directories, files in os.walk(path, topdown=False):
            current_path = Path(current)
            for name in files:
                (current_path / name).unlink()
                deleted.add(current_path / name)
            for name in directories:
                child = current_path / name
                if child.is_symlink():
                    child.unlink()
                else:
                    child.rmdir()
                deleted.add(child)
        path.rmdir()
        deleted.add(path)
    except OSError as e:
        log_filesystem_error(
            "Failed to delete cache entry",
            "cache_sweeper",
            "delete_with_logging",
            path=path,
            exception=e,
        )
        raise FilesystemWalkError(path, e) from e

    logger.debug("Deleted %s (%d entries).", path, len(deleted))
    return deleted


class CacheSweeper:
    """Applies the configured cleanup policies to the dependency cache."""

    def __init__(
        self,
        config: Optional[ComprehensiveConfig] = None,
        known_dependencies: Optional[Iterable[Dependency]] = None,
    ):
        """
        Initialize sweeper.

        Args:
            config: Configuration, defaults to the global configuration
            known_dependencies: Dependencies to keep, defaults to every
                declared dependency
        """
        self.config = config or get_config()
        self._known_dependencies = (
            list(known_dependencies) if known_dependencies is not None else None
        )

    @property
    def cache_root(self) -> Path:
        return self.config.paths.dependency_cache

    def known_ids(self) -> Set[str]:
        dependencies = self._known_dependencies
        if dependencies is None:
            dependencies = self.config.declared_dependencies()
        return known_dependency_ids(dependencies)

    def delete_unknown_dependencies_if_required(self) -> List[Path]:
        """
        Delete cache directories not belonging to any declared dependency.

        Returns:
            Deleted directories in deletion order; empty when disabled
        """
        if not self.config.dependencies.delete_unknown_dependencies:
            return []

        deleted = []
        for path in collect_unknown_dependency_directories(self.cache_root, self.known_ids()):
            if not path.exists() and not path.is_symlink():
                continue
            delete_with_logging(path)
            log_directory_deleted(str(path), "unknown")
            logger.info("Deleted unknown dependency directory %s.", path)
            deleted.append(path)

        log_sweep_complete(str(self.cache_root), len(deleted), "delete_unknown")
        return deleted

    def delete_all_cached_dependencies_if_required(self) -> List[Path]:
        """
        Delete the whole dependency cache.

        Returns:
            Every deleted path, sorted; empty when disabled
        """
        if not self.config.dependencies.delete_all_cached_dependencies_on_clean:
            return []

        deleted = sorted(delete_with_logging(self.cache_root))
        if deleted:
            log_directory_deleted(str(self.cache_root), "delete_all")
            logger.info("Deleted dependency cache %s.", self.cache_root)
        log_sweep_complete(str(self.cache_root), len(deleted), "delete_all")
        return deleted
