"""
Package location lookup for GOPATH-style source trees.

An import path is looked up in a fixed order, first match wins:

1. ``vendor/<import>`` directories, innermost first, walking up from the
   demanding package while inside the workspace source root
2. the dependency cache
3. the workspace source root
4. the toolchain standard-library root

Anything else becomes an ``unresolved`` dependency that the resolver fetches.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Optional

from .config import ComprehensiveConfig, get_config
from .dependency import Dependency, DependencyKind, new_dependency
from .structured_logging import log_dependency_resolved


def contains_sources(candidate: Path, extensions: Iterable[str] = (".go",)) -> bool:
    """True if ``candidate`` is a directory holding at least one source file."""
    if not candidate.is_dir():
        return False
    suffixes = tuple(extensions)
    for entry in candidate.iterdir():
        if entry.name.endswith(suffixes) and entry.is_file():
            return True
    return False


def is_within(path: Path, root: Path) -> bool:
    """True if ``path`` equals ``root`` or lies below it."""
    try:
        path.relative_to(root)
    except ValueError:
        return False
    return True


def is_part_of_project_sources(package_name: str, project_package_name: str) -> bool:
    if not project_package_name:
        return False
    return package_name == project_package_name or package_name.startswith(
        project_package_name + "/"
    )


class PackageLookup(ABC):
    """One tier of the package lookup chain."""

    name = "lookup"

    def __init__(self, config: ComprehensiveConfig):
        self.config = config
        self.extensions = tuple(config.toolchain.source_extensions)

    @abstractmethod
    def lookup(self, demanded_by: Dependency, import_path: str) -> Optional[Dependency]:
        """Return the dependency found by this tier, or None."""

    def _contains_sources(self, candidate: Path) -> bool:
        return contains_sources(candidate, self.extensions)


class VendorLookup(PackageLookup):
    """Closest enclosing ``vendor`` directory of the demanding package."""

    name = "vendor"

    def lookup(self, demanded_by: Dependency, import_path: str) -> Optional[Dependency]:
        if demanded_by.location is None:
            return None

        root = self.config.paths.workspace_source_root.absolute()
        current = Path(demanded_by.location).absolute()
        while is_within(current, root):
            candidate = current / "vendor" / import_path
            if self._contains_sources(candidate):
                return new_dependency(
                    import_path,
                    kind=DependencyKind.IMPLICIT,
                    location=candidate,
                    parent=demanded_by,
                )
            if current.parent == current:
                break
            current = current.parent
        return None


class DependencyCacheLookup(PackageLookup):
    """Packages previously fetched into the dependency cache."""

    name = "cache"

    def lookup(self, demanded_by: Dependency, import_path: str) -> Optional[Dependency]:
        location = self.config.paths.dependency_cache / import_path
        if not self._contains_sources(location):
            return None
        return new_dependency(import_path, kind=DependencyKind.IMPLICIT, location=location)


class WorkspaceLookup(PackageLookup):
    """Packages checked out in the workspace source root."""

    name = "workspace"

    def lookup(self, demanded_by: Dependency, import_path: str) -> Optional[Dependency]:
        location = self.config.paths.workspace_source_root / import_path
        if not self._contains_sources(location):
            return None
        if is_part_of_project_sources(import_path, self.config.project.package_name):
            kind = DependencyKind.SOURCE
        else:
            kind = DependencyKind.IMPLICIT
        return new_dependency(import_path, kind=kind, location=location)


class ToolchainLookup(PackageLookup):
    """Standard-library packages shipped with the toolchain."""

    name = "toolchain"

    def lookup(self, demanded_by: Dependency, import_path: str) -> Optional[Dependency]:
        location = self.config.paths.toolchain_source_root / import_path
        if not self._contains_sources(location):
            return None
        return new_dependency(import_path, kind=DependencyKind.SYSTEM, location=location)


class PathResolver:
    """Resolves import paths against the configured roots."""

    def __init__(
        self,
        config: Optional[ComprehensiveConfig] = None,
        lookups: Optional[List[PackageLookup]] = None,
    ):
        self.config = config or get_config()
        self.lookups = lookups or [
            VendorLookup(self.config),
            DependencyCacheLookup(self.config),
            WorkspaceLookup(self.config),
            ToolchainLookup(self.config),
        ]

    def resolve_package(self, demanded_by: Dependency, import_path: str) -> Dependency:
        """
        Find the best location for ``import_path`` as imported by ``demanded_by``.

        Args:
            demanded_by: Dependency whose sources contain the import
            import_path: The imported package path

        Returns:
            The classified dependency; ``unresolved`` without location when no
            tier matched
        """
        for lookup in self.lookups:
            candidate = lookup.lookup(demanded_by, import_path)
            if candidate is not None:
                log_dependency_resolved(
                    candidate.identifier,
                    candidate.kind.value,
                    location=str(candidate.location),
                    parent=demanded_by.identifier,
                    tier=lookup.name,
                )
                return candidate

        log_dependency_resolved(
            import_path, DependencyKind.UNRESOLVED.value, parent=demanded_by.identifier
        )
        return new_dependency(import_path, kind=DependencyKind.UNRESOLVED)
