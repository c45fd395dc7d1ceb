"""
Dependency data model shared by the resolver, the path lookup and the sweeper.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Optional


class DependencyKind(Enum):
    """Provenance of a dependency."""

    SOURCE = "source"  # Part of the project's own workspace tree, never fetched
    IMPLICIT = "implicit"  # Resolved to an existing vendor/cache/workspace directory
    SYSTEM = "system"  # Found under the toolchain standard-library root
    UNRESOLVED = "unresolved"  # Not found anywhere, candidate for a VCS fetch


class FetchOutcome(Enum):
    """Result of handling a dependency during resolution."""

    DOWNLOADED = "downloaded"
    ALREADY_PRESENT = "already_present"


@dataclass(frozen=True, order=True)
class Dependency:
    """
    A package identified by its slash-delimited import path.

    Equality, hashing and ordering only look at ``identifier``; all other
    fields are metadata attached during declaration or classification.
    """

    identifier: str
    kind: DependencyKind = field(default=DependencyKind.IMPLICIT, compare=False)
    location: Optional[Path] = field(default=None, compare=False)
    parent: Optional[str] = field(default=None, compare=False)  # Identifier only
    version: Optional[str] = field(default=None, compare=False)
    url: Optional[str] = field(default=None, compare=False)

    def __post_init__(self):
        if not self.identifier or not isinstance(self.identifier, str):
            raise ValueError("Dependency identifier must be a non-empty string")
        normalized = self.identifier.strip().strip("/")
        if not normalized:
            raise ValueError(f"Invalid dependency identifier: {self.identifier!r}")
        object.__setattr__(self, "identifier", normalized)

    @property
    def group(self) -> str:
        """Identifier group used for file collection and cache bookkeeping."""
        return self.identifier

    @property
    def is_source(self) -> bool:
        return self.kind == DependencyKind.SOURCE

    def with_location(self, location: Optional[Path]) -> "Dependency":
        """Return a copy pointing at ``location``."""
        return replace(self, location=location)

    def __str__(self) -> str:
        if self.version:
            return f"{self.identifier}@{self.version}"
        return self.identifier


def new_dependency(
    identifier: str,
    kind: DependencyKind = DependencyKind.IMPLICIT,
    location: Optional[Path] = None,
    parent: Optional[Dependency] = None,
    version: Optional[str] = None,
    url: Optional[str] = None,
) -> Dependency:
    """Create a dependency, storing only the parent's identifier."""
    return Dependency(
        identifier=identifier,
        kind=kind,
        location=location,
        parent=parent.identifier if parent is not None else None,
        version=version,
        url=url,
    )
