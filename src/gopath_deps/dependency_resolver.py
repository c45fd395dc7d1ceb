"""
Dependency resolution engine for GOPATH-style workspaces.

Starting from a declared dependency set, the resolver walks the import graph
breadth-first. Every dependency that is not part of the project's own
sources is handed to the VCS layer to be fetched or updated; the imports of
every visited dependency are queued in turn. Each identifier is processed at
most once, which bounds cyclic import graphs.
"""

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, Iterable, Iterator, List, Mapping, Optional

from .config import ComprehensiveConfig, get_config
from .dependency import Dependency, DependencyKind, FetchOutcome, new_dependency
from .error_handling import (
    ErrorCategory,
    UnresolvableReferenceError,
    get_error_handler,
)
from .import_scanner import ImportScanner
from .path_resolver import contains_sources
from .structured_logging import (
    clear_run_context,
    log_dependency_updated,
    log_resolution_complete,
    set_run_context,
)
from .vcs import VcsRepositoryProvider, get_vcs_repository_provider, reference_for

logger = logging.getLogger(__name__)

TOOL_CONFIGURATION = "tool"


@dataclass
class ResolutionResult(Mapping[Dependency, FetchOutcome]):
    """
    Outcome of one resolution run.

    A read-only mapping from dependency to fetch outcome, iterated in
    identifier order.
    """

    configuration: Optional[str] = None
    outcomes: Dict[str, FetchOutcome] = field(default_factory=dict)
    dependencies: Dict[str, Dependency] = field(default_factory=dict)
    duration_ms: int = 0

    def record(self, dependency: Dependency, outcome: FetchOutcome) -> None:
        self.dependencies[dependency.identifier] = dependency
        self.outcomes[dependency.identifier] = outcome

    def __contains__(self, key: object) -> bool:
        if isinstance(key, Dependency):
            return key.identifier in self.outcomes
        if isinstance(key, str):
            return key in self.outcomes
        return False

    def __getitem__(self, key: Dependency) -> FetchOutcome:
        identifier = key.identifier if isinstance(key, Dependency) else key
        return self.outcomes[identifier]

    def __iter__(self) -> Iterator[Dependency]:
        for identifier in sorted(self.dependencies):
            yield self.dependencies[identifier]

    def __len__(self) -> int:
        return len(self.outcomes)

    def by_identifier(self, identifier: str) -> Optional[Dependency]:
        return self.dependencies.get(identifier)

    @property
    def identifiers(self) -> List[str]:
        return sorted(self.outcomes)

    @property
    def downloaded(self) -> List[Dependency]:
        return [d for d in self if self.outcomes[d.identifier] == FetchOutcome.DOWNLOADED]

    @property
    def already_present(self) -> List[Dependency]:
        return [
            d for d in self if self.outcomes[d.identifier] == FetchOutcome.ALREADY_PRESENT
        ]

    def to_dict(self) -> Dict[str, str]:
        return {identifier: self.outcomes[identifier].value for identifier in self.identifiers}


class DependencyResolver:
    """Resolves and materializes the transitive dependencies of a workspace."""

    def __init__(
        self,
        config: Optional[ComprehensiveConfig] = None,
        vcs_provider: Optional[VcsRepositoryProvider] = None,
        import_scanner: Optional[ImportScanner] = None,
    ):
        """
        Initialize resolver.

        Args:
            config: Configuration, defaults to the global configuration
            vcs_provider: Provider used to fetch non-source dependencies
            import_scanner: Scanner computing a dependency's imports
        """
        self.config = config or get_config()
        self.vcs_provider = vcs_provider or get_vcs_repository_provider(self.config)
        self.import_scanner = import_scanner or ImportScanner(self.config)
        self.error_handler = get_error_handler()

    def declared_dependencies(self, configuration: Optional[str] = None) -> List[Dependency]:
        """Declared dependencies of ``configuration``, or of all sets if None."""
        return [
            self.locate_source(dependency)
            for dependency in self.config.declared_dependencies(configuration)
        ]

    def locate_source(self, dependency: Dependency) -> Dependency:
        """Point an unlocated ``source`` dependency at its workspace checkout."""
        if not dependency.is_source or dependency.location is not None:
            return dependency
        candidate = self.config.paths.workspace_source_root / dependency.identifier
        if candidate.is_dir():
            return dependency.with_location(candidate)
        return dependency

    def project_dependency(self) -> Optional[Dependency]:
        """The project's own package, if its sources are in the workspace."""
        package_name = self.config.project.package_name
        if not package_name:
            return None
        location = self.config.paths.workspace_source_root / package_name
        if not contains_sources(location, self.config.toolchain.source_extensions):
            return None
        return new_dependency(package_name, kind=DependencyKind.SOURCE, location=location)

    def initial_dependencies(
        self,
        configuration: Optional[str] = None,
        extra_required: Optional[Iterable[Dependency]] = None,
    ) -> List[Dependency]:
        """
        Dependencies a run starts from.

        The project package comes first for every configuration except
        ``tool``, followed by the declared set and ``extra_required``.
        """
        initial: List[Dependency] = []
        if configuration != TOOL_CONFIGURATION:
            project = self.project_dependency()
            if project is not None:
                initial.append(project)
        initial.extend(self.declared_dependencies(configuration))
        initial.extend(self.locate_source(d) for d in extra_required or [])
        return initial

    def select_target_directory_for(self, configuration: Optional[str]) -> Path:
        """Tools go into the workspace, everything else into the cache."""
        if configuration == TOOL_CONFIGURATION:
            return self.config.paths.workspace_source_root
        return self.config.paths.dependency_cache

    async def resolve(
        self,
        configuration: Optional[str] = None,
        extra_required: Optional[Iterable[Dependency]] = None,
    ) -> ResolutionResult:
        """
        Resolve, fetch and update the dependencies of ``configuration``.

        Args:
            configuration: Name of a declared dependency set, None for all
            extra_required: Additional dependencies that must be present

        Returns:
            ResolutionResult with one entry per distinct identifier

        Raises:
            UnresolvableReferenceError: If a non-source dependency matches no
                VCS backend
            MissingExternalToolError: If import extraction fails
            VcsOperationError: If a fetch or update fails
        """
        start_time = time.time()
        set_run_context(run_id=f"resolve_{int(start_time)}", configuration=configuration)

        result = ResolutionResult(configuration=configuration)
        queue: Deque[Dependency] = deque(
            self.initial_dependencies(configuration, extra_required)
        )

        target = self.select_target_directory_for(configuration)
        force_update = self.config.dependencies.force_update

        try:
            while queue:
                dependency = queue.popleft()
                if dependency.identifier in result:
                    continue

                outcome = await self._handle(dependency, target, force_update)
                result.record(dependency, outcome)
                queue.extend(await self.import_scanner.transitive_imports(dependency))
        finally:
            clear_run_context()

        result.duration_ms = int((time.time() - start_time) * 1000)
        self._log_summary(result)
        return result

    async def _handle(
        self, dependency: Dependency, target: Path, force_update: bool
    ) -> FetchOutcome:
        if dependency.is_source:
            return FetchOutcome.ALREADY_PRESENT

        reference = reference_for(dependency)
        repository = await self.vcs_provider.try_provide_for(reference)
        if repository is None:
            self.error_handler.error(
                ErrorCategory.RESOLUTION,
                f"Could not download dependency: {reference}",
                "dependency_resolver",
                "resolve",
                details={"dependency": dependency.identifier, "kind": dependency.kind.value},
                suggestions=[
                    "Declare an explicit url for this dependency",
                    "Check the import path for typos",
                ],
            )
            raise UnresolvableReferenceError(reference)

        logger.debug("Update dependency %s (if required)...", reference)
        if force_update:
            await repository.force_update(target)
            outcome = FetchOutcome.DOWNLOADED
        elif await repository.update_if_required(target) is not None:
            outcome = FetchOutcome.DOWNLOADED
        else:
            outcome = FetchOutcome.ALREADY_PRESENT

        if outcome == FetchOutcome.DOWNLOADED:
            logger.info("Dependency %s updated.", reference)
        else:
            logger.debug("No update required for dependency %s.", reference)
        log_dependency_updated(dependency.identifier, str(reference), outcome.value)
        return outcome

    def _log_summary(self, result: ResolutionResult) -> None:
        log_resolution_complete(
            result.configuration,
            result.duration_ms,
            len(result),
            len(result.downloaded),
        )
        if result and logger.isEnabledFor(logging.INFO):
            title = (result.configuration or "all").capitalize()
            lines = [f"{title} dependencies:"]
            lines.extend(f"\t* {dependency}" for dependency in result)
            logger.info("\n".join(lines))


async def resolve_dependencies(
    configuration: Optional[str] = None,
    extra_required: Optional[Iterable[Dependency]] = None,
    config: Optional[ComprehensiveConfig] = None,
) -> ResolutionResult:
    """
    Convenience function to resolve a dependency set with default collaborators.

    Args:
        configuration: Name of a declared dependency set, None for all
        extra_required: Additional dependencies that must be present
        config: Configuration, defaults to the global configuration

    Returns:
        ResolutionResult of the run
    """
    resolver = DependencyResolver(config)
    return await resolver.resolve(configuration, extra_required)
