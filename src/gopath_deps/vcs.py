"""
VCS abstraction used by the resolver to materialize dependencies.

A ``VcsReference`` is derived from a dependency's import path. Providers map
references to repositories by host pattern (``github.com/<owner>/<repo>``,
``golang.org/x/<name>``, ...) or through go-get vanity import discovery.
Repositories are checked out with the ``git`` executable below
``<target_root>/<repository_root>``.
"""

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from html.parser import HTMLParser
from pathlib import Path
from typing import Dict, List, Optional

import httpx

from .command_runner import CommandResult, run_command_safely
from .config import ComprehensiveConfig, get_config
from .dependency import Dependency
from .discovery_cache import DiscoveredRepository, DiscoveryCache, get_discovery_cache
from .error_handling import (
    ErrorCategory,
    VcsOperationError,
    get_error_handler,
    log_vcs_error,
)
from .structured_logging import log_vcs_operation

_SEGMENT = r"[A-Za-z0-9_.\-$]+"
_SUB_PACKAGES = rf"(?:/{_SEGMENT})*"


@dataclass(frozen=True)
class VcsReference:
    """What the resolver asks the VCS layer to provide."""

    identifier: str
    version: Optional[str] = None
    url: Optional[str] = None

    @property
    def host(self) -> str:
        return self.identifier.split("/", 1)[0]

    def __str__(self) -> str:
        if self.version:
            return f"{self.identifier}@{self.version}"
        return self.identifier


@dataclass(frozen=True)
class VcsFullReference:
    """A reference pinned to a concrete repository revision."""

    reference: VcsReference
    repository_root: str
    url: str
    revision: str

    def __str__(self) -> str:
        return f"{self.repository_root}@{self.revision[:12]}"


def reference_for(dependency: Dependency) -> VcsReference:
    """Derive the VCS reference of a dependency."""
    return VcsReference(
        identifier=dependency.identifier,
        version=dependency.version,
        url=dependency.url,
    )


class VcsRepository(ABC):
    """A remote repository that can be materialized below a target root."""

    def __init__(self, reference: VcsReference, repository_root: str, url: str):
        self.reference = reference
        self.repository_root = repository_root.strip("/")
        self.url = url

    def target_directory(self, target_root: Path) -> Path:
        return Path(target_root) / self.repository_root

    @abstractmethod
    async def update_if_required(self, target_root: Path) -> Optional[VcsFullReference]:
        """
        Fetch or update the checkout only if needed.

        Returns:
            The new full reference if content changed, otherwise None
        """

    @abstractmethod
    async def force_update(self, target_root: Path) -> None:
        """Refresh the checkout unconditionally."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.repository_root!r}, {self.url!r})"


class GitRepository(VcsRepository):
    """Repository checked out with the ``git`` command line client."""

    def __init__(
        self,
        reference: VcsReference,
        repository_root: str,
        url: str,
        config: Optional[ComprehensiveConfig] = None,
    ):
        super().__init__(reference, repository_root, url)
        self.config = config or get_config()

    async def _git(
        self, *args: str, cwd: Optional[Path] = None, check: bool = True
    ) -> CommandResult:
        command = [self.config.vcs.git_executable, *args]
        try:
            result = await run_command_safely(
                command,
                timeout_seconds=self.config.vcs.timeout_seconds,
                cwd=cwd,
                env={"GIT_TERMINAL_PROMPT": "0"},
            )
        except (FileNotFoundError, PermissionError) as e:
            log_vcs_error(
                "git executable could not be started",
                "vcs",
                "_git",
                reference=str(self.reference),
                exception=e,
            )
            raise VcsOperationError(f"Cannot run {command[0]}: {e}") from e

        if check and not result.ok:
            log_vcs_error(
                f"git {args[0]} failed: {result.stderr.strip()}",
                "vcs",
                "_git",
                reference=str(self.reference),
            )
            raise VcsOperationError(
                f"git {args[0]} failed for {self.url}: {result.stderr.strip()}"
            )
        return result

    def _is_checkout(self, directory: Path) -> bool:
        return (directory / ".git").exists()

    async def _revision_of(self, directory: Path, revision: str) -> Optional[str]:
        result = await self._git(
            "rev-parse", "--verify", "--quiet", f"{revision}^{{commit}}",
            cwd=directory,
            check=False,
        )
        if not result.ok:
            return None
        return result.stdout.strip() or None

    async def _head(self, directory: Path) -> str:
        revision = await self._revision_of(directory, "HEAD")
        if revision is None:
            raise VcsOperationError(f"Checkout in {directory} has no HEAD revision")
        return revision

    async def _resolve_version(self, directory: Path, fetch: bool) -> str:
        version = self.reference.version
        if fetch:
            await self._git("fetch", "--quiet", "--tags", "--force", "origin", cwd=directory)
            candidates = [f"origin/{version}", version] if version else ["origin/HEAD"]
        else:
            candidates = [version] if version else ["HEAD"]

        for candidate in candidates:
            revision = await self._revision_of(directory, candidate)
            if revision is not None:
                return revision
        raise VcsOperationError(f"Unknown revision {version} in {self.url}")

    async def _clone(self, directory: Path) -> str:
        directory.parent.mkdir(parents=True, exist_ok=True)
        await self._git("clone", "--quiet", self.url, str(directory))
        log_vcs_operation("clone", self.repository_root, url=self.url)
        if self.reference.version:
            await self._checkout(directory, self.reference.version)
        return await self._head(directory)

    async def _checkout(self, directory: Path, revision: str) -> None:
        await self._git("checkout", "--quiet", "--force", revision, cwd=directory)
        log_vcs_operation("checkout", self.repository_root, revision=revision)

    def _full_reference(self, revision: str) -> VcsFullReference:
        return VcsFullReference(
            reference=self.reference,
            repository_root=self.repository_root,
            url=self.url,
            revision=revision,
        )

    async def update_if_required(self, target_root: Path) -> Optional[VcsFullReference]:
        directory = self.target_directory(target_root)

        if not self._is_checkout(directory):
            if directory.exists() and any(directory.iterdir()):
                get_error_handler().warning(
                    ErrorCategory.VCS,
                    "Directory exists but is not a git checkout, leaving it untouched",
                    "vcs",
                    "update_if_required",
                    details={"directory": str(directory)},
                )
                return None
            return self._full_reference(await self._clone(directory))

        if not self.reference.version:
            return None

        current = await self._head(directory)
        try:
            desired = await self._resolve_version(directory, fetch=False)
        except VcsOperationError:
            desired = await self._resolve_version(directory, fetch=True)
        if desired == current:
            return None

        await self._checkout(directory, desired)
        return self._full_reference(desired)

    async def force_update(self, target_root: Path) -> None:
        directory = self.target_directory(target_root)

        if not self._is_checkout(directory):
            if directory.exists() and any(directory.iterdir()):
                raise VcsOperationError(
                    f"Cannot force update {directory}: not a git checkout"
                )
            await self._clone(directory)
            return

        revision = await self._resolve_version(directory, fetch=True)
        await self._checkout(directory, revision)
        log_vcs_operation("force_update", self.repository_root, revision=revision)


class VcsRepositoryProvider(ABC):
    """Maps references to repositories."""

    @abstractmethod
    async def try_provide_for(self, reference: VcsReference) -> Optional[VcsRepository]:
        """Return a repository for ``reference`` or None if not recognized."""


@dataclass(frozen=True)
class HostPattern:
    """Import path pattern of a well-known hosting service."""

    pattern: re.Pattern
    url_template: str

    def match(self, identifier: str) -> Optional[Dict[str, str]]:
        found = self.pattern.match(identifier)
        if found is None:
            return None
        return {key: value or "" for key, value in found.groupdict().items()}


DEFAULT_HOST_PATTERNS: List[HostPattern] = [
    HostPattern(
        re.compile(rf"^(?P<root>github\.com/{_SEGMENT}/{_SEGMENT}){_SUB_PACKAGES}$"),
        "https://{root}",
    ),
    HostPattern(
        re.compile(rf"^(?P<root>gitlab\.com/{_SEGMENT}/{_SEGMENT}){_SUB_PACKAGES}$"),
        "https://{root}",
    ),
    HostPattern(
        re.compile(rf"^(?P<root>bitbucket\.org/{_SEGMENT}/{_SEGMENT}){_SUB_PACKAGES}$"),
        "https://{root}",
    ),
    HostPattern(
        re.compile(rf"^(?P<root>golang\.org/x/(?P<name>{_SEGMENT})){_SUB_PACKAGES}$"),
        "https://go.googlesource.com/{name}",
    ),
    HostPattern(
        re.compile(
            rf"^(?P<root>gopkg\.in/(?:{_SEGMENT}/)?[A-Za-z0-9_\-]+\.v\d+){_SUB_PACKAGES}$"
        ),
        "https://{root}",
    ),
    HostPattern(
        re.compile(
            r"^(?P<root>[A-Za-z0-9\-]+\.[A-Za-z0-9\-.]+(?::\d+)?(?:/[A-Za-z0-9_.\-]+)*?"
            rf"/[A-Za-z0-9_\-]+\.git){_SUB_PACKAGES}$"
        ),
        "https://{root}",
    ),
]


class HostPatternGitProvider(VcsRepositoryProvider):
    """Git repositories on hosts with a fixed import path layout."""

    def __init__(
        self,
        config: Optional[ComprehensiveConfig] = None,
        host_patterns: Optional[List[HostPattern]] = None,
    ):
        self.config = config or get_config()
        self.host_patterns = host_patterns or DEFAULT_HOST_PATTERNS

    def match(self, identifier: str) -> Optional[Dict[str, str]]:
        for host_pattern in self.host_patterns:
            groups = host_pattern.match(identifier)
            if groups is not None:
                return {
                    "root": groups["root"],
                    "url": host_pattern.url_template.format(**groups),
                }
        return None

    async def try_provide_for(self, reference: VcsReference) -> Optional[VcsRepository]:
        if reference.url:
            matched = self.match(reference.identifier)
            root = matched["root"] if matched else reference.identifier
            return GitRepository(reference, root, reference.url, self.config)

        matched = self.match(reference.identifier)
        if matched is None:
            return None
        return GitRepository(reference, matched["root"], matched["url"], self.config)


class _GoImportMetaParser(HTMLParser):
    """Collects ``content`` of ``<meta name="go-import">`` tags."""

    def __init__(self):
        super().__init__()
        self.contents: List[str] = []

    def handle_starttag(self, tag, attrs):
        if tag != "meta":
            return
        values = dict(attrs)
        if values.get("name") == "go-import" and values.get("content"):
            self.contents.append(values["content"])


def parse_go_import_meta(html: str) -> List[DiscoveredRepository]:
    """Parse all go-import declarations of a go-get discovery page."""
    parser = _GoImportMetaParser()
    parser.feed(html)
    result = []
    for content in parser.contents:
        fields = content.split()
        if len(fields) == 3:
            result.append(DiscoveredRepository(prefix=fields[0], vcs=fields[1], url=fields[2]))
    return result


class GoGetDiscoveryProvider(VcsRepositoryProvider):
    """Vanity import paths resolved through ``?go-get=1`` discovery."""

    def __init__(
        self,
        config: Optional[ComprehensiveConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cache: Optional[DiscoveryCache] = None,
    ):
        self.config = config or get_config()
        self.transport = transport
        self.cache = cache or get_discovery_cache()
        self._headers = {"User-Agent": self.config.vcs.user_agent}

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(
            self.config.vcs.read_timeout, connect=self.config.vcs.connect_timeout
        )
        return httpx.AsyncClient(
            timeout=timeout,
            headers=self._headers,
            transport=self.transport,
            follow_redirects=True,
        )

    async def discover(self, identifier: str) -> Optional[DiscoveredRepository]:
        """Ask the import path's host which repository serves it."""
        if self.cache.contains(identifier):
            return self.cache.get(identifier)

        url = f"https://{identifier}"
        try:
            async with self._create_client() as client:
                response = await client.get(url, params={"go-get": "1"})
        except httpx.HTTPError as e:
            get_error_handler().warning(
                ErrorCategory.NETWORK,
                f"go-get discovery failed: {e}",
                "vcs",
                "discover",
                details={"import_path": identifier},
            )
            return None

        discovered = None
        if response.status_code == 200:
            for candidate in parse_go_import_meta(response.text):
                if identifier == candidate.prefix or identifier.startswith(
                    candidate.prefix + "/"
                ):
                    discovered = candidate
                    break

        self.cache.put(identifier, discovered)
        return discovered

    async def try_provide_for(self, reference: VcsReference) -> Optional[VcsRepository]:
        if "." not in reference.host:
            return None
        discovered = await self.discover(reference.identifier)
        if discovered is None or discovered.vcs != "git":
            return None
        return GitRepository(
            reference,
            discovered.prefix,
            reference.url or discovered.url,
            self.config,
        )


class CombinedVcsRepositoryProvider(VcsRepositoryProvider):
    """Asks each provider in turn; the first repository returned wins."""

    def __init__(self, providers: List[VcsRepositoryProvider]):
        self.providers = providers

    async def try_provide_for(self, reference: VcsReference) -> Optional[VcsRepository]:
        for provider in self.providers:
            repository = await provider.try_provide_for(reference)
            if repository is not None:
                return repository
        return None


def get_vcs_repository_provider(
    config: Optional[ComprehensiveConfig] = None,
) -> VcsRepositoryProvider:
    """Default provider chain for the given configuration."""
    config = config or get_config()
    providers: List[VcsRepositoryProvider] = [HostPatternGitProvider(config)]
    if config.vcs.enable_go_get_discovery:
        providers.append(GoGetDiscoveryProvider(config))
    return CombinedVcsRepositoryProvider(providers)
