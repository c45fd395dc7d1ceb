"""
Shared fixtures for gopath-deps tests.
Provides a temporary GOPATH layout, a fake VCS backend and a fake import
extractor that reads the imports straight from the source files.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

from gopath_deps.config import (
    ComprehensiveConfig,
    DependenciesConfig,
    PathsConfig,
    ProjectConfig,
    VcsConfig,
    reset_config,
    set_config,
)
from gopath_deps.discovery_cache import reset_discovery_cache
from gopath_deps.error_handling import setup_error_handling
from gopath_deps.import_scanner import ImportScanner, ImportsExtractor
from gopath_deps.vcs import (
    VcsFullReference,
    VcsReference,
    VcsRepository,
    VcsRepositoryProvider,
)

PROJECT_PACKAGE = "github.com/acme/proj"


@pytest.fixture(autouse=True)
def reset_globals():
    """Isolate global configuration, discovery cache and error handler between tests."""
    reset_config()
    reset_discovery_cache()
    setup_error_handling()
    yield
    reset_config()
    reset_discovery_cache()


def write_package(root: Path, import_path: str, files: Dict[str, str]) -> Path:
    """Create ``root/import_path`` holding the given source files."""
    directory = root / import_path
    directory.mkdir(parents=True, exist_ok=True)
    for name, content in files.items():
        (directory / name).write_text(content)
    return directory


def go_source(*imports: str) -> str:
    """Source file body the fake extractor turns into quoted import lines."""
    return "\n".join(f'"{path}"' for path in imports) + "\n"


class GoLayout:
    """Temporary workspace, dependency cache and toolchain roots."""

    def __init__(self, base: Path):
        self.workspace = base / "gopath" / "src"
        self.cache = base / "cache"
        self.goroot = base / "goroot" / "src"
        for directory in (self.workspace, self.cache, self.goroot):
            directory.mkdir(parents=True)

    def config(self, **configurations) -> ComprehensiveConfig:
        declared = {"build": [], "test": [], "tool": []}
        declared.update(configurations)
        return ComprehensiveConfig(
            paths=PathsConfig(
                workspace_source_root=self.workspace,
                dependency_cache=self.cache,
                toolchain_source_root=self.goroot,
            ),
            project=ProjectConfig(package_name=PROJECT_PACKAGE),
            dependencies=DependenciesConfig(configurations=declared),
            vcs=VcsConfig(enable_go_get_discovery=False),
        )


class FakeRepository(VcsRepository):
    """Materializes files from an in-memory remote and records every call."""

    def __init__(self, reference: VcsReference, root: str, files: Dict[str, str]):
        super().__init__(reference, root, f"https://{root}")
        self.files = files
        self.calls: List[Tuple[str, Path]] = []

    def _materialize(self, target_root: Path) -> None:
        write_package(Path(target_root), self.repository_root, self.files)

    async def update_if_required(self, target_root: Path) -> Optional[VcsFullReference]:
        self.calls.append(("update_if_required", Path(target_root)))
        if self.target_directory(target_root).exists():
            return None
        self._materialize(target_root)
        return VcsFullReference(self.reference, self.repository_root, self.url, "0" * 40)

    async def force_update(self, target_root: Path) -> None:
        self.calls.append(("force_update", Path(target_root)))
        self._materialize(target_root)


class FakeVcsProvider(VcsRepositoryProvider):
    """Knows the repositories in ``remote``, keyed by repository root."""

    def __init__(self, remote: Dict[str, Dict[str, str]]):
        self.remote = remote
        self.requested: List[str] = []
        self.repositories: List[FakeRepository] = []

    async def try_provide_for(self, reference: VcsReference) -> Optional[VcsRepository]:
        self.requested.append(reference.identifier)
        for root, files in self.remote.items():
            if reference.identifier == root or reference.identifier.startswith(root + "/"):
                repository = FakeRepository(reference, root, files)
                self.repositories.append(repository)
                return repository
        return None

    def calls(self, operation: str) -> List[Tuple[str, Path]]:
        return [
            (repository.repository_root, target)
            for repository in self.repositories
            for name, target in repository.calls
            if name == operation
        ]


class FakeExtractor(ImportsExtractor):
    """Returns the file content itself as extractor output."""

    def __init__(self, config: ComprehensiveConfig):
        super().__init__(config)
        self.extracted: List[Path] = []

    async def extract(self, file_path: Path) -> str:
        self.extracted.append(file_path)
        return file_path.read_text()


@pytest.fixture
def layout(tmp_path):
    """Empty workspace, cache and toolchain roots below ``tmp_path``."""
    return GoLayout(tmp_path)


@pytest.fixture
def cyclic_remote():
    """Three repositories importing each other in a cycle A -> B -> C -> A."""
    return {
        "github.com/a/a": {"a.go": go_source("fmt", "github.com/b/b")},
        "github.com/b/b": {"b.go": go_source("github.com/c/c", "strings")},
        "github.com/c/c": {"c.go": go_source("github.com/a/a")},
    }


@pytest.fixture
def make_scanner():
    """Build an ImportScanner backed by the fake extractor."""

    def factory(config: ComprehensiveConfig) -> ImportScanner:
        return ImportScanner(config, extractor=FakeExtractor(config))

    return factory


@pytest.fixture
def installed_config(layout):
    """Install a layout-backed configuration as the global one."""

    def install(**configurations) -> ComprehensiveConfig:
        config = layout.config(**configurations)
        set_config(config)
        return config

    return install
