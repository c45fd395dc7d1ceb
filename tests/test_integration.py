"""
Integration tests for gopath-deps.
Tests complete resolution runs against a temporary GOPATH layout with a fake
VCS backend.
"""

import shlex
import sys

import pytest

from gopath_deps.dependency import Dependency, DependencyKind, FetchOutcome
from gopath_deps.dependency_resolver import DependencyResolver
from gopath_deps.error_handling import (
    MissingExternalToolError,
    UnresolvableReferenceError,
    get_error_handler,
)
from gopath_deps.import_scanner import ImportScanner

from conftest import PROJECT_PACKAGE, FakeVcsProvider, go_source, write_package


def make_resolver(config, provider, make_scanner):
    return DependencyResolver(config, vcs_provider=provider, import_scanner=make_scanner(config))


class TestResolution:
    """Test complete resolution workflows."""

    @pytest.mark.asyncio
    async def test_cycle_terminates(self, layout, cyclic_remote, make_scanner):
        """A -> B -> C -> A resolves every dependency exactly once."""
        config = layout.config(build=["github.com/a/a"])
        provider = FakeVcsProvider(cyclic_remote)

        result = await make_resolver(config, provider, make_scanner).resolve("build")

        assert result.identifiers == ["github.com/a/a", "github.com/b/b", "github.com/c/c"]
        assert all(outcome == FetchOutcome.DOWNLOADED for outcome in result.values())
        assert sorted(provider.requested) == result.identifiers

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, layout, cyclic_remote, make_scanner):
        """Re-running without changes finds everything already present."""
        config = layout.config(build=["github.com/a/a"])
        provider = FakeVcsProvider(cyclic_remote)

        first = await make_resolver(config, provider, make_scanner).resolve("build")
        second = await make_resolver(config, provider, make_scanner).resolve("build")

        assert second.identifiers == first.identifiers
        assert all(outcome == FetchOutcome.ALREADY_PRESENT for outcome in second.values())
        assert second.downloaded == []

    @pytest.mark.asyncio
    async def test_force_update_reports_downloaded(self, layout, cyclic_remote, make_scanner):
        """With force update every dependency is refreshed and downloaded."""
        config = layout.config(build=["github.com/a/a"])
        provider = FakeVcsProvider(cyclic_remote)
        await make_resolver(config, provider, make_scanner).resolve("build")

        config.dependencies.force_update = True
        forced_provider = FakeVcsProvider(cyclic_remote)
        result = await make_resolver(config, forced_provider, make_scanner).resolve("build")

        assert all(outcome == FetchOutcome.DOWNLOADED for outcome in result.values())
        assert len(forced_provider.calls("force_update")) == 3
        assert forced_provider.calls("update_if_required") == []

    @pytest.mark.asyncio
    async def test_unresolvable_reference_is_fatal(self, layout, cyclic_remote, make_scanner):
        """A dependency no backend recognizes aborts the whole run."""
        config = layout.config(build=["github.com/a/a", "example.invalid/nothing/here"])
        provider = FakeVcsProvider(cyclic_remote)

        with pytest.raises(UnresolvableReferenceError) as exc_info:
            await make_resolver(config, provider, make_scanner).resolve("build")

        assert "example.invalid/nothing/here" in str(exc_info.value)
        assert get_error_handler().get_error_stats()["RESOLUTION_ERROR"] == 1

    @pytest.mark.asyncio
    async def test_unresolvable_transitive_import_is_fatal(self, layout, make_scanner):
        """Unresolvable imports found deeper in the graph are fatal too."""
        remote = {"github.com/a/a": {"a.go": go_source("vanity.example.org/lib")}}
        config = layout.config(build=["github.com/a/a"])

        with pytest.raises(UnresolvableReferenceError, match="vanity.example.org/lib"):
            await make_resolver(config, FakeVcsProvider(remote), make_scanner).resolve("build")

    @pytest.mark.asyncio
    async def test_source_dependencies_never_fetched(self, layout, cyclic_remote, make_scanner):
        """The project's own packages are never handed to the VCS layer."""
        write_package(
            layout.workspace,
            PROJECT_PACKAGE,
            {"main.go": go_source("fmt", f"{PROJECT_PACKAGE}/util", "github.com/c/c")},
        )
        write_package(layout.workspace, f"{PROJECT_PACKAGE}/util", {"util.go": go_source("os")})
        config = layout.config(build=[{"name": PROJECT_PACKAGE, "kind": "source"}])
        provider = FakeVcsProvider(cyclic_remote)

        result = await make_resolver(config, provider, make_scanner).resolve("build")

        assert result[Dependency(PROJECT_PACKAGE)] == FetchOutcome.ALREADY_PRESENT
        util = result.by_identifier(f"{PROJECT_PACKAGE}/util")
        assert util.kind == DependencyKind.SOURCE
        assert result[util] == FetchOutcome.ALREADY_PRESENT
        assert not any(identifier.startswith(PROJECT_PACKAGE) for identifier in provider.requested)
        assert "github.com/a/a" in result

    @pytest.mark.asyncio
    async def test_vendored_copy_is_chosen(self, layout, make_scanner):
        """Resolution uses the vendor copy over the cache copy."""
        write_package(
            layout.workspace, PROJECT_PACKAGE, {"main.go": go_source("github.com/x/dep")}
        )
        vendored = write_package(
            layout.workspace, f"{PROJECT_PACKAGE}/vendor/github.com/x/dep", {"dep.go": ""}
        )
        write_package(layout.cache, "github.com/x/dep", {"dep.go": ""})
        config = layout.config()
        project = Dependency(
            PROJECT_PACKAGE, kind=DependencyKind.SOURCE, location=layout.workspace / PROJECT_PACKAGE
        )
        provider = FakeVcsProvider({"github.com/x/dep": {"dep.go": ""}})

        result = await make_resolver(config, provider, make_scanner).resolve(
            "build", extra_required=[project]
        )

        dep = result.by_identifier("github.com/x/dep")
        assert dep.location == vendored
        assert dep.parent == PROJECT_PACKAGE
        assert result[dep] == FetchOutcome.ALREADY_PRESENT

    @pytest.mark.asyncio
    async def test_declared_project_uses_vendored_copy(self, layout, make_scanner):
        """A project declared in configuration resolves its imports from vendor/."""
        write_package(
            layout.workspace, PROJECT_PACKAGE, {"main.go": go_source("github.com/x/dep")}
        )
        vendored = write_package(
            layout.workspace, f"{PROJECT_PACKAGE}/vendor/github.com/x/dep", {"dep.go": ""}
        )
        write_package(layout.cache, "github.com/x/dep", {"dep.go": ""})
        config = layout.config(build=[{"name": PROJECT_PACKAGE, "kind": "source"}])
        provider = FakeVcsProvider({"github.com/x/dep": {"dep.go": ""}})

        result = await make_resolver(config, provider, make_scanner).resolve("build")

        dep = result.by_identifier("github.com/x/dep")
        assert dep.location == vendored
        assert dep.parent == PROJECT_PACKAGE
        assert result.by_identifier(PROJECT_PACKAGE).location == layout.workspace / PROJECT_PACKAGE

    def test_declared_source_dependency_is_located(self, layout, make_scanner):
        """Declared source dependencies point at their workspace checkout."""
        write_package(layout.workspace, PROJECT_PACKAGE, {"main.go": go_source()})
        config = layout.config(
            build=[{"name": PROJECT_PACKAGE, "kind": "source"}, "github.com/a/a"]
        )
        resolver = make_resolver(config, FakeVcsProvider({}), make_scanner)

        project, other = resolver.declared_dependencies("build")

        assert project.location == layout.workspace / PROJECT_PACKAGE
        assert other.location is None

    @pytest.mark.asyncio
    async def test_project_package_seeds_resolution(self, layout, cyclic_remote, make_scanner):
        """The configured project package is scanned without being declared."""
        write_package(
            layout.workspace, PROJECT_PACKAGE, {"main.go": go_source("fmt", "github.com/a/a")}
        )
        config = layout.config()
        provider = FakeVcsProvider(cyclic_remote)

        result = await make_resolver(config, provider, make_scanner).resolve("build")

        assert result.identifiers == [
            "github.com/a/a",
            PROJECT_PACKAGE,
            "github.com/b/b",
            "github.com/c/c",
        ]
        assert result[Dependency(PROJECT_PACKAGE)] == FetchOutcome.ALREADY_PRESENT
        assert PROJECT_PACKAGE not in provider.requested

    @pytest.mark.asyncio
    async def test_tool_configuration_skips_project_package(
        self, layout, cyclic_remote, make_scanner
    ):
        """Resolving tools does not pull in the project's own imports."""
        write_package(
            layout.workspace, PROJECT_PACKAGE, {"main.go": go_source("github.com/a/a")}
        )
        config = layout.config()
        provider = FakeVcsProvider(cyclic_remote)

        result = await make_resolver(config, provider, make_scanner).resolve("tool")

        assert len(result) == 0
        assert provider.requested == []

    @pytest.mark.asyncio
    async def test_tool_configuration_targets_workspace(self, layout, make_scanner):
        """Tools are materialized in the workspace source root."""
        remote = {"github.com/tools/gen": {"main.go": go_source("github.com/tools/gen/internal")}}
        config = layout.config(tool=["github.com/tools/gen"], build=["github.com/pkg/errors"])
        provider = FakeVcsProvider(remote)
        resolver = make_resolver(config, provider, make_scanner)

        result = await resolver.resolve("tool")

        assert resolver.select_target_directory_for("tool") == layout.workspace
        assert resolver.select_target_directory_for("build") == layout.cache
        assert (layout.workspace / "github.com/tools/gen/main.go").exists()
        assert result.identifiers == ["github.com/tools/gen", "github.com/tools/gen/internal"]
        assert {target for _, target in provider.calls("update_if_required")} == {layout.workspace}

    @pytest.mark.asyncio
    async def test_all_configurations_and_extra_required(self, layout, cyclic_remote, make_scanner):
        """Without a configuration every declared set is resolved."""
        config = layout.config(build=["github.com/a/a"], test=["github.com/b/b"])
        provider = FakeVcsProvider(cyclic_remote)

        result = await make_resolver(config, provider, make_scanner).resolve(
            extra_required=[Dependency("github.com/c/c")]
        )

        assert result.configuration is None
        assert result.identifiers == ["github.com/a/a", "github.com/b/b", "github.com/c/c"]
        assert provider.requested.count("github.com/a/a") == 1

    @pytest.mark.asyncio
    async def test_missing_extractor_aborts_run(self, layout, cyclic_remote):
        """A failing import extractor aborts resolution."""
        config = layout.config(build=["github.com/a/a"])
        config.toolchain.imports_extractor = "gopath-deps-no-such-extractor"
        resolver = DependencyResolver(config, vcs_provider=FakeVcsProvider(cyclic_remote))

        with pytest.raises(MissingExternalToolError):
            await resolver.resolve("build")

    @pytest.mark.asyncio
    async def test_external_extractor_command(self, layout, cyclic_remote, tmp_path):
        """The configured extractor command is run once per source file."""
        script = tmp_path / "extract_imports.py"
        script.write_text("import sys\nsys.stdout.write(open(sys.argv[1]).read())\n")
        config = layout.config(build=["github.com/a/a"])
        config.toolchain.imports_extractor = (
            f"{shlex.quote(sys.executable)} {shlex.quote(str(script))}"
        )
        resolver = DependencyResolver(
            config, vcs_provider=FakeVcsProvider(cyclic_remote), import_scanner=ImportScanner(config)
        )

        result = await resolver.resolve("build")

        assert result.identifiers == ["github.com/a/a", "github.com/b/b", "github.com/c/c"]
