import asyncio
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click
from rich.console import Console
from rich.panel import Panel

from .cache_sweeper import CacheSweeper
from .config import (
    DEFAULT_CONFIGURATIONS,
    ComprehensiveConfig,
    build_config,
    create_sample_config,
    get_config,
    load_config,
    load_config_file,
    parse_dependency_spec,
    validate_config_values,
)
from .dependency import Dependency
from .dependency_resolver import DependencyResolver
from .error_handling import ConfigurationError, GopathDepsError
from .reporting import ResolutionReporter
from .structured_logging import configure_logging

__version__ = "1.0.0"

console = Console()


def _configure_logging(config: ComprehensiveConfig, verbose: bool = False) -> None:
    log_level = "INFO" if verbose else config.logging.log_level
    configure_logging(log_level, config.logging.enable_json)


def parse_required(required: Tuple[str, ...]) -> List[Dependency]:
    """Turn ``--require`` values into dependencies."""
    dependencies = []
    for spec in required:
        name, _, version = spec.partition("@")
        entry = {"name": name, "version": version} if version else name
        try:
            dependencies.append(parse_dependency_spec(entry))
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--require")
    return dependencies


async def async_resolve_dependencies(
    configuration: Optional[str],
    required: List[Dependency],
    output_format: str,
    config: ComprehensiveConfig,
) -> None:
    """Run dependency resolution and report the result."""
    reporter = ResolutionReporter(console)
    resolver = DependencyResolver(config)

    result = await resolver.resolve(configuration, required)

    if output_format == "json":
        reporter.print_resolution_json(result)
    else:
        reporter.print_resolution_results(result)


@click.group(invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show version information")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file to use instead of the standard locations",
)
@click.pass_context
def cli(ctx, version, config_path):
    """
    📦 gopath-deps: dependency resolution for GOPATH-style Go workspaces

    Fetches the transitive dependencies of a project into a dependency
    cache and keeps that cache free of stale checkouts.
    """
    if version:
        console.print(f"gopath-deps version {__version__}", style="bold blue")
        ctx.exit()

    if config_path:
        try:
            load_config(Path(config_path))
        except ConfigurationError as e:
            raise click.ClickException(str(e))

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@cli.command()
@click.option(
    "--configuration",
    "-c",
    type=click.Choice(list(DEFAULT_CONFIGURATIONS), case_sensitive=False),
    help="Dependency set to resolve (default: all)",
)
@click.option(
    "--require",
    "-r",
    "required",
    multiple=True,
    help="Additional dependency that must be present, as ID or ID@VERSION",
)
@click.option("--force-update", is_flag=True, help="Update every dependency unconditionally")
@click.option(
    "--output-format",
    type=click.Choice(["console", "json"], case_sensitive=False),
    default="console",
    help="Output format for results",
    show_default=True,
)
@click.option("--verbose", "-v", is_flag=True, help="Log every fetch and update")
def resolve(
    configuration: Optional[str],
    required: Tuple[str, ...],
    force_update: bool,
    output_format: str,
    verbose: bool,
) -> None:
    """
    Resolve, fetch and update the dependencies of the workspace.

    Examples:

      gopath-deps resolve

      gopath-deps resolve --configuration build

      gopath-deps resolve --require github.com/pkg/errors@v0.9.1

      gopath-deps resolve --force-update --output-format json
    """
    config = get_config()
    if force_update:
        config.dependencies.force_update = True
    _configure_logging(config, verbose)

    extra_required = parse_required(required)

    try:
        asyncio.run(
            async_resolve_dependencies(
                configuration.lower() if configuration else None,
                extra_required,
                output_format.lower(),
                config,
            )
        )
    except KeyboardInterrupt:
        Console(stderr=True).print("\n⚠️  Resolution interrupted by user", style="yellow")
        sys.exit(130)
    except (GopathDepsError, ValueError) as e:
        ResolutionReporter(Console(stderr=True)).print_error(e)
        sys.exit(1)


@cli.command()
@click.option(
    "--delete-unknown/--keep-unknown",
    default=None,
    help="Delete cache directories of undeclared dependencies (default from config)",
)
@click.option("--delete-all", is_flag=True, help="Delete the whole dependency cache")
def clean(delete_unknown: Optional[bool], delete_all: bool) -> None:
    """
    Remove stale checkouts from the dependency cache.

    With --delete-all the cache root is removed entirely; otherwise only
    directories belonging to no declared dependency are deleted.

    Declare repository roots, not sub-packages: when only github.com/a/b/c
    is declared, the checkout metadata and sibling packages of github.com/a/b
    count as unknown and are deleted, and later updates of that repository
    are skipped until it is cloned again.
    """
    config = get_config()
    if delete_unknown is not None:
        config.dependencies.delete_unknown_dependencies = delete_unknown
    if delete_all:
        config.dependencies.delete_all_cached_dependencies_on_clean = True
    _configure_logging(config)

    reporter = ResolutionReporter(console)
    sweeper = CacheSweeper(config)

    try:
        if config.dependencies.delete_all_cached_dependencies_on_clean:
            deleted = sweeper.delete_all_cached_dependencies_if_required()
            reporter.print_sweep_results("Deleted cache entries", deleted)
        elif config.dependencies.delete_unknown_dependencies:
            deleted = sweeper.delete_unknown_dependencies_if_required()
            reporter.print_sweep_results("Deleted unknown dependencies", deleted)
        else:
            console.print(
                "ℹ️  Cache cleanup is disabled. Use --delete-unknown or --delete-all.",
                style="blue",
            )
    except (GopathDepsError, ValueError) as e:
        Console(stderr=True).print(f"❌ Error: {e}", style="red")
        sys.exit(1)


@cli.command()
def info():
    """Show information about lookup order, configuration and usage."""
    info_text = """
[bold blue]🔎 Package Lookup Order:[/bold blue]

• [green]vendor/[/green] - closest enclosing vendor directory of the importing package
• [green]dependency cache[/green] - previously fetched dependencies
• [green]workspace[/green] - $GOPATH/src, project sources are never fetched
• [green]toolchain[/green] - standard library under $GOROOT/src
• [yellow]unresolved[/yellow] - fetched through git

[bold blue]📦 Dependency Sets:[/bold blue]

• [cyan]build[/cyan], [cyan]test[/cyan] - fetched into the dependency cache
• [cyan]tool[/cyan] - fetched into the workspace source root

[bold blue]🌍 Environment Variables:[/bold blue]

• [cyan]GOPATH_DEPS_WORKSPACE_SOURCE_ROOT[/cyan] - Workspace source root
• [cyan]GOPATH_DEPS_DEPENDENCY_CACHE[/cyan] - Dependency cache root
• [cyan]GOPATH_DEPS_TOOLCHAIN_SOURCE_ROOT[/cyan] - Toolchain source root
• [cyan]GOPATH_DEPS_PACKAGE_NAME[/cyan] - The project's own package
• [cyan]GOPATH_DEPS_FORCE_UPDATE[/cyan] - Update every dependency
• [cyan]GOPATH_DEPS_IMPORTS_EXTRACTOR[/cyan] - Import extraction command

[bold blue]📄 Configuration Files:[/bold blue]

• [green].gopath-deps.json[/green], [green].gopath-deps.yaml[/green], [green].gopath-deps.toml[/green] - Project-level config
• [green]~/.config/gopath-deps/config.json[/green] - User-level config

[bold blue]💡 Usage Examples:[/bold blue]

  # Fetch everything that is missing
  gopath-deps resolve

  # Build dependencies only, JSON output
  gopath-deps resolve --configuration build --output-format json

  # Remove undeclared dependencies from the cache
  gopath-deps clean --delete-unknown

  # Generate sample config
  gopath-deps config init
"""
    console.print(
        Panel(
            info_text,
            title="[bold]gopath-deps Information[/bold]",
            border_style="blue",
        )
    )


@cli.group()
def config():
    """Configuration management commands."""
    pass


@config.command("init")
@click.option(
    "--path",
    type=click.Path(),
    default=".gopath-deps.json",
    help="Path where to create the config file",
    show_default=True,
)
@click.option("--force", is_flag=True, help="Overwrite existing config file")
def config_init(path: str, force: bool):
    """Create a sample configuration file."""
    config_path = Path(path)

    if config_path.exists() and not force:
        console.print(f"⚠️  Config file already exists at {config_path}", style="yellow")
        console.print("Use --force to overwrite", style="dim")
        return

    try:
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_sample_config())
    except OSError as e:
        console.print(f"❌ Failed to create config file: {e}", style="red")
        sys.exit(1)

    console.print(f"✅ Created configuration file at {config_path}", style="green")
    console.print("Edit this file to customize your settings", style="dim")


@config.command("show")
def config_show():
    """Show current configuration settings."""
    current_config = get_config()

    console.print(Panel("[bold blue]🔧 Configuration[/bold blue]", border_style="blue"))

    console.print("\n[bold cyan]📁 Paths:[/bold cyan]")
    console.print(f"  Workspace Source Root: {current_config.paths.workspace_source_root}")
    console.print(f"  Dependency Cache: {current_config.paths.dependency_cache}")
    console.print(f"  Toolchain Source Root: {current_config.paths.toolchain_source_root}")

    console.print("\n[bold cyan]📦 Project:[/bold cyan]")
    console.print(f"  Package Name: {current_config.project.package_name or '-'}")

    console.print("\n[bold cyan]🔗 Dependencies:[/bold cyan]")
    console.print(f"  Force Update: {current_config.dependencies.force_update}")
    console.print(
        f"  Delete Unknown: {current_config.dependencies.delete_unknown_dependencies}"
    )
    console.print(
        "  Delete All On Clean: "
        f"{current_config.dependencies.delete_all_cached_dependencies_on_clean}"
    )
    for name in current_config.configuration_names():
        declared = current_config.declared_dependencies(name)
        console.print(f"  {name}: {', '.join(str(d) for d in declared) or '-'}")

    console.print("\n[bold cyan]🛠️  Toolchain:[/bold cyan]")
    console.print(f"  Imports Extractor: {current_config.toolchain.imports_extractor}")
    console.print(
        f"  Source Extensions: {', '.join(current_config.toolchain.source_extensions)}"
    )
    console.print(f"  Timeout: {current_config.toolchain.timeout_seconds}s")

    console.print("\n[bold cyan]🌐 VCS:[/bold cyan]")
    console.print(f"  Git Executable: {current_config.vcs.git_executable}")
    console.print(f"  Timeout: {current_config.vcs.timeout_seconds}s")
    console.print(f"  go-get Discovery: {current_config.vcs.enable_go_get_discovery}")
    console.print(f"  User Agent: {current_config.vcs.user_agent}")

    console.print("\n[bold cyan]📝 Logging:[/bold cyan]")
    console.print(f"  Log Level: {current_config.logging.log_level}")
    console.print(f"  JSON Output: {current_config.logging.enable_json}")


@config.command("validate")
@click.argument("config_file", type=click.Path(exists=True))
def config_validate(config_file: str):
    """Validate a configuration file."""
    file_config = load_config_file(Path(config_file))
    if file_config is None:
        console.print(f"❌ Could not load {config_file}", style="red")
        sys.exit(1)

    errors = validate_config_values(build_config(file_config))
    if errors:
        console.print("❌ Configuration has errors:", style="red")
        for error in errors:
            console.print(f"  • {error}", style="red")
        sys.exit(1)

    console.print(f"✅ {config_file} is valid", style="green")


if __name__ == "__main__":
    cli()
