"""
Configuration management for gopath-deps.

Settings are layered: dataclass defaults, then the first configuration file
found (JSON, YAML or TOML), then ``GOPATH_DEPS_*`` environment overrides.
Declared dependency sets live in the ``dependencies.configurations`` table.
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import toml
import yaml
from rich.console import Console

from .dependency import Dependency, DependencyKind
from .error_handling import ConfigurationError

console = Console(stderr=True)

DEFAULT_CONFIGURATIONS = ("build", "test", "tool")

# Either a bare identifier or a table with name/version/url/kind
DependencySpec = Union[str, Dict[str, Any]]


def _default_gopath() -> Path:
    gopath = os.environ.get("GOPATH", "")
    if gopath:
        return Path(gopath.split(os.pathsep)[0])
    return Path.home() / "go"


def _default_goroot() -> Path:
    goroot = os.environ.get("GOROOT", "")
    if goroot:
        return Path(goroot)
    return Path("/usr/local/go")


@dataclass
class PathsConfig:
    """The three well-known roots that packages are looked up in."""

    workspace_source_root: Path = field(default_factory=lambda: _default_gopath() / "src")
    dependency_cache: Path = field(
        default_factory=lambda: Path.cwd() / ".gopath-deps" / "cache"
    )
    toolchain_source_root: Path = field(default_factory=lambda: _default_goroot() / "src")

    def __post_init__(self):
        self.workspace_source_root = Path(self.workspace_source_root).expanduser()
        self.dependency_cache = Path(self.dependency_cache).expanduser()
        self.toolchain_source_root = Path(self.toolchain_source_root).expanduser()


@dataclass
class ProjectConfig:
    """The project's own package namespace."""

    package_name: str = ""


@dataclass
class DependenciesConfig:
    """Declared dependency sets and cache policy flags."""

    force_update: bool = False
    delete_unknown_dependencies: bool = False
    delete_all_cached_dependencies_on_clean: bool = False
    configurations: Dict[str, List[DependencySpec]] = field(
        default_factory=lambda: {name: [] for name in DEFAULT_CONFIGURATIONS}
    )


@dataclass
class ToolchainConfig:
    """External import extraction tool settings."""

    imports_extractor: str = "go-imports-extractor"
    source_extensions: List[str] = field(default_factory=lambda: [".go"])
    timeout_seconds: int = 60


@dataclass
class VcsConfig:
    """VCS backend and discovery settings."""

    git_executable: str = "git"
    timeout_seconds: int = 600
    enable_go_get_discovery: bool = True
    user_agent: str = "gopath-deps/1.0.0"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0


@dataclass
class LoggingConfig:
    """Logging configuration."""

    log_level: str = "WARNING"
    enable_json: bool = True


@dataclass
class ComprehensiveConfig:
    """Main configuration containing all subsections."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    project: ProjectConfig = field(default_factory=ProjectConfig)
    dependencies: DependenciesConfig = field(default_factory=DependenciesConfig)
    toolchain: ToolchainConfig = field(default_factory=ToolchainConfig)
    vcs: VcsConfig = field(default_factory=VcsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def configuration_names(self) -> List[str]:
        """Names of all declared dependency sets."""
        return list(self.dependencies.configurations.keys())

    def declared_dependencies(
        self, configuration: Optional[str] = None
    ) -> List[Dependency]:
        """
        Declared dependencies of a named set, or of every set when ``None``.

        Raises:
            ValueError: If the named configuration does not exist
        """
        configurations = self.dependencies.configurations
        if configuration is not None:
            if configuration not in configurations:
                raise ValueError(f"Unknown dependency configuration: {configuration}")
            names = [configuration]
        else:
            names = list(configurations.keys())

        result = []
        for name in names:
            for spec in configurations.get(name) or []:
                result.append(parse_dependency_spec(spec))
        return result


def parse_dependency_spec(spec: DependencySpec) -> Dependency:
    """
    Turn a declared dependency entry into a ``Dependency``.

    Args:
        spec: An import path string or a mapping with ``name`` and optional
            ``version``, ``url`` and ``kind``

    Raises:
        ValueError: If the entry is malformed
    """
    if isinstance(spec, str):
        return Dependency(identifier=spec, kind=DependencyKind.IMPLICIT)

    if not isinstance(spec, dict):
        raise ValueError(f"Invalid dependency declaration: {spec!r}")

    name = spec.get("name") or spec.get("identifier")
    if not name:
        raise ValueError(f"Dependency declaration without name: {spec!r}")

    kind_value = str(spec.get("kind", DependencyKind.IMPLICIT.value)).lower()
    try:
        kind = DependencyKind(kind_value)
    except ValueError:
        raise ValueError(f"Invalid dependency kind for {name}: {kind_value}")

    return Dependency(
        identifier=str(name),
        kind=kind,
        version=spec.get("version"),
        url=spec.get("url"),
    )


# Global configuration instance
_global_config: Optional[ComprehensiveConfig] = None


def validate_config_values(config: ComprehensiveConfig) -> List[str]:
    """
    Validate configuration values and return any errors.

    Args:
        config: Configuration to validate

    Returns:
        List[str]: List of validation errors (empty if valid)
    """
    errors = []

    if config.toolchain.timeout_seconds <= 0:
        errors.append("toolchain.timeout_seconds must be positive")
    if not config.toolchain.imports_extractor.strip():
        errors.append("toolchain.imports_extractor must not be empty")
    if not config.toolchain.source_extensions:
        errors.append("toolchain.source_extensions must not be empty")

    if config.vcs.timeout_seconds <= 0:
        errors.append("vcs.timeout_seconds must be positive")
    if config.vcs.connect_timeout <= 0:
        errors.append("vcs.connect_timeout must be positive")
    if config.vcs.read_timeout <= 0:
        errors.append("vcs.read_timeout must be positive")

    if config.project.package_name.strip("/") != config.project.package_name:
        errors.append("project.package_name must not start or end with '/'")

    for name, specs in config.dependencies.configurations.items():
        for spec in specs or []:
            try:
                parse_dependency_spec(spec)
            except ValueError as e:
                errors.append(f"dependencies.configurations.{name}: {e}")

    return errors


def load_config_file(config_path: Path) -> Optional[Dict[str, Any]]:
    """Load config from a JSON, YAML or TOML file."""
    if not config_path.exists():
        return None

    suffix = config_path.suffix.lower()
    try:
        with open(config_path, encoding="utf-8") as f:
            if suffix in [".yaml", ".yml"]:
                return yaml.safe_load(f)
            elif suffix == ".toml":
                return toml.load(f)
            elif suffix == ".json":
                return json.load(f)
    except (OSError, ValueError, yaml.YAMLError, toml.TomlDecodeError) as e:
        console.print(f"⚠️  Error loading config from {config_path}: {e}", style="yellow")

    return None


def find_config_file() -> Optional[Path]:
    """Find config file in standard locations."""
    locations = [
        Path.cwd() / ".gopath-deps.json",
        Path.cwd() / ".gopath-deps.yaml",
        Path.cwd() / ".gopath-deps.yml",
        Path.cwd() / ".gopath-deps.toml",
        Path.home() / ".config" / "gopath-deps" / "config.json",
        Path.home() / ".config" / "gopath-deps" / "config.yaml",
        Path.home() / ".config" / "gopath-deps" / "config.toml",
    ]

    for location in locations:
        if location.exists():
            return location

    return None


def load_environment_overrides(config: ComprehensiveConfig) -> None:
    """Load environment variable overrides."""

    def get_env_bool(key: str, default: bool = False) -> bool:
        value = os.environ.get(key, "").lower()
        return value in ["true", "1", "yes", "on"] if value else default

    def get_env_int(key: str, default: Optional[int] = None) -> Optional[int]:
        try:
            return int(os.environ[key]) if key in os.environ else default
        except ValueError:
            console.print(f"⚠️  Invalid integer value for {key}, using default", style="yellow")
            return default

    if workspace := os.environ.get("GOPATH_DEPS_WORKSPACE_SOURCE_ROOT"):
        config.paths.workspace_source_root = Path(workspace).expanduser()
    if cache := os.environ.get("GOPATH_DEPS_DEPENDENCY_CACHE"):
        config.paths.dependency_cache = Path(cache).expanduser()
    if toolchain_root := os.environ.get("GOPATH_DEPS_TOOLCHAIN_SOURCE_ROOT"):
        config.paths.toolchain_source_root = Path(toolchain_root).expanduser()

    if package_name := os.environ.get("GOPATH_DEPS_PACKAGE_NAME"):
        config.project.package_name = package_name

    config.dependencies.force_update = get_env_bool(
        "GOPATH_DEPS_FORCE_UPDATE", config.dependencies.force_update
    )
    config.dependencies.delete_unknown_dependencies = get_env_bool(
        "GOPATH_DEPS_DELETE_UNKNOWN", config.dependencies.delete_unknown_dependencies
    )
    config.dependencies.delete_all_cached_dependencies_on_clean = get_env_bool(
        "GOPATH_DEPS_DELETE_ALL_ON_CLEAN",
        config.dependencies.delete_all_cached_dependencies_on_clean,
    )

    if extractor := os.environ.get("GOPATH_DEPS_IMPORTS_EXTRACTOR"):
        config.toolchain.imports_extractor = extractor
    if timeout := get_env_int("GOPATH_DEPS_TOOLCHAIN_TIMEOUT"):
        config.toolchain.timeout_seconds = timeout

    if git := os.environ.get("GOPATH_DEPS_GIT"):
        config.vcs.git_executable = git
    if vcs_timeout := get_env_int("GOPATH_DEPS_VCS_TIMEOUT"):
        config.vcs.timeout_seconds = vcs_timeout
    config.vcs.enable_go_get_discovery = get_env_bool(
        "GOPATH_DEPS_GO_GET_DISCOVERY", config.vcs.enable_go_get_discovery
    )

    if log_level := os.environ.get("GOPATH_DEPS_LOG_LEVEL"):
        config.logging.log_level = log_level.upper()


def apply_config_section(
    config: Any, section_data: Dict[str, Any], section_name: str
) -> None:
    """Apply configuration from dictionary to config section."""
    for key, value in section_data.items():
        if hasattr(config, key):
            current = getattr(config, key)
            if isinstance(current, dict) and isinstance(value, dict):
                current.update(value)
            elif isinstance(current, Path) and value is not None:
                setattr(config, key, Path(value).expanduser())
            else:
                setattr(config, key, value)
        else:
            console.print(f"⚠️  Unknown config key in {section_name}: {key}", style="yellow")


def build_config(file_config: Optional[Dict[str, Any]] = None) -> ComprehensiveConfig:
    """Create a configuration from defaults, ``file_config`` and the environment."""
    config = ComprehensiveConfig()

    if file_config:
        for section_name in ["paths", "project", "dependencies", "toolchain", "vcs", "logging"]:
            if isinstance(file_config.get(section_name), dict):
                apply_config_section(
                    getattr(config, section_name), file_config[section_name], section_name
                )

    # The three standard sets always exist, even when a file declares others
    for name in DEFAULT_CONFIGURATIONS:
        config.dependencies.configurations.setdefault(name, [])

    load_environment_overrides(config)
    return config


def load_config(config_path: Optional[Path] = None) -> ComprehensiveConfig:
    """Load comprehensive configuration from file and environment."""
    global _global_config

    if _global_config is not None and config_path is None:
        return _global_config

    path = config_path or find_config_file()
    file_config = load_config_file(path) if path else None
    if config_path is not None and file_config is None:
        raise ConfigurationError(f"Could not load configuration from {config_path}")
    config = build_config(file_config)

    validation_errors = validate_config_values(config)
    if validation_errors:
        console.print("⚠️  Configuration validation errors:", style="red")
        for error in validation_errors:
            console.print(f"  • {error}", style="red")
        console.print("Using default values for invalid settings.", style="yellow")
        _restore_invalid_defaults(config)

    _global_config = config
    return config


def _restore_invalid_defaults(config: ComprehensiveConfig) -> None:
    defaults = ComprehensiveConfig()
    if config.toolchain.timeout_seconds <= 0:
        config.toolchain.timeout_seconds = defaults.toolchain.timeout_seconds
    if not config.toolchain.imports_extractor.strip():
        config.toolchain.imports_extractor = defaults.toolchain.imports_extractor
    if not config.toolchain.source_extensions:
        config.toolchain.source_extensions = defaults.toolchain.source_extensions
    if config.vcs.timeout_seconds <= 0:
        config.vcs.timeout_seconds = defaults.vcs.timeout_seconds
    if config.vcs.connect_timeout <= 0:
        config.vcs.connect_timeout = defaults.vcs.connect_timeout
    if config.vcs.read_timeout <= 0:
        config.vcs.read_timeout = defaults.vcs.read_timeout
    config.project.package_name = config.project.package_name.strip("/")


def get_config() -> ComprehensiveConfig:
    """Get the global configuration instance."""
    global _global_config
    if _global_config is None:
        _global_config = load_config()
    return _global_config


def set_config(config: ComprehensiveConfig) -> None:
    """Install ``config`` as the global configuration."""
    global _global_config
    _global_config = config


def reset_config() -> None:
    """Reset the global configuration (useful for testing)."""
    global _global_config
    _global_config = None


def create_sample_config() -> str:
    """Generate a sample JSON configuration."""
    sample_config = {
        "paths": {
            "workspace_source_root": "~/go/src",
            "dependency_cache": ".gopath-deps/cache",
            "toolchain_source_root": "/usr/local/go/src",
        },
        "project": {"package_name": "github.com/example/project"},
        "dependencies": {
            "force_update": False,
            "delete_unknown_dependencies": True,
            "delete_all_cached_dependencies_on_clean": False,
            "configurations": {
                "build": [
                    "github.com/pkg/errors",
                    {"name": "golang.org/x/net", "version": "master"},
                ],
                "test": ["github.com/stretchr/testify"],
                "tool": [],
            },
        },
        "toolchain": {
            "imports_extractor": "go-imports-extractor",
            "source_extensions": [".go"],
            "timeout_seconds": 60,
        },
        "vcs": {
            "git_executable": "git",
            "timeout_seconds": 600,
            "enable_go_get_discovery": True,
            "user_agent": "gopath-deps/1.0.0",
            "connect_timeout": 10.0,
            "read_timeout": 30.0,
        },
        "logging": {"log_level": "WARNING", "enable_json": True},
    }

    return json.dumps(sample_config, indent=2)
