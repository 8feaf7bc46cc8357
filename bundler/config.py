"""Configuration loader and validator for the package bundler."""
import os
from pathlib import Path
from typing import Any

import yaml

from bundler.errors import ConfigurationError

__all__ = [
    "AssetsConfig",
    "CompressionConfig",
    "Config",
    "ConfigurationError",
    "MinifierConfig",
    "PackageConfig",
    "StateConfig",
    "WebConfig",
    "load_config",
]


class WebConfig:
    """Web root configuration."""

    def __init__(self, data: dict[str, Any]):
        self.root: str = data.get("root", "./public")
        self.base_url: str = data.get("base_url", "").rstrip("/")

    @property
    def document_root(self) -> str:
        """Web root with the application base URL stripped.

        ``/www/root/sub`` becomes ``/www/root`` when ``base_url`` is ``/sub``.
        """
        root = str(self.root).rstrip("/")
        if self.base_url and root.endswith(self.base_url):
            return root[: -len(self.base_url)]
        return root


class AssetsConfig:
    """Published assets directory configuration."""

    def __init__(self, data: dict[str, Any], web: WebConfig):
        self.path: str = data.get("path", os.path.join(web.root, "assets"))
        self.url: str = data.get("url", f"{web.base_url}/assets").rstrip("/")


class CompressionConfig:
    """Compression behaviour configuration."""

    def __init__(self, data: dict[str, Any]):
        self.enabled: bool = data.get("enabled", True)
        self.block_during_compression: bool = data.get("block_during_compression", True)
        self.css_image_fingerprinting: bool = data.get("css_image_fingerprinting", True)
        self.lock_timeout: float = data.get("lock_timeout", 15)
        self.retry_interval: float = data.get("retry_interval", 1)


class MinifierConfig:
    """Minification engine configuration."""

    ENGINES = ("builtin", "command")

    def __init__(self, data: dict[str, Any]):
        self.engine: str = data.get("engine", "builtin")
        if self.engine not in self.ENGINES:
            raise ConfigurationError(
                f"minifier engine must be one of {', '.join(self.ENGINES)}, got: {self.engine}"
            )

        self.command: list[str] = data.get("command") or []
        if self.engine == "command" and not self.command:
            raise ConfigurationError("minifier command must be set when engine is 'command'")
        if self.engine == "builtin" and self.command:
            raise ConfigurationError(
                "minifier command is only used with engine 'command', got engine 'builtin'"
            )
        if not isinstance(self.command, list):
            raise ConfigurationError("minifier command must be a list of arguments")


class StateConfig:
    """Metadata state backend configuration."""

    BACKENDS = {"json": "state.json", "sqlite": "state.db"}

    def __init__(self, data: dict[str, Any], runtime_path: str):
        self.backend: str = data.get("backend", "json")
        if self.backend not in self.BACKENDS:
            raise ConfigurationError(
                f"state backend must be 'json' or 'sqlite', got: {self.backend}"
            )
        self.path: str = data.get("path", os.path.join(runtime_path, self.BACKENDS[self.backend]))


class PackageConfig:
    """A single declared package."""

    def __init__(self, name: str, data: dict[str, Any]):
        self.name = name
        self.js: list[str] = data.get("js", [])
        self.css: list[str] = data.get("css", [])
        for field in ("js", "css"):
            if not isinstance(getattr(self, field), list):
                raise ConfigurationError(f"Package '{name}': '{field}' must be a list")

        self.base_url: str | None = data.get("base_url")
        self.base_path: str | None = data.get("base_path")
        self.media: str = data.get("media", "")
        self.compress: bool = data.get("compress", True)
        self.depends: list[str] = data.get("depends", [])


class Config:
    """Main configuration class."""

    def __init__(self, config_path: str | None = None):
        """Load configuration from YAML file.

        Args:
            config_path: Path to config file. Defaults to $BUNDLER_CONFIG or ./bundler.yaml
        """
        if config_path is None:
            config_path = os.getenv("BUNDLER_CONFIG", "./bundler.yaml")

        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        with open(self.config_path, "r") as f:
            data = yaml.safe_load(f)

        if not data:
            raise ConfigurationError("Config file is empty")

        self.app_id: str = str(data.get("app_id", "application"))
        self.runtime_path: str = data.get("runtime_path", "./runtime")

        # Load sections
        self.web = WebConfig(data.get("web", {}))
        self.assets = AssetsConfig(data.get("assets", {}), self.web)
        self.compression = CompressionConfig(data.get("compression", {}))
        self.minifier = MinifierConfig(data.get("minifier", {}))
        self.state = StateConfig(data.get("state", {}), self.runtime_path)

        self.packages: dict[str, PackageConfig] = {
            name: PackageConfig(name, package_data or {})
            for name, package_data in (data.get("packages") or {}).items()
        }

        # Validate configuration
        self.validate()

    @property
    def state_key(self) -> str:
        """Unique state key per application."""
        return f"__packageCompressor:{self.app_id}"

    @property
    def lock_path(self) -> Path:
        """Path of the compilation lock file."""
        return Path(self.runtime_path) / "packagecompressor_mutex.bin"

    def validate(self) -> None:
        """Validate entire configuration."""
        for package in self.packages.values():
            for dependency in package.depends:
                if dependency not in self.packages:
                    raise ConfigurationError(
                        f"Package '{package.name}' depends on unknown package '{dependency}'"
                    )

        # Ensure runtime directory exists
        Path(self.runtime_path).mkdir(parents=True, exist_ok=True)


def load_config(config_path: str | None = None) -> Config:
    """Load and return configuration.

    Args:
        config_path: Optional path to config file

    Returns:
        Config object

    Raises:
        ConfigurationError: If configuration is invalid
    """
    return Config(config_path)
