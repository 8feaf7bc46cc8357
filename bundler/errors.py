"""Exception hierarchy for the package bundler."""


class BundlerError(Exception):
    """Base class for all bundler errors."""
    pass


class ConfigurationError(BundlerError):
    """Raised when configuration is invalid."""
    pass


class LockError(ConfigurationError):
    """Raised when the compilation lock file cannot be used."""
    pass


class DependencyCycleError(ConfigurationError):
    """Raised when package dependencies form a cycle."""

    def __init__(self, chain: list[str]):
        self.chain = chain
        super().__init__(f"Package dependency cycle: {' -> '.join(chain)}")


class CombineError(BundlerError):
    """Raised when a source file cannot be combined into a bundle."""
    pass


class MinifierError(BundlerError):
    """Raised when the minification step fails."""
    pass


class PublishError(BundlerError):
    """Raised when an asset cannot be published."""
    pass
