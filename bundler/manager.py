"""Entry point for registering, compiling and resetting packages."""
import logging

from bundler.compiler import CompilationCoordinator, create_minifier
from bundler.config import Config
from bundler.errors import DependencyCycleError
from bundler.lock import SingleFlightLock
from bundler.metadata import MetadataStore, Record
from bundler.publisher import AssetPublisher
from bundler.registry import PackageRegistry, RegistrationContext
from bundler.storage import StateBackend, create_backend
from bundler.writer import ArtifactWriter, CssFingerprintRewriter

logger = logging.getLogger(__name__)


class Bundler:
    """Compresses each declared package once, no matter how many processes ask.

    A page registers the packages it needs with ``register_package``. The
    first request for an uncompiled package takes the compilation lock and
    compiles it; all other requests either wait for it or, with
    ``block_during_compression`` disabled, render the raw files meanwhile.
    """

    def __init__(self, config: Config, backend: StateBackend | None = None):
        """Initialize bundler.

        Args:
            config: Bundler configuration
            backend: State backend, created from config if omitted
        """
        self.config = config
        compression = config.compression

        if backend is None:
            backend = create_backend(config.state.backend, config.state.path)
        self.publisher = AssetPublisher(config.assets.path, config.assets.url)
        self.store = MetadataStore(backend, config.state_key, published_root=config.assets.path)
        self.registry = PackageRegistry(config, self.publisher)
        self.lock = SingleFlightLock(
            config.lock_path,
            timeout=compression.lock_timeout,
            blocking=compression.block_during_compression,
            retry_interval=compression.retry_interval,
        )

        rewriter = None
        if compression.css_image_fingerprinting:
            rewriter = CssFingerprintRewriter(config.web.root)
        self.coordinator = CompilationCoordinator(
            config,
            self.registry,
            self.publisher,
            ArtifactWriter(config.runtime_path, rewriter),
            create_minifier(config.minifier, config.runtime_path),
        )

    def get_compiled_info(self, name: str, force_reload: bool = False) -> Record | None:
        """Record of a compiled package, None if it is not (or no longer) compiled."""
        return self.store.get(name, force_reload)

    def list_compiled_names(self) -> list[str]:
        """Names of all compiled packages."""
        return self.store.names()

    def compile(self, name: str, _visiting: tuple[str, ...] = ()) -> bool:
        """Compile a package and store its record.

        Dependencies are made sure to be compiled first.

        Args:
            name: Package name

        Returns:
            True if a record was produced, False for unknown or empty packages

        Raises:
            DependencyCycleError: If the package depends on itself
        """
        package = self.registry.get(name)
        if package is None:
            return False

        visiting = _visiting + (name,)
        for dependency in package.depends:
            if dependency in visiting:
                raise DependencyCycleError(list(visiting) + [dependency])
            self.ensure_compiled(dependency, visiting)

        record = self.coordinator.compile(name)
        if record is None:
            return False

        self.store.set(name, record)
        logger.info(f"Compiled package {name}")
        return True

    def ensure_compiled(self, name: str, _visiting: tuple[str, ...] = ()) -> bool:
        """Compile a package unless it is already compiled.

        Returns:
            True if a compiled record is available afterwards, False if the
            package is unknown or empty, or the lock could not be taken in
            non-blocking mode
        """
        if self.store.get(name) is not None:
            return True

        # Compression must only be performed once, even for parallel requests
        if not self.lock.acquire():
            return False

        try:
            # Another process may have compiled it while we were waiting
            if self.store.get(name, force_reload=True) is not None:
                return True
            return self.compile(name, _visiting)
        finally:
            self.lock.release()

    def register_package(self, name: str, context: RegistrationContext) -> RegistrationContext:
        """Register a package for the page being rendered, compiling it if needed.

        Dependencies are registered before the package itself.

        Args:
            name: Package name
            context: Registration state of the current page

        Returns:
            The context
        """
        if name in context or name not in self.registry:
            return context

        if not self.config.compression.enabled:
            for package in self.registry.dependency_order(name):
                context.register(package, compiled=False)
            return context

        for package in self.registry.dependency_order(name):
            if package in context:
                continue
            compiled = self.ensure_compiled(package)
            context.register(package, compiled=compiled)
        return context

    def reset(self, name: str | None = None) -> bool:
        """Delete compiled bundles of one or all packages.

        Returns:
            True if anything was reset
        """
        return self.store.invalidate(name)
