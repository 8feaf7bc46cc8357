"""Declared packages and per-request registration state."""
import os
from dataclasses import dataclass, field

from bundler.config import Config, PackageConfig
from bundler.errors import DependencyCycleError
from bundler.publisher import AssetPublisher


def is_external(reference: str) -> bool:
    """Whether a file reference is an absolute (http/https) or protocol-relative URL."""
    return reference[:4].lower() == "http" or reference.startswith("//")


@dataclass(frozen=True)
class AssetRef:
    """One script or stylesheet of a package.

    ``path`` is None for external URLs.
    """

    url: str
    path: str | None = None

    @property
    def external(self) -> bool:
        return self.path is None


class PackageRegistry:
    """Resolves declared packages into script and stylesheet references."""

    def __init__(self, config: Config, publisher: AssetPublisher):
        self.packages: dict[str, PackageConfig] = config.packages
        self.app_base_url = config.web.base_url
        self.document_root = config.web.document_root
        self.publisher = publisher

    def __contains__(self, name: str) -> bool:
        return name in self.packages

    def get(self, name: str) -> PackageConfig | None:
        return self.packages.get(name)

    def names(self) -> list[str]:
        return list(self.packages)

    def base_url(self, package: PackageConfig, publish: bool = True) -> str:
        """URL prefix of the package's local files.

        Relative ``base_url`` values are relative to the application base URL.
        Packages with a ``base_path`` outside the web root are published,
        unless publish is False.
        """
        if package.base_url is not None:
            base_url = package.base_url
            if base_url == "" or (not base_url.startswith("/") and "://" not in base_url):
                base_url = f"{self.app_base_url}/{base_url}"
            return base_url.rstrip("/")
        if package.base_path is not None:
            if publish:
                return self.publisher.publish(package.base_path)
            return self.publisher.get_published_url(package.base_path)
        return self.app_base_url

    def resolve(self, package: PackageConfig, reference: str, base_url: str) -> AssetRef:
        if is_external(reference):
            return AssetRef(url=reference)

        url = f"{base_url}/{reference.lstrip('/')}"
        if package.base_path is not None:
            path = os.path.join(package.base_path, reference.lstrip("/"))
        else:
            # '/www/root' + '/sub/js/some.js'
            path = f"{self.document_root}{url}"
        return AssetRef(url=url, path=path)

    def expand(self, name: str, publish: bool = True) -> tuple[list[AssetRef], list[AssetRef]]:
        """Scripts and stylesheets of exactly this package, without dependencies.

        Duplicate references are kept once, in first-seen order.
        """
        package = self.packages[name]
        base_url = self.base_url(package, publish) if (package.js or package.css) else ""
        scripts = [self.resolve(package, ref, base_url) for ref in package.js]
        styles = [self.resolve(package, ref, base_url) for ref in package.css]
        return list(dict.fromkeys(scripts)), list(dict.fromkeys(styles))

    def dependency_order(self, name: str) -> list[str]:
        """All dependencies of a package, deepest first, followed by the package.

        Raises:
            DependencyCycleError: If the dependencies form a cycle
        """
        order: list[str] = []
        visiting: list[str] = []

        def visit(current: str) -> None:
            if current in visiting:
                raise DependencyCycleError(visiting[visiting.index(current):] + [current])
            if current in order:
                return
            visiting.append(current)
            for dependency in self.packages[current].depends:
                visit(dependency)
            visiting.pop()
            order.append(current)

        visit(name)
        return order


@dataclass
class RegistrationContext:
    """Packages registered while rendering one page.

    ``compiled`` maps each registered package to whether it is served from a
    compiled bundle (True) or from its raw files (False).
    """

    compiled: dict[str, bool] = field(default_factory=dict)

    def register(self, name: str, compiled: bool) -> None:
        self.compiled.setdefault(name, compiled)

    def __contains__(self, name: str) -> bool:
        return name in self.compiled

    @property
    def packages(self) -> list[str]:
        return list(self.compiled)
