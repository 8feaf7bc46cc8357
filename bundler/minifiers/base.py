"""Base minifier interface for the package bundler."""
from abc import ABC, abstractmethod


class BaseMinifier(ABC):
    """Abstract base class for minification engines."""

    @abstractmethod
    def minify(self, source: bytes, asset_type: str) -> bytes:
        """Minify combined source content.

        Args:
            source: Combined JS or CSS content
            asset_type: Either 'js' or 'css'

        Returns:
            Minified content

        Raises:
            MinifierError: If minification fails
        """
        pass


class PassthroughMinifier(BaseMinifier):
    """Returns the input verbatim, for packages with compression disabled."""

    def minify(self, source: bytes, asset_type: str) -> bytes:
        return source
