"""In-process minification with rjsmin and rcssmin."""
import rcssmin
import rjsmin

from bundler.errors import MinifierError
from bundler.minifiers.base import BaseMinifier


class BuiltinMinifier(BaseMinifier):
    """Minifier backed by the rjsmin/rcssmin libraries."""

    def minify(self, source: bytes, asset_type: str) -> bytes:
        if asset_type == "js":
            return rjsmin.jsmin(source)
        if asset_type == "css":
            return rcssmin.cssmin(source)
        raise MinifierError(f"Unsupported asset type: {asset_type}")
