"""Combine package source files into a single bundle file."""
import logging
import os
import re
import tempfile
from pathlib import Path

from bundler.errors import CombineError
from bundler.hashing import FINGERPRINT_LENGTH, file_hash

logger = logging.getLogger(__name__)

# Matches url(...) with ', " or no quotes around a jpg/jpeg/gif/png path.
# A path that already carries a query string does not match.
CSS_IMAGE_URL = re.compile(
    r"""url\(['"]?([^'")]*?\.(?:jpg|jpeg|gif|png))['"]?\)""",
    re.IGNORECASE,
)
ABSOLUTE_URL = re.compile(r"^(https?:)?//", re.IGNORECASE)


class CssFingerprintRewriter:
    """Append content fingerprints to local image URLs in stylesheets.

    Example CSS that gets rewritten:

        background: url('/images/stars/star.png') no-repeat 0px 0px;

    becomes ``url('/images/stars/star.png?1a2b3c4d')``. URLs starting with a
    ``/`` are resolved against the web root, all others against the directory
    of the stylesheet. Absolute URLs and images that cannot be found on disk
    (e.g. served through a rewrite rule) are left untouched.
    """

    def __init__(self, web_root: str | Path):
        self.web_root = Path(web_root).resolve()

    def rewrite(self, css_file: str | Path) -> bytes:
        """Return the content of css_file with image fingerprints added.

        Bytes that are not valid UTF-8 pass through unchanged.

        Args:
            css_file: Full path of a CSS file

        Returns:
            Modified CSS content
        """
        css_file = Path(css_file)
        text = css_file.read_bytes().decode("utf-8", errors="surrogateescape")

        def replace(match: re.Match) -> str:
            image_url = match.group(1)
            if ABSOLUTE_URL.match(image_url):
                return match.group(0)

            if image_url.startswith("/"):
                image_file = self.web_root / image_url.lstrip("/")
            else:
                image_file = css_file.parent / image_url

            if image_file.is_file():
                return f"url('{image_url}?{file_hash(image_file, FINGERPRINT_LENGTH)}')"

            logger.debug(
                f"Unable to find css image '{image_file}' on disk. "
                f"Css file: '{css_file}'. CSS: {match.group(0)}"
            )
            return match.group(0)

        return CSS_IMAGE_URL.sub(replace, text).encode("utf-8", errors="surrogateescape")


class ArtifactWriter:
    """Writes the combined, not yet minified, bundle of one asset type."""

    def __init__(self, runtime_path: str | Path, rewriter: CssFingerprintRewriter | None = None):
        """Initialize writer.

        Args:
            runtime_path: Directory for temporary combined files
            rewriter: Fingerprint pass for CSS, None to disable it
        """
        self.runtime_path = Path(runtime_path)
        self.rewriter = rewriter

    def read_source(self, path: str | Path, asset_type: str) -> bytes:
        """Read one source file, fingerprinting images for stylesheets."""
        if asset_type == "css" and self.rewriter is not None:
            return self.rewriter.rewrite(path)
        return Path(path).read_bytes()

    def combine(self, name: str, asset_type: str, files: list[str]) -> Path:
        """Combine the given files byte for byte into one temporary file.

        Every JS file gets a trailing ``;`` in case it lacks one, so two files
        can never merge into one statement.

        Args:
            name: Package name, used as temp file prefix
            asset_type: Either 'js' or 'css'
            files: Full paths of the files to combine, in order

        Returns:
            Path of the combined file

        Raises:
            CombineError: If a file cannot be read or appended
        """
        self.runtime_path.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(self.runtime_path), prefix=f"combined_{name}")
        terminator = b";\n" if asset_type == "js" else b"\n"

        try:
            with os.fdopen(fd, "wb") as out:
                for source in files:
                    try:
                        content = self.read_source(source, asset_type)
                        out.write(content + terminator)
                    except OSError as e:
                        raise CombineError(
                            f'Could not combine file "{source}" into "{tmp_name}": {e}'
                        ) from e
        except BaseException:
            os.unlink(tmp_name)
            raise

        return Path(tmp_name)
