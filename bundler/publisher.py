"""Publish files and directories into the web-accessible assets directory."""
import logging
import os
import shutil
from pathlib import Path

from bundler.errors import PublishError
from bundler.hashing import compute_hash

logger = logging.getLogger(__name__)


class AssetPublisher:
    """Copies assets below ``base_path`` so they are served from ``base_url``.

    Every published file or directory lands in its own hash directory:
    ``<base_path>/<hash>/<name>``.
    """

    def __init__(self, base_path: str, base_url: str):
        """Initialize publisher.

        Args:
            base_path: Directory that is exposed to the web
            base_url: URL under which base_path is served
        """
        self.base_path = Path(base_path)
        self.base_url = base_url.rstrip("/")
        self._published: dict[str, str] = {}

    def generate_path(self, path: Path, hash_by_name: bool = False) -> str:
        """Name of the hash directory for a source path."""
        source = path.name if hash_by_name else str(path.parent)
        return compute_hash(source.encode("utf-8"), 8)

    def publish(self, path: str | Path, hash_by_name: bool = False, force_copy: bool = False) -> str:
        """Publish a file or directory.

        Args:
            path: File or directory to publish
            hash_by_name: Derive the hash directory from the file name only
            force_copy: Copy even if the asset was published before

        Returns:
            URL of the published asset

        Raises:
            PublishError: If path does not exist
        """
        key = str(path)
        if key in self._published and not force_copy:
            return self._published[key]

        src = Path(os.path.realpath(path))
        dst_dir = self.base_path / self.generate_path(src, hash_by_name)

        if src.is_file():
            dst_file = dst_dir / src.name
            dst_dir.mkdir(parents=True, exist_ok=True)
            if force_copy or not dst_file.exists() or dst_file.stat().st_mtime < src.stat().st_mtime:
                shutil.copy2(src, dst_file)
            url = f"{self.base_url}/{dst_dir.name}/{src.name}"
        elif src.is_dir():
            dst = dst_dir / src.name
            if force_copy or not dst.is_dir():
                shutil.copytree(src, dst, dirs_exist_ok=True)
            url = f"{self.base_url}/{dst_dir.name}/{src.name}"
        else:
            raise PublishError(f'The asset "{path}" to be published does not exist.')

        logger.debug(f"Published {src} as {url}")
        self._published[key] = url
        return url

    def get_published_path(self, path: str | Path, hash_by_name: bool = False) -> Path:
        """Filesystem path a source path is (or would be) published to."""
        src = Path(os.path.realpath(path))
        return self.base_path / self.generate_path(src, hash_by_name) / src.name

    def get_published_url(self, path: str | Path, hash_by_name: bool = False) -> str:
        """URL a source path is (or would be) published under."""
        if str(path) in self._published:
            return self._published[str(path)]
        src = Path(os.path.realpath(path))
        return f"{self.base_url}/{self.generate_path(src, hash_by_name)}/{src.name}"

    def unpublish(self, path: str | Path, hash_by_name: bool = False) -> bool:
        """Remove the published copy of path.

        Returns:
            True if a published copy was removed
        """
        self._published.pop(str(path), None)
        published = self.get_published_path(path, hash_by_name)
        if not published.exists():
            return False

        hash_dir = published.parent
        if published.is_dir():
            shutil.rmtree(published, ignore_errors=True)
        else:
            published.unlink(missing_ok=True)
        # Drop the hash directory once it is empty
        try:
            hash_dir.rmdir()
        except OSError:
            pass
        logger.info(f"Unpublished {path}")
        return True

