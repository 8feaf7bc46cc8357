"""Meta information about compiled packages."""
import logging
import os
import shutil
from pathlib import Path
from typing import Any

from bundler.storage import StateBackend

logger = logging.getLogger(__name__)

ASSET_TYPES = ("js", "css")

# A record maps asset type ('js' / 'css') to
#   {'file': ..., 'files': [...], 'urls': [...], 'media': ...}
# where 'file' and 'files' are missing for packages with external URLs only.
Record = dict[str, dict[str, Any]]


class MetadataStore:
    """Records of compiled packages, persisted through a StateBackend.

    The whole blob is loaded lazily and cached. Readers that may hold a stale
    view, e.g. after waiting for the compilation lock, pass
    ``force_reload=True``.
    """

    def __init__(self, backend: StateBackend, key: str, published_root: str | Path | None = None):
        """Initialize metadata store.

        Args:
            backend: Persistent state backend
            key: Application-scoped state key
            published_root: Assets directory whose hash directories belong
                to a single artifact and can be removed as a whole
        """
        self.backend = backend
        self.key = key
        self.published_root = Path(published_root).resolve() if published_root else None
        self._data: dict[str, Record] | None = None

    def load(self, force_reload: bool = False) -> dict[str, Record]:
        """Load all records, from cache unless forced."""
        if self._data is None or force_reload:
            self._data = self.backend.load(self.key)
        return self._data

    def save(self) -> None:
        """Write all records back. Durable when this returns."""
        self.backend.save(self.key, self._data or {})

    def get(self, name: str, force_reload: bool = False) -> Record | None:
        """Get the record of a compiled package.

        Records whose artifact files no longer exist on disk are removed and
        treated as never compiled.

        Args:
            name: Package name
            force_reload: Re-read persisted state first

        Returns:
            Record or None if the package is not compiled
        """
        record = self.load(force_reload).get(name)
        if record is None:
            return None

        missing = [
            record[asset_type]["file"]
            for asset_type in ASSET_TYPES
            if asset_type in record
            and record[asset_type].get("file")
            and not os.path.exists(record[asset_type]["file"])
        ]
        if missing:
            logger.info(f"Remove {name}, compiled file(s) missing: {', '.join(missing)}")
            self.set(name, None)
            return None

        return record

    def set(self, name: str, record: Record | None) -> None:
        """Store or clear (record=None) the record of a package."""
        data = self.load()
        if record is not None:
            data[name] = record
        else:
            data.pop(name, None)
        self.save()

    def names(self) -> list[str]:
        """Names of all packages with a stored record."""
        return list(self.load())

    def invalidate(self, name: str | None = None) -> bool:
        """Delete compiled artifacts and their records.

        Args:
            name: Package name, or None for all packages

        Returns:
            True if at least one record was cleared
        """
        data = self.load()
        if name is None:
            names = list(data)
        elif name in data:
            names = [name]
        else:
            names = []

        if not names:
            return False

        for package in names:
            record = data.pop(package)
            for asset_type in ASSET_TYPES:
                artifact = record.get(asset_type, {}).get("file")
                if artifact:
                    self.remove_artifact(artifact)
            logger.info(f"Reset compiled package {package}")

        self.save()
        return True

    def remove_artifact(self, path: str) -> None:
        """Delete an artifact file.

        Artifacts inside their own published hash directory take the directory
        with them; artifacts copied elsewhere (e.g. next to a package's
        stylesheets) are removed as single files.
        """
        artifact = Path(path)
        parent = artifact.parent.resolve()
        if self.published_root is not None and parent.parent == self.published_root:
            shutil.rmtree(parent, ignore_errors=True)
        else:
            artifact.unlink(missing_ok=True)
