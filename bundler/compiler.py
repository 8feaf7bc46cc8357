"""Compile a package into combined, minified and published bundles."""
import logging
import shutil
from pathlib import Path
from typing import Any

from bundler.config import Config, MinifierConfig, PackageConfig
from bundler.hashing import BUNDLE_HASH_LENGTH, file_hash
from bundler.metadata import Record
from bundler.minifiers.base import BaseMinifier, PassthroughMinifier
from bundler.minifiers.builtin import BuiltinMinifier
from bundler.minifiers.command import CommandMinifier
from bundler.publisher import AssetPublisher
from bundler.registry import AssetRef, PackageRegistry
from bundler.writer import ArtifactWriter

logger = logging.getLogger(__name__)


def create_minifier(config: MinifierConfig, work_dir: str | None = None) -> BaseMinifier:
    """Create the configured minification engine."""
    if config.engine == "command":
        return CommandMinifier(config.command, work_dir)
    return BuiltinMinifier()


class CompilationCoordinator:
    """Runs one end-to-end compilation of a package.

    JS and CSS are processed independently: local files are combined,
    minified and published, external URLs are passed through.
    """

    def __init__(
        self,
        config: Config,
        registry: PackageRegistry,
        publisher: AssetPublisher,
        writer: ArtifactWriter,
        minifier: BaseMinifier,
    ):
        self.runtime_path = Path(config.runtime_path)
        self.document_root = config.web.document_root
        self.registry = registry
        self.publisher = publisher
        self.writer = writer
        self.minifier = minifier
        self.passthrough = PassthroughMinifier()

    def output_path(self, name: str, asset_type: str, combined_file: Path) -> Path:
        """``<runtime>/<name>_<16 hex chars of content hash>.<type>``"""
        digest = file_hash(combined_file, BUNDLE_HASH_LENGTH)
        return self.runtime_path / f"{name}_{digest}.{asset_type}"

    def minify_file(self, name: str, asset_type: str, combined_file: Path, compress: bool) -> Path:
        """Minify a combined file into its content-addressed output file."""
        out_file = self.output_path(name, asset_type, combined_file)
        minifier = self.minifier if compress else self.passthrough

        out_file.write_bytes(minifier.minify(combined_file.read_bytes(), asset_type))
        return out_file

    def compress_files(self, package: PackageConfig, asset_type: str, files: list[str]) -> Path:
        """Combine and minify files, always removing the combined temp file.

        Returns:
            Path of the minified file in the runtime directory
        """
        logger.info(f"Compressing {asset_type} package {package.name}:\n" + ",\n".join(files))
        combined = self.writer.combine(package.name, asset_type, files)
        try:
            return self.minify_file(package.name, asset_type, combined, package.compress)
        finally:
            combined.unlink(missing_ok=True)

    def copy_to_base_url(self, package: PackageConfig, out_file: Path) -> tuple[str, Path]:
        """Copy a CSS bundle next to the package's own files.

        Publishing would move the stylesheet away from the images its relative
        URLs point to.

        Returns:
            Tuple of (url, destination path)
        """
        url = f"{self.registry.base_url(package)}/{out_file.name}"
        dest_file = Path(f"{self.document_root}{url}")
        dest_file.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(out_file, dest_file)
        return url, dest_file

    def build_entry(
        self, package: PackageConfig, asset_type: str, refs: list[AssetRef]
    ) -> dict[str, Any] | None:
        """Compile one asset type of a package into a record entry."""
        urls = [ref.url for ref in refs if ref.external]
        files = [ref.path for ref in refs if not ref.external]

        if files:
            out_file = self.compress_files(package, asset_type, files)
            try:
                if asset_type == "css" and package.base_url is not None and "://" not in package.base_url:
                    url, dest_file = self.copy_to_base_url(package, out_file)
                else:
                    url = self.publisher.publish(out_file, hash_by_name=True, force_copy=True)
                    dest_file = self.publisher.get_published_path(out_file, hash_by_name=True)
            finally:
                out_file.unlink(missing_ok=True)
            entry: dict[str, Any] = {"file": str(dest_file), "files": files, "urls": urls + [url]}
        elif urls:
            entry = {"urls": urls}
        else:
            return None

        if asset_type == "css":
            entry["media"] = package.media
        return entry

    def discard_entry(self, entry: dict[str, Any]) -> None:
        """Delete the bundle of an entry that will not be recorded."""
        if "file" not in entry:
            return
        dest_file = Path(entry["file"])
        out_file = self.runtime_path / dest_file.name
        if dest_file == self.publisher.get_published_path(out_file, hash_by_name=True):
            self.publisher.unpublish(out_file, hash_by_name=True)
        else:
            dest_file.unlink(missing_ok=True)

    def compile(self, name: str) -> Record | None:
        """Compile a package.

        Dependencies are not handled here, see ``Bundler.compile``.

        Args:
            name: Package name

        Returns:
            Record of the compiled package, None if the package is unknown or empty

        Raises:
            CombineError: If a source file cannot be combined
            MinifierError: If minification fails
        """
        package = self.registry.get(name)
        if package is None:
            return None

        scripts, styles = self.registry.expand(name, publish=False)

        record: Record = {}
        try:
            for asset_type, refs in (("js", scripts), ("css", styles)):
                entry = self.build_entry(package, asset_type, refs)
                if entry is not None:
                    record[asset_type] = entry
        except Exception:
            # Drop bundles that will not be recorded
            for entry in record.values():
                self.discard_entry(entry)
            raise

        # The raw copy of the package directory is superseded by the bundle
        if package.base_path is not None:
            self.publisher.unpublish(package.base_path)

        return record or None
