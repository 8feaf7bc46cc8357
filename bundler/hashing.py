"""Content addressing for bundles and CSS image fingerprints."""
import hashlib
from pathlib import Path

# Bundle file names carry 16 hex chars, CSS image fingerprints 8.
BUNDLE_HASH_LENGTH = 16
FINGERPRINT_LENGTH = 8


def compute_hash(content: bytes, length: int | None = None) -> str:
    """Compute (optionally shortened) md5 hex digest of content."""
    digest = hashlib.md5(content).hexdigest()
    return digest[:length] if length else digest


def file_hash(path: str | Path, length: int | None = None) -> str:
    """Compute the content hash of a file, read in chunks."""
    md5 = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            md5.update(chunk)
    digest = md5.hexdigest()
    return digest[:length] if length else digest
