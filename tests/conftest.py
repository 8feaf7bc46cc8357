"""Shared pytest fixtures for package bundler tests."""
import hashlib

import pytest
import yaml

from bundler.config import Config
from bundler.manager import Bundler

STAR_PNG = b"\x89PNG\r\n\x1a\nstar"
LOGO_GIF = b"GIF89a-logo"


@pytest.fixture
def web_root(tmp_path):
    """Create a web root with scripts, stylesheets and images."""
    root = tmp_path / "public"
    (root / "static" / "js").mkdir(parents=True)
    (root / "static" / "css" / "img").mkdir(parents=True)
    (root / "img").mkdir()

    # a.js deliberately lacks a trailing semicolon
    (root / "static" / "js" / "a.js").write_text("var a = 1")
    (root / "static" / "js" / "b.js").write_text("var b = 2;")
    (root / "static" / "css" / "site.css").write_text(
        ".star { background: url('img/star.png') no-repeat; }\n"
        ".logo { background: url(/img/logo.gif); }\n"
    )
    (root / "static" / "css" / "img" / "star.png").write_bytes(STAR_PNG)
    (root / "img" / "logo.gif").write_bytes(LOGO_GIF)
    return root


@pytest.fixture
def vendor_dir(tmp_path):
    """Create a package directory outside the web root."""
    vendor = tmp_path / "vendor"
    vendor.mkdir()
    (vendor / "vendor.js").write_text("function vendor() { return 42; }")
    return vendor


@pytest.fixture
def test_config_dict(tmp_path, web_root, vendor_dir):
    """Return a test configuration dictionary."""
    return {
        "app_id": "test",
        "runtime_path": str(tmp_path / "runtime"),
        "web": {
            "root": str(web_root),
            "base_url": "",
        },
        "compression": {
            "enabled": True,
            "block_during_compression": True,
            "css_image_fingerprinting": True,
            "lock_timeout": 0.2,
            "retry_interval": 0.05,
        },
        "minifier": {
            "engine": "builtin",
        },
        "state": {
            "backend": "json",
        },
        "packages": {
            "site": {
                "base_url": "/static",
                "js": ["js/a.js", "js/b.js"],
                "css": ["css/site.css"],
                "media": "screen",
            },
            "cdn": {
                "js": ["https://cdn.example/a.js"],
            },
            "mixed": {
                "base_url": "/static",
                "js": ["js/a.js", "https://cdn/b.js"],
            },
            "raw": {
                "base_url": "/static",
                "js": ["js/a.js"],
                "compress": False,
            },
            "vendor": {
                "base_path": str(vendor_dir),
                "js": ["vendor.js"],
            },
            "app": {
                "base_url": "/static",
                "js": ["js/b.js"],
                "depends": ["site"],
            },
            "empty": {},
        },
    }


@pytest.fixture
def make_config(tmp_path):
    """Return a function that writes a config dict to YAML and loads it."""

    def _make_config(data):
        config_file = tmp_path / "bundler.yaml"
        with open(config_file, "w") as f:
            yaml.dump(data, f)
        return Config(str(config_file))

    return _make_config


@pytest.fixture
def test_config_file(tmp_path, test_config_dict):
    """Create a temporary test configuration file."""
    config_file = tmp_path / "bundler.yaml"
    with open(config_file, "w") as f:
        yaml.dump(test_config_dict, f)
    return str(config_file)


@pytest.fixture
def test_config(test_config_file):
    """Create a test Config instance."""
    return Config(test_config_file)


@pytest.fixture
def bundler(test_config):
    """Create a test Bundler instance."""
    return Bundler(test_config)


@pytest.fixture
def star_hash():
    """Fingerprint of img/star.png next to site.css."""
    return hashlib.md5(STAR_PNG).hexdigest()[:8]


@pytest.fixture
def logo_hash():
    """Fingerprint of /img/logo.gif in the web root."""
    return hashlib.md5(LOGO_GIF).hexdigest()[:8]
