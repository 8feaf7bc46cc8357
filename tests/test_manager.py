"""Tests for compiling, registering and resetting packages."""
import re
import threading
import time
from pathlib import Path

import pytest

from bundler.errors import CombineError, DependencyCycleError, MinifierError
from bundler.lock import SingleFlightLock
from bundler.manager import Bundler
from bundler.minifiers.builtin import BuiltinMinifier
from bundler.registry import RegistrationContext
from bundler.storage import SqliteStateBackend

BUNDLE_URL = re.compile(r"^/assets/[0-9a-f]{8}/(\w+)_[0-9a-f]{16}\.(js|css)$")


class TestCompile:
    """Tests for Bundler.compile."""

    def test_compile_js_and_css(self, bundler, web_root):
        """Test a package with local scripts and stylesheets."""
        assert bundler.compile("site") is True

        record = bundler.get_compiled_info("site")
        js = record["js"]
        assert BUNDLE_URL.match(js["urls"][0]).groups() == ("site", "js")
        assert js["files"] == [f"{web_root}/static/js/a.js", f"{web_root}/static/js/b.js"]
        assert Path(js["file"]).is_file()
        assert Path(js["file"]).is_relative_to(web_root / "assets")

        css = record["css"]
        assert re.match(r"^/static/site_[0-9a-f]{16}\.css$", css["urls"][0])
        assert css["file"] == f"{web_root}{css['urls'][0]}"
        assert css["media"] == "screen"

    def test_css_keeps_relative_images_working(self, bundler, star_hash, logo_hash):
        """Test the stylesheet bundle references fingerprinted images."""
        bundler.compile("site")

        css = Path(bundler.get_compiled_info("site")["css"]["file"]).read_text()
        assert f"img/star.png?{star_hash}" in css
        assert f"/img/logo.gif?{logo_hash}" in css

    def test_js_is_minified(self, bundler):
        """Test that the bundle is smaller than its sources."""
        bundler.compile("site")

        js = Path(bundler.get_compiled_info("site")["js"]["file"]).read_text()
        assert "var a=1" in js
        assert "var b=2" in js
        assert len(js) < len("var a = 1;\nvar b = 2;;\n")

    def test_file_name_is_content_addressed(self, bundler):
        """Test compiling unchanged sources twice yields the same bundle."""
        bundler.compile("site")
        first = bundler.get_compiled_info("site")["js"]["urls"]
        bundler.compile("site")
        second = bundler.get_compiled_info("site")["js"]["urls"]

        assert first == second

    def test_file_name_changes_with_content(self, bundler, web_root):
        """Test a changed source yields a new bundle name."""
        bundler.compile("site")
        first = bundler.get_compiled_info("site")["js"]["urls"]
        (web_root / "static" / "js" / "b.js").write_text("var b = 3;")
        bundler.compile("site")

        assert bundler.get_compiled_info("site")["js"]["urls"] != first

    def test_external_only(self, bundler):
        """Test a package of external URLs produces no file."""
        assert bundler.compile("cdn") is True

        assert bundler.get_compiled_info("cdn") == {"js": {"urls": ["https://cdn.example/a.js"]}}

    def test_external_urls_come_first(self, bundler, web_root):
        """Test external URLs precede the bundle URL."""
        bundler.compile("mixed")

        js = bundler.get_compiled_info("mixed")["js"]
        assert js["urls"][0] == "https://cdn/b.js"
        assert BUNDLE_URL.match(js["urls"][1])
        assert js["files"] == [f"{web_root}/static/js/a.js"]

    def test_compress_disabled_copies_verbatim(self, bundler):
        """Test packages with compress: false are combined but not minified."""
        bundler.compile("raw")

        js = Path(bundler.get_compiled_info("raw")["js"]["file"]).read_bytes()
        assert js == b"var a = 1;\n"

    def test_compress_disabled_keeps_line_endings(self, test_config_dict, make_config, web_root):
        """Test uncompressed bundles keep CRLF line endings of their sources."""
        (web_root / "static" / "js" / "crlf.js").write_bytes(b"var a = 1;\r\nvar b = 2;\r\n")
        test_config_dict["packages"]["crlf"] = {"base_url": "/static", "js": ["js/crlf.js"], "compress": False}
        bundler = Bundler(make_config(test_config_dict))

        bundler.compile("crlf")

        js = Path(bundler.get_compiled_info("crlf")["js"]["file"]).read_bytes()
        assert js == b"var a = 1;\r\nvar b = 2;\r\n;\n"

    def test_non_utf8_source(self, test_config_dict, make_config, web_root):
        """Test a latin-1 encoded source compiles."""
        (web_root / "static" / "js" / "latin.js").write_bytes(b"var s = '\xe9t\xe9';")
        test_config_dict["packages"]["latin"] = {"base_url": "/static", "js": ["js/latin.js"]}
        bundler = Bundler(make_config(test_config_dict))

        assert bundler.compile("latin") is True

        js = Path(bundler.get_compiled_info("latin")["js"]["file"]).read_bytes()
        assert b"'\xe9t\xe9'" in js

    def test_no_temporary_files_left(self, bundler, test_config):
        """Test that the runtime directory only keeps state and lock files."""
        bundler.ensure_compiled("site")

        leftovers = [
            path.name
            for path in Path(test_config.runtime_path).iterdir()
            if path.name.startswith(("combined_", "site_", "minify_"))
        ]
        assert leftovers == []

    def test_unknown_package(self, bundler):
        assert bundler.compile("nope") is False

    def test_empty_package(self, bundler):
        """Test a package without any files produces no record."""
        assert bundler.compile("empty") is False
        assert bundler.get_compiled_info("empty") is None

    def test_missing_source_file(self, test_config_dict, make_config):
        """Test a missing source aborts without a record."""
        test_config_dict["packages"]["broken"] = {"base_url": "/static", "js": ["js/missing.js"]}
        bundler = Bundler(make_config(test_config_dict))

        with pytest.raises(CombineError, match="missing.js"):
            bundler.ensure_compiled("broken")

        assert bundler.get_compiled_info("broken") is None
        assert not bundler.lock.locked

    def test_minifier_failure(self, test_config_dict, make_config):
        """Test a failing minifier command aborts without a record."""
        test_config_dict["minifier"] = {"engine": "command", "command": ["sh", "-c", "exit 3", "{input}"]}
        config = make_config(test_config_dict)
        bundler = Bundler(config)

        with pytest.raises(MinifierError, match="exit status 3"):
            bundler.ensure_compiled("site")

        assert bundler.get_compiled_info("site", force_reload=True) is None
        assert not bundler.lock.locked
        leftovers = [
            path.name
            for path in Path(config.runtime_path).iterdir()
            if path.name.startswith(("combined_", "site_", "minify_"))
        ]
        assert leftovers == []

    def test_failure_removes_published_bundles(self, test_config_dict, make_config, web_root):
        """Test a JS bundle is not left behind when the CSS step fails."""
        test_config_dict["packages"]["half"] = {
            "base_url": "/static",
            "js": ["js/a.js"],
            "css": ["css/missing.css"],
        }
        bundler = Bundler(make_config(test_config_dict))

        with pytest.raises(CombineError, match="missing.css"):
            bundler.compile("half")

        assert bundler.get_compiled_info("half") is None
        assert list((web_root / "assets").rglob("half_*")) == []

    def test_base_path_package(self, bundler, vendor_dir):
        """Test a package outside the web root is bundled and its raw copy removed."""
        raw_url = bundler.registry.base_url(bundler.registry.get("vendor"))
        raw_copy = bundler.publisher.get_published_path(str(vendor_dir))
        assert raw_copy.is_dir()

        bundler.compile("vendor")

        js = bundler.get_compiled_info("vendor")["js"]
        assert js["files"] == [str(vendor_dir / "vendor.js")]
        assert BUNDLE_URL.match(js["urls"][0])
        assert not raw_copy.exists()
        assert raw_url not in js["urls"]

    def test_sqlite_state(self, test_config_dict, make_config):
        """Test records persisted in SQLite are visible to other instances."""
        test_config_dict["state"] = {"backend": "sqlite"}
        config = make_config(test_config_dict)

        Bundler(config).compile("site")

        other = Bundler(config)
        assert isinstance(other.store.backend, SqliteStateBackend)
        assert other.get_compiled_info("site") is not None


class TestDependencies:
    """Tests for package dependencies."""

    def test_compile_compiles_dependencies(self, bundler):
        """Test compiling a package compiles what it depends on."""
        bundler.compile("app")

        assert sorted(bundler.list_compiled_names()) == ["app", "site"]

    def test_register_orders_dependencies_first(self, bundler):
        """Test a dependency is registered before the package."""
        context = bundler.register_package("app", RegistrationContext())

        assert context.packages == ["site", "app"]
        assert context.compiled == {"site": True, "app": True}

    def test_cycle(self, test_config_dict, make_config):
        """Test a dependency cycle is an error and releases the lock."""
        test_config_dict["packages"] = {
            "a": {"base_url": "/static", "js": ["js/a.js"], "depends": ["b"]},
            "b": {"base_url": "/static", "js": ["js/b.js"], "depends": ["a"]},
        }
        bundler = Bundler(make_config(test_config_dict))

        with pytest.raises(DependencyCycleError):
            bundler.compile("a")
        with pytest.raises(DependencyCycleError):
            bundler.ensure_compiled("a")
        with pytest.raises(DependencyCycleError):
            bundler.register_package("a", RegistrationContext())

        assert not bundler.lock.locked
        assert bundler.list_compiled_names() == []


class TestRegisterPackage:
    """Tests for Bundler.register_package."""

    def test_compiles_on_first_registration(self, bundler):
        """Test the first page using a package compiles it."""
        context = bundler.register_package("site", RegistrationContext())

        assert context.compiled == {"site": True}
        assert bundler.get_compiled_info("site") is not None

    def test_already_registered(self, bundler, monkeypatch):
        """Test registering twice on one page does nothing."""
        context = bundler.register_package("site", RegistrationContext())
        monkeypatch.setattr(bundler, "ensure_compiled", lambda name: pytest.fail("compiled again"))

        assert bundler.register_package("site", context).packages == ["site"]

    def test_unknown_package_ignored(self, bundler):
        assert bundler.register_package("nope", RegistrationContext()).packages == []

    def test_compression_disabled(self, test_config_dict, make_config):
        """Test packages are served raw when compression is off."""
        test_config_dict["compression"]["enabled"] = False
        bundler = Bundler(make_config(test_config_dict))

        context = bundler.register_package("app", RegistrationContext())

        assert context.compiled == {"site": False, "app": False}
        assert bundler.list_compiled_names() == []

    def test_non_blocking_falls_back_to_raw(self, test_config_dict, make_config):
        """Test a busy lock makes a non-blocking page use the raw files."""
        test_config_dict["compression"]["block_during_compression"] = False
        config = make_config(test_config_dict)
        bundler = Bundler(config)
        holder = SingleFlightLock(config.lock_path)
        holder.try_acquire(0.1)
        try:
            context = bundler.register_package("site", RegistrationContext())
        finally:
            holder.release()

        assert context.compiled == {"site": False}
        assert bundler.get_compiled_info("site", force_reload=True) is None

    def test_blocking_waits_for_other_compilation(self, test_config_dict, make_config):
        """Test a blocking page picks up the bundle compiled while it waited."""
        config = make_config(test_config_dict)
        first = Bundler(config)
        second = Bundler(config)
        second.get_compiled_info("site")

        first.lock.try_acquire(0.1)
        first.compile("site")
        timer = threading.Timer(0.2, first.lock.release)
        timer.start()

        context = second.register_package("site", RegistrationContext())
        timer.join()

        assert context.compiled == {"site": True}

    def test_self_healing(self, bundler):
        """Test a deleted bundle is compiled again on the next request."""
        bundler.compile("site")
        Path(bundler.get_compiled_info("site")["js"]["file"]).unlink()

        assert bundler.get_compiled_info("site") is None

        context = bundler.register_package("site", RegistrationContext())
        assert context.compiled == {"site": True}
        assert Path(bundler.get_compiled_info("site")["js"]["file"]).is_file()

    def test_compiles_at_most_once(self, test_config, monkeypatch):
        """Test concurrent requests for an uncompiled package compile it once."""
        calls = []
        minify = BuiltinMinifier.minify

        def counting_minify(self, source, asset_type):
            calls.append(asset_type)
            time.sleep(0.1)
            return minify(self, source, asset_type)

        monkeypatch.setattr(BuiltinMinifier, "minify", counting_minify)

        results = []

        def request():
            bundler = Bundler(test_config)
            context = bundler.register_package("site", RegistrationContext())
            results.append((context.compiled["site"], bundler.get_compiled_info("site")))

        threads = [threading.Thread(target=request) for _ in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(calls) == ["css", "js"]
        assert [compiled for compiled, _ in results] == [True] * 5
        records = [record for _, record in results]
        assert records[0] is not None
        assert all(record == records[0] for record in records)


class TestReset:
    """Tests for Bundler.reset."""

    def test_reset_never_compiled(self, bundler):
        assert bundler.reset("site") is False

    def test_reset_package(self, bundler, web_root):
        """Test resetting deletes the bundles and the record."""
        bundler.compile("site")
        record = bundler.get_compiled_info("site")

        assert bundler.reset("site") is True

        assert bundler.get_compiled_info("site") is None
        assert not Path(record["js"]["file"]).exists()
        assert not Path(record["js"]["file"]).parent.exists()
        assert not Path(record["css"]["file"]).exists()
        assert (web_root / "static" / "css" / "site.css").is_file()

    def test_reset_all(self, bundler):
        """Test resetting every compiled package."""
        bundler.compile("site")
        bundler.compile("cdn")

        assert bundler.reset() is True
        assert bundler.list_compiled_names() == []
        assert bundler.reset() is False

    def test_recompile_after_reset(self, bundler):
        """Test a reset package is compiled again with the same name."""
        bundler.compile("site")
        url = bundler.get_compiled_info("site")["js"]["urls"]
        bundler.reset("site")

        bundler.register_package("site", RegistrationContext())

        record = bundler.get_compiled_info("site")
        assert record["js"]["urls"] == url
        assert Path(record["js"]["file"]).is_file()
