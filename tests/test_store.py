"""Unit tests for htmldeploy/store.py - the DeploymentStore."""

import re
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from htmldeploy.config import Settings
from htmldeploy.errors import InvalidName, NotFound, PathViolation, StorageError, ValidationError
from htmldeploy.paths import is_clean_name
from htmldeploy.store import DeployedFile, DeploymentStore


@pytest.fixture
def root():
    """Create a temporary storage root (not yet existing)."""
    return Path(tempfile.mkdtemp()) / "public"


@pytest.fixture
def store(root):
    """Create a DeploymentStore over the temporary root."""
    return DeploymentStore(Settings(storage_root=root, server_ip="testhost"))


def _snapshot(root: Path) -> dict[str, bytes]:
    return {p.name: p.read_bytes() for p in root.iterdir()}


class TestDeploy:
    """Tests for DeploymentStore.deploy."""

    def test_creates_root_lazily(self, store, root):
        """Should create the storage root on first deploy."""
        assert not root.exists()
        store.deploy("<h1>hi</h1>", "demo")
        assert root.is_dir()

    def test_explicit_name(self, store, root):
        """Should write under the requested name plus extension."""
        result = store.deploy("<h1>hi</h1>", "demo")
        assert result.filename == "demo.html"
        assert result.size == len(b"<h1>hi</h1>")
        assert (root / "demo.html").read_text() == "<h1>hi</h1>"

    def test_random_names_distinct(self, store):
        """Should produce two different names for two unnamed deploys."""
        first = store.deploy("<p>a</p>")
        second = store.deploy("<p>a</p>")
        assert first.filename != second.filename
        assert re.fullmatch(r"[0-9a-f]{16}\.html", first.filename)

    def test_collision_disambiguates(self, store, root):
        """Should rename on collision and leave the existing file untouched."""
        store.deploy("original", "x")
        result = store.deploy("replacement", "x")

        assert re.fullmatch(r"x-\d+\.html", result.filename)
        assert (root / "x.html").read_text() == "original"
        assert (root / result.filename).read_text() == "replacement"

    def test_race_between_check_and_create(self, store, root):
        """Should pick a new name if the file appears after the existence check."""
        root.mkdir(parents=True)

        def appear_then_resolve(r, requested, extension):
            (root / "race.html").write_text("winner")
            return "race.html", True

        with patch("htmldeploy.store.resolve_unique_name", side_effect=appear_then_resolve):
            result = store.deploy("loser", "race")

        assert re.fullmatch(r"race-\d+\.html", result.filename)
        assert (root / "race.html").read_text() == "winner"
        assert (root / result.filename).read_text() == "loser"

    def test_traversal_name_is_sanitized(self, store, root):
        """Should never write outside the root for a traversal name."""
        result = store.deploy("<p>x</p>", "../../evil")
        assert result.filename == "evil.html"
        assert (root / "evil.html").exists()
        assert not (root.parent / "evil.html").exists()

    def test_bytes_content(self, store, root):
        """Should accept raw bytes."""
        result = store.deploy(b"<p>bytes</p>", "b")
        assert (root / result.filename).read_bytes() == b"<p>bytes</p>"

    def test_utf8_size_is_bytes(self, store):
        """Should report the encoded byte length, not the character count."""
        result = store.deploy("页面", "u")
        assert result.size == len("页面".encode("utf-8"))

    def test_empty_content_rejected(self, store):
        """Should reject empty content."""
        with pytest.raises(ValidationError):
            store.deploy("")

    def test_none_content_rejected(self, store):
        """Should reject missing content."""
        with pytest.raises(ValidationError):
            store.deploy(None)

    def test_oversized_content_rejected(self, root):
        """Should reject content above the size limit."""
        small = DeploymentStore(Settings(storage_root=root, max_content_size=10))
        with pytest.raises(ValidationError):
            small.deploy("x" * 11)
        assert small.deploy("x" * 10).size == 10

    def test_path_violation_checked(self, store):
        """Should raise PathViolation if the guard fails."""
        with patch("htmldeploy.store.is_within_root", return_value=False):
            with pytest.raises(PathViolation):
                store.deploy("<p>x</p>", "demo")

    def test_write_failure_is_storage_error(self, store):
        """Should wrap OS errors as StorageError."""
        with patch.object(Path, "write_bytes", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.deploy("<p>x</p>")


class TestDeployedNamesStayAddressable:
    """Every name deploy returns must be resolvable and deletable."""

    @pytest.mark.parametrize("requested", [
        None,
        "demo",
        "demo.",
        "demo...",
        "page..html",
        "a." * 10,
        "../../x.",
        "页面.",
        "a" * 300,
        "b" * 300 + ".html",
    ])
    def test_result_is_clean(self, store, requested):
        """Should return a name that passes is_clean_name, resolve and delete."""
        result = store.deploy("<p>x</p>", requested)
        assert is_clean_name(result.filename)
        assert len(result.filename.encode()) <= 255
        assert store.resolve(result.filename).is_file()
        store.delete(result.filename)
        assert store.list_files() == []

    def test_long_name_collision_fits(self, store):
        """Should keep a disambiguated long name within the filesystem limit."""
        first = store.deploy("<p>1</p>", "a" * 300)
        second = store.deploy("<p>2</p>", "a" * 300)
        assert first.filename != second.filename
        assert len(second.filename.encode()) <= 255
        assert is_clean_name(second.filename)

    def test_existence_check_failure_is_storage_error(self, store):
        """Should wrap OS errors from the name check as StorageError."""
        with patch("htmldeploy.store.resolve_unique_name", side_effect=OSError("File name too long")):
            with pytest.raises(StorageError):
                store.deploy("<p>x</p>", "demo")


class TestListFiles:
    """Tests for DeploymentStore.list_files."""

    def test_empty(self, store):
        """Should return an empty list for a new root."""
        assert store.list_files() == []

    def test_only_html_direct_children(self, store, root):
        """Should list only .html regular files directly under the root."""
        store.deploy("<p>a</p>", "a")
        (root / "notes.txt").write_text("skip")
        (root / "sub.html").mkdir()
        (root / "sub.html" / "nested.html").write_text("skip")

        names = [f.name for f in store.list_files()]
        assert names == ["a.html"]

    def test_sorted_and_stable(self, store):
        """Should return a stable, name-sorted listing."""
        for name in ("c", "a", "b"):
            store.deploy("<p/>", name)
        first = [f.name for f in store.list_files()]
        assert first == ["a.html", "b.html", "c.html"]
        assert [f.name for f in store.list_files()] == first

    def test_entry_fields(self, store):
        """Should report size and a timezone-aware modification time."""
        store.deploy("12345", "five")
        [entry] = store.list_files()
        assert isinstance(entry, DeployedFile)
        assert entry.size == 5
        assert entry.modified.tzinfo is not None


class TestDelete:
    """Tests for DeploymentStore.delete."""

    def test_delete_existing(self, store, root):
        """Should remove an existing file."""
        store.deploy("<p/>", "gone")
        store.delete("gone.html")
        assert not (root / "gone.html").exists()

    def test_not_found_no_mutation(self, store, root):
        """Should raise NotFound and leave the root untouched."""
        store.deploy("<p/>", "keep")
        before = _snapshot(root)
        with pytest.raises(NotFound):
            store.delete("never.html")
        assert _snapshot(root) == before

    @pytest.mark.parametrize("name", [
        "../../etc/passwd",
        "..",
        "a/b.html",
        "a\\b.html",
        "my page.html",
        "",
    ])
    def test_invalid_names_rejected_before_fs(self, store, name):
        """Should reject unsafe names without touching the filesystem."""
        with patch.object(Path, "unlink") as mock_unlink, \
                patch("htmldeploy.store.is_within_root") as mock_guard:
            with pytest.raises(InvalidName):
                store.delete(name)
        mock_unlink.assert_not_called()
        mock_guard.assert_not_called()

    def test_path_violation(self, store):
        """Should raise PathViolation if the guard fails."""
        with patch("htmldeploy.store.is_within_root", return_value=False):
            with pytest.raises(PathViolation):
                store.delete("demo.html")

    def test_directory_is_not_found(self, store, root):
        """Should treat a directory as not a deployed file."""
        root.mkdir(parents=True)
        (root / "dir.html").mkdir()
        with pytest.raises(NotFound):
            store.delete("dir.html")
        assert (root / "dir.html").is_dir()


class TestRoundTrip:
    """Deploy, list, delete, list."""

    def test_round_trip(self, store):
        """Should list a deployed file and drop it after delete."""
        content = "<html><body>round trip</body></html>"
        result = store.deploy(content)

        listed = {f.name: f.size for f in store.list_files()}
        assert listed[result.filename] == len(content.encode("utf-8"))

        store.delete(result.filename)
        assert result.filename not in [f.name for f in store.list_files()]


class TestResolveAndHealth:
    """Tests for resolve and check_writable."""

    def test_resolve_existing(self, store, root):
        """Should return the path of an existing file."""
        store.deploy("<p/>", "page")
        assert store.resolve("page.html") == root / "page.html"

    def test_resolve_missing(self, store):
        """Should raise NotFound for a missing file."""
        with pytest.raises(NotFound):
            store.resolve("missing.html")

    def test_resolve_traversal(self, store):
        """Should raise NotFound for an unsafe name."""
        with pytest.raises(NotFound):
            store.resolve("../secret.html")

    def test_check_writable(self, store, root):
        """Should leave no probe file behind."""
        store.check_writable()
        assert list(root.iterdir()) == []

    def test_check_writable_failure(self, store):
        """Should raise StorageError when the probe cannot be written."""
        with patch.object(Path, "write_text", side_effect=PermissionError("read-only")):
            with pytest.raises(StorageError):
                store.check_writable()
