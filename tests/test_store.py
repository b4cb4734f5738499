"""
Tests for the file-backed entry store.
"""
import json
import time

import pytest

from sitecache.cache.core import CacheEntry
from sitecache.cache.exceptions import CacheError
from sitecache.cache.store import METADATA_FILE, CacheStore, key_to_filename


def make_entry(key, value, max_age=60.0):
    now = time.time()
    return CacheEntry(
        key=key,
        value=value,
        created_at=now,
        updated_at=now,
        expires_at=now + max_age,
        source="test",
        version="1.0.0",
    )


@pytest.fixture
def store(cache_dir):
    return CacheStore(cache_dir)


# =============================================================================
# Key mapping
# =============================================================================

class TestKeyToFilename:
    """Tests for key -> file name mapping."""

    def test_safe_key_used_verbatim(self):
        assert key_to_filename("github-repositories") == "github-repositories.json"

    def test_unsafe_key_is_sanitized(self):
        name = key_to_filename("ai-analysis:octo/repo")
        assert "/" not in name
        assert ":" not in name
        assert "~" in name
        assert name.endswith(".json")

    def test_distinct_unsafe_keys_do_not_collide(self):
        assert key_to_filename("a/b") != key_to_filename("a:b")

    def test_dotfile_key_is_sanitized(self):
        assert not key_to_filename(".cache-metadata").startswith(".")

    def test_traversal_key_stays_in_directory(self):
        name = key_to_filename("../../etc/passwd")
        assert "/" not in name
        assert not name.startswith(".")


# =============================================================================
# Read / write
# =============================================================================

class TestReadWrite:
    """Tests for persisting and loading entries."""

    def test_write_then_read(self, store):
        store.write(make_entry("k", {"a": [1, 2, 3]}))
        entry = store.read("k")
        assert entry is not None
        assert entry.value == {"a": [1, 2, 3]}
        assert entry.source == "test"
        assert entry.checksum
        assert entry.size_bytes == len('{"a":[1,2,3]}')

    def test_missing_key_reads_none(self, store):
        assert store.read("nope") is None

    def test_unsafe_key_round_trips(self, store):
        key = "ai-analysis:octo/repo"
        store.write(make_entry(key, "summary"))
        assert store.read(key).value == "summary"
        assert store.list() == [key]

    def test_record_uses_camel_case_fields(self, store, cache_dir):
        store.write(make_entry("k", 1))
        record = json.loads((cache_dir / "k.json").read_text())
        for name in ("key", "value", "createdAt", "updatedAt", "expiresAt",
                     "source", "version", "sizeBytes", "checksum", "compression"):
            assert name in record

    def test_unserializable_value_raises(self, store):
        with pytest.raises(CacheError):
            store.write(make_entry("k", {"bad": object()}))
        assert store.read("k") is None

    def test_no_temp_files_left_behind(self, store, cache_dir):
        store.write(make_entry("k", 1))
        store.write(make_entry("k", 2))
        assert sorted(p.name for p in cache_dir.iterdir()) == ["k.json"]

    def test_md5_checksums(self, cache_dir):
        store = CacheStore(cache_dir, checksum_algorithm="md5")
        store.write(make_entry("k", "v"))
        assert len(store.read("k").checksum) == 32

    def test_unknown_checksum_algorithm_rejected(self, cache_dir):
        with pytest.raises(ValueError):
            CacheStore(cache_dir, checksum_algorithm="crc32")


class TestCompression:
    """Tests for gzip compression of large values."""

    def test_large_value_is_compressed(self, cache_dir):
        store = CacheStore(cache_dir, compression_enabled=True, compression_threshold=100)
        value = {"text": "x" * 1000}
        store.write(make_entry("big", value))

        record = json.loads((cache_dir / "big.json").read_text())
        assert record["compression"] == "gzip"
        assert isinstance(record["value"], str)
        assert store.read("big").value == value

    def test_small_value_is_not_compressed(self, cache_dir):
        store = CacheStore(cache_dir, compression_enabled=True, compression_threshold=100)
        store.write(make_entry("small", {"a": 1}))
        assert store.read("small").compression == "none"

    def test_compressed_file_is_smaller(self, cache_dir):
        store = CacheStore(cache_dir, compression_enabled=True, compression_threshold=100)
        written = store.write(make_entry("big", ["repeat"] * 500))
        assert written < store.read("big").size_bytes


# =============================================================================
# Corruption
# =============================================================================

class TestCorruption:
    """Corrupted records read as misses."""

    def test_invalid_json_reads_none(self, store, cache_dir):
        store.write(make_entry("k", 1))
        (cache_dir / "k.json").write_text("{not json")
        assert store.read("k") is None

    def test_checksum_mismatch_reads_none(self, store, cache_dir):
        store.write(make_entry("k", {"a": 1}))
        path = cache_dir / "k.json"
        record = json.loads(path.read_text())
        record["value"] = {"a": 2}
        path.write_text(json.dumps(record))
        assert store.read("k") is None

    def test_record_for_other_key_reads_none(self, store, cache_dir):
        store.write(make_entry("a", 1))
        (cache_dir / "b.json").write_text((cache_dir / "a.json").read_text())
        assert store.read("b") is None

    def test_scan_reports_corrupted_entries(self, store, cache_dir):
        store.write(make_entry("good", 1))
        (cache_dir / "bad.json").write_text("garbage")
        scanned = dict(store.scan())
        assert scanned["good"].value == 1
        assert scanned["bad"] is None

    def test_corrupted_record_can_be_removed(self, store, cache_dir):
        (cache_dir / "bad.json").write_text("garbage")
        assert store.remove("bad") is True
        assert store.list() == []

    def test_corrupted_sanitized_record_can_be_removed(self, store, cache_dir):
        key = "ai-analysis:octo/repo"
        store.write(make_entry(key, 1))
        store.path_for(key).write_text("garbage")
        (listed,) = store.list()
        assert store.remove(listed) is True
        assert store.list() == []

    def test_removing_key_with_tilde_leaves_other_records(self, store, cache_dir):
        # A real key that happens to equal another record's file stem
        stray = cache_dir / "notes~0123456789ab.json"
        stray.write_text("garbage")
        assert store.remove("notes~0123456789ab") is False
        assert stray.exists()

        # Once listed as an unreadable record it can be removed by that name
        assert store.list() == ["notes~0123456789ab"]
        assert store.remove("notes~0123456789ab") is True
        assert not stray.exists()


# =============================================================================
# Listing and metadata
# =============================================================================

class TestListingAndMetadata:

    def test_list_skips_metadata_file(self, store):
        store.write(make_entry("a", 1))
        store.save_metadata({"hits": 3})
        assert store.list() == ["a"]
        assert store.load_metadata() == {"hits": 3}
        assert (store.directory / METADATA_FILE).exists()

    def test_remove_missing_key(self, store):
        assert store.remove("missing") is False

    def test_disk_usage_counts_records(self, store):
        assert store.disk_usage() == 0
        written = store.write(make_entry("a", "x" * 100))
        assert store.disk_usage() == written

    def test_unreadable_metadata_is_empty(self, store):
        (store.directory / METADATA_FILE).write_text("[broken")
        assert store.load_metadata() == {}
