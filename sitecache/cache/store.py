"""
File-backed persistence for cache entries.

One JSON record per key under the cache directory. Records are written to a
temporary file and moved into place, so readers never observe a partial write.
"""
import base64
import binascii
import gzip
import hashlib
import json
import logging
import os
import re
import tempfile
import zlib
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .core import CacheEntry
from .exceptions import CacheError, CacheIOError

logger = logging.getLogger("cache.store")

METADATA_FILE = ".cache-metadata.json"
RECORD_SUFFIX = ".json"

# Keys made of these characters are used verbatim as file names
_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.\-]{1,150}$")
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.\-]")

SUPPORTED_CHECKSUMS = ("sha256", "md5")


def serialize_value(value: Any) -> str:
    """Canonical JSON text of a value, used for sizing and checksums."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def key_to_filename(key: str) -> str:
    """
    Map a cache key to a file name that is a safe path segment.

    Safe keys map to ``<key>.json``. Anything else is sanitized and suffixed
    with a digest of the original key; the ``~`` separator never appears in a
    safe key, so the two forms cannot collide.
    """
    if _SAFE_KEY.match(key) and not key.startswith("."):
        return key + RECORD_SUFFIX
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
    readable = _UNSAFE_CHARS.sub("_", key)[:80].lstrip(".")
    return f"{readable}~{digest}{RECORD_SUFFIX}"


class CacheStore:
    """
    Durable key -> entry persistence.

    Handles:
    - Key to path mapping (with sanitization)
    - Optional gzip compression of large values
    - Checksum verification on read
    - Atomic writes
    """

    def __init__(
        self,
        directory: Path,
        compression_enabled: bool = False,
        compression_threshold: int = 10 * 1024,
        checksum_algorithm: str = "sha256",
    ):
        if checksum_algorithm not in SUPPORTED_CHECKSUMS:
            raise ValueError(f"Unsupported checksum algorithm: {checksum_algorithm}")

        self.directory = Path(directory)
        self.compression_enabled = compression_enabled
        self.compression_threshold = compression_threshold
        self.checksum_algorithm = checksum_algorithm
        # Sanitized records listed under their file stem because the key
        # inside could not be read
        self._unreadable: Dict[str, Path] = {}

        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            # Writes will fail with CacheIOError; reads behave as misses
            logger.warning(f"Failed to create cache directory {self.directory}: {e}")

    def path_for(self, key: str) -> Path:
        return self.directory / key_to_filename(key)

    def checksum(self, serialized: str) -> str:
        return hashlib.new(self.checksum_algorithm, serialized.encode("utf-8")).hexdigest()

    # =========================================================================
    # Entry operations
    # =========================================================================

    def read(self, key: str) -> Optional[CacheEntry]:
        """
        Load the entry for a key.

        Returns None when the record is missing, unparseable or fails its
        checksum. Raises CacheIOError only when the file exists but cannot be
        read at all.
        """
        path = self.path_for(key)
        try:
            content = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheIOError("Failed to read cache entry", key=key, path=str(path), original_error=e)

        entry = self._decode(content, key)
        if entry is None:
            logger.warning(f"Ignoring corrupted cache entry: {key} ({path.name})")
        return entry

    def write(self, entry: CacheEntry) -> int:
        """
        Persist an entry, filling in its size, checksum and compression fields.

        Returns:
            Number of bytes written to disk

        Raises:
            CacheError: If the value is not JSON-serializable
            CacheIOError: If the file cannot be written
        """
        try:
            serialized = serialize_value(entry.value)
        except (TypeError, ValueError) as e:
            raise CacheError(
                f"Value for {entry.key} is not serializable: {e}",
                error_code="SERIALIZATION_ERROR",
                details={"key": entry.key},
            )

        raw = serialized.encode("utf-8")
        entry.size_bytes = len(raw)
        entry.checksum = self.checksum(serialized)

        stored_value: Any = entry.value
        entry.compression = "none"
        if self.compression_enabled and entry.size_bytes >= self.compression_threshold:
            stored_value = base64.b64encode(gzip.compress(raw)).decode("ascii")
            entry.compression = "gzip"

        content = json.dumps(entry.to_record(stored_value), ensure_ascii=False)
        self._atomic_write(self.path_for(entry.key), content, key=entry.key)
        return len(content.encode("utf-8"))

    def remove(self, key: str) -> bool:
        """Delete the record for a key. Returns False if it did not exist."""
        path = self.path_for(key)
        if not path.exists() and key in self._unreadable:
            path = self._unreadable[key]
        try:
            path.unlink()
            self._unreadable.pop(key, None)
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise CacheIOError("Failed to remove cache entry", key=key, path=str(path), original_error=e)

    def list(self) -> List[str]:
        """Keys of every record on disk (corrupted ones included)."""
        return [key for key, _ in self._record_files()]

    def scan(self) -> Iterator[Tuple[str, Optional[CacheEntry]]]:
        """
        Iterate over every record on disk.

        Yields (key, entry) pairs; entry is None for records that cannot be
        read or decoded.
        """
        for key, path in self._record_files():
            try:
                content = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue  # Removed since listing
            except OSError as e:
                logger.warning(f"Failed to read {path.name} during scan: {e}")
                yield key, None
                continue
            yield key, self._decode(content, key)

    def disk_usage(self) -> int:
        """Total bytes of record files under the cache directory."""
        total = 0
        for _, path in self._record_files():
            try:
                total += path.stat().st_size
            except OSError:
                continue
        return total

    # =========================================================================
    # Store metadata (persisted counters)
    # =========================================================================

    def load_metadata(self) -> Dict[str, Any]:
        path = self.directory / METADATA_FILE
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load cache metadata: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def save_metadata(self, metadata: Dict[str, Any]) -> None:
        self._atomic_write(self.directory / METADATA_FILE, json.dumps(metadata), key=METADATA_FILE)

    # =========================================================================
    # Internals
    # =========================================================================

    def _record_files(self) -> List[Tuple[str, Path]]:
        try:
            paths = sorted(self.directory.glob("*" + RECORD_SUFFIX))
        except OSError as e:
            logger.warning(f"Failed to list cache directory {self.directory}: {e}")
            return []

        records = []
        for path in paths:
            if path.name.startswith("."):
                continue
            stem = path.name[: -len(RECORD_SUFFIX)]
            if "~" in stem:
                # Sanitized name: the original key lives inside the record
                key = self._key_from_record(path)
                if key is None:
                    key = stem
                    self._unreadable[stem] = path
            else:
                key = stem
            records.append((key, path))
        return records

    @staticmethod
    def _key_from_record(path: Path) -> Optional[str]:
        try:
            record = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        key = record.get("key") if isinstance(record, dict) else None
        return key if isinstance(key, str) else None

    def _decode(self, content: str, key: str) -> Optional[CacheEntry]:
        try:
            record = json.loads(content)
            if not isinstance(record, dict) or record.get("key") != key:
                return None

            stored_value = record.get("value")
            if record.get("compression", "none") == "gzip":
                raw = gzip.decompress(base64.b64decode(stored_value))
                value = json.loads(raw.decode("utf-8"))
            else:
                value = stored_value

            entry = CacheEntry.from_record(record, value)
        except (ValueError, TypeError, KeyError, binascii.Error, zlib.error, EOFError, OSError):
            return None

        if entry.checksum and entry.checksum != self.checksum(serialize_value(value)):
            return None
        return entry

    def _atomic_write(self, path: Path, content: str, key: str) -> None:
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=str(self.directory),
                prefix=".tmp-",
                suffix=".part",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
            raise CacheIOError("Failed to write cache entry", key=key, path=str(path), original_error=e)
