"""
Content-addressed on-disk cache of query results.

Every rendered query gets a fingerprint (SHA-256 over its table, template,
parameters sorted by name and row limit); the result is stored as
``<fingerprint>.parquet`` under the cache root. Entries are immutable and
written atomically: data goes to a temporary file in the same directory
which is then renamed over the final path, so readers never observe a
partially written entry.
"""

import hashlib
import json
import os
import re
import tempfile
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from skyhistory.utils import logger
from skyhistory.utils.exceptions import CacheError, CacheErrorKind
from skyhistory.trino.components.codec import FlightData, ParquetCodec
from skyhistory.trino.components.query import RenderedQuery

_AGE_UNITS = {
    "s": "seconds", "sec": "seconds", "second": "seconds", "seconds": "seconds",
    "m": "minutes", "min": "minutes", "minute": "minutes", "minutes": "minutes",
    "h": "hours", "hour": "hours", "hours": "hours",
    "d": "days", "day": "days", "days": "days",
    "w": "weeks", "week": "weeks", "weeks": "weeks",
}

_AGE_PATTERN = re.compile(r"^\s*(\d+)\s*([a-z]+)\s*$")


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Cannot fingerprint value of type {type(value).__name__}")


def fingerprint(query: RenderedQuery) -> str:
    """
    Compute the cache key of a rendered query.

    Parameter order does not matter; any change to a value, the template,
    the table or the limit yields a different key.
    """
    document = {
        "table": query.table,
        "template": query.template,
        "params": sorted([name, value] for name, value in query.params),
        "limit": query.limit,
    }
    encoded = json.dumps(document, sort_keys=True, separators=(",", ":"), default=_json_default)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def parse_age(value: str) -> timedelta:
    """
    Parse a purge age such as "90 days", "12 hours" or "2w".

    Raises:
        ValueError: If the value cannot be parsed
    """
    match = _AGE_PATTERN.match(value.lower())
    if not match or match.group(2) not in _AGE_UNITS:
        raise ValueError(f"Invalid age '{value}'. Use e.g. '90 days' or '12 hours'")
    return timedelta(**{_AGE_UNITS[match.group(2)]: int(match.group(1))})


@dataclass(frozen=True)
class CacheEntry:
    """One stored result."""
    fingerprint: str
    created_at: datetime
    size_bytes: int
    path: Path


@dataclass(frozen=True)
class CacheStats:
    """Summary of the cache directory."""
    directory: Path
    file_count: int
    total_bytes: int

    def size_human(self) -> str:
        size = float(self.total_bytes)
        for unit in ("B", "KB", "MB", "GB"):
            if size < 1024 or unit == "GB":
                return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
            size /= 1024
        return f"{size:.2f} GB"


class ResultCache:
    """
    Parquet files keyed by query fingerprint.

    All methods are blocking; async callers run them in a worker thread.
    """

    suffix = ParquetCodec.extension

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def path_for(self, key: str) -> Path:
        return self.root / f"{key}{self.suffix}"

    def get(self, key: str) -> FlightData | None:
        """
        Look up a stored result.

        Returns:
            The cached data, or None on a miss

        Raises:
            CacheError: CORRUPT if the entry exists but cannot be decoded
        """
        path = self.path_for(key)
        try:
            with open(path, "rb") as f:
                data = ParquetCodec.decode(f)
        except FileNotFoundError:
            return None
        except CacheError as e:
            raise CacheError(CacheErrorKind.CORRUPT, e.message, path=str(path))
        except OSError as e:
            raise CacheError(CacheErrorKind.IO, f"Failed to read cache entry: {e}", path=str(path))

        logger.debug(f"Cache hit for {key[:12]} ({len(data)} rows)")
        return data

    def put(self, key: str, data: FlightData) -> CacheEntry:
        """
        Store a result atomically.

        Raises:
            CacheError: IO if the entry cannot be written; no partial file is left
        """
        path = self.path_for(key)
        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{key[:12]}-", suffix=".tmp", dir=self.root)
            with os.fdopen(fd, "wb") as f:
                ParquetCodec.encode(data, f)
                f.flush()
                stat = os.fstat(f.fileno())
            # The entry may be purged as soon as it is renamed; never stat it afterwards
            os.replace(tmp_name, path)
        except Exception as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise CacheError(CacheErrorKind.IO, f"Failed to write cache entry: {e}", path=str(path))

        logger.info(f"Cached {len(data)} rows as {path.name}")
        return CacheEntry(
            fingerprint=key,
            created_at=datetime.fromtimestamp(stat.st_mtime),
            size_bytes=stat.st_size,
            path=path,
        )

    def entries(self) -> list[CacheEntry]:
        """List stored entries, oldest first."""
        if not self.root.is_dir():
            return []

        entries = []
        for path in self.root.glob(f"*{self.suffix}"):
            try:
                stat = path.stat()
            except FileNotFoundError:
                # Removed by a concurrent purge
                continue
            entries.append(CacheEntry(
                fingerprint=path.stem,
                created_at=datetime.fromtimestamp(stat.st_mtime),
                size_bytes=stat.st_size,
                path=path,
            ))
        return sorted(entries, key=lambda entry: entry.created_at)

    def stats(self) -> CacheStats:
        entries = self.entries()
        return CacheStats(
            directory=self.root,
            file_count=len(entries),
            total_bytes=sum(entry.size_bytes for entry in entries),
        )

    def remove(self, key: str) -> bool:
        """Delete one entry. Returns True if it existed."""
        try:
            self.path_for(key).unlink()
            return True
        except FileNotFoundError:
            return False

    def purge(self, older_than: timedelta | None = None) -> int:
        """
        Delete entries older than the given age, or all entries when None.

        Returns:
            Number of files removed
        """
        threshold = time.time() - older_than.total_seconds() if older_than is not None else None
        removed = 0
        for entry in self.entries():
            if threshold is not None and entry.created_at.timestamp() >= threshold:
                continue
            try:
                entry.path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise CacheError(CacheErrorKind.IO, f"Failed to remove {entry.path}: {e}", path=str(entry.path))

        logger.info(f"Purged {removed} cache entries from {self.root}")
        return removed


__all__ = [
    "ResultCache",
    "CacheEntry",
    "CacheStats",
    "fingerprint",
    "parse_age",
]
