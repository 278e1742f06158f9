"""
On-disk cache of parsed survey tables.

One pickle per (year, variant) in a fixed directory. Presence of the file is
the only validity check: there is no expiry, checksum or schema version,
which holds because the catalog and the published files are static per
release. There is no locking; when two processes write the same key the
last writer wins. Entries are never deleted here.
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import pandas as pd

from .logging import CESLogger
from .table import SurveyTable


@dataclass
class CacheEntry:
    """A parsed table together with the dataset it came from."""

    year: str
    variant: str
    table: SurveyTable
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class CacheManager:
    """File cache using pandas pickle serialization."""

    cache_dir: Path
    suffix: str = ".pkl"
    logger: Optional[CESLogger] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        self.cache_dir = Path(self.cache_dir)

    def path_for(self, year: str, variant: str) -> Path:
        return self.cache_dir / f"ces_{year}_{variant}{self.suffix}"

    def exists(self, year: str, variant: str) -> bool:
        return self.path_for(year, variant).exists()

    def get(self, year: str, variant: str) -> Optional[SurveyTable]:
        """Cached table, or None when nothing is stored for the key.

        A file that cannot be unpickled, or that holds anything other than a
        ``CacheEntry``, is reported and treated as a miss so the caller falls
        back to downloading.
        """
        path = self.path_for(year, variant)
        if not path.exists():
            return None
        try:
            entry = pd.read_pickle(path)
        except Exception as e:
            if self.logger is not None:
                self.logger.warning(f"Ignoring unreadable cache file {path}: {e}")
            return None
        if not isinstance(entry, CacheEntry) or not isinstance(entry.table, SurveyTable):
            if self.logger is not None:
                self.logger.warning(
                    f"Ignoring cache file {path}: holds {type(entry).__name__}, not a cache entry"
                )
            return None
        return entry.table

    def put(self, year: str, variant: str, table: SurveyTable) -> Path:
        """Write the table; the file is swapped in atomically."""
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(year, variant)
        fd, tmp_name = tempfile.mkstemp(prefix=path.stem, suffix=".tmp", dir=self.cache_dir)
        os.close(fd)
        tmp_path = Path(tmp_name)
        try:
            pd.to_pickle(CacheEntry(year=year, variant=variant, table=table), tmp_path)
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)
        return path
