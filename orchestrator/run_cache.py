"""Run-scoped cache of file contents and extracted contracts.

One cache lives for exactly one orchestrator run and is cleared when the
run ends, so nothing leaks between runs.
"""

import hashlib
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Tuple

from contracts import ContractRole, ExtractionError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedSource:
    """A file's decoded text and the digest of its bytes."""
    path: Path
    digest: str
    text: str
    size: int


class RunCache:
    """Reads each file once per run and memoizes contracts by (path, sha256, role)."""

    def __init__(self, max_file_bytes: int):
        self.max_file_bytes = max_file_bytes
        self._sources: Dict[Path, CachedSource] = {}
        self._contracts: Dict[Tuple[str, str, ContractRole], List] = {}
        self._path_locks: Dict[Path, threading.Lock] = {}
        self._lock = threading.Lock()
        self.reads = 0
        self.hits = 0

    def read(self, path: Path) -> CachedSource:
        """Read and hash a file, at most once per run.

        Raises:
            ExtractionError: If the file is unreadable or larger than max_file_bytes
        """
        with self._lock:
            path_lock = self._path_locks.setdefault(path, threading.Lock())

        with path_lock:
            cached = self._sources.get(path)
            if cached is not None:
                self.hits += 1
                return cached

            try:
                size = path.stat().st_size
                if size > self.max_file_bytes:
                    raise ExtractionError(
                        f"File is {size} bytes, above the {self.max_file_bytes} byte limit",
                        file_path=str(path),
                    )
                blob = path.read_bytes()
            except OSError as e:
                raise ExtractionError(f"Cannot read file: {e}", file_path=str(path)) from e

            cached = CachedSource(
                path=path,
                digest=hashlib.sha256(blob).hexdigest(),
                text=blob.decode("utf-8", errors="replace"),
                size=len(blob),
            )
            self.reads += 1
            self._sources[path] = cached
            return cached

    def contracts(self, source: CachedSource, role: ContractRole, extract: Callable[[], List]) -> List:
        """Contracts for (file, role), computing them with extract() on first use."""
        key = (str(source.path), source.digest, role)
        with self._lock:
            if key in self._contracts:
                self.hits += 1
                return self._contracts[key]
        contracts = extract()
        with self._lock:
            return self._contracts.setdefault(key, contracts)

    def clear(self) -> None:
        """Discard everything; called when the run ends."""
        with self._lock:
            logger.debug("Clearing run cache: %d read(s), %d hit(s)", self.reads, self.hits)
            self._sources.clear()
            self._contracts.clear()
            self._path_locks.clear()

    def __len__(self) -> int:
        return len(self._sources)

    def __enter__(self) -> "RunCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()
