"""
Generation Session Store - remembers generated variants until one is published

Maps every branded filename to the prompt that produced it and to its sibling
batch. The store is in-memory only: a restart forgets every batch and clients
must generate again.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from threading import Lock
from typing import Callable, Dict, Iterable, List, Optional

from origin_backend.core.errors import AssetNotFound, PublishInProgress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionEntry:
    """A generated variant as seen by the publisher"""

    filename: str
    prompt: str
    batch_id: str
    siblings: List[str]


@dataclass
class _Batch:
    prompt: str
    filenames: List[str]
    created_at: float
    publishing: bool = False


@dataclass
class GenerationSessionStore:
    """
    Thread-safe filename -> {prompt, batch} mapping.

    Entries are written once per batch and removed once, either when a
    variant of the batch is published or when the batch outlives ``ttl_seconds``
    (``0`` disables expiry).
    """

    ttl_seconds: float = 3600
    clock: Callable[[], float] = time.monotonic
    _batches: Dict[str, _Batch] = field(default_factory=dict, init=False, repr=False)
    _by_filename: Dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _lock: Lock = field(default_factory=Lock, init=False, repr=False)

    def register_batch(self, prompt: str, filenames: Iterable[str]) -> str:
        filenames = list(filenames)
        batch_id = uuid.uuid4().hex
        with self._lock:
            self._batches[batch_id] = _Batch(
                prompt=prompt, filenames=filenames, created_at=self.clock()
            )
            for filename in filenames:
                self._by_filename[filename] = batch_id
        logger.debug("Registered batch %s with %d variants", batch_id, len(filenames))
        return batch_id

    def get(self, filename: str) -> SessionEntry:
        with self._lock:
            return self._entry(filename)

    def claim(self, filename: str) -> SessionEntry:
        """Reserve the batch of ``filename`` for a publish attempt."""
        with self._lock:
            entry = self._entry(filename)
            batch = self._batches[entry.batch_id]
            if batch.publishing:
                raise PublishInProgress(
                    "A variant of this batch is already being published"
                )
            batch.publishing = True
            return entry

    def release(self, filename: str) -> None:
        """Give a claimed batch back after a failed publish attempt."""
        with self._lock:
            batch_id = self._by_filename.get(filename)
            if batch_id is not None:
                self._batches[batch_id].publishing = False

    def discard_batch(self, filename: str) -> List[str]:
        """Forget every variant in the batch of ``filename``; returns their names."""
        with self._lock:
            batch_id = self._by_filename.get(filename)
            if batch_id is None:
                return []
            return self._drop(batch_id)

    def sweep_expired(self, now: Optional[float] = None) -> List[str]:
        """Drop batches older than the TTL that are not being published."""
        if not self.ttl_seconds:
            return []
        now = self.clock() if now is None else now
        removed: List[str] = []
        with self._lock:
            expired = [
                batch_id
                for batch_id, batch in self._batches.items()
                if not batch.publishing and now - batch.created_at >= self.ttl_seconds
            ]
            for batch_id in expired:
                removed.extend(self._drop(batch_id))
        if removed:
            logger.info("Expired %d unpublished variants", len(removed))
        return removed

    def clear(self) -> None:
        with self._lock:
            self._batches.clear()
            self._by_filename.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_filename)

    def __contains__(self, filename: object) -> bool:
        with self._lock:
            return filename in self._by_filename

    # Callers must hold the lock
    def _entry(self, filename: str) -> SessionEntry:
        batch_id = self._by_filename.get(filename)
        if batch_id is None:
            raise AssetNotFound(
                "Image not found in generation cache",
                detail="The session may have expired or the image was already published",
            )
        batch = self._batches[batch_id]
        return SessionEntry(
            filename=filename,
            prompt=batch.prompt,
            batch_id=batch_id,
            siblings=list(batch.filenames),
        )

    def _drop(self, batch_id: str) -> List[str]:
        batch = self._batches.pop(batch_id)
        for name in batch.filenames:
            self._by_filename.pop(name, None)
        return list(batch.filenames)


def delete_files(directory: Path, filenames: Iterable[str]) -> None:
    """Remove generated files, ignoring ones that are already gone."""
    for name in filenames:
        path = directory / name
        try:
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Could not delete %s: %s", path, exc)
