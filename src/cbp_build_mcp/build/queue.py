"""Build queue - ordered, deduplicated, persisted selection of targets.

The queue is a subset of the catalog (every ``*.cbp`` found in the workspace).
Its state is written to the store after every mutation:

    {"order": [path, ...], "checked": {path: bool}, "outputDirs": {path: str}}
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol, Union

logger = logging.getLogger(__name__)


def normalize_target_path(path: str) -> str:
    """Identity of a target: its absolute, normalized path."""
    return os.path.normpath(os.path.abspath(path))


@dataclass
class BuildTarget:
    """A project descriptor queued for conversion and build."""

    path: str
    checked: bool = True
    output_dir: str | None = None

    def __post_init__(self) -> None:
        self.path = normalize_target_path(self.path)

    @property
    def name(self) -> str:
        """Display name: file name without extension."""
        return os.path.splitext(os.path.basename(self.path))[0]

    @property
    def directory(self) -> str:
        """Directory containing the descriptor."""
        return os.path.dirname(self.path)

    @property
    def folder(self) -> str:
        """Containing-folder label."""
        return os.path.basename(self.directory)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "path": self.path,
            "name": self.name,
            "folder": self.folder,
            "checked": self.checked,
        }
        if self.output_dir:
            result["outputDir"] = self.output_dir
        return result


TargetRef = Union[BuildTarget, str]


def _ref_path(ref: TargetRef) -> str:
    return ref.path if isinstance(ref, BuildTarget) else normalize_target_path(ref)


@dataclass
class QueueState:
    """Persisted queue state."""

    order: list[str] = field(default_factory=list)
    checked: dict[str, bool] = field(default_factory=dict)
    output_dirs: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": list(self.order),
            "checked": dict(self.checked),
            "outputDirs": dict(self.output_dirs),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QueueState:
        order = [p for p in data.get("order", []) if isinstance(p, str)]
        checked = {
            k: bool(v) for k, v in (data.get("checked") or {}).items() if isinstance(k, str)
        }
        output_dirs = {
            k: str(v) for k, v in (data.get("outputDirs") or {}).items() if isinstance(k, str)
        }
        return cls(order=order, checked=checked, output_dirs=output_dirs)


class QueueStore(Protocol):
    """Storage for QueueState."""

    def load(self) -> QueueState | None: ...

    def save(self, state: QueueState) -> None: ...


class MemoryQueueStore:
    """Keeps the state in memory; counts saves."""

    def __init__(self, state: QueueState | None = None):
        self.state = state
        self.save_count = 0

    def load(self) -> QueueState | None:
        return self.state

    def save(self, state: QueueState) -> None:
        self.state = QueueState.from_dict(state.to_dict())
        self.save_count += 1


class JsonQueueStore:
    """JSON file store. Writes go to a temp file that replaces the target."""

    def __init__(self, path: str):
        self.path = os.path.abspath(path)

    def load(self) -> QueueState | None:
        if not os.path.isfile(self.path):
            return None
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Failed to read queue state {self.path}: {e}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed queue state in {self.path}")
            return None
        return QueueState.from_dict(data)

    def save(self, state: QueueState) -> None:
        directory = os.path.dirname(self.path)
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".queue-", suffix=".json", dir=directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(state.to_dict(), f, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise


class QueueError(ValueError):
    """Invalid queue operation."""


class BuildQueue:
    """Ordered build queue.

    All mutation goes through these methods so the store and change listeners
    stay in sync with the in-memory list.
    """

    def __init__(self, store: QueueStore | None = None):
        self._store: QueueStore = store or MemoryQueueStore()
        self._items: list[BuildTarget] = []
        self._catalog: list[str] | None = None
        self._listeners: list[Callable[[], None]] = []
        self._load()

    def _load(self) -> None:
        state = self._store.load()
        if state is None:
            return
        seen: set[str] = set()
        for raw in state.order:
            path = normalize_target_path(raw)
            if path in seen:
                continue
            seen.add(path)
            self._items.append(
                BuildTarget(
                    path=path,
                    checked=state.checked.get(raw, True),
                    output_dir=state.output_dirs.get(raw),
                )
            )
        logger.debug(f"Loaded {len(self._items)} queued targets")

    def _snapshot(self) -> QueueState:
        state = QueueState()
        for item in self._items:
            state.order.append(item.path)
            state.checked[item.path] = item.checked
            if item.output_dir:
                state.output_dirs[item.path] = item.output_dir
        return state

    def _save(self) -> None:
        self._store.save(self._snapshot())

    def _notify(self) -> None:
        for listener in self._listeners:
            try:
                listener()
            except Exception:
                logger.exception("Queue listener error")

    def on_change(self, listener: Callable[[], None]) -> None:
        """Register a listener fired after membership or order changes."""
        self._listeners.append(listener)

    @property
    def items(self) -> list[BuildTarget]:
        """Queued targets in build order (copy of the list)."""
        return list(self._items)

    @property
    def paths(self) -> list[str]:
        return [item.path for item in self._items]

    @property
    def catalog(self) -> list[str] | None:
        """Last observed catalog, None before the first scan."""
        return list(self._catalog) if self._catalog is not None else None

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, ref: object) -> bool:
        if not isinstance(ref, (BuildTarget, str)):
            return False
        return self.get(ref) is not None

    def get(self, ref: TargetRef) -> BuildTarget | None:
        """Find a queued target by path or target."""
        path = _ref_path(ref)
        for item in self._items:
            if item.path == path:
                return item
        return None

    def _require(self, ref: TargetRef) -> BuildTarget:
        item = self.get(ref)
        if item is None:
            raise QueueError(f"Not in build queue: {_ref_path(ref)}")
        return item

    def checked_items(self) -> list[BuildTarget]:
        """Checked targets in queue order."""
        return [item for item in self._items if item.checked]

    def available(self) -> list[str]:
        """Catalog entries not yet queued, in catalog order."""
        if self._catalog is None:
            return []
        queued = set(self.paths)
        return [p for p in self._catalog if p not in queued]

    def add(self, paths: Iterable[str]) -> int:
        """Append paths not already queued.

        Returns:
            Number of targets added; 0 means nothing was saved or notified
        """
        queued = set(self.paths)
        catalog = set(self._catalog) if self._catalog is not None else None
        added = 0
        for raw in paths:
            path = normalize_target_path(raw)
            if path in queued:
                continue
            if catalog is not None and path not in catalog:
                logger.warning(f"Not adding {path}: not in project catalog")
                continue
            self._items.append(BuildTarget(path=path))
            queued.add(path)
            added += 1

        if added:
            self._save()
            self._notify()
        return added

    def remove(self, items: Iterable[TargetRef]) -> int:
        """Remove every target whose path matches.

        Returns:
            Number of targets removed
        """
        to_remove = {_ref_path(ref) for ref in items}
        before = len(self._items)
        self._items = [item for item in self._items if item.path not in to_remove]
        self._save()
        self._notify()
        return before - len(self._items)

    def move(self, source_items: Iterable[TargetRef], target: TargetRef) -> bool:
        """Move targets as a block to the position of ``target``.

        The sources are removed first; the block is inserted at the index the
        target has after that removal, in the order the sources were given.

        Returns:
            False (and nothing changes) if ``target`` is not queued
        """
        target_path = _ref_path(target)
        if self.get(target_path) is None:
            return False

        moving: list[BuildTarget] = []
        for ref in source_items:
            item = self.get(ref)
            if item is not None and item not in moving:
                moving.append(item)
        source_paths = {item.path for item in moving}
        remaining = [item for item in self._items if item.path not in source_paths]

        insert_at = next(
            (i for i, item in enumerate(remaining) if item.path == target_path),
            len(remaining),
        )
        self._items = remaining[:insert_at] + moving + remaining[insert_at:]
        self._save()
        self._notify()
        return True

    def set_checked(self, item: TargetRef, checked: bool) -> None:
        """Set whether a target takes part in the next build."""
        self._require(item).checked = bool(checked)
        self._save()

    def set_output_dir(self, item: TargetRef, output_dir: str | None) -> None:
        """Set the ``{outputDir}`` used for a target; None restores the default."""
        self._require(item).output_dir = output_dir or None
        self._save()
        self._notify()

    def prune_to_catalog(self, catalog: Iterable[str]) -> list[str]:
        """Record a fresh catalog and drop queued targets no longer in it.

        Returns:
            Paths that were removed
        """
        self._catalog = [normalize_target_path(p) for p in catalog]
        present = set(self._catalog)
        removed = [item.path for item in self._items if item.path not in present]
        if removed:
            self._items = [item for item in self._items if item.path in present]
            logger.info(f"Pruned {len(removed)} targets missing from catalog")
            self._save()
        self._notify()
        return removed

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "queue": [item.to_dict() for item in self._items],
            "available": self.available(),
        }
