"""Watch the source tree and replay changes onto the output tree.

watchdog delivers notifications on its observer thread. ``SourceEventHandler``
turns them into ``ChangeEvent`` values and puts them on a bounded queue; the
``WatchDispatcher`` loop drains that queue one item at a time, in arrival
order, so no two rebuilds ever touch the output tree at once.
"""

from __future__ import annotations

import enum
import logging
import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from mdmirror.builder import BuildOrchestrator
from mdmirror.config import EVENT_QUEUE_SIZE, SiteConfig
from mdmirror.errors import FatalSetupError, ScopeError
from mdmirror.janitor import prune_empty
from mdmirror.paths import is_markdown_name

logger = logging.getLogger(__name__)


class ChangeKind(enum.Enum):
    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    MOVED = "moved"
    FOLDER_REMOVED = "folder removed"
    FOLDER_MOVED = "folder moved"


@dataclass(frozen=True)
class ChangeEvent:
    """One source change. ``old_path`` is set only for moves."""

    kind: ChangeKind
    path: Path
    old_path: Optional[Path] = None


class WatchState(enum.Enum):
    IDLE = "idle"
    WATCHING = "watching"
    DISPATCHING = "dispatching"
    CLOSED = "closed"


# queue items: a change, an error raised while translating a notification,
# or the close sentinel
ChannelItem = Union[ChangeEvent, Exception, None]
_CLOSE = None


def _to_path(path: Union[str, bytes]) -> Path:
    if isinstance(path, bytes):
        return Path(path.decode("utf-8", errors="surrogateescape"))
    return Path(path)


class SourceEventHandler(FileSystemEventHandler):
    """Classify watchdog events for ``.md`` files and queue them."""

    def __init__(self, channel: "queue.Queue[ChannelItem]"):
        super().__init__()
        self.channel = channel

    def _queue(self, kind: ChangeKind, path: Path, old_path: Optional[Path] = None) -> None:
        # blocks when the queue is full
        self.channel.put(ChangeEvent(kind, path, old_path))

    def _single(self, kind: ChangeKind, event: FileSystemEvent) -> None:
        try:
            src = _to_path(event.src_path)
        except Exception as exc:
            self.channel.put(exc)
            return
        if event.is_directory:
            # a folder moved out of the tree arrives as one delete, with no
            # per-file events
            if kind is ChangeKind.REMOVED:
                self._queue(ChangeKind.FOLDER_REMOVED, src)
            return
        if is_markdown_name(src.name):
            self._queue(kind, src)

    def on_created(self, event: FileSystemEvent) -> None:
        self._single(ChangeKind.CREATED, event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._single(ChangeKind.MODIFIED, event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._single(ChangeKind.REMOVED, event)

    def on_moved(self, event: FileSystemEvent) -> None:
        try:
            src = _to_path(event.src_path)
            dest = _to_path(event.dest_path) if event.dest_path else None
        except Exception as exc:
            self.channel.put(exc)
            return

        if event.is_directory:
            # moves inside the tree also produce one moved event per file
            if dest is None:
                self._queue(ChangeKind.FOLDER_REMOVED, src)
            else:
                self._queue(ChangeKind.FOLDER_MOVED, dest, src)
            return
        if dest is None:
            if is_markdown_name(src.name):
                self._queue(ChangeKind.REMOVED, src)
            return

        src_is_md = is_markdown_name(src.name)
        dest_is_md = is_markdown_name(dest.name)
        if src_is_md and dest_is_md:
            self._queue(ChangeKind.MOVED, dest, src)
        elif src_is_md:
            self._queue(ChangeKind.REMOVED, src)
        elif dest_is_md:
            # editors that save through a temporary file end up here
            self._queue(ChangeKind.CREATED, dest)


class WatchDispatcher:
    """Event loop: Idle -> Watching -> Dispatching -> Watching ... -> Closed."""

    def __init__(
        self,
        config: SiteConfig,
        orchestrator: BuildOrchestrator,
        janitor: Callable[[Path], int] = prune_empty,
        channel: "Optional[queue.Queue[ChannelItem]]" = None,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        self.config = config
        self.orchestrator = orchestrator
        self.janitor = janitor
        self.channel: "queue.Queue[ChannelItem]" = channel if channel is not None else queue.Queue(maxsize=EVENT_QUEUE_SIZE)
        self.handler = SourceEventHandler(self.channel)
        self._observer_factory = observer_factory
        self._observer: Optional[Observer] = None
        self._closing = threading.Event()
        self.state = WatchState.IDLE

    def start(self) -> None:
        """Subscribe to recursive notifications on the source root."""
        logger.debug("Watching %s for changes", self.config.source_root)
        observer = self._observer_factory()
        try:
            observer.schedule(self.handler, str(self.config.source_root), recursive=True)
            observer.start()
        except OSError as exc:
            raise FatalSetupError(f"Failed to watch content directory {self.config.source_root}: {exc}") from exc
        self._observer = observer
        self.state = WatchState.WATCHING

    def dispatch(self, event: ChangeEvent) -> None:
        """Apply one change to the output tree."""
        self.state = WatchState.DISPATCHING
        try:
            logger.info("%s %s", event.kind.value.capitalize(), event.path)
            if event.kind in (ChangeKind.CREATED, ChangeKind.MODIFIED):
                self.orchestrator.build_one(event.path)
            elif event.kind is ChangeKind.REMOVED:
                self.orchestrator.remove_one(event.path)
                self.janitor(self.orchestrator.output_root)
            elif event.kind is ChangeKind.MOVED and event.old_path is not None:
                self.orchestrator.move_one(event.old_path, event.path)
                self.janitor(self.orchestrator.output_root)
            elif event.kind is ChangeKind.FOLDER_REMOVED:
                self.orchestrator.remove_tree(event.path)
                self.janitor(self.orchestrator.output_root)
            elif event.kind is ChangeKind.FOLDER_MOVED and event.old_path is not None:
                if self._in_tree(event.path):
                    logger.debug("Folder move handled through its file events")
                else:
                    self.orchestrator.remove_tree(event.old_path)
                    self.janitor(self.orchestrator.output_root)
            else:
                logger.debug("Unknown event type %r", event)
        finally:
            self.state = WatchState.WATCHING

    def _in_tree(self, path: Path) -> bool:
        try:
            self.orchestrator.mapper.to_relative(path)
        except ScopeError:
            return False
        return True

    def run(self) -> None:
        """Process queued changes until ``close`` is called."""
        if self.state is WatchState.IDLE:
            self.state = WatchState.WATCHING
        try:
            while True:
                item = self.channel.get()
                if item is _CLOSE:
                    break
                if isinstance(item, ChangeEvent):
                    try:
                        self.dispatch(item)
                    except Exception:
                        logger.exception("Failed to handle %s", item)
                elif isinstance(item, Exception):
                    logger.error("Watcher error: %s", item)
                else:
                    logger.debug("Unknown event type %r", item)
                # close() found the queue full and could not enqueue the sentinel
                if self._closing.is_set() and self.channel.empty():
                    break
        finally:
            self.state = WatchState.CLOSED
            logger.debug("Watcher closed")

    def close(self) -> None:
        """Stop the subscription and let ``run`` drain to Closed."""
        self._closing.set()
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        try:
            self.channel.put_nowait(_CLOSE)
        except queue.Full:
            pass
        if self.state is WatchState.IDLE:
            self.state = WatchState.CLOSED
