"""Full and incremental builds of the output tree.

Every operation here is scoped to one document: failures are logged and
reported through the return value, never raised to the caller, so one bad
document cannot stop a full build or the watch loop. The only exception is
``full_build`` failing to recreate the output root, which is fatal.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Optional

from mdmirror.config import INDEX_FILE, SiteConfig
from mdmirror.errors import BuildError, DocumentError, FatalSetupError, RenderError, ScopeError
from mdmirror.paths import PathLike, PathMapper, discover_documents
from mdmirror.render import render

logger = logging.getLogger(__name__)

Renderer = Callable[[bytes], bytes]


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_atomic(target: Path, data: bytes) -> None:
    """Write ``data`` to ``target`` through a temporary sibling file.

    The file gets the mode a plain create would give it, not mkstemp's 0600.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=target.parent)
    try:
        os.chmod(tmp_name, _default_file_mode())
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_name, target)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class BuildOrchestrator:
    """Single source of truth for building, removing and moving output units."""

    def __init__(self, config: SiteConfig, renderer: Renderer = render, mapper: Optional[PathMapper] = None):
        self.config = config
        self.renderer = renderer
        self.mapper = mapper or PathMapper(config)

    @property
    def output_root(self) -> Path:
        return self.config.output_root

    # -- full build --
    def full_build(self) -> int:
        """Wipe and rebuild the output root. Returns the number of units written."""
        logger.info("Building content from %s into %s", self.config.source_root, self.output_root)
        try:
            if self.output_root.exists():
                shutil.rmtree(self.output_root)
            self.output_root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise FatalSetupError(f"Failed to create build directory {self.output_root}: {exc}") from exc

        built = failed = 0
        for path in discover_documents(self.config.source_root):
            if self.build_one(path):
                built += 1
            else:
                failed += 1
        if failed:
            logger.warning("Built %d documents, %d failed", built, failed)
        else:
            logger.info("Built %d documents", built)
        return built

    # -- single documents --
    def build_one(self, source_path: PathLike) -> bool:
        """Render one document into its output unit, overwriting prior output."""
        logger.debug("Building %s", source_path)
        try:
            output_dir = self.mapper.to_output_dir(source_path)
            try:
                content = self.mapper.to_absolute(source_path).read_bytes()
            except OSError as exc:
                raise DocumentError(source_path, f"Failed to read content file ({exc.strerror or exc})") from exc
            try:
                rendered = self.renderer(content)
            except RenderError as exc:
                raise RenderError(source_path, exc.reason) from exc
            except Exception as exc:
                raise RenderError(source_path, f"Failed to render ({exc})") from exc
            try:
                output_dir.mkdir(parents=True, exist_ok=True)
                write_atomic(output_dir / INDEX_FILE, rendered)
            except OSError as exc:
                raise DocumentError(source_path, f"Failed to write index file ({exc.strerror or exc})") from exc
        except BuildError as exc:
            logger.error("%s", exc)
            return False
        return True

    def remove_one(self, source_path: PathLike) -> bool:
        """Remove the unit's index file; the janitor prunes the directory after.

        Only the index file goes: the unit directory may also contain the
        units of documents nested under a folder with the same name.
        """
        logger.debug("Removing %s", source_path)
        try:
            index_file = self.mapper.index_file(source_path)
            try:
                index_file.unlink()
            except FileNotFoundError:
                logger.debug("No build output for %s", source_path)
            except OSError as exc:
                raise DocumentError(source_path, f"Failed to remove build ({exc.strerror or exc})") from exc
        except BuildError as exc:
            logger.error("%s", exc)
            return False
        return True

    def move_one(self, old_source_path: PathLike, new_source_path: PathLike) -> bool:
        """Relocate rendered output without re-rendering.

        Falls back to a fresh build when the old unit has no output, e.g. a
        rename notification for a file that was never built.
        """
        logger.debug("Moving %s -> %s", old_source_path, new_source_path)
        try:
            new_dir = self.mapper.to_output_dir(new_source_path)
            try:
                old_index: Optional[Path] = self.mapper.index_file(old_source_path)
            except ScopeError:
                # moved in from outside the source root
                old_index = None
            if old_index is None or not old_index.is_file():
                logger.debug("No build output for %s, building %s", old_source_path, new_source_path)
                return self.build_one(new_source_path)
            try:
                new_dir.mkdir(parents=True, exist_ok=True)
                os.replace(old_index, new_dir / INDEX_FILE)
            except OSError as exc:
                raise DocumentError(old_source_path, f"Failed to move build path ({exc.strerror or exc})") from exc
        except BuildError as exc:
            logger.error("%s", exc)
            return False
        return True

    def remove_tree(self, source_dir: PathLike) -> bool:
        """Drop the units of every document that lived under ``source_dir``.

        Used when a whole folder leaves the tree and no per-file events
        arrive. The folder's output directory may also hold the unit of the
        sibling document with the same name (``guide.md``), so only its
        subdirectories are removed.
        """
        logger.debug("Removing folder %s", source_dir)
        try:
            subtree = self.mapper.to_output_subtree(source_dir)
            if not subtree.is_dir():
                logger.debug("No build output for %s", source_dir)
                return True
            try:
                for child in subtree.iterdir():
                    if child.is_dir() and not child.is_symlink():
                        shutil.rmtree(child)
            except OSError as exc:
                raise DocumentError(source_dir, f"Failed to remove build ({exc.strerror or exc})") from exc
        except BuildError as exc:
            logger.error("%s", exc)
            return False
        return True
