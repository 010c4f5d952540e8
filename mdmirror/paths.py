"""Source/output path mapping and document discovery.

Each document ``<source>/a/b.md`` owns the directory ``<output>/a/b`` with a
single ``index.html`` inside. The root ``index.md`` maps to the output root.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Union

from mdmirror.config import DOCUMENT_SUFFIX, INDEX_FILE, ROOT_SENTINEL, SiteConfig
from mdmirror.errors import OutOfScopeError

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]


def is_markdown_name(name: PathLike) -> bool:
    """Case-sensitive check for the ``.md`` suffix."""
    return os.fspath(name).endswith(DOCUMENT_SUFFIX)


def strip_document_suffix(name: str) -> str:
    if name.endswith(DOCUMENT_SUFFIX):
        return name[: -len(DOCUMENT_SUFFIX)]
    return name


class PathMapper:
    """Pure translation between source documents and their output directories."""

    def __init__(self, config: SiteConfig):
        self.source_root = config.source_root
        self.output_root = config.output_root
        self.working_dir = config.working_dir

    def to_absolute(self, source_path: PathLike) -> Path:
        """Anchor a relative path at the process working directory."""
        path = Path(source_path)
        if not path.is_absolute():
            path = self.working_dir / path
        return path

    def to_relative(self, source_path: PathLike) -> Path:
        """Normalize ``source_path`` to a path relative to the source root."""
        path = Path(os.path.normpath(self.to_absolute(source_path)))
        # only the parent is resolved: a symlinked document keeps its own name
        resolved = path.parent.resolve() / path.name
        try:
            rel = resolved.relative_to(self.source_root)
        except ValueError:
            raise OutOfScopeError(source_path, self.source_root) from None
        if rel == Path("."):
            raise OutOfScopeError(source_path, self.source_root)
        return rel

    def to_output_dir(self, source_path: PathLike) -> Path:
        rel = self.to_relative(source_path)
        # root index.md -> output root itself
        if rel.as_posix() == ROOT_SENTINEL:
            return self.output_root
        return self.output_root / rel.parent / strip_document_suffix(rel.name)

    def index_file(self, source_path: PathLike) -> Path:
        return self.to_output_dir(source_path) / INDEX_FILE

    def to_output_subtree(self, source_dir: PathLike) -> Path:
        """Return the output directory that holds the units of documents under ``source_dir``."""
        return self.output_root / self.to_relative(source_dir)


def discover_documents(source_root: Path) -> Iterator[Path]:
    """Yield every ``.md`` file under ``source_root`` in a stable order."""
    def _on_error(exc: OSError) -> None:
        # keep walking elsewhere
        logger.error("Failed to access %s: %s", exc.filename, exc)

    for dirpath, dirnames, filenames in os.walk(source_root, onerror=_on_error):
        dirnames.sort()
        for fname in sorted(filenames):
            if not is_markdown_name(fname):
                continue
            path = Path(dirpath) / fname
            logger.debug("Found document %s", path)
            yield path
