"""Prune directories left empty in the output tree."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from mdmirror.errors import is_benign_cleanup_error

logger = logging.getLogger(__name__)


def prune_empty(root: Path) -> int:
    """Remove every empty directory below ``root``, deepest first.

    The walk is bottom-up, so a parent emptied by removing its last child is
    visited afterwards and removed in the same pass. ``root`` itself is kept.
    Returns the number of directories removed.
    """
    removed = 0
    if not root.is_dir():
        return removed
    for dirpath, _dirnames, _filenames in os.walk(root, topdown=False):
        path = Path(dirpath)
        if path == root:
            continue
        try:
            path.rmdir()
        except FileNotFoundError:
            continue
        except OSError as exc:
            if not is_benign_cleanup_error(exc):
                logger.warning("Failed to clean empty directory %s: %s", path, exc)
            continue
        removed += 1
        logger.debug("Pruned %s", path)
    return removed
