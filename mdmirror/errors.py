"""Error taxonomy for the build engine.

Only ``FatalSetupError`` is allowed to end the process. Everything else is
scoped to a single document and is logged by whoever catches it.
"""

from __future__ import annotations

import errno


class BuildError(Exception):
    """Base class for build engine errors."""


class FatalSetupError(BuildError):
    """Output root, watch subscription or HTTP bind could not be set up."""


class ScopeError(BuildError):
    """A path cannot be related to the configured roots."""


class OutOfScopeError(ScopeError):
    """A source path does not live under the source root."""

    def __init__(self, path: object, root: object):
        super().__init__(f"{path} is not inside {root}")
        self.path = path
        self.root = root


class DocumentError(BuildError):
    """Reading, writing or removing one document's output failed."""

    def __init__(self, path: object, reason: str):
        super().__init__(reason if path is None else f"{reason}: {path}")
        self.path = path
        self.reason = reason


class RenderError(DocumentError):
    """The renderer rejected a document."""


# some platforms (Solaris, AIX) report rmdir on a non-empty directory as EEXIST
_BENIGN_ERRNOS = {errno.ENOTEMPTY, errno.EEXIST}


def is_benign_cleanup_error(exc: OSError) -> bool:
    """Return True for the "directory not empty" failure expected while pruning."""
    return exc.errno in _BENIGN_ERRNOS
