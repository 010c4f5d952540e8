"""Startup configuration shared by the builder, watcher and server."""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

DOCUMENT_SUFFIX = ".md"
ROOT_SENTINEL = "index.md"
INDEX_FILE = "index.html"
OUTPUT_SUFFIX = "-build"
DEFAULT_CONTENT_DIR = "./content"
DEFAULT_PORT = 8000
EVENT_QUEUE_SIZE = 256


def default_output_root(source_root: Path) -> Path:
    """Return the fixed sibling output directory for ``source_root``."""
    return source_root.parent / f"{source_root.name}{OUTPUT_SUFFIX}"


@dataclass(frozen=True)
class SiteConfig:
    """Immutable settings constructed once in ``main``."""

    source_root: Path
    output_root: Path
    working_dir: Path
    port: int = DEFAULT_PORT
    debug: bool = False
    watch: bool = True
    serve: bool = True

    @classmethod
    def from_args(cls, args: argparse.Namespace, working_dir: Optional[Path] = None) -> "SiteConfig":
        wd = (working_dir or Path.cwd()).resolve()
        content = Path(args.content).expanduser()
        if not content.is_absolute():
            content = wd / content
        source_root = content.resolve()
        return cls(
            source_root=source_root,
            output_root=default_output_root(source_root),
            working_dir=wd,
            debug=bool(args.debug),
            watch=not (args.no_watch or args.build_only),
            serve=not args.build_only,
        )
