from __future__ import annotations

from pathlib import Path
from typing import Dict, List

import pytest

from mdmirror.builder import BuildOrchestrator
from mdmirror.config import SiteConfig, default_output_root


class CountingRenderer:
    """Deterministic stand-in for the markdown renderer."""

    def __init__(self) -> None:
        self.calls: List[bytes] = []
        self.fail_on: Dict[bytes, Exception] = {}

    def __call__(self, content: bytes) -> bytes:
        self.calls.append(content)
        if content in self.fail_on:
            raise self.fail_on[content]
        return b"<p>" + content + b"</p>"


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture
def config(tmp_path: Path) -> SiteConfig:
    source_root = (tmp_path / "content").resolve()
    source_root.mkdir()
    return SiteConfig(
        source_root=source_root,
        output_root=default_output_root(source_root),
        working_dir=tmp_path.resolve(),
    )


@pytest.fixture
def renderer() -> CountingRenderer:
    return CountingRenderer()


@pytest.fixture
def orchestrator(config: SiteConfig, renderer: CountingRenderer) -> BuildOrchestrator:
    return BuildOrchestrator(config, renderer=renderer)


def all_dirs(root: Path) -> List[Path]:
    return [p for p in root.rglob("*") if p.is_dir()]
