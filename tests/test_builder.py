from __future__ import annotations

import logging
import os
import stat
from pathlib import Path

import pytest

from mdmirror.builder import BuildOrchestrator
from mdmirror.config import SiteConfig
from mdmirror.errors import FatalSetupError, RenderError
from mdmirror.janitor import prune_empty

from tests.conftest import CountingRenderer, all_dirs, write


def test_full_build_scenario(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    write(config.source_root / "index.md", "home")
    write(config.source_root / "guide" / "intro.md", "intro")

    assert orchestrator.full_build() == 2

    out = config.output_root
    assert (out / "index.html").read_bytes() == b"<p>home</p>"
    assert (out / "guide" / "intro" / "index.html").read_bytes() == b"<p>intro</p>"


def test_full_build_produces_one_unit_per_document(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    docs = ["index.md", "about.md", "guide/intro.md", "guide/setup/linux.md", "guide/index.md"]
    for rel in docs:
        write(config.source_root / rel, rel)
    write(config.source_root / "guide" / "logo.png", "png")

    orchestrator.full_build()

    index_files = sorted(p.relative_to(config.output_root).as_posix() for p in config.output_root.rglob("index.html"))
    assert index_files == sorted(
        [
            "index.html",
            "about/index.html",
            "guide/intro/index.html",
            "guide/setup/linux/index.html",
            "guide/index/index.html",
        ]
    )
    assert (config.output_root / "guide" / "setup" / "linux" / "index.html").read_bytes() == b"<p>guide/setup/linux.md</p>"


def test_full_build_wipes_stale_output(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    write(config.output_root / "old" / "index.html", "stale")
    write(config.source_root / "new.md", "new")

    orchestrator.full_build()

    assert not (config.output_root / "old").exists()
    assert (config.output_root / "new" / "index.html").exists()


def test_full_build_continues_past_a_failing_document(
    config: SiteConfig, orchestrator: BuildOrchestrator, renderer: CountingRenderer, caplog: pytest.LogCaptureFixture
) -> None:
    write(config.source_root / "a.md", "a")
    write(config.source_root / "b.md", "broken")
    write(config.source_root / "c.md", "c")
    renderer.fail_on[b"broken"] = RenderError(None, "Invalid front matter")

    with caplog.at_level(logging.ERROR, logger="mdmirror.builder"):
        assert orchestrator.full_build() == 2

    assert (config.output_root / "a" / "index.html").exists()
    assert not (config.output_root / "b").exists()
    assert (config.output_root / "c" / "index.html").exists()
    assert "Invalid front matter" in caplog.text
    assert "b.md" in caplog.text


def test_full_build_fails_when_output_root_cannot_be_created(tmp_path: Path, renderer: CountingRenderer) -> None:
    source_root = (tmp_path / "content").resolve()
    source_root.mkdir()
    blocker = write(tmp_path / "blocker", "a file, not a directory")
    config = SiteConfig(source_root=source_root, output_root=blocker / "out", working_dir=tmp_path)

    with pytest.raises(FatalSetupError):
        BuildOrchestrator(config, renderer=renderer).full_build()


def test_rebuilding_unchanged_document_is_byte_identical(config: SiteConfig) -> None:
    # real markdown renderer
    orchestrator = BuildOrchestrator(config)
    source = write(config.source_root / "guide" / "intro.md", "---\ntitle: Intro\n---\n# Intro\n\n- one\n- two\n")
    target = config.output_root / "guide" / "intro" / "index.html"

    assert orchestrator.build_one(source)
    first = target.read_bytes()
    assert orchestrator.build_one(source)

    assert target.read_bytes() == first


def test_build_one_creates_missing_intermediate_directories(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    config.output_root.mkdir()
    source = write(config.source_root / "a" / "b" / "c.md", "deep")

    assert orchestrator.build_one(source)

    assert (config.output_root / "a" / "b" / "c" / "index.html").read_bytes() == b"<p>deep</p>"


def test_build_one_accepts_paths_relative_to_working_dir(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    write(config.source_root / "page.md", "rel")

    assert orchestrator.build_one(Path("content") / "page.md")

    assert (config.output_root / "page" / "index.html").read_bytes() == b"<p>rel</p>"


def test_failed_incremental_build_keeps_prior_output(
    config: SiteConfig, orchestrator: BuildOrchestrator, renderer: CountingRenderer
) -> None:
    source = write(config.source_root / "page.md", "v1")
    orchestrator.build_one(source)
    target = config.output_root / "page" / "index.html"

    source.write_text("v2", encoding="utf-8")
    renderer.fail_on[b"v2"] = ValueError("renderer exploded")
    assert not orchestrator.build_one(source)
    assert target.read_bytes() == b"<p>v1</p>"

    source.unlink()
    assert not orchestrator.build_one(source)
    assert target.read_bytes() == b"<p>v1</p>"


def test_build_one_rejects_paths_outside_source_root(
    config: SiteConfig, orchestrator: BuildOrchestrator, tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    stray = write(tmp_path / "stray.md", "stray")

    with caplog.at_level(logging.ERROR, logger="mdmirror.builder"):
        assert not orchestrator.build_one(stray)

    assert "is not inside" in caplog.text
    assert not config.output_root.exists()


def test_remove_then_prune_leaves_no_empty_directories(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    write(config.source_root / "index.md", "home")
    intro = write(config.source_root / "guide" / "intro.md", "intro")
    orchestrator.full_build()

    assert orchestrator.remove_one(intro)
    prune_empty(config.output_root)

    assert not (config.output_root / "guide").exists()
    assert (config.output_root / "index.html").exists()
    assert all(any(d.iterdir()) for d in all_dirs(config.output_root))


def test_remove_keeps_units_nested_under_the_same_name(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    guide = write(config.source_root / "guide.md", "guide")
    write(config.source_root / "guide" / "intro.md", "intro")
    orchestrator.full_build()

    orchestrator.remove_one(guide)
    prune_empty(config.output_root)

    assert not (config.output_root / "guide" / "index.html").exists()
    assert (config.output_root / "guide" / "intro" / "index.html").read_bytes() == b"<p>intro</p>"


def test_remove_of_unbuilt_document_is_harmless(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    assert orchestrator.remove_one(config.source_root / "never" / "built.md")


def test_move_relocates_output_without_rendering(
    config: SiteConfig, orchestrator: BuildOrchestrator, renderer: CountingRenderer
) -> None:
    old = write(config.source_root / "guide" / "intro.md", "intro")
    orchestrator.full_build()
    before = (config.output_root / "guide" / "intro" / "index.html").read_bytes()
    renders = len(renderer.calls)

    new = config.source_root / "guide" / "start.md"
    old.rename(new)
    assert orchestrator.move_one(old, new)
    prune_empty(config.output_root)

    assert len(renderer.calls) == renders
    assert not (config.output_root / "guide" / "intro").exists()
    assert (config.output_root / "guide" / "start" / "index.html").read_bytes() == before


def test_move_into_new_nested_folder(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    old = write(config.source_root / "page.md", "page")
    orchestrator.full_build()

    new = config.source_root / "x" / "y" / "page.md"
    new.parent.mkdir(parents=True)
    old.rename(new)
    assert orchestrator.move_one(old, new)
    prune_empty(config.output_root)

    assert not (config.output_root / "page").exists()
    assert (config.output_root / "x" / "y" / "page" / "index.html").read_bytes() == b"<p>page</p>"


def test_move_without_prior_output_falls_back_to_build(
    config: SiteConfig, orchestrator: BuildOrchestrator, renderer: CountingRenderer
) -> None:
    config.output_root.mkdir()
    new = write(config.source_root / "fresh.md", "fresh")

    assert orchestrator.move_one(config.source_root / "tmp.md", new)

    assert renderer.calls == [b"fresh"]
    assert (config.output_root / "fresh" / "index.html").read_bytes() == b"<p>fresh</p>"


def test_move_from_outside_the_source_root_builds_the_new_document(
    config: SiteConfig, orchestrator: BuildOrchestrator, tmp_path: Path
) -> None:
    config.output_root.mkdir()
    new = write(config.source_root / "imported.md", "imported")

    assert orchestrator.move_one(tmp_path / "downloads" / "imported.md", new)

    assert (config.output_root / "imported" / "index.html").read_bytes() == b"<p>imported</p>"


def test_symlinked_documents_build_separate_units(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    real = write(config.source_root / "real.md", "same")
    os.symlink(real, config.source_root / "alias.md")

    assert orchestrator.full_build() == 2

    assert (config.output_root / "real" / "index.html").read_bytes() == b"<p>same</p>"
    assert (config.output_root / "alias" / "index.html").read_bytes() == b"<p>same</p>"


def test_written_pages_follow_the_umask(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    write(config.source_root / "index.md", "home")
    write(config.source_root / "guide" / "intro.md", "intro")

    previous = os.umask(0o022)
    try:
        orchestrator.full_build()
    finally:
        os.umask(previous)

    for page in (config.output_root / "index.html", config.output_root / "guide" / "intro" / "index.html"):
        assert stat.S_IMODE(page.stat().st_mode) == 0o644


def test_remove_tree_keeps_the_page_beside_the_folder(config: SiteConfig, orchestrator: BuildOrchestrator) -> None:
    write(config.source_root / "guide.md", "guide")
    write(config.source_root / "guide" / "intro.md", "intro")
    orchestrator.full_build()

    assert orchestrator.remove_tree(config.source_root / "guide")

    assert (config.output_root / "guide" / "index.html").exists()
    assert not (config.output_root / "guide" / "intro").exists()
    assert orchestrator.remove_tree(config.source_root / "never-built")
