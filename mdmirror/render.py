"""Markdown to HTML rendering.

- Strips an optional YAML front-matter block (title, date, author, tags)
- Converts the body with python-markdown
- Opens absolute links in a new tab
- Wraps the result in a minimal standalone page

Requires the "markdown" and "PyYAML" packages.
"""

from __future__ import annotations

import html
import re
from typing import Any, Dict, Optional, Tuple

import markdown
import yaml
from markdown.extensions import Extension
from markdown.treeprocessors import Treeprocessor

from mdmirror.errors import RenderError

MARKDOWN_EXTENSIONS = ["extra", "fenced_code", "tables", "toc", "sane_lists"]

_FRONT_MATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n(?:---|\.\.\.)[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_EXTERNAL_HREF_RE = re.compile(r"^https?://", re.IGNORECASE)


# -- front matter --
def split_front_matter(text: str) -> Tuple[Dict[str, Any], str]:
    """Return (metadata, body). Text without a front-matter block is returned as-is."""
    match = _FRONT_MATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        meta = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError as exc:
        raise RenderError(None, f"Invalid front matter ({exc})") from exc
    if not isinstance(meta, dict):
        raise RenderError(None, "Front matter must be a mapping")
    return meta, text[match.end():]


# -- markdown conversion --
class _ExternalLinkProcessor(Treeprocessor):
    def run(self, root):
        for anchor in root.iter("a"):
            if _EXTERNAL_HREF_RE.match(anchor.get("href", "")):
                anchor.set("target", "_blank")
        return None


class ExternalLinkExtension(Extension):
    """Add target="_blank" to absolute http(s) links."""

    def extendMarkdown(self, md):
        md.treeprocessors.register(_ExternalLinkProcessor(md), "external_links", 8)


def convert_markdown_to_html(md_text: str) -> str:
    md = markdown.Markdown(extensions=[*MARKDOWN_EXTENSIONS, ExternalLinkExtension()])
    return md.convert(md_text)


def first_heading(md_text: str) -> Optional[str]:
    for line in md_text.splitlines():
        m = re.match(r"^#{1,6}\s+(.+?)\s*#*\s*$", line)
        if m:
            return m.group(1)
    return None


def render_page_html(title: str, content_html: str) -> str:
    """Render the full HTML page around the converted body."""
    return (
        "<!doctype html>\n"
        "<html lang=\"en\">\n"
        "  <head>\n"
        "    <meta charset=\"utf-8\">\n"
        "    <meta name=\"viewport\" content=\"width=device-width, initial-scale=1\">\n"
        f"    <title>{html.escape(title)}</title>\n"
        "  </head>\n"
        "  <body>\n"
        "    <main>\n"
        f"{content_html}\n"
        "    </main>\n"
        "  </body>\n"
        "</html>\n"
    )


def render(content: bytes) -> bytes:
    """Render markdown bytes into a UTF-8 encoded HTML page."""
    try:
        text = content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise RenderError(None, "Document is not valid UTF-8") from exc
    meta, body = split_front_matter(text)
    title = meta.get("title") or first_heading(body) or ""
    page = render_page_html(str(title), convert_markdown_to_html(body))
    return page.encode("utf-8")
