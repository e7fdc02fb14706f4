"""Plain-text rendering of curated biography markup."""

from __future__ import annotations

from html.parser import HTMLParser

_BLOCK_TAGS = frozenset(
    {
        "p", "div", "section", "article", "blockquote", "pre",
        "h1", "h2", "h3", "h4", "h5", "h6",
        "ul", "ol", "li", "table", "tr",
    }
)
_SKIPPED_TAGS = frozenset({"script", "style", "head"})
_HEADING_RULES = {"h1": "*", "h2": "-"}


class _TextRenderer(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self._blocks: list[str] = []
        self._buffer: list[str] = []
        self._links: list[str | None] = []
        self._heading: str | None = None
        self._list_item = False
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in _SKIPPED_TAGS:
            self._skip_depth += 1
            return
        if tag == "br":
            self._buffer.append("\n")
            return
        if tag in _BLOCK_TAGS:
            self._flush()
        if tag in ("h1", "h2", "h3", "h4", "h5", "h6"):
            self._heading = tag
        elif tag == "li":
            self._list_item = True
        elif tag == "a":
            self._links.append(dict(attrs).get("href"))

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag == "br":
            self._buffer.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIPPED_TAGS:
            self._skip_depth = max(0, self._skip_depth - 1)
        elif tag == "a":
            href = self._links.pop() if self._links else None
            if href and not href.startswith("#"):
                self._buffer.append(f" ( {href} )")
        elif tag in _BLOCK_TAGS:
            self._flush()

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            # Source line breaks are plain whitespace, only <br> breaks a line
            self._buffer.append(" ".join(data.splitlines()))

    def _flush(self) -> None:
        raw = "".join(self._buffer)
        self._buffer.clear()
        lines = [" ".join(line.split()) for line in raw.split("\n")]
        text = "\n".join(line for line in lines if line)
        if text:
            rule_char = _HEADING_RULES.get(self._heading or "")
            if rule_char:
                rule = rule_char * max(len(line) for line in text.split("\n"))
                text = f"{rule}\n{text}\n{rule}"
            elif self._list_item:
                text = f"* {text}"
            self._blocks.append(text)
        self._heading = None
        self._list_item = False

    def render(self) -> str:
        self._flush()
        return "\n\n".join(self._blocks)


def html_to_text(markup: str) -> str:
    """Render HTML markup as plain text.

    Level 1 and 2 headings are framed with rules of ``*`` and ``-``, list
    items are bulleted, links keep their target, and blocks are separated
    by blank lines.
    """
    renderer = _TextRenderer()
    renderer.feed(markup)
    renderer.close()
    return renderer.render()
