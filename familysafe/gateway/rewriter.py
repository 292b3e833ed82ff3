"""
Streaming HTML Attribute Rewriter.

Rewrites relative URLs in proxied HTML to absolute URLs so that images,
stylesheets, scripts and links load from the original site:

    <img src="/logo.png">  ->  <img src="https://target.example/logo.png">

Only four element/attribute pairs are rewritten (``a/href``, ``img/src``,
``link/href``, ``script/src``).  A value is left untouched when it is
empty, already starts with ``http`` or ``//``, or cannot be resolved.

The rewriter is incremental: markup is fed chunk by chunk and everything
except rewritten start tags is emitted byte-for-byte as it was received.
"""

from __future__ import annotations

import codecs
import html
from html.parser import HTMLParser
from typing import AsyncIterator, Optional
from urllib.parse import urljoin

REWRITE_TARGETS: dict[str, str] = {
    "a": "href",
    "img": "src",
    "link": "href",
    "script": "src",
}


def normalize_target_url(target_url: str) -> str:
    """Prefix ``https://`` to a target that carries no scheme."""
    target_url = target_url.strip()
    if "://" not in target_url:
        return "https://" + target_url.lstrip("/")
    return target_url


def resolve_attribute(value: Optional[str], base_url: str) -> Optional[str]:
    """Return the absolute form of *value*, or ``None`` to leave it unchanged."""
    if not value:
        return None
    if value.startswith("http") or value.startswith("//"):
        return None
    try:
        return urljoin(base_url, value)
    except ValueError:
        return None


class AttributeRewriter(HTMLParser):
    """Incremental HTML pass-through that absolutises selected attributes.

    Usage::

        rewriter = AttributeRewriter("https://example.com/blog/")
        out = rewriter.feed('<img src="./a.png">') + rewriter.close()
    """

    def __init__(self, base_url: str) -> None:
        super().__init__(convert_charrefs=False)
        self._base_url = base_url
        self._output: list[str] = []
        self._replacement: Optional[str] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def feed(self, data: str) -> str:  # type: ignore[override]
        """Consume *data*; return the markup that is complete so far."""
        super().feed(data)
        return self._drain()

    def close(self) -> str:  # type: ignore[override]
        """Flush any buffered input and return the remaining markup."""
        super().close()
        # Unterminated <script>/<style> content is left unconsumed in the
        # internal rawdata buffer.
        if self.rawdata:
            self._output.append(self.rawdata)
            self.rawdata = ""
        return self._drain()

    # ------------------------------------------------------------------
    # HTMLParser hooks
    # ------------------------------------------------------------------

    def updatepos(self, i: int, j: int) -> int:
        # Relies on HTMLParser.goahead (an undocumented internal) calling
        # updatepos for every consumed span of rawdata, once and in order.
        # A rewritten start tag replaces its own span.
        if i < j:
            if self._replacement is not None:
                self._output.append(self._replacement)
                self._replacement = None
            else:
                self._output.append(self.rawdata[i:j])
        return super().updatepos(i, j)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        self._rewrite(tag, attrs, self_closing=False)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        self._rewrite(tag, attrs, self_closing=True)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _rewrite(
        self, tag: str, attrs: list[tuple[str, Optional[str]]], self_closing: bool
    ) -> None:
        attribute = REWRITE_TARGETS.get(tag)
        if attribute is None:
            return

        for index, (name, value) in enumerate(attrs):
            if name != attribute:
                continue
            resolved = resolve_attribute(value, self._base_url)
            if resolved is None or resolved == value:
                return
            rewritten = list(attrs)
            rewritten[index] = (name, resolved)
            self._replacement = _build_starttag(tag, rewritten, self_closing)
            return

    def _drain(self) -> str:
        text = "".join(self._output)
        self._output.clear()
        return text


def _build_starttag(
    tag: str, attrs: list[tuple[str, Optional[str]]], self_closing: bool
) -> str:
    parts = [f"<{tag}"]
    for name, value in attrs:
        if value is None:
            parts.append(f" {name}")
        else:
            parts.append(f' {name}="{html.escape(value, quote=True)}"')
    parts.append(" />" if self_closing else ">")
    return "".join(parts)


def rewrite_html(document: str, base_url: str) -> str:
    """Rewrite a complete HTML document in one call."""
    rewriter = AttributeRewriter(base_url)
    return rewriter.feed(document) + rewriter.close()


async def rewrite_stream(
    chunks: AsyncIterator[bytes],
    base_url: str,
    charset: Optional[str] = None,
) -> AsyncIterator[bytes]:
    """Rewrite an HTML byte stream chunk by chunk.

    Bytes that are invalid in *charset* survive the round trip unchanged.
    An unknown charset falls back to UTF-8.
    """
    encoding = charset or "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        encoding = "utf-8"

    decoder = codecs.getincrementaldecoder(encoding)(errors="surrogateescape")
    rewriter = AttributeRewriter(base_url)

    async for chunk in chunks:
        text = rewriter.feed(decoder.decode(chunk))
        if text:
            yield text.encode(encoding, errors="surrogateescape")

    tail = rewriter.feed(decoder.decode(b"", final=True)) + rewriter.close()
    if tail:
        yield tail.encode(encoding, errors="surrogateescape")
