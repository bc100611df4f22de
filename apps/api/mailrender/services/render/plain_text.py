from __future__ import annotations

import re
from html import unescape

_BLOCK_BOUNDARY_RE = re.compile(
    r"<\s*/?\s*(?:br|p|div|li|tr|td|th|h[1-6]|table|blockquote|ul|ol|hr|pre|"
    r"section|article|header|footer|details|summary)\b[^>]*>",
    re.IGNORECASE,
)
# Only markup-shaped runs: "x < 5 and y > 3" is text, not a tag.
_TAG_RE = re.compile(r"<[a-zA-Z/!?][^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


def to_plain_text(html: str | None) -> str:
    if not html:
        return ""
    # Block boundaries separate words; inline tags must not split them.
    text = _BLOCK_BOUNDARY_RE.sub(" ", html)
    text = _TAG_RE.sub("", text)
    # Decode last so escaped brackets in text survive as text.
    text = unescape(text)
    return _WHITESPACE_RE.sub(" ", text).strip()
