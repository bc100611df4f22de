"""Sanitizing transformer for untrusted email HTML.

The document is entity-decoded once, parsed into a BeautifulSoup tree and run
through an ordered list of small passes. Passes are isolated from each other:
one that raises is logged and skipped, the rest still run. The tree is then
serialized through a bleach allowlist, whitespace-normalized and wrapped in
the theme stylesheet.
"""

from __future__ import annotations

import html as html_lib
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from urllib.parse import urlsplit

from bleach.css_sanitizer import ALLOWED_CSS_PROPERTIES, CSSSanitizer
from bleach.sanitizer import Cleaner
from bs4 import BeautifulSoup, CData, Comment, Declaration, Doctype, ProcessingInstruction, Tag

from mailrender.core.logs import log_event
from mailrender.core.metrics import observe_image_blocked
from mailrender.services.render.plain_text import to_plain_text
from mailrender.services.render.theme import apply_theme
from mailrender.services.render.types import ProcessingOptions

QUOTE_STYLE = (
    "border-left: 4px solid #dadce0; margin: 8px 0; padding: 0 0 0 12px; "
    "color: #5f6368; font-size: 13px; line-height: 1.4;"
)
QUOTE_TOGGLE_LABEL = "Show quoted text"
DISCLOSURE_CLASS = "quoted-text"

DOCUMENT_TAGS = ["html", "body"]
DOCUMENT_ONLY_TAGS = ["head", "title", "meta", "link", "base"]
HEAD_ONLY_TAGS = frozenset({"title", "meta", "link", "base", "style", "script"})
ACTIVE_CONTENT_TAGS = [
    "script", "style", "iframe", "frame", "frameset", "object", "embed", "applet",
]  # fmt: skip
PREHEADER_CONTAINER_TAGS = ["div", "span", "p", "td", "table", "section"]

_MARKUP_DECLARATIONS = (Comment, CData, ProcessingInstruction, Declaration, Doctype)

_HIDDEN_STYLE_RE = re.compile(
    r"(?:^|[;\s])(?:"
    r"display\s*:\s*none"
    r"|visibility\s*:\s*hidden"
    r"|font-size\s*:\s*(?:0+(?:\.0*)?|\.0+)(?:px|pt|em|rem|%)?"
    r"|opacity\s*:\s*(?:0+(?:\.0*)?|\.0+)"
    r"|mso-hide\s*:\s*all"
    r")\s*(?:!\s*important\s*)?(?:;|$)",
    re.IGNORECASE,
)
_URI_NOISE_RE = re.compile(r"[\x00-\x20\x7f]+")

_UNSAFE_IMAGE_PREFIXES = ("data:application/", "about:", "javascript:", "vbscript:")
_INLINE_IMAGE_PREFIXES = ("data:", "cid:")
_LINK_HREF_PREFIXES = ("http://", "https://", "mailto:", "tel:", "#")


@dataclass
class RenderState:
    options: ProcessingOptions
    has_blocked_images: bool = False


SoupPass = Callable[[BeautifulSoup, RenderState], None]


def decode_entities(html: str) -> str:
    return html_lib.unescape(html)


def parse_fragment(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


def _live(tags: Iterable[Tag]) -> Iterable[Tag]:
    # Decomposing an element also wipes its descendants; skip those.
    for tag in list(tags):
        if not tag.decomposed:
            yield tag


def _attr_text(tag: Tag, name: str) -> str | None:
    value = tag.get(name)
    if value is None:
        return None
    if isinstance(value, list):
        value = " ".join(value)
    return value.strip()


def _classes(tag: Tag) -> list[str]:
    value = tag.get("class")
    if value is None:
        return []
    if isinstance(value, str):
        return value.split()
    return list(value)


def normalize_uri(value: str) -> str:
    return _URI_NOISE_RE.sub("", value or "").lower()


# Pass 2


def strip_document_structure(soup: BeautifulSoup, state: RenderState) -> None:
    for node in soup.find_all(string=lambda s: isinstance(s, Doctype)):
        node.extract()

    for head in _live(soup.find_all("head")):
        # An unclosed <head> swallows everything after it when parsed leniently.
        anchor = head
        for child in list(head.contents):
            if isinstance(child, Tag) and child.name in HEAD_ONLY_TAGS:
                continue
            anchor.insert_after(child.extract())
            anchor = child

    for tag in _live(soup.find_all(DOCUMENT_ONLY_TAGS)):
        tag.decompose()

    for tag in _live(soup.find_all(DOCUMENT_TAGS)):
        tag.unwrap()


# Pass 3


def remove_active_content(soup: BeautifulSoup, state: RenderState) -> None:
    for tag in _live(soup.find_all(ACTIVE_CONTENT_TAGS)):
        tag.decompose()

    for node in soup.find_all(string=lambda s: isinstance(s, _MARKUP_DECLARATIONS)):
        node.extract()

    for tag in soup.find_all(True):
        handlers = [name for name in tag.attrs if name.lower().startswith("on")]
        for name in handlers:
            del tag[name]


# Pass 4


def is_tracking_pixel(img: Tag) -> bool:
    width = _attr_text(img, "width")
    height = _attr_text(img, "height")
    return width is not None and width == height and width in {"0", "1"}


def remove_tracking_pixels(soup: BeautifulSoup, state: RenderState) -> None:
    for img in _live(soup.find_all("img")):
        if is_tracking_pixel(img):
            img.decompose()


# Pass 5


def is_hidden(tag: Tag) -> bool:
    if tag.has_attr("hidden"):
        return True
    style = _attr_text(tag, "style")
    return bool(style and _HIDDEN_STYLE_RE.search(style))


def remove_hidden_content(soup: BeautifulSoup, state: RenderState) -> None:
    for tag in _live(soup.find_all(True)):
        if is_hidden(tag):
            tag.decompose()


# Pass 6


def is_preheader(tag: Tag) -> bool:
    return any("preheader" in cls.lower() for cls in _classes(tag))


def remove_preheaders(soup: BeautifulSoup, state: RenderState) -> None:
    for tag in _live(soup.find_all(PREHEADER_CONTAINER_TAGS)):
        if is_preheader(tag):
            tag.decompose()


# Pass 7


def _is_quote_construct(tag: Tag) -> bool:
    return tag.name == "blockquote" or _classes(tag) == ["gmail_quote"]


def _inside_disclosure(tag: Tag) -> bool:
    return any(
        parent.name == "details" and DISCLOSURE_CLASS in _classes(parent) for parent in tag.parents
    )


def _new_disclosure(soup: BeautifulSoup) -> tuple[Tag, Tag]:
    details = soup.new_tag("details", attrs={"class": DISCLOSURE_CLASS})
    summary = soup.new_tag("summary")
    summary.string = QUOTE_TOGGLE_LABEL
    body = soup.new_tag("div", attrs={"class": f"{DISCLOSURE_CLASS}-body"})
    details.append(summary)
    details.append(body)
    return details, body


def collapse_quotes(soup: BeautifulSoup, state: RenderState) -> None:
    for blockquote in soup.find_all("blockquote"):
        blockquote["style"] = QUOTE_STYLE

    # Document order: an outer quote is wrapped before the quotes nested in it.
    for tag in soup.find_all(_is_quote_construct):
        if _inside_disclosure(tag):
            continue
        details, body = _new_disclosure(soup)
        if tag.name == "blockquote":
            tag.replace_with(details)
            body.append(tag)
        else:
            for child in list(tag.contents):
                body.append(child.extract())
            tag.replace_with(details)


# Pass 8


def classify_image_src(src: str) -> str:
    v = normalize_uri(src)
    if v.startswith(_UNSAFE_IMAGE_PREFIXES):
        return "unsafe"
    if v.startswith(_INLINE_IMAGE_PREFIXES):
        return "inline"
    return "remote"


def image_hostname(src: str) -> str | None:
    try:
        host = urlsplit(src.strip()).hostname
    except ValueError:
        return None
    return host or None


def _blocked_image_placeholder(soup: BeautifulSoup, *, icon: str, text: str, source: str) -> Tag:
    box = soup.new_tag("div", attrs={"class": "blocked-image"})
    for cls, value in (
        ("blocked-image-icon", icon),
        ("blocked-image-text", text),
        ("blocked-image-source", source),
    ):
        line = soup.new_tag("div", attrs={"class": cls})
        line.string = value
        box.append(line)
    return box


def enforce_image_policy(soup: BeautifulSoup, state: RenderState) -> None:
    for img in _live(soup.find_all("img")):
        src = img.get("src")
        if src is None:
            continue
        if isinstance(src, list):
            src = " ".join(src)

        kind = classify_image_src(src)
        if kind == "inline":
            continue

        if kind == "unsafe":
            placeholder = _blocked_image_placeholder(
                soup,
                icon="⚠️",
                text="Image blocked for security",
                source="Unsafe URL scheme",
            )
            reason = "security"
        elif state.options.load_external_images:
            continue
        else:
            hostname = image_hostname(src)
            placeholder = _blocked_image_placeholder(
                soup,
                icon="\U0001f4f7",
                text="Image blocked for privacy",
                source=f"External image from: {hostname}" if hostname else "External image",
            )
            reason = "privacy"

        img.replace_with(placeholder)
        state.has_blocked_images = True
        observe_image_blocked(reason=reason)


# Pass 9


def harden_links(soup: BeautifulSoup, state: RenderState) -> None:
    for a in soup.find_all("a"):
        # Forced, not defaulted: target="_top" would navigate the embedding page.
        a["target"] = "_blank"
        rel = a.get("rel")
        tokens = rel.split() if isinstance(rel, str) else list(rel or [])
        tokens = [t for t in tokens if t.lower() != "opener"]
        lowered = {t.lower() for t in tokens}
        for token in ("noopener", "noreferrer"):
            if token not in lowered:
                tokens.append(token)
        a["rel"] = " ".join(tokens)


ALLOWED_TAGS = frozenset(
    {
        "a", "abbr", "address", "article", "aside", "b", "bdi", "bdo", "big", "blockquote",
        "br", "caption", "center", "cite", "code", "col", "colgroup", "dd", "del", "details",
        "dfn", "div", "dl", "dt", "em", "figcaption", "figure", "font", "footer", "h1", "h2",
        "h3", "h4", "h5", "h6", "header", "hr", "i", "img", "ins", "kbd", "li", "main", "mark",
        "nav", "ol", "p", "pre", "q", "s", "samp", "section", "small", "span", "strike",
        "strong", "sub", "summary", "sup", "table", "tbody", "td", "tfoot", "th", "thead",
        "time", "tr", "tt", "u", "ul", "var", "wbr",
    }
)  # fmt: skip
ALLOWED_PROTOCOLS = frozenset({"http", "https", "mailto", "tel", "data", "cid"})
_GLOBAL_ATTRS = frozenset(
    {
        "align", "alt", "bgcolor", "border", "cellpadding", "cellspacing", "class", "color",
        "colspan", "dir", "face", "height", "lang", "rowspan", "size", "style", "title",
        "valign", "width",
    }
)  # fmt: skip

# Anything that can carry url() is left out so CSS cannot load remote images.
ALLOWED_STYLE_PROPERTIES = (ALLOWED_CSS_PROPERTIES - {"cursor"}) | {
    "border",
    "border-bottom",
    "border-left",
    "border-right",
    "border-top",
    "border-radius",
    "border-spacing",
    "border-style",
    "border-width",
    "box-sizing",
    "list-style-type",
    "margin",
    "margin-bottom",
    "margin-left",
    "margin-right",
    "margin-top",
    "max-height",
    "max-width",
    "min-height",
    "min-width",
    "opacity",
    "overflow-wrap",
    "padding",
    "padding-bottom",
    "padding-left",
    "padding-right",
    "padding-top",
    "table-layout",
    "text-transform",
    "user-select",
    "word-break",
    "word-wrap",
}


def _attr_filter(tag: str, name: str, value: str) -> bool:
    if name in _GLOBAL_ATTRS:
        return True
    if tag == "a" and name == "href":
        return normalize_uri(value).startswith(_LINK_HREF_PREFIXES)
    if tag == "a" and name in {"rel", "target"}:
        return True
    if tag == "img" and name == "src":
        return not normalize_uri(value).startswith(_UNSAFE_IMAGE_PREFIXES)
    if tag == "details" and name == "open":
        return True
    return False


def build_cleaner() -> Cleaner:
    # Cleaner instances are not thread-safe; batches render on worker threads.
    return Cleaner(
        tags=ALLOWED_TAGS,
        attributes={"*": _attr_filter},
        protocols=ALLOWED_PROTOCOLS,
        strip=True,
        strip_comments=True,
        css_sanitizer=CSSSanitizer(allowed_css_properties=ALLOWED_STYLE_PROPERTIES),
    )


def scrub(markup: str) -> str:
    try:
        return build_cleaner().clean(markup)
    except Exception as e:  # noqa: BLE001
        log_event("render.pass.failed", level=logging.WARNING, name="scrub", error=str(e))
        return html_lib.escape(to_plain_text(markup))


# Pass 10

_TOKEN_RE = re.compile(r"<(?:[^\"'>]|\"[^\"]*\"|'[^']*')*>")
_TAG_NAME_RE = re.compile(r"<\s*(/?)\s*([a-zA-Z][a-zA-Z0-9:-]*)")
_BLANK_LINES_RE = re.compile(r"\n\s*\n")
_PRESERVE_WHITESPACE_TAGS = frozenset({"pre", "textarea"})
BLOCK_TAGS = frozenset(
    {
        "address", "article", "aside", "blockquote", "br", "caption", "center", "col",
        "colgroup", "dd", "details", "div", "dl", "dt", "figcaption", "figure", "footer",
        "h1", "h2", "h3", "h4", "h5", "h6", "header", "hr", "li", "main", "nav", "ol", "p",
        "pre", "section", "summary", "table", "tbody", "td", "tfoot", "th", "thead", "tr",
        "ul",
    }
)  # fmt: skip


def _tag_name(token: str) -> tuple[str, bool]:
    m = _TAG_NAME_RE.match(token)
    if m is None:
        return "", False
    return m.group(2).lower(), bool(m.group(1))


def normalize_whitespace(markup: str) -> str:
    tokens: list[tuple[bool, str]] = []
    pos = 0
    for m in _TOKEN_RE.finditer(markup):
        if m.start() > pos:
            tokens.append((False, markup[pos : m.start()]))
        tokens.append((True, m.group(0)))
        pos = m.end()
    if pos < len(markup):
        tokens.append((False, markup[pos:]))

    out: list[str] = []
    preserve_depth = 0
    for i, (is_tag, text) in enumerate(tokens):
        if is_tag:
            name, closing = _tag_name(text)
            if name in _PRESERVE_WHITESPACE_TAGS:
                preserve_depth = max(0, preserve_depth + (-1 if closing else 1))
            out.append(text)
            continue

        if preserve_depth:
            out.append(text)
        elif text.strip():
            out.append(_BLANK_LINES_RE.sub("\n", text))
        elif 0 < i < len(tokens) - 1:
            prev_name, _ = _tag_name(tokens[i - 1][1])
            next_name, _ = _tag_name(tokens[i + 1][1])
            if prev_name not in BLOCK_TAGS and next_name not in BLOCK_TAGS:
                out.append(" ")

    return "".join(out).strip()


SOUP_PASSES: tuple[tuple[str, SoupPass], ...] = (
    ("document_structure", strip_document_structure),
    ("active_content", remove_active_content),
    ("tracking_pixels", remove_tracking_pixels),
    ("hidden_content", remove_hidden_content),
    ("preheaders", remove_preheaders),
    ("quotes", collapse_quotes),
    ("image_policy", enforce_image_policy),
    ("links", harden_links),
)

# Everything destructive, nothing that adds UI chrome.
READABLE_PASSES = SOUP_PASSES[:5]


def run_passes(
    soup: BeautifulSoup,
    state: RenderState,
    passes: Iterable[tuple[str, SoupPass]],
) -> None:
    for name, fn in passes:
        try:
            fn(soup, state)
        except Exception as e:  # noqa: BLE001
            log_event("render.pass.failed", level=logging.WARNING, name=name, error=str(e))


def _parse_or_none(html: str) -> BeautifulSoup | None:
    try:
        return parse_fragment(decode_entities(html))
    except Exception as e:  # noqa: BLE001
        log_event("render.pass.failed", level=logging.WARNING, name="parse", error=str(e))
        return None


def transform(html: str | None, options: ProcessingOptions) -> tuple[str, bool]:
    state = RenderState(options=options)
    soup = _parse_or_none(html or "")
    if soup is None:
        fragment = html_lib.escape(to_plain_text(html))
    else:
        run_passes(soup, state, SOUP_PASSES)
        fragment = scrub(str(soup))

    try:
        fragment = normalize_whitespace(fragment)
    except Exception as e:  # noqa: BLE001
        log_event("render.pass.failed", level=logging.WARNING, name="whitespace", error=str(e))

    return apply_theme(fragment, options.theme), state.has_blocked_images


def readable_fragment(html: str | None) -> str:
    soup = _parse_or_none(html or "")
    if soup is None:
        return html_lib.escape(to_plain_text(html))
    run_passes(soup, RenderState(options=ProcessingOptions()), READABLE_PASSES)
    return str(soup)
