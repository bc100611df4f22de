from __future__ import annotations

import base64
import binascii
from collections.abc import Iterator
from email.message import Message

from mailrender.services.render.types import ExtractedBody, InlineImageRef, MessagePart


def decode_body_data(data: str | None, *, charset: str | None = None) -> str:
    if not data:
        return ""
    try:
        raw = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError):
        return ""
    try:
        return raw.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")


def plain_text_to_html(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n").replace("\n", "<br>")


def extract_body(root: MessagePart | None) -> ExtractedBody:
    """Pick the best body of a message tree and collect its inline images.

    HTML anywhere in the tree wins; otherwise the first text/plain leaf in
    pre-order is used. Plain text comes back as HTML (newlines become <br>).
    """
    if root is None:
        return ExtractedBody(html="", inline_images=[])

    inline_images = find_inline_images(root)

    if root.is_leaf:
        if root.body_data is None:
            return ExtractedBody(html="", inline_images=inline_images)
        text = _decode_part(root)
        if _mime_type(root) == "text/plain":
            text = plain_text_to_html(text)
        return ExtractedBody(html=text, inline_images=inline_images)

    html_part = _first_body_leaf(root, "text/html")
    if html_part is not None:
        return ExtractedBody(html=_decode_part(html_part), inline_images=inline_images)

    text_part = _first_body_leaf(root, "text/plain")
    if text_part is not None:
        return ExtractedBody(
            html=plain_text_to_html(_decode_part(text_part)),
            inline_images=inline_images,
        )

    return ExtractedBody(html="", inline_images=inline_images)


def find_inline_images(root: MessagePart | None) -> list[InlineImageRef]:
    if root is None:
        return []

    refs: list[InlineImageRef] = []
    for part in iter_parts(root):
        if not part.is_leaf or not part.attachment_id:
            continue
        disposition = (part.header("Content-Disposition") or "").lower()
        if "inline" not in disposition:
            continue
        content_id = (part.header("Content-ID") or "").replace("<", "").replace(">", "").strip()
        if not content_id:
            continue
        refs.append(
            InlineImageRef(
                attachment_id=part.attachment_id,
                content_id=content_id,
                mime_type=_mime_type(part) or None,
            )
        )
    return refs


def iter_parts(root: MessagePart) -> Iterator[MessagePart]:
    # Pre-order without recursion; hostile nesting must not exhaust the stack.
    stack = [root]
    while stack:
        part = stack.pop()
        yield part
        stack.extend(reversed(part.children))


def _first_body_leaf(root: MessagePart, mime_type: str) -> MessagePart | None:
    for part in iter_parts(root):
        if not part.is_leaf or part.body_data is None:
            continue
        if _mime_type(part) != mime_type:
            continue
        if _is_attachment(part):
            continue
        return part
    return None


def _is_attachment(part: MessagePart) -> bool:
    disposition = (part.header("Content-Disposition") or "").strip().lower()
    return disposition.startswith("attachment")


def _mime_type(part: MessagePart) -> str:
    return (part.mime_type or "").strip().lower()


def _decode_part(part: MessagePart) -> str:
    return decode_body_data(part.body_data, charset=_content_charset(part))


def _content_charset(part: MessagePart) -> str | None:
    content_type = part.header("Content-Type")
    if not content_type:
        return None
    msg = Message()
    msg["Content-Type"] = content_type
    return msg.get_content_charset()
