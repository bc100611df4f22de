from __future__ import annotations

import asyncio
import base64
import threading
import time

from mailrender.services.render.inline_images import (
    data_uri_mime_type,
    embed_inline_images,
    resolve_inline_images,
)
from mailrender.services.render.types import InlineImageRef, ResolvedAttachment

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake"
PNG_B64 = base64.b64encode(PNG_BYTES).decode("ascii")


def _resolved(content_id: str, data: bytes = PNG_BYTES) -> ResolvedAttachment:
    return ResolvedAttachment(content_id=content_id, mime_type="image/png", data=data)


def test_embed_replaces_cid_with_data_uri() -> None:
    html = '<img src="cid:logo@example"><img src=\'CID:logo@example\'>'

    out = embed_inline_images(html, {"logo@example": _resolved("logo@example")})

    assert "cid:" not in out.lower()
    assert out.count(f"data:image/png;base64,{PNG_B64}") == 2


def test_embed_does_not_touch_longer_content_ids() -> None:
    html = '<img src="cid:image1"><img src="cid:image10">'

    out = embed_inline_images(html, {"image1": _resolved("image1")})

    assert f'<img src="data:image/png;base64,{PNG_B64}">' in out
    assert '<img src="cid:image10">' in out


def test_embed_escapes_regex_metacharacters() -> None:
    html = '<img src="cid:a.b+c(1)"><img src="cid:aXb+c(1)">'

    out = embed_inline_images(html, {"a.b+c(1)": _resolved("a.b+c(1)")})

    assert out.startswith('<img src="data:image/png;base64,')
    assert '<img src="cid:aXb+c(1)">' in out


def test_unresolved_references_are_left_as_is() -> None:
    html = '<img src="cid:missing">'
    failed = ResolvedAttachment(content_id="missing", mime_type="image/png", error="boom")

    assert embed_inline_images(html, {"missing": failed}) == html
    assert embed_inline_images(html, {}) == html


def test_non_image_declared_types_default_to_jpeg() -> None:
    assert data_uri_mime_type("image/gif") == "image/gif"
    assert data_uri_mime_type(None) == "image/jpeg"
    assert data_uri_mime_type("application/octet-stream") == "image/jpeg"


def test_resolve_isolates_failures_and_dedupes() -> None:
    calls: list[str] = []
    lock = threading.Lock()

    def fetch(attachment_id: str) -> bytes:
        with lock:
            calls.append(attachment_id)
        if attachment_id == "bad":
            raise RuntimeError("gone")
        return PNG_BYTES

    refs = [
        InlineImageRef(attachment_id="good", content_id="<one>", mime_type="image/png"),
        InlineImageRef(attachment_id="good", content_id="one", mime_type="image/png"),
        InlineImageRef(attachment_id="bad", content_id="two"),
    ]

    byte_map = asyncio.run(resolve_inline_images(refs, fetch, timeout_seconds=5.0))

    assert sorted(calls) == ["bad", "good"]
    assert byte_map["one"].ok
    assert byte_map["one"].data == PNG_BYTES
    assert not byte_map["two"].ok
    assert byte_map["two"].error == "gone"
    assert byte_map["two"].mime_type == "image/jpeg"


def test_resolve_times_out_slow_fetches_individually() -> None:
    def fetch(attachment_id: str) -> bytes:
        if attachment_id == "slow":
            time.sleep(0.5)
        return PNG_BYTES

    refs = [
        InlineImageRef(attachment_id="slow", content_id="slow"),
        InlineImageRef(attachment_id="fast", content_id="fast"),
    ]

    byte_map = asyncio.run(resolve_inline_images(refs, fetch, timeout_seconds=0.05))

    assert byte_map["slow"].error == "timeout"
    assert byte_map["fast"].ok
