from __future__ import annotations

import asyncio
import base64
import re

from mailrender.core.logs import log_event
from mailrender.core.metrics import observe_inline_image_fetch
from mailrender.services.render.types import (
    DEFAULT_INLINE_IMAGE_MIME_TYPE,
    AttachmentByteMap,
    AttachmentFetcher,
    InlineImageRef,
    ResolvedAttachment,
)

DEFAULT_FETCH_TIMEOUT_SECONDS = 10.0

# A content id ends at a quote, whitespace, tag end, css url() end or input end.
_CID_TERMINATOR = r"(?=[\"'\s>)]|$)"


def normalize_content_id(content_id: str) -> str:
    return content_id.replace("<", "").replace(">", "").strip()


def data_uri_mime_type(declared: str | None) -> str:
    v = (declared or "").strip().lower()
    if v.startswith("image/"):
        return v
    return DEFAULT_INLINE_IMAGE_MIME_TYPE


async def resolve_inline_images(
    refs: list[InlineImageRef],
    fetch: AttachmentFetcher,
    *,
    timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
) -> AttachmentByteMap:
    unique: dict[str, InlineImageRef] = {}
    for ref in refs:
        content_id = normalize_content_id(ref.content_id)
        if content_id and content_id not in unique:
            unique[content_id] = ref

    if not unique:
        return {}

    resolved = await asyncio.gather(
        *(
            _fetch_one(content_id, ref, fetch, timeout_seconds=timeout_seconds)
            for content_id, ref in unique.items()
        )
    )
    return {item.content_id: item for item in resolved}


async def _fetch_one(
    content_id: str,
    ref: InlineImageRef,
    fetch: AttachmentFetcher,
    *,
    timeout_seconds: float,
) -> ResolvedAttachment:
    mime_type = data_uri_mime_type(ref.mime_type)
    try:
        data = await asyncio.wait_for(
            asyncio.to_thread(fetch, ref.attachment_id),
            timeout=timeout_seconds,
        )
    except TimeoutError:
        observe_inline_image_fetch(outcome="timeout")
        log_event(
            "render.inline_image.unresolved",
            content_id=content_id,
            attachment_id=ref.attachment_id,
            reason="timeout",
        )
        return ResolvedAttachment(content_id=content_id, mime_type=mime_type, error="timeout")
    except Exception as e:  # noqa: BLE001
        observe_inline_image_fetch(outcome="error")
        log_event(
            "render.inline_image.unresolved",
            content_id=content_id,
            attachment_id=ref.attachment_id,
            reason=str(e) or e.__class__.__name__,
        )
        return ResolvedAttachment(
            content_id=content_id,
            mime_type=mime_type,
            error=str(e) or e.__class__.__name__,
        )

    observe_inline_image_fetch(outcome="ok")
    return ResolvedAttachment(content_id=content_id, mime_type=mime_type, data=bytes(data))


def to_data_uri(attachment: ResolvedAttachment) -> str | None:
    if attachment.data is None:
        return None
    encoded = base64.b64encode(attachment.data).decode("ascii")
    return f"data:{attachment.mime_type};base64,{encoded}"


def embed_inline_images(html: str, byte_map: AttachmentByteMap) -> str:
    if not html or not byte_map:
        return html

    out = html
    for content_id, attachment in byte_map.items():
        data_uri = to_data_uri(attachment)
        if data_uri is None:
            continue
        pattern = re.compile(r"(?i:cid:)" + re.escape(content_id) + _CID_TERMINATOR)
        out = pattern.sub(lambda _m, uri=data_uri: uri, out)
    return out
