from __future__ import annotations

import asyncio

from mailrender.services.render.errors import MissingPayloadError
from mailrender.services.render.extract import extract_body
from mailrender.services.render.inline_images import (
    DEFAULT_FETCH_TIMEOUT_SECONDS,
    embed_inline_images,
    resolve_inline_images,
)
from mailrender.services.render.plain_text import to_plain_text
from mailrender.services.render.transform import readable_fragment, transform
from mailrender.services.render.types import (
    AttachmentFetcher,
    MessageEnvelope,
    ProcessingOptions,
    ProcessingResult,
)


def process_email_html(html: str | None, options: ProcessingOptions) -> ProcessingResult:
    processed_html, has_blocked_images = transform(html, options)
    # Project text from the destructive passes only; UI chrome is not content.
    plain_text = to_plain_text(readable_fragment(html))
    return ProcessingResult(
        processed_html=processed_html,
        plain_text=plain_text,
        has_blocked_images=has_blocked_images,
    )


async def render_message(
    envelope: MessageEnvelope,
    options: ProcessingOptions,
    *,
    fetch_attachment: AttachmentFetcher | None = None,
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS,
) -> ProcessingResult:
    if envelope.payload is None:
        raise MissingPayloadError(envelope.message_id)

    extracted = extract_body(envelope.payload)
    html = extracted.html
    if fetch_attachment is not None and extracted.inline_images:
        byte_map = await resolve_inline_images(
            extracted.inline_images,
            fetch_attachment,
            timeout_seconds=fetch_timeout_seconds,
        )
        html = embed_inline_images(html, byte_map)

    return await asyncio.to_thread(process_email_html, html, options)
