from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from functools import partial

from mailrender.core.config import get_settings
from mailrender.core.logs import log_event
from mailrender.core.metrics import observe_message_rendered
from mailrender.services.render.pipeline import render_message
from mailrender.services.render.types import (
    MessageAttachmentFetcher,
    MessageEnvelope,
    MessageRenderResult,
    ProcessingOptions,
    ProcessingResult,
)


def degraded_result(envelope: MessageEnvelope, *, error: str) -> MessageRenderResult:
    return MessageRenderResult(
        message_id=envelope.message_id,
        result=ProcessingResult(
            processed_html="",
            plain_text=envelope.snippet or "",
            has_blocked_images=False,
        ),
        error=error,
    )


async def render_messages(
    envelopes: Sequence[MessageEnvelope],
    options: ProcessingOptions,
    *,
    fetch_attachment: MessageAttachmentFetcher | None = None,
    max_concurrency: int | None = None,
    message_timeout_seconds: float | None = None,
    fetch_timeout_seconds: float | None = None,
) -> list[MessageRenderResult]:
    """Render every envelope, at most ``max_concurrency`` at a time.

    Results come back in input order. A message that fails or times out is
    reported as a degraded result carrying its snippet; siblings are unaffected.
    """
    settings = get_settings()
    limit = max(1, max_concurrency or settings.RENDER_MAX_CONCURRENCY)
    message_timeout = message_timeout_seconds or settings.MESSAGE_RENDER_TIMEOUT_SECONDS
    fetch_timeout = fetch_timeout_seconds or settings.ATTACHMENT_FETCH_TIMEOUT_SECONDS
    semaphore = asyncio.Semaphore(limit)

    async def _render_one(envelope: MessageEnvelope) -> MessageRenderResult:
        async with semaphore:
            start = time.perf_counter()
            fetch = (
                partial(fetch_attachment, envelope.message_id)
                if fetch_attachment is not None
                else None
            )
            try:
                result = await asyncio.wait_for(
                    render_message(
                        envelope,
                        options,
                        fetch_attachment=fetch,
                        fetch_timeout_seconds=fetch_timeout,
                    ),
                    timeout=message_timeout,
                )
            except TimeoutError:
                outcome = degraded_result(envelope, error="timeout")
            except Exception as e:  # noqa: BLE001
                outcome = degraded_result(envelope, error=str(e) or e.__class__.__name__)
            else:
                outcome = MessageRenderResult(message_id=envelope.message_id, result=result)

            observe_message_rendered(
                outcome="degraded" if outcome.degraded else "ok",
                duration_seconds=time.perf_counter() - start,
            )
            if outcome.degraded:
                log_event(
                    "render.message.degraded",
                    level=logging.WARNING,
                    message_id=envelope.message_id,
                    error=outcome.error,
                )
            return outcome

    return list(await asyncio.gather(*(_render_one(e) for e in envelopes)))
