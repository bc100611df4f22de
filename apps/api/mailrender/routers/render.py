from __future__ import annotations

import asyncio
import logging

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException, status

from mailrender.core.config import get_settings
from mailrender.core.http import get_http_client
from mailrender.core.logs import log_event
from mailrender.schemas.render import (
    MessageRenderOut,
    ProcessingResultOut,
    RenderHtmlRequest,
    RenderMessagesRequest,
    RenderMessagesResponse,
    RenderOptionsIn,
    ThreadRenderResponse,
)
from mailrender.services.google.gmail import (
    GmailApiError,
    get_attachment_bytes,
    get_thread_messages,
    parse_message_part,
)
from mailrender.services.render.batch import degraded_result, render_messages
from mailrender.services.render.errors import InvalidMessagePartError
from mailrender.services.render.pipeline import process_email_html
from mailrender.services.render.types import (
    MessageEnvelope,
    MessageRenderResult,
    ProcessingOptions,
    Theme,
)

router = APIRouter(prefix="/render", tags=["render"])


def _resolve_options(options: RenderOptionsIn) -> ProcessingOptions:
    settings = get_settings()
    return options.to_options(
        default_theme=settings.DEFAULT_THEME,
        load_external_images=settings.DEFAULT_LOAD_EXTERNAL_IMAGES,
    )


def _bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return token.strip()


def _to_out(item: MessageRenderResult) -> MessageRenderOut:
    return MessageRenderOut(
        id=item.message_id,
        processed_html=item.result.processed_html,
        plain_text=item.result.plain_text,
        has_blocked_images=item.result.has_blocked_images,
        error=item.error,
    )


@router.post("/html", response_model=ProcessingResultOut)
def render_html(payload: RenderHtmlRequest) -> ProcessingResultOut:
    result = process_email_html(payload.html, _resolve_options(payload))
    return ProcessingResultOut(
        processed_html=result.processed_html,
        plain_text=result.plain_text,
        has_blocked_images=result.has_blocked_images,
    )


@router.post("/messages", response_model=RenderMessagesResponse)
async def render_message_batch(payload: RenderMessagesRequest) -> RenderMessagesResponse:
    options = _resolve_options(payload.options)

    envelopes: list[MessageEnvelope] = []
    rejected: dict[int, MessageRenderResult] = {}
    for idx, message in enumerate(payload.messages):
        envelope = MessageEnvelope(message_id=message.id, snippet=message.snippet)
        if message.payload is None:
            envelopes.append(envelope)
            continue
        try:
            part = parse_message_part(message.payload)
        except InvalidMessagePartError as e:
            log_event(
                "gmail.payload.invalid",
                level=logging.WARNING,
                message_id=message.id,
                error=str(e),
            )
            rejected[idx] = degraded_result(envelope, error=f"invalid payload: {e}")
            continue
        envelopes.append(
            MessageEnvelope(message_id=message.id, snippet=message.snippet, payload=part)
        )

    rendered = iter(await render_messages(envelopes, options))
    results = [
        rejected[idx] if idx in rejected else next(rendered)
        for idx in range(len(payload.messages))
    ]
    return RenderMessagesResponse(results=[_to_out(item) for item in results])


@router.get("/gmail/threads/{thread_id}", response_model=ThreadRenderResponse)
async def render_gmail_thread(
    thread_id: str,
    load_external_images: bool | None = None,
    theme: Theme | None = None,
    authorization: str | None = Header(default=None),
    http_client: httpx.Client = Depends(get_http_client),
) -> ThreadRenderResponse:
    access_token = _bearer_token(authorization)
    options = _resolve_options(
        RenderOptionsIn(load_external_images=load_external_images, theme=theme)
    )

    try:
        messages = await asyncio.to_thread(
            get_thread_messages,
            http_client,
            access_token=access_token,
            thread_id=thread_id,
        )
    except GmailApiError as e:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Gmail API error ({e.status_code}): {e}",
        ) from e

    def _fetch_attachment(message_id: str, attachment_id: str) -> bytes:
        return get_attachment_bytes(
            http_client,
            access_token=access_token,
            message_id=message_id,
            attachment_id=attachment_id,
        )

    envelopes = [
        MessageEnvelope(message_id=m.id, snippet=m.snippet, payload=m.payload)
        for m in messages
    ]
    results = await render_messages(envelopes, options, fetch_attachment=_fetch_attachment)
    return ThreadRenderResponse(
        thread_id=thread_id,
        results=[_to_out(item) for item in results],
    )
