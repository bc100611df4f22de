from __future__ import annotations

import base64
from collections.abc import Generator

import pytest

from mailrender.core.config import get_settings
from mailrender.services.render.types import MessagePart


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch) -> Generator[None, None, None]:
    monkeypatch.setenv("APP_ENV", "test")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def b64url(text: str | bytes) -> str:
    raw = text.encode("utf-8") if isinstance(text, str) else text
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def leaf(mime_type: str, text: str | None = None, **kwargs) -> MessagePart:
    headers = tuple(kwargs.pop("headers", {}).items())
    return MessagePart(
        mime_type=mime_type,
        headers=headers,
        body_data=b64url(text) if text is not None else None,
        **kwargs,
    )


def multipart(mime_type: str, *children: MessagePart) -> MessagePart:
    return MessagePart(mime_type=mime_type, children=tuple(children))


def inline_image(
    attachment_id: str,
    content_id: str,
    *,
    mime_type: str = "image/png",
) -> MessagePart:
    return MessagePart(
        mime_type=mime_type,
        headers=(
            ("Content-Disposition", 'inline; filename="logo.png"'),
            ("Content-ID", f"<{content_id}>"),
        ),
        attachment_id=attachment_id,
        filename="logo.png",
    )
