from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass

import httpx

from mailrender.core.logs import log_event
from mailrender.services.render.errors import InvalidMessagePartError
from mailrender.services.render.types import MessagePart

GMAIL_MESSAGES_URL = "https://gmail.googleapis.com/gmail/v1/users/me/messages"
GMAIL_THREADS_URL = "https://gmail.googleapis.com/gmail/v1/users/me/threads"

MAX_PART_DEPTH = 32


@dataclass(frozen=True)
class GmailMessage:
    id: str
    snippet: str
    payload: MessagePart | None


class GmailApiError(RuntimeError):
    def __init__(self, *, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code


def parse_message_part(payload: object, *, depth: int = 0) -> MessagePart:
    if depth > MAX_PART_DEPTH:
        raise InvalidMessagePartError(f"message part nesting exceeds {MAX_PART_DEPTH}")
    if not isinstance(payload, dict):
        raise InvalidMessagePartError("message part must be an object")

    mime_type = payload.get("mimeType")
    if mime_type is not None and not isinstance(mime_type, str):
        raise InvalidMessagePartError("mimeType must be a string")

    headers: list[tuple[str, str]] = []
    raw_headers = payload.get("headers") or []
    if not isinstance(raw_headers, list):
        raise InvalidMessagePartError("headers must be a list")
    for item in raw_headers:
        if not isinstance(item, dict) or not isinstance(item.get("name"), str):
            raise InvalidMessagePartError("header entries must be name/value objects")
        value = item.get("value")
        headers.append((item["name"], value if isinstance(value, str) else ""))

    raw_parts = payload.get("parts")
    if raw_parts is not None and not isinstance(raw_parts, list):
        raise InvalidMessagePartError("parts must be a list")
    children = tuple(parse_message_part(p, depth=depth + 1) for p in raw_parts or [])

    body = payload.get("body")
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise InvalidMessagePartError("body must be an object")
    data = body.get("data") if isinstance(body.get("data"), str) else None
    attachment_id = body.get("attachmentId") if isinstance(body.get("attachmentId"), str) else None

    if children:
        data = None
        attachment_id = None
    elif data is None and attachment_id is None:
        # Empty leaves still carry a (blank) body so every node is a leaf or a container.
        data = ""

    filename = payload.get("filename")
    return MessagePart(
        mime_type=mime_type or "application/octet-stream",
        headers=tuple(headers),
        body_data=data,
        attachment_id=attachment_id,
        filename=filename if isinstance(filename, str) and filename else None,
        children=children,
    )


def get_message(
    client: httpx.Client,
    *,
    access_token: str,
    message_id: str,
) -> GmailMessage:
    res = client.get(
        f"{GMAIL_MESSAGES_URL}/{message_id}",
        params={"format": "full"},
        headers={"Authorization": f"Bearer {access_token}"},
    )
    _raise_for_gmail_error(res, default_message="Gmail message fetch failed")
    return _parse_message(res.json(), fallback_id=message_id)


def get_thread_messages(
    client: httpx.Client,
    *,
    access_token: str,
    thread_id: str,
) -> list[GmailMessage]:
    res = client.get(
        f"{GMAIL_THREADS_URL}/{thread_id}",
        params={"format": "full"},
        headers={"Authorization": f"Bearer {access_token}"},
    )
    _raise_for_gmail_error(res, default_message="Gmail thread fetch failed")

    payload = res.json()
    messages: list[GmailMessage] = []
    for item in payload.get("messages") or []:
        if not isinstance(item, dict) or not item.get("id"):
            continue
        messages.append(_parse_message(item, fallback_id=item["id"]))
    return messages


def get_attachment_bytes(
    client: httpx.Client,
    *,
    access_token: str,
    message_id: str,
    attachment_id: str,
) -> bytes:
    res = client.get(
        f"{GMAIL_MESSAGES_URL}/{message_id}/attachments/{attachment_id}",
        headers={"Authorization": f"Bearer {access_token}"},
    )
    _raise_for_gmail_error(res, default_message="Gmail attachment fetch failed")

    data = res.json().get("data")
    if not data:
        raise GmailApiError(status_code=502, message="Gmail attachment payload missing data")
    try:
        return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
    except (binascii.Error, ValueError) as e:
        raise GmailApiError(status_code=502, message="Gmail attachment data is not base64") from e


def _parse_message(item: dict, *, fallback_id: str) -> GmailMessage:
    message_id = item.get("id") or fallback_id
    try:
        part = parse_message_part(item.get("payload"))
    except InvalidMessagePartError as e:
        log_event(
            "gmail.payload.invalid",
            level=logging.WARNING,
            message_id=message_id,
            error=str(e),
        )
        part = None

    return GmailMessage(
        id=message_id,
        snippet=item.get("snippet") or "",
        payload=part,
    )


def _raise_for_gmail_error(res: httpx.Response, *, default_message: str) -> None:
    if res.status_code < 400:
        return

    message = default_message
    try:
        payload = res.json()
        message = payload.get("error", {}).get("message") or default_message
    except Exception:  # noqa: BLE001
        message = default_message

    raise GmailApiError(status_code=res.status_code, message=message)
