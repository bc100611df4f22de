from __future__ import annotations

import httpx
import pytest
from conftest import b64url

from mailrender.services.google.gmail import (
    MAX_PART_DEPTH,
    GmailApiError,
    get_attachment_bytes,
    get_message,
    get_thread_messages,
    parse_message_part,
)
from mailrender.services.render.errors import InvalidMessagePartError

GMAIL = "https://gmail.googleapis.com/gmail/v1/users/me"


def _payload(html: str = "<p>hello</p>") -> dict:
    return {
        "mimeType": "multipart/alternative",
        "headers": [{"name": "Subject", "value": "Hi"}],
        "body": {"size": 0},
        "parts": [
            {"mimeType": "text/plain", "body": {"data": b64url("hello")}},
            {"mimeType": "text/html", "body": {"data": b64url(html)}},
        ],
    }


def _client(handler) -> httpx.Client:  # type: ignore[no-untyped-def]
    return httpx.Client(transport=httpx.MockTransport(handler), timeout=10.0)


def test_parse_message_part_builds_tree() -> None:
    part = parse_message_part(
        {
            "mimeType": "multipart/related",
            "parts": [
                _payload(),
                {
                    "mimeType": "image/png",
                    "filename": "logo.png",
                    "headers": [
                        {"name": "Content-ID", "value": "<logo>"},
                        {"name": "Content-Disposition", "value": "inline"},
                    ],
                    "body": {"attachmentId": "att-1", "size": 120},
                },
            ],
        }
    )

    assert part.mime_type == "multipart/related"
    assert not part.is_leaf
    alternative, image = part.children
    assert alternative.header("subject") == "Hi"
    assert [c.mime_type for c in alternative.children] == ["text/plain", "text/html"]
    assert image.attachment_id == "att-1"
    assert image.filename == "logo.png"
    assert image.header("content-id") == "<logo>"


def test_parse_message_part_normalizes_empty_leaves() -> None:
    part = parse_message_part({"body": {"size": 0}})

    assert part.mime_type == "application/octet-stream"
    assert part.body_data == ""
    assert part.is_leaf


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "text",
        {"mimeType": 5},
        {"mimeType": "multipart/mixed", "parts": "nope"},
        {"mimeType": "text/plain", "headers": [{"value": "no name"}]},
        {"mimeType": "text/plain", "body": []},
    ],
)
def test_parse_message_part_rejects_malformed_payloads(payload: object) -> None:
    with pytest.raises(InvalidMessagePartError):
        parse_message_part(payload)


def test_parse_message_part_limits_depth() -> None:
    payload: dict = {"mimeType": "text/plain", "body": {"data": b64url("x")}}
    for _ in range(MAX_PART_DEPTH + 1):
        payload = {"mimeType": "multipart/mixed", "parts": [payload]}

    with pytest.raises(InvalidMessagePartError):
        parse_message_part(payload)


def test_get_message_parses_payload() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers.get("Authorization") == "Bearer token-1"
        assert request.url.params.get("format") == "full"
        assert str(request.url).startswith(f"{GMAIL}/messages/m-1")
        return httpx.Response(
            200,
            json={
                "id": "m-1",
                "threadId": "t-1",
                "snippet": "hello",
                "labelIds": ["INBOX"],
                "internalDate": "1700000000000",
                "payload": _payload(),
            },
        )

    with _client(handler) as client:
        message = get_message(client, access_token="token-1", message_id="m-1")

    assert message.id == "m-1"
    assert message.payload is not None
    assert len(message.payload.children) == 2


def test_get_message_ignores_out_of_range_metadata() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "id": "m-1",
                "threadId": ["not", "a", "string"],
                "snippet": "hello",
                "labelIds": "INBOX",
                "internalDate": "99999999999999999999",
                "payload": _payload(),
            },
        )

    with _client(handler) as client:
        message = get_message(client, access_token="token-1", message_id="m-1")

    assert message.id == "m-1"
    assert message.snippet == "hello"
    assert message.payload is not None


def test_get_thread_messages_degrades_invalid_payloads() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url).startswith(f"{GMAIL}/threads/t-1")
        return httpx.Response(
            200,
            json={
                "id": "t-1",
                "messages": [
                    {"id": "m-1", "snippet": "one", "payload": _payload()},
                    {"id": "m-2", "snippet": "two", "payload": {"parts": "broken"}},
                    {"snippet": "no id"},
                ],
            },
        )

    with _client(handler) as client:
        messages = get_thread_messages(client, access_token="token-1", thread_id="t-1")

    assert [m.id for m in messages] == ["m-1", "m-2"]
    assert messages[0].payload is not None
    assert messages[1].payload is None
    assert messages[1].snippet == "two"


def test_get_attachment_bytes_decodes_base64url() -> None:
    raw = b"\xff\xfe\xfdbinary"

    def handler(request: httpx.Request) -> httpx.Response:
        assert str(request.url) == f"{GMAIL}/messages/m-1/attachments/att-1"
        return httpx.Response(200, json={"size": len(raw), "data": b64url(raw)})

    with _client(handler) as client:
        data = get_attachment_bytes(
            client, access_token="token-1", message_id="m-1", attachment_id="att-1"
        )

    assert data == raw


def test_gmail_errors_carry_status_and_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            404, json={"error": {"code": 404, "message": "Requested entity was not found."}}
        )

    with _client(handler) as client:
        with pytest.raises(GmailApiError) as exc:
            get_message(client, access_token="token-1", message_id="missing")

    assert exc.value.status_code == 404
    assert str(exc.value) == "Requested entity was not found."


def test_gmail_errors_fall_back_to_default_message() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream exploded")

    with _client(handler) as client:
        with pytest.raises(GmailApiError) as exc:
            get_thread_messages(client, access_token="token-1", thread_id="t-1")

    assert exc.value.status_code == 500
    assert str(exc.value) == "Gmail thread fetch failed"
