from __future__ import annotations

import os
import sys

import httpx

SAMPLE_HTML = (
    "<html><head><style>p { color: red; }</style></head><body>"
    '<span class="preheader">preview text</span>'
    "<p>Hello from the smoke test.</p>"
    '<img src="https://tracker.example/open.gif" width="1" height="1">'
    '<img src="https://images.example/banner.png">'
    "<blockquote>Earlier message</blockquote>"
    "<script>alert(1)</script>"
    "</body></html>"
)


def _assert_ok(response: httpx.Response, *, label: str) -> None:
    if response.status_code >= 400:
        raise RuntimeError(f"{label} failed: HTTP {response.status_code} body={response.text}")


def main() -> None:
    base_url = os.environ.get("API_BASE_URL", "http://localhost:8000")
    thread_id = os.environ.get("SMOKE_GMAIL_THREAD_ID")
    access_token = os.environ.get("SMOKE_GMAIL_ACCESS_TOKEN")

    with httpx.Client(base_url=base_url, timeout=20.0) as client:
        health = client.get("/healthz")
        _assert_ok(health, label="GET /healthz")
        print("ok: GET /healthz")

        rendered = client.post("/render/html", json={"html": SAMPLE_HTML})
        _assert_ok(rendered, label="POST /render/html")
        body = rendered.json()
        if "alert(1)" in body["processed_html"] or not body["has_blocked_images"]:
            raise RuntimeError(f"POST /render/html returned unsafe output: {body}")
        print(f"ok: POST /render/html plain_text={body['plain_text']!r}")

        batch = client.post(
            "/render/messages",
            json={"messages": [{"id": "smoke-1", "snippet": "no payload", "payload": None}]},
        )
        _assert_ok(batch, label="POST /render/messages")
        print(f"ok: POST /render/messages error={batch.json()['results'][0]['error']!r}")

        if thread_id and access_token:
            thread = client.get(
                f"/render/gmail/threads/{thread_id}",
                headers={"Authorization": f"Bearer {access_token}"},
            )
            _assert_ok(thread, label="GET /render/gmail/threads/{id}")
            count = len(thread.json()['results'])
            print(f"ok: GET /render/gmail/threads/{thread_id} messages={count}")

        metrics = client.get("/metrics")
        if metrics.status_code == 200:
            print("ok: GET /metrics")

    print(f"smoke complete: {base_url}")


if __name__ == "__main__":
    try:
        main()
    except Exception as exc:  # noqa: BLE001
        print(f"smoke failed: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc
