from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field

DEFAULT_INLINE_IMAGE_MIME_TYPE = "image/jpeg"


class Theme(enum.StrEnum):
    light = "light"
    dark = "dark"


@dataclass(frozen=True)
class MessagePart:
    mime_type: str
    headers: tuple[tuple[str, str], ...] = ()
    body_data: str | None = None
    attachment_id: str | None = None
    filename: str | None = None
    children: tuple[MessagePart, ...] = ()

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers:
            if key.lower() == wanted:
                return value
        return None


@dataclass(frozen=True)
class InlineImageRef:
    attachment_id: str
    content_id: str
    mime_type: str | None = None


@dataclass(frozen=True)
class ExtractedBody:
    html: str
    inline_images: list[InlineImageRef] = field(default_factory=list)


@dataclass(frozen=True)
class ResolvedAttachment:
    content_id: str
    mime_type: str
    data: bytes | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.data is not None


AttachmentByteMap = dict[str, ResolvedAttachment]
AttachmentFetcher = Callable[[str], bytes]
MessageAttachmentFetcher = Callable[[str, str], bytes]


@dataclass(frozen=True)
class ProcessingOptions:
    load_external_images: bool = False
    theme: Theme = Theme.light


@dataclass(frozen=True)
class ProcessingResult:
    processed_html: str
    plain_text: str
    has_blocked_images: bool


@dataclass(frozen=True)
class MessageEnvelope:
    message_id: str
    snippet: str = ""
    payload: MessagePart | None = None


@dataclass(frozen=True)
class MessageRenderResult:
    message_id: str
    result: ProcessingResult
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.error is not None
