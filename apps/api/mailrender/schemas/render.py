from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from mailrender.services.render.types import ProcessingOptions, Theme


class RenderOptionsIn(BaseModel):
    load_external_images: bool | None = None
    theme: Theme | None = None

    def to_options(self, *, default_theme: Theme, load_external_images: bool) -> ProcessingOptions:
        return ProcessingOptions(
            load_external_images=(
                load_external_images
                if self.load_external_images is None
                else self.load_external_images
            ),
            theme=self.theme or default_theme,
        )


class RenderHtmlRequest(RenderOptionsIn):
    html: str = Field(min_length=1)


class ProcessingResultOut(BaseModel):
    processed_html: str
    plain_text: str
    has_blocked_images: bool


class MessageIn(BaseModel):
    id: str = Field(min_length=1)
    snippet: str = ""
    payload: dict[str, Any] | None = None


class RenderMessagesRequest(BaseModel):
    messages: list[MessageIn]
    options: RenderOptionsIn = Field(default_factory=RenderOptionsIn)


class MessageRenderOut(ProcessingResultOut):
    id: str
    error: str | None


class RenderMessagesResponse(BaseModel):
    results: list[MessageRenderOut]


class ThreadRenderResponse(RenderMessagesResponse):
    thread_id: str
