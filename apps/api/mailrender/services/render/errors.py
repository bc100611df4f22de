from __future__ import annotations


class RenderError(RuntimeError):
    pass


class MissingPayloadError(RenderError):
    def __init__(self, message_id: str) -> None:
        super().__init__(f"message {message_id} has no payload")
        self.message_id = message_id


class InvalidMessagePartError(ValueError):
    pass
