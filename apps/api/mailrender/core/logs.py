from __future__ import annotations

import json
import logging

logger = logging.getLogger("mailrender")


def log_event(event: str, *, level: int = logging.INFO, **fields: object) -> None:
    logger.log(
        level,
        json.dumps(
            {"event": event, **fields},
            separators=(",", ":"),
            sort_keys=True,
            default=str,
        ),
    )
