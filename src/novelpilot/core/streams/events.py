"""Boundary validation of model service event payloads."""

from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from novelpilot.core.contracts.stream import STREAM_EVENT_ADAPTER, StreamEvent

_LOG = logging.getLogger(__name__)

# Channel names used by desktop backends, accepted as aliases of the tag.
_EVENT_ALIASES = {
    "ai_stream_start": "start",
    "ai_stream_token": "token",
    "ai_stream_status": "status",
    "ai_stream_done": "done",
    "ai_error": "error",
    "ai_change_set": "change_set",
}


def parse_stream_event(payload: Any) -> StreamEvent | None:
    """Validate *payload* into a tagged stream event; ``None`` for anything unrecognised."""
    if isinstance(payload, str | bytes):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            _LOG.debug("dropping non-JSON stream payload")
            return None
    if not isinstance(payload, dict):
        _LOG.debug("dropping stream payload of type %s", type(payload).__name__)
        return None

    data = dict(payload)
    tag = data.get("type", data.get("event"))
    if isinstance(tag, str):
        data["type"] = _EVENT_ALIASES.get(tag, tag)
    data.pop("event", None)
    try:
        return STREAM_EVENT_ADAPTER.validate_python(data)
    except ValidationError as exc:
        _LOG.debug("dropping malformed stream payload: %s", exc.errors(include_url=False))
        return None
