"""
Request/response contract between the HTTP adapter and the store.

The adapter hands over decoded JSON bodies; this module turns them into the
store's normalized inputs and turns results and errors back into response
bodies. A single "thing" and a "things" list are folded into one item list
here, so the store only ever sees a sequence of items.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from .errors import (
    IndexCorruptError,
    NotFoundError,
    ProviderError,
    ResonanceError,
    ValidationError,
)
from .store.base import Match, ThingInput

logger = logging.getLogger("resonance.contract")


@dataclass
class EmitRequest:
    universe: Any
    items: list[ThingInput]
    replace: Optional[str] = None


@dataclass
class ResonateRequest:
    universe: Any
    text: str
    reach: Optional[int] = None


def _parse_item(raw: Any) -> ThingInput:
    """Accept {"text": ..., "id": ...} or a bare string."""
    if isinstance(raw, str):
        return ThingInput(text=raw)
    if isinstance(raw, dict):
        if "text" not in raw:
            raise ValidationError("each thing needs a text")
        return ThingInput(text=raw["text"], id=raw.get("id"))
    raise ValidationError(f"a thing must be an object or a string, got {type(raw).__name__}")


def parse_emit_request(payload: Any) -> EmitRequest:
    """
    Normalize an emit body.

    Accepts {universe, thing?, things?, replace?}. "thing" comes first when
    both are present.
    """
    if not isinstance(payload, dict):
        raise ValidationError("request body must be an object")

    items: list[ThingInput] = []
    if payload.get("thing") is not None:
        items.append(_parse_item(payload["thing"]))

    things = payload.get("things")
    if things is not None:
        if not isinstance(things, list):
            raise ValidationError("things must be a list")
        items.extend(_parse_item(raw) for raw in things)

    if not items:
        raise ValidationError("thing or things is required")

    return EmitRequest(
        universe=payload.get("universe"),
        items=items,
        replace=payload.get("replace"),
    )


def parse_resonate_request(payload: Any) -> ResonateRequest:
    """Normalize a resonate body: {universe, thing, reach?}."""
    if not isinstance(payload, dict):
        raise ValidationError("request body must be an object")

    text = payload.get("thing")
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("thing must be a non-empty string")

    return ResonateRequest(
        universe=payload.get("universe"),
        text=text,
        reach=payload.get("reach"),
    )


def format_emit_response(ids: list[str]) -> dict:
    return {"ids": ids}


def format_resonate_response(matches: list[Match]) -> dict:
    return {"results": [match.to_dict() for match in matches]}


def error_response(exc: Exception) -> tuple[int, dict]:
    """
    Map an exception to an HTTP status and body.

    Unknown exceptions are logged and reported without detail.
    """
    if isinstance(exc, ValidationError):
        return 400, {"error": str(exc)}
    if isinstance(exc, NotFoundError):
        return 404, {"error": str(exc)}
    if isinstance(exc, ProviderError):
        return 502, {"error": str(exc)}
    if isinstance(exc, IndexCorruptError):
        return 500, {"error": str(exc)}
    if not isinstance(exc, ResonanceError):
        logger.error(f"Unhandled error reached the contract boundary: {exc!r}")
    return 500, {"error": "internal error"}
