"""Plan ingestion: turns navigation payloads and template objects into plans.

Both entry points validate against :class:`schemas.WorkoutPlan` and return
``None`` for anything missing or malformed, so callers can fall back to an
idle session without handling exceptions.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional
from urllib.parse import parse_qs, unquote

from pydantic import ValidationError

from errors import InputError
from schemas import WorkoutPlan

logger = logging.getLogger(__name__)

PAYLOAD_PARAM = "workout"


def decode_plan_payload(raw: str | None, param: str = PAYLOAD_PARAM) -> WorkoutPlan:
    """Decode a percent-encoded JSON plan embedded in a URL.

    ``raw`` may be the encoded value itself or a query string carrying it as
    ``param``. Raises :class:`InputError` when the payload is unusable.
    """
    if raw is None or not raw.strip():
        raise InputError("no workout payload")
    text = raw.strip()
    if text.startswith("?") or text.startswith(f"{param}="):
        values = parse_qs(text.lstrip("?")).get(param)
        if not values:
            raise InputError(f"query string has no '{param}' parameter")
        text = values[0]
    else:
        text = unquote(text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise InputError(f"workout payload is not valid JSON: {e.msg}") from e
    return plan_from_template(data)


def plan_from_template(obj: Any) -> WorkoutPlan:
    """Validate a fetched template object (or decoded payload) as a plan."""
    if not isinstance(obj, dict):
        raise InputError("workout must be a JSON object")
    data = dict(obj)
    if "title" in data and "name" not in data:
        data["name"] = data.pop("title")
    data.setdefault("name", "Workout")
    if data.get("type") is None:
        data.pop("type", None)
    if not isinstance(data["name"], str) or not data["name"].strip():
        data["name"] = "Workout"
    try:
        return WorkoutPlan.model_validate(data)
    except ValidationError as e:
        raise InputError(f"invalid workout plan: {e.error_count()} error(s)") from e


def load_plan(
    payload: str | None = None, template: Any = None
) -> Optional[WorkoutPlan]:
    """Return a plan from ``payload`` or ``template`` or ``None`` if neither is valid."""
    try:
        if payload is not None:
            return decode_plan_payload(payload)
        if template is not None:
            return plan_from_template(template)
    except InputError as e:
        logger.warning("Ignoring workout plan: %s", e)
        return None
    logger.debug("No workout plan supplied")
    return None
