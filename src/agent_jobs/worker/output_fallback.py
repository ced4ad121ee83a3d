"""Best-effort result payload recovery from worker stdout."""

from __future__ import annotations

import json
import re

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


def recover_payload_from_stdout(stdout_text: str) -> dict[str, object] | None:
    """Try to recover a JSON object from plain worker stdout.

    Accepts a bare JSON document, a fenced ```json block, or the widest
    ``{...}`` span in the text. CLI agents that print a JSON envelope with a
    ``result`` string field are unwrapped one level.
    """

    text = stdout_text.strip()
    if not text:
        return None

    payload = _parse_json_payload(text)
    if payload is None:
        return None
    inner = payload.get("result")
    if isinstance(inner, str) and "type" in payload:
        unwrapped = _parse_json_payload(inner.strip())
        if unwrapped is not None:
            return unwrapped
    return payload


def _parse_json_payload(text: str) -> dict[str, object] | None:
    direct = _try_load_dict(text)
    if direct is not None:
        return direct

    fenced = _FENCED_JSON.search(text)
    if fenced is not None:
        payload = _try_load_dict(fenced.group(1))
        if payload is not None:
            return payload

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return _try_load_dict(text[start : end + 1])


def _try_load_dict(raw: str) -> dict[str, object] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed
