"""Lenient JSON extraction for model output.

Completions are expected to contain a JSON object but may wrap it in prose or
markdown fences, truncate it, or break individual items. Everything here
degrades to ``None``/defaults instead of raising.
"""

import json
import logging
import math
from typing import Any, Iterator

logger = logging.getLogger(__name__)

_decoder = json.JSONDecoder()


def extract_json_object(text: str) -> dict[str, Any] | None:
    """Decode the span from the first ``{`` to the last ``}``.

    Returns:
        The decoded object, or None if there is no object or it doesn't decode.
    """
    if not text:
        return None

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to decode JSON object: {e}")
        return None

    if not isinstance(data, dict):
        return None
    return data


def iter_json_objects(text: str, start: int = 0) -> Iterator[dict[str, Any]]:
    """Yield every object in ``text`` that decodes on its own.

    Scans for ``{`` and tries to decode from there; objects that fail are
    skipped and scanning resumes at the next brace.
    """
    pos = text.find("{", start)
    while pos != -1:
        try:
            obj, end = _decoder.raw_decode(text, pos)
        except json.JSONDecodeError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(obj, dict):
            yield obj
        pos = text.find("{", end)


def get_str(data: dict[str, Any], key: str, default: str = "") -> str:
    """Return ``data[key]`` if it is a string, else the default."""
    value = data.get(key)
    return value if isinstance(value, str) else default


def get_positive_int(data: dict[str, Any], key: str, default: int) -> int:
    """Return ``data[key]`` if it is a positive whole number, else the default."""
    value = data.get(key)
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, float) and value.is_integer() and value > 0:
        return int(value)
    return default


def get_float(data: dict[str, Any], key: str, default: float) -> float:
    """Return ``data[key]`` as a finite float, else the default.

    Numeric strings are accepted; booleans are not.
    """
    value = data.get(key)
    if isinstance(value, bool) or value is None:
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default
