import json
import re
from typing import Any, Dict, List, Optional, Union

from docflow.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCED_OBJECT = re.compile(r"```(?:json)?\s*(\{[\s\S]*?\})\s*```", re.IGNORECASE)
_BARE_OBJECT = re.compile(r"(\{[\s\S]*\})")


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from model output, tolerating common formatting noise.

    Handles:
    - Markdown code blocks (```json ... ```), anywhere in the text
    - Commentary before or after the JSON value
    - Several concatenated objects (merged key-by-key)

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON value or None if nothing parseable was found
    """
    if not text:
        return None

    cleaned_text = text.strip()

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.debug(f"Direct JSON parse failed: {e}, attempting extraction...")

    fenced = _FENCED_OBJECT.search(cleaned_text)
    if fenced:
        try:
            return json.loads(fenced.group(1))
        except json.JSONDecodeError:
            LOGGER.debug("Fenced block is not valid JSON")

    bare = _BARE_OBJECT.search(cleaned_text)
    if bare:
        candidate = bare.group(1)
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            merged = _parse_concatenated_json(candidate)
            if merged is not None:
                return merged

    LOGGER.warning("Failed to extract JSON from model output")
    return None


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Like :func:`parse_json_safely` but only accepts a top-level object."""
    parsed = parse_json_safely(text)
    if isinstance(parsed, dict):
        return parsed
    return None


def _parse_concatenated_json(text: str) -> Optional[Dict[str, Any]]:
    """Decode consecutive JSON objects and merge them into one dict."""
    decoder = json.JSONDecoder()
    objects = []
    idx = 0

    while idx < len(text):
        start = text.find("{", idx)
        if start == -1:
            break
        try:
            obj, end_idx = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            idx = start + 1
            continue
        if isinstance(obj, dict):
            objects.append(obj)
        idx = end_idx

    if not objects:
        return None

    merged: Dict[str, Any] = {}
    for obj in objects:
        for key, value in obj.items():
            existing = merged.get(key)
            if isinstance(existing, dict) and isinstance(value, dict):
                merged[key] = {**existing, **value}
            elif isinstance(existing, list) and isinstance(value, list):
                merged[key] = existing + value
            else:
                merged[key] = value
    return merged
