"""Conversation history file parsing (JSON list of role/parts turns)."""

import base64
import binascii
import json
from pathlib import Path

from quorum.models import Part, Turn

_ROLES = ("user", "model")


def _parse_part(raw: dict, where: str) -> Part:
    if "text" in raw:
        return Part.from_text(str(raw["text"]))
    inline = raw.get("inline_data")
    if isinstance(inline, dict) and "data" in inline and "mime_type" in inline:
        try:
            data = base64.b64decode(inline["data"], validate=True)
        except (binascii.Error, TypeError) as exc:
            raise ValueError(f"{where}: inline_data is not valid base64") from exc
        return Part.from_bytes(data, str(inline["mime_type"]))
    raise ValueError(f"{where}: part must have 'text' or 'inline_data'")


def parse_history(raw: list) -> tuple[Turn, ...]:
    """Convert decoded JSON into immutable turns.

    Raises:
        ValueError: If the structure or a role is invalid.
    """
    if not isinstance(raw, list):
        raise ValueError("History must be a JSON list of turns")
    turns: list[Turn] = []
    for i, turn_raw in enumerate(raw):
        where = f"turn {i}"
        if not isinstance(turn_raw, dict):
            raise ValueError(f"{where}: expected an object")
        role = turn_raw.get("role")
        if role not in _ROLES:
            raise ValueError(f"{where}: role must be one of {', '.join(_ROLES)}, got {role!r}")
        parts_raw = turn_raw.get("parts") or []
        parts = tuple(_parse_part(p, f"{where} part {j}") for j, p in enumerate(parts_raw))
        turns.append(Turn(role=role, parts=parts))
    return tuple(turns)


def load_history(path: Path) -> tuple[Turn, ...]:
    """Read a history JSON file. Raises ValueError on malformed content."""
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path}: invalid JSON ({exc})") from exc
    return parse_history(raw)
