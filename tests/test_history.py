"""Tests for quorum/history.py."""

import base64
import json
from pathlib import Path

import pytest

from quorum.history import load_history, parse_history
from quorum.models import Part, Turn


def test_parse_text_turns():
    turns = parse_history([
        {"role": "user", "parts": [{"text": "Hi"}]},
        {"role": "model", "parts": [{"text": "Hello"}]},
    ])
    assert turns == (
        Turn(role="user", parts=(Part.from_text("Hi"),)),
        Turn(role="model", parts=(Part.from_text("Hello"),)),
    )


def test_parse_inline_data():
    encoded = base64.b64encode(b"\x89PNG").decode("ascii")
    turns = parse_history([
        {"role": "user", "parts": [{"inline_data": {"mime_type": "image/png", "data": encoded}}]},
    ])
    assert turns[0].parts[0] == Part.from_bytes(b"\x89PNG", "image/png")


def test_parse_rejects_unknown_role():
    with pytest.raises(ValueError, match="role"):
        parse_history([{"role": "system", "parts": [{"text": "x"}]}])


def test_parse_rejects_non_list():
    with pytest.raises(ValueError, match="list"):
        parse_history({"role": "user"})


def test_parse_rejects_bad_base64():
    with pytest.raises(ValueError, match="base64"):
        parse_history([{"role": "user", "parts": [{"inline_data": {"mime_type": "image/png", "data": "!!"}}]}])


def test_parse_rejects_empty_part():
    with pytest.raises(ValueError, match="turn 0 part 0"):
        parse_history([{"role": "user", "parts": [{}]}])


def test_load_history_from_file(tmp_path: Path):
    path = tmp_path / "chat.json"
    path.write_text(json.dumps([{"role": "user", "parts": [{"text": "Hi"}]}]), encoding="utf-8")
    assert load_history(path)[0].role == "user"


def test_load_history_invalid_json(tmp_path: Path):
    path = tmp_path / "chat.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(ValueError, match="invalid JSON"):
        load_history(path)
