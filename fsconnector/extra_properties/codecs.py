"""On-disk serializations for extra-property sidecars.

Two formats exist:

- JSON: one object mapping property names to JSON scalars or lists.
- legacy: one property per line, ``name (type) = value``, where ``type``
  is ``string``, ``long``, ``double`` or ``boolean`` with an ``[]`` suffix
  for multi-valued properties. Values are comma separated; ``\\``, ``,``,
  ``=``, ``(``, ``)`` and line breaks are backslash-escaped. Lines starting
  with ``#`` are comments.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping

from ..model.types import PropertyScalar, PropertyValue

_SCALAR_TYPES = (str, int, float, bool)


def validate_properties(properties: Mapping[str, object]) -> dict[str, PropertyValue]:
    """Return a plain copy of ``properties`` or raise ``TypeError``/``ValueError``.

    Names must be non-empty strings; values must be scalars or homogeneous
    lists of scalars. Non-finite floats are rejected because neither format
    round-trips them.
    """
    out: dict[str, PropertyValue] = {}
    for name, value in properties.items():
        if not isinstance(name, str) or not name:
            raise TypeError(f"property names must be non-empty strings, got {name!r}")
        if isinstance(value, (list, tuple)):
            items = list(value)
            for item in items:
                _check_scalar(name, item)
            if len({_type_name(item) for item in items}) > 1:
                raise TypeError(f"property {name!r} mixes value types")
            out[name] = items
        else:
            _check_scalar(name, value)
            out[name] = value  # type: ignore[assignment]
    return out


def _check_scalar(name: str, value: object) -> None:
    if not isinstance(value, _SCALAR_TYPES):
        raise TypeError(f"unsupported value for property {name!r}: {type(value).__name__}")
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f"non-finite value for property {name!r}")


def _type_name(value: PropertyScalar) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "long"
    if isinstance(value, float):
        return "double"
    return "string"


# JSON ---------------------------------------------------------------------


def dump_json(properties: Mapping[str, PropertyValue]) -> bytes:
    return (json.dumps(dict(properties), indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def load_json(data: bytes) -> dict[str, PropertyValue]:
    """Parse a JSON sidecar; raises ``ValueError`` on malformed content."""
    try:
        parsed = json.loads(data.decode("utf-8"))
    except UnicodeDecodeError as exc:
        raise ValueError("sidecar is not valid UTF-8") from exc
    if not isinstance(parsed, dict):
        raise ValueError("sidecar does not contain a JSON object")
    try:
        return validate_properties(parsed)
    except TypeError as exc:
        raise ValueError(str(exc)) from exc


# Legacy -------------------------------------------------------------------

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r", ",": "\\,", "=": "\\=", "(": "\\(", ")": "\\)"}
_UNESCAPES = {"n": "\n", "r": "\r"}
_LINE_RE = re.compile(r"^((?:\\.|[^\\(])+?) \((string|long|double|boolean)(\[\])?\) = ?(.*)$")


def _escape(text: str) -> str:
    return "".join(_ESCAPES.get(char, char) for char in text)


def _unescape(text: str) -> str:
    out: list[str] = []
    chars = iter(text)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        following = next(chars, "")
        out.append(_UNESCAPES.get(following, following))
    return "".join(out)


def _split_values(raw: str) -> list[str]:
    """Split on unescaped commas, keeping escapes for ``_unescape``."""
    parts: list[str] = []
    current: list[str] = []
    escaped = False
    for char in raw:
        if escaped:
            current.append(char)
            escaped = False
        elif char == "\\":
            current.append(char)
            escaped = True
        elif char == ",":
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [parts[0]] + [part[1:] if part.startswith(" ") else part for part in parts[1:]]


def _format_scalar(value: PropertyScalar) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    return _escape(value)


def _parse_scalar(type_name: str, raw: str) -> PropertyScalar:
    text = _unescape(raw)
    if type_name == "boolean":
        if text not in ("true", "false"):
            raise ValueError(f"invalid boolean value: {text!r}")
        return text == "true"
    if type_name == "long":
        return int(text)
    if type_name == "double":
        return float(text)
    return text


def dump_legacy(properties: Mapping[str, PropertyValue]) -> bytes:
    lines = ["# extra properties"]
    for name in sorted(properties):
        value = properties[name]
        if isinstance(value, list):
            type_name = _type_name(value[0]) if value else "string"
            rendered = ", ".join(_format_scalar(item) for item in value)
            lines.append(f"{_escape(name)} ({type_name}[]) = {rendered}")
        else:
            lines.append(f"{_escape(name)} ({_type_name(value)}) = {_format_scalar(value)}")
    return ("\n".join(lines) + "\n").encode("utf-8")


def load_legacy(data: bytes) -> dict[str, PropertyValue]:
    """Parse a legacy sidecar; raises ``ValueError`` on malformed lines."""
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError("sidecar is not valid UTF-8") from exc

    out: dict[str, PropertyValue] = {}
    for line_no, line in enumerate(text.splitlines(), start=1):
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        match = _LINE_RE.match(line)
        if match is None:
            raise ValueError(f"malformed sidecar line {line_no}: {line!r}")
        raw_name, type_name, multi, raw_value = match.groups()
        name = _unescape(raw_name)
        if multi:
            out[name] = [] if raw_value == "" else [
                _parse_scalar(type_name, part) for part in _split_values(raw_value)
            ]
        else:
            out[name] = _parse_scalar(type_name, raw_value)
    return out


__all__ = [
    "validate_properties",
    "dump_json",
    "load_json",
    "dump_legacy",
    "load_legacy",
]
