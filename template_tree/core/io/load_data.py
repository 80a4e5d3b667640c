from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import yaml

from template_tree.core.errors import DataLoadError


_SCALARS = (str, int, float, bool, type(None))

# suffix -> (parser, error code when the parser rejects the text)
_PARSERS: dict[str, tuple[Callable[[str], Any], str]] = {
    ".yaml": (yaml.safe_load, "E_YAML_PARSE"),
    ".yml": (yaml.safe_load, "E_YAML_PARSE"),
    ".json": (json.loads, "E_JSON_PARSE"),
}


def load_data(path: str) -> dict[str, Any]:
    """Read variable bindings for an expansion.

    A bindings file is a flat YAML or JSON mapping, e.g. `name: demo`.
    An empty YAML document means no bindings.
    """
    source = Path(path)
    if not source.is_file():
        raise DataLoadError(
            code="E_FILE_NOT_FOUND",
            message="bindings file not found",
            file=str(source),
        )

    parser = _PARSERS.get(source.suffix.lower())
    if parser is None:
        raise DataLoadError(
            code="E_UNSUPPORTED_FORMAT",
            message=f"cannot read bindings from '{source.suffix or source.name}' (use .yaml, .yml or .json)",
            file=str(source),
        )
    parse, parse_code = parser

    try:
        text = source.read_text(encoding="utf-8")
    except OSError as e:  # pragma: no cover
        raise DataLoadError(code="E_FILE_READ", message=str(e), file=str(source)) from e

    try:
        bindings = parse(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise DataLoadError(code=parse_code, message=str(e), file=str(source)) from e

    if bindings is None:
        return {}
    if not isinstance(bindings, dict):
        raise DataLoadError(
            code="E_INVALID_TOP_LEVEL",
            message=f"bindings must be a mapping of names to values, got {type(bindings).__name__}",
            file=str(source),
        )

    for name, value in bindings.items():
        if not isinstance(name, str):
            raise DataLoadError(
                code="E_INVALID_KEY",
                message=f"variable names must be strings, got {name!r}",
                file=str(source),
            )
        if not isinstance(value, _SCALARS):
            raise DataLoadError(
                code="E_INVALID_VALUE",
                message=f"variable '{name}' must be a scalar (string, number, boolean or null)",
                file=str(source),
                path=name,
            )
    return dict(bindings)


def parse_assignments(items: list[str]) -> dict[str, str]:
    """Parse KEY=VALUE pairs. The value may contain '='; the key may not be empty."""
    out: dict[str, str] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise DataLoadError(
                code="E_INVALID_ASSIGNMENT",
                message=f"expected KEY=VALUE, got: {item}",
                path="set",
            )
        out[key] = value
    return out
