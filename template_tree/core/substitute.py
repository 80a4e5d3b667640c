from __future__ import annotations

import posixpath
import re
from functools import lru_cache
from typing import Any, Mapping, Union

# Fixed delimiter pairs.
PATH_OPEN = "@"
PATH_CLOSE = "@"
CONTENT_OPEN = "__"
CONTENT_CLOSE = "__"
HIDDEN_PREFIX = "__"

Scalar = Union[str, int, float, bool, None]
Bindings = Mapping[str, Any]


def stringify(value: Any) -> str:
    """Render a bound value. None (and absence) render as an empty string."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@lru_cache(maxsize=None)
def _pattern(open_delim: str, close_delim: str) -> re.Pattern[str]:
    return re.compile(f"{re.escape(open_delim)}(.*?){re.escape(close_delim)}")


def replace_vars(text: str, data: Bindings, open_delim: str, close_delim: str) -> str:
    """Replace every `open + key + close` token in text with data[key].

    Matching is non-greedy and non-overlapping; substituted values are not
    rescanned.
    """
    return _pattern(open_delim, close_delim).sub(lambda m: stringify(data.get(m.group(1))), text)


def find_vars(text: str, open_delim: str, close_delim: str) -> list[str]:
    return _pattern(open_delim, close_delim).findall(text)


def translate_path(relative_path: str, data: Bindings) -> str:
    """Translate a template-relative POSIX path into its output path.

    A leading hidden-prefix marker becomes a single dot (leading occurrence
    only), then `@name@` tokens are substituted. Segments left empty by a
    missing value are dropped, so the result never starts with a slash.
    """
    if relative_path.startswith(HIDDEN_PREFIX):
        relative_path = "." + relative_path[len(HIDDEN_PREFIX):]
    translated = replace_vars(relative_path, data, PATH_OPEN, PATH_CLOSE)
    segments = [s for s in translated.split("/") if s]
    if not segments:
        return ""
    return posixpath.normpath("/".join(segments))


def translate_line(line: str, data: Bindings) -> str:
    return replace_vars(line, data, CONTENT_OPEN, CONTENT_CLOSE)
