from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal


CollisionPolicy = Literal["error", "overwrite"]

NEWLINES: dict[str, str] = {
    "native": os.linesep,
    "lf": "\n",
    "crlf": "\r\n",
}


class OptionsError(ValueError):
    pass


@dataclass(frozen=True)
class ExpandOptions:
    newline: str = os.linesep
    on_collision: CollisionPolicy = "error"

    def __post_init__(self) -> None:
        if self.on_collision not in ("error", "overwrite"):
            raise OptionsError(
                f"unknown collision policy: {self.on_collision} (choose one of: error, overwrite)"
            )


def newline_for(name: str) -> str:
    """Map a CLI newline name (native|lf|crlf) to the terminator it writes."""
    try:
        return NEWLINES[name]
    except KeyError:
        raise OptionsError(
            f"unknown newline: {name} (choose one of: {', '.join(NEWLINES)})"
        ) from None
