from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExpandError(Exception):
    """Base error envelope. Every failure stage raises a subclass with a stable code."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<template>"
        return f"{loc}: {self.code}: {self.message}"


class SourceError(ExpandError):
    pass


class WalkError(ExpandError):
    pass


class PathCollisionError(ExpandError):
    pass


class MakeDirError(ExpandError):
    pass


class DetectError(ExpandError):
    pass


class CopyError(ExpandError):
    pass


class DataLoadError(ExpandError):
    pass


class UnsafePathError(ExpandError):
    pass
