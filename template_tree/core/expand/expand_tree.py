from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Mapping, Optional

from template_tree.core.detect import is_binary_file
from template_tree.core.errors import (
    CopyError,
    DetectError,
    MakeDirError,
    PathCollisionError,
    SourceError,
    UnsafePathError,
    WalkError,
)
from template_tree.core.expand.options import ExpandOptions
from template_tree.core.substitute import (
    CONTENT_CLOSE,
    CONTENT_OPEN,
    PATH_CLOSE,
    PATH_OPEN,
    find_vars,
    translate_line,
    translate_path,
)

logger = logging.getLogger(__name__)

OnFile = Callable[[str], None]
OnDone = Callable[[Optional[BaseException]], None]


def _scan(directory: Path) -> tuple[list[Path], list[Path]]:
    """List one directory: (regular files, subdirectories), both sorted.

    Symlinks to files count as files; symlinked directories are not descended.
    """
    files: list[Path] = []
    dirs: list[Path] = []
    with os.scandir(directory) as it:
        for entry in it:
            if entry.is_dir(follow_symlinks=False):
                dirs.append(Path(entry.path))
            elif entry.is_file():
                files.append(Path(entry.path))
    return sorted(files), sorted(dirs)


def _resolve_source(source: str | os.PathLike[str]) -> Path:
    root = Path(source).resolve()
    if not root.exists():
        raise SourceError(
            code="E_SOURCE_NOT_FOUND",
            message="template directory does not exist",
            file=str(root),
        )
    if not root.is_dir():
        raise SourceError(
            code="E_SOURCE_NOT_DIR",
            message="template source must be a directory",
            file=str(root),
        )
    return root


class TreeExpander:
    """One expansion run.

    Owns the join state: one task for the walk plus one per discovered file.
    The first failure is recorded in `error`; once set, no further file
    callback fires and the remaining tasks are cancelled.
    """

    def __init__(
        self,
        source: str | os.PathLike[str],
        dest: str | os.PathLike[str],
        data: Mapping[str, Any] | None = None,
        *,
        on_file: OnFile | None = None,
        options: ExpandOptions | None = None,
    ) -> None:
        self.source = Path(source)
        self.dest = Path(dest)
        self.data: Mapping[str, Any] = data or {}
        self.on_file = on_file
        self.options = options or ExpandOptions()

        self.error: Exception | None = None
        self.written: list[str] = []
        self._tasks: set[asyncio.Task[None]] = set()
        self._claimed: dict[str, asyncio.Task[None]] = {}

    async def run(self) -> list[str]:
        self.source = _resolve_source(self.source)
        logger.debug("expanding %s into %s", self.source, self.dest)

        self._start(self._walk())

        while self.error is None:
            pending = {t for t in self._tasks if not t.done()}
            if not pending:
                break
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)

        if self.error is not None:
            for t in self._tasks:
                t.cancel()
            await asyncio.gather(*self._tasks, return_exceptions=True)
            logger.debug("expansion failed after %d files: %s", len(self.written), self.error)
            raise self.error

        await asyncio.gather(*self._tasks)
        logger.info("expanded %d files from %s into %s", len(self.written), self.source, self.dest)
        return list(self.written)

    def _start(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = asyncio.ensure_future(self._guarded(coro))
        self._tasks.add(task)
        return task

    async def _guarded(self, coro: Awaitable[None]) -> None:
        try:
            await coro
        except Exception as e:
            if self.error is None:
                self.error = e
            raise

    async def _walk(self) -> None:
        stack = [self.source]
        while stack and self.error is None:
            directory = stack.pop()
            try:
                files, dirs = await asyncio.to_thread(_scan, directory)
            except OSError as e:
                raise WalkError(code="E_WALK", message=str(e), file=str(directory)) from e
            for f in files:
                self._spawn(f)
            stack.extend(reversed(dirs))

    def _spawn(self, src: Path) -> None:
        rel = translate_path(src.relative_to(self.source).as_posix(), self.data)
        if rel in ("", ".", "..") or rel.startswith("../"):
            raise UnsafePathError(
                code="E_PATH_OUTSIDE_DEST",
                message=f"translated path {rel!r} does not name a file inside the destination",
                file=str(src),
                path=rel,
            )

        previous = self._claimed.get(rel)
        if previous is not None:
            if self.options.on_collision == "error":
                raise PathCollisionError(
                    code="E_PATH_COLLISION",
                    message="another template file already translates to this path",
                    file=str(src),
                    path=rel,
                )
            logger.warning("%s overwrites an earlier file at %s", src, rel)

        self._claimed[rel] = self._start(self._process(src, rel, previous))

    async def _process(self, src: Path, rel: str, after: asyncio.Task[None] | None) -> None:
        if after is not None:
            # Same target as an earlier file: write strictly after it.
            await asyncio.wait({after})
            if self.error is not None:
                return
        await asyncio.to_thread(self._copy, src, self.dest / rel, rel)
        if self.error is not None:
            return
        self.written.append(rel)
        if self.on_file is not None:
            self.on_file(rel)

    def _copy(self, src: Path, target: Path, rel: str) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise MakeDirError(code="E_MKDIR", message=str(e), file=str(src), path=rel) from e

        try:
            binary = is_binary_file(src)
        except OSError as e:
            raise DetectError(code="E_DETECT", message=str(e), file=str(src), path=rel) from e

        logger.debug("%s -> %s (%s)", src, target, "binary" if binary else "text")
        try:
            if binary:
                with open(src, "rb") as r, open(target, "wb") as w:
                    shutil.copyfileobj(r, w)
            else:
                self._copy_text(src, target)
        except OSError as e:
            raise CopyError(code="E_COPY", message=str(e), file=str(src), path=rel) from e

    def _copy_text(self, src: Path, target: Path) -> None:
        newline = self.options.newline
        with open(src, "rb") as r, open(
            target, "w", encoding="utf-8", errors="surrogateescape", newline=""
        ) as w:
            for raw in r:
                line = raw.decode("utf-8", "surrogateescape")
                if line.endswith("\n"):
                    line = line[:-1]
                    if line.endswith("\r"):
                        line = line[:-1]
                w.write(translate_line(line, self.data) + newline)


async def expand_async(
    source: str | os.PathLike[str],
    dest: str | os.PathLike[str],
    data: Mapping[str, Any] | None = None,
    on_file: OnFile | None = None,
    *,
    options: ExpandOptions | None = None,
) -> list[str]:
    """Expand a template tree from inside a running event loop.

    Raises the first error encountered; returns the translated relative paths
    written, in completion order.
    """
    return await TreeExpander(source, dest, data, on_file=on_file, options=options).run()


def expand(
    source: str | os.PathLike[str],
    dest: str | os.PathLike[str],
    data: Mapping[str, Any] | None = None,
    on_file: OnFile | None = None,
    on_done: OnDone | None = None,
    *,
    options: ExpandOptions | None = None,
) -> list[str]:
    """Copy `source` into `dest`, translating paths and text contents.

    `on_file(path)` fires once per written file, after it is closed.
    `on_done(err)` fires exactly once, last: with None on success or with the
    first error. Without `on_done`, the first error is raised instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        pass
    else:
        raise RuntimeError("expand() cannot run inside an event loop; await expand_async() instead")

    expander = TreeExpander(source, dest, data, on_file=on_file, options=options)
    try:
        asyncio.run(expander.run())
    except Exception as e:
        if on_done is None:
            raise
        on_done(e)
        return list(expander.written)

    if on_done is not None:
        on_done(None)
    return list(expander.written)


def iter_template_files(source: str | os.PathLike[str]) -> Iterator[Path]:
    root = _resolve_source(source)
    stack = [root]
    while stack:
        directory = stack.pop()
        try:
            files, dirs = _scan(directory)
        except OSError as e:
            raise WalkError(code="E_WALK", message=str(e), file=str(directory)) from e
        yield from files
        stack.extend(reversed(dirs))


def collect_vars(source: str | os.PathLike[str]) -> list[str]:
    """Return the sorted variable names a template tree references.

    Path tokens come from every file's relative path; content tokens only from
    text files.
    """
    root = _resolve_source(source)
    names: set[str] = set()
    for f in iter_template_files(root):
        names.update(find_vars(f.relative_to(root).as_posix(), PATH_OPEN, PATH_CLOSE))
        try:
            if is_binary_file(f):
                continue
            with open(f, "r", encoding="utf-8", errors="surrogateescape") as fh:
                for line in fh:
                    names.update(find_vars(line, CONTENT_OPEN, CONTENT_CLOSE))
        except OSError as e:
            raise DetectError(code="E_DETECT", message=str(e), file=str(f)) from e
    return sorted(n for n in names if n)
