import asyncio
import os
from pathlib import Path

from template_tree.core.expand.expand_tree import expand, expand_async
from template_tree.core.expand.options import ExpandOptions

LF = ExpandOptions(newline="\n")


def _write(root: Path, rel: str, content: str | bytes) -> Path:
    p = root / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        p.write_bytes(content)
    else:
        p.write_bytes(content.encode("utf-8"))
    return p


def _tree(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): p.read_bytes() for p in sorted(root.rglob("*")) if p.is_file()
    }


def test_expand_translates_paths_and_contents(tmp_path: Path):
    src = tmp_path / "tpl"
    dest = tmp_path / "out"
    _write(src, "__gitignore", "node_modules\n")
    _write(src, "@name@.txt", "Hello __name__!\n")
    _write(src, "@pkg@/__init__.py", "VERSION = '__version__'\n")
    _write(src, "docs/notes.md", "Value: __missing__\n")

    files: list[str] = []
    done: list[object] = []
    written = expand(
        src,
        dest,
        {"name": "World", "pkg": "app", "version": "1.0"},
        files.append,
        done.append,
        options=LF,
    )

    assert done == [None]
    assert sorted(files) == sorted(written)
    assert _tree(dest) == {
        ".gitignore": b"node_modules\n",
        "World.txt": b"Hello World!\n",
        "app/__init__.py": b"VERSION = '1.0'\n",
        "docs/notes.md": b"Value: \n",
    }


def test_binary_is_copied_verbatim(tmp_path: Path):
    src = tmp_path / "tpl"
    dest = tmp_path / "out"
    payload = bytes(range(256)) + b"__name__\r\n" * 3
    _write(src, "assets/blob.bin", payload)

    expand(src, dest, {"name": "x"}, options=LF)

    assert (dest / "assets" / "blob.bin").read_bytes() == payload


def test_line_endings_are_normalized(tmp_path: Path):
    src = tmp_path / "tpl"
    _write(src, "crlf.txt", "a\r\nb\r\n")
    _write(src, "no_final_newline.txt", "a\nb")
    _write(src, "blank_lines.txt", "\n\nx\n")
    _write(src, "empty.txt", "")

    expand(src, tmp_path / "lf", options=LF)
    expand(src, tmp_path / "crlf", options=ExpandOptions(newline="\r\n"))

    assert _tree(tmp_path / "lf") == {
        "blank_lines.txt": b"\n\nx\n",
        "crlf.txt": b"a\nb\n",
        "empty.txt": b"",
        "no_final_newline.txt": b"a\nb\n",
    }
    assert (tmp_path / "crlf" / "crlf.txt").read_bytes() == b"a\r\nb\r\n"


def test_default_newline_is_native(tmp_path: Path):
    src = tmp_path / "tpl"
    _write(src, "a.txt", "one\ntwo\n")

    expand(src, tmp_path / "out")

    expected = ("one" + os.linesep + "two" + os.linesep).encode("utf-8")
    assert (tmp_path / "out" / "a.txt").read_bytes() == expected


def test_undecodable_bytes_pass_through(tmp_path: Path):
    src = tmp_path / "tpl"
    _write(src, "latin.txt", b"caf\xe9 au lait, __drink__ for everyone at the counter\n")

    expand(src, tmp_path / "out", {"drink": "tea"}, options=LF)

    assert (tmp_path / "out" / "latin.txt").read_bytes() == (
        b"caf\xe9 au lait, tea for everyone at the counter\n"
    )


def test_expand_is_idempotent(tmp_path: Path):
    src = tmp_path / "tpl"
    dest = tmp_path / "out"
    _write(src, "@name@/README.md", "# __name__\n")
    _write(src, "@name@/logo.bin", b"\x00\x01\x02")

    first = expand(src, dest, {"name": "demo"}, options=LF)
    snapshot = _tree(dest)
    second = expand(src, dest, {"name": "demo"}, options=LF)

    assert sorted(first) == sorted(second)
    assert _tree(dest) == snapshot


def test_siblings_share_created_parent(tmp_path: Path):
    src = tmp_path / "tpl"
    dest = tmp_path / "out"
    for i in range(20):
        _write(src, f"deep/nested/dir/file{i}.txt", f"{i}\n")

    written = expand(src, dest, options=LF)

    assert len(written) == 20
    assert len(list((dest / "deep" / "nested" / "dir").iterdir())) == 20


def test_dest_is_relative_to_cwd(tmp_path: Path, monkeypatch):
    src = tmp_path / "tpl"
    _write(src, "a.txt", "a\n")
    monkeypatch.chdir(tmp_path)

    expand("tpl", "rel-out", options=LF)

    assert (tmp_path / "rel-out" / "a.txt").read_bytes() == b"a\n"


def test_done_fires_once_after_every_file(tmp_path: Path):
    src = tmp_path / "tpl"
    for i in range(10):
        _write(src, f"d{i % 3}/f{i}.txt", "x\n")

    events: list[str] = []
    expand(
        src,
        tmp_path / "out",
        on_file=lambda p: events.append("file"),
        on_done=lambda err: events.append("done" if err is None else "error"),
        options=LF,
    )

    assert events.count("file") == 10
    assert events.count("done") == 1
    assert events[-1] == "done"


def test_empty_template_completes(tmp_path: Path):
    src = tmp_path / "tpl"
    src.mkdir()
    done: list[object] = []

    written = expand(src, tmp_path / "out", on_done=done.append)

    assert written == []
    assert done == [None]


def test_overwrite_collision_policy_keeps_one_file(tmp_path: Path):
    src = tmp_path / "tpl"
    _write(src, "@a@.txt", "from a\n")
    _write(src, "@b@.txt", "from b\n")

    written = expand(
        src,
        tmp_path / "out",
        {"a": "same", "b": "same"},
        options=ExpandOptions(newline="\n", on_collision="overwrite"),
    )

    assert written == ["same.txt", "same.txt"]
    # Files are discovered in sorted order, so the later one wins.
    assert (tmp_path / "out" / "same.txt").read_bytes() == b"from b\n"


def test_expand_async(tmp_path: Path):
    src = tmp_path / "tpl"
    _write(src, "@name@.txt", "__name__\n")
    seen: list[str] = []

    written = asyncio.run(
        expand_async(src, tmp_path / "out", {"name": "async"}, seen.append, options=LF)
    )

    assert written == ["async.txt"]
    assert seen == ["async.txt"]
    assert (tmp_path / "out" / "async.txt").read_bytes() == b"async\n"


def test_empty_leading_directory_stays_inside_dest(tmp_path: Path):
    src = tmp_path / "tpl"
    dest = tmp_path / "out"
    _write(src, "@dir@/stays_inside.txt", "x\n")
    seen: list[str] = []

    written = expand(src, dest, {}, seen.append, options=LF)

    assert written == ["stays_inside.txt"]
    assert seen == ["stays_inside.txt"]
    assert (dest / "stays_inside.txt").read_bytes() == b"x\n"
    assert not Path("/stays_inside.txt").exists()
