from __future__ import annotations

import json
import logging
from typing import Any

import typer

from template_tree.core.errors import DataLoadError, ExpandError
from template_tree.core.expand.expand_tree import collect_vars, expand
from template_tree.core.expand.options import ExpandOptions, OptionsError, newline_for
from template_tree.core.io.load_data import load_data, parse_assignments

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log each file at DEBUG level"),
) -> None:
    """Template tree CLI."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


@app.command("expand")
def expand_cmd(
    source: str = typer.Argument(..., help="Template directory"),
    dest: str = typer.Argument(..., help="Destination directory (created if missing)"),
    data_file: str | None = typer.Option(
        None, "--data", help="YAML/JSON file with variable bindings"
    ),
    assignments: list[str] = typer.Option(
        [], "--set", help="Variable binding KEY=VALUE (repeatable, overrides --data)"
    ),
    newline: str = typer.Option("native", "--newline", help="Line terminator: native|lf|crlf"),
    on_collision: str = typer.Option(
        "error",
        "--on-collision",
        help="When two template files map to one output path: error|overwrite",
    ),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Do not list written files"),
) -> None:
    """Copy SOURCE into DEST, substituting @var@ in paths and __var__ in text files."""
    if format not in ("text", "json"):
        _print_errors(
            [
                ExpandError(
                    code="E_EXPAND_UNKNOWN_FORMAT",
                    message=f"unknown format: {format} (choose one of: text, json)",
                    path="format",
                )
            ]
        )
        raise typer.Exit(code=2)

    try:
        options = ExpandOptions(newline=newline_for(newline), on_collision=on_collision)  # type: ignore[arg-type]
    except OptionsError as e:
        _print_errors([ExpandError(code="E_EXPAND_INVALID_OPTION", message=str(e))])
        raise typer.Exit(code=2)

    data: dict[str, Any] = {}
    try:
        if data_file:
            data.update(load_data(data_file))
        data.update(parse_assignments(assignments))
    except DataLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=2 if e.code == "E_INVALID_ASSIGNMENT" else 1)

    def on_file(path: str) -> None:
        if format == "text" and not quiet:
            typer.echo(path)

    outcome: dict[str, Any] = {}

    def on_done(err: BaseException | None) -> None:
        outcome["error"] = err

    written = expand(source, dest, data, on_file, on_done, options=options)
    err = outcome.get("error")

    if format == "json":
        payload = {
            "tool": "template-tree",
            "command": "expand",
            "ok": err is None,
            "source": source,
            "dest": dest,
            "files": sorted(written),
            "file_count": len(written),
            "error": _to_item(err) if err is not None else None,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        if err is not None:
            raise typer.Exit(code=1)
        return

    if err is not None:
        _print_errors([_as_expand_error(err)])
        raise typer.Exit(code=1)
    if not quiet:
        typer.echo(f"OK: wrote {len(written)} files to {dest}")


@app.command("vars")
def vars_cmd(
    source: str = typer.Argument(..., help="Template directory"),
) -> None:
    """List variable names referenced by a template (paths and text contents)."""
    try:
        names = collect_vars(source)
    except ExpandError as e:
        _print_errors([e])
        raise typer.Exit(code=1)

    for name in names:
        typer.echo(name)


def _as_expand_error(err: BaseException) -> ExpandError:
    if isinstance(err, ExpandError):
        return err
    return ExpandError(code="E_UNEXPECTED", message=f"{type(err).__name__}: {err}")


def _to_item(err: BaseException) -> dict:
    e = _as_expand_error(err)
    return {
        "code": e.code,
        "message": e.message,
        "file": e.file,
        "path": e.path,
    }


def _print_errors(errors: list[ExpandError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="template-tree")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
