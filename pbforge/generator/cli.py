"""Command-line interface for pbforge code generation."""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, NoReturn

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pbforge.generator import ParseError, ProtoSchema, ValidationError, load, python
from pbforge.generator.messages import MessageEmitter
from pbforge.generator.shapes import ResolutionError, resolve, shape_label

if TYPE_CHECKING:
    from pbforge.generator.types import ProtoField, ProtoFile, ProtoMessage

logger = logging.getLogger(__name__)

err_console = Console(stderr=True)


def _fail(error: Exception) -> NoReturn:
    err_console.print(f"[bold red]error:[/bold red] {escape(str(error))}")
    sys.exit(1)


def _load_schema(input_file: str, include_dirs: tuple[str, ...]) -> ProtoSchema:
    """Load a ``.proto`` file, or a descriptor graph previously dumped as JSON."""
    if input_file.endswith(".json"):
        with open(input_file, encoding="utf-8") as f:
            return ProtoSchema.from_json(f.read())
    return load(input_file, include_dirs)


def _parse_modules(values: tuple[str, ...]) -> dict[str, str]:
    result: dict[str, str] = {}
    for value in values:
        path, sep, module = value.partition("=")
        if not sep or not path or not module:
            raise click.BadParameter(f"expected PATH=MODULE, got {value!r}")
        result[path] = module
    return result


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Protobuf to Python code generator."""
    if verbose:
        root = logging.getLogger("pbforge")
        root.setLevel(logging.DEBUG)
        root.addHandler(RichHandler(console=err_console, show_path=False))


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input .proto (or .json) file")
@click.option("--output", "-o", "output_file", required=True, help="Output file")
@click.option(
    "--include", "-I", "include_dirs", multiple=True, help="Directory to search for imports"
)
@click.option(
    "--runtime-import",
    "runtime_import",
    is_flag=False,
    flag_value="pbforge.proto",
    default=None,
    help="Import path for runtime. No value=pbforge.proto, omit=pbforge_runtime",
)
@click.option(
    "--module",
    "modules",
    multiple=True,
    help="Module generated for an imported schema file, as PATH=MODULE",
)
@click.option(
    "--dense-dispatch-limit",
    type=int,
    default=64,
    show_default=True,
    help="Highest field number that may use an indexed reader table",
)
def gen(
    input_file: str,
    output_file: str,
    include_dirs: tuple[str, ...],
    runtime_import: str | None,
    modules: tuple[str, ...],
    dense_dispatch_limit: int,
) -> None:
    """Generate a Python module from a schema file."""
    options = python.GeneratorOptions(
        runtime_import=runtime_import if runtime_import is not None else "pbforge_runtime",
        modules=_parse_modules(modules),
        dense_dispatch_limit=dense_dispatch_limit,
    )
    try:
        schema = _load_schema(input_file, include_dirs)
        generated_file = python.render(schema, options)
    except (OSError, ParseError, ValidationError, ResolutionError) as e:
        _fail(e)

    with open(output_file, "w", encoding="utf-8") as f:
        f.write(generated_file)
    logger.info("wrote %s", output_file)


@cli.command()
@click.option("--output", "-o", "output_path", default=".", help="Output directory")
@click.option("--name", default="pbforge_runtime", help="Runtime package name")
def runtime(output_path: str, name: str) -> None:
    """Write the runtime support package."""
    runtime_dir = Path(output_path) / name
    runtime_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in python.runtime().items():
        (runtime_dir / filename).write_text(content)
    print(f"Generated Python runtime in {runtime_dir}")


@cli.command()
@click.option("--input", "-i", "input_file", required=True, help="Input .proto (or .json) file")
@click.option(
    "--include", "-I", "include_dirs", multiple=True, help="Directory to search for imports"
)
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(input_file: str, include_dirs: tuple[str, ...], output_json: bool) -> None:
    """Display records, fields and their resolved shapes."""
    try:
        schema = _load_schema(input_file, include_dirs)
    except (OSError, ParseError, ValidationError) as e:
        _fail(e)

    messages = python.collect_messages(schema.main)

    if output_json:
        _output_json(messages, schema.main)
    else:
        _output_plain(messages, schema.main)


def _shape_text(field: ProtoField, file: str) -> str:
    try:
        return shape_label(resolve(field, file))
    except ResolutionError as e:
        return f"unsupported ({e})"


def _dispatch(message: ProtoMessage, file: str) -> str:
    try:
        emitter = MessageEmitter(message, message.name, file, set())
    except ResolutionError:
        return "unsupported"
    return "dense" if emitter.dense else "sparse"


def _output_json(messages: list[ProtoMessage], proto_file: ProtoFile) -> None:
    data: dict = {"package": proto_file.package, "messages": {}}
    for message in messages:
        data["messages"][message.full_name] = {
            "dispatch": _dispatch(message, proto_file.name),
            "fields": [
                {
                    "number": f.number,
                    "name": f.name,
                    "shape": _shape_text(f, proto_file.name),
                    "oneof": f.oneof,
                }
                for f in sorted(message.fields, key=lambda f: f.number)
            ],
        }
    print(json.dumps(data, indent=2))


def _output_plain(messages: list[ProtoMessage], proto_file: ProtoFile) -> None:
    """Output schema info using rich text formatting."""
    console = Console()

    if proto_file.package:
        console.print(f"[bold cyan]Package[/bold cyan] {escape(proto_file.package)}")
        console.print()

    for message in messages:
        dispatch = _dispatch(message, proto_file.name)
        console.print(f"[bold cyan]{escape(message.full_name)}[/bold cyan] [dim]({dispatch})[/dim]")

        table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        table.add_column("#", style="green", justify="right")
        table.add_column("Name", style="white")
        table.add_column("Shape", style="yellow")
        table.add_column("Oneof", style="dim")

        for f in sorted(message.fields, key=lambda f: f.number):
            table.add_row(
                str(f.number), f.name, escape(_shape_text(f, proto_file.name)), f.oneof or ""
            )

        console.print(table)
        console.print()


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
