"""
sasmc - Sahne64 Assembly Compiler Command-Line Interface
========================================================

Compiles Sahne64 assembly (.sasm) into the line-oriented instruction
stream consumed by the Sahne64 loader.

Usage Examples
--------------
Basic compilation:
    $ sasmc task.sasm

With output file:
    $ sasmc task.sasm -o task.sys

Supplying link-time addresses for EXTERN names:
    $ sasmc task.sasm --extern log_write=0x2000 --extern panic=8192

Expanding macros first:
    $ sasmc -M task.sasm

Inspecting intermediate forms:
    $ sasmc -E task.sasm        # macro-expanded source to stdout
    $ sasmc --ast task.sasm     # parsed statements to stdout

Exit Codes
----------
0 - Success (warnings may have been printed)
1 - Compilation error
2 - Invalid arguments
3 - Internal error
"""

import logging
from pathlib import Path
from typing import Optional

import click

from sahne_sdk import __version__
from sahne_sdk.cli.errors import handle_cli_exception
from sahne_sdk.sasm import SahneCompiler, CompilerOptions
from sahne_sdk.sasm.ast import ASTPrinter
from sahne_sdk.sasm.macros import MacroProcessor
from sahne_sdk.sasm.memory import DEFAULT_STATIC_BASE


# =============================================================================
# Option Parsing
# =============================================================================

def parse_address(text: str) -> int:
    """Parse a decimal, 0x hex, 0o octal or 0b binary address."""
    try:
        value = int(text, 0)
    except ValueError:
        raise click.BadParameter(f"'{text}' is not a valid address")
    if value < 0:
        raise click.BadParameter(f"address {text} is negative")
    return value


def _parse_externs(ctx: click.Context, param: click.Parameter, values: tuple[str, ...]) -> dict[str, int]:
    addresses: dict[str, int] = {}
    for item in values:
        name, sep, address = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected NAME=ADDR, got '{item}'")
        addresses[name.strip()] = parse_address(address.strip())
    return addresses


def _parse_base(ctx: click.Context, param: click.Parameter, value: Optional[str]) -> int:
    if value is None:
        return DEFAULT_STATIC_BASE
    return parse_address(value)


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if verbose else "%(message)s",
    )


# =============================================================================
# CLI Definition
# =============================================================================

@click.command()
@click.argument(
    "input_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.option(
    "-o", "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Output file (default: input.sys)",
)
@click.option(
    "--extern", "externs",
    multiple=True,
    metavar="NAME=ADDR",
    callback=_parse_externs,
    help="Link-time address for an EXTERN name (can be repeated)",
)
@click.option(
    "--base",
    metavar="ADDR",
    callback=_parse_base,
    help=f"Static section base address (default: {DEFAULT_STATIC_BASE:#x})",
)
@click.option(
    "-M", "--macros",
    is_flag=True,
    help="Expand MACRO definitions before compiling",
)
@click.option(
    "-E", "--preprocess-only",
    is_flag=True,
    help="Expand macros only, output to stdout",
)
@click.option(
    "--ast",
    is_flag=True,
    help="Print AST and exit (for debugging)",
)
@click.option(
    "-v", "--verbose",
    is_flag=True,
    help="Verbose output",
)
@click.version_option(version=__version__, prog_name="sasmc")
def main(
    input_file: Path,
    output: Optional[Path],
    externs: dict[str, int],
    base: int,
    macros: bool,
    preprocess_only: bool,
    ast: bool,
    verbose: bool,
) -> None:
    """
    Compile Sahne64 assembly source.

    INPUT_FILE is the assembly source file (.sasm) to compile.

    \b
    Examples:
        sasmc task.sasm                     # Outputs task.sys
        sasmc task.sasm -o out.sys          # Specify output file
        sasmc task.sasm --extern log=0x2000 # Resolve an EXTERN
        sasmc -M task.sasm                  # Expand macros first
        sasmc -v task.sasm                  # Verbose output

    Warnings, such as EXTERN names left without an address, are printed to
    stderr and do not fail the build.
    """
    setup_logging(verbose)

    if output is None:
        output = input_file.with_suffix(".sys")

    options = CompilerOptions(
        static_base=base,
        expand_macros=macros,
        extern_addresses=externs,
    )

    try:
        if verbose:
            click.echo(f"Compiling {input_file}...")
            click.echo(f"Static base: {base:#06x}")
            if externs:
                click.echo("Externs: " + ", ".join(f"{n}={a:#x}" for n, a in externs.items()))

        source = input_file.read_text(encoding="utf-8")

        # Preprocess only mode
        if preprocess_only:
            expanded = MacroProcessor(source, str(input_file)).process()
            click.echo(expanded, nl=False)
            return

        result = SahneCompiler(options).compile_source(source, str(input_file))

        # AST dump mode
        if ast:
            if result.ast is not None:
                click.echo(ASTPrinter().print(result.ast))
            result.raise_if_errors()
            return

        result.raise_if_errors()

        for warning in result.warnings:
            click.echo(str(warning), err=True)

        output.write_text(result.output, encoding="utf-8")

        if verbose:
            click.echo(f"Tokenized: {result.token_count} tokens")
            click.echo(f"Parsed: {len(result.ast.statements)} statements")
            click.echo(f"Static data: {result.memory.static_size} bytes")
            click.echo(f"Wrote {len(result.instructions)} instructions to {output}")

        click.echo(f"Compiled {input_file} -> {output}")

    except Exception as e:
        handle_cli_exception(e, verbose=verbose, error_type="Compilation")


if __name__ == "__main__":
    main()
