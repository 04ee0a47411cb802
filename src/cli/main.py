"""scene-pilot command-line entry point."""
from __future__ import annotations

import logging

import click

from cli.commands.command import history, refine, run, suggest
from cli.commands.knowledge import kb
from cli.utils.config import CLIConfig


@click.group()
@click.option("--format", "-f", "fmt", type=click.Choice(["text", "json"]), default="text",
              help="Output format.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, fmt: str, verbose: bool):
    """Drive a 3D scene editor with natural-language commands."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = CLIConfig(format=fmt, verbose=verbose)


cli.add_command(kb)
cli.add_command(run)
cli.add_command(refine)
cli.add_command(suggest)
cli.add_command(history)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
