"""Output helpers for CLI commands."""
from __future__ import annotations

import json
from typing import Any

import click


def format_output(result: Any, fmt: str = "text") -> str:
    """Render a command result as JSON or as indented ``key: value`` text."""
    if hasattr(result, "model_dump"):
        result = result.model_dump(mode="json", exclude_none=True)
    if fmt == "json":
        return json.dumps(result, indent=2, default=str)
    return _format_text(result)


def _format_text(value: Any, indent: int = 0) -> str:
    pad = "  " * indent
    if isinstance(value, dict):
        lines = []
        for key, item in value.items():
            if isinstance(item, (dict, list)) and item:
                lines.append(f"{pad}{key}:")
                lines.append(_format_text(item, indent + 1))
            else:
                lines.append(f"{pad}{key}: {item}")
        return "\n".join(lines)
    if isinstance(value, list):
        lines = []
        for item in value:
            if isinstance(item, (dict, list)):
                lines.append(f"{pad}-")
                lines.append(_format_text(item, indent + 1))
            else:
                lines.append(f"{pad}- {item}")
        return "\n".join(lines)
    return f"{pad}{value}"


def print_success(message: str) -> None:
    click.secho(f"✓ {message}", fg="green")


def print_error(message: str) -> None:
    click.secho(f"✗ {message}", fg="red", err=True)


def print_info(message: str) -> None:
    click.secho(message, fg="cyan")
