"""Per-invocation CLI options shared by all commands."""
from __future__ import annotations

from dataclasses import dataclass

import click


@dataclass
class CLIConfig:
    format: str = "text"
    verbose: bool = False


def get_config() -> CLIConfig:
    ctx = click.get_current_context(silent=True)
    if ctx is not None:
        config = ctx.find_object(CLIConfig)
        if config is not None:
            return config
    return CLIConfig()
