"""Command execution CLI commands."""
from __future__ import annotations

import asyncio
import json
import signal
import sys
from typing import Any, Optional

import click

from cli.utils.config import get_config
from cli.utils.errors import handle_command_errors
from cli.utils.output import format_output, print_error, print_info, print_success
from core.config import cfg
from core.errors import SceneCommandError
from scene_agent.audit import ExecutionLog
from services.command_service import build_command_service
from transport.session_registry import FullSession, SessionMode, SessionRegistry


def _parse_context(raw: Optional[str]) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"--context must be a JSON object: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ValueError("--context must be a JSON object")
    return parsed


async def _with_registry(coro_factory):
    """Run ``coro_factory(registry)`` and release every session afterwards.

    SIGTERM cancels the running task so the cleanup still happens.
    """
    registry = SessionRegistry()
    task = asyncio.current_task()
    loop = asyncio.get_running_loop()
    installed = False
    if sys.platform != "win32" and task is not None:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
        installed = True
    try:
        return await coro_factory(registry)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGTERM)
        await registry.shutdown()


@click.command("run")
@click.argument("command")
@click.option("--target", "-t", required=True, help="URL of the scene to operate on.")
@click.option(
    "--mode", "-m",
    type=click.Choice([m.value for m in SessionMode]),
    default=SessionMode.FULL.value,
    help="full drives a live scene; lightweight only plans.",
)
@click.option("--context", "-c", "context_json", default=None, help="GUI context as a JSON object.")
@handle_command_errors
def run(command: str, target: str, mode: str, context_json: Optional[str]):
    """Run a natural-language command against a scene.

    \b
    Examples:
        scene-pilot run "move the cube up by 2" --target https://example.com/scene
        scene-pilot run "make the button glass" -t URL --mode lightweight
        scene-pilot run "hide the logo" -t URL --context '{"page": "scene-editor"}'
    """
    config = get_config()
    context = _parse_context(context_json)

    async def _go(registry: SessionRegistry):
        service = build_command_service(registry=registry)
        return await service.execute(command, context, target_ref=target, mode=mode)

    response = asyncio.run(_with_registry(_go))
    click.echo(format_output(response, config.format))
    if response.success:
        print_success(response.message or "Done")
    else:
        print_error(response.error or "Command failed")
        sys.exit(1)


@click.command("refine")
@click.argument("feedback")
@click.option("--target", "-t", default=None, help="Scene URL (defaults to the last command's session).")
@handle_command_errors
def refine(feedback: str, target: Optional[str]):
    """Re-run the last command with feedback appended.

    \b
    Examples:
        scene-pilot refine "a bit higher"
        scene-pilot refine "use a darker red" -t https://example.com/scene
    """
    config = get_config()

    async def _go(registry: SessionRegistry):
        service = build_command_service(registry=registry)
        return await service.refine(feedback, target_ref=target)

    response = asyncio.run(_with_registry(_go))
    click.echo(format_output(response, config.format))
    if response.success:
        print_success(response.message or "Done")
    else:
        print_error(response.error or "Refine failed")
        sys.exit(1)


@click.command("suggest")
@click.option("--target", "-t", required=True, help="URL of the scene to inspect.")
@handle_command_errors
def suggest(target: str):
    """Suggest commands to try on a scene."""
    config = get_config()

    async def _go(registry: SessionRegistry):
        service = build_command_service(registry=registry)
        session = (await registry.init(target, SessionMode.FULL)).session
        if not isinstance(session, FullSession):
            raise SceneCommandError(f"Session {session.id} has no live scene to inspect", session_id=session.id)
        screenshot = await session.handle.screenshot()
        return await service.orchestrator.observer.suggest(screenshot)

    suggestions = asyncio.run(_with_registry(_go))
    if config.format == "json":
        click.echo(format_output([{"command": text, "call": call.model_dump(mode="json")}
                                  for text, call in suggestions], "json"))
        return
    if not suggestions:
        print_info("No suggestions")
    for i, (text, call) in enumerate(suggestions, 1):
        reason = f" - {call.reasoning}" if call.reasoning else ""
        click.echo(f"  {i}. \"{text}\"{reason}")


@click.command("history")
@click.option("--limit", "-l", default=10, type=int, help="Number of recent executions to show.")
def history(limit: int):
    """Show execution statistics and recent commands."""
    config = get_config()
    log = ExecutionLog.from_file(cfg.execution_log_file)
    summary = log.summary()
    summary["recent"] = [
        {"command": r.command, "success": r.success, "state": r.state.value,
         "timestamp": r.timestamp.isoformat(), "error": r.error}
        for r in log.records()[-limit:]
    ] if limit > 0 else []
    click.echo(format_output(summary, config.format))
