"""Helpers shared by the llmq CLI commands."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path

import click

from llmq.core.config import auth_path, context_path, plugin_confdir, plugin_datadir
from llmq.core.errors import LlmqError
from llmq.core.fileutil import AUTH_MODE, CONTEXT_MODE, is_private_file, read_text, touch

log = logging.getLogger(__name__)


@dataclass
class Target:
    """A resolved PLUGIN[://CONTEXT] argument."""

    plugin: object
    datadir: Path
    context: Path | None


def split_target(value: str) -> tuple[str, str]:
    """Split "plugin://context" into ("plugin", "context")."""
    plugin, sep, context = value.partition("://")
    if not sep:
        return value, ""
    return plugin, context


def resolve_target(ctx: click.Context, value: str | None, require_context: bool = False) -> Target:
    """Look up the plugin named by value and compute its context file path."""
    obj = ctx.find_root().obj
    name, context = split_target(value or obj["config"]["default_plugin"])
    try:
        plugin = obj["registry"].get(name)
    except KeyError as e:
        raise click.UsageError(f'plugin "{name}" not found', ctx=ctx) from e
    if require_context and not context:
        raise click.UsageError("CONTEXT required for chat, init, edit, rm, and kill", ctx=ctx)

    datadir = plugin_datadir(name)
    return Target(
        plugin=plugin,
        datadir=datadir,
        context=context_path(datadir, context) if context else None,
    )


def ensure_context(path: Path) -> None:
    """Create an empty context file if it does not exist yet."""
    if not path.exists():
        touch(path, CONTEXT_MODE)


def ensure_auth(plugin_name: str) -> Path:
    """Return the plugin authfile, creating an empty private one if missing."""
    path = auth_path(plugin_confdir(plugin_name))
    if path.exists():
        if not path.is_file():
            raise click.ClickException(f"plugin authfile {path} exists and is not a regular file")
        if not is_private_file(path):
            log.warning("plugin authfile %s has insecure permissions! please set to 400 or 600", path)
    else:
        touch(path, AUTH_MODE)
    return path


def load_auth(plugin_name: str) -> str | None:
    """Read the plugin authfile; None if it is empty."""
    text = read_text(ensure_auth(plugin_name)).strip()
    return text or None


def read_stdin() -> str:
    return click.get_text_stream("stdin").read()


def fatal_errors(func):
    """Turn LlmqError into a ClickException: message on stderr, exit status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LlmqError as e:
            log.debug("Fatal error", exc_info=True)
            raise click.ClickException(str(e)) from e

    return wrapper
