"""gpt plugin: the OpenAI Chat Completions endpoint.

The context file is a 1:1 match with the parameters sent to the endpoint;
see https://platform.openai.com/docs/api-reference/chat for details.
"""

from __future__ import annotations

import argparse
import json
import logging
from collections.abc import Callable, Sequence

import click
import yaml

from llmq.core.document import Document
from llmq.core.errors import ParseError, ProtocolError
from llmq.providers.base import Request
from llmq.stream.fragments import FragmentExtractor
from llmq.stream.merger import DeltaMerger

log = logging.getLogger(__name__)

URL = "https://api.openai.com/v1/chat/completions"

_AUTH_HELP = 'authfile must be a YAML map with properties "key" and optionally "org"'

_DESCRIPTION = "a llmq plugin for the OpenAI Chat Completions endpoint."

_EPILOG = f"""\
{_AUTH_HELP}.

The context file is a 1:1 match with the parameters sent to the endpoint.
See https://platform.openai.com/docs/api-reference/chat for details.

note: OPTIONS override CONTEXT. MSGS are appended as user messages (same as
-u MSG); if no MSGS are given, stdin is read as one (unless -i).
"""


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise ParseError(f"gpt: {message}")


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ("true", "yes", "on", "1"):
        return True
    if lowered in ("false", "no", "off", "0"):
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean: {value!r}")


def _parse_json_map(value: str) -> dict:
    try:
        data = json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"logit-bias must be a JSON map: {e}") from e
    if not isinstance(data, dict):
        raise argparse.ArgumentTypeError("logit-bias must be a JSON map")
    return data


class _TaggedMessage(argparse.Action):
    """Appends (role, text) to a shared list so -s/-g/-u keep their order."""

    def __call__(self, parser, namespace, values, option_string=None):
        # copy: the default list is shared between parses
        messages = list(getattr(namespace, self.dest, None) or [])
        messages.append((self.const, values))
        setattr(namespace, self.dest, messages)


def _build_parser() -> _ArgumentParser:
    p = _ArgumentParser(
        prog="llmq ARGS... gpt[://CONTEXT]",
        usage="%(prog)s [OPTIONS]... [-sgu TAGMSG]... [USRMSG]...",
        description=_DESCRIPTION,
        epilog=_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        add_help=False,
    )
    opts = p.add_argument_group("OPTIONS")
    opts.add_argument("-h", "--help", action="store_true", help="display this help and exit")
    opts.add_argument("-m", "--model", metavar="STR", help="model endpoint")
    opts.add_argument("-T", "--temperature", type=float, metavar="NUM", help="sampling temperature to use")
    opts.add_argument("-p", "--top-p", type=float, metavar="NUM", help="nucleus sampling probability mass")
    opts.add_argument("-n", "--n", type=int, metavar="INT", help="number of choices to generate")
    opts.add_argument("-S", "--stream", type=_parse_bool, metavar="BOOL", help="enable receiving partial deltas")
    opts.add_argument("-X", "--stop", action="append", metavar="STR", help="add a stop sequence")
    opts.add_argument("-t", "--max-tokens", type=int, metavar="INT", help="maximum number of tokens to generate")
    opts.add_argument("-P", "--presence-penalty", type=float, metavar="NUM", help="penalty for token similarity")
    opts.add_argument("-F", "--frequency-penalty", type=float, metavar="NUM", help="penalty for token frequency")
    opts.add_argument("-L", "--logit-bias", type=_parse_json_map, action="append", metavar="MAP",
                      help="JSON map of token biases")
    opts.add_argument("-U", "--user", metavar="STR", help="unique user identifier")

    tags = p.add_argument_group("TAGMSG")
    tags.add_argument("-s", "--sys", dest="messages", action=_TaggedMessage, const="system", metavar="STR",
                      help="append a system message to the context")
    tags.add_argument("-g", "--gpt", dest="messages", action=_TaggedMessage, const="assistant", metavar="STR",
                      help="append an assistant message to the context")
    tags.add_argument("-u", "--usr", dest="messages", action=_TaggedMessage, const="user", metavar="STR",
                      help="append a user message to the context")

    p.add_argument("prompts", nargs="*", metavar="USRMSG", help="append a user message to the context")
    p.set_defaults(messages=[])
    return p


# option dest -> context key for plain scalar parameters
_SCALAR_OPTIONS = {
    "model": "model",
    "temperature": "temperature",
    "top_p": "top_p",
    "n": "n",
    "stream": "stream",
    "max_tokens": "max_tokens",
    "presence_penalty": "presence_penalty",
    "frequency_penalty": "frequency_penalty",
    "user": "user",
}


def parse_auth(auth: str) -> tuple[str, str]:
    """Parse authfile contents into (key, org)."""
    try:
        data = yaml.safe_load(auth)
    except yaml.YAMLError as e:
        raise ParseError(f"could not parse authentication data: {e}") from e
    if not isinstance(data, dict):
        raise ParseError(_AUTH_HELP)
    key = data.get("key")
    org = data.get("org") or ""
    if not isinstance(key, str) or not key or not isinstance(org, str):
        raise ParseError(_AUTH_HELP)
    return key, org


class GptPlugin:
    """OpenAI Chat Completions plugin."""

    def __init__(self) -> None:
        self._parser = _build_parser()
        self._document = Document()
        self._auth: str | None = None
        self._extractor = FragmentExtractor()
        self._merger = DeltaMerger(self._document, on_content=self._print_content)
        self._printing = False
        self._n: int | None = None
        self._echoed = False

    @property
    def name(self) -> str:
        return "gpt"

    @property
    def descr(self) -> str:
        return _DESCRIPTION

    @property
    def document(self) -> Document:
        return self._document

    @property
    def echoed(self) -> bool:
        return self._echoed

    def usage(self) -> str:
        return self._parser.format_usage().strip()

    def help(self) -> str:
        return self._parser.format_help().rstrip()

    def parse_args(
        self,
        args: Sequence[str],
        read_stdin: Callable[[], str] | None = None,
    ) -> argparse.Namespace:
        ns = self._parser.parse_intermixed_args(list(args))
        if not ns.help:
            if not ns.prompts and read_stdin is not None:
                ns.prompts = [read_stdin()]
            ns.messages = list(ns.messages) + [("user", prompt) for prompt in ns.prompts]
        return ns

    def initialize(self, document: Document, options: argparse.Namespace, auth: str | None) -> None:
        self._document = document
        self._auth = auth
        self.begin()

        for dest, key in _SCALAR_OPTIONS.items():
            value = getattr(options, dest, None)
            if value is not None:
                document.set(key, value)

        for stop in getattr(options, "stop", None) or []:
            document.append("stop", stop)

        for bias in getattr(options, "logit_bias", None) or []:
            document.seed_map("logit_bias").update(bias)

        for role, content in getattr(options, "messages", None) or []:
            self.add_message(role, content)

        self._n = self._choices()

    def add_message(self, role: str, content: str) -> dict:
        return self._document.append("messages", {"role": role, "content": content})

    def _choices(self) -> int | None:
        n = self._document.get("n")
        if n is None:
            return None
        if isinstance(n, bool) or not isinstance(n, int) or n < 1:
            raise ParseError(f"context parameter n must be a positive integer, got {n!r}")
        return n

    def request(self) -> Request:
        if self._auth is None:
            raise ParseError(f"no authentication data; {_AUTH_HELP} (see `llmq auth gpt`)")
        key, org = parse_auth(self._auth)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {key}",
        }
        if org:
            headers["OpenAI-Organization"] = org
        body = self._document.to_json()
        log.debug("Postdata: %s", body)
        return Request(url=URL, headers=headers, body=body)

    def begin(self) -> None:
        self._extractor.reset()
        self._echoed = False
        self._merger = DeltaMerger(self._document, on_content=self._print_content)

    def _print_content(self, content: str) -> None:
        if self._printing:
            click.echo(content, nl=False)
            self._echoed = True

    def consume(self, chunk: str, echo: bool) -> int:
        # deltas of parallel choices would interleave on stdout
        self._printing = echo and self._n in (None, 1)
        fragments = self._extractor.drain(chunk)
        for fragment in fragments:
            log.debug("Fragment: %s", fragment)
            self._merger.merge(fragment)
        return len(fragments)

    def finish(self, echo: bool) -> None:
        n = self._n
        self._merger.finalize(expected=n if n is not None else 1)
        if not echo:
            return
        if n is None or n == 1:
            click.echo()
            return

        messages = self._document.get("messages") or []
        if len(messages) < n:
            raise ProtocolError(f"invalid response: expected at least {n} messages")
        replies = []
        for m in messages[len(messages) - n:]:
            if not isinstance(m, dict) or "role" not in m or "content" not in m:
                raise ProtocolError('invalid response: expected messages to have "role" and "content"')
            if m["role"] != "assistant":
                raise ProtocolError(f'invalid role: expected "assistant", received "{m["role"]}"')
            replies.append(m["content"])
        click.echo(json.dumps(replies, ensure_ascii=False))
