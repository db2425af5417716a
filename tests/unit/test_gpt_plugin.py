"""Tests for llmq.providers.gpt."""

import json

import pytest

from llmq.core.document import Document
from llmq.core.errors import ParseError, ProtocolError
from llmq.providers.base import Plugin
from llmq.providers.gpt import URL, GptPlugin, parse_auth


@pytest.fixture()
def plugin() -> GptPlugin:
    return GptPlugin()


class TestParseArgs:
    def test_is_plugin(self, plugin):
        assert isinstance(plugin, Plugin)
        assert plugin.name == "gpt"

    def test_message_order(self, plugin):
        ns = plugin.parse_args(["-s", "be terse", "first", "-g", "ok", "-u", "second", "third"])
        assert ns.messages == [
            ("system", "be terse"),
            ("assistant", "ok"),
            ("user", "second"),
            ("user", "first"),
            ("user", "third"),
        ]

    def test_scalar_options(self, plugin):
        ns = plugin.parse_args(["-m", "gpt-4", "-T", "0.2", "-n", "3", "-S", "false", "-t", "100", "hi"])
        assert ns.model == "gpt-4"
        assert ns.temperature == 0.2
        assert ns.n == 3
        assert ns.stream is False
        assert ns.max_tokens == 100

    def test_reads_stdin_without_prompts(self, plugin):
        ns = plugin.parse_args(["-m", "gpt-4"], read_stdin=lambda: "from stdin")
        assert ns.messages == [("user", "from stdin")]

    def test_stdin_ignored_with_prompts(self, plugin):
        def fail():
            raise AssertionError("stdin read")

        ns = plugin.parse_args(["hello"], read_stdin=fail)
        assert ns.messages == [("user", "hello")]

    def test_help_skips_stdin(self, plugin):
        ns = plugin.parse_args(["-h"], read_stdin=lambda: pytest.fail("stdin read"))
        assert ns.help is True

    def test_defaults_not_shared(self, plugin):
        plugin.parse_args(["-s", "a"])
        ns = plugin.parse_args([])
        assert ns.messages == []

    def test_invalid_option(self, plugin):
        with pytest.raises(ParseError, match="gpt:"):
            plugin.parse_args(["--bogus"])

    def test_invalid_bool(self, plugin):
        with pytest.raises(ParseError):
            plugin.parse_args(["-S", "maybe"])

    def test_invalid_logit_bias(self, plugin):
        with pytest.raises(ParseError):
            plugin.parse_args(["-L", "[1, 2]"])

    def test_help_text(self, plugin):
        text = plugin.help()
        assert "--temperature" in text
        assert "authfile" in text


class TestInitialize:
    def test_options_override_context(self, plugin):
        doc = Document({"model": "old", "temperature": 1.0, "messages": [{"role": "user", "content": "a"}]})
        ns = plugin.parse_args(["-m", "new", "-X", "END", "-L", '{"50256": -100}', "-L", '{"1": 2}', "b"])
        plugin.initialize(doc, ns, None)

        assert doc.get("model") == "new"
        assert doc.get("temperature") == 1.0
        assert doc.get("stop") == ["END"]
        assert doc.get("logit_bias") == {"50256": -100, "1": 2}
        assert doc.get("messages")[-1] == {"role": "user", "content": "b"}
        assert plugin.document is doc


class TestAuth:
    def test_parse_auth(self):
        assert parse_auth("key: sk-1\norg: org-2\n") == ("sk-1", "org-2")
        assert parse_auth("key: sk-1\n") == ("sk-1", "")

    @pytest.mark.parametrize("text", ["- a\n", "org: x\n", "key: 5\n", "key: [\n"])
    def test_parse_auth_invalid(self, text):
        with pytest.raises(ParseError):
            parse_auth(text)

    def test_request_headers(self, plugin):
        plugin.initialize(Document(), plugin.parse_args(["-m", "gpt-4", "hi"]), "key: sk-1\norg: org-2\n")
        req = plugin.request()
        assert req.url == URL
        assert req.headers["Authorization"] == "Bearer sk-1"
        assert req.headers["OpenAI-Organization"] == "org-2"
        assert json.loads(req.body) == {"model": "gpt-4", "messages": [{"role": "user", "content": "hi"}]}

    def test_request_without_auth(self, plugin):
        plugin.initialize(Document(), plugin.parse_args(["hi"]), None)
        with pytest.raises(ParseError, match="llmq auth gpt"):
            plugin.request()


def _reply(index: int, content: str) -> str:
    return "data: " + json.dumps({
        "choices": [{"index": index, "delta": {"role": "assistant", "content": content}}]
    }) + "\n\n"


class TestStreaming:
    def test_multiple_choices_printed_as_json(self, plugin, capsys):
        plugin.initialize(Document(), plugin.parse_args(["-n", "2", "hi"]), None)
        plugin.begin()
        assert plugin.consume(_reply(0, "A") + _reply(1, "B"), echo=True) == 2
        plugin.finish(echo=True)
        assert capsys.readouterr().out == '["A", "B"]\n'

    def test_single_choice_streams(self, plugin, capsys):
        plugin.initialize(Document(), plugin.parse_args(["hi"]), None)
        plugin.begin()
        plugin.consume(_reply(0, "He"), echo=True)
        plugin.consume(_reply(0, "y"), echo=True)
        plugin.finish(echo=True)
        assert capsys.readouterr().out == "Hey\n"

    def test_quiet(self, plugin, capsys):
        plugin.initialize(Document(), plugin.parse_args(["hi"]), None)
        plugin.begin()
        plugin.consume(_reply(0, "Hey"), echo=False)
        plugin.finish(echo=False)
        assert capsys.readouterr().out == ""

    @pytest.mark.parametrize("n", ["many", 0, -1, True, 1.5])
    def test_invalid_n_rejected_before_streaming(self, plugin, n):
        with pytest.raises(ParseError, match="must be a positive integer"):
            plugin.initialize(Document({"n": n}), plugin.parse_args(["hi"]), None)

    def test_invalid_n_option(self, plugin):
        with pytest.raises(ParseError, match="must be a positive integer"):
            plugin.initialize(Document(), plugin.parse_args(["-n", "0", "hi"]), None)

    def test_split_fragment(self, plugin):
        plugin.initialize(Document(), plugin.parse_args(["hi"]), None)
        chunk = _reply(0, "split")
        assert plugin.consume(chunk[:20], echo=False) == 0
        assert plugin.consume(chunk[20:], echo=False) == 1
        plugin.finish(echo=False)
        assert plugin.document.get("messages")[-1] == {"role": "assistant", "content": "split"}

    def test_finish_without_reply(self, plugin):
        plugin.initialize(Document(), plugin.parse_args(["hi"]), None)
        with pytest.raises(ProtocolError):
            plugin.finish(echo=False)
