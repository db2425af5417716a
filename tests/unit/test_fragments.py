"""Tests for llmq.stream.fragments."""

import json

import pytest

from llmq.stream.fragments import FragmentExtractor, find_json


def _extract(text: str) -> str | None:
    span = find_json(text)
    if span is None:
        return None
    return text[span[0]:span[1]]


class TestFindJson:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("", None),
            ("{}", "{}"),
            (" {}", "{}"),
            ("foo: {}", "{}"),
            (" foo: {}", "{}"),
            (" foo: {}  bar ", "{}"),
            (' foo: {"a": "b: {"}  bar ', '{"a": "b: {"}'),
            (' foo: {"a": "b: }"}  bar ', '{"a": "b: }"}'),
        ],
    )
    def test_vectors(self, text, expected):
        assert _extract(text) == expected

    def test_no_braces(self):
        assert find_json("data: [DONE]\n\n") is None

    def test_incomplete_object(self):
        assert find_json('data: {"choices": [{"index": 0') is None

    def test_nested_objects(self):
        text = 'data: {"a": {"b": {"c": 1}}, "d": 2}\n\n'
        assert _extract(text) == '{"a": {"b": {"c": 1}}, "d": 2}'

    def test_escaped_quote_inside_string(self):
        text = r'{"a": "say \"}\" please"} tail'
        assert _extract(text) == r'{"a": "say \"}\" please"}'

    def test_escaped_backslash_before_closing_quote(self):
        text = r'{"a": "c:\\"} {"b": 1}'
        assert _extract(text) == r'{"a": "c:\\"}'

    def test_stray_closing_brace_in_preamble(self):
        assert _extract('} noise {"a": 1}') == '{"a": 1}'

    def test_returns_first_of_several(self):
        assert _extract('{"a": 1}{"b": 2}') == '{"a": 1}'


class TestFragmentExtractor:
    def test_partial_then_complete(self):
        ex = FragmentExtractor()
        ex.feed('data: {"a": ')
        assert ex.pop() is None
        assert ex.pending == 'data: {"a": '

        ex.feed('"b"}\n\ndata: {')
        assert ex.pop() == '{"a": "b"}'
        assert ex.pending == "\n\ndata: {"
        assert ex.pop() is None

    def test_drain_returns_all_complete_fragments(self):
        ex = FragmentExtractor()
        frags = ex.drain('data: {"n": 1}\n\ndata: {"n": 2}\n\ndata: {"n"')
        assert frags == ['{"n": 1}', '{"n": 2}']
        assert ex.pending == '\n\ndata: {"n"'

    def test_drain_empty_chunk(self):
        ex = FragmentExtractor()
        assert ex.drain("") == []

    def test_byte_by_byte_delivery(self):
        text = 'data: {"choices": [{"delta": {"content": "}{"}}]}\n\ndata: [DONE]\n\n'
        ex = FragmentExtractor()
        frags = []
        for ch in text:
            frags.extend(ex.drain(ch))
        assert frags == ['{"choices": [{"delta": {"content": "}{"}}]}']
        assert ex.pending == "\n\ndata: [DONE]\n\n"

    def test_escape_split_across_chunks(self):
        ex = FragmentExtractor()
        assert ex.drain('{"a": "x\\') == []
        assert ex.drain('"}') == []
        assert ex.drain('"}') == ['{"a": "x\\"}"}']

    def test_large_reply_in_many_chunks(self):
        text = json.dumps({"choices": [{"index": 0, "message": {"role": "assistant", "content": "{x} " * 5000}}]})
        ex = FragmentExtractor()
        frags = []
        for i in range(0, len(text), 7):
            frags.extend(ex.drain(text[i:i + 7]))
        assert frags == [text]
        assert ex.pending == ""

    def test_scan_resumes_after_pending_text(self):
        ex = FragmentExtractor()
        ex.drain('data: {"a": "' + "y" * 100)
        assert ex._pos == len(ex.pending)
        assert ex.drain('"}') == ['{"a": "' + "y" * 100 + '"}']

    def test_reset(self):
        ex = FragmentExtractor()
        ex.feed('{"a": "\\')
        ex.drain("")
        ex.reset()
        assert ex.pending == ""
        assert ex.drain('{"b": 1}') == ['{"b": 1}']
