"""Tests for llmq.core.writer."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from llmq.core.errors import ContextIOError, LockError
from llmq.core.writer import ContextWriter, diff_spans


@pytest.fixture()
def ctx_file(tmp_path: Path) -> Path:
    path = tmp_path / "ctx.yml"
    path.write_bytes(b"")
    return path


class TestDiffSpans:
    def test_identical(self):
        assert diff_spans(b"abc", b"abc") == []

    def test_append(self):
        assert diff_spans(b"abc", b"abcdef") == [(3, 6)]

    def test_from_empty(self):
        assert diff_spans(b"", b"xyz") == [(0, 3)]

    def test_single_change(self):
        assert diff_spans(b"abcdef", b"abXdef") == [(2, 3)]

    def test_two_changes(self):
        assert diff_spans(b"abcdef", b"XbcdeY") == [(0, 1), (5, 6)]

    def test_shorter_new(self):
        assert diff_spans(b"abcdef", b"abX") == [(2, 3)]

    def test_long_equal_runs(self):
        old = b"a" * 10_000 + b"b" + b"c" * 9_000 + b"d"
        new = b"a" * 10_000 + b"X" + b"c" * 9_000 + b"Y" + b"tail"
        assert diff_spans(old, new) == [(10_000, 10_001), (19_001, 19_002), (19_002, 19_006)]

    def test_mismatch_at_block_boundary(self):
        old = b"x" * 8192
        new = b"x" * 4095 + b"Z" + b"x" * 4096
        assert diff_spans(old, new) == [(4095, 4096)]


class TestOverwrite:
    @pytest.mark.parametrize(
        "first, second",
        [
            ("a: 1\n", "a: 1\nb: 2\n"),
            ("a: 1\n", "a: 2\n"),
            ("a: 1\nb: 2\n", "a: 1\n"),
            ("messages:\n- role: user\n", "model: x\n"),
        ],
    )
    def test_file_matches_content(self, ctx_file, first, second):
        with ContextWriter(ctx_file) as writer:
            writer.overwrite(first)
            assert ctx_file.read_text() == first
            writer.overwrite(second)
        assert ctx_file.read_text() == second

    def test_idempotent_writes_nothing(self, ctx_file):
        with ContextWriter(ctx_file) as writer:
            assert writer.overwrite("a: 1\n") == 5
            assert writer.overwrite("a: 1\n") == 0

    def test_append_writes_only_tail(self, ctx_file):
        with ContextWriter(ctx_file) as writer:
            writer.overwrite("content: Hel")
            assert writer.overwrite("content: Hello") == 2
        assert ctx_file.read_text() == "content: Hello"

    def test_previous_read_from_disk(self, ctx_file):
        ctx_file.write_text("model: gpt-4\n")
        with ContextWriter(ctx_file) as writer:
            assert writer.snapshot == b"model: gpt-4\n"
            assert writer.overwrite("model: gpt-4\n") == 0

    def test_explicit_previous(self, ctx_file):
        ctx_file.write_text("model: gpt-4\n")
        with ContextWriter(ctx_file, previous="model: gpt-4\n") as writer:
            assert writer.overwrite("model: gpt-5\n") == 1
        assert ctx_file.read_text() == "model: gpt-5\n"

    def test_unicode(self, ctx_file):
        with ContextWriter(ctx_file) as writer:
            writer.overwrite("content: héllo\n")
            writer.overwrite("content: hé\n")
        assert ctx_file.read_text(encoding="utf-8") == "content: hé\n"

    def test_recovers_after_failed_write(self, ctx_file):
        with ContextWriter(ctx_file) as writer:
            writer.overwrite("content: Hello\n")
            real = writer._file
            failed = []

            def write(data):
                if not failed:
                    failed.append(data)
                    real.write(data[:1])
                    real.flush()
                    raise OSError(28, "No space left on device")
                return real.write(data)

            writer._file = MagicMock(wraps=real)
            writer._file.write.side_effect = write
            with pytest.raises(ContextIOError, match="No space left"):
                writer.overwrite("content: Howdy partner\n")
            assert writer.snapshot is None

            # byte 10 on disk is now "o"; the stale snapshot still says "e"
            writer.overwrite("content: Hello again\n")
            writer._file = real
        assert ctx_file.read_text() == "content: Hello again\n"

    def test_closed_writer(self, ctx_file):
        writer = ContextWriter(ctx_file)
        writer.close()
        writer.close()
        with pytest.raises(ContextIOError, match="closed"):
            writer.overwrite("x")


class TestLocking:
    def test_second_writer_fails(self, ctx_file):
        with ContextWriter(ctx_file):
            with pytest.raises(LockError, match="llmq kill"):
                ContextWriter(ctx_file)

    def test_lock_released_on_close(self, ctx_file):
        with ContextWriter(ctx_file):
            pass
        with ContextWriter(ctx_file) as writer:
            writer.overwrite("ok")
        assert ctx_file.read_text() == "ok"

    def test_lock_released_on_exception(self, ctx_file):
        with pytest.raises(RuntimeError):
            with ContextWriter(ctx_file):
                raise RuntimeError("boom")
        with ContextWriter(ctx_file):
            pass

    def test_missing_file(self, tmp_path):
        with pytest.raises(ContextIOError, match="failed to open"):
            ContextWriter(tmp_path / "missing.yml")
