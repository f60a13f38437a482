"""Tests for the bounded output buffer."""

import threading

from agentdeck.output_buffer import OutputBuffer


class TestUpdate:
    """Change detection via content fingerprint."""

    def test_identical_content_reports_unchanged(self):
        """Second update with the same content returns False."""
        buf = OutputBuffer(10)
        assert buf.update("line 1\nline 2") is True
        assert buf.update("line 1\nline 2") is False

    def test_changed_content_reports_changed(self):
        buf = OutputBuffer(10)
        buf.update("a\nb")
        assert buf.update("a\nc") is True
        assert buf.lines() == ["a", "c"]

    def test_same_length_different_order_is_a_change(self):
        buf = OutputBuffer(10)
        buf.update("ab")
        assert buf.update("ba") is True

    def test_unchanged_update_keeps_lines(self):
        buf = OutputBuffer(10)
        buf.update("x\ny")
        buf.update("x\ny")
        assert buf.lines() == ["x", "y"]


class TestCapacity:
    """The buffer keeps exactly the most recent N lines."""

    def test_never_exceeds_capacity(self):
        buf = OutputBuffer(3)
        buf.update("\n".join(str(i) for i in range(10)))
        assert buf.line_count() == 3
        assert buf.lines() == ["7", "8", "9"]

    def test_not_trimmed_below_capacity(self):
        buf = OutputBuffer(5)
        buf.update("\n".join(str(i) for i in range(5)))
        assert len(buf) == 5

    def test_write_is_update_without_result(self):
        buf = OutputBuffer(2)
        assert buf.write("a\nb\nc") is None
        assert buf.lines() == ["b", "c"]


class TestAccessors:
    def test_lines_returns_copy(self):
        buf = OutputBuffer(5)
        buf.update("a\nb")
        lines = buf.lines()
        lines.append("c")
        assert buf.lines() == ["a", "b"]

    def test_lines_range_is_clamped(self):
        buf = OutputBuffer(10)
        buf.update("a\nb\nc\nd")
        assert buf.lines_range(1, 3) == ["b", "c"]
        assert buf.lines_range(-5, 100) == ["a", "b", "c", "d"]
        assert buf.lines_range(3, 1) == []

    def test_str_joins_lines(self):
        buf = OutputBuffer(10)
        buf.update("a\nb")
        assert str(buf) == "a\nb"

    def test_clear_resets_fingerprint(self):
        buf = OutputBuffer(10)
        buf.update("a")
        buf.clear()
        assert buf.line_count() == 0
        assert buf.update("a") is True


class TestConcurrency:
    def test_concurrent_updates_stay_bounded(self):
        """Writers from several threads never break the capacity bound."""
        buf = OutputBuffer(50)

        def writer(n):
            for i in range(100):
                buf.update("\n".join(f"{n}-{i}-{j}" for j in range(80)))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert buf.line_count() == 50
