"""Unit tests for LogLineCollector."""

from __future__ import annotations

from datetime import datetime, timezone

from composekit.compose.collector import LogLineCollector


class TestLogLineCollector:
    """Test collecting lines from both streams."""

    def test_starts_empty(self) -> None:
        """Test a new collector has no lines and zero counts."""
        collector = LogLineCollector()
        assert collector.lines() == []
        assert collector.stdout_count == 0
        assert collector.stderr_count == 0
        assert len(collector) == 0

    def test_preserves_arrival_order(self) -> None:
        """Test stdout and stderr lines are interleaved in arrival order."""
        collector = LogLineCollector()
        collector.accept("first", False)
        collector.accept("warning", True)
        collector.accept("second", False)

        assert collector.lines() == ["first", "warning", "second"]
        assert collector.stdout_lines() == ["first", "second"]
        assert collector.stderr_lines() == ["warning"]

    def test_counts_streams(self) -> None:
        """Test stdout and stderr counters."""
        collector = LogLineCollector()
        for _ in range(3):
            collector.accept("out", False)
        collector.accept("err", True)

        assert collector.stdout_count == 3
        assert collector.stderr_count == 1
        assert len(collector) == 4

    def test_independent_instances(self) -> None:
        """Test two collectors never share their buffers."""
        first = LogLineCollector()
        second = LogLineCollector()
        first.accept("line", False)

        assert second.lines() == []
        assert second.stdout_count == 0


class TestLogLineEntries:
    """Test the recorded entries."""

    def test_keeps_stream_origin(self) -> None:
        """Test each entry remembers its stream."""
        collector = LogLineCollector()
        collector.accept("out", False)
        collector.accept("err", True)

        assert [entry.is_stderr for entry in collector.entries] == [False, True]

    def test_strips_line_endings(self) -> None:
        """Test trailing newlines are removed but inner content kept."""
        collector = LogLineCollector()
        collector.accept('{"ID": "a"}\r\n', False)
        collector.accept("  indented\n", False)

        assert collector.lines() == ['{"ID": "a"}', "  indented"]

    def test_uses_given_timestamp(self) -> None:
        """Test an explicit timestamp is recorded."""
        stamp = datetime(2026, 1, 1, tzinfo=timezone.utc)
        collector = LogLineCollector()
        collector.accept("line", False, stamp)

        assert collector.entries[0].timestamp == stamp

    def test_default_timestamp_is_utc(self) -> None:
        """Test entries without a timestamp are stamped in UTC."""
        collector = LogLineCollector()
        collector.accept("line", False)

        assert collector.entries[0].timestamp.tzinfo == timezone.utc
