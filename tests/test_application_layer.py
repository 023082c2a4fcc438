"""
Tests for file I/O, data helpers, metrics and logging.
"""

import io
import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from arqtransfer.layers.application_layer import (
    FileSource, FileSink, MemorySink, FileAccessError,
    TestDataGenerator, DataVerifier
)
from arqtransfer.utils.metrics import TransferSummary, MetricsCollector
from arqtransfer.utils.logger import (
    TransferLogger, LogLevel, get_logger, set_logger, parse_level
)


class TestFiles:
    """Tests for FileSource, FileSink and MemorySink."""

    def test_read_all(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"hello world")
        source = FileSource(str(path))

        assert source.read_all() == b"hello world"
        assert source.get_size() == 11

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileAccessError):
            FileSource(str(tmp_path / "missing.bin")).read_all()

    def test_sink_writes_appended_chunks(self, tmp_path):
        path = tmp_path / "out.bin"
        with FileSink(str(path)) as sink:
            sink.append(b"abc")
            sink.append(b"")
            sink.append(b"def")

        assert path.read_bytes() == b"abcdef"

    def test_sink_truncates_existing_file(self, tmp_path):
        path = tmp_path / "out.bin"
        path.write_bytes(b"old contents")
        with FileSink(str(path)) as sink:
            sink.append(b"new")

        assert path.read_bytes() == b"new"

    def test_sink_bad_directory(self, tmp_path):
        with pytest.raises(FileAccessError):
            FileSink(str(tmp_path / "missing" / "out.bin"))

    def test_file_access_error_is_os_error(self):
        assert issubclass(FileAccessError, OSError)

    def test_memory_sink(self):
        sink = MemorySink()
        sink.append(b"ab")
        sink.append(b"c")

        assert sink.data == b"abc"
        assert sink.write_count == 2


class TestDataHelpers:
    """Tests for TestDataGenerator and DataVerifier."""

    def test_seeded_random_is_deterministic(self):
        first = TestDataGenerator.generate_test_data(2048, seed=5)
        second = TestDataGenerator.generate_test_data(2048, seed=5)

        assert first == second
        assert len(first) == 2048

    def test_patterns(self):
        assert TestDataGenerator.generate_test_data(4, "zeros") == b"\x00" * 4
        assert TestDataGenerator.generate_test_data(258, "sequential")[255:] == b"\xff\x00\x01"
        with pytest.raises(ValueError):
            TestDataGenerator.generate_test_data(4, "stripes")

    def test_generate_file(self, tmp_path):
        path = tmp_path / "sub" / "file.bin"
        TestDataGenerator.generate_test_file(str(path), 100, seed=1)

        assert path.read_bytes() == TestDataGenerator.generate_test_data(100, seed=1)

    def test_verify_match(self):
        valid, details = DataVerifier.verify_data(b"abcd", b"abcd")

        assert valid
        assert details['original_checksum'] == details['received_checksum']

    def test_verify_mismatch(self):
        valid, details = DataVerifier.verify_data(b"abcd", b"abXd")

        assert not valid
        assert details['first_mismatch_byte'] == 2

    def test_verify_truncated(self):
        valid, details = DataVerifier.verify_data(b"abcd", b"ab")

        assert not valid
        assert details['first_mismatch_byte'] == 2


class TestTransferSummary:
    """Tests for the CLI summary."""

    def test_from_transfer(self):
        summary = TransferSummary.from_transfer(10240, 2.0, 3)

        assert summary.file_size_kb == pytest.approx(10.0)
        assert summary.throughput_kb_per_sec == pytest.approx(5.0)
        assert summary.retransmissions == 3

    def test_zero_time(self):
        summary = TransferSummary.from_transfer(1024, 0.0, 0)

        assert summary.throughput_kb_per_sec == 0.0

    def test_format(self):
        text = TransferSummary.from_transfer(2048, 0.5, 1).format()

        assert text.splitlines() == [
            "File Size: 2.00 kb",
            "Transfer Time: 0.500 s",
            "Throughput: 4.00 kb/s",
            "Retransmissions: 1",
        ]


class TestMetricsCollector:
    """Tests for MetricsCollector class."""

    def test_goodput_and_efficiency(self):
        metrics = MetricsCollector()
        metrics.start(0.0)
        metrics.record_data_sent(1027)
        metrics.record_data_sent(1027)
        metrics.record_ack_sent(3)
        metrics.record_data_delivered(2048)
        metrics.finish(2.0)

        assert metrics.calculate_goodput() == pytest.approx(1024.0)
        assert metrics.calculate_efficiency() == pytest.approx(2048 / 2057)

    def test_loss_rate(self):
        metrics = MetricsCollector()
        for _ in range(4):
            metrics.record_data_sent(10)
        metrics.record_data_lost()

        assert metrics.calculate_loss_rate() == pytest.approx(0.25)

    def test_empty(self):
        metrics = MetricsCollector()

        assert metrics.calculate_goodput() == 0.0
        assert metrics.calculate_efficiency() == 0.0
        assert metrics.get_rtt_statistics()['samples'] == 0

    def test_rtt_statistics(self):
        metrics = MetricsCollector()
        for rtt in [0.1, 0.2, 0.3]:
            metrics.record_rtt(rtt)

        stats = metrics.get_rtt_statistics()
        assert stats['mean'] == pytest.approx(0.2)
        assert stats['median'] == pytest.approx(0.2)
        assert stats['samples'] == 3


class TestTransferLogger:
    """Tests for TransferLogger class."""

    def make(self, level=LogLevel.INFO):
        stream = io.StringIO()
        logger = TransferLogger(name="T", level=level, use_colors=False,
                                include_timestamp=False, stream=stream)
        return stream, logger

    def test_level_filtering(self):
        stream, logger = self.make()
        logger.debug("hidden")
        logger.info("shown", "SESSION")

        assert stream.getvalue() == "INFO     [T] [SESSION] shown\n"
        assert logger.get_summary()['total_messages'] == 1

    def test_sim_time_prefix(self):
        stream = io.StringIO()
        logger = TransferLogger(name="T", use_colors=False, stream=stream,
                                level=LogLevel.DEBUG)
        logger.set_sim_time(1.5)
        logger.ack_received(7)

        assert stream.getvalue().startswith("[  1.500000s]")
        assert "ACK 7 received" in stream.getvalue()

    def test_log_file(self, tmp_path):
        path = tmp_path / "logs" / "run.log"
        logger = TransferLogger(name="T", log_file=str(path), stream=io.StringIO())
        logger.warning("careful")
        logger.close()

        contents = path.read_text()
        assert "careful" in contents
        assert "\033[" not in contents

    def test_parse_level(self):
        assert parse_level("debug") == LogLevel.DEBUG
        assert parse_level(" Warning ") == LogLevel.WARNING
        assert parse_level(3) == LogLevel.ERROR
        with pytest.raises(ValueError):
            parse_level("chatty")

    def test_global_logger(self):
        previous = get_logger()
        _, logger = self.make()
        try:
            set_logger(logger)
            assert get_logger() is logger
        finally:
            set_logger(previous)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
