"""
Transfer Logger

Leveled, colored console logging for senders, receivers and the
simulator. Inside a simulation every line is stamped with the simulated
clock instead of the wall clock, so traces of a run read in event order.
"""

from typing import Optional, TextIO, Union
from datetime import datetime
from enum import IntEnum
import os
import re
import sys

from config import DEFAULT_LOG_LEVEL


class LogLevel(IntEnum):
    """Log level enumeration."""
    DEBUG = 0
    INFO = 1
    WARNING = 2
    ERROR = 3
    CRITICAL = 4


def parse_level(value: Union[int, str]) -> LogLevel:
    """
    Convert a level name ("debug", "WARNING") or number to a LogLevel.

    Raises:
        ValueError: If the value names no level
    """
    if isinstance(value, str):
        try:
            return LogLevel[value.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown log level: {value}") from None
    return LogLevel(value)


_ANSI_ESCAPE = re.compile(r'\033\[[0-9;]*m')


class TransferLogger:
    """
    Logger for transfer events.

    Console lines go to ``stream`` (stderr by default) so that a command's
    own output on stdout stays clean. An optional log file receives the
    same lines without color codes.

    Attributes:
        name: Logger name, shown in brackets on every line
        level: Minimum log level
        sim_time: Simulated time used as timestamp, or None for wall clock
        message_counts: Lines emitted per level
    """

    COLORS = {
        LogLevel.DEBUG: '\033[36m',     # Cyan
        LogLevel.INFO: '\033[32m',      # Green
        LogLevel.WARNING: '\033[33m',   # Yellow
        LogLevel.ERROR: '\033[31m',     # Red
        LogLevel.CRITICAL: '\033[35m',  # Magenta
    }
    RESET = '\033[0m'

    def __init__(
        self,
        name: str = "ARQ",
        level: Union[int, str] = DEFAULT_LOG_LEVEL,
        log_file: Optional[str] = None,
        use_colors: bool = True,
        include_timestamp: bool = True,
        stream: Optional[TextIO] = None
    ):
        """
        Args:
            name: Logger name
            level: Minimum log level (LogLevel, number or name)
            log_file: Optional log file (truncated on open)
            use_colors: Color the level names on the console
            include_timestamp: Prefix lines with a timestamp
            stream: Console stream (stderr by default)
        """
        self.name = name
        self.level = parse_level(level)
        self.use_colors = use_colors
        self.include_timestamp = include_timestamp
        self.stream = stream
        self.sim_time: Optional[float] = None
        self.message_counts = {lvl: 0 for lvl in LogLevel}

        self.file: Optional[TextIO] = None
        if log_file:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            self.file = open(log_file, 'w')

    def set_sim_time(self, time: Optional[float]):
        """Stamp subsequent lines with a simulated time (None restores wall clock)."""
        self.sim_time = time

    def set_level(self, level: Union[int, str]):
        self.level = parse_level(level)

    def _timestamp(self) -> str:
        if self.sim_time is not None:
            return f"[{self.sim_time:10.6f}s]"
        return f"[{datetime.now().strftime('%H:%M:%S.%f')[:-3]}]"

    def _format_message(
        self,
        level: LogLevel,
        message: str,
        category: Optional[str] = None
    ) -> str:
        level_str = level.name.ljust(8)
        if self.use_colors:
            level_str = f"{self.COLORS[level]}{level_str}{self.RESET}"

        parts = [self._timestamp()] if self.include_timestamp else []
        parts += [level_str, f"[{self.name}]"]
        if category:
            parts.append(f"[{category}]")
        parts.append(message)
        return " ".join(parts)

    def _log(self, level: LogLevel, message: str, category: Optional[str] = None):
        if level < self.level:
            return

        self.message_counts[level] += 1
        line = self._format_message(level, message, category)
        print(line, file=self.stream or sys.stderr)

        if self.file:
            self.file.write(_ANSI_ESCAPE.sub('', line) + '\n')
            self.file.flush()

    def debug(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.DEBUG, message, category)

    def info(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.INFO, message, category)

    def warning(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.WARNING, message, category)

    def error(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.ERROR, message, category)

    def critical(self, message: str, category: Optional[str] = None):
        self._log(LogLevel.CRITICAL, message, category)

    # Transfer events. Per-packet traffic is DEBUG, recovery is INFO/WARNING.

    def packet_sent(self, seq_num: int, kind: str, size: int):
        self.debug(f"{kind} {seq_num} sent ({size} B payload)", "TX")

    def packet_received(self, seq_num: int, kind: str, size: int):
        self.debug(f"{kind} {seq_num} received ({size} B payload)", "RX")

    def ack_sent(self, ack_num: int):
        self.debug(f"ACK {ack_num} sent", "ACK")

    def ack_received(self, ack_num: int):
        self.debug(f"ACK {ack_num} received", "ACK")

    def discard(self, seq_num: int, reason: str):
        """Log a packet or ack that was counted but not acted on."""
        self.debug(f"Ignored {seq_num}: {reason}", "DROP")

    def timeout(self, what: str, count: int):
        self.warning(f"Timeout for {what} (timeout #{count})", "TIMEOUT")

    def retransmit(self, seq_num: int):
        self.info(f"Retransmitting packet {seq_num}", "RETX")

    def window_update(self, base: int, next_seq: int, size: int):
        self.debug(f"Window [{base}, {base + size}) next={next_seq}", "WINDOW")

    def transfer_start(self, params: dict):
        param_str = ", ".join(f"{k}={v}" for k, v in params.items())
        self.info(f"Transfer started: {param_str}", "SESSION")

    def transfer_end(self, stats: dict):
        self.info(
            f"Transfer ended: packets={stats.get('packets_sent', 0)}, "
            f"retransmissions={stats.get('retransmissions', 0)}, "
            f"elapsed={stats.get('elapsed', 0.0):.3f}s",
            "SESSION"
        )

    def get_summary(self) -> dict:
        """Lines emitted per level and in total."""
        return {
            'message_counts': {lvl.name: count for lvl, count in self.message_counts.items()},
            'total_messages': sum(self.message_counts.values())
        }

    def close(self):
        if self.file:
            self.file.close()
            self.file = None


_global_logger: Optional[TransferLogger] = None


def get_logger() -> TransferLogger:
    """Process-wide logger, created with default settings on first use."""
    global _global_logger
    if _global_logger is None:
        _global_logger = TransferLogger()
    return _global_logger


def set_logger(logger: TransferLogger):
    global _global_logger
    _global_logger = logger


if __name__ == "__main__":
    logger = TransferLogger(name="Demo", level="debug")

    logger.set_sim_time(0.0)
    logger.transfer_start({'protocol': 'sr', 'window_size': 8})
    logger.set_sim_time(0.001)
    logger.packet_sent(0, "DATA", 1024)
    logger.set_sim_time(0.050)
    logger.packet_received(0, "DATA", 1024)
    logger.ack_sent(0)
    logger.set_sim_time(0.100)
    logger.ack_received(0)
    logger.set_sim_time(0.600)
    logger.timeout("packet 1", 1)
    logger.retransmit(1)
    logger.set_sim_time(1.0)
    logger.transfer_end({'packets_sent': 10, 'retransmissions': 1, 'elapsed': 1.0})

    print(f"\nLogger summary: {logger.get_summary()}")
