"""
Application Layer Implementation

This module implements the file side of a transfer: reading the source
file in one piece, appending delivered bytes to the destination file,
plus test data generation and integrity verification.
"""

import os
import hashlib
from typing import Optional, Tuple

import numpy as np


class FileAccessError(OSError):
    """Raised when the source or destination file cannot be used."""


class FileSource:
    """
    Source file of a send session.

    Attributes:
        path: Path of the file to send
    """

    def __init__(self, path: str):
        self.path = path

    def read_all(self) -> bytes:
        """
        Read the whole file.

        Returns:
            File contents

        Raises:
            FileAccessError: If the file cannot be opened or read
        """
        try:
            with open(self.path, 'rb') as f:
                return f.read()
        except OSError as e:
            raise FileAccessError(f"Cannot read '{self.path}': {e.strerror or e}") from e

    def get_size(self) -> int:
        try:
            return os.path.getsize(self.path)
        except OSError as e:
            raise FileAccessError(f"Cannot stat '{self.path}': {e.strerror or e}") from e


class FileSink:
    """
    Destination file of a receive session.

    The file is created (truncated) on construction, before any packet
    arrives, so access problems surface immediately.

    Attributes:
        path: Output file path
        bytes_written: Number of bytes appended so far
    """

    def __init__(self, path: str):
        self.path = path
        self.bytes_written = 0
        try:
            self.file = open(path, 'wb')
        except OSError as e:
            raise FileAccessError(f"Cannot open '{path}' for writing: {e.strerror or e}") from e

    def append(self, data: bytes):
        """Append delivered bytes to the file."""
        try:
            self.file.write(data)
        except OSError as e:
            raise FileAccessError(f"Cannot write to '{self.path}': {e.strerror or e}") from e
        self.bytes_written += len(data)

    def close(self):
        """Flush and close the file."""
        if not self.file.closed:
            self.file.close()

    def __enter__(self) -> 'FileSink':
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class MemorySink:
    """In-memory sink recording every append call."""

    def __init__(self):
        self.chunks = []

    def append(self, data: bytes):
        self.chunks.append(bytes(data))

    @property
    def data(self) -> bytes:
        return b''.join(self.chunks)

    @property
    def write_count(self) -> int:
        return len(self.chunks)


class TestDataGenerator:
    """
    Generates test data for simulation.

    Used when no actual file is available.
    """

    __test__ = False  # not a pytest class

    @staticmethod
    def generate_test_data(size: int, pattern: str = "random", seed: Optional[int] = None) -> bytes:
        """
        Generate test data of specified size.

        Args:
            size: Size in bytes
            pattern: Pattern type ("random", "sequential", "zeros")
            seed: Seed for the random pattern

        Returns:
            Generated data
        """
        if pattern == "random":
            rng = np.random.default_rng(seed)
            return rng.integers(0, 256, size=size, dtype=np.uint8).tobytes()
        elif pattern == "sequential":
            return (np.arange(size) % 256).astype(np.uint8).tobytes()
        elif pattern == "zeros":
            return bytes(size)
        else:
            raise ValueError(f"Unknown pattern: {pattern}")

    @staticmethod
    def generate_test_file(filepath: str, size: int, pattern: str = "random", seed: Optional[int] = None):
        """
        Generate a test file.

        Args:
            filepath: Output file path
            size: File size in bytes
            pattern: Data pattern
            seed: Seed for the random pattern
        """
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        with open(filepath, 'wb') as f:
            f.write(TestDataGenerator.generate_test_data(size, pattern, seed))


class DataVerifier:
    """
    Utility for verifying data integrity.
    """

    @staticmethod
    def calculate_checksum(data: bytes) -> str:
        """Calculate MD5 checksum of data."""
        return hashlib.md5(data).hexdigest()

    @staticmethod
    def verify_data(original: bytes, received: bytes) -> Tuple[bool, dict]:
        """
        Verify received data against original.

        Args:
            original: Original data
            received: Received data

        Returns:
            Tuple of (match, details)
        """
        original_len = len(original)
        received_len = len(received)

        size_match = original_len == received_len
        content_match = size_match and original == received

        original_checksum = DataVerifier.calculate_checksum(original)
        received_checksum = DataVerifier.calculate_checksum(received)

        # Find first mismatch if any
        first_mismatch = -1
        if not content_match:
            min_len = min(original_len, received_len)
            a = np.frombuffer(original[:min_len], dtype=np.uint8)
            b = np.frombuffer(received[:min_len], dtype=np.uint8)
            diff = np.flatnonzero(a != b)
            first_mismatch = int(diff[0]) if diff.size else min_len

        details = {
            'size_match': size_match,
            'content_match': content_match,
            'checksum_match': original_checksum == received_checksum,
            'original_size': original_len,
            'received_size': received_len,
            'original_checksum': original_checksum,
            'received_checksum': received_checksum,
            'first_mismatch_byte': first_mismatch
        }

        return content_match, details
