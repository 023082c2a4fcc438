"""
Modular sequence-number arithmetic.

Engines number packets with absolute indices (0, 1, 2, ...) and only the
wire carries ``index mod M``. This class converts between the two and
answers circular window questions.
"""

from config import SEQUENCE_BITS


class SequenceSpace:
    """
    Sequence number space of ``2**bits`` values.

    Attributes:
        bits: Width of the sequence field
        modulus: Number of distinct sequence numbers (M)
    """

    def __init__(self, bits: int = SEQUENCE_BITS):
        if bits < 1:
            raise ValueError("Sequence space needs at least one bit")
        self.bits = bits
        self.modulus = 1 << bits

    @property
    def max_selective_window(self) -> int:
        """Largest window for which Selective-Repeat cannot alias (M/2)."""
        return self.modulus // 2

    def wrap(self, index: int) -> int:
        """Map an absolute index to its wire sequence number."""
        return index % self.modulus

    def advance(self, n: int, k: int = 1) -> int:
        """Return (n + k) mod M."""
        return (n + k) % self.modulus

    def distance(self, a: int, b: int) -> int:
        """Forward distance from a to b, i.e. (b - a) mod M."""
        return (b - a) % self.modulus

    def in_window(self, n: int, base: int, size: int) -> bool:
        """
        Check circular containment of n in [base, base + size).

        Args:
            n: Sequence number to test
            base: First sequence number of the window
            size: Window size

        Returns:
            True if n lies inside the window
        """
        return self.distance(base, n) < size

    def is_before_window(self, n: int, base: int, size: int) -> bool:
        """Check whether n is one of the ``size`` numbers just below base."""
        d = self.distance(n, base)
        return 0 < d <= size

    def unwrap(self, n: int, base_index: int) -> int:
        """
        Map a wire sequence number to the first absolute index >= base_index
        with that residue.
        """
        return base_index + self.distance(self.wrap(base_index), n)

    def __repr__(self) -> str:
        return f"SequenceSpace(bits={self.bits})"
