"""
arqtransfer - reliable file transfer over UDP.

Stop-and-Wait, Go-Back-N and Selective-Repeat ARQ engines, the UDP run
loop that drives them, and channel models for simulated experiments.
"""

__version__ = "1.0.0"
