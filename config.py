"""
Configuration file for the ARQ file transfer tool.
Contains protocol constants, timing defaults and the parameter sweep setup.
"""

import os

# =============================================================================
# PROTOCOL PARAMETERS
# =============================================================================

# Maximum payload carried by a single data packet (bytes)
MAX_PAYLOAD_SIZE = 1024

# Sequence numbers are unsigned 16-bit integers
SEQUENCE_BITS = 16
SEQUENCE_SPACE = 1 << SEQUENCE_BITS  # 65536

# Header sizes (bytes)
STOP_AND_WAIT_DATA_HEADER_SIZE = 3  # seq:uint16, eof:uint8
STOP_AND_WAIT_ACK_SIZE = 2          # seq:uint16
WINDOWED_HEADER_SIZE = 3            # flag:uint8, seq:uint16

# Flag byte values for Go-Back-N / Selective-Repeat packets
DATA_FLAG = 0
ACK_FLAG = 1
EOF_FLAG = 255

# Windowed receivers send acks to the data port plus this offset
ACK_PORT_OFFSET = 1

# Largest datagram read from a socket
RECEIVE_BUFFER_SIZE = 65535

# =============================================================================
# TIMING PARAMETERS (seconds)
# =============================================================================

# Retransmission timeout used when none is given
DEFAULT_TIMEOUT = 0.2

# Sender gives up waiting for the last ack after this much silence
FINAL_ACK_GRACE = 2.0

# Inter-packet gap of the unreliable basic sender
BASIC_PACKET_GAP = 0.005

# Receivers wait forever unless an idle timeout is configured
RECEIVER_IDLE_TIMEOUT = None

# =============================================================================
# SIMULATED CHANNEL PARAMETERS
# =============================================================================

# One-way delays (seconds)
FORWARD_PROPAGATION_DELAY = 0.040  # 40 ms - data packets
REVERSE_PROPAGATION_DELAY = 0.010  # 10 ms - acks
PROCESSING_DELAY = 0.002           # 2 ms per packet

# Gilbert-Elliott packet loss probabilities per state
GOOD_STATE_LOSS = 0.01
BAD_STATE_LOSS = 0.5

# State transition probabilities (evaluated once per packet)
P_GOOD_TO_BAD = 0.02
P_BAD_TO_GOOD = 0.25

# Probability that a delivered packet is delivered twice
DUPLICATE_RATE = 0.0

# Maximum extra random delay; non-zero values reorder packets
DELAY_JITTER = 0.0

# Timeout = RTT estimate * multiplier in simulations
TIMEOUT_MULTIPLIER = 2.0

# =============================================================================
# PARAMETER SWEEP CONFIGURATION
# =============================================================================

PROTOCOLS = ["saw", "gbn", "sr"]

# Send window sizes to evaluate (Stop-and-Wait always runs with 1)
WINDOW_SIZES = [2, 4, 8, 16, 32]

# Independent packet loss rates to evaluate
LOSS_RATES = [0.0, 0.01, 0.05, 0.1, 0.2]

# Number of simulation runs per (protocol, W, loss) triple
RUNS_PER_CONFIGURATION = 5

# Size of the file transferred in each sweep run
SWEEP_FILE_SIZE = 100 * 1024  # 100 KB

# =============================================================================
# SIMULATION SETTINGS
# =============================================================================

# Default RNG seed base (actual seed = base + offsets per run)
RNG_SEED_BASE = 42

# Simulation time limit (seconds) - failsafe
MAX_SIMULATION_TIME = 3600  # 1 hour

# Logging verbosity levels
LOG_LEVEL_DEBUG = 0
LOG_LEVEL_INFO = 1
LOG_LEVEL_WARNING = 2
LOG_LEVEL_ERROR = 3

DEFAULT_LOG_LEVEL = LOG_LEVEL_INFO

# =============================================================================
# OUTPUT PATHS
# =============================================================================

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.path.join(BASE_DIR, "data")
OUTPUT_DIR = os.path.join(DATA_DIR, "output")
PLOTS_DIR = os.path.join(OUTPUT_DIR, "plots")
LOG_DIR = os.path.join(OUTPUT_DIR, "logs")

# Results CSV filename
RESULTS_CSV = os.path.join(OUTPUT_DIR, "results.csv")

# =============================================================================
# DERIVED PARAMETERS (calculated from fixed parameters)
# =============================================================================

def calculate_rtt_estimate():
    """
    Estimate round-trip time of the simulated channel.
    RTT = Prop_forward + Processing + Prop_reverse + Processing
    """
    return (FORWARD_PROPAGATION_DELAY + PROCESSING_DELAY +
            REVERSE_PROPAGATION_DELAY + PROCESSING_DELAY)

def calculate_default_timeout():
    """Retransmission timeout used by simulations when none is given."""
    return calculate_rtt_estimate() * TIMEOUT_MULTIPLIER

def calculate_steady_state_probabilities():
    """
    Calculate steady-state probabilities for Good and Bad states.
    π_G = P(B→G) / (P(G→B) + P(B→G))
    π_B = P(G→B) / (P(G→B) + P(B→G))
    """
    sum_transitions = P_GOOD_TO_BAD + P_BAD_TO_GOOD
    pi_good = P_BAD_TO_GOOD / sum_transitions
    pi_bad = P_GOOD_TO_BAD / sum_transitions
    return pi_good, pi_bad

def calculate_average_loss_rate():
    """
    Calculate average packet loss rate from steady-state probabilities.
    Loss_avg = π_G * loss_g + π_B * loss_b
    """
    pi_good, pi_bad = calculate_steady_state_probabilities()
    return pi_good * GOOD_STATE_LOSS + pi_bad * BAD_STATE_LOSS


# Print configuration summary
if __name__ == "__main__":
    print("=" * 60)
    print("ARQ FILE TRANSFER - CONFIGURATION")
    print("=" * 60)
    print(f"\nProtocol:")
    print(f"  Max Payload: {MAX_PAYLOAD_SIZE} bytes")
    print(f"  Sequence Space: {SEQUENCE_SPACE}")
    print(f"  Flags: data={DATA_FLAG}, ack={ACK_FLAG}, eof={EOF_FLAG}")
    print(f"  Ack Port Offset: +{ACK_PORT_OFFSET}")

    print(f"\nTiming:")
    print(f"  Default Timeout: {DEFAULT_TIMEOUT * 1000:.0f} ms")
    print(f"  Final Ack Grace: {FINAL_ACK_GRACE:.1f} s")
    print(f"  Basic Packet Gap: {BASIC_PACKET_GAP * 1000:.0f} ms")

    print(f"\nSimulated Channel:")
    print(f"  Forward Delay: {FORWARD_PROPAGATION_DELAY * 1000:.0f} ms")
    print(f"  Reverse Delay: {REVERSE_PROPAGATION_DELAY * 1000:.0f} ms")
    print(f"  Processing Delay: {PROCESSING_DELAY * 1000:.0f} ms")
    print(f"  Good State Loss: {GOOD_STATE_LOSS:.3f}")
    print(f"  Bad State Loss: {BAD_STATE_LOSS:.3f}")
    print(f"  P(G->B): {P_GOOD_TO_BAD}")
    print(f"  P(B->G): {P_BAD_TO_GOOD}")

    pi_good, pi_bad = calculate_steady_state_probabilities()
    print(f"  Steady-state P(Good): {pi_good:.4f}")
    print(f"  Steady-state P(Bad): {pi_bad:.4f}")
    print(f"  Average Loss Rate: {calculate_average_loss_rate():.4f}")
    print(f"  RTT Estimate: {calculate_rtt_estimate() * 1000:.1f} ms")
    print(f"  Simulation Timeout: {calculate_default_timeout() * 1000:.1f} ms")

    print(f"\nParameter Sweep:")
    print(f"  Protocols: {PROTOCOLS}")
    print(f"  Window Sizes: {WINDOW_SIZES}")
    print(f"  Loss Rates: {LOSS_RATES}")
    print(f"  Runs per config: {RUNS_PER_CONFIGURATION}")
    print(f"  File Size: {SWEEP_FILE_SIZE / 1024:.0f} KB")
