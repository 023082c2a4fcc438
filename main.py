#!/usr/bin/env python3
"""
Reliable UDP File Transfer - Main Entry Point

This is the main CLI interface for the ARQ file transfer tools.
It provides commands for:
- Sending and receiving a file over UDP (Basic, Stop-and-Wait,
  Go-Back-N, Selective-Repeat)
- Single simulated transfers
- Parameter sweeps over protocol, window size and loss rate
- Visualization of sweep results

Usage:
    python main.py receive sr 9000 out.bin 8
    python main.py send sr 127.0.0.1 9000 in.bin 200 8
    python main.py simulate --protocol gbn --window 16 --loss 0.05
    python main.py sweep --quick
"""

import argparse
import os
import sys
import time

# Ensure project root is in path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import (
    WINDOW_SIZES, LOSS_RATES, PROTOCOLS, RUNS_PER_CONFIGURATION,
    SWEEP_FILE_SIZE, FINAL_ACK_GRACE, RESULTS_CSV, PLOTS_DIR
)
from arqtransfer.arq.packet import Protocol, PacketDecodeError
from arqtransfer.layers.application_layer import FileAccessError
from arqtransfer.layers.link_layer import (
    LinkLayerConfig, TransferTimeoutError, send_file, receive_file
)
from arqtransfer.utils.logger import TransferLogger, LogLevel, set_logger


def _make_logger(args) -> TransferLogger:
    level = LogLevel.DEBUG if args.verbose else LogLevel.INFO
    logger = TransferLogger(name="ARQ", level=level, log_file=args.log_file)
    set_logger(logger)
    return logger


def _grace(args):
    return None if args.no_grace else args.grace


def run_send(args) -> int:
    """Send a file to a listening receiver."""
    logger = _make_logger(args)
    protocol = Protocol(args.protocol)

    config = LinkLayerConfig(
        protocol=protocol,
        port=args.port,
        host=args.host,
        window_size=getattr(args, 'window', 1),
        final_ack_grace=_grace(args),
        loss_rate=args.loss_rate,
        seed=args.seed
    )
    if protocol.is_reliable:
        config.timeout = args.timeout_ms / 1000.0

    try:
        summary = send_file(config, args.file, logger=logger)
    except (FileAccessError, PacketDecodeError, ValueError) as e:
        logger.error(str(e), "SESSION")
        return 1

    print(summary.format())
    return 0


def run_receive(args) -> int:
    """Receive one file and write it to disk."""
    logger = _make_logger(args)

    config = LinkLayerConfig(
        protocol=Protocol(args.protocol),
        port=args.port,
        window_size=getattr(args, 'window', 1),
        idle_timeout=args.idle_timeout,
        loss_rate=args.loss_rate,
        seed=args.seed
    )

    try:
        stats = receive_file(config, args.file, logger=logger)
    except (FileAccessError, PacketDecodeError, TransferTimeoutError, ValueError) as e:
        logger.error(str(e), "SESSION")
        return 1

    logger.info(
        f"Received {stats['bytes_delivered']} bytes into {args.file}", "SESSION"
    )
    return 0


def run_simulation(args) -> int:
    """Run a single simulated transfer."""
    from simulation.simulator import Simulator, SimulatorConfig

    config = SimulatorConfig(
        protocol=args.protocol,
        window_size=1 if args.protocol in ("basic", "saw") else args.window,
        channel=args.channel,
        loss_rate=args.loss,
        data_size=args.data_size,
        final_ack_grace=_grace(args),
        seed=args.seed,
        log_level=LogLevel.DEBUG if args.verbose else LogLevel.WARNING
    )

    print("=" * 60)
    print("ARQ TRANSFER SIMULATOR")
    print("=" * 60)
    print(f"\nConfiguration:")
    print(f"  Protocol: {config.protocol}")
    print(f"  Window size: {config.window_size}")
    print(f"  Channel: {config.channel} (loss {config.loss_rate})")
    print(f"  Data size: {config.data_size / 1024:.1f} KB")
    print(f"  Timeout: {config.get_timeout() * 1000:.2f} ms")
    print(f"  Seed: {config.seed}")

    print("\nRunning simulation...")

    start_time = time.time()
    results = Simulator(config).run()
    elapsed = time.time() - start_time

    print("\n" + "=" * 60)
    print("RESULTS")
    print("=" * 60)

    print(f"\nTransfer Status:")
    print(f"  Complete: {results['complete']}")
    print(f"  Data Valid: {results['verification']['valid']}")
    print(f"  Simulation Time: {results['simulation_time']:.4f} s")
    print(f"  Real Time: {elapsed:.2f} s")

    sender = results['sender']
    print(f"\nPacket Statistics:")
    print(f"  Packets Sent: {sender['packets_sent']}")
    print(f"  Retransmission Events: {sender['retransmissions']}")
    print(f"  Retransmitted Packets: {sender['retransmitted_packets']}")
    print(f"  Duplicate ACKs: {sender['duplicate_acks']}")
    print(f"  Assumed Delivery: {sender['assumed_delivery']}")

    metrics = results['metrics']
    print(f"\nPerformance Metrics:")
    print(f"  Goodput: {metrics['goodput_kbps']:.2f} kb/s")
    print(f"  Efficiency: {metrics['efficiency'] * 100:.2f}%")
    if metrics['rtt']['samples'] > 0:
        print(f"  Mean RTT: {metrics['rtt']['mean'] * 1000:.2f} ms")

    return 0 if results['verification']['valid'] else 1


def run_parameter_sweep(args) -> int:
    """Run a sweep over protocols, window sizes and loss rates."""
    from simulation.runner import BatchRunner

    print("=" * 60)
    print("PARAMETER SWEEP")
    print("=" * 60)

    if args.quick:
        window_sizes = [4, 16]
        loss_rates = [0.0, 0.05, 0.1]
        runs = 2
        data_size = 20 * 1024
    else:
        window_sizes = WINDOW_SIZES
        loss_rates = LOSS_RATES
        runs = args.runs
        data_size = args.data_size

    output = args.output or RESULTS_CSV
    runner = BatchRunner(
        protocols=PROTOCOLS,
        window_sizes=window_sizes,
        loss_rates=loss_rates,
        runs_per_config=runs,
        data_size=data_size,
        channel=args.channel,
        output_file=output
    )

    print(f"\nConfiguration:")
    print(f"  Protocols: {runner.protocols}")
    print(f"  Window sizes: {window_sizes}")
    print(f"  Loss rates: {loss_rates}")
    print(f"  Runs per config: {runs}")
    print(f"  Total simulations: {runner.total_runs}")
    print(f"  Data size per run: {data_size / 1024:.1f} KB")
    print(f"  Output: {output}")

    if args.parallel:
        runner.run_parallel(max_workers=args.workers)
    else:
        runner.run_sequential()

    runner.save_results()

    print("\n" + "=" * 60)
    print("BEST CONFIGURATION PER LOSS RATE")
    print("=" * 60)
    for loss_rate in loss_rates:
        best = runner.get_best_configuration(loss_rate)
        if 'error' in best:
            print(f"  loss {loss_rate}: {best['error']}")
            continue
        print(f"  loss {loss_rate}: {best['protocol']} W={best['window_size']} "
              f"({best['mean_throughput_kbps']:.2f} kb/s, "
              f"{best['mean_retransmitted_packets']:.1f} retransmitted)")

    return 0


def generate_visualizations(args) -> int:
    """Generate plots from a sweep results file."""
    from visualization.heatmap import SweepHeatmap

    print("=" * 60)
    print("GENERATING VISUALIZATIONS")
    print("=" * 60)

    csv_file = args.csv or RESULTS_CSV
    if not os.path.exists(csv_file):
        print(f"Error: Results file not found: {csv_file}")
        print("Run a parameter sweep first: python main.py sweep")
        return 1

    heatmap = SweepHeatmap(csv_file=csv_file)
    print(f"Loaded {len(heatmap.results)} results from {csv_file}")

    os.makedirs(PLOTS_DIR, exist_ok=True)
    files = [
        heatmap.plot(metric='throughput_kbps'),
        heatmap.plot(metric='retransmitted_packets', cmap='rocket_r'),
        heatmap.plot_protocol_comparison(window_size=args.window)
    ]

    print("\n" + "=" * 60)
    print("VISUALIZATIONS GENERATED")
    print("=" * 60)
    for path in files:
        print(f"  {path}")
    return 0


def show_config(args) -> int:
    """Display current configuration."""
    import config as cfg

    print("=" * 60)
    print("ARQ TRANSFER CONFIGURATION")
    print("=" * 60)

    print(f"\nProtocol Constants:")
    print(f"  Max Payload: {cfg.MAX_PAYLOAD_SIZE} bytes")
    print(f"  Sequence Space: {cfg.SEQUENCE_SPACE} ({cfg.SEQUENCE_BITS} bits)")
    print(f"  Stop-and-Wait Header: {cfg.STOP_AND_WAIT_DATA_HEADER_SIZE} bytes "
          f"(ack {cfg.STOP_AND_WAIT_ACK_SIZE})")
    print(f"  Windowed Header: {cfg.WINDOWED_HEADER_SIZE} bytes")
    print(f"  ACK Port Offset: +{cfg.ACK_PORT_OFFSET}")

    print(f"\nTiming:")
    print(f"  Default Timeout: {cfg.DEFAULT_TIMEOUT * 1000:.0f} ms")
    print(f"  Final-ACK Grace: {cfg.FINAL_ACK_GRACE} s")
    print(f"  Basic Packet Gap: {cfg.BASIC_PACKET_GAP * 1000:.1f} ms")

    print(f"\nSimulated Channel:")
    print(f"  Forward Delay: {cfg.FORWARD_PROPAGATION_DELAY * 1000:.0f} ms")
    print(f"  Reverse Delay: {cfg.REVERSE_PROPAGATION_DELAY * 1000:.0f} ms")
    print(f"  RTT Estimate: {cfg.calculate_rtt_estimate() * 1000:.1f} ms")
    print(f"  Gilbert-Elliott Loss: good {cfg.GOOD_STATE_LOSS}, bad {cfg.BAD_STATE_LOSS}")
    print(f"  P(Good->Bad): {cfg.P_GOOD_TO_BAD}, P(Bad->Good): {cfg.P_BAD_TO_GOOD}")
    print(f"  Average Loss: {cfg.calculate_average_loss_rate():.4f}")

    print(f"\nParameter Sweep:")
    print(f"  Protocols: {cfg.PROTOCOLS}")
    print(f"  Window Sizes: {cfg.WINDOW_SIZES}")
    print(f"  Loss Rates: {cfg.LOSS_RATES}")
    print(f"  Runs per config: {cfg.RUNS_PER_CONFIGURATION}")
    return 0


def _add_session_options(parser: argparse.ArgumentParser):
    parser.add_argument('--loss-rate', type=float, default=0.0,
                        help='Drop outgoing datagrams with this probability')
    parser.add_argument('--seed', type=int, default=None,
                        help='Seed for the loss model')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log every packet')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also write the log to this file')


def _add_send_parser(subparsers):
    send = subparsers.add_parser('send', help='Send a file')
    variants = send.add_subparsers(dest='protocol', required=True)

    for protocol in ("basic", "saw", "gbn", "sr"):
        sub = variants.add_parser(protocol, help=f'{Protocol(protocol).name} sender')
        sub.add_argument('host', help='Receiver host')
        sub.add_argument('port', type=int, help='Receiver data port')
        sub.add_argument('file', help='File to send')
        if protocol != "basic":
            sub.add_argument('timeout_ms', type=int, help='Retransmission timeout (ms)')
        if protocol in ("gbn", "sr"):
            sub.add_argument('window', type=int, help='Window size')
        sub.add_argument('--grace', type=float, default=FINAL_ACK_GRACE,
                         help=f'Final-ack grace in seconds (default: {FINAL_ACK_GRACE})')
        sub.add_argument('--no-grace', action='store_true',
                         help='Wait for the final ack indefinitely')
        _add_session_options(sub)
        sub.set_defaults(func=run_send)


def _add_receive_parser(subparsers):
    receive = subparsers.add_parser('receive', help='Receive a file')
    variants = receive.add_subparsers(dest='protocol', required=True)

    for protocol in ("basic", "saw", "gbn", "sr"):
        sub = variants.add_parser(protocol, help=f'{Protocol(protocol).name} receiver')
        sub.add_argument('port', type=int, help='Data port to listen on')
        sub.add_argument('file', help='Output file')
        if protocol in ("gbn", "sr"):
            sub.add_argument('window', type=int, help='Window size')
        sub.add_argument('--idle-timeout', type=float, default=None,
                         help='Give up after this many seconds without data')
        _add_session_options(sub)
        sub.set_defaults(func=run_receive)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='arq-transfer',
        description="Reliable file transfer over UDP with ARQ protocols",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Receive and send with Selective-Repeat (window 8, 200 ms timeout):
    python main.py receive sr 9000 out.bin 8
    python main.py send sr 127.0.0.1 9000 in.bin 200 8

  Stop-and-Wait:
    python main.py receive saw 9000 out.bin
    python main.py send saw 127.0.0.1 9000 in.bin 200

  Single simulation:
    python main.py simulate --protocol gbn --window 16 --loss 0.05

  Quick parameter sweep, then plots:
    python main.py sweep --quick
    python main.py visualize
        """
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    _add_send_parser(subparsers)
    _add_receive_parser(subparsers)

    # Single simulation
    simulate = subparsers.add_parser('simulate', help='Run a single simulated transfer')
    simulate.add_argument('--protocol', choices=[p.value for p in Protocol], default='sr')
    simulate.add_argument('--window', '-w', type=int, default=8,
                          help='Window size (default: 8)')
    simulate.add_argument('--loss', type=float, default=0.05,
                          help='Loss rate (default: 0.05)')
    simulate.add_argument('--channel', choices=['bernoulli', 'gilbert'], default='bernoulli')
    simulate.add_argument('--data-size', type=int, default=64 * 1024,
                          help='Data size in bytes (default: 64 KB)')
    simulate.add_argument('--grace', type=float, default=FINAL_ACK_GRACE)
    simulate.add_argument('--no-grace', action='store_true')
    simulate.add_argument('--seed', '-s', type=int, default=42,
                          help='Random seed (default: 42)')
    simulate.add_argument('--verbose', '-v', action='store_true')
    simulate.set_defaults(func=run_simulation)

    # Parameter sweep
    sweep = subparsers.add_parser('sweep', help='Run a parameter sweep')
    sweep.add_argument('--runs', '-r', type=int, default=RUNS_PER_CONFIGURATION,
                       help=f'Runs per configuration (default: {RUNS_PER_CONFIGURATION})')
    sweep.add_argument('--data-size', type=int, default=SWEEP_FILE_SIZE,
                       help='Data size in bytes')
    sweep.add_argument('--channel', choices=['bernoulli', 'gilbert'], default='bernoulli')
    sweep.add_argument('--parallel', action='store_true',
                       help='Run simulations in parallel')
    sweep.add_argument('--workers', type=int, default=None,
                       help='Number of parallel workers')
    sweep.add_argument('--quick', action='store_true',
                       help='Quick test with reduced parameters')
    sweep.add_argument('--output', '-o', type=str, help='Output CSV path')
    sweep.set_defaults(func=run_parameter_sweep)

    # Visualization
    visualize = subparsers.add_parser('visualize', help='Plot sweep results')
    visualize.add_argument('--csv', type=str, help='Results CSV (default: sweep output)')
    visualize.add_argument('--window', type=int, default=8,
                           help='Window size for the comparison plot')
    visualize.set_defaults(func=generate_visualizations)

    config = subparsers.add_parser('config', help='Show configuration')
    config.set_defaults(func=show_config)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
