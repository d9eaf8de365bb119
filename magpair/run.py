#!/usr/bin/env python3
"""
Command-line interface for the dipole magnet pair simulator.

This script runs a two-body magnetostatic simulation from a YAML file. It
handles:
- Configuration loading and validation
- World construction and magnet pair activation
- Integration with progress reporting
- Recording of published wrench / magnetometer messages
- CSV, JSON and plot output
- Graceful keyboard interrupt handling

Usage:
    python -m magpair.run config.yaml
    python -m magpair.run config.yaml --output-dir results --verbose
    python -m magpair.run config.yaml --validate-only
    python -m magpair.run --create-example capsule.yaml
"""

import argparse
import signal
import sys
import time
import traceback
from pathlib import Path
from typing import Any, Dict, List, Optional

from magpair.diagnostics import compute_summary
from magpair.dynamics import World, integrate_pair
from magpair.errors import ConfigurationError, DomainError
from magpair.io_cfg import (
    create_example_config,
    load_config,
    save_diagnostics_json,
    save_history_csv,
    validate_config,
)
from magpair.pair import DipoleMagnetPair


# ============================================================================
# Global state for interrupt handling
# ============================================================================
_interrupted = False


def signal_handler(signum, frame):
    """Handle keyboard interrupt gracefully."""
    global _interrupted
    _interrupted = True
    print("\n\n🛑 Keyboard interrupt received. Saving partial results...")


class MessageRecorder:
    """Subscriber that keeps every message delivered on a topic."""

    def __init__(self):
        self.messages: List[Any] = []

    def __call__(self, msg) -> None:
        self.messages.append(msg)

    def __len__(self) -> int:
        return len(self.messages)


# ============================================================================
# Main simulation runner
# ============================================================================

def run_simulation(config: Dict[str, Any], verbose: bool = False) -> Dict[str, Any]:
    """
    Run the magnet pair simulation described by `config`.

    Parameters
    ----------
    config : dict
        Loaded and validated configuration (see io_cfg.load_config).
    verbose : bool
        Enable progress output.

    Returns
    -------
    results : dict
        - 'history': interaction history from integrate_pair
        - 'diagnostics': per saved tick diagnostics
        - 'summary': summary statistics
        - 'published': {'wrench': [...], 'mfs': [...]} recorded messages
        - 'skipped_ticks': ticks skipped because the dipoles coincided
        - 'interrupted': bool
    """
    global _interrupted
    _interrupted = False
    signal.signal(signal.SIGINT, signal_handler)

    numerics = config['numerics']
    world = World(config['bodies'], gravity=numerics['gravity'])
    pair = DipoleMagnetPair(
        world,
        config['pair'],
        publish=config['publish'],
        on_coincident=config['on_coincident'],
        verbose=verbose,
    )

    if verbose:
        print("=" * 80)
        print("DIPOLE MAGNET PAIR SIMULATOR")
        print("=" * 80)
        print()
        print(config['pair'])
        print()
        for body in config['bodies']:
            print(body)
        print()
        print(f"Timestep dt: {numerics['dt']:.6e} s, steps: {numerics['steps']:,}, "
              f"total time: {numerics['dt'] * numerics['steps']:.3e} s")
        print()

    pair.activate()

    wrench_log = MessageRecorder()
    mfs_log = MessageRecorder()
    subscriptions = []
    if pair.publisher is not None:
        subscriptions = [
            pair.publisher.wrench_topic.subscribe(wrench_log),
            pair.publisher.mfs_topic.subscribe(mfs_log),
        ]
        # Connection events are serviced on the publisher thread
        deadline = time.time() + 1.0
        while pair.publisher.connect_count < len(subscriptions) and time.time() < deadline:
            time.sleep(0.001)

    try:
        t_start = time.time()
        history, diagnostics = integrate_pair(
            world,
            pair,
            numerics['dt'],
            numerics['steps'],
            opts={
                'save_every': numerics['save_every'],
                'verbose': verbose,
                'progress_every': max(1, numerics['steps'] // 20),
            },
        )
        elapsed = time.time() - t_start
    finally:
        if pair.publisher is not None:
            # Let queued deliveries drain before stopping the thread
            deadline = time.time() + 1.0
            while len(pair.publisher.queue) > 0 and time.time() < deadline:
                time.sleep(0.001)
        for sub in subscriptions:
            sub.unsubscribe()
        pair.deactivate()

    summary = compute_summary(history, diagnostics, elapsed)
    summary['published'] = {
        'staged': pair.publisher.messages_published if pair.publisher else 0,
        'wrench_received': len(wrench_log),
        'mfs_received': len(mfs_log),
    }
    summary['skipped_ticks'] = pair.skipped_ticks

    return {
        'history': history,
        'diagnostics': diagnostics,
        'summary': summary,
        'published': {'wrench': wrench_log.messages, 'mfs': mfs_log.messages},
        'skipped_ticks': pair.skipped_ticks,
        'interrupted': bool(history.get('interrupted', False)),
    }


def _fmt_vec(v) -> str:
    return f"[{v[0]:+.4e}, {v[1]:+.4e}, {v[2]:+.4e}]"


def print_summary(summary: Dict[str, Any], verbose: bool = False) -> None:
    """Print human-readable simulation summary."""
    print()
    print("=" * 80)
    print("SIMULATION SUMMARY")
    print("=" * 80)
    print()

    t = summary['timing']
    print("Performance:")
    print(f"  Wall time:          {t['elapsed_seconds']:.2f} seconds")
    print(f"  Speed:              {t['ticks_per_second']:.1f} ticks/second")
    print()

    i = summary['interaction']
    if i is not None:
        print("Interaction:")
        print(f"  Max |F|:            {i['max_force']:.6e} N")
        print(f"  Max |tau|:          {i['max_torque']:.6e} N·m")
        print(f"  Max |B|:            {i['max_field']:.6e} T")
        print(f"  Final F:            {_fmt_vec(i['final_force'])}")
        print(f"  Final tau:          {_fmt_vec(i['final_torque'])}")
        print(f"  Final B (body):     {_fmt_vec(i['final_field'])}")
        print(f"  Separation range:   {i['min_separation']:.6e} .. {i['max_separation']:.6e} m")
        print()
    else:
        print("Interaction: no valid ticks recorded")
        print()

    fo = summary['falloff']
    if verbose and fo is not None and fo['force'] is not None:
        print("Fitted falloff exponents (|X| ~ d^n):")
        for key in ('force', 'torque', 'field'):
            val = fo[key]
            print(f"  {key:8s}            {val:+.3f}" if val is not None else f"  {key:8s}            n/a")
        print()

    m = summary['momentum']
    if m is not None:
        print("Momentum:")
        print(f"  Initial |p|:        {m['initial_magnitude']:.6e}")
        print(f"  Final |p|:          {m['final_magnitude']:.6e}")
        print(f"  Drift |Δp|:         {m['drift_magnitude']:.6e}")
        print()

    p = summary.get('published')
    if p is not None and p['staged'] > 0:
        print("Publishing:")
        print(f"  Results staged:     {p['staged']}")
        print(f"  Wrench received:    {p['wrench_received']}")
        print(f"  Field received:     {p['mfs_received']}")
        print()

    if summary.get('skipped_ticks'):
        print(f"⚠️  {summary['skipped_ticks']} tick(s) skipped: dipoles coincided.")
        print()


def save_outputs(
    config: Dict[str, Any],
    results: Dict[str, Any],
    output_dir: Path,
    make_plots: bool = True,
    verbose: bool = False,
) -> None:
    """Save CSV history, JSON diagnostics and requested plots."""
    output_dir.mkdir(parents=True, exist_ok=True)

    history = results['history']
    saved = []

    if config['outputs']['write_csv']:
        csv_path = output_dir / "interaction.csv"
        if verbose:
            print(f"Saving interaction history to {csv_path}...")
        save_history_csv(str(csv_path), history)
        saved.append(csv_path)

    diag_dict = {
        'times': history['t'],
        'kinetic_energy': [d['kinetic_energy'] for d in results['diagnostics']],
        'potential_energy': [d.get('potential_energy') for d in results['diagnostics']],
        'summary': results['summary'],
    }
    json_path = output_dir / "diagnostics.json"
    if verbose:
        print(f"Saving diagnostics to {json_path}...")
    save_diagnostics_json(str(json_path), diag_dict)
    saved.append(json_path)

    if make_plots and config['outputs']['plots']:
        from magpair.viz import PLOTTERS

        for name in config['outputs']['plots']:
            plotter = PLOTTERS.get(name)
            if plotter is None:
                print(f"⚠️  Unknown plot '{name}', skipping.")
                continue
            plot_path = output_dir / f"{name}.png"
            plotter(history, str(plot_path))
            saved.append(plot_path)

    print()
    print(f"✓ Outputs saved to: {output_dir.absolute()}")
    for path in saved:
        print(f"  - {path.name}")
    print()


# ============================================================================
# Command-line interface
# ============================================================================

def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    parser = argparse.ArgumentParser(
        prog='magpair.run',
        description=(
            'Dipole magnet pair simulator: force, torque and magnetometer '
            'field between two rigid bodies carrying point dipoles.'
        ),
        epilog=(
            'Examples:\n'
            '  python -m magpair.run capsule.yaml\n'
            '  python -m magpair.run capsule.yaml --output-dir results --verbose\n'
            '  python -m magpair.run capsule.yaml --validate-only\n'
            '  python -m magpair.run --create-example capsule.yaml\n'
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        'config',
        type=str,
        nargs='?',
        help='Path to YAML configuration file',
    )

    parser.add_argument(
        '--output-dir',
        type=str,
        default='output',
        help='Output directory for results (default: output/)',
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose output',
    )

    parser.add_argument(
        '--validate-only',
        action='store_true',
        help='Validate configuration and exit (no simulation)',
    )

    parser.add_argument(
        '--no-plots',
        action='store_true',
        help='Skip plot generation',
    )

    parser.add_argument(
        '--create-example',
        type=str,
        metavar='PATH',
        help='Write an example configuration to PATH and exit',
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.create_example:
        create_example_config(args.create_example)
        return 0

    if args.config is None:
        parser.print_usage(sys.stderr)
        print("ERROR: a configuration file is required", file=sys.stderr)
        return 1

    output_dir = Path(args.output_dir)

    # 1) Load configuration
    try:
        if args.verbose:
            print(f"Loading configuration from: {args.config}")
            print()
        config = load_config(args.config)
    except FileNotFoundError:
        print(f"ERROR: Configuration file not found: {args.config}", file=sys.stderr)
        return 1
    except ConfigurationError as e:
        print(f"ERROR: Invalid magnet pair configuration: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"ERROR: Failed to load configuration: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1

    # 2) Validate configuration
    is_valid, warnings_list = validate_config(config)

    if warnings_list:
        print("⚠️  Configuration warnings/errors:")
        for w in warnings_list:
            print(f"    - {w}")
        print()

    if not is_valid:
        print("❌ Configuration is INVALID. Please fix errors above.", file=sys.stderr)
        return 1

    if args.validate_only:
        print("✓ Configuration validated successfully. Exiting (--validate-only mode).")
        return 0

    # 3) Run simulation
    try:
        results = run_simulation(config, verbose=args.verbose)
    except KeyboardInterrupt:
        print("\n\nSimulation interrupted by user. Exiting without saving.")
        return 130
    except (ConfigurationError, DomainError) as e:
        print(f"\nERROR: Simulation failed: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"\nERROR: Simulation failed: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1

    # 4) Summary
    print_summary(results['summary'], verbose=args.verbose)

    # 5) Outputs
    try:
        save_outputs(config, results, output_dir, make_plots=not args.no_plots,
                     verbose=args.verbose)
    except Exception as e:
        print(f"ERROR: Failed to save outputs: {e}", file=sys.stderr)
        if args.verbose:
            traceback.print_exc()
        return 1

    print("=" * 80)
    print("✓ Simulation complete!")
    print("=" * 80)
    print()

    if results['interrupted']:
        print("⚠️  Note: Simulation was interrupted. Results may be incomplete.")
        return 130

    return 0


if __name__ == '__main__':
    sys.exit(main())
