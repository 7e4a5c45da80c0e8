"""
Command-line interface for cls_toys.

Usage:
    python -m cls_toys scan --analysis five_bin_example   # Built-in analysis
    python -m cls_toys scan --config scan.yaml --plot     # Analysis from YAML
    python -m cls_toys analyses                           # List built-in analyses
    python -m cls_toys validate --config scan.yaml        # Schema checks only
"""

import argparse
import logging
import sys
from pathlib import Path

from .config import (
    ConfigError,
    build_scan_config,
    get_default_config_path,
    load_config,
    load_raw_config,
    validate_config,
)
from .harness.analysis_configs import ANALYSIS_CONFIGS, get_analysis_config
from .harness.cls_core import CLsError
from .harness.scan import DEGENERATE_POLICIES, run_scan

logger = logging.getLogger("cls_toys")

# Settings used by --fast
FAST_N_TOYS = 5000
FAST_N_POI = 10


def setup_logging(verbose: bool = False):
    """Configure logging for the package; third-party loggers stay at WARNING."""
    for logger_name in ('matplotlib', 'PIL'):
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("cls_toys").setLevel(level)


def _scan_overrides(args) -> dict:
    overrides = {
        "n_toys": args.n_toys,
        "n_poi": args.n_poi,
        "mu_min": args.mu_min,
        "mu_max": args.mu_max,
        "seed": args.seed,
        "n_workers": args.workers,
        "on_degenerate": args.on_degenerate,
        "cl": args.cl,
    }
    if args.fast:
        overrides["n_toys"] = FAST_N_TOYS
        overrides["n_poi"] = FAST_N_POI
    return overrides


def cmd_scan(args):
    """
    Run a CLs scan and write results.

    The analysis comes from --config (YAML) or --analysis (built-in name).
    """
    overrides = _scan_overrides(args)
    if args.config:
        analysis, config = load_config(Path(args.config), overrides)
    else:
        analysis = get_analysis_config(args.analysis)
        config = build_scan_config(None, overrides)

    result = run_scan(analysis, config)
    result.meta["command"] = " ".join(sys.argv)

    print()
    print(f"{'mu':>8} {'CLs_exp':>10} {'CLs_obs':>10}")
    for mu, cls_exp, cls_obs in zip(*result):
        print(f"{mu:8.3f} {cls_exp:10.4f} {cls_obs:10.4f}")
    print()
    cl_pct = f"{100 * config.cl:.0f}%"
    for label, limit in (("expected", result.limit_exp), ("observed", result.limit_obs)):
        text = f"{limit:.3f}" if limit is not None else "not reached in scan range"
        print(f"{cl_pct} CL {label} limit: mu < {text}")

    from .reporting.write_report import write_outputs

    outdir = Path(args.outdir)
    paths = write_outputs(result, outdir)
    if args.plot:
        from .reporting.plot_cls import plot_cls_curve

        paths["plot"] = plot_cls_curve(result, outdir / "cls_scan.png")

    print()
    for path in paths.values():
        print(f"Wrote {path}")
    return 0


def cmd_analyses(args):
    """List built-in analyses."""
    for name in sorted(ANALYSIS_CONFIGS):
        cfg = ANALYSIS_CONFIGS[name]
        print(f"{name}: {cfg.n_bins} bins - {cfg.notes}")
        print(f"  background = {cfg.background}")
        print(f"  signal     = {cfg.signal}")
        print(f"  observed   = {cfg.observed}")
    return 0


def cmd_validate(args):
    """Validate a scan configuration file without running toys."""
    config_path = Path(args.config) if args.config else get_default_config_path()
    print(f"Config file: {config_path}")
    if not config_path.exists():
        print("  [FAIL] File not found")
        return 1

    try:
        raw = load_raw_config(config_path)
    except ConfigError as e:
        print("  [FAIL] Could not load:")
        for err in e.errors:
            print(f"    - {err}")
        return 1

    errors = validate_config(raw)
    if errors:
        print("  [FAIL] Schema errors:")
        for err in errors:
            print(f"    - {err}")
        return 1

    print("  [OK] Schema valid")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cls_toys",
        description="Monte Carlo CLs limits for binned counting experiments",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # scan command
    scan_parser = subparsers.add_parser(
        "scan",
        help="Run a CLs scan over the signal strength",
    )
    source = scan_parser.add_mutually_exclusive_group()
    source.add_argument("-c", "--config", type=str, help="Path to scan YAML")
    source.add_argument("--analysis", type=str, default="five_bin_example",
                        help="Built-in analysis name (default: five_bin_example)")
    scan_parser.add_argument("--n-toys", type=int, help="Toys per grid point")
    scan_parser.add_argument("--n-poi", type=int, help="Number of mu grid points")
    scan_parser.add_argument("--mu-min", type=float, help="First grid value")
    scan_parser.add_argument("--mu-max", type=float, help="Grid upper edge (excluded)")
    scan_parser.add_argument("--seed", type=int, help="Base random seed")
    scan_parser.add_argument("--workers", type=int, help="Worker processes (default: cpu_count - 1)")
    scan_parser.add_argument("--on-degenerate", choices=DEGENERATE_POLICIES,
                             help="What to do when CLb = 0 at a grid point")
    scan_parser.add_argument("--cl", type=float, help="Confidence level for limits (default 0.95)")
    scan_parser.add_argument("--fast", action="store_true",
                             help=f"Use {FAST_N_TOYS} toys and {FAST_N_POI} grid points")
    scan_parser.add_argument("--outdir", type=str, default="out/cls_scan",
                             help="Output directory")
    scan_parser.add_argument("--plot", action="store_true", help="Also write cls_scan.png")

    # analyses command
    subparsers.add_parser(
        "analyses",
        help="List built-in analyses",
    )

    # validate command
    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate a scan configuration",
    )
    validate_parser.add_argument("-c", "--config", type=str, help="Path to scan YAML")

    return parser


def main(argv=None):
    """Main CLI entrypoint."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    setup_logging(args.verbose)

    handlers = {
        "scan": cmd_scan,
        "analyses": cmd_analyses,
        "validate": cmd_validate,
    }

    try:
        return handlers[args.command](args)
    except ConfigError as e:
        logger.error(str(e))
        return 1
    except (CLsError, KeyError) as e:
        logger.error(f"Scan failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
