import argparse
import logging
import sys

from cnf_oracle import CpmpyOracle
from feature_effects import read_feature_effects
from mismatch_detector import ConfigMismatchDetector, DetectorConfig
from results_table import only_mismatches, results_to_frame, save_results, summarize
from variability_model import ModelSetupError, load_dimacs

logger = logging.getLogger("config_mismatches")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Detect mismatches between feature effects and a variability model",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --model linux.cnf --effects feature_effects.csv
  python main.py --model linux.cnf --effects fe.csv --simple --only-mismatches
  python main.py --model linux.cnf --effects fe.csv --workers 4 --output-dir results
""",
    )

    parser.add_argument('--model', type=str, required=True,
                        help='Variability model as DIMACS file with "c <index> <NAME>" comments')
    parser.add_argument('--effects', type=str, required=True,
                        help='Feature effects CSV (Variable;Feature Effect)')
    parser.add_argument('--variables', type=str, default=None,
                        help='Comma separated known variables (default: names mapped in the model file)')
    parser.add_argument('--simple', action='store_true',
                        help='Only distinguish Consistent / Conflicts with VarModel')
    parser.add_argument('--workers', type=int, default=1,
                        help='Classify feature effects on N threads (default: 1)')
    parser.add_argument('--solver', type=str, default=None,
                        help='CPMpy solver name (default: CPMpy default solver)')
    parser.add_argument('--time-limit', type=float, default=None,
                        help='Time limit per SAT query in seconds (default: none)')
    parser.add_argument('--max-clauses', type=int, default=None,
                        help='Treat conversions larger than N clauses as errors')
    parser.add_argument('--only-mismatches', action='store_true',
                        help='Leave Consistent results out of the report')
    parser.add_argument('--output-dir', type=str, default=None,
                        help='Write CSV/JSON/text tables to this directory instead of stdout')
    parser.add_argument('--progress-interval', type=int, default=100,
                        help='Log progress every N records (default: 100)')
    parser.add_argument('--log-level', type=str, default='INFO',
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help='Logging level (default: INFO)')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    variables = None
    if args.variables:
        variables = [name.strip() for name in args.variables.split(',') if name.strip()]

    oracle = CpmpyOracle(solver=args.solver, time_limit=args.time_limit, max_clauses=args.max_clauses)
    config = DetectorConfig(
        detailed=not args.simple,
        workers=args.workers,
        progress_interval=args.progress_interval,
    )
    detector = ConfigMismatchDetector(oracle, config, logger=logger)

    try:
        vm = load_dimacs(args.model, variables)
    except ModelSetupError as e:
        logger.error(f"Couldn't get variability model: {e}")
        return 1

    try:
        results = detector.detect(vm, read_feature_effects(args.effects))
    except ModelSetupError:
        # Already logged by the detector
        return 1
    except (OSError, ValueError) as e:
        logger.error(f"Could not read feature effects from {args.effects}: {e}")
        return 1

    summary = summarize(results)
    if args.only_mismatches:
        results = only_mismatches(results)
    df = results_to_frame(results)

    if args.output_dir:
        save_results(df, args.output_dir)
        save_results(summary, args.output_dir, name="config_mismatches_summary")
    else:
        print(df.to_string(index=False) if not df.empty else "(no results)")
        print()
        print(summary.to_string(index=False))

    return 0


if __name__ == "__main__":
    sys.exit(main())
