# simulations/cli.py

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import matplotlib.pyplot as plt

from pity_outcomes.errors import BackendUnavailableError, ConfigurationError, QueryError
from pity_outcomes.predicate import parse_query_arg

from .common import ResultMatrix, format_run_line, format_table
from .executor import DEFAULT_WAVE_SIZE
from .presets import PRESETS, get_preset, resolve_config, resolve_queries
from .run import run_simulation


DEFAULT_PULLS = 150
DEFAULT_NTRIALS = 10_000_000

logger = logging.getLogger("pity_outcomes.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Estimate gacha outcome probabilities at pull checkpoints via Monte Carlo."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging to stderr")
    parser.add_argument("-b", "--banner", default="standard", choices=sorted(PRESETS), help="banner archetype")
    parser.add_argument(
        "-p", "--pulls", type=int, action="append",
        help=f"pulls in the next segment; repeat for more checkpoints (default {DEFAULT_PULLS})",
    )
    parser.add_argument("-n", "--ntrials", type=int, default=DEFAULT_NTRIALS, help="number of trials")
    parser.add_argument("--n6", type=int, help="number of 6* rate-ups on the banner")
    parser.add_argument("--n5", type=int, help="number of 5* rate-ups on the banner")
    parser.add_argument("--n6p", type=int, help="number of previous 6* limiteds on the banner")
    parser.add_argument("--rate6b", type=int, help="percent of 6* hits that are on-banner")
    parser.add_argument("--rate5b", type=int, help="percent of 5* hits that are on-banner")
    parser.add_argument("--stdpool", type=int, help="number of characters in the standard pool")
    parser.add_argument(
        "--builtin", action="store_true",
        help="keep the built-in queries even when custom queries are given",
    )
    parser.add_argument(
        "-q", "--query", action="append", default=[],
        help="'<label>;<expression>', e.g. 'Any 6*;(onBanner6 + offBanner6) >= 1'",
    )
    parser.add_argument("--workers", type=int, help="worker processes (default: CPU count)")
    parser.add_argument("--wave-size", type=int, default=DEFAULT_WAVE_SIZE, help="trials per task")
    parser.add_argument("--plot", type=Path, help="save a percentage-vs-pulls plot to this file")
    return parser


def plot_result(r: ResultMatrix, output_path: Path) -> None:
    x = r.spec.cumulative_pulls
    plt.figure(figsize=(8, 5))
    for label, row in zip(r.labels, r.percentages()):
        plt.plot(x, row, marker="o", label=label)
    plt.title(f"Outcome probability by pull count ({r.ntrials:,} trials)")
    plt.xlabel("Cumulative pulls")
    plt.ylabel("Probability (%)")
    plt.ylim(0, 100)
    plt.grid(alpha=0.3)
    plt.legend(fontsize="small")
    plt.tight_layout()
    plt.savefig(output_path, dpi=200)
    plt.close()


def main(argv: list[str]) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s %(levelname)s: %(message)s",
    )

    try:
        preset = get_preset(args.banner)
        config = resolve_config(
            preset,
            n6=args.n6,
            n5=args.n5,
            n6p=args.n6p,
            rate6b=args.rate6b,
            rate5b=args.rate5b,
            stdpool=args.stdpool,
        )
        custom = [parse_query_arg(q) for q in args.query]
        queries = resolve_queries(preset, custom, include_builtin=args.builtin)
        result = run_simulation(
            config=config,
            checkpoints=args.pulls or [DEFAULT_PULLS],
            queries=queries,
            ntrials=args.ntrials,
            workers=args.workers,
            wave_size=args.wave_size,
        )
    except (ConfigurationError, QueryError) as e:
        parser.error(str(e))
    except BackendUnavailableError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    print(format_table(result))
    logger.info(format_run_line(result))

    if args.plot is not None:
        plot_result(result, args.plot)
        print(f"Saved: {args.plot}")

    return 0


def _entry() -> int:
    return main(sys.argv[1:])


if __name__ == "__main__":
    raise SystemExit(_entry())
