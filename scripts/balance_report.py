#!/usr/bin/env python3
"""
Nightshift balance report

Plays batches of automated shifts with every route strategy and prints
survival rate, mean score, earnings and the most common ways to fail.

Usage:
    python scripts/balance_report.py                  # 100 shifts per strategy
    python scripts/balance_report.py --runs 500 --seed 7
    python scripts/balance_report.py --strategy perfect --experience 35
    python scripts/balance_report.py --config saves   # Use saves/balance.json
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from nightshift.config import BalanceConfig, load_config
from nightshift.simulation import STRATEGIES, BatchResult, run_all, run_batch


def build_table(results: dict[str, BatchResult], config: BalanceConfig) -> Table:
    table = Table(title="Nightshift balance", show_lines=False)
    table.add_column("Strategy", style="bold")
    table.add_column("Runs", justify="right")
    table.add_column("Survived", justify="right")
    table.add_column("Mean score", justify="right")
    table.add_column("Mean earnings", justify="right")
    table.add_column("Mean rides", justify="right")
    table.add_column("Top failure")

    for name, batch in results.items():
        rate = batch.success_rate
        style = "green" if rate >= 0.5 else "yellow" if rate >= 0.2 else "red"
        reasons = batch.failure_reasons
        top = max(reasons, key=reasons.get) if reasons else "-"
        earnings_style = "green" if batch.mean_earnings >= config.minimum_earnings else "red"
        table.add_row(
            name,
            str(batch.runs),
            f"[{style}]{rate:.0%}[/{style}]",
            f"{batch.mean_score:.0f}",
            f"[{earnings_style}]${batch.mean_earnings:.0f}[/{earnings_style}]",
            f"{batch.mean_rides:.1f}",
            top,
        )
    return table


def main():
    parser = argparse.ArgumentParser(
        description="Run automated shifts and report balance by strategy"
    )
    parser.add_argument("--runs", type=int, default=100, help="Shifts per strategy")
    parser.add_argument("--seed", type=int, default=0, help="First seed")
    parser.add_argument(
        "--strategy",
        choices=sorted(STRATEGIES),
        default=None,
        help="Only run this strategy",
    )
    parser.add_argument("--experience", type=int, default=0, help="Driver experience")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Directory holding balance.json (defaults if not specified)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.runs <= 0:
        print("Error: --runs must be positive", file=sys.stderr)
        sys.exit(2)

    config = load_config(args.config) if args.config else BalanceConfig()
    if args.strategy:
        results = {
            args.strategy: run_batch(args.strategy, args.runs, args.seed, config=config, experience=args.experience)
        }
    else:
        results = run_all(args.runs, args.seed, config=config, experience=args.experience)

    console = Console()
    console.print(build_table(results, config))
    console.print(
        f"Minimum earnings ${config.minimum_earnings}, "
        f"{config.initial_time} minutes, {config.initial_fuel} fuel"
    )


if __name__ == "__main__":
    main()
