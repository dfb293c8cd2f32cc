"""Cron-style trigger for the scheduled-transition sweep
Run: python -m scripts.run_sweep --since <unix seconds> [--until <unix seconds>]

Covers [since, until); pass the previous run's `until` as the next `since`.
"""
import argparse
import json

from statecraft.engine.factory import build_engine
from statecraft.utils.logger import setup_logging
from statecraft.utils.time import unix_now


def main():
    parser = argparse.ArgumentParser(description="Execute due scheduled transitions")
    parser.add_argument("--since", type=int, default=0, help="Window start, unix seconds (default: 0)")
    parser.add_argument("--until", type=int, default=None, help="Window end, unix seconds (default: now)")
    args = parser.parse_args()

    setup_logging()
    components = build_engine()
    report = components.sweep.run_sweep(args.since, args.until if args.until is not None else unix_now())
    print(json.dumps(report.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    main()
