#!/usr/bin/env python3
"""
run_pinpoint.py — Pinpoint convenience runner
Uses pinpoint_config.json. Run from project root.

  python run_pinpoint.py                    # start API server (default)
  python run_pinpoint.py --replay t.jsonl   # replay a recorded trace

Config is created with defaults on first run.
"""

import argparse
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Pinpoint — location reporting coordinator")
    parser.add_argument("--replay", type=Path, default=None, help="Replay a trace instead of serving")
    parser.add_argument("--api", action="store_true", help="Start API server (default)")
    args = parser.parse_args()

    root = Path(__file__).parent
    sys.path.insert(0, str(root))

    from pinpoint.cli import main as cli_main

    cli_args = ["--config", str(root)]
    if args.replay is not None:
        cli_args += ["--replay", str(args.replay)]
    else:
        cli_args += ["--serve"]
    sys.exit(cli_main(cli_args))


if __name__ == "__main__":
    main()
