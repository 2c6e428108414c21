"""
pinpoint/cli.py
Command-line interface for Pinpoint.

USAGE:
  pinpoint --replay trace.jsonl                 # replay a recorded trace on a virtual clock
  pinpoint --replay trace.jsonl.gz --tail 60    # keep the clock running 60s after the last event
  pinpoint --serve                              # HTTP device bridge on api_host:api_port
  pinpoint --last-known                         # print the durable last-known fix

Config is read from pinpoint_config.json in --config DIR (default: cwd) and
written with defaults if missing.
"""

import argparse
import logging
import sys
import time
from pathlib import Path

from pinpoint import __version__
from pinpoint.config import ensure_config
from pinpoint.store.sqlite_store import SqliteKeyValueStore

logger = logging.getLogger(__name__)

# ANSI colors
GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'
BOLD   = '\033[1m'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog        = 'pinpoint',
        description = 'Pinpoint — location reporting coordinator',
        formatter_class = argparse.RawDescriptionHelpFormatter,
        epilog = """
PRIVACY NOTE:
  Only the last known fix is stored, locally, in the configured database.
        """
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        '--replay', '-r',
        type    = Path,
        metavar = 'TRACE',
        help    = 'Replay a JSON-lines event trace (.jsonl or .jsonl.gz)',
    )
    mode.add_argument(
        '--serve',
        action  = 'store_true',
        help    = 'Run the HTTP device bridge (uvicorn)',
    )
    mode.add_argument(
        '--last-known',
        action  = 'store_true',
        help    = 'Print the last known fix from the database and exit',
    )
    parser.add_argument(
        '--config', '-c',
        type    = Path,
        default = None,
        metavar = 'DIR',
        help    = 'Directory holding pinpoint_config.json (default: current directory)',
    )
    parser.add_argument(
        '--db',
        type    = Path,
        default = None,
        help    = 'Override the database path from config',
    )
    parser.add_argument(
        '--tail',
        type    = float,
        default = 30.0,
        help    = 'Virtual seconds to keep running after the last replayed event (default: 30)',
    )
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level   = log_level,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    try:
        config = ensure_config(args.config)
    except ValueError as e:
        _print(f"{RED}Error: invalid config: {e}{RESET}")
        return 1
    if args.db is not None:
        config['db_path'] = str(args.db)

    if args.last_known:
        return _last_known(config)
    if args.serve:
        return _serve(config)
    return _replay(args.replay, config, args.tail)


# ── MODES ────────────────────────────────────────────────────

def _last_known(config) -> int:
    fix = SqliteKeyValueStore(Path(config['db_path'])).load_last_known_fix()
    if fix is None:
        _print(f"{YELLOW}No fix recorded yet in {config['db_path']}{RESET}")
        return 1
    _print(f"{BOLD}Last known fix{RESET}")
    _print(f"  Latitude  : {fix.latitude}")
    _print(f"  Longitude : {fix.longitude}")
    _print(f"  Timestamp : {fix.timestamp}")
    return 0


def _serve(config) -> int:
    import uvicorn
    from pinpoint.api import _build_app

    host, port = config['api_host'], int(config['api_port'])
    _print(f"{BOLD}{CYAN}Pinpoint API v{__version__}{RESET}")
    _print(f"  Local    : http://{host}:{port}")
    _print(f"  Database : {config['db_path']}")
    _print(f"  Broker   : {config['broker_host']}:{config['broker_port']}")
    uvicorn.run(_build_app(config), host=host, port=port, log_level="info")
    return 0


def _replay(trace: Path, config, tail: float) -> int:
    from pinpoint.replay import replay_file

    if not trace.exists():
        _print(f"{RED}Error: trace not found: {trace}{RESET}")
        return 1

    _step(f"Replaying {trace}...")
    t0 = time.time()
    summary = replay_file(trace, Path(config['db_path']), config=config, tail=tail)
    _ok(f"{summary.events} events over {summary.duration_sec:.1f} virtual seconds in {_elapsed(t0)}")

    _print(f"\n{BOLD}{GREEN}✓ Complete{RESET}")
    _print(f"  Fixes delivered    : {summary.fixes_delivered} ({summary.fixes_suppressed} filtered)")
    _print(f"  Fixes accepted     : {summary.fixes_accepted} ({summary.fixes_rejected} rejected)")
    _print(f"  Connect attempts   : {summary.connect_attempts}")
    _print(f"  Heartbeats         : {summary.heartbeats_sent}")
    _print(f"  Positions relayed  : {summary.positions_sent}")
    _print(f"  Reconnect windows  : {summary.windows_opened} opened, {summary.windows_expired} expired")
    _print(f"  Final connection   : {summary.final_connection}")
    _print(f"  Final threshold    : {summary.final_threshold_m}m")
    if summary.last_known_fix:
        fix = summary.last_known_fix
        _print(f"  Last known fix     : ({fix.latitude}, {fix.longitude}) @ {fix.timestamp}")
    return 0


# ── PRINT HELPERS ────────────────────────────────────────────

def _step(msg):  _print(f"  {CYAN}→{RESET} {msg}")
def _ok(msg):    _print(f"  {GREEN}✓{RESET} {msg}")
def _print(msg): print(msg)

def _elapsed(t0: float) -> str:
    s = time.time() - t0
    return f"{s:.1f}s" if s < 60 else f"{int(s//60)}m {int(s%60)}s"


if __name__ == '__main__':
    sys.exit(main())
