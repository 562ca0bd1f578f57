#!/usr/bin/env python3
"""
Calendar Sync Tool - Main entry point

Runs one reconciliation pass over every configured (source, guest) pair, or
keeps running one pass every few minutes.
"""
import argparse
import logging
import sys
import time

from calendar_sync import CalendarSync
from errors import ConfigError
from google_calendar import DEFAULT_KEY_PATH, DEFAULT_TOKEN_PATH, GoogleCalendarBackend
from sync_config import DEFAULT_CONFIG_FILE, load_config

logger = logging.getLogger(__name__)


def setup_logging(log_file='calendar_sync.log', verbose=False):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.FileHandler(log_file), logging.StreamHandler()]
    )


def positive_int(value):
    """argparse type for whole numbers of at least 1."""
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: '{value}'")
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def build_parser():
    parser = argparse.ArgumentParser(description='Sync RSVPs and invitations between paired Google Calendars')
    parser.add_argument('--config', default=DEFAULT_CONFIG_FILE, help='Path to calendar_config.json')
    parser.add_argument('--single', action='store_true', help='Run a single sync and exit')
    parser.add_argument('--interval', type=positive_int, default=5, help='Minutes between sync operations')
    parser.add_argument('--pair', type=str, help='Sync only the pair with this source calendar ID')
    parser.add_argument('--list', action='store_true', help='List configured calendar pairs')
    parser.add_argument('--dry-run', action='store_true', help='Log changes without applying them')
    parser.add_argument('--credentials', default=DEFAULT_KEY_PATH, help='OAuth client secrets file')
    parser.add_argument('--token', default=DEFAULT_TOKEN_PATH, help='Cached OAuth token file')
    parser.add_argument('--log-file', default='calendar_sync.log', help='Log file path')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')
    return parser


def run_continuous_sync(sync, interval):
    """Run a sync pass every ``interval`` minutes until interrupted."""
    try:
        while True:
            try:
                sync.run()
            except Exception:
                logger.exception("Sync run failed, retrying at the next interval")
            logger.info(f"Waiting {interval} minutes until next sync...")
            time.sleep(interval * 60)
    except KeyboardInterrupt:
        logger.info("Sync process interrupted by user. Exiting...")


def main(argv=None, backend_factory=None):
    """Main function to parse arguments and start the appropriate sync mode"""
    args = build_parser().parse_args(argv)
    setup_logging(args.log_file, args.verbose)

    try:
        config = load_config(args.config)
        if args.pair:
            config = config.only_source(args.pair)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    if args.dry_run:
        config = config.with_dry_run()

    if args.list:
        print("Configured calendar pairs:")
        for pair in config.calendar_pairs:
            print(f"  - {pair.source} -> {pair.guest}")
        return 0

    if backend_factory is None:
        backend = GoogleCalendarBackend.from_credentials(args.credentials, args.token)
    else:
        backend = backend_factory(args)
    sync = CalendarSync(backend, config)

    if args.single:
        stats = sync.run()
        return 1 if stats.failures else 0

    run_continuous_sync(sync, args.interval)
    return 0


if __name__ == "__main__":
    sys.exit(main())
