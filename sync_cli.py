"""Command-line entry point for service package synchronization."""
import argparse
import logging
import os
import sys
from typing import Optional, Sequence

from audit_log import setup_logging
from processor.errors import FatalSyncError
from reconciliation.runner import audit_catalog_slugs, run_reconciliation
from sync_config import SyncConfig, SyncMode

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_RECORD_FAILURES = 1
EXIT_FATAL = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='service-sync',
        description='Reconcile service packages with remote event types.'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    sync_parser = subparsers.add_parser('sync', help='Create or update event types')
    sync_parser.add_argument('--catalog', help='Catalog path, URL or s3:// location')
    sync_parser.add_argument(
        '--prune',
        action='store_true',
        help='Also delete event types missing from the catalog'
    )

    delete_parser = subparsers.add_parser('delete', help='Delete event types from a manifest')
    delete_parser.add_argument('--manifest', help='Manifest path, URL or s3:// location')

    check_parser = subparsers.add_parser('check-slugs', help='Report colliding catalog slugs')
    check_parser.add_argument('--catalog', help='Catalog path, URL or s3:// location')
    check_parser.add_argument(
        '--strict',
        action='store_true',
        help='Exit non-zero when any collision is found'
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Run one command and return the process exit code.

    Returns:
        0 on success, 1 if any record failed (or a strict slug check
        found collisions), 2 on a fatal error
    """
    args = build_parser().parse_args(argv)
    setup_logging(
        os.environ.get('LOG_LEVEL', 'INFO'),
        os.environ.get('AUDIT_LOG_PATH') or None
    )

    try:
        config = SyncConfig.from_env(require_credential=(args.command != 'check-slugs'))

        if args.command == 'check-slugs':
            collisions = audit_catalog_slugs(config.with_overrides(catalog_source=args.catalog))
            return EXIT_RECORD_FAILURES if collisions and args.strict else EXIT_OK

        if args.command == 'delete':
            config = config.with_overrides(deletion_manifest=args.manifest)
            mode = SyncMode.DELETE
        elif args.prune:
            config = config.with_overrides(catalog_source=args.catalog)
            mode = SyncMode.FULL_SYNC
        else:
            config = config.with_overrides(catalog_source=args.catalog)
            mode = SyncMode.SYNC

        result = run_reconciliation(config, mode=mode)

    except FatalSyncError as e:
        logger.error(f"Run aborted: {e}", extra={'error_type': type(e).__name__})
        return EXIT_FATAL

    return EXIT_OK if result.succeeded else EXIT_RECORD_FAILURES


if __name__ == '__main__':
    sys.exit(main())
