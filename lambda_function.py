"""AWS Lambda handler for scheduled service package synchronization."""
import json
import logging
import os
import time
from typing import Any, Dict

from audit_log import setup_logging
from processor.errors import FatalSyncError
from reconciliation.runner import run_reconciliation
from sync_config import SyncConfig, parse_mode


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler function for service package synchronization.

    Args:
        event: EventBridge event payload; optional keys ``mode`` and
            ``catalog_source`` override the environment
        context: Lambda context object

    Returns:
        Response dict with statusCode and outcome statistics
    """
    start_time = time.time()

    # Set up logging before reading the rest of the configuration
    setup_logging(
        os.environ.get('LOG_LEVEL', 'INFO'),
        os.environ.get('AUDIT_LOG_PATH') or None
    )
    logger = logging.getLogger(__name__)

    try:
        config = SyncConfig.from_env()

        mode = parse_mode(event['mode']) if event.get('mode') else config.mode
        config = config.with_overrides(mode=mode, catalog_source=event.get('catalog_source'))

        logger.info(
            "Lambda execution started",
            extra={
                'mode': config.mode.value,
                'catalog_source': config.catalog_source,
                'api_base_url': config.api_base_url
            }
        )
        result = run_reconciliation(config)

    except FatalSyncError as e:
        duration = time.time() - start_time
        logger.error(
            f"Lambda execution aborted: {str(e)}",
            extra={
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )
        return {
            'statusCode': 500,
            'body': json.dumps({
                'message': 'Sync aborted',
                'error': str(e),
                'error_type': type(e).__name__,
                'duration_seconds': round(duration, 2)
            })
        }

    duration = time.time() - start_time
    statistics = dict(result.counts(), duration_seconds=round(duration, 2))

    if result.succeeded:
        logger.info(
            "Lambda execution completed successfully",
            extra={'statistics': statistics}
        )
        message = 'Sync completed successfully'
    else:
        logger.error(
            "Lambda execution completed with failures",
            extra={'statistics': statistics, 'errors': result.errors}
        )
        message = 'Sync completed with failures'

    return {
        'statusCode': 200 if result.succeeded else 500,
        'body': json.dumps({
            'message': message,
            'statistics': statistics,
            'errors': result.errors
        })
    }
