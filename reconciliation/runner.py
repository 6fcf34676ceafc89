"""Run orchestration shared by the command line and Lambda entry points."""
import logging
from typing import Dict, List, Optional

from catalog.package_catalog import PackageCatalog
from processor.errors import MissingCredential
from processor.models import SyncResult
from processor.slugs import detect_collisions
from reconciliation.reconciler import Reconciler
from sync_config import API_KEY_VARIABLE, SyncConfig, SyncMode

logger = logging.getLogger(__name__)


def run_reconciliation(config: SyncConfig, mode: Optional[SyncMode] = None) -> SyncResult:
    """
    Load the catalog or manifest and reconcile it against the remote API.

    All local input is read and validated before the first remote call.

    Args:
        config: Run configuration
        mode: Overrides config.mode when given

    Returns:
        SyncResult of the run

    Raises:
        FatalSyncError: On missing credential, unreadable input or a
            broken listing
    """
    mode = mode or config.mode
    if not config.api_key:
        raise MissingCredential(f"{API_KEY_VARIABLE} environment variable is not set or empty")

    if mode == SyncMode.DELETE:
        targets = PackageCatalog(
            config.deletion_manifest, timeout=config.timeout_seconds
        ).load_deletion_targets()
        return Reconciler.from_config(config).delete_event_types(targets)

    records = PackageCatalog(config.catalog_source, timeout=config.timeout_seconds).load_packages()
    for slug, names in detect_collisions(records).items():
        logger.warning(f"Duplicate slug '{slug}' from names: {names}", extra={'slug': slug})

    return Reconciler.from_config(config).sync_packages(
        records, prune=(mode == SyncMode.FULL_SYNC)
    )


def audit_catalog_slugs(config: SyncConfig) -> Dict[str, List[str]]:
    """Report slug collisions in the catalog without touching the remote API."""
    records = PackageCatalog(config.catalog_source, timeout=config.timeout_seconds).load_packages()
    collisions = detect_collisions(records)
    for slug, names in collisions.items():
        logger.warning(f"Duplicate slug '{slug}' from names: {names}", extra={'slug': slug})
    logger.info(f"Checked {len(records)} packages: {len(collisions)} slug collisions")
    return collisions
