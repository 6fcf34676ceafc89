"""Reconciler driving remote event types towards the desired catalog."""
import logging
from typing import Dict, Iterable, List, Optional, Set

from processor.errors import DiscoveryFailed, DuplicateSlug, RecordError
from processor.models import (
    DeletionTarget,
    Outcome,
    PackageRecord,
    RemoteEventType,
    SyncResult,
)
from processor.payload_builder import EventTypePayloadBuilder, payload_differs
from processor.slugs import derive_slug
from scheduling_api.directory_reader import RemoteDirectoryReader, event_type_from_response
from scheduling_api.request_executor import RequestExecutor
from scheduling_api.resource_matcher import ResourceMatcher
from sync_config import SyncConfig

logger = logging.getLogger(__name__)


class Reconciler:
    """
    Orchestrator for create, update and delete calls.

    Records are processed strictly one at a time. The discovered remote set
    and the claimed slugs belong to a single run.
    """

    def __init__(
        self,
        reader: RemoteDirectoryReader,
        matcher: ResourceMatcher,
        executor: RequestExecutor,
        payload_builder: EventTypePayloadBuilder
    ):
        self.reader = reader
        self.matcher = matcher
        self.executor = executor
        self.payload_builder = payload_builder

    @classmethod
    def from_config(cls, config: SyncConfig) -> 'Reconciler':
        """Wire a reconciler and its collaborators from configuration."""
        executor = RequestExecutor(
            base_url=config.api_base_url,
            api_key=config.api_key,
            credential_placement=config.credential_placement,
            api_key_header=config.api_key_header,
            api_key_param=config.api_key_param,
            update_method=config.update_method,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
            retry_base_delay=config.retry_base_delay,
            max_retry_delay=config.max_retry_delay,
            request_delay=config.request_delay
        )
        reader = RemoteDirectoryReader(
            executor,
            page_size=config.page_size,
            max_pages=config.max_pages,
            include_hidden=config.include_hidden
        )
        matcher = ResourceMatcher(
            reader,
            owner_id=config.owner_id,
            fallback_enabled=config.slug_fallback
        )
        builder = EventTypePayloadBuilder(
            currency=config.currency,
            location=config.default_location
        )
        return cls(reader, matcher, executor, builder)

    def sync_packages(self, records: Iterable[PackageRecord], prune: bool = False) -> SyncResult:
        """
        Create or update one event type per unique package slug.

        Duplicate slugs keep the first catalog entry. With ``prune`` set,
        remote event types whose slug is not in the catalog are deleted
        afterwards.

        Args:
            records: Desired packages in catalog order
            prune: Delete remote event types absent from the catalog

        Returns:
            SyncResult with one outcome per record (and per pruned resource)
        """
        records = list(records)
        logger.info(f"Starting sync of {len(records)} packages (prune={prune})")
        remote = self._discover()
        result = SyncResult()
        claimed: Dict[str, List[str]] = {}

        for record in records:
            slug = derive_slug(record.name)
            try:
                self._claim(claimed, slug, record.name)
            except DuplicateSlug as e:
                logger.warning(f"Duplicate slug skipped: {e}", extra={'slug': slug})
                result.record(slug, Outcome.SKIPPED_DUPLICATE, detail=str(e))
                continue

            try:
                self._upsert(remote, record, slug, result)
            except RecordError as e:
                self._record_failure(result, slug, e)

        if prune:
            self._prune(remote, set(claimed), result)

        self._log_summary(result)
        return result

    def delete_event_types(self, targets: Iterable[DeletionTarget]) -> SyncResult:
        """
        Delete the event types named by a deletion manifest.

        Args:
            targets: Manifest entries

        Returns:
            SyncResult with one outcome per entry
        """
        targets = list(targets)
        logger.info(f"Starting deletion of {len(targets)} event types")
        remote = self._discover()
        result = SyncResult()
        claimed: Dict[str, List[str]] = {}

        for target in targets:
            slug = target.slug or (derive_slug(target.name) if target.name else None)
            if not slug:
                logger.warning(f"Skipping deletion target with missing slug: {target}")
                result.record('', Outcome.SKIPPED_NO_MATCH, detail='missing slug')
                continue

            try:
                self._claim(claimed, slug, target.name or slug)
            except DuplicateSlug as e:
                logger.warning(f"Duplicate slug skipped: {e}", extra={'slug': slug})
                result.record(slug, Outcome.SKIPPED_DUPLICATE, detail=str(e))
                continue

            try:
                match = self.matcher.find_by_slug(remote, slug, owner_id=target.owner_id)
                if match is None:
                    logger.info(f"No event type found for slug '{slug}'", extra={'slug': slug})
                    result.record(slug, Outcome.SKIPPED_NO_MATCH)
                    continue
                self._delete(remote, match, result)
            except RecordError as e:
                self._record_failure(result, slug, e)

        self._log_summary(result)
        return result

    def _discover(self) -> List[RemoteEventType]:
        try:
            return self.reader.list_all()
        except RecordError as e:
            raise DiscoveryFailed(
                f"Listing remote event types failed: {e}",
                status_code=e.status_code
            ) from e

    def _claim(self, claimed: Dict[str, List[str]], slug: str, name: Optional[str]) -> None:
        names = claimed.get(slug)
        if names is not None:
            names.append(name)
            raise DuplicateSlug(slug, list(names))
        claimed[slug] = [name]

    def _upsert(
        self,
        remote: List[RemoteEventType],
        record: PackageRecord,
        slug: str,
        result: SyncResult
    ) -> None:
        payload = self.payload_builder.build(record, slug)
        match = self.matcher.find_by_slug(remote, slug)

        if match is None:
            body = self.executor.create(payload)
            created = event_type_from_response(body)
            if created is not None:
                remote.append(created)
            else:
                logger.warning(f"Create response for '{slug}' carried no event type id")
            event_type_id = created.id if created else None
            logger.info(
                f"Created event type for slug '{slug}'",
                extra={'slug': slug, 'event_type_id': event_type_id, 'outcome': 'created'}
            )
            result.record(slug, Outcome.CREATED, event_type_id=event_type_id)
            return

        if match not in remote:
            remote.append(match)

        if not payload_differs(payload, match):
            logger.info(
                f"Event type {match.id} for slug '{slug}' is up to date",
                extra={'slug': slug, 'event_type_id': match.id, 'outcome': 'unchanged'}
            )
            result.record(slug, Outcome.UNCHANGED, event_type_id=match.id)
            return

        self.executor.update(match.id, payload)
        logger.info(
            f"Updated event type {match.id} for slug '{slug}'",
            extra={'slug': slug, 'event_type_id': match.id, 'outcome': 'updated'}
        )
        result.record(slug, Outcome.UPDATED, event_type_id=match.id)

    def _prune(
        self,
        remote: List[RemoteEventType],
        desired_slugs: Set[str],
        result: SyncResult
    ) -> None:
        owner_id = self.matcher.owner_id
        prune_set = [
            resource for resource in remote
            if resource.slug not in desired_slugs and
            (owner_id is None or str(resource.owner_id) == str(owner_id))
        ]
        logger.info(f"Prune plan: {len(prune_set)} event types to delete")

        for resource in prune_set:
            try:
                self._delete(remote, resource, result)
            except RecordError as e:
                self._record_failure(result, resource.slug, e, resource.id)

    def _delete(
        self,
        remote: List[RemoteEventType],
        resource: RemoteEventType,
        result: SyncResult
    ) -> None:
        logger.info(
            f"Deleting event type {resource.id} (slug '{resource.slug}')",
            extra={'slug': resource.slug, 'event_type_id': resource.id}
        )
        self.executor.delete(resource.id)
        if resource in remote:
            remote.remove(resource)
        logger.info(
            f"Deleted event type {resource.id} (slug '{resource.slug}')",
            extra={'slug': resource.slug, 'event_type_id': resource.id, 'outcome': 'deleted'}
        )
        result.record(resource.slug, Outcome.DELETED, event_type_id=resource.id)

    def _record_failure(self, result: SyncResult, slug: str, error: RecordError, event_type_id=None) -> None:
        logger.error(
            f"Failed to reconcile '{slug}': {error}",
            extra={
                'slug': slug,
                'event_type_id': event_type_id,
                'error_type': type(error).__name__,
                'status_code': error.status_code,
                'response_body': error.response_body,
                'outcome': 'failed'
            }
        )
        result.record(slug, Outcome.FAILED, event_type_id=event_type_id, detail=str(error))

    def _log_summary(self, result: SyncResult) -> None:
        counts = result.counts()
        logger.info(
            "Reconciliation complete: " +
            ', '.join(f"{count} {name}" for name, count in counts.items()),
            extra={'counts': counts}
        )
