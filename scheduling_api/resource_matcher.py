"""Slug-based lookup of remote event types."""
import logging
from typing import Iterable, Optional, Set

from processor.models import RemoteEventType, RemoteId
from scheduling_api.directory_reader import RemoteDirectoryReader

logger = logging.getLogger(__name__)


def match_slug(
    resources: Iterable[RemoteEventType],
    slug: str,
    owner_id: Optional[RemoteId] = None
) -> Optional[RemoteEventType]:
    """Return the first resource with this slug (and owner, when given)."""
    for resource in resources:
        if resource.slug != slug:
            continue
        if owner_id is not None and str(resource.owner_id) != str(owner_id):
            continue
        return resource
    return None


class ResourceMatcher:
    """
    Matcher joining slugs to remote event types.

    The bulk listing is searched first. Some deployments leave hidden event
    types out of it, so a miss triggers one slug-filtered query per slug
    per run.
    """

    def __init__(
        self,
        reader: RemoteDirectoryReader,
        owner_id: Optional[RemoteId] = None,
        fallback_enabled: bool = True
    ):
        self.reader = reader
        self.owner_id = owner_id
        self.fallback_enabled = fallback_enabled
        self._fallback_attempted: Set[str] = set()

    def find_by_slug(
        self,
        resources: Iterable[RemoteEventType],
        slug: str,
        owner_id: Optional[RemoteId] = None
    ) -> Optional[RemoteEventType]:
        """
        Find the remote event type for a slug.

        Args:
            resources: Assembled remote listing
            slug: Slug to look up
            owner_id: Owner scope; defaults to the configured one

        Returns:
            Matching RemoteEventType or None
        """
        owner_id = owner_id if owner_id is not None else self.owner_id
        match = match_slug(resources, slug, owner_id)
        if match is not None:
            logger.info(
                f"Matched event type {match.id} for slug '{slug}'",
                extra={'slug': slug, 'event_type_id': match.id, 'owner_id': match.owner_id}
            )
            return match

        logger.info(f"No event type found for slug '{slug}' in listing", extra={'slug': slug})
        if not self.fallback_enabled or slug in self._fallback_attempted:
            return None

        self._fallback_attempted.add(slug)
        logger.info(f"Falling back to slug-filtered query for '{slug}'", extra={'slug': slug})
        match = match_slug(self.reader.list_all(filters={'slug': slug}), slug, owner_id)
        if match is not None:
            logger.info(
                f"Matched event type {match.id} for slug '{slug}' in slug-filtered query",
                extra={'slug': slug, 'event_type_id': match.id, 'owner_id': match.owner_id}
            )
        else:
            logger.info(
                f"No event type found for slug '{slug}' in slug-filtered query",
                extra={'slug': slug}
            )
        return match
