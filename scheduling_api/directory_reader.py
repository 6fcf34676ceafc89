"""Paginated discovery of remote event types."""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from processor.errors import ProtocolError
from processor.models import RemoteEventType
from scheduling_api.request_executor import RequestExecutor

logger = logging.getLogger(__name__)

FLAT_KEYS = ('event_types', 'eventTypes')
GROUPED_KEY = 'eventTypeGroups'


@dataclass
class ListingPage:
    """One listing response normalized to a flat item sequence."""
    shape: str
    items: List[Dict[str, Any]]
    next_page: Optional[Any] = None
    total: Optional[int] = None


def normalize_listing(body: Any) -> ListingPage:
    """
    Normalize any recognized listing envelope into a ListingPage.

    Recognized shapes:
        ``{"event_types": [...]}`` (or ``eventTypes``), flat;
        ``{"eventTypeGroups": [{"eventTypes": [...]}, ...]}``, grouped;
        either of the above wrapped in ``{"data": ...}``, or ``data``
        holding the flat list itself.

    Raises:
        ProtocolError: If the body matches none of the shapes
    """
    if not isinstance(body, dict):
        raise ProtocolError(f"Unrecognized listing response: {type(body).__name__}")

    next_page, total = _pagination(body)

    for key in FLAT_KEYS:
        if key in body:
            return ListingPage('flat', _require_list(body[key], key), next_page, total)

    if GROUPED_KEY in body:
        items = []
        for group in _require_list(body[GROUPED_KEY], GROUPED_KEY):
            if not isinstance(group, dict):
                raise ProtocolError(f"Unrecognized event type group: {group!r}")
            items.extend(_require_list(group.get('eventTypes') or [], 'eventTypes'))
        return ListingPage('grouped', items, next_page, total)

    if 'data' in body:
        data = body['data']
        if isinstance(data, list):
            return ListingPage('flat', data, next_page, total)
        page = normalize_listing(data)
        page.next_page = page.next_page if page.next_page is not None else next_page
        page.total = page.total if page.total is not None else total
        return page

    raise ProtocolError(f"Unrecognized listing response keys: {sorted(body)}")


def _pagination(body: Dict[str, Any]) -> tuple[Optional[Any], Optional[int]]:
    pagination = body.get('pagination')
    if not isinstance(pagination, dict):
        return None, None
    total = pagination.get('total')
    try:
        total = int(total) if total is not None else None
    except (TypeError, ValueError):
        total = None
    return pagination.get('nextPage') or None, total


def _require_list(value: Any, key: str) -> List[Any]:
    if not isinstance(value, list):
        raise ProtocolError(f"Expected a list under '{key}', got {type(value).__name__}")
    return value


def event_type_from_item(item: Any) -> Optional[RemoteEventType]:
    """
    Convert a listed item to a RemoteEventType.

    Returns:
        RemoteEventType or None if the item lacks an id or slug
    """
    if not isinstance(item, dict) or item.get('id') is None or not item.get('slug'):
        logger.warning(f"Skipping listed item without id or slug: {item!r}")
        return None

    length = item.get('length', item.get('lengthInMinutes'))
    price = item.get('price')
    return RemoteEventType(
        id=item['id'],
        slug=str(item['slug']),
        title=item.get('title'),
        length=int(length) if isinstance(length, (int, float)) else None,
        price=int(price) if isinstance(price, (int, float)) else None,
        hidden=bool(item.get('hidden', False)),
        owner_id=item.get('userId', item.get('ownerId')),
        tags=[str(tag) for tag in item.get('tags') or []],
        description=item.get('description')
    )


def event_type_from_response(body: Any) -> Optional[RemoteEventType]:
    """Extract the resource from a create/update response body."""
    if not isinstance(body, dict):
        return None
    for key in ('event_type', 'eventType', 'data'):
        if isinstance(body.get(key), dict):
            return event_type_from_item(body[key])
    if 'id' in body:
        return event_type_from_item(body)
    return None


class RemoteDirectoryReader:
    """Reader assembling the complete remote event type listing."""

    def __init__(
        self,
        executor: RequestExecutor,
        page_size: int = 100,
        max_pages: int = 1000,
        include_hidden: bool = True
    ):
        """
        Initialize the directory reader.

        Args:
            executor: Request executor used for list calls
            page_size: Items requested per page (default: 100)
            max_pages: Hard ceiling on list calls for one listing
            include_hidden: Ask the API to include hidden event types
        """
        self.executor = executor
        self.page_size = page_size
        self.max_pages = max_pages
        self.include_hidden = include_hidden

    def list_all(self, filters: Optional[Dict[str, Any]] = None) -> List[RemoteEventType]:
        """
        Retrieve every event type, following pagination to the end.

        Args:
            filters: Extra query parameters, e.g. {'slug': ...}

        Returns:
            Flat list of RemoteEventType objects

        Raises:
            ProtocolError: If the listing shape is unrecognized or the
                page ceiling is exceeded
        """
        logger.info("Listing remote event types", extra={'filters': filters or {}})
        items: List[Dict[str, Any]] = []
        page = 1
        calls = 0

        while True:
            if calls >= self.max_pages:
                raise ProtocolError(
                    f"Listing did not finish within {self.max_pages} pages"
                )

            params = {'limit': self.page_size, 'page': page}
            if self.include_hidden:
                params['includeHidden'] = 'true'
            params.update(filters or {})

            body = self.executor.get(RequestExecutor.EVENT_TYPES_PATH, params=params)
            calls += 1
            listing = normalize_listing(body)
            items.extend(listing.items)
            logger.info(
                f"Listing page {page}: {len(listing.items)} items ({listing.shape})",
                extra={'page': page, 'total': listing.total}
            )

            if not self._has_more(listing, len(items)):
                break
            page = self._next_page_number(listing, page)

        event_types = [
            event_type for event_type in map(event_type_from_item, items)
            if event_type is not None
        ]
        logger.info(f"Found {len(event_types)} event types in {calls} list calls")
        return event_types

    def _has_more(self, listing: ListingPage, accumulated: int) -> bool:
        if not listing.items:
            if listing.next_page is not None or (
                listing.total is not None and accumulated < listing.total
            ):
                logger.warning(
                    f"Listing ended on an empty page at {accumulated} items "
                    f"(total={listing.total}, nextPage={listing.next_page})"
                )
            return False
        if listing.next_page is not None:
            return True
        return listing.total is not None and accumulated < listing.total

    def _next_page_number(self, listing: ListingPage, page: int) -> int:
        try:
            requested = int(listing.next_page)
        except (TypeError, ValueError):
            return page + 1
        return requested if requested > page else page + 1
