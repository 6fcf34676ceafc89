"""Builder mapping catalog packages to event type request bodies."""
import logging
from typing import Any, Dict, List, Optional, Sequence

from processor.models import PackageRecord, RemoteEventType

logger = logging.getLogger(__name__)

# Weekday names to the numeric days the API expects (Monday=1)
DAY_MAP = {
    'monday': 1,
    'tuesday': 2,
    'wednesday': 3,
    'thursday': 4,
    'friday': 5,
    'saturday': 6,
    'sunday': 7,
}


class EventTypePayloadBuilder:
    """Builder for create/update event type payloads."""

    DEFAULT_TITLE = 'Placeholder Title'
    DEFAULT_DESCRIPTION = 'No description provided'
    DEFAULT_LENGTH_MINUTES = 180
    DEFAULT_DAYS = (1, 2, 3, 4, 5)
    DEFAULT_START_TIME = '09:00'
    DEFAULT_END_TIME = '17:00'
    ON_SALE_TAG = 'On Sale'
    NEW_TAG = 'New'

    def __init__(self, currency: str = 'cad', location: str = 'Toronto, ON'):
        """
        Initialize the payload builder.

        Args:
            currency: Currency code sent with every price
            location: Address of the in-person location
        """
        self.currency = currency
        self.location = location

    def build(self, record: PackageRecord, slug: str) -> Dict[str, Any]:
        """
        Build the request body for one package.

        Args:
            record: Desired package record
            slug: Slug already derived for the record

        Returns:
            JSON-serializable event type body
        """
        return {
            'title': record.name or self.DEFAULT_TITLE,
            'slug': slug,
            'length': self._length_minutes(record.max_duration_hours),
            'description': record.description or self.DEFAULT_DESCRIPTION,
            'locations': [{'type': 'inPerson', 'address': self.location}],
            'availability': {
                'days': self._availability_days(record.available_days),
                'startTime': self.DEFAULT_START_TIME,
                'endTime': self.DEFAULT_END_TIME
            },
            'price': self._price_minor_units(record.price),
            'currency': self.currency,
            'tags': self._tags(record)
        }

    def _length_minutes(self, hours: Optional[float]) -> int:
        if not hours:
            return self.DEFAULT_LENGTH_MINUTES
        return int(round(hours * 60))

    def _price_minor_units(self, price: Optional[float]) -> int:
        if not price:
            return 0
        return int(round(price * 100))

    def _availability_days(self, day_names: Sequence[str]) -> List[int]:
        days = []
        for day_name in day_names:
            day = DAY_MAP.get(str(day_name).strip().lower())
            if day is None:
                logger.warning(f"Ignoring unknown weekday '{day_name}'")
                continue
            if day not in days:
                days.append(day)
        return sorted(days) if days else list(self.DEFAULT_DAYS)

    def _tags(self, record: PackageRecord) -> List[str]:
        tags = list(record.event_type_tags)
        tags.append(record.package_type)
        tags.append(self.ON_SALE_TAG if record.on_sale else '')
        tags.append(self.NEW_TAG if record.is_new else '')
        return [tag for tag in tags if tag]


def payload_differs(payload: Dict[str, Any], remote: RemoteEventType) -> bool:
    """
    Compare a desired payload with the remote resource it would update.

    Only fields the listing reliably carries are compared; a field the
    remote did not report counts as a difference.

    Args:
        payload: Body produced by EventTypePayloadBuilder.build
        remote: Matched remote event type

    Returns:
        True if an update is needed, False otherwise
    """
    return (
        payload['title'] != remote.title or
        payload['length'] != remote.length or
        payload['description'] != remote.description or
        payload['price'] != remote.price or
        payload['tags'] != list(remote.tags)
    )
