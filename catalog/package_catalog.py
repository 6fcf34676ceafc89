"""Catalog source for desired service packages and deletion manifests."""
import json
import logging
import math
import time
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import boto3
import requests
from botocore.exceptions import BotoCoreError, ClientError

from processor.errors import CatalogParseError
from processor.models import DeletionTarget, PackageRecord

logger = logging.getLogger(__name__)

TRUTHY_FLAGS = {'y', 'yes', 'true', '1'}


class PackageCatalog:
    """Reader for a JSON catalog held in a file, at a URL or in S3."""

    def __init__(self, source: str, timeout: int = 30):
        """
        Initialize the catalog reader.

        Args:
            source: Local path, http(s):// URL or s3://bucket/key
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.source = source
        self.timeout = timeout

    def load_packages(self) -> List[PackageRecord]:
        """
        Read and parse the package catalog.

        Returns:
            List of PackageRecord objects in catalog order

        Raises:
            CatalogParseError: If the source is missing or malformed
        """
        entries = self._load_array()
        records = []
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise CatalogParseError(
                    f"Catalog entry {index} in {self.source} is not an object"
                )
            records.append(self._entry_to_package_record(entry))

        logger.info(f"Loaded {len(records)} packages from {self.source}")
        return records

    def load_deletion_targets(self) -> List[DeletionTarget]:
        """
        Read and parse a deletion manifest.

        Accepts an array of ``{slug|name, ownerId?}`` objects, or an array
        wrapping one object with a ``slugs`` or ``eventTypes`` list.

        Returns:
            List of DeletionTarget objects in manifest order

        Raises:
            CatalogParseError: If the source is missing or malformed
        """
        targets = []
        for index, entry in enumerate(self._load_array()):
            if isinstance(entry, dict) and ('slugs' in entry or 'eventTypes' in entry):
                nested = entry.get('slugs', entry.get('eventTypes'))
                if not isinstance(nested, list):
                    raise CatalogParseError(
                        f"Manifest entry {index} in {self.source} has a non-list slug set"
                    )
                targets.extend(self._entry_to_deletion_target(item) for item in nested)
            else:
                targets.append(self._entry_to_deletion_target(entry))

        logger.info(f"Loaded {len(targets)} deletion targets from {self.source}")
        return targets

    def _load_array(self) -> List[Any]:
        text = self._read_text()
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise CatalogParseError(f"Invalid JSON in {self.source}: {e}") from e

        if not isinstance(data, list):
            raise CatalogParseError(
                f"Expected a JSON array in {self.source}, got {type(data).__name__}"
            )
        return data

    def _read_text(self) -> str:
        scheme = urlparse(self.source).scheme
        logger.info(f"Reading catalog from {self.source}")
        if scheme in ('http', 'https'):
            return self._fetch_url()
        if scheme == 's3':
            return self._fetch_s3_object()

        try:
            return Path(self.source).read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise CatalogParseError(f"Cannot read {self.source}: {e}") from e

    def _fetch_url(self) -> str:
        """
        Fetch the catalog over HTTP with retry logic.

        Returns:
            Response text

        Raises:
            CatalogParseError: If all retry attempts fail
        """
        max_retries = 3
        base_delay = 1  # seconds

        for attempt in range(max_retries):
            try:
                logger.info(f"Fetching catalog (attempt {attempt + 1}/{max_retries})")
                response = requests.get(self.source, timeout=self.timeout)
                response.raise_for_status()
                response.encoding = 'utf-8'
                return response.text

            except requests.RequestException as e:
                if attempt < max_retries - 1:
                    delay = base_delay * (2 ** attempt)
                    logger.warning(
                        f"Catalog request failed (attempt {attempt + 1}/{max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {max_retries} catalog fetch attempts failed. Last error: {e}"
                    )
                    raise CatalogParseError(
                        f"Cannot fetch {self.source}: {e}"
                    ) from e

    def _fetch_s3_object(self) -> str:
        parsed = urlparse(self.source)
        bucket = parsed.netloc
        key = parsed.path.lstrip('/')
        if not bucket or not key:
            raise CatalogParseError(f"Malformed S3 location: {self.source}")

        try:
            response = boto3.client('s3').get_object(Bucket=bucket, Key=key)
            return response['Body'].read().decode('utf-8')
        except (ClientError, BotoCoreError, UnicodeDecodeError) as e:
            raise CatalogParseError(f"Cannot read {self.source}: {e}") from e

    def _entry_to_package_record(self, entry: Dict[str, Any]) -> PackageRecord:
        """
        Convert a catalog object to a PackageRecord.

        Accepts the legacy field names (maxDuration, eventType, Sale, New)
        next to the current ones.
        """
        tags = entry.get('eventTypeTags', entry.get('eventType')) or []
        if isinstance(tags, str):
            tags = [tags]

        days = entry.get('availableDays') or []
        if isinstance(days, str):
            days = [days]

        return PackageRecord(
            name=_optional_text(entry.get('name')),
            description=_optional_text(entry.get('description')),
            max_duration_hours=self._number(
                entry, entry.get('maxDurationHours', entry.get('maxDuration'))
            ),
            price=self._number(entry, entry.get('price')),
            event_type_tags=[str(tag) for tag in tags if tag],
            package_type=_optional_text(entry.get('packageType')),
            on_sale=_flag(entry.get('onSale', entry.get('Sale'))),
            is_new=_flag(entry.get('isNew', entry.get('New'))),
            available_days=[str(day) for day in days]
        )

    def _number(self, entry: Dict[str, Any], value: Any) -> Optional[float]:
        if value is None or value == '':
            return None
        if isinstance(value, bool):
            raise CatalogParseError(
                f"Boolean where a number was expected in {entry.get('name')!r}"
            )
        try:
            number = float(value)
        except (TypeError, ValueError) as e:
            raise CatalogParseError(
                f"Invalid number {value!r} in {entry.get('name')!r} from {self.source}"
            ) from e
        if not math.isfinite(number):
            raise CatalogParseError(
                f"Non-finite number {value!r} in {entry.get('name')!r} from {self.source}"
            )
        return number

    def _entry_to_deletion_target(self, entry: Any) -> DeletionTarget:
        if isinstance(entry, str):
            return DeletionTarget(slug=entry.strip() or None)
        if not isinstance(entry, dict):
            raise CatalogParseError(
                f"Manifest entry {entry!r} in {self.source} is neither a slug nor an object"
            )
        return DeletionTarget(
            slug=_optional_text(entry.get('slug')),
            name=_optional_text(entry.get('name')),
            owner_id=entry.get('ownerId', entry.get('userId'))
        )


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _flag(value: Any) -> bool:
    """Interpret a boolean-like catalog flag ('Y', 'yes', true, 1)."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_FLAGS
    return False
