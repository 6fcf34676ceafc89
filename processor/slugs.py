"""Slug derivation and collision detection for package names."""
import re
from typing import Dict, Iterable, List, Optional

from processor.models import PackageRecord

PLACEHOLDER_SLUG = 'placeholder'
SEPARATOR = '-'

_NON_ALPHANUMERIC_RUN = re.compile(r'[^a-z0-9]+')


def derive_slug(name: Optional[str]) -> str:
    """
    Derive the canonical URL-safe slug for a display name.

    Lowercases the name, collapses every run of characters outside
    ``[a-z0-9]`` into a single separator and strips separators from both
    ends. Names that leave nothing behind map to ``PLACEHOLDER_SLUG``.

    Args:
        name: Display name, may be None

    Returns:
        Non-empty slug string
    """
    if not name:
        return PLACEHOLDER_SLUG

    slug = _NON_ALPHANUMERIC_RUN.sub(SEPARATOR, str(name).lower())
    slug = slug.strip(SEPARATOR)
    return slug or PLACEHOLDER_SLUG


def group_names_by_slug(records: Iterable[PackageRecord]) -> Dict[str, List[str]]:
    """Group original names by derived slug, preserving catalog order."""
    groups: Dict[str, List[str]] = {}
    for record in records:
        groups.setdefault(derive_slug(record.name), []).append(record.name)
    return groups


def detect_collisions(records: Iterable[PackageRecord]) -> Dict[str, List[str]]:
    """
    Find slugs derived from more than one catalog entry.

    Args:
        records: Package records from the catalog

    Returns:
        Mapping of colliding slug to the original names, in catalog order
    """
    return {
        slug: names
        for slug, names in group_names_by_slug(records).items()
        if len(names) > 1
    }
