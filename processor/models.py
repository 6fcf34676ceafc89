"""Data models for service package synchronization."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

RemoteId = Union[int, str]


@dataclass(frozen=True)
class PackageRecord:
    """Desired service package read from the catalog."""
    name: Optional[str]
    description: Optional[str] = None
    max_duration_hours: Optional[float] = None
    price: Optional[float] = None
    event_type_tags: List[str] = field(default_factory=list)
    package_type: Optional[str] = None
    on_sale: bool = False
    is_new: bool = False
    available_days: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class DeletionTarget:
    """Entry of a deletion manifest."""
    slug: Optional[str]
    name: Optional[str] = None
    owner_id: Optional[RemoteId] = None


@dataclass
class RemoteEventType:
    """Event type resource as discovered on the remote API."""
    id: RemoteId
    slug: str
    title: Optional[str] = None
    length: Optional[int] = None
    price: Optional[int] = None
    hidden: bool = False
    owner_id: Optional[RemoteId] = None
    tags: List[str] = field(default_factory=list)
    description: Optional[str] = None


class Outcome(str, Enum):
    """Terminal state of one reconciled record."""
    CREATED = 'created'
    UPDATED = 'updated'
    UNCHANGED = 'unchanged'
    DELETED = 'deleted'
    SKIPPED_DUPLICATE = 'skipped-duplicate'
    SKIPPED_NO_MATCH = 'skipped-no-match'
    FAILED = 'failed'


@dataclass
class RecordOutcome:
    """Outcome of a single record."""
    slug: str
    outcome: Outcome
    event_type_id: Optional[RemoteId] = None
    detail: Optional[str] = None


@dataclass
class SyncResult:
    """Result of a reconciliation run."""
    outcomes: List[RecordOutcome] = field(default_factory=list)

    def record(
        self,
        slug: str,
        outcome: Outcome,
        event_type_id: Optional[RemoteId] = None,
        detail: Optional[str] = None
    ) -> RecordOutcome:
        entry = RecordOutcome(
            slug=slug,
            outcome=outcome,
            event_type_id=event_type_id,
            detail=detail
        )
        self.outcomes.append(entry)
        return entry

    def count(self, outcome: Outcome) -> int:
        return sum(1 for entry in self.outcomes if entry.outcome == outcome)

    def counts(self) -> Dict[str, int]:
        """Return a count for every outcome category, zeros included."""
        return {outcome.value: self.count(outcome) for outcome in Outcome}

    @property
    def added(self) -> int:
        return self.count(Outcome.CREATED)

    @property
    def updated(self) -> int:
        return self.count(Outcome.UPDATED)

    @property
    def deleted(self) -> int:
        return self.count(Outcome.DELETED)

    @property
    def errors(self) -> List[str]:
        return [
            f"{entry.slug}: {entry.detail}"
            for entry in self.outcomes
            if entry.outcome == Outcome.FAILED
        ]

    @property
    def succeeded(self) -> bool:
        return self.count(Outcome.FAILED) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'counts': self.counts(),
            'errors': self.errors
        }
