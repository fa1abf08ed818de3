"""
Data model shared by the reconciler, the snapshot aggregator and the report.

Everything here is rebuilt from the cluster and the cloud on every run;
nothing is persisted between runs.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


ZONE_LABELS = (
    "topology.kubernetes.io/zone",
    "failure-domain.beta.kubernetes.io/zone",
)
REGION_LABELS = (
    "topology.kubernetes.io/region",
    "failure-domain.beta.kubernetes.io/region",
)


@dataclass(frozen=True)
class Location:
    """A Compute Engine scope a disk may live in: a region or a single zone."""
    kind: str  # 'region' or 'zone'
    name: str

    @classmethod
    def parse(cls, value: str) -> "Location":
        """Parse ``region/us-central1`` or ``zone/us-central1-a``."""
        kind, sep, name = value.strip().partition("/")
        if not sep or kind not in ("region", "zone") or not name:
            raise ValueError(
                f"Invalid location '{value}', expected 'region/<name>' or 'zone/<name>'"
            )
        return cls(kind=kind, name=name)

    @property
    def region(self) -> str:
        if self.kind == "region":
            return self.name
        return self.name.rsplit("-", 1)[0]  # us-central1-a -> us-central1

    def __str__(self) -> str:
        return f"{self.kind}/{self.name}"


@dataclass
class Volume:
    """A PersistentVolume as seen by the auditor."""
    name: str
    claim_namespace: str
    claim_name: str
    phase: str
    disk_name: str | None = None
    location_labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)

    @property
    def is_bound(self) -> bool:
        return self.phase == "Bound"


@dataclass
class DiskPolicies:
    """The disk was found; ``policies`` may be empty."""
    disk_name: str
    location: Location
    policies: list[str]


@dataclass
class DiskNotFound:
    """The disk could not be located in any candidate location."""
    disk_name: str
    locations: list[Location]


@dataclass
class SnapshotRef:
    name: str
    status: str


@dataclass
class SnapshotDetail:
    name: str
    status: str
    created_at: datetime


@dataclass
class SnapshotStats:
    count: int
    oldest: datetime
    newest: datetime
    stale: bool


class PolicyStatus(str, Enum):
    SCHEDULED = "scheduled"
    ADDED = "added"
    UNSUPPORTED = "unsupported"
    DISK_NOT_FOUND = "disk_not_found"
    ATTACH_FAILED = "attach_failed"
    MISSING_DRY_RUN = "missing_dry_run"
    ERROR = "error"


class SnapshotStatus(str, Enum):
    NOT_AGGREGATED = "not_aggregated"
    OK = "ok"
    MISSING = "missing"
    LOOKUP_FAILED = "lookup_failed"


@dataclass
class ReportRow:
    """One line of the audit report, exactly one per observed volume."""
    namespace: str
    volume: str
    policy_status: PolicyStatus
    schedule: str | None = None
    snapshot_status: SnapshotStatus = SnapshotStatus.NOT_AGGREGATED
    stats: SnapshotStats | None = None
    error: str | None = None

    @property
    def sort_key(self) -> tuple[str, str]:
        return (self.namespace, self.volume)

    @property
    def failed(self) -> bool:
        return self.policy_status in (
            PolicyStatus.DISK_NOT_FOUND,
            PolicyStatus.ATTACH_FAILED,
            PolicyStatus.ERROR,
        ) or self.snapshot_status == SnapshotStatus.LOOKUP_FAILED


class SweepStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    FATAL = "fatal"


@dataclass
class SweepOutcome:
    status: SweepStatus
    rows: list[ReportRow] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    fatal_reason: str | None = None
