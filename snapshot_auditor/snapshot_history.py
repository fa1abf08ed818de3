"""
Snapshot history aggregation.

For a disk with an active schedule, collect its READY snapshots and summarize
them as count, oldest and newest creation time, plus a staleness verdict.

Snapshot lifecycle is CREATING -> UPLOADING -> READY -> DELETING. A snapshot
listed as READY can reach DELETING (and disappear) before it is described;
such snapshots are skipped, never treated as errors.
"""

import logging
from datetime import UTC, datetime, timedelta

from .models import SnapshotStats
from .providers.base import ProviderError, SnapshotNotFoundError, SnapshotProvider

logger = logging.getLogger(__name__)

READY = "READY"


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are assumed to already be UTC.
    """
    if dt.tzinfo is not None:
        return dt.astimezone(UTC)
    return dt.replace(tzinfo=UTC)


def is_stale(newest: datetime, stale_after: timedelta, now: datetime) -> bool:
    """Stale only when strictly older than the threshold."""
    return ensure_utc(now) - ensure_utc(newest) > stale_after


class SnapshotHistory:
    """Summarize the READY snapshots of a disk."""

    def __init__(self, snapshots: SnapshotProvider, stale_after: timedelta):
        self.snapshots = snapshots
        self.stale_after = stale_after

    def aggregate(self, disk_name: str, now: datetime | None = None) -> SnapshotStats | None:
        """
        Aggregate snapshot history for a disk.

        Args:
            disk_name: Source disk of the snapshots
            now: Reference time for staleness (defaults to current UTC time)

        Returns:
            SnapshotStats, or None when no READY snapshot exists

        Raises:
            ProviderError: If the snapshot listing itself fails
        """
        now = now or datetime.now(UTC)
        refs = self.snapshots.list_snapshots_for_disk(disk_name)

        timestamps = []
        for ref in refs:
            if ref.status != READY:
                logger.debug(f"Skipping snapshot {ref.name} in state {ref.status}")
                continue
            try:
                detail = self.snapshots.describe_snapshot(ref.name)
            except SnapshotNotFoundError:
                logger.info(f"Snapshot {ref.name} deleted since listing, skipping")
                continue
            except ProviderError as e:
                logger.info(f"Could not describe snapshot {ref.name}, skipping: {e}")
                continue
            if detail.status != READY:
                logger.debug(f"Snapshot {ref.name} moved to {detail.status}, skipping")
                continue
            timestamps.append(ensure_utc(detail.created_at))

        if not timestamps:
            logger.warning(f"No ready snapshots found for disk {disk_name}")
            return None

        oldest = min(timestamps)
        newest = max(timestamps)
        stats = SnapshotStats(
            count=len(timestamps),
            oldest=oldest,
            newest=newest,
            stale=is_stale(newest, self.stale_after, now),
        )
        logger.info(
            f"Disk {disk_name}: {stats.count} snapshots, oldest {oldest.isoformat()}, "
            f"newest {newest.isoformat()}{' (stale)' if stats.stale else ''}"
        )
        return stats
