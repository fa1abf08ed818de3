"""
Volume Backup Policy Reconciler

Keeps every bound PersistentVolume covered by a snapshot schedule and
collects the snapshot history of the covered ones for the audit report.

Reconciliation Rules (per volume):
1. Volume deleted since listing -> no row, logged only
2. Not backed by a located persistent disk -> "Unsupported volume" row
3. Schedule already present -> left untouched, snapshot history aggregated
4. Schedule missing -> default schedule attached once, row marked as added,
   no snapshot history (a freshly enrolled volume has none yet)

Exactly one policy scheme is authoritative per run:
- resource-policy: Compute Engine resource policy attached to the disk
- annotation: PersistentVolume annotation read by the k8s-snapshots controller

Only authentication/context failures and a failed volume listing abort the
sweep. A disk missing from every candidate location or a rejected attachment
is escalated and recorded against that volume; the sweep carries on.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import UTC, datetime
from typing import Callable

from .classifier import VolumeClass, classify
from .config import SCHEME_ANNOTATION, AuditConfig
from .disk_probe import DiskPolicyProbe
from .models import (
    DiskNotFound,
    PolicyStatus,
    ReportRow,
    SnapshotStatus,
    SweepOutcome,
    SweepStatus,
    Volume,
)
from .providers.base import (
    AlertSink,
    AuthenticationError,
    ClusterInventory,
    DiskProvider,
    ProviderError,
    SnapshotProvider,
    VolumeNotFoundError,
)
from .snapshot_history import SnapshotHistory

logger = logging.getLogger(__name__)


class PolicyReconciler:
    """Drive one reconciliation sweep over the cluster's bound volumes."""

    def __init__(
        self,
        config: AuditConfig,
        inventory: ClusterInventory,
        disks: DiskProvider,
        snapshots: SnapshotProvider,
        alerts: AlertSink,
        dry_run: bool = False,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.inventory = inventory
        self.disks = disks
        self.alerts = alerts
        self.dry_run = dry_run
        self.clock = clock or (lambda: datetime.now(UTC))
        self.probe = DiskPolicyProbe(disks)
        self.history = SnapshotHistory(snapshots, config.stale_after)

    def run(self) -> SweepOutcome:
        """
        Run a full sweep.

        Returns:
            SweepOutcome with rows sorted by (namespace, volume). FATAL
            outcomes carry no rows.
        """
        try:
            self.inventory.connect()
            self.disks.verify_access()
        except AuthenticationError as e:
            return self._fatal(f"Authentication failed for {self.config.cluster_name}: {e}")
        except ProviderError as e:
            return self._fatal(f"Could not reach cluster or cloud APIs for {self.config.cluster_name}: {e}")

        try:
            volumes = self.inventory.list_bound_volumes()
        except ProviderError as e:
            return self._fatal(f"Could not list persistent volumes in {self.config.cluster_name}: {e}")

        logger.info(
            f"Reconciling {len(volumes)} bound volumes in {self.config.cluster_name} "
            f"(scheme={self.config.policy_scheme}, workers={self.config.max_workers}"
            f"{', dry run' if self.dry_run else ''})"
        )

        rows: list[ReportRow] = []
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            futures = {pool.submit(self._reconcile_guarded, volume): volume for volume in volumes}
            for future in as_completed(futures):
                row = future.result()
                if row is not None:
                    rows.append(row)

        rows.sort(key=lambda r: r.sort_key)
        errors = [f"{r.namespace}/{r.volume}: {r.error}" for r in rows if r.failed]
        status = SweepStatus.PARTIAL if errors else SweepStatus.SUCCESS

        logger.info(
            f"Sweep finished with {status.value}: {len(rows)} rows, "
            f"{sum(1 for r in rows if r.policy_status == PolicyStatus.ADDED)} added, "
            f"{len(errors)} failed"
        )
        return SweepOutcome(status=status, rows=rows, errors=errors)

    def _fatal(self, reason: str) -> SweepOutcome:
        logger.error(reason)
        self.alerts.notify(reason)
        return SweepOutcome(status=SweepStatus.FATAL, fatal_reason=reason)

    def _reconcile_guarded(self, volume: Volume) -> ReportRow | None:
        try:
            return self.reconcile(volume)
        except ProviderError as e:
            logger.error(f"Failed to reconcile volume {volume.name}: {e}", exc_info=True)
            error = str(e)
        except Exception as e:
            logger.error(f"Unexpected error reconciling volume {volume.name}: {e}", exc_info=True)
            error = f"{type(e).__name__}: {e}"
        return ReportRow(
            namespace=volume.claim_namespace,
            volume=volume.name,
            policy_status=PolicyStatus.ERROR,
            error=error,
        )

    def reconcile(self, volume: Volume) -> ReportRow | None:
        """
        Reconcile a single volume.

        Returns:
            The volume's report row, or None when the volume was deleted
            or left the Bound phase since it was listed
        """
        try:
            current = self.inventory.describe_volume(volume.name)
        except VolumeNotFoundError:
            logger.info(f"This PV deleted since start of run: {volume.name}")
            return None

        if not current.is_bound:
            logger.info(f"Volume {current.name} is {current.phase or 'unknown'} since start of run, skipping")
            return None

        if classify(current) == VolumeClass.UNSUPPORTED:
            logger.info(f"Found unsupported volume {current.name}")
            return ReportRow(
                namespace=current.claim_namespace,
                volume=current.name,
                policy_status=PolicyStatus.UNSUPPORTED,
            )

        if self.config.policy_scheme == SCHEME_ANNOTATION:
            row = self._reconcile_annotation(current)
        else:
            row = self._reconcile_resource_policy(current)

        if row.policy_status == PolicyStatus.SCHEDULED:
            self._add_snapshot_history(row, current.disk_name)
        return row

    def _reconcile_resource_policy(self, volume: Volume) -> ReportRow:
        disk_name = volume.disk_name
        result = self.probe.probe(disk_name, self.config.locations)

        if isinstance(result, DiskNotFound):
            message = f"Unable to find {disk_name} in {self.config.cluster_name}!"
            self.alerts.notify(message)
            return ReportRow(
                namespace=volume.claim_namespace,
                volume=volume.name,
                policy_status=PolicyStatus.DISK_NOT_FOUND,
                error=message,
            )

        if result.policies:
            return ReportRow(
                namespace=volume.claim_namespace,
                volume=volume.name,
                policy_status=PolicyStatus.SCHEDULED,
                schedule=", ".join(result.policies),
            )

        if self.dry_run:
            logger.info(f"Dry run: would assign {self.config.default_policy} to disk {disk_name}")
            return ReportRow(
                namespace=volume.claim_namespace,
                volume=volume.name,
                policy_status=PolicyStatus.MISSING_DRY_RUN,
            )

        logger.info(f"Assigning snapshot schedule {self.config.default_policy} to disk {disk_name} in {result.location}")
        try:
            self.disks.attach_disk_policy(disk_name, result.location, self.config.default_policy)
        except ProviderError as e:
            logger.error(f"Assignment error for disk {disk_name}: {e}")
            self.alerts.notify(f"Snapshot Scheduler assignment error for {disk_name}")
            return ReportRow(
                namespace=volume.claim_namespace,
                volume=volume.name,
                policy_status=PolicyStatus.ATTACH_FAILED,
                error=str(e),
            )

        return ReportRow(
            namespace=volume.claim_namespace,
            volume=volume.name,
            policy_status=PolicyStatus.ADDED,
            schedule=self.config.default_policy,
        )

    def _reconcile_annotation(self, volume: Volume) -> ReportRow:
        key = self.config.annotation_key
        annotations = volume.annotations or {}

        if key in annotations:
            existing = annotations[key]
            return ReportRow(
                namespace=volume.claim_namespace,
                volume=volume.name,
                policy_status=PolicyStatus.SCHEDULED,
                schedule=existing,
            )

        if self.dry_run:
            logger.info(f"Dry run: would annotate {volume.name} with {key}")
            return ReportRow(
                namespace=volume.claim_namespace,
                volume=volume.name,
                policy_status=PolicyStatus.MISSING_DRY_RUN,
            )

        logger.info(f"Adding annotation to this PV: {volume.name}")
        try:
            self.inventory.patch_volume_annotation(volume.name, key, self.config.annotation_value)
        except ProviderError as e:
            logger.error(f"Failed to patch {volume.name}: {e}")
            self.alerts.notify(f"Failed to patch {volume.name}!")
            return ReportRow(
                namespace=volume.claim_namespace,
                volume=volume.name,
                policy_status=PolicyStatus.ATTACH_FAILED,
                error=str(e),
            )

        return ReportRow(
            namespace=volume.claim_namespace,
            volume=volume.name,
            policy_status=PolicyStatus.ADDED,
            schedule=self.config.annotation_value,
        )

    def _add_snapshot_history(self, row: ReportRow, disk_name: str) -> None:
        try:
            stats = self.history.aggregate(disk_name, now=self.clock())
        except ProviderError as e:
            logger.error(f"Snapshot lookup failed for disk {disk_name}: {e}")
            row.snapshot_status = SnapshotStatus.LOOKUP_FAILED
            row.error = str(e)
            return

        if stats is None:
            row.snapshot_status = SnapshotStatus.MISSING
        else:
            row.snapshot_status = SnapshotStatus.OK
            row.stats = stats
