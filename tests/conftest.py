"""
Shared pytest fixtures for the snapshot auditor test suite

Provides:
- Configuration fixtures
- Volume / PersistentVolume factories
- Mocked cluster, cloud and alerting providers
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from kubernetes import client

from snapshot_auditor.config import AuditConfig, default_locations
from snapshot_auditor.models import SnapshotDetail, SnapshotRef, Volume
from snapshot_auditor.providers.base import (
    AlertSink,
    ClusterInventory,
    DiskProvider,
    SnapshotNotFoundError,
    SnapshotProvider,
    VolumeNotFoundError,
)


# Test configuration
TEST_CLUSTER = "test-cluster"
TEST_PROJECT = "test-project"
TEST_REGION = "us-central1"
FIXED_NOW = datetime(2024, 3, 10, 12, 0, tzinfo=UTC)


@pytest.fixture
def audit_config():
    """Default resource-policy scheme configuration."""
    return AuditConfig(
        cluster_name=TEST_CLUSTER,
        project=TEST_PROJECT,
        locations=default_locations(TEST_REGION),
        stale_after=timedelta(hours=48),
        max_workers=4,
    )


@pytest.fixture
def make_volume():
    """Factory for supported (disk + zone label) volumes; disk_name="" for none."""
    def _make(
        name="pvc-1",
        namespace="default",
        claim="data",
        disk_name=None,
        zone="us-central1-a",
        annotations=None,
        phase="Bound",
    ):
        labels = {"topology.kubernetes.io/zone": zone} if zone else {}
        return Volume(
            name=name,
            claim_namespace=namespace,
            claim_name=claim,
            phase=phase,
            disk_name=name if disk_name is None else disk_name,
            location_labels=labels,
            annotations=annotations or {},
        )
    return _make


@pytest.fixture
def make_pv():
    """Factory for kubernetes V1PersistentVolume objects."""
    def _make(
        name="pvc-1",
        namespace="default",
        claim="data",
        phase="Bound",
        pd_name=None,
        csi_handle=None,
        labels=None,
        annotations=None,
    ):
        spec = client.V1PersistentVolumeSpec(
            claim_ref=client.V1ObjectReference(namespace=namespace, name=claim) if claim else None,
        )
        if pd_name:
            spec.gce_persistent_disk = client.V1GCEPersistentDiskVolumeSource(pd_name=pd_name)
        if csi_handle:
            spec.csi = client.V1CSIPersistentVolumeSource(
                driver="pd.csi.storage.gke.io", volume_handle=csi_handle
            )
        return client.V1PersistentVolume(
            metadata=client.V1ObjectMeta(
                name=name, labels=labels or {}, annotations=annotations or {}
            ),
            spec=spec,
            status=client.V1PersistentVolumeStatus(phase=phase),
        )
    return _make


# ============================================================================
# Mock Provider Fixtures
# ============================================================================

@pytest.fixture
def mock_inventory():
    """ClusterInventory whose describe_volume returns what was listed."""
    inventory = MagicMock(spec=ClusterInventory)
    inventory.volumes = {}

    def _list():
        return list(inventory.volumes.values())

    def _describe(name):
        if name not in inventory.volumes:
            raise VolumeNotFoundError(f"{name} not found", "fake", "describe_volume")
        return inventory.volumes[name]

    inventory.list_bound_volumes.side_effect = _list
    inventory.describe_volume.side_effect = _describe
    return inventory


@pytest.fixture
def mock_disks():
    """DiskProvider where every disk exists in the region without policies."""
    disks = MagicMock(spec=DiskProvider)
    disks.describe_disk_at.return_value = []
    return disks


@pytest.fixture
def mock_snapshots():
    """SnapshotProvider backed by a dict of disk -> [SnapshotDetail]."""
    snapshots = MagicMock(spec=SnapshotProvider)
    snapshots.by_disk = {}

    def _list(disk_name):
        return [SnapshotRef(s.name, s.status) for s in snapshots.by_disk.get(disk_name, [])]

    def _describe(name):
        for details in snapshots.by_disk.values():
            for detail in details:
                if detail.name == name:
                    return detail
        raise SnapshotNotFoundError(f"{name} not found", "fake", "describe_snapshot")

    snapshots.list_snapshots_for_disk.side_effect = _list
    snapshots.describe_snapshot.side_effect = _describe
    return snapshots


@pytest.fixture
def mock_alerts():
    return MagicMock(spec=AlertSink)


@pytest.fixture
def snapshot_detail():
    """Factory for READY snapshots created ``age`` before FIXED_NOW."""
    def _make(name, age=timedelta(hours=1), status="READY"):
        return SnapshotDetail(name=name, status=status, created_at=FIXED_NOW - age)
    return _make


@pytest.fixture
def fixed_now():
    return FIXED_NOW
