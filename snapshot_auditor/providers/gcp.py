"""
GCP Cloud Provider Implementation

Persistent disk lookup, resource policy attachment and snapshot reads on
Compute Engine, using the google-cloud-compute SDK.

Multi-zone (regional) disks are served by RegionDisksClient, single-zone
disks by DisksClient; which one applies is decided by the Location passed in.
"""

import logging
from datetime import datetime

from google.api_core.exceptions import (
    Conflict,
    Forbidden,
    GoogleAPICallError,
    NotFound,
    Unauthenticated,
)
from google.auth.exceptions import GoogleAuthError, TransportError
from google.cloud import compute_v1

from ..models import Location, SnapshotDetail, SnapshotRef
from .base import (
    AuthenticationError,
    DiskNotFoundError,
    DiskProvider,
    PolicyAttachError,
    ProviderError,
    SnapshotNotFoundError,
    SnapshotProvider,
)

logger = logging.getLogger(__name__)

COMPUTE_API = "https://www.googleapis.com/compute/v1"


def policy_short_name(policy_url: str) -> str:
    """.../regions/us-central1/resourcePolicies/dailykeep14 -> dailykeep14"""
    return policy_url.rstrip("/").rsplit("/", 1)[-1]


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 Compute Engine timestamp (2020-04-14T07:00:12.345-07:00)."""
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class GCPComputeProvider(DiskProvider, SnapshotProvider):
    """Compute Engine implementation of the disk and snapshot interfaces."""

    def __init__(
        self,
        project: str,
        operation_timeout: int = 300,
        disks_client=None,
        region_disks_client=None,
        snapshots_client=None,
        projects_client=None,
    ):
        self.project = project
        self.operation_timeout = operation_timeout
        self._disks = disks_client
        self._region_disks = region_disks_client
        self._snapshots = snapshots_client
        self._projects = projects_client

    @property
    def disks(self):
        if self._disks is None:
            self._disks = compute_v1.DisksClient()
        return self._disks

    @property
    def region_disks(self):
        if self._region_disks is None:
            self._region_disks = compute_v1.RegionDisksClient()
        return self._region_disks

    @property
    def snapshots(self):
        if self._snapshots is None:
            self._snapshots = compute_v1.SnapshotsClient()
        return self._snapshots

    @property
    def projects(self):
        if self._projects is None:
            self._projects = compute_v1.ProjectsClient()
        return self._projects

    def name(self) -> str:
        return "gcp"

    def verify_access(self) -> None:
        try:
            self.projects.get(project=self.project)
        except TransportError as e:
            raise ProviderError(str(e), self.name(), "verify_access") from e
        except GoogleAuthError as e:
            raise AuthenticationError(
                f"Auth to Gcloud failed: {e}", self.name(), "verify_access"
            ) from e
        except (Unauthenticated, Forbidden, NotFound) as e:
            raise AuthenticationError(
                f"Set Gcloud project {self.project} failed: {e.message}", self.name(), "verify_access"
            ) from e
        except GoogleAPICallError as e:
            raise ProviderError(str(e), self.name(), "verify_access") from e
        logger.info(f"Verified access to GCP project {self.project}")

    # === Persistent Disks ===

    def describe_disk_at(self, disk_name: str, location: Location) -> list[str]:
        try:
            if location.kind == "region":
                disk = self.region_disks.get(
                    project=self.project, region=location.name, disk=disk_name
                )
            else:
                disk = self.disks.get(
                    project=self.project, zone=location.name, disk=disk_name
                )
        except NotFound as e:
            raise DiskNotFoundError(
                f"disk {disk_name} not found in {location}", self.name(), "describe_disk",
                details={"disk": disk_name, "location": str(location)},
            ) from e
        except (GoogleAPICallError, GoogleAuthError) as e:
            raise ProviderError(
                str(e), self.name(), "describe_disk",
                details={"disk": disk_name, "location": str(location)},
            ) from e

        return [policy_short_name(url) for url in disk.resource_policies]

    def attach_disk_policy(self, disk_name: str, location: Location, policy_name: str) -> None:
        policy_url = (
            f"{COMPUTE_API}/projects/{self.project}/regions/{location.region}"
            f"/resourcePolicies/{policy_name}"
        )
        try:
            if location.kind == "region":
                operation = self.region_disks.add_resource_policies(
                    project=self.project,
                    region=location.name,
                    disk=disk_name,
                    region_disks_add_resource_policies_request_resource=(
                        compute_v1.RegionDisksAddResourcePoliciesRequest(
                            resource_policies=[policy_url]
                        )
                    ),
                )
            else:
                operation = self.disks.add_resource_policies(
                    project=self.project,
                    zone=location.name,
                    disk=disk_name,
                    disks_add_resource_policies_request_resource=(
                        compute_v1.DisksAddResourcePoliciesRequest(
                            resource_policies=[policy_url]
                        )
                    ),
                )
            operation.result(timeout=self.operation_timeout)
        except Conflict:
            logger.info(f"Policy {policy_name} already attached to disk {disk_name}")
            return
        except (GoogleAPICallError, GoogleAuthError, TimeoutError) as e:
            raise PolicyAttachError(
                str(e), self.name(), "add_resource_policies",
                details={"disk": disk_name, "location": str(location), "policy": policy_name},
            ) from e

        logger.info(f"Assigned snapshot schedule {policy_name} to disk {disk_name} in {location}")

    # === Snapshots ===

    def list_snapshots_for_disk(self, disk_name: str) -> list[SnapshotRef]:
        request = compute_v1.ListSnapshotsRequest(
            project=self.project,
            filter=f'sourceDisk eq ".*/disks/{disk_name}"',
        )
        suffix = f"/disks/{disk_name}"
        try:
            return [
                SnapshotRef(name=snapshot.name, status=snapshot.status)
                for snapshot in self.snapshots.list(request=request)
                if snapshot.source_disk.endswith(suffix)
            ]
        except (GoogleAPICallError, GoogleAuthError) as e:
            raise ProviderError(
                str(e), self.name(), "list_snapshots", details={"disk": disk_name}
            ) from e

    def describe_snapshot(self, snapshot_name: str) -> SnapshotDetail:
        try:
            snapshot = self.snapshots.get(project=self.project, snapshot=snapshot_name)
        except NotFound as e:
            raise SnapshotNotFoundError(
                f"snapshot {snapshot_name} not found", self.name(), "describe_snapshot"
            ) from e
        except (GoogleAPICallError, GoogleAuthError) as e:
            raise ProviderError(str(e), self.name(), "describe_snapshot") from e

        if not snapshot.creation_timestamp:
            raise ProviderError(
                f"snapshot {snapshot_name} has no creation timestamp", self.name(), "describe_snapshot"
            )
        return SnapshotDetail(
            name=snapshot.name,
            status=snapshot.status,
            created_at=parse_timestamp(snapshot.creation_timestamp),
        )
