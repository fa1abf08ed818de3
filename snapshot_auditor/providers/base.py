"""
Abstract interfaces for the cluster, cloud and alerting collaborators.

The reconciler only talks to these interfaces, so the Kubernetes and
Compute Engine implementations can be swapped for fakes in tests.

Provider Categories:
- ClusterInventory: PersistentVolume listing, describe and annotation patch
- DiskProvider: persistent disk lookup and resource policy attachment
- SnapshotProvider: snapshot listing and describe
- AlertSink: operator escalation channel
"""

from abc import ABC, abstractmethod

from ..models import Location, SnapshotDetail, SnapshotRef, Volume


class ClusterInventory(ABC):
    """
    Read/patch access to the cluster's PersistentVolumes.

    Implementations:
    - Kubernetes: CoreV1Api against the selected kube context
    """

    @abstractmethod
    def connect(self) -> None:
        """
        Load credentials and select the cluster context.

        Raises:
            AuthenticationError: If no usable context/credentials exist
        """
        pass

    @abstractmethod
    def list_bound_volumes(self) -> list[Volume]:
        """
        List volumes in the ``Bound`` phase.

        Raises:
            ProviderError: If the listing call fails
        """
        pass

    @abstractmethod
    def describe_volume(self, name: str) -> Volume:
        """
        Fetch a single volume fresh from the API.

        Raises:
            VolumeNotFoundError: If the volume no longer exists
        """
        pass

    @abstractmethod
    def patch_volume_annotation(self, name: str, key: str, value: str) -> None:
        """
        Set one annotation on a volume. Setting an existing value is a no-op.

        Raises:
            PolicyAttachError: If the patch is rejected
        """
        pass


class DiskProvider(ABC):
    """
    Persistent disk operations.

    Implementations:
    - GCP: Compute Engine DisksClient / RegionDisksClient
    """

    @abstractmethod
    def verify_access(self) -> None:
        """
        Confirm credentials work against the configured project.

        Raises:
            AuthenticationError: If credentials or project are unusable
        """
        pass

    @abstractmethod
    def describe_disk_at(self, disk_name: str, location: Location) -> list[str]:
        """
        Get the short names of the resource policies attached to a disk.

        Args:
            disk_name: Persistent disk name
            location: Region or zone to look in

        Returns:
            Policy names (empty when the disk has no schedule)

        Raises:
            DiskNotFoundError: If the disk does not exist at this location
            ProviderError: For any other API failure
        """
        pass

    @abstractmethod
    def attach_disk_policy(self, disk_name: str, location: Location, policy_name: str) -> None:
        """
        Attach a resource policy to a disk. Already attached is not an error.

        Raises:
            PolicyAttachError: If the attachment is rejected
        """
        pass


class SnapshotProvider(ABC):
    """
    Snapshot read operations.

    Implementations:
    - GCP: Compute Engine SnapshotsClient
    """

    @abstractmethod
    def list_snapshots_for_disk(self, disk_name: str) -> list[SnapshotRef]:
        """
        List snapshots whose source disk is ``disk_name``, in any state.

        Raises:
            ProviderError: If the listing call fails
        """
        pass

    @abstractmethod
    def describe_snapshot(self, snapshot_name: str) -> SnapshotDetail:
        """
        Get a snapshot's state and creation time.

        Raises:
            SnapshotNotFoundError: If the snapshot was deleted meanwhile
            ProviderError: For any other API failure
        """
        pass


class AlertSink(ABC):
    """Fire-and-forget escalation channel."""

    @abstractmethod
    def notify(self, message: str) -> None:
        """Deliver a message to operators. Must not raise."""
        pass


class ProviderError(Exception):
    """Base exception for provider errors."""

    def __init__(self, message: str, provider: str, operation: str, details: dict | None = None):
        self.provider = provider
        self.operation = operation
        self.details = details or {}
        super().__init__(f"[{provider}] {operation}: {message}")


class VolumeNotFoundError(ProviderError):
    """PersistentVolume does not exist."""
    pass


class DiskNotFoundError(ProviderError):
    """Disk does not exist at the queried location."""
    pass


class SnapshotNotFoundError(ProviderError):
    """Snapshot does not exist."""
    pass


class AuthenticationError(ProviderError):
    """Authentication or context selection failed."""
    pass


class PolicyAttachError(ProviderError):
    """Annotation patch or resource policy attachment was rejected."""
    pass
