"""
Provider Factory

Builds the concrete cluster, cloud and alerting collaborators from an
AuditConfig. The reconciler only depends on the interfaces in ``base``.

Usage:
    from snapshot_auditor.providers import build_providers

    providers = build_providers(config)
    providers.inventory.list_bound_volumes()
"""

import logging
from dataclasses import dataclass

from ..config import AuditConfig
from .base import (
    AlertSink,
    AuthenticationError,
    ClusterInventory,
    DiskNotFoundError,
    DiskProvider,
    PolicyAttachError,
    ProviderError,
    SnapshotNotFoundError,
    SnapshotProvider,
    VolumeNotFoundError,
)

logger = logging.getLogger(__name__)


@dataclass
class Providers:
    inventory: ClusterInventory
    disks: DiskProvider
    snapshots: SnapshotProvider
    alerts: AlertSink


def build_providers(config: AuditConfig) -> Providers:
    """
    Create the Kubernetes, Compute Engine and Slack providers for a run.

    Clients are created lazily, so this never touches the network.
    """
    from .gcp import GCPComputeProvider
    from .kube import KubernetesInventory
    from .slack import SlackAlertSink

    logger.info(
        f"Initializing providers: cluster={config.cluster_name}, project={config.project}, "
        f"context={config.kube_context or 'in-cluster'}"
    )
    compute = GCPComputeProvider(project=config.project)
    return Providers(
        inventory=KubernetesInventory(context=config.kube_context),
        disks=compute,
        snapshots=compute,
        alerts=SlackAlertSink(config.slack_webhook),
    )


__all__ = [
    "build_providers",
    "Providers",
    # Base classes
    "ClusterInventory",
    "DiskProvider",
    "SnapshotProvider",
    "AlertSink",
    # Exceptions
    "ProviderError",
    "VolumeNotFoundError",
    "DiskNotFoundError",
    "SnapshotNotFoundError",
    "AuthenticationError",
    "PolicyAttachError",
]
