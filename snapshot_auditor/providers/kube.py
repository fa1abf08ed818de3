"""
Kubernetes cluster inventory.

Lists and patches PersistentVolumes through the Python kubernetes client,
so neither kubectl nor a shell is needed inside the CronJob.
"""

import logging

from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from ..models import REGION_LABELS, ZONE_LABELS, Volume
from .base import (
    AuthenticationError,
    ClusterInventory,
    PolicyAttachError,
    ProviderError,
    VolumeNotFoundError,
)

logger = logging.getLogger(__name__)

GCE_PD_CSI_DRIVER = "pd.csi.storage.gke.io"
PAGE_SIZE = 500


def _parse_csi_handle(handle: str) -> tuple[str | None, dict[str, str]]:
    """
    Split a GCE PD CSI volume handle into disk name and location labels.

    projects/<p>/zones/<zone>/disks/<name> or projects/<p>/regions/<region>/disks/<name>
    """
    parts = handle.strip("/").split("/")
    labels = {}
    disk_name = None
    for key, value in zip(parts[::2], parts[1::2]):
        if key == "zones":
            labels[ZONE_LABELS[0]] = value
        elif key == "regions":
            labels[REGION_LABELS[0]] = value
        elif key == "disks":
            disk_name = value
    return disk_name, labels


def parse_volume(pv: client.V1PersistentVolume) -> Volume:
    """Convert a V1PersistentVolume into the auditor's Volume."""
    metadata = pv.metadata
    spec = pv.spec
    labels = metadata.labels or {}

    location_labels = {
        key: value for key, value in labels.items()
        if key in ZONE_LABELS + REGION_LABELS and value
    }

    disk_name = None
    if spec.gce_persistent_disk is not None and spec.gce_persistent_disk.pd_name:
        disk_name = spec.gce_persistent_disk.pd_name
    elif spec.csi is not None and spec.csi.driver == GCE_PD_CSI_DRIVER and spec.csi.volume_handle:
        disk_name, handle_labels = _parse_csi_handle(spec.csi.volume_handle)
        for key, value in handle_labels.items():
            location_labels.setdefault(key, value)

    claim = spec.claim_ref
    return Volume(
        name=metadata.name,
        claim_namespace=(claim.namespace if claim is not None else None) or "",
        claim_name=(claim.name if claim is not None else None) or "",
        phase=pv.status.phase if pv.status is not None else "",
        disk_name=disk_name,
        location_labels=location_labels,
        annotations=dict(metadata.annotations or {}),
    )


class KubernetesInventory(ClusterInventory):
    """ClusterInventory backed by the Kubernetes CoreV1 API."""

    def __init__(self, context: str | None = None, core_api: client.CoreV1Api | None = None):
        """
        Args:
            context: kubeconfig context to select; in-cluster config when None
            core_api: Preconfigured CoreV1Api (skips config loading)
        """
        self.context = context
        self._core_api = core_api

    @property
    def core_api(self) -> client.CoreV1Api:
        if self._core_api is None:
            raise ProviderError("not connected", "kubernetes", "core_api")
        return self._core_api

    def connect(self) -> None:
        if self._core_api is None:
            try:
                if self.context:
                    logger.info(f"Loading kubeconfig context {self.context}")
                    k8s_config.load_kube_config(context=self.context)
                else:
                    logger.info("Loading in-cluster Kubernetes configuration")
                    k8s_config.load_incluster_config()
            except ConfigException as e:
                raise AuthenticationError(
                    f"Could not set kube context: {e}", "kubernetes", "connect"
                ) from e
            self._core_api = client.CoreV1Api()

        try:
            self._core_api.list_persistent_volume(limit=1)
        except ApiException as e:
            if e.status in (401, 403):
                raise AuthenticationError(
                    f"Access to persistent volumes denied ({e.status} {e.reason})",
                    "kubernetes", "connect",
                ) from e
            raise ProviderError(str(e), "kubernetes", "connect") from e
        except HTTPError as e:
            raise ProviderError(f"API server unreachable: {e}", "kubernetes", "connect") from e

    def list_bound_volumes(self) -> list[Volume]:
        volumes = []
        continue_token = None

        while True:
            kwargs = {"limit": PAGE_SIZE}
            if continue_token:
                kwargs["_continue"] = continue_token
            try:
                response = self.core_api.list_persistent_volume(**kwargs)
            except ApiException as e:
                raise ProviderError(
                    f"{e.status} {e.reason}", "kubernetes", "list_persistent_volume"
                ) from e
            except HTTPError as e:
                raise ProviderError(
                    f"API server unreachable: {e}", "kubernetes", "list_persistent_volume"
                ) from e

            for pv in response.items:
                if pv.status is not None and pv.status.phase == "Bound":
                    volumes.append(parse_volume(pv))

            continue_token = response.metadata._continue if response.metadata else None
            if not continue_token:
                break

        logger.info(f"Found {len(volumes)} bound persistent volumes")
        return volumes

    def describe_volume(self, name: str) -> Volume:
        try:
            pv = self.core_api.read_persistent_volume(name)
        except ApiException as e:
            if e.status == 404:
                raise VolumeNotFoundError(
                    f"persistentvolumes \"{name}\" not found", "kubernetes", "read_persistent_volume"
                ) from e
            raise ProviderError(
                f"{e.status} {e.reason}", "kubernetes", "read_persistent_volume"
            ) from e
        except HTTPError as e:
            raise ProviderError(
                f"API server unreachable: {e}", "kubernetes", "read_persistent_volume"
            ) from e
        return parse_volume(pv)

    def patch_volume_annotation(self, name: str, key: str, value: str) -> None:
        body = {"metadata": {"annotations": {key: value}}}
        try:
            self.core_api.patch_persistent_volume(name, body)
        except ApiException as e:
            raise PolicyAttachError(
                f"{e.status} {e.reason}", "kubernetes", "patch_persistent_volume",
                details={"volume": name, "annotation": key},
            ) from e
        except HTTPError as e:
            raise PolicyAttachError(
                f"API server unreachable: {e}", "kubernetes", "patch_persistent_volume",
                details={"volume": name, "annotation": key},
            ) from e
        logger.info(f"Annotated {name} with {key}={value}")
