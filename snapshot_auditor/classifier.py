"""
Volume classification.

A volume is Supported when it is backed by a Compute Engine persistent disk
and carries the zone/region labels saying where that disk lives. Local, NFS
and Rook/Ceph volumes have neither and are reported as Unsupported.
"""

from enum import Enum

from .models import REGION_LABELS, ZONE_LABELS, Volume


class VolumeClass(str, Enum):
    SUPPORTED = "supported"
    UNSUPPORTED = "unsupported"


def has_location_labels(volume: Volume) -> bool:
    labels = volume.location_labels or {}
    return any(labels.get(key) for key in ZONE_LABELS + REGION_LABELS)


def classify(volume: Volume) -> VolumeClass:
    if volume.disk_name and has_location_labels(volume):
        return VolumeClass.SUPPORTED
    return VolumeClass.UNSUPPORTED
