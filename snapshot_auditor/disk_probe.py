"""
Disk policy probe.

A disk's location is not known up front: multi-zone disks resolve at the
region scope, single-zone disks only in their own zone. The probe walks the
candidate locations in priority order and stops at the first one that knows
the disk, whether or not a policy is attached there.
"""

import logging
from typing import Iterable

from .models import DiskNotFound, DiskPolicies, Location
from .providers.base import DiskNotFoundError, DiskProvider, ProviderError

logger = logging.getLogger(__name__)


class DiskPolicyProbe:
    """Locate a disk and read its resource policies. Read-only."""

    def __init__(self, disks: DiskProvider):
        self.disks = disks

    def probe(self, disk_name: str, locations: Iterable[Location]) -> DiskPolicies | DiskNotFound:
        """
        Search ``locations`` in order for ``disk_name``.

        Args:
            disk_name: Persistent disk name
            locations: Candidate locations, highest priority first

        Returns:
            DiskPolicies for the first location holding the disk, or
            DiskNotFound when no location does
        """
        tried: list[Location] = []

        for location in locations:
            tried.append(location)
            logger.debug(f"Looking for disk {disk_name} in {location}")
            try:
                policies = self.disks.describe_disk_at(disk_name, location)
            except DiskNotFoundError:
                continue
            except ProviderError as e:
                logger.warning(f"Lookup of disk {disk_name} in {location} failed: {e}")
                continue

            if policies:
                logger.info(f"Found snapshot schedule {', '.join(policies)} for disk {disk_name} in {location}")
            else:
                logger.info(f"Found disk {disk_name} in {location} without a snapshot schedule")
            return DiskPolicies(disk_name=disk_name, location=location, policies=policies)

        logger.warning(f"Disk {disk_name} not found in any of {len(tried)} candidate locations")
        return DiskNotFound(disk_name=disk_name, locations=tried)
