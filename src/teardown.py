"""
Reverse-sequenced deletion of a single node.
"""

import logging
from typing import Optional

from errors import NOT_FOUND, PlatformError
from models import ResourceKind, ResourceRef

logger = logging.getLogger(__name__)


class TeardownCoordinator:
    """Deletes an instance, then its boot disk."""

    def __init__(self, api, poller, boot_disk_suffix: str = "boot"):
        self.api = api
        self.poller = poller
        self.boot_disk_suffix = boot_disk_suffix

    def destroy(self, instance: ResourceRef) -> None:
        """
        Delete ``instance`` and its boot disk, each awaited.

        A boot disk that is already gone (reclaimed through autoDelete) is not
        an error. Shared network/firewall reclamation is left to the caller.
        """
        zone = instance.scope
        logger.info(f"Deleting instance {zone}/{instance.name}")
        self._delete(ResourceKind.INSTANCE, instance.name, zone)

        disk_name = instance.boot_disk_name or f"{instance.name}-{self.boot_disk_suffix}"
        logger.info(f"Deleting boot disk {zone}/{disk_name}")
        self._delete(ResourceKind.DISK, disk_name, zone)

    def _delete(self, kind: ResourceKind, name: str, zone: Optional[str]) -> None:
        try:
            handle = self.api.delete(kind, name, zone)
            self.poller.await_done(handle)
        except PlatformError as e:
            if e.code != NOT_FOUND:
                raise
            logger.info(f"{kind.name.lower()} {name} already deleted")
