"""
Idempotent get-or-create for resources shared by the nodes of a group.
"""

import logging
from typing import Callable, List, Optional

from errors import ALREADY_EXISTS, NOT_FOUND, PlatformError
from models import OperationHandle, ResourceKind, ResourceRef

logger = logging.getLogger(__name__)

OPEN_SOURCE_RANGE = "0.0.0.0/0"


def firewall_name(network: str, port: int) -> str:
    """Name (and target tag) of the rule opening ``port`` on ``network``."""
    return f"{network}-port-{port}"


class ResourceEnsurer:
    """Get-or-create that is safe under concurrent callers without locking."""

    def __init__(self, api, poller):
        self.api = api
        self.poller = poller

    def ensure(
        self,
        kind: ResourceKind,
        name: str,
        factory: Callable[[], OperationHandle],
        zone: Optional[str] = None,
    ) -> ResourceRef:
        """
        Return the named resource, creating it via ``factory`` if absent.

        An existing resource is returned unchanged. ALREADY_EXISTS from a racing
        creator counts as success.
        """
        existing = self.api.get(kind, name, zone)
        if existing is not None:
            logger.debug(f"{kind.name.lower()} {name} already exists")
            return existing

        logger.info(f"Creating {kind.name.lower()} {name}")
        try:
            handle = factory()
            self.poller.await_done(handle)
        except PlatformError as e:
            if e.code != ALREADY_EXISTS:
                raise
            logger.info(
                f"{kind.name.lower()} {name} was created concurrently; using existing"
            )

        created = self.api.get(kind, name, zone)
        if created is None:
            raise PlatformError(
                NOT_FOUND, f"{kind.name.lower()} {name} missing after creation"
            )
        return created

    def ensure_network(self, name: str, ipv4_range: str) -> ResourceRef:
        payload = {"name": name, "IPv4Range": ipv4_range}
        return self.ensure(
            ResourceKind.NETWORK,
            name,
            lambda: self.api.insert(ResourceKind.NETWORK, payload),
        )

    def ensure_firewall(
        self, network: ResourceRef, port: int, source_tags: List[str]
    ) -> ResourceRef:
        """Ensure the rule allowing tcp/udp ``port`` to instances tagged with its name."""
        name = firewall_name(network.name, port)
        source_ranges = [OPEN_SOURCE_RANGE]
        if network.ipv4_range:
            source_ranges.insert(0, network.ipv4_range)
        payload = {
            "name": name,
            "network": network.self_link,
            "sourceRanges": source_ranges,
            "sourceTags": list(source_tags),
            "targetTags": [name],
            "allowed": [
                {"IPProtocol": "tcp", "ports": [str(port)]},
                {"IPProtocol": "udp", "ports": [str(port)]},
            ],
        }
        return self.ensure(
            ResourceKind.FIREWALL,
            name,
            lambda: self.api.insert(ResourceKind.FIREWALL, payload),
        )
