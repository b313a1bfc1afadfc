"""
Sequenced creation of a single node: shared resources, boot disk, instance, tags.
"""

import logging
from typing import Any, Dict, List

from errors import CONDITION_NOT_MET, NOT_FOUND, Conflict, PlatformError
from models import DEFAULT_RESOURCE_PREFIX, NodeSpec, ResourceKind, ResourceRef
from ensurer import ResourceEnsurer

logger = logging.getLogger(__name__)


class NodeProvisioner:
    """Creates one node; each step's operation completes before the next starts.

    Nothing is rolled back on failure: a disk without an instance is left for
    the caller to retry or tear down.
    """

    def __init__(
        self,
        api,
        poller,
        ensurer: ResourceEnsurer,
        boot_disk_suffix: str = "boot",
        resource_prefix: str = DEFAULT_RESOURCE_PREFIX,
    ):
        self.api = api
        self.poller = poller
        self.ensurer = ensurer
        self.boot_disk_suffix = boot_disk_suffix
        self.resource_prefix = resource_prefix

    def boot_disk_name(self, instance_name: str) -> str:
        return f"{instance_name}-{self.boot_disk_suffix}"

    def create_node(self, spec: NodeSpec) -> ResourceRef:
        """
        Create the node described by ``spec``.

        Returns:
            The instance as fetched after its last tag write

        Raises:
            ComputeError: the first failure; remaining steps are not run
        """
        if not spec.name:
            raise ValueError("NodeSpec.name is required to create a node")
        if not spec.network:
            raise ValueError("NodeSpec.network is required to create a node")

        logger.info(f"Provisioning node {spec.node_id} on network {spec.network}")

        network = self.ensurer.ensure_network(spec.network, spec.ipv4_range)
        firewalls = [
            self.ensurer.ensure_firewall(network, port, spec.tags)
            for port in spec.inbound_ports
        ]

        image_link = self.api.image_url(spec.image)
        disk_name = self.boot_disk_name(spec.name)
        logger.info(f"Creating boot disk {disk_name} ({spec.disk_size_gb}GB)")
        handle = self.api.insert(
            ResourceKind.DISK,
            {
                "name": disk_name,
                "sizeGb": spec.disk_size_gb,
                "sourceImage": image_link,
            },
            zone=spec.zone,
        )
        self.poller.await_done(handle)

        logger.info(f"Creating instance {spec.name}")
        handle = self.api.insert(
            ResourceKind.INSTANCE,
            self._instance_payload(spec, network, disk_name, image_link),
            zone=spec.zone,
        )
        self.poller.await_done(handle)

        if spec.tags:
            self.set_tags(spec.name, spec.zone, spec.tags)

        firewall_tags = [fw.name for fw in firewalls]
        if firewall_tags:
            current = self._fetch_instance(spec.name, spec.zone)
            merged = current.tags + [t for t in firewall_tags if t not in current.tags]
            if merged != current.tags:
                self.set_tags(spec.name, spec.zone, merged)

        instance = self._fetch_instance(spec.name, spec.zone)
        logger.info(f"✓ Node {spec.node_id} created (status={instance.status})")
        return instance

    def set_tags(self, name: str, zone: str, items: List[str]) -> ResourceRef:
        """
        Replace the instance's tags using its current fingerprint.

        The fingerprint is fetched immediately before writing. A stale
        fingerprint is retried once with a fresh one, then surfaces as Conflict.
        """
        for attempt in (1, 2):
            instance = self._fetch_instance(name, zone)
            logger.debug(
                f"Setting tags {items} on {name} (fingerprint={instance.fingerprint})"
            )
            try:
                handle = self.api.set_tags(name, zone, items, instance.fingerprint)
                return self.poller.await_done(handle)
            except PlatformError as e:
                if e.code != CONDITION_NOT_MET:
                    raise
                if attempt == 2:
                    raise Conflict(
                        f"tags of {zone}/{name} changed concurrently twice: {e.message}"
                    ) from e
                logger.warning(f"Stale fingerprint setting tags on {name}; retrying")

    def _fetch_instance(self, name: str, zone: str) -> ResourceRef:
        instance = self.api.get(ResourceKind.INSTANCE, name, zone)
        if instance is None:
            raise PlatformError(NOT_FOUND, f"instance {zone}/{name} not found")
        return instance

    def _instance_payload(
        self, spec: NodeSpec, network: ResourceRef, disk_name: str, image_link: str
    ) -> Dict[str, Any]:
        items = []
        if spec.ssh_public_key:
            user = spec.login_user
            items.append(
                {
                    "key": "sshKeys",
                    "value": f"{user}:{spec.ssh_public_key.strip()} {user}@localhost",
                }
            )
        items.extend(
            [
                {"key": f"{self.resource_prefix}-group", "value": spec.group},
                {"key": f"{self.resource_prefix}-image", "value": image_link},
                {"key": f"{self.resource_prefix}-delete-boot-disk", "value": "true"},
            ]
        )
        items.extend({"key": k, "value": v} for k, v in spec.metadata.items())

        return {
            "name": spec.name,
            "machineType": self.api.machine_type_url(spec.zone, spec.machine_type),
            "serviceAccounts": [],
            "disks": [
                {
                    "type": "PERSISTENT",
                    "mode": "READ_WRITE",
                    "source": self.api.resource_url(
                        ResourceKind.DISK, disk_name, spec.zone
                    ),
                    "autoDelete": True,
                    "boot": True,
                }
            ],
            "networkInterfaces": [
                {
                    "network": network.self_link,
                    "accessConfigs": [{"type": "ONE_TO_ONE_NAT"}],
                }
            ],
            "metadata": {"kind": "compute#metadata", "items": items},
        }
