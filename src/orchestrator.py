"""
Group-level coordination of node creation and destruction.

Group membership and shared-resource usage are always recomputed from the
platform; no in-process reference counts are kept, so several orchestrators
(or processes) can work on the same group.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Dict, List, Optional

from clients import ComputeRestClient
from config import OrchestratorConfig
from ensurer import ResourceEnsurer
from errors import NOT_FOUND, RESOURCE_IN_USE, PlatformError
from models import CreateNodesResult, NodeFailure, NodeSpec, ResourceKind, ResourceRef
from poller import OperationPoller
from provisioner import NodeProvisioner
from teardown import TeardownCoordinator

logger = logging.getLogger(__name__)


def parse_node_id(node_id: str):
    """Split ``<zone>/<name>`` into its parts."""
    zone, sep, name = node_id.partition("/")
    if not sep or not zone or not name:
        raise ValueError(f"Node id must look like <zone>/<name>, got {node_id!r}")
    return zone, name


class GroupOrchestrator:
    """Creates and destroys nodes of named groups sharing a network and firewalls."""

    def __init__(self, config: OrchestratorConfig, api=None):
        """
        Args:
            config: Orchestrator settings
            api: Compute client; a ComputeRestClient for config.project_id by default
        """
        self.config = config
        self.api = api or ComputeRestClient(project_id=config.project_id)
        self.poller = OperationPoller.from_config(self.api, config)
        self.ensurer = ResourceEnsurer(self.api, self.poller)
        self.provisioner = NodeProvisioner(
            self.api,
            self.poller,
            self.ensurer,
            boot_disk_suffix=config.boot_disk_suffix,
            resource_prefix=config.resource_prefix,
        )
        self.teardown = TeardownCoordinator(
            self.api, self.poller, boot_disk_suffix=config.boot_disk_suffix
        )

    def default_network(self, group: str) -> str:
        return f"{self.config.resource_prefix}-{group}"

    def _allocate_names(self, group: str, zone: str, count: int) -> List[str]:
        """Pick ``<group>-<n>`` names not used by any instance in the zone."""
        taken = {inst.name for inst in self.api.list(ResourceKind.INSTANCE, zone=zone)}
        names: List[str] = []
        index = 1
        while len(names) < count:
            candidate = f"{group}-{index}"
            if candidate not in taken:
                names.append(candidate)
            index += 1
        return names

    def create_nodes(
        self,
        group: str,
        count: int,
        spec: NodeSpec,
        cancel_event: Optional[threading.Event] = None,
    ) -> CreateNodesResult:
        """
        Create ``count`` nodes in ``group`` from the template ``spec``.

        Partial success is reported, not raised: the result lists created,
        failed and skipped nodes and the caller decides whether to roll back.

        Args:
            group: Group name, also the node name prefix
            count: Number of nodes to create
            spec: Template; name and group are filled in per node
            cancel_event: When set, nodes not yet started are skipped

        Returns:
            CreateNodesResult
        """
        if count < 1:
            raise ValueError("count must be at least 1")

        template = replace(
            spec,
            group=group,
            zone=spec.zone or self.config.zone,
            network=spec.network or self.default_network(group),
        )
        names = self._allocate_names(group, template.zone, count)
        result = CreateNodesResult(group=group)
        lock = threading.Lock()

        logger.info("=" * 70)
        logger.info(f"Creating {count} node(s) in group '{group}'")
        logger.info(f"Zone: {template.zone}")
        logger.info(f"Network: {template.network}")
        logger.info(f"Nodes: {', '.join(names)}")
        logger.info(f"Max parallel: {self.config.max_parallel}")
        logger.info("=" * 70)

        def run(name: str) -> None:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Skipping {name}: creation cancelled")
                with lock:
                    result.skipped.append(name)
                return
            try:
                instance = self.provisioner.create_node(replace(template, name=name))
            except Exception as e:
                logger.error(f"Failed to create node {name}: {e}")
                with lock:
                    result.failed.append(NodeFailure(name=name, error=e))
                return
            with lock:
                result.created.append(instance)

        with ThreadPoolExecutor(max_workers=self.config.max_parallel) as pool:
            for i, name in enumerate(names):
                if i and self.config.stagger_delay > 0:
                    time.sleep(self.config.stagger_delay)
                pool.submit(run, name)

        logger.info(
            f"Group '{group}': {len(result.created)} created, "
            f"{len(result.failed)} failed, {len(result.skipped)} skipped"
        )
        return result

    def list_nodes(self, group: str) -> List[ResourceRef]:
        """Instances whose metadata labels them as members of ``group``."""
        prefix = self.config.resource_prefix
        return [
            inst
            for inst in self.api.list_all_instances()
            if inst.group(prefix) == group
        ]

    def destroy_node(self, node_id: str) -> None:
        """
        Destroy a node, then reclaim its network and firewalls if unused.

        Args:
            node_id: ``<zone>/<name>``

        Raises:
            PlatformError: NOT_FOUND if the instance does not exist
        """
        zone, name = parse_node_id(node_id)
        instance = self.api.get(ResourceKind.INSTANCE, name, zone)
        if instance is None:
            raise PlatformError(NOT_FOUND, f"instance {node_id} not found")

        self.teardown.destroy(instance)
        for network_link in instance.network_links:
            self._reclaim_network(network_link, destroyed=instance)
        logger.info(f"✓ Node {node_id} destroyed")

    def destroy_nodes_in_group(self, group: str) -> Dict[str, Optional[Exception]]:
        """
        Destroy every member of ``group`` concurrently.

        Returns:
            Mapping of node id to the error raised, or None on success
        """
        nodes = self.list_nodes(group)
        outcome: Dict[str, Optional[Exception]] = {}
        if not nodes:
            logger.info(f"No nodes found in group '{group}'")
            return outcome

        def run(node_id: str) -> Optional[Exception]:
            try:
                self.destroy_node(node_id)
            except Exception as e:
                logger.error(f"Failed to destroy node {node_id}: {e}")
                return e
            return None

        with ThreadPoolExecutor(max_workers=self.config.max_parallel) as pool:
            node_ids = [f"{node.scope}/{node.name}" for node in nodes]
            for node_id, error in zip(node_ids, pool.map(run, node_ids)):
                outcome[node_id] = error
        return outcome

    def _network_in_use(self, network_link: str, destroyed: ResourceRef) -> bool:
        for inst in self.api.list_all_instances():
            if inst.self_link == destroyed.self_link or (
                inst.name == destroyed.name and inst.scope == destroyed.scope
            ):
                continue
            if network_link in inst.network_links:
                logger.info(
                    f"Network {network_link} still used by {inst.scope}/{inst.name}; keeping it"
                )
                return True
        return False

    def _reclaim_network(self, network_link: str, destroyed: ResourceRef) -> None:
        """Delete firewalls, then the network, once no instance references it."""
        if self._network_in_use(network_link, destroyed):
            return

        network = ResourceRef.from_link(network_link)
        firewalls = [
            fw
            for fw in self.api.list(ResourceKind.FIREWALL)
            if fw.network_link == network_link
        ]
        for fw in firewalls:
            logger.info(f"Deleting firewall {fw.name}")
            self._delete_shared(ResourceKind.FIREWALL, fw.name)

        logger.info(f"Deleting network {network.name}")
        try:
            self._delete_shared(ResourceKind.NETWORK, network.name)
        except PlatformError as e:
            if e.code != RESOURCE_IN_USE:
                raise
            logger.warning(
                f"Network {network.name} was attached again while reclaiming; keeping it"
            )

    def _delete_shared(self, kind: ResourceKind, name: str) -> None:
        try:
            handle = self.api.delete(kind, name)
            self.poller.await_done(handle)
        except PlatformError as e:
            if e.code != NOT_FOUND:
                raise
            logger.info(f"{kind.name.lower()} {name} already deleted")
