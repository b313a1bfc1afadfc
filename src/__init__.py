"""
Google Compute Engine node group orchestrator.
"""

from clients import ComputeRestClient
from config import OrchestratorConfig
from ensurer import ResourceEnsurer
from log_utils import setup_logging
from models import (
    CreateNodesResult,
    NodeFailure,
    NodeSpec,
    OperationHandle,
    OperationStatus,
    ResourceKind,
    ResourceRef,
)
from orchestrator import GroupOrchestrator
from poller import OperationPoller
from provisioner import NodeProvisioner
from teardown import TeardownCoordinator

__all__ = [
    "ComputeRestClient",
    "OrchestratorConfig",
    "ResourceEnsurer",
    "setup_logging",
    "CreateNodesResult",
    "NodeFailure",
    "NodeSpec",
    "OperationHandle",
    "OperationStatus",
    "ResourceKind",
    "ResourceRef",
    "GroupOrchestrator",
    "OperationPoller",
    "NodeProvisioner",
    "TeardownCoordinator",
]
