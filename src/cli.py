"""Console entry point for the GCE node orchestrator CLI."""

from __future__ import annotations

import argparse
from typing import List

from config import OrchestratorConfig
from log_utils import setup_logging
from models import NodeSpec
from orchestrator import GroupOrchestrator


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Create and destroy Compute Engine node groups"
    )
    parser.add_argument("--project", required=True, help="GCP project ID")
    parser.add_argument("--zone", default="us-central1-a", help="Compute zone")
    parser.add_argument(
        "--timeout",
        type=int,
        default=600,
        help="Maximum seconds to wait for each operation (default: 600)",
    )
    parser.add_argument("--poll-interval", type=float, default=2.0)
    parser.add_argument("--max-poll-interval", type=float, default=10.0)
    parser.add_argument("--max-parallel", type=int, default=5)
    parser.add_argument("--stagger-delay", type=float, default=0.0)
    parser.add_argument("--verbose", action="store_true")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_create = subparsers.add_parser("create", help="Create nodes in a group")
    p_create.add_argument("--group", required=True)
    p_create.add_argument("--count", type=int, default=1)
    p_create.add_argument("--machine-type", default="f1-micro")
    p_create.add_argument(
        "--image",
        required=True,
        help="Image self-link, projects/<p>/global/images/<name>, or image name",
    )
    p_create.add_argument("--disk-size", type=int, default=10, metavar="GB")
    p_create.add_argument(
        "--network", help="Network name (default: <prefix>-<group>)"
    )
    p_create.add_argument("--tags", nargs="*", default=[])
    p_create.add_argument("--ports", nargs="*", type=int, default=[22])
    p_create.add_argument("--ssh-key-file", help="Public key to install for login")
    p_create.add_argument("--login-user", default="jclouds")

    p_destroy = subparsers.add_parser("destroy", help="Destroy a single node")
    p_destroy.add_argument("node_id", metavar="ZONE/NAME")

    p_list = subparsers.add_parser("list", help="List nodes in a group")
    p_list.add_argument("--group", required=True)

    p_destroy_group = subparsers.add_parser(
        "destroy-group", help="Destroy every node in a group"
    )
    p_destroy_group.add_argument("--group", required=True)

    return parser


def _node_spec(args) -> NodeSpec:
    ssh_key = None
    if args.ssh_key_file:
        with open(args.ssh_key_file) as f:
            ssh_key = f.read().strip()
    return NodeSpec(
        zone=args.zone,
        machine_type=args.machine_type,
        image=args.image,
        network=args.network or "",
        disk_size_gb=args.disk_size,
        tags=list(args.tags),
        inbound_ports=list(args.ports),
        ssh_public_key=ssh_key,
        login_user=args.login_user,
    )


def main(argv: List[str] | None = None) -> int:
    """CLI main for console_scripts entry point."""
    parser = build_parser()
    args = parser.parse_args(args=argv)

    logger = setup_logging(verbose=args.verbose)
    config = OrchestratorConfig.from_args(args)
    orchestrator = GroupOrchestrator(config)

    if args.command == "create":
        result = orchestrator.create_nodes(args.group, args.count, _node_spec(args))
        for inst in result.created:
            logger.info(
                f"  created {inst.scope}/{inst.name} image={inst.image_id(config.resource_prefix)}"
            )
        for failure in result.failed:
            logger.error(f"  failed  {failure.name}: {failure.error}")
        for name in result.skipped:
            logger.warning(f"  skipped {name}")
        return 0 if result.ok else 1

    if args.command == "destroy":
        try:
            orchestrator.destroy_node(args.node_id)
        except Exception as e:
            logger.error(f"Failed to destroy {args.node_id}: {e}")
            return 1
        return 0

    if args.command == "list":
        nodes = orchestrator.list_nodes(args.group)
        logger.info(f"{'Node':<40} {'Status':<12} {'Image'}")
        logger.info("-" * 70)
        for inst in nodes:
            logger.info(
                f"{inst.scope + '/' + inst.name:<40} {inst.status or 'N/A':<12} "
                f"{inst.image_id(config.resource_prefix) or 'N/A'}"
            )
        return 0

    outcome = orchestrator.destroy_nodes_in_group(args.group)
    return 1 if any(error is not None for error in outcome.values()) else 0
