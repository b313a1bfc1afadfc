#!/usr/bin/env python3
"""
Compute Engine Node Group Orchestrator (REST v1)

- Create nodes in a group, sharing a network and firewall rules
- Destroy nodes, reclaiming the shared network once the last node is gone

This script supports running directly from a source checkout that uses a
src/ layout. For production use, prefer installing the project and using the
provided ``gce-nodes`` console script.

Examples:
  # Create two nodes in group "web"
  python3 main.py --project my-project --zone us-central1-a \\
      create --group web --count 2 \\
      --image projects/debian-cloud/global/images/debian-12-bookworm-v20240110

  # Destroy one node (network and firewalls go with the last one)
  python3 main.py --project my-project destroy us-central1-a/web-1
"""

import os
import sys

# Add src/ to path to import modules directly
REPO_ROOT = os.path.dirname(os.path.abspath(__file__))
SRC_PATH = os.path.join(REPO_ROOT, "src")
if SRC_PATH not in sys.path:
    sys.path.insert(0, SRC_PATH)

from cli import main


if __name__ == "__main__":
    sys.exit(main())
