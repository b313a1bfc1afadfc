"""
Unit tests for configuration.
"""

import unittest
from argparse import Namespace

from config import OrchestratorConfig


class TestOrchestratorConfig(unittest.TestCase):
    """Test OrchestratorConfig data model."""

    def test_config_defaults(self):
        """Test default configuration values."""
        config = OrchestratorConfig(project_id="my-project")
        self.assertEqual(config.project_id, "my-project")
        self.assertEqual(config.zone, "us-central1-a")
        self.assertEqual(config.max_parallel, 5)
        self.assertEqual(config.timeout, 600)
        self.assertEqual(config.poll_interval, 2.0)
        self.assertEqual(config.max_poll_interval, 10.0)
        self.assertEqual(config.max_fetch_failures, 3)
        self.assertEqual(config.boot_disk_suffix, "boot")
        self.assertEqual(config.resource_prefix, "jclouds")
        self.assertFalse(config.verbose)

    def test_config_from_args(self):
        """Test creating config from command-line arguments."""
        args = Namespace(
            project="test-project",
            zone="europe-west2-a",
            max_parallel=10,
            timeout=3600,
            poll_interval=3.0,
            max_poll_interval=30.0,
            stagger_delay=1.0,
            verbose=True,
        )
        config = OrchestratorConfig.from_args(args)

        self.assertEqual(config.project_id, "test-project")
        self.assertEqual(config.zone, "europe-west2-a")
        self.assertEqual(config.max_parallel, 10)
        self.assertEqual(config.timeout, 3600)
        self.assertEqual(config.poll_interval, 3.0)
        self.assertEqual(config.max_poll_interval, 30.0)
        self.assertEqual(config.stagger_delay, 1.0)
        self.assertTrue(config.verbose)

    def test_from_args_raises_cap_to_interval(self):
        """Test a poll interval above the cap lifts the cap."""
        args = Namespace(
            project="p",
            zone="z",
            max_parallel=1,
            timeout=60,
            poll_interval=20.0,
            max_poll_interval=10.0,
            stagger_delay=0.0,
            verbose=False,
        )
        self.assertEqual(OrchestratorConfig.from_args(args).max_poll_interval, 20.0)

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            OrchestratorConfig(project_id="p", max_parallel=0)
        with self.assertRaises(ValueError):
            OrchestratorConfig(project_id="p", poll_interval=5.0, max_poll_interval=1.0)


if __name__ == "__main__":
    unittest.main()
