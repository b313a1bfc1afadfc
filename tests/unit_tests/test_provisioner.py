"""
Unit tests for NodeProvisioner.
"""

import unittest
from unittest.mock import MagicMock, patch

from ensurer import ResourceEnsurer
from errors import Conflict, OperationFailed, PlatformError
from fakes import BASE_URL, DEBIAN_IMAGE, FakeClock, FakePlatform
from models import NodeSpec, ResourceKind
from poller import OperationPoller
from provisioner import NodeProvisioner


def make_spec(**overrides):
    values = dict(
        name="test-1",
        group="test",
        zone="us-central1-a",
        machine_type="f1-micro",
        image=DEBIAN_IMAGE,
        network="jclouds-test",
        tags=["aTag"],
        ssh_public_key="ssh-rsa AAAAB3Nza",
    )
    values.update(overrides)
    return NodeSpec(**values)


class TestNodeProvisioner(unittest.TestCase):
    """Test the per-node creation sequence."""

    def setUp(self):
        patcher = patch("poller.time", FakeClock())
        patcher.start()
        self.addCleanup(patcher.stop)
        self.platform = FakePlatform()
        poller = OperationPoller(self.platform, poll_interval=1.0)
        self.provisioner = NodeProvisioner(
            self.platform, poller, ResourceEnsurer(self.platform, poller)
        )

    def mutations(self):
        return self.platform.calls_of("insert", "delete", "set_tags")

    def test_create_node_sequence(self):
        """Test network, firewall, disk, instance, then tag writes in order."""
        instance = self.provisioner.create_node(make_spec())

        self.assertEqual(
            self.mutations(),
            [
                ("insert", "networks", "jclouds-test"),
                ("insert", "firewalls", "jclouds-test-port-22"),
                ("insert", "disks", "test-1-boot"),
                ("insert", "instances", "test-1"),
                ("set_tags", "test-1", ("aTag",), "abcd"),
                ("set_tags", "test-1", ("aTag", "jclouds-test-port-22"), "fp-1"),
            ],
        )
        self.assertEqual(instance.name, "test-1")
        self.assertEqual(instance.tags, ["aTag", "jclouds-test-port-22"])
        self.assertEqual(instance.image_id(), "debian-7-wheezy-v20140718")

    def test_disk_and_instance_payloads(self):
        """Test boot disk and instance payloads reference each other."""
        self.provisioner.create_node(make_spec())

        disk = self.platform.get(ResourceKind.DISK, "test-1-boot", "us-central1-a")
        self.assertEqual(disk.properties["sizeGb"], 10)
        self.assertEqual(disk.properties["sourceImage"], DEBIAN_IMAGE)

        instance = self.platform.get(ResourceKind.INSTANCE, "test-1", "us-central1-a")
        props = instance.properties
        self.assertEqual(
            props["machineType"],
            f"{BASE_URL}/zones/us-central1-a/machineTypes/f1-micro",
        )
        self.assertEqual(
            props["disks"],
            [
                {
                    "type": "PERSISTENT",
                    "mode": "READ_WRITE",
                    "source": f"{BASE_URL}/zones/us-central1-a/disks/test-1-boot",
                    "autoDelete": True,
                    "boot": True,
                }
            ],
        )
        self.assertEqual(
            props["networkInterfaces"],
            [
                {
                    "network": f"{BASE_URL}/global/networks/jclouds-test",
                    "accessConfigs": [{"type": "ONE_TO_ONE_NAT"}],
                }
            ],
        )
        self.assertEqual(
            instance.metadata,
            {
                "sshKeys": "jclouds:ssh-rsa AAAAB3Nza jclouds@localhost",
                "jclouds-group": "test",
                "jclouds-image": DEBIAN_IMAGE,
                "jclouds-delete-boot-disk": "true",
            },
        )
        self.assertEqual(instance.boot_disk_name, "test-1-boot")

    def test_existing_network_and_firewall_are_reused(self):
        """Test shared resources already present are not created again."""
        network = self.platform.add(
            ResourceKind.NETWORK, "jclouds-test", IPv4Range="10.0.0.0/8"
        )
        self.platform.add(
            ResourceKind.FIREWALL, "jclouds-test-port-22", network=network.self_link
        )

        self.provisioner.create_node(make_spec())

        inserted = [c[1] for c in self.platform.calls_of("insert")]
        self.assertEqual(inserted, ["disks", "instances"])

    def test_no_user_tags_sets_firewall_tags_only(self):
        """Test a single tag write when the spec has no tags of its own."""
        self.provisioner.create_node(make_spec(tags=[]))

        self.assertEqual(
            self.platform.calls_of("set_tags"),
            [("set_tags", "test-1", ("jclouds-test-port-22",), "abcd")],
        )

    def test_one_firewall_per_port(self):
        """Test each inbound port gets its own rule and target tag."""
        instance = self.provisioner.create_node(
            make_spec(tags=[], inbound_ports=[22, 8080])
        )

        self.assertEqual(
            self.platform.names(ResourceKind.FIREWALL),
            ["jclouds-test-port-22", "jclouds-test-port-8080"],
        )
        self.assertEqual(
            instance.tags, ["jclouds-test-port-22", "jclouds-test-port-8080"]
        )

    def test_instance_failure_aborts_without_rollback(self):
        """Test a failed step stops the chain and leaves earlier resources."""
        self.platform.done_errors[("instances", "test-1")] = "QUOTA_EXCEEDED"

        with self.assertRaises(OperationFailed) as ctx:
            self.provisioner.create_node(make_spec())

        self.assertEqual(ctx.exception.code, "QUOTA_EXCEEDED")
        self.assertEqual(self.platform.names(ResourceKind.DISK), ["test-1-boot"])
        self.assertEqual(self.platform.calls_of("set_tags"), [])
        self.assertEqual(self.platform.calls_of("delete"), [])

    def test_spec_requires_name_and_network(self):
        with self.assertRaises(ValueError):
            self.provisioner.create_node(make_spec(name=""))
        with self.assertRaises(ValueError):
            self.provisioner.create_node(make_spec(network=""))


class TestSetTags(unittest.TestCase):
    """Test fingerprint-gated tag writes."""

    def setUp(self):
        self.api = MagicMock()
        self.poller = MagicMock()
        self.provisioner = NodeProvisioner(self.api, self.poller, MagicMock())

    def instance(self, fingerprint):
        inst = MagicMock()
        inst.fingerprint = fingerprint
        return inst

    def test_fetches_fingerprint_before_write(self):
        """Test the current fingerprint is echoed back."""
        self.api.get.return_value = self.instance("f1")

        self.provisioner.set_tags("test-1", "us-central1-a", ["a"])

        self.api.set_tags.assert_called_once_with("test-1", "us-central1-a", ["a"], "f1")

    def test_conflict_retried_once_with_fresh_fingerprint(self):
        """Test a stale fingerprint is refreshed and the write retried once."""
        self.api.get.side_effect = [self.instance("stale"), self.instance("fresh")]
        self.api.set_tags.side_effect = [Conflict("stale", 412), "handle"]

        self.provisioner.set_tags("test-1", "us-central1-a", ["a"])

        self.assertEqual(
            [c.args[3] for c in self.api.set_tags.call_args_list], ["stale", "fresh"]
        )
        self.poller.await_done.assert_called_once_with("handle")

    def test_conflict_on_operation_retried(self):
        """Test CONDITION_NOT_MET reported on the operation is also retried."""
        self.api.get.side_effect = [self.instance("f1"), self.instance("f2")]
        self.poller.await_done.side_effect = [Conflict("stale"), MagicMock()]

        self.provisioner.set_tags("test-1", "us-central1-a", ["a"])

        self.assertEqual(self.api.set_tags.call_count, 2)

    def test_second_conflict_surfaces(self):
        """Test the provisioner does not loop on conflicts."""
        self.api.get.side_effect = [self.instance("f1"), self.instance("f2")]
        self.api.set_tags.side_effect = Conflict("stale", 412)

        with self.assertRaises(Conflict):
            self.provisioner.set_tags("test-1", "us-central1-a", ["a"])

        self.assertEqual(self.api.set_tags.call_count, 2)

    def test_other_errors_not_retried(self):
        self.api.get.return_value = self.instance("f1")
        self.api.set_tags.side_effect = PlatformError("HTTP_403", "denied", 403)

        with self.assertRaises(PlatformError):
            self.provisioner.set_tags("test-1", "us-central1-a", ["a"])

        self.assertEqual(self.api.set_tags.call_count, 1)

    def test_missing_instance(self):
        self.api.get.return_value = None

        with self.assertRaises(PlatformError) as ctx:
            self.provisioner.set_tags("test-1", "us-central1-a", ["a"])

        self.assertEqual(ctx.exception.code, "NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
