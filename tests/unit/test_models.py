"""Unit tests for the intent and group models."""
import unittest

from unified_replication.errors import ConfigurationError
from unified_replication.models import (
    BackendIdentity,
    BackendResourceDescriptor,
    Condition,
    Endpoint,
    Extensions,
    IntentStatus,
    ReplicationClass,
    ReplicationMode,
    ReplicationState,
    Schedule,
    VolumeMapping,
)
from unified_replication.kube.kinds import CEPH_VOLUME_REPLICATION

from tests.common.builders import make_group, make_intent


class TestReplicationIntent(unittest.TestCase):
    """Test cases for intent parsing and validation."""

    def test_role_aliases_parse(self):
        intent = make_intent(state="primary")
        self.assertEqual(intent.replication_state, ReplicationState.SOURCE)
        self.assertEqual(make_intent(state="Secondary").replication_state, ReplicationState.REPLICA)
        self.assertEqual(make_intent(state="resync").replication_state, ReplicationState.SYNCING)

    def test_invalid_state(self):
        with self.assertRaises(ConfigurationError) as ctx:
            make_intent(state="leader")
        self.assertEqual(ctx.exception.reason, "InvalidIntent")

    def test_invalid_mode(self):
        with self.assertRaises(ConfigurationError):
            make_intent(replication_mode="metro")

    def test_valid_intent(self):
        make_intent().validate()

    def test_identical_endpoints_rejected(self):
        endpoint = Endpoint("cluster-a", "us-east-1", "fast-ssd")
        intent = make_intent(source_endpoint=endpoint,
                             destination_endpoint=Endpoint("cluster-a", "eu-west-1", "fast-ssd"))
        with self.assertRaises(ConfigurationError) as ctx:
            intent.validate()
        self.assertEqual(
            str(ctx.exception),
            "source and destination endpoints cannot be identical "
            "(cluster: cluster-a, region: us-east-1, storageClass: fast-ssd)",
        )

    def test_endpoints_differing_in_storage_class_are_fine(self):
        make_intent(source_endpoint=Endpoint("cluster-a", "us-east-1", "fast-ssd"),
                    destination_endpoint=Endpoint("cluster-a", "us-east-1", "slow-hdd")).validate()

    def test_incomplete_endpoint(self):
        intent = make_intent(destination_endpoint=Endpoint("cluster-b", "", "fast-ssd"))
        with self.assertRaises(ConfigurationError) as ctx:
            intent.validate()
        self.assertEqual(str(ctx.exception), "destination endpoint region cannot be empty")

    def test_bad_names(self):
        with self.assertRaises(ConfigurationError):
            make_intent(name="Bad_Name").validate()
        with self.assertRaises(ConfigurationError) as ctx:
            make_intent(volume_mapping=VolumeMapping(source_pvc="")).validate()
        self.assertEqual(str(ctx.exception), "volume mapping source pvcName cannot be empty")

    def test_schedule_validation(self):
        make_intent(schedule=Schedule(mode="interval", rpo="15m", rto="1h")).validate()
        with self.assertRaises(ConfigurationError):
            make_intent(schedule=Schedule(rpo="fifteen minutes")).validate()
        with self.assertRaises(ConfigurationError):
            make_intent(schedule=Schedule(mode="interval")).validate()
        with self.assertRaises(ConfigurationError):
            make_intent(schedule=Schedule(mode="hourly")).validate()

    def test_mirroring_mode_validation(self):
        intent = make_intent(extensions=Extensions(ceph={"mirroringMode": "continuous"}))
        with self.assertRaises(ConfigurationError) as ctx:
            intent.validate()
        self.assertEqual(str(ctx.exception),
                         "invalid mirroring mode 'continuous', must be one of: journal, snapshot")

    def test_pvc_namespace_defaults_to_intent_namespace(self):
        intent = make_intent(namespace="apps")
        self.assertEqual(intent.pvc_namespace, "apps")
        intent.volume_mapping.source_namespace = "data"
        self.assertEqual(intent.pvc_namespace, "data")

    def test_owner_reference(self):
        ref = make_intent(uid="1234").owner_reference()
        self.assertEqual(ref["apiVersion"], "replication.unified.io/v1alpha1")
        self.assertEqual(ref["kind"], "UnifiedVolumeReplication")
        self.assertEqual(ref["uid"], "1234")
        self.assertTrue(ref["controller"])
        self.assertTrue(ref["blockOwnerDeletion"])


class TestExtensions(unittest.TestCase):
    """Test cases for backend hints."""

    def test_explicit_backend_wins(self):
        ext = Extensions(backend="Trident", ceph={"mirroringMode": "snapshot"})
        self.assertEqual(ext.explicit_backend(), BackendIdentity.TRIDENT)

    def test_single_block_is_a_hint(self):
        self.assertEqual(Extensions(powerstore={"rpo": "5m"}).explicit_backend(), BackendIdentity.POWERSTORE)

    def test_ambiguous_blocks_are_no_hint(self):
        self.assertIsNone(Extensions(ceph={"a": "b"}, trident={"c": "d"}).explicit_backend())
        self.assertIsNone(Extensions().explicit_backend())

    def test_unknown_backend(self):
        with self.assertRaises(ConfigurationError) as ctx:
            Extensions(backend="portworx").explicit_backend()
        self.assertEqual(ctx.exception.reason, "UnknownBackend")


class TestStatusAndDescriptors(unittest.TestCase):
    """Test cases for conditions and descriptor comparison."""

    def test_condition_transition_time_kept_when_status_unchanged(self):
        status = IntentStatus()
        first = Condition(type="Ready", status=True, reason="ReconcileComplete")
        status.set_condition(first)
        status.set_condition(Condition(type="Ready", status=True, reason="ReconcileComplete",
                                       message="again"))
        self.assertEqual(len(status.conditions), 1)
        self.assertEqual(status.get_condition("Ready").last_transition_time, first.last_transition_time)
        self.assertEqual(status.get_condition("Ready").message, "again")

    def test_status_to_dict(self):
        status = IntentStatus(state=ReplicationState.SOURCE, mode=ReplicationMode.ASYNCHRONOUS,
                              backend=BackendIdentity.CEPH, observed_generation=3)
        status.set_condition(Condition(type="Ready", status=False, reason="CircuitOpen"))
        data = status.to_dict()
        self.assertEqual(data["state"], "source")
        self.assertIsNone(data["requestedState"])
        self.assertEqual(data["backend"], "ceph")
        self.assertEqual(data["observedGeneration"], 3)
        self.assertEqual(data["conditions"][0]["status"], "False")

    def test_descriptor_body_and_match(self):
        descriptor = BackendResourceDescriptor(
            kind=CEPH_VOLUME_REPLICATION, name="vr", namespace="default",
            spec={"replicationState": "primary"}, labels={"a": "b"},
            owner_references=[{"uid": "u1"}],
        )
        body = descriptor.to_body()
        self.assertEqual(body["apiVersion"], "replication.storage.openshift.io/v1alpha1")
        self.assertEqual(body["metadata"]["namespace"], "default")
        self.assertFalse(descriptor.matches(None))

        stored = dict(body)
        stored["metadata"] = dict(body["metadata"], labels={"a": "b", "extra": "x"})
        self.assertTrue(descriptor.matches(stored))
        stored["spec"] = {"replicationState": "secondary"}
        self.assertFalse(descriptor.matches(stored))

    def test_replication_class_from_object(self):
        rc = ReplicationClass.from_object({
            "metadata": {"name": "rbd"},
            "spec": {"provisioner": "rbd.csi.ceph.com", "parameters": {"mirroringMode": "snapshot"}},
        })
        self.assertEqual(rc.name, "rbd")
        self.assertEqual(rc.parameters, {"mirroringMode": "snapshot"})


class TestReplicationGroup(unittest.TestCase):
    """Test cases for group validation."""

    def test_empty_selector_rejected(self):
        group = make_group()
        group.selector = {}
        with self.assertRaises(ConfigurationError):
            group.validate()

    def test_group_owner_reference(self):
        self.assertEqual(make_group().owner_reference()["kind"], "UnifiedVolumeGroupReplication")
