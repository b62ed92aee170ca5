"""Unit tests for the adapter registry."""
import unittest
from unittest.mock import Mock

from unified_replication.adapters import (
    AdapterRegistry,
    CephAdapter,
    PowerStoreGroupAdapter,
    ReplicationAdapter,
    TridentAdapter,
    build_default_registry,
)
from unified_replication.errors import AdapterNotFoundError, DuplicateRegistrationError
from unified_replication.models import BackendIdentity

from tests.common.fake_cluster import FakeResourceClient


class TestAdapterRegistry(unittest.TestCase):
    """Test cases for registration and lookup."""

    def setUp(self):
        self.registry = AdapterRegistry()
        self.adapter = Mock(spec=ReplicationAdapter)

    def test_register_and_get(self):
        self.registry.register(BackendIdentity.CEPH, self.adapter)
        self.assertIs(self.registry.get_adapter("ceph"), self.adapter)
        self.assertEqual(self.registry.registered_backends(), [BackendIdentity.CEPH])

    def test_duplicate_registration_refused(self):
        self.registry.register(BackendIdentity.CEPH, self.adapter)
        with self.assertRaises(DuplicateRegistrationError) as ctx:
            self.registry.register(BackendIdentity.CEPH, Mock(spec=ReplicationAdapter))
        self.assertEqual(str(ctx.exception), "adapter for backend ceph already registered")

    def test_missing_adapter(self):
        with self.assertRaises(AdapterNotFoundError):
            self.registry.get_adapter(BackendIdentity.TRIDENT)
        with self.assertRaises(AdapterNotFoundError):
            self.registry.get_group_adapter(BackendIdentity.TRIDENT)

    def test_unregister(self):
        self.registry.register(BackendIdentity.CEPH, self.adapter)
        self.registry.unregister(BackendIdentity.CEPH)
        self.assertEqual(self.registry.registered_backends(), [])

    def test_registries_are_independent(self):
        """Each context builds its own registry, so building twice never conflicts."""
        client = FakeResourceClient()
        first = build_default_registry(client)
        second = build_default_registry(client)
        self.assertIsNot(first.get_adapter(BackendIdentity.CEPH), second.get_adapter(BackendIdentity.CEPH))

    def test_default_registry_contents(self):
        registry = build_default_registry(FakeResourceClient())
        self.assertEqual(registry.registered_backends(), list(BackendIdentity))
        self.assertIsInstance(registry.get_adapter(BackendIdentity.CEPH), CephAdapter)
        self.assertIsInstance(registry.get_adapter(BackendIdentity.TRIDENT), TridentAdapter)
        self.assertIsInstance(registry.get_group_adapter(BackendIdentity.POWERSTORE), PowerStoreGroupAdapter)
