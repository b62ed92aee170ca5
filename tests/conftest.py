"""Shared fixtures for the replication core tests."""
import pytest

from unified_replication.models import BackendIdentity
from unified_replication.translation import TranslationEngine

from tests.common.builders import FakeClock, build_engine
from tests.common.fake_cluster import FakeResourceClient


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_client():
    """A cluster with every backend installed and PVC 'data' present."""
    client = FakeResourceClient()
    for backend in BackendIdentity:
        client.install_backend(backend)
    client.add_pvc("data")
    return client


@pytest.fixture
def translator():
    return TranslationEngine()


@pytest.fixture
def engine(fake_client, clock):
    return build_engine(fake_client, clock)
