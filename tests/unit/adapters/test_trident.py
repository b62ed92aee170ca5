"""Unit tests for the Trident adapter."""
import pytest

from unified_replication.adapters import GROUP_LABEL, TridentAdapter, TridentGroupAdapter
from unified_replication.kube.kinds import TRIDENT_MIRROR_RELATIONSHIP
from unified_replication.models import ReplicationState, Schedule, VolumeMapping

from tests.common.builders import make_group, make_intent
from tests.common.fake_cluster import FakeResourceClient


@pytest.fixture
def client():
    return FakeResourceClient()


@pytest.mark.asyncio
async def test_primary_becomes_established(client):
    intent = make_intent(state="primary")
    await TridentAdapter(client).reconcile(intent, {"replicationPolicy": "MirrorAllSnapshots",
                                                    "replicationSchedule": "5m",
                                                    "remoteVolume": "svm2:data_dr"})

    spec = client.stored(TRIDENT_MIRROR_RELATIONSHIP, intent.name)["spec"]
    assert spec == {
        "state": "established",
        "replicationPolicy": "MirrorAllSnapshots",
        "replicationSchedule": "5m",
        "volumeMappings": [{"localPVCName": "data", "remoteVolumeHandle": "svm2:data_dr"}],
    }


@pytest.mark.asyncio
async def test_secondary_becomes_reestablished(client):
    intent = make_intent(state="secondary")
    await TridentAdapter(client).reconcile(intent, {})

    spec = client.stored(TRIDENT_MIRROR_RELATIONSHIP, intent.name)["spec"]
    assert spec["state"] == "reestablished"


@pytest.mark.asyncio
async def test_defaults_from_mode_and_schedule(client):
    intent = make_intent(replication_mode="synchronous", schedule=Schedule(rpo="30m"),
                         volume_mapping=VolumeMapping(source_pvc="data",
                                                      destination_volume_handle="svm2:vol9"))
    await TridentAdapter(client).reconcile(intent, {})

    spec = client.stored(TRIDENT_MIRROR_RELATIONSHIP, intent.name)["spec"]
    assert spec["replicationPolicy"] == "Sync"
    assert spec["replicationSchedule"] == "30m"
    assert spec["volumeMappings"][0]["remoteVolumeHandle"] == "svm2:vol9"


@pytest.mark.asyncio
async def test_fallback_schedule_and_remote(client):
    intent = make_intent()
    await TridentAdapter(client).reconcile(intent, {})

    spec = client.stored(TRIDENT_MIRROR_RELATIONSHIP, intent.name)["spec"]
    assert spec["replicationSchedule"] == "15m"
    assert spec["volumeMappings"][0]["remoteVolumeHandle"] == "remote-data"


@pytest.mark.asyncio
async def test_idempotent_and_status(client):
    adapter = TridentAdapter(client)
    intent = make_intent(state="replica")
    await adapter.reconcile(intent, {})
    result = await adapter.reconcile(intent, {})
    assert result.writes == 0
    assert client.total_writes == 1

    client.set_status(TRIDENT_MIRROR_RELATIONSHIP, intent.name, state="promoted")
    status = await adapter.get_status(intent)
    assert status.state == ReplicationState.SOURCE
    assert status.backend_state == "promoted"


@pytest.mark.asyncio
async def test_group_is_one_resource_listing_every_volume(client):
    adapter = TridentGroupAdapter(client)
    group = make_group()

    result = await adapter.reconcile_group(group, ["pg-2", "pg-0", "pg-1"],
                                           {"groupReplicationSchedule": "10m",
                                            "remoteVolume-pg-1": "svm2:pg1"})

    stored = client.stored(TRIDENT_MIRROR_RELATIONSHIP, "pg-group")
    assert result.resources == ["pg-group"]
    assert stored["metadata"]["labels"][GROUP_LABEL] == "pg-group"
    assert stored["spec"]["replicationSchedule"] == "10m"
    assert stored["spec"]["volumeMappings"] == [
        {"localPVCName": "pg-0", "remoteVolumeHandle": "remote-pg-0"},
        {"localPVCName": "pg-1", "remoteVolumeHandle": "svm2:pg1"},
        {"localPVCName": "pg-2", "remoteVolumeHandle": "remote-pg-2"},
    ]
    assert len(client.objects) == 1

    await adapter.delete_group(group, [])
    assert client.objects == {}
