"""Tests for label-selected volume group replication through the engine."""
from datetime import datetime, timezone

import pytest

from unified_replication.adapters import GROUP_LABEL
from unified_replication.adapters.powerstore import DELL_GROUP_LABEL
from unified_replication.errors import BackendUnavailableError, ConfigurationError, TransientBackendError
from unified_replication.kube.kinds import (
    CEPH_VOLUME_REPLICATION,
    DELL_REPLICATION_GROUP,
    TRIDENT_MIRROR_RELATIONSHIP,
)
from unified_replication.models import FINALIZER, BackendIdentity, Extensions, ReplicationState

from tests.common.builders import build_engine, make_group
from tests.common.fake_cluster import FakeResourceClient

MEMBERS = ["pg-0", "pg-1", "pg-2"]


@pytest.fixture
def pg_client(fake_client):
    for name in MEMBERS:
        fake_client.add_pvc(name, labels={"app": "pg", "instance": "prod"})
    fake_client.add_pvc("pg-staging", labels={"app": "pg", "instance": "staging"})
    return fake_client


def ceph_members(client):
    return sorted(obj["metadata"]["name"] for (plural, _, _), obj in client.objects.items()
                  if plural == CEPH_VOLUME_REPLICATION.plural
                  and obj["metadata"]["labels"].get(GROUP_LABEL) == "pg-group")


@pytest.mark.asyncio
async def test_ceph_group_creates_one_resource_per_member(engine, pg_client):
    group = make_group(backend="ceph")

    await engine.process_group_replication(group, "create")

    assert group.status.persistent_volume_claims_ref_list == MEMBERS
    assert ceph_members(pg_client) == ["pg-group-pg-0", "pg-group-pg-1", "pg-group-pg-2"]
    assert group.status.backend == BackendIdentity.CEPH
    assert group.status.state == ReplicationState.SOURCE
    assert group.status.message == "3 members in state primary"
    assert group.status.get_condition("Ready").status is True
    assert FINALIZER in group.finalizers


@pytest.mark.asyncio
async def test_membership_is_recomputed(engine, pg_client):
    group = make_group(backend="ceph")
    await engine.process_group_replication(group, "create")

    pg_client.pvcs[("default", "pg-1")]["metadata"]["labels"] = {"app": "pg"}
    await engine.process_group_replication(group, "update")

    assert group.status.persistent_volume_claims_ref_list == ["pg-0", "pg-2"]
    assert ceph_members(pg_client) == ["pg-group-pg-0", "pg-group-pg-2"]
    to_dict = group.status.to_dict()
    assert to_dict["persistentVolumeClaimsRefList"] == [{"name": "pg-0"}, {"name": "pg-2"}]


@pytest.mark.asyncio
async def test_trident_group_maps_every_volume(engine, pg_client):
    group = make_group(backend="trident")

    await engine.process_group_replication(group, "create")

    stored = pg_client.stored(TRIDENT_MIRROR_RELATIONSHIP, "pg-group")
    assert [m["localPVCName"] for m in stored["spec"]["volumeMappings"]] == MEMBERS
    assert group.status.backend == BackendIdentity.TRIDENT


@pytest.mark.asyncio
async def test_powerstore_group_labels_members(engine, pg_client):
    group = make_group(extensions=Extensions(powerstore={"protectionPolicy": "gold-policy",
                                                         "remoteSystem": "PS-remote-01"}))

    await engine.process_group_replication(group, "create")

    assert pg_client.stored(DELL_REPLICATION_GROUP, "pg-group") is not None
    for name in MEMBERS:
        assert pg_client.pvc_labels(name)[DELL_GROUP_LABEL] == "pg-group"
    assert DELL_GROUP_LABEL not in pg_client.pvc_labels("pg-staging")

    group.deletion_timestamp = datetime.now(timezone.utc)
    await engine.process_group_replication(group, "update")

    assert pg_client.stored(DELL_REPLICATION_GROUP, "pg-group") is None
    for name in MEMBERS:
        assert DELL_GROUP_LABEL not in pg_client.pvc_labels(name)
    assert group.finalizers == []


@pytest.mark.asyncio
async def test_no_matching_volumes(engine, pg_client):
    group = make_group(backend="ceph", selector={"app": "mysql"})

    with pytest.raises(ConfigurationError) as ctx:
        await engine.process_group_replication(group, "create")

    assert ctx.value.reason == "NoMatchingVolumes"
    assert str(ctx.value) == "no PVCs match selector in namespace default"
    assert group.status.persistent_volume_claims_ref_list == []
    assert group.status.get_condition("Ready").reason == "NoMatchingVolumes"
    assert pg_client.total_writes == 0


@pytest.mark.asyncio
async def test_ceph_group_delete(engine, pg_client):
    group = make_group(backend="ceph")
    await engine.process_group_replication(group, "create")

    await engine.process_group_replication(group, "delete")

    assert ceph_members(pg_client) == []
    assert group.finalizers == []


@pytest.mark.asyncio
async def test_group_status_reports_disagreement(engine, pg_client):
    group = make_group(backend="ceph")
    await engine.process_group_replication(group, "create")
    pg_client.set_status(CEPH_VOLUME_REPLICATION, "pg-group-pg-1", state="secondary")

    status = await engine.get_group_status(group)

    assert status.state is None
    assert status.message.startswith("group members disagree")


@pytest.mark.asyncio
async def test_disagreeing_members_leave_group_state_unset(engine, pg_client):
    group = make_group(backend="ceph")
    await engine.process_group_replication(group, "create")
    pg_client.set_status(CEPH_VOLUME_REPLICATION, "pg-group-pg-1", state="Secondary")

    await engine.process_group_replication(group, "update")

    assert group.status.state is None
    assert group.status.requested_state == ReplicationState.SOURCE
    assert group.status.message.startswith("group members disagree")
    assert group.status.get_condition("Ready").status is True

    # Still reconcilable while members disagree.
    await engine.process_group_replication(group, "update")
    assert group.status.get_condition("Ready").status is True


@pytest.mark.asyncio
async def test_group_demotion_survives_later_passes(engine, pg_client):
    group = make_group(backend="ceph")
    await engine.process_group_replication(group, "create")

    group.replication_state = ReplicationState.DEMOTING
    await engine.process_group_replication(group, "update")
    await engine.process_group_replication(group, "update")

    assert group.status.get_condition("Ready").status is True
    assert group.status.state == ReplicationState.REPLICA
    assert group.status.message == "3 members in state secondary"


@pytest.mark.asyncio
async def test_group_delete_keeps_finalizer_when_discovery_fails():
    client = FakeResourceClient()
    client.fail_on("get_crd", TransientBackendError("connection refused"), times=100)
    engine = build_engine(client)
    group = make_group(backend="ceph", finalizers=[FINALIZER])

    with pytest.raises(BackendUnavailableError):
        await engine.process_group_replication(group, "delete")

    assert group.finalizers == [FINALIZER]
    assert group.status.get_condition("Ready").reason == "BackendNotAvailable"
