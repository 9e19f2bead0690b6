"""Feature flag propagation: additive merge, registry then runtime."""

import uuid

import pytest

from launchpad.core.errors import NotFoundError
from launchpad.models.tenant import TenantStatus
from launchpad.services.feature_flags import (
    PropagationStatus,
    merge_flags,
    propagate_to_fleet,
    propagate_to_tenant,
    sync_runtime_flags,
)


def _resolver(runtime):
    async def _resolve(_session, _tenant_id):
        return runtime

    return _resolve


def test_merge_never_overwrites_existing_keys():
    existing = {"blog": False, "gallery": True}
    merged, added, skipped = merge_flags(existing, {"blog": True, "chat": True, "gallery": False})

    assert merged == {"blog": False, "gallery": True, "chat": True}
    assert added == ["chat"]
    assert sorted(skipped) == ["blog", "gallery"]
    # input untouched
    assert existing == {"blog": False, "gallery": True}


def test_merge_into_empty_adds_everything():
    merged, added, skipped = merge_flags({}, {"a": True, "b": False})
    assert merged == {"a": True, "b": False}
    assert added == ["a", "b"]
    assert skipped == []


@pytest.mark.asyncio
async def test_propagate_keeps_customizations_and_syncs_runtime(session, make_tenant, runtime):
    tenant = await make_tenant("flags", flags={"blog": False})
    before = tenant.row_version

    result = await propagate_to_tenant(
        session, tenant.id, {"blog": True, "chat": True}, _resolver(runtime)
    )

    assert result.status == PropagationStatus.PROPAGATED
    assert result.added == ["chat"]
    assert result.skipped == ["blog"]
    assert result.error is None
    await session.refresh(tenant)
    assert tenant.flags == {"blog": False, "chat": True}
    assert tenant.row_version == before + 1
    assert runtime.features == [{"blog": False, "chat": True}]


@pytest.mark.asyncio
async def test_second_propagation_is_unchanged(session, make_tenant, runtime):
    tenant = await make_tenant("flags-twice")
    defaults = {"chat": True}
    await propagate_to_tenant(session, tenant.id, defaults, _resolver(runtime))
    await session.refresh(tenant)
    version = tenant.row_version

    again = await propagate_to_tenant(session, tenant.id, defaults, _resolver(runtime))

    assert again.status == PropagationStatus.UNCHANGED
    assert again.added == []
    assert again.skipped == ["chat"]
    await session.refresh(tenant)
    assert tenant.row_version == version
    assert len(runtime.features) == 1


@pytest.mark.asyncio
async def test_runtime_failure_keeps_registry_update(session, make_tenant, make_runtime):
    tenant = await make_tenant("stale-runtime")

    result = await propagate_to_tenant(
        session, tenant.id, {"chat": True}, _resolver(make_runtime(fail=True))
    )

    assert result.status == PropagationStatus.RUNTIME_SYNC_FAILED
    assert result.added == ["chat"]
    assert "tenant runtime config failed" in result.error
    await session.refresh(tenant)
    assert tenant.flags == {"chat": True}


@pytest.mark.asyncio
async def test_unprovisioned_tenant_updates_registry_only(session, make_tenant, runtime):
    tenant = await make_tenant("no-runtime", provisioned=False)

    result = await propagate_to_tenant(session, tenant.id, {"chat": True}, _resolver(runtime))

    assert result.status == PropagationStatus.PROPAGATED
    assert runtime.features == []


@pytest.mark.asyncio
async def test_unknown_tenant(session, runtime):
    result = await propagate_to_tenant(session, uuid.uuid4(), {"chat": True}, _resolver(runtime))
    assert result.status == PropagationStatus.REGISTRY_FAILED
    assert result.error == "Tenant not found"


@pytest.mark.asyncio
async def test_fleet_propagation_counts_and_isolates(session, make_tenant, make_runtime):
    await make_tenant("fleet-one")
    await make_tenant("fleet-two", flags={"chat": False})
    await make_tenant("fleet-three")
    await make_tenant("fleet-archived", status=TenantStatus.ARCHIVED)

    runtimes = {}

    async def _resolve(_session, tenant_id):
        # the second tenant's runtime is down
        runtime = make_runtime(fail=len(runtimes) == 1)
        runtimes[tenant_id] = runtime
        return runtime

    batch = await propagate_to_fleet(session, {"chat": True, "gallery": True}, _resolve)

    assert batch.total_tenants == 3
    assert batch.tenants_updated == 3
    assert batch.total_flags_added == 2 + 1 + 2
    statuses = [r.status for r in batch.results]
    assert statuses == [
        PropagationStatus.PROPAGATED,
        PropagationStatus.RUNTIME_SYNC_FAILED,
        PropagationStatus.PROPAGATED,
    ]
    assert [r.slug for r in batch.errors] == ["fleet-two"]


@pytest.mark.asyncio
async def test_sync_runtime_pushes_registry_flags(session, make_tenant, runtime):
    tenant = await make_tenant("resync", flags={"blog": True})

    flags = await sync_runtime_flags(session, tenant.id, _resolver(runtime))

    assert flags == {"blog": True}
    assert runtime.features == [{"blog": True}]


@pytest.mark.asyncio
async def test_sync_runtime_unknown_tenant(session, runtime):
    with pytest.raises(NotFoundError):
        await sync_runtime_flags(session, uuid.uuid4(), _resolver(runtime))
