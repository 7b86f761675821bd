"""
Directory Layer Tests
=====================

Group naming, the in-memory gateway, and the membership cache.

CACHE INVARIANTS UNDER TEST:
============================
1. Membership changes are invisible until the next refresh (staleness)
2. A failed or cancelled refresh keeps the previous snapshot
3. Members removed externally stay visible until a refresh replaces the set
"""

import asyncio
import uuid

import pytest

from timeline.contracts.base import ConfigurationError, ErrorCode, TransientDirectoryError
from timeline.directory import InMemoryDirectoryGateway
from timeline.directory.cache import GroupMembershipCache
from timeline.directory.names import GroupNames

from .fixtures import NAMES, ROAD_1_ID, TENANT_1_ID


# =============================================================================
# GROUP NAMES
# =============================================================================

class TestGroupNames:

    def test_reserved_names(self):
        assert NAMES.global_admins == "Roads-Admin"
        assert NAMES.tenant_manager(TENANT_1_ID) == f"Roads-Tenant-Manager-{TENANT_1_ID}"
        assert NAMES.tenant_user(TENANT_1_ID) == f"Roads-Tenant-User-{TENANT_1_ID}"
        assert NAMES.road_user(TENANT_1_ID, ROAD_1_ID) == f"Roads-Tenant-User-{TENANT_1_ID}-{ROAD_1_ID}"

    def test_parse_round_trip(self):
        assert NAMES.parse("roads-admin").kind == "global"
        manager = NAMES.parse(NAMES.tenant_manager(TENANT_1_ID))
        assert (manager.kind, manager.tenant_id) == ("tenant_manager", TENANT_1_ID)
        user = NAMES.parse(NAMES.tenant_user(TENANT_1_ID))
        assert (user.kind, user.tenant_id, user.road_id) == ("tenant_user", TENANT_1_ID, None)
        road = NAMES.parse(NAMES.road_user(TENANT_1_ID, ROAD_1_ID))
        assert (road.kind, road.tenant_id, road.road_id) == ("road_user", TENANT_1_ID, ROAD_1_ID)

    @pytest.mark.parametrize("name", ["Roads-Other", "Other-Admin", "Roads-Tenant-User-not-a-guid"])
    def test_parse_rejects_unknown(self, name):
        with pytest.raises(ConfigurationError) as info:
            NAMES.parse(name)
        assert info.value.code is ErrorCode.INVALID_GROUP_NAME

    @pytest.mark.parametrize("prefix", ["", "Roads ", "Roads/"])
    def test_invalid_prefix(self, prefix):
        with pytest.raises(ConfigurationError):
            GroupNames(prefix)

    def test_is_reserved_ignores_case(self):
        assert NAMES.is_reserved("ROADS-anything")
        assert not NAMES.is_reserved("Other-Admin")


# =============================================================================
# IN-MEMORY GATEWAY
# =============================================================================

class TestInMemoryGateway:

    def test_seeded_with_global_admins(self):
        gateway = InMemoryDirectoryGateway(NAMES)
        groups = asyncio.run(gateway.list_groups())
        assert [g.name for g in groups] == ["Roads-Admin"]

    def test_ensure_group_is_idempotent(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            first = await gateway.ensure_group("Roads-Extra", "extra")
            second = await gateway.ensure_group("ROADS-EXTRA")
            return first, second, await gateway.list_groups()

        first, second, groups = asyncio.run(scenario())
        assert first.id == second.id
        assert len(groups) == 2

    def test_membership_is_case_insensitive(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            await gateway.add_user_to_group("Ada@Example.com", "Roads-Admin")
            return (
                await gateway.is_user_in_group("ada@example.com", "roads-admin"),
                await gateway.get_group_by_name("Roads-Admin"),
            )

        is_member, group = asyncio.run(scenario())
        assert is_member
        assert group.member_count == 1

    def test_invite_adds_to_groups(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            user = await gateway.invite_user("bo@example.com", "Bo", ["Roads-Admin"])
            return user, await gateway.get_group_members("Roads-Admin"), await gateway.search_users("bo@")

        user, members, found = asyncio.run(scenario())
        assert user.display_name == "Bo"
        assert [m.email for m in members] == ["bo@example.com"]
        assert found == [user]

    def test_remove_and_delete(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            await gateway.add_user_to_group("bo@example.com", "Roads-Admin")
            await gateway.remove_user_from_group("bo@example.com", "Roads-Admin")
            removed = await gateway.is_user_in_group("bo@example.com", "Roads-Admin")
            await gateway.delete_group_by_name("Roads-Admin")
            return removed, await gateway.get_group_by_name("Roads-Admin")

        removed, group = asyncio.run(scenario())
        assert removed is False
        assert group is None

    def test_snapshots_exclude_foreign_groups(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            await gateway.add_user_to_group("bo@example.com", "Other-Group")
            await gateway.add_user_to_group("bo@example.com", "Roads-Admin")
            return await gateway.list_group_snapshots()

        snapshots = asyncio.run(scenario())
        assert [s.group.name for s in snapshots] == ["Roads-Admin"]
        assert snapshots[0].members[0].email == "bo@example.com"


# =============================================================================
# MEMBERSHIP CACHE
# =============================================================================

class FailingGateway(InMemoryDirectoryGateway):
    """In-memory gateway whose snapshot listing can be switched to fail."""

    def __init__(self):
        super().__init__(NAMES)
        self.failing = False

    async def list_group_snapshots(self):
        if self.failing:
            raise TransientDirectoryError("directory throttled")
        return await super().list_group_snapshots()


class BlockingGateway(InMemoryDirectoryGateway):
    """Snapshot listing that waits until released."""

    def __init__(self):
        super().__init__(NAMES)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()
        self.block = False

    async def list_group_snapshots(self):
        if self.block:
            self.entered.set()
            await self.release.wait()
        return await super().list_group_snapshots()


class TestMembershipCache:

    def test_staleness_until_refresh(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            cache = GroupMembershipCache(gateway, refresh_interval=3600)
            await cache.refresh()
            await gateway.add_user_to_group("ada@example.com", "Roads-Admin")
            before = await cache.is_user_in_group("ada@example.com", "Roads-Admin")
            await cache.refresh()
            after = await cache.is_user_in_group("ADA@example.com", "roads-admin")
            return before, after

        assert asyncio.run(scenario()) == (False, True)

    def test_removed_member_visible_until_refresh(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            await gateway.add_user_to_group("ada@example.com", "Roads-Admin")
            cache = GroupMembershipCache(gateway)
            await cache.refresh()
            await gateway.remove_user_from_group("ada@example.com", "Roads-Admin")
            stale = await cache.is_user_in_group("ada@example.com", "Roads-Admin")
            await cache.refresh()
            fresh = await cache.is_user_in_group("ada@example.com", "Roads-Admin")
            return stale, fresh

        assert asyncio.run(scenario()) == (True, False)

    def test_failed_refresh_keeps_snapshot(self):
        async def scenario():
            gateway = FailingGateway()
            await gateway.add_user_to_group("ada@example.com", "Roads-Admin")
            cache = GroupMembershipCache(gateway)
            assert await cache.refresh()
            gateway.failing = True
            ok = await cache.refresh()
            return ok, await cache.is_user_in_group("ada@example.com", "Roads-Admin")

        assert asyncio.run(scenario()) == (False, True)

    def test_cancelled_refresh_keeps_snapshot(self):
        async def scenario():
            gateway = BlockingGateway()
            await gateway.add_user_to_group("ada@example.com", "Roads-Admin")
            cache = GroupMembershipCache(gateway)
            await cache.refresh()

            await gateway.remove_user_from_group("ada@example.com", "Roads-Admin")
            gateway.block = True
            task = asyncio.ensure_future(cache.refresh())
            await gateway.entered.wait()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return await cache.is_user_in_group("ada@example.com", "Roads-Admin")

        assert asyncio.run(scenario()) is True

    def test_group_lookups(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            await gateway.add_user_to_group("ada@example.com", "Roads-Admin")
            cache = GroupMembershipCache(gateway)
            await cache.refresh()
            admins = await gateway.get_group_by_name("Roads-Admin")
            return (
                admins.id,
                await cache.resolve_group_id("ROADS-ADMIN"),
                await cache.resolve_group_id("Roads-Missing"),
                await cache.member_count("Roads-Admin"),
                await cache.find_user("Ada@Example.com"),
                await cache.find_user("nobody@example.com"),
            )

        group_id, resolved, missing, count, user, nobody = asyncio.run(scenario())
        assert resolved == group_id
        assert missing is None
        assert count == 1
        assert user.email == "ada@example.com"
        assert nobody is None

    def test_empty_email_is_never_a_member(self):
        async def scenario():
            cache = GroupMembershipCache(InMemoryDirectoryGateway(NAMES))
            await cache.refresh()
            return await cache.is_user_in_group("", "Roads-Admin")

        assert asyncio.run(scenario()) is False

    def test_start_refreshes_eagerly_and_stop_cancels(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            await gateway.add_user_to_group("ada@example.com", "Roads-Admin")
            cache = GroupMembershipCache(gateway, refresh_interval=3600)
            await cache.start()
            running = cache.running
            member = await cache.is_user_in_group("ada@example.com", "Roads-Admin")
            await cache.stop()
            return running, member, cache.running, cache.last_refresh

        running, member, still_running, last_refresh = asyncio.run(scenario())
        assert running and member
        assert not still_running
        assert last_refresh is not None

    def test_periodic_refresh_picks_up_changes(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            cache = GroupMembershipCache(gateway, refresh_interval=0.01)
            await cache.start()
            await gateway.add_user_to_group("ada@example.com", "Roads-Admin")
            for _ in range(200):
                if await cache.is_user_in_group("ada@example.com", "Roads-Admin"):
                    break
                await asyncio.sleep(0.01)
            result = await cache.is_user_in_group("ada@example.com", "Roads-Admin")
            await cache.stop()
            return result

        assert asyncio.run(scenario()) is True

    def test_deleted_group_is_dropped_after_one_refresh(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            group = f"Roads-Tenant-User-{uuid.UUID(int=5)}"
            await gateway.add_user_to_group("ada@example.com", group)
            cache = GroupMembershipCache(gateway)
            await cache.refresh()
            before = await cache.is_user_in_group("ada@example.com", group)
            await gateway.delete_group_by_name(group)
            await cache.refresh()
            return (
                before,
                await cache.is_user_in_group("ada@example.com", group),
                await cache.resolve_group_id(group),
            )

        before, after, group_id = asyncio.run(scenario())
        assert before is True
        assert after is False
        assert group_id is None
