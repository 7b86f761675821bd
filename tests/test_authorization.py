"""
Authorization Resolver Tests
============================

INVARIANTS UNDER TEST:
======================
1. A level's group grants that level and every level below it
2. Access never crosses tenants
3. The demo tenant is open to everyone, anonymous callers included
4. A failing membership check counts as "not a member" and evaluation
   continues with the next candidate group
"""

import asyncio
import uuid

from hypothesis import given, strategies as st

from timeline.authorization import DEMO_TENANT_ID, AccessLevel, AuthorizationResolver
from timeline.contracts.base import TransientDirectoryError
from timeline.directory import InMemoryDirectoryGateway
from timeline.directory.cache import GroupMembershipCache

from .fixtures import NAMES, ROAD_1_ID, ROAD_2_ID, TENANT_1_ID, TENANT_2_ID


def resolver_with(memberships, names=NAMES):
    """Resolver over an in-memory directory holding (email, group) pairs."""
    gateway = InMemoryDirectoryGateway(NAMES)

    async def seed():
        for email, group in memberships:
            await gateway.add_user_to_group(email, group)

    asyncio.run(seed())
    return AuthorizationResolver(gateway, names)


def authorized(resolver, email, tenant_id, road_id, level):
    return asyncio.run(resolver.is_authorized(email, tenant_id, road_id, level))


class FlakyMembership:
    """Fails for chosen groups, answers from a fixed set otherwise."""

    def __init__(self, failing, members):
        self.failing = set(failing)
        self.members = set(members)
        self.checked = []

    async def is_user_in_group(self, user_email, group_name):
        self.checked.append(group_name)
        if group_name in self.failing:
            raise TransientDirectoryError("directory timeout")
        return (user_email, group_name) in self.members


class TestHierarchy:

    def test_tenant_manager_holds_every_lower_level(self):
        resolver = resolver_with([("mgr@example.com", NAMES.tenant_manager(TENANT_1_ID))])
        for level in (AccessLevel.ROAD_USER, AccessLevel.TENANT_USER, AccessLevel.TENANT_MANAGER):
            assert authorized(resolver, "mgr@example.com", TENANT_1_ID, ROAD_1_ID, level)
        assert not authorized(resolver, "mgr@example.com", TENANT_1_ID, ROAD_1_ID, AccessLevel.GLOBAL)

    def test_no_access_to_other_tenant(self):
        resolver = resolver_with([("mgr@example.com", NAMES.tenant_manager(TENANT_1_ID))])
        assert not authorized(resolver, "mgr@example.com", TENANT_2_ID, ROAD_2_ID, AccessLevel.ROAD_USER)

    def test_global_implies_everything(self):
        resolver = resolver_with([("root@example.com", NAMES.global_admins)])
        assert authorized(resolver, "root@example.com", TENANT_2_ID, ROAD_2_ID, AccessLevel.ROAD_USER)
        assert authorized(resolver, "root@example.com", TENANT_2_ID, None, AccessLevel.GLOBAL)

    def test_road_user_is_scoped_to_its_road(self):
        resolver = resolver_with([("fan@example.com", NAMES.road_user(TENANT_1_ID, ROAD_1_ID))])
        assert authorized(resolver, "fan@example.com", TENANT_1_ID, ROAD_1_ID, AccessLevel.ROAD_USER)
        assert not authorized(resolver, "fan@example.com", TENANT_1_ID, ROAD_2_ID, AccessLevel.ROAD_USER)
        assert not authorized(resolver, "fan@example.com", TENANT_1_ID, ROAD_1_ID, AccessLevel.TENANT_USER)

    def test_email_match_ignores_case(self):
        resolver = resolver_with([("User@Example.com", NAMES.tenant_user(TENANT_1_ID))])
        assert authorized(resolver, "user@example.COM", TENANT_1_ID, None, AccessLevel.TENANT_USER)

    @given(st.sampled_from(AccessLevel), st.sampled_from(AccessLevel))
    def test_holding_a_level_satisfies_lower_requirements(self, held, required):
        groups = {
            AccessLevel.ROAD_USER: NAMES.road_user(TENANT_1_ID, ROAD_1_ID),
            AccessLevel.TENANT_USER: NAMES.tenant_user(TENANT_1_ID),
            AccessLevel.TENANT_MANAGER: NAMES.tenant_manager(TENANT_1_ID),
            AccessLevel.GLOBAL: NAMES.global_admins,
        }
        membership = FlakyMembership([], [("u@example.com", groups[held])])
        resolver = AuthorizationResolver(membership, NAMES)
        result = asyncio.run(resolver.is_authorized("u@example.com", TENANT_1_ID, ROAD_1_ID, required))
        assert result == (held >= required)


class TestDemoTenant:

    def test_anyone_including_anonymous(self):
        resolver = resolver_with([])
        for email in ("", None, "stranger@example.com"):
            assert authorized(resolver, email, DEMO_TENANT_ID, None, AccessLevel.GLOBAL)

    def test_highest_level_is_global(self):
        resolver = resolver_with([])
        assert asyncio.run(resolver.highest_access_level(None, DEMO_TENANT_ID)) is AccessLevel.GLOBAL


class TestDegradation:

    def test_empty_email_never_authorized(self):
        resolver = resolver_with([("", NAMES.global_admins)])
        assert not authorized(resolver, "", TENANT_1_ID, None, AccessLevel.ROAD_USER)
        assert not authorized(resolver, None, TENANT_1_ID, None, AccessLevel.ROAD_USER)

    def test_failing_check_moves_to_next_candidate(self):
        membership = FlakyMembership(
            failing=[NAMES.tenant_user(TENANT_1_ID)],
            members=[("mgr@example.com", NAMES.tenant_manager(TENANT_1_ID))]
        )
        resolver = AuthorizationResolver(membership, NAMES)
        assert asyncio.run(resolver.is_authorized("mgr@example.com", TENANT_1_ID, None, AccessLevel.TENANT_USER))
        assert membership.checked == [NAMES.tenant_user(TENANT_1_ID), NAMES.tenant_manager(TENANT_1_ID)]

    def test_all_checks_failing_denies(self):
        failing = [
            NAMES.road_user(TENANT_1_ID, ROAD_1_ID), NAMES.tenant_user(TENANT_1_ID),
            NAMES.tenant_manager(TENANT_1_ID), NAMES.global_admins,
        ]
        membership = FlakyMembership(failing, [])
        resolver = AuthorizationResolver(membership, NAMES)
        assert not asyncio.run(resolver.is_authorized("a@example.com", TENANT_1_ID, ROAD_1_ID, AccessLevel.ROAD_USER))
        assert membership.checked == failing

    def test_misconfigured_names_only_demo(self):
        resolver = resolver_with([("root@example.com", NAMES.global_admins)], names=None)
        assert not authorized(resolver, "root@example.com", TENANT_1_ID, None, AccessLevel.ROAD_USER)
        assert authorized(resolver, "root@example.com", DEMO_TENANT_ID, None, AccessLevel.ROAD_USER)

    def test_candidate_groups_lowest_first(self):
        resolver = AuthorizationResolver(FlakyMembership([], []), NAMES)
        assert resolver.candidate_groups(TENANT_1_ID, None, AccessLevel.ROAD_USER) == [
            NAMES.tenant_user(TENANT_1_ID),
            NAMES.tenant_manager(TENANT_1_ID),
            NAMES.global_admins,
        ]


class TestHighestLevel:

    def test_reports_highest(self):
        resolver = resolver_with([
            ("mgr@example.com", NAMES.tenant_user(TENANT_1_ID)),
            ("mgr@example.com", NAMES.tenant_manager(TENANT_1_ID)),
        ])
        level = asyncio.run(resolver.highest_access_level("mgr@example.com", TENANT_1_ID))
        assert level is AccessLevel.TENANT_MANAGER

    def test_none_without_membership(self):
        resolver = resolver_with([])
        assert asyncio.run(resolver.highest_access_level("x@example.com", uuid.uuid4())) is None


class TestRevocation:

    def test_deleting_the_group_revokes_after_one_refresh(self):
        async def scenario():
            gateway = InMemoryDirectoryGateway(NAMES)
            await gateway.add_user_to_group("mgr@example.com", NAMES.tenant_manager(TENANT_1_ID))
            cache = GroupMembershipCache(gateway)
            resolver = AuthorizationResolver(cache, NAMES)
            await cache.refresh()
            before = await resolver.is_authorized("mgr@example.com", TENANT_1_ID, None, AccessLevel.TENANT_MANAGER)
            await gateway.delete_group_by_name(NAMES.tenant_manager(TENANT_1_ID))
            await cache.refresh()
            after = await resolver.is_authorized("mgr@example.com", TENANT_1_ID, None, AccessLevel.TENANT_MANAGER)
            return before, after

        assert asyncio.run(scenario()) == (True, False)
