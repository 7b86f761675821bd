"""
Group Membership Cache

RESPONSIBILITY: Local mirror of reserved-prefix groups and their members
ALLOWED INPUTS: GroupSnapshot lists from a DirectoryGateway
OUTPUTS: Membership answers, group ids, cached users

REFRESH MODEL:
==============
- One eager refresh on start, then one per interval
- Snapshots are fetched outside the guard, then committed under it by
  swapping in new dictionaries
- Both maps are rebuilt from scratch on every successful tick, so a group
  deleted in the directory disappears after one refresh
- A failed or cancelled refresh leaves the previous snapshot in place
- Refreshes never overlap

Readers take the guard, so a query issued during a commit waits for the
commit to finish and never sees a half-applied snapshot.
"""

from __future__ import annotations
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set
import asyncio
import logging

from ..contracts.directory import AppUser, GroupSnapshot
from . import DirectoryGateway


logger = logging.getLogger(__name__)

DEFAULT_REFRESH_SECONDS = 15 * 60


class GroupMembershipCache:
    """
    Periodically refreshed {group name -> id} and {id -> members} mirror.

    Group names and emails compare case-insensitively.
    """

    def __init__(
        self,
        gateway: DirectoryGateway,
        refresh_interval: float = DEFAULT_REFRESH_SECONDS
    ):
        self._gateway = gateway
        self._refresh_interval = refresh_interval
        self._group_id_by_name: Dict[str, str] = {}
        self._members_by_id: Dict[str, Set[AppUser]] = {}
        self._guard = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._last_refresh: Optional[datetime] = None

    @property
    def last_refresh(self) -> Optional[datetime]:
        """When the last successful refresh was committed."""
        return self._last_refresh

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # =========================================================================
    # REFRESH
    # =========================================================================

    async def refresh(self) -> bool:
        """
        Rebuild the mirror from the gateway.

        Returns False if the gateway failed; the previous snapshot stays.
        Cancellation propagates without touching cached state.
        """
        async with self._refresh_lock:
            try:
                snapshots = await self._gateway.list_group_snapshots()
            except asyncio.CancelledError:
                logger.info("Group cache refresh cancelled; keeping previous snapshot")
                raise
            except Exception:
                logger.warning("Group cache refresh failed; keeping previous snapshot", exc_info=True)
                return False

            async with self._guard:
                self._commit(snapshots)
            logger.debug("Group cache refreshed with %d groups", len(snapshots))
            return True

    def _commit(self, snapshots: List[GroupSnapshot]):
        group_ids: Dict[str, str] = {}
        members: Dict[str, Set[AppUser]] = {}
        for snapshot in snapshots:
            group = snapshot.group
            group_ids[group.name.casefold()] = group.id
            users = set()
            for member in snapshot.members:
                user = member.to_app_user()
                if user is not None:
                    users.add(user)
            members[group.id] = users
        self._group_id_by_name = group_ids
        self._members_by_id = members
        self._last_refresh = datetime.now(timezone.utc)

    async def _refresh_loop(self):
        while True:
            await asyncio.sleep(self._refresh_interval)
            try:
                await self.refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Unexpected error in group cache refresh loop")

    async def start(self) -> bool:
        """
        Refresh once, then schedule the periodic loop on the running loop.

        Returns the outcome of the eager refresh.
        """
        if self.running:
            return True
        refreshed = await self.refresh()
        self._task = asyncio.get_running_loop().create_task(self._refresh_loop())
        return refreshed

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def resolve_group_id(self, group_name: str) -> Optional[str]:
        async with self._guard:
            return self._group_id_by_name.get(group_name.casefold())

    async def is_user_in_group(self, user_email: str, group_name: str) -> bool:
        if not user_email:
            return False
        needle = user_email.casefold()
        async with self._guard:
            group_id = self._group_id_by_name.get(group_name.casefold())
            if group_id is None:
                return False
            return any(u.email.casefold() == needle for u in self._members_by_id.get(group_id, ()))

    async def find_user(self, email: str) -> Optional[AppUser]:
        """First cached user with this email, scanning every group."""
        if not email:
            return None
        needle = email.casefold()
        async with self._guard:
            for users in self._members_by_id.values():
                for user in users:
                    if user.email.casefold() == needle:
                        return user
        return None

    async def member_count(self, group_name: str) -> int:
        async with self._guard:
            group_id = self._group_id_by_name.get(group_name.casefold())
            return len(self._members_by_id.get(group_id, ())) if group_id else 0
